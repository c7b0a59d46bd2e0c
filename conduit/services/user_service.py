"""
User service: the user directory.

Resolves users by id, username or email, registers and authenticates
them, and edits the current user's profile.  Username and email
uniqueness is pre-checked for a friendly message and enforced by the
unique constraints; a constraint violation becomes ``ConflictError``.
"""
import logging

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from conduit.exceptions import ConflictError, NotFoundError, UnauthorizedError
from conduit.models import User
from conduit.schemas import UserCreate, UserUpdate
from conduit.security import hash_password, verify_password

logger = logging.getLogger(__name__)

_TAKEN = "username or email is already taken."


# ---------------------------------------------------------------------------
# Serialisation helpers
# ---------------------------------------------------------------------------

def user_to_dict(user: User, token: str) -> dict:
    return {
        "username": user.username,
        "email": user.email,
        "bio": user.bio,
        "image": user.image,
        "token": token,
    }


def profile_to_dict(user: User, following: bool = False) -> dict:
    """Public profile of *user*; ``following`` is relative to the viewer."""
    return {
        "username": user.username,
        "bio": user.bio,
        "image": user.image,
        "following": following,
    }


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------

async def get_user_by_id(db: AsyncSession, user_id: int) -> User:
    user = await db.get(User, user_id)
    if user is None:
        raise NotFoundError("user not found.")
    return user


async def get_user_by_username(db: AsyncSession, username: str) -> User:
    result = await db.execute(select(User).where(User.username == username))
    user = result.scalar_one_or_none()
    if user is None:
        raise NotFoundError("user not found.")
    return user


async def get_user_by_email(db: AsyncSession, email: str) -> User | None:
    result = await db.execute(select(User).where(User.email == email))
    return result.scalar_one_or_none()


async def _identity_taken(
    db: AsyncSession, username: str | None, email: str | None, exclude_id: int | None = None
) -> bool:
    clauses = []
    if username is not None:
        clauses.append(User.username == username)
    if email is not None:
        clauses.append(User.email == email)
    if not clauses:
        return False
    q = select(User.id).where(or_(*clauses))
    if exclude_id is not None:
        q = q.where(User.id != exclude_id)
    return (await db.execute(q.limit(1))).first() is not None


# ---------------------------------------------------------------------------
# Registration / authentication
# ---------------------------------------------------------------------------

async def create_user(db: AsyncSession, data: UserCreate) -> User:
    if await _identity_taken(db, data.username, data.email):
        raise ConflictError(_TAKEN)

    user = User(
        username=data.username,
        email=data.email,
        password_hash=hash_password(data.password),
    )
    try:
        async with db.begin_nested():
            db.add(user)
    except IntegrityError as exc:
        raise ConflictError(_TAKEN) from exc
    logger.info("Registered user %s", user.username)
    return user


async def authenticate(db: AsyncSession, email: str, password: str) -> User:
    user = await get_user_by_email(db, email)
    if user is None or not verify_password(password, user.password_hash):
        logger.warning("Failed login for %s", email)
        raise UnauthorizedError("invalid email or password.")
    return user


async def update_user(db: AsyncSession, user: User, data: UserUpdate) -> User:
    """
    Apply the fields explicitly present in *data* to *user*.

    ``bio`` and ``image`` may be cleared with an explicit null; identity
    fields (username, email, password) ignore nulls.
    """
    changes = data.model_dump(exclude_unset=True)
    if await _identity_taken(db, changes.get("username"), changes.get("email"), exclude_id=user.id):
        raise ConflictError(_TAKEN)

    try:
        async with db.begin_nested():
            for field in ("username", "email"):
                if changes.get(field) is not None:
                    setattr(user, field, changes[field])
            if changes.get("password") is not None:
                user.password_hash = hash_password(changes["password"])
            for field in ("bio", "image"):
                if field in changes:
                    setattr(user, field, changes[field])
    except IntegrityError as exc:
        raise ConflictError(_TAKEN) from exc
    return user
