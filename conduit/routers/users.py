from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from conduit.database import get_db
from conduit.dependencies import bearer_token, get_current_user
from conduit.models import User
from conduit.schemas import UserCreateRequest, UserEnvelope, UserLoginRequest, UserUpdateRequest
from conduit.security import issue_token
from conduit.services import user_service

router = APIRouter(prefix="/api", tags=["users"])


@router.post("/users", status_code=201, response_model=UserEnvelope)
async def register(data: UserCreateRequest, db: AsyncSession = Depends(get_db)):
    user = await user_service.create_user(db, data.user)
    return {"user": user_service.user_to_dict(user, issue_token(user))}


@router.post("/users/login", response_model=UserEnvelope)
async def login(data: UserLoginRequest, db: AsyncSession = Depends(get_db)):
    user = await user_service.authenticate(db, data.user.email, data.user.password)
    return {"user": user_service.user_to_dict(user, issue_token(user))}


@router.get("/user", response_model=UserEnvelope)
async def current_user(
    user: User = Depends(get_current_user),
    token: str | None = Depends(bearer_token),
):
    return {"user": user_service.user_to_dict(user, token)}


@router.put("/user", response_model=UserEnvelope)
async def update_current_user(
    data: UserUpdateRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    user = await user_service.update_user(db, user, data.user)
    # A renamed user gets a fresh token carrying the new username.
    return {"user": user_service.user_to_dict(user, issue_token(user))}
