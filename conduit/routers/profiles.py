from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from conduit.database import get_db
from conduit.dependencies import get_current_user, get_optional_user
from conduit.models import User
from conduit.schemas import ProfileEnvelope
from conduit.services import follow_service, user_service

router = APIRouter(prefix="/api/profiles", tags=["profiles"])


@router.get("/{username}", response_model=ProfileEnvelope)
async def get_profile(
    username: str,
    viewer: User | None = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
):
    target = await user_service.get_user_by_username(db, username)
    following = False
    if viewer is not None:
        following = await follow_service.is_following(db, viewer, target)
    return {"profile": user_service.profile_to_dict(target, following)}


@router.post("/{username}/follow", response_model=ProfileEnvelope)
async def follow_user(
    username: str,
    me: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    target = await user_service.get_user_by_username(db, username)
    await follow_service.follow(db, me, target)
    return {"profile": user_service.profile_to_dict(target, True)}


@router.delete("/{username}/follow", response_model=ProfileEnvelope)
async def unfollow_user(
    username: str,
    me: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    target = await user_service.get_user_by_username(db, username)
    await follow_service.unfollow(db, me, target)
    return {"profile": user_service.profile_to_dict(target, False)}
