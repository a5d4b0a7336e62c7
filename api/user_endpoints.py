"""
User Endpoints.

Endpoints Provided:
- `GET /api/users/search`: Find users by name or username.
- `GET /api/users/{user_id}`: Public profile of a user.
- `GET /api/userprofile`, `PUT /api/userprofile`: The caller's own profile.
- `GET /api/checkusername`: Whether a username is free.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from core.auth import get_current_user_id, get_optional_user_id
from core.database import get_session
from services.user_service import UserService

from .dependencies import get_user_service
from .schemas import (
    ProfileResponse,
    ProfileUpdateRequest,
    SearchResponse,
    UsernameAvailability,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Users"])


@router.get("/users/search", response_model=SearchResponse)
async def search_users(
    q: str = Query(""),
    viewer_id: Optional[str] = Depends(get_optional_user_id),
    session: AsyncSession = Depends(get_session),
    user_service: UserService = Depends(get_user_service),
):
    return {"users": await user_service.search_users(session, q, viewer_id)}


@router.get("/users/{user_id}", response_model=ProfileResponse)
async def get_user(
    user_id: str,
    session: AsyncSession = Depends(get_session),
    user_service: UserService = Depends(get_user_service),
):
    user = await user_service.get_user(session, user_id)
    profile = user_service.profile_dict(user)
    # Email is only shown to its owner
    profile["email"] = None
    return profile


@router.get("/userprofile", response_model=ProfileResponse)
async def get_own_profile(
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
    user_service: UserService = Depends(get_user_service),
):
    return await user_service.get_profile(session, user_id)


@router.put("/userprofile", response_model=ProfileResponse)
async def update_own_profile(
    request: ProfileUpdateRequest,
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
    user_service: UserService = Depends(get_user_service),
):
    return await user_service.update_profile(
        session, user_id, **request.model_dump(exclude_none=True)
    )


@router.get("/checkusername", response_model=UsernameAvailability)
async def check_username(
    username: Optional[str] = Query(None),
    user_id: Optional[str] = Depends(get_optional_user_id),
    session: AsyncSession = Depends(get_session),
    user_service: UserService = Depends(get_user_service),
):
    available = await user_service.check_username(session, username, user_id)
    return {"username": username.strip(), "available": available}
