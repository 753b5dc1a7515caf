from typing import List
from fastapi import APIRouter, Depends
from sqlmodel.ext.asyncio.session import AsyncSession

from oversight.api import deps
from oversight.models.user import User, UserCreate, UserRead
from oversight.services import user_service

router = APIRouter()

@router.get("/me", response_model=UserRead)
async def read_user_me(
    current_user: User = Depends(deps.get_current_user),
):
    """
    Get current user.
    """
    return current_user

@router.get("/", response_model=List[UserRead])
async def read_users(
    session: AsyncSession = Depends(deps.get_session),
    current_user: User = Depends(deps.get_current_active_admin),
):
    return await user_service.list_users(session)

@router.post("/", response_model=UserRead)
async def create_user(
    *,
    session: AsyncSession = Depends(deps.get_session),
    user_in: UserCreate,
    current_user: User = Depends(deps.get_current_active_superuser),
):
    """
    Create an admin or student account. Accessible only by super admins.
    """
    return await user_service.create_user(session, current_user, user_in)
