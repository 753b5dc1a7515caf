from datetime import timedelta
from typing import Any
from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlmodel.ext.asyncio.session import AsyncSession
from sqlmodel import select, or_

from oversight.api import deps
from oversight.core import security
from oversight.core.config import settings
from oversight.models.token import Token
from oversight.models.user import User
from oversight.services import user_service

router = APIRouter()

@router.post("/login/access-token", response_model=Token)
async def login_access_token(
    request: Request,
    session: AsyncSession = Depends(deps.get_session),
    form_data: OAuth2PasswordRequestForm = Depends()
) -> Any:
    """
    OAuth2 compatible token login, get an access token for future requests.
    Each login opens a tracked user session.
    """
    # The username field accepts either the email or the username
    login = form_data.username.strip()

    statement = select(User).where(or_(User.email == login.lower(), User.username == login))
    result = await session.exec(statement)
    user = result.first()

    if not user or not security.verify_password(form_data.password, user.hashed_password):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Incorrect username or password"
        )

    if not user.is_active:
        raise HTTPException(status_code=400, detail="Inactive user")

    user_session = await user_service.open_session(
        session,
        user,
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )

    access_token_expires = timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    return {
        "access_token": security.create_access_token(
            user.id, expires_delta=access_token_expires, session_id=user_session.id
        ),
        "token_type": "bearer",
    }
