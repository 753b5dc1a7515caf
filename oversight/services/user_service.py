import logging
import secrets
from datetime import timedelta
from typing import List, Optional

from sqlmodel import select, col, or_
from sqlmodel.ext.asyncio.session import AsyncSession

from oversight.core.clock import utcnow
from oversight.core.config import settings
from oversight.core.errors import ConflictError
from oversight.core.security import get_password_hash
from oversight.models.user import User, UserCreate
from oversight.models.user_session import SessionStatus, UserSession
from oversight.services.audit_service import AuditLogWriter
from oversight.services.status_engine import session_status
from oversight.services.store import SqlModelStore

logger = logging.getLogger(__name__)


async def list_users(session: AsyncSession) -> List[User]:
    result = await session.exec(select(User).order_by(col(User.created_at).desc()))
    return list(result.all())


async def create_user(session: AsyncSession, actor: User, user_in: UserCreate) -> User:
    """
    Create an admin or student account. Duplicate email or username raises ConflictError.
    """
    actor_id = actor.id
    email = user_in.email.lower()
    result = await session.exec(
        select(User).where(or_(User.email == email, User.username == user_in.username))
    )
    existing = result.first()
    if existing:
        field = "email" if existing.email == email else "username"
        raise ConflictError(f"A user with this {field} already exists")

    store = SqlModelStore(session, User)
    audit = AuditLogWriter(session)
    user = User(
        email=email,
        username=user_in.username,
        full_name=user_in.full_name,
        hashed_password=get_password_hash(user_in.password),
        role=user_in.role,
    )
    try:
        await store.insert(user)
        await audit.record(
            actor_id,
            "create",
            "user",
            user.id,
            {"username": user.username, "email": user.email, "role": user_in.role.value},
        )
        await store.commit()
    except Exception:
        await store.rollback()
        raise

    logger.info("User %s (%s) created by admin %s", user.id, user_in.role.value, actor_id)
    return user


async def open_session(
    session: AsyncSession,
    user: User,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> UserSession:
    now = utcnow()
    user_session = UserSession(
        user_id=user.id,
        session_token=secrets.token_urlsafe(32),
        ip_address=ip_address,
        user_agent=user_agent,
        created_at=now,
        last_activity=now,
        expires_at=now + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
    )
    user.last_login = now
    session.add(user)
    session.add(user_session)
    await session.commit()
    await session.refresh(user_session)
    return user_session


async def touch_session(session: AsyncSession, session_id: int) -> Optional[UserSession]:
    """
    Record activity on a live session. Returns None for terminated or expired sessions.
    """
    user_session = await session.get(UserSession, session_id)
    if user_session is None:
        return None

    now = utcnow()
    idle_after = timedelta(minutes=settings.IDLE_THRESHOLD_MINUTES)
    if session_status(user_session, now, idle_after) in (SessionStatus.TERMINATED, SessionStatus.EXPIRED):
        return None

    # last_activity never moves backwards
    if now > user_session.last_activity:
        user_session.last_activity = now
        session.add(user_session)
        await session.commit()
    return user_session
