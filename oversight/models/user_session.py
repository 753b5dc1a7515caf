from typing import Optional
from enum import Enum
from datetime import datetime
from sqlalchemy import DateTime
from sqlmodel import Field, Relationship, SQLModel
from oversight.core.clock import utcnow

class SessionStatus(str, Enum):
    TERMINATED = "Terminated"
    EXPIRED = "Expired"
    IDLE = "Idle"
    ACTIVE = "Active"

class UserSession(SQLModel, table=True):
    __tablename__ = "user_session"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    session_token: str = Field(unique=True, index=True)
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    is_active: bool = Field(default=True, index=True)
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime)
    last_activity: datetime = Field(default_factory=utcnow, sa_type=DateTime)
    expires_at: datetime = Field(sa_type=DateTime)

    user: Optional["User"] = Relationship()

class SessionView(SQLModel):
    """
    A session row joined with its owner and the status derived at fetch time.
    """
    id: int
    user_id: int
    user_email: Optional[str] = None
    user_name: Optional[str] = None
    user_role: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    is_active: bool
    created_at: datetime
    last_activity: datetime
    expires_at: datetime
    status: SessionStatus

class SessionStats(SQLModel):
    total: int
    active: int
    admin_active: int
    student_active: int

class TerminateResult(SQLModel):
    terminated_count: int
