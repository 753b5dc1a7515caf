from typing import Any, Dict, Optional
from datetime import datetime
from sqlalchemy import DateTime
from sqlmodel import Field, Relationship, SQLModel, Column, JSON
from oversight.core.clock import utcnow

class AdminActivityLog(SQLModel, table=True):
    """
    Write-once record of an administrative action. Rows are only ever inserted.
    """
    __tablename__ = "admin_activity_log"

    id: Optional[int] = Field(default=None, primary_key=True)
    action: str = Field(index=True) # "create", "delete", "terminate_all", ...
    target_type: str # "system_notification", "user_sessions", ...
    target_id: Optional[int] = None # Empty for bulk actions
    details: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))
    # Naive UTC, see oversight.core.clock
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime, index=True)

    # Who performed the action
    admin_id: Optional[int] = Field(default=None, foreign_key="user.id")
    admin: Optional["User"] = Relationship()

class AdminActivityLogRead(SQLModel):
    id: int
    action: str
    target_type: str
    target_id: Optional[int] = None
    details: Dict[str, Any]
    created_at: datetime
    admin_id: Optional[int] = None
    admin_name: Optional[str] = None # Computed field
    admin_role: Optional[str] = None # Computed field
