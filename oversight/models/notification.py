from typing import List, Literal, Optional, Union
from enum import Enum
from datetime import datetime
from pydantic import BaseModel, Field as PydanticField
from typing_extensions import Annotated
from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel, Column, String
from oversight.core.clock import utcnow
from oversight.models.user import UserRole

class NotificationType(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    SUCCESS = "success"

class Priority(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

# --- Target variant: exactly one arm is populated ---

class SystemWideTarget(BaseModel):
    kind: Literal["system_wide"] = "system_wide"

class RoleTarget(BaseModel):
    kind: Literal["role"] = "role"
    role: UserRole

class UserTarget(BaseModel):
    kind: Literal["user"] = "user"
    user_id: int

NotificationTarget = Annotated[
    Union[SystemWideTarget, RoleTarget, UserTarget],
    PydanticField(discriminator="kind"),
]

class SystemNotification(SQLModel, table=True):
    __tablename__ = "system_notification"

    id: Optional[int] = Field(default=None, primary_key=True)
    title: str
    message: str
    notification_type: str = Field(default=NotificationType.INFO.value)
    is_read: bool = Field(default=False)
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime, index=True)
    expires_at: Optional[datetime] = Field(default=None, sa_type=DateTime)
    created_by: Optional[int] = Field(default=None, foreign_key="user.id")

    # Storage for the target variant; written only through apply_target()
    is_system_wide: bool = Field(default=False)
    target_role: Optional[str] = None
    target_user_id: Optional[int] = Field(default=None, foreign_key="user.id")

    @property
    def target(self) -> Union[SystemWideTarget, RoleTarget, UserTarget]:
        if self.target_user_id is not None:
            return UserTarget(user_id=self.target_user_id)
        if self.target_role is not None:
            return RoleTarget(role=UserRole(self.target_role))
        return SystemWideTarget()

    def apply_target(self, target: Union[SystemWideTarget, RoleTarget, UserTarget]) -> None:
        self.is_system_wide = isinstance(target, SystemWideTarget)
        self.target_role = target.role.value if isinstance(target, RoleTarget) else None
        self.target_user_id = target.user_id if isinstance(target, UserTarget) else None

class NotificationCreate(BaseModel):
    title: str = PydanticField(min_length=1, max_length=200)
    message: str = PydanticField(min_length=1)
    notification_type: NotificationType = NotificationType.INFO
    target: NotificationTarget = PydanticField(default_factory=SystemWideTarget)
    expires_at: Optional[datetime] = None

class EnrichedNotification(BaseModel):
    """
    A notification as the triage views see it: stored fields plus the
    derived priority, component and action items. Never persisted.
    """
    id: int
    title: str
    message: str
    notification_type: str
    is_read: bool
    created_at: datetime
    expires_at: Optional[datetime] = None
    created_by: Optional[int] = None
    target: NotificationTarget
    priority: Priority
    component: Optional[str] = None
    action_items: List[str] = []

    @property
    def is_inquiry(self) -> bool:
        return self.title.startswith("New Inquiry:")

class NotificationIds(BaseModel):
    ids: List[int] = PydanticField(min_length=1)

class BatchResult(BaseModel):
    action: str
    count: int
    ids: List[int]
