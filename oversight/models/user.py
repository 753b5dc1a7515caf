from typing import Optional
from enum import Enum
from datetime import datetime
from pydantic import EmailStr
from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel, Column, String
from oversight.core.clock import utcnow

class UserRole(str, Enum):
    SUPER_ADMIN = "super_admin"
    ADMIN = "admin"
    STUDENT = "student"

class UserBase(SQLModel):
    email: str = Field(unique=True, index=True)
    username: str = Field(unique=True, index=True)
    full_name: Optional[str] = Field(default=None)
    is_active: bool = Field(default=True)
    role: UserRole = Field(default=UserRole.STUDENT, sa_column=Column(String, nullable=False))

class User(UserBase, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    hashed_password: str
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime)
    last_login: Optional[datetime] = Field(default=None, sa_type=DateTime)

    @property
    def is_admin(self) -> bool:
        return self.role in (UserRole.ADMIN, UserRole.SUPER_ADMIN)

class UserCreate(SQLModel):
    email: EmailStr
    username: str = Field(min_length=3, max_length=50)
    full_name: Optional[str] = None
    password: str = Field(min_length=8)
    role: UserRole = UserRole.STUDENT

class UserRead(UserBase):
    id: int
    role: UserRole
    created_at: datetime
    last_login: Optional[datetime] = None
