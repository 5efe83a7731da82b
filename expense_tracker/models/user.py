from datetime import datetime
from enum import Enum

from sqlalchemy import Index, text
from sqlmodel import Field, SQLModel


class UserRole(str, Enum):
    USER = "USER"
    ADMIN = "ADMIN"


class User(SQLModel, table=True):
    __tablename__ = "users"
    __table_args__ = (
        # At most one row may carry the default-admin flag.
        Index(
            "uq_users_default_admin",
            "is_default_admin",
            unique=True,
            sqlite_where=text("is_default_admin = 1"),
        ),
    )

    id: int | None = Field(default=None, primary_key=True)
    username: str = Field(unique=True, index=True)
    email: str | None = Field(default=None, index=True)
    password_hash: str | None = Field(default=None)  # None until first password set
    role: UserRole = Field(default=UserRole.USER)
    is_active: bool = Field(default=False)
    password_set: bool = Field(default=False)
    is_default_admin: bool = Field(default=False)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
