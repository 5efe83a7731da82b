from datetime import datetime

from sqlmodel import Field, SQLModel


class FirstTimeLoginToken(SQLModel, table=True):
    __tablename__ = "first_time_login_tokens"

    id: int | None = Field(default=None, primary_key=True)
    token: str = Field(unique=True, index=True)
    user_id: int = Field(foreign_key="users.id", index=True)
    expires_at: datetime = Field(index=True)
    used: bool = Field(default=False)
    created_at: datetime = Field(default_factory=datetime.utcnow)
