from datetime import datetime

from pydantic import BaseModel, ConfigDict

from expense_tracker.models.user import UserRole


class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    username: str
    email: str | None
    role: UserRole
    is_active: bool
    password_set: bool
    is_default_admin: bool
    created_at: datetime


class MessageResponse(BaseModel):
    message: str


def password_error_detail(errors: list[str]) -> dict:
    return {"message": "Invalid password", "errors": errors}
