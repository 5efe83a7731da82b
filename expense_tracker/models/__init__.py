from expense_tracker.models.token import FirstTimeLoginToken
from expense_tracker.models.user import User, UserRole

__all__ = [
    "FirstTimeLoginToken",
    "User",
    "UserRole",
]
