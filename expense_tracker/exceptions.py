class ExpenseTrackerError(Exception):
    """Base class for errors raised by the service layer."""


class UserNotFoundError(ExpenseTrackerError):
    def __init__(self, user_id: int):
        self.user_id = user_id
        super().__init__(f"User not found with id: {user_id}")


class UsernameTakenError(ExpenseTrackerError):
    def __init__(self, username: str):
        self.username = username
        super().__init__(f"Username already exists: {username}")


class DefaultAdminProtectedError(ExpenseTrackerError):
    pass


class TokenNotFoundError(ExpenseTrackerError):
    def __init__(self):
        # The token value is a credential and stays out of the message.
        super().__init__("First-time login token not found")


class TokenAlreadyUsedError(ExpenseTrackerError):
    def __init__(self):
        super().__init__("First-time login token already used")


class InvalidTokenError(ExpenseTrackerError):
    """A first-time login token that is unknown, used or expired."""

    def __init__(self, reason):
        self.reason = reason
        super().__init__("Invalid or expired token")


class PasswordPolicyError(ExpenseTrackerError):
    def __init__(self, errors: list[str]):
        self.errors = errors
        super().__init__("Invalid password: " + ", ".join(errors))


class UserStateError(ExpenseTrackerError):
    """A requested change would break the user's activation invariants."""
