from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "sqlite:///expense_tracker.db"
    secret_key: str = "change-me-in-production-use-32-bytes-or-more"
    access_token_expire_ms: int = 24 * 60 * 60 * 1000
    first_login_token_expire_minutes: int = 15
    frontend_url: str = "http://localhost:5173"
    bcrypt_rounds: int = 12
    token_sweep_interval_seconds: int = 3600
    log_level: str = "INFO"

    class Config:
        env_prefix = "EXPENSE_TRACKER_"

    @field_validator("secret_key")
    @classmethod
    def _secret_key_length(cls, value: str) -> str:
        if len(value.encode()) < 32:
            raise ValueError("secret_key must be at least 32 bytes for HS256")
        return value

    @field_validator("bcrypt_rounds")
    @classmethod
    def _bcrypt_rounds_range(cls, value: int) -> int:
        if not 4 <= value <= 31:
            raise ValueError("bcrypt_rounds must be between 4 and 31")
        return value

    @field_validator("frontend_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")


settings = Settings()
