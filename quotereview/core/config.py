"""
Application configuration with environment variables.
"""
from pydantic_settings import BaseSettings
from pydantic import ConfigDict, Field, field_validator
from typing import Optional, List


class Settings(BaseSettings):
    model_config = ConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    # Application
    APP_NAME: str = "Quotation Review"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    SECRET_KEY: str = "your-secret-key-change-in-production"

    # Database
    POSTGRES_USER: str = "quotereview"
    POSTGRES_PASSWORD: str = "quotereview"
    POSTGRES_HOST: str = "postgres"
    POSTGRES_PORT: str = "5432"
    POSTGRES_DB: str = "quotereview"
    DATABASE_URL: Optional[str] = Field(default=None, validate_default=True)

    # Password hashing
    BCRYPT_ROUNDS: int = 12  # OWASP minimum recommendation

    # Redis
    REDIS_URL: str = "redis://redis:6379/0"

    # JWT Settings
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 7 * 24 * 60  # 7 days

    # Storage
    UPLOAD_DIR: str = "/code/uploads"
    MAX_UPLOAD_SIZE: int = 10 * 1024 * 1024  # 10MB

    # CORS
    CORS_ORIGINS: List[str] = ["http://localhost:5173", "http://localhost:3000"]
    FRONTEND_URL: str = "http://localhost:5173"

    # Email (console transport when EMAIL_HOST is unset)
    EMAIL_HOST: Optional[str] = None
    EMAIL_PORT: int = 587
    EMAIL_SECURE: bool = False
    EMAIL_USER: Optional[str] = None
    EMAIL_PASSWORD: Optional[str] = None
    EMAIL_FROM: str = "noreply@quotationreview.com"
    NOTIFICATIONS_ASYNC: bool = False  # enqueue on RQ instead of sending inline

    # Quotation workflow
    DUE_DATE_OFFSET_DAYS: int = 45
    REVISION_OVERFLOW_MARKER: str = "1"  # REV.Z -> REV.Z1

    # Account tokens
    INVITATION_EXPIRE_DAYS: int = 7
    EMAIL_VERIFICATION_EXPIRE_HOURS: int = 24
    PASSWORD_RESET_EXPIRE_HOURS: int = 1

    # Demo seeding - MUST be false in production
    SEED_DEMO: bool = False

    @field_validator('DATABASE_URL', mode='before')
    @classmethod
    def assemble_db_url(cls, v: Optional[str], info) -> str:
        if isinstance(v, str) and v:
            return v

        data = info.data
        user = data.get("POSTGRES_USER", "quotereview")
        password = data.get("POSTGRES_PASSWORD", "quotereview")
        host = data.get("POSTGRES_HOST", "postgres")
        port = data.get("POSTGRES_PORT", "5432")
        db = data.get("POSTGRES_DB", "quotereview")

        return f"postgresql://{user}:{password}@{host}:{port}/{db}"

    @field_validator('SECRET_KEY')
    @classmethod
    def validate_secret_key(cls, v: str, info) -> str:
        """Reject weak SECRET_KEY in production, warn in development."""
        weak_keys = {
            "your-secret-key-change-in-production",
            "your-secret-key",
            "change-me-in-production",
            "secret",
            "changeme",
        }
        is_weak = v in weak_keys or len(v) < 32
        if is_weak:
            debug = info.data.get("DEBUG", False)
            if not debug:
                raise ValueError(
                    "SECRET_KEY is weak or default. "
                    "Generate a strong key with: openssl rand -hex 32"
                )
            import warnings
            warnings.warn(
                "SECRET_KEY is weak or default! Set a strong key before deploying.",
                UserWarning,
                stacklevel=2,
            )
        return v

    @field_validator('SEED_DEMO')
    @classmethod
    def validate_seed_demo(cls, v: bool, info) -> bool:
        """Prevent demo seeding in production."""
        if v and not info.data.get("DEBUG", False):
            raise ValueError(
                "SEED_DEMO=true is not allowed when DEBUG=false. "
                "Demo seeding creates predictable credentials."
            )
        return v

    @field_validator('POSTGRES_PASSWORD')
    @classmethod
    def validate_postgres_password(cls, v: str, info) -> str:
        """Reject default database password in production."""
        weak = {"quotereview", "postgres", "password", "changeme", ""}
        if v in weak and not info.data.get("DEBUG", False):
            raise ValueError(
                "POSTGRES_PASSWORD is set to a default value. "
                "Set a strong database password for production."
            )
        return v

    @field_validator('REVISION_OVERFLOW_MARKER')
    @classmethod
    def validate_overflow_marker(cls, v: str) -> str:
        if not v:
            raise ValueError("REVISION_OVERFLOW_MARKER must not be empty")
        return v


settings = Settings()
