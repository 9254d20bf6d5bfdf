import os
import logging
from pydantic import BaseModel, Field
from typing import List, Literal, Optional
from dotenv import load_dotenv

load_dotenv()


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


class RateLimitSettings(BaseModel):
    enabled: bool = Field(default_factory=lambda: _env_flag("RATE_LIMIT_ENABLED", "true"))
    leave_creation: str = Field(default_factory=lambda: os.getenv("RATE_LIMIT_LEAVE_CREATION", "10/10 seconds"))
    leave_approval: str = Field(default_factory=lambda: os.getenv("RATE_LIMIT_LEAVE_APPROVAL", "30/minute"))
    read_operations: str = Field(default_factory=lambda: os.getenv("RATE_LIMIT_READ", "100/minute"))
    document_upload: str = Field(default_factory=lambda: os.getenv("RATE_LIMIT_DOCUMENT_UPLOAD", "50/hour"))
    admin_operations: str = Field(default_factory=lambda: os.getenv("RATE_LIMIT_ADMIN", "200/minute"))


class Config(BaseModel):
    app_name: str = "Leave Management API"
    environment: str = Field(default_factory=lambda: os.getenv("APP_ENV", "development"))
    api_prefix: str = "/api"
    version: str = "1.0.0"
    request_id_header: str = "X-Request-ID"
    log_level: str = Field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))

    # Database
    database_url: str = Field(default_factory=lambda: os.getenv("DATABASE_URL", "sqlite:///./leave_management.db"))

    # Auth
    secret_key: str = Field(default_factory=lambda: os.getenv("SECRET_KEY", "dev-only-insecure-key-DO-NOT-USE-IN-PROD"))
    access_token_expire_minutes: int = Field(default_factory=lambda: int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", str(60 * 24))))
    bcrypt_rounds: int = Field(default_factory=lambda: int(os.getenv("BCRYPT_ROUNDS", "12")))

    # CORS, comma-separated origins loaded from env
    cors_origins: List[str] = Field(
        default_factory=lambda: [
            o.strip()
            for o in os.getenv(
                "CORS_ORIGINS",
                "http://localhost:3000,http://127.0.0.1:3000",
            ).split(",")
            if o.strip()
        ]
    )

    # Blob storage (local filesystem backend)
    storage_root: str = Field(default_factory=lambda: os.getenv("STORAGE_ROOT", "./storage"))
    storage_upload_attempts: int = Field(default_factory=lambda: int(os.getenv("STORAGE_UPLOAD_ATTEMPTS", "3")))

    # Reporting snapshot: "background" refreshes after writes, "manual" only on demand
    stats_refresh_mode: Literal["background", "manual"] = Field(
        default_factory=lambda: os.getenv("STATS_REFRESH_MODE", "background").strip().lower(),
        validate_default=True,
    )
    stats_refresh_debounce_seconds: float = Field(default_factory=lambda: float(os.getenv("STATS_REFRESH_DEBOUNCE_SECONDS", "2.0")))

    # Leave rules
    enforce_leave_balance: bool = Field(default_factory=lambda: _env_flag("ENFORCE_LEAVE_BALANCE", "false"))
    document_expiry_window_days: int = Field(default_factory=lambda: int(os.getenv("DOCUMENT_EXPIRY_WINDOW_DAYS", "30")))

    rate_limits: RateLimitSettings = Field(default_factory=RateLimitSettings)

    # Bootstrap data
    seed_leave_types: bool = Field(default_factory=lambda: _env_flag("SEED_LEAVE_TYPES", "true"))
    bootstrap_admin_email: Optional[str] = Field(default_factory=lambda: os.getenv("BOOTSTRAP_ADMIN_EMAIL"))
    bootstrap_admin_password: Optional[str] = Field(default_factory=lambda: os.getenv("BOOTSTRAP_ADMIN_PASSWORD"))

    @property
    def is_development(self) -> bool:
        return self.environment == "development"


settings = Config()

# --- Startup Validation for Production ---
_logger = logging.getLogger(__name__)
if settings.environment not in ("development", "testing"):
    if "dev-only" in settings.secret_key:
        raise RuntimeError(
            "FATAL: SECRET_KEY must be set for non-development environments. "
            "Set it as an environment variable."
        )
elif "dev-only" in settings.secret_key:
    _logger.warning("Using insecure default SECRET_KEY, only acceptable in development.")
