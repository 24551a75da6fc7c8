import logging

from pydantic_settings import BaseSettings
from pydantic import ConfigDict
from typing import Optional

class Settings(BaseSettings):
    # Environment
    ENV: str = "development"
    CONFIG_STRICT: bool = False

    # Database
    DATABASE_URL: Optional[str] = "sqlite:///./prosite.db"

    # Auth tokens
    JWT_SECRET: Optional[str] = None
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRES_DAYS: int = 7
    AUTH_ALLOW_USER_ID_HEADER: bool = False  # dev/test only

    # Admin access
    ADMIN_KEY: Optional[str] = None

    # Billing
    DEFAULT_CURRENCY: str = "INR"
    UPI_PAYEE_ID: Optional[str] = None
    UPI_PAYEE_NAME: str = "ProSite"
    ORDER_TTL_MINUTES: int = 30
    PLAN_DURATION_DAYS: int = 30
    LEGACY_UPGRADE_ENABLED: bool = True

    # Invoice numbering
    INVOICE_PREFIX: str = "INV"
    INVOICE_NUMBER_WIDTH: int = 3
    INVOICE_ALLOCATION_ATTEMPTS: int = 5

    # Notifications
    NOTIFICATIONS_ENABLED: bool = True
    NOTIFICATION_POLL_SECONDS: float = 5.0
    NOTIFICATION_MAX_ATTEMPTS: int = 5
    NOTIFICATION_BATCH_SIZE: int = 20
    RESEND_API_KEY: Optional[str] = None
    EMAIL_FROM: str = "ProSite <billing@prosite.local>"

    # App URLs
    ALLOWED_ORIGINS: str = "http://localhost:5173"  # comma-separated

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @property
    def allowed_origins(self) -> list[str]:
        return [o.strip() for o in self.ALLOWED_ORIGINS.split(",") if o.strip()]


settings = Settings()


def validate_config(strict: Optional[bool] = None, settings_obj: Optional[Settings] = None, logger: Optional[logging.Logger] = None) -> bool:
    """Validate required configuration.

    In strict mode raise RuntimeError; otherwise emit warnings only.
    Secrets are not logged, only missing keys.
    """
    cfg = settings_obj or settings
    log = logger or logging.getLogger("prosite")
    strict_mode = strict if strict is not None else getattr(cfg, "CONFIG_STRICT", False)

    required_keys = [
        "DATABASE_URL",
        "JWT_SECRET",
        "UPI_PAYEE_ID",
        "RESEND_API_KEY",
    ]

    missing = [key for key in required_keys if not getattr(cfg, key, None)]
    if missing:
        message = f"Missing required configuration: {', '.join(missing)}"
        if strict_mode:
            raise RuntimeError(message)
        log.warning(message)

    return True
