import logging
import os
from functools import lru_cache
from pathlib import Path

logger = logging.getLogger(__name__)

_DEV_JWT_SECRET = "change-this-secret-immediately"


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        jwt_secret: str,
        jwt_expires_in: int,
        default_currency: str,
        log_level: str,
        cors_origins: list[str],
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.jwt_secret = jwt_secret
        self.jwt_expires_in = jwt_expires_in
        self.default_currency = default_currency
        self.log_level = log_level
        self.cors_origins = cors_origins


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("EXPENSES_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "expenses.db"
    database_url = os.getenv("EXPENSES_DATABASE_URL", f"sqlite:///{default_db}")
    timezone = os.getenv("EXPENSES_TIMEZONE", "Asia/Ho_Chi_Minh")
    jwt_secret = os.getenv("EXPENSES_JWT_SECRET")
    if not jwt_secret:
        logger.warning(
            "EXPENSES_JWT_SECRET is not set; using an insecure development secret"
        )
        jwt_secret = _DEV_JWT_SECRET
    jwt_expires_in = int(os.getenv("EXPENSES_JWT_EXPIRES_IN", "86400"))
    default_currency = os.getenv("EXPENSES_DEFAULT_CURRENCY", "VND")
    log_level = os.getenv("EXPENSES_LOG_LEVEL", "INFO").upper()
    cors_origins = [
        origin.strip()
        for origin in os.getenv("EXPENSES_CORS_ORIGINS", "*").split(",")
        if origin.strip()
    ]
    return Settings(
        database_url=database_url,
        timezone=timezone,
        jwt_secret=jwt_secret,
        jwt_expires_in=jwt_expires_in,
        default_currency=default_currency,
        log_level=log_level,
        cors_origins=cors_origins,
    )
