import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv

# Load .env before anything reads the environment
load_dotenv()

logger = logging.getLogger(__name__)

DEV_PROMO_CODE_SECRET = "dev-secret-change-in-production"


@dataclass(frozen=True)
class Settings:
    database_url: str
    environment: str = "development"
    promo_code_secret: str = ""
    log_level: str = "INFO"
    rate_limit_max_attempts: int = 5
    rate_limit_window_minutes: int = 15

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


def _getenv(name: str, default: Optional[str] = None) -> str:
    val = os.getenv(name, default)
    if val is None:
        return ""
    return val.strip()


def _getint(name: str, default: int) -> int:
    raw = _getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be an integer, got {raw!r}")


def load_settings() -> Settings:
    return Settings(
        database_url=_getenv("DATABASE_URL", "sqlite:///./promo_engine.db"),
        environment=_getenv("APP_ENV", "development").lower(),
        promo_code_secret=_getenv("PROMO_CODE_SECRET"),
        log_level=_getenv("LOG_LEVEL", "INFO").upper(),
        rate_limit_max_attempts=_getint("RATE_LIMIT_MAX_ATTEMPTS", 5),
        rate_limit_window_minutes=_getint("RATE_LIMIT_WINDOW_MINUTES", 15),
    )


settings = load_settings()


def resolve_integrity_secret(cfg: Settings) -> str:
    """Return the secret used to sign promotion codes.

    A missing secret is fatal in production. Anywhere else the engine falls
    back to a well-known development secret and says so loudly, since codes
    signed with it are trivially forgeable.
    """
    if cfg.promo_code_secret:
        return cfg.promo_code_secret
    if cfg.is_production:
        raise RuntimeError("PROMO_CODE_SECRET is not set. It is required when APP_ENV=production")
    logger.warning("PROMO_CODE_SECRET not configured. Using the development default secret.")
    return DEV_PROMO_CODE_SECRET


@lru_cache(maxsize=1)
def get_integrity_secret() -> str:
    return resolve_integrity_secret(settings)
