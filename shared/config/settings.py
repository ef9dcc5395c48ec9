import os
import warnings
from dataclasses import dataclass, field
from functools import lru_cache

from dotenv import load_dotenv

load_dotenv()

_INSECURE_JWT_SECRET = "insecure-default-change-me"


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _default_database_url() -> str:
    db_user = os.getenv("POSTGRES_USER", "postgres")
    db_password = os.getenv("POSTGRES_PASSWORD", "postgres")
    db_host = os.getenv("POSTGRES_HOST", "localhost")  # In Docker, this will be 'postgres'
    db_port = os.getenv("POSTGRES_PORT", "5432")
    db_name = os.getenv("POSTGRES_DB", "shopfront")
    return f"postgresql+asyncpg://{db_user}:{db_password}@{db_host}:{db_port}/{db_name}"


@dataclass(frozen=True)
class Settings:
    database_url: str = field(default_factory=_default_database_url)
    database_echo: bool = False
    debug: bool = False
    log_level: str = "INFO"
    service_name: str = "shopfront"

    jwt_secret_key: str = _INSECURE_JWT_SECRET
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 60

    admin_email: str | None = None
    admin_password: str | None = None

    otlp_endpoint: str | None = None
    metrics_enabled: bool = True

    checkout_rate_limit: str = "10/minute"
    login_rate_limit: str = "5/minute"
    low_stock_threshold: int = 5

    @classmethod
    def from_env(cls) -> "Settings":
        jwt_secret = os.getenv("JWT_SECRET_KEY", "")
        if not jwt_secret:
            warnings.warn(
                "JWT_SECRET_KEY is not set. Using an insecure default. "
                "Set this env var in production!",
                stacklevel=2,
            )
            jwt_secret = _INSECURE_JWT_SECRET

        return cls(
            database_url=os.getenv("DATABASE_URL") or _default_database_url(),
            database_echo=_env_bool("DATABASE_ECHO", False),
            debug=_env_bool("DEBUG", False),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            service_name=os.getenv("SERVICE_NAME", "shopfront"),
            jwt_secret_key=jwt_secret,
            jwt_algorithm=os.getenv("JWT_ALGORITHM", "HS256"),
            access_token_expire_minutes=int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "60")),
            admin_email=os.getenv("ADMIN_EMAIL") or None,
            admin_password=os.getenv("ADMIN_PASSWORD") or None,
            otlp_endpoint=os.getenv("OTLP_ENDPOINT") or None,
            metrics_enabled=_env_bool("METRICS_ENABLED", True),
            checkout_rate_limit=os.getenv("CHECKOUT_RATE_LIMIT", "10/minute"),
            login_rate_limit=os.getenv("LOGIN_RATE_LIMIT", "5/minute"),
            low_stock_threshold=int(os.getenv("LOW_STOCK_THRESHOLD", "5")),
        )


@lru_cache
def get_settings() -> Settings:
    return Settings.from_env()
