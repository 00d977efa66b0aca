# pharmastock/core/config.py
import os
from typing import List
from pydantic import BaseModel
from dotenv import load_dotenv
from urllib.parse import quote_plus

load_dotenv()


def _split_csv(value: str) -> List[str]:
    return [v.strip() for v in (value or "").split(",") if v.strip()]


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in {"1", "true", "yes"}


class Settings(BaseModel):
    PROJECT_NAME: str = os.getenv("PROJECT_NAME", "Pharmacy Stock & Sales")
    API_V1_STR: str = os.getenv("API_V1_STR", "/api")

    # CORS (env takes priority)
    BACKEND_CORS_ORIGINS: List[str] = _split_csv(
        os.getenv(
            "CORS_ORIGINS",
            "http://localhost:5173,http://127.0.0.1:5173",
        ))

    # ---------- Database ----------
    MYSQL_HOST: str = os.getenv("MYSQL_HOST", "localhost")
    MYSQL_PORT: int = int(os.getenv("MYSQL_PORT", "3306"))
    MYSQL_USER: str = os.getenv("MYSQL_USER", "pharmastock")
    MYSQL_PASSWORD: str = os.getenv("MYSQL_PASSWORD", "")
    MYSQL_DB: str = os.getenv("MYSQL_DB", "pharmastock")
    DB_DRIVER: str = os.getenv("DB_DRIVER", "pymysql")

    # DATABASE_URL wins (sqlite for local dev / tests)
    SQLALCHEMY_DATABASE_URI: str = os.getenv("DATABASE_URL") or (
        f"mysql+{DB_DRIVER}://{quote_plus(MYSQL_USER)}:{quote_plus(MYSQL_PASSWORD)}"
        f"@{MYSQL_HOST}:{MYSQL_PORT}/{MYSQL_DB}?charset=utf8mb4")

    # ---------- Security ----------
    JWT_SECRET: str = os.getenv("JWT_SECRET", "change-this")
    JWT_ALG: str = os.getenv("JWT_ALG", "HS256")

    # ---------- Stock alerts ----------
    # general_configs rows override these at runtime
    DEFAULT_LOW_STOCK_THRESHOLD: int = int(
        os.getenv("DEFAULT_LOW_STOCK_THRESHOLD", "10"))
    DEFAULT_EXPIRY_WARNING_DAYS: int = int(
        os.getenv("DEFAULT_EXPIRY_WARNING_DAYS", "30"))
    EXPIRY_SCAN_ON_STARTUP: bool = _env_bool("EXPIRY_SCAN_ON_STARTUP", "true")
    # midnight (TIMEZONE) scan in the API process
    EXPIRY_SCAN_DAILY: bool = _env_bool("EXPIRY_SCAN_DAILY", "true")

    # ---------- Sales engine ----------
    IDEMPOTENCY_TTL_SECONDS: int = int(
        os.getenv("IDEMPOTENCY_TTL_SECONDS", "3600"))
    # an unfinished claim blocks retries only this long
    IDEMPOTENCY_IN_PROGRESS_TTL_SECONDS: int = int(
        os.getenv("IDEMPOTENCY_IN_PROGRESS_TTL_SECONDS", "120"))
    # requests without an Idempotency-Key are only deduplicated this long
    IDEMPOTENCY_REPLAY_WINDOW_SECONDS: int = int(
        os.getenv("IDEMPOTENCY_REPLAY_WINDOW_SECONDS", "60"))
    LEDGER_MAX_ATTEMPTS: int = int(os.getenv("LEDGER_MAX_ATTEMPTS", "3"))
    LEDGER_RETRY_BACKOFF_MS: int = int(
        os.getenv("LEDGER_RETRY_BACKOFF_MS", "50"))

    TIMEZONE: str = os.getenv("TIMEZONE", "UTC")


settings = Settings()
