import os
from dotenv import load_dotenv

# .env 파일 로드
load_dotenv()


def _int_env(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return int(value)


MONGODB_URL = os.getenv("MONGODB_URL", "mongodb://localhost:27017")
DB_NAME = os.getenv("DB_NAME", "signage_db")
MONGODB_TIMEOUT_MS = _int_env("MONGODB_TIMEOUT_MS", 3000)

# 토큰 TTL: 사이니지는 10분마다 QR을 새로 받으므로 그보다 길게
TOKEN_TTL_SECONDS = _int_env("TOKEN_TTL_SECONDS", 15 * 60)
TOKEN_STORE_CAPACITY = _int_env("TOKEN_STORE_CAPACITY", 10000)

PUBLIC_BASE_URL = os.getenv("PUBLIC_BASE_URL", "").rstrip("/")
BASE_PATH = os.getenv("BASE_PATH", "").rstrip("/")

CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

SUPERADMIN_EMAIL = os.getenv("SUPERADMIN_EMAIL", "").strip()
SUPERADMIN_PASSWORD = os.getenv("SUPERADMIN_PASSWORD", "")
ADMIN_SESSION_TTL_SECONDS = _int_env("ADMIN_SESSION_TTL_SECONDS", 60 * 60 * 24 * 7)
SUPERADMIN_SESSION_TTL_SECONDS = _int_env("SUPERADMIN_SESSION_TTL_SECONDS", 30 * 60)
ADMIN_COOKIE_KEY = "signage_admin_session"

STATIC_ROOT = os.getenv("STATIC_ROOT", "static")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
