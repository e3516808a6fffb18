import os
import warnings
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "mongodb://localhost:27017")
DATABASE_NAME = os.getenv("DATABASE_NAME", "hivehelp")

# Tokens
JWT_SECRET = os.getenv("JWT_SECRET")
if not JWT_SECRET:
    warnings.warn("JWT_SECRET not set! Using insecure default - DO NOT USE IN PRODUCTION", RuntimeWarning, stacklevel=2)
    JWT_SECRET = "INSECURE-DEV-SECRET-CHANGE-ME"  # noqa: S105 - Dev fallback only
JWT_ALG = "HS256"
TOKEN_EXPIRE_MIN = int(os.getenv("TOKEN_EXPIRE_MIN", "60"))
REFRESH_TOKEN_EXPIRE_MIN = int(os.getenv("REFRESH_TOKEN_EXPIRE_MIN", str(60 * 24 * 7)))
BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", "12"))

# Login throttling, per client IP
LOGIN_RATE_LIMIT_MAX = int(os.getenv("LOGIN_RATE_LIMIT_MAX", "20"))
LOGIN_RATE_LIMIT_WINDOW_SEC = int(os.getenv("LOGIN_RATE_LIMIT_WINDOW_SEC", str(60 * 15)))

# Photos and product images
UPLOAD_DIR = os.getenv("UPLOAD_DIR", "uploads")

ALLOWED_ORIGINS = [o.strip() for o in os.getenv("ALLOWED_ORIGINS", "*").split(",") if o.strip()]

# Demo data bootstrap, off unless explicitly enabled
ALLOW_SEED = os.getenv("ALLOW_SEED", "false").lower() == "true"
SEED_ADMIN_EMAIL = os.getenv("SEED_ADMIN_EMAIL", "admin@hivehelp.io")
SEED_ADMIN_PASSWORD = os.getenv("SEED_ADMIN_PASSWORD", "Admin@123")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
PORT = int(os.getenv("PORT", "8000"))
