import os

from dotenv import load_dotenv

# Load .env from the project root
load_dotenv()

_TRUTHY = {"1", "true", "yes", "on"}

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./inventory_auth.db")
ENV = os.getenv("ENV", "dev")
ENV_NORMALIZED = ENV.lower()
IS_DEV = ENV_NORMALIZED in {"dev", "development", "local"}
IS_PROD = ENV_NORMALIZED in {"prod", "production"}
SQL_ECHO = os.getenv("SQL_ECHO", "").strip().lower() in _TRUTHY

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Auth (JWT)
JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256").strip().upper()
if JWT_ALGORITHM not in {"HS256", "HS384", "HS512"}:
    JWT_ALGORITHM = "HS256"

ACCESS_TOKEN_TTL_MINUTES = int(os.getenv("ACCESS_TOKEN_TTL_MINUTES", str(60 * 24)))
REFRESH_TOKEN_TTL_DAYS = int(os.getenv("REFRESH_TOKEN_TTL_DAYS", "7"))
SESSION_RETENTION_DAYS = int(os.getenv("SESSION_RETENTION_DAYS", "7"))

# Passwords
BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", "12"))
MIN_PASSWORD_LENGTH = int(os.getenv("MIN_PASSWORD_LENGTH", "8"))

# Login lockout
MAX_FAILED_LOGIN_ATTEMPTS = int(os.getenv("MAX_FAILED_LOGIN_ATTEMPTS", "5"))
LOGIN_LOCK_MINUTES = int(os.getenv("LOGIN_LOCK_MINUTES", "30"))

# Enterprise users and yard-level grants: "blanket" or "explicit_grants"
ENTERPRISE_YARD_POLICY = os.getenv("ENTERPRISE_YARD_POLICY", "blanket").strip().lower()
if ENTERPRISE_YARD_POLICY not in {"blanket", "explicit_grants"}:
    ENTERPRISE_YARD_POLICY = "blanket"
