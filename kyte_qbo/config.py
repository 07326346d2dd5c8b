import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./kyte_qbo.db")

# Security - used to derive the Fernet key that protects stored QuickBooks tokens
SECRET_KEY = os.getenv("SECRET_KEY")
if not SECRET_KEY:
    import warnings

    warnings.warn(
        "SECRET_KEY not set! Using insecure default - DO NOT USE IN PRODUCTION", RuntimeWarning, stacklevel=2
    )
    SECRET_KEY = "INSECURE-DEV-KEY-CHANGE-IN-PRODUCTION"  # noqa: S105 - Dev fallback only

# Frontend base URL (CORS default)
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:5173")
ALLOWED_ORIGINS = os.getenv("ALLOWED_ORIGINS", f"{FRONTEND_URL},http://localhost:3000").split(",")

# QuickBooks Online API
QUICKBOOKS_ENVIRONMENT = os.getenv("QUICKBOOKS_ENVIRONMENT", "sandbox")  # sandbox or production
QBO_MINOR_VERSION = os.getenv("QBO_MINOR_VERSION", "75")
QBO_DEFAULT_TAX_CODE = os.getenv("QBO_DEFAULT_TAX_CODE", "4")

# Webhook verifier token from the Intuit developer dashboard
QBO_WEBHOOK_VERIFIER_TOKEN = os.getenv("QBO_WEBHOOK_VERIFIER_TOKEN")

# Outbound call policy
QBO_MAX_ATTEMPTS = int(os.getenv("QBO_MAX_ATTEMPTS", "4"))
QBO_BACKOFF_BASE_SECONDS = float(os.getenv("QBO_BACKOFF_BASE_SECONDS", "0.5"))
QBO_BACKOFF_MAX_SECONDS = float(os.getenv("QBO_BACKOFF_MAX_SECONDS", "8"))
QBO_HTTP_TIMEOUT_SECONDS = float(os.getenv("QBO_HTTP_TIMEOUT_SECONDS", "30"))

# Matching
NAME_MATCH_THRESHOLD = float(os.getenv("NAME_MATCH_THRESHOLD", "0.8"))

# Caller deadlines (seconds)
CONVERSION_DEADLINE_SECONDS = float(os.getenv("CONVERSION_DEADLINE_SECONDS", "60"))
WEBHOOK_DEADLINE_SECONDS = float(os.getenv("WEBHOOK_DEADLINE_SECONDS", "25"))

# Redis (rate limiting + ARQ). Unset means in-memory only.
REDIS_URL = os.getenv("REDIS_URL")

# Inbound webhook rate limit (per client IP)
WEBHOOK_RATE_LIMIT = int(os.getenv("WEBHOOK_RATE_LIMIT", "120"))
WEBHOOK_RATE_WINDOW_SECONDS = int(os.getenv("WEBHOOK_RATE_WINDOW_SECONDS", "60"))
