import os
from dotenv import load_dotenv

# Carrega o .env da raiz do projeto
load_dotenv()


def _env_flag(name: str, default: str = "") -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./roomservice.db")
ENV = os.getenv("ENV", "dev")
ENV_NORMALIZED = ENV.lower()
IS_DEV = ENV_NORMALIZED in {"dev", "development", "local"}
IS_TEST = ENV_NORMALIZED == "test"
IS_PROD = ENV_NORMALIZED in {"prod", "production"}

# CORS
_cors_env = os.getenv("CORS_ORIGINS", "")
CORS_ORIGINS = [origin.strip() for origin in _cors_env.split(",") if origin.strip() and origin.strip() != "*"]

if not CORS_ORIGINS and IS_DEV:
    CORS_ORIGINS = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

# Sessions (guest + admin)
SESSION_SECRET = os.getenv("SESSION_SECRET", "dev-session-secret" if IS_DEV or IS_TEST else "")
SESSION_MAX_AGE_SECONDS = int(os.getenv("SESSION_MAX_AGE_SECONDS", "604800"))
SESSION_COOKIE_SECURE = _env_flag("SESSION_COOKIE_SECURE", "1" if IS_PROD else "0")

# Payment gateway
PAYMENT_PROVIDER = os.getenv("PAYMENT_PROVIDER", "xendit" if IS_PROD else "mock").strip().lower()
XENDIT_API_URL = os.getenv("XENDIT_API_URL", "https://api.xendit.co").rstrip("/")
XENDIT_SECRET_KEY = os.getenv("XENDIT_SECRET_KEY", "")
XENDIT_WEBHOOK_TOKEN = os.getenv("XENDIT_WEBHOOK_TOKEN", "")
PAYMENT_CURRENCY = os.getenv("PAYMENT_CURRENCY", "IDR").strip().upper()
PAYMENT_DESCRIPTION = os.getenv("PAYMENT_DESCRIPTION", "Room service - food order")
INVOICE_DURATION_SECONDS = int(os.getenv("INVOICE_DURATION_SECONDS", "3600"))
PAYMENT_HTTP_TIMEOUT_SECONDS = float(os.getenv("PAYMENT_HTTP_TIMEOUT_SECONDS", "15"))

_payment_methods_env = os.getenv("PAYMENT_METHODS", "QRIS,VIRTUAL_ACCOUNT,EWALLET")
PAYMENT_METHODS = [method.strip().upper() for method in _payment_methods_env.split(",") if method.strip()]

EXTERNAL_ID_MAX_ATTEMPTS = int(os.getenv("EXTERNAL_ID_MAX_ATTEMPTS", "3"))
