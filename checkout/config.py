import os
from dataclasses import dataclass
from pathlib import Path
from dotenv import load_dotenv

# Force-load .env (Windows-safe, reload-safe)
BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(dotenv_path=BASE_DIR / ".env")

DEFAULT_GATEWAY_SCRIPT_URL = "https://checkout.razorpay.com/v1/checkout.js"


@dataclass
class Settings:
    backend_url: str = "http://localhost:5000/api"
    gateway_script_url: str = DEFAULT_GATEWAY_SCRIPT_URL
    session_secret: str = "change-me"
    session_ttl_seconds: int = 1800
    database_url: str = "sqlite:///./checkout.db"
    request_timeout: float = 15.0
    merchant_name: str = "SatyamPay"
    theme_color: str = "#4f46e5"
    currency: str = "INR"
    urgent_seconds: int = 60
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            backend_url=os.getenv("CHECKOUT_BACKEND_URL", cls.backend_url).rstrip("/"),
            gateway_script_url=os.getenv("GATEWAY_SCRIPT_URL", cls.gateway_script_url),
            session_secret=os.getenv("CHECKOUT_SESSION_SECRET", cls.session_secret),
            session_ttl_seconds=int(os.getenv("CHECKOUT_SESSION_TTL", cls.session_ttl_seconds)),
            database_url=os.getenv("DATABASE_URL", cls.database_url),
            request_timeout=float(os.getenv("CHECKOUT_REQUEST_TIMEOUT", cls.request_timeout)),
            merchant_name=os.getenv("CHECKOUT_MERCHANT_NAME", cls.merchant_name),
            theme_color=os.getenv("CHECKOUT_THEME_COLOR", cls.theme_color),
            currency=os.getenv("CHECKOUT_CURRENCY", cls.currency),
            urgent_seconds=int(os.getenv("CHECKOUT_URGENT_SECONDS", cls.urgent_seconds)),
            log_level=os.getenv("LOG_LEVEL", cls.log_level).upper(),
        )


settings = Settings.from_env()
