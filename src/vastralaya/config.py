"""Runtime configuration for vastralaya."""

import os
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path

from .models import RetailerPrincipal

# Local data directory within the vastralaya project
# Can be overridden via VASTRALAYA_DATA_DIR environment variable
_default_data_dir = Path(__file__).parent.parent.parent / "data"

DEFAULT_CORS_ORIGINS = [
    "http://localhost:5173",
    "http://localhost:3000",
    "http://127.0.0.1:5173",
    "http://127.0.0.1:3000",
]

RETAILER_ID = "retailer:fixed"

_TRUTHY = {"1", "true", "yes", "on"}


def _env_flag(name: str, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in _TRUTHY


def _env_list(name: str, default: list[str]) -> list[str]:
    value = os.environ.get(name)
    if not value:
        return list(default)
    return [item.strip() for item in value.split(",") if item.strip()]


@dataclass
class Settings:
    """Service settings. Every field can be passed directly (tests do)."""

    data_dir: Path = _default_data_dir
    retailer_email: str = "retailer@vastralaya.in"
    retailer_initial_password: str = "change-me"
    shipping_fee: float = 100.0
    merchant_vpa: str = "vastralaya@phonepe"
    merchant_name: str = "Vastralaya"
    currency: str = "INR"
    enforce_status_transitions: bool = False
    payment_webhook_secret: str | None = None
    supabase_url: str | None = None
    supabase_service_key: str | None = None
    cors_origins: list[str] = field(default_factory=lambda: list(DEFAULT_CORS_ORIGINS))
    session_ttl_hours: float = 24.0
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from VASTRALAYA_* (and SUPABASE_*) environment variables."""
        return cls(
            data_dir=Path(os.environ.get("VASTRALAYA_DATA_DIR", _default_data_dir)),
            retailer_email=os.environ.get("VASTRALAYA_RETAILER_EMAIL", cls.retailer_email),
            retailer_initial_password=os.environ.get(
                "VASTRALAYA_RETAILER_PASSWORD", cls.retailer_initial_password
            ),
            shipping_fee=float(os.environ.get("VASTRALAYA_SHIPPING_FEE", cls.shipping_fee)),
            merchant_vpa=os.environ.get("VASTRALAYA_MERCHANT_VPA", cls.merchant_vpa),
            merchant_name=os.environ.get("VASTRALAYA_MERCHANT_NAME", cls.merchant_name),
            currency=os.environ.get("VASTRALAYA_CURRENCY", cls.currency),
            enforce_status_transitions=_env_flag("VASTRALAYA_ENFORCE_STATUS_TRANSITIONS"),
            payment_webhook_secret=os.environ.get("VASTRALAYA_PAYMENT_WEBHOOK_SECRET") or None,
            supabase_url=os.environ.get("SUPABASE_URL") or None,
            supabase_service_key=os.environ.get("SUPABASE_SERVICE_ROLE_KEY") or None,
            cors_origins=_env_list("VASTRALAYA_CORS_ORIGINS", DEFAULT_CORS_ORIGINS),
            session_ttl_hours=float(
                os.environ.get("VASTRALAYA_SESSION_TTL_HOURS", cls.session_ttl_hours)
            ),
            log_level=os.environ.get("VASTRALAYA_LOG_LEVEL", cls.log_level),
        )

    @property
    def session_ttl(self) -> timedelta:
        """Lifetime of retailer sessions and local customer access tokens."""
        return timedelta(hours=self.session_ttl_hours)

    @property
    def retailer(self) -> RetailerPrincipal:
        """The single retailer principal this deployment serves."""
        return RetailerPrincipal(id=RETAILER_ID, email=self.retailer_email)
