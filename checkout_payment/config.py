"""Runtime settings, read from the environment."""
import os
from dataclasses import dataclass, field
from pathlib import Path

DEFAULT_COUNTRY = "US"
DEFAULT_PAYMENT_METHOD = "scheme"


def _get_list(name: str, fallback: str = "") -> list[str]:
    raw_value = os.environ.get(name, fallback)
    if not raw_value:
        return []
    return [item.strip() for item in raw_value.split(",") if item.strip()]


@dataclass(frozen=True)
class Settings:
    storefront_url: str = ""
    http_timeout: float = 15.0
    headless: bool = False
    debug_dir: Path = Path.home() / ".config" / "checkout-payment" / "debug"
    default_country: str = DEFAULT_COUNTRY
    default_payment_method: str = DEFAULT_PAYMENT_METHOD
    widget_brands: list[str] = field(default_factory=lambda: ["visa", "mc"])
    # Methods whose tokenized state must carry a fraud-signal fingerprint
    fingerprint_methods: list[str] = field(default_factory=lambda: ["scheme"])
    widget_locale: str = "en-US"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            storefront_url=os.environ.get("CHECKOUT_STOREFRONT_URL", "").rstrip("/"),
            http_timeout=float(os.environ.get("CHECKOUT_HTTP_TIMEOUT", "15")),
            headless=os.environ.get("CHECKOUT_HEADLESS", "false").lower() == "true",
            debug_dir=Path(os.environ.get(
                "CHECKOUT_DEBUG_DIR",
                os.path.expanduser("~/.config/checkout-payment/debug"),
            )),
            default_country=os.environ.get("CHECKOUT_DEFAULT_COUNTRY", DEFAULT_COUNTRY),
            widget_brands=_get_list("CHECKOUT_WIDGET_BRANDS", "visa,mc"),
            fingerprint_methods=_get_list("CHECKOUT_FINGERPRINT_METHODS", "scheme"),
            widget_locale=os.environ.get("CHECKOUT_WIDGET_LOCALE", "en-US"),
        )


_settings: Settings | None = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings
