import os
from dataclasses import dataclass, field, replace
from decimal import Decimal, InvalidOperation
from pathlib import Path
import json
from typing import Dict, FrozenSet, List, Optional

from dotenv import load_dotenv


DEFAULT_CANCELLABLE = "pending,confirmed,processing"
DEFAULT_REFUNDABLE = "pending,confirmed,processing,shipped,delivered"


@dataclass
class AppConfig:
    database_url: str
    secret_key: str
    log_level: str
    currency: str
    order_number_prefix: str = "ORD"
    order_number_max_attempts: int = 10
    tax_rate: Decimal = Decimal("0")
    shipping_rates: Dict[str, Decimal] = field(default_factory=lambda: {"standard": Decimal("0")})
    checkout_ttl_days: int = 30
    order_advance_strict: bool = True
    cancellable_statuses: FrozenSet[str] = frozenset(DEFAULT_CANCELLABLE.split(","))
    refundable_statuses: FrozenSet[str] = frozenset(DEFAULT_REFUNDABLE.split(","))
    admin_username: str = "admin"
    admin_password: str = "admin"


ALLOWED_HOT_KEYS = {"CURRENCY", "TAX_RATE"}
SENSITIVE_KEYS = {"SECRET_KEY", "DATABASE_URL", "ADMIN_PASSWORD"}


def validate_currency(value: Optional[str]) -> str:
    v = (value or "USD").strip().upper()
    if len(v) != 3:
        raise ValueError("Invalid currency code: expected ISO4217 length 3")
    return v


def validate_tax_rate(value) -> Decimal:
    try:
        rate = Decimal(str(value if value not in (None, "") else "0"))
    except InvalidOperation:
        raise ValueError(f"Invalid tax rate: {value!r}")
    if rate < 0 or rate >= 1:
        raise ValueError("Invalid tax rate: expected a fraction in [0, 1)")
    return rate


def parse_shipping_rates(value) -> Dict[str, Decimal]:
    if not value:
        return {"standard": Decimal("0")}
    raw = json.loads(value) if isinstance(value, str) else value
    if not isinstance(raw, dict) or not raw:
        raise ValueError("SHIPPING_RATES must be a non-empty object of code -> fee")
    rates = {}
    for code, fee in raw.items():
        amount = Decimal(str(fee))
        if amount < 0:
            raise ValueError(f"Shipping fee for {code} must be >= 0")
        rates[str(code)] = amount
    return rates


def parse_status_list(value, default: str) -> FrozenSet[str]:
    raw = value or default
    if isinstance(raw, str):
        raw = raw.split(",")
    items = [str(s).strip().lower() for s in raw]
    return frozenset(s for s in items if s)


def _parse_bool(value: Optional[str], default: bool) -> bool:
    if value is None or value == "":
        return default
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


def _load_settings_file(path: Optional[Path] = None) -> dict:
    path = path or Path(__file__).resolve().parents[1] / "data" / "settings.json"
    if not path.exists():
        return {}
    data = json.loads(path.read_text(encoding="utf-8"))
    return data if isinstance(data, dict) else {}


def load_env(settings_path: Optional[Path] = None) -> AppConfig:
    # data/settings.json wins over the environment; .env only fills the environment
    load_dotenv()
    s = _load_settings_file(settings_path)

    def get(key: str, default=None):
        value = s.get(key)
        if value is None or value == "":
            value = os.getenv(key)
        return default if value is None or value == "" else value

    return AppConfig(
        database_url=get("DATABASE_URL", "sqlite:///data/app.db"),
        secret_key=get("SECRET_KEY", "dev_secret"),
        log_level=str(get("LOG_LEVEL", "INFO")).upper(),
        currency=validate_currency(get("CURRENCY")),
        order_number_prefix=str(get("ORDER_NUMBER_PREFIX", "ORD")).strip().upper(),
        order_number_max_attempts=max(1, int(get("ORDER_NUMBER_MAX_ATTEMPTS", 10))),
        tax_rate=validate_tax_rate(get("TAX_RATE")),
        shipping_rates=parse_shipping_rates(get("SHIPPING_RATES")),
        checkout_ttl_days=int(get("CHECKOUT_TTL_DAYS", 30)),
        order_advance_strict=_parse_bool(get("ORDER_ADVANCE_STRICT"), True),
        cancellable_statuses=parse_status_list(get("CANCELLABLE_STATUSES"), DEFAULT_CANCELLABLE),
        refundable_statuses=parse_status_list(get("REFUNDABLE_STATUSES"), DEFAULT_REFUNDABLE),
        admin_username=get("ADMIN_USERNAME", "admin"),
        admin_password=get("ADMIN_PASSWORD", "admin"),
    )


def refresh_non_sensitive(overrides: Dict[str, str], current: AppConfig) -> AppConfig:
    updates = {k: v for k, v in (overrides or {}).items() if k in ALLOWED_HOT_KEYS}
    currency = validate_currency(updates.get("CURRENCY", current.currency))
    tax_rate = validate_tax_rate(updates.get("TAX_RATE", current.tax_rate))
    return replace(current, currency=currency, tax_rate=tax_rate)


def requires_restart(changed_keys: List[str]) -> bool:
    if not changed_keys:
        return False
    return any(k in SENSITIVE_KEYS for k in changed_keys)
