"""
Helpers for reading Shopify REST payloads: money values, money-set fallbacks, timestamps, ids.
"""
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Optional

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_decimal(value: Any) -> Decimal:
    """Shopify sends money as strings ("12.50"); None/blank/garbage become 0."""
    if value is None or isinstance(value, bool):
        return ZERO
    if isinstance(value, Decimal):
        d = value
    else:
        try:
            d = Decimal(str(value).strip() or "0")
        except (InvalidOperation, ValueError):
            return ZERO
    return d if d.is_finite() else ZERO


def round_money(value: Any) -> Decimal:
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def shop_money(data: Optional[dict], field: str) -> Decimal:
    """Amount from `<field>_set.shop_money.amount` (newer API versions), or 0."""
    money_set = (data or {}).get(f"{field}_set") or {}
    return to_decimal((money_set.get("shop_money") or {}).get("amount"))


def money_field(data: Optional[dict], field: str) -> Decimal:
    """Flat `<field>` value; falls back to the money-set value when the flat one is missing or zero."""
    flat = to_decimal((data or {}).get(field))
    if flat == 0:
        nested = shop_money(data, field)
        if nested != 0:
            return nested
    return flat


def money_set_first(data: Optional[dict], field: str) -> Decimal:
    """Money-set value preferred; flat `<field>` when the set is absent."""
    money_set = (data or {}).get(f"{field}_set") or {}
    amount = (money_set.get("shop_money") or {}).get("amount")
    if amount is not None:
        return to_decimal(amount)
    return to_decimal((data or {}).get(field))


def parse_shopify_datetime(value: Any) -> Optional[datetime]:
    """ISO-8601 with offset (or Z) -> naive UTC datetime. Unparseable values become None."""
    if not value:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def external_id(value: Any) -> Optional[str]:
    """Shopify ids as opaque strings; None/blank stay None."""
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def clean_str(value: Any, max_len: int = 255) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text[:max_len] if text else None
