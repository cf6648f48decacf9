from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional

from storefront.cart.constants import CURRENCY_SUFFIX, PERSIAN_DIGITS, PERSIAN_THOUSANDS_SEP
from storefront.cart.identity import field_of
from storefront.common.utils import now


def now_iso() -> str:
    return now().isoformat()


def parse_timestamp(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        ts = value
    else:
        try:
            ts = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            return None
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


def cleanup_old_items(items: List[Any], max_age_hours: int = 24 * 7, *, current: Optional[datetime] = None) -> List[Any]:
    """Keep local entries touched within the last `max_age_hours`. Entries with unreadable timestamps are dropped."""
    cutoff = (current or now()) - timedelta(hours=max_age_hours)
    kept = []
    for item in items:
        ts = parse_timestamp(field_of(item, "timestamp"))
        if ts is not None and ts > cutoff:
            kept.append(item)
    return kept


def format_price(amount: int) -> str:
    """Render an integer amount the way the storefront shows prices: ۱۲٬۵۰۰ ریال"""
    sign = "-" if amount < 0 else ""
    body = f"{abs(int(amount)):,}".replace(",", PERSIAN_THOUSANDS_SEP).translate(PERSIAN_DIGITS)
    return f"{sign}{body} {CURRENCY_SUFFIX}"


def cart_totals(items: Iterable[Any]) -> Dict[str, int]:
    items = list(items)
    return {
        "total_items": sum(int(field_of(i, "quantity", 0)) for i in items),
        "total_price": sum(int(field_of(i, "quantity", 0)) * int(field_of(i, "unit_price", 0)) for i in items),
    }
