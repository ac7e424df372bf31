"""
Utility functions shared by the sync services.
"""
import re

from datetime import datetime, timezone, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

_SKU_SEPARATORS = re.compile(r"[\s\-_/.]+")


def normalize_sku(sku: Optional[str]) -> str:
    """
    Canonical form used for SKU matching: lower-cased, separators stripped.

    ``DZ5485-612``, ``dz5485 612`` and ``dz5485612`` all normalize to
    ``dz5485612``. No other rewriting is done; matching stays exact.
    """
    if not sku:
        return ""
    return _SKU_SEPARATORS.sub("", sku.strip().lower())


def normalize_size(size: Optional[str]) -> str:
    """Trim and upper-case a size label. No unit conversion."""
    if size is None:
        return ""
    return re.sub(r"\s+", "", str(size)).upper()


def utc_now() -> datetime:
    """Naive UTC timestamp, matching how every table stores time."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def floor_to_bucket(value: datetime, bucket_seconds: int) -> datetime:
    """Round a timestamp down to the start of its fixed-size bucket."""
    if bucket_seconds <= 0:
        return value
    epoch = datetime(1970, 1, 1)
    offset = int((value - epoch).total_seconds()) // bucket_seconds * bucket_seconds
    return epoch + timedelta(seconds=offset)


def to_decimal(value: Any) -> Optional[Decimal]:
    """Parse API money values (numbers or numeric strings). Blank/invalid -> None."""
    if value is None or value == "":
        return None
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None


def dialect_insert(session: AsyncSession, model):
    """
    Return an INSERT construct for ``model`` that supports ON CONFLICT.

    PostgreSQL in production, SQLite under test; both expose the same
    on_conflict_do_update / on_conflict_do_nothing API.
    """
    dialect = session.get_bind().dialect.name
    if dialect == "sqlite":
        return sqlite.insert(model)
    return postgresql.insert(model)
