"""
Module: repair_kernel.db.types
Responsibility: Money and timestamp helpers every model and service shares.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/, and selectors/.  MUST NOT import from any of those layers.

Invariants enforced:
    - No floats for money.  All monetary amounts are Decimal and are rounded
      only through round_money(), and only when they are stored.
    - All timestamps are UTC.  ensure_utc() restores tzinfo on backends that
      drop it (SQLite) so comparisons never mix naive and aware values.
"""

from datetime import UTC, datetime
from decimal import ROUND_HALF_UP, Decimal

# Currency precision for stored and displayed amounts
CURRENCY_PLACES = 2

DEFAULT_ROUNDING = ROUND_HALF_UP

# Capacity of the Numeric(18, 4) money columns
STORED_PLACES = 4
MAX_STORED_AMOUNT = Decimal(10) ** (18 - STORED_PLACES)


def round_money(
    value: Decimal,
    decimal_places: int = CURRENCY_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a monetary value to specified decimal places.

    This is the only rounding function used for stored amounts.  Intermediate
    calculations stay unrounded.
    """
    quantum = Decimal(1).scaleb(-decimal_places)
    return Decimal(value).quantize(quantum, rounding=rounding)


def to_decimal(value) -> Decimal:
    """Coerce int/str/Decimal input to Decimal. Floats are refused."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        raise TypeError("Monetary values must not be floats")
    return Decimal(str(value))


def ensure_utc(value: datetime | None) -> datetime | None:
    """Return ``value`` as an aware UTC datetime (naive values are taken as UTC)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def canonical_timestamp(value: datetime) -> str:
    """Stable string form of a timestamp for hashing."""
    return ensure_utc(value).strftime("%Y-%m-%dT%H:%M:%S.%fZ")
