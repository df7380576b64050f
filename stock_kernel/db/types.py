"""
Module: stock_kernel.db.types
Responsibility: Column types and utility functions for monetary values.
    Centralizes precision and rounding so that every model, DTO and report
    uses identical definitions.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/, and selectors/.  MUST NOT import from any of those layers.

Invariants enforced:
    - No floats for money.  Amounts are Decimal end to end; floats arriving
      from JSON payloads are converted through their string form.
    - MoneyType stores exact decimals on every backend: Numeric(38, 9) on
      PostgreSQL, a decimal string on SQLite (which has no exact numeric
      storage class).
    - round_money() is the ONLY sanctioned rounding function and is applied
      at the display boundary, never to intermediate aggregates.

Failure modes:
    - ValueError on a non-numeric or non-finite value passed to to_money().
"""

from datetime import UTC, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from sqlalchemy import DateTime, Numeric, String
from sqlalchemy.types import TypeDecorator


# Storage precision for monetary columns
MONEY_PRECISION = 38
MONEY_SCALE = 9

# Display precision (two decimals on every payload and report)
DISPLAY_DECIMAL_PLACES = 2
DEFAULT_ROUNDING = ROUND_HALF_UP


class MoneyType(TypeDecorator):
    """
    Exact decimal column, portable across PostgreSQL and SQLite.

    Contract:
        Binds Decimal values and always returns Decimal values.

    Guarantees:
        - PostgreSQL: native NUMERIC(38, 9).
        - SQLite: stored as text, so no binary-float rounding ever happens.
        - cache_ok=True enables SQLAlchemy statement caching.
    """

    impl = Numeric(MONEY_PRECISION, MONEY_SCALE)
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "sqlite":
            return dialect.type_descriptor(String(64))
        return dialect.type_descriptor(
            Numeric(MONEY_PRECISION, MONEY_SCALE, asdecimal=True)
        )

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        value = to_money(value)
        if dialect.name == "sqlite":
            return str(value)
        return value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return Decimal(str(value))


def money_from_str(value: str) -> Decimal:
    """
    Create a money value from its string form.

    Postconditions: Returns a Decimal (not rounded -- callers apply
        rounding via round_money() if needed).

    Raises:
        ValueError: If the string is not a finite number.
    """
    try:
        result = Decimal(value)
    except InvalidOperation as exc:
        raise ValueError(f"Not a valid amount: {value!r}") from exc
    if not result.is_finite():
        raise ValueError(f"Not a valid amount: {value!r}")
    return result


def to_money(value: Decimal | int | float | str) -> Decimal:
    """Normalize an incoming amount to Decimal.

    Floats go through ``str`` so that 19.99 becomes Decimal("19.99")
    rather than its binary expansion.  Booleans are rejected.
    """
    if isinstance(value, bool):
        raise ValueError(f"Not a valid amount: {value!r}")
    if isinstance(value, Decimal):
        if not value.is_finite():
            raise ValueError(f"Not a valid amount: {value!r}")
        return value
    if isinstance(value, (int, float, str)):
        return money_from_str(str(value))
    raise ValueError(f"Not a valid amount: {value!r}")


def round_money(
    amount: Decimal,
    decimal_places: int = DISPLAY_DECIMAL_PLACES,
) -> Decimal:
    """
    Round a monetary amount for display.

    Args:
        amount: Amount to round.
        decimal_places: Places to keep (two for every payload).

    Returns:
        Rounded Decimal (ROUND_HALF_UP).
    """
    quantizer = Decimal(10) ** -decimal_places
    return amount.quantize(quantizer, rounding=DEFAULT_ROUNDING)


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware timestamp, normalized to UTC.

    Guarantees:
        - Binds aware datetimes converted to UTC; naive values are taken
          as UTC already.
        - Always returns aware UTC datetimes, including on SQLite, whose
          DATETIME storage drops the offset.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)

    def process_result_value(self, value: datetime | None, dialect):
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value
