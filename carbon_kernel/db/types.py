"""
Module: carbon_kernel.db.types
Responsibility: Exact-decimal column type, annotated aliases and the rounding
    rules for money and credit tonnage.  Centralizes precision so that every
    model and service uses identical definitions.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/, and selectors/.  MUST NOT import from any of those layers.

Invariants enforced:
    - No floats anywhere in the ledger.  ExactDecimal refuses to bind a
      float, and normalize_credit_quantity() rejects float input outright.
    - Money is quantized to MONEY_DECIMAL_PLACES (2), credit tonnage to
      CREDIT_DECIMAL_PLACES (4), both ROUND_HALF_UP.
    - A requested credit quantity with more than 4 decimal places is an
      error, never silently rounded.
    - Inputs above MAX_EXACT_AMOUNT are rejected before any arithmetic.

Failure modes:
    - TypeError when a float reaches an ExactDecimal bind parameter.
    - InvalidQuantityError from normalize_credit_quantity().

Audit relevance:
    Every wallet balance, project pool, transaction amount and retired
    tonnage is stored through ExactDecimal, so the same figures come back
    on PostgreSQL and on the embedded SQLite backend.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import Annotated, Any

from sqlalchemy import BigInteger, Numeric, String
from sqlalchemy import Enum as SAEnum
from sqlalchemy.types import TypeDecorator

from carbon_kernel.exceptions import InvalidQuantityError

# Stored scale: 9 fractional digits on both backends
STORAGE_SCALE = 9

MONEY_DECIMAL_PLACES = 2
CREDIT_DECIMAL_PLACES = 4
DEFAULT_ROUNDING = ROUND_HALF_UP

# Largest amount both backends hold exactly: a signed BIGINT of nano-units
MAX_EXACT_AMOUNT = Decimal(2**63 - 1).scaleb(-STORAGE_SCALE)

DEFAULT_CURRENCY = "INR"


class ExactDecimal(TypeDecorator):
    """
    Fixed-point decimal column that never round-trips through float.

    Contract:
        Binds and returns ``Decimal``.  On PostgreSQL the column is
        ``NUMERIC(38, 9)``.  On SQLite, whose NUMERIC affinity is binary
        floating point, the value is stored as a BIGINT count of nano-units
        so that SQL comparisons and SUM() stay exact.

    Guarantees:
        - process_bind_param rejects float.
        - process_result_value always yields ``Decimal`` (or None).
        - cache_ok=True enables SQLAlchemy statement caching.
    """

    impl = Numeric(38, STORAGE_SCALE)
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "sqlite":
            return dialect.type_descriptor(BigInteger())
        return dialect.type_descriptor(Numeric(38, STORAGE_SCALE, asdecimal=True))

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if isinstance(value, float):
            raise TypeError(f"Refusing to store float {value!r} in an exact-decimal column")
        if not isinstance(value, Decimal):
            value = Decimal(value)
        if dialect.name == "sqlite":
            return int(value.scaleb(STORAGE_SCALE).to_integral_value(rounding=DEFAULT_ROUNDING))
        return value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if dialect.name == "sqlite":
            return Decimal(int(value)).scaleb(-STORAGE_SCALE)
        return Decimal(str(value))


def enum_column(enum_cls: type[Enum], name: str, length: int = 32) -> SAEnum:
    """
    Closed VARCHAR + CHECK column type for a str Enum.

    Values (not member names) are persisted, and loads return enum members.
    """
    return SAEnum(
        enum_cls,
        name=name,
        native_enum=False,
        create_constraint=True,
        length=length,
        validate_strings=True,
        values_callable=lambda members: [m.value for m in members],
    )


# Currency amount (2 places in use, 9 stored)
Money = Annotated[Decimal, ExactDecimal()]

# Credit tonnage in tCO2e (4 places in use, 9 stored)
Credits = Annotated[Decimal, ExactDecimal()]

# ISO 4217 currency code (e.g., "INR", "USD")
Currency = Annotated[str, String(3)]

# SHA-256 hash as hex string (64 characters)
PayloadHash = Annotated[str, String(64)]

# Long text for notes and reasons
LongText = Annotated[str, String(4000)]


def _quantize(value: Decimal, places: int, rounding: str) -> Decimal:
    return value.quantize(Decimal(1).scaleb(-places), rounding=rounding)


def round_money(value: Decimal, rounding: str = DEFAULT_ROUNDING) -> Decimal:
    """
    Round a currency amount to 2 decimal places.

    This is the ONLY sanctioned rounding function for cash values.
    """
    return _quantize(value, MONEY_DECIMAL_PLACES, rounding)


def round_credits(value: Decimal, rounding: str = DEFAULT_ROUNDING) -> Decimal:
    """Round a credit tonnage to 4 decimal places."""
    return _quantize(value, CREDIT_DECIMAL_PLACES, rounding)


def normalize_credit_quantity(quantity: Any) -> Decimal:
    """
    Validate a requested credit quantity and return it at 4 places.

    Preconditions: none -- this is an input boundary.
    Postconditions: Returns a Decimal > 0 with exactly 4 fractional digits,
        numerically equal to the input.

    Raises:
        InvalidQuantityError: quantity is a float, bool, non-numeric,
            non-finite, <= 0, above MAX_EXACT_AMOUNT,
            or carries more than 4 decimal places.
    """
    if isinstance(quantity, (float, bool)) or quantity is None:
        raise InvalidQuantityError(repr(quantity), "must be an exact decimal or integer")

    try:
        value = quantity if isinstance(quantity, Decimal) else Decimal(str(quantity))
    except (InvalidOperation, ValueError):
        raise InvalidQuantityError(str(quantity), "not a number")

    if not value.is_finite():
        raise InvalidQuantityError(str(quantity), "must be finite")
    if value <= 0:
        raise InvalidQuantityError(str(quantity), "must be greater than zero")
    if value > MAX_EXACT_AMOUNT:
        raise InvalidQuantityError(str(quantity), f"exceeds the maximum of {MAX_EXACT_AMOUNT}")

    rounded = round_credits(value)
    if rounded != value:
        raise InvalidQuantityError(
            str(quantity),
            f"more than {CREDIT_DECIMAL_PLACES} decimal places",
        )
    return rounded


def normalize_money(amount: Any, field: str = "amount") -> Decimal:
    """
    Validate a non-negative currency amount and return it at 2 places.

    Raises:
        ValueError: amount is a float, negative, too large,
            or has more than 2 places.
    """
    if isinstance(amount, (float, bool)) or amount is None:
        raise ValueError(f"{field} must be an exact decimal, got {amount!r}")
    try:
        value = amount if isinstance(amount, Decimal) else Decimal(str(amount))
    except (InvalidOperation, ValueError):
        raise ValueError(f"{field} is not a number: {amount!r}")
    if not value.is_finite() or value < 0:
        raise ValueError(f"{field} must be a finite, non-negative amount: {amount}")
    if value > MAX_EXACT_AMOUNT:
        raise ValueError(f"{field} exceeds the maximum of {MAX_EXACT_AMOUNT}: {amount}")
    rounded = round_money(value)
    if rounded != value:
        raise ValueError(f"{field} has more than {MONEY_DECIMAL_PLACES} decimal places: {amount}")
    return rounded
