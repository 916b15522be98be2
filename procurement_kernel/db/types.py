"""
Module: procurement_kernel.db.types
Responsibility: Annotated type aliases and utility functions for money and
    quantity columns.  Centralizes precision and rounding so that every model,
    engine and service uses identical definitions.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/, selectors/ and procurement_engines.  MUST NOT import from any
    of those layers.

Invariants enforced:
    - No floats anywhere in the kernel.  Quantities, prices and totals use
      Decimal; floats crossing the boundary are converted through ``str``.
    - round_money() is the ONLY sanctioned rounding function for money.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Annotated

from sqlalchemy import Numeric, String

# Decimal places stored for quantities, prices and line amounts
AMOUNT_SCALE = 9

# Decimal places stored for percentages
PERCENT_SCALE = 4

# Monetary amount: 38 digits total, 9 decimal places
Money = Annotated[Decimal, Numeric(38, AMOUNT_SCALE)]

# Requested quantity, same precision as money
Quantity = Annotated[Decimal, Numeric(38, AMOUNT_SCALE)]

# Percentage such as the program service margin (e.g. 10.5)
Percent = Annotated[Decimal, Numeric(9, PERCENT_SCALE)]

# Stage / status names
StageName = Annotated[str, String(30)]

# SHA-256 hash as hex string (64 characters)
PayloadHash = Annotated[str, String(64)]

MONEY_DECIMAL_PLACES = 2
DEFAULT_ROUNDING = ROUND_HALF_UP


def to_decimal(value: object) -> Decimal:
    """
    Convert an int, str, float or Decimal to Decimal.

    Floats go through ``str`` so 1.5 becomes Decimal("1.5"), not the binary
    expansion.  Booleans are rejected.

    Raises:
        TypeError: bool or unsupported type.
        decimal.InvalidOperation: unparseable string.
    """
    if isinstance(value, bool):
        raise TypeError("bool is not a numeric amount")
    if isinstance(value, Decimal):
        return value
    if isinstance(value, (int, str)):
        return Decimal(value.strip() if isinstance(value, str) else value)
    if isinstance(value, float):
        return Decimal(str(value))
    raise TypeError(f"Unsupported numeric type: {type(value).__name__}")


def round_money(
    value: Decimal,
    decimal_places: int = MONEY_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a monetary value to the given decimal places (half-up by default).

    This is the ONLY sanctioned rounding function for money in the kernel.
    """
    quantum = Decimal(1).scaleb(-decimal_places)
    return value.quantize(quantum, rounding=rounding)


def fits_scale(value: Decimal, places: int) -> bool:
    """
    True if a finite value has no significant digits beyond ``places``.

    Numeric columns silently cut extra digits, so values that fail this
    check would not read back as written.  Trailing zeros do not count.
    """
    _, digits, exponent = value.as_tuple()
    excess = -places - exponent
    if excess <= 0:
        return True
    return not any(digits[-excess:])
