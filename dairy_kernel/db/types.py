"""
Module: dairy_kernel.db.types
Responsibility: Annotated column type aliases and the money coercion and
    tolerance helpers shared by models, services and selectors.
Architecture position: Kernel > DB.  MUST NOT import from models/,
    services/, selectors/ or domain/.

Invariants enforced:
    - No floats anywhere.  All monetary amounts are Decimal.
    - BALANCE_TOLERANCE is the epsilon for Dr == Cr and statement checks.
"""

from decimal import Decimal
from typing import Annotated

from sqlalchemy import BigInteger, Numeric, String

# 38 digits total, 9 decimal places
Money = Annotated[Decimal, Numeric(38, 9)]

# Monotonic sequence number for ordering
Sequence = Annotated[int, BigInteger]

# Short identifier strings (voucher numbers, enum values)
ShortCode = Annotated[str, String(50)]

# Long text for narrations
LongText = Annotated[str, String(1000)]

# Two amounts closer than this are treated as equal
BALANCE_TOLERANCE = Decimal("0.01")

ZERO = Decimal("0")


def to_money(value) -> Decimal:
    """Coerce int/str/Decimal to Decimal.  Floats are rejected."""
    if isinstance(value, float):
        raise TypeError(f"Monetary amounts must not be float: {value!r}")
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def within_tolerance(
    left: Decimal,
    right: Decimal,
    tolerance: Decimal = BALANCE_TOLERANCE,
) -> bool:
    """True when |left - right| does not exceed tolerance."""
    return abs(left - right) <= tolerance
