"""
procurement_engines.totals -- Line and request totals with program service margin.

Responsibility:
    Compute ``line_subtotal = quantity x unit_price`` for each item and the
    request-level subtotal, PSM (program service margin) amount and total.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  Persisting the results is
    TotalsService's job.

Invariants enforced:
    - request subtotal = sum of line subtotals.
    - line subtotal = quantity x unit price, both operands >= 0.
    - psm_amount = round_half_up(subtotal x psm_percent / 100, 2);
      total = subtotal + psm_amount.
    - Decimal-only arithmetic; floats are converted through ``str``.
    - Idempotent: the same items and percentage give the same totals.

Failure modes:
    - ValidationError for a negative, non-finite or non-numeric quantity or
      price (never clamped), or a psm_percent outside [0, 100].
    - ValidationError when an operand or a line subtotal has more decimal
      places than its column stores, so a stored line always equals
      quantity x unit price exactly.

Usage:
    engine = TotalsEngine()
    engine.compute_line(Decimal("200"), Decimal("1.5"))         # 300.0
    totals = engine.compute_request_totals(items, Decimal("10"))
    totals.total                                                 # 770.00
"""

from __future__ import annotations

from collections.abc import Iterable
from decimal import Decimal, InvalidOperation
from typing import Any

from procurement_kernel.db.types import (
    AMOUNT_SCALE,
    MONEY_DECIMAL_PLACES,
    PERCENT_SCALE,
    fits_scale,
    round_money,
    to_decimal,
)
from procurement_kernel.domain.dtos import RequestTotals
from procurement_kernel.exceptions import ValidationError
from procurement_kernel.logging_config import get_logger
from procurement_engines.tracer import traced_engine

logger = get_logger("engines.totals")

_ZERO = Decimal("0")
_HUNDRED = Decimal("100")


def to_amount(value: Any, field: str, places: int = AMOUNT_SCALE) -> Decimal:
    """
    Convert a caller-supplied quantity or price to a non-negative Decimal.

    Raises:
        ValidationError: non-numeric, non-finite, negative, or with more
            decimal places than the column stores.
    """
    try:
        amount = to_decimal(value)
    except (TypeError, InvalidOperation, ValueError) as exc:
        raise ValidationError(
            f"{field} must be a number, got {value!r}", field=field, value=value,
        ) from exc
    if not amount.is_finite():
        raise ValidationError(
            f"{field} must be finite, got {value!r}", field=field, value=value,
        )
    if amount < _ZERO:
        raise ValidationError(
            f"{field} cannot be negative, got {amount}", field=field, value=value,
        )
    if not fits_scale(amount, places):
        raise ValidationError(
            f"{field} allows at most {places} decimal places, got {amount}",
            field=field,
            value=value,
        )
    return amount


def validate_psm_percent(value: Any) -> Decimal:
    """Return value as a Decimal within [0, 100] or raise ValidationError."""
    percent = to_amount(value, "psm_percent", PERCENT_SCALE)
    if percent > _HUNDRED:
        raise ValidationError(
            f"psm_percent must be between 0 and 100, got {percent}",
            field="psm_percent",
            value=value,
        )
    return percent


def _line_operands(item: Any) -> tuple[Any, Any]:
    if isinstance(item, tuple):
        return item
    return item.requested_quantity, item.updated_unit_price


class TotalsEngine:
    """
    Stateless totals calculator.

    Items passed to ``compute_request_totals`` may be ``(quantity, price)``
    tuples or any object with ``requested_quantity`` and
    ``updated_unit_price`` attributes (ORM items, DTOs).  Line subtotals are
    always recomputed from the operands, never trusted from the item.
    """

    def __init__(self, money_places: int = MONEY_DECIMAL_PLACES):
        self.money_places = money_places

    def compute_line(self, quantity: Any, unit_price: Any) -> Decimal:
        qty = to_amount(quantity, "requested_quantity")
        price = to_amount(unit_price, "updated_unit_price")
        line = qty * price
        if not fits_scale(line, AMOUNT_SCALE):
            raise ValidationError(
                f"line subtotal {qty} x {price} needs more than {AMOUNT_SCALE} decimal places",
                field="line_subtotal",
                value=line,
            )
        return line

    def compute_psm(self, subtotal: Decimal, psm_percent: Any) -> Decimal:
        percent = validate_psm_percent(psm_percent)
        return round_money(subtotal * percent / _HUNDRED, self.money_places)

    @traced_engine("totals", "1.0", fingerprint_fields=("psm_percent",))
    def compute_request_totals(
        self,
        items: Iterable[Any],
        psm_percent: Any,
    ) -> RequestTotals:
        """
        Totals for a whole request.

        An empty item set yields zero totals.
        """
        subtotal = _ZERO
        for item in items:
            quantity, unit_price = _line_operands(item)
            subtotal += self.compute_line(quantity, unit_price)

        psm_amount = self.compute_psm(subtotal, psm_percent)
        return RequestTotals(
            subtotal=subtotal,
            psm_amount=psm_amount,
            total=subtotal + psm_amount,
        )
