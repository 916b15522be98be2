"""
Tests for the pure totals engine.

Covers the standard three-line request (700 subtotal, 10% margin), input
rejection, and float handling.
"""

from decimal import Decimal
from types import SimpleNamespace

import pytest

from procurement_engines.totals import TotalsEngine, to_amount, validate_psm_percent
from procurement_kernel.domain.dtos import RequestTotals
from procurement_kernel.exceptions import ValidationError

STANDARD_ITEMS = [
    (Decimal("100"), Decimal("2")),
    (Decimal("200"), Decimal("1.5")),
    (Decimal("50"), Decimal("4")),
]


@pytest.fixture
def engine():
    return TotalsEngine()


class TestComputeRequestTotals:
    def test_standard_request(self, engine):
        totals = engine.compute_request_totals(STANDARD_ITEMS, Decimal("10"))
        assert totals == RequestTotals(
            subtotal=Decimal("700"),
            psm_amount=Decimal("70.00"),
            total=Decimal("770.00"),
        )

    def test_price_override_scenario(self, engine):
        items = [STANDARD_ITEMS[0], (Decimal("200"), Decimal("1.8")), STANDARD_ITEMS[2]]
        totals = engine.compute_request_totals(items, Decimal("10"))
        assert totals.subtotal == Decimal("760")
        assert totals.psm_amount == Decimal("76.00")
        assert totals.total == Decimal("836.00")

    def test_empty_items(self, engine):
        totals = engine.compute_request_totals([], Decimal("10"))
        assert totals.subtotal == 0
        assert totals.total == 0

    def test_zero_psm(self, engine):
        totals = engine.compute_request_totals(STANDARD_ITEMS, 0)
        assert totals.psm_amount == 0
        assert totals.total == Decimal("700")

    def test_psm_rounded_half_up(self, engine):
        # 0.25 * 10% = 0.025 -> 0.03
        totals = engine.compute_request_totals([(Decimal("1"), Decimal("0.25"))], Decimal("10"))
        assert totals.psm_amount == Decimal("0.03")

    def test_accepts_item_objects(self, engine):
        items = [
            SimpleNamespace(requested_quantity=q, updated_unit_price=p, line_subtotal=Decimal("999"))
            for q, p in STANDARD_ITEMS
        ]
        # stored line_subtotal is ignored
        assert engine.compute_request_totals(items, 10).subtotal == Decimal("700")

    def test_idempotent(self, engine):
        first = engine.compute_request_totals(STANDARD_ITEMS, Decimal("10"))
        second = engine.compute_request_totals(STANDARD_ITEMS, Decimal("10"))
        assert first == second

    def test_emits_engine_trace(self, engine, captured_logs):
        engine.compute_request_totals(STANDARD_ITEMS, psm_percent=Decimal("10"))
        traces = [r for r in captured_logs() if r["message"] == "ENGINE_TRACE"]
        assert traces[-1]["engine_name"] == "totals"
        assert len(traces[-1]["input_fingerprint"]) == 16


class TestComputeLine:
    def test_product(self, engine):
        assert engine.compute_line(Decimal("200"), Decimal("1.5")) == Decimal("300")

    def test_float_goes_through_str(self, engine):
        assert engine.compute_line(3, 0.1) == Decimal("0.3")

    def test_zero_quantity(self, engine):
        assert engine.compute_line(0, Decimal("4")) == 0

    @pytest.mark.parametrize("quantity,price", [
        (Decimal("-1"), Decimal("2")),
        (Decimal("1"), Decimal("-0.01")),
    ])
    def test_negative_rejected(self, engine, quantity, price):
        with pytest.raises(ValidationError, match="cannot be negative"):
            engine.compute_line(quantity, price)

    @pytest.mark.parametrize("bad", [Decimal("NaN"), float("inf"), "Infinity"])
    def test_non_finite_rejected(self, engine, bad):
        with pytest.raises(ValidationError):
            engine.compute_line(bad, 1)

    @pytest.mark.parametrize("bad", ["ten", None, True, object()])
    def test_non_numeric_rejected(self, engine, bad):
        with pytest.raises(ValidationError) as exc_info:
            engine.compute_line(1, bad)
        assert exc_info.value.field == "updated_unit_price"

    def test_operand_beyond_stored_scale_rejected(self, engine):
        with pytest.raises(ValidationError, match="at most 9 decimal places") as exc_info:
            engine.compute_line(3, Decimal("0.3333333333"))
        assert exc_info.value.field == "updated_unit_price"

    def test_trailing_zeros_beyond_scale_accepted(self, engine):
        assert engine.compute_line(3, Decimal("0.3330000000000")) == Decimal("0.999")

    def test_product_beyond_stored_scale_rejected(self, engine):
        with pytest.raises(ValidationError) as exc_info:
            engine.compute_line(Decimal("0.5"), Decimal("0.000000001"))
        assert exc_info.value.field == "line_subtotal"


class TestPsmPercent:
    @pytest.mark.parametrize("value", [0, "10", Decimal("12.5"), 100])
    def test_valid(self, value):
        assert validate_psm_percent(value) == Decimal(str(value))

    @pytest.mark.parametrize("value", [Decimal("100.01"), -1])
    def test_out_of_range(self, value):
        with pytest.raises(ValidationError):
            validate_psm_percent(value)

    def test_more_than_four_places_rejected(self):
        with pytest.raises(ValidationError, match="at most 4 decimal places"):
            validate_psm_percent(Decimal("10.00001"))

    def test_custom_money_places(self):
        engine = TotalsEngine(money_places=0)
        assert engine.compute_psm(Decimal("700"), Decimal("10.5")) == Decimal("74")


class TestToAmount:
    def test_string_amount(self):
        assert to_amount("12.50", "unit_price") == Decimal("12.50")

    def test_error_carries_field_and_value(self):
        with pytest.raises(ValidationError) as exc_info:
            to_amount(-5, "requested_quantity")
        assert exc_info.value.field == "requested_quantity"
        assert exc_info.value.value == -5
