"""Tests for the record normalizer.

Tests cover:
- Numeric and month coercion of malformed input
- Legacy vs. full period classification
- Savings and amount-paid fallbacks
- History de-duplication and payout detection
"""

import logging
import math

import pytest

from src.models.normalizer import (
    FullPeriodInput,
    LegacyPeriodInput,
    classify_period,
    coerce_month,
    coerce_number,
    detect_payments,
    normalize_history,
    normalize_period,
)
from src.models.plant import PeriodRecord, TariffConfig

NUMERIC_FIELDS = [
    "generated_kwh", "self_consumed_kwh", "exported_kwh", "amount_paid",
    "export_credits", "cumulative_balance", "savings", "self_consumption_savings",
    "other_charges",
]


# ---- Coercion ----

class TestCoerceNumber:
    @pytest.mark.parametrize("value", [None, "", "abc", "-", float("nan"),
                                       float("inf"), float("-inf"), True, [], {}])
    def test_bad_values_become_zero(self, value):
        assert coerce_number(value) == 0.0

    def test_plain_numbers(self):
        assert coerce_number(12) == 12.0
        assert coerce_number(-3.5) == -3.5
        assert coerce_number("42") == 42.0

    def test_colombian_format(self):
        """Dots as thousands separators and comma as decimal mark."""
        assert coerce_number("$ 1.234.567,89") == pytest.approx(1_234_567.89)

    def test_us_format(self):
        assert coerce_number("1,234.5") == pytest.approx(1234.5)

    def test_thousands_only(self):
        assert coerce_number("1,234") == 1234.0
        assert coerce_number("2.500.000") == 2_500_000.0
        assert coerce_number("45.000") == 45_000.0
        assert coerce_number("$ 850.000") == 850_000.0

    def test_single_dot_decimal(self):
        """A dot followed by other than three digits stays a decimal mark."""
        assert coerce_number("4.5") == pytest.approx(4.5)
        assert coerce_number("0.35") == pytest.approx(0.35)
        assert coerce_number("1234.5678") == pytest.approx(1234.5678)

    def test_decimal_comma(self):
        assert coerce_number("12,5") == pytest.approx(12.5)

    def test_negative_string(self):
        assert coerce_number("-45.000,50") == pytest.approx(-45000.5)

    def test_nan_string(self):
        assert coerce_number("NaN") == 0.0


class TestCoerceMonth:
    def test_numbers(self):
        assert coerce_month(3) == 3
        assert coerce_month("12") == 12

    def test_spanish_names(self):
        assert coerce_month("Enero") == 1
        assert coerce_month("diciembre") == 12
        assert coerce_month("Sep") == 9

    def test_english_names(self):
        assert coerce_month("March") == 3

    def test_out_of_range(self):
        assert coerce_month(13) == 0
        assert coerce_month(None) == 0
        assert coerce_month("foo") == 0


# ---- Classification ----

class TestClassifyPeriod:
    def test_generation_only_is_legacy(self):
        period = classify_period({"plant_id": "P1", "anio": 2023, "mes": 5, "generacion": 1000})
        assert isinstance(period, LegacyPeriodInput)
        assert period.generated_kwh == 1000.0

    def test_billing_fields_make_full(self):
        period = classify_period({"plant_id": "P1", "year": 2024, "month": 1,
                                  "pay_real_total": 100})
        assert isinstance(period, FullPeriodInput)
        assert period.savings is None

    def test_generation_backfilled_from_split(self):
        period = classify_period({"year": 2024, "month": 1,
                                  "autoconsumo": 600, "exportacion": 400})
        assert period.generated_kwh == 1000.0

    def test_credits_are_absolute(self):
        """Surplus income reported as negative credits is stored positive."""
        period = classify_period({"year": 2024, "month": 1, "income_surplus": -5000,
                                  "valoracion_horaria": -1000})
        assert period.export_credits == 6000.0

    def test_empty_dict(self):
        assert isinstance(classify_period({}), LegacyPeriodInput)


# ---- Normalization ----

class TestNormalizePeriod:
    def test_never_nan(self):
        """An empty record normalizes to finite zeros."""
        record = normalize_period({})
        for name in NUMERIC_FIELDS:
            value = getattr(record, name)
            assert math.isfinite(value)
            assert value == 0.0

    def test_never_nan_with_garbage(self):
        record = normalize_period({"generacion": "n/a", "pay_real_total": float("nan"),
                                   "autoconsumo": None, "income_surplus": "???"})
        for name in NUMERIC_FIELDS:
            assert math.isfinite(getattr(record, name))

    def test_legacy_fallback(self):
        """Legacy: savings = gen * 757, paid = savings * 0.31."""
        record = normalize_period({"plant_id": "P1", "year": 2023, "month": 4,
                                   "generated_kwh": 1000})
        assert record.source == "legacy"
        assert record.savings == pytest.approx(757_000)
        assert record.amount_paid == pytest.approx(757_000 * 0.31)

    def test_legacy_uses_configured_tariffs(self):
        tariffs = TariffConfig(average_tariff=800, paid_multiplier=0.25)
        record = normalize_period({"year": 2023, "month": 4, "generacion": 100}, tariffs)
        assert record.savings == pytest.approx(80_000)
        assert record.amount_paid == pytest.approx(20_000)

    def test_full_derived_savings(self):
        """Full: savings = self * 750 + |credits|."""
        record = normalize_period({"plant_id": "P1", "year": 2024, "month": 2,
                                   "generacion": 1000, "autoconsumo": 600,
                                   "exportacion": 400, "pay_real_total": 50_000,
                                   "income_surplus": -160_000})
        assert record.source == "full"
        assert record.self_consumption_savings == pytest.approx(450_000)
        assert record.savings == pytest.approx(610_000)
        assert record.amount_paid == 50_000
        assert record.cost_without_solar == pytest.approx(660_000)

    def test_colombian_formatted_billing(self):
        """Bill extracts with dot thousands separators keep their magnitude."""
        record = normalize_period({"plant_id": "P1", "year": 2024, "month": 2,
                                   "pay_real_total": "$ 850.000", "autoconsumo": "1.500",
                                   "exportacion": "1.000"})
        assert record.amount_paid == 850_000
        assert record.self_consumed_kwh == 1_500
        assert record.generated_kwh == 2_500

    def test_explicit_savings_used(self):
        record = normalize_period({"year": 2024, "month": 2, "autoconsumo": 600,
                                   "ahorro": 123_456})
        assert record.savings == 123_456

    def test_energy_violation_logged(self, caplog):
        with caplog.at_level(logging.WARNING, logger="src.models.normalizer"):
            normalize_period({"plant_id": "P1", "year": 2024, "month": 2, "generacion": 100,
                              "autoconsumo": 90, "exportacion": 50})
        assert "exceeds generated" in caplog.text

    def test_metering_tolerance(self, caplog):
        with caplog.at_level(logging.WARNING, logger="src.models.normalizer"):
            normalize_period({"year": 2024, "month": 2, "generacion": 100,
                              "autoconsumo": 60.4, "exportacion": 40.4})
        assert caplog.text == ""


class TestNormalizeHistory:
    def test_sorted_and_deduplicated(self):
        raws = [
            {"plant_id": "B", "year": 2024, "month": 1, "generacion": 10},
            {"plant_id": "A", "year": 2024, "month": 2, "generacion": 20},
            {"plant_id": "A", "year": 2024, "month": 1, "generacion": 30},
            {"plant_id": "A", "year": 2024, "month": 2, "generacion": 40},
        ]
        records = normalize_history(raws)
        assert [r.period_key for r in records] == [
            ("A", 2024, 1), ("A", 2024, 2), ("B", 2024, 1)]
        assert records[1].generated_kwh == 40.0

    def test_rows_without_period_dropped(self):
        records = normalize_history([{"generacion": 10}, {"year": 2024, "mes": "Marzo"}])
        assert len(records) == 1
        assert records[0].month == 3


class TestDetectPayments:
    def _records(self, balances):
        return [PeriodRecord(plant_id="P1", year=2024, month=i + 1, cumulative_balance=b)
                for i, b in enumerate(balances)]

    def test_drop_over_half_is_payment(self):
        payments = detect_payments(self._records([100, 200, 300, 50, 150]))
        assert payments == [(2024, 4, 250)]

    def test_small_drop_ignored(self):
        assert detect_payments(self._records([100, 200, 150])) == []

    def test_custom_threshold(self):
        payments = detect_payments(self._records([100, 70]), drop_threshold=0.2)
        assert payments == [(2024, 2, 30)]
