"""Tests for the investment summary pipeline, data model, storage, libraries and validators."""

import json
import os
import tempfile
from datetime import date

import pytest

from src.data.libraries import AssumptionLibrary
from src.data.storage import DataSourceError, load_portfolio, portfolio_from_dict, save_portfolio
from src.data.validators import (
    validate_capacity,
    validate_performance_ratio,
    validate_portfolio,
    validate_tax_config,
)
from src.models.calculations import (
    calculate_investment_summary,
    calculate_plant_summary,
    calculate_revenue_breakdown,
    complete_years_between,
)
from src.models.normalizer import normalize_history
from src.models.plant import (
    FinancialAssumptions,
    PeriodRecord,
    Plant,
    Portfolio,
    TariffConfig,
    TaxBenefitConfig,
)


def _plant(**overrides):
    data = dict(plant_id="P1", name="Planta 1", capacity_kwp=620, investment=400_000_000,
                commissioning_date=date(2024, 1, 15))
    data.update(overrides)
    return Plant(**data)


def _raw_rows(plant_id="P1", months=6, savings=5_000_000):
    rows = []
    for i in range(months):
        rows.append({
            "plant_id": plant_id,
            "anio": 2024,
            "mes": i + 2,
            "generacion": 60_000,
            "autoconsumo": 36_000,
            "exportacion": 24_000,
            "pay_real_total": 1_000_000,
            "income_surplus": -9_600_000,
            "balance_cumulative": 9_600_000 * (i + 1),
            "ahorro": savings,
        })
    return rows


# ---- Data Model ----

class TestPlant:
    def test_negative_capacity_rejected(self):
        with pytest.raises(ValueError):
            _plant(capacity_kwp=-1)

    def test_pr_as_decimal(self):
        with pytest.raises(ValueError):
            _plant(performance_ratio=90)

    def test_days_in_operation(self):
        plant = _plant()
        assert plant.days_in_operation(date(2024, 1, 25)) == 10
        assert plant.days_in_operation(date(2023, 12, 1)) == 0
        assert _plant(commissioning_date=None).days_in_operation(date(2025, 1, 1)) == 0

    def test_revise_expected_yield(self):
        """Yield parameters are revisable; the original plant is unchanged."""
        plant = _plant()
        revised = plant.revise_expected_yield(daily_yield_hours=4.5)
        assert revised.daily_yield_hours == 4.5
        assert revised.investment == plant.investment
        assert plant.daily_yield_hours == 4.0

    def test_roundtrip(self):
        plant = _plant()
        assert Plant.from_dict(plant.to_dict()) == plant


class TestFinancialAssumptions:
    def test_with_tax_returns_new_snapshot(self):
        base = FinancialAssumptions()
        changed = base.with_tax(depreciation_years=3)
        assert changed.tax.depreciation_years == 3
        assert base.tax.depreciation_years == 5
        assert changed.tariffs == base.tariffs

    def test_from_dict_defaults(self):
        assumptions = FinancialAssumptions.from_dict({"tax": {"tax_rate": 0.33}})
        assert assumptions.tax.tax_rate == 0.33
        assert assumptions.tariffs.self_consumption_tariff == 750
        assert assumptions.projection.self_consumption_share == 0.60

    def test_snapshot_is_frozen(self):
        assumptions = FinancialAssumptions()
        with pytest.raises(Exception):
            assumptions.tax = TaxBenefitConfig()


# ---- Pipeline ----

class TestInvestmentSummary:
    def _summary(self, as_of, **kwargs):
        records = normalize_history(_raw_rows(**kwargs))
        return calculate_investment_summary([_plant()], records, FinancialAssumptions(), as_of)

    def test_six_months_before_first_tax_year(self):
        """30M saved over 6 months, no tax year completed: payback in 74 months."""
        summary = self._summary(date(2024, 8, 1))
        assert summary.months_of_operation == 6
        assert summary.tax_years_elapsed == 0
        assert summary.tax_savings_realized == 0.0
        assert summary.recovery.total_recovered == pytest.approx(30_000_000)
        assert summary.recovery.months_to_payback == 74
        assert summary.recovery.estimated_payback_month == date(2030, 10, 1)

    def test_first_tax_year_realized(self):
        """After one full year: (40M deduction + 80M depreciation) * 35% = 42M."""
        summary = self._summary(date(2025, 2, 1))
        assert summary.tax_years_elapsed == 1
        assert summary.tax_savings_realized == pytest.approx(42_000_000)
        assert summary.recovery.total_recovered == pytest.approx(72_000_000)
        assert summary.recovery.recovery_pct == pytest.approx(18.0)

    def test_indicators(self):
        summary = self._summary(date(2024, 8, 1))
        real = summary.indicators.real
        assert real.annual_savings == pytest.approx(60_000_000)
        assert real.payback.without_benefits == pytest.approx(400 / 60)
        assert real.payback.with_benefits <= real.payback.without_benefits
        projected = summary.indicators.projected
        assert projected.payback.with_benefits <= projected.payback.without_benefits

    def test_ebitda_latest_year(self):
        summary = self._summary(date(2024, 8, 1))
        ebitda = summary.indicators.ebitda
        assert ebitda.year == 2024
        assert ebitda.revenue == pytest.approx(30_000_000)
        assert ebitda.ebitda == pytest.approx(28_500_000)

    def test_net_investment(self):
        summary = self._summary(date(2024, 8, 1))
        assert summary.net_investment == pytest.approx(400_000_000 - 210_000_000)

    def test_records_of_other_plants_ignored(self):
        records = normalize_history(_raw_rows() + _raw_rows(plant_id="P2"))
        summary = calculate_investment_summary([_plant()], records, FinancialAssumptions(),
                                               date(2024, 8, 1))
        assert summary.revenue.savings_to_date == pytest.approx(30_000_000)

    def test_no_records(self):
        summary = calculate_investment_summary([_plant()], [], FinancialAssumptions(),
                                               date(2024, 8, 1))
        assert summary.months_of_operation == 0
        assert summary.indicators.ebitda is None
        assert summary.recovery.estimated_payback_month is None
        assert summary.indicators.real.payback.without_benefits is None

    def test_config_changes_do_not_leak(self):
        """Two computations with different snapshots are independent."""
        records = normalize_history(_raw_rows())
        base = FinancialAssumptions()
        short = base.with_tax(depreciation_years=2)
        first = calculate_investment_summary([_plant()], records, base, date(2025, 2, 1))
        second = calculate_investment_summary([_plant()], records, short, date(2025, 2, 1))
        again = calculate_investment_summary([_plant()], records, base, date(2025, 2, 1))
        assert second.tax_savings_realized > first.tax_savings_realized
        assert again.to_dict() == first.to_dict()

    def test_complete_years_between(self):
        assert complete_years_between(date(2024, 1, 15), date(2025, 1, 14)) == 0
        assert complete_years_between(date(2024, 1, 15), date(2025, 1, 15)) == 1
        assert complete_years_between(date(2024, 1, 15), date(2023, 1, 1)) == 0


class TestRevenueBreakdown:
    def test_payments_and_balance(self):
        records = [
            PeriodRecord("P1", 2024, 1, export_credits=100, cumulative_balance=100),
            PeriodRecord("P1", 2024, 2, export_credits=100, cumulative_balance=200),
            PeriodRecord("P1", 2024, 3, export_credits=50, cumulative_balance=50),
        ]
        breakdown = calculate_revenue_breakdown(records)
        assert breakdown.payments_received == 150
        assert breakdown.outstanding_balance == 50
        assert breakdown.last_month_credits == 50
        assert breakdown.last_year_credits == 250

    def test_empty(self):
        assert calculate_revenue_breakdown([]).savings_to_date == 0.0


class TestPlantSummary:
    def test_split_and_compliance(self):
        records = normalize_history(_raw_rows())
        summary = calculate_plant_summary(_plant(), records, date(2024, 8, 1))
        assert summary.generated_kwh == 360_000
        assert summary.self_consumption_pct == pytest.approx(60.0)
        assert summary.export_pct == pytest.approx(40.0)
        assert summary.days_in_operation == 199
        assert summary.year_compliance_pct > 0


# ---- Storage ----

class TestStorage:
    def test_save_load_roundtrip(self):
        """Save and reload a portfolio, verify data integrity."""
        assumptions = FinancialAssumptions(tariffs=TariffConfig(average_tariff=800))
        portfolio = Portfolio(
            name="Roundtrip Test",
            plants=[_plant()],
            records=normalize_history(
                _raw_rows() + [{"plant_id": "P1", "anio": 2023, "mes": 12, "generacion": 100}],
                assumptions.tariffs),
            assumptions=assumptions,
        )
        with tempfile.NamedTemporaryFile(suffix=".json", delete=False) as f:
            path = f.name

        try:
            save_portfolio(portfolio, path)
            loaded = load_portfolio(path)
            assert loaded.name == "Roundtrip Test"
            assert loaded.plants == portfolio.plants
            assert loaded.records == portfolio.records
            assert loaded.records[0].source == "legacy"
            assert loaded.assumptions.tariffs.average_tariff == 800
        finally:
            os.unlink(path)

    def test_raw_rows_normalized_on_load(self):
        data = {"plants": [_plant().to_dict()], "periods": _raw_rows(months=2)}
        portfolio = portfolio_from_dict(data)
        assert len(portfolio.records) == 2
        assert portfolio.records[0].savings == 5_000_000

    def test_hand_edited_canonical_rows_coerced(self):
        """String values in saved records are coerced, and the merge still sorts."""
        data = {
            "plants": [_plant().to_dict()],
            "periods": _raw_rows(months=1) + [
                {"plant_id": "P1", "year": "2024", "month": "1", "savings": "$ 850.000",
                 "generated_kwh": "61000", "source": "full"},
            ],
        }
        portfolio = portfolio_from_dict(data)
        assert [(r.year, r.month) for r in portfolio.records] == [(2024, 1), (2024, 2)]
        assert portfolio.records[0].savings == 850_000
        assert portfolio.records[0].generated_kwh == 61_000

    def test_canonical_row_without_period_skipped(self):
        data = {"plants": [_plant().to_dict()],
                "periods": [{"plant_id": "P1", "year": "", "month": 3, "source": "full"}]}
        assert portfolio_from_dict(data).records == []

    def test_non_object_period_rejected(self):
        with pytest.raises(DataSourceError):
            portfolio_from_dict({"plants": [], "periods": ["2024-01"]})

    def test_missing_file(self):
        with pytest.raises(DataSourceError):
            load_portfolio("/nonexistent/portfolio.json")

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(DataSourceError):
            load_portfolio(str(path))

    def test_malformed_plant(self):
        with pytest.raises(DataSourceError):
            portfolio_from_dict({"plants": [{"plant_id": "X", "capacity_kwp": -5}]})

    def test_not_an_object(self):
        with pytest.raises(DataSourceError):
            portfolio_from_dict([1, 2, 3])


# ---- Assumption Libraries ----

class TestLibraries:
    def test_bundled_library(self):
        library = AssumptionLibrary()
        assert "Ley 1715 Colombia" in library.get_library_names()
        assumptions = library.get_assumptions("Ley 1715 Colombia")
        assert assumptions.tax.deduction_cap == 0.50
        assert assumptions.tax.tax_rate == 0.35
        assert assumptions.tariffs.self_consumption_tariff == 750

    def test_unknown_library(self):
        with pytest.raises(KeyError):
            AssumptionLibrary().get_assumptions("Nope")

    def test_bad_file_skipped(self, tmp_path):
        (tmp_path / "good.json").write_text(json.dumps({
            "name": "Good", "tax": {"depreciation_years": 3}}), encoding="utf-8")
        (tmp_path / "bad.json").write_text("{oops", encoding="utf-8")
        library = AssumptionLibrary(str(tmp_path))
        assert library.get_library_names() == ["Good"]
        assert library.get_assumptions("Good").tax.depreciation_years == 3

    def test_out_of_range_library_skipped(self, tmp_path):
        """A tax rate above 1 never reaches a computation."""
        (tmp_path / "bad_rate.json").write_text(json.dumps({
            "name": "Bad", "tax": {"tax_rate": 35}}), encoding="utf-8")
        assert AssumptionLibrary(str(tmp_path)).get_library_names() == []

    def test_missing_directory(self, tmp_path):
        library = AssumptionLibrary(str(tmp_path / "nowhere"))
        assert library.get_library_names() == []

    def test_find_partial_name(self):
        library = AssumptionLibrary()
        assert library.find("extended") == "Ley 1715 Extended Deduction"
        assert library.find("zzz") is None

    def test_metadata(self):
        meta = AssumptionLibrary().get_library_metadata("Ley 1715 Colombia")
        assert meta["version"] == "2020"
        assert AssumptionLibrary().get_library_metadata("Nope")["source"] == ""

    def test_apply_to_portfolio(self, tmp_path):
        (tmp_path / "lib.json").write_text(json.dumps({
            "name": "Lib", "tax": {"tax_rate": 0.30}}), encoding="utf-8")
        portfolio = Portfolio(plants=[_plant()])
        AssumptionLibrary(str(tmp_path)).apply_library_to_portfolio(portfolio, "Lib")
        assert portfolio.assumptions.tax.tax_rate == 0.30
        assert portfolio.assumptions.name == "Lib"


# ---- Validation Tests ----

class TestValidation:
    def test_valid_capacity(self):
        valid, msg = validate_capacity(620)
        assert valid is True
        assert msg == ""

    def test_zero_capacity_invalid(self):
        valid, _ = validate_capacity(0)
        assert valid is False

    def test_low_pr_warning(self):
        valid, msg = validate_performance_ratio(0.5)
        assert valid is True
        assert "Warning" in msg

    def test_deduction_window_limit(self):
        valid, _ = validate_tax_config(TaxBenefitConfig(deduction_years=16))
        assert valid is False

    def test_portfolio_without_plants(self):
        valid, messages = validate_portfolio(Portfolio())
        assert valid is False

    def test_portfolio_without_history_warning(self):
        valid, messages = validate_portfolio(Portfolio(plants=[_plant()]))
        assert valid is True
        assert any("No billing history" in m for m in messages)
