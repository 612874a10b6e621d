"""Tests for the degradation projector."""

import logging
import math

import pytest

from src.models.degradation import (
    MAX_LIFESPAN_YEARS,
    degradation_factors,
    project_generation,
)


class TestDegradationFactors:
    def test_first_year_is_one(self):
        factors = degradation_factors(0.5, 10)
        assert factors[0] == 1.0

    def test_geometric_decay(self):
        """Year n factor = (1 - d/100)^(n-1)."""
        factors = degradation_factors(0.5, 25)
        assert factors[24] == pytest.approx(0.995 ** 24)

    @pytest.mark.parametrize("rate", [-0.1, float("nan")])
    def test_negative_or_nan_rate_is_no_degradation(self, rate, caplog):
        with caplog.at_level(logging.WARNING, logger="src.models.degradation"):
            factors = degradation_factors(rate, 10)
        assert list(factors) == [1.0] * 10
        assert "clamped" in caplog.text

    def test_rate_above_100_clamped(self):
        """Clamped to 100%: full output in year 1, nothing afterwards."""
        factors = degradation_factors(150.0, 3)
        assert list(factors) == [1.0, 0.0, 0.0]

    def test_projection_with_bad_rate_stays_finite(self):
        projection = project_generation(100, 4.0, degradation_rate_pct=-5.0, lifespan_years=5)
        assert len(set(projection.generation_series())) == 1
        assert all(math.isfinite(v) for v in projection.generation_series())


class TestProjectGeneration:
    def test_year_one(self):
        """Year 1 = kWp * HPS * 365 with nameplate PR."""
        projection = project_generation(620, 4.0)
        assert projection.years[0].generation_kwh == pytest.approx(620 * 4.0 * 365)
        assert projection.years[0].daily_average_kwh == pytest.approx(620 * 4.0)

    def test_performance_ratio_applied(self):
        projection = project_generation(620, 4.0, performance_ratio=0.9)
        assert projection.first_year_kwh == pytest.approx(620 * 4.0 * 365 * 0.9)

    def test_monotonic_non_increasing(self):
        series = project_generation(100, 4.5, degradation_rate_pct=0.7).generation_series()
        assert all(b <= a for a, b in zip(series, series[1:]))
        assert series[-1] < series[0]

    def test_constant_without_degradation(self):
        series = project_generation(100, 4.5, degradation_rate_pct=0.0).generation_series()
        assert len(set(series)) == 1

    def test_lifetime_total(self):
        projection = project_generation(100, 4.0, degradation_rate_pct=0.5, lifespan_years=25)
        expected = sum(100 * 4.0 * 365 * 0.995 ** n for n in range(25))
        assert projection.lifetime_total_kwh == pytest.approx(expected)

    def test_lifespan_capped(self):
        projection = project_generation(100, 4.0, lifespan_years=40)
        assert len(projection.years) == MAX_LIFESPAN_YEARS
        assert projection.years[-1].year == 30

    @pytest.mark.parametrize("capacity,hours", [(0, 4.0), (620, 0), (0, 0)])
    def test_zero_inputs_all_zero(self, capacity, hours):
        """Zero capacity or zero yield hours give an all-zero sequence."""
        projection = project_generation(capacity, hours, degradation_rate_pct=0.5)
        assert len(projection.years) == 25
        for year in projection.years:
            assert year.generation_kwh == 0.0
            assert year.daily_average_kwh == 0.0
            assert math.isfinite(year.degradation_factor)
        assert projection.lifetime_total_kwh == 0.0

    def test_zero_lifespan(self):
        projection = project_generation(100, 4.0, lifespan_years=0)
        assert projection.years == []
        assert projection.first_year_kwh == 0.0

    def test_to_dict(self):
        data = project_generation(10, 4.0, lifespan_years=2).to_dict()
        assert [y["year"] for y in data["years"]] == [1, 2]
        assert data["lifetime_total_kwh"] == pytest.approx(2 * 10 * 4.0 * 365)
