"""Multi-year generation projection with geometric panel degradation.

Formula:
    E_1 = kWp * HPS * 365 * PR
    E_n = E_1 * (1 - d / 100) ^ (n - 1)

where d is the annual degradation rate in percent. PR defaults to 1.0,
i.e. nameplate performance.

References:
    - Jordan & Kurtz, "Photovoltaic Degradation Rates - an Analytical
      Review", NREL/JA-5200-51664 (median ~0.5 %/yr).
"""

import logging
import math
from dataclasses import dataclass, field
from typing import List

import numpy as np

logger = logging.getLogger(__name__)

# Longest horizon shown in projection tables
MAX_LIFESPAN_YEARS = 30


@dataclass(frozen=True)
class GenerationProjectionYear:
    """One year of the projection (year is 1-based)."""

    year: int
    degradation_factor: float
    generation_kwh: float
    daily_average_kwh: float

    def to_dict(self) -> dict:
        return {
            "year": self.year,
            "degradation_factor": self.degradation_factor,
            "generation_kwh": self.generation_kwh,
            "daily_average_kwh": self.daily_average_kwh,
        }


@dataclass(frozen=True)
class GenerationProjection:
    """Year-by-year generation projection and its lifetime total."""

    years: List[GenerationProjectionYear] = field(default_factory=list)

    @property
    def lifetime_total_kwh(self) -> float:
        return float(sum(y.generation_kwh for y in self.years))

    @property
    def first_year_kwh(self) -> float:
        return self.years[0].generation_kwh if self.years else 0.0

    def generation_series(self) -> List[float]:
        return [y.generation_kwh for y in self.years]

    def to_dict(self) -> dict:
        return {
            "years": [y.to_dict() for y in self.years],
            "lifetime_total_kwh": self.lifetime_total_kwh,
        }


def degradation_factors(degradation_rate_pct: float, lifespan_years: int) -> np.ndarray:
    """Remaining-capacity factor for each year 1..lifespan_years.

    Args:
        degradation_rate_pct: Annual degradation in percent (0.5 for 0.5 %/yr).
            Values outside [0, 100] are clamped and logged; NaN counts as 0.
        lifespan_years: Number of years.

    Returns:
        Array of length lifespan_years, starting at 1.0.
    """
    rate = 0.0 if math.isnan(degradation_rate_pct) else degradation_rate_pct
    rate = min(max(rate, 0.0), 100.0)
    if rate != degradation_rate_pct:
        logger.warning("Degradation rate %s%% clamped to %s%%", degradation_rate_pct, rate)
    exponents = np.arange(max(int(lifespan_years), 0), dtype=float)
    return (1.0 - rate / 100.0) ** exponents


def project_generation(
    capacity_kwp: float,
    daily_yield_hours: float,
    performance_ratio: float = 1.0,
    degradation_rate_pct: float = 0.0,
    lifespan_years: int = 25,
) -> GenerationProjection:
    """Project annual generation over the plant lifetime.

    Args:
        capacity_kwp: Installed capacity (kWp).
        daily_yield_hours: Equivalent full-sun hours per day.
        performance_ratio: Performance ratio applied to year 1 (decimal).
        degradation_rate_pct: Annual degradation in percent.
        lifespan_years: Horizon, clamped to [0, 30].

    Returns:
        GenerationProjection. Zero capacity or zero yield hours give an
        all-zero sequence of the requested length.
    """
    lifespan = min(max(int(lifespan_years), 0), MAX_LIFESPAN_YEARS)
    if lifespan != lifespan_years:
        logger.debug("Lifespan %s clamped to %d years", lifespan_years, lifespan)

    factors = degradation_factors(degradation_rate_pct, lifespan)
    first_year = max(capacity_kwp, 0.0) * max(daily_yield_hours, 0.0) * 365 * max(performance_ratio, 0.0)
    generation = first_year * factors
    daily = generation / 365

    years = [
        GenerationProjectionYear(
            year=i + 1,
            degradation_factor=float(factors[i]),
            generation_kwh=float(generation[i]),
            daily_average_kwh=float(daily[i]),
        )
        for i in range(lifespan)
    ]
    return GenerationProjection(years=years)
