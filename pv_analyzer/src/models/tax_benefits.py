"""Tax benefit scheduler for renewable-energy investments.

Two independent incentive streams, each straight-lined over its own
window and indexed by zero-based year offset from commissioning:

- Income-tax deduction: a capped share of the investment deducted from
  taxable income over N1 years.
- Accelerated depreciation: the full investment depreciated over N2 years.

Tax saving for year i = (deduction_i + depreciation_i) * tax_rate

The schedule is re-derived from (investment, N1, N2, tax_rate, cap) on
every call; changing a window never depends on a previous schedule.

References:
    - Ley 1715 de 2014 (Colombia), art. 11 (deduction) and art. 14
      (accelerated depreciation).
"""

from dataclasses import dataclass, field
from typing import List

from src.models.plant import TaxBenefitConfig


@dataclass(frozen=True)
class TaxYearProjection:
    """Tax benefits for one year of the schedule.

    Attributes:
        year_index: Zero-based year offset from commissioning.
        deduction_taken: Income deduction taken in the year.
        depreciation_taken: Accelerated depreciation taken in the year.
        deduction_saving: Tax saved by the deduction.
        depreciation_saving: Tax saved by the depreciation.
        tax_saving: Total tax saved in the year.
    """

    year_index: int
    deduction_taken: float = 0.0
    depreciation_taken: float = 0.0
    deduction_saving: float = 0.0
    depreciation_saving: float = 0.0
    tax_saving: float = 0.0

    def to_dict(self) -> dict:
        return {
            "year_index": self.year_index,
            "deduction_taken": self.deduction_taken,
            "depreciation_taken": self.depreciation_taken,
            "deduction_saving": self.deduction_saving,
            "depreciation_saving": self.depreciation_saving,
            "tax_saving": self.tax_saving,
        }


@dataclass(frozen=True)
class TaxBenefitSchedule:
    """Complete tax benefit schedule for one investment and configuration."""

    investment: float = 0.0
    config: TaxBenefitConfig = field(default_factory=TaxBenefitConfig)
    years: List[TaxYearProjection] = field(default_factory=list)

    @property
    def total_deduction(self) -> float:
        return sum(y.deduction_taken for y in self.years)

    @property
    def total_depreciation(self) -> float:
        return sum(y.depreciation_taken for y in self.years)

    @property
    def total_deduction_saving(self) -> float:
        return sum(y.deduction_saving for y in self.years)

    @property
    def total_depreciation_saving(self) -> float:
        return sum(y.depreciation_saving for y in self.years)

    @property
    def total_tax_saving(self) -> float:
        return sum(y.tax_saving for y in self.years)

    def savings_for_year(self, year_index: int) -> float:
        """Tax saving for a zero-based year index (0 outside the schedule)."""
        if 0 <= year_index < len(self.years):
            return self.years[year_index].tax_saving
        return 0.0

    def savings_through(self, years_elapsed: int) -> float:
        """Cumulative tax saving realized after ``years_elapsed`` complete years."""
        return sum(y.tax_saving for y in self.years[:max(years_elapsed, 0)])

    def present_value(self, discount_rate: float) -> float:
        """Present value of the tax savings, discounted from the end of each year.

        Formula: PV = sum(S_i / (1 + r)^(i + 1))
        """
        return sum(y.tax_saving / (1 + discount_rate) ** (y.year_index + 1)
                   for y in self.years)

    def to_dict(self) -> dict:
        return {
            "investment": self.investment,
            "config": self.config.to_dict(),
            "years": [y.to_dict() for y in self.years],
            "total_deduction": self.total_deduction,
            "total_depreciation": self.total_depreciation,
            "total_tax_saving": self.total_tax_saving,
        }


def calculate_deduction_schedule(investment: float, years: int,
                                 cap: float = 0.50) -> List[float]:
    """Straight-line income deduction schedule.

    Args:
        investment: Total eligible investment.
        years: Deduction window N1 (0 disables the deduction).
        cap: Deductible share of the investment (decimal).

    Returns:
        List of length ``years`` with (investment * cap) / N1 each.
    """
    if years <= 0 or investment <= 0:
        return [0.0] * max(years, 0)
    annual = investment * cap / years
    return [annual] * years


def calculate_depreciation_schedule(investment: float, years: int) -> List[float]:
    """Straight-line accelerated depreciation schedule.

    Args:
        investment: Total depreciable investment.
        years: Depreciation window N2 (0 disables depreciation).

    Returns:
        List of length ``years`` with investment / N2 each.
    """
    return calculate_deduction_schedule(investment, years, cap=1.0)


def calculate_tax_benefit_schedule(investment: float,
                                   config: TaxBenefitConfig) -> TaxBenefitSchedule:
    """Build the year-by-year tax benefit schedule.

    Formula:
        deduction_i    = I * cap / N1          for i < N1, else 0
        depreciation_i = I / N2                for i < N2, else 0
        saving_i       = (deduction_i + depreciation_i) * tax_rate

    Args:
        investment: Total investment.
        config: Tax configuration snapshot.

    Returns:
        TaxBenefitSchedule spanning max(N1, N2) years.
    """
    deductions = calculate_deduction_schedule(
        investment, config.deduction_years, config.deduction_cap)
    depreciation = calculate_depreciation_schedule(investment, config.depreciation_years)

    years = []
    for i in range(config.horizon_years):
        deduction = deductions[i] if i < len(deductions) else 0.0
        depr = depreciation[i] if i < len(depreciation) else 0.0
        deduction_saving = deduction * config.tax_rate
        depreciation_saving = depr * config.tax_rate
        years.append(TaxYearProjection(
            year_index=i,
            deduction_taken=deduction,
            depreciation_taken=depr,
            deduction_saving=deduction_saving,
            depreciation_saving=depreciation_saving,
            tax_saving=deduction_saving + depreciation_saving,
        ))
    return TaxBenefitSchedule(investment=investment, config=config, years=years)
