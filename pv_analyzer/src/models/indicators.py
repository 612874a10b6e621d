"""Investment indicators: payback, ROI and EBITDA.

Two payback branches are computed side by side:

- Real: from the elapsed operating history. The average monthly savings
  over the distinct months with records is annualized.
- Projected: from an idealized year-1 generation (nameplate performance
  from day one) valued at the blended self-consumption/export tariff.

Each branch reports payback without incentives and with the tax benefit
schedule layered on top. Tax savings are non-negative, so the
with-benefits payback is never longer than the one without.
"""

from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from src.models.degradation import project_generation
from src.models.plant import PeriodRecord, ProjectionConfig, TariffConfig
from src.models.tax_benefits import TaxBenefitSchedule


def _calculate_payback(annual_net: List[float]) -> Optional[float]:
    """Calculate simple payback period from net annual cash flows.

    Finds the first year where cumulative net cash flow turns non-negative,
    with linear interpolation within that year.

    Args:
        annual_net: Net cash flows starting at year 0.

    Returns:
        Payback period in years, or None if never achieved.
    """
    cumulative = 0.0
    for t, cf in enumerate(annual_net):
        prev_cumulative = cumulative
        cumulative += cf
        if cumulative >= 0 and t > 0:
            fraction = -prev_cumulative / cf if cf != 0 else 0
            return t - 1 + fraction
    return None


def calculate_payback(
    investment: float,
    annual_savings: float,
    tax_schedule: Optional[TaxBenefitSchedule] = None,
) -> Optional[float]:
    """Years until cumulative savings (plus tax savings) cover the investment.

    Without a schedule this is investment / annual_savings. With one, the
    flows [-I, s + tax_0, s + tax_1, ...] are walked year by year; after
    the schedule ends the remainder is covered at the plain savings rate.

    Args:
        investment: Total investment.
        annual_savings: Constant annual savings.
        tax_schedule: Optional tax benefit schedule (year 0 = first year).

    Returns:
        Payback in years, 0.0 for a zero investment, or None when the
        investment is never recovered.
    """
    if investment <= 0:
        return 0.0
    savings = max(annual_savings, 0.0)
    tax_years = tax_schedule.years if tax_schedule is not None else []

    annual_net = [-investment] + [savings + y.tax_saving for y in tax_years]
    payback = _calculate_payback(annual_net)
    if payback is not None:
        return payback

    if savings <= 0:
        return None
    remaining = -sum(annual_net)
    return len(tax_years) + remaining / savings


@dataclass(frozen=True)
class PaybackPair:
    """Payback in years without and with tax incentives (None = never)."""

    without_benefits: Optional[float] = None
    with_benefits: Optional[float] = None

    def to_dict(self) -> dict:
        return {
            "without_benefits": self.without_benefits,
            "with_benefits": self.with_benefits,
        }


def calculate_payback_pair(
    investment: float,
    annual_savings: float,
    tax_schedule: Optional[TaxBenefitSchedule],
) -> PaybackPair:
    return PaybackPair(
        without_benefits=calculate_payback(investment, annual_savings),
        with_benefits=calculate_payback(investment, annual_savings, tax_schedule),
    )


def calculate_roi(
    recovered: float,
    investment: float,
    elapsed_months: int = 0,
    annualize: bool = False,
) -> float:
    """Return on investment over the elapsed operating period.

    Formula: ROI = recovered / investment * 100
    Annualized: ROI * 12 / elapsed_months

    Returns:
        ROI in percent, 0.0 when the investment (or, for the annualized
        figure, the elapsed period) is zero.
    """
    if investment <= 0:
        return 0.0
    roi = recovered / investment * 100
    if annualize:
        if elapsed_months <= 0:
            return 0.0
        roi = roi * 12 / elapsed_months
    return roi


@dataclass(frozen=True)
class EbitdaResult:
    """EBITDA for one calendar year.

    Attributes:
        year: Calendar year.
        revenue: Savings produced in the year.
        operating_expense: Real OPEX, or revenue * opex_fraction.
        ebitda: revenue - operating_expense.
        estimated_opex: True when OPEX was derived from the fraction.
    """

    year: int
    revenue: float = 0.0
    operating_expense: float = 0.0
    ebitda: float = 0.0
    estimated_opex: bool = True

    @property
    def margin_pct(self) -> float:
        return self.ebitda / self.revenue * 100 if self.revenue else 0.0

    def to_dict(self) -> dict:
        return {
            "year": self.year,
            "revenue": self.revenue,
            "operating_expense": self.operating_expense,
            "ebitda": self.ebitda,
            "margin_pct": self.margin_pct,
            "estimated_opex": self.estimated_opex,
        }


def calculate_ebitda(
    records: Iterable[PeriodRecord],
    year: int,
    tariffs: TariffConfig,
    operating_expense: Optional[float] = None,
) -> EbitdaResult:
    """EBITDA for a calendar year.

    Formula: EBITDA(y) = revenue(y) - opex(y), opex defaulting to
    revenue(y) * opex_fraction.
    """
    revenue = sum(r.savings for r in records if r.year == year)
    estimated = operating_expense is None
    opex = revenue * tariffs.opex_fraction if estimated else operating_expense
    return EbitdaResult(
        year=year,
        revenue=revenue,
        operating_expense=opex,
        ebitda=revenue - opex,
        estimated_opex=estimated,
    )


@dataclass(frozen=True)
class RealIndicators:
    """Indicators derived from operating history."""

    elapsed_months: int = 0
    savings_to_date: float = 0.0
    average_monthly_savings: float = 0.0
    annual_savings: float = 0.0
    payback: PaybackPair = field(default_factory=PaybackPair)
    roi_pct: float = 0.0

    def to_dict(self) -> dict:
        return {
            "elapsed_months": self.elapsed_months,
            "savings_to_date": self.savings_to_date,
            "average_monthly_savings": self.average_monthly_savings,
            "annual_savings": self.annual_savings,
            "payback": self.payback.to_dict(),
            "roi_pct": self.roi_pct,
        }


@dataclass(frozen=True)
class ProjectedIndicators:
    """Indicators derived from an idealized year-1 generation."""

    annual_generation_kwh: float = 0.0
    self_consumed_kwh: float = 0.0
    exported_kwh: float = 0.0
    self_consumption_savings: float = 0.0
    export_income: float = 0.0
    payback: PaybackPair = field(default_factory=PaybackPair)

    @property
    def annual_savings(self) -> float:
        return self.self_consumption_savings + self.export_income

    def to_dict(self) -> dict:
        return {
            "annual_generation_kwh": self.annual_generation_kwh,
            "self_consumed_kwh": self.self_consumed_kwh,
            "exported_kwh": self.exported_kwh,
            "self_consumption_savings": self.self_consumption_savings,
            "export_income": self.export_income,
            "annual_savings": self.annual_savings,
            "payback": self.payback.to_dict(),
        }


@dataclass(frozen=True)
class InvestmentIndicators:
    """Real and projected indicators plus EBITDA for the latest year."""

    real: RealIndicators = field(default_factory=RealIndicators)
    projected: ProjectedIndicators = field(default_factory=ProjectedIndicators)
    ebitda: Optional[EbitdaResult] = None

    @property
    def roi_pct(self) -> float:
        return self.real.roi_pct

    def to_dict(self) -> dict:
        return {
            "real": self.real.to_dict(),
            "projected": self.projected.to_dict(),
            "ebitda": self.ebitda.to_dict() if self.ebitda else None,
        }


def distinct_months(records: Iterable[PeriodRecord]) -> int:
    """Number of distinct calendar months covered by the records."""
    return len({(r.year, r.month) for r in records})


def calculate_real_indicators(
    investment: float,
    savings_to_date: float,
    tax_savings_to_date: float,
    elapsed_months: int,
    tax_schedule: Optional[TaxBenefitSchedule] = None,
) -> RealIndicators:
    """Payback and ROI from operating history.

    Formula:
        avg_monthly = savings_to_date / elapsed_months
        annual      = avg_monthly * 12
        ROI         = (savings_to_date + tax_savings_to_date) / I * 100

    Args:
        investment: Total investment.
        savings_to_date: Cumulative normalized savings.
        tax_savings_to_date: Tax savings realized so far.
        elapsed_months: Distinct operating months with records.
        tax_schedule: Schedule used for the with-benefits payback.

    Returns:
        RealIndicators; zero elapsed months yields zero savings rates and
        no payback.
    """
    average = savings_to_date / elapsed_months if elapsed_months > 0 else 0.0
    annual = average * 12
    return RealIndicators(
        elapsed_months=elapsed_months,
        savings_to_date=savings_to_date,
        average_monthly_savings=average,
        annual_savings=annual,
        payback=calculate_payback_pair(investment, annual, tax_schedule),
        roi_pct=calculate_roi(savings_to_date + tax_savings_to_date, investment),
    )


def calculate_projected_indicators(
    investment: float,
    capacity_kwp: float,
    tariffs: TariffConfig,
    projection: ProjectionConfig,
    tax_schedule: Optional[TaxBenefitSchedule] = None,
) -> ProjectedIndicators:
    """Payback from an idealized year-1 generation.

    Formula:
        E_1     = kWp * (sun_hours / 365) * 365 * PR
        savings = E_1 * share * T_self + E_1 * (1 - share) * T_export
    """
    projection_years = project_generation(
        capacity_kwp,
        projection.daily_yield_hours,
        performance_ratio=projection.performance_ratio,
        lifespan_years=1,
    )
    generation = projection_years.first_year_kwh
    self_consumed = generation * projection.self_consumption_share
    exported = generation - self_consumed
    self_savings = self_consumed * tariffs.self_consumption_tariff
    export_income = exported * tariffs.export_tariff
    return ProjectedIndicators(
        annual_generation_kwh=generation,
        self_consumed_kwh=self_consumed,
        exported_kwh=exported,
        self_consumption_savings=self_savings,
        export_income=export_income,
        payback=calculate_payback_pair(investment, self_savings + export_income, tax_schedule),
    )
