"""Financial calculation engine for PV Analyzer.

Combines the normalized billing history, the tax benefit schedule and
the projection model into a complete investment summary for one plant
or a portfolio. Every call recomputes from its explicit inputs; there is
no cached state between calls.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from src.models.indicators import (
    EbitdaResult,
    InvestmentIndicators,
    calculate_ebitda,
    calculate_projected_indicators,
    calculate_real_indicators,
    distinct_months,
)
from src.models.normalizer import detect_payments
from src.models.performance import compliance_pct, plant_status, share_pct
from src.models.plant import FinancialAssumptions, PeriodRecord, Plant
from src.models.recovery import RecoverySummary, track_recovery
from src.models.tax_benefits import TaxBenefitSchedule, calculate_tax_benefit_schedule

logger = logging.getLogger(__name__)


def complete_years_between(start: date, end: date) -> int:
    """Number of full years elapsed from start to end (0 if end < start)."""
    if end < start:
        return 0
    years = end.year - start.year
    if (end.month, end.day) < (start.month, start.day):
        years -= 1
    return years


def _operation_start(plant: Plant, records: List[PeriodRecord]) -> Optional[date]:
    """Commissioning date, or the first billed month when it is unknown."""
    if plant.commissioning_date is not None:
        return plant.commissioning_date
    if records:
        first = min(records, key=lambda r: (r.year, r.month))
        return date(first.year, first.month, 1)
    return None


def realized_tax_savings(
    plant: Plant,
    schedule: TaxBenefitSchedule,
    records: List[PeriodRecord],
    as_of: date,
) -> Tuple[int, float]:
    """Tax savings realized by ``as_of``.

    A tax year's saving is counted once the year has been completed.

    Returns:
        (complete tax years elapsed, realized tax saving).
    """
    start = _operation_start(plant, records)
    if start is None:
        return 0, 0.0
    years = complete_years_between(start, as_of)
    return years, schedule.savings_through(years)


def _records_by_plant(records: Iterable[PeriodRecord]) -> Dict[str, List[PeriodRecord]]:
    grouped: Dict[str, List[PeriodRecord]] = defaultdict(list)
    for record in records:
        grouped[record.plant_id].append(record)
    for plant_records in grouped.values():
        plant_records.sort(key=lambda r: (r.year, r.month))
    return grouped


@dataclass(frozen=True)
class RevenueBreakdown:
    """Revenue and billing totals across the analysed records.

    Attributes:
        savings_to_date: Total value produced (total operating income).
        self_consumption_savings: Value of self-consumed energy.
        self_consumed_kwh: Self-consumed energy.
        export_credits: Credits earned on exported surplus.
        payments_received: Payouts detected from balance drops.
        outstanding_balance: Latest cumulative balance still owed.
        last_month_credits: Export credits in the latest month.
        last_year_credits: Export credits in the latest year.
        amount_paid: Total billed and paid to the grid operator.
    """

    savings_to_date: float = 0.0
    self_consumption_savings: float = 0.0
    self_consumed_kwh: float = 0.0
    export_credits: float = 0.0
    payments_received: float = 0.0
    outstanding_balance: float = 0.0
    last_month_credits: float = 0.0
    last_year_credits: float = 0.0
    amount_paid: float = 0.0

    def to_dict(self) -> dict:
        return {
            "savings_to_date": self.savings_to_date,
            "self_consumption_savings": self.self_consumption_savings,
            "self_consumed_kwh": self.self_consumed_kwh,
            "export_credits": self.export_credits,
            "payments_received": self.payments_received,
            "outstanding_balance": self.outstanding_balance,
            "last_month_credits": self.last_month_credits,
            "last_year_credits": self.last_year_credits,
            "amount_paid": self.amount_paid,
        }


def calculate_revenue_breakdown(
    records: List[PeriodRecord],
    payment_drop_threshold: float = 0.5,
) -> RevenueBreakdown:
    """Total the revenue components of a set of records (any number of plants)."""
    if not records:
        return RevenueBreakdown()

    latest = max((r.year, r.month) for r in records)
    payments = 0.0
    outstanding = 0.0
    for plant_records in _records_by_plant(records).values():
        payments += sum(amount for _, _, amount in
                        detect_payments(plant_records, payment_drop_threshold))
        outstanding += plant_records[-1].cumulative_balance

    return RevenueBreakdown(
        savings_to_date=sum(r.savings for r in records),
        self_consumption_savings=sum(r.self_consumption_savings for r in records),
        self_consumed_kwh=sum(r.self_consumed_kwh for r in records),
        export_credits=sum(r.export_credits for r in records),
        payments_received=payments,
        outstanding_balance=outstanding,
        last_month_credits=sum(r.export_credits for r in records
                               if (r.year, r.month) == latest),
        last_year_credits=sum(r.export_credits for r in records if r.year == latest[0]),
        amount_paid=sum(r.amount_paid for r in records),
    )


@dataclass(frozen=True)
class InvestmentSummary:
    """Complete derived investment bundle for a set of plants.

    Attributes:
        as_of: Reference date of the computation.
        assumptions: Configuration snapshot used.
        investment: Total investment.
        capacity_kwp: Total installed capacity.
        months_of_operation: Distinct months with records.
        revenue: Revenue and billing totals.
        tax_schedule: Tax benefit schedule on the total investment.
        tax_years_elapsed: Complete tax years (earliest plant).
        tax_savings_realized: Tax savings realized by as_of.
        recovery: Recovery state.
        indicators: Real/projected payback, ROI and EBITDA.
    """

    as_of: date
    assumptions: FinancialAssumptions
    investment: float = 0.0
    capacity_kwp: float = 0.0
    months_of_operation: int = 0
    revenue: RevenueBreakdown = field(default_factory=RevenueBreakdown)
    tax_schedule: TaxBenefitSchedule = field(default_factory=TaxBenefitSchedule)
    tax_years_elapsed: int = 0
    tax_savings_realized: float = 0.0
    recovery: Optional[RecoverySummary] = None
    indicators: InvestmentIndicators = field(default_factory=InvestmentIndicators)

    @property
    def net_investment(self) -> float:
        """Investment net of the full tax benefit."""
        return self.investment - self.tax_schedule.total_tax_saving

    def to_dict(self) -> dict:
        return {
            "as_of": self.as_of.isoformat(),
            "assumptions": self.assumptions.to_dict(),
            "investment": self.investment,
            "net_investment": self.net_investment,
            "capacity_kwp": self.capacity_kwp,
            "months_of_operation": self.months_of_operation,
            "revenue": self.revenue.to_dict(),
            "tax_schedule": self.tax_schedule.to_dict(),
            "tax_years_elapsed": self.tax_years_elapsed,
            "tax_savings_realized": self.tax_savings_realized,
            "recovery": self.recovery.to_dict() if self.recovery else None,
            "indicators": self.indicators.to_dict(),
        }


def calculate_investment_summary(
    plants: List[Plant],
    records: List[PeriodRecord],
    assumptions: FinancialAssumptions,
    as_of: date,
    operating_expense: Optional[float] = None,
) -> InvestmentSummary:
    """Run the complete investment analysis for one or more plants.

    Args:
        plants: Plants included in the analysis.
        records: Normalized records; records of other plants are ignored.
        assumptions: Configuration snapshot read once for the whole call.
        as_of: Reference date.
        operating_expense: Real OPEX for the EBITDA year, if known.

    Returns:
        InvestmentSummary with every derived figure.
    """
    plant_ids = {p.plant_id for p in plants}
    records = [r for r in records if r.plant_id in plant_ids]
    by_plant = _records_by_plant(records)

    investment = sum(p.investment for p in plants)
    capacity = sum(p.capacity_kwp for p in plants)
    schedule = calculate_tax_benefit_schedule(investment, assumptions.tax)

    tax_years = 0
    tax_realized = 0.0
    for plant in plants:
        plant_schedule = calculate_tax_benefit_schedule(plant.investment, assumptions.tax)
        years, realized = realized_tax_savings(
            plant, plant_schedule, by_plant.get(plant.plant_id, []), as_of)
        tax_years = max(tax_years, years)
        tax_realized += realized

    months = distinct_months(records)
    revenue = calculate_revenue_breakdown(records, assumptions.tariffs.payment_drop_threshold)

    real = calculate_real_indicators(
        investment, revenue.savings_to_date, tax_realized, months, schedule)
    projected = calculate_projected_indicators(
        investment, capacity, assumptions.tariffs, assumptions.projection, schedule)

    ebitda: Optional[EbitdaResult] = None
    if records:
        latest_year = max(r.year for r in records)
        ebitda = calculate_ebitda(records, latest_year, assumptions.tariffs, operating_expense)

    recovery = track_recovery(
        investment,
        revenue.savings_to_date,
        tax_realized,
        real.average_monthly_savings,
        as_of,
    )

    logger.debug(
        "Investment summary for %d plant(s): investment=%.0f recovered=%.0f months=%d",
        len(plants), investment, recovery.total_recovered, months,
    )

    return InvestmentSummary(
        as_of=as_of,
        assumptions=assumptions,
        investment=investment,
        capacity_kwp=capacity,
        months_of_operation=months,
        revenue=revenue,
        tax_schedule=schedule,
        tax_years_elapsed=tax_years,
        tax_savings_realized=tax_realized,
        recovery=recovery,
        indicators=InvestmentIndicators(real=real, projected=projected, ebitda=ebitda),
    )


@dataclass(frozen=True)
class PlantSummary:
    """Operating summary for a single plant."""

    plant: Plant
    status: str = "inactive"
    days_in_operation: int = 0
    generated_kwh: float = 0.0
    self_consumed_kwh: float = 0.0
    exported_kwh: float = 0.0
    generated_this_year_kwh: float = 0.0
    year_compliance_pct: float = 0.0

    @property
    def self_consumption_pct(self) -> float:
        return share_pct(self.self_consumed_kwh, self.generated_kwh)

    @property
    def export_pct(self) -> float:
        return share_pct(self.exported_kwh, self.generated_kwh)


def calculate_plant_summary(
    plant: Plant,
    records: Iterable[PeriodRecord],
    as_of: date,
    last_seen: Optional[datetime] = None,
    now: Optional[datetime] = None,
) -> PlantSummary:
    """Summarize a plant's generation, energy split and target compliance."""
    own = [r for r in records if r.plant_id == plant.plant_id]
    this_year = [r for r in own if r.year == as_of.year]
    generated_this_year = sum(r.generated_kwh for r in this_year)
    # Year-to-date target: days elapsed this year, bounded by the operating period
    ytd_days = min((as_of - date(as_of.year, 1, 1)).days + 1,
                   plant.days_in_operation(as_of))
    target = plant.daily_target_kwh() * ytd_days
    return PlantSummary(
        plant=plant,
        status=plant_status(last_seen, now or datetime.combine(as_of, datetime.min.time())),
        days_in_operation=plant.days_in_operation(as_of),
        generated_kwh=sum(r.generated_kwh for r in own),
        self_consumed_kwh=sum(r.self_consumed_kwh for r in own),
        exported_kwh=sum(r.exported_kwh for r in own),
        generated_this_year_kwh=generated_this_year,
        year_compliance_pct=compliance_pct(generated_this_year, target),
    )


def calculate_plant_summaries(
    plants: List[Plant],
    records: List[PeriodRecord],
    as_of: date,
    last_seen: Optional[Mapping[str, datetime]] = None,
    now: Optional[datetime] = None,
) -> List[PlantSummary]:
    last_seen = last_seen or {}
    return [
        calculate_plant_summary(p, records, as_of, last_seen.get(p.plant_id), now)
        for p in plants
    ]
