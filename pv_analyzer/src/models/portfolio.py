"""Portfolio consolidation: plant x year cross-tabulation of billing figures.

Aggregation is a pure function of the records passed in. Plants with
partial history get zero-filled entries for the years they lack.
"""

from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, Iterable, List

from src.models.plant import PeriodRecord


@dataclass(frozen=True)
class YearTotals:
    """Paid, savings and theoretical (without-solar) cost for a grouping.

    Attributes:
        paid: Amount actually paid to the grid operator.
        savings: Value produced by the plants.
        theoretical_cost: paid + savings.
    """

    paid: float = 0.0
    savings: float = 0.0
    theoretical_cost: float = 0.0

    @property
    def reduction_pct(self) -> float:
        """Bill reduction achieved by solar.

        Formula: (1 - paid / theoretical_cost) * 100
        """
        if self.theoretical_cost == 0:
            return 0.0
        return (1 - self.paid / self.theoretical_cost) * 100

    def __add__(self, other: "YearTotals") -> "YearTotals":
        return YearTotals(
            paid=self.paid + other.paid,
            savings=self.savings + other.savings,
            theoretical_cost=self.theoretical_cost + other.theoretical_cost,
        )

    def to_dict(self) -> dict:
        return {
            "paid": self.paid,
            "savings": self.savings,
            "theoretical_cost": self.theoretical_cost,
            "reduction_pct": self.reduction_pct,
        }


@dataclass(frozen=True)
class PortfolioConsolidation:
    """Cross-tab of plant x year totals with yearly and grand totals."""

    plant_ids: List[str] = field(default_factory=list)
    years: List[int] = field(default_factory=list)
    cross_tab: Dict[str, Dict[int, YearTotals]] = field(default_factory=dict)
    year_totals: Dict[int, YearTotals] = field(default_factory=dict)
    grand_total: YearTotals = field(default_factory=YearTotals)

    @property
    def reduction_pct(self) -> float:
        return self.grand_total.reduction_pct

    def plant_total(self, plant_id: str) -> YearTotals:
        total = YearTotals()
        for totals in self.cross_tab.get(plant_id, {}).values():
            total = total + totals
        return total

    def to_dict(self) -> dict:
        return {
            "plant_ids": list(self.plant_ids),
            "years": list(self.years),
            "cross_tab": {
                plant_id: {str(year): totals.to_dict() for year, totals in by_year.items()}
                for plant_id, by_year in self.cross_tab.items()
            },
            "year_totals": {str(year): t.to_dict() for year, t in self.year_totals.items()},
            "grand_total": self.grand_total.to_dict(),
        }


def _record_totals(record: PeriodRecord) -> YearTotals:
    return YearTotals(
        paid=record.amount_paid,
        savings=record.savings,
        theoretical_cost=record.cost_without_solar,
    )


def consolidate_portfolio(records: Iterable[PeriodRecord]) -> PortfolioConsolidation:
    """Group records by plant and year and total them.

    Args:
        records: Normalized records for any number of plants.

    Returns:
        PortfolioConsolidation where every plant has an entry for every
        year present anywhere in the portfolio.
    """
    sums: Dict[str, Dict[int, YearTotals]] = defaultdict(dict)
    for record in records:
        by_year = sums[record.plant_id]
        by_year[record.year] = by_year.get(record.year, YearTotals()) + _record_totals(record)

    plant_ids = sorted(sums)
    years = sorted({year for by_year in sums.values() for year in by_year})

    cross_tab = {
        plant_id: {year: sums[plant_id].get(year, YearTotals()) for year in years}
        for plant_id in plant_ids
    }
    year_totals = {}
    for year in years:
        total = YearTotals()
        for plant_id in plant_ids:
            total = total + cross_tab[plant_id][year]
        year_totals[year] = total

    grand_total = YearTotals()
    for total in year_totals.values():
        grand_total = grand_total + total

    return PortfolioConsolidation(
        plant_ids=plant_ids,
        years=years,
        cross_tab=cross_tab,
        year_totals=year_totals,
        grand_total=grand_total,
    )
