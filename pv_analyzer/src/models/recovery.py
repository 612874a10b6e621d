"""Investment recovery tracker.

Recovered value is the plant's cumulative savings plus the tax savings
realized so far. Values are returned unclamped; a pending balance turns
negative once the investment is recovered, and the recovery percentage
can exceed 100. Display clamping is left to the caller.
"""

import calendar
import math
from dataclasses import dataclass
from datetime import date
from typing import Optional


def add_months(start: date, months: int) -> date:
    """Add calendar months, clamping the day to the target month's length."""
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


@dataclass(frozen=True)
class RecoverySummary:
    """Recovery state of an investment at a given date.

    Attributes:
        investment: Total investment.
        total_recovered: Savings to date + tax savings to date.
        pending_balance: investment - total_recovered (may be negative).
        recovery_pct: total_recovered / investment * 100 (unclamped).
        months_to_payback: Months still needed at the current savings rate,
            or None when already recovered or the rate is zero.
        estimated_payback_month: First day of the estimated break-even
            month, or None.
    """

    investment: float
    total_recovered: float
    pending_balance: float
    recovery_pct: float
    months_to_payback: Optional[int] = None
    estimated_payback_month: Optional[date] = None

    @property
    def is_recovered(self) -> bool:
        return self.investment > 0 and self.pending_balance <= 0

    def display_pct(self) -> float:
        """Recovery percentage clamped to [0, 100]."""
        return min(max(self.recovery_pct, 0.0), 100.0)

    def display_pending(self) -> float:
        return max(self.pending_balance, 0.0)

    def to_dict(self) -> dict:
        return {
            "investment": self.investment,
            "total_recovered": self.total_recovered,
            "pending_balance": self.pending_balance,
            "recovery_pct": self.recovery_pct,
            "months_to_payback": self.months_to_payback,
            "estimated_payback_month": (
                self.estimated_payback_month.strftime("%Y-%m")
                if self.estimated_payback_month else None
            ),
        }


def track_recovery(
    investment: float,
    savings_to_date: float,
    tax_savings_to_date: float,
    average_monthly_savings: float,
    as_of: date,
) -> RecoverySummary:
    """Compute recovered value, pending balance and estimated break-even month.

    Formula:
        recovered = savings + tax_savings
        pending   = investment - recovered
        pct       = recovered / investment * 100
        months    = ceil(pending / average_monthly_savings)

    Args:
        investment: Total investment.
        savings_to_date: Cumulative normalized savings.
        tax_savings_to_date: Cumulative realized tax savings.
        average_monthly_savings: Historical average savings per month.
        as_of: Reference date for the break-even estimate.

    Returns:
        RecoverySummary. The payback month is only set when pending > 0
        and the savings rate is > 0.
    """
    recovered = savings_to_date + tax_savings_to_date
    pending = investment - recovered
    pct = recovered / investment * 100 if investment > 0 else 0.0

    months = None
    payback_month = None
    if pending > 0 and average_monthly_savings > 0:
        months = math.ceil(pending / average_monthly_savings)
        payback_month = add_months(as_of.replace(day=1), months)

    return RecoverySummary(
        investment=investment,
        total_recovered=recovered,
        pending_balance=pending,
        recovery_pct=pct,
        months_to_payback=months,
        estimated_payback_month=payback_month,
    )
