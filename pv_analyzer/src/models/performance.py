"""Solar performance ratios: targets, actual HPS, actual PR and compliance.

Every ratio returns 0 when its denominator is zero.

Formulas:
    target     = kWp * HPS * PR * days
    HPS_real   = E / (kWp * PR * days)
    PR_real    = E / (kWp * HPS * days) * 100
    compliance = E / target * 100
"""

from datetime import datetime, timedelta
from typing import Optional

from src.models.plant import REFERENCE_DAILY_YIELD_HOURS, REFERENCE_PERFORMANCE_RATIO

ACTIVE_WINDOW = timedelta(minutes=30)
WARNING_WINDOW = timedelta(hours=24)


def target_energy(capacity_kwp: float, days: float,
                  daily_yield_hours: float = REFERENCE_DAILY_YIELD_HOURS,
                  performance_ratio: float = REFERENCE_PERFORMANCE_RATIO) -> float:
    """Expected generation (kWh) over a number of days."""
    if capacity_kwp <= 0 or days <= 0:
        return 0.0
    return capacity_kwp * daily_yield_hours * performance_ratio * days


def actual_hps(generated_kwh: float, capacity_kwp: float, days: float,
               performance_ratio: float = REFERENCE_PERFORMANCE_RATIO) -> float:
    """Equivalent full-sun hours per day implied by actual generation."""
    denominator = capacity_kwp * performance_ratio * days
    if denominator <= 0:
        return 0.0
    return generated_kwh / denominator


def actual_performance_ratio(generated_kwh: float, capacity_kwp: float, days: float,
                             daily_yield_hours: float = REFERENCE_DAILY_YIELD_HOURS) -> float:
    """Actual performance ratio in percent."""
    denominator = capacity_kwp * daily_yield_hours * days
    if denominator <= 0:
        return 0.0
    return generated_kwh / denominator * 100


def compliance_pct(generated_kwh: float, target_kwh: float) -> float:
    """Generation as a percentage of target."""
    if target_kwh <= 0:
        return 0.0
    return generated_kwh / target_kwh * 100


def share_pct(part: float, total: float) -> float:
    """Part as a percentage of total (0 when total is 0)."""
    if total <= 0:
        return 0.0
    return part / total * 100


def plant_status(last_seen: Optional[datetime], now: datetime) -> str:
    """Classify telemetry freshness: "active", "warning" or "inactive"."""
    if last_seen is None:
        return "inactive"
    age = now - last_seen
    if age <= ACTIVE_WINDOW:
        return "active"
    if age <= WARNING_WINDOW:
        return "warning"
    return "inactive"
