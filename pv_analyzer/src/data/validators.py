"""Input validation functions for PV Analyzer.

Each validator returns a tuple of (is_valid: bool, message: str).
Messages describe errors or warnings for user display.
"""

from typing import List, Tuple

from src.models.normalizer import ENERGY_TOLERANCE_KWH
from src.models.plant import MAX_DEDUCTION_YEARS, PeriodRecord, Plant, Portfolio, TaxBenefitConfig


def validate_capacity(capacity_kwp: float) -> Tuple[bool, str]:
    """Validate installed capacity in kWp.

    Args:
        capacity_kwp: Plant DC capacity.

    Returns:
        (is_valid, message) tuple.
    """
    if capacity_kwp <= 0:
        return False, "Capacity must be greater than 0 kWp."
    if capacity_kwp > 10000:
        return True, f"Warning: {capacity_kwp:,.0f} kWp is unusually large for distributed generation."
    return True, ""


def validate_investment(investment: float) -> Tuple[bool, str]:
    """Validate total investment."""
    if investment <= 0:
        return False, "Investment must be greater than 0."
    return True, ""


def validate_daily_yield_hours(hours: float) -> Tuple[bool, str]:
    """Validate expected equivalent full-sun hours per day.

    Args:
        hours: HPS (e.g., 4.0).

    Returns:
        (is_valid, message) tuple.
    """
    if hours <= 0:
        return False, "Daily yield hours must be greater than 0."
    if hours < 2 or hours > 7:
        return True, f"Warning: {hours} daily yield hours is outside the usual 2-7 h range."
    return True, ""


def validate_performance_ratio(ratio: float) -> Tuple[bool, str]:
    """Validate expected performance ratio.

    Args:
        ratio: PR as decimal (e.g., 0.90 for 90%).

    Returns:
        (is_valid, message) tuple.
    """
    if ratio <= 0 or ratio > 1:
        return False, "Performance ratio must be between 0% and 100%."
    if ratio < 0.65:
        return True, "Warning: Performance ratio below 65% suggests a faulty system."
    return True, ""


def validate_plant(plant: Plant) -> Tuple[bool, List[str]]:
    """Run all plant-level validations."""
    messages = []
    is_valid = True
    checks = [
        validate_capacity(plant.capacity_kwp),
        validate_investment(plant.investment),
        validate_daily_yield_hours(plant.daily_yield_hours),
        validate_performance_ratio(plant.performance_ratio),
    ]
    for valid, msg in checks:
        if not valid:
            is_valid = False
        if msg:
            messages.append(f"{plant.plant_id}: {msg}")
    if plant.commissioning_date is None:
        messages.append(f"{plant.plant_id}: Warning: No commissioning date; first billed month is used.")
    return is_valid, messages


def validate_tax_config(config: TaxBenefitConfig) -> Tuple[bool, str]:
    """Validate tax benefit windows and rates."""
    if config.deduction_years > MAX_DEDUCTION_YEARS:
        return False, f"Deduction window cannot exceed {MAX_DEDUCTION_YEARS} years."
    if config.deduction_cap > 0.5:
        return True, "Warning: Deduction cap above 50% of the investment."
    if config.deduction_years == 0 and config.depreciation_years == 0:
        return True, "Warning: Both tax benefit windows are zero; no tax savings."
    return True, ""


def validate_period_record(record: PeriodRecord) -> Tuple[bool, str]:
    """Validate the energy split of a normalized record."""
    if not record.energy_balanced(ENERGY_TOLERANCE_KWH):
        return True, (
            f"Warning: {record.plant_id} {record.year}-{record.month:02d}: "
            f"self-consumed + exported exceeds generated."
        )
    if record.source == "legacy":
        return True, (
            f"Warning: {record.plant_id} {record.year}-{record.month:02d}: "
            f"estimated from generation only."
        )
    return True, ""


def validate_portfolio(portfolio: Portfolio) -> Tuple[bool, List[str]]:
    """Run all validations on a complete portfolio.

    Args:
        portfolio: Portfolio to validate.

    Returns:
        (is_valid, messages) where messages includes all errors and warnings.
    """
    messages = []
    is_valid = True

    if not portfolio.plants:
        return False, ["No plants defined."]

    for plant in portfolio.plants:
        valid, plant_messages = validate_plant(plant)
        is_valid = is_valid and valid
        messages.extend(plant_messages)

    valid, msg = validate_tax_config(portfolio.assumptions.tax)
    if not valid:
        is_valid = False
    if msg:
        messages.append(msg)

    legacy = 0
    for record in portfolio.records:
        _, msg = validate_period_record(record)
        if record.source == "legacy":
            legacy += 1
        elif msg:
            messages.append(msg)
    if legacy:
        messages.append(f"Warning: {legacy} period(s) estimated from generation only.")

    if not portfolio.records:
        messages.append("Warning: No billing history. Real indicators will be zero.")

    return is_valid, messages
