"""Number, currency and period formatting utilities for PV Analyzer."""

from datetime import date
from typing import Optional

MONTH_NAMES_ES = [
    "Enero", "Febrero", "Marzo", "Abril", "Mayo", "Junio",
    "Julio", "Agosto", "Septiembre", "Octubre", "Noviembre", "Diciembre",
]

_SCALES = ((1e9, "B"), (1e6, "M"), (1e3, "K"))


def format_currency(value: float, decimals: int = 0, prefix: str = "$") -> str:
    """Format an amount with a magnitude suffix.

    Args:
        value: Amount in currency units.
        decimals: Decimal places shown after scaling.
        prefix: Currency symbol.

    Returns:
        e.g. "$400.0M", "-$1.2B", "$850".
    """
    sign = "-" if value < 0 else ""
    magnitude = abs(value)
    for threshold, suffix in _SCALES:
        if magnitude >= threshold:
            return f"{sign}{prefix}{magnitude / threshold:,.{decimals}f}{suffix}"
    return f"{sign}{prefix}{magnitude:,.{decimals}f}"


def format_percent(value: float, decimals: int = 1) -> str:
    """Percentage already scaled to 0-100 (45.3 -> "45.3%")."""
    return f"{value:,.{decimals}f}%"


def format_rate(value: float, decimals: int = 1) -> str:
    """Format a decimal rate as a percentage (0.35 -> "35.0%")."""
    return f"{value * 100:,.{decimals}f}%"


def format_energy(value_kwh: float, decimals: int = 0) -> str:
    """Format energy, switching to MWh/GWh for large values."""
    if abs(value_kwh) >= 1e6:
        return f"{value_kwh / 1e6:,.{max(decimals, 2)}f} GWh"
    if abs(value_kwh) >= 1e3:
        return f"{value_kwh / 1e3:,.{max(decimals, 1)}f} MWh"
    return f"{value_kwh:,.{decimals}f} kWh"


def format_years(value: Optional[float]) -> str:
    """Format a value as years.

    Args:
        value: Number of years, or None if not calculable.

    Returns:
        Formatted string (e.g., "7.2 years" or "N/A").
    """
    if value is None:
        return "N/A"
    return f"{value:.1f} years"


def format_month(value: Optional[date]) -> str:
    """Format a date as "YYYY-MM" (None -> "N/A")."""
    if value is None:
        return "N/A"
    return value.strftime("%Y-%m")


def month_name(month: int) -> str:
    """Spanish month name for 1-12 (empty string otherwise)."""
    if 1 <= month <= 12:
        return MONTH_NAMES_ES[month - 1]
    return ""


def short_period(year: int, month: int) -> str:
    """Short period label, e.g. (2024, 1) -> "Ene 24"."""
    return f"{month_name(month)[:3]} {year % 100:02d}"
