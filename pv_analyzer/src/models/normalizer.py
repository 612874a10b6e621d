"""Record normalizer: heterogeneous monthly billing data to PeriodRecord.

Billing extracts come in two generations. Older ("legacy") rows only
report generated energy; newer ("full") rows carry the grid operator's
billing breakdown (self-consumption, exports, amount paid, surplus
credits, cumulative balance). Each raw row is classified once into a
tagged input type and resolved into a canonical PeriodRecord, so
downstream code never has to check which fields were present.

Numeric coercion never raises and never yields NaN: missing, empty or
malformed values become 0.0.
"""

import logging
import math
import re
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple, Union

from src.models.plant import PeriodRecord, TariffConfig

logger = logging.getLogger(__name__)

# Metering rounding allowed between generation and its split (kWh)
ENERGY_TOLERANCE_KWH = 1.0

MONTH_NAMES = {
    "enero": 1, "febrero": 2, "marzo": 3, "abril": 4, "mayo": 5, "junio": 6,
    "julio": 7, "agosto": 8, "septiembre": 9, "setiembre": 9, "octubre": 10,
    "noviembre": 11, "diciembre": 12,
    "january": 1, "february": 2, "march": 3, "april": 4, "may": 5, "june": 6,
    "july": 7, "august": 8, "september": 9, "october": 10, "november": 11,
    "december": 12,
}

# Canonical field -> accepted source keys, first match wins
FIELD_ALIASES = {
    "plant_id": ("plant_id", "planta_id", "plantId", "planta"),
    "year": ("year", "anio", "año"),
    "month": ("month", "mes"),
    "generated_kwh": ("generated_kwh", "generacion", "generation", "generacion_kwh"),
    "self_consumed_kwh": ("self_consumed_kwh", "autoconsumo", "self_consumption", "energy_self_kwh"),
    "exported_kwh": ("exported_kwh", "exportacion", "export", "energy_export_kwh"),
    "amount_paid": ("amount_paid", "pay_real_total", "pagado", "total_pagado"),
    "export_credits": ("export_credits", "income_surplus", "creditos_excedentes"),
    "hourly_valuation": ("hourly_valuation", "valoracion_horaria"),
    "cumulative_balance": ("cumulative_balance", "balance_cumulative", "saldo_acumulado"),
    "savings": ("savings", "ahorro", "ahorro_total"),
    "other_charges": ("other_charges", "otros_cargos"),
}

# Presence of any of these marks a full billing record
BILLING_FIELDS = (
    "self_consumed_kwh", "exported_kwh", "amount_paid", "export_credits",
    "hourly_valuation", "cumulative_balance", "savings",
)

_NUMBER_CHARS = re.compile(r"[^0-9,.\-]")


def coerce_number(value) -> float:
    """Convert an arbitrary field value to a finite float.

    Accepts ints, floats and formatted strings such as "$ 1.234.567,89"
    or "1,234.5". Anything missing or unparseable becomes 0.0.

    Args:
        value: Raw field value.

    Returns:
        Finite float, 0.0 when the value cannot be interpreted.
    """
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        number = float(value)
        return number if math.isfinite(number) else 0.0

    text = _NUMBER_CHARS.sub("", str(value))
    if not text or text in ("-", ".", ","):
        return 0.0
    if "," in text and "." in text:
        # The right-most separator is the decimal mark
        if text.rfind(",") > text.rfind("."):
            text = text.replace(".", "").replace(",", ".")
        else:
            text = text.replace(",", "")
    elif "," in text:
        head, _, tail = text.rpartition(",")
        if text.count(",") == 1 and len(tail) != 3:
            text = f"{head}.{tail}"
        else:
            text = text.replace(",", "")
    elif "." in text:
        # A single dot followed by exactly three digits is a thousands
        # separator ("$ 850.000"), matching the comma rule above
        tail = text.rpartition(".")[2]
        if text.count(".") > 1 or len(tail) == 3:
            text = text.replace(".", "")
    try:
        number = float(text)
    except ValueError:
        return 0.0
    return number if math.isfinite(number) else 0.0


def coerce_month(value) -> int:
    """Convert a month number or month name (Spanish or English) to 1-12, else 0."""
    if isinstance(value, str):
        key = value.strip().lower()
        if key in MONTH_NAMES:
            return MONTH_NAMES[key]
        for name, number in MONTH_NAMES.items():
            if len(key) >= 3 and name.startswith(key):
                return number
    month = int(coerce_number(value))
    return month if 1 <= month <= 12 else 0


def _resolve_aliases(raw: dict) -> Dict[str, object]:
    resolved = {}
    for canonical, keys in FIELD_ALIASES.items():
        for key in keys:
            if key in raw and raw[key] not in (None, ""):
                resolved[canonical] = raw[key]
                break
    return resolved


@dataclass(frozen=True)
class LegacyPeriodInput:
    """Raw period that only reports generated energy."""

    plant_id: str
    year: int
    month: int
    generated_kwh: float


@dataclass(frozen=True)
class FullPeriodInput:
    """Raw period with the grid operator's billing breakdown.

    ``savings`` is None when the source did not report it explicitly.
    """

    plant_id: str
    year: int
    month: int
    generated_kwh: float
    self_consumed_kwh: float
    exported_kwh: float
    amount_paid: float
    export_credits: float
    cumulative_balance: float
    other_charges: float
    savings: Optional[float] = None


PeriodInput = Union[LegacyPeriodInput, FullPeriodInput]


def classify_period(raw: dict) -> PeriodInput:
    """Classify a raw row as a legacy or full billing period.

    Args:
        raw: Source row, with canonical or Spanish field names.

    Returns:
        FullPeriodInput if any billing breakdown field is present,
        LegacyPeriodInput otherwise.
    """
    fields = _resolve_aliases(raw or {})
    plant_id = str(fields.get("plant_id", ""))
    year = int(coerce_number(fields.get("year")))
    month = coerce_month(fields.get("month"))
    generated = coerce_number(fields.get("generated_kwh"))

    if not any(name in fields for name in BILLING_FIELDS):
        return LegacyPeriodInput(plant_id, year, month, generated)

    self_consumed = coerce_number(fields.get("self_consumed_kwh"))
    exported = coerce_number(fields.get("exported_kwh"))
    if generated == 0:
        generated = self_consumed + exported

    # Surplus income is reported as negative credits on the bill
    credits = (abs(coerce_number(fields.get("export_credits")))
               + abs(coerce_number(fields.get("hourly_valuation"))))

    return FullPeriodInput(
        plant_id=plant_id,
        year=year,
        month=month,
        generated_kwh=generated,
        self_consumed_kwh=self_consumed,
        exported_kwh=exported,
        amount_paid=coerce_number(fields.get("amount_paid")),
        export_credits=credits,
        cumulative_balance=coerce_number(fields.get("cumulative_balance")),
        other_charges=coerce_number(fields.get("other_charges")),
        savings=coerce_number(fields["savings"]) if "savings" in fields else None,
    )


def resolve_period(period: PeriodInput, tariffs: TariffConfig) -> PeriodRecord:
    """Resolve a classified input into a canonical PeriodRecord.

    Full periods:
        self_consumption_savings = self_consumed * T_self
        savings = explicit savings, else self_consumption_savings + credits

    Legacy periods:
        savings = generated * T_avg
        amount_paid = savings * paid_multiplier

    Args:
        period: Output of classify_period().
        tariffs: Tariff snapshot used for the fallbacks.

    Returns:
        PeriodRecord with every numeric field finite.
    """
    if isinstance(period, LegacyPeriodInput):
        savings = period.generated_kwh * tariffs.average_tariff
        return PeriodRecord(
            plant_id=period.plant_id,
            year=period.year,
            month=period.month,
            generated_kwh=period.generated_kwh,
            amount_paid=savings * tariffs.paid_multiplier,
            savings=savings,
            source="legacy",
        )

    self_savings = period.self_consumed_kwh * tariffs.self_consumption_tariff
    savings = period.savings if period.savings is not None else self_savings + period.export_credits
    record = PeriodRecord(
        plant_id=period.plant_id,
        year=period.year,
        month=period.month,
        generated_kwh=period.generated_kwh,
        self_consumed_kwh=period.self_consumed_kwh,
        exported_kwh=period.exported_kwh,
        amount_paid=period.amount_paid,
        export_credits=period.export_credits,
        cumulative_balance=period.cumulative_balance,
        savings=savings,
        self_consumption_savings=self_savings,
        other_charges=period.other_charges,
        source="full",
    )
    if not record.energy_balanced(ENERGY_TOLERANCE_KWH):
        logger.warning(
            "Plant %s %04d-%02d: self-consumed + exported (%.1f kWh) exceeds generated (%.1f kWh)",
            record.plant_id, record.year, record.month,
            record.self_consumed_kwh + record.exported_kwh, record.generated_kwh,
        )
    return record


def normalize_period(raw: dict, tariffs: Optional[TariffConfig] = None) -> PeriodRecord:
    """Normalize one raw billing/generation row."""
    return resolve_period(classify_period(raw), tariffs or TariffConfig())


def normalize_history(
    raws: Iterable[dict],
    tariffs: Optional[TariffConfig] = None,
) -> List[PeriodRecord]:
    """Normalize a batch of raw rows into a sorted, de-duplicated series.

    Rows without a valid year or month are dropped. When two rows share
    (plant, year, month) the later row wins.

    Args:
        raws: Raw rows in source order.
        tariffs: Tariff snapshot for fallbacks.

    Returns:
        Records sorted by (plant_id, year, month).
    """
    tariffs = tariffs or TariffConfig()
    by_key: Dict[Tuple[str, int, int], PeriodRecord] = {}
    for raw in raws:
        record = normalize_period(raw, tariffs)
        if record.year <= 0 or record.month == 0:
            logger.warning("Skipping period without year/month: %r", raw)
            continue
        if record.period_key in by_key:
            logger.debug("Duplicate period %s replaced", record.period_key)
        by_key[record.period_key] = record
    return [by_key[key] for key in sorted(by_key)]


def detect_payments(
    records: List[PeriodRecord],
    drop_threshold: float = 0.5,
) -> List[Tuple[int, int, float]]:
    """Find grid-operator payouts from drops in the cumulative balance.

    A payout is assumed in any month where the balance falls by more than
    ``drop_threshold`` of the previous month's balance.

    Args:
        records: Records for a single plant, sorted by period.
        drop_threshold: Fractional drop that marks a payout.

    Returns:
        List of (year, month, amount paid out).
    """
    payments = []
    previous = None
    for record in records:
        if previous is not None and previous.cumulative_balance > 0:
            drop = previous.cumulative_balance - record.cumulative_balance
            if drop > previous.cumulative_balance * drop_threshold:
                payments.append((record.year, record.month, drop))
        previous = record
    return payments
