"""JSON payload builders for the read endpoints.

Each builder turns engine results into the plain-dict contract served by
the HTTP layer (``/plants``, ``/plants/{id}``, ``/plants/history``,
``/plants/generation-history``, ``/plants/energy-distribution`` and
``/plants/investment-summary``). Field names are part of that contract.

Display rules live here and nowhere else: money is rounded to integers,
paybacks and percentages to one decimal, and recovery figures are
clamped to their displayable range.
"""

import calendar
from collections import defaultdict
from datetime import date, datetime
from typing import Dict, List, Optional

from src.models.calculations import InvestmentSummary, calculate_plant_summaries
from src.models.degradation import project_generation
from src.models.performance import (
    actual_hps,
    actual_performance_ratio,
    compliance_pct,
    share_pct,
    target_energy,
)
from src.models.plant import (
    REFERENCE_DAILY_YIELD_HOURS,
    REFERENCE_PERFORMANCE_RATIO,
    PeriodRecord,
    Plant,
    Portfolio,
)
from src.utils.formatters import format_month, month_name, short_period


def _money(value: float) -> int:
    return int(round(value))


def _one(value: float) -> float:
    return round(value, 1)


def _years(value: Optional[float]) -> Optional[float]:
    return round(value, 1) if value is not None else None


# ============================================================================
# GET /plants
# ============================================================================

def build_plants_summary(portfolio: Portfolio, as_of: date,
                         now: Optional[datetime] = None) -> List[dict]:
    """Per-plant summary: capacity, status, days in operation, energy split."""
    summaries = calculate_plant_summaries(
        portfolio.plants, portfolio.records, as_of, portfolio.last_seen, now)
    result = []
    for s in summaries:
        plant = s.plant
        result.append({
            "id": plant.plant_id,
            "name": plant.name,
            "location": plant.location,
            "capacity_kwp": plant.capacity_kwp,
            "investment": _money(plant.investment),
            "status": s.status,
            "days_in_operation": s.days_in_operation,
            "total_generation": _money(s.generated_kwh),
            "autoconsumo": _money(s.self_consumed_kwh),
            "exportacion": _money(s.exported_kwh),
            "pct_autoconsumo": _one(s.self_consumption_pct),
            "pct_exportacion": _one(s.export_pct),
            "generation_year": _money(s.generated_this_year_kwh),
            "cumplimiento_anio": _one(s.year_compliance_pct),
            "obj_today": _money(plant.daily_target_kwh()),
            "obj_month": _money(plant.monthly_target_kwh()),
            "obj_year": _money(plant.annual_target_kwh()),
        })
    return result


# ============================================================================
# GET /plants/{id}
# ============================================================================

def _year_history(records: List[PeriodRecord]) -> List[dict]:
    by_year: Dict[int, Dict[int, PeriodRecord]] = defaultdict(dict)
    for record in records:
        by_year[record.year][record.month] = record

    history = []
    for year in sorted(by_year, reverse=True):
        months = []
        for month in range(1, 13):
            record = by_year[year].get(month)
            months.append({
                "month": month,
                "name": month_name(month),
                "generation": _money(record.generated_kwh) if record else 0,
                "autoconsumo": _money(record.self_consumed_kwh) if record else 0,
                "exportacion": _money(record.exported_kwh) if record else 0,
                "savings": _money(record.savings) if record else 0,
            })
        history.append({
            "year": year,
            "generation": sum(m["generation"] for m in months),
            "autoconsumo": sum(m["autoconsumo"] for m in months),
            "exportacion": sum(m["exportacion"] for m in months),
            "months": months,
        })
    return history


def build_plant_detail(portfolio: Portfolio, plant_id: str, as_of: date,
                       now: Optional[datetime] = None) -> Optional[dict]:
    """Plant detail with yearly/monthly history and a degradation projection.

    Returns:
        Payload dict, or None if the plant does not exist.
    """
    plant = portfolio.get_plant(plant_id)
    if plant is None:
        return None

    summary = build_plants_summary(
        Portfolio(plants=[plant], records=portfolio.records_for(plant_id),
                  last_seen=portfolio.last_seen), as_of, now)[0]
    projection = project_generation(
        plant.capacity_kwp,
        plant.daily_yield_hours,
        performance_ratio=plant.performance_ratio,
        degradation_rate_pct=plant.degradation_rate_pct,
        lifespan_years=portfolio.assumptions.projection.lifespan_years,
    )
    detail = dict(summary)
    detail.update({
        "commissioning_date": (plant.commissioning_date.isoformat()
                               if plant.commissioning_date else None),
        "daily_yield_hours": plant.daily_yield_hours,
        "performance_ratio": plant.performance_ratio,
        "degradation_rate_pct": plant.degradation_rate_pct,
        "history": _year_history(portfolio.records_for(plant_id)),
        "proyeccion": {
            "years": [
                {
                    "year": y.year,
                    "factor": round(y.degradation_factor, 4),
                    "generation": _money(y.generation_kwh),
                    "daily_average": _one(y.daily_average_kwh),
                }
                for y in projection.years
            ],
            "lifetime_total": _money(projection.lifetime_total_kwh),
        },
    })
    return detail


# ============================================================================
# GET /plants/history
# ============================================================================

def build_history(records: List[PeriodRecord]) -> List[dict]:
    """Flat list of normalized monthly records across all plants."""
    return [
        {
            "plant_id": r.plant_id,
            "year": r.year,
            "month": r.month,
            "month_name": month_name(r.month),
            "generation": _money(r.generated_kwh),
            "autoconsumo": _money(r.self_consumed_kwh),
            "exportacion": _money(r.exported_kwh),
            "pay_real_total": _money(r.amount_paid),
            "income_surplus": _money(r.export_credits),
            "balance_cumulative": _money(r.cumulative_balance),
            "other_charges": _money(r.other_charges),
            "savings": _money(r.savings),
            "sin_solar": _money(r.cost_without_solar),
            "con_solar": _money(r.amount_paid),
            "source": r.source,
        }
        for r in records
    ]


# ============================================================================
# GET /plants/generation-history
# ============================================================================

def build_generation_history(plants: List[Plant], records: List[PeriodRecord]) -> dict:
    """Monthly portfolio generation against targets.

    Monthly targets use the real number of days in each month.
    """
    total_kwp = sum(p.capacity_kwp for p in plants)
    generated: Dict[tuple, float] = defaultdict(float)
    for record in records:
        generated[(record.year, record.month)] += record.generated_kwh

    data = []
    for year, month in sorted(generated):
        days = calendar.monthrange(year, month)[1]
        energy = generated[(year, month)]
        target = target_energy(total_kwp, days)
        data.append({
            "year": year,
            "month": month,
            "periodo": short_period(year, month),
            "generation": _money(energy),
            "meta": _money(target),
            "cumplimiento": _one(compliance_pct(energy, target)),
            "hps_real": round(actual_hps(energy, total_kwp, days), 2),
            "pr_real": _one(actual_performance_ratio(energy, total_kwp, days)),
        })

    return {
        "data": data,
        "parametros": {
            "totalKwp": total_kwp,
            "hpsRef": REFERENCE_DAILY_YIELD_HOURS,
            "prRef": REFERENCE_PERFORMANCE_RATIO,
            "metaDiaria": _money(target_energy(total_kwp, 1)),
            "metaMensual": _money(target_energy(total_kwp, 30)),
        },
    }


# ============================================================================
# GET /plants/energy-distribution
# ============================================================================

def _split(self_kwh: float, export_kwh: float) -> dict:
    total = self_kwh + export_kwh
    return {
        "autoconsumo": _money(self_kwh),
        "exportacion": _money(export_kwh),
        "total": _money(total),
        "pctAutoconsumo": _one(share_pct(self_kwh, total)),
        "pctExportacion": _one(share_pct(export_kwh, total)),
    }


def build_energy_distribution(records: List[PeriodRecord]) -> dict:
    """Self-consumption vs. export series plus yearly summary."""
    monthly: Dict[tuple, List[float]] = defaultdict(lambda: [0.0, 0.0])
    yearly: Dict[int, List[float]] = defaultdict(lambda: [0.0, 0.0])
    for record in records:
        for bucket in (monthly[(record.year, record.month)], yearly[record.year]):
            bucket[0] += record.self_consumed_kwh
            bucket[1] += record.exported_kwh

    data = []
    for year, month in sorted(monthly):
        row = {"periodo": short_period(year, month), "year": year, "month": month}
        row.update(_split(*monthly[(year, month)]))
        data.append(row)

    resumen = []
    for year in sorted(yearly):
        row = {"year": year}
        row.update(_split(*yearly[year]))
        resumen.append(row)

    return {"data": data, "resumen": resumen}


# ============================================================================
# GET /plants/investment-summary
# ============================================================================

def build_investment_summary(summary: InvestmentSummary) -> dict:
    """Full derived investment bundle."""
    revenue = summary.revenue
    schedule = summary.tax_schedule
    recovery = summary.recovery
    real = summary.indicators.real
    projected = summary.indicators.projected
    ebitda = summary.indicators.ebitda
    tariffs = summary.assumptions.tariffs
    model = summary.assumptions.projection

    return {
        "inversion": {
            "total": _money(summary.investment),
            "neta": _money(summary.net_investment),
        },
        "ingresos": {
            "cobros_celsia": _money(revenue.payments_received),
            "saldo_por_cobrar": _money(revenue.outstanding_balance),
            "ultimo_mes_celsia": _money(revenue.last_month_credits),
            "ultimo_anio_celsia": _money(revenue.last_year_credits),
            "ahorro_autoconsumo": _money(revenue.self_consumption_savings),
            "total_operativo": _money(revenue.savings_to_date),
            "kwh_autoconsumo": _money(revenue.self_consumed_kwh),
        },
        "gastos": {
            "pagado_celsia": _money(revenue.amount_paid),
        },
        "saldos": {
            "pendiente_celsia": _money(revenue.outstanding_balance),
            "meses_operacion": summary.months_of_operation,
        },
        "recuperacion": {
            "total_recuperado": _money(recovery.total_recovered) if recovery else 0,
            "saldo_pendiente": _money(recovery.display_pending()) if recovery else 0,
            "pct_recuperado": _one(recovery.display_pct()) if recovery else 0.0,
            "meses_restantes": recovery.months_to_payback if recovery else None,
            "fecha_payback_estimada": (
                format_month(recovery.estimated_payback_month)
                if recovery and recovery.estimated_payback_month else None
            ),
        },
        "ebitda": {
            "anio": ebitda.year if ebitda else None,
            "ingresos_anio": _money(ebitda.revenue) if ebitda else 0,
            "ebitda_anio": _money(ebitda.ebitda) if ebitda else 0,
            "margen": _one(ebitda.margin_pct) if ebitda else 0.0,
        },
        "beneficios_tributarios": {
            "total": _money(schedule.total_tax_saving),
            "ahorro_renta_50": _money(schedule.total_deduction_saving),
            "ahorro_depreciacion_5anos": _money(schedule.total_depreciation_saving),
            "realizado": _money(summary.tax_savings_realized),
            "anios_transcurridos": summary.tax_years_elapsed,
            "calendario": [
                {
                    "anio": y.year_index + 1,
                    "deduccion": _money(y.deduction_taken),
                    "depreciacion": _money(y.depreciation_taken),
                    "ahorro": _money(y.tax_saving),
                }
                for y in schedule.years
            ],
        },
        "indicadores_reales": {
            "ahorro_anual": _money(real.annual_savings),
            "ahorro_mensual_promedio": _money(real.average_monthly_savings),
            "payback_sin_beneficios": _years(real.payback.without_benefits),
            "payback_con_beneficios": _years(real.payback.with_benefits),
            "roi_porcentaje": _one(real.roi_pct),
        },
        "indicadores_proyectados": {
            "generacion_anual_kwh": _money(projected.annual_generation_kwh),
            "autoconsumo_anual_kwh": _money(projected.self_consumed_kwh),
            "exportacion_anual_kwh": _money(projected.exported_kwh),
            "ahorro_autoconsumo": _money(projected.self_consumption_savings),
            "ingreso_exportacion": _money(projected.export_income),
            "ahorro_anual": _money(projected.annual_savings),
            "payback_sin_beneficios": _years(projected.payback.without_benefits),
            "payback_con_beneficios": _years(projected.payback.with_benefits),
            "modelo": {
                "horas_sol_anual": model.annual_sun_hours,
                "tarifa_autoconsumo": tariffs.self_consumption_tariff,
                "tarifa_excedentes": tariffs.export_tariff,
                "pct_autoconsumo": _one(model.self_consumption_share * 100),
                "pct_exportacion": _one((1 - model.self_consumption_share) * 100),
            },
        },
    }
