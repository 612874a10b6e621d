"""Excel export of a portfolio analysis.

Sheets:
- Summary: investment, recovery and payback indicators
- Portfolio: plant x year cross-tab of paid / savings / cost without solar
- Tax_Schedule: year-by-year deduction, depreciation and tax saving
- Degradation: per-plant generation projection
- History: normalized monthly records
"""

import logging
from pathlib import Path
from typing import List

import xlsxwriter
from xlsxwriter.utility import xl_rowcol_to_cell

from src.models.calculations import InvestmentSummary
from src.models.degradation import project_generation
from src.models.plant import Portfolio
from src.models.portfolio import PortfolioConsolidation
from src.utils.formatters import format_month

logger = logging.getLogger(__name__)


def create_workbook(output_path: str, portfolio: Portfolio, summary: InvestmentSummary,
                    consolidation: PortfolioConsolidation) -> str:
    """Write the analysis workbook.

    Args:
        output_path: Destination path; the suffix is forced to .xlsx.
        portfolio: Analysed portfolio.
        summary: Investment summary for the portfolio.
        consolidation: Portfolio cross-tab.

    Returns:
        Path of the written file.
    """
    output_path = str(Path(output_path).with_suffix('.xlsx'))
    workbook = xlsxwriter.Workbook(output_path)
    fmt = _create_formats(workbook)

    _create_summary_sheet(workbook.add_worksheet('Summary'), fmt, portfolio, summary)
    _create_portfolio_sheet(workbook.add_worksheet('Portfolio'), fmt, consolidation)
    _create_tax_sheet(workbook.add_worksheet('Tax_Schedule'), fmt, summary)
    _create_degradation_sheet(workbook.add_worksheet('Degradation'), fmt, portfolio)
    _create_history_sheet(workbook.add_worksheet('History'), fmt, portfolio)

    workbook.close()
    logger.info("Workbook created: %s", output_path)
    return output_path


# =============================================================================
# FORMATS
# =============================================================================

def _create_formats(wb) -> dict:
    f = {}
    green = '#2E7D32'
    lgreen = '#E8F5E9'

    f['title'] = wb.add_format({'bold': True, 'font_size': 16, 'font_color': green})
    f['subtitle'] = wb.add_format({'italic': True, 'font_color': '#555555', 'font_size': 10})
    f['header'] = wb.add_format({'bold': True, 'font_color': 'white', 'bg_color': green,
                                 'align': 'center', 'border': 1, 'valign': 'vcenter'})
    f['bold'] = wb.add_format({'bold': True, 'border': 1})
    f['currency'] = wb.add_format({'num_format': '$#,##0', 'border': 1})
    f['number'] = wb.add_format({'num_format': '#,##0', 'border': 1})
    f['decimal'] = wb.add_format({'num_format': '#,##0.0', 'border': 1})
    f['factor'] = wb.add_format({'num_format': '0.0000', 'border': 1})
    f['percent'] = wb.add_format({'num_format': '0.0"%"', 'border': 1})
    f['text'] = wb.add_format({'border': 1})
    f['total_cur'] = wb.add_format({'bg_color': lgreen, 'border': 1, 'num_format': '$#,##0',
                                    'bold': True})
    f['total_pct'] = wb.add_format({'bg_color': lgreen, 'border': 1, 'num_format': '0.0"%"',
                                    'bold': True})
    return f


def _write_header(ws, row: int, headers: List[str], f) -> None:
    for col, header in enumerate(headers):
        ws.write(row, col, header, f['header'])


def _write_column_total(ws, total_row: int, col: int, first_row: int, fmt) -> None:
    """SUM of rows first_row..total_row-1, or 0 when the column has no data rows."""
    if total_row <= first_row:
        ws.write_number(total_row, col, 0, fmt)
        return
    start = xl_rowcol_to_cell(first_row, col)
    end = xl_rowcol_to_cell(total_row - 1, col)
    ws.write_formula(total_row, col, f"=SUM({start}:{end})", fmt)


# =============================================================================
# SHEETS
# =============================================================================

def _create_summary_sheet(ws, f, portfolio: Portfolio, summary: InvestmentSummary) -> None:
    ws.set_column(0, 0, 42)
    ws.set_column(1, 1, 20)
    ws.write(0, 0, f"{portfolio.name} - Investment Summary", f['title'])
    ws.write(1, 0, f"As of {summary.as_of.isoformat()} | Assumptions: {summary.assumptions.name}",
             f['subtitle'])

    recovery = summary.recovery
    real = summary.indicators.real
    projected = summary.indicators.projected
    rows = [
        ("Total investment", summary.investment, 'currency'),
        ("Installed capacity (kWp)", summary.capacity_kwp, 'number'),
        ("Months of operation", summary.months_of_operation, 'number'),
        ("Savings to date", summary.revenue.savings_to_date, 'currency'),
        ("Tax savings realized", summary.tax_savings_realized, 'currency'),
        ("Total recovered", recovery.total_recovered, 'currency'),
        ("Pending balance", recovery.display_pending(), 'currency'),
        ("Recovery (%)", recovery.display_pct(), 'percent'),
        ("Estimated payback month", format_month(recovery.estimated_payback_month), 'text'),
        ("Real payback without benefits (years)", real.payback.without_benefits, 'decimal'),
        ("Real payback with benefits (years)", real.payback.with_benefits, 'decimal'),
        ("Projected payback without benefits (years)", projected.payback.without_benefits, 'decimal'),
        ("Projected payback with benefits (years)", projected.payback.with_benefits, 'decimal'),
        ("ROI (%)", real.roi_pct, 'percent'),
    ]
    ebitda = summary.indicators.ebitda
    if ebitda is not None:
        rows.append((f"EBITDA {ebitda.year}", ebitda.ebitda, 'currency'))

    _write_header(ws, 3, ["Indicator", "Value"], f)
    for i, (label, value, style) in enumerate(rows, start=4):
        ws.write(i, 0, label, f['bold'])
        if value is None:
            ws.write(i, 1, "N/A", f['text'])
        else:
            ws.write(i, 1, value, f[style])


def _create_portfolio_sheet(ws, f, consolidation: PortfolioConsolidation) -> None:
    ws.write(0, 0, "Portfolio by Plant and Year", f['title'])
    ws.set_column(0, 0, 18)
    ws.set_column(1, 3 * max(len(consolidation.years), 1), 16)

    headers = ["Plant"]
    for year in consolidation.years:
        headers += [f"{year} Paid", f"{year} Savings", f"{year} Without Solar"]
    _write_header(ws, 2, headers, f)

    row = 3
    for plant_id in consolidation.plant_ids:
        ws.write(row, 0, plant_id, f['bold'])
        for j, year in enumerate(consolidation.years):
            totals = consolidation.cross_tab[plant_id][year]
            ws.write(row, 1 + 3 * j, totals.paid, f['currency'])
            ws.write(row, 2 + 3 * j, totals.savings, f['currency'])
            ws.write(row, 3 + 3 * j, totals.theoretical_cost, f['currency'])
        row += 1

    ws.write(row, 0, "Total", f['bold'])
    for col in range(1, 1 + 3 * len(consolidation.years)):
        _write_column_total(ws, row, col, 3, f['total_cur'])

    row += 2
    ws.write(row, 0, "Bill reduction (%)", f['bold'])
    ws.write(row, 1, consolidation.reduction_pct, f['total_pct'])


def _create_tax_sheet(ws, f, summary: InvestmentSummary) -> None:
    schedule = summary.tax_schedule
    config = schedule.config
    ws.set_column(0, 5, 18)
    ws.write(0, 0, "Tax Benefit Schedule", f['title'])
    ws.write(1, 0, (f"Deduction {config.deduction_cap * 100:.0f}% over {config.deduction_years} yr | "
                    f"Depreciation over {config.depreciation_years} yr | "
                    f"Tax rate {config.tax_rate * 100:.1f}%"), f['subtitle'])

    _write_header(ws, 3, ["Year", "Deduction", "Depreciation", "Deduction Saving",
                          "Depreciation Saving", "Tax Saving"], f)
    row = 4
    for year in schedule.years:
        ws.write(row, 0, year.year_index + 1, f['number'])
        ws.write(row, 1, year.deduction_taken, f['currency'])
        ws.write(row, 2, year.depreciation_taken, f['currency'])
        ws.write(row, 3, year.deduction_saving, f['currency'])
        ws.write(row, 4, year.depreciation_saving, f['currency'])
        ws.write(row, 5, year.tax_saving, f['currency'])
        row += 1

    ws.write(row, 0, "Total", f['bold'])
    for col in range(1, 6):
        _write_column_total(ws, row, col, 4, f['total_cur'])


def _create_degradation_sheet(ws, f, portfolio: Portfolio) -> None:
    ws.write(0, 0, "Generation Projection (kWh)", f['title'])
    lifespan = portfolio.assumptions.projection.lifespan_years
    projections = [
        (plant, project_generation(plant.capacity_kwp, plant.daily_yield_hours,
                                   performance_ratio=plant.performance_ratio,
                                   degradation_rate_pct=plant.degradation_rate_pct,
                                   lifespan_years=lifespan))
        for plant in portfolio.plants
    ]
    ws.set_column(0, len(projections), 16)
    _write_header(ws, 2, ["Year"] + [p.plant_id for p, _ in projections], f)

    n_years = max((len(proj.years) for _, proj in projections), default=0)
    for i in range(n_years):
        ws.write(3 + i, 0, i + 1, f['number'])
        for j, (_, proj) in enumerate(projections):
            ws.write(3 + i, 1 + j, proj.years[i].generation_kwh, f['number'])

    ws.write(3 + n_years, 0, "Lifetime", f['bold'])
    for j, (_, proj) in enumerate(projections):
        ws.write(3 + n_years, 1 + j, proj.lifetime_total_kwh, f['number'])


def _create_history_sheet(ws, f, portfolio: Portfolio) -> None:
    headers = ["Plant", "Year", "Month", "Generated kWh", "Self-consumed kWh",
               "Exported kWh", "Paid", "Export Credits", "Balance", "Savings",
               "Without Solar", "Source"]
    ws.set_column(0, len(headers) - 1, 15)
    _write_header(ws, 0, headers, f)
    for i, r in enumerate(portfolio.records, start=1):
        ws.write(i, 0, r.plant_id, f['text'])
        ws.write(i, 1, r.year, f['text'])
        ws.write(i, 2, r.month, f['text'])
        ws.write(i, 3, r.generated_kwh, f['number'])
        ws.write(i, 4, r.self_consumed_kwh, f['number'])
        ws.write(i, 5, r.exported_kwh, f['number'])
        ws.write(i, 6, r.amount_paid, f['currency'])
        ws.write(i, 7, r.export_credits, f['currency'])
        ws.write(i, 8, r.cumulative_balance, f['currency'])
        ws.write(i, 9, r.savings, f['currency'])
        ws.write(i, 10, r.cost_without_solar, f['currency'])
        ws.write(i, 11, r.source, f['text'])
    ws.freeze_panes(1, 0)
