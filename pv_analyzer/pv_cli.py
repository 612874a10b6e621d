#!/usr/bin/env python3
"""
PV Analyzer CLI - Solar Plant Investment Recovery Analysis Tool

A command-line interface over the PV Analyzer engine:
- Load a portfolio of plants and monthly billing history (JSON)
- Apply named assumption libraries (tariffs and tax incentive regime)
- Compute recovery, payback (real and projected), ROI and EBITDA
- Print the tax benefit schedule and the portfolio cross-tab
- Emit the JSON payload of any read endpoint
- Export to Excel workbook
- Save the normalized portfolio as JSON

Usage:
    python pv_cli.py --demo                          # Built-in demo portfolio
    python pv_cli.py --load portfolio.json           # Analyse a portfolio
    python pv_cli.py --load portfolio.json --json investment-summary
    python pv_cli.py --help                          # Show all options
"""

import argparse
import json
import logging
import sys
from datetime import date
from pathlib import Path
from typing import List, Optional

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent))

from src.data.libraries import AssumptionLibrary
from src.data.storage import DataSourceError, load_portfolio, save_portfolio
from src.data.validators import validate_portfolio
from src.models.calculations import InvestmentSummary, calculate_investment_summary
from src.models.normalizer import normalize_history
from src.models.plant import FinancialAssumptions, Plant, Portfolio
from src.models.portfolio import PortfolioConsolidation, consolidate_portfolio
from src.services.payloads import (
    build_energy_distribution,
    build_generation_history,
    build_history,
    build_investment_summary,
    build_plant_detail,
    build_plants_summary,
)
from src.utils.formatters import (
    format_currency,
    format_energy,
    format_month,
    format_percent,
    format_rate,
    format_years,
)

logger = logging.getLogger("pv_cli")

ENDPOINTS = ["plants", "plant-detail", "history", "generation-history",
             "energy-distribution", "investment-summary"]


# ============================================================================
# FORMATTING UTILITIES
# ============================================================================

def print_header(text: str, char: str = "=") -> None:
    """Print a formatted section header."""
    width = 70
    print(f"\n{char * width}")
    print(f" {text}")
    print(f"{char * width}")


def print_subheader(text: str) -> None:
    """Print a formatted subsection header."""
    print(f"\n--- {text} ---")


def print_table(headers: List[str], rows: List[List[str]],
                col_widths: Optional[List[int]] = None) -> None:
    """Print an ASCII table: labels left-aligned, figures right-aligned.

    A final row labelled "Total" is set off by a separator.
    """
    if col_widths is None:
        col_widths = [max(len(str(row[i])) for row in [headers] + rows) + 2
                      for i in range(len(headers))]

    def line(cells) -> str:
        first, *rest = [str(c) for c in cells]
        parts = [f" {first}".ljust(col_widths[0])]
        parts += [f"{c} ".rjust(w) for c, w in zip(rest, col_widths[1:])]
        return "|" + "|".join(parts) + "|"

    rule = "+" + "+".join("-" * w for w in col_widths) + "+"
    print(rule)
    print(line(headers))
    print(rule)
    for i, row in enumerate(rows):
        if i == len(rows) - 1 and i > 0 and str(row[0]) == "Total":
            print(rule)
        print(line(row))
    print(rule)


# ============================================================================
# DEMO PORTFOLIO
# ============================================================================

def create_demo_portfolio() -> Portfolio:
    """Create a one-plant demo: 620 kWp, 400M investment, twelve billed months."""
    plant = Plant(
        plant_id="PLT-001",
        name="Planta Demo",
        capacity_kwp=620.0,
        investment=400_000_000.0,
        commissioning_date=date(2024, 1, 15),
        location="Cali, Valle del Cauca",
    )
    raw = []
    balance = 0.0
    seasonal = [0.97, 0.95, 1.0, 0.93, 0.96, 1.02, 1.05, 1.04, 0.98, 0.94, 0.92, 0.99]
    for i, factor in enumerate(seasonal):
        year, month = (2024, i + 2) if i < 11 else (2025, 1)
        generation = 62_000 * factor
        credits = generation * 0.40 * 400
        balance = credits if month == 7 else balance + credits
        raw.append({
            "plant_id": plant.plant_id,
            "anio": year,
            "mes": month,
            "generacion": round(generation),
            "autoconsumo": round(generation * 0.60),
            "exportacion": round(generation * 0.40),
            "pay_real_total": 4_500_000,
            "income_surplus": -round(credits),
            "balance_cumulative": round(balance),
        })
    assumptions = FinancialAssumptions()
    return Portfolio(
        name="Demo Portfolio",
        plants=[plant],
        records=normalize_history(raw, assumptions.tariffs),
        assumptions=assumptions,
    )


# ============================================================================
# REPORT OUTPUT
# ============================================================================

def print_portfolio_summary(portfolio: Portfolio, as_of: date) -> None:
    """Display portfolio configuration."""
    print_header(f"PORTFOLIO: {portfolio.name}", "=")

    print_subheader("Plants")
    rows = []
    for plant in portfolio.plants:
        rows.append([
            plant.plant_id,
            plant.name[:24],
            f"{plant.capacity_kwp:,.1f}",
            format_currency(plant.investment, 1),
            str(plant.days_in_operation(as_of)),
            format_energy(plant.monthly_target_kwh()),
        ])
    print_table(["ID", "Name", "kWp", "Investment", "Days", "Target/month"], rows)

    assumptions = portfolio.assumptions
    tax = assumptions.tax
    tariffs = assumptions.tariffs
    print_subheader(f"Assumptions ({assumptions.name})")
    print(f"  Income Deduction:  {format_rate(tax.deduction_cap, 0)} over {tax.deduction_years} years")
    print(f"  Depreciation:      {tax.depreciation_years} years")
    print(f"  Tax Rate:          {format_rate(tax.tax_rate)}")
    print(f"  Self-use Tariff:   ${tariffs.self_consumption_tariff:,.0f}/kWh")
    print(f"  Export Tariff:     ${tariffs.export_tariff:,.0f}/kWh")
    print(f"  Records:           {len(portfolio.records)} monthly periods")


def print_results(summary: InvestmentSummary) -> None:
    """Display investment recovery results."""
    print_header("INVESTMENT RECOVERY", "=")

    recovery = summary.recovery
    real = summary.indicators.real
    projected = summary.indicators.projected

    metrics = [
        ("Total Investment", format_currency(summary.investment, 1)),
        ("Months of Operation", str(summary.months_of_operation)),
        ("Savings to Date", format_currency(summary.revenue.savings_to_date, 1)),
        ("Tax Savings Realized", format_currency(summary.tax_savings_realized, 1)),
        ("Total Recovered", format_currency(recovery.total_recovered, 1)),
        ("Pending Balance", format_currency(recovery.display_pending(), 1)),
        ("Recovery", format_percent(recovery.display_pct())),
        ("Estimated Payback Month", format_month(recovery.estimated_payback_month)),
        ("ROI", format_percent(real.roi_pct)),
    ]
    print()
    for name, value in metrics:
        print(f"  {name:<30} {value:>15}")

    print_subheader("PAYBACK")
    print(f"\n  {'':<22} {'Without benefits':>18} {'With benefits':>18}")
    print(f"  {'Real':<22} {format_years(real.payback.without_benefits):>18} "
          f"{format_years(real.payback.with_benefits):>18}")
    print(f"  {'Projected':<22} {format_years(projected.payback.without_benefits):>18} "
          f"{format_years(projected.payback.with_benefits):>18}")

    ebitda = summary.indicators.ebitda
    if ebitda is not None:
        print_subheader(f"EBITDA {ebitda.year}")
        print(f"\n  {'Revenue:':<30} {format_currency(ebitda.revenue, 1):>15}")
        print(f"  {'Operating Expense:':<30} {format_currency(ebitda.operating_expense, 1):>15}")
        print(f"  {'EBITDA:':<30} {format_currency(ebitda.ebitda, 1):>15}")
        print(f"  {'Margin:':<30} {format_percent(ebitda.margin_pct):>15}")


def print_tax_schedule(summary: InvestmentSummary) -> None:
    """Display the tax benefit schedule."""
    print_subheader("TAX BENEFIT SCHEDULE")
    schedule = summary.tax_schedule
    rows = [
        [str(y.year_index + 1), format_currency(y.deduction_taken, 1),
         format_currency(y.depreciation_taken, 1), format_currency(y.tax_saving, 1)]
        for y in schedule.years
    ]
    rows.append(["Total", format_currency(schedule.total_deduction, 1),
                 format_currency(schedule.total_depreciation, 1),
                 format_currency(schedule.total_tax_saving, 1)])
    print_table(["Year", "Deduction", "Depreciation", "Tax Saving"], rows)


def print_consolidation(consolidation: PortfolioConsolidation) -> None:
    """Display the year totals of the portfolio cross-tab."""
    print_subheader("PORTFOLIO BY YEAR")
    rows = [
        [str(year), format_currency(t.paid, 1), format_currency(t.savings, 1),
         format_currency(t.theoretical_cost, 1), format_percent(t.reduction_pct)]
        for year, t in consolidation.year_totals.items()
    ]
    total = consolidation.grand_total
    rows.append(["Total", format_currency(total.paid, 1), format_currency(total.savings, 1),
                 format_currency(total.theoretical_cost, 1), format_percent(total.reduction_pct)])
    print_table(["Year", "Paid", "Savings", "Without Solar", "Reduction"], rows)


def build_payload(endpoint: str, portfolio: Portfolio, summary: InvestmentSummary,
                  as_of: date, plant_id: Optional[str] = None):
    """Return the JSON payload for a read endpoint."""
    if endpoint == "plants":
        return build_plants_summary(portfolio, as_of)
    if endpoint == "plant-detail":
        plant_id = plant_id or (portfolio.plants[0].plant_id if portfolio.plants else "")
        return build_plant_detail(portfolio, plant_id, as_of)
    if endpoint == "history":
        return build_history(portfolio.records)
    if endpoint == "generation-history":
        return build_generation_history(portfolio.plants, portfolio.records)
    if endpoint == "energy-distribution":
        return build_energy_distribution(portfolio.records)
    return build_investment_summary(summary)


# ============================================================================
# MAIN CLI
# ============================================================================

def main():
    """Main entry point for CLI."""

    parser = argparse.ArgumentParser(
        description="PV Analyzer CLI - Solar Plant Investment Recovery Analysis",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python pv_cli.py --demo                              # Demo portfolio
  python pv_cli.py --load portfolio.json               # Analyse a portfolio
  python pv_cli.py --load portfolio.json -l "Ley 1715 Colombia"
  python pv_cli.py --load portfolio.json --depreciation-years 3
  python pv_cli.py --load portfolio.json --json investment-summary
  python pv_cli.py --load portfolio.json --excel report.xlsx
  python pv_cli.py --list-libraries
        """
    )

    parser.add_argument("--load", type=str,
                        help="Load portfolio from JSON file")
    parser.add_argument("--demo", action="store_true",
                        help="Use the built-in demo portfolio")
    parser.add_argument("--library", "-l", type=str,
                        help="Assumption library to apply (name or part of it)")
    parser.add_argument("--list-libraries", action="store_true",
                        help="List available assumption libraries and exit")
    parser.add_argument("--as-of", type=date.fromisoformat, default=None,
                        help="Reference date YYYY-MM-DD (default: today)")
    parser.add_argument("--deduction-years", type=int,
                        help="Override the income deduction window")
    parser.add_argument("--depreciation-years", type=int,
                        help="Override the accelerated depreciation window")
    parser.add_argument("--tax-rate", type=float,
                        help="Override the income tax rate (e.g., 0.35)")
    parser.add_argument("--plant", type=str,
                        help="Restrict the analysis to one plant ID")
    parser.add_argument("--json", type=str, choices=ENDPOINTS,
                        help="Print the JSON payload of an endpoint and exit")
    parser.add_argument("--excel", type=str, nargs="?", const="PV_Analysis.xlsx",
                        help="Export to Excel workbook")
    parser.add_argument("--save", type=str,
                        help="Save the normalized portfolio to JSON file")
    parser.add_argument("--quiet", "-q", action="store_true",
                        help="Suppress detailed output")
    parser.add_argument("--verbose", "-v", action="store_true",
                        help="Enable debug logging")

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    library_manager = AssumptionLibrary()
    if args.list_libraries:
        for name in library_manager.get_library_names():
            meta = library_manager.get_library_metadata(name)
            print(f"  {name:<32} {meta['source']} ({meta['version']})")
        return

    if not args.load and not args.demo:
        parser.error("one of --load or --demo is required")

    try:
        portfolio = load_portfolio(args.load) if args.load else create_demo_portfolio()
    except DataSourceError as e:
        logger.error("%s", e)
        sys.exit(1)

    if args.library:
        name = library_manager.find(args.library)
        if name is None:
            logger.error("Library '%s' not found. Available: %s", args.library,
                         ", ".join(library_manager.get_library_names()))
            sys.exit(1)
        library_manager.apply_library_to_portfolio(portfolio, name)

    overrides = {}
    if args.deduction_years is not None:
        overrides["deduction_years"] = args.deduction_years
    if args.depreciation_years is not None:
        overrides["depreciation_years"] = args.depreciation_years
    if args.tax_rate is not None:
        overrides["tax_rate"] = args.tax_rate
    if overrides:
        try:
            portfolio.assumptions = portfolio.assumptions.with_tax(**overrides)
        except ValueError as e:
            parser.error(str(e))

    is_valid, messages = validate_portfolio(portfolio)
    for msg in messages:
        logger.warning("%s", msg)
    if not is_valid:
        logger.error("Portfolio failed validation.")
        sys.exit(1)

    as_of = args.as_of or date.today()
    plants = portfolio.plants
    if args.plant:
        plants = [p for p in plants if p.plant_id == args.plant]
        if not plants:
            logger.error("Plant '%s' not found.", args.plant)
            sys.exit(1)

    summary = calculate_investment_summary(plants, portfolio.records, portfolio.assumptions, as_of)

    if args.json:
        payload = build_payload(args.json, portfolio, summary, as_of, args.plant)
        print(json.dumps(payload, indent=2, ensure_ascii=False, default=str))
        return

    selected_ids = {p.plant_id for p in plants}
    consolidation = consolidate_portfolio(r for r in portfolio.records if r.plant_id in selected_ids)

    if not args.quiet:
        print_portfolio_summary(portfolio, as_of)
        print_results(summary)
        print_tax_schedule(summary)
        print_consolidation(consolidation)

    if args.save:
        try:
            save_portfolio(portfolio, args.save)
        except DataSourceError as e:
            logger.error("%s", e)
            sys.exit(1)
        print(f"\nPortfolio saved to {args.save}")

    if args.excel:
        from src.reports.workbook import create_workbook

        output_path = create_workbook(args.excel, portfolio, summary, consolidation)
        print(f"\nExcel workbook generated: {output_path}")

    if not args.quiet:
        print_header("ANALYSIS COMPLETE", "=")
        recovery = summary.recovery
        print(f"\n  Recovered: {format_percent(recovery.display_pct())}  |  "
              f"Pending: {format_currency(recovery.display_pending(), 1)}  |  "
              f"Payback: {format_month(recovery.estimated_payback_month)}")
        print()


if __name__ == "__main__":
    main()
