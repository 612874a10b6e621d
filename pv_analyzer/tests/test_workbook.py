"""Tests for the Excel export."""

import re
import zipfile
from datetime import date

import pytest

from src.models.calculations import calculate_investment_summary
from src.models.normalizer import normalize_history
from src.models.plant import FinancialAssumptions, Plant, Portfolio
from src.models.portfolio import consolidate_portfolio
from src.reports.workbook import create_workbook

SHEETS = ["Summary", "Portfolio", "Tax_Schedule", "Degradation", "History"]


def _portfolio(assumptions):
    plant = Plant(plant_id="P1", name="Planta 1", capacity_kwp=620, investment=400_000_000,
                  commissioning_date=date(2024, 1, 15))
    rows = [{"plant_id": "P1", "anio": 2024, "mes": m, "generacion": 60_000,
             "autoconsumo": 36_000, "exportacion": 24_000, "pay_real_total": 1_000_000,
             "ahorro": 5_000_000} for m in range(2, 5)]
    return Portfolio(name="Workbook Test", plants=[plant],
                     records=normalize_history(rows), assumptions=assumptions)


def _build(tmp_path, assumptions):
    portfolio = _portfolio(assumptions)
    summary = calculate_investment_summary(
        portfolio.plants, portfolio.records, portfolio.assumptions, date(2024, 5, 1))
    path = create_workbook(str(tmp_path / "analysis.xls"), portfolio, summary,
                           consolidate_portfolio(portfolio.records))
    return path


def _cell(xml, ref):
    """Inner XML of a cell, or None if the cell was not written."""
    match = re.search(rf'<c r="{ref}"[^>]*>(.*?)</c>', xml)
    return match.group(1) if match else None


def _sheet_xml(path, index):
    with zipfile.ZipFile(path) as zf:
        return zf.read(f"xl/worksheets/sheet{index}.xml").decode("utf-8")


class TestWorkbook:
    def test_sheets_created(self, tmp_path):
        path = _build(tmp_path, FinancialAssumptions())
        assert path.endswith(".xlsx")
        with zipfile.ZipFile(path) as zf:
            workbook_xml = zf.read("xl/workbook.xml").decode("utf-8")
        names = re.findall(r'<sheet name="([^"]+)"', workbook_xml)
        assert names == SHEETS

    def test_tax_schedule_rows_and_total(self, tmp_path):
        """Five schedule rows (Excel rows 5-9) summed in row 10."""
        xml = _sheet_xml(_build(tmp_path, FinancialAssumptions()), 3)
        # Year 1 deduction: 400M * 50% / 5
        assert float(re.search(r"<v>(.*?)</v>", _cell(xml, "B5")).group(1)) == pytest.approx(40_000_000)
        for col in "BCDEF":
            assert f"<f>SUM({col}5:{col}9)</f>" in _cell(xml, f"{col}10")

    def test_empty_tax_schedule_has_zero_totals(self, tmp_path):
        """With both windows at zero the total row holds 0, never a self-referencing SUM."""
        assumptions = FinancialAssumptions().with_tax(deduction_years=0, depreciation_years=0)
        xml = _sheet_xml(_build(tmp_path, assumptions), 3)
        assert "<f>" not in xml
        for col in "BCDEF":
            cell = _cell(xml, f"{col}5")
            assert cell is not None
            assert float(re.search(r"<v>(.*?)</v>", cell).group(1)) == 0.0

    def test_portfolio_total_covers_plant_rows(self, tmp_path):
        xml = _sheet_xml(_build(tmp_path, FinancialAssumptions()), 2)
        # One plant on Excel row 4, totals on row 5
        assert "<f>SUM(B4:B4)</f>" in _cell(xml, "B5")
