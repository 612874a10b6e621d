"""Portfolio save/load functionality using JSON serialization.

A portfolio file holds plants, raw or canonical monthly periods, an
optional ``assumptions`` block and optional ``last_seen`` telemetry
timestamps. Raw billing rows are normalized on load.
"""

import json
import logging
from datetime import datetime
from pathlib import Path

from src.models.normalizer import coerce_month, coerce_number, normalize_history
from src.models.plant import FinancialAssumptions, PeriodRecord, Plant, Portfolio

logger = logging.getLogger(__name__)


class DataSourceError(Exception):
    """Raised when a portfolio source cannot be read or has the wrong shape."""


def save_portfolio(portfolio: Portfolio, filepath: str) -> None:
    """Save a portfolio to a JSON file.

    Args:
        portfolio: Portfolio object to save.
        filepath: Output file path (should end in .json).

    Raises:
        DataSourceError: If the file cannot be written.
    """
    data = portfolio.to_dict()
    path = Path(filepath)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, default=str)
    except OSError as e:
        raise DataSourceError(f"Cannot write portfolio to {path}: {e}") from e
    logger.debug("Saved portfolio '%s' to %s", portfolio.name, path)


_TEXT_FIELDS = ("plant_id", "source")


def _canonical_record(row: dict) -> PeriodRecord:
    """PeriodRecord from a saved row; hand-edited values are coerced like raw ones."""
    data = {k: v for k, v in row.items() if k in PeriodRecord.__dataclass_fields__}
    for name in PeriodRecord.__dataclass_fields__:
        if name not in _TEXT_FIELDS:
            data[name] = coerce_number(data.get(name))
    data["plant_id"] = str(data.get("plant_id", ""))
    data["source"] = str(data.get("source") or "full")
    data["year"] = int(data["year"])
    data["month"] = coerce_month(row.get("month"))
    return PeriodRecord(**data)


def portfolio_from_dict(data: dict) -> Portfolio:
    """Build a Portfolio from its JSON representation.

    Rows that carry a ``source`` field are canonical PeriodRecords written
    by save_portfolio(); every other row is treated as a raw billing
    extract and normalized with the portfolio's tariffs.

    Raises:
        DataSourceError: If required sections are missing or malformed.
    """
    if not isinstance(data, dict):
        raise DataSourceError(f"Portfolio must be a JSON object, got {type(data).__name__}")
    try:
        assumptions = FinancialAssumptions.from_dict(data.get("assumptions", {}))
        plants = [Plant.from_dict(p) for p in data.get("plants", [])]
        rows = data.get("periods", [])
        if any(not isinstance(r, dict) for r in rows):
            raise TypeError("every period must be a JSON object")
        canonical = []
        for row in (r for r in rows if "source" in r):
            record = _canonical_record(row)
            if record.year <= 0 or record.month == 0:
                logger.warning("Skipping period without year/month: %r", row)
                continue
            canonical.append(record)
        raw = [r for r in rows if "source" not in r]
        last_seen = {str(k): datetime.fromisoformat(v)
                     for k, v in data.get("last_seen", {}).items()}
    except (TypeError, ValueError, AttributeError) as e:
        raise DataSourceError(f"Malformed portfolio data: {e}") from e

    records = normalize_history(raw, assumptions.tariffs) if raw else []
    if canonical:
        by_key = {r.period_key: r for r in records}
        by_key.update({r.period_key: r for r in canonical})
        records = [by_key[key] for key in sorted(by_key)]

    known = {p.plant_id for p in plants}
    orphans = {r.plant_id for r in records} - known
    if orphans:
        logger.warning("Periods reference unknown plants: %s", ", ".join(sorted(orphans)))

    return Portfolio(
        name=data.get("name", "Portfolio"),
        plants=plants,
        records=records,
        assumptions=assumptions,
        last_seen=last_seen,
    )


def load_portfolio(filepath: str) -> Portfolio:
    """Load a portfolio from a JSON file.

    Args:
        filepath: Path to the JSON portfolio file.

    Returns:
        Reconstructed Portfolio object.

    Raises:
        DataSourceError: If the file is missing, not valid JSON or malformed.
    """
    try:
        with open(filepath, "r", encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError as e:
        raise DataSourceError(f"Portfolio file not found: {filepath}") from e
    except json.JSONDecodeError as e:
        raise DataSourceError(f"Portfolio file is not valid JSON: {filepath}: {e}") from e
    except OSError as e:
        raise DataSourceError(f"Cannot read portfolio file {filepath}: {e}") from e
    return portfolio_from_dict(data)
