"""Assumption library loader for PV Analyzer.

A library is a JSON file describing one tax regime and tariff context:
descriptive metadata plus ``tax``, ``tariffs`` and ``projection`` blocks.
Files are parsed into FinancialAssumptions when the directory is scanned,
so a library with out-of-range values never reaches a computation.
"""

import json
import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

from src.models.plant import FinancialAssumptions, Portfolio

logger = logging.getLogger(__name__)


def _get_resource_path(relative_path: str) -> Path:
    """Absolute path to a bundled resource (source tree or frozen build)."""
    if getattr(sys, 'frozen', False) and hasattr(sys, '_MEIPASS'):
        return Path(sys._MEIPASS) / relative_path
    return Path(__file__).resolve().parent.parent.parent / relative_path


DEFAULT_LIBRARY_DIR = _get_resource_path("resources/libraries")


@dataclass(frozen=True)
class LibraryInfo:
    """Provenance of an assumption library."""

    name: str
    source: str = ""
    version: str = ""
    date_published: str = ""
    url: str = ""
    notes: str = ""
    path: Optional[Path] = None

    def to_dict(self) -> Dict[str, str]:
        return {
            "source": self.source,
            "version": self.version,
            "date_published": self.date_published,
            "url": self.url,
            "notes": self.notes,
        }


def load_library_file(path: Path) -> tuple:
    """Parse one library file.

    Returns:
        (LibraryInfo, FinancialAssumptions)

    Raises:
        ValueError: If the file is not valid JSON or a parameter is out of range.
    """
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError("library must be a JSON object")

    name = str(data.get("name") or path.stem)
    info = LibraryInfo(
        name=name,
        source=data.get("source", ""),
        version=str(data.get("version", "")),
        date_published=data.get("date_published", ""),
        url=data.get("url", ""),
        notes=data.get("notes", ""),
        path=path,
    )
    assumptions = FinancialAssumptions.from_dict({
        "name": name,
        "tax": data.get("tax", {}),
        "tariffs": data.get("tariffs", {}),
        "projection": data.get("projection", {}),
    })
    return info, assumptions


class AssumptionLibrary:
    """Named assumption sets available to a computation.

    Args:
        library_dir: Directory holding library JSON files.
            Defaults to resources/libraries/.
    """

    def __init__(self, library_dir: str = ""):
        self.library_dir = Path(library_dir) if library_dir else DEFAULT_LIBRARY_DIR
        self._info: Dict[str, LibraryInfo] = {}
        self._assumptions: Dict[str, FinancialAssumptions] = {}
        self._scan()

    def _scan(self) -> None:
        if not self.library_dir.is_dir():
            logger.warning("Assumption library directory not found: %s", self.library_dir)
            return
        for path in sorted(self.library_dir.glob("*.json")):
            try:
                info, assumptions = load_library_file(path)
            except (OSError, ValueError, TypeError) as e:
                # json.JSONDecodeError is a ValueError
                logger.warning("Skipping assumption library %s: %s", path.name, e)
                continue
            if info.name in self._info:
                logger.warning("Library '%s' in %s shadows %s",
                               info.name, path.name, self._info[info.name].path.name)
            self._info[info.name] = info
            self._assumptions[info.name] = assumptions
        logger.debug("Loaded %d assumption libraries from %s",
                     len(self._info), self.library_dir)

    def get_library_names(self) -> List[str]:
        return sorted(self._info)

    def get_library_metadata(self, name: str) -> Dict[str, str]:
        """Provenance of a library; empty strings when the name is unknown."""
        info = self._info.get(name)
        return info.to_dict() if info else LibraryInfo(name=name).to_dict()

    def find(self, partial: str) -> Optional[str]:
        """First library name containing ``partial`` (case-insensitive)."""
        needle = partial.lower()
        for name in self.get_library_names():
            if needle in name.lower():
                return name
        return None

    def get_assumptions(self, library_name: str) -> FinancialAssumptions:
        """Assumptions snapshot for a library.

        Blocks missing from the file keep their defaults.

        Raises:
            KeyError: If library_name is not found.
        """
        try:
            return self._assumptions[library_name]
        except KeyError:
            raise KeyError(
                f"Library '{library_name}' not found. Available: {self.get_library_names()}"
            ) from None

    def apply_library_to_portfolio(self, portfolio: Portfolio, library_name: str) -> None:
        """Replace a portfolio's assumptions with a library's, in place.

        Raises:
            KeyError: If library_name is not found.
        """
        portfolio.assumptions = self.get_assumptions(library_name)
