"""
Rate Card - Pricing tables replicated from the quote spreadsheet.

Loaded from rate_card.csv (component, table, key, value) so prices can be
updated without touching the formulas.
"""
import hashlib
from pathlib import Path
from typing import Optional

import pandas as pd

from ..config.settings import get_settings, Settings
from ..engine.errors import CalculationError


def get_file_hash(path: Path) -> str:
    """Get SHA256 hash of a file."""
    if not path.exists():
        return ""
    with open(path, 'rb') as f:
        return hashlib.sha256(f.read()).hexdigest()[:12]


class RateCard:
    """Lookup of component pricing tables."""

    COLUMNS = ['component', 'table', 'key', 'value']

    def __init__(self, path: Optional[Path] = None, settings: Optional[Settings] = None):
        settings = settings or get_settings()
        self.path = Path(path) if path else settings.rate_card

        if not self.path.exists():
            raise FileNotFoundError(f"Rate card not found at {self.path}.")

        df = pd.read_csv(self.path, dtype={'component': str, 'table': str, 'key': str})

        missing = [c for c in self.COLUMNS if c not in df.columns]
        if missing:
            raise ValueError(f"Rate card {self.path} is missing columns: {', '.join(missing)}")

        for col in ('component', 'table', 'key'):
            df[col] = df[col].astype(str).str.strip()
        df['value'] = pd.to_numeric(df['value'], errors='coerce')

        bad_rows = df[df['value'].isna()]
        if not bad_rows.empty:
            keys = ", ".join(f"{r.component}/{r.table}/{r.key}" for r in bad_rows.itertuples())
            raise ValueError(f"Rate card {self.path} has non-numeric values for: {keys}")

        duplicates = df[df.duplicated(subset=['component', 'table', 'key'])]
        if not duplicates.empty:
            keys = ", ".join(f"{r.component}/{r.table}/{r.key}" for r in duplicates.itertuples())
            raise ValueError(f"Rate card {self.path} has duplicate entries for: {keys}")

        self.rates = df
        self.source_hash = get_file_hash(self.path)

        self._tables: dict[tuple[str, str], dict[str, float]] = {}
        for (component, table), group in df.groupby(['component', 'table'], sort=False):
            self._tables[(component, table)] = {
                key: float(value) for key, value in zip(group['key'], group['value'])
            }

    def lookup(self, component: str, table: str, key: str) -> float:
        """Get a single rate, raising CalculationError when it is not on the card."""
        try:
            return self._tables[(component, table)][key]
        except KeyError:
            raise CalculationError(component, f"No rate on the rate card for {table}/{key}")

    def table(self, component: str, table: str) -> dict[str, float]:
        """Get a whole pricing table as a {key: rate} dict."""
        if (component, table) not in self._tables:
            raise CalculationError(component, f"No rate table {table} on the rate card")
        return dict(self._tables[(component, table)])

    def keys(self, component: str, table: str) -> list[str]:
        return list(self.table(component, table))
