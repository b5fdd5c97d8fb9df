"""
Centralized settings and path configuration for the pricing engine.
"""
import os
from pathlib import Path
from dataclasses import dataclass, field
from typing import Optional


def get_project_root() -> Path:
    """Get the project root directory (where pyproject.toml lives)."""
    current = Path(__file__).resolve()
    for parent in current.parents:
        if (parent / 'pyproject.toml').exists():
            return parent
    # Fallback to 3 levels up from this file
    return Path(__file__).resolve().parent.parent.parent.parent


@dataclass(frozen=True)
class DiscountPolicy:
    """Volume, bundle and term discount thresholds carried over from the quote spreadsheet."""

    # Monthly total thresholds (ascending) and their rates
    volume_tiers: tuple = ((5000.0, 0.10), (3000.0, 0.075), (1500.0, 0.05))

    # Enabled component count thresholds and bundle bonus rates
    bundle_tiers: tuple = ((4, 0.05), (3, 0.025))

    annual_incentive: float = 0.02
    term_incentive: float = 0.03

    max_monthly_discount: float = 0.20
    max_annual_discount: float = 0.25
    max_term_discount: float = 0.30


@dataclass
class Settings:
    """Application settings with sensible defaults."""

    # Project paths
    project_root: Path

    # Pricing tables
    rate_card: Path

    # Scheduling
    debounce_ms: int = 50
    max_history_size: int = 50

    # Financial defaults
    apr_rate: float = 0.05
    cpi_rate: float = 0.03
    default_term_months: int = 36
    default_device_count: int = 10
    months_per_year: int = 12
    contract_years: int = 3

    # Quote-level promotional/partner discount stacked onto the monthly rate
    additional_discount: float = 0.0

    discount_policy: DiscountPolicy = field(default_factory=DiscountPolicy)

    @property
    def debounce_seconds(self) -> float:
        return self.debounce_ms / 1000.0

    @classmethod
    def load(cls, project_root: Optional[Path] = None) -> 'Settings':
        """Load settings from the project structure and NAAS_* environment overrides."""
        root = project_root or get_project_root()
        package_dir = Path(__file__).resolve().parent.parent

        rate_card = os.environ.get('NAAS_RATE_CARD')

        return cls(
            project_root=root,
            rate_card=Path(rate_card) if rate_card else package_dir / 'data' / 'rate_card.csv',
            debounce_ms=int(os.environ.get('NAAS_DEBOUNCE_MS', 50)),
            apr_rate=float(os.environ.get('NAAS_APR_RATE', 0.05)),
            cpi_rate=float(os.environ.get('NAAS_CPI_RATE', 0.03)),
        )


# Default settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings.load()
    return _settings
