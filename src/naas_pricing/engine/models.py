"""
Data models for the pricing engine.

Uses dataclasses for structured, type-safe data representation.
"""
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class ComponentType(str, Enum):
    """Every configurable pricing component of a quote."""
    HELP = "help"
    ASSESSMENT = "assessment"
    ADMIN = "admin"
    OTHER_COSTS = "other_costs"
    PRTG = "prtg"
    CAPITAL = "capital"
    ONBOARDING = "onboarding"
    PBS_FOUNDATION = "pbs_foundation"
    SUPPORT = "support"
    ENHANCED_SUPPORT = "enhanced_support"
    NAAS_STANDARD = "naas_standard"
    NAAS_ENHANCED = "naas_enhanced"
    DYNAMICS_1_YEAR = "dynamics_1_year"
    DYNAMICS_3_YEAR = "dynamics_3_year"
    DYNAMICS_5_YEAR = "dynamics_5_year"


class BillingModel(str, Enum):
    """Whether a component is billed once or on a recurring basis."""
    ONE_TIME = "one_time"
    RECURRING = "recurring"


@dataclass(frozen=True)
class ComponentDefinition:
    """Static description of a component and its place in the dependency graph."""
    id: ComponentType
    level: int
    billing_model: BillingModel
    category: str
    description: str
    display_name: str
    dependencies: frozenset = frozenset()
    provides: frozenset = frozenset()
    requires: dict = field(default_factory=dict)  # ComponentType -> frozenset of field names
    depends_on_all: bool = False  # consumes every enabled lower-level component
    term_years: Optional[int] = None

    def __hash__(self):
        return hash(self.id)


@dataclass(frozen=True)
class Totals:
    """Cost totals for a component or a quote."""
    one_time: float = 0.0
    monthly: float = 0.0
    annual: float = 0.0
    three_year: float = 0.0

    def is_finite(self) -> bool:
        return all(math.isfinite(v) for v in (self.one_time, self.monthly, self.annual, self.three_year))

    def as_dict(self) -> dict:
        return {
            "one_time": self.one_time,
            "monthly": self.monthly,
            "annual": self.annual,
            "three_year": self.three_year,
        }


@dataclass(frozen=True)
class CalculationResult:
    """Result of one component formula. Replaced wholesale on every recalculation."""
    component_type: ComponentType
    totals: Totals = field(default_factory=Totals)
    breakdown: dict = field(default_factory=dict)
    discounts: dict = field(default_factory=dict)
    metadata: dict = field(default_factory=dict)
    provides: dict = field(default_factory=dict)  # fields exported to dependents
    stale: bool = False
    error: Optional[str] = None

    @classmethod
    def zero(cls, component_type: ComponentType, **metadata) -> 'CalculationResult':
        return cls(component_type=component_type, metadata=dict(metadata))


@dataclass
class ComponentInstance:
    """User-configured state of a single component, owned by the data store."""
    type: ComponentType
    enabled: bool = False
    params: dict[str, Any] = field(default_factory=dict)
    last_result: Optional[CalculationResult] = None


@dataclass(frozen=True)
class DiscountSummary:
    """Quote-level discount rates after stacking and capping."""
    volume_rate: float = 0.0
    bundle_rate: float = 0.0
    additional_rate: float = 0.0
    monthly_discount: float = 0.0
    annual_discount: float = 0.0
    term_discount: float = 0.0
    monthly_capped: bool = False
    reasons: dict = field(default_factory=dict)

    @property
    def annual_delta(self) -> float:
        """Incremental annual-payment incentive on top of the monthly discount."""
        return self.annual_discount - self.monthly_discount


@dataclass(frozen=True)
class YearAmount:
    """A single contract year in an escalation schedule."""
    year: int
    amount: float


@dataclass
class Quote:
    """Aggregate view over all enabled components' latest results."""
    components: dict = field(default_factory=dict)  # ComponentType -> CalculationResult
    subtotals: Totals = field(default_factory=Totals)
    discounts: DiscountSummary = field(default_factory=DiscountSummary)
    totals: Totals = field(default_factory=Totals)
    escalation: list[YearAmount] = field(default_factory=list)
    component_count: int = 0
    one_time_components: list[str] = field(default_factory=list)
    recurring_components: list[str] = field(default_factory=list)
    stale_components: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    pass_id: Optional[int] = None

    @property
    def total_contract_value(self) -> float:
        return self.totals.one_time + self.totals.three_year

    def add_warning(self, warning: str):
        """Add a quote-level warning."""
        if warning not in self.warnings:
            self.warnings.append(warning)

    def get_summary_text(self) -> str:
        """Get human-readable quote summary as formatted text."""
        lines = [
            f"• One-time: £{self.totals.one_time:,.2f}",
            f"• Monthly: £{self.totals.monthly:,.2f} (discount {self.discounts.monthly_discount:.1%})",
            f"• Annual: £{self.totals.annual:,.2f} (discount {self.discounts.annual_discount:.1%})",
            f"• Three-year: £{self.totals.three_year:,.2f} (discount {self.discounts.term_discount:.1%})",
        ]
        for warning in self.warnings:
            lines.append(f"! {warning}")
        return "\n".join(lines)


@dataclass(frozen=True)
class DependencyIssue:
    """A single problem found while checking component dependencies."""
    component: str
    kind: str  # "unknown", "missing", "disabled_dependency", "schema"
    message: str
    severity: str = "error"


@dataclass
class DependencyReport:
    """Outcome of validating a set of component types."""
    valid: bool
    issues: list[DependencyIssue] = field(default_factory=list)

    @property
    def errors(self) -> list[DependencyIssue]:
        return [i for i in self.issues if i.severity == "error"]

    @property
    def warnings(self) -> list[DependencyIssue]:
        return [i for i in self.issues if i.severity == "warning"]


@dataclass
class PassReport:
    """History record for one orchestrator processing pass."""
    pass_id: int
    requested: list[str]
    order: list[str] = field(default_factory=list)
    calculated: list[str] = field(default_factory=list)
    failures: dict[str, str] = field(default_factory=dict)
    invalid: dict[str, str] = field(default_factory=dict)
    sources: dict[str, str] = field(default_factory=dict)
    duration_ms: float = 0.0
