"""
Component formulas - one pure function per component type.

Each formula takes validated parameters plus a read-only context assembled
from already-computed dependency results, and returns a CalculationResult.
Parameters are validated with pydantic before a formula runs: wrong types
and out-of-range values are rejected, absent optional values take defaults.
"""
import logging
import math
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any, Callable, Iterable, Literal, Mapping, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    StrictFloat,
    StrictInt,
    StrictStr,
    ValidationError,
    model_validator,
)

from ..config.settings import get_settings, Settings
from ..data.rate_card import RateCard
from .dependency_graph import DEFAULT_DEFINITIONS
from .errors import CalculationError, DependencyError, SchemaValidationError
from .financial import escalated_total, escalation_schedule, monthly_payment, round_currency
from .models import BillingModel, CalculationResult, ComponentDefinition, ComponentType as C, Totals

logger = logging.getLogger(__name__)


# Accepts int or float, rejects bools and numeric strings
Number = StrictFloat


# ============================================================================
# PARAMETER MODELS
# ============================================================================

class ComponentParams(BaseModel):
    """Base for component parameters. Unknown keys (UI state) are ignored."""
    model_config = ConfigDict(extra='ignore', frozen=True)


class HelpParams(ComponentParams):
    pass


class PRTGParams(ComponentParams):
    sensors: StrictInt = Field(100, ge=1, le=100000)
    locations: StrictInt = Field(5, ge=1, le=1000)
    alert_recipients: StrictInt = Field(10, ge=1, le=10000)
    service_level: Literal['standard', 'enhanced', 'enterprise'] = 'enhanced'


class EquipmentItem(ComponentParams):
    description: StrictStr = ''
    quantity: StrictInt = Field(1, ge=1, le=100000)
    unit_cost: Number = Field(0.0, ge=0, allow_inf_nan=False)


class CapitalParams(ComponentParams):
    equipment: list[EquipmentItem] = Field(default_factory=list, max_length=100)
    financing: StrictBool = True
    term_months: StrictInt = Field(36, ge=1, le=120)
    down_payment: Number = Field(0.0, ge=0, allow_inf_nan=False)
    apr_rate: Optional[Number] = Field(None, ge=0, le=1, allow_inf_nan=False)

    @model_validator(mode='after')
    def check_down_payment(self):
        equipment_cost = math.fsum(item.unit_cost * item.quantity for item in self.equipment)
        if self.down_payment > equipment_cost:
            raise ValueError("down_payment cannot exceed the total equipment cost")
        return self


class SupportParams(ComponentParams):
    level: Literal['basic', 'standard', 'enhanced'] = 'enhanced'
    device_count: Optional[StrictInt] = Field(None, ge=0, le=100000)
    include_escalation: StrictBool = True
    term_months: StrictInt = Field(36, ge=1, le=120)
    cpi_rate: Optional[Number] = Field(None, ge=0, le=1, allow_inf_nan=False)


class CustomService(ComponentParams):
    description: StrictStr = ''
    cost: Number = Field(0.0, ge=0, allow_inf_nan=False)


class OnboardingParams(ComponentParams):
    complexity: Literal['simple', 'standard', 'complex', 'enterprise'] = 'standard'
    sites: StrictInt = Field(1, ge=1, le=1000)
    include_assessment: StrictBool = True
    assessment_type: Literal['network', 'security', 'comprehensive'] = 'comprehensive'
    custom_services: list[CustomService] = Field(default_factory=list, max_length=100)


PBSFeature = Literal[
    'basic', 'advanced_reporting', 'api_access', 'sso_integration',
    'custom_branding', 'multi_tenant', 'advanced_analytics',
]


class PBSFoundationParams(ComponentParams):
    users: StrictInt = Field(10, ge=1, le=100000)
    locations: StrictInt = Field(1, ge=1, le=1000)
    features: list[PBSFeature] = Field(default_factory=lambda: ['basic'])


class AssessmentParams(ComponentParams):
    complexity: Literal['simple', 'standard', 'complex', 'enterprise'] = 'standard'
    device_count: StrictInt = Field(10, ge=0, le=100000)
    site_count: StrictInt = Field(1, ge=1, le=1000)
    include_report: StrictBool = True


class AdminParams(ComponentParams):
    annual_reviews: StrictInt = Field(0, ge=0, le=1000)
    quarterly_reviews: StrictInt = Field(0, ge=0, le=1000)
    bi_annual_reviews: StrictInt = Field(0, ge=0, le=1000)
    technical_days: StrictInt = Field(0, ge=0, le=1000)
    l3_engineering_days: StrictInt = Field(0, ge=0, le=1000)
    reporting_service: StrictInt = Field(0, ge=0, le=1000)
    backup_service: StrictInt = Field(0, ge=0, le=1000)


class CostItem(ComponentParams):
    description: StrictStr = ''
    quantity: Number = Field(1.0, ge=0, allow_inf_nan=False)
    unit_cost: Number = Field(0.0, ge=0, allow_inf_nan=False)


class OtherCostsParams(ComponentParams):
    items: list[CostItem] = Field(default_factory=list, max_length=100)


class EnhancedSupportParams(ComponentParams):
    level: Literal['enhanced', 'premium', 'enterprise'] = 'enhanced'
    device_count: Optional[StrictInt] = Field(None, ge=0, le=100000)
    include_escalation: StrictBool = True
    cpi_rate: Optional[Number] = Field(None, ge=0, le=1, allow_inf_nan=False)


class NaaSParams(ComponentParams):
    device_count: Optional[StrictInt] = Field(None, ge=0, le=100000)
    include_escalation: StrictBool = True
    cpi_rate: Optional[Number] = Field(None, ge=0, le=1, allow_inf_nan=False)


class DynamicsParams(ComponentParams):
    base_monthly: Number = Field(0.0, ge=0, allow_inf_nan=False)
    device_count: Optional[StrictInt] = Field(None, ge=0, le=100000)
    include_escalation: StrictBool = True
    cpi_rate: Optional[Number] = Field(None, ge=0, le=1, allow_inf_nan=False)
    apr_rate: Optional[Number] = Field(None, ge=0, le=1, allow_inf_nan=False)


PARAM_MODELS: dict[C, type[ComponentParams]] = {
    C.HELP: HelpParams,
    C.ASSESSMENT: AssessmentParams,
    C.ADMIN: AdminParams,
    C.OTHER_COSTS: OtherCostsParams,
    C.PRTG: PRTGParams,
    C.CAPITAL: CapitalParams,
    C.ONBOARDING: OnboardingParams,
    C.PBS_FOUNDATION: PBSFoundationParams,
    C.SUPPORT: SupportParams,
    C.ENHANCED_SUPPORT: EnhancedSupportParams,
    C.NAAS_STANDARD: NaaSParams,
    C.NAAS_ENHANCED: NaaSParams,
    C.DYNAMICS_1_YEAR: DynamicsParams,
    C.DYNAMICS_3_YEAR: DynamicsParams,
    C.DYNAMICS_5_YEAR: DynamicsParams,
}


SUPPORT_HOURS = {'basic': '8x5', 'standard': '12x5', 'enhanced': '24x7'}


# ============================================================================
# CONTEXT
# ============================================================================

@dataclass(frozen=True)
class CalculationContext:
    """Read-only view over the dependency results a formula may consume."""
    component_type: C
    dependencies: Mapping = field(default_factory=lambda: MappingProxyType({}))  # ComponentType -> CalculationResult
    defaulted: frozenset = frozenset()  # dependencies with no usable result
    enabled: frozenset = frozenset()

    @classmethod
    def build(
        cls,
        component_type: C,
        dependencies: Optional[Mapping] = None,
        defaulted: Iterable = (),
        enabled: Iterable = (),
    ) -> 'CalculationContext':
        return cls(
            component_type=component_type,
            dependencies=MappingProxyType(dict(dependencies or {})),
            defaulted=frozenset(defaulted),
            enabled=frozenset(enabled),
        )

    def value(self, dependency: C, name: str, default: Any = None) -> Any:
        """A field provided by a dependency's result, or ``default``."""
        result = self.dependencies.get(dependency)
        if result is None or name not in result.provides:
            return default
        return result.provides[name]

    def first_value(self, name: str, *dependencies: C, default: Any = None) -> tuple[Any, Optional[C]]:
        """First dependency (in the given order) providing ``name``, with its source."""
        for dependency in dependencies:
            value = self.value(dependency, name)
            if value is not None:
                return value, dependency
        return default, None

    @property
    def portfolio_monthly(self) -> float:
        return math.fsum(
            self.dependencies[c].totals.monthly for c in sorted(self.dependencies, key=lambda c: c.value)
        )

    @property
    def component_count(self) -> int:
        return len(self.dependencies)


# ============================================================================
# CALCULATOR
# ============================================================================

Formula = Callable[[ComponentParams, CalculationContext], CalculationResult]


class Calculator:
    """
    Formula library for every component type.

    Formulas are resolved once into ``self.formulas``; construction fails if a
    component type has no formula or parameter model.
    """

    def __init__(
        self,
        rate_card: Optional[RateCard] = None,
        settings: Optional[Settings] = None,
        definitions: Optional[Iterable[ComponentDefinition]] = None,
    ):
        self.settings = settings or get_settings()
        self.rate_card = rate_card or RateCard(settings=self.settings)
        self.definitions = {d.id: d for d in (definitions or DEFAULT_DEFINITIONS)}

        self.formulas: dict[C, Formula] = {
            C.HELP: self.calculate_help,
            C.ASSESSMENT: self.calculate_assessment,
            C.ADMIN: self.calculate_admin,
            C.OTHER_COSTS: self.calculate_other_costs,
            C.PRTG: self.calculate_prtg,
            C.CAPITAL: self.calculate_capital,
            C.ONBOARDING: self.calculate_onboarding,
            C.PBS_FOUNDATION: self.calculate_pbs_foundation,
            C.SUPPORT: self.calculate_support,
            C.ENHANCED_SUPPORT: self.calculate_enhanced_support,
            C.NAAS_STANDARD: self.calculate_naas,
            C.NAAS_ENHANCED: self.calculate_naas,
            C.DYNAMICS_1_YEAR: self.calculate_dynamics,
            C.DYNAMICS_3_YEAR: self.calculate_dynamics,
            C.DYNAMICS_5_YEAR: self.calculate_dynamics,
        }

        missing = [c.value for c in C if c not in self.formulas or c not in PARAM_MODELS or c not in self.definitions]
        if missing:
            raise DependencyError(f"No formula registered for component types: {', '.join(missing)}")

    @staticmethod
    def resolve(component_type) -> C:
        try:
            return C(component_type)
        except ValueError:
            raise DependencyError(
                f"Unknown component type: {component_type}. Available: {[c.value for c in C]}"
            )

    def validate_params(self, component_type, params: Optional[Mapping] = None) -> ComponentParams:
        """Validate raw parameters, raising SchemaValidationError on bad input."""
        component_type = self.resolve(component_type)
        if params is not None and not isinstance(params, Mapping):
            raise SchemaValidationError(
                component_type.value,
                [{"loc": [], "msg": "parameters must be a mapping", "type": "mapping_type"}],
            )
        try:
            return PARAM_MODELS[component_type].model_validate(dict(params or {}))
        except ValidationError as e:
            errors = [
                {"loc": list(err["loc"]), "msg": err["msg"], "type": err["type"]}
                for err in e.errors()
            ]
            raise SchemaValidationError(component_type.value, errors) from e

    def calculate(
        self,
        component_type,
        params: Optional[Mapping] = None,
        context: Optional[CalculationContext] = None,
    ) -> CalculationResult:
        """Validate parameters, run the component formula and check its totals."""
        component_type = self.resolve(component_type)
        model = self.validate_params(component_type, params)
        if context is None:
            context = CalculationContext(component_type=component_type)
        elif context.component_type is not component_type:
            context = replace(context, component_type=component_type)

        result = self.formulas[component_type](model, context)
        return self._finalize(component_type, result, context)

    def _finalize(self, component_type: C, result: CalculationResult, context: CalculationContext) -> CalculationResult:
        totals = result.totals
        if not totals.is_finite():
            raise CalculationError(component_type.value, f"non-finite totals {totals.as_dict()}")

        definition = self.definitions[component_type]
        if definition.billing_model is BillingModel.ONE_TIME and (totals.monthly or totals.annual):
            raise CalculationError(component_type.value, "one-time component produced recurring totals")

        metadata = dict(result.metadata)
        metadata["billing_model"] = definition.billing_model.value
        metadata["rate_card"] = self.rate_card.source_hash
        if context.defaulted:
            metadata["using_default_context"] = sorted(c.value for c in context.defaulted)

        logger.debug("%s: %s", component_type.value, totals)
        return replace(result, component_type=component_type, metadata=metadata, stale=False, error=None)

    # --- Helpers ---

    def _one_time(self, component_type: C, amount: float, breakdown, metadata=None, provides=None) -> CalculationResult:
        return CalculationResult(
            component_type=component_type,
            totals=Totals(one_time=amount, three_year=amount),
            breakdown=breakdown,
            metadata=metadata or {},
            provides=provides or {},
        )

    def _device_count(self, override: Optional[int], context: CalculationContext, *sources: C) -> tuple[int, str]:
        """Resolve a device count from params, then dependency context, then the default."""
        if override is not None:
            return override, 'params'
        value, source = context.first_value('device_count', *sources)
        if value is not None:
            return int(value), source.value
        return self.settings.default_device_count, 'default'

    def _cpi(self, override: Optional[float]) -> float:
        return self.settings.cpi_rate if override is None else override

    def _three_year_recurring(self, monthly: float, cpi_rate: float, include_escalation: bool) -> float:
        annual = monthly * self.settings.months_per_year
        if include_escalation:
            return escalated_total(annual, cpi_rate, self.settings.contract_years)
        return monthly * self.settings.months_per_year * self.settings.contract_years

    # --- Formulas ---

    def calculate_help(self, params: HelpParams, context: CalculationContext) -> CalculationResult:
        return CalculationResult.zero(context.component_type)

    def calculate_prtg(self, params: PRTGParams, context: CalculationContext) -> CalculationResult:
        """PRTG monitoring: licence by sensor tier, setup by service level, monthly service."""
        rates = self.rate_card
        sensor_tier = _sensor_tier(params.sensors)

        license_cost = rates.lookup('prtg', 'base_license', sensor_tier)
        setup_cost = rates.lookup('prtg', 'setup', params.service_level)
        service = rates.lookup('prtg', f'monthly_{params.service_level}', sensor_tier)

        location_multiplier = max(1.0, params.locations / 5)
        alert_multiplier = max(1.0, params.alert_recipients / 10)
        monthly_service = round_currency(service * location_multiplier * alert_multiplier)

        return CalculationResult(
            component_type=C.PRTG,
            totals=Totals(
                one_time=setup_cost,
                monthly=monthly_service + round_currency(license_cost / 12),
                annual=license_cost + monthly_service * 12,
                three_year=license_cost * 3 + monthly_service * 36 + setup_cost,
            ),
            breakdown={
                "annual_license": license_cost,
                "one_time_setup": setup_cost,
                "monthly_service": monthly_service,
                "location_multiplier": location_multiplier,
                "alert_multiplier": alert_multiplier,
            },
            metadata={
                "sensor_tier": sensor_tier,
                "sensors": params.sensors,
                "locations": params.locations,
                "service_level": params.service_level,
            },
            provides={
                "sensor_count": params.sensors,
                "monitoring_locations": params.locations,
            },
        )

    def calculate_capital(self, params: CapitalParams, context: CalculationContext) -> CalculationResult:
        """Capital equipment, optionally financed over the term at the APR."""
        equipment = [
            {
                "description": item.description,
                "quantity": item.quantity,
                "unit_cost": item.unit_cost,
                "total_cost": item.unit_cost * item.quantity,
            }
            for item in params.equipment
        ]
        total_cost = math.fsum(e["total_cost"] for e in equipment)
        device_count = sum(item.quantity for item in params.equipment)

        provides = {
            "device_count": device_count,
            "equipment_list": [e["description"] for e in equipment],
            "total_capital_cost": total_cost,
        }
        metadata = {
            "total_equipment_cost": total_cost,
            "financing": params.financing,
            "term_months": params.term_months,
        }

        if total_cost == 0:
            return CalculationResult(
                component_type=C.CAPITAL,
                breakdown={"equipment": equipment, "financing": None},
                metadata=metadata,
                provides=provides,
            )

        apr = self.settings.apr_rate if params.apr_rate is None else params.apr_rate
        payment = 0.0
        financing = None
        if params.financing and total_cost > params.down_payment:
            loan_amount = total_cost - params.down_payment
            payment = monthly_payment(loan_amount, apr, params.term_months)
            financing = {
                "loan_amount": loan_amount,
                "term_months": params.term_months,
                "apr": apr,
                "monthly_payment": round_currency(payment, 2),
                "total_interest": round_currency(payment * params.term_months - loan_amount, 2),
                "total_payments": round_currency(payment * params.term_months, 2),
            }

        if params.financing:
            first_year_months = min(12, params.term_months)
            three_year_months = min(36, params.term_months)
            totals = Totals(
                one_time=params.down_payment,
                monthly=round_currency(payment, 2),
                annual=round_currency(payment * first_year_months, 2),
                three_year=round_currency(params.down_payment + payment * three_year_months, 2),
            )
        else:
            totals = Totals(one_time=total_cost, three_year=total_cost)

        return CalculationResult(
            component_type=C.CAPITAL,
            totals=totals,
            breakdown={"equipment": equipment, "financing": financing},
            metadata=metadata,
            provides=provides,
        )

    def calculate_support(self, params: SupportParams, context: CalculationContext) -> CalculationResult:
        """Support package priced per device, escalated by CPI each contract year."""
        device_count, device_source = self._device_count(params.device_count, context, C.CAPITAL)
        cpi_rate = self._cpi(params.cpi_rate)

        base_monthly = self.rate_card.lookup('support', 'monthly_base', params.level)
        device_monthly = self.rate_card.lookup('support', 'per_device', params.level) * device_count
        total_monthly = base_monthly + device_monthly

        escalation = None
        if params.include_escalation:
            escalation = []
            for year in range(1, math.ceil(params.term_months / 12) + 1):
                monthly_rate = total_monthly * (1 + cpi_rate) ** (year - 1)
                months = min(12, params.term_months - (year - 1) * 12)
                escalation.append({
                    "year": year,
                    "monthly_rate": round_currency(monthly_rate, 2),
                    "months": months,
                    "total_cost": round_currency(monthly_rate * months, 2),
                })

        return CalculationResult(
            component_type=C.SUPPORT,
            totals=Totals(
                monthly=total_monthly,
                annual=total_monthly * 12,
                three_year=self._three_year_recurring(total_monthly, cpi_rate, params.include_escalation),
            ),
            breakdown={
                "base_monthly": base_monthly,
                "device_monthly": device_monthly,
                "device_count": device_count,
                "total_monthly": total_monthly,
                "escalation": escalation,
            },
            metadata={
                "level": params.level,
                "hours": SUPPORT_HOURS[params.level],
                "device_count_source": device_source,
                "include_escalation": params.include_escalation,
            },
            provides={
                "support_level": params.level,
                "support_coverage": SUPPORT_HOURS[params.level],
                "device_count": device_count,
            },
        )

    def calculate_onboarding(self, params: OnboardingParams, context: CalculationContext) -> CalculationResult:
        rates = self.rate_card
        base_implementation = rates.lookup('onboarding', 'base_implementation', params.complexity)

        # Enterprise onboarding is priced per site at the standard rate
        per_site_table = rates.table('onboarding', 'per_site')
        per_site = per_site_table.get(params.complexity, per_site_table['standard'])

        additional_sites = max(0, params.sites - 1)
        sites_cost = additional_sites * per_site
        assessment_cost = (
            rates.lookup('onboarding', 'assessment', params.assessment_type) if params.include_assessment else 0.0
        )
        custom_cost = math.fsum(s.cost for s in params.custom_services)

        total = base_implementation + sites_cost + assessment_cost + custom_cost

        return self._one_time(
            C.ONBOARDING,
            total,
            breakdown={
                "base_implementation": base_implementation,
                "additional_sites": additional_sites,
                "sites_cost": sites_cost,
                "assessment": assessment_cost,
                "custom_services": custom_cost,
            },
            metadata={
                "complexity": params.complexity,
                "sites": params.sites,
                "include_assessment": params.include_assessment,
                "assessment_type": params.assessment_type,
            },
            provides={"implementation_cost": total, "setup_complexity": params.complexity},
        )

    def calculate_pbs_foundation(self, params: PBSFoundationParams, context: CalculationContext) -> CalculationResult:
        pricing = self.rate_card.table('pbs_foundation', 'pricing')

        user_cost = pricing['per_user_monthly'] * params.users
        location_cost = pricing['per_location_monthly'] * (params.locations - 1)
        features_cost = math.fsum(
            self.rate_card.lookup('pbs_foundation', 'features', f) for f in params.features
        )
        total_monthly = pricing['base_monthly'] + user_cost + location_cost + features_cost

        return CalculationResult(
            component_type=C.PBS_FOUNDATION,
            totals=Totals(
                monthly=total_monthly,
                annual=total_monthly * 12,
                three_year=total_monthly * 36,
            ),
            breakdown={
                "base_monthly": pricing['base_monthly'],
                "user_cost": user_cost,
                "location_cost": location_cost,
                "features_cost": features_cost,
            },
            metadata={"users": params.users, "locations": params.locations, "features": list(params.features)},
            provides={"platform_cost": total_monthly, "user_licenses": params.users},
        )

    def calculate_assessment(self, params: AssessmentParams, context: CalculationContext) -> CalculationResult:
        rates = self.rate_card
        base_cost = rates.lookup('assessment', 'base', params.complexity)
        device_multiplier = max(1.0, params.device_count / rates.lookup('assessment', 'pricing', 'device_base'))
        site_multiplier = max(1, params.site_count)
        report_cost = rates.lookup('assessment', 'pricing', 'report') if params.include_report else 0.0

        return self._one_time(
            C.ASSESSMENT,
            base_cost * device_multiplier * site_multiplier + report_cost,
            breakdown={
                "base_cost": base_cost,
                "device_multiplier": device_multiplier,
                "site_multiplier": site_multiplier,
                "report_cost": report_cost,
                "complexity": params.complexity,
            },
        )

    def calculate_admin(self, params: AdminParams, context: CalculationContext) -> CalculationResult:
        rates = self.rate_card.table('admin', 'rates')
        reviews = params.annual_reviews + params.quarterly_reviews + params.bi_annual_reviews

        breakdown = {
            "review_cost": reviews * rates['review'],
            "technical_cost": params.technical_days * rates['technical_day'],
            "engineering_cost": params.l3_engineering_days * rates['l3_engineering_day'],
            "reporting_cost": params.reporting_service * rates['reporting_service'],
            "backup_cost": params.backup_service * rates['backup_service'],
        }
        return self._one_time(C.ADMIN, math.fsum(breakdown.values()), breakdown=breakdown)

    def calculate_other_costs(self, params: OtherCostsParams, context: CalculationContext) -> CalculationResult:
        items = [
            {
                "description": item.description,
                "quantity": item.quantity,
                "unit_cost": item.unit_cost,
                "total_cost": item.quantity * item.unit_cost,
            }
            for item in params.items
        ]
        return self._one_time(C.OTHER_COSTS, math.fsum(i["total_cost"] for i in items), breakdown={"items": items})

    def calculate_enhanced_support(self, params: EnhancedSupportParams, context: CalculationContext) -> CalculationResult:
        device_count, device_source = self._device_count(params.device_count, context, C.SUPPORT)
        cpi_rate = self._cpi(params.cpi_rate)

        base_monthly = self.rate_card.lookup('enhanced_support', 'base', params.level)
        device_cost = device_count * self.rate_card.lookup('enhanced_support', 'pricing', 'per_device')
        monthly = base_monthly + device_cost

        return CalculationResult(
            component_type=C.ENHANCED_SUPPORT,
            totals=Totals(
                monthly=monthly,
                annual=monthly * 12,
                three_year=self._three_year_recurring(monthly, cpi_rate, params.include_escalation),
            ),
            breakdown={
                "base_monthly": base_monthly,
                "device_cost": device_cost,
                "device_count": device_count,
                "level": params.level,
                "escalation": f"{cpi_rate:.0%} CPI" if params.include_escalation else "None",
            },
            metadata={
                "device_count_source": device_source,
                "support_level": context.value(C.SUPPORT, 'support_level'),
            },
            provides={"enhanced_sla": params.level, "premium_features": params.level != 'enhanced'},
        )

    def calculate_naas(self, params: NaaSParams, context: CalculationContext) -> CalculationResult:
        """NaaS standard and enhanced packages share one formula, keyed by package."""
        component_type = context.component_type
        package = 'enhanced' if component_type is C.NAAS_ENHANCED else 'standard'
        sources = (C.NAAS_STANDARD,) if package == 'enhanced' else (C.SUPPORT,)

        device_count, device_source = self._device_count(params.device_count, context, *sources)
        cpi_rate = self._cpi(params.cpi_rate)

        base_monthly = self.rate_card.lookup('naas', 'base', package)
        device_cost = device_count * self.rate_card.lookup('naas', 'pricing', 'per_device')
        monthly = base_monthly + device_cost

        return CalculationResult(
            component_type=component_type,
            totals=Totals(
                monthly=monthly,
                annual=monthly * 12,
                three_year=self._three_year_recurring(monthly, cpi_rate, params.include_escalation),
            ),
            breakdown={
                "base_monthly": base_monthly,
                "device_cost": device_cost,
                "device_count": device_count,
                "package_type": package,
                "escalation": f"{cpi_rate:.0%} CPI" if params.include_escalation else "None",
            },
            metadata={"device_count_source": device_source},
            provides={f"{package}_package_features": True, "device_count": device_count},
        )

    def calculate_dynamics(self, params: DynamicsParams, context: CalculationContext) -> CalculationResult:
        """Contract dynamics over a 1, 3 or 5 year term."""
        component_type = context.component_type
        term_years = self.definitions[component_type].term_years or self.settings.contract_years
        term_months = term_years * 12

        device_count, device_source = self._device_count(
            params.device_count, context, C.NAAS_ENHANCED, C.NAAS_STANDARD, C.SUPPORT, C.CAPITAL
        )
        cpi_rate = self._cpi(params.cpi_rate)
        apr = self.settings.apr_rate if params.apr_rate is None else params.apr_rate

        device_cost = device_count * self.rate_card.lookup('dynamics', 'pricing', 'per_device')
        monthly = params.base_monthly + device_cost
        annual = monthly * 12

        if params.include_escalation:
            schedule = escalation_schedule(annual, cpi_rate, term_years)
        else:
            schedule = [annual] * term_years
        term_total = math.fsum(schedule)

        financing = None
        if params.base_monthly > 0:
            payment = monthly_payment(term_total, apr, term_months)
            financing = {
                "total_financed": term_total,
                "term_months": term_months,
                "apr": apr,
                "monthly_payment": round_currency(payment, 2),
                "total_interest": round_currency(payment * term_months - term_total, 2),
            }

        return CalculationResult(
            component_type=component_type,
            totals=Totals(
                monthly=monthly,
                annual=annual,
                three_year=self._three_year_recurring(monthly, cpi_rate, params.include_escalation),
            ),
            breakdown={
                "term_years": term_years,
                "term_months": term_months,
                "base_monthly": params.base_monthly,
                "device_cost": device_cost,
                "device_count": device_count,
                "monthly_cost": monthly,
                "term_total": term_total,
                "yearly": [{"year": i + 1, "amount": amount} for i, amount in enumerate(schedule)],
                "financing": financing,
                "portfolio_monthly": context.portfolio_monthly,
                "component_count": context.component_count,
            },
            metadata={
                "device_count_source": device_source,
                "cpi_rate": cpi_rate,
                "apr_rate": apr,
            },
        )


def _sensor_tier(sensors: int) -> str:
    if sensors <= 100:
        return 'up_to_100'
    if sensors <= 500:
        return 'up_to_500'
    if sensors <= 1000:
        return 'up_to_1000'
    if sensors <= 2500:
        return 'up_to_2500'
    return 'unlimited'
