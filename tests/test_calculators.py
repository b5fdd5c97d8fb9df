"""
Component formula tests. Expected values are worked by hand from the rate card.
"""
import math

import pytest

from naas_pricing.engine.calculators import CalculationContext, Calculator
from naas_pricing.engine.dependency_graph import DEFAULT_DEFINITIONS
from naas_pricing.engine.errors import CalculationError, DependencyError, SchemaValidationError
from naas_pricing.engine.financial import escalated_total
from naas_pricing.engine.models import CalculationResult, ComponentType as C, Totals


def context_with(component, **results):
    """Context whose dependencies are {ComponentType(name): result}."""
    return CalculationContext.build(component, {C(name): result for name, result in results.items()})


def provides(component, **fields):
    return CalculationResult(component_type=component, provides=fields)


def test_registry_covers_every_component(calculator):
    assert set(calculator.formulas) == set(C)


def test_registry_must_be_exhaustive(rate_card, settings):
    with pytest.raises(DependencyError):
        Calculator(rate_card=rate_card, settings=settings, definitions=DEFAULT_DEFINITIONS[:-1])


def test_unknown_component_type(calculator):
    with pytest.raises(DependencyError):
        calculator.calculate("hologram", {})


# --- Parameter validation ---

@pytest.mark.parametrize("params, field", [
    ({"sensors": 0}, "sensors"),
    ({"sensors": "100"}, "sensors"),
    ({"sensors": True}, "sensors"),
    ({"service_level": "gold"}, "service_level"),
    ({"locations": 1.5}, "locations"),
])
def test_invalid_params_are_rejected(calculator, params, field):
    with pytest.raises(SchemaValidationError) as exc_info:
        calculator.validate_params(C.PRTG, params)

    error = exc_info.value
    assert error.component_type == "prtg"
    assert error.errors[0]["loc"][0] == field


def test_params_must_be_a_mapping(calculator):
    with pytest.raises(SchemaValidationError):
        calculator.validate_params(C.PRTG, ["sensors", 100])


def test_missing_params_take_defaults(calculator):
    params = calculator.validate_params(C.PRTG, {"ui_collapsed": True})

    assert params.sensors == 100
    assert params.service_level == "enhanced"


def test_numbers_accept_ints_and_floats(calculator):
    params = calculator.validate_params(C.OTHER_COSTS, {"items": [{"quantity": 2, "unit_cost": 99.5}]})

    assert params.items[0].unit_cost == 99.5


def test_non_finite_numbers_are_rejected(calculator):
    with pytest.raises(SchemaValidationError):
        calculator.validate_params(C.OTHER_COSTS, {"items": [{"unit_cost": math.inf}]})


# --- Formulas ---

def test_help_is_zero(calculator):
    result = calculator.calculate(C.HELP)

    assert result.totals == Totals()


def test_prtg_defaults(calculator):
    result = calculator.calculate(C.PRTG, {})

    assert result.metadata["sensor_tier"] == "up_to_100"
    assert result.totals.one_time == 2500
    assert result.totals.monthly == 645  # 450 service + 2340 / 12 licence
    assert result.totals.annual == 7740
    assert result.totals.three_year == 25720
    assert result.provides == {"sensor_count": 100, "monitoring_locations": 5}


def test_prtg_location_multiplier(calculator):
    result = calculator.calculate(C.PRTG, {"sensors": 200, "locations": 10, "service_level": "standard"})

    assert result.metadata["sensor_tier"] == "up_to_500"
    assert result.breakdown["monthly_service"] == 900
    assert result.totals.one_time == 1500


def test_capital_financed(calculator):
    params = {"equipment": [{"description": "Switch", "quantity": 2, "unit_cost": 5000}], "term_months": 36}
    result = calculator.calculate(C.CAPITAL, params)

    assert result.totals.monthly == pytest.approx(299.71, abs=0.01)
    assert result.totals.one_time == 0
    assert result.totals.three_year == pytest.approx(result.breakdown["financing"]["total_payments"], abs=0.01)
    assert result.provides["device_count"] == 2
    assert result.provides["total_capital_cost"] == 10000
    assert result.provides["equipment_list"] == ["Switch"]


def test_capital_with_down_payment(calculator):
    params = {"equipment": [{"quantity": 1, "unit_cost": 11000}], "down_payment": 1000}
    result = calculator.calculate(C.CAPITAL, params)

    assert result.breakdown["financing"]["loan_amount"] == 10000
    assert result.totals.one_time == 1000
    assert result.totals.monthly == pytest.approx(299.71, abs=0.01)


def test_capital_purchased_outright(calculator):
    params = {"equipment": [{"quantity": 4, "unit_cost": 2500}], "financing": False}
    result = calculator.calculate(C.CAPITAL, params)

    assert result.totals == Totals(one_time=10000, three_year=10000)


def test_capital_down_payment_cannot_exceed_cost(calculator):
    with pytest.raises(SchemaValidationError):
        calculator.calculate(C.CAPITAL, {"equipment": [{"unit_cost": 100}], "down_payment": 500})


def test_capital_without_equipment(calculator):
    result = calculator.calculate(C.CAPITAL, {})

    assert result.totals == Totals()
    assert result.provides["device_count"] == 0


def test_support_uses_capital_device_count(calculator):
    context = context_with(C.SUPPORT, capital=provides(C.CAPITAL, device_count=20))
    result = calculator.calculate(C.SUPPORT, {}, context)

    assert result.totals.monthly == 2200  # 1200 + 20 x 50
    assert result.totals.annual == 26400
    assert result.totals.three_year == pytest.approx(escalated_total(26400, 0.03, 3))
    assert result.metadata["device_count_source"] == "capital"
    assert result.provides == {"support_level": "enhanced", "support_coverage": "24x7", "device_count": 20}


def test_support_escalation_schedule(calculator):
    context = context_with(C.SUPPORT, capital=provides(C.CAPITAL, device_count=20))
    result = calculator.calculate(C.SUPPORT, {"term_months": 30}, context)

    schedule = result.breakdown["escalation"]
    assert [year["months"] for year in schedule] == [12, 12, 6]
    assert schedule[1]["monthly_rate"] == pytest.approx(2266)


def test_support_defaults_and_overrides(calculator):
    assert calculator.calculate(C.SUPPORT, {}).totals.monthly == 1700
    assert calculator.calculate(C.SUPPORT, {}).metadata["device_count_source"] == "default"
    assert calculator.calculate(C.SUPPORT, {"device_count": 5, "level": "basic"}).totals.monthly == 625


def test_support_without_escalation(calculator):
    result = calculator.calculate(C.SUPPORT, {"include_escalation": False})

    assert result.totals.three_year == 1700 * 36
    assert result.breakdown["escalation"] is None


def test_default_context_is_flagged(calculator):
    context = CalculationContext.build(C.SUPPORT, defaulted=[C.CAPITAL])
    result = calculator.calculate(C.SUPPORT, {}, context)

    assert result.metadata["using_default_context"] == ["capital"]


def test_onboarding(calculator):
    result = calculator.calculate(C.ONBOARDING, {"complexity": "standard", "sites": 3})

    assert result.totals == Totals(one_time=10000, three_year=10000)
    assert result.provides["setup_complexity"] == "standard"


def test_enterprise_onboarding_uses_standard_site_rate(calculator):
    result = calculator.calculate(C.ONBOARDING, {"complexity": "enterprise", "sites": 2})

    assert result.totals.one_time == 19500


def test_onboarding_custom_services(calculator):
    params = {"include_assessment": False, "custom_services": [{"description": "Cabling", "cost": 750}]}
    result = calculator.calculate(C.ONBOARDING, params)

    assert result.totals.one_time == 5250


def test_pbs_foundation(calculator):
    params = {"users": 10, "locations": 2, "features": ["basic", "api_access"]}
    result = calculator.calculate(C.PBS_FOUNDATION, params)

    assert result.totals.monthly == 650
    assert result.totals.three_year == 650 * 36
    assert result.provides == {"platform_cost": 650, "user_licenses": 10}


def test_pbs_foundation_rejects_unknown_feature(calculator):
    with pytest.raises(SchemaValidationError):
        calculator.calculate(C.PBS_FOUNDATION, {"features": ["teleport"]})


def test_assessment(calculator):
    result = calculator.calculate(C.ASSESSMENT, {"device_count": 20, "site_count": 2})

    assert result.totals.one_time == 18500


def test_admin(calculator):
    result = calculator.calculate(C.ADMIN, {"annual_reviews": 1, "technical_days": 2})

    assert result.totals == Totals(one_time=3150, three_year=3150)


def test_other_costs(calculator):
    params = {"items": [{"quantity": 2, "unit_cost": 150}, {"description": "Travel", "unit_cost": 99.5}]}
    result = calculator.calculate(C.OTHER_COSTS, params)

    assert result.totals.one_time == 399.5
    assert result.totals.monthly == 0


def test_enhanced_support(calculator):
    support = provides(C.SUPPORT, device_count=20, support_level="enhanced")
    result = calculator.calculate(C.ENHANCED_SUPPORT, {"level": "premium"}, context_with(C.ENHANCED_SUPPORT, support=support))

    assert result.totals.monthly == 3000
    assert result.provides == {"enhanced_sla": "premium", "premium_features": True}
    assert result.metadata["support_level"] == "enhanced"


def test_naas_standard(calculator):
    context = context_with(C.NAAS_STANDARD, support=provides(C.SUPPORT, device_count=10))
    result = calculator.calculate(C.NAAS_STANDARD, {}, context)

    assert result.totals.monthly == 1200
    assert result.provides == {"standard_package_features": True, "device_count": 10}


def test_naas_enhanced(calculator):
    context = context_with(C.NAAS_ENHANCED, naas_standard=provides(C.NAAS_STANDARD, device_count=20))
    result = calculator.calculate(C.NAAS_ENHANCED, {}, context)

    assert result.totals.monthly == 2000
    assert result.provides["enhanced_package_features"] is True


def test_dynamics_term_and_portfolio(calculator):
    context = context_with(
        C.DYNAMICS_5_YEAR,
        prtg=CalculationResult(C.PRTG, totals=Totals(monthly=645)),
        support=CalculationResult(C.SUPPORT, totals=Totals(monthly=1700), provides={"device_count": 10}),
    )
    result = calculator.calculate(C.DYNAMICS_5_YEAR, {"base_monthly": 500}, context)

    assert result.breakdown["term_years"] == 5
    assert len(result.breakdown["yearly"]) == 5
    assert result.totals.monthly == 750  # 500 + 10 x 25
    assert result.breakdown["term_total"] == pytest.approx(escalated_total(9000, 0.03, 5))
    assert result.breakdown["financing"]["term_months"] == 60
    assert result.breakdown["portfolio_monthly"] == 2345
    assert result.breakdown["component_count"] == 2


def test_dynamics_without_base_has_no_financing(calculator):
    result = calculator.calculate(C.DYNAMICS_1_YEAR, {"include_escalation": False})

    assert result.breakdown["financing"] is None
    assert result.breakdown["yearly"] == [{"year": 1, "amount": 3000}]


def test_non_finite_totals_raise(calculator):
    calculator.formulas[C.PBS_FOUNDATION] = lambda params, context: CalculationResult(
        C.PBS_FOUNDATION, totals=Totals(monthly=float("inf"))
    )

    with pytest.raises(CalculationError):
        calculator.calculate(C.PBS_FOUNDATION, {})


def test_one_time_component_cannot_recur(calculator):
    calculator.formulas[C.ADMIN] = lambda params, context: CalculationResult(C.ADMIN, totals=Totals(monthly=5.0))

    with pytest.raises(CalculationError):
        calculator.calculate(C.ADMIN, {})


def test_results_are_stamped(calculator, rate_card):
    result = calculator.calculate(C.ADMIN, {})

    assert result.metadata["billing_model"] == "one_time"
    assert result.metadata["rate_card"] == rate_card.source_hash
    assert not result.stale
