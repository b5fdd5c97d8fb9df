from dataclasses import replace

import pytest

from naas_pricing.engine.dependency_graph import DEFAULT_DEFINITIONS, DependencyGraph
from naas_pricing.engine.errors import DependencyError
from naas_pricing.engine.models import BillingModel, ComponentDefinition, ComponentType as C


def make_definition(component_id, level, dependencies=()):
    return ComponentDefinition(
        id=component_id,
        level=level,
        billing_model=BillingModel.RECURRING,
        category="test",
        description="",
        display_name=str(component_id).upper(),
        dependencies=frozenset(dependencies),
    )


def test_default_graph_is_valid(graph):
    stats = graph.statistics()

    assert stats["total_components"] == len(C)
    assert stats["max_level"] == 5
    assert stats["wildcard_components"] == ["dynamics_1_year", "dynamics_3_year", "dynamics_5_year"]
    assert DependencyGraph.validate(DEFAULT_DEFINITIONS).valid


def test_levels_exceed_dependency_levels(graph):
    for definition in graph.definitions.values():
        for dep in definition.dependencies:
            assert graph.get_level(dep) < definition.level


def test_calculation_order_is_deterministic(graph):
    enabled = {C.CAPITAL, C.PRTG, C.SUPPORT, C.NAAS_STANDARD}
    order = graph.get_calculation_order({C.SUPPORT, C.NAAS_STANDARD}, enabled)

    assert order == [C.CAPITAL, C.PRTG, C.SUPPORT, C.NAAS_STANDARD]


def test_order_respects_every_dependency(graph):
    enabled = set(C)
    order = graph.get_calculation_order(enabled, enabled)
    position = {c: i for i, c in enumerate(order)}

    assert set(order) == enabled
    for component in order:
        for dep in graph.get_dependencies(component, enabled):
            assert position[dep] < position[component], f"{dep} must precede {component}"


def test_wildcard_runs_after_enabled_lower_levels(graph):
    enabled = {C.PRTG, C.CAPITAL, C.DYNAMICS_3_YEAR}
    order = graph.get_calculation_order({C.DYNAMICS_3_YEAR}, enabled)

    assert order == [C.CAPITAL, C.PRTG, C.DYNAMICS_3_YEAR]


def test_wildcard_dependencies_exclude_other_wildcards(graph):
    deps = graph.get_dependencies(C.DYNAMICS_1_YEAR, {C.PRTG, C.HELP, C.DYNAMICS_3_YEAR})

    assert deps == {C.PRTG, C.HELP}


def test_disabled_dependencies_are_left_out(graph):
    assert graph.get_calculation_order({C.SUPPORT}, {C.SUPPORT}) == [C.SUPPORT]


def test_disabled_requested_component_is_not_ordered(graph):
    assert graph.get_calculation_order({C.SUPPORT}, {C.CAPITAL}) == []


def test_cycle_is_reported_with_both_components():
    definitions = [make_definition("a", 1, ["b"]), make_definition("b", 1, ["a"])]

    with pytest.raises(DependencyError) as exc_info:
        DependencyGraph(definitions)

    assert "a" in str(exc_info.value) and "b" in str(exc_info.value)
    assert exc_info.value.validation.cycle == ["a", "b", "a"]


def test_missing_dependency_is_invalid():
    validation = DependencyGraph.validate([make_definition("a", 1, ["ghost"])])

    assert not validation.valid
    assert validation.missing == [("a", "ghost")]


def test_level_violation_is_invalid():
    definitions = [replace(d, level=1) if d.id is C.SUPPORT else d for d in DEFAULT_DEFINITIONS]
    validation = DependencyGraph.validate(definitions)

    assert not validation.valid
    assert (C.SUPPORT, C.CAPITAL) in validation.level_violations


def test_required_fields_must_be_provided():
    definitions = [
        replace(d, requires={C.CAPITAL: frozenset({"serial_numbers"})}) if d.id is C.SUPPORT else d
        for d in DEFAULT_DEFINITIONS
    ]
    validation = DependencyGraph.validate(definitions)

    assert not validation.valid
    assert any("serial_numbers" in issue for issue in validation.field_issues)


def test_unknown_component_raises(graph):
    with pytest.raises(DependencyError):
        graph.get_definition("teleporter")


def test_dependents(graph):
    assert graph.get_dependents(C.CAPITAL, enabled={C.SUPPORT, C.PRTG}) == {C.SUPPORT}
    assert C.DYNAMICS_5_YEAR in graph.get_dependents(C.CAPITAL)

    enabled = {C.CAPITAL, C.SUPPORT, C.ENHANCED_SUPPORT, C.NAAS_STANDARD, C.PRTG}
    assert graph.get_all_dependents({C.CAPITAL}, enabled) == {C.SUPPORT, C.ENHANCED_SUPPORT, C.NAAS_STANDARD}


def test_check_relationships_warns_on_disabled_dependency(graph):
    errors, warnings = graph.check_relationships({C.SUPPORT, "bogus"})

    assert len(errors) == 1
    assert any("capital" in w for w in warnings)


def test_visualization_and_mermaid(graph):
    enabled = {C.CAPITAL, C.SUPPORT, C.DYNAMICS_1_YEAR}
    data = graph.visualization_data(enabled)

    assert {n["id"] for n in data["nodes"]} == {"capital", "support", "dynamics_1_year"}
    assert {"from": "capital", "to": "support", "type": "direct"} in data["edges"]
    assert {"from": "support", "to": "dynamics_1_year", "type": "wildcard"} in data["edges"]

    mermaid = graph.to_mermaid(enabled)
    assert mermaid.startswith("graph TD")
    assert "capital --> support" in mermaid
