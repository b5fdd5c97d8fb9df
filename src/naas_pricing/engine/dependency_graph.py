"""
Dependency Graph - Static catalog of pricing components and their ordering.

Each component declares the components it needs results from, the fields it
provides to dependents, and a calculation level. The graph validates that the
declared edges form a DAG and produces the execution order for a batch.
"""
import heapq
import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional

from .errors import DependencyError
from .models import BillingModel, ComponentDefinition, ComponentType as C

logger = logging.getLogger(__name__)


def _definition(component, level, billing, category, display_name, description,
                dependencies=(), provides=(), requires=None, depends_on_all=False,
                term_years=None) -> ComponentDefinition:
    return ComponentDefinition(
        id=component,
        level=level,
        billing_model=billing,
        category=category,
        description=description,
        display_name=display_name,
        dependencies=frozenset(dependencies),
        provides=frozenset(provides),
        requires={k: frozenset(v) for k, v in (requires or {}).items()},
        depends_on_all=depends_on_all,
        term_years=term_years,
    )


ONE_TIME = BillingModel.ONE_TIME
RECURRING = BillingModel.RECURRING

DEFAULT_DEFINITIONS: tuple[ComponentDefinition, ...] = (
    # Level 0: independent components
    _definition(C.HELP, 0, ONE_TIME, 'documentation', 'Help & Instructions',
                'User guide and calculator instructions'),
    _definition(C.ASSESSMENT, 0, ONE_TIME, 'services', 'Platform Assessment',
                'Network assessment and discovery'),
    _definition(C.ADMIN, 0, ONE_TIME, 'services', 'Admin Services',
                'Administrative and review services'),
    _definition(C.OTHER_COSTS, 0, ONE_TIME, 'flexible', 'Other Costs',
                'Additional costs and custom services'),

    # Level 1: base infrastructure and core services
    _definition(C.PRTG, 1, RECURRING, 'monitoring', 'PRTG Monitoring',
                'PRTG network monitoring setup and licensing',
                provides=('sensor_count', 'monitoring_locations')),
    _definition(C.CAPITAL, 1, RECURRING, 'infrastructure', 'Capital Equipment',
                'Capital equipment and hardware costs',
                provides=('device_count', 'equipment_list', 'total_capital_cost')),
    _definition(C.ONBOARDING, 1, ONE_TIME, 'services', 'Onboarding',
                'Initial setup and implementation services',
                provides=('implementation_cost', 'setup_complexity')),
    _definition(C.PBS_FOUNDATION, 1, RECURRING, 'platform', 'PBS Foundation',
                'PBS foundation platform services',
                provides=('platform_cost', 'user_licenses')),

    # Level 2: services built on base infrastructure
    _definition(C.SUPPORT, 2, RECURRING, 'services', 'Support Services',
                '24/7 support and maintenance services',
                dependencies=(C.CAPITAL,),
                requires={C.CAPITAL: ('device_count',)},
                provides=('support_level', 'support_coverage', 'device_count')),

    # Level 3: enhanced services and the standard package
    _definition(C.ENHANCED_SUPPORT, 3, RECURRING, 'services', 'Enhanced Support',
                'Premium support and monitoring services',
                dependencies=(C.SUPPORT,),
                requires={C.SUPPORT: ('support_level', 'device_count')},
                provides=('enhanced_sla', 'premium_features')),
    _definition(C.NAAS_STANDARD, 3, RECURRING, 'packages', 'NaaS Standard',
                'Standard NaaS service package',
                dependencies=(C.PRTG, C.SUPPORT),
                requires={C.PRTG: ('sensor_count',), C.SUPPORT: ('support_level', 'device_count')},
                provides=('standard_package_features', 'device_count')),

    # Level 4: the enhanced package builds on the standard one
    _definition(C.NAAS_ENHANCED, 4, RECURRING, 'packages', 'NaaS Enhanced',
                'Enhanced NaaS service package',
                dependencies=(C.NAAS_STANDARD, C.ENHANCED_SUPPORT),
                requires={C.NAAS_STANDARD: ('standard_package_features',),
                          C.ENHANCED_SUPPORT: ('enhanced_sla',)},
                provides=('enhanced_package_features', 'device_count')),

    # Level 5: contract dynamics consume every active lower-level component
    _definition(C.DYNAMICS_1_YEAR, 5, RECURRING, 'contracts', 'Dynamics 1 Year',
                '1-year dynamic pricing options', depends_on_all=True, term_years=1),
    _definition(C.DYNAMICS_3_YEAR, 5, RECURRING, 'contracts', 'Dynamics 3 Year',
                '3-year dynamic pricing options', depends_on_all=True, term_years=3),
    _definition(C.DYNAMICS_5_YEAR, 5, RECURRING, 'contracts', 'Dynamics 5 Year',
                '5-year dynamic pricing options', depends_on_all=True, term_years=5),
)


@dataclass
class GraphValidation:
    """Result of validating a set of component definitions."""
    valid: bool = True
    cycle: list = field(default_factory=list)
    missing: list = field(default_factory=list)  # (component, missing dependency)
    level_violations: list = field(default_factory=list)
    field_issues: list = field(default_factory=list)

    @property
    def issues(self) -> list[str]:
        issues = []
        if self.cycle:
            issues.append("Circular dependency: " + " -> ".join(str(_key(c)) for c in self.cycle))
        for component, dep in self.missing:
            issues.append(f"{_key(component)} depends on unknown component {_key(dep)}")
        for component, dep in self.level_violations:
            issues.append(f"{_key(component)} must have a higher level than its dependency {_key(dep)}")
        issues.extend(self.field_issues)
        return issues


def _key(component) -> str:
    return component.value if isinstance(component, C) else str(component)


class DependencyGraph:
    """
    Component dependency graph with cycle detection and topological ordering.

    Ordering rules:
    1. A dependency is always scheduled before its dependents
    2. Wildcard components (contract dynamics) come after every enabled
       lower-level component
    3. Independent components are ordered by (level, id) for stability
    """

    def __init__(self, definitions: Optional[Iterable[ComponentDefinition]] = None):
        definitions = list(definitions if definitions is not None else DEFAULT_DEFINITIONS)

        validation = self.validate(definitions)
        if not validation.valid:
            raise DependencyError(
                "Invalid component dependency graph: " + "; ".join(validation.issues),
                validation=validation,
            )

        self.definitions: dict = {d.id: d for d in definitions}

    @staticmethod
    def validate(definitions: Iterable[ComponentDefinition]) -> GraphValidation:
        """Check definitions for missing dependencies, cycles, level and field mismatches."""
        by_id = {d.id: d for d in definitions}
        result = GraphValidation()

        for d in by_id.values():
            for dep in sorted(d.dependencies, key=_key):
                if dep not in by_id:
                    result.missing.append((d.id, dep))
                elif by_id[dep].level >= d.level:
                    result.level_violations.append((d.id, dep))

            for dep, fields in d.requires.items():
                if dep not in d.dependencies or dep not in by_id:
                    result.field_issues.append(f"{_key(d.id)} requires fields from non-dependency {_key(dep)}")
                    continue
                unknown = sorted(set(fields) - set(by_id[dep].provides))
                if unknown:
                    result.field_issues.append(
                        f"{_key(d.id)} requires {', '.join(unknown)} which {_key(dep)} does not provide"
                    )

        result.cycle = DependencyGraph._find_cycle(by_id)

        result.valid = not (result.cycle or result.missing or result.level_violations or result.field_issues)
        return result

    @staticmethod
    def _find_cycle(by_id: dict) -> list:
        """DFS three-colour search. Returns the offending chain, e.g. [a, b, a], or []."""
        WHITE, GREY, BLACK = 0, 1, 2
        colour = {c: WHITE for c in by_id}
        path: list = []

        def visit(node) -> list:
            colour[node] = GREY
            path.append(node)
            for dep in sorted(by_id[node].dependencies, key=_key):
                if dep not in by_id:
                    continue
                if colour[dep] == GREY:
                    return path[path.index(dep):] + [dep]
                if colour[dep] == WHITE:
                    chain = visit(dep)
                    if chain:
                        return chain
            path.pop()
            colour[node] = BLACK
            return []

        for node in sorted(by_id, key=_key):
            if colour[node] == WHITE:
                chain = visit(node)
                if chain:
                    return chain
        return []

    def get_definition(self, component) -> ComponentDefinition:
        """Get the definition for a component, raising DependencyError for unknown ids."""
        try:
            return self.definitions[C(component)]
        except (ValueError, KeyError):
            raise DependencyError(f"Unknown component type: {component}")

    def get_level(self, component) -> int:
        return self.get_definition(component).level

    def get_dependencies(self, component, enabled: Optional[Iterable] = None) -> set:
        """
        Direct dependencies of a component.

        For wildcard components the dependencies are the enabled lower-level,
        non-wildcard components, so ``enabled`` must be supplied.
        """
        definition = self.get_definition(component)
        deps = set(definition.dependencies)
        if definition.depends_on_all and enabled is not None:
            for other in enabled:
                other_def = self.definitions.get(other)
                if other_def and not other_def.depends_on_all and other_def.level < definition.level:
                    deps.add(other_def.id)
        return deps

    def get_dependents(self, component, enabled: Optional[Iterable] = None) -> set:
        """Components that directly depend on the given component."""
        definition = self.get_definition(component)
        dependents = set()
        for other in self.definitions.values():
            if other.id == definition.id:
                continue
            if definition.id in other.dependencies:
                dependents.add(other.id)
            elif other.depends_on_all and not definition.depends_on_all and definition.level < other.level:
                dependents.add(other.id)
        if enabled is not None:
            dependents &= set(enabled)
        return dependents

    def get_all_dependents(self, components: Iterable, enabled: Optional[Iterable] = None) -> set:
        """Transitive dependents of the given components."""
        enabled = set(enabled) if enabled is not None else None
        seen: set = set()
        frontier = [self.get_definition(c).id for c in components]
        while frontier:
            current = frontier.pop()
            for dependent in self.get_dependents(current, enabled):
                if dependent not in seen:
                    seen.add(dependent)
                    frontier.append(dependent)
        return seen

    def get_calculation_order(self, requested: Iterable, enabled: Iterable) -> list:
        """
        Topologically sorted execution order for a batch.

        The graph is restricted to the enabled requested components plus their
        enabled transitive dependencies. Disabled dependencies are left out; their
        dependents run with default context.
        """
        enabled = {self.get_definition(c).id for c in enabled}
        requested = {self.get_definition(c).id for c in requested}

        nodes: set = set()
        frontier = [c for c in requested if c in enabled]
        while frontier:
            current = frontier.pop()
            if current in nodes:
                continue
            nodes.add(current)
            frontier.extend(d for d in self.get_dependencies(current, enabled) if d in enabled)

        # Kahn's algorithm, ties broken by (level, id)
        in_degree = {n: 0 for n in nodes}
        dependents: dict = {n: [] for n in nodes}
        for node in nodes:
            for dep in self.get_dependencies(node, enabled):
                if dep in nodes:
                    in_degree[node] += 1
                    dependents[dep].append(node)

        ready = [(self.definitions[n].level, n.value, n) for n, deg in in_degree.items() if deg == 0]
        heapq.heapify(ready)
        order = []
        while ready:
            _, _, node = heapq.heappop(ready)
            order.append(node)
            for dependent in dependents[node]:
                in_degree[dependent] -= 1
                if in_degree[dependent] == 0:
                    heapq.heappush(ready, (self.definitions[dependent].level, dependent.value, dependent))

        if len(order) != len(nodes):
            # Unreachable for a validated graph
            raise DependencyError("Circular dependency detected while ordering components")

        return order

    def check_relationships(self, enabled: Iterable) -> tuple[list[str], list[str]]:
        """
        Check enabled components for dependencies that are not enabled.

        Returns (errors, warnings). Disabled dependencies are warnings: the
        dependent is still calculated, with default context.
        """
        errors, warnings = [], []
        enabled_ids = set()
        for component in enabled:
            try:
                enabled_ids.add(self.get_definition(component).id)
            except DependencyError as e:
                errors.append(str(e))

        for component in sorted(enabled_ids, key=_key):
            definition = self.definitions[component]
            for dep in sorted(definition.dependencies, key=_key):
                if dep not in enabled_ids:
                    warnings.append(
                        f"{component.value} requires {dep.value}; it is disabled so defaults will be used"
                    )
            if definition.depends_on_all and not self.get_dependencies(component, enabled_ids):
                warnings.append(f"{component.value} requires other components to be enabled")

        return errors, warnings

    def visualization_data(self, enabled: Optional[Iterable] = None) -> dict:
        """Nodes and edges for rendering the graph."""
        enabled_ids = {self.get_definition(c).id for c in enabled} if enabled is not None else None
        components = sorted(enabled_ids if enabled_ids is not None else self.definitions, key=_key)
        scope = set(components)

        nodes = [
            {
                "id": c.value,
                "label": self.definitions[c].display_name,
                "level": self.definitions[c].level,
                "category": self.definitions[c].category,
                "description": self.definitions[c].description,
                "enabled": enabled_ids is None or c in enabled_ids,
            }
            for c in components
        ]

        edges = []
        for c in components:
            definition = self.definitions[c]
            for dep in sorted(self.get_dependencies(c, scope), key=_key):
                if dep in scope:
                    edge_type = "direct" if dep in definition.dependencies else "wildcard"
                    edges.append({"from": dep.value, "to": c.value, "type": edge_type})

        return {"nodes": nodes, "edges": edges}

    def to_mermaid(self, enabled: Optional[Iterable] = None) -> str:
        """Generate Mermaid flowchart syntax for the graph."""
        data = self.visualization_data(enabled)
        lines = ["graph TD"]
        for node in data["nodes"]:
            lines.append(f'    {node["id"]}["{node["label"]}"]:::level{node["level"]}')
        for edge in data["edges"]:
            arrow = "-.->|depends on all|" if edge["type"] == "wildcard" else "-->"
            lines.append(f'    {edge["from"]} {arrow} {edge["to"]}')
        return "\n".join(lines)

    def statistics(self) -> dict:
        """Summary statistics for the graph."""
        levels: dict = {}
        categories: dict = {}
        for d in self.definitions.values():
            levels[f"Level {d.level}"] = levels.get(f"Level {d.level}", 0) + 1
            categories[d.category] = categories.get(d.category, 0) + 1

        return {
            "total_components": len(self.definitions),
            "total_edges": sum(len(d.dependencies) for d in self.definitions.values()),
            "wildcard_components": sorted(c.value for c, d in self.definitions.items() if d.depends_on_all),
            "level_distribution": levels,
            "category_distribution": categories,
            "max_level": max(d.level for d in self.definitions.values()),
        }
