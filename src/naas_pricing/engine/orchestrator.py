"""
Calculation Orchestrator - debounced, dependency-ordered recalculation.

Requests are collected in a pending map for a short debounce window, then one
pass computes every requested component plus its enabled dependents in
topological order. Each formula sees the results of its dependencies from the
same pass. A failing component keeps its last good result (marked stale) and
the pass carries on with the rest.
"""
import asyncio
import copy
import logging
import time
from collections import deque
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, Iterable, Optional

from ..config.settings import get_settings, Settings
from ..policy.quote_aggregator import build_quote
from ..services.data_store import StoreEvent
from .calculators import CalculationContext, Calculator
from .dependency_graph import DependencyGraph
from .errors import CalculationError, DependencyError, SchemaValidationError
from .models import (
    CalculationResult,
    ComponentType,
    DependencyIssue,
    DependencyReport,
    PassReport,
    Quote,
)

logger = logging.getLogger(__name__)


class OrchestratorState(str, Enum):
    IDLE = "idle"
    SCHEDULED = "scheduled"
    PROCESSING = "processing"


@dataclass
class CalculationRequest:
    component_type: ComponentType
    priority: int = 0
    source: str = "user"
    requested_at: float = 0.0


class DebounceTimer:
    """Cancellable one-shot timer on the running asyncio loop."""

    def __init__(self, delay: float, callback: Callable[[], None]):
        self.delay = delay
        self.callback = callback
        self._handle: Optional[asyncio.TimerHandle] = None

    @property
    def active(self) -> bool:
        return self._handle is not None

    def restart(self) -> bool:
        """(Re)arm the timer. Returns False when there is no running loop."""
        self.cancel()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return False
        self._handle = loop.call_later(self.delay, self._fire)
        return True

    def cancel(self):
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self):
        self._handle = None
        self.callback()


class CalculationOrchestrator:
    """
    Schedules and runs component calculations against a quote store.

    The store must provide get_component_instance, get_enabled_component_types,
    subscribe, add_validator and publish_result (see services.data_store.QuoteStore).
    """

    def __init__(
        self,
        store,
        graph: Optional[DependencyGraph] = None,
        calculator: Optional[Calculator] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.store = store
        self.graph = graph or DependencyGraph()
        self.calculator = calculator or Calculator(settings=self.settings)

        self.state = OrchestratorState.IDLE
        self.pending: dict[ComponentType, CalculationRequest] = {}
        self.deferred: dict[ComponentType, CalculationRequest] = {}
        self.failures: dict[ComponentType, str] = {}
        self.history: deque = deque(maxlen=self.settings.max_history_size)
        self.additional_discount = self.settings.additional_discount

        self._timer = DebounceTimer(self.settings.debounce_seconds, self._on_timer)
        self._pass_id = 0
        self._stats = {
            "scheduled": 0,
            "deduplicated": 0,
            "calculations": 0,
            "failures": 0,
            "skipped_fresh": 0,
            "invalid": 0,
        }
        self._quote = build_quote({}, settings=self.settings)
        self._unsubscribe = store.subscribe(self._on_store_event)
        self._remove_validator = store.add_validator(self._validate_change)

    # --- Scheduling ---

    def schedule_calculation(self, component_type, priority: int = 0, source: str = "user") -> CalculationRequest:
        """
        Request a recalculation of a component and everything depending on it.

        Raises:
            DependencyError: unknown component type
            SchemaValidationError: the component is enabled with invalid parameters
        """
        component_type = self.graph.get_definition(component_type).id

        instance = self.store.get_component_instance(component_type)
        if instance is not None and instance.enabled:
            self.calculator.validate_params(component_type, instance.params)

        return self._enqueue(component_type, priority, source)

    def _enqueue(self, component_type: ComponentType, priority: int, source: str) -> CalculationRequest:
        # Requests made during a pass run in the next one
        queue = self.deferred if self.state is OrchestratorState.PROCESSING else self.pending
        self._stats["scheduled"] += 1

        existing = queue.get(component_type)
        if existing is not None:
            existing.priority = max(existing.priority, priority)
            self._stats["deduplicated"] += 1
            logger.debug("Deduplicated request for %s (source=%s)", component_type.value, source)
            request = existing
        else:
            request = CalculationRequest(component_type, priority, source, time.monotonic())
            queue[component_type] = request
            logger.debug("Scheduled %s (priority=%d, source=%s)", component_type.value, priority, source)

        if self.state is not OrchestratorState.PROCESSING:
            self.state = OrchestratorState.SCHEDULED
            self._timer.restart()

        return request

    def flush(self) -> Optional[PassReport]:
        """Run the pending pass now instead of waiting for the debounce timer."""
        self._timer.cancel()
        return self._run_pass()

    async def wait_until_idle(self, timeout: float = 5.0) -> bool:
        """Wait for pending and deferred work to finish. Returns False on timeout."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while self.state is not OrchestratorState.IDLE:
            if self.state is OrchestratorState.SCHEDULED and not self._timer.active:
                # Scheduled while no loop was running
                self._timer.restart()
            if loop.time() >= deadline:
                return False
            await asyncio.sleep(0.005)
        return True

    def clear_queue(self):
        """Drop pending and deferred requests without running them."""
        self._timer.cancel()
        self.pending.clear()
        self.deferred.clear()
        if self.state is not OrchestratorState.PROCESSING:
            self.state = OrchestratorState.IDLE

    def _on_timer(self):
        self._run_pass()

    def _validate_change(self, component_type: ComponentType, params: dict, enabled: bool):
        if enabled:
            self.calculator.validate_params(component_type, params)

    def _on_store_event(self, event: StoreEvent, component_type: Optional[ComponentType]):
        if event in (StoreEvent.PARAMS_CHANGED, StoreEvent.COMPONENT_ENABLED, StoreEvent.COMPONENT_DISABLED):
            self._enqueue(self.graph.get_definition(component_type).id, 0, "store")
        elif event is StoreEvent.CLEARED:
            self.clear_queue()
            self.failures.clear()
            self._quote = build_quote({}, settings=self.settings)

    # --- Processing ---

    def _run_pass(self) -> Optional[PassReport]:
        if self.state is OrchestratorState.PROCESSING:
            return None
        if not self.pending:
            self.state = OrchestratorState.IDLE
            return None

        self.state = OrchestratorState.PROCESSING
        pending, self.pending = self.pending, {}
        self._pass_id += 1

        requests = sorted(pending.values(), key=lambda r: (-r.priority, r.requested_at))
        report = PassReport(
            pass_id=self._pass_id,
            requested=[r.component_type.value for r in requests],
            sources={r.component_type.value: r.source for r in requests},
        )
        start = time.perf_counter()

        try:
            enabled = set(self.store.get_enabled_component_types())
            requested = set(pending)
            targets = requested | self.graph.get_all_dependents(requested, enabled)
            order = self.graph.get_calculation_order(targets, enabled)
            report.order = [c.value for c in order]

            fresh: dict[ComponentType, CalculationResult] = {}
            for component in order:
                if component not in targets:
                    existing = self._last_result(component)
                    if existing is not None and not existing.stale:
                        self._stats["skipped_fresh"] += 1
                        continue
                result = self._calculate(component, enabled, fresh, report)
                if result is not None:
                    fresh[component] = result

            self._rebuild_quote()
        finally:
            report.duration_ms = (time.perf_counter() - start) * 1000
            self.history.append(report)
            self.state = OrchestratorState.IDLE

            if self.deferred:
                self.pending, self.deferred = self.deferred, {}
                self.state = OrchestratorState.SCHEDULED
                self._timer.restart()

        logger.info(
            "Pass %d: calculated %d of %d components in %.1fms (%d failed, %d invalid)",
            report.pass_id, len(report.calculated), len(report.order), report.duration_ms,
            len(report.failures), len(report.invalid),
        )
        return report

    def _calculate(self, component: ComponentType, enabled: set, fresh: dict, report: PassReport) -> Optional[CalculationResult]:
        instance = self.store.get_component_instance(component)
        params = instance.params if instance is not None else {}
        definition = self.graph.get_definition(component)

        available = {}
        for dep in self.graph.get_dependencies(component, enabled):
            if dep in fresh:
                available[dep] = fresh[dep]
            elif dep in enabled:
                previous = self._last_result(dep)
                if previous is not None:
                    available[dep] = previous

        # Disabled dependencies, and enabled ones that have never produced a result
        defaulted = sorted(
            (d for d in definition.dependencies if d not in enabled or d not in available),
            key=lambda c: c.value,
        )
        if defaulted:
            logger.warning(
                "%s calculated with default context in place of %s",
                component.value, ", ".join(d.value for d in defaulted),
            )

        context = CalculationContext.build(component, available, defaulted, enabled)

        try:
            result = self.calculator.calculate(component, params, context)
        except SchemaValidationError as e:
            logger.error("Skipped %s: %s", component.value, e)
            self._stats["invalid"] += 1
            self.failures[component] = str(e)
            report.invalid[component.value] = str(e)
            error = e
        except Exception as e:
            error = e if isinstance(e, CalculationError) else CalculationError(component.value, str(e))
            logger.exception("Calculation failed for %s", component.value)
            self._stats["failures"] += 1
            self.failures[component] = str(error)
            report.failures[component.value] = str(error)
        else:
            error = None

        if error is not None:
            previous = self._last_result(component)
            if previous is not None:
                self.store.publish_result(component, replace(previous, stale=True, error=str(error)))
            return None

        stale_inputs = sorted(d.value for d, r in available.items() if r.stale)
        if stale_inputs:
            result = replace(result, metadata={**result.metadata, "stale_context": stale_inputs})

        self._stats["calculations"] += 1
        self.failures.pop(component, None)
        report.calculated.append(component.value)
        self.store.publish_result(component, result)
        return result

    def _last_result(self, component: ComponentType) -> Optional[CalculationResult]:
        instance = self.store.get_component_instance(component)
        return instance.last_result if instance is not None else None

    def _rebuild_quote(self):
        enabled = self.store.get_enabled_component_types()
        results = {}
        warnings = []
        for component in enabled:
            result = self._last_result(component)
            if result is not None:
                results[component] = result
            elif component in self.failures:
                warnings.append(f"{component.value} could not be calculated: {self.failures[component]}")

        billing_models = {c: self.graph.get_definition(c).billing_model for c in results}
        self._quote = build_quote(
            results,
            billing_models,
            settings=self.settings,
            additional_discount=self.additional_discount,
            pass_id=self._pass_id,
            warnings=warnings,
        )

    # --- Queries ---

    def get_quote(self) -> Quote:
        """Copy of the quote built from the latest completed pass."""
        return copy.deepcopy(self._quote)

    def set_additional_discount(self, rate: float) -> Quote:
        """Set the quote-level promotional discount and rebuild the quote."""
        if isinstance(rate, bool) or not isinstance(rate, (int, float)) or not 0 <= rate <= 1:
            raise ValueError(f"Additional discount must be between 0 and 1, got {rate!r}")
        self.additional_discount = float(rate)
        self._rebuild_quote()
        return self.get_quote()

    def validate_dependencies(self, component_types: Iterable) -> DependencyReport:
        """
        Check a set of component types before enabling them together.

        Unknown types and invalid stored parameters are errors; disabled
        dependencies are warnings because dependents fall back to defaults.
        """
        issues = []
        known = set()
        for component_type in component_types:
            try:
                known.add(self.graph.get_definition(component_type).id)
            except DependencyError as e:
                issues.append(DependencyIssue(str(getattr(component_type, "value", component_type)), "unknown", str(e)))

        for component in sorted(known, key=lambda c: c.value):
            definition = self.graph.get_definition(component)
            for dep in sorted(definition.dependencies, key=lambda c: c.value):
                if dep not in known:
                    issues.append(DependencyIssue(
                        component.value,
                        "disabled_dependency",
                        f"{component.value} requires {dep.value}; default values will be used",
                        severity="warning",
                    ))
            if definition.depends_on_all and not self.graph.get_dependencies(component, known):
                issues.append(DependencyIssue(
                    component.value,
                    "missing",
                    f"{component.value} requires other components to be enabled",
                    severity="warning",
                ))

            instance = self.store.get_component_instance(component)
            if instance is not None:
                try:
                    self.calculator.validate_params(component, instance.params)
                except SchemaValidationError as e:
                    issues.append(DependencyIssue(component.value, "schema", str(e)))

        return DependencyReport(
            valid=not any(i.severity == "error" for i in issues),
            issues=issues,
        )

    def get_calculation_stats(self) -> dict:
        durations = [r.duration_ms for r in self.history]
        return {
            **self._stats,
            "state": self.state.value,
            "passes": self._pass_id,
            "pending": len(self.pending),
            "deferred": len(self.deferred),
            "failing_components": sorted(c.value for c in self.failures),
            "history_size": len(self.history),
            "last_pass_ms": durations[-1] if durations else None,
            "average_pass_ms": sum(durations) / len(durations) if durations else None,
        }

    def close(self):
        """Stop listening to the store and drop queued work."""
        self.clear_queue()
        self._unsubscribe()
        self._remove_validator()
