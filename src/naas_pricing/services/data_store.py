"""
Quote Data Store - in-memory state for the components of one quote.

Holds each component's enabled flag, parameters and latest result, and
notifies subscribers when any of them change. The orchestrator subscribes to
schedule recalculations and writes results back through publish_result.
"""
import logging
from enum import Enum
from typing import Callable, Optional, Protocol

from ..engine.models import CalculationResult, ComponentInstance, ComponentType

logger = logging.getLogger(__name__)


class StoreEvent(str, Enum):
    PARAMS_CHANGED = "params_changed"
    COMPONENT_ENABLED = "component_enabled"
    COMPONENT_DISABLED = "component_disabled"
    RESULT_PUBLISHED = "result_published"
    CLEARED = "cleared"


Listener = Callable[[StoreEvent, Optional[ComponentType]], None]

# Called as validator(component_type, params, enabled) before a change is saved
Validator = Callable[[ComponentType, dict, bool], None]


class QuoteStore(Protocol):
    """Store interface consumed by the calculation orchestrator."""

    def get_component_instance(self, component_type: ComponentType) -> Optional[ComponentInstance]: ...

    def get_enabled_component_types(self) -> list[ComponentType]: ...

    def subscribe(self, listener: Listener) -> Callable[[], None]: ...

    def add_validator(self, validator: Validator) -> Callable[[], None]: ...

    def publish_result(self, component_type: ComponentType, result: CalculationResult) -> None: ...


class QuoteDataStore:
    """Single-user, in-memory implementation of QuoteStore."""

    def __init__(self):
        self._instances: dict[ComponentType, ComponentInstance] = {}
        self._listeners: list[Listener] = []
        self._validators: list[Validator] = []

    def _instance(self, component_type) -> ComponentInstance:
        component_type = ComponentType(component_type)
        if component_type not in self._instances:
            self._instances[component_type] = ComponentInstance(type=component_type)
        return self._instances[component_type]

    def _validate(self, component_type: ComponentType, params: dict, enabled: bool):
        for validator in list(self._validators):
            validator(component_type, params, enabled)

    def _notify(self, event: StoreEvent, component_type: Optional[ComponentType] = None):
        for listener in list(self._listeners):
            listener(event, component_type)

    # --- QuoteStore ---

    def get_component_instance(self, component_type) -> Optional[ComponentInstance]:
        return self._instances.get(ComponentType(component_type))

    def get_enabled_component_types(self) -> list[ComponentType]:
        return sorted((c for c, i in self._instances.items() if i.enabled), key=lambda c: c.value)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener; returns a callable that removes it again."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def add_validator(self, validator: Validator) -> Callable[[], None]:
        """
        Register a check run before params or the enabled flag change.

        A validator rejects a change by raising; nothing is saved and no
        listener is notified. Returns a callable that removes the validator.
        """
        self._validators.append(validator)

        def remove():
            if validator in self._validators:
                self._validators.remove(validator)

        return remove

    def publish_result(self, component_type, result: CalculationResult):
        instance = self._instance(component_type)
        instance.last_result = result
        self._notify(StoreEvent.RESULT_PUBLISHED, instance.type)

    # --- Editing ---

    def set_enabled(self, component_type, enabled: bool = True) -> ComponentInstance:
        component_type = ComponentType(component_type)
        current = self._instances.get(component_type)
        if current is None or current.enabled != enabled:
            self._validate(component_type, dict(current.params) if current else {}, enabled)

        instance = self._instance(component_type)
        if instance.enabled != enabled:
            instance.enabled = enabled
            logger.debug("%s %s", instance.type.value, "enabled" if enabled else "disabled")
            self._notify(StoreEvent.COMPONENT_ENABLED if enabled else StoreEvent.COMPONENT_DISABLED, instance.type)
        return instance

    def update_params(self, component_type, params: dict, replace: bool = False) -> ComponentInstance:
        """Merge (or with ``replace`` overwrite) a component's parameters."""
        component_type = ComponentType(component_type)
        current = self._instances.get(component_type)
        existing = current.params if current else {}
        new_params = dict(params) if replace else {**existing, **params}
        self._validate(component_type, new_params, bool(current and current.enabled))

        instance = self._instance(component_type)
        instance.params = new_params
        self._notify(StoreEvent.PARAMS_CHANGED, instance.type)
        return instance

    def clear(self):
        """Discard every component instance."""
        self._instances.clear()
        self._notify(StoreEvent.CLEARED)

    def instances(self) -> dict[ComponentType, ComponentInstance]:
        return dict(self._instances)
