"""
Error taxonomy for the pricing engine.

SchemaValidationError and DependencyError are blocking: they are raised to the
caller and never defaulted. CalculationError is isolated per component by the
orchestrator. AggregationError covers failures combining results into a quote.
"""
from typing import Optional


class PricingError(Exception):
    """Base class for all pricing engine errors."""


class SchemaValidationError(PricingError):
    """Component parameters are out of their declared range or of the wrong type."""

    def __init__(self, component_type: str, errors: list[dict]):
        self.component_type = component_type
        self.errors = errors
        details = "; ".join(
            f"{'.'.join(str(p) for p in e.get('loc', ())) or 'params'}: {e.get('msg', 'invalid')}"
            for e in errors
        )
        super().__init__(f"Invalid parameters for {component_type}: {details}")


class DependencyError(PricingError):
    """Missing or cyclic component dependency."""

    def __init__(self, message: str, validation=None):
        self.validation = validation
        super().__init__(message)


class CalculationError(PricingError):
    """Runtime failure inside a component formula (e.g. a non-finite total)."""

    def __init__(self, component_type: Optional[str], message: str):
        self.component_type = component_type
        super().__init__(f"{component_type}: {message}" if component_type else message)


class AggregationError(PricingError):
    """Failure combining component results into quote totals."""
