"""Engine subpackage - component graph, models and financial math."""
from .dependency_graph import DependencyGraph, DEFAULT_DEFINITIONS
from .errors import AggregationError, CalculationError, DependencyError, PricingError, SchemaValidationError
from .models import CalculationResult, ComponentType, Quote, Totals

__all__ = [
    'DependencyGraph', 'DEFAULT_DEFINITIONS',
    'PricingError', 'SchemaValidationError', 'DependencyError', 'CalculationError', 'AggregationError',
    'CalculationResult', 'ComponentType', 'Quote', 'Totals',
]
