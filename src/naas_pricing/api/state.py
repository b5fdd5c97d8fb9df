"""Shared quote state for the API process (single user, in memory)."""
from ..config.settings import get_settings
from ..engine.orchestrator import CalculationOrchestrator
from ..services.data_store import QuoteDataStore

settings = get_settings()
store = QuoteDataStore()
orchestrator = CalculationOrchestrator(store, settings=settings)
