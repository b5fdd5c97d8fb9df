import os
import sys
from dataclasses import replace

import pytest

# Add src to path for internal imports
src_path = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), 'src')
if src_path not in sys.path:
    sys.path.insert(0, src_path)

from naas_pricing.config.settings import Settings
from naas_pricing.data.rate_card import RateCard
from naas_pricing.engine.calculators import Calculator
from naas_pricing.engine.dependency_graph import DependencyGraph
from naas_pricing.engine.orchestrator import CalculationOrchestrator
from naas_pricing.services.data_store import QuoteDataStore


@pytest.fixture
def settings():
    return replace(Settings.load(), debounce_ms=10)


@pytest.fixture(scope="session")
def rate_card():
    return RateCard(settings=Settings.load())


@pytest.fixture
def calculator(rate_card, settings):
    return Calculator(rate_card=rate_card, settings=settings)


@pytest.fixture
def graph():
    return DependencyGraph()


@pytest.fixture
def store():
    return QuoteDataStore()


@pytest.fixture
def orchestrator(store, graph, calculator, settings):
    orch = CalculationOrchestrator(store, graph=graph, calculator=calculator, settings=settings)
    yield orch
    orch.close()
