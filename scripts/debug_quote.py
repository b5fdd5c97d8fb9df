"""
Build a sample quote end to end and print the pass report, quote summary and
the dependency graph as Mermaid.
"""
import asyncio
import logging
import sys
from pathlib import Path

# Add src to path
src_path = Path(__file__).parent.parent / 'src'
sys.path.insert(0, str(src_path))

from naas_pricing.engine.orchestrator import CalculationOrchestrator
from naas_pricing.engine.models import ComponentType as C
from naas_pricing.services.data_store import QuoteDataStore

SAMPLE = {
    C.CAPITAL: {
        "equipment": [
            {"description": "Core switch", "quantity": 2, "unit_cost": 4500},
            {"description": "Access point", "quantity": 20, "unit_cost": 350},
        ],
        "financing": True,
        "term_months": 36,
        "down_payment": 1000,
    },
    C.PRTG: {"sensors": 400, "locations": 3, "service_level": "enhanced"},
    C.SUPPORT: {"level": "enhanced"},
    C.NAAS_STANDARD: {},
    C.ONBOARDING: {"complexity": "standard", "sites": 3},
    C.DYNAMICS_3_YEAR: {"base_monthly": 500},
}


async def build():
    store = QuoteDataStore()
    orchestrator = CalculationOrchestrator(store)

    for component, params in SAMPLE.items():
        store.update_params(component, params)
        store.set_enabled(component, True)

    await orchestrator.wait_until_idle()
    return orchestrator


def debug():
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    orchestrator = asyncio.run(build())

    report = orchestrator.history[-1]
    print(f"\n--- Pass {report.pass_id} ({report.duration_ms:.1f}ms) ---")
    print(f"Order: {' -> '.join(report.order)}")
    if report.failures:
        print(f"Failures: {report.failures}")

    quote = orchestrator.get_quote()
    print("\n--- Components ---")
    for component, result in quote.components.items():
        t = result.totals
        print(f"{component.value:<18} one-time £{t.one_time:>10,.2f}  monthly £{t.monthly:>9,.2f}  3yr £{t.three_year:>11,.2f}")

    print("\n--- Quote ---")
    print(quote.get_summary_text())
    print(f"Total contract value: £{quote.total_contract_value:,.2f}")

    print("\n--- Dependency Graph ---")
    print(orchestrator.graph.to_mermaid(orchestrator.store.get_enabled_component_types()))


if __name__ == "__main__":
    debug()
