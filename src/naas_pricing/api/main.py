from fastapi import FastAPI, HTTPException
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field
from typing import List

from naas_pricing import __version__
from naas_pricing.api.components_api import router as components_router
from naas_pricing.api.state import orchestrator, settings, store
from naas_pricing.engine.errors import AggregationError
from naas_pricing.engine.models import Quote

app = FastAPI(
    title="NaaS Pricing API",
    description="Backend API for the NaaS quote calculator",
    version=__version__,
)

# Enable CORS for frontend development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(components_router)


class DiscountRequest(BaseModel):
    rate: float = Field(ge=0, le=1)


class ValidateRequest(BaseModel):
    components: List[str]


def quote_response(quote: Quote) -> dict:
    data = jsonable_encoder(quote)
    data["total_contract_value"] = quote.total_contract_value
    data["discounts"]["annual_delta"] = quote.discounts.annual_delta
    data["summary"] = quote.get_summary_text()
    return data


@app.get("/")
async def root():
    return {"status": "online", "message": "NaaS Pricing API Active"}


@app.get("/quote")
async def get_quote(refresh: bool = True):
    """Current quote. With refresh, pending recalculations run first."""
    try:
        if refresh:
            orchestrator.flush()
        return quote_response(orchestrator.get_quote())
    except AggregationError as e:
        raise HTTPException(status_code=500, detail=str(e))


@app.put("/quote/discount")
async def set_discount(req: DiscountRequest):
    try:
        orchestrator.flush()
        quote = orchestrator.set_additional_discount(req.rate)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return quote_response(quote)


@app.delete("/quote")
async def clear_quote():
    store.clear()
    orchestrator.set_additional_discount(settings.additional_discount)
    return quote_response(orchestrator.get_quote())


@app.post("/validate")
async def validate_components(req: ValidateRequest):
    report = orchestrator.validate_dependencies(req.components)
    return jsonable_encoder(report)


@app.get("/graph")
async def get_graph(enabled_only: bool = False):
    graph = orchestrator.graph
    enabled = store.get_enabled_component_types()
    scope = enabled if enabled_only else None
    return {
        **graph.visualization_data(scope),
        "mermaid": graph.to_mermaid(scope),
        "statistics": graph.statistics(),
        "calculation_order": [c.value for c in graph.get_calculation_order(enabled, enabled)],
    }


@app.get("/system/status")
async def get_status():
    rate_card = orchestrator.calculator.rate_card
    return {
        "engine_active": True,
        "version": __version__,
        "rate_card": str(rate_card.path),
        "rate_card_hash": rate_card.source_hash,
        "enabled_components": [c.value for c in store.get_enabled_component_types()],
        "orchestrator": orchestrator.get_calculation_stats(),
    }
