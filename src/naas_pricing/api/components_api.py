"""
Components API - FastAPI router for enabling and configuring components.
"""
from typing import Any, Optional

from fastapi import APIRouter, HTTPException
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel

from ..engine.errors import DependencyError, SchemaValidationError
from .state import orchestrator, store

router = APIRouter(prefix="/components", tags=["components"])


class ComponentUpdate(BaseModel):
    """Request model for updating a component."""
    enabled: Optional[bool] = None
    params: Optional[dict[str, Any]] = None
    replace: bool = False


def schema_error(e: SchemaValidationError) -> HTTPException:
    return HTTPException(
        status_code=422,
        detail={"message": str(e), "component": e.component_type, "errors": e.errors},
    )


def component_view(definition) -> dict:
    instance = store.get_component_instance(definition.id)
    result = instance.last_result if instance else None
    return {
        "id": definition.id.value,
        "display_name": definition.display_name,
        "description": definition.description,
        "category": definition.category,
        "level": definition.level,
        "billing_model": definition.billing_model.value,
        "dependencies": sorted(d.value for d in definition.dependencies),
        "depends_on_all": definition.depends_on_all,
        "enabled": bool(instance and instance.enabled),
        "params": dict(instance.params) if instance else {},
        "result": jsonable_encoder(result) if result else None,
    }


@router.get("")
async def list_components():
    """List every component with its configuration and latest result."""
    definitions = sorted(orchestrator.graph.definitions.values(), key=lambda d: (d.level, d.id.value))
    return [component_view(d) for d in definitions]


@router.get("/{component_type}")
async def get_component(component_type: str):
    try:
        definition = orchestrator.graph.get_definition(component_type)
    except DependencyError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return component_view(definition)


@router.put("/{component_type}")
async def update_component(component_type: str, update: ComponentUpdate):
    """Update parameters and/or the enabled flag; recalculation is scheduled."""
    try:
        definition = orchestrator.graph.get_definition(component_type)
    except DependencyError as e:
        raise HTTPException(status_code=400, detail=str(e))

    instance = store.get_component_instance(definition.id)
    current = dict(instance.params) if instance else {}
    if update.params is not None:
        params = dict(update.params) if update.replace else {**current, **update.params}
    else:
        params = current

    try:
        # Reject bad input before it reaches the store
        orchestrator.calculator.validate_params(definition.id, params)

        if update.params is not None:
            store.update_params(definition.id, update.params, replace=update.replace)
        if update.enabled is not None:
            store.set_enabled(definition.id, update.enabled)
    except SchemaValidationError as e:
        raise schema_error(e)

    view = component_view(definition)
    view["state"] = orchestrator.state.value
    return view
