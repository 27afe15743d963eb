"""
Pricing endpoints for Manyanza
Rate administration and the public transit quote calculator
"""
import logging
from typing import Any, Dict, List

from fastapi import APIRouter, Depends, HTTPException, status

from app.core.errors import CorridorNotFoundError
from app.core.security import verify_admin_key
from app.schemas.pricing import (
    CorridorAllowanceUpdate,
    CorridorResponse,
    PricingConfigResponse,
    PricingConfigUpdate,
    QuoteRequest,
    QuoteResponse,
)
from app.services.chatbot.orchestrator import ConversationStateMachine, get_state_machine
from app.services.pricing.config_source import CONFIG_FIELDS, normalize_corridor_key
from app.services.pricing.engine import PricingEngine, PricingInput

logger = logging.getLogger(__name__)

router = APIRouter()

# API field -> pricing document field
FIELD_TO_DOC = {attr: doc_key for doc_key, (attr, _cast) in CONFIG_FIELDS.items()}


# ==================== Dependencies ====================

def get_pricing_source(machine: ConversationStateMachine = Depends(get_state_machine)):
    """Same source the chatbot quotes from, so admin changes reach WhatsApp quotes immediately"""
    return machine.pricing_source


async def get_pricing_engine(
    machine: ConversationStateMachine = Depends(get_state_machine),
) -> PricingEngine:
    config = await machine.pricing_source.load()
    return PricingEngine(config, machine.catalog)


def _config_response(doc: Dict[str, Any]) -> PricingConfigResponse:
    values = {attr: doc.get(doc_key) for attr, doc_key in FIELD_TO_DOC.items()}
    return PricingConfigResponse(
        **values,
        corridor_allowances=doc.get("CORRIDOR_ALLOWANCES") or {},
        last_updated=doc.get("LAST_UPDATED"),
        updated_by=doc.get("UPDATED_BY"),
    )


# ==================== Endpoints ====================

@router.get("", response_model=PricingConfigResponse)
async def get_pricing_config(source=Depends(get_pricing_source)):
    """Current effective rates"""
    return _config_response(await source.get_document())


@router.put("", response_model=PricingConfigResponse, dependencies=[Depends(verify_admin_key)])
async def update_pricing_config(request: PricingConfigUpdate, source=Depends(get_pricing_source)):
    """
    Update pricing rates (admin).

    Only the fields present in the request change. The new rates apply to
    the next quote without a restart.
    """
    updates = {
        FIELD_TO_DOC[field]: value
        for field, value in request.model_dump(exclude={"updated_by"}, exclude_none=True).items()
    }
    if not updates:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No pricing fields to update"
        )

    await source.save(updates, updated_by=request.updated_by)
    return _config_response(await source.get_document())


@router.put(
    "/corridor/{corridor_key}",
    response_model=PricingConfigResponse,
    dependencies=[Depends(verify_admin_key)],
)
async def update_corridor_allowance(
    corridor_key: str,
    request: CorridorAllowanceUpdate,
    source=Depends(get_pricing_source),
    engine: PricingEngine = Depends(get_pricing_engine),
):
    """Set the return allowance for one corridor (admin)"""
    key = normalize_corridor_key(corridor_key)
    if key not in engine.catalog:
        raise CorridorNotFoundError(key)

    await source.save({"CORRIDOR_ALLOWANCES": {key: request.return_allowance}}, updated_by=request.updated_by)
    return _config_response(await source.get_document())


@router.post("/calculate", response_model=QuoteResponse)
async def calculate_quote(request: QuoteRequest, engine: PricingEngine = Depends(get_pricing_engine)):
    """
    Transit quote calculator.

    Unknown corridor keys are priced as custom routes (is_estimate=true).
    """
    pricing_input = PricingInput(
        distance_km=request.distance_km,
        nights=request.nights,
        corridor_key=normalize_corridor_key(request.corridor_key) if request.corridor_key else None,
        waiting_hours=request.waiting_hours,
        after_hours=request.after_hours,
        platform_commission_rate=request.platform_commission_rate,
        vehicle_type=request.vehicle_type,
    )

    errors = engine.validate_params(pricing_input)
    if errors:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"message": "Invalid pricing parameters", "errors": errors}
        )

    return QuoteResponse.from_result(engine.calculate(pricing_input))


@router.get("/corridors", response_model=List[CorridorResponse])
async def list_corridors(engine: PricingEngine = Depends(get_pricing_engine)):
    """Predefined corridors with their current estimate at default commission"""
    corridors = []
    for corridor in engine.catalog:
        estimate = engine.estimate_corridor(corridor.key)
        corridors.append(CorridorResponse(
            key=corridor.key,
            display_name=corridor.display_name,
            distance_km=corridor.distance_km,
            nights=corridor.nights,
            return_allowance=corridor.return_allowance.amount,
            estimated_total=estimate.customer_total.amount,
        ))
    return corridors
