"""
Pricing plan endpoints. Reads are public, writes need admin privilege.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from agency_api.auth import AuthContext, require_admin
from agency_api.dependencies import get_pricing_service
from agency_api.pricing import PricingPlanService
from agency_api.routes.common import present, present_all, respond
from agency_api.schemas import ApiResponse, PricingPlanRequest

router = APIRouter(prefix="/pricing", tags=["pricing"])

_RESPONSE = dict(response_model=ApiResponse, response_model_exclude_none=True)


@router.get("", **_RESPONSE)
def list_plans(service: PricingPlanService = Depends(get_pricing_service)):
    plans = service.list()
    return respond(present_all(plans), count=len(plans))


@router.get("/{plan_id}", **_RESPONSE)
def get_plan(plan_id: str, service: PricingPlanService = Depends(get_pricing_service)):
    return respond(present(service.get(plan_id)))


@router.post("", status_code=201, **_RESPONSE)
def create_plan(
    payload: PricingPlanRequest,
    _: AuthContext = Depends(require_admin),
    service: PricingPlanService = Depends(get_pricing_service),
):
    plan = service.create(payload)
    return respond(present(plan), message="Pricing plan created successfully")


@router.put("/{plan_id}", **_RESPONSE)
def update_plan(
    plan_id: str,
    payload: PricingPlanRequest,
    _: AuthContext = Depends(require_admin),
    service: PricingPlanService = Depends(get_pricing_service),
):
    plan = service.update(plan_id, payload)
    return respond(present(plan), message="Pricing plan updated successfully")


@router.delete("/{plan_id}", **_RESPONSE)
def delete_plan(
    plan_id: str,
    _: AuthContext = Depends(require_admin),
    service: PricingPlanService = Depends(get_pricing_service),
):
    service.delete(plan_id)
    return respond(message="Pricing plan deleted successfully")
