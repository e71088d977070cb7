"""
Admin dashboard endpoints.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from agency_api.auth import AuthContext, require_admin
from agency_api.dashboard import DashboardService
from agency_api.dependencies import get_dashboard_service
from agency_api.routes.common import camel, respond
from agency_api.schemas import ApiResponse

router = APIRouter(prefix="/dashboard", tags=["dashboard"])


@router.get("/stats", response_model=ApiResponse, response_model_exclude_none=True)
@router.get("", response_model=ApiResponse, response_model_exclude_none=True)
def dashboard_stats(
    _: AuthContext = Depends(require_admin),
    service: DashboardService = Depends(get_dashboard_service),
):
    return respond(camel(service.compute_stats()))
