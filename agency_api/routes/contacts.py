"""
Contact form endpoints. Submission is public; the inbox is admin-only.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query

from agency_api.auth import AuthContext, require_admin
from agency_api.contacts import ContactService
from agency_api.dependencies import get_contact_service
from agency_api.routes.common import as_utc, camel, page, present, present_all, respond
from agency_api.schemas import (
    ApiResponse,
    ContactRequest,
    ContactStatusRequest,
    DeleteContactsRequest,
)

router = APIRouter(prefix="/contacts", tags=["contacts"])

_RESPONSE = dict(response_model=ApiResponse, response_model_exclude_none=True)


@router.post("", status_code=201, **_RESPONSE)
def submit_contact(
    payload: ContactRequest, service: ContactService = Depends(get_contact_service)
):
    contact = service.submit(payload)
    return respond(
        present(contact),
        message="Contact form submitted successfully. We'll get back to you soon!",
    )


@router.get("/stats", **_RESPONSE)
def contact_stats(
    _: AuthContext = Depends(require_admin),
    service: ContactService = Depends(get_contact_service),
):
    return respond(camel(service.stats()))


@router.post("/delete-multiple", **_RESPONSE)
def delete_contacts(
    payload: DeleteContactsRequest,
    _: AuthContext = Depends(require_admin),
    service: ContactService = Depends(get_contact_service),
):
    deleted = service.delete_many(payload.ids)
    return respond(
        message=f"{deleted} contact(s) deleted successfully", deleted_count=deleted
    )


@router.get("", **_RESPONSE)
def list_contacts(
    status: Optional[str] = Query(None),
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
    skip: int = Query(0, ge=0),
    limit: Optional[int] = Query(None, ge=0),
    sort_by: str = Query("createdAt", alias="sortBy"),
    sort_order: str = Query("desc", alias="sortOrder"),
    _: AuthContext = Depends(require_admin),
    service: ContactService = Depends(get_contact_service),
):
    result = service.list(
        status=status,
        created_from=as_utc(start_date),
        created_to=as_utc(end_date),
        skip=skip,
        limit=limit,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    return respond(
        present_all(result.contacts),
        count=len(result.contacts),
        total_count=result.total_count,
        status_counts=result.status_counts,
        pagination=page(skip, result.limit, len(result.contacts), result.total_count),
    )


@router.get("/{contact_id}", **_RESPONSE)
def get_contact(
    contact_id: str,
    _: AuthContext = Depends(require_admin),
    service: ContactService = Depends(get_contact_service),
):
    return respond(present(service.open(contact_id)))


@router.patch("/{contact_id}/status", **_RESPONSE)
def update_contact_status(
    contact_id: str,
    payload: ContactStatusRequest,
    _: AuthContext = Depends(require_admin),
    service: ContactService = Depends(get_contact_service),
):
    contact = service.set_status(contact_id, payload.status)
    return respond(present(contact), message="Contact status updated successfully")


@router.delete("/{contact_id}", **_RESPONSE)
def delete_contact(
    contact_id: str,
    _: AuthContext = Depends(require_admin),
    service: ContactService = Depends(get_contact_service),
):
    service.delete(contact_id)
    return respond(message="Contact deleted successfully")
