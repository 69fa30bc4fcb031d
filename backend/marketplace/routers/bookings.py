from typing import Optional

from fastapi import APIRouter, Depends, Query

from marketplace.auth import require_actor
from marketplace.models import (
    BookingAcceptRequest,
    BookingCompleteRequest,
    BookingCreateRequest,
    BookingReasonRequest,
    BookingStatusHistoryEntry,
    ServiceRequest,
    ServiceRequestDetails,
)
from marketplace.routers.http_errors import raise_marketplace_http_error
from marketplace.services.actors import ActorContext
from marketplace.services.booking_store import booking_store
from marketplace.services.errors import MarketplaceError

router = APIRouter(prefix="/bookings", tags=["bookings"])


@router.post("", response_model=ServiceRequest)
def create_booking(request: BookingCreateRequest, actor: ActorContext = Depends(require_actor)):
    try:
        return booking_store.create(
            actor,
            service_id=request.service_id,
            service_address=request.service_address,
            special_instructions=request.special_instructions,
        )
    except MarketplaceError as exc:
        raise_marketplace_http_error(exc)


@router.get("", response_model=list[ServiceRequest])
def list_my_bookings(
    role: Optional[str] = Query(default=None),
    actor: ActorContext = Depends(require_actor),
):
    try:
        return booking_store.list_for_actor(actor, role=role)
    except MarketplaceError as exc:
        raise_marketplace_http_error(exc)


@router.get("/{request_id}", response_model=ServiceRequestDetails)
def booking_details(request_id: str, actor: ActorContext = Depends(require_actor)):
    try:
        return booking_store.get_details(actor, request_id)
    except MarketplaceError as exc:
        raise_marketplace_http_error(exc)


@router.get("/{request_id}/history", response_model=list[BookingStatusHistoryEntry])
def booking_history(request_id: str, actor: ActorContext = Depends(require_actor)):
    try:
        return booking_store.history(actor, request_id)
    except MarketplaceError as exc:
        raise_marketplace_http_error(exc)


@router.post("/{request_id}/accept", response_model=ServiceRequest)
def accept_booking(
    request_id: str,
    request: Optional[BookingAcceptRequest] = None,
    actor: ActorContext = Depends(require_actor),
):
    scheduled_date = request.scheduled_date if request else None
    try:
        return booking_store.accept(actor, request_id, scheduled_date=scheduled_date)
    except MarketplaceError as exc:
        raise_marketplace_http_error(exc)


@router.post("/{request_id}/reject", response_model=ServiceRequest)
def reject_booking(
    request_id: str,
    request: Optional[BookingReasonRequest] = None,
    actor: ActorContext = Depends(require_actor),
):
    reason = request.cancellation_reason if request else None
    try:
        return booking_store.reject(actor, request_id, cancellation_reason=reason)
    except MarketplaceError as exc:
        raise_marketplace_http_error(exc)


@router.post("/{request_id}/complete", response_model=ServiceRequest)
def complete_booking(
    request_id: str,
    request: Optional[BookingCompleteRequest] = None,
    actor: ActorContext = Depends(require_actor),
):
    final_price = request.final_price if request else None
    try:
        return booking_store.complete(actor, request_id, final_price=final_price)
    except MarketplaceError as exc:
        raise_marketplace_http_error(exc)


@router.post("/{request_id}/cancel", response_model=ServiceRequest)
def cancel_booking(
    request_id: str,
    request: Optional[BookingReasonRequest] = None,
    actor: ActorContext = Depends(require_actor),
):
    reason = request.cancellation_reason if request else None
    try:
        return booking_store.cancel(actor, request_id, cancellation_reason=reason)
    except MarketplaceError as exc:
        raise_marketplace_http_error(exc)
