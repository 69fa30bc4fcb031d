from typing import Optional

from fastapi import APIRouter, Depends, Query

from marketplace.auth import require_actor
from marketplace.models import AdminStats, Dispute, DisputeAdvanceRequest, Review, ServiceProvider, ServiceRequest
from marketplace.routers.http_errors import raise_marketplace_http_error
from marketplace.services.actors import ActorContext
from marketplace.services.booking_store import booking_store
from marketplace.services.dashboard import admin_dashboard
from marketplace.services.dispute_store import dispute_store
from marketplace.services.errors import MarketplaceError
from marketplace.services.provider_gate import provider_gate
from marketplace.services.review_store import review_store

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/stats", response_model=AdminStats)
def dashboard_stats(actor: ActorContext = Depends(require_actor)):
    try:
        return admin_dashboard.stats(actor)
    except MarketplaceError as exc:
        raise_marketplace_http_error(exc)


@router.get("/providers", response_model=list[ServiceProvider])
def list_providers(
    q: Optional[str] = Query(default=None),
    pending_only: bool = Query(default=False),
    actor: ActorContext = Depends(require_actor),
):
    try:
        return provider_gate.list_for_admin(actor, search=q, pending_only=pending_only)
    except MarketplaceError as exc:
        raise_marketplace_http_error(exc)


@router.post("/providers/{provider_id}/approve", response_model=ServiceProvider)
def approve_provider(provider_id: str, actor: ActorContext = Depends(require_actor)):
    try:
        return provider_gate.approve(actor, provider_id)
    except MarketplaceError as exc:
        raise_marketplace_http_error(exc)


@router.post("/providers/{provider_id}/suspend", response_model=ServiceProvider)
def suspend_provider(provider_id: str, actor: ActorContext = Depends(require_actor)):
    try:
        return provider_gate.suspend(actor, provider_id)
    except MarketplaceError as exc:
        raise_marketplace_http_error(exc)


@router.post("/providers/{provider_id}/remove")
def remove_provider(provider_id: str, actor: ActorContext = Depends(require_actor)):
    try:
        provider_gate.remove(actor, provider_id)
        return {"status": "removed", "provider_id": provider_id}
    except MarketplaceError as exc:
        raise_marketplace_http_error(exc)


@router.get("/reviews", response_model=list[Review])
def list_reviews(
    q: Optional[str] = Query(default=None),
    actor: ActorContext = Depends(require_actor),
):
    try:
        return review_store.list_all(actor, search=q)
    except MarketplaceError as exc:
        raise_marketplace_http_error(exc)


@router.post("/reviews/{review_id}/toggle-visibility", response_model=Review)
def toggle_review_visibility(review_id: str, actor: ActorContext = Depends(require_actor)):
    try:
        return review_store.toggle_visibility(actor, review_id)
    except MarketplaceError as exc:
        raise_marketplace_http_error(exc)


@router.get("/bookings", response_model=list[ServiceRequest])
def list_bookings(
    status: Optional[str] = Query(default=None),
    actor: ActorContext = Depends(require_actor),
):
    try:
        return booking_store.list_all(actor, status=status)
    except MarketplaceError as exc:
        raise_marketplace_http_error(exc)


@router.get("/disputes", response_model=list[Dispute])
def list_disputes(
    status: Optional[str] = Query(default=None),
    actor: ActorContext = Depends(require_actor),
):
    try:
        return dispute_store.list_all(actor, status=status)
    except MarketplaceError as exc:
        raise_marketplace_http_error(exc)


@router.post("/disputes/{dispute_id}/advance", response_model=Dispute)
def advance_dispute(
    dispute_id: str,
    request: DisputeAdvanceRequest,
    actor: ActorContext = Depends(require_actor),
):
    try:
        return dispute_store.advance(actor, dispute_id, status=request.status, admin_notes=request.admin_notes)
    except MarketplaceError as exc:
        raise_marketplace_http_error(exc)
