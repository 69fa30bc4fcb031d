from typing import Optional

from fastapi import APIRouter, Depends, Query

from marketplace.auth import optional_actor, require_actor
from marketplace.models import Category, ProviderDetails, ProviderProfile, ProviderSummary, RatingSummary, Review, ServiceProvider
from marketplace.routers.http_errors import raise_marketplace_http_error
from marketplace.services.actors import ActorContext
from marketplace.services.catalog_store import catalog_store
from marketplace.services.errors import MarketplaceError
from marketplace.services.provider_gate import provider_gate
from marketplace.services.review_store import review_store

router = APIRouter(tags=["providers"])


@router.get("/categories", response_model=list[Category])
def list_categories():
    return catalog_store.list_categories()


@router.get("/providers", response_model=list[ProviderSummary])
def list_providers(
    q: Optional[str] = Query(default=None),
    category_id: Optional[int] = Query(default=None),
    city: Optional[str] = Query(default=None),
    include_hidden: bool = Query(default=False),
    actor: Optional[ActorContext] = Depends(optional_actor),
):
    return catalog_store.list_providers(
        actor=actor,
        search=q,
        category_id=category_id,
        city=city,
        include_hidden=include_hidden,
    )


@router.post("/providers", response_model=ServiceProvider)
def register_provider(profile: ProviderProfile, actor: ActorContext = Depends(require_actor)):
    try:
        return provider_gate.register(actor, profile)
    except MarketplaceError as exc:
        raise_marketplace_http_error(exc)


@router.get("/providers/me", response_model=ServiceProvider)
def my_provider_profile(actor: ActorContext = Depends(require_actor)):
    try:
        return provider_gate.get_own(actor)
    except MarketplaceError as exc:
        raise_marketplace_http_error(exc)


@router.post("/providers/me/update", response_model=ServiceProvider)
def update_my_provider_profile(profile: ProviderProfile, actor: ActorContext = Depends(require_actor)):
    try:
        return provider_gate.update_profile(actor, profile)
    except MarketplaceError as exc:
        raise_marketplace_http_error(exc)


@router.get("/providers/{provider_id}", response_model=ProviderDetails)
def provider_details(provider_id: str, actor: Optional[ActorContext] = Depends(optional_actor)):
    try:
        return catalog_store.get_provider_details(actor, provider_id)
    except MarketplaceError as exc:
        raise_marketplace_http_error(exc)


@router.get("/providers/{provider_id}/reviews", response_model=list[Review])
def provider_reviews(
    provider_id: str,
    limit: int = Query(default=10, ge=1, le=100),
    actor: Optional[ActorContext] = Depends(optional_actor),
):
    try:
        catalog_store.assert_provider_readable(actor, provider_id)
    except MarketplaceError as exc:
        raise_marketplace_http_error(exc)
    return review_store.list_for_provider(provider_id, limit=limit)


@router.get("/providers/{provider_id}/rating", response_model=RatingSummary)
def provider_rating(provider_id: str, actor: Optional[ActorContext] = Depends(optional_actor)):
    try:
        catalog_store.assert_provider_readable(actor, provider_id)
    except MarketplaceError as exc:
        raise_marketplace_http_error(exc)
    return review_store.rating_summary(provider_id)
