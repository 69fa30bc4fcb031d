from typing import Optional

from fastapi import APIRouter, Depends, Query

from marketplace.auth import optional_actor, require_actor
from marketplace.models import Service, ServiceCreateRequest, ServiceUpdateRequest
from marketplace.routers.http_errors import raise_marketplace_http_error
from marketplace.services.actors import ActorContext
from marketplace.services.catalog_store import catalog_store
from marketplace.services.errors import MarketplaceError

router = APIRouter(prefix="/services", tags=["services"])


@router.get("", response_model=list[Service])
def list_services(
    q: Optional[str] = Query(default=None),
    category_id: Optional[int] = Query(default=None),
    city: Optional[str] = Query(default=None),
):
    return catalog_store.list_services(search=q, category_id=category_id, city=city)


@router.get("/mine", response_model=list[Service])
def list_my_services(actor: ActorContext = Depends(require_actor)):
    try:
        return catalog_store.list_own_services(actor)
    except MarketplaceError as exc:
        raise_marketplace_http_error(exc)


@router.post("", response_model=Service)
def create_service(request: ServiceCreateRequest, actor: ActorContext = Depends(require_actor)):
    try:
        return catalog_store.create_service(actor, request)
    except MarketplaceError as exc:
        raise_marketplace_http_error(exc)


@router.get("/{service_id}", response_model=Service)
def get_service(service_id: str, actor: Optional[ActorContext] = Depends(optional_actor)):
    try:
        return catalog_store.get_service(actor, service_id)
    except MarketplaceError as exc:
        raise_marketplace_http_error(exc)


@router.post("/{service_id}/update", response_model=Service)
def update_service(
    service_id: str,
    request: ServiceUpdateRequest,
    actor: ActorContext = Depends(require_actor),
):
    try:
        return catalog_store.update_service(actor, service_id, request)
    except MarketplaceError as exc:
        raise_marketplace_http_error(exc)


@router.post("/{service_id}/delete")
def delete_service(service_id: str, actor: ActorContext = Depends(require_actor)):
    try:
        catalog_store.delete_service(actor, service_id)
        return {"status": "deleted", "service_id": service_id}
    except MarketplaceError as exc:
        raise_marketplace_http_error(exc)
