from fastapi import APIRouter, Depends

from marketplace.auth import require_actor
from marketplace.models import Dispute, DisputeFileRequest
from marketplace.routers.http_errors import raise_marketplace_http_error
from marketplace.services.actors import ActorContext
from marketplace.services.dispute_store import dispute_store
from marketplace.services.errors import MarketplaceError

router = APIRouter(prefix="/disputes", tags=["disputes"])


@router.post("", response_model=Dispute)
def file_dispute(request: DisputeFileRequest, actor: ActorContext = Depends(require_actor)):
    try:
        return dispute_store.file(
            actor,
            request_id=request.service_request_id,
            reason=request.reason,
            description=request.description,
        )
    except MarketplaceError as exc:
        raise_marketplace_http_error(exc)


@router.get("/{dispute_id}", response_model=Dispute)
def get_dispute(dispute_id: str, actor: ActorContext = Depends(require_actor)):
    try:
        return dispute_store.get(actor, dispute_id)
    except MarketplaceError as exc:
        raise_marketplace_http_error(exc)
