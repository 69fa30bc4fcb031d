from fastapi import APIRouter, Depends

from marketplace.auth import require_actor
from marketplace.models import Review, ReviewCreateRequest
from marketplace.routers.http_errors import raise_marketplace_http_error
from marketplace.services.actors import ActorContext
from marketplace.services.errors import MarketplaceError
from marketplace.services.review_store import review_store

router = APIRouter(prefix="/reviews", tags=["reviews"])


@router.post("", response_model=Review)
def create_review(request: ReviewCreateRequest, actor: ActorContext = Depends(require_actor)):
    try:
        return review_store.create_review(
            actor,
            request_id=request.service_request_id,
            rating=request.rating,
            comment=request.comment,
        )
    except MarketplaceError as exc:
        raise_marketplace_http_error(exc)
