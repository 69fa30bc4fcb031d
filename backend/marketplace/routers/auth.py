from fastapi import APIRouter, Depends, HTTPException

from marketplace.auth import DEMO_PASSWORD, create_access_token, require_actor, roles_for_login
from marketplace.models import AuthLoginRequest, AuthLoginResponse, AuthMeResponse
from marketplace.services.actors import ActorContext

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/login", response_model=AuthLoginResponse)
def login(payload: AuthLoginRequest):
    user_id = payload.user_id.strip()
    if not user_id:
        raise HTTPException(status_code=400, detail="user_id is required")
    if "|" in user_id:
        raise HTTPException(status_code=400, detail="user_id must not contain '|'")
    if payload.password != DEMO_PASSWORD:
        raise HTTPException(status_code=401, detail="Invalid credentials")
    roles = roles_for_login(user_id, payload.role)
    token, expires_at = create_access_token(user_id=user_id, roles=roles)
    return AuthLoginResponse(access_token=token, user_id=user_id, roles=roles, expires_at=expires_at)


@router.get("/me", response_model=AuthMeResponse)
def me(actor: ActorContext = Depends(require_actor)):
    return AuthMeResponse(user_id=actor.user_id, roles=sorted(actor.roles))
