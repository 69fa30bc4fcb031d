import base64
import hashlib
import hmac
import os
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional

from fastapi import Header, HTTPException, status

from marketplace.services.actors import ROLE_CUSTOMER, ROLE_SERVICE_PROVIDER, ActorContext

DEFAULT_TOKEN_TTL_HOURS = 24


def _env_positive_int(name: str, default: int) -> int:
    raw = os.getenv(name, "")
    try:
        value = int(raw)
    except ValueError:
        return default
    return value if value > 0 else default


def _parse_csv_env(name: str, default: str) -> set[str]:
    raw = os.getenv(name, default)
    return {item.strip() for item in raw.split(",") if item.strip()}


TOKEN_TTL_HOURS = _env_positive_int("AUTH_TOKEN_TTL_HOURS", DEFAULT_TOKEN_TTL_HOURS)
ADMIN_USER_IDS = _parse_csv_env("ADMIN_USER_IDS", "admin")
DEMO_PASSWORD = os.getenv("AUTH_DEMO_PASSWORD", "karigar-demo")
_AUTH_SECRET = os.getenv("AUTH_SECRET", "dev-insecure-secret-change-me")


def _b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("utf-8").rstrip("=")


def _b64urldecode(value: str) -> bytes:
    padding = "=" * ((4 - len(value) % 4) % 4)
    return base64.urlsafe_b64decode((value + padding).encode("utf-8"))


def roles_for_login(user_id: str, requested_role: str) -> list[str]:
    if user_id in ADMIN_USER_IDS:
        return ["admin"]
    # Providers keep the customer role so they can still book.
    if requested_role == ROLE_SERVICE_PROVIDER:
        return [ROLE_CUSTOMER, ROLE_SERVICE_PROVIDER]
    return [ROLE_CUSTOMER]


def create_access_token(user_id: str, roles: Iterable[str]) -> tuple[str, str]:
    expiry = datetime.now(timezone.utc) + timedelta(hours=TOKEN_TTL_HOURS)
    payload = f"{user_id}|{','.join(sorted(roles))}|{int(expiry.timestamp())}".encode("utf-8")
    payload_part = _b64url(payload)
    sig = hmac.new(_AUTH_SECRET.encode("utf-8"), payload, hashlib.sha256).digest()
    token = f"{payload_part}.{_b64url(sig)}"
    return token, expiry.isoformat()


def verify_access_token(token: str) -> Optional[ActorContext]:
    try:
        payload_part, sig_part = token.split(".", 1)
        payload = _b64urldecode(payload_part)
        sent_sig = _b64urldecode(sig_part)
    except ValueError:
        return None
    expected_sig = hmac.new(_AUTH_SECRET.encode("utf-8"), payload, hashlib.sha256).digest()
    if not hmac.compare_digest(sent_sig, expected_sig):
        return None
    try:
        user_id, roles_csv, expiry_ts = payload.decode("utf-8").split("|", 2)
        expires = int(expiry_ts)
    except ValueError:
        return None
    if datetime.now(timezone.utc).timestamp() > expires:
        return None
    return ActorContext.of(user_id, roles_csv.split(","))


def parse_bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    parts = authorization.split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return None
    return parts[1].strip() or None


def resolve_request_actor(authorization: Optional[str]) -> Optional[ActorContext]:
    token = parse_bearer_token(authorization)
    if not token:
        return None
    return verify_access_token(token)


def require_actor(authorization: Optional[str] = Header(default=None)) -> ActorContext:
    actor = resolve_request_actor(authorization)
    if not actor:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or missing bearer token")
    return actor


def optional_actor(authorization: Optional[str] = Header(default=None)) -> Optional[ActorContext]:
    return resolve_request_actor(authorization)
