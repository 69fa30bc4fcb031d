import logging
import sqlite3
from dataclasses import dataclass
from typing import Any, List, Optional

from marketplace.models import Dispute
from marketplace.services.actors import ROLE_SERVICE_PROVIDER, ActorContext, require_admin
from marketplace.services.database import Database, database, new_id, utc_now_iso
from marketplace.services.errors import MarketplaceNotFoundError, MarketplaceValidationError
from marketplace.services.provider_gate import find_provider_for_user

logger = logging.getLogger(__name__)

PENDING = "pending"
UNDER_REVIEW = "under_review"
RESOLVED = "resolved"
DISMISSED = "dismissed"

DISPUTE_STATUSES = (PENDING, UNDER_REVIEW, RESOLVED, DISMISSED)
DISPUTE_CLOSED_STATUSES = frozenset({RESOLVED, DISMISSED})


def row_to_dispute(row: sqlite3.Row) -> Dispute:
    return Dispute(
        id=row["id"],
        service_request_id=row["service_request_id"],
        reported_by_user_id=row["reported_by_user_id"],
        reason=row["reason"],
        description=row["description"],
        status=row["status"],
        admin_notes=row["admin_notes"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        resolved_at=row["resolved_at"],
    )


@dataclass
class DisputeStore:
    """Flat complaint ledger; admins move disputes freely between statuses."""

    db: Database

    def _is_party(self, conn: sqlite3.Connection, actor: ActorContext, booking: sqlite3.Row) -> bool:
        if booking["customer_id"] == actor.user_id:
            return True
        if not actor.has_role(ROLE_SERVICE_PROVIDER):
            return False
        provider = find_provider_for_user(conn, actor.user_id)
        return bool(provider) and provider["id"] == booking["provider_id"]

    def file(
        self,
        actor: ActorContext,
        request_id: str,
        reason: str,
        description: Optional[str] = None,
    ) -> Dispute:
        cleaned_reason = reason.strip()
        if not cleaned_reason:
            raise MarketplaceValidationError("Reason is required")
        if len(cleaned_reason) > 500:
            raise MarketplaceValidationError("Reason must be at most 500 characters")
        cleaned_description = (description or "").strip() or None
        dispute_id = new_id("dsp")
        with self.db.transaction() as conn:
            booking = conn.execute("SELECT * FROM service_requests WHERE id = ?", (request_id,)).fetchone()
            if not booking or not self._is_party(conn, actor, booking):
                raise MarketplaceNotFoundError("Booking not found")
            conn.execute(
                """
                INSERT INTO disputes (
                    id, service_request_id, reported_by_user_id, reason, description, status, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (dispute_id, request_id, actor.user_id, cleaned_reason, cleaned_description, PENDING, utc_now_iso()),
            )
            row = conn.execute("SELECT * FROM disputes WHERE id = ?", (dispute_id,)).fetchone()
        logger.info("dispute filed dispute_id=%s request_id=%s by=%s", dispute_id, request_id, actor.user_id)
        return row_to_dispute(row)

    def advance(
        self,
        actor: ActorContext,
        dispute_id: str,
        status: str,
        admin_notes: Optional[str] = None,
    ) -> Dispute:
        require_admin(actor)
        if status not in DISPUTE_STATUSES:
            raise MarketplaceValidationError(f"Invalid status value. Allowed: {', '.join(DISPUTE_STATUSES)}")
        with self.db.transaction() as conn:
            row = conn.execute("SELECT * FROM disputes WHERE id = ?", (dispute_id,)).fetchone()
            if not row:
                raise MarketplaceNotFoundError("Dispute not found")
            now_iso = utc_now_iso()
            if status not in DISPUTE_CLOSED_STATUSES:
                resolved_at = None
            elif row["status"] in DISPUTE_CLOSED_STATUSES and row["resolved_at"]:
                # Already closed; keep the original resolution time.
                resolved_at = row["resolved_at"]
            else:
                resolved_at = now_iso
            notes = admin_notes.strip() if admin_notes is not None else row["admin_notes"]
            conn.execute(
                """
                UPDATE disputes
                SET status = ?, admin_notes = ?, resolved_at = ?, updated_at = ?
                WHERE id = ?
                """,
                (status, notes or None, resolved_at, now_iso, dispute_id),
            )
            updated = conn.execute("SELECT * FROM disputes WHERE id = ?", (dispute_id,)).fetchone()
        logger.info("dispute %s -> %s dispute_id=%s by=%s", row["status"], status, dispute_id, actor.user_id)
        return row_to_dispute(updated)

    def get(self, actor: ActorContext, dispute_id: str) -> Dispute:
        with self.db.read() as conn:
            row = conn.execute("SELECT * FROM disputes WHERE id = ?", (dispute_id,)).fetchone()
        if not row or not (actor.is_admin or row["reported_by_user_id"] == actor.user_id):
            raise MarketplaceNotFoundError("Dispute not found")
        return row_to_dispute(row)

    def list_all(self, actor: ActorContext, status: Optional[str] = None) -> List[Dispute]:
        require_admin(actor)
        query = "SELECT * FROM disputes"
        params: List[Any] = []
        if status:
            if status not in DISPUTE_STATUSES:
                raise MarketplaceValidationError(f"Invalid status value. Allowed: {', '.join(DISPUTE_STATUSES)}")
            query += " WHERE status = ?"
            params.append(status)
        query += " ORDER BY created_at DESC"
        with self.db.read() as conn:
            rows = conn.execute(query, tuple(params)).fetchall()
        return [row_to_dispute(row) for row in rows]


dispute_store = DisputeStore(db=database)
