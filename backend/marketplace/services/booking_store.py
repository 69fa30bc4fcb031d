import logging
import math
import sqlite3
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from marketplace.models import BookingStatusHistoryEntry, ServiceRequest, ServiceRequestDetails
from marketplace.services.actors import ROLE_CUSTOMER, ROLE_SERVICE_PROVIDER, ActorContext, require_admin, require_role
from marketplace.services.booking_machine import (
    BOOKING_STATUSES,
    COMPLETED,
    EVENT_ACCEPT,
    EVENT_CANCEL,
    EVENT_COMPLETE,
    EVENT_REJECT,
    REQUESTED,
    OwnershipProof,
    resolve_ownership,
    transition,
)
from marketplace.services.database import Database, database, new_id, utc_now_iso
from marketplace.services.errors import (
    MarketplaceInvalidStateError,
    MarketplaceNotFoundError,
    MarketplaceValidationError,
)
from marketplace.services.provider_gate import find_provider_for_user, provider_is_visible
from marketplace.services.review_store import review_for_request

logger = logging.getLogger(__name__)

LIST_ROLES = {None, "all", "customer", "provider"}


def row_to_booking(row: sqlite3.Row) -> ServiceRequest:
    return ServiceRequest(
        id=row["id"],
        customer_id=row["customer_id"],
        service_id=row["service_id"],
        provider_id=row["provider_id"],
        service_name=row["service_name"],
        list_price=float(row["list_price"]),
        service_address=row["service_address"],
        special_instructions=row["special_instructions"],
        cancellation_reason=row["cancellation_reason"],
        status=row["status"],
        requested_date=row["requested_date"],
        scheduled_date=row["scheduled_date"],
        confirmed_date=row["confirmed_date"],
        completed_date=row["completed_date"],
        cancelled_date=row["cancelled_date"],
        final_price=float(row["final_price"]) if row["final_price"] is not None else None,
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _parse_iso_datetime(value: str, *, field: str) -> str:
    try:
        return datetime.fromisoformat(value.strip()).isoformat()
    except ValueError as exc:
        raise MarketplaceValidationError(f"Invalid {field}; expected an ISO 8601 date or datetime") from exc


def _clean_reason(reason: Optional[str]) -> Optional[str]:
    cleaned = (reason or "").strip()
    if len(cleaned) > 500:
        raise MarketplaceValidationError("Cancellation reason must be at most 500 characters")
    return cleaned or None


def _insert_history(
    conn: sqlite3.Connection,
    request_id: str,
    actor_user_id: str,
    from_status: str,
    to_status: str,
    note: str,
    created_at: str,
) -> None:
    conn.execute(
        """
        INSERT INTO booking_status_history (id, service_request_id, actor_user_id, from_status, to_status, note, created_at)
        VALUES (?, ?, ?, ?, ?, ?, ?)
        """,
        (new_id("bsh"), request_id, actor_user_id, from_status, to_status, note, created_at),
    )


@dataclass
class BookingStore:
    db: Database

    def _actor_provider_id(self, conn: sqlite3.Connection, actor: ActorContext) -> Optional[str]:
        if not actor.has_role(ROLE_SERVICE_PROVIDER):
            return None
        provider = find_provider_for_user(conn, actor.user_id)
        return provider["id"] if provider else None

    def _ownership(self, conn: sqlite3.Connection, actor: ActorContext, row: sqlite3.Row) -> OwnershipProof:
        return resolve_ownership(
            actor_user_id=actor.user_id,
            actor_provider_id=self._actor_provider_id(conn, actor),
            customer_id=row["customer_id"],
            provider_id=row["provider_id"],
        )

    def create(
        self,
        actor: ActorContext,
        service_id: str,
        service_address: str,
        special_instructions: Optional[str] = None,
    ) -> ServiceRequest:
        require_role(actor, ROLE_CUSTOMER)
        address = service_address.strip()
        if not address:
            raise MarketplaceValidationError("Service address is required")
        instructions = (special_instructions or "").strip() or None
        request_id = new_id("req")
        now_iso = utc_now_iso()

        with self.db.transaction() as conn:
            service = conn.execute("SELECT * FROM services WHERE id = ?", (service_id,)).fetchone()
            if not service or not service["is_available"]:
                raise MarketplaceNotFoundError("Service not found")
            provider = conn.execute("SELECT * FROM providers WHERE id = ?", (service["provider_id"],)).fetchone()
            if not provider or not provider_is_visible(provider):
                raise MarketplaceNotFoundError("Service not found")

            # provider_id, service_name and list_price are snapshots; later
            # edits to the service never rewrite an existing booking.
            conn.execute(
                """
                INSERT INTO service_requests (
                    id, customer_id, service_id, provider_id, service_name, list_price,
                    service_address, special_instructions, status, requested_date,
                    created_at, updated_at, version
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 0)
                """,
                (
                    request_id,
                    actor.user_id,
                    service["id"],
                    service["provider_id"],
                    service["name"],
                    float(service["price"]),
                    address,
                    instructions,
                    REQUESTED,
                    now_iso,
                    now_iso,
                    now_iso,
                ),
            )
            _insert_history(conn, request_id, actor.user_id, "none", REQUESTED, "booking requested", now_iso)
            row = conn.execute("SELECT * FROM service_requests WHERE id = ?", (request_id,)).fetchone()

        logger.info("booking created request_id=%s customer=%s provider_id=%s", request_id, actor.user_id, row["provider_id"])
        return row_to_booking(row)

    def _apply(
        self,
        actor: ActorContext,
        request_id: str,
        event: str,
        build_changes,
        note: str = "",
    ) -> ServiceRequest:
        with self.db.transaction() as conn:
            row = conn.execute("SELECT * FROM service_requests WHERE id = ?", (request_id,)).fetchone()
            if not row:
                raise MarketplaceNotFoundError("Booking not found")
            ownership = self._ownership(conn, actor, row)
            current_status = row["status"]
            next_status = transition(current_status, event, ownership)

            now_iso = utc_now_iso()
            changes: Dict[str, Any] = build_changes(conn, row, now_iso)
            changes["status"] = next_status
            changes["updated_at"] = now_iso
            assignments = ", ".join(f"{column} = ?" for column in changes)
            cursor = conn.execute(
                f"""
                UPDATE service_requests
                SET {assignments}, version = version + 1
                WHERE id = ? AND status = ? AND version = ?
                """,
                (*changes.values(), request_id, current_status, row["version"]),
            )
            if cursor.rowcount != 1:
                logger.warning("booking transition lost race request_id=%s event=%s", request_id, event)
                raise MarketplaceInvalidStateError("Booking was modified by another request; reload and retry")
            _insert_history(conn, request_id, actor.user_id, current_status, next_status, note, now_iso)
            updated = conn.execute("SELECT * FROM service_requests WHERE id = ?", (request_id,)).fetchone()

        logger.info(
            "booking %s request_id=%s %s->%s by=%s",
            event,
            request_id,
            current_status,
            next_status,
            actor.user_id,
        )
        return row_to_booking(updated)

    def accept(self, actor: ActorContext, request_id: str, scheduled_date: Optional[str] = None) -> ServiceRequest:
        scheduled = _parse_iso_datetime(scheduled_date, field="scheduled_date") if scheduled_date else None

        def changes(conn: sqlite3.Connection, row: sqlite3.Row, now_iso: str) -> Dict[str, Any]:
            return {"confirmed_date": now_iso, "scheduled_date": scheduled}

        return self._apply(actor, request_id, EVENT_ACCEPT, changes, note="accepted by provider")

    def reject(self, actor: ActorContext, request_id: str, cancellation_reason: Optional[str] = None) -> ServiceRequest:
        reason = _clean_reason(cancellation_reason)

        def changes(conn: sqlite3.Connection, row: sqlite3.Row, now_iso: str) -> Dict[str, Any]:
            return {"cancelled_date": now_iso, "cancellation_reason": reason}

        return self._apply(actor, request_id, EVENT_REJECT, changes, note=reason or "")

    def complete(self, actor: ActorContext, request_id: str, final_price: Optional[float] = None) -> ServiceRequest:
        if final_price is not None and not math.isfinite(final_price):
            raise MarketplaceValidationError("final_price must be a finite number")
        if final_price is not None and final_price < 0:
            raise MarketplaceValidationError("final_price must not be negative")

        def changes(conn: sqlite3.Connection, row: sqlite3.Row, now_iso: str) -> Dict[str, Any]:
            price = final_price
            if price is None:
                service = conn.execute("SELECT price FROM services WHERE id = ?", (row["service_id"],)).fetchone()
                price = float(service["price"]) if service else float(row["list_price"])
            return {"completed_date": now_iso, "final_price": float(price)}

        return self._apply(actor, request_id, EVENT_COMPLETE, changes, note="completed by provider")

    def cancel(self, actor: ActorContext, request_id: str, cancellation_reason: Optional[str] = None) -> ServiceRequest:
        reason = _clean_reason(cancellation_reason)

        def changes(conn: sqlite3.Connection, row: sqlite3.Row, now_iso: str) -> Dict[str, Any]:
            return {"cancelled_date": now_iso, "cancellation_reason": reason}

        return self._apply(actor, request_id, EVENT_CANCEL, changes, note=reason or "")

    def _readable_row(self, conn: sqlite3.Connection, actor: ActorContext, request_id: str) -> sqlite3.Row:
        row = conn.execute("SELECT * FROM service_requests WHERE id = ?", (request_id,)).fetchone()
        if not row:
            raise MarketplaceNotFoundError("Booking not found")
        if not actor.is_admin and not self._ownership(conn, actor, row).is_party:
            raise MarketplaceNotFoundError("Booking not found")
        return row

    def get(self, actor: ActorContext, request_id: str) -> ServiceRequest:
        with self.db.read() as conn:
            row = self._readable_row(conn, actor, request_id)
        return row_to_booking(row)

    def get_details(self, actor: ActorContext, request_id: str) -> ServiceRequestDetails:
        with self.db.read() as conn:
            row = self._readable_row(conn, actor, request_id)
            review = review_for_request(conn, request_id)
        can_review = row["customer_id"] == actor.user_id and row["status"] == COMPLETED and review is None
        return ServiceRequestDetails(booking=row_to_booking(row), review=review, can_review=can_review)

    def history(self, actor: ActorContext, request_id: str) -> List[BookingStatusHistoryEntry]:
        with self.db.read() as conn:
            self._readable_row(conn, actor, request_id)
            rows = conn.execute(
                """
                SELECT * FROM booking_status_history
                WHERE service_request_id = ?
                ORDER BY created_at, rowid
                """,
                (request_id,),
            ).fetchall()
        return [
            BookingStatusHistoryEntry(
                id=row["id"],
                service_request_id=row["service_request_id"],
                actor_user_id=row["actor_user_id"],
                from_status=row["from_status"],
                to_status=row["to_status"],
                note=row["note"] or "",
                created_at=row["created_at"],
            )
            for row in rows
        ]

    def list_for_actor(self, actor: ActorContext, role: Optional[str] = None) -> List[ServiceRequest]:
        normalized_role = role.strip().lower() if role else None
        if normalized_role not in LIST_ROLES:
            raise MarketplaceValidationError("Invalid role value. Allowed: all, customer, provider")

        with self.db.read() as conn:
            provider_id = self._actor_provider_id(conn, actor)
            clauses: List[str] = []
            params: List[Any] = []
            if normalized_role in (None, "all", "customer"):
                clauses.append("customer_id = ?")
                params.append(actor.user_id)
            if normalized_role in (None, "all", "provider") and provider_id:
                clauses.append("provider_id = ?")
                params.append(provider_id)
            if not clauses:
                return []
            rows = conn.execute(
                f"SELECT * FROM service_requests WHERE {' OR '.join(clauses)} ORDER BY created_at DESC",
                tuple(params),
            ).fetchall()
        return [row_to_booking(row) for row in rows]

    def list_all(self, actor: ActorContext, status: Optional[str] = None) -> List[ServiceRequest]:
        require_admin(actor)
        query = "SELECT * FROM service_requests"
        params: List[Any] = []
        if status:
            normalized = status.strip().lower()
            if normalized not in BOOKING_STATUSES:
                raise MarketplaceValidationError(f"Invalid status value. Allowed: {', '.join(BOOKING_STATUSES)}")
            query += " WHERE status = ?"
            params.append(normalized)
        query += " ORDER BY created_at DESC"
        with self.db.read() as conn:
            rows = conn.execute(query, tuple(params)).fetchall()
        return [row_to_booking(row) for row in rows]


booking_store = BookingStore(db=database)
