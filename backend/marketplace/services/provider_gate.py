import logging
import sqlite3
from dataclasses import dataclass
from typing import List, Optional

from marketplace.models import ProviderProfile, ServiceProvider
from marketplace.services.actors import ROLE_SERVICE_PROVIDER, ActorContext, require_admin, require_role
from marketplace.services.database import Database, database, new_id, utc_now_iso
from marketplace.services.errors import (
    MarketplaceConflictError,
    MarketplaceNotFoundError,
    MarketplaceValidationError,
)

logger = logging.getLogger(__name__)

# Applied by every public catalog read; admin reads skip it.
VISIBLE_PROVIDER_SQL = "p.is_approved = 1 AND p.is_suspended = 0"


def row_to_provider(row: sqlite3.Row) -> ServiceProvider:
    return ServiceProvider(
        id=row["id"],
        owner_user_id=row["owner_user_id"],
        business_name=row["business_name"],
        description=row["description"],
        address=row["address"],
        city=row["city"],
        state=row["state"],
        zip_code=row["zip_code"],
        phone_number=row["phone_number"],
        profile_image_url=row["profile_image_url"],
        is_approved=bool(row["is_approved"]),
        is_suspended=bool(row["is_suspended"]),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def provider_is_visible(row: sqlite3.Row) -> bool:
    return bool(row["is_approved"]) and not bool(row["is_suspended"])


def find_provider_for_user(conn: sqlite3.Connection, user_id: str) -> Optional[sqlite3.Row]:
    return conn.execute("SELECT * FROM providers WHERE owner_user_id = ?", (user_id,)).fetchone()


def _clean_profile(profile: ProviderProfile) -> dict:
    cleaned = {
        "business_name": profile.business_name.strip(),
        "description": (profile.description or "").strip() or None,
        "address": profile.address.strip(),
        "city": profile.city.strip(),
        "state": profile.state.strip(),
        "zip_code": profile.zip_code.strip(),
        "phone_number": (profile.phone_number or "").strip() or None,
        "profile_image_url": (profile.profile_image_url or "").strip() or None,
    }
    for field_name, label in (
        ("business_name", "Business name"),
        ("address", "Address"),
        ("city", "City"),
        ("state", "State"),
        ("zip_code", "Zip code"),
    ):
        if not cleaned[field_name]:
            raise MarketplaceValidationError(f"{label} is required")
    return cleaned


@dataclass
class ProviderGate:
    db: Database

    def register(self, actor: ActorContext, profile: ProviderProfile) -> ServiceProvider:
        require_role(actor, ROLE_SERVICE_PROVIDER)
        cleaned = _clean_profile(profile)
        provider_id = new_id("sp")
        now_iso = utc_now_iso()
        with self.db.transaction() as conn:
            if find_provider_for_user(conn, actor.user_id):
                raise MarketplaceConflictError("A provider profile already exists for this account")
            try:
                conn.execute(
                    """
                    INSERT INTO providers (
                        id, owner_user_id, business_name, description, address, city, state,
                        zip_code, phone_number, profile_image_url, is_approved, is_suspended, created_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 0, 0, ?)
                    """,
                    (
                        provider_id,
                        actor.user_id,
                        cleaned["business_name"],
                        cleaned["description"],
                        cleaned["address"],
                        cleaned["city"],
                        cleaned["state"],
                        cleaned["zip_code"],
                        cleaned["phone_number"],
                        cleaned["profile_image_url"],
                        now_iso,
                    ),
                )
            except sqlite3.IntegrityError as exc:
                raise MarketplaceConflictError("A provider profile already exists for this account") from exc
            row = conn.execute("SELECT * FROM providers WHERE id = ?", (provider_id,)).fetchone()
        logger.info("provider registered provider_id=%s owner=%s", provider_id, actor.user_id)
        return row_to_provider(row)

    def get_own(self, actor: ActorContext) -> ServiceProvider:
        with self.db.read() as conn:
            row = find_provider_for_user(conn, actor.user_id)
        if not row:
            raise MarketplaceNotFoundError("Provider profile not found")
        return row_to_provider(row)

    def update_profile(self, actor: ActorContext, profile: ProviderProfile) -> ServiceProvider:
        require_role(actor, ROLE_SERVICE_PROVIDER)
        cleaned = _clean_profile(profile)
        with self.db.transaction() as conn:
            row = find_provider_for_user(conn, actor.user_id)
            if not row:
                raise MarketplaceNotFoundError("Provider profile not found")
            conn.execute(
                """
                UPDATE providers
                SET business_name = ?, description = ?, address = ?, city = ?, state = ?,
                    zip_code = ?, phone_number = ?, profile_image_url = ?, updated_at = ?
                WHERE id = ?
                """,
                (
                    cleaned["business_name"],
                    cleaned["description"],
                    cleaned["address"],
                    cleaned["city"],
                    cleaned["state"],
                    cleaned["zip_code"],
                    cleaned["phone_number"],
                    cleaned["profile_image_url"],
                    utc_now_iso(),
                    row["id"],
                ),
            )
            updated = conn.execute("SELECT * FROM providers WHERE id = ?", (row["id"],)).fetchone()
        return row_to_provider(updated)

    def approve(self, actor: ActorContext, provider_id: str) -> ServiceProvider:
        """Approve a provider.

        Approval also clears any suspension, which makes re-approval the
        only way to reinstate a suspended provider.
        """
        return self._set_flags(actor, provider_id, "is_approved = 1, is_suspended = 0", "approved")

    def suspend(self, actor: ActorContext, provider_id: str) -> ServiceProvider:
        return self._set_flags(actor, provider_id, "is_suspended = 1", "suspended")

    def _set_flags(self, actor: ActorContext, provider_id: str, assignments: str, action: str) -> ServiceProvider:
        require_admin(actor)
        with self.db.transaction() as conn:
            cursor = conn.execute(
                f"UPDATE providers SET {assignments}, updated_at = ? WHERE id = ?",
                (utc_now_iso(), provider_id),
            )
            if cursor.rowcount == 0:
                raise MarketplaceNotFoundError("Provider not found")
            row = conn.execute("SELECT * FROM providers WHERE id = ?", (provider_id,)).fetchone()
        logger.info("provider %s provider_id=%s by=%s", action, provider_id, actor.user_id)
        return row_to_provider(row)

    def remove(self, actor: ActorContext, provider_id: str) -> None:
        require_admin(actor)
        with self.db.transaction() as conn:
            cursor = conn.execute("DELETE FROM providers WHERE id = ?", (provider_id,))
            if cursor.rowcount == 0:
                raise MarketplaceNotFoundError("Provider not found")
        logger.info("provider removed provider_id=%s by=%s", provider_id, actor.user_id)

    def is_visible(self, provider_id: str) -> bool:
        with self.db.read() as conn:
            row = conn.execute(
                "SELECT is_approved, is_suspended FROM providers WHERE id = ?",
                (provider_id,),
            ).fetchone()
        return bool(row) and provider_is_visible(row)

    def list_for_admin(
        self,
        actor: ActorContext,
        search: Optional[str] = None,
        pending_only: bool = False,
    ) -> List[ServiceProvider]:
        require_admin(actor)
        query = "SELECT * FROM providers WHERE 1 = 1"
        params: List[str] = []
        if search and search.strip():
            query += " AND (business_name LIKE ? OR owner_user_id LIKE ?)"
            pattern = f"%{search.strip()}%"
            params.extend([pattern, pattern])
        if pending_only:
            query += " AND is_approved = 0"
        query += " ORDER BY created_at DESC"
        with self.db.read() as conn:
            rows = conn.execute(query, tuple(params)).fetchall()
        return [row_to_provider(row) for row in rows]


provider_gate = ProviderGate(db=database)
