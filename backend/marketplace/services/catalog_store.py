import logging
import sqlite3
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from marketplace.models import (
    Category,
    ProviderDetails,
    ProviderSummary,
    Service,
    ServiceCreateRequest,
    ServiceUpdateRequest,
)
from marketplace.services.actors import ROLE_SERVICE_PROVIDER, ActorContext, require_role
from marketplace.services.database import Database, database, new_id, utc_now_iso
from marketplace.services.errors import MarketplaceNotFoundError, MarketplaceValidationError
from marketplace.services.provider_gate import (
    VISIBLE_PROVIDER_SQL,
    find_provider_for_user,
    provider_is_visible,
    row_to_provider,
)
from marketplace.services.review_store import rating_summaries, visible_reviews

logger = logging.getLogger(__name__)

SERVICE_SELECT = """
    SELECT s.*, c.name AS category_name
    FROM services s
    JOIN categories c ON c.id = s.category_id
"""

RECENT_REVIEW_LIMIT = 10


def row_to_service(row: sqlite3.Row) -> Service:
    return Service(
        id=row["id"],
        provider_id=row["provider_id"],
        category_id=int(row["category_id"]),
        category_name=row["category_name"] or "",
        name=row["name"],
        description=row["description"],
        price=float(row["price"]),
        price_unit=row["price_unit"] or "per service",
        is_available=bool(row["is_available"]),
        estimated_duration_minutes=row["estimated_duration_minutes"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _owns_provider(actor: Optional[ActorContext], provider_row: sqlite3.Row) -> bool:
    return actor is not None and provider_row["owner_user_id"] == actor.user_id


@dataclass
class CatalogStore:
    db: Database

    def list_categories(self) -> List[Category]:
        with self.db.read() as conn:
            rows = conn.execute("SELECT * FROM categories ORDER BY id").fetchall()
        return [Category(id=row["id"], name=row["name"], description=row["description"], icon=row["icon"]) for row in rows]

    def _own_provider_row(self, conn: sqlite3.Connection, actor: ActorContext) -> sqlite3.Row:
        require_role(actor, ROLE_SERVICE_PROVIDER)
        provider = find_provider_for_user(conn, actor.user_id)
        if not provider:
            raise MarketplaceNotFoundError("Provider profile not found")
        return provider

    def _assert_category(self, conn: sqlite3.Connection, category_id: int) -> None:
        row = conn.execute("SELECT id FROM categories WHERE id = ?", (category_id,)).fetchone()
        if not row:
            raise MarketplaceValidationError("Unknown category")

    def _own_service_row(self, conn: sqlite3.Connection, actor: ActorContext, service_id: str) -> sqlite3.Row:
        provider = self._own_provider_row(conn, actor)
        row = conn.execute(
            "SELECT * FROM services WHERE id = ? AND provider_id = ?",
            (service_id, provider["id"]),
        ).fetchone()
        if not row:
            raise MarketplaceNotFoundError("Service not found")
        return row

    def _load_service(self, conn: sqlite3.Connection, service_id: str) -> Service:
        row = conn.execute(SERVICE_SELECT + " WHERE s.id = ?", (service_id,)).fetchone()
        return row_to_service(row)

    def create_service(self, actor: ActorContext, request: ServiceCreateRequest) -> Service:
        name = request.name.strip()
        if not name:
            raise MarketplaceValidationError("Service name is required")
        service_id = new_id("svc")
        with self.db.transaction() as conn:
            provider = self._own_provider_row(conn, actor)
            self._assert_category(conn, request.category_id)
            conn.execute(
                """
                INSERT INTO services (
                    id, provider_id, category_id, name, description, price, price_unit,
                    is_available, estimated_duration_minutes, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    service_id,
                    provider["id"],
                    request.category_id,
                    name,
                    (request.description or "").strip() or None,
                    float(request.price),
                    request.price_unit.strip() or "per service",
                    1 if request.is_available else 0,
                    request.estimated_duration_minutes,
                    utc_now_iso(),
                ),
            )
            service = self._load_service(conn, service_id)
        logger.info("service created service_id=%s provider_id=%s", service_id, service.provider_id)
        return service

    def update_service(self, actor: ActorContext, service_id: str, update: ServiceUpdateRequest) -> Service:
        with self.db.transaction() as conn:
            row = self._own_service_row(conn, actor, service_id)
            changes: Dict[str, Any] = {}
            if update.name is not None:
                if not update.name.strip():
                    raise MarketplaceValidationError("Service name is required")
                changes["name"] = update.name.strip()
            if update.description is not None:
                changes["description"] = update.description.strip() or None
            if update.price is not None:
                changes["price"] = float(update.price)
            if update.price_unit is not None:
                changes["price_unit"] = update.price_unit.strip() or "per service"
            if update.category_id is not None:
                self._assert_category(conn, update.category_id)
                changes["category_id"] = update.category_id
            if update.is_available is not None:
                changes["is_available"] = 1 if update.is_available else 0
            if update.estimated_duration_minutes is not None:
                changes["estimated_duration_minutes"] = update.estimated_duration_minutes
            changes["updated_at"] = utc_now_iso()
            assignments = ", ".join(f"{column} = ?" for column in changes)
            conn.execute(
                f"UPDATE services SET {assignments} WHERE id = ?",
                (*changes.values(), row["id"]),
            )
            return self._load_service(conn, service_id)

    def delete_service(self, actor: ActorContext, service_id: str) -> None:
        # Bookings keep their own snapshot of the service, so they survive this.
        with self.db.transaction() as conn:
            row = self._own_service_row(conn, actor, service_id)
            conn.execute("DELETE FROM services WHERE id = ?", (row["id"],))
        logger.info("service deleted service_id=%s by=%s", service_id, actor.user_id)

    def list_providers(
        self,
        actor: Optional[ActorContext] = None,
        search: Optional[str] = None,
        category_id: Optional[int] = None,
        city: Optional[str] = None,
        include_hidden: bool = False,
    ) -> List[ProviderSummary]:
        show_hidden = include_hidden and actor is not None and actor.is_admin
        query = "SELECT p.* FROM providers p WHERE 1 = 1"
        params: List[Any] = []
        if not show_hidden:
            query += f" AND {VISIBLE_PROVIDER_SQL}"
        if search and search.strip():
            pattern = f"%{search.strip()}%"
            query += (
                " AND (p.business_name LIKE ? OR EXISTS ("
                "SELECT 1 FROM services s WHERE s.provider_id = p.id AND s.name LIKE ?))"
            )
            params.extend([pattern, pattern])
        if category_id is not None:
            query += " AND EXISTS (SELECT 1 FROM services s WHERE s.provider_id = p.id AND s.category_id = ?)"
            params.append(category_id)
        if city and city.strip():
            query += " AND p.city LIKE ?"
            params.append(f"%{city.strip()}%")
        query += " ORDER BY p.business_name"

        with self.db.read() as conn:
            provider_rows = conn.execute(query, tuple(params)).fetchall()
            provider_ids = [row["id"] for row in provider_rows]
            services_by_provider = self._available_services_by_provider(conn, provider_ids)
            ratings = rating_summaries(conn, provider_ids)

        summaries: List[ProviderSummary] = []
        for row in provider_rows:
            average, count = ratings[row["id"]]
            summaries.append(
                ProviderSummary(
                    provider=row_to_provider(row),
                    services=services_by_provider.get(row["id"], []),
                    average_rating=average,
                    total_reviews=count,
                )
            )
        return summaries

    def _available_services_by_provider(
        self,
        conn: sqlite3.Connection,
        provider_ids: List[str],
    ) -> Dict[str, List[Service]]:
        grouped: Dict[str, List[Service]] = {}
        if not provider_ids:
            return grouped
        placeholders = ",".join("?" for _ in provider_ids)
        rows = conn.execute(
            SERVICE_SELECT + f" WHERE s.is_available = 1 AND s.provider_id IN ({placeholders}) ORDER BY s.name",
            tuple(provider_ids),
        ).fetchall()
        for row in rows:
            grouped.setdefault(row["provider_id"], []).append(row_to_service(row))
        return grouped

    def _readable_provider_row(
        self,
        conn: sqlite3.Connection,
        actor: Optional[ActorContext],
        provider_id: str,
    ) -> sqlite3.Row:
        row = conn.execute("SELECT * FROM providers WHERE id = ?", (provider_id,)).fetchone()
        if not row:
            raise MarketplaceNotFoundError("Provider not found")
        if not provider_is_visible(row) and not (actor and actor.is_admin) and not _owns_provider(actor, row):
            raise MarketplaceNotFoundError("Provider not found")
        return row

    def assert_provider_readable(self, actor: Optional[ActorContext], provider_id: str) -> None:
        """Raise NotFound unless the provider is public or the caller is an admin or its owner."""
        with self.db.read() as conn:
            self._readable_provider_row(conn, actor, provider_id)

    def get_provider_details(self, actor: Optional[ActorContext], provider_id: str) -> ProviderDetails:
        with self.db.read() as conn:
            row = self._readable_provider_row(conn, actor, provider_id)
            services = self._available_services_by_provider(conn, [provider_id]).get(provider_id, [])
            average, count = rating_summaries(conn, [provider_id])[provider_id]
            reviews = visible_reviews(conn, provider_id, RECENT_REVIEW_LIMIT)
        return ProviderDetails(
            provider=row_to_provider(row),
            services=services,
            average_rating=average,
            total_reviews=count,
            reviews=reviews,
        )

    def list_services(
        self,
        search: Optional[str] = None,
        category_id: Optional[int] = None,
        city: Optional[str] = None,
    ) -> List[Service]:
        query = SERVICE_SELECT + f" JOIN providers p ON p.id = s.provider_id WHERE s.is_available = 1 AND {VISIBLE_PROVIDER_SQL}"
        params: List[Any] = []
        if search and search.strip():
            pattern = f"%{search.strip()}%"
            query += " AND (s.name LIKE ? OR s.description LIKE ?)"
            params.extend([pattern, pattern])
        if category_id is not None:
            query += " AND s.category_id = ?"
            params.append(category_id)
        if city and city.strip():
            query += " AND p.city LIKE ?"
            params.append(f"%{city.strip()}%")
        query += " ORDER BY s.name"
        with self.db.read() as conn:
            rows = conn.execute(query, tuple(params)).fetchall()
        return [row_to_service(row) for row in rows]

    def list_own_services(self, actor: ActorContext) -> List[Service]:
        with self.db.read() as conn:
            provider = self._own_provider_row(conn, actor)
            rows = conn.execute(
                SERVICE_SELECT + " WHERE s.provider_id = ? ORDER BY s.name",
                (provider["id"],),
            ).fetchall()
        return [row_to_service(row) for row in rows]

    def get_service(self, actor: Optional[ActorContext], service_id: str) -> Service:
        with self.db.read() as conn:
            row = conn.execute(SERVICE_SELECT + " WHERE s.id = ?", (service_id,)).fetchone()
            if not row:
                raise MarketplaceNotFoundError("Service not found")
            provider = conn.execute("SELECT * FROM providers WHERE id = ?", (row["provider_id"],)).fetchone()
        publicly_visible = bool(row["is_available"]) and provider_is_visible(provider)
        if not publicly_visible and not (actor and actor.is_admin) and not _owns_provider(actor, provider):
            raise MarketplaceNotFoundError("Service not found")
        return row_to_service(row)


catalog_store = CatalogStore(db=database)
