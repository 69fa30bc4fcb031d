"""Reviews and the provider reputation derived from them.

Reputation is never stored: average rating and review count are computed
from the visible reviews on every read, so hiding or adding a review shows
up on the very next call.
"""

import logging
import sqlite3
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

from marketplace.models import RatingSummary, Review
from marketplace.services.actors import ActorContext, require_admin
from marketplace.services.booking_machine import COMPLETED
from marketplace.services.database import Database, database, new_id, utc_now_iso
from marketplace.services.errors import (
    MarketplaceConflictError,
    MarketplaceNotFoundError,
    MarketplaceValidationError,
)

logger = logging.getLogger(__name__)

MIN_RATING = 1
MAX_RATING = 5


def row_to_review(row: sqlite3.Row) -> Review:
    return Review(
        id=row["id"],
        service_request_id=row["service_request_id"],
        customer_id=row["customer_id"],
        provider_id=row["provider_id"],
        rating=int(row["rating"]),
        comment=row["comment"],
        is_visible=bool(row["is_visible"]),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def validate_rating(rating: int) -> int:
    if isinstance(rating, bool) or not isinstance(rating, int):
        raise MarketplaceValidationError("Rating must be a whole number between 1 and 5")
    if rating < MIN_RATING or rating > MAX_RATING:
        raise MarketplaceValidationError("Rating must be between 1 and 5")
    return rating


def rating_summaries(conn: sqlite3.Connection, provider_ids: Iterable[str]) -> Dict[str, Tuple[Optional[float], int]]:
    """Map provider id to (average over visible reviews or None, visible count)."""
    ids = list(dict.fromkeys(provider_ids))
    summaries: Dict[str, Tuple[Optional[float], int]] = {provider_id: (None, 0) for provider_id in ids}
    if not ids:
        return summaries
    placeholders = ",".join("?" for _ in ids)
    rows = conn.execute(
        f"""
        SELECT provider_id, AVG(rating) AS average_rating, COUNT(*) AS review_count
        FROM reviews
        WHERE is_visible = 1 AND provider_id IN ({placeholders})
        GROUP BY provider_id
        """,
        tuple(ids),
    ).fetchall()
    for row in rows:
        count = int(row["review_count"])
        summaries[row["provider_id"]] = (float(row["average_rating"]) if count else None, count)
    return summaries


def review_for_request(conn: sqlite3.Connection, request_id: str) -> Optional[Review]:
    row = conn.execute("SELECT * FROM reviews WHERE service_request_id = ?", (request_id,)).fetchone()
    return row_to_review(row) if row else None


def visible_reviews(conn: sqlite3.Connection, provider_id: str, limit: int) -> List[Review]:
    rows = conn.execute(
        """
        SELECT * FROM reviews
        WHERE provider_id = ? AND is_visible = 1
        ORDER BY created_at DESC
        LIMIT ?
        """,
        (provider_id, limit),
    ).fetchall()
    return [row_to_review(row) for row in rows]


@dataclass
class ReviewStore:
    db: Database

    def create_review(
        self,
        actor: ActorContext,
        request_id: str,
        rating: int,
        comment: Optional[str] = None,
    ) -> Review:
        validate_rating(rating)
        cleaned_comment = (comment or "").strip() or None
        review_id = new_id("rev")
        now_iso = utc_now_iso()
        with self.db.transaction() as conn:
            booking = conn.execute(
                "SELECT * FROM service_requests WHERE id = ? AND customer_id = ?",
                (request_id, actor.user_id),
            ).fetchone()
            if not booking or booking["status"] != COMPLETED:
                raise MarketplaceNotFoundError("Booking not found")
            if review_for_request(conn, request_id):
                logger.warning("duplicate review rejected request_id=%s customer=%s", request_id, actor.user_id)
                raise MarketplaceConflictError("This booking has already been reviewed")
            try:
                conn.execute(
                    """
                    INSERT INTO reviews (
                        id, service_request_id, customer_id, provider_id, rating, comment, is_visible, created_at
                    ) VALUES (?, ?, ?, ?, ?, ?, 1, ?)
                    """,
                    (review_id, request_id, actor.user_id, booking["provider_id"], rating, cleaned_comment, now_iso),
                )
            except sqlite3.IntegrityError as exc:
                raise MarketplaceConflictError("This booking has already been reviewed") from exc
            row = conn.execute("SELECT * FROM reviews WHERE id = ?", (review_id,)).fetchone()
        logger.info("review created review_id=%s request_id=%s rating=%s", review_id, request_id, rating)
        return row_to_review(row)

    def toggle_visibility(self, actor: ActorContext, review_id: str) -> Review:
        require_admin(actor)
        with self.db.transaction() as conn:
            cursor = conn.execute(
                """
                UPDATE reviews
                SET is_visible = CASE is_visible WHEN 1 THEN 0 ELSE 1 END, updated_at = ?
                WHERE id = ?
                """,
                (utc_now_iso(), review_id),
            )
            if cursor.rowcount == 0:
                raise MarketplaceNotFoundError("Review not found")
            row = conn.execute("SELECT * FROM reviews WHERE id = ?", (review_id,)).fetchone()
        review = row_to_review(row)
        logger.info("review visibility review_id=%s visible=%s by=%s", review_id, review.is_visible, actor.user_id)
        return review

    def average_rating(self, provider_id: str) -> Optional[float]:
        """Mean visible rating, or None when the provider has no visible reviews."""
        with self.db.read() as conn:
            return rating_summaries(conn, [provider_id])[provider_id][0]

    def review_count(self, provider_id: str) -> int:
        with self.db.read() as conn:
            return rating_summaries(conn, [provider_id])[provider_id][1]

    def rating_summary(self, provider_id: str) -> RatingSummary:
        with self.db.read() as conn:
            average, count = rating_summaries(conn, [provider_id])[provider_id]
        return RatingSummary(provider_id=provider_id, average_rating=average, review_count=count)

    def can_review(self, actor: ActorContext, request_id: str) -> bool:
        with self.db.read() as conn:
            booking = conn.execute(
                "SELECT status FROM service_requests WHERE id = ? AND customer_id = ?",
                (request_id, actor.user_id),
            ).fetchone()
            if not booking or booking["status"] != COMPLETED:
                return False
            return review_for_request(conn, request_id) is None

    def list_for_provider(self, provider_id: str, limit: int = 10) -> List[Review]:
        with self.db.read() as conn:
            return visible_reviews(conn, provider_id, limit)

    def list_all(self, actor: ActorContext, search: Optional[str] = None) -> List[Review]:
        require_admin(actor)
        query = "SELECT r.* FROM reviews r LEFT JOIN providers p ON p.id = r.provider_id"
        params: List[str] = []
        if search and search.strip():
            query += " WHERE p.business_name LIKE ? OR r.comment LIKE ?"
            pattern = f"%{search.strip()}%"
            params.extend([pattern, pattern])
        query += " ORDER BY r.created_at DESC"
        with self.db.read() as conn:
            rows = conn.execute(query, tuple(params)).fetchall()
        return [row_to_review(row) for row in rows]


review_store = ReviewStore(db=database)
