import os
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from threading import RLock
from typing import Iterator
from uuid import uuid4


SEED_CATEGORIES = [
    (1, "Plumbing", "Plumbing services", "🔧"),
    (2, "Electrical", "Electrical services", "⚡"),
    (3, "Cleaning", "Cleaning services", "🧹"),
    (4, "Carpentry", "Carpentry services", "🪚"),
    (5, "Painting", "Painting services", "🎨"),
    (6, "AC Repair", "Air conditioning repair", "❄️"),
    (7, "Appliance Repair", "Appliance repair services", "🔌"),
    (8, "Tiles & Flooring", "Tiles and flooring services", "🧱"),
]


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def new_id(prefix: str) -> str:
    return f"{prefix}_{uuid4().hex[:10]}"


@dataclass
class Database:
    db_path: str

    def __post_init__(self) -> None:
        # Shared by every store on this database so that a precondition
        # check and its write never interleave with another store's write.
        self.lock = RLock()
        path = Path(self.db_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        self.db_path = str(path)
        self._init_db()
        self._seed_if_needed()

    def connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, check_same_thread=False, timeout=10.0)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    @contextmanager
    def read(self) -> Iterator[sqlite3.Connection]:
        with self.lock:
            conn = self.connect()
            try:
                yield conn
            finally:
                conn.close()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Open a write transaction that holds the database write lock.

        BEGIN IMMEDIATE takes the sqlite reserved lock up front, so reads
        made inside the block cannot go stale before the block's writes
        land, even with several processes on the same file.
        """
        with self.lock:
            conn = self.connect()
            try:
                conn.execute("BEGIN IMMEDIATE")
                yield conn
                conn.commit()
            except BaseException:
                conn.rollback()
                raise
            finally:
                conn.close()

    def _init_db(self) -> None:
        with self.lock:
            conn = self.connect()
            try:
                conn.executescript(
                    """
                    CREATE TABLE IF NOT EXISTS categories (
                        id INTEGER PRIMARY KEY,
                        name TEXT NOT NULL,
                        description TEXT,
                        icon TEXT
                    );

                    CREATE TABLE IF NOT EXISTS providers (
                        id TEXT PRIMARY KEY,
                        owner_user_id TEXT NOT NULL UNIQUE,
                        business_name TEXT NOT NULL,
                        description TEXT,
                        address TEXT NOT NULL,
                        city TEXT NOT NULL,
                        state TEXT NOT NULL,
                        zip_code TEXT NOT NULL,
                        phone_number TEXT,
                        profile_image_url TEXT,
                        is_approved INTEGER NOT NULL DEFAULT 0,
                        is_suspended INTEGER NOT NULL DEFAULT 0,
                        created_at TEXT NOT NULL,
                        updated_at TEXT
                    );

                    CREATE TABLE IF NOT EXISTS services (
                        id TEXT PRIMARY KEY,
                        provider_id TEXT NOT NULL REFERENCES providers(id) ON DELETE CASCADE,
                        category_id INTEGER NOT NULL REFERENCES categories(id) ON DELETE RESTRICT,
                        name TEXT NOT NULL,
                        description TEXT,
                        price REAL NOT NULL,
                        price_unit TEXT NOT NULL DEFAULT 'per service',
                        is_available INTEGER NOT NULL DEFAULT 1,
                        estimated_duration_minutes INTEGER,
                        created_at TEXT NOT NULL,
                        updated_at TEXT
                    );

                    CREATE TABLE IF NOT EXISTS service_requests (
                        id TEXT PRIMARY KEY,
                        customer_id TEXT NOT NULL,
                        service_id TEXT NOT NULL,
                        provider_id TEXT NOT NULL,
                        service_name TEXT NOT NULL,
                        list_price REAL NOT NULL,
                        service_address TEXT NOT NULL,
                        special_instructions TEXT,
                        cancellation_reason TEXT,
                        status TEXT NOT NULL,
                        requested_date TEXT NOT NULL,
                        scheduled_date TEXT,
                        confirmed_date TEXT,
                        completed_date TEXT,
                        cancelled_date TEXT,
                        final_price REAL,
                        created_at TEXT NOT NULL,
                        updated_at TEXT NOT NULL,
                        version INTEGER NOT NULL DEFAULT 0
                    );

                    CREATE TABLE IF NOT EXISTS booking_status_history (
                        id TEXT PRIMARY KEY,
                        service_request_id TEXT NOT NULL REFERENCES service_requests(id),
                        actor_user_id TEXT NOT NULL,
                        from_status TEXT NOT NULL,
                        to_status TEXT NOT NULL,
                        note TEXT NOT NULL DEFAULT '',
                        created_at TEXT NOT NULL
                    );

                    CREATE TABLE IF NOT EXISTS reviews (
                        id TEXT PRIMARY KEY,
                        service_request_id TEXT NOT NULL UNIQUE REFERENCES service_requests(id),
                        customer_id TEXT NOT NULL,
                        provider_id TEXT NOT NULL,
                        rating INTEGER NOT NULL CHECK (rating BETWEEN 1 AND 5),
                        comment TEXT,
                        is_visible INTEGER NOT NULL DEFAULT 1,
                        created_at TEXT NOT NULL,
                        updated_at TEXT
                    );

                    CREATE TABLE IF NOT EXISTS disputes (
                        id TEXT PRIMARY KEY,
                        service_request_id TEXT NOT NULL REFERENCES service_requests(id),
                        reported_by_user_id TEXT NOT NULL,
                        reason TEXT NOT NULL,
                        description TEXT,
                        status TEXT NOT NULL DEFAULT 'pending',
                        admin_notes TEXT,
                        created_at TEXT NOT NULL,
                        updated_at TEXT,
                        resolved_at TEXT
                    );

                    CREATE INDEX IF NOT EXISTS idx_services_provider ON services(provider_id);
                    CREATE INDEX IF NOT EXISTS idx_requests_customer ON service_requests(customer_id);
                    CREATE INDEX IF NOT EXISTS idx_requests_provider ON service_requests(provider_id);
                    CREATE INDEX IF NOT EXISTS idx_reviews_provider ON reviews(provider_id, is_visible);
                    CREATE INDEX IF NOT EXISTS idx_history_request ON booking_status_history(service_request_id);
                    """
                )
                conn.commit()
            finally:
                conn.close()

    def _seed_if_needed(self) -> None:
        with self.transaction() as conn:
            count = conn.execute("SELECT COUNT(*) AS c FROM categories").fetchone()["c"]
            if count:
                return
            conn.executemany(
                "INSERT INTO categories (id, name, description, icon) VALUES (?, ?, ?, ?)",
                SEED_CATEGORIES,
            )


default_db = str(Path(__file__).resolve().parents[2] / "data" / "marketplace.sqlite3")
database = Database(db_path=os.getenv("MARKETPLACE_DB_PATH", default_db))
