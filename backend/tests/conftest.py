import os
import sys
import tempfile
from types import SimpleNamespace

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

# The app binds its stores to MARKETPLACE_DB_PATH at import time.
os.environ.setdefault("MARKETPLACE_DB_PATH", os.path.join(tempfile.mkdtemp(prefix="marketplace-tests-"), "api.sqlite3"))

from marketplace.models import ProviderProfile, ServiceCreateRequest
from marketplace.services.actors import ActorContext
from marketplace.services.booking_store import BookingStore
from marketplace.services.catalog_store import CatalogStore
from marketplace.services.dashboard import AdminDashboard
from marketplace.services.database import Database
from marketplace.services.dispute_store import DisputeStore
from marketplace.services.provider_gate import ProviderGate
from marketplace.services.review_store import ReviewStore


ADMIN = ActorContext.of("admin_1", ["admin"])


def customer(user_id: str) -> ActorContext:
    return ActorContext.of(user_id, ["customer"])


def provider_user(user_id: str) -> ActorContext:
    return ActorContext.of(user_id, ["service_provider"])


def sample_profile(name: str = "Sharma Plumbing") -> ProviderProfile:
    return ProviderProfile(
        business_name=name,
        description="Pipes and fittings",
        address="12 MG Road",
        city="Pune",
        state="MH",
        zip_code="411001",
    )


@pytest.fixture
def stores(tmp_path):
    db = Database(db_path=str(tmp_path / "marketplace.sqlite3"))
    return SimpleNamespace(
        db=db,
        gate=ProviderGate(db=db),
        catalog=CatalogStore(db=db),
        bookings=BookingStore(db=db),
        reviews=ReviewStore(db=db),
        disputes=DisputeStore(db=db),
        dashboard=AdminDashboard(db=db),
    )


@pytest.fixture
def live_service(stores):
    """An approved provider (user p1) with one available service at 500."""
    owner = provider_user("p1")
    provider = stores.gate.register(owner, sample_profile())
    stores.gate.approve(ADMIN, provider.id)
    service = stores.catalog.create_service(
        owner,
        ServiceCreateRequest(name="Leak repair", price=500, category_id=1),
    )
    return SimpleNamespace(owner=owner, provider=provider, service=service)
