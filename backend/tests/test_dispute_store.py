import os
import sys

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

from conftest import ADMIN, customer
from marketplace.services.errors import (
    MarketplaceNotFoundError,
    MarketplacePermissionError,
    MarketplaceValidationError,
)


def _booking(stores, live_service):
    return stores.bookings.create(customer("c1"), live_service.service.id, "House 7")


def test_either_party_can_file(stores, live_service):
    booking = _booking(stores, live_service)
    by_customer = stores.disputes.file(customer("c1"), booking.id, "No show", "Waited all day")
    by_provider = stores.disputes.file(live_service.owner, booking.id, "Wrong address")
    assert by_customer.status == "pending"
    assert by_customer.reported_by_user_id == "c1"
    assert by_provider.reported_by_user_id == live_service.owner.user_id
    assert by_provider.description is None


def test_outsider_cannot_file(stores, live_service):
    booking = _booking(stores, live_service)
    with pytest.raises(MarketplaceNotFoundError):
        stores.disputes.file(customer("c2"), booking.id, "Nosy")
    with pytest.raises(MarketplaceNotFoundError):
        stores.disputes.file(customer("c1"), "req_missing", "Ghost")


def test_reason_is_required_and_bounded(stores, live_service):
    booking = _booking(stores, live_service)
    with pytest.raises(MarketplaceValidationError):
        stores.disputes.file(customer("c1"), booking.id, "   ")
    with pytest.raises(MarketplaceValidationError):
        stores.disputes.file(customer("c1"), booking.id, "x" * 501)


def test_advance_sets_and_clears_resolved_at(stores, live_service):
    booking = _booking(stores, live_service)
    dispute = stores.disputes.file(customer("c1"), booking.id, "Overcharged")

    reviewing = stores.disputes.advance(ADMIN, dispute.id, "under_review", admin_notes="Calling both sides")
    assert reviewing.status == "under_review"
    assert reviewing.resolved_at is None
    assert reviewing.admin_notes == "Calling both sides"

    resolved = stores.disputes.advance(ADMIN, dispute.id, "resolved")
    assert resolved.resolved_at is not None
    assert resolved.admin_notes == "Calling both sides"

    reopened = stores.disputes.advance(ADMIN, dispute.id, "pending")
    assert reopened.resolved_at is None

    dismissed = stores.disputes.advance(ADMIN, dispute.id, "dismissed", admin_notes="Duplicate")
    assert dismissed.resolved_at is not None
    assert dismissed.admin_notes == "Duplicate"


def test_reclosing_keeps_first_resolution_time(stores, live_service):
    booking = _booking(stores, live_service)
    dispute = stores.disputes.file(customer("c1"), booking.id, "Broken tile")

    first = stores.disputes.advance(ADMIN, dispute.id, "resolved")
    again = stores.disputes.advance(ADMIN, dispute.id, "resolved", admin_notes="Confirmed with customer")
    assert again.resolved_at == first.resolved_at
    assert again.admin_notes == "Confirmed with customer"

    dismissed = stores.disputes.advance(ADMIN, dispute.id, "dismissed")
    assert dismissed.resolved_at == first.resolved_at


def test_advance_validation(stores, live_service):
    booking = _booking(stores, live_service)
    dispute = stores.disputes.file(customer("c1"), booking.id, "Late")
    with pytest.raises(MarketplaceValidationError):
        stores.disputes.advance(ADMIN, dispute.id, "closed")
    with pytest.raises(MarketplacePermissionError):
        stores.disputes.advance(customer("c1"), dispute.id, "resolved")
    with pytest.raises(MarketplaceNotFoundError):
        stores.disputes.advance(ADMIN, "dsp_missing", "resolved")


def test_get_and_list(stores, live_service):
    booking = _booking(stores, live_service)
    dispute = stores.disputes.file(customer("c1"), booking.id, "Late")

    assert stores.disputes.get(customer("c1"), dispute.id).id == dispute.id
    assert stores.disputes.get(ADMIN, dispute.id).id == dispute.id
    with pytest.raises(MarketplaceNotFoundError):
        stores.disputes.get(live_service.owner, dispute.id)

    stores.disputes.advance(ADMIN, dispute.id, "under_review")
    assert [d.id for d in stores.disputes.list_all(ADMIN, status="under_review")] == [dispute.id]
    assert stores.disputes.list_all(ADMIN, status="pending") == []
    with pytest.raises(MarketplacePermissionError):
        stores.disputes.list_all(customer("c1"))
