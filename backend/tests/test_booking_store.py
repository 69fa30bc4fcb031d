import os
import sys
import threading

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

from conftest import ADMIN, customer, provider_user, sample_profile
from marketplace.models import ServiceCreateRequest, ServiceUpdateRequest
from marketplace.services.errors import (
    MarketplaceInvalidStateError,
    MarketplaceNotFoundError,
    MarketplacePermissionError,
    MarketplaceValidationError,
)


def _book(stores, live_service, user_id="c1"):
    return stores.bookings.create(customer(user_id), live_service.service.id, "221B Baker Street")


def test_create_snapshots_service_and_provider(stores, live_service):
    booking = _book(stores, live_service)
    assert booking.status == "requested"
    assert booking.provider_id == live_service.provider.id
    assert booking.service_name == "Leak repair"
    assert booking.list_price == 500

    stores.catalog.update_service(
        live_service.owner,
        live_service.service.id,
        ServiceUpdateRequest(name="Leak repair deluxe", price=900),
    )
    reloaded = stores.bookings.get(customer("c1"), booking.id)
    assert reloaded.service_name == "Leak repair"
    assert reloaded.list_price == 500


def test_full_lifecycle_to_completed(stores, live_service):
    booking = _book(stores, live_service)
    confirmed = stores.bookings.accept(live_service.owner, booking.id, scheduled_date="2026-11-02T10:00:00")
    assert confirmed.status == "confirmed"
    assert confirmed.confirmed_date is not None
    assert confirmed.scheduled_date == "2026-11-02T10:00:00"

    completed = stores.bookings.complete(live_service.owner, booking.id)
    assert completed.status == "completed"
    assert completed.final_price == 500
    assert completed.completed_date is not None

    history = stores.bookings.history(customer("c1"), booking.id)
    assert [(entry.from_status, entry.to_status) for entry in history] == [
        ("none", "requested"),
        ("requested", "confirmed"),
        ("confirmed", "completed"),
    ]


def test_complete_uses_explicit_final_price(stores, live_service):
    booking = _book(stores, live_service)
    stores.bookings.accept(live_service.owner, booking.id)
    completed = stores.bookings.complete(live_service.owner, booking.id, final_price=650)
    assert completed.final_price == 650


def test_complete_rejects_negative_price(stores, live_service):
    booking = _book(stores, live_service)
    stores.bookings.accept(live_service.owner, booking.id)
    with pytest.raises(MarketplaceValidationError):
        stores.bookings.complete(live_service.owner, booking.id, final_price=-1)


@pytest.mark.parametrize("final_price", [float("nan"), float("inf")])
def test_complete_rejects_non_finite_price(stores, live_service, final_price):
    booking = _book(stores, live_service)
    stores.bookings.accept(live_service.owner, booking.id)
    with pytest.raises(MarketplaceValidationError):
        stores.bookings.complete(live_service.owner, booking.id, final_price=final_price)
    kept = stores.bookings.get(customer("c1"), booking.id)
    assert kept.status == "confirmed"
    assert kept.final_price is None


def test_complete_from_requested_is_invalid_state(stores, live_service):
    booking = _book(stores, live_service)
    with pytest.raises(MarketplaceInvalidStateError):
        stores.bookings.complete(live_service.owner, booking.id)
    assert stores.bookings.get(customer("c1"), booking.id).status == "requested"


def test_reject_records_reason_and_is_terminal(stores, live_service):
    booking = _book(stores, live_service)
    rejected = stores.bookings.reject(live_service.owner, booking.id, cancellation_reason="Fully booked")
    assert rejected.status == "rejected"
    assert rejected.cancellation_reason == "Fully booked"
    assert rejected.cancelled_date is not None
    with pytest.raises(MarketplaceInvalidStateError):
        stores.bookings.accept(live_service.owner, booking.id)


def test_customer_can_cancel_confirmed_booking(stores, live_service):
    booking = _book(stores, live_service)
    stores.bookings.accept(live_service.owner, booking.id)
    cancelled = stores.bookings.cancel(customer("c1"), booking.id, cancellation_reason="Plans changed")
    assert cancelled.status == "cancelled"
    with pytest.raises(MarketplaceInvalidStateError):
        stores.bookings.cancel(customer("c1"), booking.id)


def test_outsiders_get_not_found(stores, live_service):
    booking = _book(stores, live_service)
    other_owner = provider_user("p2")
    stores.gate.register(other_owner, sample_profile("Other Works"))

    with pytest.raises(MarketplaceNotFoundError):
        stores.bookings.accept(other_owner, booking.id)
    with pytest.raises(MarketplaceNotFoundError):
        stores.bookings.accept(customer("c1"), booking.id)
    with pytest.raises(MarketplaceNotFoundError):
        stores.bookings.cancel(customer("c2"), booking.id)
    with pytest.raises(MarketplaceNotFoundError):
        stores.bookings.get(customer("c2"), booking.id)
    assert stores.bookings.get(ADMIN, booking.id).id == booking.id


def test_unknown_booking_is_not_found(stores, live_service):
    with pytest.raises(MarketplaceNotFoundError):
        stores.bookings.accept(live_service.owner, "req_missing")


def test_create_requires_customer_role(stores, live_service):
    with pytest.raises(MarketplacePermissionError):
        stores.bookings.create(live_service.owner, live_service.service.id, "Somewhere")


def test_create_against_hidden_provider_is_not_found(stores, live_service):
    stores.gate.suspend(ADMIN, live_service.provider.id)
    with pytest.raises(MarketplaceNotFoundError):
        _book(stores, live_service)

    stores.gate.approve(ADMIN, live_service.provider.id)
    assert _book(stores, live_service).status == "requested"


def test_create_against_unavailable_service_is_not_found(stores, live_service):
    stores.catalog.update_service(live_service.owner, live_service.service.id, ServiceUpdateRequest(is_available=False))
    with pytest.raises(MarketplaceNotFoundError):
        _book(stores, live_service)


def test_create_requires_address(stores, live_service):
    with pytest.raises(MarketplaceValidationError):
        stores.bookings.create(customer("c1"), live_service.service.id, "   ")


def test_accept_rejects_malformed_schedule(stores, live_service):
    booking = _book(stores, live_service)
    with pytest.raises(MarketplaceValidationError):
        stores.bookings.accept(live_service.owner, booking.id, scheduled_date="next tuesday")
    assert stores.bookings.get(customer("c1"), booking.id).status == "requested"


def test_concurrent_accepts_only_one_wins(stores, live_service):
    booking = _book(stores, live_service)
    barrier = threading.Barrier(2)
    results = []
    errors = []

    def worker():
        barrier.wait()
        try:
            results.append(stores.bookings.accept(live_service.owner, booking.id))
        except MarketplaceInvalidStateError as exc:
            errors.append(exc)

    threads = [threading.Thread(target=worker) for _ in range(2)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(results) == 1
    assert len(errors) == 1
    history = stores.bookings.history(live_service.owner, booking.id)
    assert [entry.to_status for entry in history].count("confirmed") == 1


def test_bookings_survive_service_deletion(stores, live_service):
    booking = _book(stores, live_service)
    stores.bookings.accept(live_service.owner, booking.id)
    stores.catalog.delete_service(live_service.owner, live_service.service.id)

    completed = stores.bookings.complete(live_service.owner, booking.id)
    assert completed.final_price == 500
    assert completed.service_name == "Leak repair"


def test_bookings_survive_provider_removal(stores, live_service):
    booking = _book(stores, live_service)
    stores.gate.remove(ADMIN, live_service.provider.id)
    kept = stores.bookings.get(customer("c1"), booking.id)
    assert kept.provider_id == live_service.provider.id
    assert kept.service_name == "Leak repair"


def test_list_for_actor_by_role(stores, live_service):
    first = _book(stores, live_service, "c1")
    _book(stores, live_service, "c2")

    assert [b.id for b in stores.bookings.list_for_actor(customer("c1"))] == [first.id]
    assert len(stores.bookings.list_for_actor(live_service.owner, role="provider")) == 2
    assert stores.bookings.list_for_actor(live_service.owner, role="customer") == []
    with pytest.raises(MarketplaceValidationError):
        stores.bookings.list_for_actor(customer("c1"), role="owner")


def test_admin_list_filters_by_status(stores, live_service):
    booking = _book(stores, live_service)
    _book(stores, live_service, "c2")
    stores.bookings.accept(live_service.owner, booking.id)

    assert [b.id for b in stores.bookings.list_all(ADMIN, status="confirmed")] == [booking.id]
    assert len(stores.bookings.list_all(ADMIN)) == 2
    with pytest.raises(MarketplaceValidationError):
        stores.bookings.list_all(ADMIN, status="archived")
    with pytest.raises(MarketplacePermissionError):
        stores.bookings.list_all(customer("c1"))


def test_details_report_review_eligibility(stores, live_service):
    booking = _book(stores, live_service)
    assert stores.bookings.get_details(customer("c1"), booking.id).can_review is False

    stores.bookings.accept(live_service.owner, booking.id)
    stores.bookings.complete(live_service.owner, booking.id)
    details = stores.bookings.get_details(customer("c1"), booking.id)
    assert details.can_review is True
    assert details.review is None

    stores.reviews.create_review(customer("c1"), booking.id, 4, "Quick fix")
    details = stores.bookings.get_details(customer("c1"), booking.id)
    assert details.can_review is False
    assert details.review.rating == 4
    assert stores.bookings.get_details(live_service.owner, booking.id).can_review is False


def test_second_provider_service_is_bookable(stores):
    owner = provider_user("p9")
    provider = stores.gate.register(owner, sample_profile("Nine Electricals"))
    stores.gate.approve(ADMIN, provider.id)
    service = stores.catalog.create_service(owner, ServiceCreateRequest(name="Wiring", price=300, category_id=2))
    booking = stores.bookings.create(customer("c1"), service.id, "Flat 4")
    assert booking.provider_id == provider.id
