import os
import sqlite3
import sys

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

from conftest import ADMIN, customer
from marketplace.services.errors import (
    MarketplaceConflictError,
    MarketplaceNotFoundError,
    MarketplacePermissionError,
    MarketplaceValidationError,
)
from marketplace.services.review_store import validate_rating


def _completed_booking(stores, live_service, user_id="c1"):
    booking = stores.bookings.create(customer(user_id), live_service.service.id, "Flat 2B")
    stores.bookings.accept(live_service.owner, booking.id)
    stores.bookings.complete(live_service.owner, booking.id)
    return booking


def test_average_is_none_without_reviews(stores, live_service):
    provider_id = live_service.provider.id
    assert stores.reviews.average_rating(provider_id) is None
    assert stores.reviews.review_count(provider_id) == 0
    summary = stores.catalog.list_providers()[0]
    assert summary.average_rating is None
    assert summary.total_reviews == 0


def test_average_over_visible_reviews(stores, live_service):
    provider_id = live_service.provider.id
    first = _completed_booking(stores, live_service, "c1")
    second = _completed_booking(stores, live_service, "c2")
    stores.reviews.create_review(customer("c1"), first.id, 5, "Excellent")
    stores.reviews.create_review(customer("c2"), second.id, 2)

    assert stores.reviews.average_rating(provider_id) == pytest.approx(3.5)
    assert stores.reviews.review_count(provider_id) == 2
    details = stores.catalog.get_provider_details(None, provider_id)
    assert details.average_rating == pytest.approx(3.5)
    assert details.total_reviews == 2
    assert len(details.reviews) == 2


def test_hiding_a_review_drops_it_from_aggregates(stores, live_service):
    provider_id = live_service.provider.id
    first = _completed_booking(stores, live_service, "c1")
    second = _completed_booking(stores, live_service, "c2")
    keep = stores.reviews.create_review(customer("c1"), first.id, 4)
    hide = stores.reviews.create_review(customer("c2"), second.id, 1)

    hidden = stores.reviews.toggle_visibility(ADMIN, hide.id)
    assert hidden.is_visible is False
    assert hidden.rating == 1
    assert stores.reviews.average_rating(provider_id) == pytest.approx(4.0)
    assert stores.reviews.review_count(provider_id) == 1
    assert [r.id for r in stores.reviews.list_for_provider(provider_id)] == [keep.id]

    shown = stores.reviews.toggle_visibility(ADMIN, hide.id)
    assert shown.is_visible is True
    assert stores.reviews.review_count(provider_id) == 2


def test_hiding_the_only_review_resets_average(stores, live_service):
    booking = _completed_booking(stores, live_service)
    review = stores.reviews.create_review(customer("c1"), booking.id, 3)
    stores.reviews.toggle_visibility(ADMIN, review.id)
    summary = stores.reviews.rating_summary(live_service.provider.id)
    assert summary.average_rating is None
    assert summary.review_count == 0


def test_second_review_for_same_booking_conflicts(stores, live_service):
    booking = _completed_booking(stores, live_service)
    stores.reviews.create_review(customer("c1"), booking.id, 5)
    with pytest.raises(MarketplaceConflictError):
        stores.reviews.create_review(customer("c1"), booking.id, 1)
    assert stores.reviews.review_count(live_service.provider.id) == 1


def test_unique_key_guards_duplicate_insert(stores, live_service):
    booking = _completed_booking(stores, live_service)
    stores.reviews.create_review(customer("c1"), booking.id, 5)
    with stores.db.read() as conn:
        with pytest.raises(sqlite3.IntegrityError):
            conn.execute(
                """
                INSERT INTO reviews (id, service_request_id, customer_id, provider_id, rating, created_at)
                VALUES ('rev_dup', ?, 'c1', ?, 4, '2026-01-01T00:00:00+00:00')
                """,
                (booking.id, live_service.provider.id),
            )


def test_review_requires_completed_booking(stores, live_service):
    booking = stores.bookings.create(customer("c1"), live_service.service.id, "Flat 2B")
    with pytest.raises(MarketplaceNotFoundError):
        stores.reviews.create_review(customer("c1"), booking.id, 5)
    stores.bookings.accept(live_service.owner, booking.id)
    with pytest.raises(MarketplaceNotFoundError):
        stores.reviews.create_review(customer("c1"), booking.id, 5)
    assert stores.reviews.can_review(customer("c1"), booking.id) is False


def test_only_the_booking_customer_may_review(stores, live_service):
    booking = _completed_booking(stores, live_service)
    with pytest.raises(MarketplaceNotFoundError):
        stores.reviews.create_review(customer("c2"), booking.id, 5)
    with pytest.raises(MarketplaceNotFoundError):
        stores.reviews.create_review(live_service.owner, booking.id, 5)
    assert stores.reviews.can_review(customer("c1"), booking.id) is True


@pytest.mark.parametrize("rating", [0, 6, -1, True])
def test_rating_out_of_range_is_rejected(stores, live_service, rating):
    booking = _completed_booking(stores, live_service)
    with pytest.raises(MarketplaceValidationError):
        stores.reviews.create_review(customer("c1"), booking.id, rating)
    assert stores.reviews.can_review(customer("c1"), booking.id) is True


def test_validate_rating_bounds():
    assert validate_rating(1) == 1
    assert validate_rating(5) == 5
    with pytest.raises(MarketplaceValidationError):
        validate_rating(4.5)


def test_toggle_requires_admin_and_known_review(stores, live_service):
    booking = _completed_booking(stores, live_service)
    review = stores.reviews.create_review(customer("c1"), booking.id, 5)
    with pytest.raises(MarketplacePermissionError):
        stores.reviews.toggle_visibility(customer("c1"), review.id)
    with pytest.raises(MarketplaceNotFoundError):
        stores.reviews.toggle_visibility(ADMIN, "rev_missing")


def test_admin_review_listing_includes_hidden(stores, live_service):
    booking = _completed_booking(stores, live_service)
    review = stores.reviews.create_review(customer("c1"), booking.id, 2, "Left a mess")
    stores.reviews.toggle_visibility(ADMIN, review.id)
    assert [r.id for r in stores.reviews.list_all(ADMIN)] == [review.id]
    assert [r.id for r in stores.reviews.list_all(ADMIN, search="mess")] == [review.id]
    assert stores.reviews.list_all(ADMIN, search="spotless") == []
