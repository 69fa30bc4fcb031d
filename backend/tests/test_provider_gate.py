import os
import sys

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

from conftest import ADMIN, customer, provider_user, sample_profile
from marketplace.services.errors import (
    MarketplaceConflictError,
    MarketplaceNotFoundError,
    MarketplacePermissionError,
)


def test_register_starts_pending_and_hidden(stores):
    provider = stores.gate.register(provider_user("p1"), sample_profile())
    assert provider.is_approved is False
    assert provider.is_suspended is False
    assert stores.gate.is_visible(provider.id) is False
    assert stores.catalog.list_providers() == []


def test_register_twice_is_conflict(stores):
    stores.gate.register(provider_user("p1"), sample_profile())
    with pytest.raises(MarketplaceConflictError):
        stores.gate.register(provider_user("p1"), sample_profile("Second Shop"))


def test_register_requires_provider_role(stores):
    with pytest.raises(MarketplacePermissionError):
        stores.gate.register(customer("c1"), sample_profile())


def test_gate_actions_require_admin(stores):
    provider = stores.gate.register(provider_user("p1"), sample_profile())
    for action in (stores.gate.approve, stores.gate.suspend, stores.gate.remove):
        with pytest.raises(MarketplacePermissionError):
            action(provider_user("p1"), provider.id)
    with pytest.raises(MarketplacePermissionError):
        stores.gate.list_for_admin(customer("c1"))


def test_approve_then_suspend_then_reapprove(stores):
    provider = stores.gate.register(provider_user("p1"), sample_profile())

    approved = stores.gate.approve(ADMIN, provider.id)
    assert approved.is_approved and not approved.is_suspended
    assert stores.gate.is_visible(provider.id)
    assert [summary.provider.id for summary in stores.catalog.list_providers()] == [provider.id]

    suspended = stores.gate.suspend(ADMIN, provider.id)
    assert suspended.is_approved and suspended.is_suspended
    assert stores.gate.is_visible(provider.id) is False
    assert stores.catalog.list_providers() == []

    reinstated = stores.gate.approve(ADMIN, provider.id)
    assert reinstated.is_approved and not reinstated.is_suspended
    assert stores.gate.is_visible(provider.id)


def test_approve_and_suspend_are_idempotent(stores):
    provider = stores.gate.register(provider_user("p1"), sample_profile())
    stores.gate.approve(ADMIN, provider.id)
    assert stores.gate.approve(ADMIN, provider.id).is_approved
    stores.gate.suspend(ADMIN, provider.id)
    assert stores.gate.suspend(ADMIN, provider.id).is_suspended


def test_unknown_provider(stores):
    with pytest.raises(MarketplaceNotFoundError):
        stores.gate.approve(ADMIN, "sp_missing")
    with pytest.raises(MarketplaceNotFoundError):
        stores.gate.remove(ADMIN, "sp_missing")
    assert stores.gate.is_visible("sp_missing") is False


def test_remove_cascades_services_and_frees_owner(stores, live_service):
    stores.gate.remove(ADMIN, live_service.provider.id)
    assert stores.gate.is_visible(live_service.provider.id) is False
    with pytest.raises(MarketplaceNotFoundError):
        stores.catalog.get_service(ADMIN, live_service.service.id)
    with pytest.raises(MarketplaceNotFoundError):
        stores.gate.get_own(live_service.owner)

    again = stores.gate.register(live_service.owner, sample_profile("Fresh Start"))
    assert again.is_approved is False


def test_update_profile_keeps_gate_flags(stores, live_service):
    updated = stores.gate.update_profile(live_service.owner, sample_profile("Sharma & Sons"))
    assert updated.business_name == "Sharma & Sons"
    assert updated.is_approved is True
    assert stores.gate.get_own(live_service.owner).business_name == "Sharma & Sons"


def test_admin_list_pending_and_search(stores):
    first = stores.gate.register(provider_user("p1"), sample_profile("Alpha Cleaners"))
    second = stores.gate.register(provider_user("p2"), sample_profile("Beta Painters"))
    stores.gate.approve(ADMIN, first.id)

    assert [p.id for p in stores.gate.list_for_admin(ADMIN, pending_only=True)] == [second.id]
    assert [p.id for p in stores.gate.list_for_admin(ADMIN, search="alpha")] == [first.id]
    assert len(stores.gate.list_for_admin(ADMIN)) == 2
