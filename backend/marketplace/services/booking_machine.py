"""Booking lifecycle rules.

    requested -> confirmed | rejected | cancelled
    confirmed -> completed | cancelled

completed, rejected and cancelled are terminal. Each event names the
parties allowed to trigger it; the caller resolves which parties the actor
is (once, from stored ownership) and this module decides the outcome.
Nothing here touches storage.
"""

from dataclasses import dataclass
from typing import Dict, FrozenSet, Optional

from marketplace.services.errors import (
    MarketplaceInvalidStateError,
    MarketplaceNotFoundError,
    MarketplaceValidationError,
)


REQUESTED = "requested"
CONFIRMED = "confirmed"
COMPLETED = "completed"
REJECTED = "rejected"
CANCELLED = "cancelled"

BOOKING_STATUSES = (REQUESTED, CONFIRMED, COMPLETED, REJECTED, CANCELLED)
BOOKING_TERMINAL_STATUSES = frozenset({COMPLETED, REJECTED, CANCELLED})

PARTY_CUSTOMER = "customer"
PARTY_PROVIDER = "provider"

EVENT_ACCEPT = "accept"
EVENT_REJECT = "reject"
EVENT_COMPLETE = "complete"
EVENT_CANCEL = "cancel"


@dataclass(frozen=True)
class TransitionRule:
    event: str
    sources: FrozenSet[str]
    target: str
    parties: FrozenSet[str]


TRANSITIONS: Dict[str, TransitionRule] = {
    EVENT_ACCEPT: TransitionRule(EVENT_ACCEPT, frozenset({REQUESTED}), CONFIRMED, frozenset({PARTY_PROVIDER})),
    EVENT_REJECT: TransitionRule(EVENT_REJECT, frozenset({REQUESTED}), REJECTED, frozenset({PARTY_PROVIDER})),
    EVENT_COMPLETE: TransitionRule(EVENT_COMPLETE, frozenset({CONFIRMED}), COMPLETED, frozenset({PARTY_PROVIDER})),
    EVENT_CANCEL: TransitionRule(
        EVENT_CANCEL,
        frozenset({REQUESTED, CONFIRMED}),
        CANCELLED,
        frozenset({PARTY_CUSTOMER, PARTY_PROVIDER}),
    ),
}


@dataclass(frozen=True)
class OwnershipProof:
    """Which sides of a booking the acting user is on."""

    is_customer: bool = False
    is_provider: bool = False

    @property
    def parties(self) -> FrozenSet[str]:
        parties = set()
        if self.is_customer:
            parties.add(PARTY_CUSTOMER)
        if self.is_provider:
            parties.add(PARTY_PROVIDER)
        return frozenset(parties)

    @property
    def is_party(self) -> bool:
        return self.is_customer or self.is_provider


def resolve_ownership(
    actor_user_id: str,
    actor_provider_id: Optional[str],
    customer_id: str,
    provider_id: str,
) -> OwnershipProof:
    """Build the proof from stored ids only.

    ``actor_provider_id`` is the provider record owned by the actor (looked
    up server side), or None when the actor owns no provider record or
    lacks the service_provider role.
    """
    return OwnershipProof(
        is_customer=actor_user_id == customer_id,
        is_provider=actor_provider_id is not None and actor_provider_id == provider_id,
    )


def transition(current_status: str, event: str, ownership: OwnershipProof) -> str:
    """Return the status ``event`` leads to, or raise.

    A caller on neither allowed side gets NotFound, the same answer as for
    a booking that does not exist. A rightful party acting from the wrong
    state gets InvalidState.
    """
    rule = TRANSITIONS.get(event)
    if rule is None:
        raise MarketplaceValidationError(f"Unknown booking event: {event}")
    if not rule.parties & ownership.parties:
        raise MarketplaceNotFoundError("Booking not found")
    if current_status not in rule.sources:
        raise MarketplaceInvalidStateError(f"Cannot {event} a booking that is {current_status}")
    return rule.target


def is_terminal(status: str) -> bool:
    return status in BOOKING_TERMINAL_STATUSES


def allowed_events(current_status: str, ownership: OwnershipProof) -> list[str]:
    return [
        rule.event
        for rule in TRANSITIONS.values()
        if current_status in rule.sources and rule.parties & ownership.parties
    ]
