from dataclasses import dataclass, field
from typing import FrozenSet, Iterable

from marketplace.services.errors import MarketplacePermissionError


ROLE_CUSTOMER = "customer"
ROLE_SERVICE_PROVIDER = "service_provider"
ROLE_ADMIN = "admin"

ALL_ROLES = frozenset({ROLE_CUSTOMER, ROLE_SERVICE_PROVIDER, ROLE_ADMIN})


@dataclass(frozen=True)
class ActorContext:
    """The authenticated caller: a user id plus its role set."""

    user_id: str
    roles: FrozenSet[str] = field(default_factory=frozenset)

    @classmethod
    def of(cls, user_id: str, roles: Iterable[str]) -> "ActorContext":
        return cls(user_id=user_id, roles=frozenset(role for role in roles if role in ALL_ROLES))

    def has_role(self, role: str) -> bool:
        return role in self.roles

    @property
    def is_admin(self) -> bool:
        return ROLE_ADMIN in self.roles


def require_role(actor: ActorContext, role: str) -> None:
    if not actor.has_role(role):
        raise MarketplacePermissionError(f"This action requires the {role} role")


def require_admin(actor: ActorContext) -> None:
    require_role(actor, ROLE_ADMIN)
