"""Stakeholder roles and address resolution."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional


class Role(str, Enum):
    CHILD = "child"
    PARENT = "parent"
    OBSERVER = "observer"
    UNAUTHORIZED = "unauthorized"


def normalize_address(address: Optional[str]) -> str:
    return (address or "").strip().lower()


@dataclass(frozen=True)
class IdentityRegistry:
    """Fixed mapping of the five configured addresses to their tiers.

    Duplicate assignments are accepted; resolution checks Child, then Parent,
    then Observer, so the first matching tier wins.
    """

    child: str
    parent1: str
    parent2: str
    observer1: str
    observer2: str

    def __post_init__(self) -> None:
        for name in ("child", "parent1", "parent2", "observer1", "observer2"):
            object.__setattr__(self, name, normalize_address(getattr(self, name)))

    def resolve_role(self, address: Optional[str]) -> Role:
        caller = normalize_address(address)
        if not caller:
            return Role.UNAUTHORIZED
        if caller == self.child:
            return Role.CHILD
        if caller in (self.parent1, self.parent2):
            return Role.PARENT
        if caller in (self.observer1, self.observer2):
            return Role.OBSERVER
        return Role.UNAUTHORIZED

    def observer_slot(self, address: Optional[str]) -> Optional[int]:
        """Return 1 or 2 for the observer slot owned by ``address``."""
        caller = normalize_address(address)
        if self.resolve_role(caller) != Role.OBSERVER:
            return None
        return 1 if caller == self.observer1 else 2

    def stakeholders(self) -> Dict[Role, List[str]]:
        return {
            Role.CHILD: [self.child],
            Role.PARENT: [self.parent1, self.parent2],
            Role.OBSERVER: [self.observer1, self.observer2],
        }
