"""Emergency allowance caps set by observers and the child."""
from __future__ import annotations

import logging
from typing import Dict

from .errors import ConfigurationError, InvalidAmount, LimitExceeded, Unauthorized
from .roles import IdentityRegistry, Role

logger = logging.getLogger(__name__)


class AllowanceLedger:
    """Two independent observer slots, one child-granted parent slot, one global cap."""

    def __init__(
        self,
        registry: IdentityRegistry,
        global_limit: int,
        *,
        observer1_allowance: int = 0,
        observer2_allowance: int = 0,
        parent_allowance_by_child: int = 0,
    ) -> None:
        if global_limit <= 1:
            raise ConfigurationError(
                f"global limit must be greater than 1, got {global_limit}",
                bound="global_limit",
            )
        self._registry = registry
        self._global_limit = global_limit
        self._observer_allowances: Dict[int, int] = {1: 0, 2: 0}
        self._parent_allowance_by_child = 0
        # Restored values go through the same bound checks as live setters.
        for slot, amount in ((1, observer1_allowance), (2, observer2_allowance)):
            self._observer_allowances[slot] = self._checked(amount)
        self._parent_allowance_by_child = self._checked(parent_allowance_by_child)

    @property
    def global_limit(self) -> int:
        return self._global_limit

    @property
    def observer1_allowance(self) -> int:
        return self._observer_allowances[1]

    @property
    def observer2_allowance(self) -> int:
        return self._observer_allowances[2]

    @property
    def parent_allowance_by_child(self) -> int:
        return self._parent_allowance_by_child

    def _checked(self, amount: int) -> int:
        if amount < 0:
            raise InvalidAmount(f"allowance must not be negative, got {amount}")
        if amount > self._global_limit:
            raise LimitExceeded(amount, self._global_limit)
        return amount

    def set_observer_allowance(self, caller: str, amount: int) -> None:
        slot = self._registry.observer_slot(caller)
        if slot is None:
            raise Unauthorized("only observers may set the emergency allowance")
        self._observer_allowances[slot] = self._checked(amount)
        logger.info(
            "observer allowance set",
            extra={"observer_slot": slot, "amount": amount},
        )

    def set_parent_allowance_by_child(self, caller: str, amount: int) -> None:
        if self._registry.resolve_role(caller) != Role.CHILD:
            raise Unauthorized("only the child may grant the parent allowance")
        self._parent_allowance_by_child = self._checked(amount)
        logger.info("parent allowance set by child", extra={"amount": amount})

    def effective_child_allowance(self) -> int:
        return max(self._observer_allowances[1], self._observer_allowances[2])

    def effective_parent_allowance(self) -> int:
        return max(self.effective_child_allowance(), self._parent_allowance_by_child)

    def allowance_for(self, role: Role) -> int:
        if role == Role.CHILD:
            return self.effective_child_allowance()
        if role == Role.PARENT:
            return self.effective_parent_allowance()
        raise Unauthorized(f"{role.value} has no emergency allowance")
