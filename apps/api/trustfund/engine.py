"""Withdrawal engine.

Both withdrawal paths run under one re-entrant lock so the authorization
reads (balance, allowance, throttle) and the resulting mutation form a single
unit. The emergency path stamps the throttle *before* calling out to the
ledger: anything that re-enters the engine during the transfer already sees
the cooldown. If the transfer fails the stamp is put back, leaving state as
it was before the call.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from .allowances import AllowanceLedger
from .errors import (
    AllowanceExceeded,
    EmptyBalance,
    InvalidAmount,
    NotEligibleYet,
    ThrottleActive,
    TransferFailed,
    Unauthorized,
)
from .ledger import FundLedger
from .roles import IdentityRegistry, Role, normalize_address
from .schedule import EligibilitySchedule
from .throttle import THROTTLED_TIERS, WithdrawalThrottle

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]
ThrottleSink = Callable[[Role, Optional[datetime]], None]


def utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)


@dataclass(frozen=True)
class WithdrawalReceipt:
    caller: str
    role: Role
    emergency: bool
    requested: int
    transferred: int
    balance_after: int
    executed_at: datetime


class WithdrawalEngine:
    def __init__(
        self,
        registry: IdentityRegistry,
        schedule: EligibilitySchedule,
        allowances: AllowanceLedger,
        throttle: WithdrawalThrottle,
        ledger: FundLedger,
        *,
        clock: Clock = utc_now,
        on_throttle_change: Optional[ThrottleSink] = None,
    ) -> None:
        self.registry = registry
        self.schedule = schedule
        self.allowances = allowances
        self.throttle = throttle
        self.ledger = ledger
        self._clock = clock
        # Called with (tier, stamp) before the transfer and again on rollback,
        # so durable state follows the same commit-then-transfer order.
        self._on_throttle_change = on_throttle_change
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Shared checks
    # ------------------------------------------------------------------

    def _check_request(self, amount: int) -> int:
        if amount <= 0:
            raise InvalidAmount(f"amount must be positive, got {amount}")
        balance = self.ledger.balance_of()
        if balance <= 0:
            raise EmptyBalance("vault balance is empty")
        return balance

    def _publish_throttle(self, tier: Role, stamp: Optional[datetime]) -> None:
        if self._on_throttle_change is not None:
            self._on_throttle_change(tier, stamp)

    def _transfer(self, caller: str, amount: int) -> None:
        try:
            ok = self.ledger.transfer(caller, amount)
        except Exception as exc:
            raise TransferFailed(f"transfer of {amount} to {caller} raised: {exc}") from exc
        if not ok:
            raise TransferFailed(f"transfer of {amount} to {caller} was rejected by the ledger")

    # ------------------------------------------------------------------
    # Withdrawals
    # ------------------------------------------------------------------

    def withdraw(self, caller: str, amount: int) -> WithdrawalReceipt:
        """Normal withdrawal, open to each tier once its threshold has passed."""
        with self._lock:
            now = self._clock()
            balance = self._check_request(amount)
            role = self.registry.resolve_role(caller)
            if role == Role.UNAUTHORIZED:
                logger.warning("withdrawal rejected", extra={"caller": caller, "reason": "unauthorized"})
                raise Unauthorized("caller is not a configured stakeholder")
            if not self.schedule.is_eligible(role, now):
                logger.warning(
                    "withdrawal rejected",
                    extra={"caller": caller, "role": role.value, "reason": "not_eligible_yet"},
                )
                raise NotEligibleYet(role, self.schedule.threshold_for(role))

            transfer_amount = min(amount, balance)
            self._transfer(normalize_address(caller), transfer_amount)
            receipt = WithdrawalReceipt(
                caller=normalize_address(caller),
                role=role,
                emergency=False,
                requested=amount,
                transferred=transfer_amount,
                balance_after=self.ledger.balance_of(),
                executed_at=now,
            )
        logger.info(
            "withdrawal completed",
            extra={"caller": receipt.caller, "role": role.value, "amount": transfer_amount},
        )
        return receipt

    def make_emergency_withdrawal(self, caller: str, amount: int) -> WithdrawalReceipt:
        """Capped, once-a-day withdrawal for the child and parent tiers."""
        with self._lock:
            now = self._clock()
            balance = self._check_request(amount)
            role = self.registry.resolve_role(caller)
            if role not in THROTTLED_TIERS:
                logger.warning(
                    "emergency withdrawal rejected",
                    extra={"caller": caller, "role": role.value, "reason": "unauthorized"},
                )
                raise Unauthorized("only the child or a parent may make emergency withdrawals")

            transfer_amount = min(amount, balance)
            allowance = self.allowances.allowance_for(role)
            if transfer_amount > allowance:
                logger.warning(
                    "emergency withdrawal rejected",
                    extra={"caller": caller, "role": role.value, "reason": "allowance_exceeded"},
                )
                raise AllowanceExceeded(transfer_amount, allowance)
            if not self.throttle.can_withdraw(role, now):
                logger.warning(
                    "emergency withdrawal rejected",
                    extra={"caller": caller, "role": role.value, "reason": "throttle_active"},
                )
                raise ThrottleActive(role, self.throttle.available_after(role))

            previous = self.throttle.record_withdrawal(role, now)
            try:
                self._publish_throttle(role, now)
            except Exception:
                self.throttle.restore(role, previous)
                raise
            try:
                self._transfer(normalize_address(caller), transfer_amount)
            except TransferFailed:
                self.throttle.restore(role, previous)
                self._publish_throttle(role, previous)
                logger.exception(
                    "emergency transfer failed; throttle rolled back",
                    extra={"caller": caller, "role": role.value, "amount": transfer_amount},
                )
                raise
            receipt = WithdrawalReceipt(
                caller=normalize_address(caller),
                role=role,
                emergency=True,
                requested=amount,
                transferred=transfer_amount,
                balance_after=self.ledger.balance_of(),
                executed_at=now,
            )
        logger.info(
            "emergency withdrawal completed",
            extra={"caller": receipt.caller, "role": role.value, "amount": transfer_amount},
        )
        return receipt

    # ------------------------------------------------------------------
    # Allowances and deposits
    # ------------------------------------------------------------------

    def set_observer_allowance(self, caller: str, amount: int) -> None:
        with self._lock:
            self.allowances.set_observer_allowance(caller, amount)

    def set_parent_allowance_by_child(self, caller: str, amount: int) -> None:
        with self._lock:
            self.allowances.set_parent_allowance_by_child(caller, amount)

    def deposit(self, sender: str, amount: int) -> int:
        """Accept funds from anyone. Returns the new balance; zero is a no-op."""
        if amount < 0:
            raise InvalidAmount(f"deposit must not be negative, got {amount}")
        with self._lock:
            if amount == 0:
                return self.ledger.balance_of()
            balance = self.ledger.deposit(normalize_address(sender) or "anonymous", amount)
        logger.info("deposit received", extra={"sender": sender, "amount": amount})
        return balance

    # ------------------------------------------------------------------
    # Read-only queries
    # ------------------------------------------------------------------

    def stakeholders(self) -> Dict[Role, List[str]]:
        return self.registry.stakeholders()

    def thresholds(self) -> Dict[Role, datetime]:
        return self.schedule.thresholds()

    @property
    def global_limit(self) -> int:
        return self.allowances.global_limit

    def effective_child_allowance(self) -> int:
        with self._lock:
            return self.allowances.effective_child_allowance()

    def effective_parent_allowance(self) -> int:
        with self._lock:
            return self.allowances.effective_parent_allowance()

    def balance(self) -> int:
        with self._lock:
            return self.ledger.balance_of()

    def throttle_status(self) -> Dict[Role, Dict[str, Optional[datetime]]]:
        with self._lock:
            return {
                tier: {
                    "last_withdrawal": self.throttle.last_withdrawal(tier),
                    "available_after": self.throttle.available_after(tier),
                }
                for tier in THROTTLED_TIERS
            }

    def snapshot(self) -> Dict[str, object]:
        """Mutable engine state in the shape ``db.save_vault_state`` expects."""
        with self._lock:
            return {
                "observer1_allowance": self.allowances.observer1_allowance,
                "observer2_allowance": self.allowances.observer2_allowance,
                "parent_allowance_by_child": self.allowances.parent_allowance_by_child,
                "last_child_withdrawal": self.throttle.last_withdrawal(Role.CHILD),
                "last_parent_withdrawal": self.throttle.last_withdrawal(Role.PARENT),
            }
