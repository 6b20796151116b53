"""Settlement ledgers the engine moves funds through."""
from __future__ import annotations

from typing import Callable, List, Optional, Protocol, Tuple

from . import db


class FundLedger(Protocol):
    def balance_of(self) -> int: ...

    def transfer(self, to: str, amount: int) -> bool: ...

    def deposit(self, sender: str, amount: int) -> int: ...


class InMemoryLedger:
    """Process-local ledger.

    ``fail_transfers`` makes every transfer report failure, and ``on_transfer``
    runs before funds move, which lets callers observe the engine mid-transfer.
    """

    def __init__(
        self,
        balance: int = 0,
        *,
        fail_transfers: bool = False,
        on_transfer: Optional[Callable[[str, int], None]] = None,
    ) -> None:
        self.balance = balance
        self.fail_transfers = fail_transfers
        self.on_transfer = on_transfer
        self.transfers: List[Tuple[str, int]] = []

    def balance_of(self) -> int:
        return self.balance

    def transfer(self, to: str, amount: int) -> bool:
        if self.on_transfer is not None:
            self.on_transfer(to, amount)
        if self.fail_transfers or amount > self.balance:
            return False
        self.balance -= amount
        self.transfers.append((to, amount))
        return True

    def deposit(self, sender: str, amount: int) -> int:
        self.balance += amount
        return self.balance


class SqliteLedger:
    """Ledger backed by the ``fund_account`` and ``transfers`` tables."""

    def balance_of(self) -> int:
        return db.get_balance()

    def transfer(self, to: str, amount: int) -> bool:
        return db.debit_balance(to, amount)

    def deposit(self, sender: str, amount: int) -> int:
        return db.credit_balance(sender, amount)
