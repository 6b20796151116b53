"""Error taxonomy for the trust fund engine."""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional


class VaultError(Exception):
    """Base class for every rejected vault operation."""

    code = "vault_error"
    status_code = 400

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    def to_detail(self) -> dict:
        return {"code": self.code, "message": self.message}


class ConfigurationError(VaultError):
    code = "configuration_error"
    status_code = 500

    def __init__(
        self,
        message: str,
        *,
        bound: Optional[str] = None,
        minimum_gap: Optional[timedelta] = None,
    ) -> None:
        self.bound = bound
        self.minimum_gap = minimum_gap
        super().__init__(message)


class Unauthorized(VaultError):
    code = "unauthorized"
    status_code = 403


class NotEligibleYet(VaultError):
    code = "not_eligible_yet"
    status_code = 403

    def __init__(self, role, threshold: datetime) -> None:
        self.role = role
        self.threshold = threshold
        super().__init__(
            f"{role.value} withdrawals open after {threshold.isoformat()}"
        )


class LimitExceeded(VaultError):
    code = "limit_exceeded"

    def __init__(self, amount: int, limit: int) -> None:
        self.amount = amount
        self.limit = limit
        super().__init__(f"allowance {amount} exceeds global limit {limit}")


class AllowanceExceeded(VaultError):
    code = "allowance_exceeded"

    def __init__(self, amount: int, allowance: int) -> None:
        self.amount = amount
        self.allowance = allowance
        super().__init__(f"emergency amount {amount} exceeds allowance {allowance}")


class ThrottleActive(VaultError):
    code = "throttle_active"
    status_code = 429

    def __init__(self, role, available_after: datetime) -> None:
        self.role = role
        self.available_after = available_after
        super().__init__(
            f"{role.value} emergency withdrawals blocked until after {available_after.isoformat()}"
        )


class InvalidAmount(VaultError):
    code = "invalid_amount"


class EmptyBalance(VaultError):
    code = "empty_balance"
    status_code = 409


class TransferFailed(VaultError):
    code = "transfer_failed"
    status_code = 502
