"""Pydantic schemas shared across the API."""
from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from .roles import Role


class AmountPayload(BaseModel):
    amount: int = Field(..., description="Amount in the smallest currency unit")


class StakeholdersResponse(BaseModel):
    child: List[str]
    parents: List[str]
    observers: List[str]


class ThresholdsResponse(BaseModel):
    child: datetime
    parent: datetime
    observer: datetime


class LimitsResponse(BaseModel):
    global_limit: int
    effective_child_allowance: int
    effective_parent_allowance: int
    observer1_allowance: int
    observer2_allowance: int
    parent_allowance_by_child: int


class AllowanceResponse(BaseModel):
    caller: str
    role: Role
    amount: int
    effective_child_allowance: int
    effective_parent_allowance: int


class BalanceResponse(BaseModel):
    balance: int


class DepositResponse(BaseModel):
    sender: str
    amount: int
    balance: int


class WithdrawalReceiptOut(BaseModel):
    caller: str
    role: Role
    emergency: bool
    requested: int
    transferred: int
    balance_after: int
    executed_at: datetime


class TierThrottle(BaseModel):
    last_withdrawal: Optional[datetime] = None
    available_after: Optional[datetime] = Field(
        default=None,
        description="Next emergency withdrawal is allowed strictly after this instant",
    )


class ThrottleResponse(BaseModel):
    child: TierThrottle
    parent: TierThrottle


class TransferRecord(BaseModel):
    id: int
    direction: str = Field(description="in | out")
    counterparty: str
    amount: int
    created_at: datetime
