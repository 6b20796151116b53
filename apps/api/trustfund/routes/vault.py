from dataclasses import asdict
from typing import List, Optional

import logging

from fastapi import APIRouter, Depends, Header, HTTPException, Query

from ..db import list_transfers
from ..engine import Clock, utc_now
from ..errors import VaultError
from ..roles import Role, normalize_address
from ..schemas import (
    AllowanceResponse,
    AmountPayload,
    BalanceResponse,
    DepositResponse,
    LimitsResponse,
    StakeholdersResponse,
    ThresholdsResponse,
    ThrottleResponse,
    TierThrottle,
    TransferRecord,
    WithdrawalReceiptOut,
)
from ..vault import open_vault, read_vault

router = APIRouter(prefix="/api/v1/vault", tags=["vault"])
logger = logging.getLogger(__name__)


def get_clock() -> Clock:
    """Trusted clock; overridden in tests, never taken from the request."""
    return utc_now


def _caller(header_value: Optional[str]) -> str:
    caller = normalize_address(header_value)
    if not caller:
        raise HTTPException(status_code=401, detail="Missing X-Vault-Caller header.")
    return caller


def _as_http_error(exc: VaultError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=exc.to_detail())


@router.get("/stakeholders", response_model=StakeholdersResponse)
async def get_stakeholders(clock: Clock = Depends(get_clock)) -> StakeholdersResponse:
    with read_vault(clock) as engine:
        stakeholders = engine.stakeholders()
    return StakeholdersResponse(
        child=stakeholders[Role.CHILD],
        parents=stakeholders[Role.PARENT],
        observers=stakeholders[Role.OBSERVER],
    )


@router.get("/thresholds", response_model=ThresholdsResponse)
async def get_thresholds(clock: Clock = Depends(get_clock)) -> ThresholdsResponse:
    with read_vault(clock) as engine:
        thresholds = engine.thresholds()
    return ThresholdsResponse(
        child=thresholds[Role.CHILD],
        parent=thresholds[Role.PARENT],
        observer=thresholds[Role.OBSERVER],
    )


@router.get("/limits", response_model=LimitsResponse)
async def get_limits(clock: Clock = Depends(get_clock)) -> LimitsResponse:
    with read_vault(clock) as engine:
        allowances = engine.allowances
        return LimitsResponse(
            global_limit=engine.global_limit,
            effective_child_allowance=engine.effective_child_allowance(),
            effective_parent_allowance=engine.effective_parent_allowance(),
            observer1_allowance=allowances.observer1_allowance,
            observer2_allowance=allowances.observer2_allowance,
            parent_allowance_by_child=allowances.parent_allowance_by_child,
        )


@router.get("/balance", response_model=BalanceResponse)
async def get_balance(clock: Clock = Depends(get_clock)) -> BalanceResponse:
    with read_vault(clock) as engine:
        return BalanceResponse(balance=engine.balance())


@router.get("/throttle", response_model=ThrottleResponse)
async def get_throttle(clock: Clock = Depends(get_clock)) -> ThrottleResponse:
    with read_vault(clock) as engine:
        status = engine.throttle_status()
    return ThrottleResponse(
        child=TierThrottle(**status[Role.CHILD]),
        parent=TierThrottle(**status[Role.PARENT]),
    )


@router.get("/transfers", response_model=List[TransferRecord])
async def get_transfers(
    limit: int = Query(100, ge=1, le=1000, description="Most recent entries to return"),
) -> List[TransferRecord]:
    return [TransferRecord(**row) for row in list_transfers(limit=limit)]


@router.post("/deposits", response_model=DepositResponse)
async def create_deposit(
    payload: AmountPayload,
    clock: Clock = Depends(get_clock),
    caller_header: Optional[str] = Header(None, alias="X-Vault-Caller"),
) -> DepositResponse:
    sender = normalize_address(caller_header) or "anonymous"
    try:
        with open_vault(clock) as engine:
            balance = engine.deposit(sender, payload.amount)
    except VaultError as exc:
        raise _as_http_error(exc) from exc
    return DepositResponse(sender=sender, amount=payload.amount, balance=balance)


@router.post("/allowances/observer", response_model=AllowanceResponse)
async def set_observer_allowance(
    payload: AmountPayload,
    clock: Clock = Depends(get_clock),
    caller_header: Optional[str] = Header(None, alias="X-Vault-Caller"),
) -> AllowanceResponse:
    caller = _caller(caller_header)
    try:
        with open_vault(clock) as engine:
            engine.set_observer_allowance(caller, payload.amount)
            return AllowanceResponse(
                caller=caller,
                role=Role.OBSERVER,
                amount=payload.amount,
                effective_child_allowance=engine.effective_child_allowance(),
                effective_parent_allowance=engine.effective_parent_allowance(),
            )
    except VaultError as exc:
        logger.warning("observer allowance rejected", extra={"caller": caller, "code": exc.code})
        raise _as_http_error(exc) from exc


@router.post("/allowances/parent", response_model=AllowanceResponse)
async def set_parent_allowance(
    payload: AmountPayload,
    clock: Clock = Depends(get_clock),
    caller_header: Optional[str] = Header(None, alias="X-Vault-Caller"),
) -> AllowanceResponse:
    caller = _caller(caller_header)
    try:
        with open_vault(clock) as engine:
            engine.set_parent_allowance_by_child(caller, payload.amount)
            return AllowanceResponse(
                caller=caller,
                role=Role.CHILD,
                amount=payload.amount,
                effective_child_allowance=engine.effective_child_allowance(),
                effective_parent_allowance=engine.effective_parent_allowance(),
            )
    except VaultError as exc:
        logger.warning("parent allowance rejected", extra={"caller": caller, "code": exc.code})
        raise _as_http_error(exc) from exc


@router.post("/withdrawals", response_model=WithdrawalReceiptOut)
async def create_withdrawal(
    payload: AmountPayload,
    clock: Clock = Depends(get_clock),
    caller_header: Optional[str] = Header(None, alias="X-Vault-Caller"),
) -> WithdrawalReceiptOut:
    caller = _caller(caller_header)
    try:
        with open_vault(clock) as engine:
            receipt = engine.withdraw(caller, payload.amount)
    except VaultError as exc:
        raise _as_http_error(exc) from exc
    return WithdrawalReceiptOut(**asdict(receipt))


@router.post("/emergency-withdrawals", response_model=WithdrawalReceiptOut)
async def create_emergency_withdrawal(
    payload: AmountPayload,
    clock: Clock = Depends(get_clock),
    caller_header: Optional[str] = Header(None, alias="X-Vault-Caller"),
) -> WithdrawalReceiptOut:
    caller = _caller(caller_header)
    try:
        with open_vault(clock) as engine:
            receipt = engine.make_emergency_withdrawal(caller, payload.amount)
    except VaultError as exc:
        raise _as_http_error(exc) from exc
    return WithdrawalReceiptOut(**asdict(receipt))
