"""Wire the engine to configuration and persisted state."""
from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from datetime import datetime
from typing import Iterator, Optional

from . import db
from .allowances import AllowanceLedger
from .config import CONFIG, AppConfig
from .engine import Clock, WithdrawalEngine, utc_now
from .ledger import SqliteLedger
from .roles import IdentityRegistry, Role
from .schedule import EligibilitySchedule
from .throttle import WithdrawalThrottle

logger = logging.getLogger(__name__)

# Single writer across requests: load, operate and persist happen under one lock.
_VAULT_LOCK = threading.RLock()


def build_registry(config: AppConfig = CONFIG) -> IdentityRegistry:
    return IdentityRegistry(
        child=config.child_address,
        parent1=config.parent1_address,
        parent2=config.parent2_address,
        observer1=config.observer1_address,
        observer2=config.observer2_address,
    )


def build_schedule(config: AppConfig = CONFIG) -> EligibilitySchedule:
    return EligibilitySchedule.build(
        created_at=db.get_deployment_time(),
        child_threshold=config.child_threshold,
        parent_threshold=config.parent_threshold,
        observer_threshold=config.observer_threshold,
    )


def bootstrap(config: AppConfig = CONFIG) -> None:
    """Create tables, stamp the deployment time and validate the configuration."""
    db.initialize_db()
    db.ensure_deployment()
    schedule = build_schedule(config)
    AllowanceLedger(build_registry(config), config.global_limit)
    logger.info(
        "vault ready",
        extra={
            "child_threshold": schedule.child_threshold.isoformat(),
            "global_limit": config.global_limit,
        },
    )


def _persist_throttle(tier: Role, stamp: Optional[datetime]) -> None:
    db.save_throttle_stamp(tier, stamp)


def load_engine(clock: Clock = utc_now, config: AppConfig = CONFIG) -> WithdrawalEngine:
    registry = build_registry(config)
    state = db.load_vault_state()
    allowances = AllowanceLedger(
        registry,
        config.global_limit,
        observer1_allowance=state["observer1_allowance"],
        observer2_allowance=state["observer2_allowance"],
        parent_allowance_by_child=state["parent_allowance_by_child"],
    )
    throttle = WithdrawalThrottle(
        last_child_withdrawal=state["last_child_withdrawal"],
        last_parent_withdrawal=state["last_parent_withdrawal"],
    )
    return WithdrawalEngine(
        registry,
        build_schedule(config),
        allowances,
        throttle,
        SqliteLedger(),
        clock=clock,
        on_throttle_change=_persist_throttle,
    )


@contextmanager
def open_vault(clock: Clock = utc_now) -> Iterator[WithdrawalEngine]:
    """Yield an engine holding the vault lock; persist its state if the body succeeds.

    Throttle stamps are already durable before any emergency transfer leaves
    the ledger; the final save covers allowance changes.
    """
    with _VAULT_LOCK:
        engine = load_engine(clock)
        yield engine
        db.save_vault_state(**engine.snapshot())


@contextmanager
def read_vault(clock: Clock = utc_now) -> Iterator[WithdrawalEngine]:
    """Yield an engine for queries; nothing is written back."""
    with _VAULT_LOCK:
        yield load_engine(clock)
