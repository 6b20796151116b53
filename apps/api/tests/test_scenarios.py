"""End-to-end walkthroughs of the documented vault scenarios."""
from __future__ import annotations

from datetime import timedelta

import pytest

from trustfund.errors import ConfigurationError, NotEligibleYet, ThrottleActive
from trustfund.roles import Role
from trustfund.schedule import EligibilitySchedule

from vault_helpers import CHILD, CHILD_AT, OBSERVER1, T0, make_engine


def test_scenario_a_valid_construction() -> None:
    engine, _, _ = make_engine(global_limit=10)
    thresholds = engine.thresholds()
    assert thresholds[Role.CHILD] == T0 + timedelta(days=2)
    assert thresholds[Role.PARENT] == T0 + timedelta(days=2 + 366)
    assert thresholds[Role.OBSERVER] == T0 + timedelta(days=2 + 366 + 731)
    assert engine.global_limit == 10


def test_scenario_b_parent_gap_too_short() -> None:
    with pytest.raises(ConfigurationError):
        EligibilitySchedule.build(
            created_at=T0,
            child_threshold=T0 + timedelta(days=2),
            parent_threshold=T0 + timedelta(days=2 + 300),
            observer_threshold=T0 + timedelta(days=2 + 366 + 731),
        )


def test_scenarios_c_and_d_emergency_then_throttle() -> None:
    engine, ledger, clock = make_engine(balance=100, global_limit=10, now=CHILD_AT)
    engine.set_observer_allowance(OBSERVER1, 5)

    receipt = engine.make_emergency_withdrawal(CHILD, 3)
    assert receipt.transferred == 3
    assert engine.throttle.last_withdrawal(Role.CHILD) == clock.now

    with pytest.raises(ThrottleActive):
        engine.make_emergency_withdrawal(CHILD, 1)
    assert engine.balance() == 97
    assert engine.throttle.last_withdrawal(Role.CHILD) == receipt.executed_at


def test_scenario_e_withdraw_before_threshold() -> None:
    engine, _, _ = make_engine(balance=100, now=CHILD_AT - timedelta(hours=1))
    with pytest.raises(NotEligibleYet):
        engine.withdraw(CHILD, 5)
    assert engine.balance() == 100


def test_scenario_f_withdraw_clamped_to_balance() -> None:
    engine, ledger, _ = make_engine(balance=7, now=CHILD_AT + timedelta(days=1))
    assert engine.withdraw(CHILD, 100).transferred == 7
    assert engine.balance() == 0
    assert ledger.transfers == [(CHILD, 7)]
