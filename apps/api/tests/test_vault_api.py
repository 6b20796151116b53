from __future__ import annotations

from datetime import datetime, timedelta, timezone

from fastapi.testclient import TestClient

from trustfund.config import CONFIG
from trustfund.db import ensure_deployment, get_connection
from trustfund.main import app
from trustfund.routes.vault import get_clock

from vault_helpers import FrozenClock

client = TestClient(app)

CHILD = CONFIG.child_address
PARENT = CONFIG.parent1_address
OBSERVER = CONFIG.observer1_address
BEFORE_ELIGIBILITY = datetime(2029, 6, 1, tzinfo=timezone.utc)


def _ts(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def reset_state(now: datetime = BEFORE_ELIGIBILITY) -> FrozenClock:
    with get_connection() as conn:
        for table in ["transfers", "vault_state", "fund_account", "deployment"]:
            conn.execute(f"DELETE FROM {table}")
        conn.commit()
    ensure_deployment()
    clock = FrozenClock(now)
    app.dependency_overrides[get_clock] = lambda: clock
    return clock


def post(path: str, amount: int, caller: str | None = None):
    headers = {"X-Vault-Caller": caller} if caller else {}
    return client.post(f"/api/v1/vault{path}", json={"amount": amount}, headers=headers)


def test_health() -> None:
    assert client.get("/health").json() == {"status": "ok"}


def test_read_only_views() -> None:
    reset_state()
    stakeholders = client.get("/api/v1/vault/stakeholders").json()
    assert stakeholders["child"] == [CHILD.lower()]
    assert len(stakeholders["parents"]) == 2
    assert len(stakeholders["observers"]) == 2

    thresholds = client.get("/api/v1/vault/thresholds").json()
    assert _ts(thresholds["child"]) == CONFIG.child_threshold

    limits = client.get("/api/v1/vault/limits").json()
    assert limits["global_limit"] == CONFIG.global_limit
    assert limits["effective_child_allowance"] == 0
    assert limits["effective_parent_allowance"] == 0


def test_emergency_flow_persists_between_requests() -> None:
    clock = reset_state()
    assert post("/deposits", 100, "0xanyone").json()["balance"] == 100

    resp = post("/allowances/observer", 50, OBSERVER)
    assert resp.status_code == 200
    assert resp.json()["effective_child_allowance"] == 50

    resp = post("/emergency-withdrawals", 30, CHILD)
    assert resp.status_code == 200
    assert resp.json()["transferred"] == 30
    assert resp.json()["balance_after"] == 70

    resp = post("/emergency-withdrawals", 1, CHILD)
    assert resp.status_code == 429
    assert resp.json()["detail"]["code"] == "throttle_active"

    throttle = client.get("/api/v1/vault/throttle").json()
    assert _ts(throttle["child"]["last_withdrawal"]) == clock.now
    assert throttle["parent"]["last_withdrawal"] is None

    clock.advance(days=1, seconds=1)
    assert post("/emergency-withdrawals", 1, CHILD).status_code == 200
    assert client.get("/api/v1/vault/balance").json() == {"balance": 69}


def test_allowance_errors_map_to_status_codes() -> None:
    reset_state()
    resp = post("/allowances/observer", CONFIG.global_limit + 1, OBSERVER)
    assert resp.status_code == 400
    assert resp.json()["detail"]["code"] == "limit_exceeded"

    resp = post("/allowances/parent", 5, PARENT)
    assert resp.status_code == 403
    assert resp.json()["detail"]["code"] == "unauthorized"

    resp = post("/allowances/parent", 5, CHILD)
    assert resp.status_code == 200
    assert resp.json()["effective_parent_allowance"] == 5

    resp = post("/emergency-withdrawals", 5, PARENT)
    assert resp.status_code == 409
    assert resp.json()["detail"]["code"] == "empty_balance"


def test_normal_withdrawal_waits_for_threshold() -> None:
    clock = reset_state()
    post("/deposits", 25, CHILD)

    resp = post("/withdrawals", 5, CHILD)
    assert resp.status_code == 403
    assert resp.json()["detail"]["code"] == "not_eligible_yet"

    clock.now = CONFIG.child_threshold + timedelta(seconds=1)
    resp = post("/withdrawals", 500, CHILD)
    assert resp.status_code == 200
    assert resp.json()["transferred"] == 25
    assert resp.json()["emergency"] is False
    assert client.get("/api/v1/vault/balance").json()["balance"] == 0

    journal = client.get("/api/v1/vault/transfers").json()
    assert [entry["direction"] for entry in journal] == ["out", "in"]
    assert journal[0]["counterparty"] == CHILD.lower()


def test_unknown_or_missing_caller() -> None:
    reset_state()
    post("/deposits", 10)
    resp = post("/withdrawals", 1, "0xnobody")
    assert resp.status_code == 403
    resp = post("/emergency-withdrawals", 1)
    assert resp.status_code == 401


def test_deposit_amounts() -> None:
    reset_state()
    resp = post("/deposits", 0, CHILD)
    assert resp.status_code == 200
    assert resp.json()["balance"] == 0
    assert client.get("/api/v1/vault/transfers").json() == []

    resp = post("/deposits", -1, CHILD)
    assert resp.status_code == 400
    assert resp.json()["detail"]["code"] == "invalid_amount"


def test_read_routes_do_not_write_state() -> None:
    reset_state()
    with get_connection() as conn:
        before = conn.execute("SELECT * FROM vault_state").fetchall()
    for path in ["stakeholders", "thresholds", "limits", "balance", "throttle", "transfers"]:
        assert client.get(f"/api/v1/vault/{path}").status_code == 200
    with get_connection() as conn:
        after = conn.execute("SELECT * FROM vault_state").fetchall()
    assert after == before
