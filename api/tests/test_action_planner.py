"""Tests for approvable action plans."""

import json
from datetime import datetime, timedelta, timezone

from app.services.action_planner import (
    DEFAULT_PLAN_TTL_SECONDS,
    create_action_plan,
    format_plan_for_user,
    is_expired,
    plan_ttl_seconds,
)

_NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


def test_plan_id_is_stable_for_same_inputs():
    first = create_action_plan("pay", {"amount": 10, "token": "NEAR"}, ["payments"], confidence=0.9, now=_NOW)
    second = create_action_plan("pay", {"token": "NEAR", "amount": 10}, ["payments"], confidence=0.9, now=_NOW)

    assert first.id == second.id
    assert first.id.startswith("plan-")
    assert len(first.id) == len("plan-") + 10


def test_plan_id_changes_with_params():
    first = create_action_plan("pay", {"amount": 10}, [], confidence=0.9, now=_NOW)
    second = create_action_plan("pay", {"amount": 11}, [], confidence=0.9, now=_NOW)

    assert first.id != second.id


def test_plan_expiry_uses_ttl():
    plan = create_action_plan("create", {"repo": "acme/widgets"}, [], confidence=0.8, ttl_seconds=60, now=_NOW)

    assert plan.expires_at == _NOW + timedelta(seconds=60)
    assert not is_expired(plan, _NOW + timedelta(seconds=60))
    assert is_expired(plan, _NOW + timedelta(seconds=61))


def test_confidence_is_clamped():
    assert create_action_plan("pay", {}, [], confidence=1.7, now=_NOW).confidence == 1.0
    assert create_action_plan("pay", {}, [], confidence=-1, now=_NOW).confidence == 0.0


def test_ttl_from_env():
    assert plan_ttl_seconds({}) == DEFAULT_PLAN_TTL_SECONDS
    assert plan_ttl_seconds({"AGENT_PLAN_TTL_SECONDS": " 120 "}) == 120
    assert plan_ttl_seconds({"AGENT_PLAN_TTL_SECONDS": "0"}) == DEFAULT_PLAN_TTL_SECONDS
    assert plan_ttl_seconds({"AGENT_PLAN_TTL_SECONDS": "soon"}) == DEFAULT_PLAN_TTL_SECONDS


def test_format_plan_embeds_json_and_approval_hint():
    plan = create_action_plan(
        "pay",
        {"amount": 5, "token": "NEAR", "repo": "acme/widgets"},
        ["split", "verified wallets"],
        confidence=0.876,
        risks=["irreversible transfer"],
        now=_NOW,
    )

    text = format_plan_for_user(plan)

    assert text.startswith("🧭 Execution plan prepared (pay).")
    assert text.endswith(f'Reply with "approve {plan.id}" to execute, or "cancel" to discard.')
    body = text.split("```json\n", 1)[1].split("\n```", 1)[0]
    payload = json.loads(body)
    assert payload["id"] == plan.id
    assert payload["confidence"] == 0.88
    assert payload["risks"] == ["irreversible transfer"]
