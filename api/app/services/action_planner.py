"""Plan-before-execute: high-risk commands become approvable plans with a TTL."""

from __future__ import annotations

import hashlib
import json
import os
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping, Optional, Sequence

from app.models.agent import ActionPlan

DEFAULT_PLAN_TTL_SECONDS = 600


def plan_ttl_seconds(env: Mapping[str, str] | None = None) -> int:
    source = os.environ if env is None else env
    raw = source.get("AGENT_PLAN_TTL_SECONDS")
    try:
        value = int(str(raw).strip()) if raw is not None else DEFAULT_PLAN_TTL_SECONDS
    except ValueError:
        return DEFAULT_PLAN_TTL_SECONDS
    return value if value > 0 else DEFAULT_PLAN_TTL_SECONDS


def create_action_plan(
    intent: str,
    params: Mapping[str, Any],
    dependencies: Sequence[str],
    *,
    confidence: float,
    risks: Sequence[str] = (),
    outputs: Sequence[str] = (),
    ttl_seconds: Optional[int] = None,
    now: Optional[datetime] = None,
) -> ActionPlan:
    created_at = now or datetime.now(timezone.utc)
    seed = json.dumps(
        {"intent": intent, "params": dict(params), "now": created_at.isoformat()},
        sort_keys=True,
        default=str,
    )
    digest = hashlib.sha256(seed.encode("utf-8")).hexdigest()[:10]
    ttl = ttl_seconds if ttl_seconds is not None else plan_ttl_seconds()
    return ActionPlan(
        id=f"plan-{digest}",
        intent=intent,
        params=dict(params),
        dependencies=list(dependencies),
        risks=list(risks),
        outputs=list(outputs),
        created_at=created_at,
        expires_at=created_at + timedelta(seconds=ttl),
        confidence=max(0.0, min(1.0, confidence)),
    )


def is_expired(plan: ActionPlan, now: Optional[datetime] = None) -> bool:
    return (now or datetime.now(timezone.utc)) > plan.expires_at


def format_plan_for_user(plan: ActionPlan) -> str:
    payload = {
        "id": plan.id,
        "intent": plan.intent,
        "params": plan.params,
        "dependencies": plan.dependencies,
        "risks": plan.risks,
        "outputs": plan.outputs,
        "confidence": round(plan.confidence, 2),
        "expires_at": plan.expires_at.isoformat(),
    }
    return (
        f"🧭 Execution plan prepared ({plan.intent}).\n\n"
        "```json\n"
        f"{json.dumps(payload, indent=2, default=str)}\n"
        "```\n\n"
        f'Reply with "approve {plan.id}" to execute, or "cancel" to discard.'
    )
