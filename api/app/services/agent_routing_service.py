"""Deterministic execution-plane routing for agent commands."""

from __future__ import annotations

import os
import re
from typing import Mapping, Optional

from pydantic import BaseModel

from app.models.agent import AgentPlane, AgentPlaneUrls, AgentRisk, AgentRoutingPlan

HIGH_RISK_INTENTS = frozenset({"create", "pay", "approve"})
CACHEABLE_INTENTS = frozenset({"analyze", "pending", "reputation"})

_MENTION_PREFIX = re.compile(r"^@?gitsplits(?:\s+|$)", re.IGNORECASE)
_LOCAL_HOST = re.compile(r"^(localhost|127\.0\.0\.1|0\.0\.0\.0)(:\d+)?$", re.IGNORECASE)
_HAS_SCHEME = re.compile(r"^https?://", re.IGNORECASE)


def bool_env(raw: Optional[str], default: bool) -> bool:
    """Only the literal strings "true"/"false" override the default."""
    if raw == "true":
        return True
    if raw == "false":
        return False
    return default


def _str_env(env: Mapping[str, str], name: str) -> Optional[str]:
    value = env.get(name)
    if value is None or not str(value).strip():
        return None
    return str(value)


class AgentRoutingConfig(BaseModel):
    require_attestation_for_high_risk: bool = True
    allow_fallback_for_high_risk: bool = False
    base_url: Optional[str] = None
    hetzner_base_url: Optional[str] = None
    eigen_base_url: Optional[str] = None

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> "AgentRoutingConfig":
        source = os.environ if env is None else env
        return cls(
            require_attestation_for_high_risk=bool_env(source.get("AGENT_REQUIRE_EIGEN_FOR_CREATE_PAY"), True),
            allow_fallback_for_high_risk=bool_env(source.get("AGENT_ALLOW_HETZNER_EXEC_FALLBACK"), False),
            base_url=_str_env(source, "AGENT_BASE_URL"),
            hetzner_base_url=_str_env(source, "AGENT_HETZNER_BASE_URL"),
            eigen_base_url=_str_env(source, "AGENT_EIGEN_BASE_URL"),
        )


def normalize_command_text(text: str) -> str:
    return _MENTION_PREFIX.sub("", str(text or "").strip(), count=1).strip()


def infer_command_intent(command_text: str) -> str:
    parts = command_text.split()
    return parts[0].lower() if parts else ""


def is_high_risk_intent(intent: str) -> bool:
    return intent in HIGH_RISK_INTENTS


def is_cacheable_intent(intent: str) -> bool:
    return intent in CACHEABLE_INTENTS


def build_agent_routing_plan(text: str, config: AgentRoutingConfig | None = None) -> AgentRoutingPlan:
    cfg = config or AgentRoutingConfig()
    normalized = normalize_command_text(text)
    intent = infer_command_intent(normalized)
    risk = AgentRisk.HIGH if is_high_risk_intent(intent) else AgentRisk.LOW
    preferred = AgentPlane.EIGEN if risk == AgentRisk.HIGH else AgentPlane.HETZNER
    fallback = AgentPlane.HETZNER if preferred == AgentPlane.EIGEN else AgentPlane.EIGEN

    return AgentRoutingPlan(
        normalized_text=normalized,
        intent=intent,
        risk=risk,
        require_attestation=risk == AgentRisk.HIGH and cfg.require_attestation_for_high_risk,
        cacheable=is_cacheable_intent(intent),
        preferred=preferred,
        allow_fallback=risk == AgentRisk.LOW or cfg.allow_fallback_for_high_risk,
        fallbacks=[fallback],
    )


def normalize_plane_url(value: Optional[str]) -> Optional[str]:
    if not value or not value.strip():
        return None
    trimmed = value.strip().rstrip("/")
    if not trimmed:
        return None
    if _HAS_SCHEME.match(trimmed):
        return trimmed
    if _LOCAL_HOST.match(trimmed):
        return f"http://{trimmed}"
    return f"https://{trimmed}"


def get_agent_plane_base_urls(config: AgentRoutingConfig | None = None) -> AgentPlaneUrls:
    cfg = config or AgentRoutingConfig()
    base = normalize_plane_url(cfg.base_url)
    return AgentPlaneUrls(
        hetzner=normalize_plane_url(cfg.hetzner_base_url) or base,
        eigen=normalize_plane_url(cfg.eigen_base_url) or base,
    )


def format_routing_summary(plan: AgentRoutingPlan) -> str:
    return " ".join(
        [
            f"intent={plan.intent or 'unknown'}",
            f"risk={plan.risk.value}",
            f"preferred={plan.preferred.value}",
            f"attestation={'required' if plan.require_attestation else 'optional'}",
            f"fallback={'enabled' if plan.allow_fallback else 'disabled'}",
        ]
    )
