"""Payout policy gate and pre-payment safety inspection."""

from __future__ import annotations

import os
import re
from typing import Any, Iterable, Mapping, Optional, Sequence

from pydantic import BaseModel, Field

from app.models.agent import ExecutionMode, PolicyDecision, RecipientSnapshot, SafetyAlert, SafetyLevel
from app.services.agent_routing_service import bool_env
from app.services.reputation_service import is_system_contributor

APPROVAL_INTENTS = frozenset({"create", "pay"})
SAFETY_OVERRIDE_PHRASES = ("override safety", "force pay")

_REPO_PREFIX = re.compile(r"^(https?://)?(www\.)?github\.com/", re.IGNORECASE)


def _normalize_repo(repo: str) -> str:
    return _REPO_PREFIX.sub("", str(repo or "").strip()).rstrip("/").lower()


def _csv(raw: Optional[str]) -> list[str]:
    return [part.strip() for part in str(raw or "").split(",") if part.strip()]


class PolicySettings(BaseModel):
    allowed_tokens: list[str] = Field(default_factory=lambda: ["NEAR", "USDC"])
    max_payout_amount: float = 250.0
    require_approval: bool = False
    canary_only_pay: bool = False
    canary_repos: list[str] = Field(default_factory=list)
    production: bool = False

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> "PolicySettings":
        source = os.environ if env is None else env
        defaults = cls()
        tokens = [t.upper() for t in _csv(source.get("AGENT_ALLOWED_TOKENS"))] or defaults.allowed_tokens
        try:
            max_payout = float(source.get("AGENT_MAX_PAYOUT_AMOUNT") or defaults.max_payout_amount)
        except ValueError:
            max_payout = defaults.max_payout_amount
        return cls(
            allowed_tokens=tokens,
            max_payout_amount=max_payout,
            require_approval=bool_env(source.get("AGENT_REQUIRE_APPROVAL"), False),
            canary_only_pay=bool_env(source.get("AGENT_CANARY_ONLY_PAY"), False),
            canary_repos=[_normalize_repo(r) for r in _csv(source.get("TEST_CANARY_REPOS"))],
            production=(source.get("AGENT_MODE") or "").strip().lower() == "production",
        )


def requires_approval(intent_name: str, settings: PolicySettings | None = None) -> bool:
    cfg = settings or PolicySettings()
    return cfg.require_approval and intent_name in APPROVAL_INTENTS


def evaluate_policy(
    intent_name: str,
    params: Mapping[str, Any],
    mode: ExecutionMode = ExecutionMode.EXECUTE,
    settings: PolicySettings | None = None,
) -> PolicyDecision:
    cfg = settings or PolicySettings()
    reasons: list[str] = []
    warnings: list[str] = []

    if mode == ExecutionMode.ADVISOR and intent_name in APPROVAL_INTENTS:
        reasons.append("Advisor mode does not execute on-chain/payment actions.")

    if intent_name == "pay":
        token = str(params.get("token") or "").upper()
        try:
            amount = float(params.get("amount") or 0)
        except (TypeError, ValueError):
            amount = 0.0
        if token not in cfg.allowed_tokens:
            reasons.append(f"Token {token} is not allowed by policy.")
        if amount <= 0 or amount != amount:
            reasons.append("Pay amount must be positive.")
        elif amount > cfg.max_payout_amount:
            reasons.append(f"Pay amount {amount:g} exceeds policy max {cfg.max_payout_amount:g}.")
        if cfg.canary_only_pay and cfg.production:
            repo = _normalize_repo(str(params.get("repo") or ""))
            if not cfg.canary_repos or repo not in cfg.canary_repos:
                reasons.append("Pay intent is restricted to canary repositories in this environment.")

    if intent_name == "create" and cfg.production:
        warnings.append("Create intent will write split state on mainnet.")

    return PolicyDecision(allowed=not reasons, reasons=reasons, warnings=warnings)


def inspect_distribution_risk(recipients: Sequence[RecipientSnapshot]) -> list[SafetyAlert]:
    if not recipients:
        return [
            SafetyAlert(
                level=SafetyLevel.HIGH,
                code="NO_RECIPIENTS",
                message="No recipients were resolved for this distribution.",
            )
        ]

    alerts: list[SafetyAlert] = []
    bot_share = sum(r.percentage for r in recipients if is_system_contributor(r.github_username))
    if bot_share >= 50:
        alerts.append(
            SafetyAlert(
                level=SafetyLevel.HIGH,
                code="BOT_HEAVY",
                message=f"Bot/system contributors account for {bot_share:.1f}% of allocation.",
            )
        )

    max_share = max(r.percentage for r in recipients)
    if len(recipients) >= 3 and max_share >= 95:
        alerts.append(
            SafetyAlert(
                level=SafetyLevel.MEDIUM,
                code="OUTLIER_SHARE",
                message=f"One recipient has {max_share:.1f}% share; review before paying.",
            )
        )

    missing = sum(1 for r in recipients if not r.wallet)
    if missing:
        alerts.append(
            SafetyAlert(
                level=SafetyLevel.LOW,
                code="MISSING_WALLETS",
                message=f"{missing} recipients are missing verified wallets and will not be paid now.",
            )
        )
    return alerts


def should_block_for_safety(alerts: Iterable[SafetyAlert], override_text: Optional[str] = None) -> bool:
    if not any(alert.level == SafetyLevel.HIGH for alert in alerts):
        return False
    lowered = str(override_text or "").lower()
    return not any(phrase in lowered for phrase in SAFETY_OVERRIDE_PHRASES)
