"""Contributor reputation: local username heuristics, optional external enrichment, payout eligibility."""

from __future__ import annotations

import logging
import os
from typing import Any, Mapping, Optional
from urllib.parse import quote

import httpx
from pydantic import BaseModel

from app.models.contributor import (
    ContributorKind,
    Erc8004Status,
    PayoutEligibilityDecision,
    ReputationProfile,
    ReputationTier,
)

logger = logging.getLogger(__name__)

BASELINE_SCORES: dict[ContributorKind, float] = {
    ContributorKind.HUMAN: 70.0,
    ContributorKind.AGENT: 60.0,
    ContributorKind.BOT: 50.0,
    ContributorKind.UNKNOWN: 50.0,
}
DEFAULT_MIN_PAYOUT_SCORE = 50.0
ERC8004_REGISTERED_BONUS = 15.0


def infer_kind(username: str | None) -> ContributorKind:
    normalized = str(username or "").strip().lower()
    if not normalized:
        return ContributorKind.UNKNOWN
    if "[bot]" in normalized or "agent" in normalized:
        return ContributorKind.AGENT
    if is_system_contributor(normalized):
        return ContributorKind.BOT
    return ContributorKind.HUMAN


def is_system_contributor(username: str | None) -> bool:
    """Bot accounts that never receive payouts (GitHub Apps, CI bots)."""
    normalized = str(username or "").strip().lower()
    return "[bot]" in normalized or normalized.endswith(("-bot", "_bot"))


def tier_from_score(score: float) -> ReputationTier:
    if score >= 80:
        return ReputationTier.GOLD
    if score >= 55:
        return ReputationTier.SILVER
    return ReputationTier.BRONZE


def get_profile(username: str, external_score: Optional[float] = None) -> ReputationProfile:
    kind = infer_kind(username)
    score = BASELINE_SCORES[kind]
    sources = ["local-heuristics"]
    if external_score is not None:
        score = max(0.0, min(100.0, float(external_score)))
        sources.append("external-reputation-api")
    return ReputationProfile(
        username=username,
        kind=kind,
        score=score,
        tier=tier_from_score(score),
        sources=sources,
    )


def evaluate_payout_eligibility(
    github_username: str,
    wallet_address: Optional[str],
    *,
    min_score: float = DEFAULT_MIN_PAYOUT_SCORE,
    profile: Optional[ReputationProfile] = None,
) -> PayoutEligibilityDecision:
    """Eligible only with a linked wallet AND a score at or above ``min_score``."""
    resolved = profile or get_profile(github_username)
    has_wallet = bool(str(wallet_address or "").strip())
    reasons: list[str] = []
    if not has_wallet:
        reasons.append("Missing verified payout wallet.")
    if resolved.score < min_score:
        reasons.append(f"Reputation score {resolved.score:g} below threshold {min_score:g}.")
    return PayoutEligibilityDecision(
        eligible=has_wallet and resolved.score >= min_score,
        reasons=reasons,
        profile=resolved,
    )


def _float_env(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None:
        return default
    try:
        return float(str(raw).strip())
    except ValueError:
        return default


class ReputationSettings(BaseModel):
    api_base: Optional[str] = None
    erc8004_registry_api: Optional[str] = None
    min_payout_score: float = DEFAULT_MIN_PAYOUT_SCORE
    timeout: float = 10.0

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> "ReputationSettings":
        source = os.environ if env is None else env
        return cls(
            api_base=(source.get("REPUTATION_API_BASE") or "").strip().rstrip("/") or None,
            erc8004_registry_api=(source.get("ERC8004_REGISTRY_API") or "").strip().rstrip("/") or None,
            min_payout_score=_float_env(source, "REPUTATION_MIN_PAYOUT_SCORE", DEFAULT_MIN_PAYOUT_SCORE),
        )


class ReputationService:
    """Reputation tool registered with the agent.

    Profiles start from local heuristics. When configured, an external
    reputation API replaces the score and, for agent accounts, an ERC-8004
    registry lookup adds a bonus for registered agents. Lookups that fail are
    logged and skipped.
    """

    name = "reputation"

    def __init__(self, settings: ReputationSettings | None = None) -> None:
        self.settings = settings or ReputationSettings()

    def _get_json(self, url: str) -> Optional[dict[str, Any]]:
        try:
            with httpx.Client(timeout=self.settings.timeout) as client:
                r = client.get(url)
        except httpx.HTTPError as exc:
            logger.warning("Reputation lookup failed for %s: %s", url, exc)
            return None
        if r.status_code != 200:
            logger.warning("Reputation lookup %s returned %s", url, r.status_code)
            return None
        try:
            data = r.json()
        except ValueError:
            logger.warning("Reputation lookup %s returned non-JSON body", url)
            return None
        return data if isinstance(data, dict) else None

    def get_profile(self, subject: str) -> ReputationProfile:
        external_score: Optional[float] = None
        if self.settings.api_base:
            data = self._get_json(f"{self.settings.api_base}/profile?subject={quote(subject)}")
            if data and isinstance(data.get("score"), (int, float)):
                external_score = float(data["score"])

        profile = get_profile(subject, external_score=external_score)
        if not (self.settings.erc8004_registry_api and profile.kind == ContributorKind.AGENT):
            return profile

        data = self._get_json(f"{self.settings.erc8004_registry_api}/lookup?subject={quote(subject)}")
        if data is None:
            return profile
        status = Erc8004Status(
            registered=bool(data.get("registered")),
            handle=str(data["handle"]) if data.get("handle") else None,
            proof_url=str(data["proofUrl"]) if data.get("proofUrl") else None,
        )
        score = profile.score
        if status.registered:
            score = min(100.0, score + ERC8004_REGISTERED_BONUS)
        return profile.model_copy(
            update={
                "score": score,
                "tier": tier_from_score(score),
                "sources": [*profile.sources, "erc8004-registry"],
                "erc8004": status,
            }
        )

    def evaluate_payout_eligibility(
        self, github_username: str, wallet_address: Optional[str]
    ) -> PayoutEligibilityDecision:
        return evaluate_payout_eligibility(
            github_username,
            wallet_address,
            min_score=self.settings.min_payout_score,
            profile=self.get_profile(github_username),
        )
