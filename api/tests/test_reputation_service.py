"""Tests for contributor reputation and payout eligibility.

External lookups are mocked with respx.
"""

import httpx
import respx
from httpx import Response

from app.models.contributor import ContributorKind, ReputationTier
from app.services.reputation_service import (
    ReputationService,
    ReputationSettings,
    evaluate_payout_eligibility,
    get_profile,
    infer_kind,
    is_system_contributor,
    tier_from_score,
)


def test_infer_kind_by_username_shape():
    assert infer_kind("octocat") == ContributorKind.HUMAN
    assert infer_kind("renovate[bot]") == ContributorKind.AGENT
    assert infer_kind("review-agent") == ContributorKind.AGENT
    assert infer_kind("deploy-bot") == ContributorKind.BOT
    assert infer_kind("  ") == ContributorKind.UNKNOWN


def test_tier_boundaries():
    assert tier_from_score(80) == ReputationTier.GOLD
    assert tier_from_score(79.9) == ReputationTier.SILVER
    assert tier_from_score(55) == ReputationTier.SILVER
    assert tier_from_score(54.9) == ReputationTier.BRONZE


def test_local_profile_uses_baseline_for_kind():
    profile = get_profile("octocat")

    assert profile.score == 70
    assert profile.tier == ReputationTier.SILVER
    assert profile.sources == ["local-heuristics"]
    assert profile.erc8004 is None


def test_external_score_is_clamped():
    assert get_profile("octocat", external_score=140).score == 100
    assert get_profile("octocat", external_score=-5).score == 0


def test_system_contributor_detection():
    assert is_system_contributor("dependabot[bot]")
    assert is_system_contributor("release-bot")
    assert is_system_contributor("Deploy_Bot")
    assert not is_system_contributor("robot")


def test_eligibility_requires_wallet():
    decision = evaluate_payout_eligibility("octocat", None)

    assert decision.eligible is False
    assert decision.reasons == ["Missing verified payout wallet."]


def test_eligibility_requires_min_score():
    decision = evaluate_payout_eligibility("octocat", "octocat.near", min_score=75)

    assert decision.eligible is False
    assert decision.reasons == ["Reputation score 70 below threshold 75."]


def test_eligible_with_wallet_and_score():
    decision = evaluate_payout_eligibility("octocat", "octocat.near")

    assert decision.eligible is True
    assert decision.reasons == []
    assert decision.profile.username == "octocat"


def test_settings_from_env_strips_trailing_slash():
    settings = ReputationSettings.from_env(
        {
            "REPUTATION_API_BASE": "https://rep.example.com/",
            "REPUTATION_MIN_PAYOUT_SCORE": "65",
        }
    )

    assert settings.api_base == "https://rep.example.com"
    assert settings.erc8004_registry_api is None
    assert settings.min_payout_score == 65


def test_settings_from_env_ignores_bad_threshold():
    settings = ReputationSettings.from_env({"REPUTATION_MIN_PAYOUT_SCORE": "high"})

    assert settings.min_payout_score == 50


@respx.mock
def test_service_uses_external_score():
    respx.get("https://rep.example.com/profile", params={"subject": "octocat"}).mock(
        return_value=Response(200, json={"score": 91})
    )
    service = ReputationService(ReputationSettings(api_base="https://rep.example.com"))

    profile = service.get_profile("octocat")

    assert profile.score == 91
    assert profile.tier == ReputationTier.GOLD
    assert profile.sources == ["local-heuristics", "external-reputation-api"]


@respx.mock
def test_service_falls_back_to_local_on_error():
    respx.get("https://rep.example.com/profile").mock(side_effect=httpx.ConnectError("down"))
    service = ReputationService(ReputationSettings(api_base="https://rep.example.com"))

    profile = service.get_profile("octocat")

    assert profile.score == 70
    assert profile.sources == ["local-heuristics"]


@respx.mock
def test_service_adds_erc8004_bonus_for_registered_agents():
    route = respx.get("https://registry.example.com/lookup").mock(
        return_value=Response(200, json={"registered": True, "handle": "agent.eth", "proofUrl": "https://proof"})
    )
    service = ReputationService(ReputationSettings(erc8004_registry_api="https://registry.example.com"))

    profile = service.get_profile("review-agent")

    assert route.called
    assert profile.kind == ContributorKind.AGENT
    assert profile.score == 75
    assert profile.tier == ReputationTier.SILVER
    assert profile.sources[-1] == "erc8004-registry"
    assert profile.erc8004 is not None
    assert profile.erc8004.handle == "agent.eth"


@respx.mock(assert_all_called=False)
def test_service_skips_registry_for_humans():
    route = respx.get("https://registry.example.com/lookup").mock(return_value=Response(200, json={}))
    service = ReputationService(ReputationSettings(erc8004_registry_api="https://registry.example.com"))

    profile = service.get_profile("octocat")

    assert not route.called
    assert profile.erc8004 is None


def test_service_eligibility_uses_configured_threshold():
    service = ReputationService(ReputationSettings(min_payout_score=80))

    decision = service.evaluate_payout_eligibility("octocat", "octocat.near")

    assert decision.eligible is False
    assert "below threshold 80" in decision.reasons[0]
