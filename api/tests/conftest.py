"""Pytest configuration and fixtures."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.adapters.split_store import InMemorySplitLedger  # noqa: E402
from app.services.agent_framework import ToolRegistry  # noqa: E402
from app.services.reputation_service import ReputationService  # noqa: E402
from tests.factories import FakeGitHub, make_analysis  # noqa: E402

_AGENT_ENV = (
    "AGENT_REQUIRE_EIGEN_FOR_CREATE_PAY",
    "AGENT_ALLOW_HETZNER_EXEC_FALLBACK",
    "AGENT_BASE_URL",
    "AGENT_HETZNER_BASE_URL",
    "AGENT_EIGEN_BASE_URL",
    "AGENT_ALLOWED_TOKENS",
    "AGENT_MAX_PAYOUT_AMOUNT",
    "AGENT_REQUIRE_APPROVAL",
    "AGENT_CANARY_ONLY_PAY",
    "AGENT_MODE",
    "AGENT_DEFAULT_EXEC_MODE",
    "AGENT_PLAN_TTL_SECONDS",
    "AGENT_MIN_PARSE_CONFIDENCE",
    "AGENT_HANDS_OFF_MIN_CONFIDENCE",
    "TEST_CANARY_REPOS",
    "REPUTATION_API_BASE",
    "ERC8004_REGISTRY_API",
    "REPUTATION_MIN_PAYOUT_SCORE",
    "NEAR_ACCOUNT_ID",
    "WEB_APP_BASE_URL",
    "SPLIT_STORE_PATH",
)


@pytest.fixture(autouse=True)
def _clean_agent_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in _AGENT_ENV:
        monkeypatch.delenv(key, raising=False)


@pytest.fixture
def ledger() -> InMemorySplitLedger:
    return InMemorySplitLedger()


@pytest.fixture
def github() -> FakeGitHub:
    return FakeGitHub(
        {
            "github.com/acme/widgets": make_analysis(
                "github.com/acme/widgets",
                [("alice", 60, 60.0), ("bob", 30, 30.0), ("dependabot[bot]", 10, 10.0)],
            )
        }
    )


@pytest.fixture
def tools(github: FakeGitHub, ledger: InMemorySplitLedger) -> ToolRegistry:
    return ToolRegistry(github=github, splits=ledger, reputation=ReputationService(), payments=ledger)
