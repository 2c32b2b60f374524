"""Pydantic models."""

from app.models.agent import (
    ActionPlan,
    AgentPlane,
    AgentPlaneUrls,
    AgentRisk,
    AgentRoutingPlan,
    AssistedIntent,
    PolicyDecision,
    SafetyAlert,
)
from app.models.contributor import (
    AllocationEntry,
    ContributorKind,
    ContributorRaw,
    CreditAction,
    PayoutEligibilityDecision,
    QualityDecision,
    ReputationProfile,
)
from app.models.error import ErrorDetail
from app.models.split import RepoAnalysis, RepoContributor, Split

__all__ = [
    "ActionPlan",
    "AgentPlane",
    "AgentPlaneUrls",
    "AgentRisk",
    "AgentRoutingPlan",
    "AllocationEntry",
    "AssistedIntent",
    "ContributorKind",
    "ContributorRaw",
    "CreditAction",
    "ErrorDetail",
    "PayoutEligibilityDecision",
    "PolicyDecision",
    "QualityDecision",
    "RepoAnalysis",
    "RepoContributor",
    "ReputationProfile",
    "SafetyAlert",
    "Split",
]
