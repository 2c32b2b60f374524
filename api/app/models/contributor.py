from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class CreditAction(str, Enum):
    FULL_CREDIT = "full_credit"
    PARTIAL_CREDIT = "partial_credit"
    NO_CREDIT = "no_credit"


class ContributorKind(str, Enum):
    HUMAN = "human"
    AGENT = "agent"
    BOT = "bot"
    UNKNOWN = "unknown"


class ReputationTier(str, Enum):
    BRONZE = "bronze"
    SILVER = "silver"
    GOLD = "gold"


class ContributorRaw(BaseModel):
    """Commit-count share of one contributor in one repository."""

    username: str
    percentage: float = Field(..., ge=0, le=100)


class QualityDecision(BaseModel):
    username: str
    quality: float = Field(..., ge=0, le=1)
    commit_confidence: float = Field(..., ge=0, le=1)
    credit_action: CreditAction
    reasons: list[str] = Field(default_factory=list)


class AllocationEntry(BaseModel):
    github_username: str
    percentage: float


class Erc8004Status(BaseModel):
    registered: bool = False
    handle: Optional[str] = None
    proof_url: Optional[str] = None


class ReputationProfile(BaseModel):
    username: str
    kind: ContributorKind
    score: float = Field(..., ge=0, le=100)
    tier: ReputationTier
    sources: list[str] = Field(default_factory=list)
    erc8004: Optional[Erc8004Status] = None


class PayoutEligibilityDecision(BaseModel):
    eligible: bool
    reasons: list[str] = Field(default_factory=list)
    profile: ReputationProfile


class EligibilityRequest(BaseModel):
    github_username: str = Field(..., min_length=1, max_length=200)
    wallet_address: Optional[str] = None


class QualityAllocationRequest(BaseModel):
    contributors: list[ContributorRaw]
    decisions: list[QualityDecision] = Field(default_factory=list)
