from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from app.models.contributor import AllocationEntry, QualityDecision


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RepoContributor(BaseModel):
    username: str
    commits: int = Field(..., ge=0)
    percentage: float


class RepoAnalysis(BaseModel):
    """Contributor history for one repository as returned by the GitHub tool."""

    repo_url: str
    contributors: list[RepoContributor] = Field(default_factory=list)
    quality_decisions: list[QualityDecision] = Field(default_factory=list)


class Split(BaseModel):
    id: str
    repo_url: str
    owner: str
    contributors: list[AllocationEntry] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    model_config = ConfigDict(from_attributes=True)


class PendingClaim(BaseModel):
    id: str
    github_username: str
    amount: Decimal
    token: str
    split_id: Optional[str] = None
    created_at: datetime = Field(default_factory=_utcnow)


class PaymentRecipient(BaseModel):
    github_username: str
    wallet: str
    percentage: float


class DistributionReceipt(BaseModel):
    split_id: str
    amount: Decimal
    token: str
    tx_hash: str
    recipients: list[PaymentRecipient] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_utcnow)
