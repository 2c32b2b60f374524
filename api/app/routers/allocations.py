from __future__ import annotations

from fastapi import APIRouter

from app.models.agent import SafetyRequest, SafetyResponse
from app.models.contributor import AllocationEntry, QualityAllocationRequest
from app.services.allocation_service import build_default_contributors_with_quality
from app.services.payout_policy_service import inspect_distribution_risk, should_block_for_safety

router = APIRouter()


@router.post("/allocations/quality", response_model=list[AllocationEntry])
def quality_allocation(body: QualityAllocationRequest) -> list[AllocationEntry]:
    """Split allocation after applying per-contributor credit decisions."""
    return build_default_contributors_with_quality(body.contributors, body.decisions)


@router.post("/allocations/safety", response_model=SafetyResponse)
def safety_review(body: SafetyRequest) -> SafetyResponse:
    """Pre-payout risk alerts and whether they block the payout."""
    alerts = inspect_distribution_risk(body.recipients)
    return SafetyResponse(alerts=alerts, blocked=should_block_for_safety(alerts, body.override_text))
