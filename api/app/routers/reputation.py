from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request

from app.models.contributor import EligibilityRequest, PayoutEligibilityDecision, ReputationProfile
from app.models.error import ErrorDetail
from app.services.agent_framework import ToolRegistry

router = APIRouter()


def get_tools(request: Request) -> ToolRegistry:
    return request.app.state.tools


@router.get(
    "/reputation/{subject}",
    response_model=ReputationProfile,
    responses={422: {"model": ErrorDetail}, 503: {"model": ErrorDetail}},
)
def get_reputation(subject: str, tools: ToolRegistry = Depends(get_tools)) -> ReputationProfile:
    """Reputation profile for a GitHub login or agent handle."""
    cleaned = subject.strip().lstrip("@")
    if not cleaned:
        raise HTTPException(status_code=422, detail="Subject is required")
    return tools.reputation.get_profile(cleaned)


@router.post(
    "/reputation/eligibility",
    response_model=PayoutEligibilityDecision,
    responses={503: {"model": ErrorDetail}},
)
def payout_eligibility(
    body: EligibilityRequest, tools: ToolRegistry = Depends(get_tools)
) -> PayoutEligibilityDecision:
    """Whether a contributor can be paid now (linked wallet and reputation threshold)."""
    return tools.reputation.evaluate_payout_eligibility(body.github_username.strip().lstrip("@"), body.wallet_address)
