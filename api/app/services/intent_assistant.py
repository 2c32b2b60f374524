"""Keyword heuristics that guess an intent when no command pattern matched.

Used by the hands-off experience: instead of answering "I didn't understand
that", the agent proposes the closest command with a confidence score and the
outcomes it would produce.
"""

from __future__ import annotations

import re
from typing import Optional

from app.models.agent import AssistedIntent

_REPO_REFERENCE = re.compile(
    r"(?:https?://)?(?:www\.)?(?:github\.com/)?([A-Za-z0-9_.-]+/[A-Za-z0-9_.-]+)",
    re.IGNORECASE,
)
_PAY_AMOUNT = re.compile(r"(?:pay|send|distribute)\s+(\d+(?:\.\d+)?)\s*([A-Za-z0-9]+)?", re.IGNORECASE)


def normalize_repo_reference(text: str) -> Optional[str]:
    match = _REPO_REFERENCE.search(str(text or ""))
    if not match:
        return None
    owner, _, repo = match.group(1).partition("/")
    repo = repo.rstrip(".,;:!?")
    if repo.lower().endswith(".git"):
        repo = repo[:-4]
    owner = owner.strip(".")
    if not owner or not repo:
        return None
    return f"github.com/{owner}/{repo}"


def assist_intent(text: str) -> Optional[AssistedIntent]:
    lower = str(text or "").lower()
    repo = normalize_repo_reference(text)

    if ("analy" in lower or "contributor" in lower) and repo:
        return AssistedIntent(
            intent_name="analyze",
            params={"repo": repo},
            confidence=0.72,
            outcomes=[
                "Fetch contributor history",
                "Compute verification coverage",
                "Propose next split action",
            ],
            rationale="Detected repository analysis intent.",
        )

    if ("create" in lower or "split" in lower or "distribution" in lower) and repo:
        return AssistedIntent(
            intent_name="create",
            params={"repo": repo, "allocation": "default"},
            confidence=0.69,
            outcomes=[
                "Create/refresh split",
                "Map contributors to percentages",
                "Report verification gaps",
            ],
            rationale="Detected split creation intent.",
        )

    pay = _PAY_AMOUNT.search(str(text or ""))
    if pay and repo:
        return AssistedIntent(
            intent_name="pay",
            params={
                "amount": float(pay.group(1)),
                "token": (pay.group(2) or "NEAR").upper(),
                "repo": repo,
            },
            confidence=0.7,
            outcomes=[
                "Validate verified recipients",
                "Apply payout policy",
                "Execute payment via configured engine",
            ],
            rationale="Detected payment intent with amount and repository.",
        )

    if ("verify" in lower or "link wallet" in lower) and (repo or "@" in lower):
        return AssistedIntent(
            intent_name="verify",
            params={"repo": repo} if repo else {},
            confidence=0.62,
            outcomes=[
                "Check current verification coverage",
                "Generate verification links",
                "Suggest outreach artifacts",
            ],
            rationale="Detected verification-related request.",
        )

    if "pending" in lower and repo:
        return AssistedIntent(
            intent_name="pending",
            params={"target": repo},
            confidence=0.65,
            outcomes=["Fetch pending claims by contributor", "Summarize blocked payouts"],
            rationale="Detected pending claims request.",
        )

    return None


def format_assisted_suggestion(suggestion: AssistedIntent) -> str:
    outcomes = "\n".join(f"- {outcome}" for outcome in suggestion.outcomes)
    return (
        f"🤖 Hands-off intent interpretation ({suggestion.source}, confidence {suggestion.confidence:.2f}).\n"
        f"Intent: {suggestion.intent_name}\n"
        f"Rationale: {suggestion.rationale}\n\n"
        f"Suggested outcomes:\n{outcomes}"
    )
