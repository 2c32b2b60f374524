"""Contributor allocation: raw commit shares merged with per-contributor credit decisions."""

from __future__ import annotations

import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Iterable, Sequence

from app.models.contributor import (
    AllocationEntry,
    ContributorRaw,
    CreditAction,
    QualityDecision,
)

logger = logging.getLogger(__name__)

_CENT = Decimal("0.01")
_HUNDRED = Decimal("100")


def build_quality_score_decision_map(
    decisions: Iterable[QualityDecision],
) -> dict[str, QualityDecision]:
    """Key decisions by lowercased username. A later decision for the same key replaces the earlier one."""
    out: dict[str, QualityDecision] = {}
    for decision in decisions:
        out[decision.username.strip().lower()] = decision
    return out


def _quantize(value: Decimal) -> Decimal:
    return value.quantize(_CENT, rounding=ROUND_HALF_UP)


def _normalized(rows: list[tuple[str, Decimal]]) -> list[AllocationEntry]:
    total = sum((weight for _, weight in rows), Decimal("0"))
    shares = [(username, _quantize(weight / total * _HUNDRED)) for username, weight in rows]

    residual = _HUNDRED - sum((share for _, share in shares), Decimal("0"))
    if residual and shares:
        largest = max(range(len(shares)), key=lambda i: shares[i][1])
        username, share = shares[largest]
        shares[largest] = (username, share + residual)

    return [AllocationEntry(github_username=username, percentage=float(share)) for username, share in shares]


def _pass_through(raw: Sequence[ContributorRaw]) -> list[AllocationEntry]:
    return [AllocationEntry(github_username=c.username, percentage=c.percentage) for c in raw]


def build_default_contributors_with_quality(
    raw_contributors: Sequence[ContributorRaw],
    decisions: Iterable[QualityDecision],
) -> list[AllocationEntry]:
    """Final split allocation for a repository.

    ``no_credit`` contributors are dropped and the remaining shares renormalized
    to 100. When every retained contributor carries a decision, the quality
    scores themselves set the shares; otherwise raw percentages are rescaled.
    If the exclusion would remove everyone, nobody is excluded and the raw
    shares are kept.
    """
    if not raw_contributors:
        return []

    by_username = build_quality_score_decision_map(decisions)
    retained: list[tuple[ContributorRaw, QualityDecision | None]] = []
    for contributor in raw_contributors:
        decision = by_username.get(contributor.username.strip().lower())
        if decision is not None and decision.credit_action == CreditAction.NO_CREDIT:
            continue
        retained.append((contributor, decision))

    if not retained:
        logger.info(
            "All %d contributors flagged no_credit; keeping raw commit shares",
            len(raw_contributors),
        )
        return _pass_through(raw_contributors)

    excluded = len(raw_contributors) - len(retained)
    decided = [decision for _, decision in retained if decision is not None]
    if not excluded and not decided:
        return _pass_through(raw_contributors)

    if len(decided) == len(retained):
        quality_total = sum((Decimal(str(d.quality)) for d in decided), Decimal("0"))
        if quality_total > 0:
            return _normalized(
                [(c.username, Decimal(str(d.quality))) for c, d in retained if d is not None]
            )

    raw_total = sum((Decimal(str(c.percentage)) for c, _ in retained), Decimal("0"))
    if raw_total <= 0:
        return _pass_through([c for c, _ in retained])
    return _normalized([(c.username, Decimal(str(c.percentage))) for c, _ in retained])


def contributors_from_commit_counts(rows: Iterable[dict[str, Any]]) -> list[ContributorRaw]:
    """Turn GitHub ``/contributors`` rows into percentage shares summing to 100."""
    counts: list[tuple[str, Decimal]] = []
    for row in rows:
        login = str(row.get("login") or row.get("username") or "").strip()
        try:
            contributions = int(row.get("contributions") or row.get("commits") or 0)
        except (TypeError, ValueError):
            contributions = 0
        if login and contributions > 0:
            counts.append((login, Decimal(contributions)))
    if not counts:
        return []
    return [
        ContributorRaw(username=entry.github_username, percentage=entry.percentage)
        for entry in _normalized(counts)
    ]


def parse_custom_allocation(
    allocation: str,
    contributors: Sequence[ContributorRaw],
) -> list[AllocationEntry]:
    """Map ``"50/30/20"`` onto the first contributors in ranking order."""
    parts = [part.strip() for part in str(allocation or "").split("/") if part.strip()]
    if not parts:
        raise ValueError("Allocation must look like 50/30/20")
    try:
        percentages = [Decimal(part) for part in parts]
    except ArithmeticError as exc:
        raise ValueError(f"Allocation contains a non-numeric share: {allocation!r}") from exc
    if any(p <= 0 for p in percentages):
        raise ValueError("Allocation shares must be positive")
    if sum(percentages, Decimal("0")) != _HUNDRED:
        raise ValueError(f"Allocation {allocation} must add up to 100")
    if len(percentages) > len(contributors):
        raise ValueError(
            f"Allocation has {len(percentages)} shares but only {len(contributors)} contributors were found"
        )
    return [
        AllocationEntry(github_username=contributor.username, percentage=float(share))
        for contributor, share in zip(contributors, percentages)
    ]
