"""Commit-history heuristics that turn a contributor's commits into a credit decision."""

from __future__ import annotations

import os
from collections import Counter
from datetime import datetime, timezone
from typing import Any, Iterable, Mapping, Optional

from pydantic import BaseModel

from app.models.contributor import CreditAction, QualityDecision

_MAX_RAW_QUALITY = 1.5 * 1.2
_MEANINGFUL_MESSAGE_CHARS = 20
_SMALL_MESSAGE_CHARS = 10


def _float_env(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None:
        return default
    try:
        return float(str(raw).strip())
    except ValueError:
        return default


class QualitySettings(BaseModel):
    max_commits_per_day: int = 20
    min_commit_interval_hours: float = 1.0
    no_credit_below: float = 0.3
    full_credit_at: float = 0.5
    min_commit_confidence: float = 0.2

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> "QualitySettings":
        source = os.environ if env is None else env
        defaults = cls()
        return cls(
            max_commits_per_day=int(_float_env(source, "QUALITY_MAX_COMMITS_PER_DAY", defaults.max_commits_per_day)),
            min_commit_interval_hours=_float_env(
                source, "QUALITY_MIN_COMMIT_INTERVAL_HOURS", defaults.min_commit_interval_hours
            ),
            no_credit_below=_float_env(source, "QUALITY_NO_CREDIT_BELOW", defaults.no_credit_below),
            full_credit_at=_float_env(source, "QUALITY_FULL_CREDIT_AT", defaults.full_credit_at),
            min_commit_confidence=_float_env(
                source, "QUALITY_MIN_COMMIT_CONFIDENCE", defaults.min_commit_confidence
            ),
        )


def _commit_message(commit: Mapping[str, Any]) -> str:
    inner = commit.get("commit") if isinstance(commit.get("commit"), dict) else {}
    return str(inner.get("message") or "")


def _commit_time(commit: Mapping[str, Any]) -> Optional[datetime]:
    inner = commit.get("commit") if isinstance(commit.get("commit"), dict) else {}
    author = inner.get("author") if isinstance(inner.get("author"), dict) else {}
    raw = str(author.get("date") or "").strip()
    if not raw:
        return None
    try:
        parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _dated(commits: Iterable[Mapping[str, Any]]) -> list[tuple[datetime, Mapping[str, Any]]]:
    rows = [(ts, commit) for commit in commits if (ts := _commit_time(commit)) is not None]
    rows.sort(key=lambda row: row[0])
    return rows


def detect_suspicious_patterns(
    commits: Iterable[Mapping[str, Any]],
    settings: QualitySettings | None = None,
) -> list[str]:
    """Flags: commit bursts within one UTC day, commits too close together, near-empty messages."""
    cfg = settings or QualitySettings()
    commits = list(commits)
    # flags are keyed per commit: sha, else its position in the sample
    keys = [str(commit.get("sha") or f"#{index}") for index, commit in enumerate(commits)]
    dated = sorted(
        ((ts, index) for index, commit in enumerate(commits) if (ts := _commit_time(commit)) is not None),
        key=lambda row: row[0],
    )
    patterns: list[str] = []

    per_day = Counter(ts.date().isoformat() for ts, _ in dated)
    for day, count in sorted(per_day.items()):
        if count > cfg.max_commits_per_day:
            patterns.append(f"too_many_commits_per_day:{day}")

    for (prev, _), (curr, index) in zip(dated, dated[1:]):
        hours = (curr - prev).total_seconds() / 3600
        if hours < cfg.min_commit_interval_hours:
            patterns.append(f"commits_too_close:{keys[index]}")

    for index, commit in enumerate(commits):
        if len(_commit_message(commit).strip()) < _SMALL_MESSAGE_CHARS:
            patterns.append(f"small_commit:{keys[index]}")

    return patterns


def _flagged_commit_count(patterns: list[str]) -> int:
    flagged = {p.split(":", 1)[1] for p in patterns if p.startswith(("commits_too_close:", "small_commit:"))}
    return len(flagged)


def evaluate_contributor_quality(
    username: str,
    contributions: int,
    commits: Iterable[Mapping[str, Any]],
    settings: QualitySettings | None = None,
) -> QualityDecision:
    cfg = settings or QualitySettings()
    commits = list(commits)
    if not commits:
        return QualityDecision(
            username=username,
            quality=0.5,
            commit_confidence=0.0,
            credit_action=CreditAction.PARTIAL_CREDIT,
            reasons=[f"No commit history sampled for {contributions} reported contributions."],
        )

    patterns = detect_suspicious_patterns(commits, cfg)
    reasons: list[str] = []

    raw = max(0.5, 1 - len(patterns) * 0.1)
    if patterns:
        reasons.append(f"{len(patterns)} suspicious commit pattern(s)")

    dated = _dated(commits)
    if len(dated) >= 2:
        span_days = (dated[-1][0] - dated[0][0]).total_seconds() / 86400
        if span_days > 30:
            raw *= 1 + min(0.5, span_days / 365)
            reasons.append(f"Active over {int(span_days)} days")

    meaningful = sum(1 for c in commits if len(_commit_message(c)) > _MEANINGFUL_MESSAGE_CHARS)
    if meaningful:
        raw *= 1 + min(0.2, meaningful / len(commits))

    quality = round(min(1.0, raw / _MAX_RAW_QUALITY), 4)
    flagged = min(len(commits), _flagged_commit_count(patterns))
    commit_confidence = round((len(commits) - flagged) / len(commits), 4)

    if quality < cfg.no_credit_below:
        action = CreditAction.NO_CREDIT
        reasons.append(f"Quality {quality:.2f} below {cfg.no_credit_below:.2f}")
    elif commit_confidence < cfg.min_commit_confidence:
        action = CreditAction.NO_CREDIT
        reasons.append(f"Commit confidence {commit_confidence:.2f} below {cfg.min_commit_confidence:.2f}")
    elif quality < cfg.full_credit_at:
        action = CreditAction.PARTIAL_CREDIT
    else:
        action = CreditAction.FULL_CREDIT

    return QualityDecision(
        username=username,
        quality=quality,
        commit_confidence=commit_confidence,
        credit_action=action,
        reasons=reasons,
    )
