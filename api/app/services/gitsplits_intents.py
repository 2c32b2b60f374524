"""Chat commands understood by the GitSplits agent.

Each intent reads its collaborators from the ``ToolRegistry``:

- ``github``: ``analyze(repo_url) -> RepoAnalysis``
- ``splits``: a ``SplitLedger``
- ``reputation``: ``get_profile`` / ``evaluate_payout_eligibility``
- ``payments``: ``distribute(split_id, amount, token, recipients)``

Collaborator failures are reported back to the user as ``"❌ ..."`` replies.
"""

from __future__ import annotations

import logging
import os
import re
import secrets
from datetime import datetime, timedelta, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Mapping, Optional
from urllib.parse import quote

from app.models.agent import AgentMessage, RecipientSnapshot
from app.models.contributor import AllocationEntry, ContributorRaw
from app.models.split import PaymentRecipient
from app.services.agent_framework import Agent, Intent, IntentResult, ToolNotFoundError, ToolRegistry, Validation
from app.services.allocation_service import build_default_contributors_with_quality, parse_custom_allocation
from app.services.payout_policy_service import inspect_distribution_risk, should_block_for_safety
from app.services.reputation_service import is_system_contributor

logger = logging.getLogger(__name__)

DEFAULT_WEB_APP_BASE_URL = "https://gitsplits.vercel.app"
VERIFICATION_TTL = timedelta(hours=24)

_REPO_PREFIX = re.compile(r"^(https?://)?(www\.)?github\.com/", re.IGNORECASE)
_NEAR_ACCOUNT = re.compile(r"\.near$|\.testnet$", re.IGNORECASE)
_CUSTOM_ALLOCATION = re.compile(r"(.+?)\s+(?:with\s+)?(\d+(?:/\d+)+)")
_USERNAME = r"[a-zA-Z0-9_.\-\[\]]+"
_CENTS4 = Decimal("0.0001")


def verify_base_url(env: Mapping[str, str] | None = None) -> str:
    source = os.environ if env is None else env
    base = (source.get("WEB_APP_BASE_URL") or DEFAULT_WEB_APP_BASE_URL).strip().rstrip("/")
    return f"{base}/verify"


def normalize_repo_url(value: str) -> str:
    cleaned = _REPO_PREFIX.sub("", str(value or "").strip()).rstrip("/").strip()
    return f"github.com/{cleaned}"


def looks_like_repo(value: str) -> bool:
    return "/" in value or "github.com" in value


def is_likely_near_account(value: Optional[str]) -> bool:
    return bool(value) and bool(_NEAR_ACCOUNT.search(str(value)))


def _message(context: Mapping[str, Any]) -> Optional[AgentMessage]:
    message = context.get("message")
    return message if isinstance(message, AgentMessage) else None


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _pct(value: float) -> str:
    return f"{value:g}%"


def _required(field: str, error: str):
    def validate(params: dict[str, Any]) -> Validation:
        if not params.get(field):
            return Validation(valid=False, error=error)
        return Validation(valid=True)

    return validate


def _patterns(*raw: str) -> list[re.Pattern[str]]:
    return [re.compile(p, re.IGNORECASE) for p in raw]


# --- analyze -----------------------------------------------------------------


def _execute_analyze(params: dict[str, Any], context: dict[str, Any], tools: ToolRegistry) -> IntentResult:
    repo = params["repo"]
    try:
        repo_url = normalize_repo_url(repo)
        analysis = tools.github.analyze(repo_url)
        contributors = analysis.contributors
        if not contributors:
            return IntentResult(
                response=f"No contributors found for {repo_url}. Make sure it's a public repository with commit history.",
                context=context,
            )

        medals = ["🥇", "🥈", "🥉"]
        top = "\n".join(
            f"{medals[i] if i < len(medals) else '•'} {c.username}: {c.commits} commits ({_pct(c.percentage)})"
            for i, c in enumerate(contributors[:5])
        )
        more = f"\n...and {len(contributors) - 5} more" if len(contributors) > 5 else ""
        total_commits = sum(c.commits for c in contributors)

        coverage = ""
        if tools.has("splits"):
            sample = contributors[:10]
            eligible = [c for c in sample if not is_system_contributor(c.username)]
            skipped = len(sample) - len(eligible)
            verified = sum(1 for c in eligible if tools.splits.get_verified_wallet(c.username))
            coverage = (
                f"\n\n✅ Verification coverage (top {len(sample)}): {verified}/{len(eligible)} verified"
                + (f" ({skipped} bot/system skipped)" if skipped else "")
                + f"\nInvite unverified contributors: {verify_base_url()}"
            )

        return IntentResult(
            response=(
                f"📊 Analysis for {repo_url}\n\n"
                f"Total commits: {total_commits}\n"
                f"Contributors: {len(contributors)}\n\n"
                f"Top contributors:\n{top}{more}{coverage}\n\n"
                f'Create a split: "@gitsplits create {repo_url}"'
            ),
            context={
                **context,
                "last_analysis": {
                    "repo_url": repo_url,
                    "contributors": [c.model_dump() for c in contributors],
                    "timestamp": _now_iso(),
                },
            },
        )
    except ToolNotFoundError:
        raise
    except Exception as exc:
        hint = ""
        if getattr(exc, "rate_limited", False) or "rate limit" in str(exc).lower():
            hint = " GitHub API rate limit may have been reached; try again shortly."
        logger.warning("Analyze failed for %s: %s", repo, exc)
        return IntentResult(response=f"❌ Analysis failed for {repo}: {exc}{hint}", context=context)


analyze_intent = Intent(
    name="analyze",
    patterns=_patterns(
        r"analyze\s+(.+)",
        r"who\s+(?:contributes?\s+to|works?\s+on)\s+(.+)",
        r"show\s+(?:me\s+)?(?:the\s+)?contributors?\s+(?:for|of)\s+(.+)",
        r"what\s+(?:about|is)\s+(.+)",
    ),
    extract_params=lambda m: {"repo": m.group(1).strip()},
    validate=_required("repo", "Repository is required"),
    execute=_execute_analyze,
)


# --- create ------------------------------------------------------------------


def _extract_create(match: re.Match[str]) -> dict[str, Any]:
    full = match.group(1).strip()
    custom = _CUSTOM_ALLOCATION.match(full)
    if custom:
        return {"repo": custom.group(1).strip(), "allocation": custom.group(2)}
    return {"repo": full, "allocation": "default"}


def resolve_split_owner(context: Mapping[str, Any], env: Mapping[str, str] | None = None) -> str:
    """First NEAR-looking account among the message's identities, else NEAR_ACCOUNT_ID."""
    message = _message(context)
    candidates = []
    if message is not None:
        candidates = [message.near_account_id, message.wallet_address, message.author]
    for candidate in candidates:
        if is_likely_near_account(candidate):
            return str(candidate)
    source = os.environ if env is None else env
    fallback = (source.get("NEAR_ACCOUNT_ID") or "").strip()
    if fallback:
        return fallback
    raise ValueError(
        "No valid NEAR owner account available. Connect a NEAR wallet in web UI or set NEAR_ACCOUNT_ID."
    )


def _execute_create(params: dict[str, Any], context: dict[str, Any], tools: ToolRegistry) -> IntentResult:
    repo = params["repo"]
    allocation = params.get("allocation") or "default"
    try:
        repo_url = normalize_repo_url(repo)
        existing = tools.splits.get_split(repo_url)
        analysis = tools.github.analyze(repo_url)
        if not analysis.contributors:
            return IntentResult(
                response=f"No contributors found for {repo_url}. Make sure it's a public repository.",
                context=context,
            )

        raw = [ContributorRaw(username=c.username, percentage=c.percentage) for c in analysis.contributors]
        if allocation == "default":
            contributors = build_default_contributors_with_quality(raw, analysis.quality_decisions)
        else:
            contributors = parse_custom_allocation(allocation, raw)

        if existing is not None:
            split = tools.splits.update_split(existing.id, contributors)
        else:
            split = tools.splits.create_split(repo_url, resolve_split_owner(context), contributors)

        top = "\n".join(f"- {c.github_username}: {_pct(c.percentage)}" for c in contributors[:5])
        more = f"\n...and {len(contributors) - 5} more" if len(contributors) > 5 else ""
        excluded = len(raw) - len(contributors)
        quality_line = (
            f"\nQuality review excluded {excluded} contributor(s) from the split." if excluded > 0 else ""
        )

        eligible = [c for c in contributors if not is_system_contributor(c.github_username)]
        unverified = [c.github_username for c in eligible if not tools.splits.get_verified_wallet(c.github_username)]
        skipped = len(contributors) - len(eligible)
        coverage = f"Verification coverage: {len(eligible) - len(unverified)}/{len(eligible)} verified" + (
            f" ({skipped} bot/system skipped)" if skipped else ""
        )
        if unverified:
            mentions = ", ".join(f"@{u}" for u in unverified[:5])
            if len(unverified) > 5:
                mentions += f", +{len(unverified) - 5} more"
            repo_path = repo_url.removeprefix("github.com/")
            coverage += (
                f"\nNeed verification: {mentions}"
                f"\nInvite link: {verify_base_url()}?repo={quote(repo_path, safe='')}"
            )

        headline = f"✅ Split updated for {repo_url}!" if existing else f"✅ Split created for {repo_url}!"
        refreshed = "\n\nThis split was refreshed with the latest contributors." if existing else ""
        return IntentResult(
            response=(
                f"{headline}\n\n"
                f"📜 Split ID: {split.id}\n\n"
                f"Top contributors (verified via Git history):\n{top}{more}{quality_line}\n\n"
                f"{coverage}\n\n"
                f'To pay them: "@gitsplits pay 100 USDC to {repo_url}"{refreshed}'
            ),
            context={
                **context,
                "last_split": {"id": split.id, "repo_url": repo_url, "created_at": _now_iso()},
            },
        )
    except ToolNotFoundError:
        raise
    except Exception as exc:
        logger.warning("Create failed for %s: %s", repo, exc)
        return IntentResult(response=f"❌ Failed to create split: {exc}", context=context)


create_intent = Intent(
    name="create",
    patterns=_patterns(
        r"create\s+(?:a\s+)?(?:split\s+)?(?:for\s+)?(.+)",
        r"set\s+up\s+(?:payments?\s+)?(?:for\s+)?(.+)",
        r"make\s+(?:a\s+)?(?:split\s+)?(?:for\s+)?(.+)",
    ),
    extract_params=_extract_create,
    validate=_required("repo", "Repository is required"),
    execute=_execute_create,
)


# --- pay ---------------------------------------------------------------------


def _extract_pay(match: re.Match[str]) -> dict[str, Any]:
    return {
        "amount": float(match.group(1)),
        "token": (match.group(2) or "USDC").upper(),
        "repo": match.group(3).strip(),
    }


def _validate_pay(params: dict[str, Any]) -> Validation:
    amount = params.get("amount")
    if not isinstance(amount, (int, float)) or amount <= 0:
        return Validation(valid=False, error="Amount must be a positive number")
    if not params.get("repo"):
        return Validation(valid=False, error="Repository is required")
    return Validation(valid=True)


def is_strict_all_verified(text: str) -> bool:
    lowered = str(text or "").lower()
    return "strict" in lowered or "all-verified" in lowered or "all verified" in lowered


def _q4(value: Decimal) -> Decimal:
    return value.quantize(_CENTS4, rounding=ROUND_HALF_UP)


def _execute_pay(params: dict[str, Any], context: dict[str, Any], tools: ToolRegistry) -> IntentResult:
    amount = Decimal(str(params["amount"]))
    token = str(params.get("token") or "USDC").upper()
    repo = params["repo"]
    message = _message(context)
    text = message.text if message else ""
    base_url = verify_base_url()
    try:
        repo_url = normalize_repo_url(repo)
        split = tools.splits.get_split(repo_url)
        if split is None:
            return IntentResult(
                response=f'No split found for {repo_url}. Create one first with: "@gitsplits create {repo_url}"',
                context=context,
            )

        wallets = {c.github_username: tools.splits.get_verified_wallet(c.github_username) for c in split.contributors}
        unverified = [c for c in split.contributors if not wallets[c.github_username]]
        verified = [c for c in split.contributors if wallets[c.github_username]]

        if is_strict_all_verified(text) and unverified:
            return IntentResult(
                response=(
                    f"❌ Strict mode enabled: payment blocked because {len(unverified)} contributors are unverified.\n\n"
                    f"Unverified: {', '.join(c.github_username for c in unverified)}\n"
                    f"Ask them to verify at {base_url}"
                ),
                context=context,
            )

        eligible: list[AllocationEntry] = []
        ineligible: list[tuple[str, float, list[str]]] = []
        for contributor in verified:
            decision = tools.reputation.evaluate_payout_eligibility(
                contributor.github_username, wallets[contributor.github_username]
            )
            if decision.eligible:
                eligible.append(contributor)
            else:
                ineligible.append((contributor.github_username, decision.profile.score, decision.reasons))

        eligible_pct = sum((Decimal(str(c.percentage)) for c in eligible), Decimal("0"))
        if not eligible or eligible_pct <= 0:
            return IntentResult(
                response=(
                    f"❌ No payout-eligible verified contributors found for {repo_url}. Nothing can be paid yet.\n\n"
                    f"Ask contributors to verify at {base_url}"
                ),
                context=context,
            )

        alerts = inspect_distribution_risk(
            [
                RecipientSnapshot(
                    github_username=c.github_username,
                    percentage=c.percentage,
                    wallet=wallets[c.github_username],
                )
                for c in split.contributors
            ]
        )
        if should_block_for_safety(alerts, text):
            lines = "\n".join(f"- [{a.level.value.upper()}] {a.message}" for a in alerts)
            return IntentResult(
                response=(
                    f"🛑 Safety review required before payout:\n{lines}\n\n"
                    'Reply with "override safety" to proceed anyway.'
                ),
                context=context,
            )

        distributable = _q4(amount * eligible_pct / Decimal("100"))
        recipients = [
            PaymentRecipient(
                github_username=c.github_username,
                wallet=str(wallets[c.github_username]),
                percentage=float(_q4(Decimal(str(c.percentage)) / eligible_pct * Decimal("100"))),
            )
            for c in eligible
        ]
        receipt = tools.payments.distribute(split.id, distributable, token, recipients)

        claims = []
        for contributor in unverified:
            pending_amount = _q4(amount * Decimal(str(contributor.percentage)) / Decimal("100"))
            claim_id = tools.splits.store_pending_distribution(
                contributor.github_username, pending_amount, token, split.id
            )
            claims.append((contributor.github_username, pending_amount, claim_id))

        pending_summary = ""
        if claims:
            pending_summary = (
                f"\n\n⏳ Pending claims for unverified contributors ({len(claims)}):\n"
                + "\n".join(f"- {u}: {a} {token} (claim id: {cid})" for u, a, cid in claims)
                + f"\n\nInvite them to verify: {base_url}"
            )
        ineligible_summary = ""
        if ineligible:
            ineligible_summary = f"\n\n🚫 Excluded by eligibility policy ({len(ineligible)}):\n" + "\n".join(
                f"- {u}: score {score:g} ({'; '.join(reasons)})" for u, score, reasons in ineligible[:8]
            )
        flags = f"\n⚠️ Safety flags: {', '.join(a.code for a in alerts)}" if alerts else ""

        return IntentResult(
            response=(
                f"✅ Distributed {distributable} {token} to {len(eligible)} payout-eligible verified contributors!\n\n"
                f"Coverage: {len(eligible)}/{len(split.contributors)} contributors eligible+verified\n"
                f"🔗 Transaction: {receipt.tx_hash}\n📜 Split: {split.id}"
                f"{flags}{pending_summary}{ineligible_summary}"
            ),
            context={
                **context,
                "last_payment": {
                    "split_id": split.id,
                    "amount": str(distributable),
                    "token": token,
                    "tx_hash": receipt.tx_hash,
                    "timestamp": _now_iso(),
                },
            },
        )
    except ToolNotFoundError:
        raise
    except Exception as exc:
        logger.warning("Payment failed for %s: %s", repo, exc)
        return IntentResult(response=f"❌ Payment failed: {exc}", context=context)


pay_intent = Intent(
    name="pay",
    # optional token; it never takes amount digits or the "to" before the repository
    patterns=_patterns(
        r"pay\s+(\d+(?:\.\d+)?)(?:\s*(?!to\s)([A-Za-z]\w*))?\s+(?:to\s+)?(.+)",
        r"send\s+(\d+(?:\.\d+)?)(?:\s*(?!to\s)([A-Za-z]\w*))?\s+(?:to\s+)?(.+)",
        r"distribute\s+(?:\$)?(\d+(?:\.\d+)?)(?:\s*(?!to\s)([A-Za-z]\w*))?\s+(?:to\s+)?(.+)",
        r"give\s+(\d+(?:\.\d+)?)(?:\s*(?!to\s)([A-Za-z]\w*))?\s+(?:to\s+)?(.+)",
    ),
    extract_params=_extract_pay,
    validate=_validate_pay,
    execute=_execute_pay,
)


# --- pending -----------------------------------------------------------------


def _execute_pending(params: dict[str, Any], context: dict[str, Any], tools: ToolRegistry) -> IntentResult:
    target = str(params["target"])
    try:
        if looks_like_repo(target):
            repo_url = normalize_repo_url(target)
            split = tools.splits.get_split(repo_url)
            if split is None:
                return IntentResult(response=f"No split found for {repo_url}.", context=context)

            by_user = []
            for contributor in split.contributors:
                claims = tools.splits.get_pending_distributions(contributor.github_username)
                if claims:
                    by_user.append((contributor.github_username, claims))
            total = sum(len(claims) for _, claims in by_user)
            if not total:
                return IntentResult(response=f"No pending claims for {repo_url}.", context=context)

            lines = "\n".join(
                f"- {username}: {len(claims)} claim(s), {sum(c.amount for c in claims)} {claims[0].token}"
                for username, claims in by_user[:10]
            )
            return IntentResult(
                response=(
                    f"⏳ Pending claims for {repo_url}\n\n"
                    f"Contributors with pending claims: {len(by_user)}\n"
                    f"Total pending claim entries: {total}\n\n"
                    f"{lines}\n\n"
                    f"Ask contributors to verify at {verify_base_url()}"
                ),
                context=context,
            )

        username = target.lstrip("@")
        claims = tools.splits.get_pending_distributions(username)
        if not claims:
            return IntentResult(response=f"No pending claims found for @{username}.", context=context)
        lines = "\n".join(f"- {c.id}: {c.amount} {c.token}" for c in claims[:10])
        return IntentResult(
            response=f"⏳ Pending claims for @{username}\n\nCount: {len(claims)}\n{lines}",
            context=context,
        )
    except ToolNotFoundError:
        raise
    except Exception as exc:
        logger.warning("Pending lookup failed for %s: %s", target, exc)
        return IntentResult(response=f"❌ Failed to fetch pending claims: {exc}", context=context)


pending_intent = Intent(
    name="pending",
    patterns=_patterns(
        r"pending\s+(?:claims?\s+)?(?:for\s+)?(.+)",
        r"show\s+pending\s+(?:claims?\s+)?(?:for\s+)?(.+)",
    ),
    extract_params=lambda m: {"target": m.group(1).strip()},
    validate=_required("target", "Repository or GitHub username is required"),
    execute=_execute_pending,
)


# --- verify ------------------------------------------------------------------


def _extract_verify(match: re.Match[str]) -> dict[str, Any]:
    groups = match.groupdict()
    repo = (groups.get("repo") or "").strip() or None
    username = (groups.get("github_username") or "").strip() or None
    return {"repo": repo, "github_username": username}


def _validate_verify(params: dict[str, Any]) -> Validation:
    if not params.get("repo") and not params.get("github_username"):
        return Validation(valid=False, error="GitHub username or repository is required")
    return Validation(valid=True)


def _verify_repo(repo: str, context: dict[str, Any], tools: ToolRegistry) -> IntentResult:
    base_url = verify_base_url()
    repo_url = normalize_repo_url(repo)
    analysis = tools.github.analyze(repo_url)
    if not analysis.contributors:
        return IntentResult(response=f"No contributors found for {repo_url}.", context=context)

    sample = analysis.contributors[:15]
    skipped = [c.username for c in sample if is_system_contributor(c.username)]
    eligible = [c.username for c in sample if not is_system_contributor(c.username)]
    wallets = {u: tools.splits.get_verified_wallet(u) for u in eligible}
    verified = [u for u in eligible if wallets[u]]
    unverified = [u for u in eligible if not wallets[u]]
    repo_path = repo_url.removeprefix("github.com/")

    verified_lines = "\n".join(f"✅ @{u} -> {wallets[u]}" for u in verified[:5]) or "None yet"
    if len(verified) > 5:
        verified_lines += f"\n...and {len(verified) - 5} more verified"
    unverified_lines = (
        "\n".join(
            f"• @{u}: {base_url}?repo={quote(repo_path, safe='')}&user={quote(u, safe='')}" for u in unverified[:5]
        )
        or "None"
    )
    if len(unverified) > 5:
        unverified_lines += f"\n...and {len(unverified) - 5} more unverified"

    skipped_line = ""
    if skipped:
        skipped_line = "\nSkipped bot/system accounts: " + ", ".join(f"@{u}" for u in skipped[:4])
        if len(skipped) > 4:
            skipped_line += f", +{len(skipped) - 4} more"
    next_step = (
        "\n\nNext: share the links above with unverified contributors."
        if unverified
        else f"\n\nNext: everyone checked is verified. You can safely run: pay <amount> <token> to {repo_path}"
    )

    return IntentResult(
        response=(
            f"🔎 Verification status for {repo_url}\n\n"
            f"Coverage (top {len(sample)} contributors): {len(verified)} verified, {len(unverified)} unverified"
            f"{f', {len(skipped)} skipped' if skipped else ''}{skipped_line}\n\n"
            f"Ready to receive payouts:\n{verified_lines}\n\n"
            f"Need verification:\n{unverified_lines}{next_step}"
        ),
        context={
            **context,
            "last_verification_coverage": {
                "repo_url": repo_url,
                "checked": len(sample),
                "verified": len(verified),
                "unverified": len(unverified),
                "timestamp": _now_iso(),
            },
        },
    )


def _execute_verify(params: dict[str, Any], context: dict[str, Any], tools: ToolRegistry) -> IntentResult:
    repo = params.get("repo")
    username = params.get("github_username")
    message = _message(context)
    try:
        if repo:
            return _verify_repo(repo, context, tools)

        wallet = tools.splits.get_verified_wallet(username)
        if wallet:
            return IntentResult(
                response=f"@{username} is already verified! You can receive payments to {wallet}.",
                context=context,
            )

        near_wallet = None
        if message is not None:
            near_wallet = message.near_account_id or (
                message.wallet_address if is_likely_near_account(message.wallet_address) else None
            )
        if message is not None and message.channel == "web" and near_wallet:
            profile = tools.reputation.get_profile(username)
            tools.splits.store_verification(username, near_wallet, message.author)
            erc_line = (
                "\n🤖 ERC-8004 agent registration detected." if profile.erc8004 and profile.erc8004.registered else ""
            )
            return IntentResult(
                response=(
                    f"✅ @{username} verified and linked to {near_wallet}."
                    f"\n🏅 Reputation: {profile.score:g}/100 ({profile.tier.value}){erc_line}"
                ),
                context={
                    **context,
                    "last_verification": {
                        "github_username": username,
                        "wallet": near_wallet,
                        "verified_at": _now_iso(),
                    },
                },
            )

        code = f"gitsplits-verify-{secrets.token_hex(4)}"
        expires_at = datetime.now(timezone.utc) + VERIFICATION_TTL
        requested_by = message.author if message is not None else "anonymous"
        tools.splits.store_pending_verification(username, requested_by, code, expires_at)
        return IntentResult(
            response=(
                f"🔐 Verification initiated for @{username}\n\n"
                "To complete:\n"
                "1. Create a public GitHub gist\n"
                f"2. Paste this code: {code}\n"
                "3. Reply here with the gist URL\n\n"
                f"Or verify at: {verify_base_url()}?github={quote(username, safe='')}&code={code}"
            ),
            context={
                **context,
                "pending_verification": {
                    "github_username": username,
                    "code": code,
                    "expires_at": expires_at.isoformat(),
                },
            },
        )
    except ToolNotFoundError:
        raise
    except Exception as exc:
        logger.warning("Verification failed: %s", exc)
        return IntentResult(response=f"❌ Verification failed: {exc}", context=context)


verify_intent = Intent(
    name="verify",
    patterns=_patterns(
        r"verify\s+contributors?\s+(?:for|of)\s+(?P<repo>.+)",
        rf"verify\s+(?!contributors?\b)(?:my\s+)?(?:github\s+)?@?(?P<github_username>{_USERNAME})",
        rf"link\s+(?:my\s+)?(?:github\s+)?@?(?P<github_username>{_USERNAME})",
        rf"connect\s+(?:my\s+)?(?:github\s+)?@?(?P<github_username>{_USERNAME})",
    ),
    extract_params=_extract_verify,
    validate=_validate_verify,
    execute=_execute_verify,
)


# --- reputation --------------------------------------------------------------


def _execute_reputation(params: dict[str, Any], context: dict[str, Any], tools: ToolRegistry) -> IntentResult:
    try:
        profile = tools.reputation.get_profile(params["subject"])
        if profile.erc8004 is None:
            erc_line = "ℹ️ ERC-8004: not configured"
        elif profile.erc8004.registered:
            handle = f" ({profile.erc8004.handle})" if profile.erc8004.handle else ""
            erc_line = f"✅ ERC-8004: registered{handle}"
        else:
            erc_line = "⚠️ ERC-8004: not registered"
        return IntentResult(
            response=(
                f"🏅 Reputation for @{profile.username}\n\n"
                f"Kind: {profile.kind.value}\n"
                f"Score: {profile.score:g}/100 ({profile.tier.value})\n"
                f"{erc_line}\n"
                f"Sources: {', '.join(profile.sources)}"
            ),
            context=context,
        )
    except ToolNotFoundError:
        raise
    except Exception as exc:
        logger.warning("Reputation lookup failed for %s: %s", params.get("subject"), exc)
        return IntentResult(response=f"❌ Reputation lookup failed: {exc}", context=context)


reputation_intent = Intent(
    name="reputation",
    patterns=_patterns(
        rf"reputation\s+(?:for\s+)?@?({_USERNAME})",
        rf"is\s+@?({_USERNAME})\s+(?:eligible|trusted|reputable)",
        rf"erc8004\s+(?:status\s+)?(?:for\s+)?@?({_USERNAME})",
    ),
    extract_params=lambda m: {"subject": m.group(1).strip()},
    validate=_required("subject", "Subject is required"),
    execute=_execute_reputation,
)


GITSPLITS_INTENTS = (
    analyze_intent,
    create_intent,
    pay_intent,
    pending_intent,
    verify_intent,
    reputation_intent,
)


def build_default_agent(tools: ToolRegistry | None = None) -> Agent:
    agent = Agent(tools)
    for intent in GITSPLITS_INTENTS:
        agent.register_intent(intent)
    return agent
