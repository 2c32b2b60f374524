"""Per-author command loop: mode switches, plan approval, replay, parsing, policy, execution."""

from __future__ import annotations

import hashlib
import json
import logging
import os
import re
import secrets
import threading
from collections import OrderedDict
from copy import deepcopy
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping, Optional

from pydantic import BaseModel, Field

from app.models.agent import ActionPlan, AgentMessage, ExecutionMode, ExperienceMode
from app.services.action_planner import (
    DEFAULT_PLAN_TTL_SECONDS,
    create_action_plan,
    format_plan_for_user,
    is_expired,
    plan_ttl_seconds,
)
from app.services.agent_framework import Agent, IntentMatch
from app.services.intent_assistant import assist_intent, format_assisted_suggestion
from app.services.payout_policy_service import PolicySettings, evaluate_policy, requires_approval

logger = logging.getLogger(__name__)

NOT_UNDERSTOOD = "I didn't understand that. Try: 'analyze near/near-sdk-rs'"

_MODE = re.compile(r"^(?:set\s+mode|mode)\s+(advisor|draft|execute)$", re.IGNORECASE)
_EXPERIENCE = re.compile(r"^(?:set\s+experience|experience)\s+(guided|hands[_ -]?off)$", re.IGNORECASE)
_APPROVE = re.compile(r"^approve(?:\s+(plan-[a-z0-9]+))?$", re.IGNORECASE)
_REPLAY = re.compile(r"^replay\s+(\S+)", re.IGNORECASE)

REPLAY_TTL = timedelta(hours=24)
MAX_REPLAYABLE_COMMANDS = 500

_PLAN_SHAPES: dict[str, dict[str, list[str]]] = {
    "pay": {
        "dependencies": ["split_exists", "verified_recipients", "payment_policy", "wallet_or_rails_auth"],
        "risks": ["onchain_value_transfer"],
        "outputs": ["tx_hash_or_intent_ref", "coverage_summary", "pending_claims"],
    },
    "create": {
        "dependencies": ["repo_analysis", "near_connectivity", "worker_registration"],
        "risks": ["onchain_state_change"],
        "outputs": ["split_id", "allocation_preview", "verification_coverage"],
    },
}


def _float_env(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None:
        return default
    try:
        return float(str(raw).strip())
    except ValueError:
        return default


class CommandSettings(BaseModel):
    min_parse_confidence: float = 0.45
    hands_off_min_confidence: float = 0.65
    default_execution_mode: ExecutionMode = ExecutionMode.EXECUTE
    plan_ttl_seconds: int = DEFAULT_PLAN_TTL_SECONDS
    policy: PolicySettings = Field(default_factory=PolicySettings)

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> "CommandSettings":
        source = os.environ if env is None else env
        raw_mode = (source.get("AGENT_DEFAULT_EXEC_MODE") or "").strip().lower()
        try:
            mode = ExecutionMode(raw_mode)
        except ValueError:
            mode = ExecutionMode.EXECUTE
        return cls(
            min_parse_confidence=_float_env(source, "AGENT_MIN_PARSE_CONFIDENCE", 0.45),
            hands_off_min_confidence=_float_env(source, "AGENT_HANDS_OFF_MIN_CONFIDENCE", 0.65),
            default_execution_mode=mode,
            plan_ttl_seconds=plan_ttl_seconds(source),
            policy=PolicySettings.from_env(source),
        )


class UserContextStore:
    """In-memory conversation state keyed by message author."""

    def __init__(self) -> None:
        self._users: dict[str, dict[str, Any]] = {}
        self._lock = threading.Lock()

    def get(self, author: str) -> dict[str, Any]:
        with self._lock:
            existing = self._users.setdefault(author, {"author": author, "repo_memory": {}})
            return deepcopy(existing)

    def update(self, author: str, patch: Mapping[str, Any]) -> dict[str, Any]:
        with self._lock:
            current = self._users.setdefault(author, {"author": author, "repo_memory": {}})
            for key, value in patch.items():
                if key == "message":
                    continue
                if value is None:
                    current.pop(key, None)
                else:
                    current[key] = value
            return deepcopy(current)

    def clear(self, author: str) -> None:
        with self._lock:
            self._users.pop(author, None)

    def update_repo_memory(self, author: str, repo_url: str, patch: Mapping[str, Any]) -> None:
        key = str(repo_url or "").lower()
        with self._lock:
            current = self._users.setdefault(author, {"author": author, "repo_memory": {}})
            memory = current.setdefault("repo_memory", {})
            entry = dict(memory.get(key) or {})
            entry.update({k: v for k, v in patch.items() if v is not None})
            entry["updated_at"] = datetime.now(timezone.utc).isoformat()
            memory[key] = entry


def new_event_id() -> str:
    return secrets.token_hex(8)


class ReplayableCommand(BaseModel):
    event_id: str
    message: AgentMessage
    created_at: datetime


class CommandOutcome(BaseModel):
    response: str
    event_id: Optional[str] = Field(None, description="Set when the command can be replayed with 'replay <id>'")


class ReplayStore:
    """Parsed commands by event id, oldest dropped past ``max_size``."""

    def __init__(self, max_size: int = MAX_REPLAYABLE_COMMANDS, ttl: timedelta = REPLAY_TTL) -> None:
        self.max_size = max_size
        self.ttl = ttl
        self._commands: OrderedDict[str, ReplayableCommand] = OrderedDict()
        self._lock = threading.Lock()

    def register(self, event_id: str, message: AgentMessage, created_at: datetime | None = None) -> None:
        record = ReplayableCommand(
            event_id=event_id,
            message=message.model_copy(deep=True),
            created_at=created_at or datetime.now(timezone.utc),
        )
        with self._lock:
            self._commands[event_id] = record
            while len(self._commands) > self.max_size:
                self._commands.popitem(last=False)

    def get(self, event_id: str) -> Optional[ReplayableCommand]:
        with self._lock:
            return self._commands.get(event_id)

    def is_expired(self, record: ReplayableCommand, now: datetime | None = None) -> bool:
        return (now or datetime.now(timezone.utc)) - record.created_at > self.ttl

    def __len__(self) -> int:
        with self._lock:
            return len(self._commands)


class CommandService:
    def __init__(
        self,
        agent: Agent,
        settings: CommandSettings | None = None,
        contexts: UserContextStore | None = None,
        replays: ReplayStore | None = None,
    ) -> None:
        self.agent = agent
        self.settings = settings or CommandSettings()
        self.contexts = contexts or UserContextStore()
        self.replays = replays or ReplayStore()

    def _modes(self, context: Mapping[str, Any]) -> tuple[ExecutionMode, ExperienceMode]:
        execution = context.get("execution_mode") or self.settings.default_execution_mode
        experience = context.get("experience_mode") or ExperienceMode.GUIDED
        return ExecutionMode(execution), ExperienceMode(experience)

    def handle(self, message: AgentMessage) -> str:
        return self.handle_detailed(message).response

    def handle_detailed(self, message: AgentMessage) -> CommandOutcome:
        event_id = new_event_id()
        response = self._handle(message, event_id)
        return CommandOutcome(response=response, event_id=event_id if self.replays.get(event_id) else None)

    def _handle(self, message: AgentMessage, event_id: str) -> str:
        author = message.author
        text = message.text.strip()
        lower = text.lower()
        context = self.contexts.get(author)
        execution_mode, experience_mode = self._modes(context)
        logger.info("command author=%s channel=%s text=%r", author, message.channel, text[:200])

        mode_match = _MODE.match(lower)
        if mode_match:
            next_mode = ExecutionMode(mode_match.group(1).lower())
            self.contexts.update(author, {"execution_mode": next_mode, "pending_plan": None})
            return f"✅ Execution mode set to {next_mode.value}."

        experience_match = _EXPERIENCE.match(lower)
        if experience_match:
            guided = experience_match.group(1).lower() == "guided"
            next_experience = ExperienceMode.GUIDED if guided else ExperienceMode.HANDS_OFF
            self.contexts.update(author, {"experience_mode": next_experience})
            return f"✅ Experience mode set to {next_experience.value}."

        if lower == "cancel":
            self.contexts.update(author, {"pending_plan": None})
            return "Cancelled pending plan."

        replay_match = _REPLAY.match(text)
        if replay_match:
            return self._replay(message, replay_match.group(1))

        approve_match = _APPROVE.match(lower)
        if approve_match:
            return self._approve(message, context, approve_match.group(1))

        parsed = self._parse(message.text, experience_mode)
        if isinstance(parsed, str):
            return parsed
        self.replays.register(event_id, message)

        policy = evaluate_policy(parsed.intent.name, parsed.params, execution_mode, self.settings.policy)
        if not policy.allowed:
            logger.info("policy_block intent=%s reasons=%s", parsed.intent.name, policy.reasons)
            return f"🛑 Policy blocked {parsed.intent.name}: {' | '.join(policy.reasons)}"

        # advisor mode never gets here for create/pay: the policy gate refuses them
        needs_approval = requires_approval(parsed.intent.name, self.settings.policy)
        if parsed.intent.name in _PLAN_SHAPES and (execution_mode == ExecutionMode.DRAFT or needs_approval):
            shape = _PLAN_SHAPES[parsed.intent.name]
            plan = create_action_plan(
                parsed.intent.name,
                parsed.params,
                shape["dependencies"],
                confidence=parsed.confidence,
                risks=[*policy.warnings, *shape["risks"]],
                outputs=shape["outputs"],
                ttl_seconds=self.settings.plan_ttl_seconds,
            )
            self.contexts.update(author, {"pending_plan": plan, "execution_mode": execution_mode})
            logger.info("plan_created id=%s intent=%s mode=%s", plan.id, plan.intent, execution_mode.value)
            if execution_mode == ExecutionMode.DRAFT:
                return f"Draft mode is active.\n\n{format_plan_for_user(plan)}"
            return format_plan_for_user(plan)

        result = self.agent.execute(
            parsed.intent,
            parsed.params,
            {
                **context,
                "message": message,
                "execution_mode": execution_mode,
                "experience_mode": experience_mode,
            },
        )
        logger.info(
            "intent_executed intent=%s confidence=%.2f mode=%s",
            parsed.intent.name,
            parsed.confidence,
            execution_mode.value,
        )
        self.contexts.update(author, result.context)
        self._remember_repo(author, context, result.context)
        return result.response

    def _parse(self, text: str, experience: ExperienceMode) -> IntentMatch | str:
        """An ``IntentMatch`` to execute, or the reply to send instead."""
        parsed = self.agent.parse_intent_detailed(text)
        hands_off = experience == ExperienceMode.HANDS_OFF

        if parsed is None:
            assisted = assist_intent(text) if hands_off else None
            if assisted is None:
                return NOT_UNDERSTOOD
            intent = self.agent.get_intent_by_name(assisted.intent_name)
            if intent is None:
                return format_assisted_suggestion(assisted)
            logger.info("hands_off_assisted_parse intent=%s confidence=%.2f", assisted.intent_name, assisted.confidence)
            parsed = IntentMatch(intent=intent, params=assisted.params, confidence=assisted.confidence, matched_text=text)

        if parsed.confidence < self.settings.min_parse_confidence and hands_off:
            assisted = assist_intent(text)
            if assisted is not None:
                intent = self.agent.get_intent_by_name(assisted.intent_name)
                if intent is None or assisted.confidence < self.settings.hands_off_min_confidence:
                    return format_assisted_suggestion(assisted)
                parsed = IntentMatch(
                    intent=intent, params=assisted.params, confidence=assisted.confidence, matched_text=text
                )

        if parsed.confidence < self.settings.min_parse_confidence:
            logger.info("intent_low_confidence intent=%s confidence=%.2f", parsed.intent.name, parsed.confidence)
            return (
                f"I may have misunderstood that ({parsed.intent.name}, confidence {parsed.confidence:.2f}). "
                'Please confirm with a clearer command, e.g. "analyze owner/repo" or "pay 10 NEAR to owner/repo".'
            )
        return parsed

    def _replay(self, message: AgentMessage, replay_id: str) -> str:
        """Re-run a stored command from the same author."""
        record = self.replays.get(replay_id)
        if record is None or record.message.author != message.author:
            return f"Replay id not found: {replay_id}"
        if self.replays.is_expired(record):
            return f"Replay id expired: {replay_id}"
        logger.info("replay_started id=%s author=%s", replay_id, message.author)
        return f"🔁 Replay {replay_id}\n\n{self.handle(record.message)}"

    def _approve(self, message: AgentMessage, context: dict[str, Any], plan_id: Optional[str]) -> str:
        author = message.author
        plan: Optional[ActionPlan] = context.get("pending_plan")
        if plan is None:
            return "No pending plan to approve."
        requested = plan_id or plan.id
        if requested != plan.id:
            return f"Pending plan mismatch. Expected {plan.id}."
        if is_expired(plan):
            self.contexts.update(author, {"pending_plan": None})
            return f"Plan {plan.id} expired. Request a fresh plan."
        intent = self.agent.get_intent_by_name(plan.intent)
        if intent is None:
            self.contexts.update(author, {"pending_plan": None})
            return f"Cannot execute plan {plan.id}: intent {plan.intent} no longer available."

        result = self.agent.execute(
            intent,
            plan.params,
            {
                **context,
                "message": message,
                "approved_plan_id": plan.id,
                "execution_mode": ExecutionMode.EXECUTE,
            },
        )
        self.contexts.update(author, {**result.context, "pending_plan": None, "approved_plan_id": None})
        self._remember_repo(author, context, result.context)
        logger.info("plan_executed id=%s intent=%s author=%s", plan.id, plan.intent, author)
        return result.response

    def _remember_repo(self, author: str, before: Mapping[str, Any], after: Mapping[str, Any]) -> None:
        last_analysis = after.get("last_analysis") or before.get("last_analysis") or {}
        last_split = after.get("last_split") or before.get("last_split") or {}
        last_payment = after.get("last_payment") or {}
        repo_url = (after.get("last_analysis") or {}).get("repo_url") or (after.get("last_split") or {}).get(
            "repo_url"
        ) or last_analysis.get("repo_url")
        if not repo_url:
            return
        contributors = last_analysis.get("contributors") or []
        analysis_hash = None
        if contributors:
            serialized = json.dumps(contributors, sort_keys=True, default=str)
            analysis_hash = hashlib.sha256(serialized.encode("utf-8")).hexdigest()[:16]
        self.contexts.update_repo_memory(
            author,
            repo_url,
            {
                "last_analysis_hash": analysis_hash,
                "last_split_id": last_split.get("id"),
                "last_payment_at": last_payment.get("timestamp"),
                "last_payment_tx": last_payment.get("tx_hash"),
            },
        )
