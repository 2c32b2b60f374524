"""Tests for the per-author command loop."""

import re
from datetime import datetime, timedelta, timezone

import pytest

from app.models.agent import AgentMessage, ExecutionMode, ExperienceMode
from app.models.contributor import AllocationEntry
from app.services.command_service import (
    NOT_UNDERSTOOD,
    CommandService,
    CommandSettings,
    ReplayStore,
    UserContextStore,
)
from app.services.gitsplits_intents import build_default_agent
from app.services.payout_policy_service import PolicySettings

REPO = "github.com/acme/widgets"
_PLAN_ID = re.compile(r'approve (plan-[0-9a-f]+)"')


def _say(service, text, author="acme", **fields):
    return service.handle(AgentMessage(text=text, author=author, **fields))


def _plan_id(reply):
    match = _PLAN_ID.search(reply)
    assert match, reply
    return match.group(1)


@pytest.fixture
def service(tools):
    return CommandService(build_default_agent(tools))


@pytest.fixture
def paid_split(ledger):
    split = ledger.create_split(REPO, "acme.near", [AllocationEntry(github_username="alice", percentage=100)])
    ledger.store_verification("alice", "alice.near", "alice")
    return split


def test_settings_from_env():
    settings = CommandSettings.from_env(
        {"AGENT_DEFAULT_EXEC_MODE": "Draft", "AGENT_MIN_PARSE_CONFIDENCE": "0.6", "AGENT_PLAN_TTL_SECONDS": "30"}
    )

    assert settings.default_execution_mode == ExecutionMode.DRAFT
    assert settings.min_parse_confidence == 0.6
    assert settings.plan_ttl_seconds == 30
    assert CommandSettings.from_env({"AGENT_DEFAULT_EXEC_MODE": "yolo"}).default_execution_mode == ExecutionMode.EXECUTE


def test_mode_switches_are_remembered_per_author(service):
    assert _say(service, "mode draft") == "✅ Execution mode set to draft."
    assert _say(service, "set experience hands-off") == "✅ Experience mode set to hands_off."

    context = service.contexts.get("acme")
    assert context["execution_mode"] == ExecutionMode.DRAFT
    assert context["experience_mode"] == ExperienceMode.HANDS_OFF
    assert "execution_mode" not in service.contexts.get("someone-else")


def test_unknown_text_in_guided_mode(service):
    assert _say(service, "could you analyse acme/widgets") == NOT_UNDERSTOOD


def test_hands_off_mode_runs_assisted_intent(service):
    _say(service, "experience hands_off")

    reply = _say(service, "could you analyse acme/widgets")

    assert reply.startswith(f"📊 Analysis for {REPO}")


def test_low_confidence_match_asks_for_confirmation(service):
    reply = _say(service, "blah " * 30 + "what is up")

    assert reply.startswith("I may have misunderstood that (analyze, confidence 0.44).")


def test_policy_blocks_oversized_payment(service, paid_split, ledger):
    reply = _say(service, "pay 500 NEAR to acme/widgets")

    assert reply == "🛑 Policy blocked pay: Pay amount 500 exceeds policy max 250."
    assert ledger.receipts() == []


def test_advisor_mode_refuses_payments(service, paid_split):
    _say(service, "mode advisor")

    reply = _say(service, "pay 5 NEAR to acme/widgets")

    assert reply == "🛑 Policy blocked pay: Advisor mode does not execute on-chain/payment actions."


def test_advisor_mode_still_answers_read_only_commands(service):
    _say(service, "mode advisor")

    assert _say(service, "analyze acme/widgets").startswith(f"📊 Analysis for {REPO}")


def test_draft_plan_is_executed_on_approval(service, paid_split, ledger):
    _say(service, "mode draft")

    drafted = _say(service, "pay 10 NEAR to acme/widgets")

    assert drafted.startswith("Draft mode is active.\n\n🧭 Execution plan prepared (pay).")
    assert ledger.receipts() == []

    executed = _say(service, "approve")

    assert executed.startswith("✅ Distributed 10.0000 NEAR to 1 payout-eligible verified contributors!")
    assert len(ledger.receipts()) == 1
    assert _say(service, "approve") == "No pending plan to approve."
    context = service.contexts.get("acme")
    assert context["last_payment"]["tx_hash"] == ledger.receipts()[0].tx_hash
    assert "pending_plan" not in context


def test_approval_with_wrong_id_keeps_plan(service, paid_split, ledger):
    _say(service, "mode draft")
    plan_id = _plan_id(_say(service, "pay 10 NEAR to acme/widgets"))

    assert _say(service, "approve plan-0000000000") == f"Pending plan mismatch. Expected {plan_id}."
    assert _say(service, f"approve {plan_id}").startswith("✅ Distributed")


def test_expired_plan_is_discarded(service, paid_split, ledger):
    _say(service, "mode draft")
    _say(service, "pay 10 NEAR to acme/widgets")
    plan = service.contexts.get("acme")["pending_plan"]
    stale = plan.model_copy(update={"expires_at": plan.created_at - timedelta(seconds=1)})
    service.contexts.update("acme", {"pending_plan": stale})

    assert _say(service, "approve") == f"Plan {plan.id} expired. Request a fresh plan."
    assert _say(service, "approve") == "No pending plan to approve."
    assert ledger.receipts() == []


def test_cancel_discards_plan(service, paid_split):
    _say(service, "mode draft")
    _say(service, "pay 10 NEAR to acme/widgets")

    assert _say(service, "cancel") == "Cancelled pending plan."
    assert _say(service, "approve") == "No pending plan to approve."


def test_switching_mode_discards_plan(service, paid_split):
    _say(service, "mode draft")
    _say(service, "pay 10 NEAR to acme/widgets")
    _say(service, "mode execute")

    assert _say(service, "approve") == "No pending plan to approve."


def test_required_approval_plans_in_execute_mode(tools, ledger):
    service = CommandService(
        build_default_agent(tools),
        CommandSettings(policy=PolicySettings(require_approval=True)),
    )

    reply = _say(service, "create acme/widgets", near_account_id="acme.near")

    assert reply.startswith("🧭 Execution plan prepared (create).")
    assert ledger.get_split(REPO) is None

    _say(service, f"approve {_plan_id(reply)}", near_account_id="acme.near")

    assert ledger.get_split(REPO) is not None


def test_execution_remembers_repo_per_author(service):
    _say(service, "analyze acme/widgets")

    memory = service.contexts.get("acme")["repo_memory"][REPO]
    assert len(memory["last_analysis_hash"]) == 16
    assert "last_split_id" not in memory
    assert service.contexts.get("acme")["last_analysis"]["repo_url"] == REPO
    assert "last_analysis" not in service.contexts.get("someone-else")


def test_context_store_returns_copies_and_drops_message():
    store = UserContextStore()

    store.update("acme", {"message": "ignored", "note": {"a": 1}})
    snapshot = store.get("acme")
    snapshot["note"]["a"] = 2

    assert store.get("acme")["note"] == {"a": 1}
    assert "message" not in store.get("acme")
    store.update("acme", {"note": None})
    assert "note" not in store.get("acme")
    store.clear("acme")
    assert store.get("acme") == {"author": "acme", "repo_memory": {}}


def test_replay_reruns_a_parsed_command(service, paid_split, ledger):
    first = service.handle_detailed(AgentMessage(text="pay 10 NEAR to acme/widgets", author="acme"))
    assert first.response.startswith("✅ Distributed")
    assert first.event_id is not None

    reply = _say(service, f"replay {first.event_id}")

    assert reply.startswith(f"🔁 Replay {first.event_id}\n\n✅ Distributed")
    assert len(ledger.receipts()) == 2


def test_only_parsed_commands_are_replayable(service):
    assert service.handle_detailed(AgentMessage(text="mode draft", author="acme")).event_id is None
    assert service.handle_detailed(AgentMessage(text="hello there", author="acme")).event_id is None
    assert len(service.replays) == 0


def test_replay_of_unknown_or_foreign_id(service):
    outcome = service.handle_detailed(AgentMessage(text="analyze acme/widgets", author="acme"))

    assert _say(service, "replay deadbeef") == "Replay id not found: deadbeef"
    assert _say(service, f"replay {outcome.event_id}", author="mallory") == f"Replay id not found: {outcome.event_id}"


def test_replay_expires_after_a_day(service):
    service.replays.register(
        "old0000000000000",
        AgentMessage(text="analyze acme/widgets", author="acme"),
        created_at=datetime.now(timezone.utc) - timedelta(hours=25),
    )

    assert _say(service, "replay old0000000000000") == "Replay id expired: old0000000000000"


def test_replay_store_drops_oldest_past_capacity():
    store = ReplayStore(max_size=2)
    for event_id in ("a", "b", "c"):
        store.register(event_id, AgentMessage(text="analyze acme/widgets", author="acme"))

    assert store.get("a") is None
    assert store.get("c").message.text == "analyze acme/widgets"
    assert len(store) == 2
