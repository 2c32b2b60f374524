"""Tests for intent parsing, dispatch and the tool registry."""

import re

import pytest

from app.services.agent_framework import (
    Agent,
    Intent,
    IntentResult,
    ToolNotFoundError,
    ToolRegistry,
    Validation,
)


def _echo_intent(name: str, pattern: str, validate=None) -> Intent:
    def execute(params, context, tools):
        return IntentResult(response=f"{name}:{params}", context={**context, "last": name})

    return Intent(
        name=name,
        patterns=[re.compile(pattern, re.IGNORECASE)],
        extract_params=lambda m: m.groupdict(),
        execute=execute,
        validate=validate,
    )


def test_registration_order_wins():
    agent = Agent()
    agent.register_intent(_echo_intent("first", r"repo (?P<repo>\S+)"))
    agent.register_intent(_echo_intent("second", r"repo (?P<repo>\S+)"))

    intent, params = agent.parse_intent("repo a/b")

    assert intent.name == "first"
    assert params == {"repo": "a/b"}


def test_no_match_returns_none():
    agent = Agent()
    agent.register_intent(_echo_intent("analyze", r"^analyze (?P<repo>\S+)"))

    assert agent.parse_intent("hello") is None
    assert agent.parse_intent_detailed("   ") is None


def test_full_match_at_start_of_named_intent_is_fully_confident():
    agent = Agent()
    agent.register_intent(_echo_intent("analyze", r"^analyze (?P<repo>\S+)$"))

    match = agent.parse_intent_detailed("analyze a/b")

    assert match is not None
    assert match.confidence == 1.0
    assert match.matched_text == "analyze a/b"


def test_partial_match_lowers_confidence():
    agent = Agent()
    agent.register_intent(_echo_intent("pay", r"pay (?P<amount>\d+)"))

    match = agent.parse_intent_detailed("please could you pay 10 now")

    assert match is not None
    assert match.confidence == pytest.approx(0.4 + (len("pay 10") / len("please could you pay 10 now")) * 0.6)


def test_execute_returns_validation_error_without_running():
    calls = []

    def execute(params, context, tools):
        calls.append(params)
        return IntentResult(response="ran")

    intent = Intent(
        name="pay",
        patterns=[re.compile(r"pay")],
        extract_params=lambda m: {},
        execute=execute,
        validate=lambda params: Validation(False, "Amount must be positive"),
    )

    result = Agent().execute(intent, {}, {"x": 1})

    assert result.response == "❌ Amount must be positive"
    assert result.context == {"x": 1}
    assert calls == []


def test_execute_passes_context_and_tools():
    agent = Agent(ToolRegistry(github="gh"))
    intent = _echo_intent("echo", r"echo")

    result = agent.execute(intent, {"a": 1}, {"prior": True})

    assert result.response == "echo:{'a': 1}"
    assert result.context == {"prior": True, "last": "echo"}


def test_registry_raises_for_missing_tool():
    tools = ToolRegistry(github="gh")

    assert tools.github == "gh"
    assert tools.has("github")
    assert not tools.has("splits")
    with pytest.raises(ToolNotFoundError, match="Tool not found: splits"):
        _ = tools.splits


def test_register_tool_through_agent():
    agent = Agent()
    agent.register_tool("payments", "engine")

    assert agent.tools.payments == "engine"
    assert agent.tools.names() == ["payments"]


def test_get_intent_by_name():
    agent = Agent()
    intent = _echo_intent("verify", r"verify")
    agent.register_intent(intent)

    assert agent.get_intent_by_name("verify") is intent
    assert agent.get_intent_by_name("missing") is None
    assert agent.intents == [intent]
