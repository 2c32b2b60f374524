"""Intent-based agent: ordered regex intents dispatched over a registry of tools."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Pattern

logger = logging.getLogger(__name__)


class ToolNotFoundError(LookupError):
    """Raised when an intent asks for a collaborator that was never registered."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Tool not found: {name}")


@dataclass(frozen=True)
class Validation:
    valid: bool
    error: Optional[str] = None


@dataclass
class IntentResult:
    response: str
    context: dict[str, Any] = field(default_factory=dict)


@dataclass
class Intent:
    name: str
    patterns: list[Pattern[str]]
    extract_params: Callable[[re.Match[str]], dict[str, Any]]
    execute: Callable[[dict[str, Any], dict[str, Any], "ToolRegistry"], IntentResult]
    validate: Optional[Callable[[dict[str, Any]], Validation]] = None


@dataclass(frozen=True)
class IntentMatch:
    intent: Intent
    params: dict[str, Any]
    confidence: float
    matched_text: str


class ToolRegistry:
    """Named collaborators available to intents.

    The four well-known tools can be passed at construction; anything else goes
    through ``register``. Missing tools raise ``ToolNotFoundError`` on access.
    """

    def __init__(
        self,
        *,
        github: Any = None,
        splits: Any = None,
        reputation: Any = None,
        payments: Any = None,
    ) -> None:
        self._tools: dict[str, Any] = {}
        for name, tool in (
            ("github", github),
            ("splits", splits),
            ("reputation", reputation),
            ("payments", payments),
        ):
            if tool is not None:
                self.register(name, tool)

    def register(self, name: str, tool: Any) -> None:
        self._tools[name] = tool

    def get(self, name: str) -> Any:
        try:
            return self._tools[name]
        except KeyError:
            raise ToolNotFoundError(name) from None

    def has(self, name: str) -> bool:
        return name in self._tools

    def names(self) -> list[str]:
        return sorted(self._tools)

    @property
    def github(self) -> Any:
        return self.get("github")

    @property
    def splits(self) -> Any:
        return self.get("splits")

    @property
    def reputation(self) -> Any:
        return self.get("reputation")

    @property
    def payments(self) -> Any:
        return self.get("payments")


def _match_confidence(intent_name: str, text: str, matched: str) -> float:
    length_score = len(matched) / len(text)
    prefix_score = 0.2 if text.lower().startswith(intent_name.lower()) else 0.0
    return max(0.0, min(1.0, 0.4 + length_score * 0.6 + prefix_score))


class Agent:
    def __init__(self, tools: ToolRegistry | None = None) -> None:
        self._intents: list[Intent] = []
        self._tools = tools or ToolRegistry()

    @property
    def tools(self) -> ToolRegistry:
        return self._tools

    @property
    def intents(self) -> list[Intent]:
        return list(self._intents)

    def register_intent(self, intent: Intent) -> None:
        self._intents.append(intent)

    def register_tool(self, name: str, tool: Any) -> None:
        self._tools.register(name, tool)

    def get_intent_by_name(self, name: str) -> Optional[Intent]:
        for intent in self._intents:
            if intent.name == name:
                return intent
        return None

    def parse_intent_detailed(self, text: str) -> Optional[IntentMatch]:
        """First matching pattern wins, in intent registration order then pattern order."""
        normalized = str(text or "").strip()
        if not normalized:
            return None
        for intent in self._intents:
            for pattern in intent.patterns:
                match = pattern.search(normalized)
                if match is None:
                    continue
                matched = match.group(0) or ""
                return IntentMatch(
                    intent=intent,
                    params=intent.extract_params(match),
                    confidence=_match_confidence(intent.name, normalized, matched),
                    matched_text=matched,
                )
        return None

    def parse_intent(self, text: str) -> Optional[tuple[Intent, dict[str, Any]]]:
        detailed = self.parse_intent_detailed(text)
        if detailed is None:
            return None
        return detailed.intent, detailed.params

    def execute(self, intent: Intent, params: dict[str, Any], context: dict[str, Any]) -> IntentResult:
        if intent.validate is not None:
            validation = intent.validate(params)
            if not validation.valid:
                return IntentResult(response=f"❌ {validation.error}", context=context)
        logger.debug("Executing intent %s with params %s", intent.name, params)
        return intent.execute(params, context, self._tools)
