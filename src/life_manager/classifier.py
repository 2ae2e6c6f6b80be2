from __future__ import annotations

import json
import re
from typing import Protocol, runtime_checkable

from loguru import logger

from life_manager.errors import BackendUnavailable
from life_manager.models import CALENDAR_AGENT, KNOWN_AGENTS, TASKS_AGENT, RoutingDecision
from life_manager.provider import LLMProvider
from life_manager.system_prompt import build_routing_prompt


@runtime_checkable
class Classifier(Protocol):
    async def classify(self, request: str) -> RoutingDecision: ...


def _words(*words: str) -> re.Pattern:
    return re.compile(r"\b(" + "|".join(words) + r")\b", re.I)


_SCHEDULE_RE = _words(
    "schedule", "agenda", "overview", "summary", "plans?", "planned",
    "what's on", "whats on", "what do i have", "busy", "free",
    "today", "tonight", "tomorrow", "week", "month", "year", "next 7 days", "upcoming",
)
_CALENDAR_RE = _words(
    "calendar", "events?", "meetings?", "appointments?", "call", "lunch", "dinner",
    "book", "reschedule",
)
_TASKS_RE = _words(
    "tasks?", "to-?dos?", "to do", "reminders?", "remind me", "deadlines?", "due",
    "overdue", "priority", "complete", "finish", "check off",
)


class KeywordClassifier:
    """Deterministic routing used when no model is configured and as the LLM fallback."""

    async def classify(self, request: str) -> RoutingDecision:
        agents: set[str] = set()
        reasons: list[str] = []

        if _CALENDAR_RE.search(request):
            agents.add(CALENDAR_AGENT)
            reasons.append("calendar keywords")
        if _TASKS_RE.search(request):
            agents.add(TASKS_AGENT)
            reasons.append("task keywords")
        if not agents and _SCHEDULE_RE.search(request):
            agents.update((CALENDAR_AGENT, TASKS_AGENT))
            reasons.append("schedule keywords")

        if not agents:
            return RoutingDecision.conversational("No calendar or task keywords")
        return RoutingDecision(frozenset(agents), "Matched " + " and ".join(reasons))


_JSON_OBJECT_RE = re.compile(r"\{[\s\S]*\}")


def parse_routing_reply(reply: str) -> RoutingDecision:
    match = _JSON_OBJECT_RE.search(reply)
    if not match:
        raise ValueError(f"Routing reply has no JSON object: {reply[:80]!r}")
    payload = json.loads(match.group(0))
    agents = payload.get("agents") or []
    if not isinstance(agents, list):
        raise ValueError("Routing reply 'agents' is not a list")
    names = {str(a).strip().lower() for a in agents}
    unknown = names - KNOWN_AGENTS
    if unknown:
        logger.debug(f"Routing reply named unknown agents: {sorted(unknown)}")
    return RoutingDecision(frozenset(names & KNOWN_AGENTS), str(payload.get("reasoning", "")))


class LLMClassifier:
    def __init__(
        self,
        provider: LLMProvider,
        *,
        model: str,
        max_tokens: int = 256,
        temperature: float = 0.0,
        fallback: Classifier | None = None,
    ):
        self._provider = provider
        self._model = model
        self._max_tokens = max_tokens
        self._temperature = temperature
        self._fallback = fallback

    async def classify(self, request: str) -> RoutingDecision:
        try:
            reply = await self._provider.complete(
                build_routing_prompt(),
                [{"role": "user", "content": request}],
                model=self._model,
                max_tokens=self._max_tokens,
                temperature=self._temperature,
            )
        except BackendUnavailable as ex:
            if self._fallback is None:
                raise
            logger.warning(f"Routing model unavailable, using keyword routing: {ex}")
            return await self._fallback.classify(request)

        try:
            decision = parse_routing_reply(reply)
        except ValueError as ex:
            if self._fallback is None:
                raise
            logger.warning(f"Unparseable routing reply, using keyword routing: {ex}")
            return await self._fallback.classify(request)
        logger.debug(f"Routing decision: agents={sorted(decision.agents)} reasoning={decision.reasoning!r}")
        return decision
