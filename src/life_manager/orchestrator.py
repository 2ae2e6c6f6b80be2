from __future__ import annotations

import asyncio
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import Protocol, runtime_checkable

from loguru import logger

from life_manager.agents.base import SpecializedAgent
from life_manager.agents.time_window import TimeWindow, resolve_time_window
from life_manager.aggregator import Aggregator, format_fallback
from life_manager.classifier import Classifier
from life_manager.errors import RunTimeout
from life_manager.models import (
    CALENDAR_AGENT,
    DIGEST_MARKER,
    TASKS_AGENT,
    AgentResult,
    RoutingDecision,
    RunHandle,
    Session,
)

DIGEST_REQUEST = "Give me a summary of my next 3 days."


class OrchestratorState(str, Enum):
    START = "start"
    ROUTE = "route"
    EXECUTE = "execute"
    AGGREGATE = "aggregate"
    END = "end"


@dataclass
class RunContext:
    """What a run has learned so far; read by the coordinator to build a timeout fallback."""

    request: str
    digest: bool = False
    window: TimeWindow | None = None
    decision: RoutingDecision | None = None
    results: list[AgentResult] = field(default_factory=list)
    states: list[OrchestratorState] = field(default_factory=list)

    @property
    def state(self) -> OrchestratorState | None:
        return self.states[-1] if self.states else None

    def enter(self, state: OrchestratorState) -> None:
        self.states.append(state)

    def fallback_text(self) -> str:
        label = self.window.label if self.window else "Next 7 Days"
        return format_fallback(list(self.results), digest=self.digest, label=label)


def parse_request(content: str) -> tuple[str, bool]:
    """Strip the digest marker; returns (clean request, is_digest)."""
    digest = DIGEST_MARKER in content
    clean = content.replace(DIGEST_MARKER, "").strip()
    if digest and not clean:
        clean = DIGEST_REQUEST
    return clean, digest


@runtime_checkable
class Engine(Protocol):
    async def run(self, request: str, session: Session, handle: RunHandle, context: RunContext) -> str: ...


class Orchestrator:
    """``START → ROUTE → EXECUTE → AGGREGATE → END``, skipping EXECUTE when no agent is selected."""

    def __init__(self, classifier: Classifier, agents: Iterable[SpecializedAgent], aggregator: Aggregator):
        self._classifier = classifier
        self._agents = {agent.name: agent for agent in agents}
        self._aggregator = aggregator

    @property
    def agent_names(self) -> list[str]:
        return sorted(self._agents)

    async def run(self, request: str, session: Session, handle: RunHandle, context: RunContext) -> str:
        context.enter(OrchestratorState.START)
        context.request, context.digest = parse_request(request)
        context.window = resolve_time_window(context.request, digest=context.digest)

        context.enter(OrchestratorState.ROUTE)
        decision = await self._route(context)
        self._ensure_live(handle)
        context.decision = decision
        logger.info(
            f"Run {handle.run_id}: agents={sorted(decision.agents) or 'none'} "
            f"digest={context.digest} reasoning={decision.reasoning!r}"
        )

        if decision.agents:
            context.enter(OrchestratorState.EXECUTE)
            results = await self._execute(decision, context, handle)
            self._ensure_live(handle)
            context.results = results

        context.enter(OrchestratorState.AGGREGATE)
        text = await self._aggregator.format(
            context.request,
            decision,
            context.results,
            digest=context.digest,
            label=context.window.label,
            history=session.history,
        )
        self._ensure_live(handle)

        context.enter(OrchestratorState.END)
        return text

    async def _route(self, context: RunContext) -> RoutingDecision:
        if context.digest:
            return RoutingDecision(frozenset({CALENDAR_AGENT, TASKS_AGENT}), "Start-of-conversation digest")

        try:
            decision = await self._classifier.classify(context.request)
        except asyncio.CancelledError:
            raise
        except Exception as ex:
            logger.warning(f"Classification failed, replying conversationally: {ex}")
            return RoutingDecision.conversational(f"Classification failed: {type(ex).__name__}")

        available = decision.agents & self._agents.keys()
        if available != decision.agents:
            logger.debug(f"Dropping unknown agents: {sorted(decision.agents - available)}")
            decision = RoutingDecision(frozenset(available), decision.reasoning)
        return decision

    async def _execute(self, decision: RoutingDecision, context: RunContext, handle: RunHandle) -> list[AgentResult]:
        async def run_one(agent: SpecializedAgent) -> AgentResult:
            try:
                result = await agent.process(context.request, context.window)
            except asyncio.CancelledError:
                raise
            except Exception as ex:
                logger.error(f"{agent.name} agent raised: {ex}")
                result = AgentResult(agent.name, data=[], error=str(ex) or type(ex).__name__)
            if not handle.is_terminal:
                # Visible to a timeout fallback before the join completes.
                context.results.append(result)
            return result

        selected = [self._agents[name] for name in sorted(decision.agents)]
        return list(await asyncio.gather(*(run_one(agent) for agent in selected)))

    @staticmethod
    def _ensure_live(handle: RunHandle) -> None:
        if handle.is_terminal:
            raise RunTimeout(handle.run_id, "abandoned")
