"""
LangGraph collaborative pipeline: initial analysis -> cross discussion -> synthesis.

Stages 1 and 2 fan out one independent upstream session per roster agent and
wait for every task to settle; a failing agent becomes a failed StageResult
and never cancels its siblings. Stage 3 is a single completion call and the
only fatal step. Cancellation is honoured at stage boundaries.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, TypedDict

from langgraph.graph import END, StateGraph

from assistant_gateway.agent.llm import UpstreamClient, describe_upstream_error
from assistant_gateway.agent.roster import AgentProfile
from assistant_gateway.core.config import (
    STAGE_TASK_TIMEOUT,
    SYNTHESIS_MAX_TOKENS,
    SYNTHESIS_MODEL,
    SYNTHESIS_TEMPERATURE,
)
from assistant_gateway.core.errors import MissingCredentialError, PipelineCancelledError, SynthesisError

logger = logging.getLogger(__name__)

ERROR_MARKER = "Error:"


class PipelineState(str, Enum):
    IDLE = "idle"
    STAGE1 = "stage1"
    STAGE2 = "stage2"
    STAGE3 = "stage3"
    DONE = "done"
    PARTIALLY_FAILED = "partially_failed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class StageResult:
    agent_id: str
    name: str
    text: str
    failed: bool = False


@dataclass
class CollaborativeResult:
    user_question: str
    stage1_results: list[StageResult]
    stage2_results: list[StageResult]
    final_answer: str
    timestamp: str
    status: PipelineState


class CollaborationState(TypedDict):
    question: str
    stage1: list
    stage2: list
    final_answer: str


def _initial_prompt(agent: AgentProfile, question: str) -> str:
    return f"""As {agent.label}, provide your initial analysis and thoughts on this user question:

"{question}"

Please provide:
1. Your specific perspective on this question
2. Key insights from your area of expertise
3. Initial recommendations or suggestions
4. Questions you might have for other team members

Keep your response focused and concise (2-3 paragraphs max)."""


def _discussion_prompt(agent: AgentProfile, shared_context: str) -> str:
    return f"""As {agent.display_name}, you've seen the initial thoughts from all team members:

{shared_context}

Now provide your thoughts on:
1. What insights do you agree with from other team members?
2. What additional perspectives can you add?
3. How can your expertise complement what others have suggested?
4. Any concerns or different viewpoints?
5. How should we proceed with the final recommendation?

Respond as if you're in a team meeting discussing this together."""


def _synthesis_system_prompt(roster: list[AgentProfile]) -> str:
    team = "\n".join(f"- {a.label}" for a in roster)
    return f"""You are synthesizing a comprehensive final answer from a collaborative AI team discussion.

The team consists of:
{team}

Create a well-structured final response that:
1. Acknowledges the collaborative process
2. Synthesizes the best insights from all team members
3. Provides a comprehensive, actionable answer
4. Shows how different perspectives contributed to the solution
5. Maintains a professional, helpful tone

Format the response with clear sections and make it easy to read."""


class CollaborativeOrchestrator:
    """
    One instance per collaborative request; it carries the run's state.

    task_timeout bounds each fanned-out agent task independently (None = wait
    indefinitely). A timed-out task settles as failed like any other error.
    """

    def __init__(
        self,
        upstream: UpstreamClient,
        roster: list[AgentProfile],
        *,
        task_timeout: float | None = STAGE_TASK_TIMEOUT,
        synthesis_model: str = SYNTHESIS_MODEL,
    ) -> None:
        if not roster:
            raise ValueError("roster must not be empty")
        self.upstream = upstream
        self.roster = list(roster)
        self.task_timeout = task_timeout
        self.synthesis_model = synthesis_model
        self.state = PipelineState.IDLE
        self._cancel_requested = False
        self._profiles = {a.id: a for a in self.roster}

    def cancel(self) -> None:
        """Stop the pipeline at the next stage boundary. Running tasks finish."""
        self._cancel_requested = True
        logger.info("[orchestrator:cancel] requested in state=%s", self.state.value)

    # --- shared context blocks (written once per stage, read-only afterwards) ---

    def _label(self, result: StageResult) -> str:
        profile = self._profiles.get(result.agent_id)
        return profile.label if profile else result.name

    def discussion_context(self, stage1: list[StageResult]) -> str:
        return "\n\n".join(f"**{self._label(r)}**: {r.text}" for r in stage1)

    def synthesis_context(self, stage1: list[StageResult], stage2: list[StageResult]) -> str:
        initial = "\n\n".join(f"**{self._label(r)}**: {r.text}" for r in stage1)
        discussion = "\n\n".join(f"**{r.name}**: {r.text}" for r in stage2)
        return f"\n**INITIAL THOUGHTS:**\n{initial}\n\n**TEAM DISCUSSION:**\n{discussion}\n"

    # --- fan-out ---

    async def _run_agent(self, agent: AgentProfile, prompt: str) -> StageResult:
        call = self.upstream.run_session(agent.id, prompt, additional_instructions=agent.instructions or None)
        if self.task_timeout is not None:
            text = await asyncio.wait_for(call, timeout=self.task_timeout)
        else:
            text = await call
        return StageResult(agent_id=agent.id, name=agent.display_name, text=text)

    async def _fan_out(self, stage: str, prompts: dict[str, str]) -> list[StageResult]:
        """Run one task per agent and wait until all have settled. Roster order is kept."""
        tasks = [self._run_agent(agent, prompts[agent.id]) for agent in self.roster]
        settled = await asyncio.gather(*tasks, return_exceptions=True)
        results: list[StageResult] = []
        for agent, outcome in zip(self.roster, settled):
            if isinstance(outcome, StageResult):
                results.append(outcome)
                continue
            if isinstance(outcome, MissingCredentialError):
                raise outcome
            if isinstance(outcome, asyncio.TimeoutError):
                reason = f"timed out after {self.task_timeout:g}s"
            else:
                reason = describe_upstream_error(outcome)
            logger.error("[orchestrator:%s] agent=%s failed: %s", stage, agent.display_name, reason)
            results.append(
                StageResult(agent_id=agent.id, name=agent.display_name, text=f"{ERROR_MARKER} {reason}", failed=True)
            )
        failed = sum(1 for r in results if r.failed)
        logger.info("[orchestrator:%s] OUT settled=%d failed=%d", stage, len(results), failed)
        return results

    # --- graph nodes ---

    async def _initial_analysis(self, state: CollaborationState) -> dict:
        self.state = PipelineState.STAGE1
        question = state["question"]
        logger.info("[orchestrator:initial_analysis] IN  agents=%d question_len=%d", len(self.roster), len(question))
        prompts = {a.id: _initial_prompt(a, question) for a in self.roster}
        return {"stage1": await self._fan_out("initial_analysis", prompts)}

    async def _cross_discussion(self, state: CollaborationState) -> dict:
        self.state = PipelineState.STAGE2
        shared_context = self.discussion_context(state["stage1"])
        logger.info("[orchestrator:cross_discussion] IN  context_len=%d", len(shared_context))
        prompts = {a.id: _discussion_prompt(a, shared_context) for a in self.roster}
        return {"stage2": await self._fan_out("cross_discussion", prompts)}

    async def _synthesis(self, state: CollaborationState) -> dict:
        self.state = PipelineState.STAGE3
        question = state["question"]
        context = self.synthesis_context(state["stage1"], state["stage2"])
        messages = [
            {"role": "system", "content": _synthesis_system_prompt(self.roster)},
            {
                "role": "user",
                "content": (
                    "Based on this collaborative team discussion, provide the final comprehensive "
                    f'answer to the user\'s question: "{question}"\n\n{context}'
                ),
            },
        ]
        logger.info("[orchestrator:synthesis] IN  prompt_len=%d model=%s", len(messages[1]["content"]), self.synthesis_model)
        try:
            answer = await self.upstream.complete(
                messages,
                model=self.synthesis_model,
                max_tokens=SYNTHESIS_MAX_TOKENS,
                temperature=SYNTHESIS_TEMPERATURE,
            )
        except MissingCredentialError:
            raise
        except Exception as e:
            self.state = PipelineState.FAILED
            logger.exception("[orchestrator:synthesis] failed")
            raise SynthesisError(
                "Failed to process group chat request", details=describe_upstream_error(e)
            ) from e
        if not answer:
            self.state = PipelineState.FAILED
            raise SynthesisError("Failed to process group chat request", details="No final answer generated")
        return {"final_answer": answer}

    def _route_after_stage(self, next_node: str):
        def route(state: CollaborationState) -> str:
            if self._cancel_requested:
                logger.info("[orchestrator:route] cancelled before %s", next_node)
                return END
            return next_node

        return route

    def build_graph(self):
        """
        initial_analysis -> cross_discussion -> synthesis -> END,
        leaving early to END at a boundary when cancel() was called.
        """
        graph = StateGraph(CollaborationState)
        graph.add_node("initial_analysis", self._initial_analysis)
        graph.add_node("cross_discussion", self._cross_discussion)
        graph.add_node("synthesis", self._synthesis)

        graph.set_entry_point("initial_analysis")
        graph.add_conditional_edges(
            "initial_analysis", self._route_after_stage("cross_discussion"), ["cross_discussion", END]
        )
        graph.add_conditional_edges("cross_discussion", self._route_after_stage("synthesis"), ["synthesis", END])
        graph.add_edge("synthesis", END)
        return graph.compile()

    async def run(self, question: str) -> CollaborativeResult:
        """Run all three stages. Raises SynthesisError, PipelineCancelledError or MissingCredentialError."""
        if not question or not question.strip():
            raise ValueError("question is required")
        if not self.upstream.has_credential:
            raise MissingCredentialError("Missing OPENAI_API_KEY")
        if self._cancel_requested:
            self.state = PipelineState.CANCELLED
            raise PipelineCancelledError("Collaboration cancelled")
        q = question.strip()
        logger.info("[orchestrator:run] START agents=%s", [a.display_name for a in self.roster])
        initial: CollaborationState = {"question": q, "stage1": [], "stage2": [], "final_answer": ""}
        final: dict[str, Any] = await self.build_graph().ainvoke(initial)

        if not final.get("final_answer"):
            self.state = PipelineState.CANCELLED
            raise PipelineCancelledError("Collaboration cancelled")
        stage1, stage2 = final["stage1"], final["stage2"]
        any_failed = any(r.failed for r in [*stage1, *stage2])
        self.state = PipelineState.PARTIALLY_FAILED if any_failed else PipelineState.DONE
        logger.info("[orchestrator:run] END state=%s answer_len=%d", self.state.value, len(final["final_answer"]))
        return CollaborativeResult(
            user_question=q,
            stage1_results=stage1,
            stage2_results=stage2,
            final_answer=final["final_answer"],
            timestamp=datetime.now(timezone.utc).isoformat(),
            status=self.state,
        )
