"""
Full-plan generation workflow using LangGraph.

    build_prompt -> call_model -> finalize -> END

Errors raised by a node (validation, transport, timeout) propagate out of
run(); no partial plan is committed because persistence happens only in the
final node.
"""

import logging
from typing import List, Optional, TypedDict

from langgraph.graph import END, StateGraph

from .config import Settings
from .data.models import HouseholdProfile, MealPlan, PantryItem
from .llm_provider import LLMProvider
from .prompt_builder import Prompt, PromptBuilder, PromptKind
from .reconciliation import PlanReconciliationEngine

logger = logging.getLogger(__name__)


class PlanGenerationState(TypedDict):
    """State for the plan generation workflow."""
    profile: HouseholdProfile
    pantry: List[PantryItem]

    prompt: Optional[Prompt]
    raw_response: Optional[str]

    plan: Optional[MealPlan]


class PlanGenerationWorkflow:
    """Runs prompt construction, the model call and reconciliation in order."""

    def __init__(
        self,
        provider: LLMProvider,
        engine: PlanReconciliationEngine,
        settings: Optional[Settings] = None,
        prompts: Optional[PromptBuilder] = None,
    ):
        self.provider = provider
        self.engine = engine
        self.settings = settings or Settings()
        self.prompts = prompts or PromptBuilder(self.settings.budget_tiers)
        self.graph = self._build_graph()

    def _build_graph(self):
        workflow = StateGraph(PlanGenerationState)

        workflow.add_node("build_prompt", self._build_prompt_node)
        workflow.add_node("call_model", self._call_model_node)
        workflow.add_node("finalize", self._finalize_node)

        workflow.set_entry_point("build_prompt")
        workflow.add_edge("build_prompt", "call_model")
        workflow.add_edge("call_model", "finalize")
        workflow.add_edge("finalize", END)

        return workflow.compile()

    async def _build_prompt_node(self, state: PlanGenerationState) -> PlanGenerationState:
        state["prompt"] = self.prompts.build(PromptKind.FULL_PLAN, state["profile"], state["pantry"])
        return state

    async def _call_model_node(self, state: PlanGenerationState) -> PlanGenerationState:
        prompt = state["prompt"]
        logger.info("[PLAN] Requesting 7-day plan from model")
        state["raw_response"] = await self.provider.complete(
            prompt.user,
            system=prompt.system,
            timeout=self.settings.plan_timeout,
        )
        logger.debug(f"[PLAN] Response length={len(state['raw_response'] or '')}")
        return state

    async def _finalize_node(self, state: PlanGenerationState) -> PlanGenerationState:
        state["plan"] = await self.engine.finalize_generated_plan(state["raw_response"], state["profile"])
        return state

    async def run(self, profile: HouseholdProfile, pantry: Optional[List[PantryItem]] = None) -> MealPlan:
        initial_state = PlanGenerationState(
            profile=profile,
            pantry=list(pantry or []),
            prompt=None,
            raw_response=None,
            plan=None,
        )
        final_state = await self.graph.ainvoke(initial_state)
        return final_state["plan"]
