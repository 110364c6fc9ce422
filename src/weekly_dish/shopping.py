"""
Shopping list generation: prompt -> LLM -> normalizer -> budget evaluator.
"""

import logging
from typing import Optional, Sequence

from .budget import apply_budget
from .config import Settings
from .data.models import HouseholdProfile, MealPlan, PantryItem, ShoppingList
from .llm_provider import LLMProvider
from .normalizer import normalize_shopping_list
from .prompt_builder import PromptBuilder

logger = logging.getLogger(__name__)


class ShoppingListGenerator:
    """Generates a budget-evaluated shopping list for a plan."""

    def __init__(
        self,
        provider: LLMProvider,
        settings: Optional[Settings] = None,
        prompts: Optional[PromptBuilder] = None,
    ):
        self.provider = provider
        self.settings = settings or Settings()
        self.prompts = prompts or PromptBuilder(self.settings.budget_tiers)

    async def generate(
        self,
        plan: MealPlan,
        profile: HouseholdProfile,
        pantry: Sequence[PantryItem] = (),
    ) -> ShoppingList:
        """
        Raises:
            ValidationFailure: invalid profile
            TransportFailure / TimeoutFailure: backend call failed
        """
        profile.validate()
        prompt = self.prompts.shopping_list(profile, pantry, plan)
        logger.info(f"[SHOP] Generating shopping list for plan {plan.id}")

        text = await self.provider.complete(
            prompt.user,
            system=prompt.system,
            timeout=self.settings.shopping_list_timeout,
        )
        shopping_list = apply_budget(normalize_shopping_list(text), profile.weekly_budget)
        logger.info(
            f"[SHOP] {len(shopping_list.sections)} sections, {shopping_list.item_count} items, "
            f"total=${shopping_list.total_cost:.2f}"
        )
        return shopping_list
