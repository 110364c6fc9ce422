"""
Recipe Cache.

Maps meal name -> Recipe, keyed by the exact meal string in the plan. Filled
lazily on first view, or in bulk after a plan is generated. Entries are never
invalidated automatically: a meal with the same name reuses its recipe across
plans.

Bulk prefetch runs in fixed-size batches (3 by default) and writes the cache
back after every batch, so an interrupted prefetch loses at most one batch.

This module owns the single policy for recipes that come back without
instructions (see RecipeCache.apply_instruction_policy).
"""

import asyncio
import logging
import math
from typing import Dict, List, Optional

from .config import Settings
from .data.models import HouseholdProfile, MealPlan, Recipe
from .data.storage import MealPlanStore
from .errors import NormalizationFailure
from .llm_provider import LLMProvider
from .normalizer import normalize_recipe
from .prompt_builder import PromptBuilder

logger = logging.getLogger(__name__)


# Generic steps by cooking-method keyword, checked in order
FALLBACK_INSTRUCTIONS = [
    (("scrambled", "eggs"), [
        "Heat a pan over medium heat with butter or oil",
        "Crack eggs into a bowl and whisk well",
        "Pour eggs into the heated pan",
        "Stir gently until eggs are cooked to desired consistency",
        "Season with salt and pepper to taste",
    ]),
    (("grilled", "grill"), [
        "Preheat grill to medium-high heat",
        "Season the meat with salt, pepper, and desired spices",
        "Place on grill and cook for appropriate time",
        "Flip halfway through cooking",
        "Check internal temperature for doneness",
    ]),
    (("baked", "roast"), [
        "Preheat oven to 375°F (190°C)",
        "Season the ingredients as desired",
        "Place in a baking dish",
        "Bake for appropriate time based on ingredients",
        "Check for doneness before serving",
    ]),
    (("stir-fry", "fried"), [
        "Heat oil in a large pan or wok over high heat",
        "Add ingredients starting with those that take longest to cook",
        "Stir frequently to prevent burning",
        "Season as desired",
        "Cook until all ingredients are properly cooked",
    ]),
]


def fallback_instructions(meal_name: str) -> List[str]:
    """Generic steps chosen by keywords in the meal name."""
    lowered = meal_name.lower()
    for keywords, steps in FALLBACK_INSTRUCTIONS:
        if any(keyword in lowered for keyword in keywords):
            return list(steps)
    return [
        f"Prepare all ingredients for {meal_name}",
        "Cook according to your preferred method",
        "Season to taste",
        "Serve hot",
    ]


def servings_for(plan: MealPlan, meal_name: str, profile: HouseholdProfile) -> int:
    """
    Servings one cooking session must yield.

    Under Weekly Meal Prep a meal is cooked once for every day it is
    scheduled, so base servings are multiplied by that day count.
    """
    base = max(profile.servings, 1)
    if not profile.is_weekly_meal_prep:
        return base
    days = sum(1 for day in plan.days if meal_name in day.meals.cooked_meals())
    return base * max(days, 1)


class RecipeCache:
    """Name-keyed recipe store backed by MealPlanStore."""

    def __init__(
        self,
        store: MealPlanStore,
        provider: LLMProvider,
        settings: Optional[Settings] = None,
        prompts: Optional[PromptBuilder] = None,
    ):
        self.store = store
        self.provider = provider
        self.settings = settings or Settings()
        self.prompts = prompts or PromptBuilder(self.settings.budget_tiers)
        self._recipes: Optional[Dict[str, Recipe]] = None
        self._load_lock = asyncio.Lock()

    async def load(self) -> Dict[str, Recipe]:
        """Read the stored cache once; every caller shares the same dict."""
        if self._recipes is not None:
            return self._recipes
        async with self._load_lock:
            if self._recipes is None:
                self._recipes = await self.store.get_recipes()
                logger.debug(f"[RECIPE_CACHE] Loaded {len(self._recipes)} cached recipes")
        return self._recipes

    async def cached(self, name: str) -> Optional[Recipe]:
        return (await self.load()).get(name)

    def apply_instruction_policy(self, recipe: Recipe) -> Recipe:
        """
        Handle a parsed recipe with no instructions.

        Fabricates generic steps (flagged with instructions_generated) unless
        fabricate_missing_instructions is off, in which case it raises.
        """
        if recipe.unavailable or recipe.has_instructions():
            return recipe
        if not self.settings.fabricate_missing_instructions:
            raise NormalizationFailure(f"Recipe '{recipe.name}' came back without instructions")
        logger.warning(f"[RECIPE_CACHE] No instructions for '{recipe.name}', generating fallback steps")
        recipe.instructions = fallback_instructions(recipe.name)
        recipe.instructions_generated = True
        return recipe

    async def _expand(self, name: str, profile: HouseholdProfile, servings: int) -> Recipe:
        prompt = self.prompts.recipe_expansion(profile, name, servings=servings)
        logger.info(f"[RECIPE_CACHE] Expanding '{name}' for {servings} servings")
        text = await self.provider.complete(
            prompt.user,
            system=prompt.system,
            timeout=self.settings.recipe_timeout,
        )
        recipe = self.apply_instruction_policy(normalize_recipe(text, name))
        if recipe.servings is None:
            recipe.servings = servings
        return recipe

    async def get(
        self,
        name: str,
        profile: HouseholdProfile,
        servings: Optional[int] = None,
    ) -> Recipe:
        """
        Return the cached recipe for name, expanding and caching on a miss.

        A sentinel "unavailable" recipe is returned but not cached, so the
        next view retries.
        """
        recipes = await self.load()
        if name in recipes:
            logger.debug(f"[RECIPE_CACHE] Hit: '{name}'")
            return recipes[name]

        recipe = await self._expand(name, profile, servings or profile.servings)
        if recipe.unavailable:
            logger.warning(f"[RECIPE_CACHE] '{name}' could not be parsed, not caching")
            return recipe

        recipes[name] = recipe
        await self.store.save_recipes(recipes)
        return recipe

    async def prefetch_all(self, plan: MealPlan, profile: HouseholdProfile) -> Dict[str, Recipe]:
        """
        Expand every uncached breakfast/lunch/dinner in the plan.

        Snacks are store-bought and skipped. Failures are logged per meal and
        never abort the rest of the prefetch.

        Returns:
            Snapshot of the full cache after prefetch
        """
        recipes = await self.load()
        to_load = [name for name in plan.unique_cooked_meals() if name not in recipes]
        if not to_load:
            logger.info("[RECIPE_CACHE] All recipes already cached")
            return dict(recipes)

        batch_size = max(self.settings.recipe_batch_size, 1)
        total_batches = math.ceil(len(to_load) / batch_size)
        logger.info(f"[RECIPE_CACHE] Need to load {len(to_load)} new recipes in {total_batches} batches")

        for batch_no, start in enumerate(range(0, len(to_load), batch_size), start=1):
            batch = to_load[start:start + batch_size]
            results = await asyncio.gather(
                *(self._expand(name, profile, servings_for(plan, name, profile)) for name in batch),
                return_exceptions=True,
            )
            for name, result in zip(batch, results):
                if isinstance(result, Exception):
                    logger.error(f"[RECIPE_CACHE] Failed to load recipe for '{name}': {result}")
                    continue
                if isinstance(result, BaseException):
                    raise result
                if result.unavailable:
                    logger.warning(f"[RECIPE_CACHE] '{name}' could not be parsed, skipping")
                    continue
                recipes[name] = result

            await self.store.save_recipes(recipes)
            logger.info(f"[RECIPE_CACHE] Loaded batch {batch_no} of {total_batches}")

        return dict(recipes)
