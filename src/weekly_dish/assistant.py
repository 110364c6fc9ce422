"""
Main orchestrator for the Weekly Dish planning core.

MealPlanningAssistant is the composition root: it builds the provider,
storage, event bus, diagnostics buffer and every component, and exposes the
operations UI event handlers invoke. Plan generation, meal replacement and
plan acceptance are serialised with one asyncio.Lock.
"""

import asyncio
import logging
from typing import Dict, List, Optional

from .budget import BudgetStatus, evaluate_budget
from .config import Settings
from .data.models import HouseholdProfile, MealPlan, MealType, PantryItem, QuickMeal, Recipe, ShoppingList
from .data.storage import KeyValueStore, MealPlanStore, SqliteKeyValueStore
from .debug_log import DebugLog
from .errors import ValidationFailure
from .events import EventBus
from .llm_provider import LLMProvider, get_llm_provider
from .normalizer import normalize_quick_meal
from .pantry import BarcodeLookup, PantryManager
from .plan_workflow import PlanGenerationWorkflow
from .prompt_builder import PromptBuilder, PromptKind
from .recipe_cache import RecipeCache, servings_for
from .reconciliation import AcceptanceResult, PlanReconciliationEngine, ReplacementResult, ReplacementScope
from .shopping import ShoppingListGenerator

logger = logging.getLogger(__name__)

PACKAGE_LOGGER = "weekly_dish"
QUICK_MEAL_MAX_TOKENS = 1000


class MealPlanningAssistant:
    """Main orchestrator for the meal planning core."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        provider: Optional[LLMProvider] = None,
        kv: Optional[KeyValueStore] = None,
        barcode_lookup: Optional[BarcodeLookup] = None,
    ):
        """
        Initialize the Meal Planning Assistant.

        Args:
            settings: Runtime settings (defaults to Settings.from_env())
            provider: LLM provider (defaults to get_llm_provider from settings)
            kv: Durable key-value store (defaults to SQLite at settings.db_path)
            barcode_lookup: UPC lookup (defaults to the configured HTTP service)
        """
        self.settings = settings or Settings.from_env()
        self.provider = provider or get_llm_provider(
            api_key=self.settings.anthropic_api_key,
            use_null=self.settings.use_null_llm,
            model=self.settings.model,
        )
        self.store = MealPlanStore(kv or SqliteKeyValueStore(self.settings.db_path))

        self.events = EventBus()
        self.debug_log = DebugLog(capacity=self.settings.debug_log_capacity)
        logging.getLogger(PACKAGE_LOGGER).addHandler(self.debug_log)

        self.prompts = PromptBuilder(self.settings.budget_tiers)
        self.engine = PlanReconciliationEngine(self.store, self.events)
        self.recipes = RecipeCache(self.store, self.provider, self.settings, self.prompts)
        self.shopping = ShoppingListGenerator(self.provider, self.settings, self.prompts)
        self.pantry = PantryManager(self.store, self.provider, barcode_lookup, self.settings)
        self.workflow = PlanGenerationWorkflow(self.provider, self.engine, self.settings, self.prompts)

        self.plan: Optional[MealPlan] = None
        self._lock = asyncio.Lock()
        self._prefetch_task: Optional[asyncio.Task] = None

        logger.info(f"Meal Planning Assistant initialized (null_llm={self.provider.is_null})")

    def close(self) -> None:
        """Cancel any pending prefetch and detach the diagnostics handler."""
        if self._prefetch_task is not None and not self._prefetch_task.done():
            self._prefetch_task.cancel()
        logging.getLogger(PACKAGE_LOGGER).removeHandler(self.debug_log)

    async def aclose(self) -> None:
        """Cancel and wait for any pending prefetch, then close()."""
        await self._cancel_prefetch()
        self.close()

    # Profile -----------------------------------------------------------------

    async def save_profile(self, profile: HouseholdProfile) -> None:
        profile.validate()
        await self.store.save_profile(profile)

    async def get_profile(self) -> Optional[HouseholdProfile]:
        return await self.store.get_profile()

    async def _require_profile(self) -> HouseholdProfile:
        profile = await self.store.get_profile()
        if profile is None:
            raise ValidationFailure("No household profile saved", field="profile")
        profile.validate()
        return profile

    async def _pantry_items(self) -> List[PantryItem]:
        return await self.store.get_pantry()

    # Plan lifecycle ----------------------------------------------------------

    async def load(self) -> Optional[MealPlan]:
        """Restore the current plan and its acceptance state from storage."""
        self.plan = await self.engine.load_current()
        return self.plan

    def _require_plan(self) -> MealPlan:
        if self.plan is None:
            raise ValidationFailure("No current meal plan", field="plan")
        return self.plan

    async def generate_plan(self, prefetch_recipes: bool = True) -> MealPlan:
        """
        Generate, reconcile and persist a new 7-day plan.

        Recipes for the new plan are prefetched in the background unless
        prefetch_recipes is False; see wait_for_prefetch().
        """
        async with self._lock:
            profile = await self._require_profile()
            pantry = await self._pantry_items()
            await self._cancel_prefetch()
            plan = await self.workflow.run(profile, pantry)
            self.plan = plan

        if prefetch_recipes and not plan.is_empty():
            self._prefetch_task = asyncio.create_task(self.recipes.prefetch_all(plan, profile))
        return plan

    async def _cancel_prefetch(self) -> None:
        """Stop the previous plan's prefetch; recipes from finished batches stay cached."""
        task, self._prefetch_task = self._prefetch_task, None
        if task is None:
            return
        if not task.done():
            logger.info("[RECIPE_CACHE] Cancelling pending prefetch")
            task.cancel()
            await asyncio.wait({task})
        if not task.cancelled() and task.exception() is not None:
            logger.warning(f"[RECIPE_CACHE] Previous prefetch failed: {task.exception()}")

    async def wait_for_prefetch(self) -> Dict[str, Recipe]:
        if self._prefetch_task is None:
            return {}
        return await self._prefetch_task

    async def request_replacement(self, day_index: int, meal_type) -> ReplacementScope:
        """Scope for replacing one slot; ask the user when requires_choice is set."""
        profile = await self._require_profile()
        return self.engine.replace_meal(self._require_plan(), day_index, meal_type, profile)

    async def replace_meal(
        self,
        day_index: int,
        meal_type,
        replace_all: bool = False,
    ) -> ReplacementResult:
        """
        Ask the model for a replacement meal and apply it.

        Args:
            day_index: 0 = Monday
            meal_type: breakfast, lunch or dinner
            replace_all: apply to every day sharing the meal (meal prep only)

        Raises:
            NormalizationFailure: the model returned a blank name
            TransportFailure / TimeoutFailure: backend call failed
        """
        meal_type = MealType.parse(meal_type)
        async with self._lock:
            profile = await self._require_profile()
            plan = self._require_plan()
            scope = self.engine.replace_meal(plan, day_index, meal_type, profile)

            prompt = self.prompts.build(
                PromptKind.MEAL_REPLACEMENT,
                profile,
                await self._pantry_items(),
                meal_type=meal_type,
                current_meal=scope.current_meal or "(none planned)",
                day=plan.days[day_index].day,
            )
            text = await self.provider.complete(
                prompt.user,
                system=prompt.system,
                timeout=self.settings.replacement_timeout,
            )

            result = self.engine.apply_replacement(plan, scope.indices(replace_all), meal_type, text)
            await self.engine.persist_replacement(result)
            self.plan = result.plan
            return result

    async def accept_plan(self) -> AcceptanceResult:
        """
        Accept the current plan, generating its shopping list.

        On failure the error propagates and the plan stays unaccepted.
        """
        async with self._lock:
            profile = await self._require_profile()
            plan = self._require_plan()
            pantry = await self._pantry_items()

            async def generate(p: MealPlan) -> ShoppingList:
                return await self.shopping.generate(p, profile, pantry)

            return await self.engine.accept_plan(plan, generate)

    async def delete_plan(self) -> None:
        async with self._lock:
            await self.engine.delete_plan()
            self.plan = None

    async def saved_plans(self) -> List[MealPlan]:
        return await self.store.get_all_plans()

    @property
    def is_accepted(self) -> bool:
        return self.engine.accepted

    # Shopping list -----------------------------------------------------------

    async def get_shopping_list(self) -> Optional[ShoppingList]:
        return await self.store.get_shopping_list()

    async def budget_status(self) -> Optional[BudgetStatus]:
        shopping_list = await self.store.get_shopping_list()
        profile = await self.store.get_profile()
        if shopping_list is None or profile is None or not profile.weekly_budget:
            return None
        return evaluate_budget(shopping_list.total_cost, profile.weekly_budget)

    # Recipes -----------------------------------------------------------------

    async def get_recipe(self, name: str) -> Recipe:
        profile = await self._require_profile()
        servings = servings_for(self.plan, name, profile) if self.plan else profile.servings
        return await self.recipes.get(name, profile, servings)

    async def prefetch_recipes(self) -> Dict[str, Recipe]:
        profile = await self._require_profile()
        return await self.recipes.prefetch_all(self._require_plan(), profile)

    async def quick_meal(self) -> QuickMeal:
        """
        One meal cookable now from pantry items only.

        Raises:
            ValidationFailure: empty pantry or invalid profile
            NormalizationFailure: response held no usable meal
        """
        profile = await self._require_profile()
        prompt = self.prompts.build(PromptKind.QUICK_PANTRY_MEAL, profile, await self._pantry_items())
        text = await self.provider.complete(
            prompt.user,
            system=prompt.system,
            timeout=self.settings.quick_meal_timeout,
            max_tokens=QUICK_MEAL_MAX_TOKENS,
        )
        quick = normalize_quick_meal(text)
        quick.recipe = self.recipes.apply_instruction_policy(quick.recipe)
        return quick
