"""
Integration test for the plan lifecycle through MealPlanningAssistant.

This test verifies:
1. Generate a plan (LangGraph workflow) and prefetch its recipes
2. Accept it, producing a budget-evaluated shopping list
3. Replace a meal, invalidating acceptance and the list
4. Re-accept, then restore everything from storage in a new assistant
5. Delete the plan
"""

import asyncio
import json
import logging
from unittest.mock import Mock

import pytest
import requests

from weekly_dish.assistant import MealPlanningAssistant
from weekly_dish.data.models import PantryItem
from weekly_dish.data.storage import InMemoryKeyValueStore
from weekly_dish.errors import NormalizationFailure, TransportFailure, ValidationFailure
from weekly_dish.pantry import BarcodeLookup
from weekly_dish.prompt_builder import MEAL_PREP_RECIPE_SYSTEM_PROMPT, RECIPE_SYSTEM_PROMPT
from weekly_dish.reconciliation import PlanState

from fakes import SHOPPING_JSON, ScriptedLLMProvider, plan_json, recipe_json

pytestmark = pytest.mark.integration


def _recipe_for(prompt):
    return recipe_json(prompt.split('recipe for "')[1].split('"')[0])


def _responses(**overrides):
    responses = {
        "plan": plan_json(),
        "recipe": _recipe_for,
        "shopping": SHOPPING_JSON,
        "replacement": "  Pork Stir Fry\n",
        "quick_meal": json.dumps({"meal": "Egg Fried Rice", "recipe": {
            "ingredients": ["2 cups rice", "3 eggs"], "instructions": [],
        }}),
    }
    responses.update(overrides)
    return responses


@pytest.fixture
def make_assistant(settings):
    created = []

    def make(llm, kv=None):
        assistant = MealPlanningAssistant(
            settings=settings,
            provider=llm,
            kv=kv or InMemoryKeyValueStore(),
            barcode_lookup=BarcodeLookup(session=Mock(spec=requests.Session)),
        )
        created.append(assistant)
        return assistant

    yield make
    for assistant in created:
        assistant.close()


@pytest.mark.asyncio
async def test_full_plan_lifecycle(make_assistant, profile, caplog):
    caplog.set_level(logging.INFO, logger="weekly_dish")
    kv = InMemoryKeyValueStore()
    llm = ScriptedLLMProvider(_responses())
    assistant = make_assistant(llm, kv)
    await assistant.save_profile(profile)

    # 1. Generate and prefetch
    plan = await assistant.generate_plan()
    recipes = await assistant.wait_for_prefetch()

    assert plan.id
    assert assistant.engine.state == PlanState.GENERATED
    assert len(recipes) == 21
    assert llm.calls_of("plan")[0]["timeout"] == 120.0
    assert "CRITICAL BUDGET REQUIREMENT" in llm.calls_of("plan")[0]["prompt"]

    # 2. Accept
    accepted = await assistant.accept_plan()
    assert accepted.shopping_list.total_cost == pytest.approx(15.97)
    assert accepted.shopping_list.under_budget
    assert assistant.is_accepted
    status = await assistant.budget_status()
    assert status.describe() == "Within Budget ($134.03 under)"
    assert llm.calls_of("shopping")[0]["timeout"] == 300.0

    # 3. Replace Wednesday's dinner
    scope = await assistant.request_replacement(2, "dinner")
    assert not scope.requires_choice
    result = await assistant.replace_meal(2, "dinner")

    assert result.new_meal == "Pork Stir Fry"
    assert assistant.plan.days[2].meals.dinner == "Pork Stir Fry"
    assert assistant.plan.days[3].meals.dinner == "Dinner 4"
    assert not assistant.is_accepted
    assert await assistant.get_shopping_list() is None
    replacement_call = llm.calls_of("replacement")[0]
    assert replacement_call["timeout"] == 30.0
    assert "Current meal: Dinner 3" in replacement_call["prompt"]
    assert "for Wednesday" in replacement_call["prompt"]

    # Recipe for the new meal is expanded lazily
    recipe = await assistant.get_recipe("Pork Stir Fry")
    assert recipe.name == "Pork Stir Fry"
    assert len(llm.calls_of("recipe")) == 22

    # 4. Re-accept and restore
    await assistant.accept_plan()
    assert len(llm.calls_of("shopping")) == 2

    restored = make_assistant(ScriptedLLMProvider(), kv)
    loaded = await restored.load()
    assert loaded.days[2].meals.dinner == "Pork Stir Fry"
    assert restored.is_accepted
    assert restored.engine.state == PlanState.ACCEPTED
    assert (await restored.get_recipe("Dinner 1")).name == "Dinner 1"

    # 5. Delete
    await assistant.delete_plan()
    assert assistant.plan is None
    assert await assistant.get_shopping_list() is None
    assert len(await assistant.saved_plans()) == 1

    messages = [entry.message for entry in assistant.debug_log.entries]
    assert any("[PLAN] Current plan deleted" in m for m in messages)


@pytest.mark.asyncio
async def test_meal_prep_replace_all_days(make_assistant, meal_prep_profile):
    drifted = plan_json(dinners=["Turkey Chili"] * 6 + ["Beef Tacos"])
    llm = ScriptedLLMProvider(_responses(plan=drifted))
    assistant = make_assistant(llm)
    await assistant.save_profile(meal_prep_profile)

    plan = await assistant.generate_plan(prefetch_recipes=False)
    assert {d.meals.dinner for d in plan.days} == {"Turkey Chili"}
    assert {d.meals.breakfast for d in plan.days} == {"Breakfast 1"}

    scope = await assistant.request_replacement(0, "dinner")
    assert scope.requires_choice
    assert scope.all_matching == list(range(7))

    result = await assistant.replace_meal(0, "dinner", replace_all=True)
    assert result.day_indices == list(range(7))
    assert {d.meals.dinner for d in assistant.plan.days} == {"Pork Stir Fry"}
    assert "weekly meal prep" in llm.calls_of("replacement")[0]["prompt"]

    recipe = await assistant.get_recipe("Pork Stir Fry")
    assert recipe.servings == 21


@pytest.mark.asyncio
async def test_failed_acceptance_keeps_plan_unaccepted(make_assistant, profile):
    llm = ScriptedLLMProvider(_responses(shopping=TransportFailure("backend down", status_code=502)))
    assistant = make_assistant(llm)
    await assistant.save_profile(profile)
    await assistant.generate_plan(prefetch_recipes=False)

    with pytest.raises(TransportFailure):
        await assistant.accept_plan()

    assert not assistant.is_accepted
    assert assistant.engine.state == PlanState.GENERATED
    assert await assistant.get_shopping_list() is None


@pytest.mark.asyncio
async def test_blank_replacement_leaves_plan(make_assistant, profile):
    llm = ScriptedLLMProvider(_responses(replacement="   "))
    assistant = make_assistant(llm)
    await assistant.save_profile(profile)
    plan = await assistant.generate_plan(prefetch_recipes=False)

    with pytest.raises(NormalizationFailure):
        await assistant.replace_meal(0, "lunch")

    assert assistant.plan.to_dict() == plan.to_dict()


@pytest.mark.asyncio
async def test_generation_failure_commits_nothing(make_assistant, profile):
    llm = ScriptedLLMProvider(_responses(plan=TransportFailure("timeout upstream")))
    assistant = make_assistant(llm)
    await assistant.save_profile(profile)

    with pytest.raises(TransportFailure):
        await assistant.generate_plan()

    assert assistant.plan is None
    assert await assistant.store.get_current_plan() is None


@pytest.mark.asyncio
async def test_requires_profile(make_assistant):
    assistant = make_assistant(ScriptedLLMProvider(_responses()))
    with pytest.raises(ValidationFailure) as exc:
        await assistant.generate_plan()
    assert exc.value.field == "profile"


@pytest.mark.asyncio
async def test_quick_meal_from_pantry(make_assistant, profile):
    llm = ScriptedLLMProvider(_responses())
    assistant = make_assistant(llm)
    await assistant.save_profile(profile)

    with pytest.raises(ValidationFailure):
        await assistant.quick_meal()
    assert llm.calls_of("quick_meal") == []

    await assistant.store.save_pantry([PantryItem(name="Rice"), PantryItem(name="Eggs")])
    quick = await assistant.quick_meal()

    assert quick.meal == "Egg Fried Rice"
    assert quick.recipe.instructions_generated
    call = llm.calls_of("quick_meal")[0]
    assert call["max_tokens"] == 1000
    assert call["timeout"] == 60.0


class BlockingRecipeProvider(ScriptedLLMProvider):
    """Recipe expansions wait until release is set; other kinds answer at once."""

    def __init__(self, responses):
        super().__init__(responses)
        self.release = asyncio.Event()

    async def complete(self, prompt, image=None, *, system=None, timeout=120.0, max_tokens=4096):
        if system in (RECIPE_SYSTEM_PROMPT, MEAL_PREP_RECIPE_SYSTEM_PROMPT):
            await self.release.wait()
        return await super().complete(prompt, image, system=system, timeout=timeout, max_tokens=max_tokens)


@pytest.mark.asyncio
async def test_regeneration_cancels_pending_prefetch(make_assistant, profile):
    llm = BlockingRecipeProvider(_responses())
    assistant = make_assistant(llm)
    await assistant.save_profile(profile)

    await assistant.generate_plan()
    first = assistant._prefetch_task
    await asyncio.sleep(0)
    assert not first.done()

    await assistant.generate_plan()
    second = assistant._prefetch_task

    assert first.cancelled()
    assert second is not first
    assert not second.done()

    await assistant.aclose()
    assert second.cancelled()
    assert await assistant.wait_for_prefetch() == {}


@pytest.mark.asyncio
async def test_prefetch_finishes_after_release(make_assistant, profile):
    llm = BlockingRecipeProvider(_responses())
    assistant = make_assistant(llm)
    await assistant.save_profile(profile)

    await assistant.generate_plan()
    llm.release.set()
    recipes = await assistant.wait_for_prefetch()

    assert len(recipes) == 21
