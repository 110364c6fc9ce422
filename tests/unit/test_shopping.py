"""
Unit tests for shopping.py - shopping list generation.
"""

import json

import pytest

from weekly_dish.errors import TimeoutFailure, ValidationFailure
from weekly_dish.normalizer import normalize_meal_plan
from weekly_dish.shopping import ShoppingListGenerator

from fakes import SHOPPING_JSON, ScriptedLLMProvider, plan_json


@pytest.fixture
def plan():
    return normalize_meal_plan(plan_json(snacks=["Pretzels"]))


class TestShoppingListGenerator:
    """Tests for prompt -> model -> normalize -> budget."""

    @pytest.mark.asyncio
    async def test_budget_evaluated_from_items(self, settings, profile, pantry, plan):
        llm = ScriptedLLMProvider({"shopping": SHOPPING_JSON})
        shopping_list = await ShoppingListGenerator(llm, settings).generate(plan, profile, pantry)

        # Declared total (99.99) is ignored because the items sum to non-zero
        assert shopping_list.total_cost == pytest.approx(15.97)
        assert shopping_list.under_budget
        assert shopping_list.budget_difference == pytest.approx(134.03)
        assert shopping_list.item_count == 3
        assert shopping_list.saving_tips == "Buy store brand"

        call = llm.calls_of("shopping")[0]
        assert call["timeout"] == settings.shopping_list_timeout
        assert "Dinner 7" in call["prompt"]
        assert "Store-bought snacks to purchase: Pretzels" in call["prompt"]
        assert "Eggs (12 count)" in call["prompt"]

    @pytest.mark.asyncio
    async def test_over_budget(self, settings, profile, plan):
        response = json.dumps({"sections": [
            {"category": "Meat", "items": [{"quantity": "6 lbs", "name": "ribeye", "price": "$160.50"}]},
        ]})
        llm = ScriptedLLMProvider({"shopping": response})
        shopping_list = await ShoppingListGenerator(llm, settings).generate(plan, profile)

        assert shopping_list.total_cost == pytest.approx(160.5)
        assert not shopping_list.under_budget
        assert shopping_list.budget_difference == pytest.approx(10.5)

    @pytest.mark.asyncio
    async def test_empty_response_yields_sentinel(self, settings, profile, plan):
        llm = ScriptedLLMProvider({"shopping": ""})
        shopping_list = await ShoppingListGenerator(llm, settings).generate(plan, profile)

        assert [s.category for s in shopping_list.sections] == ["Error"]
        assert shopping_list.total_cost == 0

    @pytest.mark.asyncio
    async def test_timeout_propagates(self, settings, profile, plan):
        llm = ScriptedLLMProvider({"shopping": TimeoutFailure("slow", timeout=300.0)})
        with pytest.raises(TimeoutFailure):
            await ShoppingListGenerator(llm, settings).generate(plan, profile)

    @pytest.mark.asyncio
    async def test_invalid_profile_never_calls_model(self, settings, profile, plan):
        profile.weekly_budget = 0
        llm = ScriptedLLMProvider({"shopping": SHOPPING_JSON})

        with pytest.raises(ValidationFailure):
            await ShoppingListGenerator(llm, settings).generate(plan, profile)
        assert llm.calls == []
