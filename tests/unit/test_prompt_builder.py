"""
Unit tests for prompt_builder.py - constraint prompts.

Golden fragments pin the budget tier boundaries, the spend window, tool
restrictions, diet compliance and meal-prep wording.
"""

from dataclasses import replace

import pytest

from weekly_dish.config import BudgetTier, BudgetTierTable
from weekly_dish.data.models import MealPlan, PantryItem
from weekly_dish.errors import ValidationFailure
from weekly_dish.normalizer import normalize_meal_plan
from weekly_dish.prompt_builder import (
    MEAL_PREP_RECIPE_SYSTEM_PROMPT,
    RECIPE_SYSTEM_PROMPT,
    PromptBuilder,
    PromptKind,
    build_prompt,
    forbidden_tools,
)

from fakes import plan_json


def _full_plan(profile, budget):
    return build_prompt(PromptKind.FULL_PLAN, replace(profile, weekly_budget=budget)).user


# =============================================================================
# Full plan
# =============================================================================

class TestBudgetTiers:
    """Tier selection is inclusive of each threshold."""

    def test_100_is_ultra(self, profile):
        text = _full_plan(profile, 100)
        assert "ULTRA BUDGET MEALS ONLY:" in text
        assert "NO steaks, NO seafood, NO expensive meats" in text

    def test_just_over_100_is_full(self, profile):
        text = _full_plan(profile, 100.01)
        assert "USE YOUR FULL $100.01 BUDGET:" in text
        assert "ULTRA BUDGET" not in text

    def test_150_is_full(self, profile):
        assert "USE YOUR FULL $150 BUDGET:" in _full_plan(profile, 150)

    def test_just_over_150_is_moderate(self, profile):
        text = _full_plan(profile, 150.01)
        assert "MODERATE BUDGET:" in text
        assert "USE YOUR FULL" not in text

    def test_injected_tier_table(self, profile):
        table = BudgetTierTable(tiers=[
            BudgetTier(name="only", heading="ANY BUDGET ${budget}", guidance=["Cook cheap"]),
        ])
        text = PromptBuilder(table).full_plan(profile, []).user
        assert "ANY BUDGET $150" in text
        assert "- Cook cheap" in text


class TestFullPlan:
    """Tests for the full-plan prompt."""

    def test_spend_window(self, profile):
        text = _full_plan(profile, 100)
        assert "CRITICAL BUDGET REQUIREMENT" in text
        assert "TARGET: $95-$100 total cost" in text
        assert "Daily target: $14.29/day" in text

    def test_forbidden_tools(self, profile):
        text = _full_plan(profile, 150)
        assert "DO NOT suggest any meals requiring: Slow Cooker, Instant Pot, Air Fryer, Grill, Smoker" in text
        assert "cooking tools: Stove, Oven" in text

    def test_owned_tools_not_forbidden(self, profile):
        owner = replace(profile, cooking_tools=["Stove", "Grill", "Air Fryer"])
        assert forbidden_tools(owner) == ["Slow Cooker", "Instant Pot", "Smoker"]

    def test_no_tools_uses_default_text(self, profile):
        text = build_prompt(PromptKind.FULL_PLAN, replace(profile, cooking_tools=[])).user
        assert "cooking tools: Basic stove and oven" in text

    def test_diet_compliance(self, profile):
        text = build_prompt(PromptKind.FULL_PLAN, replace(profile, diet_type="Keto")).user
        assert "STRICT DIET: Keto - All meals MUST comply with Keto diet rules." in text

    def test_custom_diet(self, profile):
        other = replace(profile, diet_type="Other", custom_diet="Low FODMAP")
        text = build_prompt(PromptKind.FULL_PLAN, other).user
        assert "STRICT DIET: Low FODMAP" in text

    def test_no_diet(self, profile):
        assert "STRICT DIET" not in _full_plan(profile, 150)

    def test_carnivore_guidance_up_to_150(self, profile):
        carnivore = replace(profile, diet_type="Carnivore")
        assert "BUDGET CARNIVORE GUIDELINES for $150/week" in _full_plan(carnivore, 150)
        assert "BUDGET CARNIVORE GUIDELINES" not in _full_plan(carnivore, 150.01)

    def test_meal_prep(self, meal_prep_profile):
        text = build_prompt(PromptKind.FULL_PLAN, meal_prep_profile).user
        assert "WEEKLY MEAL PREP REQUIRED:" in text
        assert "The SAME dinner must appear all 7 days" in text
        assert '"dinner": "[same dinner]"' in text
        assert "snacks" not in text.split("You MUST return this exact structure")[1].split("Replace")[0]

    def test_snacks(self, profile):
        with_snacks = replace(profile, snack_types=["Chips", "Fruit"])
        text = build_prompt(PromptKind.FULL_PLAN, with_snacks).user
        assert "IMPORTANT: Include Chips, Fruit as STORE-BOUGHT snacks for each day!" in text
        assert '"snacks": ["[snack]"]' in text
        assert "Do not include any snacks." in _full_plan(profile, 150)

    def test_pantry_listed(self, profile, pantry):
        text = build_prompt(PromptKind.FULL_PLAN, profile, pantry).user
        assert "Current pantry items available: Eggs (12 count), Rice (2 lbs)" in text

    def test_deterministic(self, profile, pantry):
        first = build_prompt(PromptKind.FULL_PLAN, profile, pantry)
        second = build_prompt(PromptKind.FULL_PLAN, profile, pantry)
        assert first == second


# =============================================================================
# Other kinds
# =============================================================================

class TestOtherKinds:
    """Tests for replacement, recipe, shopping and quick-meal prompts."""

    def test_replacement(self, profile):
        prompt = build_prompt(
            PromptKind.MEAL_REPLACEMENT, profile,
            meal_type="Dinner", current_meal="Tacos", day="Tuesday",
        )
        assert "Generate a replacement dinner meal for Tuesday" in prompt.user
        assert "Current meal: Tacos" in prompt.user
        assert prompt.user.endswith("Give me just the meal name, nothing else.")

    def test_replacement_requires_current_meal(self, profile):
        with pytest.raises(ValidationFailure) as exc:
            build_prompt(PromptKind.MEAL_REPLACEMENT, profile, meal_type="lunch")
        assert exc.value.field == "current_meal"

    def test_recipe_expansion(self, profile):
        prompt = build_prompt(PromptKind.RECIPE_EXPANSION, profile, recipe_name="Beef Stew")
        assert 'complete, detailed recipe for "Beef Stew" for 2 servings' in prompt.user
        assert prompt.system == RECIPE_SYSTEM_PROMPT

    def test_recipe_expansion_meal_prep(self, meal_prep_profile):
        prompt = build_prompt(
            PromptKind.RECIPE_EXPANSION, meal_prep_profile, recipe_name="Chili", servings=21,
        )
        assert "Make exactly 21 servings" in prompt.user
        assert "(MUST include 7-day meal prep storage)" in prompt.user
        assert prompt.system == MEAL_PREP_RECIPE_SYSTEM_PROMPT

    def test_recipe_expansion_blank_name(self, profile):
        with pytest.raises(ValidationFailure):
            PromptBuilder().recipe_expansion(profile, "  ")

    def test_shopping_list(self, profile, pantry):
        plan = normalize_meal_plan(plan_json(snacks=["Pretzels"]))
        prompt = build_prompt(PromptKind.SHOPPING_LIST, profile, pantry, plan=plan)
        assert "Breakfast 1, Lunch 1, Dinner 1" in prompt.user
        assert "Store-bought snacks to purchase: Pretzels" in prompt.user
        assert "STRICT Weekly budget: $150" in prompt.user

    def test_shopping_list_requires_plan(self, profile):
        with pytest.raises(ValidationFailure):
            build_prompt(PromptKind.SHOPPING_LIST, profile)

    def test_quick_meal(self, profile, pantry):
        prompt = build_prompt(PromptKind.QUICK_PANTRY_MEAL, profile, pantry)
        assert "I have these ingredients in my pantry: Eggs, Rice" in prompt.user
        assert "DO NOT suggest meals requiring: Slow Cooker, Instant Pot, Air Fryer, Smoker" in prompt.user

    def test_quick_meal_empty_pantry(self, profile):
        with pytest.raises(ValidationFailure) as exc:
            build_prompt(PromptKind.QUICK_PANTRY_MEAL, profile, [])
        assert exc.value.field == "pantry"


class TestProfileValidation:
    """Invalid profiles fail before any prompt is rendered."""

    def test_missing_budget(self, profile):
        with pytest.raises(ValidationFailure) as exc:
            build_prompt(PromptKind.FULL_PLAN, replace(profile, weekly_budget=None))
        assert exc.value.field == "weekly_budget"

    def test_zero_budget(self, profile):
        with pytest.raises(ValidationFailure):
            build_prompt(PromptKind.FULL_PLAN, replace(profile, weekly_budget=0))

    def test_no_adults(self, profile):
        with pytest.raises(ValidationFailure) as exc:
            build_prompt(PromptKind.FULL_PLAN, replace(profile, adults=0))
        assert exc.value.field == "adults"

    def test_plan_object_unchanged(self, profile):
        plan = normalize_meal_plan(plan_json())
        before = plan.to_dict()
        build_prompt(PromptKind.SHOPPING_LIST, profile, [PantryItem(name="Salt")], plan=plan)
        assert isinstance(plan, MealPlan)
        assert plan.to_dict() == before
