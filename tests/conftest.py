"""
Pytest configuration and shared fixtures.

Fixtures are reusable test setup that can be injected into tests.
"""

import pytest

from fakes import ScriptedLLMProvider
from weekly_dish.config import Settings
from weekly_dish.data.models import HouseholdProfile, PantryItem
from weekly_dish.data.storage import InMemoryKeyValueStore, MealPlanStore
from weekly_dish.events import EventBus
from weekly_dish.reconciliation import PlanReconciliationEngine


@pytest.fixture
def settings():
    """Settings that never touch the environment."""
    return Settings(use_null_llm=True, db_path=":memory:")


@pytest.fixture
def profile():
    """Two adults, cook-every-meal, $150/week, stove and oven."""
    return HouseholdProfile(
        adults=2,
        kids=0,
        weekly_budget=150,
        cooking_tools=["Stove", "Oven"],
        skill_level="Intermediate",
        prep_style="Cook Every Meal",
        cuisine_types=["Italian"],
    )


@pytest.fixture
def meal_prep_profile():
    """Weekly meal prep household on an ultra budget."""
    return HouseholdProfile(
        adults=2,
        kids=1,
        weekly_budget=100,
        cooking_tools=["Stove", "Oven"],
        prep_style="Weekly Meal Prep",
    )


@pytest.fixture
def pantry():
    return [
        PantryItem(name="Eggs", quantity="12 count", confidence=9),
        PantryItem(name="Rice", quantity="2 lbs", confidence=8),
    ]


@pytest.fixture
def kv():
    return InMemoryKeyValueStore()


@pytest.fixture
def store(kv):
    return MealPlanStore(kv)


@pytest.fixture
def events():
    return EventBus()


@pytest.fixture
def engine(store, events):
    return PlanReconciliationEngine(store, events)


@pytest.fixture
def llm():
    return ScriptedLLMProvider()
