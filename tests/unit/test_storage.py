"""
Unit tests for data/storage.py - key-value backends and typed accessors.
"""

from datetime import datetime

import pytest

from weekly_dish.data.models import HouseholdProfile, PantryItem, Recipe, ShoppingItem, ShoppingList, ShoppingSection
from weekly_dish.data.storage import InMemoryKeyValueStore, MealPlanStore, SqliteKeyValueStore, StorageKeys
from weekly_dish.normalizer import normalize_meal_plan

from fakes import plan_json


@pytest.fixture(params=["memory", "sqlite"])
def backend(request, tmp_path):
    if request.param == "memory":
        return InMemoryKeyValueStore()
    return SqliteKeyValueStore(str(tmp_path / "kv.db"))


class TestKeyValueStores:
    """Both backends honour the same contract."""

    @pytest.mark.asyncio
    async def test_get_set_remove(self, backend):
        assert await backend.get("k") is None
        await backend.set("k", "v1")
        await backend.set("k", "v2")
        assert await backend.get("k") == "v2"
        await backend.remove("k")
        assert await backend.get("k") is None

    @pytest.mark.asyncio
    async def test_clear(self, backend):
        await backend.set("a", "1")
        await backend.set("b", "2")
        await backend.clear()
        assert await backend.get("a") is None
        assert await backend.get("b") is None

    @pytest.mark.asyncio
    async def test_remove_missing_key(self, backend):
        await backend.remove("never-set")


class TestMealPlanStore:
    """Tests for typed records over a key-value store."""

    @pytest.mark.asyncio
    async def test_profile(self, store, profile):
        assert await store.get_profile() is None
        await store.save_profile(profile)
        loaded = await store.get_profile()
        assert isinstance(loaded, HouseholdProfile)
        assert loaded.to_dict() == profile.to_dict()

    @pytest.mark.asyncio
    async def test_plan_history_newest_first(self, store):
        first = normalize_meal_plan(plan_json())
        first.id, first.created_at = "p1", datetime(2026, 1, 5)
        second = normalize_meal_plan(plan_json())
        second.id = "p2"

        await store.prepend_plan(first)
        await store.prepend_plan(second)

        plans = await store.get_all_plans()
        assert [p.id for p in plans] == ["p2", "p1"]
        assert plans[1].created_at == datetime(2026, 1, 5)

    @pytest.mark.asyncio
    async def test_acceptance_flag(self, store, kv):
        assert await store.is_accepted() is False
        await store.set_accepted(True)
        assert await kv.get(StorageKeys.MEAL_PLAN_ACCEPTED) == "true"
        assert await store.is_accepted() is True
        await store.remove_accepted()
        assert await store.is_accepted() is False

    @pytest.mark.asyncio
    async def test_shopping_list(self, store):
        shopping_list = ShoppingList(
            sections=[ShoppingSection(category="Meat", items=[ShoppingItem(name="beef", quantity="2 lbs", price=9.98)])],
            total_cost=9.98,
            under_budget=True,
            budget_difference=90.02,
        )
        await store.save_shopping_list(shopping_list)
        loaded = await store.get_shopping_list()
        assert loaded.to_dict() == shopping_list.to_dict()

        await store.remove_shopping_list()
        assert await store.get_shopping_list() is None

    @pytest.mark.asyncio
    async def test_recipes(self, store):
        recipe = Recipe(name="Soup", instructions=["Simmer"], servings=4, instructions_generated=True)
        await store.save_recipes({"Soup": recipe})
        loaded = await store.get_recipes()
        assert loaded["Soup"].to_dict() == recipe.to_dict()

    @pytest.mark.asyncio
    async def test_pantry(self, store):
        items = [PantryItem(name="Oats", upc="123")]
        await store.save_pantry(items)
        loaded = await store.get_pantry()
        assert loaded[0].to_dict() == items[0].to_dict()

    @pytest.mark.asyncio
    async def test_corrupt_json_reads_as_missing(self, kv, store):
        await kv.set(StorageKeys.CURRENT_MEAL_PLAN, "{not json")
        assert await store.get_current_plan() is None

    @pytest.mark.asyncio
    async def test_unreadable_recipe_skipped(self, kv, store):
        await kv.set(StorageKeys.RECIPES, '{"Bad": {"name": "Bad", "unknown_field": 1}}')
        assert await store.get_recipes() == {}

    @pytest.mark.asyncio
    async def test_sqlite_persists_across_instances(self, tmp_path, profile):
        path = str(tmp_path / "nested" / "weekly.db")
        await MealPlanStore(SqliteKeyValueStore(path)).save_profile(profile)
        loaded = await MealPlanStore(SqliteKeyValueStore(path)).get_profile()
        assert loaded.weekly_budget == 150
