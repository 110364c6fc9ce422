"""
Durable key-value storage for the Weekly Dish planning core.

The storage engine is an external collaborator; the core only needs
get/set/remove/clear over string values. Two implementations are provided:
- InMemoryKeyValueStore: process-local dict (tests, previews)
- SqliteKeyValueStore: single key/value table in a SQLite file

MealPlanStore layers typed accessors for the keys the core uses on top of
either implementation.
"""

import asyncio
import json
import logging
import sqlite3
from abc import ABC, abstractmethod
from datetime import datetime
from functools import partial
from pathlib import Path
from typing import Dict, List, Optional

from .models import HouseholdProfile, MealPlan, PantryItem, Recipe, ShoppingList

logger = logging.getLogger(__name__)


class StorageKeys:
    """Keys used by the planning core."""
    USER_PROFILE = "@weekly_dish_user_profile"
    PANTRY_ITEMS = "@weekly_dish_pantry"
    CURRENT_MEAL_PLAN = "@weekly_dish_current_meal_plan"
    MEAL_PLANS = "@weekly_dish_meal_plans"
    MEAL_PLAN_ACCEPTED = "@weekly_dish_meal_plan_accepted"
    SHOPPING_LIST = "@weekly_dish_shopping_list"
    RECIPES = "@weekly_dish_recipes"


class KeyValueStore(ABC):
    """Abstract durable key-value store."""

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """Return the stored string or None."""
        pass

    @abstractmethod
    async def set(self, key: str, value: str) -> None:
        pass

    @abstractmethod
    async def remove(self, key: str) -> None:
        pass

    @abstractmethod
    async def clear(self) -> None:
        pass


class InMemoryKeyValueStore(KeyValueStore):
    """Dict-backed store. Values are lost when the process exits."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        self._data[key] = value

    async def remove(self, key: str) -> None:
        self._data.pop(key, None)

    async def clear(self) -> None:
        self._data.clear()

    def keys(self) -> List[str]:
        return list(self._data.keys())


class SqliteKeyValueStore(KeyValueStore):
    """
    Key-value store backed by a single SQLite table.

    Queries run in the default executor so the event loop is not blocked.
    """

    def __init__(self, db_path: str = "data/weekly_dish.db"):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_database()

    def _init_database(self):
        with sqlite3.connect(self.db_path) as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS kv_store (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)
            conn.commit()

    async def _run(self, func, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, partial(func, *args))

    def _get_sync(self, key: str) -> Optional[str]:
        with sqlite3.connect(self.db_path) as conn:
            row = conn.execute("SELECT value FROM kv_store WHERE key = ?", (key,)).fetchone()
        return row[0] if row else None

    def _set_sync(self, key: str, value: str) -> None:
        with sqlite3.connect(self.db_path) as conn:
            conn.execute(
                """
                INSERT INTO kv_store (key, value, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
                """,
                (key, value, datetime.now().isoformat()),
            )
            conn.commit()

    def _remove_sync(self, key: str) -> None:
        with sqlite3.connect(self.db_path) as conn:
            conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))
            conn.commit()

    def _clear_sync(self) -> None:
        with sqlite3.connect(self.db_path) as conn:
            conn.execute("DELETE FROM kv_store")
            conn.commit()

    async def get(self, key: str) -> Optional[str]:
        return await self._run(self._get_sync, key)

    async def set(self, key: str, value: str) -> None:
        await self._run(self._set_sync, key, value)

    async def remove(self, key: str) -> None:
        await self._run(self._remove_sync, key)

    async def clear(self) -> None:
        await self._run(self._clear_sync)


class MealPlanStore:
    """Typed accessors over a KeyValueStore for the records the core persists."""

    def __init__(self, kv: KeyValueStore):
        self.kv = kv

    async def _get_json(self, key: str):
        raw = await self.kv.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning(f"[STORE] Corrupt JSON under {key}: {e}")
            return None

    async def _set_json(self, key: str, value) -> None:
        await self.kv.set(key, json.dumps(value))

    # Profile -----------------------------------------------------------------

    async def get_profile(self) -> Optional[HouseholdProfile]:
        data = await self._get_json(StorageKeys.USER_PROFILE)
        return HouseholdProfile.from_dict(data) if data else None

    async def save_profile(self, profile: HouseholdProfile) -> None:
        await self._set_json(StorageKeys.USER_PROFILE, profile.to_dict())

    # Pantry ------------------------------------------------------------------

    async def get_pantry(self) -> List[PantryItem]:
        data = await self._get_json(StorageKeys.PANTRY_ITEMS) or []
        return [PantryItem.from_dict(item) for item in data]

    async def save_pantry(self, items: List[PantryItem]) -> None:
        await self._set_json(StorageKeys.PANTRY_ITEMS, [item.to_dict() for item in items])

    # Meal plans --------------------------------------------------------------

    async def get_current_plan(self) -> Optional[MealPlan]:
        data = await self._get_json(StorageKeys.CURRENT_MEAL_PLAN)
        return MealPlan.from_dict(data) if data else None

    async def save_current_plan(self, plan: MealPlan) -> None:
        await self._set_json(StorageKeys.CURRENT_MEAL_PLAN, plan.to_dict())

    async def remove_current_plan(self) -> None:
        await self.kv.remove(StorageKeys.CURRENT_MEAL_PLAN)

    async def get_all_plans(self) -> List[MealPlan]:
        data = await self._get_json(StorageKeys.MEAL_PLANS) or []
        return [MealPlan.from_dict(p) for p in data]

    async def prepend_plan(self, plan: MealPlan) -> None:
        """Add a plan to the saved-plans history, newest first."""
        data = await self._get_json(StorageKeys.MEAL_PLANS) or []
        data.insert(0, plan.to_dict())
        await self._set_json(StorageKeys.MEAL_PLANS, data)

    async def is_accepted(self) -> bool:
        return (await self.kv.get(StorageKeys.MEAL_PLAN_ACCEPTED)) == "true"

    async def set_accepted(self, accepted: bool) -> None:
        await self.kv.set(StorageKeys.MEAL_PLAN_ACCEPTED, "true" if accepted else "false")

    async def remove_accepted(self) -> None:
        await self.kv.remove(StorageKeys.MEAL_PLAN_ACCEPTED)

    # Shopping list -----------------------------------------------------------

    async def get_shopping_list(self) -> Optional[ShoppingList]:
        data = await self._get_json(StorageKeys.SHOPPING_LIST)
        return ShoppingList.from_dict(data) if data else None

    async def save_shopping_list(self, shopping_list: ShoppingList) -> None:
        await self._set_json(StorageKeys.SHOPPING_LIST, shopping_list.to_dict())

    async def remove_shopping_list(self) -> None:
        await self.kv.remove(StorageKeys.SHOPPING_LIST)

    # Recipe cache ------------------------------------------------------------

    async def get_recipes(self) -> Dict[str, Recipe]:
        data = await self._get_json(StorageKeys.RECIPES) or {}
        recipes = {}
        for name, recipe_data in data.items():
            try:
                recipes[name] = Recipe.from_dict(recipe_data)
            except TypeError as e:
                logger.warning(f"[STORE] Skipping unreadable cached recipe '{name}': {e}")
        return recipes

    async def save_recipes(self, recipes: Dict[str, Recipe]) -> None:
        await self._set_json(
            StorageKeys.RECIPES,
            {name: recipe.to_dict() for name, recipe in recipes.items()},
        )
