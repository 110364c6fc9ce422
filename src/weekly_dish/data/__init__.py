"""
Data layer - domain models and durable key-value persistence.
"""

from weekly_dish.data.models import (
    DAY_NAMES,
    DAYS_PER_PLAN,
    DayPlan,
    HouseholdProfile,
    MealPlan,
    Meals,
    MealType,
    PantryItem,
    PrepStyle,
    QuickMeal,
    Recipe,
    ShoppingItem,
    ShoppingList,
    ShoppingSection,
)
from weekly_dish.data.storage import (
    InMemoryKeyValueStore,
    KeyValueStore,
    MealPlanStore,
    SqliteKeyValueStore,
    StorageKeys,
)

__all__ = [
    "DAY_NAMES",
    "DAYS_PER_PLAN",
    "DayPlan",
    "HouseholdProfile",
    "MealPlan",
    "Meals",
    "MealType",
    "PantryItem",
    "PrepStyle",
    "QuickMeal",
    "Recipe",
    "ShoppingItem",
    "ShoppingList",
    "ShoppingSection",
    "InMemoryKeyValueStore",
    "KeyValueStore",
    "MealPlanStore",
    "SqliteKeyValueStore",
    "StorageKeys",
]
