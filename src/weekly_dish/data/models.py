"""
Data models for the Weekly Dish planning core.

These models define the core entities used throughout the system:
- HouseholdProfile: Who we cook for, budget, tools and preferences
- PantryItem: Inventory captured by photo or barcode
- MealPlan / DayPlan / Meals: The 7-day schedule of meal slots
- Recipe: Expanded recipe detail, cached by meal name
- ShoppingList: Store sections with priced items
"""

import copy
import random
import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Union

DAY_NAMES = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]
DAYS_PER_PLAN = 7

AUTO_ACCEPT_CONFIDENCE = 7
BARCODE_CONFIDENCE = 10


class CookingTool(str, Enum):
    """Kitchen equipment a household may own."""
    STOVE = "Stove"
    OVEN = "Oven"
    MICROWAVE = "Microwave"
    AIR_FRYER = "Air Fryer"
    INSTANT_POT = "Instant Pot"
    SLOW_COOKER = "Slow Cooker"
    GRILL = "Grill"


class SkillLevel(str, Enum):
    BEGINNER = "Beginner"
    INTERMEDIATE = "Intermediate"
    ADVANCED = "Advanced"


class PrepStyle(str, Enum):
    """How the household cooks across the week."""
    COOK_EVERY_MEAL = "Cook Every Meal"
    COOK_ONCE_DAILY = "Cook Once Daily"
    WEEKLY_MEAL_PREP = "Weekly Meal Prep"


class MealType(str, Enum):
    """Cooked meal slots in a day. Snacks are tracked separately."""
    BREAKFAST = "breakfast"
    LUNCH = "lunch"
    DINNER = "dinner"

    @classmethod
    def parse(cls, value: Union[str, "MealType"]) -> "MealType":
        """Accept 'Lunch', 'lunch' or MealType.LUNCH."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(f"Unknown meal type: {value!r}") from None


def new_item_id() -> str:
    """Generation-time id: millisecond timestamp plus a random suffix."""
    return f"{int(time.time() * 1000)}-{random.randint(0, 999999):06d}"


def _as_list(value: Any) -> List[Any]:
    if value is None:
        return []
    if isinstance(value, (list, tuple, set)):
        return list(value)
    return [value]


@dataclass
class HouseholdProfile:
    """Household preferences collected during onboarding."""

    adults: int = 2
    kids: int = 0
    kid_ages: List[Optional[int]] = field(default_factory=list)
    weekly_budget: Optional[float] = None

    cooking_tools: List[str] = field(default_factory=list)
    skill_level: str = SkillLevel.BEGINNER.value
    meal_difficulty: str = "Easy (under 15 min)"
    prep_style: str = PrepStyle.COOK_EVERY_MEAL.value

    cuisine_types: List[str] = field(default_factory=list)
    diet_type: str = "None"
    custom_diet: str = ""
    dietary_restrictions: str = ""
    food_goals: List[str] = field(default_factory=list)
    meal_types: List[str] = field(default_factory=lambda: ["Breakfast", "Lunch", "Dinner"])
    snack_types: List[str] = field(default_factory=list)

    @property
    def servings(self) -> int:
        """Base servings for one meal: every adult and kid."""
        return int(self.adults or 0) + int(self.kids or 0)

    @property
    def is_weekly_meal_prep(self) -> bool:
        return self.prep_style == PrepStyle.WEEKLY_MEAL_PREP.value

    @property
    def wants_snacks(self) -> bool:
        return len(self.snack_types) > 0

    def effective_diet(self) -> Optional[str]:
        """
        Diet that compliance text should name.

        "Other" defers to custom_diet (None when that is blank); "None" and
        the empty string mean no diet rules apply.
        """
        diet = (self.diet_type or "").strip()
        if diet == "Other":
            custom = (self.custom_diet or "").strip()
            return custom or None
        if diet in ("", "None"):
            return None
        return diet

    def validate(self) -> None:
        """
        Fail fast on profiles the prompt builder cannot use.

        Raises:
            ValidationFailure: adults < 1 or weekly_budget missing / <= 0
        """
        from ..errors import ValidationFailure

        if self.adults is None or int(self.adults) < 1:
            raise ValidationFailure("Household must include at least one adult", field="adults")
        if self.kids is not None and int(self.kids) < 0:
            raise ValidationFailure("Number of kids cannot be negative", field="kids")
        if self.weekly_budget is None:
            raise ValidationFailure("Weekly budget is required", field="weekly_budget")
        if float(self.weekly_budget) <= 0:
            raise ValidationFailure("Weekly budget must be greater than zero", field="weekly_budget")

    def to_dict(self) -> Dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "adults": self.adults,
            "kids": self.kids,
            "kid_ages": self.kid_ages,
            "weekly_budget": self.weekly_budget,
            "cooking_tools": self.cooking_tools,
            "skill_level": self.skill_level,
            "meal_difficulty": self.meal_difficulty,
            "prep_style": self.prep_style,
            "cuisine_types": self.cuisine_types,
            "diet_type": self.diet_type,
            "custom_diet": self.custom_diet,
            "dietary_restrictions": self.dietary_restrictions,
            "food_goals": self.food_goals,
            "meal_types": self.meal_types,
            "snack_types": self.snack_types,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "HouseholdProfile":
        """Create HouseholdProfile from dictionary (form values may be strings)."""
        budget = data.get("weekly_budget")
        return cls(
            adults=int(data.get("adults", 2)),
            kids=int(data.get("kids", 0)),
            kid_ages=list(data.get("kid_ages", [])),
            weekly_budget=float(budget) if budget not in (None, "") else None,
            cooking_tools=[str(t) for t in _as_list(data.get("cooking_tools"))],
            skill_level=data.get("skill_level", SkillLevel.BEGINNER.value),
            meal_difficulty=data.get("meal_difficulty", "Easy (under 15 min)"),
            prep_style=data.get("prep_style", PrepStyle.COOK_EVERY_MEAL.value),
            cuisine_types=_as_list(data.get("cuisine_types")),
            diet_type=data.get("diet_type", "None") or "None",
            custom_diet=data.get("custom_diet", "") or "",
            dietary_restrictions=data.get("dietary_restrictions", "") or "",
            food_goals=_as_list(data.get("food_goals")),
            meal_types=_as_list(data.get("meal_types", ["Breakfast", "Lunch", "Dinner"])),
            snack_types=_as_list(data.get("snack_types")),
        )


@dataclass
class PantryItem:
    """Single pantry inventory record."""

    name: str
    brand: str = "Generic"
    quantity: str = "1 item"
    category: str = "General"
    confidence: int = BARCODE_CONFIDENCE
    id: str = field(default_factory=new_item_id)
    date_added: str = field(default_factory=lambda: datetime.now().isoformat())
    status: str = "in_stock"
    upc: Optional[str] = None

    @property
    def needs_verification(self) -> bool:
        return self.confidence < AUTO_ACCEPT_CONFIDENCE

    def __str__(self) -> str:
        return f"{self.name} ({self.quantity})"

    def to_dict(self) -> Dict:
        """Convert to dictionary for JSON serialization."""
        data = {
            "id": self.id,
            "name": self.name,
            "brand": self.brand,
            "quantity": self.quantity,
            "category": self.category,
            "confidence": self.confidence,
            "date_added": self.date_added,
            "status": self.status,
        }
        if self.upc:
            data["upc"] = self.upc
        return data

    @classmethod
    def from_dict(cls, data: Dict) -> "PantryItem":
        """Create PantryItem from dictionary."""
        return cls(
            id=str(data.get("id") or new_item_id()),
            name=str(data.get("name") or "Unknown Item"),
            brand=str(data.get("brand") or "Generic"),
            quantity=str(data.get("quantity") or "1 item"),
            category=str(data.get("category") or "General"),
            confidence=_clamp_confidence(data.get("confidence", BARCODE_CONFIDENCE)),
            date_added=data.get("date_added") or datetime.now().isoformat(),
            status=data.get("status", "in_stock"),
            upc=data.get("upc"),
        )


def _clamp_confidence(value: Any) -> int:
    try:
        confidence = int(round(float(value)))
    except (TypeError, ValueError):
        return 0
    return max(0, min(10, confidence))


@dataclass
class Meals:
    """Meal slot assignments for one day. Empty string means unplanned."""

    breakfast: str = ""
    lunch: str = ""
    dinner: str = ""
    snacks: List[str] = field(default_factory=list)

    def get(self, meal_type: Union[str, MealType]) -> str:
        return getattr(self, MealType.parse(meal_type).value)

    def cooked_meals(self) -> List[str]:
        """Non-empty breakfast, lunch and dinner names in slot order."""
        return [m for m in (self.breakfast, self.lunch, self.dinner) if m]

    def to_dict(self) -> Dict:
        data = {
            "breakfast": self.breakfast,
            "lunch": self.lunch,
            "dinner": self.dinner,
        }
        if self.snacks:
            data["snacks"] = list(self.snacks)
        return data

    @classmethod
    def from_dict(cls, data: Dict) -> "Meals":
        return cls(
            breakfast=data.get("breakfast") or "",
            lunch=data.get("lunch") or "",
            dinner=data.get("dinner") or "",
            snacks=[str(s) for s in _as_list(data.get("snacks"))],
        )


@dataclass
class DayPlan:
    """One day of a meal plan."""

    day: str
    meals: Meals = field(default_factory=Meals)

    def to_dict(self) -> Dict:
        return {"day": self.day, "meals": self.meals.to_dict()}

    @classmethod
    def from_dict(cls, data: Dict) -> "DayPlan":
        return cls(day=data["day"], meals=Meals.from_dict(data.get("meals") or {}))


@dataclass
class MealPlan:
    """Seven-day meal plan for one household."""

    days: List[DayPlan]
    id: Optional[str] = None
    created_at: Optional[datetime] = None
    week_budget: Optional[float] = None

    def meal_at(self, day_index: int, meal_type: Union[str, MealType]) -> str:
        return self.days[day_index].meals.get(meal_type)

    def days_with_meal(self, meal_type: Union[str, MealType], meal_name: str) -> List[int]:
        """Indices of days whose slot holds exactly meal_name."""
        return [
            idx for idx, day in enumerate(self.days)
            if day.meals.get(meal_type) == meal_name
        ]

    def all_cooked_meals(self) -> List[str]:
        """Every breakfast/lunch/dinner occurrence, in day order (duplicates kept)."""
        meals = []
        for day in self.days:
            meals.extend(day.meals.cooked_meals())
        return meals

    def unique_cooked_meals(self) -> List[str]:
        """Distinct breakfast/lunch/dinner names in first-seen order."""
        return list(dict.fromkeys(self.all_cooked_meals()))

    def unique_snacks(self) -> List[str]:
        snacks = []
        for day in self.days:
            snacks.extend(day.meals.snacks)
        return list(dict.fromkeys(snacks))

    def is_empty(self) -> bool:
        return not self.all_cooked_meals() and not self.unique_snacks()

    def copy(self) -> "MealPlan":
        """Deep copy; callers may keep holding the original snapshot."""
        return copy.deepcopy(self)

    def get_summary(self) -> str:
        return f"Meal Plan {self.id}: {len(self.days)} days, {len(self.unique_cooked_meals())} unique meals"

    def __str__(self) -> str:
        return self.get_summary()

    def to_dict(self) -> Dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "week_budget": self.week_budget,
            "days": [day.to_dict() for day in self.days],
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "MealPlan":
        """Create MealPlan from dictionary."""
        created_at = data.get("created_at")
        return cls(
            id=data.get("id"),
            created_at=datetime.fromisoformat(created_at) if created_at else None,
            week_budget=data.get("week_budget"),
            days=[DayPlan.from_dict(d) for d in data.get("days", [])],
        )


@dataclass
class NutritionInfo:
    """Nutrition per serving. Values are kept as the model reported them."""
    calories: Optional[Union[float, str]] = None
    protein: Optional[Union[float, str]] = None
    carbs: Optional[Union[float, str]] = None
    fat: Optional[Union[float, str]] = None

    def __str__(self) -> str:
        parts = []
        if self.calories:
            parts.append(f"{self.calories} cal")
        if self.protein:
            parts.append(f"{self.protein} protein")
        if self.carbs:
            parts.append(f"{self.carbs} carbs")
        return ", ".join(parts) if parts else "Nutrition info unavailable"


@dataclass
class Recipe:
    """Expanded recipe detail, keyed by meal name in the recipe cache."""

    name: str
    ingredients: List[str] = field(default_factory=list)
    instructions: List[str] = field(default_factory=list)
    prep_time: str = ""
    cook_time: str = ""
    total_time: str = ""
    cost: float = 0.0
    nutrition: NutritionInfo = field(default_factory=NutritionInfo)
    tips: str = ""
    storage: str = ""
    reheating: str = ""
    youtube_links: List[str] = field(default_factory=list)

    servings: Optional[int] = None
    difficulty: Optional[str] = None
    equipment: List[str] = field(default_factory=list)
    substitutions: List[str] = field(default_factory=list)
    instructions_generated: bool = False
    unavailable: bool = False

    def has_instructions(self) -> bool:
        return any(step.strip() for step in self.instructions)

    def to_dict(self) -> Dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "name": self.name,
            "ingredients": self.ingredients,
            "instructions": self.instructions,
            "prep_time": self.prep_time,
            "cook_time": self.cook_time,
            "total_time": self.total_time,
            "cost": self.cost,
            "nutrition": self.nutrition.__dict__,
            "tips": self.tips,
            "storage": self.storage,
            "reheating": self.reheating,
            "youtube_links": self.youtube_links,
            "servings": self.servings,
            "difficulty": self.difficulty,
            "equipment": self.equipment,
            "substitutions": self.substitutions,
            "instructions_generated": self.instructions_generated,
            "unavailable": self.unavailable,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "Recipe":
        """Create Recipe from dictionary."""
        recipe_data = {**data}
        recipe_data["nutrition"] = NutritionInfo(**(data.get("nutrition") or {}))
        return cls(**recipe_data)


@dataclass
class QuickMeal:
    """A single meal that can be cooked right now from pantry items."""
    meal: str
    recipe: Recipe

    def to_dict(self) -> Dict:
        return {"meal": self.meal, "recipe": self.recipe.to_dict()}


@dataclass
class ShoppingItem:
    """Single priced line on a shopping list."""
    name: str
    quantity: str = ""
    price: float = 0.0

    def to_dict(self) -> Dict:
        return {"quantity": self.quantity, "name": self.name, "price": self.price}

    @classmethod
    def from_dict(cls, data: Dict) -> "ShoppingItem":
        return cls(
            name=data.get("name", ""),
            quantity=data.get("quantity", ""),
            price=float(data.get("price") or 0.0),
        )


@dataclass
class ShoppingSection:
    """Items grouped under one store section."""
    category: str
    items: List[ShoppingItem] = field(default_factory=list)

    def to_dict(self) -> Dict:
        return {"category": self.category, "items": [i.to_dict() for i in self.items]}

    @classmethod
    def from_dict(cls, data: Dict) -> "ShoppingSection":
        return cls(
            category=data.get("category", ""),
            items=[ShoppingItem.from_dict(i) for i in data.get("items", [])],
        )


@dataclass
class ShoppingList:
    """Shopping list for the current meal plan."""

    sections: List[ShoppingSection] = field(default_factory=list)
    total_cost: float = 0.0
    under_budget: bool = True
    saving_tips: Optional[Union[str, List[str]]] = None
    budget_difference: Optional[float] = None
    declared_total: Optional[float] = None
    created_at: datetime = field(default_factory=datetime.now)

    def all_items(self) -> List[ShoppingItem]:
        return [item for section in self.sections for item in section.items]

    @property
    def item_count(self) -> int:
        return len(self.all_items())

    def to_dict(self) -> Dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "sections": [s.to_dict() for s in self.sections],
            "total_cost": self.total_cost,
            "under_budget": self.under_budget,
            "saving_tips": self.saving_tips,
            "budget_difference": self.budget_difference,
            "declared_total": self.declared_total,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "ShoppingList":
        """Create ShoppingList from dictionary."""
        created_at = data.get("created_at")
        return cls(
            sections=[ShoppingSection.from_dict(s) for s in data.get("sections", [])],
            total_cost=float(data.get("total_cost") or 0.0),
            under_budget=bool(data.get("under_budget", True)),
            saving_tips=data.get("saving_tips"),
            budget_difference=data.get("budget_difference"),
            declared_total=data.get("declared_total"),
            created_at=datetime.fromisoformat(created_at) if created_at else datetime.now(),
        )
