"""
Response Normalizer.

Turns the loosely structured text a generative model returns into the
canonical shapes in weekly_dish.data.models. Pure structural repair: no
business rules live here.

JSON extraction runs an ordered list of attempts, first success wins:
1. Parse the whole document.
2. Parse the first bracket-balanced [...] or {...} span.
3. Parse the interior of a fenced code block.
A top-level array is wrapped in the caller's envelope key when one is given.

Accepted synonym keys are finite module-level tuples. Bulk shapes (meal
plan, shopping list) degrade to an empty-but-valid value instead of raising;
only a blank single meal name is a hard NormalizationFailure.
"""

import json
import logging
import re
from datetime import datetime
from typing import Any, Dict, Iterator, List, Optional, Union

from .budget import declared_total, extract_price, parse_amount
from .data.models import (
    DAY_NAMES,
    DAYS_PER_PLAN,
    DayPlan,
    MealPlan,
    Meals,
    NutritionInfo,
    QuickMeal,
    Recipe,
    ShoppingItem,
    ShoppingList,
    ShoppingSection,
)
from .errors import NormalizationFailure

logger = logging.getLogger(__name__)

Raw = Union[str, Dict, List, None]

FENCED_BLOCK = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```")
MAX_SPAN_ATTEMPTS = 25

# Meal plan
MEAL_NAME_FIELDS = ("name", "title", "meal", "dish")
SNACK_FIELDS = ("snacks", "snack")

# Recipe
INSTRUCTION_FIELDS = (
    "instructions", "steps", "directions", "method", "procedure",
    "cooking_instructions", "preparation", "how_to_make", "recipe_steps",
)
STEP_TEXT_FIELDS = (
    "details", "instruction", "text", "step", "description",
    "content", "action", "procedure",
)
INGREDIENT_NAME_FIELDS = ("ingredient", "name", "item")
INGREDIENT_AMOUNT_FIELDS = ("quantity", "amount")
PREP_TIME_FIELDS = ("prepTime", "prep_time")
COOK_TIME_FIELDS = ("cookTime", "cook_time")
TOTAL_TIME_FIELDS = ("totalTime", "total_time")
COST_FIELDS = ("cost", "total_cost", "estimated_cost", "estimatedCost")
NUTRITION_FIELDS = ("nutrition", "nutritional_information", "nutrition_per_serving")
TIPS_FIELDS = ("tips", "pro_tips")
STORAGE_FIELDS = ("storage", "storage_instructions")
REHEATING_FIELDS = ("reheating", "reheating_instructions")
YOUTUBE_FIELDS = ("youtubeLinks", "youtube_links", "youtube_video_suggestions", "youtube_search_terms")
YOUTUBE_TEXT_FIELDS = ("search_term", "query", "title")
EQUIPMENT_FIELDS = ("equipment", "equipment_needed")
DIFFICULTY_FIELDS = ("difficulty", "difficulty_level")
STEP_SPLIT = re.compile(r"\n|\.(?=[A-Z])")

# Shopping list
SECTIONS_SYNONYMS = ("shopping_list", "store_sections", "shoppingList")
SECTION_CATEGORY_FIELDS = ("category", "name", "section")
SECTION_ITEMS_FIELDS = ("items", "products")
ITEM_NAME_FIELDS = ("name", "item", "description")
SAVING_TIPS_FIELDS = ("savingTips", "moneySavingTips", "saving_tips", "money_saving_tips")

# Pantry image analysis
PANTRY_ITEMS_ENVELOPE = "items"

UNAVAILABLE_RECIPE_TIP = "Please try loading the recipe again"
SHOPPING_RETRY_TIP = "Please try generating the list again"


# =============================================================================
# JSON extraction
# =============================================================================

def _loads(text: str) -> Optional[Union[Dict, List]]:
    try:
        value = json.loads(text)
    except (json.JSONDecodeError, ValueError):
        return None
    return value if isinstance(value, (dict, list)) else None


def _closing_index(text: str, start: int) -> Optional[int]:
    """Index of the bracket closing text[start], honouring JSON strings."""
    pairs = {"[": "]", "{": "}"}
    stack = [pairs[text[start]]]
    in_string = False
    escaped = False
    for idx in range(start + 1, len(text)):
        ch = text[idx]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch in pairs:
            stack.append(pairs[ch])
        elif ch in "]}":
            if ch != stack[-1]:
                return None
            stack.pop()
            if not stack:
                return idx
    return None


def _balanced_spans(text: str) -> Iterator[str]:
    attempts = 0
    for start, ch in enumerate(text):
        if ch not in "[{":
            continue
        end = _closing_index(text, start)
        if end is None:
            continue
        yield text[start:end + 1]
        attempts += 1
        if attempts >= MAX_SPAN_ATTEMPTS:
            return


def extract_json(raw: Raw, envelope: Optional[str] = None) -> Optional[Union[Dict, List]]:
    """
    Best-effort JSON extraction from model output.

    Args:
        raw: Response text, or an already-parsed dict/list
        envelope: Key to wrap a top-level array in, e.g. "days"

    Returns:
        dict or list, or None when nothing parseable was found
    """
    if isinstance(raw, (dict, list)):
        value = raw
    elif not isinstance(raw, str) or not raw.strip():
        return None
    else:
        text = raw.strip()
        value = _loads(text)
        if value is None:
            for span in _balanced_spans(text):
                value = _loads(span)
                if value is not None:
                    logger.debug("[NORMALIZE] Parsed embedded JSON span")
                    break
        if value is None:
            match = FENCED_BLOCK.search(text)
            if match:
                value = _loads(match.group(1))
        if value is None:
            logger.warning(f"[NORMALIZE] No JSON found in response ({len(text)} chars)")
            return None

    if isinstance(value, list) and envelope:
        return {envelope: value}
    return value


def _first(data: Dict, keys) -> Any:
    """First populated value among keys, or None."""
    for key in keys:
        value = data.get(key)
        if value not in (None, "", [], {}):
            return value
    return None


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


# =============================================================================
# Meal plan
# =============================================================================

def _meal_name(value: Any) -> str:
    if isinstance(value, dict):
        return _text(_first(value, MEAL_NAME_FIELDS))
    if isinstance(value, list):
        return _meal_name(value[0]) if value else ""
    return _text(value)


def _snacks(value: Any) -> List[str]:
    if value in (None, ""):
        return []
    if not isinstance(value, list):
        value = [value]
    snacks = [_meal_name(s) for s in value]
    return [s for s in snacks if s]


def _meals(data: Any) -> Meals:
    if not isinstance(data, dict):
        return Meals()
    lowered = {str(k).lower(): v for k, v in data.items()}
    return Meals(
        breakfast=_meal_name(lowered.get("breakfast")),
        lunch=_meal_name(lowered.get("lunch")),
        dinner=_meal_name(lowered.get("dinner")),
        snacks=_snacks(_first(lowered, SNACK_FIELDS)),
    )


def _day_plan(element: Any, index: int) -> DayPlan:
    positional = DAY_NAMES[index] if index < DAYS_PER_PLAN else f"Day {index + 1}"
    if not isinstance(element, dict):
        return DayPlan(day=positional)

    day = element.get("day")
    if not isinstance(day, str) or not day.strip():
        day = positional

    if isinstance(element.get("meals"), dict):
        return DayPlan(day=day.strip(), meals=_meals(element["meals"]))
    return DayPlan(day=day.strip(), meals=_meals(element))


def _days_from_map(day_map: Dict) -> List[Any]:
    """Convert {day_1: ..., day_7: ...} (or day-name keys) into a positional list."""
    days = []
    lowered = {str(k).lower(): v for k, v in day_map.items()}
    for idx, name in enumerate(DAY_NAMES):
        days.append(_first(lowered, (f"day_{idx + 1}", f"day{idx + 1}", name.lower())))
    return days


def _raw_days(data: Dict) -> List[Any]:
    days = data.get("days")
    if isinstance(days, list):
        return days
    if isinstance(days, dict):
        return _days_from_map(days)

    meal_plan = data.get("meal_plan") or data.get("mealPlan")
    if isinstance(meal_plan, list):
        return meal_plan
    if isinstance(meal_plan, dict):
        if isinstance(meal_plan.get("days"), list):
            return meal_plan["days"]
        return _days_from_map(meal_plan)
    return []


def _created_at(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str) and value.strip():
        try:
            return datetime.fromisoformat(value.strip())
        except ValueError:
            logger.warning(f"[NORMALIZE] Ignoring unreadable plan timestamp: {value!r}")
    return None


def _week_budget(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value
    return parse_amount(value) or None


def normalize_meal_plan(raw: Raw) -> MealPlan:
    """
    Normalize a generated plan into a MealPlan with exactly 7 days.

    Model output carries no id/created_at/week_budget; those are stamped by
    the reconciliation engine. A stored plan passed back in keeps them, so
    canonical input round-trips unchanged. Unparseable input yields 7 days
    of empty slots.
    """
    if isinstance(raw, MealPlan):
        return raw.copy()

    data = extract_json(raw, envelope="days")
    if not isinstance(data, dict):
        logger.warning("[NORMALIZE] Meal plan unparseable, returning empty week")
        data = {}

    raw_days = _raw_days(data)
    days = [_day_plan(element, idx) for idx, element in enumerate(raw_days[:DAYS_PER_PLAN])]

    if len(raw_days) > DAYS_PER_PLAN:
        logger.warning(f"[NORMALIZE] Plan had {len(raw_days)} days, truncating to {DAYS_PER_PLAN}")
    if len(days) < DAYS_PER_PLAN:
        if raw_days:
            logger.warning(f"[NORMALIZE] Plan had {len(days)} days, padding to {DAYS_PER_PLAN}")
        days.extend(DayPlan(day=DAY_NAMES[idx]) for idx in range(len(days), DAYS_PER_PLAN))

    plan_id = _first(data, ("id", "planId"))
    return MealPlan(
        days=days,
        id=str(plan_id) if plan_id not in (None, "") else None,
        created_at=_created_at(_first(data, ("created_at", "createdAt"))),
        week_budget=_week_budget(_first(data, ("week_budget", "weekBudget"))),
    )


# =============================================================================
# Recipe
# =============================================================================

def find_instructions(recipe: Dict) -> Any:
    """Top-level synonym keys first, then one level inside object-valued fields."""
    found = _first(recipe, INSTRUCTION_FIELDS)
    if found is not None:
        return found
    for value in recipe.values():
        if isinstance(value, dict):
            found = _first(value, INSTRUCTION_FIELDS)
            if found is not None:
                return found
    return None


def coerce_steps(value: Any) -> List[str]:
    """Reduce an instructions value of any shape to an ordered list of steps."""
    if value is None:
        return []
    if isinstance(value, str):
        return [piece.strip() for piece in STEP_SPLIT.split(value) if piece.strip()]
    if isinstance(value, dict):
        return [_text(v) for v in value.values() if _text(v)]
    if isinstance(value, list):
        steps = []
        for idx, element in enumerate(value):
            if isinstance(element, dict):
                text = _first(element, STEP_TEXT_FIELDS)
                steps.append(_text(text) if text is not None else f"Step {idx + 1}")
            else:
                steps.append(_text(element))
        return [s for s in steps if s]
    return [_text(value)]


def _ingredient_text(item: Any) -> str:
    if not isinstance(item, dict):
        return _text(item)
    name = _text(_first(item, INGREDIENT_NAME_FIELDS))
    parts = [_text(_first(item, INGREDIENT_AMOUNT_FIELDS)), _text(item.get("unit")), name]
    text = " ".join(p for p in parts if p)
    preparation = _text(item.get("preparation"))
    if preparation:
        text = f"{text} ({preparation})"
    return text


def _ingredients(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [line.strip() for line in value.splitlines() if line.strip()]
    if isinstance(value, dict):
        # Grouped by component, e.g. {"For the sauce": [...]}
        flattened = []
        for group in value.values():
            flattened.extend(_ingredients(group) if isinstance(group, (list, dict)) else [_text(group)])
        return [i for i in flattened if i]
    return [t for t in (_ingredient_text(item) for item in value) if t]


def _cost(recipe: Dict) -> float:
    breakdown = recipe.get("cost_breakdown")
    if isinstance(breakdown, dict):
        total = _first(breakdown, ("total_cost", "total", "totalCost"))
        if total is not None:
            return parse_amount(total)
    return parse_amount(_first(recipe, COST_FIELDS))


def _nutrition(recipe: Dict) -> NutritionInfo:
    data = _first(recipe, NUTRITION_FIELDS)
    if not isinstance(data, dict):
        return NutritionInfo()
    return NutritionInfo(
        calories=data.get("calories"),
        protein=data.get("protein"),
        carbs=_first(data, ("carbs", "carbohydrates")),
        fat=data.get("fat"),
    )


def _joined(value: Any) -> str:
    if isinstance(value, list):
        return "\n".join(_text(v) for v in value if _text(v))
    if isinstance(value, dict):
        return "\n".join(f"{k}: {_text(v)}" for k, v in value.items())
    return _text(value)


def _strings(value: Any, text_fields=()) -> List[str]:
    if value in (None, ""):
        return []
    if isinstance(value, dict):
        return [f"{k}: {_text(v)}" for k, v in value.items()]
    if not isinstance(value, list):
        value = [value]
    result = []
    for element in value:
        if isinstance(element, dict):
            text = _first(element, text_fields) if text_fields else None
            element = text if text is not None else " ".join(_text(v) for v in element.values())
        if _text(element):
            result.append(_text(element))
    return result


def _servings(value: Any) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def unavailable_recipe(name: str) -> Recipe:
    """Sentinel returned when a recipe response cannot be parsed at all."""
    return Recipe(
        name=name,
        ingredients=["Unable to load recipe - Please try again"],
        instructions=["Recipe failed to load. Please try again."],
        prep_time="Unknown",
        cook_time="Unknown",
        total_time="Unknown",
        tips=UNAVAILABLE_RECIPE_TIP,
        unavailable=True,
    )


def normalize_recipe(raw: Raw, name: str) -> Recipe:
    """
    Normalize a recipe response into a Recipe keyed by name.

    Missing instructions are left empty; the recipe cache decides what to
    do about them.
    """
    data = extract_json(raw)
    if not isinstance(data, dict):
        logger.warning(f"[NORMALIZE] Recipe '{name}' unparseable, returning sentinel")
        return unavailable_recipe(name)

    recipe = data["recipe"] if isinstance(data.get("recipe"), dict) else data

    storage = _first(recipe, STORAGE_FIELDS)
    reheating = _first(recipe, REHEATING_FIELDS)
    storage_reheating = recipe.get("storage_reheating")
    if isinstance(storage_reheating, dict):
        storage = storage or storage_reheating.get("storage")
        reheating = reheating or storage_reheating.get("reheating")
    elif isinstance(storage_reheating, str):
        storage = storage or storage_reheating

    instructions = coerce_steps(find_instructions(recipe))
    if not instructions:
        logger.info(f"[NORMALIZE] No instructions found for '{name}'")

    return Recipe(
        name=name,
        ingredients=_ingredients(recipe.get("ingredients")),
        instructions=instructions,
        prep_time=_text(_first(recipe, PREP_TIME_FIELDS)),
        cook_time=_text(_first(recipe, COOK_TIME_FIELDS)),
        total_time=_text(_first(recipe, TOTAL_TIME_FIELDS)),
        cost=_cost(recipe),
        nutrition=_nutrition(recipe),
        tips=_joined(_first(recipe, TIPS_FIELDS)),
        storage=_joined(storage),
        reheating=_joined(reheating),
        youtube_links=_strings(_first(recipe, YOUTUBE_FIELDS), YOUTUBE_TEXT_FIELDS),
        servings=_servings(recipe.get("servings")),
        difficulty=_text(_first(recipe, DIFFICULTY_FIELDS)) or None,
        equipment=_strings(_first(recipe, EQUIPMENT_FIELDS)),
        substitutions=_strings(recipe.get("substitutions")),
    )


# =============================================================================
# Shopping list
# =============================================================================

def _sections_from_map(section_map: Dict) -> List[Dict]:
    sections = []
    for category, items in section_map.items():
        if not items:
            continue
        sections.append({"category": category, "items": items if isinstance(items, list) else [items]})
    return sections


def _raw_sections(data: Dict) -> List[Any]:
    sections = data.get("sections")
    if isinstance(sections, list):
        return sections
    if isinstance(sections, dict):
        return _sections_from_map(sections)

    for key in SECTIONS_SYNONYMS:
        value = data.get(key)
        if isinstance(value, list) and value:
            return value
        if isinstance(value, dict) and value:
            return _sections_from_map(value)
    return []


def _shopping_item(raw_item: Any) -> Optional[ShoppingItem]:
    if isinstance(raw_item, str):
        return ShoppingItem(name=raw_item.strip()) if raw_item.strip() else None
    if not isinstance(raw_item, dict):
        return None
    name = _text(_first(raw_item, ITEM_NAME_FIELDS))
    if not name:
        return None
    quantity = _text(_first(raw_item, INGREDIENT_AMOUNT_FIELDS))
    unit = _text(raw_item.get("unit"))
    if unit and unit not in quantity:
        quantity = f"{quantity} {unit}".strip()
    return ShoppingItem(name=name, quantity=quantity, price=extract_price(raw_item))


def _shopping_section(raw_section: Any) -> Optional[ShoppingSection]:
    if not isinstance(raw_section, dict):
        return None
    items = _first(raw_section, SECTION_ITEMS_FIELDS)
    if not isinstance(items, list):
        return None
    category = _text(_first(raw_section, SECTION_CATEGORY_FIELDS)) or "Other"
    parsed = [item for item in (_shopping_item(i) for i in items) if item]
    return ShoppingSection(category=category, items=parsed)


def _saving_tips(data: Dict) -> Optional[Union[str, List[str]]]:
    tips = _first(data, SAVING_TIPS_FIELDS)
    if tips is None:
        return None
    if isinstance(tips, dict):
        return [_text(v) for v in tips.values() if _text(v)]
    if isinstance(tips, list):
        return [_text(t) for t in tips if _text(t)]
    return _text(tips)


def _sentinel_list(category: str, message: str) -> ShoppingList:
    return ShoppingList(
        sections=[ShoppingSection(category=category, items=[ShoppingItem(name=message, quantity="1")])],
        saving_tips=SHOPPING_RETRY_TIP,
    )


def normalize_shopping_list(raw: Raw) -> ShoppingList:
    """
    Normalize a shopping-list response into canonical sections.

    Item prices are extracted here; totals and budget status are derived
    afterwards by weekly_dish.budget.apply_budget.
    """
    if isinstance(raw, str) and not raw.strip():
        logger.error("[NORMALIZE] Empty shopping list response")
        return _sentinel_list("Error", "Unable to generate shopping list")

    data = extract_json(raw, envelope="sections")
    if not isinstance(data, dict):
        logger.warning("[NORMALIZE] Shopping list unparseable, returning sentinel")
        return _sentinel_list("Groceries", "Unable to parse shopping list")

    sections = []
    loose_items = []
    for raw_section in _raw_sections(data):
        section = _shopping_section(raw_section)
        if section is not None:
            sections.append(section)
            continue
        item = _shopping_item(raw_section)
        if item is not None:
            loose_items.append(item)
    if loose_items:
        sections.append(ShoppingSection(category="Other", items=loose_items))

    if not sections:
        logger.warning("[NORMALIZE] No valid sections found in shopping list")

    declared = declared_total(data)
    return ShoppingList(
        sections=sections,
        saving_tips=_saving_tips(data),
        declared_total=declared or None,
    )


# =============================================================================
# Single values
# =============================================================================

def normalize_meal_name(raw: Optional[str]) -> str:
    """
    Trimmed replacement meal name.

    Raises:
        NormalizationFailure: the response is empty after trimming
    """
    name = (raw or "").strip()
    if not name:
        raise NormalizationFailure("Replacement meal name was empty")
    return name


def normalize_pantry_items(raw: Raw) -> List[Dict]:
    """Candidate pantry records from an image-analysis response."""
    data = extract_json(raw, envelope=PANTRY_ITEMS_ENVELOPE)
    if not isinstance(data, dict):
        logger.warning("[NORMALIZE] Pantry analysis unparseable, no items found")
        return []
    items = data.get(PANTRY_ITEMS_ENVELOPE)
    if not isinstance(items, list):
        return []
    return [item for item in items if isinstance(item, dict) and _text(item.get("name"))]


def normalize_quick_meal(raw: Raw) -> QuickMeal:
    """
    Normalize a "cook now from the pantry" response.

    Raises:
        NormalizationFailure: no usable meal could be extracted
    """
    data = extract_json(raw)
    if not isinstance(data, dict):
        raise NormalizationFailure("Quick meal response could not be parsed")

    meal = _meal_name(_first(data, ("meal", "name", "title")))
    if not meal:
        raise NormalizationFailure("Quick meal response did not name a meal")

    recipe_data = data.get("recipe") if isinstance(data.get("recipe"), dict) else data
    return QuickMeal(meal=meal, recipe=normalize_recipe(recipe_data, meal))
