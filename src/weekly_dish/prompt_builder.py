"""
Constraint Prompt Builder.

Renders the instruction text sent to the generative backend for each request
kind. Output is deterministic for a given profile, pantry and payload, and
always ends with a textual description of the expected response shape: the
backend has no structured-output contract, so the shape is steered by text.

Budget tiers come from an injectable BudgetTierTable (weekly_dish.config).
"""

import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Sequence

from .config import DEFAULT_BUDGET_TIERS, BudgetTierTable, format_amount
from .data.models import DAY_NAMES, HouseholdProfile, MealPlan, MealType, PantryItem
from .errors import ValidationFailure

logger = logging.getLogger(__name__)

RESTRICTED_TOOLS = ["Slow Cooker", "Instant Pot", "Air Fryer", "Grill", "Smoker"]
QUICK_MEAL_RESTRICTED_TOOLS = ["Slow Cooker", "Instant Pot", "Air Fryer", "Smoker"]
DEFAULT_TOOLS_TEXT = "Basic stove and oven"

CARNIVORE_BUDGET_CEILING = 150


class PromptKind(str, Enum):
    FULL_PLAN = "full_plan"
    MEAL_REPLACEMENT = "meal_replacement"
    RECIPE_EXPANSION = "recipe_expansion"
    SHOPPING_LIST = "shopping_list"
    QUICK_PANTRY_MEAL = "quick_pantry_meal"


@dataclass(frozen=True)
class Prompt:
    """A rendered request: system instructions plus the user prompt."""
    kind: PromptKind
    system: str
    user: str


# =============================================================================
# System prompts
# =============================================================================

PLAN_SYSTEM_PROMPT = """You are a helpful meal planning assistant that creates budget-optimized meal plans.
CRITICAL RULES:
1. You MUST use 95-100% of the budget - being significantly under is WRONG
2. Return ONLY valid JSON in the exact format specified
3. Maximize quality and variety within budget constraints
4. Always use the "days" array format with "day" and "meals" properties
5. If the user selected snacks, you MUST include a "snacks" array in each day's meals
6. Snacks should be STORE-BOUGHT items (not recipes) matching the types requested
For Weekly Meal Prep: Return the SAME breakfast, lunch, dinner, and snacks for all 7 days.
For Cook Once Daily: Each day should have different meals, with lunch potentially using leftovers.
For Cook Every Meal: Each meal should be unique and varied."""

REPLACEMENT_SYSTEM_PROMPT = "You are a meal planning assistant. Respond with only meal names, no explanations."

RECIPE_SYSTEM_PROMPT = "You are a recipe assistant. Return only valid JSON with no explanations."

MEAL_PREP_RECIPE_SYSTEM_PROMPT = (
    "You are a professional chef specializing in meal prep. You create recipes that can be "
    "batch cooked and stored for an entire week while maintaining quality and freshness. "
    "Always scale ALL ingredients properly for the total servings needed. "
    "Return only valid JSON with no explanations."
)

SHOPPING_SYSTEM_PROMPT = """You are a shopping list assistant. Return only valid JSON with no explanations.
CRITICAL REQUIREMENTS:
1. Every quantity MUST include units (lbs, oz, heads, dozen, cans, etc.)
2. Every price MUST be a realistic number based on US grocery prices (not 0 or null)
3. Prices should be numeric values like 5.97, not strings like "5.97"
Example: {"quantity": "3 lbs", "name": "bacon", "price": 14.97}"""

QUICK_MEAL_SYSTEM_PROMPT = "You are a helpful cooking assistant. Return only valid JSON."


# =============================================================================
# Expected shapes
# =============================================================================

RECIPE_SHAPE = """Return the recipe in this JSON format:
{
  "name": "Recipe name",
  "ingredients": ["2 lbs chicken thighs", "1 cup rice"],
  "instructions": ["Step 1", "Step 2", "Step 3"],
  "prepTime": "X minutes",
  "cookTime": "X minutes",
  "totalTime": "X minutes",
  "cost": 12.50,
  "nutrition": {"calories": 450, "protein": "30g", "carbs": "40g", "fat": "15g"},
  "tips": "Pro tips for best results",
  "storage": "How to store leftovers",
  "reheating": "How to reheat",
  "substitutions": ["Swap X for Y"],
  "equipment": ["Large skillet"],
  "difficulty": "Easy/Medium/Hard",
  "youtubeLinks": ["search term 1", "search term 2", "search term 3"]
}"""

SHOPPING_SHAPE = """Return the list in this EXACT JSON format with NUMERIC prices (not strings):
{
  "sections": [
    {
      "category": "Produce",
      "items": [
        {"quantity": "3 lbs", "name": "tomatoes", "price": 5.97},
        {"quantity": "2 heads", "name": "lettuce", "price": 3.98}
      ]
    },
    {
      "category": "Meat",
      "items": [
        {"quantity": "2 lbs", "name": "ground beef", "price": 9.98},
        {"quantity": "3 lbs", "name": "chicken breast", "price": 11.97}
      ]
    }
  ],
  "totalCost": 89.50,
  "underBudget": true,
  "savingTips": "Buy store brand cheese to save $3"
}
IMPORTANT: The "price" field MUST be a number (like 5.97), not a string (not "5.97") and NOT zero"""

SNACK_EXAMPLES = """Suggest specific store-bought snack products like:
- Morning Snack: granola bars, protein bars, breakfast cookies
- Afternoon Snack: crackers, nuts, trail mix, fruit cups
- Evening Snack: popcorn, pretzels, cheese sticks
- Healthy Snacks: yogurt cups, fresh fruit, veggie sticks with hummus
- Treats: cookies, chips, candy, ice cream bars
These snacks should be ready-to-eat items that go on the shopping list, NOT recipes to make!"""

SHOPPING_RULES = """Generate a comprehensive shopping list with:
1. Items grouped by store section (Produce, Meat, Dairy, Frozen, Pantry/Dry Goods, Snacks, etc.)
2. Include all specified snacks in a "Snacks" category with quantities for the week
3. EXACT quantities with SPECIFIC UNITS - Examples:
   - "3 lbs ground beef" NOT "3 ground beef"
   - "2 heads broccoli" NOT "2 broccoli"
   - "1 dozen eggs" NOT "12 eggs"
   - "8 oz shredded cheese" NOT "1 cheese"
   - "4 chicken breasts (about 2 lbs)" NOT "4 chicken"
   - "1 box Nature Valley Granola Bars" NOT "granola bars"
4. REALISTIC ESTIMATED PRICES per item in USD (must be actual numbers, not 0):
   - Ground beef: ~$4-6 per lb
   - Chicken breast: ~$3-4 per lb
   - Eggs: ~$3-5 per dozen
   - Milk: ~$3-4 per gallon
   - Vegetables: ~$1-3 per lb
   - Snack items: ~$3-6 per box/bag
   Base prices on typical US grocery store prices
5. Total estimated cost (sum of all items)
6. Budget analysis (under/over budget)
7. Money-saving tips if needed

CRITICAL: Every item MUST have a proper unit of measurement (lbs, oz, heads, bunches, cans, boxes, packages, dozen, etc.)
The quantity field should INCLUDE the unit (e.g., "3 lbs" not just "3")"""

RECIPE_SECTIONS = """Include EVERYTHING needed:
1. Complete ingredient list with exact measurements and preparation notes
2. Detailed step-by-step instructions with techniques and tips
3. Prep time, cook time, and total time
4. Cost breakdown per ingredient and total cost
5. Full nutritional information per serving
6. Pro tips for best results
7. Storage and reheating instructions{storage_note}
8. Possible substitutions for expensive or hard-to-find ingredients
9. Equipment needed
10. Difficulty level and skill requirements
11. YouTube video suggestions: Provide 3-5 YouTube search terms that would find helpful video tutorials for this recipe (e.g. "how to make scrambled eggs Gordon Ramsay", "perfect ribeye steak cast iron", etc.)"""

MEAL_PREP_RECIPE_BLOCK = """CRITICAL: This is for WEEKLY MEAL PREP - the recipe MUST:
1. Make exactly {servings} servings (for 7 days worth)
2. Include BATCH COOKING instructions for preparing all 7 days at once
3. Provide detailed STORAGE instructions for keeping in fridge for 7 days
4. Include REHEATING instructions for each day
5. Use ingredients that stay fresh for a full week when refrigerated
6. Scale all ingredient quantities appropriately ({servings} total servings)
7. Include tips for maintaining food quality over the week
8. Specify to use glass containers (recommended for meal prep)
9. Note any ingredients to add fresh daily (like dressings or herbs)
10. Provide day-by-day freshness guidance"""

CARNIVORE_GUIDANCE = """BUDGET CARNIVORE GUIDELINES for ${budget}/week:
- Mix affordable and moderate proteins:
  * Eggs (daily staple) - $3-4/dozen
  * Ground beef - $4-5/lb
  * Chicken thighs - $2-3/lb
  * Pork chops - $3-4/lb
  * Chuck roast or stew meat - $4-5/lb (cheaper beef cuts)
- Can include 1-2 moderate treats per week:
  * Bacon - $5-6/lb
  * Cheaper steaks (sirloin, flat iron) - $8-10/lb
- Optional: organ meats for nutrition (liver, heart) - $2-3/lb
- Target: Use THE FULL ${budget} budget for maximum variety
- With ${budget}/week you CAN afford some nicer cuts mixed in"""


def _plan_shape(placeholders: dict, include_snacks: bool) -> str:
    """JSON days template; placeholders maps slot -> text shown for every day."""
    days = []
    for day in DAY_NAMES:
        meals = {slot: placeholders[slot] for slot in ("breakfast", "lunch", "dinner")}
        if include_snacks:
            meals["snacks"] = [placeholders["snacks"]]
        days.append("    " + json.dumps({"day": day, "meals": meals}))
    return "{\n  \"days\": [\n" + ",\n".join(days) + "\n  ]\n}"


# =============================================================================
# Policy helpers
# =============================================================================

def forbidden_tools(profile: HouseholdProfile, candidates: Sequence[str] = RESTRICTED_TOOLS) -> List[str]:
    """Restricted tools the household does not own, in fixed order."""
    owned = set(profile.cooking_tools or [])
    return [tool for tool in candidates if tool not in owned]


def available_tools_text(profile: HouseholdProfile, default: str = DEFAULT_TOOLS_TEXT) -> str:
    return ", ".join(profile.cooking_tools) if profile.cooking_tools else default


def pantry_text(pantry: Optional[Sequence[PantryItem]]) -> str:
    return ", ".join(f"{item.name} ({item.quantity})" for item in pantry or [])


def target_floor(weekly_budget: float) -> str:
    return f"{weekly_budget * 0.95:.0f}"


def diet_compliance(profile: HouseholdProfile) -> str:
    diet = profile.effective_diet()
    if not diet:
        return ""
    return f"STRICT DIET: {diet} - All meals MUST comply with {diet} diet rules."


def _join_or(values: Sequence[str], default: str) -> str:
    return ", ".join(values) if values else default


# =============================================================================
# Builder
# =============================================================================

class PromptBuilder:
    """Builds prompts for every request kind against one budget tier table."""

    def __init__(self, tiers: BudgetTierTable = DEFAULT_BUDGET_TIERS):
        self.tiers = tiers

    def build(
        self,
        kind: PromptKind,
        profile: HouseholdProfile,
        pantry: Optional[Sequence[PantryItem]] = None,
        **payload,
    ) -> Prompt:
        """
        Render a prompt of the given kind.

        Args:
            kind: Request kind
            profile: Household profile, validated before rendering
            pantry: Current pantry snapshot
            **payload: Kind-specific context
                MEAL_REPLACEMENT: meal_type, current_meal, day (optional)
                RECIPE_EXPANSION: recipe_name, servings, meal_prep (optional)
                SHOPPING_LIST: plan

        Raises:
            ValidationFailure: invalid profile or missing payload
        """
        profile.validate()
        kind = PromptKind(kind)
        pantry = list(pantry or [])

        if kind == PromptKind.FULL_PLAN:
            return self.full_plan(profile, pantry)
        if kind == PromptKind.MEAL_REPLACEMENT:
            return self.meal_replacement(
                profile,
                _required(payload, "meal_type"),
                _required(payload, "current_meal"),
                day=payload.get("day"),
            )
        if kind == PromptKind.RECIPE_EXPANSION:
            return self.recipe_expansion(
                profile,
                _required(payload, "recipe_name"),
                servings=payload.get("servings") or profile.servings,
                meal_prep=payload.get("meal_prep"),
            )
        if kind == PromptKind.SHOPPING_LIST:
            return self.shopping_list(profile, pantry, _required(payload, "plan"))
        return self.quick_pantry_meal(profile, pantry)

    # Full plan ---------------------------------------------------------------

    def _meal_prep_text(self, profile: HouseholdProfile) -> tuple:
        include_snacks = profile.wants_snacks
        if profile.is_weekly_meal_prep:
            lines = [
                "WEEKLY MEAL PREP REQUIRED:",
                "- User will cook ONCE per week in bulk",
                f"- Create ONLY 3 recipes total for the entire week{' plus snacks' if include_snacks else ''}",
                "- The SAME breakfast must appear all 7 days",
                "- The SAME lunch must appear all 7 days",
                "- The SAME dinner must appear all 7 days",
            ]
            if include_snacks:
                lines.append("- The SAME snacks must appear all 7 days")
            lines.append("- Choose meals that store and reheat well")

            shape = _plan_shape(
                {
                    "breakfast": "[same breakfast]",
                    "lunch": "[same lunch]",
                    "dinner": "[same dinner]",
                    "snacks": "[same snacks]",
                },
                include_snacks,
            )
            replace = "[same breakfast], [same lunch], [same dinner]"
            if include_snacks:
                replace += ", and [same snacks]"
            expected = (
                "You MUST return this exact structure with the SAME meals repeated:\n"
                f"{shape}\n"
                f"Replace {replace} with actual meal names that are identical across all days."
            )
            return "\n".join(lines), expected

        if profile.prep_style == "Cook Once Daily":
            instructions = ("User cooks ONCE DAILY. Plan meals where lunch uses dinner leftovers "
                            "from the previous day.")
            lead = "Return JSON with different meals each day, but lunch should use previous dinner leftovers."
        else:
            instructions = "User cooks every meal fresh."
            lead = "Return JSON with variety - different meals each day."

        shape = _plan_shape(
            {
                "breakfast": "[breakfast]",
                "lunch": "[lunch]",
                "dinner": "[dinner]",
                "snacks": "[snack]",
            },
            include_snacks,
        )
        if include_snacks:
            lead += " Include snacks array for each day."
        return instructions, f"{lead}\nUse this structure:\n{shape}"

    def _diet_text(self, profile: HouseholdProfile) -> str:
        text = diet_compliance(profile)
        budget = float(profile.weekly_budget)
        if profile.effective_diet() == "Carnivore" and budget <= CARNIVORE_BUDGET_CEILING:
            text += "\n" + CARNIVORE_GUIDANCE.format(budget=format_amount(budget))
        return text

    def _snack_text(self, profile: HouseholdProfile) -> str:
        if not profile.wants_snacks:
            return "Do not include any snacks."
        snacks = ", ".join(profile.snack_types)
        return f"IMPORTANT: Include {snacks} as STORE-BOUGHT snacks for each day!\n{SNACK_EXAMPLES}"

    def full_plan(self, profile: HouseholdProfile, pantry: Sequence[PantryItem]) -> Prompt:
        budget_value = float(profile.weekly_budget)
        budget = format_amount(budget_value)
        floor = target_floor(budget_value)
        tier = self.tiers.tier_for(budget_value)
        meal_prep_text, expected = self._meal_prep_text(profile)
        household = f"{profile.adults} adults and {profile.kids} kids"

        logger.debug(f"[PROMPT] Full plan budget=${budget} tier={tier.name} prep={profile.prep_style}")

        user = f"""Create a detailed 7-day meal plan for {household} with STRICT BUDGET of ${budget} weekly.

CRITICAL BUDGET REQUIREMENT:
You MUST use the FULL ${budget} budget - not significantly under or over.
TARGET: ${floor}-${budget} total cost
Being $20+ under budget is JUST AS BAD as being over budget.
Use the budget to provide maximum variety and quality within constraints.

For a ${budget} weekly budget for {household}:
{tier.render(budget_value)}

IMPORTANT: You MUST use 95-100% of the ${budget} budget
Target: ${floor}-${budget} TOTAL
Daily target: ${budget_value / 7:.2f}/day - USE IT ALL
Don't leave money on the table - maximize meal quality and variety

{meal_prep_text}

{self._diet_text(profile)}
IMPORTANT REQUIREMENTS:
- STAY WITHIN ${budget} BUDGET - this is your #1 priority
- Only suggest meals that can be made with these cooking tools: {available_tools_text(profile)}
- DO NOT suggest any meals requiring: {', '.join(forbidden_tools(profile))}
- All meals must be achievable with {profile.skill_level} cooking skills
- Meal difficulty should match: {profile.meal_difficulty}

Current pantry items available: {pantry_text(pantry) or 'None specified'}
Cuisine preferences: {_join_or(profile.cuisine_types, 'Any')}
Dietary restrictions that MUST be followed: {profile.dietary_restrictions or 'None'}
Nutritional goals: {_join_or(profile.food_goals, 'Balanced nutrition')}
Meals to plan: {_join_or(profile.meal_types, 'Breakfast, Lunch, and Dinner')}
Snacks to include: {_join_or(profile.snack_types, 'NO SNACKS')}

{self._snack_text(profile)}

Remember: Total weekly grocery cost MUST be under ${budget}!

{expected}"""
        return Prompt(kind=PromptKind.FULL_PLAN, system=PLAN_SYSTEM_PROMPT, user=user)

    # Replacement -------------------------------------------------------------

    def meal_replacement(
        self,
        profile: HouseholdProfile,
        meal_type,
        current_meal: str,
        day: Optional[str] = None,
    ) -> Prompt:
        slot = MealType.parse(meal_type).value
        diet = profile.effective_diet()
        diet_text = f"Must be {diet} diet compliant. " if diet else ""
        prep_text = ("This is for weekly meal prep, so suggest something that can be made in bulk."
                     if profile.is_weekly_meal_prep else "")
        day_text = f" for {day}" if day else ""

        user = f"""Generate a replacement {slot} meal{day_text} for {profile.adults} adults and {profile.kids} kids.

Current meal: {current_meal}
Budget: ${format_amount(float(profile.weekly_budget))}/week
Available cooking tools: {available_tools_text(profile)}
DO NOT suggest meals requiring: {', '.join(forbidden_tools(profile))}
{diet_text}{prep_text}

Give me just the meal name, nothing else."""
        return Prompt(kind=PromptKind.MEAL_REPLACEMENT, system=REPLACEMENT_SYSTEM_PROMPT, user=user)

    # Recipe ------------------------------------------------------------------

    def recipe_expansion(
        self,
        profile: HouseholdProfile,
        recipe_name: str,
        servings: Optional[int] = None,
        meal_prep: Optional[bool] = None,
    ) -> Prompt:
        if not recipe_name or not recipe_name.strip():
            raise ValidationFailure("Recipe name is required", field="recipe_name")
        servings = servings or profile.servings
        meal_prep = profile.is_weekly_meal_prep if meal_prep is None else meal_prep

        prep_block = MEAL_PREP_RECIPE_BLOCK.format(servings=servings) if meal_prep else ""
        sections = RECIPE_SECTIONS.format(
            storage_note=" (MUST include 7-day meal prep storage)" if meal_prep else ""
        )
        user = f"""Provide a complete, detailed recipe for "{recipe_name}" for {servings} servings.

{prep_block}

{sections}

{RECIPE_SHAPE}"""
        system = MEAL_PREP_RECIPE_SYSTEM_PROMPT if meal_prep else RECIPE_SYSTEM_PROMPT
        return Prompt(kind=PromptKind.RECIPE_EXPANSION, system=system, user=user)

    # Shopping list -----------------------------------------------------------

    def shopping_list(
        self,
        profile: HouseholdProfile,
        pantry: Sequence[PantryItem],
        plan: MealPlan,
    ) -> Prompt:
        meals = ", ".join(plan.all_cooked_meals())
        snacks = plan.unique_snacks()
        snacks_text = f"\n\nStore-bought snacks to purchase: {', '.join(snacks)}" if snacks else ""
        budget = format_amount(float(profile.weekly_budget))

        user = f"""Create a detailed shopping list for a week of meals for the following recipes: {meals}{snacks_text}

Current pantry items already available: {pantry_text(pantry) or 'None'}
STRICT Weekly budget: ${budget} - THE TOTAL MUST BE UNDER THIS AMOUNT

{SHOPPING_RULES}

{SHOPPING_SHAPE}"""
        return Prompt(kind=PromptKind.SHOPPING_LIST, system=SHOPPING_SYSTEM_PROMPT, user=user)

    # Quick meal --------------------------------------------------------------

    def quick_pantry_meal(self, profile: HouseholdProfile, pantry: Sequence[PantryItem]) -> Prompt:
        if not pantry:
            raise ValidationFailure("Pantry is empty; add items before asking for a quick meal",
                                    field="pantry")
        servings = profile.servings
        diet = profile.effective_diet()
        diet_text = f"STRICT REQUIREMENT: Must be {diet} diet compliant." if diet else ""

        optional = []
        if profile.dietary_restrictions:
            optional.append(f"- Allergies/Restrictions: {profile.dietary_restrictions}")
        if profile.cuisine_types:
            optional.append(f"- Preferred cuisines: {', '.join(profile.cuisine_types)}")
        if profile.food_goals:
            optional.append(f"- Food goals: {', '.join(profile.food_goals)}")
        optional_text = "\n".join(optional)

        shape = json.dumps(
            {
                "meal": "Name of the dish",
                "recipe": {
                    "ingredients": ["ingredient 1 with amount", "ingredient 2 with amount"],
                    "instructions": ["Step 1", "Step 2", "Step 3"],
                    "cookTime": "X minutes",
                    "prepTime": "X minutes",
                    "servings": servings,
                    "difficulty": "Easy/Medium/Hard",
                },
            },
            indent=2,
        )
        forbidden = ", ".join(forbidden_tools(profile, QUICK_MEAL_RESTRICTED_TOOLS))

        user = f"""I have these ingredients in my pantry: {', '.join(item.name for item in pantry)}

Create ONE quick meal I can make right now using ONLY these ingredients (no shopping required).

Requirements:
- Servings needed: {servings} people ({profile.adults} adults, {profile.kids} kids)
- Available cooking tools: {available_tools_text(profile, 'Basic kitchen tools')}
- DO NOT suggest meals requiring: {forbidden}
- Skill level: {profile.skill_level}
- Meal difficulty preference: {profile.meal_difficulty}
{diet_text}
{optional_text}

IMPORTANT:
- Recipe MUST match the difficulty level and time constraints of "{profile.meal_difficulty}"
- If kids are present, make it kid-friendly
- Must use ONLY the available cooking tools listed
{'- Must strictly follow the diet requirements' if diet_text else ''}

Return as JSON with:
{shape}"""
        return Prompt(kind=PromptKind.QUICK_PANTRY_MEAL, system=QUICK_MEAL_SYSTEM_PROMPT, user=user)


def _required(payload: dict, key: str):
    value = payload.get(key)
    if value in (None, ""):
        raise ValidationFailure(f"Missing required prompt field: {key}", field=key)
    return value


def build_prompt(
    kind: PromptKind,
    profile: HouseholdProfile,
    pantry: Optional[Sequence[PantryItem]] = None,
    tiers: BudgetTierTable = DEFAULT_BUDGET_TIERS,
    **payload,
) -> Prompt:
    """Module-level convenience over PromptBuilder(tiers).build(...)."""
    return PromptBuilder(tiers).build(kind, profile, pantry, **payload)
