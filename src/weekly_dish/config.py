"""
Configuration for the Weekly Dish planning core.

Settings are read from the environment (a .env file is honoured through
python-dotenv). Budget tiers are business policy and live in an injectable
BudgetTierTable rather than in the prompt builder.
"""

import logging
import os
from dataclasses import dataclass, field
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

DEFAULT_MODEL = "claude-sonnet-4-5-20250929"


# =============================================================================
# Budget Tiers
# =============================================================================

class BudgetTier(BaseModel):
    """
    One pricing-guidance bracket.

    max_weekly_budget is an inclusive upper bound; None marks the open-ended
    top tier. Guidance lines may reference {budget} and are formatted with
    the household's weekly budget.
    """
    name: str
    max_weekly_budget: Optional[float] = None
    heading: str
    guidance: List[str] = Field(default_factory=list)
    forbidden: List[str] = Field(default_factory=list)

    def render(self, weekly_budget: float) -> str:
        budget = format_amount(weekly_budget)
        lines = [self.heading.format(budget=budget)]
        lines.extend(f"- {line.format(budget=budget)}" for line in self.guidance)
        if self.forbidden:
            lines.append("- " + ", ".join(f"NO {item}" for item in self.forbidden))
        return "\n".join(lines)


class BudgetTierTable(BaseModel):
    """Ordered lookup table mapping a weekly budget to a BudgetTier."""
    tiers: List[BudgetTier]

    @model_validator(mode='after')
    def validate_ordering(self) -> 'BudgetTierTable':
        if not self.tiers:
            raise ValueError("BudgetTierTable requires at least one tier")
        bounded = [t.max_weekly_budget for t in self.tiers[:-1]]
        if any(bound is None for bound in bounded):
            raise ValueError("only the last tier may be open-ended")
        if bounded != sorted(bounded):
            raise ValueError("tier thresholds must be ascending")
        if self.tiers[-1].max_weekly_budget is not None:
            raise ValueError("last tier must be open-ended (max_weekly_budget=None)")
        return self

    def tier_for(self, weekly_budget: float) -> BudgetTier:
        for tier in self.tiers:
            if tier.max_weekly_budget is None or weekly_budget <= tier.max_weekly_budget:
                return tier
        return self.tiers[-1]


DEFAULT_BUDGET_TIERS = BudgetTierTable(tiers=[
    BudgetTier(
        name="ultra",
        max_weekly_budget=100,
        heading="ULTRA BUDGET MEALS ONLY:",
        guidance=[
            "Breakfast: Eggs, oatmeal, toast - max $2/day total",
            "Lunch: PB&J, grilled cheese, leftovers - max $3/day total",
            "Dinner: Pasta, rice & beans, ground beef - max $5/day total",
        ],
        forbidden=["steaks", "seafood", "expensive meats"],
    ),
    BudgetTier(
        name="full",
        max_weekly_budget=150,
        heading="USE YOUR FULL ${budget} BUDGET:",
        guidance=[
            "Breakfast: Eggs, bacon, sausage - $4-5/day total",
            "Lunch: Good quality meats, variety - $6-7/day total",
            "Dinner: Mix of ground beef, chicken, pork, AND occasional steak - $10-12/day total",
            "Include 2-3 nicer meals per week (sirloin steak, thick pork chops)",
            "Add variety: different cuts of beef, pork shoulder, whole chicken",
            "Use the budget for quality, not just quantity",
        ],
    ),
    BudgetTier(
        name="moderate",
        max_weekly_budget=None,
        heading="MODERATE BUDGET:",
        guidance=[
            "Can include occasional steak or seafood",
            "Balance with affordable meals",
        ],
    ),
])


def format_amount(value: float) -> str:
    """Render a dollar amount without a trailing .0 for whole values."""
    if float(value) == int(value):
        return str(int(value))
    return f"{value:.2f}"


# =============================================================================
# Settings
# =============================================================================

@dataclass
class Settings:
    """Runtime settings for the planning core."""

    anthropic_api_key: Optional[str] = None
    model: str = DEFAULT_MODEL
    use_null_llm: bool = False

    db_path: str = "data/weekly_dish.db"
    upc_lookup_url: str = "https://api.upcitemdb.com/prod/trial/lookup"

    # Seconds per external call kind
    replacement_timeout: float = 30.0
    plan_timeout: float = 120.0
    recipe_timeout: float = 120.0
    quick_meal_timeout: float = 60.0
    shopping_list_timeout: float = 300.0
    image_timeout: float = 300.0
    barcode_timeout: float = 10.0

    recipe_batch_size: int = 3
    debug_log_capacity: int = 50
    fabricate_missing_instructions: bool = True

    budget_tiers: BudgetTierTable = field(default_factory=lambda: DEFAULT_BUDGET_TIERS)

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables (and .env if present)."""
        load_dotenv()
        env = os.environ
        return cls(
            anthropic_api_key=env.get("ANTHROPIC_API_KEY"),
            model=env.get("WEEKLY_DISH_MODEL", DEFAULT_MODEL),
            use_null_llm=env.get("USE_NULL_LLM", "").lower() == "true",
            db_path=env.get("WEEKLY_DISH_DB_PATH", "data/weekly_dish.db"),
            upc_lookup_url=env.get("UPC_LOOKUP_URL", "https://api.upcitemdb.com/prod/trial/lookup"),
            replacement_timeout=float(env.get("WEEKLY_DISH_REPLACEMENT_TIMEOUT", 30)),
            plan_timeout=float(env.get("WEEKLY_DISH_PLAN_TIMEOUT", 120)),
            recipe_timeout=float(env.get("WEEKLY_DISH_RECIPE_TIMEOUT", 120)),
            quick_meal_timeout=float(env.get("WEEKLY_DISH_QUICK_MEAL_TIMEOUT", 60)),
            shopping_list_timeout=float(env.get("WEEKLY_DISH_SHOPPING_TIMEOUT", 300)),
            image_timeout=float(env.get("WEEKLY_DISH_IMAGE_TIMEOUT", 300)),
            recipe_batch_size=int(env.get("RECIPE_BATCH_SIZE", 3)),
            debug_log_capacity=int(env.get("WEEKLY_DISH_DEBUG_LOG_SIZE", 50)),
            fabricate_missing_instructions=(
                env.get("WEEKLY_DISH_FABRICATE_INSTRUCTIONS", "true").lower() == "true"
            ),
        )


def configure_logging(level: int = logging.INFO) -> None:
    """Configure root logging the way the command-line entry points expect."""
    logging.basicConfig(level=level, format=LOG_FORMAT)
