"""
Weekly Dish - LLM-backed weekly meal planning core.

Generates 7-day plans under household budget, diet and equipment
constraints, reconciles edits, expands recipes and prices shopping lists.
"""

from weekly_dish.assistant import MealPlanningAssistant
from weekly_dish.budget import BudgetStatus, compute_total, evaluate_budget
from weekly_dish.config import DEFAULT_BUDGET_TIERS, BudgetTier, BudgetTierTable, Settings
from weekly_dish.errors import (
    InvalidPlanTransition,
    NormalizationFailure,
    TimeoutFailure,
    TransportFailure,
    ValidationFailure,
    WeeklyDishError,
)
from weekly_dish.prompt_builder import Prompt, PromptBuilder, PromptKind, build_prompt
from weekly_dish.reconciliation import PlanReconciliationEngine, PlanState, ReplacementScope

__version__ = "0.1.0"

__all__ = [
    "MealPlanningAssistant",
    "BudgetStatus",
    "compute_total",
    "evaluate_budget",
    "DEFAULT_BUDGET_TIERS",
    "BudgetTier",
    "BudgetTierTable",
    "Settings",
    "InvalidPlanTransition",
    "NormalizationFailure",
    "TimeoutFailure",
    "TransportFailure",
    "ValidationFailure",
    "WeeklyDishError",
    "Prompt",
    "PromptBuilder",
    "PromptKind",
    "build_prompt",
    "PlanReconciliationEngine",
    "PlanState",
    "ReplacementScope",
]
