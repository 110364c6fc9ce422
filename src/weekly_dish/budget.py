"""
Budget Evaluator.

Computes one authoritative total for a shopping list and classifies it
against the household's weekly budget.

Model-declared totals are unreliable (omitted items, double counting), so
the item-level sum is the source of truth whenever any item carries a
parseable price. The declared total is consulted only when that sum is 0.
"""

import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional, Union

from .data.models import ShoppingItem, ShoppingList

logger = logging.getLogger(__name__)

PRICE_FIELDS = ("price", "estimatedPrice", "cost")

DECLARED_TOTAL_FIELDS = ("totalCost", "totalEstimatedCost", "estimated_total_cost")
DECLARED_NESTED_TOTAL_FIELDS = ("estimatedCost", "estimatedTotal")

TARGET_FLOOR_RATIO = 0.95


def parse_amount(value: Any) -> float:
    """
    Parse a number or currency string ("$1,011.97") into a float.

    Unparseable, non-finite or negative values are treated as 0.
    """
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        amount = float(value)
    elif isinstance(value, str):
        cleaned = value.strip().replace("$", "").replace(",", "").strip()
        if not cleaned:
            return 0.0
        try:
            amount = float(cleaned)
        except ValueError:
            return 0.0
    else:
        return 0.0

    if not math.isfinite(amount) or amount < 0:
        return 0.0
    return amount


def extract_price(item: Union[Dict, ShoppingItem, Any]) -> float:
    """Price of one item, from the first populated price synonym."""
    if isinstance(item, ShoppingItem):
        return parse_amount(item.price)
    if not isinstance(item, dict):
        return 0.0
    for key in PRICE_FIELDS:
        value = item.get(key)
        if value:
            return parse_amount(value)
    return 0.0


def declared_total(data: Dict) -> float:
    """Total the model claims, from the first populated total synonym."""
    if not isinstance(data, dict):
        return 0.0
    for key in DECLARED_TOTAL_FIELDS:
        if data.get(key):
            return parse_amount(data[key])
    totals = data.get("totals")
    if isinstance(totals, dict):
        for key in DECLARED_NESTED_TOTAL_FIELDS:
            if totals.get(key):
                return parse_amount(totals[key])
    return 0.0


def _iter_items(shopping: Union[ShoppingList, Dict, Iterable]) -> Iterable:
    if isinstance(shopping, ShoppingList):
        return shopping.all_items()
    if isinstance(shopping, dict):
        items = []
        sections = shopping.get("sections") or []
        if isinstance(sections, list):
            for section in sections:
                if isinstance(section, dict) and isinstance(section.get("items"), list):
                    items.extend(section["items"])
        return items
    return list(shopping)


def compute_total(shopping: Union[ShoppingList, Dict, Iterable]) -> float:
    """
    Sum item prices across every section.

    Accepts a ShoppingList, a raw {"sections": [...]} dict, or a plain
    iterable of items. Falls back to the declared total only when no item
    contributes a price.
    """
    total = round(sum(extract_price(item) for item in _iter_items(shopping)), 2)
    if total != 0:
        return total

    if isinstance(shopping, ShoppingList):
        fallback = parse_amount(shopping.declared_total)
    elif isinstance(shopping, dict):
        fallback = declared_total(shopping)
    else:
        fallback = 0.0

    if fallback:
        logger.info(f"[BUDGET] No priced items, using declared total ${fallback:.2f}")
    return round(fallback, 2)


@dataclass
class BudgetStatus:
    """Classification of a total against the weekly budget."""
    total: float
    budget: float
    under_budget: bool
    difference: float
    within_target: bool

    def describe(self) -> str:
        if self.under_budget:
            return f"Within Budget (${self.difference:.2f} under)"
        return f"Over Budget (${self.difference:.2f} over)"


def target_window(weekly_budget: float) -> tuple:
    """The [95%, 100%] spend window the generator is asked to hit."""
    return (round(weekly_budget * TARGET_FLOOR_RATIO, 2), float(weekly_budget))


def evaluate_budget(total: float, weekly_budget: float) -> BudgetStatus:
    """Classify a total: under_budget is inclusive of the budget itself."""
    budget = float(weekly_budget)
    floor, ceiling = target_window(budget)
    return BudgetStatus(
        total=total,
        budget=budget,
        under_budget=total <= budget,
        difference=round(abs(budget - total), 2),
        within_target=floor <= total <= ceiling,
    )


def apply_budget(shopping_list: ShoppingList, weekly_budget: Optional[float]) -> ShoppingList:
    """
    Re-derive total_cost and budget fields on a normalized list in place.

    Returns the same list for chaining.
    """
    shopping_list.total_cost = compute_total(shopping_list)
    if weekly_budget:
        status = evaluate_budget(shopping_list.total_cost, weekly_budget)
        shopping_list.under_budget = status.under_budget
        shopping_list.budget_difference = status.difference
        logger.info(
            f"[BUDGET] total=${status.total:.2f} budget=${status.budget:.2f} "
            f"{status.describe()} within_target={status.within_target}"
        )
    return shopping_list
