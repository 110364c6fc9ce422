"""
Plan Reconciliation Engine.

Applies domain invariants to normalized plans and manages scoped mutation:
- finalize_generated_plan: normalize, enforce meal-prep homogeneity, stamp
- replace_meal / apply_replacement: compute replacement scope, write a new
  plan value (inputs are never mutated)
- accept_plan: couple acceptance to a successful shopping-list generation
- delete_plan: clear plan, list and acceptance together

Key invariants:
- Weekly Meal Prep plans have identical meals (snacks included) on all 7 days
- Any replacement resets acceptance and invalidates the shopping list
- A failed acceptance leaves acceptance and the prior list untouched
- Persistence order: list invalidation, acceptance flag, then plan

State machine per plan:
    NO_PLAN -> GENERATED -> (ACCEPTED <-> MODIFIED)
    DELETED reachable from any state; a new generation starts a new plan.
"""

import copy
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Awaitable, Callable, List, Optional, Union

from pydantic import BaseModel, model_validator

from .data.models import HouseholdProfile, MealPlan, MealType, ShoppingList, new_item_id
from .data.storage import MealPlanStore
from .errors import InvalidPlanTransition, ValidationFailure
from .events import SHOPPING_LIST_INVALIDATED, SHOPPING_LIST_REGENERATED, EventBus
from .normalizer import Raw, normalize_meal_name, normalize_meal_plan

logger = logging.getLogger(__name__)

ListGenerator = Callable[[MealPlan], Awaitable[ShoppingList]]


class PlanState(str, Enum):
    NO_PLAN = "no_plan"
    GENERATED = "generated"
    ACCEPTED = "accepted"
    MODIFIED = "modified"
    DELETED = "deleted"


_TRANSITIONS = {
    PlanState.NO_PLAN: {PlanState.GENERATED, PlanState.DELETED},
    PlanState.GENERATED: {PlanState.GENERATED, PlanState.MODIFIED, PlanState.ACCEPTED, PlanState.DELETED},
    PlanState.ACCEPTED: {PlanState.GENERATED, PlanState.MODIFIED, PlanState.ACCEPTED, PlanState.DELETED},
    PlanState.MODIFIED: {PlanState.GENERATED, PlanState.MODIFIED, PlanState.ACCEPTED, PlanState.DELETED},
    PlanState.DELETED: {PlanState.GENERATED, PlanState.DELETED},
}


# =============================================================================
# Result Models
# =============================================================================

class ReplacementScope(BaseModel):
    """
    Candidate day sets for a replacement.

    When requires_choice is True the caller must ask the user whether to
    replace only day_index (single) or every day sharing the meal
    (all_matching).
    """
    day_index: int
    meal_type: MealType
    current_meal: str
    single: List[int]
    all_matching: List[int]
    requires_choice: bool = False

    @model_validator(mode='after')
    def validate_sets(self) -> 'ReplacementScope':
        if self.single != [self.day_index]:
            raise ValueError("single scope must be exactly [day_index]")
        if self.day_index not in self.all_matching:
            raise ValueError("all_matching must include day_index")
        if self.requires_choice and len(self.all_matching) < 2:
            raise ValueError("requires_choice needs more than one matching day")
        return self

    def indices(self, replace_all: bool = False) -> List[int]:
        """Day indices for the caller's decision."""
        return list(self.all_matching) if replace_all else list(self.single)


@dataclass
class ReplacementResult:
    """New plan value plus the side effects the caller must persist."""
    plan: MealPlan
    meal_type: MealType
    day_indices: List[int]
    new_meal: str
    accepted: bool = False
    shopping_list_invalidated: bool = True


@dataclass
class AcceptanceResult:
    plan: MealPlan
    shopping_list: ShoppingList
    accepted: bool = True
    accepted_at: datetime = field(default_factory=datetime.now)


def enforce_meal_prep(plan: MealPlan) -> MealPlan:
    """Return a copy where every day holds a deep copy of day 0's meals."""
    enforced = plan.copy()
    if not enforced.days:
        return enforced
    template = enforced.days[0].meals
    for day in enforced.days:
        day.meals = copy.deepcopy(template)
    return enforced


# =============================================================================
# Engine
# =============================================================================

class PlanReconciliationEngine:
    """
    Owns the current plan's lifecycle state and its persisted records.

    Callers must not run generation, replacement and acceptance concurrently
    on the same engine; MealPlanningAssistant serialises them.
    """

    def __init__(self, store: MealPlanStore, events: Optional[EventBus] = None):
        self.store = store
        self.events = events or EventBus()
        self.state = PlanState.NO_PLAN
        self.accepted = False

    def _transition(self, target: PlanState) -> None:
        if target not in _TRANSITIONS[self.state]:
            raise InvalidPlanTransition(f"Cannot move plan from {self.state.value} to {target.value}")
        logger.debug(f"[PLAN] {self.state.value} -> {target.value}")
        self.state = target

    async def _publish_invalidated(self, reason: str, plan_id: Optional[str]) -> None:
        await self.events.publish(SHOPPING_LIST_INVALIDATED, {"reason": reason, "plan_id": plan_id})

    # Generation --------------------------------------------------------------

    async def finalize_generated_plan(
        self,
        raw: Union[Raw, MealPlan],
        profile: HouseholdProfile,
    ) -> MealPlan:
        """
        Normalize a generated plan, enforce invariants and make it current.

        The new plan supersedes any previous one: acceptance is reset and the
        cached shopping list removed before the plan is written.
        """
        plan = normalize_meal_plan(raw)
        if profile.is_weekly_meal_prep:
            plan = enforce_meal_prep(plan)
            logger.info("[PLAN] Enforced meal prep consistency - same meals all week")

        plan.id = new_item_id()
        plan.created_at = datetime.now()
        plan.week_budget = profile.weekly_budget

        if PlanState.GENERATED not in _TRANSITIONS[self.state]:
            raise InvalidPlanTransition(f"Cannot generate plan in state {self.state.value}")

        await self.store.remove_shopping_list()
        await self.store.set_accepted(False)
        await self.store.save_current_plan(plan)
        await self.store.prepend_plan(plan)

        self._transition(PlanState.GENERATED)
        self.accepted = False
        await self._publish_invalidated("plan_generated", plan.id)

        if plan.is_empty():
            logger.warning(f"[PLAN] Generated plan {plan.id} has no meals")
        logger.info(f"[PLAN] Finalized {plan.get_summary()}")
        return plan

    # Replacement -------------------------------------------------------------

    def replace_meal(
        self,
        plan: MealPlan,
        day_index: int,
        meal_type: Union[str, MealType],
        profile: HouseholdProfile,
    ) -> ReplacementScope:
        """
        Compute which days a replacement may touch.

        Only Weekly Meal Prep plans where the exact meal string appears on
        other days offer the all-matching choice; otherwise the scope is the
        single day.
        """
        meal_type = MealType.parse(meal_type)
        if not 0 <= day_index < len(plan.days):
            raise ValidationFailure(f"Day index {day_index} out of range", field="day_index")

        current = plan.meal_at(day_index, meal_type)
        matching = plan.days_with_meal(meal_type, current) if current else [day_index]
        requires_choice = profile.is_weekly_meal_prep and len(matching) > 1

        scope = ReplacementScope(
            day_index=day_index,
            meal_type=meal_type,
            current_meal=current,
            single=[day_index],
            all_matching=matching if requires_choice else [day_index],
            requires_choice=requires_choice,
        )
        logger.debug(
            f"[REPLACE] {meal_type.value} day={day_index} current='{current}' "
            f"matching={scope.all_matching} requires_choice={requires_choice}"
        )
        return scope

    def apply_replacement(
        self,
        plan: MealPlan,
        day_indices: List[int],
        meal_type: Union[str, MealType],
        new_meal_name: str,
    ) -> ReplacementResult:
        """
        Write new_meal_name into meal_type for every index, on a copy.

        Raises:
            NormalizationFailure: new_meal_name is blank
            ValidationFailure: no indices, or an index out of range
            InvalidPlanTransition: there is no current plan
        """
        meal_type = MealType.parse(meal_type)
        name = normalize_meal_name(new_meal_name)
        if not day_indices:
            raise ValidationFailure("At least one day must be selected", field="day_indices")
        for idx in day_indices:
            if not 0 <= idx < len(plan.days):
                raise ValidationFailure(f"Day index {idx} out of range", field="day_indices")

        self._transition(PlanState.MODIFIED)
        self.accepted = False

        updated = plan.copy()
        for idx in sorted(set(day_indices)):
            setattr(updated.days[idx].meals, meal_type.value, name)

        logger.info(f"[REPLACE] {meal_type.value} -> '{name}' on days {sorted(set(day_indices))}")
        return ReplacementResult(
            plan=updated,
            meal_type=meal_type,
            day_indices=sorted(set(day_indices)),
            new_meal=name,
        )

    async def persist_replacement(self, result: ReplacementResult) -> None:
        """Write list invalidation and the acceptance reset before the plan."""
        if result.shopping_list_invalidated:
            await self.store.remove_shopping_list()
        await self.store.set_accepted(result.accepted)
        await self.store.save_current_plan(result.plan)
        if result.shopping_list_invalidated:
            await self._publish_invalidated("meal_replaced", result.plan.id)

    # Acceptance --------------------------------------------------------------

    async def accept_plan(self, plan: MealPlan, generate_list: ListGenerator) -> AcceptanceResult:
        """
        Accept a plan by generating its shopping list.

        Acceptance is only recorded after the list was generated; any error
        from generate_list propagates with state, flag and prior list intact.
        """
        if PlanState.ACCEPTED not in _TRANSITIONS[self.state]:
            raise InvalidPlanTransition(f"Cannot accept plan in state {self.state.value}")

        logger.info(f"[PLAN] Accepting plan {plan.id}, generating shopping list")
        try:
            shopping_list = await generate_list(plan)
        except Exception as e:
            logger.error(f"[PLAN] Shopping list generation failed, plan not accepted: {e}")
            raise

        await self.store.save_shopping_list(shopping_list)
        await self.store.set_accepted(True)

        self._transition(PlanState.ACCEPTED)
        self.accepted = True

        await self.events.publish(SHOPPING_LIST_REGENERATED, {
            "reason": "plan_accepted",
            "plan_id": plan.id,
            "total_cost": shopping_list.total_cost,
            "under_budget": shopping_list.under_budget,
        })
        return AcceptanceResult(plan=plan, shopping_list=shopping_list)

    # Deletion / loading ------------------------------------------------------

    async def delete_plan(self) -> None:
        """Clear plan, shopping list and acceptance together."""
        self._transition(PlanState.DELETED)
        self.accepted = False
        await self.store.remove_shopping_list()
        await self.store.remove_accepted()
        await self.store.remove_current_plan()
        await self._publish_invalidated("plan_deleted", None)
        logger.info("[PLAN] Current plan deleted")

    async def load_current(self) -> Optional[MealPlan]:
        """Restore the current plan and its state from storage."""
        plan = await self.store.get_current_plan()
        self.accepted = bool(plan) and await self.store.is_accepted()
        if plan is None:
            self.state = PlanState.NO_PLAN
        elif self.accepted:
            self.state = PlanState.ACCEPTED
        else:
            self.state = PlanState.GENERATED
        logger.debug(f"[PLAN] Loaded state {self.state.value}")
        return plan
