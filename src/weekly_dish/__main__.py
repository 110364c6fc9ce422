#!/usr/bin/env python3
"""
Command-line entry point for the Weekly Dish planning core.

    python -m weekly_dish profile household.json
    python -m weekly_dish plan
    python -m weekly_dish replace --day 0 --meal dinner [--all-days]
    python -m weekly_dish accept
    python -m weekly_dish recipe "Chicken Stir Fry"
    python -m weekly_dish delete
"""

import argparse
import asyncio
import json
import logging

from .assistant import MealPlanningAssistant
from .config import Settings, configure_logging
from .data.models import HouseholdProfile, MealPlan
from .errors import WeeklyDishError

logger = logging.getLogger(__name__)


def format_plan(plan: MealPlan) -> str:
    lines = [plan.get_summary()]
    for day in plan.days:
        meals = day.meals
        lines.append(f"\n{day.day}")
        lines.append(f"  Breakfast: {meals.breakfast or '-'}")
        lines.append(f"  Lunch:     {meals.lunch or '-'}")
        lines.append(f"  Dinner:    {meals.dinner or '-'}")
        if meals.snacks:
            lines.append(f"  Snacks:    {', '.join(meals.snacks)}")
    return "\n".join(lines)


async def run(args: argparse.Namespace) -> None:
    settings = Settings.from_env()
    if args.db_path:
        settings.db_path = args.db_path

    assistant = MealPlanningAssistant(settings=settings)
    try:
        await assistant.load()

        if args.command == "profile":
            with open(args.target) as f:
                profile = HouseholdProfile.from_dict(json.load(f))
            await assistant.save_profile(profile)
            print(f"✓ Profile saved ({profile.servings} servings, ${profile.weekly_budget}/week)")

        elif args.command == "plan":
            plan = await assistant.generate_plan(prefetch_recipes=not args.no_prefetch)
            print("\n" + format_plan(plan))
            recipes = await assistant.wait_for_prefetch()
            print(f"\n✓ Meal plan saved: {plan.id} ({len(recipes)} recipes cached)")

        elif args.command == "replace":
            scope = await assistant.request_replacement(args.day, args.meal)
            replace_all = args.all_days and scope.requires_choice
            result = await assistant.replace_meal(args.day, args.meal, replace_all=replace_all)
            print(f"✓ {result.meal_type.value.title()} is now '{result.new_meal}' on days {result.day_indices}")

        elif args.command == "accept":
            result = await assistant.accept_plan()
            shopping_list = result.shopping_list
            for section in shopping_list.sections:
                print(f"\n{section.category}")
                for item in section.items:
                    label = f"{item.quantity} {item.name}".strip()
                    print(f"  - {label} (${item.price:.2f})")
            status = await assistant.budget_status()
            print(f"\nTotal: ${shopping_list.total_cost:.2f}")
            if status:
                print(status.describe())

        elif args.command == "recipe":
            recipe = await assistant.get_recipe(args.target)
            print(f"\n{recipe.name}")
            for ingredient in recipe.ingredients:
                print(f"  - {ingredient}")
            for idx, step in enumerate(recipe.instructions, start=1):
                print(f"  {idx}. {step}")

        elif args.command == "delete":
            await assistant.delete_plan()
            print("✓ Current plan deleted")
    finally:
        await assistant.aclose()


def main():
    """CLI entry point."""
    parser = argparse.ArgumentParser(description="Weekly Dish meal planner")
    parser.add_argument(
        "command",
        choices=["profile", "plan", "replace", "accept", "recipe", "delete"],
        help="Command to run",
    )
    parser.add_argument(
        "target",
        nargs="?",
        help="Profile JSON path (profile) or meal name (recipe)",
    )
    parser.add_argument("--day", type=int, default=0, help="Day index, 0 = Monday (replace)")
    parser.add_argument("--meal", type=str, default="dinner", help="breakfast, lunch or dinner (replace)")
    parser.add_argument("--all-days", action="store_true", help="Replace every day sharing the meal")
    parser.add_argument("--no-prefetch", action="store_true", help="Skip recipe prefetch after planning")
    parser.add_argument("--db-path", type=str, help="SQLite database path")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")

    args = parser.parse_args()
    configure_logging(logging.DEBUG if args.verbose else logging.INFO)

    if args.command in ("profile", "recipe") and not args.target:
        print(f"❌ Error: {args.command} requires a target argument")
        return

    try:
        asyncio.run(run(args))
    except WeeklyDishError as e:
        logger.error(f"{type(e).__name__}: {e}")
        print(f"❌ Error: {e}")


if __name__ == "__main__":
    main()
