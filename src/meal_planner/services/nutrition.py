"""Nutrition summaries over meal history."""

import math
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, timedelta

from meal_planner.domain.history import ZERO_TOTALS, MealHistoryRecord, NutritionTotals
from meal_planner.domain.nutrition import DailyNutrition, MacroShare, NutritionSummary
from meal_planner.errors import ValidationError
from meal_planner.services.history import MealHistoryService

TODAY_RANGE = 1
SUPPORTED_RANGES = (1, 7, 30, 90)

PROTEIN_LABEL = "蛋白质"
CARBS_LABEL = "碳水化合物"
FAT_LABEL = "脂肪"


@dataclass
class NutritionService:
    """Computes summaries from the loaded meal history."""

    history: MealHistoryService

    def summarize(
        self, range_days: int = 7, today: date | None = None
    ) -> NutritionSummary:
        """Summarize the last ``range_days`` days; 1 means today only."""
        if range_days not in SUPPORTED_RANGES:
            raise ValidationError(
                "range", f"Range must be one of {', '.join(map(str, SUPPORTED_RANGES))}"
            )
        today = today or date.today()
        records = self.history.records
        meals = filter_range(records, range_days, today)
        daily = daily_totals(meals)
        averages = average_totals(daily, range_days)
        return NutritionSummary(
            range_days=range_days,
            daily=daily,
            totals=sum_totals(meal.totals for meal in meals),
            averages=averages,
            macro_split=macro_split(averages),
            today_calories=today_calories(records, today),
        )


def filter_range(
    records: Iterable[MealHistoryRecord], range_days: int, today: date
) -> list[MealHistoryRecord]:
    """Keep today's meals for a one-day range, else the last N days."""
    if range_days == TODAY_RANGE:
        return [r for r in records if r.meal_date[:10] == today.isoformat()]
    cutoff = (today - timedelta(days=range_days)).isoformat()
    return [r for r in records if r.meal_date[:10] >= cutoff]


def daily_totals(records: Iterable[MealHistoryRecord]) -> list[DailyNutrition]:
    """Group meals by date, oldest first."""
    by_day: dict[str, NutritionTotals] = {}
    for record in records:
        day = record.meal_date[:10]
        by_day[day] = by_day.get(day, ZERO_TOTALS) + record.totals
    return [DailyNutrition(day=day, totals=by_day[day]) for day in sorted(by_day)]


def sum_totals(items: Iterable[NutritionTotals]) -> NutritionTotals:
    total = ZERO_TOTALS
    for item in items:
        total = total + item
    return total


def average_totals(daily: list[DailyNutrition], range_days: int) -> NutritionTotals:
    """Per-day averages over the whole range, rounded.

    Days without meals still count; today's range returns the totals.
    """
    if not daily:
        return ZERO_TOTALS
    totals = sum_totals(entry.totals for entry in daily)
    divisor = 1 if range_days == TODAY_RANGE else range_days
    return NutritionTotals(
        calories=round_half_up(totals.calories / divisor),
        protein=round_half_up(totals.protein / divisor),
        carbs=round_half_up(totals.carbs / divisor),
        fat=round_half_up(totals.fat / divisor),
    )


def macro_split(averages: NutritionTotals) -> list[MacroShare]:
    """Chart slices for protein, carbs and fat; empty when all are zero."""
    if averages.protein + averages.carbs + averages.fat == 0:
        return []
    return [
        MacroShare(name=PROTEIN_LABEL, value=int(averages.protein)),
        MacroShare(name=CARBS_LABEL, value=int(averages.carbs)),
        MacroShare(name=FAT_LABEL, value=int(averages.fat)),
    ]


def today_calories(records: Iterable[MealHistoryRecord], today: date) -> int:
    """Calories logged today, independent of the selected range."""
    meals = filter_range(records, TODAY_RANGE, today)
    return round_half_up(sum(meal.total_calories for meal in meals))


def round_half_up(value: float) -> int:
    # round() rounds halves to even; meal totals round halves up.
    return math.floor(value + 0.5)
