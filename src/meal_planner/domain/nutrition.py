"""Domain models for nutrition summaries."""

from dataclasses import dataclass

from meal_planner.domain.history import NutritionTotals


@dataclass(frozen=True)
class DailyNutrition:
    """Summed nutrition for one meal date."""

    day: str
    totals: NutritionTotals


@dataclass(frozen=True)
class MacroShare:
    """One slice of the macro split chart."""

    name: str
    value: int


@dataclass(frozen=True)
class NutritionSummary:
    """Totals, averages and chart data for a range of days."""

    range_days: int
    daily: list[DailyNutrition]
    totals: NutritionTotals
    averages: NutritionTotals
    macro_split: list[MacroShare]
    today_calories: int
