"""Domain models for meal history."""

from dataclasses import dataclass

from meal_planner.domain.dishes import Dish


@dataclass(frozen=True)
class DishSummary:
    """Snapshot of a dish taken when a meal is saved."""

    id: str
    name: str
    category: str
    calories: float
    protein: float
    carbs: float
    fat: float

    @classmethod
    def from_dish(cls, dish: Dish) -> "DishSummary":
        """Snapshot the nutrition of a catalog dish."""
        return cls(
            id=dish.id,
            name=dish.name,
            category=dish.category,
            calories=float(dish.calories or 0),
            protein=float(dish.protein or 0),
            carbs=float(dish.carbs or 0),
            fat=float(dish.fat or 0),
        )

    def to_row(self) -> dict[str, object]:
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category,
            "calories": self.calories,
            "protein": self.protein,
            "carbs": self.carbs,
            "fat": self.fat,
        }

    @classmethod
    def from_row(cls, row: dict[str, object]) -> "DishSummary":
        return cls(
            id=str(row.get("id") or ""),
            name=str(row.get("name") or ""),
            category=str(row.get("category") or ""),
            calories=float(row.get("calories") or 0),
            protein=float(row.get("protein") or 0),
            carbs=float(row.get("carbs") or 0),
            fat=float(row.get("fat") or 0),
        )


@dataclass(frozen=True)
class NutritionTotals:
    """Aggregate calories and macros."""

    calories: float
    protein: float
    carbs: float
    fat: float

    def __add__(self, other: "NutritionTotals") -> "NutritionTotals":
        return NutritionTotals(
            calories=self.calories + other.calories,
            protein=self.protein + other.protein,
            carbs=self.carbs + other.carbs,
            fat=self.fat + other.fat,
        )


ZERO_TOTALS = NutritionTotals(0.0, 0.0, 0.0, 0.0)


@dataclass(frozen=True)
class MealHistoryRecord:
    """An immutable logged meal with its nutrition snapshot."""

    id: str
    user_id: str
    meal_date: str
    dish_ids: tuple[str, ...]
    dishes: tuple[DishSummary, ...]
    total_calories: float
    total_protein: float
    total_carbs: float
    total_fat: float
    created_at: str | None = None

    @property
    def totals(self) -> NutritionTotals:
        return NutritionTotals(
            calories=self.total_calories,
            protein=self.total_protein,
            carbs=self.total_carbs,
            fat=self.total_fat,
        )

    def to_row(self, include_id: bool = True) -> dict[str, object]:
        """Serialize for storage; remote inserts omit the id but keep the
        client creation time, which identifies a record across retries.
        """
        row: dict[str, object] = {
            "user_id": self.user_id,
            "meal_date": self.meal_date,
            "dish_ids": list(self.dish_ids),
            "dishes": [dish.to_row() for dish in self.dishes],
            "total_calories": self.total_calories,
            "total_protein": self.total_protein,
            "total_carbs": self.total_carbs,
            "total_fat": self.total_fat,
        }
        if include_id:
            row["id"] = self.id
        if self.created_at is not None:
            row["created_at"] = self.created_at
        return row

    @classmethod
    def from_row(cls, row: dict[str, object]) -> "MealHistoryRecord":
        raw_dishes = row.get("dishes") or []
        dishes = tuple(
            DishSummary.from_row(item) for item in raw_dishes if isinstance(item, dict)
        )
        raw_ids = row.get("dish_ids") or []
        return cls(
            id=str(row.get("id") or ""),
            user_id=str(row.get("user_id") or ""),
            meal_date=str(row.get("meal_date") or "")[:10],
            dish_ids=tuple(str(item) for item in raw_ids),
            dishes=dishes,
            total_calories=float(row.get("total_calories") or 0),
            total_protein=float(row.get("total_protein") or 0),
            total_carbs=float(row.get("total_carbs") or 0),
            total_fat=float(row.get("total_fat") or 0),
            created_at=_optional_str(row.get("created_at")),
        )


def snapshot_totals(dishes: tuple[DishSummary, ...]) -> NutritionTotals:
    """Sum the nutrition of a dish snapshot."""
    total = ZERO_TOTALS
    for dish in dishes:
        total = total + NutritionTotals(
            calories=dish.calories,
            protein=dish.protein,
            carbs=dish.carbs,
            fat=dish.fat,
        )
    return total


def _optional_str(value: object) -> str | None:
    if value is None:
        return None
    return str(value)
