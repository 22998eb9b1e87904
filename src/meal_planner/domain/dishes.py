"""Domain models for the dish catalog."""

from dataclasses import dataclass
from enum import StrEnum

MEAT_CATEGORY = "荤菜"
HALF_MEAT_CATEGORY = "半荤"
MEAT_CATEGORIES = frozenset({MEAT_CATEGORY, HALF_MEAT_CATEGORY})
KNOWN_CATEGORIES = (
    MEAT_CATEGORY,
    HALF_MEAT_CATEGORY,
    "素菜",
    "汤品",
    "主食",
    "西餐",
    "糕点",
)


class DishSource(StrEnum):
    """Where a catalog entry came from."""

    LOCAL_CUSTOM = "local_custom"
    REMOTE_CUSTOM = "remote_custom"
    REMOTE = "remote"
    SEED = "seed"


def is_meat_category(category: str | None) -> bool:
    """Return whether a category counts as a meat dish."""
    return (category or "") in MEAT_CATEGORIES


@dataclass(frozen=True)
class Dish:
    """A catalog dish with per-100g nutrition."""

    id: str
    name: str
    category: str
    image_url: str | None = None
    ingredients: str = ""
    cooking_steps: str | None = None
    calories: int | None = None
    protein: float | None = None
    carbs: float | None = None
    fat: float | None = None
    is_meat: bool = False
    created_at: str | None = None
    user_id: str | None = None
    source: DishSource = DishSource.REMOTE

    def to_row(self) -> dict[str, object]:
        """Serialize to a table row."""
        row: dict[str, object] = {
            "id": self.id,
            "name": self.name,
            "category": self.category,
            "image_url": self.image_url,
            "ingredients": self.ingredients,
            "cooking_steps": self.cooking_steps,
            "calories": self.calories,
            "protein": self.protein,
            "carbs": self.carbs,
            "fat": self.fat,
            "is_meat": self.is_meat,
        }
        if self.created_at is not None:
            row["created_at"] = self.created_at
        if self.user_id is not None:
            row["user_id"] = self.user_id
        return row

    @classmethod
    def from_row(
        cls, row: dict[str, object], source: DishSource = DishSource.REMOTE
    ) -> "Dish":
        """Normalize a stored row into a dish, deriving is_meat from category."""
        category = str(row.get("category") or "")
        user_id = row.get("user_id")
        return cls(
            id=str(row.get("id") or ""),
            name=str(row.get("name") or ""),
            category=category,
            image_url=_optional_str(row.get("image_url")),
            ingredients=str(row.get("ingredients") or ""),
            cooking_steps=_optional_str(row.get("cooking_steps")),
            calories=_optional_int(row.get("calories")),
            protein=_optional_float(row.get("protein")),
            carbs=_optional_float(row.get("carbs")),
            fat=_optional_float(row.get("fat")),
            is_meat=is_meat_category(category),
            created_at=_optional_str(row.get("created_at")),
            user_id=str(user_id) if user_id else None,
            source=source,
        )


@dataclass(frozen=True)
class DishDraft:
    """User input for a custom dish before validation."""

    name: str
    category: str
    ingredients: list[str]
    steps: list[str]
    calories: str | float | None = None
    protein: str | float | None = None
    carbs: str | float | None = None
    fat: str | float | None = None


@dataclass(frozen=True)
class ImageUpload:
    """An image file attached to a custom dish."""

    filename: str
    content_type: str
    content: bytes


def _optional_str(value: object) -> str | None:
    if value is None:
        return None
    return str(value)


def _optional_int(value: object) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return None


def _optional_float(value: object) -> float | None:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None
