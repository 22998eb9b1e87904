"""Bundled seed catalog parsing."""

import logging
import re
from pathlib import Path
from urllib.parse import quote

import pandas as pd

from meal_planner.domain.dishes import Dish, DishSource, is_meat_category

NAME_COLUMN = "菜名"
CATEGORY_COLUMN = "分类"
IMAGE_COLUMN = "图片路径"
STEPS_COLUMN = "烹饪方法"
INGREDIENTS_COLUMN = "食材"
CALORIES_COLUMN = "卡路里/100g"
PROTEIN_COLUMN = "蛋白质/100g"
CARBS_COLUMN = "碳水化合物/100g"
FAT_COLUMN = "脂肪/100g"

REQUIRED_COLUMNS = (
    NAME_COLUMN,
    CATEGORY_COLUMN,
    IMAGE_COLUMN,
    STEPS_COLUMN,
    INGREDIENTS_COLUMN,
    CALORIES_COLUMN,
    PROTEIN_COLUMN,
    CARBS_COLUMN,
    FAT_COLUMN,
)

# Fields compared when syncing stored rows with the seed file.
SYNCED_FIELDS = (
    "category",
    "image_url",
    "ingredients",
    "cooking_steps",
    "calories",
    "protein",
    "carbs",
    "fat",
    "is_meat",
)

_INT_PREFIX = re.compile(r"\s*[+-]?\d+")
_FLOAT_PREFIX = re.compile(r"\s*[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?")

_logger = logging.getLogger(__name__)


def seed_dish_id(name: str) -> str:
    """Stable id for a seed dish, derived from its escaped name."""
    return f"seed-{quote(name, safe='')}"


def load_seed_dishes(csv_path: str | Path) -> list[Dish]:
    """Parse the seed CSV; an unreadable file yields no dishes."""
    try:
        frame = pd.read_csv(
            csv_path, dtype=str, keep_default_na=False, skip_blank_lines=True
        )
    except (OSError, ValueError, pd.errors.ParserError) as exc:
        _logger.warning("Seed file %s unreadable: %s", csv_path, exc)
        return []
    missing = [column for column in REQUIRED_COLUMNS if column not in frame.columns]
    if missing:
        _logger.warning("Seed file %s lacks columns: %s", csv_path, missing)
        return []
    return parse_seed_frame(frame)


def parse_seed_frame(frame: pd.DataFrame) -> list[Dish]:
    """Convert seed rows to dishes, degrading bad numbers to zero."""
    dishes = []
    for record in frame.to_dict(orient="records"):
        name = str(record.get(NAME_COLUMN) or "").strip()
        if not name:
            continue
        category = str(record.get(CATEGORY_COLUMN) or "").strip()
        image_path = str(record.get(IMAGE_COLUMN) or "").strip()
        dishes.append(
            Dish(
                id=seed_dish_id(name),
                name=name,
                category=category,
                image_url=f"/{image_path}" if image_path else "",
                cooking_steps=str(record.get(STEPS_COLUMN) or ""),
                ingredients=str(record.get(INGREDIENTS_COLUMN) or ""),
                calories=parse_int(record.get(CALORIES_COLUMN)),
                protein=parse_float(record.get(PROTEIN_COLUMN)),
                carbs=parse_float(record.get(CARBS_COLUMN)),
                fat=parse_float(record.get(FAT_COLUMN)),
                is_meat=is_meat_category(category),
                source=DishSource.SEED,
            )
        )
    return dishes


def parse_int(value: object) -> int:
    """Parse a leading integer, defaulting to 0."""
    match = _INT_PREFIX.match(str(value or ""))
    return int(match.group()) if match else 0


def parse_float(value: object) -> float:
    """Parse a leading decimal number, defaulting to 0."""
    match = _FLOAT_PREFIX.match(str(value or ""))
    return float(match.group()) if match else 0.0


def changed_fields(stored: dict[str, object], dish: Dish) -> dict[str, object]:
    """Return seed values that differ from a stored row."""
    seed = dish.to_row()
    changes = {}
    for name in SYNCED_FIELDS:
        if _normalized(stored.get(name), name) != _normalized(seed.get(name), name):
            changes[name] = seed.get(name)
    return changes


def _normalized(value: object, name: str) -> object:
    if name == "is_meat":
        return bool(value)
    if name in {"calories", "protein", "carbs", "fat"}:
        try:
            return float(value or 0)
        except (TypeError, ValueError):
            return 0.0
    return value or ""
