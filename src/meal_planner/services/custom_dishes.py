"""User-submitted dishes."""

import logging
import math
import re
import time
from dataclasses import dataclass
from datetime import UTC, datetime
from urllib.parse import quote
from uuid import uuid4

from meal_planner.adapters.gateway import DataGateway, Filters, TableQuery
from meal_planner.adapters.local_mirror import LocalMirror
from meal_planner.domain.dishes import (
    KNOWN_CATEGORIES,
    Dish,
    DishDraft,
    DishSource,
    ImageUpload,
    is_meat_category,
)
from meal_planner.errors import SyncError, ValidationError

USER_DISHES_TABLE = "user_dishes"
MAX_NAME_LENGTH = 50
MAX_INGREDIENTS_LENGTH = 200
MAX_STEP_LENGTH = 300
MAX_IMAGE_BYTES = 2 * 1024 * 1024
ALLOWED_IMAGE_TYPES = frozenset({"image/jpeg", "image/png"})

_MARKUP = re.compile(r"[<>]")

_logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ValidDish:
    """A validated draft ready to persist."""

    name: str
    category: str
    ingredients: str
    cooking_steps: str
    image: ImageUpload
    calories: int | None
    protein: float | None
    carbs: float | None
    fat: float | None


@dataclass
class CustomDishService:
    """Validates, stores and lists user dishes."""

    gateway: DataGateway
    mirror: LocalMirror
    bucket: str = "dish-images"

    async def submit(
        self, user_id: str, draft: DishDraft, image: ImageUpload | None
    ) -> Dish:
        """Validate, upload the image and store the dish.

        A missing ``user_dishes`` table stores the dish in the user's local
        list instead.
        """
        valid = validate_draft(draft, image)
        image_url = await self._upload_image(user_id, valid.image)
        row: dict[str, object] = {
            "user_id": user_id,
            "name": valid.name,
            "category": valid.category,
            "image_url": image_url,
            "ingredients": valid.ingredients,
            "cooking_steps": valid.cooking_steps,
            "calories": valid.calories,
            "protein": valid.protein,
            "carbs": valid.carbs,
            "fat": valid.fat,
            "is_meat": is_meat_category(valid.category),
        }
        result = await self.gateway.insert(USER_DISHES_TABLE, [row])
        if result.error is None:
            stored = result.row() or row
            return Dish.from_row(
                {**row, **stored}, source=DishSource.REMOTE_CUSTOM
            )
        if not result.error.is_missing_table:
            raise SyncError(f"Saving the dish failed: {result.error.message}")
        _logger.info("Table %s missing, keeping dish locally", USER_DISHES_TABLE)
        dish = Dish.from_row(
            {
                **row,
                "id": f"local-{uuid4().hex}",
                "created_at": datetime.now(tz=UTC).isoformat(),
            },
            source=DishSource.LOCAL_CUSTOM,
        )
        self.mirror.write_custom_dishes(
            user_id, [dish, *self.mirror.read_custom_dishes(user_id)]
        )
        return dish

    async def list_for_user(self, user_id: str) -> list[Dish]:
        """Local dishes first, then remote ones."""
        local = self.mirror.read_custom_dishes(user_id)
        result = await self.gateway.select(
            USER_DISHES_TABLE, TableQuery(filters=(("user_id", user_id),))
        )
        if result.error is not None:
            if not result.error.is_missing_table:
                _logger.warning(
                    "Loading custom dishes failed: %s", result.error.message
                )
            return local
        remote = [
            Dish.from_row(row, source=DishSource.REMOTE_CUSTOM)
            for row in result.rows()
        ]
        return [*local, *remote]

    async def delete(self, user_id: str, dish_id: str) -> None:
        """Remove a user's dish from the local list or the remote table."""
        local = self.mirror.read_custom_dishes(user_id)
        remaining = [dish for dish in local if dish.id != dish_id]
        if len(remaining) != len(local):
            self.mirror.write_custom_dishes(user_id, remaining)
            return
        result = await self.gateway.delete(
            USER_DISHES_TABLE, Filters.eq(id=dish_id, user_id=user_id)
        )
        if result.error is not None:
            raise SyncError(f"Deleting the dish failed: {result.error.message}")

    async def _upload_image(self, user_id: str, image: ImageUpload) -> str:
        path = f"{user_id}/{int(time.time() * 1000)}-{quote(image.filename, safe='')}"
        result = await self.gateway.upload(
            self.bucket, path, image.content, image.content_type
        )
        if result.error is not None or not isinstance(result.data, str):
            message = result.error.message if result.error else "no URL returned"
            raise SyncError(f"Image upload failed: {message}")
        return result.data


def validate_draft(draft: DishDraft, image: ImageUpload | None) -> ValidDish:
    """Reject invalid input before anything is sent."""
    name = sanitize(draft.name, limit=None)
    if not name:
        raise ValidationError("name", "Dish name is required")
    if len(name) > MAX_NAME_LENGTH:
        raise ValidationError(
            "name", f"Dish name must be at most {MAX_NAME_LENGTH} characters"
        )
    if image is None:
        raise ValidationError("image", "A dish image is required")
    if image.content_type not in ALLOWED_IMAGE_TYPES:
        raise ValidationError("image", "Only JPG and PNG images are supported")
    if len(image.content) > MAX_IMAGE_BYTES:
        raise ValidationError("image", "Images must not exceed 2MB")
    if draft.category not in KNOWN_CATEGORIES:
        raise ValidationError("category", "Choose a valid dish category")
    joined = ",".join(
        item.replace("，", ",").strip()
        for item in draft.ingredients
        if item.replace("，", ",").strip()
    )
    steps = [sanitize(step, MAX_STEP_LENGTH) for step in draft.steps]
    return ValidDish(
        name=name,
        category=draft.category,
        ingredients=sanitize(joined, MAX_INGREDIENTS_LENGTH),
        cooking_steps="\n".join(step for step in steps if step),
        image=image,
        calories=_non_negative_int(draft.calories, "calories"),
        protein=_non_negative(draft.protein, "protein"),
        carbs=_non_negative(draft.carbs, "carbs"),
        fat=_non_negative(draft.fat, "fat"),
    )


def sanitize(value: str, limit: int | None) -> str:
    """Strip markup characters and surrounding space, then truncate."""
    cleaned = _MARKUP.sub("", value or "").strip()
    return cleaned[:limit] if limit is not None else cleaned


def _non_negative(value: str | float | None, field_name: str) -> float | None:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError(field_name, f"{field_name} must be a number") from None
    if not math.isfinite(number):
        raise ValidationError(field_name, f"{field_name} must be a finite number")
    return max(0.0, number)


def _non_negative_int(value: str | float | None, field_name: str) -> int | None:
    number = _non_negative(value, field_name)
    return None if number is None else round(number)
