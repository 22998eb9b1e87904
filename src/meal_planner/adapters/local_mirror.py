"""Typed per-user local mirrors for synchronized record kinds."""

from dataclasses import dataclass

from meal_planner.adapters.kv_storage import KeyValueStorage, read_json, write_json
from meal_planner.domain.cart import Ingredient
from meal_planner.domain.dishes import Dish, DishSource
from meal_planner.domain.history import MealHistoryRecord


def selection_key(user_id: str) -> str:
    return f"selected_dishes_{user_id}"


def custom_dishes_key(user_id: str) -> str:
    return f"user_dishes_{user_id}"


def history_queue_key(user_id: str) -> str:
    return f"meal_history_{user_id}"


def cart_key(user_id: str) -> str:
    return f"shopping_cart_{user_id}"


@dataclass
class LocalMirror:
    """Reads and writes the per-user keys; absent keys read as None."""

    storage: KeyValueStorage

    def read_selection(self, user_id: str) -> list[str] | None:
        payload = read_json(self.storage, selection_key(user_id))
        if not isinstance(payload, list):
            return None
        return [str(item) for item in payload]

    def write_selection(self, user_id: str, dish_ids: list[str]) -> None:
        write_json(self.storage, selection_key(user_id), list(dish_ids))

    def read_cart(self, user_id: str) -> list[Ingredient] | None:
        payload = read_json(self.storage, cart_key(user_id))
        if not isinstance(payload, list):
            return None
        return [Ingredient.from_row(row) for row in payload if isinstance(row, dict)]

    def write_cart(self, user_id: str, ingredients: list[Ingredient]) -> None:
        write_json(
            self.storage, cart_key(user_id), [item.to_row() for item in ingredients]
        )

    def read_custom_dishes(self, user_id: str) -> list[Dish]:
        payload = read_json(self.storage, custom_dishes_key(user_id))
        if not isinstance(payload, list):
            return []
        return [
            Dish.from_row(row, source=DishSource.LOCAL_CUSTOM)
            for row in payload
            if isinstance(row, dict)
        ]

    def write_custom_dishes(self, user_id: str, dishes: list[Dish]) -> None:
        write_json(
            self.storage,
            custom_dishes_key(user_id),
            [dish.to_row() for dish in dishes],
        )

    def read_history_queue(self, user_id: str) -> list[MealHistoryRecord]:
        payload = read_json(self.storage, history_queue_key(user_id))
        if not isinstance(payload, list):
            return []
        return [
            MealHistoryRecord.from_row(row) for row in payload if isinstance(row, dict)
        ]

    def write_history_queue(
        self, user_id: str, records: list[MealHistoryRecord]
    ) -> None:
        if not records:
            self.storage.remove_item(history_queue_key(user_id))
            return
        write_json(
            self.storage,
            history_queue_key(user_id),
            [record.to_row() for record in records],
        )
