"""Shopping cart state with local mirror and remote sync."""

import json
import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime

from meal_planner.adapters.gateway import (
    DataGateway,
    Filters,
    GatewayResult,
    TableQuery,
)
from meal_planner.adapters.local_mirror import LocalMirror
from meal_planner.domain.cart import DEFAULT_QUANTITY, DEFAULT_UNIT, Ingredient
from meal_planner.domain.dishes import Dish
from meal_planner.domain.sync import SyncSource, SyncStatus
from meal_planner.errors import SyncError, ValidationError
from meal_planner.services.background import BackgroundSync
from meal_planner.services.reconciliation import (
    RecordChannel,
    RemoteRead,
    reconcile_record,
)

CART_TABLE = "shopping_cart"
EXPORT_TITLE = "购物清单"

# Pantry condiments never added to the cart.
SEASONINGS = frozenset(
    {
        "盐", "白糖", "糖", "生抽", "老抽", "料酒", "淀粉", "食用油", "油", "水",
        "醋", "香醋", "蒸鱼豉油", "黑胡椒", "白胡椒粉", "胡椒粉", "蚝油", "香油",
        "黄油", "橄榄油", "花椒", "八角", "桂皮", "香叶", "泡椒", "酱", "黄豆酱",
    }
)  # fmt: skip

_SEPARATORS = re.compile(r"[，,、;；]")
_NOTES = re.compile(r"[（(].*?[)）]")

_logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CartState:
    """Snapshot of the cart."""

    user_id: str | None = None
    ingredients: tuple[Ingredient, ...] = ()
    status: SyncStatus = SyncStatus()


@dataclass
class ShoppingCartService:
    """Owns the cart; one serialized row per user remotely."""

    gateway: DataGateway
    mirror: LocalMirror
    background: BackgroundSync
    state: CartState = field(default_factory=CartState)

    @property
    def ingredients(self) -> list[Ingredient]:
        return list(self.state.ingredients)

    async def load(self, user_id: str) -> CartState:
        """Reconcile the stored cart for a newly established session."""
        self.state = replace(
            self.state, user_id=user_id, status=replace(self.state.status, syncing=True)
        )
        outcome = await reconcile_record(self._channel(user_id), self.background)
        if self.state.user_id != user_id:
            return self.state
        self.state = CartState(
            user_id=user_id,
            ingredients=tuple(outcome.value),
            status=SyncStatus(source=outcome.source),
        )
        return self.state

    async def initialize_remote(self, user_id: str) -> GatewayResult:
        """Create an empty remote row for a new account."""
        return await self._write_remote(user_id, [])

    def add_ingredient(self, ingredient: Ingredient) -> None:
        """Append a manually entered ingredient."""
        _validate(ingredient)
        self._commit((*self.state.ingredients, ingredient))

    def remove_ingredient(self, index: int) -> None:
        items = list(self.state.ingredients)
        _check_index(index, items)
        del items[index]
        self._commit(tuple(items))

    def update_ingredient(self, index: int, ingredient: Ingredient) -> None:
        _validate(ingredient)
        items = list(self.state.ingredients)
        _check_index(index, items)
        items[index] = ingredient
        self._commit(tuple(items))

    def add_ingredients(self, new_items: Iterable[Ingredient]) -> None:
        """Add ingredients, coalescing entries that share a name."""
        self._commit(tuple(coalesce(list(self.state.ingredients), new_items)))

    def add_from_dishes(self, dishes: Iterable[Dish]) -> None:
        """Add the main ingredients of each dish, one portion apiece."""
        extracted = [
            Ingredient(name=name, quantity=DEFAULT_QUANTITY, unit=DEFAULT_UNIT)
            for dish in dishes
            for name in extract_ingredient_names(dish.ingredients)
        ]
        self.add_ingredients(extracted)

    def clear(self) -> None:
        """Empty the cart locally and delete the remote row."""
        self.state = replace(self.state, ingredients=())
        user_id = self.state.user_id
        if user_id is None:
            return
        self.mirror.write_cart(user_id, [])
        self.background.schedule(
            lambda: self.gateway.delete(CART_TABLE, Filters.eq(user_id=user_id)),
            lambda result: self._on_remote_write(user_id, result),
            label="cart-clear",
            key=_sync_key(user_id),
        )

    async def save(self) -> None:
        """Write the cart remotely now, raising when that fails."""
        user_id = self.state.user_id
        if user_id is None:
            raise SyncError("Sign in to save the shopping cart")
        items = list(self.state.ingredients)
        self.mirror.write_cart(user_id, items)
        result = await self.background.run_now(
            lambda: self._write_remote(user_id, items),
            label="cart-save",
            key=_sync_key(user_id),
        )
        self._on_remote_write(user_id, result)
        if not result.is_ok:
            raise SyncError("Saving the shopping cart failed")
        row = result.row()
        if row is not None and row.get("user_id") not in (None, user_id):
            raise SyncError("Saving the shopping cart returned another user's row")

    def export_text(self) -> str:
        """Render the cart as a plain-text shopping list."""
        lines = [
            f"{item.name} - {item.quantity}{item.unit}"
            for item in self.state.ingredients
        ]
        return f"{EXPORT_TITLE}\n\n" + "\n".join(lines)

    def reset(self) -> None:
        self.state = CartState()

    def _commit(self, ingredients: tuple[Ingredient, ...]) -> None:
        self.state = replace(self.state, ingredients=ingredients)
        user_id = self.state.user_id
        if user_id is None:
            return
        self.mirror.write_cart(user_id, list(ingredients))
        self.state = replace(
            self.state, status=replace(self.state.status, syncing=True)
        )
        self.background.schedule(
            lambda: self._write_remote(user_id, list(ingredients)),
            lambda result: self._on_remote_write(user_id, result),
            label="cart-sync",
            key=_sync_key(user_id),
        )

    def _on_remote_write(self, user_id: str, result: GatewayResult) -> None:
        if self.state.user_id != user_id:
            return
        if result.is_ok:
            status = SyncStatus(source=SyncSource.REMOTE)
        else:
            message = result.error.message if result.error else None
            _logger.warning("Cart kept locally only: %s", message)
            status = SyncStatus(source=SyncSource.LOCAL, last_error=message)
        self.state = replace(self.state, status=status)

    def _channel(self, user_id: str) -> RecordChannel[list[Ingredient]]:
        return RecordChannel(
            label="cart",
            read_remote=lambda: self._read_remote(user_id),
            write_remote=lambda value: self._write_remote(user_id, value),
            read_local=lambda: self.mirror.read_cart(user_id),
            write_local=lambda value: self.mirror.write_cart(user_id, value),
            is_empty=lambda value: not value,
            empty=list,
            sync_key=_sync_key(user_id),
        )

    async def _read_remote(self, user_id: str) -> RemoteRead[list[Ingredient]]:
        result = await self.gateway.select(
            CART_TABLE,
            TableQuery(
                columns="ingredients_json",
                filters=(("user_id", user_id),),
                single=True,
            ),
        )
        if result.error is not None:
            if result.error.is_not_found:
                return RemoteRead(reachable=True)
            return RemoteRead(reachable=False)
        raw = (result.row() or {}).get("ingredients_json")
        if not raw:
            return RemoteRead(reachable=True)
        try:
            payload = json.loads(raw) if isinstance(raw, str) else raw
        except ValueError:
            _logger.warning("Ignoring unparseable remote cart for %s", user_id)
            return RemoteRead(reachable=True)
        if not isinstance(payload, list):
            return RemoteRead(reachable=True)
        return RemoteRead(
            reachable=True,
            value=[Ingredient.from_row(row) for row in payload if isinstance(row, dict)],
        )

    async def _write_remote(
        self, user_id: str, ingredients: list[Ingredient]
    ) -> GatewayResult:
        return await self.gateway.upsert(
            CART_TABLE,
            {
                "user_id": user_id,
                "ingredients_json": json.dumps(
                    [item.to_row() for item in ingredients], ensure_ascii=False
                ),
                "updated_at": datetime.now(tz=UTC).isoformat(),
            },
            on_conflict="user_id",
        )


def extract_ingredient_names(raw: str | None) -> list[str]:
    """Split a dish's ingredient text into main ingredient names."""
    names = []
    for token in _SEPARATORS.split(raw or ""):
        name = _NOTES.sub("", token).strip()
        if "或" in name:
            name = name.split("或")[0].strip()
        if name and name not in SEASONINGS:
            names.append(name)
    return names


def coalesce(
    existing: list[Ingredient], new_items: Iterable[Ingredient]
) -> list[Ingredient]:
    """Merge same-name entries by summing integer quantities.

    A quantity that is not an integer counts as one portion.
    """
    combined = list(existing)
    for item in new_items:
        for index, current in enumerate(combined):
            if current.name == item.name:
                total = _portion(current.quantity) + _portion(item.quantity)
                combined[index] = Ingredient(
                    name=current.name,
                    quantity=str(total),
                    unit=current.unit or DEFAULT_UNIT,
                )
                break
        else:
            combined.append(item)
    return combined


def _portion(quantity: str) -> int:
    match = re.match(r"\s*[+-]?\d+", quantity or "")
    return int(match.group()) if match else 1


def _validate(ingredient: Ingredient) -> None:
    if not ingredient.name.strip():
        raise ValidationError("name", "Ingredient name is required")
    if not ingredient.quantity.strip():
        raise ValidationError("quantity", "Ingredient quantity is required")


def _check_index(index: int, items: list[Ingredient]) -> None:
    if not 0 <= index < len(items):
        raise ValidationError("index", f"No cart entry at position {index}")


def _sync_key(user_id: str) -> str:
    return f"{CART_TABLE}:{user_id}"
