"""Dish catalog assembled from the remote table, custom dishes and the seed file."""

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field, replace
from pathlib import Path

from meal_planner.adapters.gateway import DataGateway, Filters, TableQuery
from meal_planner.domain.dishes import Dish, DishSource
from meal_planner.services.custom_dishes import CustomDishService
from meal_planner.services.seed import changed_fields, load_seed_dishes

DISHES_TABLE = "dishes"

_logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SeedImportReport:
    """Rows touched by an incremental seed import."""

    inserted: int
    updated: int


@dataclass(frozen=True)
class CatalogState:
    """The in-memory catalog."""

    dishes: tuple[Dish, ...] = ()
    loading: bool = False


@dataclass
class CatalogService:
    """Loads and merges the dish catalog.

    ``import_seed`` is set when the dishes table lives in local storage;
    the seed file is then synced into it on every load.
    """

    gateway: DataGateway
    custom_dishes: CustomDishService
    seed_csv_path: str | Path
    import_seed: bool = False
    state: CatalogState = field(default_factory=CatalogState)

    @property
    def dishes(self) -> list[Dish]:
        return list(self.state.dishes)

    async def load(self, user_id: str | None = None) -> list[Dish]:
        """Rebuild the catalog; read failures degrade to the seed file."""
        self.state = replace(self.state, loading=True)
        try:
            seeds = load_seed_dishes(self.seed_csv_path)
            if self.import_seed:
                await self.import_seed_dishes(seeds)
            system = await self._read_system_dishes()
            if system:
                base = [*system, *seeds]
            else:
                base = seeds
            customs: list[Dish] = []
            if user_id:
                customs = await self.custom_dishes.list_for_user(user_id)
            merged = merge_catalog([*customs, *base])
            self.state = CatalogState(dishes=tuple(merged))
        finally:
            if self.state.loading:
                self.state = replace(self.state, loading=False)
        _logger.info(
            "Catalog loaded: %s dishes (%s custom, %s system)",
            len(merged),
            len(customs),
            len(system),
        )
        return self.dishes

    async def import_seed_dishes(self, seeds: list[Dish]) -> SeedImportReport:
        """Insert seed dishes missing by name and refresh changed fields.

        Seed rows repeating an earlier name are ignored.
        """
        unique: dict[str, Dish] = {}
        for dish in seeds:
            unique.setdefault(dish.name, dish)
        seeds = list(unique.values())
        result = await self.gateway.select(
            DISHES_TABLE,
            TableQuery(
                columns=(
                    "id,name,category,image_url,ingredients,cooking_steps,"
                    "calories,protein,carbs,fat,is_meat"
                ),
            ),
        )
        if result.error is not None:
            _logger.warning("Seed import skipped: %s", result.error.message)
            return SeedImportReport(inserted=0, updated=0)
        existing = {str(row.get("name")): row for row in result.rows()}

        to_insert = [dish for dish in seeds if dish.name not in existing]
        if to_insert:
            inserted = await self.gateway.insert(
                DISHES_TABLE, [dish.to_row() for dish in to_insert]
            )
            if inserted.error is not None:
                _logger.warning("Seed insert failed: %s", inserted.error.message)
                to_insert = []
            else:
                _logger.info("Seed import added %s dishes", len(to_insert))

        updated = 0
        for dish in seeds:
            stored = existing.get(dish.name)
            if stored is None:
                continue
            changes = changed_fields(stored, dish)
            if not changes:
                continue
            outcome = await self.gateway.update(
                DISHES_TABLE, changes, Filters.eq(id=stored.get("id"))
            )
            if outcome.error is None:
                updated += 1
        if updated:
            _logger.info("Seed import refreshed %s dishes", updated)
        return SeedImportReport(inserted=len(to_insert), updated=updated)

    def find(self, dish_ids: Iterable[str]) -> list[Dish]:
        """Return catalog dishes for ids, in the order given."""
        by_id = {dish.id: dish for dish in self.state.dishes}
        return [by_id[dish_id] for dish_id in dish_ids if dish_id in by_id]

    async def _read_system_dishes(self) -> list[Dish]:
        result = await self.gateway.select(
            DISHES_TABLE, TableQuery(order_by="name")
        )
        if result.error is not None:
            _logger.warning(
                "Loading dishes failed, using seed file: %s", result.error.message
            )
            return []
        return [Dish.from_row(row, source=DishSource.REMOTE) for row in result.rows()]


def merge_catalog(dishes: Iterable[Dish]) -> list[Dish]:
    """Keep the first dish seen for each name."""
    merged: dict[str, Dish] = {}
    for dish in dishes:
        if dish.name and dish.name not in merged:
            merged[dish.name] = dish
    return list(merged.values())
