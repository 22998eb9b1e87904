"""Dependency container wiring for the application."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path

from meal_planner.adapters.gateway import Gateway
from meal_planner.adapters.gateway_factory import build_gateway
from meal_planner.adapters.kv_storage import JsonFileStorage, KeyValueStorage
from meal_planner.adapters.local_mirror import LocalMirror
from meal_planner.config import Settings
from meal_planner.services.auth import AuthService
from meal_planner.services.background import BackgroundSync
from meal_planner.services.cart import ShoppingCartService
from meal_planner.services.catalog import CatalogService
from meal_planner.services.custom_dishes import CustomDishService
from meal_planner.services.history import MealHistoryService
from meal_planner.services.nutrition import NutritionService
from meal_planner.services.selection import SelectionService


@dataclass
class AppContainer:
    """Holds application-wide dependencies."""

    settings: Settings
    storage: KeyValueStorage
    gateway: Gateway
    background: BackgroundSync
    catalog_service: CatalogService
    custom_dish_service: CustomDishService
    selection_service: SelectionService
    cart_service: ShoppingCartService
    history_service: MealHistoryService
    nutrition_service: NutritionService
    auth_service: AuthService
    close_resources: Callable[[], Awaitable[None]]


def build_container(
    settings: Settings | None = None,
    storage: KeyValueStorage | None = None,
    gateway: Gateway | None = None,
) -> AppContainer:
    """Create the default dependency container."""
    resolved_settings = settings or Settings()
    resolved_storage = storage or JsonFileStorage(Path(resolved_settings.storage_path))
    resolved_gateway = gateway or build_gateway(resolved_settings, resolved_storage)
    mirror = LocalMirror(resolved_storage)
    background = BackgroundSync()
    custom_dish_service = CustomDishService(
        gateway=resolved_gateway,
        mirror=mirror,
        bucket=resolved_settings.supabase_bucket,
    )
    catalog_service = CatalogService(
        gateway=resolved_gateway,
        custom_dishes=custom_dish_service,
        seed_csv_path=resolved_settings.seed_csv_path,
        import_seed=resolved_gateway.is_mock,
    )
    selection_service = SelectionService(resolved_gateway, mirror, background)
    cart_service = ShoppingCartService(resolved_gateway, mirror, background)
    history_service = MealHistoryService(resolved_gateway, mirror)
    nutrition_service = NutritionService(history_service)
    auth_service = AuthService(
        gateway=resolved_gateway,
        selection=selection_service,
        cart=cart_service,
        history=history_service,
        catalog=catalog_service,
    )

    async def close_resources() -> None:
        await background.wait_idle()

    return AppContainer(
        settings=resolved_settings,
        storage=resolved_storage,
        gateway=resolved_gateway,
        background=background,
        catalog_service=catalog_service,
        custom_dish_service=custom_dish_service,
        selection_service=selection_service,
        cart_service=cart_service,
        history_service=history_service,
        nutrition_service=nutrition_service,
        auth_service=auth_service,
        close_resources=close_resources,
    )
