"""FastAPI application factory."""

import base64
import binascii
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import asdict

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse, PlainTextResponse

from meal_planner.api.models import (
    Credentials,
    CustomDishRequest,
    ImagePayload,
    IngredientPayload,
    RandomMenuRequest,
    SaveMealRequest,
    ToggleRequest,
)
from meal_planner.app_logging import configure_logging
from meal_planner.containers import AppContainer
from meal_planner.domain.cart import Ingredient
from meal_planner.domain.dishes import DishDraft, ImageUpload
from meal_planner.errors import (
    AuthError,
    NotAuthenticatedError,
    SyncError,
    ValidationError,
)
from meal_planner.services.menu import generate_random_menu


def create_app(container: AppContainer) -> FastAPI:  # noqa: C901, PLR0915
    """Create a FastAPI app configured with dependencies."""
    configure_logging(container.settings.log_level)
    logger = logging.getLogger(__name__)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        state_container: AppContainer = app.state.container
        try:
            user = await state_container.auth_service.check_auth()
            if user is None:
                await state_container.catalog_service.load()
        except Exception:
            logger.exception("Failed to restore the session on startup")
        yield
        await state_container.close_resources()

    app = FastAPI(lifespan=lifespan)
    app.state.container = container

    @app.exception_handler(ValidationError)
    async def validation_error(_: Request, exc: ValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=422,
            content={"field": exc.field, "detail": exc.message},
        )

    @app.exception_handler(SyncError)
    async def sync_error(_: Request, exc: SyncError) -> JSONResponse:
        logger.warning("Sync failed: %s", exc)
        return JSONResponse(
            status_code=status.HTTP_502_BAD_GATEWAY, content={"detail": str(exc)}
        )

    @app.exception_handler(NotAuthenticatedError)
    async def not_authenticated(
        _: Request, exc: NotAuthenticatedError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_401_UNAUTHORIZED, content={"detail": str(exc)}
        )

    @app.exception_handler(AuthError)
    async def auth_error(_: Request, exc: AuthError) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST, content={"detail": str(exc)}
        )

    def _container(request: Request) -> AppContainer:
        return request.app.state.container

    @app.get("/health")
    async def health(request: Request) -> dict[str, object]:
        """Health check reporting which backend answers."""
        return {"status": "ok", "mock": _container(request).gateway.is_mock}

    @app.post("/auth/login")
    async def login(body: Credentials, request: Request) -> dict[str, object]:
        user = await _container(request).auth_service.login(body.email, body.password)
        return {"user": asdict(user)}

    @app.post("/auth/register")
    async def register(body: Credentials, request: Request) -> dict[str, object]:
        auth = _container(request).auth_service
        user = await auth.register(body.email, body.password)
        return {"user": asdict(user)}

    @app.post("/auth/logout")
    async def logout(request: Request) -> dict[str, str]:
        await _container(request).auth_service.logout()
        return {"status": "ok"}

    @app.get("/auth/me")
    async def me(request: Request) -> dict[str, object]:
        user = _container(request).auth_service.require_user()
        return {"user": asdict(user)}

    @app.get("/dishes")
    async def list_dishes(
        request: Request, refresh: bool = False
    ) -> dict[str, object]:
        """Return the merged dish catalog."""
        state_container = _container(request)
        catalog = state_container.catalog_service
        if refresh or not catalog.dishes:
            user = state_container.auth_service.user
            await catalog.load(user.id if user else None)
        return {"dishes": [asdict(dish) for dish in catalog.dishes]}

    @app.post("/dishes/custom", status_code=status.HTTP_201_CREATED)
    async def create_custom_dish(
        body: CustomDishRequest, request: Request
    ) -> dict[str, object]:
        state_container = _container(request)
        user = state_container.auth_service.require_user()
        draft = DishDraft(
            name=body.name,
            category=body.category,
            ingredients=body.ingredients,
            steps=body.steps,
            calories=body.calories,
            protein=body.protein,
            carbs=body.carbs,
            fat=body.fat,
        )
        dish = await state_container.custom_dish_service.submit(
            user.id, draft, _decode_image(body.image)
        )
        await state_container.catalog_service.load(user.id)
        return {"dish": asdict(dish)}

    @app.delete("/dishes/custom/{dish_id}")
    async def delete_custom_dish(dish_id: str, request: Request) -> dict[str, str]:
        state_container = _container(request)
        user = state_container.auth_service.require_user()
        await state_container.custom_dish_service.delete(user.id, dish_id)
        await state_container.catalog_service.load(user.id)
        return {"status": "ok"}

    @app.get("/selection")
    async def get_selection(request: Request) -> dict[str, object]:
        state_container = _container(request)
        state_container.auth_service.require_user()
        return _selection_payload(state_container)

    @app.post("/selection/toggle")
    async def toggle_selection(
        body: ToggleRequest, request: Request
    ) -> dict[str, object]:
        state_container = _container(request)
        state_container.auth_service.require_user()
        state_container.selection_service.toggle(body.dish_id)
        return _selection_payload(state_container)

    @app.delete("/selection")
    async def clear_selection(request: Request) -> dict[str, object]:
        state_container = _container(request)
        state_container.auth_service.require_user()
        state_container.selection_service.clear()
        return _selection_payload(state_container)

    @app.post("/menu/random")
    async def random_menu(
        body: RandomMenuRequest, request: Request
    ) -> dict[str, object]:
        """Replace the selection with a random balanced menu."""
        state_container = _container(request)
        state_container.auth_service.require_user()
        catalog = state_container.catalog_service
        dish_ids = generate_random_menu(catalog.dishes, body.dining_count)
        state_container.selection_service.replace_all(dish_ids)
        return {
            "dishes": [asdict(dish) for dish in catalog.find(dish_ids)],
            **_selection_payload(state_container),
        }

    @app.get("/cart")
    async def get_cart(request: Request) -> dict[str, object]:
        state_container = _container(request)
        state_container.auth_service.require_user()
        return _cart_payload(state_container)

    @app.post("/cart/items", status_code=status.HTTP_201_CREATED)
    async def add_cart_item(
        body: IngredientPayload, request: Request
    ) -> dict[str, object]:
        state_container = _container(request)
        state_container.auth_service.require_user()
        state_container.cart_service.add_ingredient(_ingredient(body))
        return _cart_payload(state_container)

    @app.put("/cart/items/{index}")
    async def update_cart_item(
        index: int, body: IngredientPayload, request: Request
    ) -> dict[str, object]:
        state_container = _container(request)
        state_container.auth_service.require_user()
        state_container.cart_service.update_ingredient(index, _ingredient(body))
        return _cart_payload(state_container)

    @app.delete("/cart/items/{index}")
    async def remove_cart_item(index: int, request: Request) -> dict[str, object]:
        state_container = _container(request)
        state_container.auth_service.require_user()
        state_container.cart_service.remove_ingredient(index)
        return _cart_payload(state_container)

    @app.post("/cart/from-selection")
    async def cart_from_selection(request: Request) -> dict[str, object]:
        """Add the main ingredients of every selected dish."""
        state_container = _container(request)
        state_container.auth_service.require_user()
        dishes = state_container.catalog_service.find(
            state_container.selection_service.selected
        )
        state_container.cart_service.add_from_dishes(dishes)
        return _cart_payload(state_container)

    @app.post("/cart/save")
    async def save_cart(request: Request) -> dict[str, object]:
        state_container = _container(request)
        state_container.auth_service.require_user()
        await state_container.cart_service.save()
        return _cart_payload(state_container)

    @app.delete("/cart")
    async def clear_cart(request: Request) -> dict[str, object]:
        state_container = _container(request)
        state_container.auth_service.require_user()
        state_container.cart_service.clear()
        return _cart_payload(state_container)

    @app.get("/cart/export", response_class=PlainTextResponse)
    async def export_cart(request: Request) -> str:
        state_container = _container(request)
        state_container.auth_service.require_user()
        return state_container.cart_service.export_text()

    @app.get("/history")
    async def get_history(request: Request) -> dict[str, object]:
        state_container = _container(request)
        user = state_container.auth_service.require_user()
        records = await state_container.history_service.load(user.id)
        return {"records": [asdict(record) for record in records]}

    @app.post("/history", status_code=status.HTTP_201_CREATED)
    async def save_meal(body: SaveMealRequest, request: Request) -> dict[str, object]:
        """Log a meal from the given dish ids or the current selection."""
        state_container = _container(request)
        user = state_container.auth_service.require_user()
        dish_ids = body.dish_ids
        if dish_ids is None:
            dish_ids = state_container.selection_service.selected
        dishes = state_container.catalog_service.find(dish_ids)
        record = await state_container.history_service.save_meal(
            user.id, dishes, body.meal_date
        )
        return {"record": asdict(record)}

    @app.delete("/history/{record_id}")
    async def delete_meal(record_id: str, request: Request) -> dict[str, str]:
        state_container = _container(request)
        state_container.auth_service.require_user()
        await state_container.history_service.delete(record_id)
        return {"status": "ok"}

    @app.post("/history/sync")
    async def sync_history(request: Request) -> dict[str, int]:
        """Push locally queued meals to the remote table."""
        state_container = _container(request)
        user = state_container.auth_service.require_user()
        flushed = await state_container.history_service.flush_local(user.id)
        return {"flushed": flushed}

    @app.get("/nutrition")
    async def nutrition(request: Request, days: int = 7) -> dict[str, object]:
        state_container = _container(request)
        user = state_container.auth_service.require_user()
        history = state_container.history_service
        if history.state.user_id != user.id:
            await history.load(user.id)
        return asdict(state_container.nutrition_service.summarize(days))

    return app


def _selection_payload(container: AppContainer) -> dict[str, object]:
    state = container.selection_service.state
    return {
        "selected": list(state.selected),
        "sync_source": state.status.source,
        "syncing": state.status.syncing,
    }


def _cart_payload(container: AppContainer) -> dict[str, object]:
    state = container.cart_service.state
    return {
        "ingredients": [item.to_row() for item in state.ingredients],
        "sync_source": state.status.source,
        "syncing": state.status.syncing,
    }


def _ingredient(body: IngredientPayload) -> Ingredient:
    return Ingredient(name=body.name, quantity=body.quantity, unit=body.unit)


def _decode_image(payload: ImagePayload | None) -> ImageUpload | None:
    if payload is None:
        return None
    try:
        content = base64.b64decode(payload.data_base64, validate=True)
    except (binascii.Error, ValueError):
        raise ValidationError("image", "Image data is not valid base64") from None
    return ImageUpload(
        filename=payload.filename,
        content_type=payload.content_type,
        content=content,
    )
