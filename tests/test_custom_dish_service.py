"""Tests for user-submitted dishes."""

import asyncio

import pytest

from meal_planner.adapters.gateway import TableQuery
from meal_planner.domain.dishes import DishDraft, DishSource, ImageUpload
from meal_planner.errors import SyncError, ValidationError
from meal_planner.services.custom_dishes import (
    MAX_IMAGE_BYTES,
    USER_DISHES_TABLE,
    CustomDishService,
    validate_draft,
)
from tests.conftest import USER_ID

MISSING_TABLE = "Could not find the table 'public.user_dishes' in the schema cache"
PNG = ImageUpload(filename="my dish.png", content_type="image/png", content=b"png")


def _draft(**overrides: object) -> DishDraft:
    values: dict[str, object] = {
        "name": "外婆红烧肉",
        "category": "荤菜",
        "ingredients": ["五花肉", "冰糖，姜"],
        "steps": ["焯水", "", "炖煮"],
        "calories": "480",
        "protein": "-3",
        "carbs": "",
        "fat": 40,
    }
    values.update(overrides)
    return DishDraft(**values)  # type: ignore[arg-type]


def test_validate_draft_normalizes_fields() -> None:
    valid = validate_draft(_draft(), PNG)

    assert valid.ingredients == "五花肉,冰糖,姜"
    assert valid.cooking_steps == "焯水\n炖煮"
    assert valid.calories == 480
    assert valid.protein == 0.0
    assert valid.carbs is None
    assert valid.fat == 40.0


def test_validate_draft_truncates_long_text() -> None:
    valid = validate_draft(_draft(ingredients=["米" * 250], steps=["煮" * 400]), PNG)

    assert len(valid.ingredients) == 200
    assert len(valid.cooking_steps) == 300


@pytest.mark.parametrize(
    ("draft", "image", "field"),
    [
        (_draft(name="  "), PNG, "name"),
        (_draft(name="菜" * 51), PNG, "name"),
        (_draft(category="夜宵"), PNG, "category"),
        (_draft(), None, "image"),
        (
            _draft(),
            ImageUpload(filename="a.gif", content_type="image/gif", content=b"g"),
            "image",
        ),
        (
            _draft(),
            ImageUpload(
                filename="a.jpg",
                content_type="image/jpeg",
                content=b"0" * (MAX_IMAGE_BYTES + 1),
            ),
            "image",
        ),
        (_draft(calories="lots"), PNG, "calories"),
        (_draft(calories="inf"), PNG, "calories"),
        (_draft(protein="-inf"), PNG, "protein"),
        (_draft(carbs="nan"), PNG, "carbs"),
        (_draft(fat=float("inf")), PNG, "fat"),
    ],
)
def test_invalid_drafts_rejected(
    draft: DishDraft, image: ImageUpload | None, field: str
) -> None:
    with pytest.raises(ValidationError) as excinfo:
        validate_draft(draft, image)

    assert excinfo.value.field == field


def test_submit_uploads_and_inserts(gateway, mirror) -> None:
    service = CustomDishService(gateway, mirror, bucket="dish-images")

    dish = asyncio.run(service.submit(USER_ID, _draft(), PNG))

    rows = gateway.store.select(USER_DISHES_TABLE, TableQuery())
    assert dish.source == DishSource.REMOTE_CUSTOM
    assert dish.is_meat is True
    assert dish.user_id == USER_ID
    assert str(dish.image_url).startswith("data:image/png;base64,")
    assert rows[0]["id"] == dish.id
    assert mirror.read_custom_dishes(USER_ID) == []


def test_submit_upload_path_is_escaped(gateway, mirror) -> None:
    recorded: list[str] = []
    original_upload = gateway.upload

    async def spy(bucket, path, content, content_type):  # type: ignore[no-untyped-def]
        recorded.append(path)
        return await original_upload(bucket, path, content, content_type)

    gateway.upload = spy  # type: ignore[method-assign]
    service = CustomDishService(gateway, mirror)

    asyncio.run(service.submit(USER_ID, _draft(), PNG))

    user_part, file_part = recorded[0].split("/")
    timestamp, filename = file_part.split("-", 1)
    assert user_part == USER_ID
    assert timestamp.isdigit()
    assert filename == "my%20dish.png"


def test_validation_happens_before_any_call(gateway, mirror) -> None:
    service = CustomDishService(gateway, mirror)

    with pytest.raises(ValidationError):
        asyncio.run(service.submit(USER_ID, _draft(name=""), PNG))
    assert gateway.calls == []


def test_missing_table_keeps_dish_locally(gateway, mirror) -> None:
    gateway.fail(f"insert:{USER_DISHES_TABLE}", MISSING_TABLE, "PGRST205")
    service = CustomDishService(gateway, mirror)

    async def scenario() -> list[str]:
        await service.submit(USER_ID, _draft(name="第一道"), PNG)
        await service.submit(USER_ID, _draft(name="第二道"), PNG)
        return [dish.name for dish in mirror.read_custom_dishes(USER_ID)]

    assert asyncio.run(scenario()) == ["第二道", "第一道"]
    stored = mirror.read_custom_dishes(USER_ID)
    assert all(dish.id.startswith("local-") for dish in stored)
    assert all(dish.source == DishSource.LOCAL_CUSTOM for dish in stored)


def test_other_insert_errors_raise(gateway, mirror) -> None:
    gateway.fail(f"insert:{USER_DISHES_TABLE}", "permission denied", "42501")
    service = CustomDishService(gateway, mirror)

    with pytest.raises(SyncError):
        asyncio.run(service.submit(USER_ID, _draft(), PNG))


def test_upload_failure_raises(gateway, mirror) -> None:
    gateway.fail("upload:dish-images", "Payload too large", "413")
    service = CustomDishService(gateway, mirror)

    with pytest.raises(SyncError):
        asyncio.run(service.submit(USER_ID, _draft(), PNG))
    assert f"insert:{USER_DISHES_TABLE}" not in gateway.calls


def test_list_for_user_puts_local_first(gateway, mirror) -> None:
    service = CustomDishService(gateway, mirror)

    async def scenario() -> list[DishSource]:
        await service.submit(USER_ID, _draft(name="云端菜"), PNG)
        gateway.fail(f"insert:{USER_DISHES_TABLE}", MISSING_TABLE)
        await service.submit(USER_ID, _draft(name="本地菜"), PNG)
        gateway.failures.clear()
        dishes = await service.list_for_user(USER_ID)
        return [dish.source for dish in dishes]

    assert asyncio.run(scenario()) == [
        DishSource.LOCAL_CUSTOM,
        DishSource.REMOTE_CUSTOM,
    ]


def test_list_for_user_survives_remote_failure(gateway, mirror) -> None:
    gateway.fail(f"select:{USER_DISHES_TABLE}", MISSING_TABLE)
    service = CustomDishService(gateway, mirror)

    assert asyncio.run(service.list_for_user(USER_ID)) == []


def test_delete_local_and_remote(gateway, mirror) -> None:
    service = CustomDishService(gateway, mirror)

    async def scenario() -> list[object]:
        remote = await service.submit(USER_ID, _draft(name="云端菜"), PNG)
        gateway.fail(f"insert:{USER_DISHES_TABLE}", MISSING_TABLE)
        local = await service.submit(USER_ID, _draft(name="本地菜"), PNG)
        gateway.failures.clear()
        await service.delete(USER_ID, local.id)
        await service.delete(USER_ID, remote.id)
        return await service.list_for_user(USER_ID)

    assert asyncio.run(scenario()) == []
