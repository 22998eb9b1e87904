"""Tests for the Supabase gateway adapter."""

import asyncio
import time

import httpx

from meal_planner.adapters.gateway import Filters, TableQuery, user_from_result
from meal_planner.adapters.supabase_gateway import SupabaseGateway
from tests.conftest import FakeApiError, FakeSupabaseClient

MISSING_TABLE = "Could not find the table 'public.user_dishes' in the schema cache"


def _gateway(client: FakeSupabaseClient, **kwargs: float) -> SupabaseGateway:
    return SupabaseGateway(client=client, retry_delay_seconds=0.0, **kwargs)


def test_select_applies_filters_order_and_single() -> None:
    client = FakeSupabaseClient()
    table = client.table("meal_history")
    table.queue("select", {"id": "m1", "user_id": "u1"})

    result = asyncio.run(
        _gateway(client).select(
            "meal_history",
            TableQuery(
                filters=(("user_id", "u1"),),
                order_by="meal_date",
                descending=True,
                single=True,
            ),
        )
    )

    assert result.row() == {"id": "m1", "user_id": "u1"}
    assert table.last_filters == [("user_id", "u1")]
    assert table.last_order == ("meal_date", True)
    assert table.single_requested


def test_select_is_not_retried() -> None:
    client = FakeSupabaseClient()
    table = client.table("dishes")
    table.queue("select", FakeApiError("server exploded", code="500"))
    table.queue("select", [{"id": "d1"}])

    result = asyncio.run(_gateway(client).select("dishes", TableQuery()))

    assert result.error is not None
    assert table.calls == ["select"]


def test_single_select_not_found_maps_code() -> None:
    client = FakeSupabaseClient()
    client.table("user_selections").queue(
        "select", FakeApiError("JSON object requested", code="PGRST116")
    )

    result = asyncio.run(
        _gateway(client).select("user_selections", TableQuery(single=True))
    )

    assert result.error is not None
    assert result.error.is_not_found


def test_write_retries_transient_failures_then_succeeds() -> None:
    client = FakeSupabaseClient()
    table = client.table("meal_history")
    table.queue("insert", httpx.ConnectError("connection refused"))
    table.queue("insert", FakeApiError("bad gateway", code="502"))
    table.queue("insert", [{"id": "m1"}])

    result = asyncio.run(_gateway(client).insert("meal_history", [{"user_id": "u1"}]))

    assert result.rows() == [{"id": "m1"}]
    assert table.calls == ["insert", "insert", "insert"]


def test_write_gives_up_after_retry_budget() -> None:
    client = FakeSupabaseClient()
    table = client.table("shopping_cart")
    for _ in range(5):
        table.queue("upsert", FakeApiError("unavailable", code="503"))

    result = asyncio.run(
        _gateway(client, retry_attempts=2).upsert(
            "shopping_cart", {"user_id": "u1"}, on_conflict="user_id"
        )
    )

    assert result.error is not None
    assert result.error.is_transient
    assert table.calls == ["upsert"] * 3
    assert table.last_on_conflict == "user_id"


def test_retry_waits_with_linear_backoff() -> None:
    client = FakeSupabaseClient()
    table = client.table("meal_history")
    table.queue("insert", FakeApiError("unavailable", code="503"))
    table.queue("insert", FakeApiError("unavailable", code="503"))
    table.queue("insert", [{"id": "m1"}])
    gateway = SupabaseGateway(client=client, retry_delay_seconds=0.05)

    started = time.monotonic()
    result = asyncio.run(gateway.insert("meal_history", [{"user_id": "u1"}]))
    elapsed = time.monotonic() - started

    assert result.is_ok
    # 0.05 after the first failure, 0.10 after the second.
    assert elapsed >= 0.15


def test_missing_table_is_not_retried() -> None:
    client = FakeSupabaseClient()
    table = client.table("user_dishes")
    table.queue("insert", FakeApiError(MISSING_TABLE, code="PGRST205"))
    table.queue("insert", [{"id": "never"}])

    result = asyncio.run(_gateway(client).insert("user_dishes", [{"name": "x"}]))

    assert result.error is not None
    assert result.error.is_missing_table
    assert table.calls == ["insert"]


def test_timeout_becomes_transient_error() -> None:
    client = FakeSupabaseClient()
    client.table("dishes").queue("select", TimeoutError())

    result = asyncio.run(_gateway(client).select("dishes", TableQuery()))

    assert result.error is not None
    assert result.error.code == "timeout"


def test_slow_call_hits_timeout() -> None:
    client = FakeSupabaseClient()
    table = client.table("dishes")
    original_execute = table.execute

    def slow_execute():  # type: ignore[no-untyped-def]
        time.sleep(0.2)
        return original_execute()

    table.execute = slow_execute  # type: ignore[method-assign]
    gateway = SupabaseGateway(client=client, timeout_seconds=0.01)

    result = asyncio.run(gateway.select("dishes", TableQuery()))

    assert result.error is not None
    assert result.error.is_transient


def test_constraint_violation_is_attempted_once() -> None:
    client = FakeSupabaseClient()
    table = client.table("meal_history")
    table.queue(
        "insert",
        FakeApiError(
            'null value in column "meal_date" violates not-null constraint',
            code="23502",
        ),
    )
    table.queue("insert", [{"id": "never"}])

    result = asyncio.run(_gateway(client).insert("meal_history", [{"user_id": "u1"}]))

    assert result.error is not None
    assert result.error.code == "23502"
    assert table.calls == ["insert"]


def test_client_error_on_upsert_is_not_retried() -> None:
    client = FakeSupabaseClient()
    table = client.table("shopping_cart")
    table.queue("upsert", FakeApiError("permission denied", code="401"))

    result = asyncio.run(
        _gateway(client).upsert(
            "shopping_cart", {"user_id": "u1"}, on_conflict="user_id"
        )
    )

    assert result.error is not None
    assert table.calls == ["upsert"]


def test_timed_out_insert_is_not_sent_again() -> None:
    client = FakeSupabaseClient()
    table = client.table("meal_history")
    stored: list[object] = []
    original_execute = table.execute

    def commit_then_answer_late():  # type: ignore[no-untyped-def]
        response = original_execute()
        stored.append(table.last_payload)
        time.sleep(0.3)
        return response

    table.execute = commit_then_answer_late  # type: ignore[method-assign]
    gateway = SupabaseGateway(
        client=client, timeout_seconds=0.1, retry_delay_seconds=0.0
    )

    result = asyncio.run(
        gateway.insert("meal_history", [{"user_id": "u1", "total_calories": 1100}])
    )

    assert result.error is not None
    assert result.error.code == "timeout"
    assert len(stored) == 1
    assert table.calls == ["insert"]


def test_timed_out_upsert_is_retried() -> None:
    client = FakeSupabaseClient()
    table = client.table("shopping_cart")
    original_execute = table.execute
    delays = [0.3]

    def slow_once():  # type: ignore[no-untyped-def]
        response = original_execute()
        if delays:
            time.sleep(delays.pop())
        return response

    table.execute = slow_once  # type: ignore[method-assign]
    gateway = SupabaseGateway(
        client=client, timeout_seconds=0.1, retry_delay_seconds=0.0
    )

    result = asyncio.run(
        gateway.upsert("shopping_cart", {"user_id": "u1"}, on_conflict="user_id")
    )

    assert result.is_ok
    assert table.calls == ["upsert", "upsert"]


def test_update_and_delete_apply_filters() -> None:
    client = FakeSupabaseClient()
    table = client.table("dishes")
    gateway = _gateway(client)

    asyncio.run(gateway.update("dishes", {"calories": 1}, Filters.eq(id="d1")))
    assert table.last_payload == {"calories": 1}
    assert table.last_filters == [("id", "d1")]

    deleted = asyncio.run(gateway.delete("dishes", Filters.eq(id="d2", user_id="u")))
    assert deleted.rows() == []
    assert table.last_filters == [("id", "d2"), ("user_id", "u")]


def test_upload_returns_public_url() -> None:
    client = FakeSupabaseClient()

    result = asyncio.run(
        _gateway(client).upload("dish-images", "u1/1-a.png", b"png", "image/png")
    )

    bucket = client.storage.buckets["dish-images"]
    assert result.data == "https://cdn.example.test/dish-images/u1/1-a.png"
    assert bucket.uploads[0][2]["content-type"] == "image/png"


def test_upload_missing_bucket_falls_back_to_data_url() -> None:
    client = FakeSupabaseClient()
    bucket = client.storage.from_("dish-images")
    bucket.upload_errors.append(FakeApiError("Bucket not found", code="404"))

    result = asyncio.run(
        _gateway(client).upload("dish-images", "u1/1-a.png", b"png", "image/png")
    )

    assert result.is_ok
    assert str(result.data).startswith("data:image/png;base64,")


def test_auth_round_trip() -> None:
    client = FakeSupabaseClient()
    gateway = _gateway(client)

    registered = asyncio.run(gateway.sign_up("a@b.c", "secret1"))
    duplicate = asyncio.run(gateway.sign_up("a@b.c", "secret1"))
    wrong = asyncio.run(gateway.sign_in("a@b.c", "nope"))
    current = asyncio.run(gateway.get_user())
    asyncio.run(gateway.sign_out())
    after = asyncio.run(gateway.get_user())

    assert user_from_result(registered).id == "uid-a@b.c"
    assert duplicate.error is not None
    assert wrong.error is not None
    assert wrong.error.message == "Invalid login credentials"
    assert user_from_result(current).email == "a@b.c"
    assert user_from_result(after) is None


def test_is_not_mock() -> None:
    assert _gateway(FakeSupabaseClient()).is_mock is False
