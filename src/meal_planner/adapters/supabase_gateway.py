"""Supabase-backed gateway."""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass

import httpx
from supabase import Client

from meal_planner.adapters.gateway import (
    AuthSession,
    Filters,
    Gateway,
    GatewayError,
    GatewayResult,
    TableQuery,
    data_url,
)
from meal_planner.domain.models import UserRecord

_logger = logging.getLogger(__name__)


@dataclass
class SupabaseGateway(Gateway):
    """Supabase implementation; writes retry with linear backoff."""

    client: Client
    timeout_seconds: float = 10.0
    retry_attempts: int = 2
    retry_delay_seconds: float = 0.6

    @property
    def is_mock(self) -> bool:
        return False

    async def select(self, table: str, query: TableQuery) -> GatewayResult:
        def run() -> object:
            builder = self.client.table(table).select(query.columns)
            for column, value in query.filters:
                builder = builder.eq(column, value)
            if query.order_by:
                builder = builder.order(query.order_by, desc=query.descending)
            if query.limit is not None:
                builder = builder.limit(query.limit)
            if query.single:
                builder = builder.single()
            return builder.execute().data

        return await self._call(run, action=f"select:{table}", retry=False)

    async def insert(
        self, table: str, rows: list[dict[str, object]]
    ) -> GatewayResult:
        return await self._call(
            lambda: self.client.table(table).insert(rows).execute().data or [],
            action=f"insert:{table}",
            idempotent=False,
        )

    async def upsert(
        self, table: str, row: dict[str, object], on_conflict: str
    ) -> GatewayResult:
        return await self._call(
            lambda: self.client.table(table)
            .upsert(row, on_conflict=on_conflict)
            .execute()
            .data
            or [],
            action=f"upsert:{table}",
        )

    async def update(
        self, table: str, values: dict[str, object], filters: Filters
    ) -> GatewayResult:
        def run() -> object:
            builder = self.client.table(table).update(values)
            for column, value in filters.conditions:
                builder = builder.eq(column, value)
            return builder.execute().data or []

        return await self._call(run, action=f"update:{table}")

    async def delete(self, table: str, filters: Filters) -> GatewayResult:
        def run() -> object:
            builder = self.client.table(table).delete()
            for column, value in filters.conditions:
                builder = builder.eq(column, value)
            return builder.execute().data or []

        return await self._call(run, action=f"delete:{table}")

    async def upload(
        self, bucket: str, path: str, content: bytes, content_type: str
    ) -> GatewayResult:
        uploaded = await self._call(
            lambda: self.client.storage.from_(bucket).upload(
                path,
                content,
                {"content-type": content_type, "upsert": "false"},
            )
            or path,
            action=f"upload:{bucket}",
            idempotent=False,
        )
        if uploaded.error is not None:
            if uploaded.error.is_missing_bucket:
                _logger.info("Bucket %s missing, embedding image inline", bucket)
                return GatewayResult.ok(data_url(content, content_type))
            return uploaded
        return await self.public_url(bucket, path)

    async def public_url(self, bucket: str, path: str) -> GatewayResult:
        return await self._call(
            lambda: self.client.storage.from_(bucket).get_public_url(path),
            action=f"public_url:{bucket}",
            retry=False,
        )

    async def sign_in(self, email: str, password: str) -> GatewayResult:
        return await self._call(
            lambda: _auth_session(
                self.client.auth.sign_in_with_password(
                    {"email": email, "password": password}
                )
            ),
            action="sign_in",
            retry=False,
        )

    async def sign_up(self, email: str, password: str) -> GatewayResult:
        return await self._call(
            lambda: _auth_session(
                self.client.auth.sign_up({"email": email, "password": password})
            ),
            action="sign_up",
            retry=False,
        )

    async def sign_out(self) -> GatewayResult:
        def run() -> AuthSession:
            self.client.auth.sign_out()
            return AuthSession(user=None)

        return await self._call(run, action="sign_out", retry=False)

    async def get_user(self) -> GatewayResult:
        return await self._call(
            lambda: _auth_session(self.client.auth.get_user()),
            action="get_user",
            retry=False,
        )

    async def _call(
        self,
        func: Callable[[], object],
        *,
        action: str,
        retry: bool = True,
        idempotent: bool = True,
    ) -> GatewayResult:
        """Run a blocking client call off the loop, with timeout and retry.

        Only transient failures are retried. A timed-out call keeps running
        in its worker thread and may still commit, so non-idempotent writes
        are not repeated after a timeout.
        """
        max_attempts = self.retry_attempts + 1 if retry else 1
        attempt = 0
        while True:
            attempt += 1
            try:
                data = await asyncio.wait_for(
                    asyncio.to_thread(func), timeout=self.timeout_seconds
                )
                return GatewayResult.ok(data if data is not None else [])
            except Exception as exc:  # noqa: BLE001
                error = _error_from_exception(exc)
            retryable = (
                error.is_transient
                and not (error.is_missing_table or error.is_missing_bucket)
                and (idempotent or error.code != "timeout")
            )
            if not retryable or attempt >= max_attempts:
                if not error.is_not_found:
                    _logger.warning(
                        "Supabase %s failed (attempt %s/%s, code=%s): %s",
                        action,
                        attempt,
                        max_attempts,
                        error.code,
                        error.message,
                    )
                return GatewayResult(error=error)
            await asyncio.sleep(self.retry_delay_seconds * attempt)


def _error_from_exception(exc: Exception) -> GatewayError:
    """Map client exceptions to gateway errors."""
    if isinstance(exc, TimeoutError):
        return GatewayError(message="Remote call timed out", code="timeout")
    if isinstance(exc, httpx.TransportError):
        return GatewayError(message=str(exc) or type(exc).__name__, code="network")
    message = getattr(exc, "message", None) or str(exc) or type(exc).__name__
    code = getattr(exc, "code", None)
    if code is None:
        status_code = getattr(exc, "status", None) or getattr(
            getattr(exc, "response", None), "status_code", None
        )
        code = str(status_code) if status_code is not None else None
    return GatewayError(message=str(message), code=str(code) if code else None)


def _auth_session(response: object) -> AuthSession:
    """Convert a Supabase auth response into an AuthSession."""
    user = getattr(response, "user", None)
    if user is None:
        return AuthSession(user=None)
    email = getattr(user, "email", None)
    return AuthSession(user=UserRecord(id=str(user.id), email=email))
