"""TableStore over a hosted PostgREST endpoint.

Query dialect:
- equality filter      ?workflow_id=eq.7
- membership filter    ?id=in.(1,2,3)
- ordering             ?order=is_fixed.asc,reported_at.desc
- writes return rows   Prefer: return=representation
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

import httpx
import structlog

from app.core.config import settings
from app.services.table_store import Filters, Order, Row, RowNotFound, StoreError

logger = structlog.stdlib.get_logger(__name__)

REST_PREFIX = "/rest/v1"


def make_rest_client(
    base_url: str | None = None,
    service_key: str | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """Build the shared HTTP client for the store (service-role credentials)."""
    key = service_key if service_key is not None else settings.store.store_service_key
    return httpx.AsyncClient(
        base_url=(base_url or settings.store.store_url).rstrip("/") + REST_PREFIX,
        headers={
            "apikey": key,
            "Authorization": f"Bearer {key}",
            "Content-Type": "application/json",
        },
        timeout=settings.store.store_timeout,
        transport=transport,
    )


def _literal(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    return str(value)


def _eq_params(filters: Filters | None) -> list[tuple[str, str]]:
    return [(column, f"eq.{_literal(value)}") for column, value in (filters or {}).items()]


class RestTableStore:
    def __init__(self, client: httpx.AsyncClient, table: str):
        self._client = client
        self.table = table

    async def _request(
        self,
        operation: str,
        method: str,
        params: list[tuple[str, str]],
        json: Any = None,
        returning: bool = False,
    ) -> Any:
        headers = {"Prefer": "return=representation"} if returning else {}
        try:
            response = await self._client.request(
                method, f"/{self.table}", params=params, json=json, headers=headers
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            logger.error(
                "store_call_failed",
                table=self.table,
                operation=operation,
                status=exc.response.status_code,
                body=exc.response.text[:500],
            )
            raise StoreError(
                self.table, operation, f"HTTP {exc.response.status_code}: {exc.response.text}"
            ) from exc
        except httpx.HTTPError as exc:
            logger.error("store_call_failed", table=self.table, operation=operation, error=str(exc))
            raise StoreError(self.table, operation, str(exc)) from exc

        if not response.content:
            return None
        return response.json()

    def _single(self, operation: str, payload: Any) -> Row:
        if isinstance(payload, list) and payload:
            return payload[0]
        if isinstance(payload, dict):
            return payload
        raise StoreError(self.table, operation, "store returned no row")

    async def list(self, filters: Filters | None = None, order: Order | None = None) -> list[Row]:
        params = [("select", "*")]
        params += _eq_params(filters)
        if order:
            params.append(
                ("order", ",".join(f"{c}.{'desc' if d else 'asc'}" for c, d in order))
            )
        payload = await self._request("list", "GET", params)
        return payload if isinstance(payload, list) else []

    async def insert(self, row: Row) -> Row:
        payload = await self._request("insert", "POST", [], json=row, returning=True)
        return self._single("insert", payload)

    async def update(self, row_id: Any, patch: Row, scope: Filters | None = None) -> Row:
        params = [("id", f"eq.{_literal(row_id)}"), *_eq_params(scope)]
        payload = await self._request("update", "PATCH", params, json=patch, returning=True)
        # PATCH matching nothing answers 200 with an empty list
        if payload == []:
            raise RowNotFound(self.table, row_id)
        return self._single("update", payload)

    async def remove(self, row_id: Any) -> None:
        await self._request("remove", "DELETE", [("id", f"eq.{_literal(row_id)}")])

    async def remove_in(
        self, column: str, values: Iterable[Any], scope: Filters | None = None
    ) -> None:
        values = [_literal(v) for v in values]
        if not values:
            return
        params = [(column, f"in.({','.join(values)})"), *_eq_params(scope)]
        await self._request("remove_in", "DELETE", params)
