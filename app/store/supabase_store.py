"""
Supabase (PostgREST) implementation of the DataStore.

Talks to the remote data API over HTTPS. Every method is one HTTP request, which
is the only atomicity the API gives us.
"""

import logging
from typing import Any, Optional

import httpx
from fastapi.encoders import jsonable_encoder

from ..config import DATA_STORE_TIMEOUT, SUPABASE_SERVICE_KEY, SUPABASE_URL
from .interfaces import DataStore, DataStoreError, Row

logger = logging.getLogger(__name__)


def _filter_value(value: Any) -> str:
    """Encode a filter value in PostgREST operator syntax"""
    if isinstance(value, (list, tuple, set)):
        members = ",".join(str(v) for v in jsonable_encoder(list(value)))
        return f"in.({members})"
    if value is None:
        return "is.null"
    if isinstance(value, bool):
        return f"eq.{str(value).lower()}"
    return f"eq.{jsonable_encoder(value)}"


class SupabaseStore(DataStore):
    """Row store backed by the Supabase REST API"""

    def __init__(
        self,
        base_url: Optional[str] = SUPABASE_URL,
        api_key: Optional[str] = SUPABASE_SERVICE_KEY,
        timeout: float = DATA_STORE_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not base_url or not api_key:
            logger.warning("⚠️ SUPABASE_URL/SUPABASE_SERVICE_KEY not set; data store calls will fail")
        self.rest_url = f"{(base_url or '').rstrip('/')}/rest/v1"
        self.api_key = api_key or ""
        self.timeout = timeout
        # Injected in tests (httpx.MockTransport)
        self._transport = transport

    def _headers(self, prefer_representation: bool = False) -> dict:
        headers = {
            "apikey": self.api_key,
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        if prefer_representation:
            headers["Prefer"] = "return=representation"
        return headers

    async def _request(
        self,
        method: str,
        table: str,
        operation: str,
        params: Optional[dict] = None,
        json: Any = None,
        prefer_representation: bool = False,
    ) -> Any:
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as http_client:
                response = await http_client.request(
                    method,
                    f"{self.rest_url}/{table}",
                    params=params,
                    json=json,
                    headers=self._headers(prefer_representation),
                )
        except httpx.HTTPError as e:
            logger.error(f"❌ Data API {operation} {table} transport error: {e}")
            raise DataStoreError(str(e) or type(e).__name__, table, operation) from e

        if response.status_code >= 400:
            logger.error(
                f"❌ Data API {operation} {table} failed: HTTP {response.status_code} {response.text[:200]}"
            )
            raise DataStoreError(response.text or "request failed", table, operation, response.status_code)

        if not response.content:
            return None
        return response.json()

    async def insert(self, table: str, row: Row) -> Row:
        data = await self._request(
            "POST", table, "insert", json=jsonable_encoder(row), prefer_representation=True
        )
        if not data:
            raise DataStoreError("Insert returned no row", table, "insert")
        return data[0] if isinstance(data, list) else data

    async def get(self, table: str, row_id: str) -> Optional[Row]:
        data = await self._request("GET", table, "get", params={"id": f"eq.{row_id}", "select": "*"})
        return data[0] if data else None

    async def select(self, table: str, order_by: Optional[str] = None, **filters: Any) -> list[Row]:
        params = {column: _filter_value(value) for column, value in filters.items()}
        params["select"] = "*"
        if order_by:
            column = order_by.lstrip("-")
            params["order"] = f"{column}.desc" if order_by.startswith("-") else f"{column}.asc"
        return await self._request("GET", table, "select", params=params) or []

    async def update(self, table: str, row_id: str, values: Row) -> Row:
        data = await self._request(
            "PATCH",
            table,
            "update",
            params={"id": f"eq.{row_id}"},
            json=jsonable_encoder(values),
            prefer_representation=True,
        )
        if not data:
            raise DataStoreError(f"No row with id {row_id}", table, "update", status_code=404)
        return data[0]

    async def delete(self, table: str, row_id: str) -> None:
        data = await self._request(
            "DELETE", table, "delete", params={"id": f"eq.{row_id}"}, prefer_representation=True
        )
        if not data:
            raise DataStoreError(f"No row with id {row_id}", table, "delete", status_code=404)
