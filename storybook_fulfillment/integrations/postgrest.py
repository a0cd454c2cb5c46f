"""
Minimal PostgREST client for the hosted order and creation tables.
"""

from __future__ import annotations

from typing import Any, Mapping

import requests

from storybook_fulfillment.common.errors import StorageError
from storybook_fulfillment.common.http import build_session


class PostgrestClient:
    def __init__(
        self,
        *,
        base_url: str,
        service_role_key: str,
        session: requests.Session | None = None,
        timeout: float = 30.0,
        retries: int = 3,
    ) -> None:
        self._rest_url = f"{base_url.rstrip('/')}/rest/v1"
        self._key = service_role_key
        self._timeout = timeout
        self._session = session or build_session(retries=retries)

    def _headers(self, **extra: str) -> dict[str, str]:
        return {
            "apikey": self._key,
            "Authorization": f"Bearer {self._key}",
            "Content-Type": "application/json",
            **extra,
        }

    @staticmethod
    def _filters(filters: Mapping[str, Any]) -> dict[str, str]:
        return {column: f"eq.{value}" for column, value in filters.items()}

    def select(
        self,
        table: str,
        filters: Mapping[str, Any],
        *,
        columns: str = "*",
    ) -> list[dict[str, Any]]:
        params = {"select": columns, **self._filters(filters)}
        return self._send("GET", table, params=params)

    def insert(self, table: str, row: Mapping[str, Any]) -> dict[str, Any]:
        rows = self._send(
            "POST",
            table,
            json=dict(row),
            headers=self._headers(Prefer="return=representation"),
        )
        if not rows:
            raise StorageError(f"Insert into {table} returned no rows")
        return rows[0]

    def update(
        self,
        table: str,
        filters: Mapping[str, Any],
        values: Mapping[str, Any],
    ) -> list[dict[str, Any]]:
        """
        PATCH the rows matching every filter. The filters double as the
        compare-and-swap guard: an empty result means nothing matched.
        """
        return self._send(
            "PATCH",
            table,
            params=self._filters(filters),
            json=dict(values),
            headers=self._headers(Prefer="return=representation"),
        )

    def _send(
        self,
        method: str,
        table: str,
        *,
        params: Mapping[str, str] | None = None,
        json: Any = None,
        headers: Mapping[str, str] | None = None,
    ) -> list[dict[str, Any]]:
        try:
            response = self._session.request(
                method,
                f"{self._rest_url}/{table}",
                params=params,
                json=json,
                headers=dict(headers or self._headers()),
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            raise StorageError(f"{method} {table} failed: {exc}") from exc

        if not response.ok:
            raise StorageError(f"{method} {table} failed: {response.status_code} {response.text[:200]}")

        payload = response.json() if response.content else []
        if isinstance(payload, Mapping):
            return [dict(payload)]
        return [dict(row) for row in payload or []]
