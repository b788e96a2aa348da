"""Record store collaborators: an in-memory variant and a Supabase (PostgREST) one."""

from __future__ import annotations

import copy
import logging
import threading
import uuid
from typing import Any, Dict, List, Mapping, Optional, Protocol

import requests

from ..errors import StoreError

LOGGER = logging.getLogger(__name__)

Row = Dict[str, Any]


class RecordStore(Protocol):
    def insert(self, table: str, record: Mapping[str, Any]) -> Row:
        ...

    def select(
        self,
        table: str,
        filters: Optional[Mapping[str, Any]] = None,
        *,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Row]:
        ...

    def select_one(
        self,
        table: str,
        filters: Optional[Mapping[str, Any]] = None,
        *,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> Optional[Row]:
        ...

    def update(self, table: str, filters: Mapping[str, Any], patch: Mapping[str, Any]) -> int:
        ...

    def upsert(self, table: str, record: Mapping[str, Any], *, on_conflict: str) -> Row:
        ...


def _matches(row: Row, filters: Optional[Mapping[str, Any]]) -> bool:
    if not filters:
        return True
    return all(row.get(key) == value for key, value in filters.items())


class InMemoryRecordStore:
    """Provides the record store operations over per-table lists."""

    def __init__(self) -> None:
        self._tables: Dict[str, List[Row]] = {}
        self._lock = threading.Lock()

    def insert(self, table: str, record: Mapping[str, Any]) -> Row:
        row = dict(record)
        row.setdefault("id", str(uuid.uuid4()))
        with self._lock:
            self._tables.setdefault(table, []).append(row)
            return copy.deepcopy(row)

    def select(
        self,
        table: str,
        filters: Optional[Mapping[str, Any]] = None,
        *,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Row]:
        if limit is not None and limit <= 0:
            raise ValueError("limit must be positive")
        with self._lock:
            rows = [copy.deepcopy(row) for row in self._tables.get(table, []) if _matches(row, filters)]
        if order_by:
            rows.sort(key=lambda row: (row.get(order_by) is not None, row.get(order_by) or ""), reverse=descending)
        if limit is not None:
            rows = rows[:limit]
        return rows

    def select_one(
        self,
        table: str,
        filters: Optional[Mapping[str, Any]] = None,
        *,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> Optional[Row]:
        rows = self.select(table, filters, order_by=order_by, descending=descending, limit=1)
        return rows[0] if rows else None

    def update(self, table: str, filters: Mapping[str, Any], patch: Mapping[str, Any]) -> int:
        updated = 0
        with self._lock:
            for row in self._tables.get(table, []):
                if _matches(row, filters):
                    row.update(patch)
                    updated += 1
        return updated

    def upsert(self, table: str, record: Mapping[str, Any], *, on_conflict: str) -> Row:
        """Inserts unless a row with the same ``on_conflict`` value exists; returns the stored row."""

        key = record.get(on_conflict)
        with self._lock:
            rows = self._tables.setdefault(table, [])
            for row in rows:
                if row.get(on_conflict) == key:
                    return copy.deepcopy(row)
            row = dict(record)
            row.setdefault("id", str(uuid.uuid4()))
            rows.append(row)
            return copy.deepcopy(row)

    def count(self, table: str, filters: Optional[Mapping[str, Any]] = None) -> int:
        with self._lock:
            return sum(1 for row in self._tables.get(table, []) if _matches(row, filters))

    def delete_all_data(self) -> None:
        with self._lock:
            self._tables.clear()


class SupabaseRecordStore:
    """Talks to the Supabase REST interface (PostgREST) with exact-match filters."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        session: Optional[requests.Session] = None,
        timeout: float = 10.0,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._session = session or requests.Session()
        self._timeout = timeout

    def _url(self, table: str) -> str:
        return f"{self._base_url}/rest/v1/{table}"

    def _headers(self, prefer: Optional[str] = None) -> Dict[str, str]:
        headers = {
            "apikey": self._api_key,
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }
        if prefer:
            headers["Prefer"] = prefer
        return headers

    @staticmethod
    def _filter_params(filters: Optional[Mapping[str, Any]]) -> Dict[str, str]:
        params: Dict[str, str] = {}
        for key, value in (filters or {}).items():
            if value is None:
                params[key] = "is.null"
            elif isinstance(value, bool):
                params[key] = f"eq.{str(value).lower()}"
            else:
                params[key] = f"eq.{value}"
        return params

    def _request(self, method: str, table: str, **kwargs: Any) -> requests.Response:
        url = self._url(table)
        try:
            response = self._session.request(method, url, timeout=self._timeout, **kwargs)
        except requests.RequestException as exc:
            LOGGER.error("Record store request failed: %s %s: %s", method, table, exc)
            raise StoreError(f"Record store unreachable: {exc}") from exc
        try:
            response.raise_for_status()
        except requests.HTTPError as exc:
            LOGGER.error("Record store error: %s %s | Response: %s", method, table, response.text)
            raise StoreError(f"Record store error on {table}: {response.status_code}") from exc
        return response

    @staticmethod
    def _rows(response: requests.Response) -> List[Row]:
        if not response.content:
            return []
        data = response.json()
        if isinstance(data, list):
            return data
        return [data] if data else []

    def insert(self, table: str, record: Mapping[str, Any]) -> Row:
        response = self._request(
            "POST",
            table,
            json=dict(record),
            headers=self._headers("return=representation"),
        )
        rows = self._rows(response)
        return rows[0] if rows else dict(record)

    def select(
        self,
        table: str,
        filters: Optional[Mapping[str, Any]] = None,
        *,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Row]:
        params = {"select": "*", **self._filter_params(filters)}
        if order_by:
            params["order"] = f"{order_by}.{'desc' if descending else 'asc'}"
        if limit is not None:
            params["limit"] = str(limit)
        response = self._request("GET", table, params=params, headers=self._headers())
        return self._rows(response)

    def select_one(
        self,
        table: str,
        filters: Optional[Mapping[str, Any]] = None,
        *,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> Optional[Row]:
        rows = self.select(table, filters, order_by=order_by, descending=descending, limit=1)
        return rows[0] if rows else None

    def update(self, table: str, filters: Mapping[str, Any], patch: Mapping[str, Any]) -> int:
        if not filters:
            raise ValueError("update requires at least one filter")
        response = self._request(
            "PATCH",
            table,
            params=self._filter_params(filters),
            json=dict(patch),
            headers=self._headers("return=representation"),
        )
        return len(self._rows(response))

    def upsert(self, table: str, record: Mapping[str, Any], *, on_conflict: str) -> Row:
        response = self._request(
            "POST",
            table,
            params={"on_conflict": on_conflict},
            json=dict(record),
            headers=self._headers("resolution=ignore-duplicates,return=representation"),
        )
        rows = self._rows(response)
        if rows:
            return rows[0]
        # Duplicate ignored: PostgREST returns no representation for skipped rows.
        existing = self.select_one(table, {on_conflict: record.get(on_conflict)})
        if existing is None:
            raise StoreError(f"Upsert on {table} returned no row for {on_conflict}")
        return existing
