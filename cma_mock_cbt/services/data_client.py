"""
services/data_client.py

관계형 데이터 백엔드 접근 클라이언트.

Public API:
  - DataClient            : select / insert / update 인터페이스
  - InMemoryDataClient    : 스레드 안전 인메모리 구현 (오프라인/개발/테스트)
  - RestDataClient        : PostgREST(Supabase) 스타일 REST 구현 (requests)
  - build_data_client()   : config 값에 따라 구현 선택

모든 실패는 DataClientError로 통일한다. 호출자가 흡수 여부를 결정.
"""

from __future__ import annotations

import copy
import logging
import threading
from typing import Any, Dict, List, Optional

import requests

import config
from cma_mock_cbt.errors import DataClientError

logger = logging.getLogger(__name__)


class DataClient:
    """테이블 단위 CRUD 인터페이스. filters는 컬럼 == 값 (AND)."""

    def select(
        self,
        table: str,
        filters: Optional[Dict[str, Any]] = None,
        limit: Optional[int] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> List[Dict[str, Any]]:
        raise NotImplementedError

    def insert(self, table: str, row: Dict[str, Any]) -> Dict[str, Any]:
        raise NotImplementedError

    def insert_many(self, table: str, rows: List[Dict[str, Any]]) -> int:
        for row in rows:
            self.insert(table, row)
        return len(rows)

    def update(
        self,
        table: str,
        match: Dict[str, Any],
        values: Dict[str, Any],
    ) -> List[Dict[str, Any]]:
        raise NotImplementedError

    def close(self) -> None:
        pass


# ══════════════════════════════════════════════════════════════════════════════
# 인메모리 구현
# ══════════════════════════════════════════════════════════════════════════════

class InMemoryDataClient(DataClient):
    """
    dict 기반 테이블 저장소.
    반환값은 항상 복사본: 호출자가 수정해도 저장소에 영향 없음.
    """

    def __init__(self, tables: Optional[Dict[str, List[Dict[str, Any]]]] = None):
        self._lock = threading.Lock()
        self._tables: Dict[str, List[Dict[str, Any]]] = {}
        for name, rows in (tables or {}).items():
            self._tables[name] = [dict(r) for r in rows]

    def seed(self, table: str, rows: List[Dict[str, Any]]) -> None:
        with self._lock:
            self._tables.setdefault(table, []).extend(dict(r) for r in rows)

    def rows(self, table: str) -> List[Dict[str, Any]]:
        with self._lock:
            return copy.deepcopy(self._tables.get(table, []))

    @staticmethod
    def _matches(row: Dict[str, Any], filters: Dict[str, Any]) -> bool:
        return all(row.get(k) == v for k, v in filters.items())

    def select(self, table, filters=None, limit=None, order_by=None, descending=False):
        with self._lock:
            rows = [r for r in self._tables.get(table, []) if self._matches(r, filters or {})]
            if order_by:
                # None 값은 항상 뒤로
                present = [r for r in rows if r.get(order_by) is not None]
                missing = [r for r in rows if r.get(order_by) is None]
                present.sort(key=lambda r: r[order_by], reverse=descending)
                rows = present + missing
            if limit is not None:
                rows = rows[:limit]
            return copy.deepcopy(rows)

    def insert(self, table, row):
        with self._lock:
            stored = copy.deepcopy(row)
            self._tables.setdefault(table, []).append(stored)
            return copy.deepcopy(stored)

    def update(self, table, match, values):
        with self._lock:
            updated = []
            for row in self._tables.get(table, []):
                if self._matches(row, match):
                    row.update(copy.deepcopy(values))
                    updated.append(copy.deepcopy(row))
            return updated


# ══════════════════════════════════════════════════════════════════════════════
# REST 구현 (PostgREST 규약)
# ══════════════════════════════════════════════════════════════════════════════

class RestDataClient(DataClient):
    """
    PostgREST/Supabase REST 엔드포인트 클라이언트.

    - GET    {base}/rest/v1/{table}?col=eq.val&order=col.desc&limit=n
    - POST   {base}/rest/v1/{table}           (Prefer: return=representation)
    - PATCH  {base}/rest/v1/{table}?col=eq.val
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout_seconds: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ):
        if not base_url:
            raise ValueError("base_url is required")
        if not api_key:
            raise ValueError("api_key is required")

        self._base_url = str(base_url).rstrip("/") + "/rest/v1"
        self._timeout = float(timeout_seconds or 10.0)
        self._headers = {
            "apikey": api_key,
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
            "Prefer": "return=representation",
        }
        # keep-alive 재사용 + close 가능
        self._session = session or requests.Session()

    def close(self) -> None:
        self._session.close()

    @staticmethod
    def _filter_params(filters: Optional[Dict[str, Any]]) -> Dict[str, str]:
        params = {}
        for key, value in (filters or {}).items():
            if value is None:
                params[key] = "is.null"
            elif isinstance(value, bool):
                params[key] = f"eq.{str(value).lower()}"
            else:
                params[key] = f"eq.{value}"
        return params

    def _request(self, method: str, table: str, **kwargs) -> Any:
        url = f"{self._base_url}/{table}"
        try:
            resp = self._session.request(
                method,
                url,
                headers=self._headers,
                timeout=self._timeout,
                **kwargs,
            )
            resp.raise_for_status()
        except requests.RequestException as e:
            raise DataClientError(f"{method} {table} 실패: {e}") from e

        if not resp.content:
            return []
        try:
            return resp.json()
        except ValueError as e:
            raise DataClientError(f"{method} {table}: JSON 응답이 아닙니다.") from e

    def select(self, table, filters=None, limit=None, order_by=None, descending=False):
        params = {"select": "*", **self._filter_params(filters)}
        if order_by:
            params["order"] = f"{order_by}.{'desc' if descending else 'asc'}"
        if limit is not None:
            params["limit"] = str(limit)
        data = self._request("GET", table, params=params)
        if not isinstance(data, list):
            raise DataClientError(f"GET {table}: 목록 응답이 아닙니다.")
        return data

    def insert(self, table, row):
        data = self._request("POST", table, json=row)
        if isinstance(data, list):
            return data[0] if data else dict(row)
        return data

    def insert_many(self, table, rows):
        if not rows:
            return 0
        data = self._request("POST", table, json=rows)
        return len(data) if isinstance(data, list) else len(rows)

    def update(self, table, match, values):
        data = self._request("PATCH", table, params=self._filter_params(match), json=values)
        return data if isinstance(data, list) else [data]


def build_data_client() -> DataClient:
    """DATA_API_URL 이 설정되어 있으면 REST, 아니면 인메모리."""
    if config.DATA_API_URL and config.DATA_API_KEY:
        logger.info(f"데이터 백엔드: REST ({config.DATA_API_URL})")
        return RestDataClient(
            config.DATA_API_URL,
            config.DATA_API_KEY,
            timeout_seconds=config.DATA_API_TIMEOUT,
        )
    logger.info("데이터 백엔드: 인메모리 (DATA_API_URL 미설정)")
    return InMemoryDataClient()
