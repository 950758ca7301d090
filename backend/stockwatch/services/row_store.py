import enum
import logging

import httpx
from fastapi import Depends

from stockwatch.core.config import settings
from stockwatch.core.exceptions import (
    AuthenticationRequired,
    DuplicateSymbol,
    SchemaNotProvisioned,
    UpstreamUnavailable,
)
from stockwatch.database import render_schema_sql, required_columns

logger = logging.getLogger(__name__)

# 행 저장소(PostgREST) 에러 코드
NO_ROWS = "PGRST116"
UNIQUE_VIOLATION = "23505"
AUTH_CODES = {"PGRST301", "PGRST302", "PGRST303"}
SCHEMA_CODES = {
    "42703",     # undefined column
    "42P01",     # undefined table
    "PGRST204",  # 스키마 캐시에 컬럼 없음
    "PGRST205",  # 스키마 캐시에 테이블 없음
}

SINGLE_OBJECT = "application/vnd.pgrst.object+json"


class SchemaStatus(str, enum.Enum):
    READY = "ready"
    MISSING = "missing"
    UNKNOWN = "unknown"


class UniqueViolation(DuplicateSymbol):
    """행 저장소의 unique 제약 위반 (기본적으로 DuplicateSymbol 로 취급)"""


class RowStore:
    """
    행 저장소 REST 클라이언트.
    호출자의 Bearer 토큰을 그대로 전달하므로 소유자 격리는 저장소의 RLS 가 보장한다.
    """

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        client: httpx.AsyncClient | None = None,
        timeout: float | None = None,
    ):
        self.base_url = (base_url or settings.rest_url).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.SUPABASE_ANON_KEY
        self.timeout = timeout or settings.ROW_STORE_TIMEOUT_SECONDS
        self._client = client
        self.schema_status = SchemaStatus.UNKNOWN
        self.missing: list[str] = []

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def aclose(self):
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    # ---------------------------------------------------------
    # CRUD
    # ---------------------------------------------------------
    async def select(
        self,
        table: str,
        token: str | None,
        filters: dict | None = None,
        order: str | None = None,
        columns: str = "*",
        limit: int | None = None,
    ) -> list[dict]:
        params = {"select": columns, **self._filters(filters)}
        if order:
            params["order"] = order
        if limit is not None:
            params["limit"] = str(limit)
        response = await self._request("GET", table, token, params=params)
        return response.json()

    async def select_one(self, table: str, token: str | None, filters: dict) -> dict | None:
        """단건 조회. 행이 없으면 None (에러와 구분)"""
        params = {"select": "*", **self._filters(filters)}
        try:
            response = await self._request(
                "GET", table, token, params=params, headers={"Accept": SINGLE_OBJECT}
            )
        except _NoRows:
            return None
        return response.json()

    async def insert(self, table: str, token: str | None, row: dict) -> dict:
        response = await self._request(
            "POST", table, token, json=row, headers={"Prefer": "return=representation"}
        )
        rows = response.json()
        return rows[0] if isinstance(rows, list) else rows

    async def update(self, table: str, token: str | None, filters: dict, values: dict) -> dict | None:
        """수정된 첫 행 반환. 조건에 맞는 행이 없으면 None"""
        response = await self._request(
            "PATCH",
            table,
            token,
            params=self._filters(filters),
            json=values,
            headers={"Prefer": "return=representation"},
        )
        rows = response.json()
        return rows[0] if rows else None

    async def delete(self, table: str, token: str | None, filters: dict) -> int:
        """삭제된 행 수"""
        response = await self._request(
            "DELETE",
            table,
            token,
            params=self._filters(filters),
            headers={"Prefer": "return=representation"},
        )
        return len(response.json() or [])

    # ---------------------------------------------------------
    # 스키마 점검
    # ---------------------------------------------------------
    async def probe(self) -> SchemaStatus:
        """
        필수 테이블/컬럼이 모두 있는지 확인 (앱 시작 시, /setup-db 호출 시).
        전송 오류나 인증 오류로 판단할 수 없으면 UNKNOWN.
        """
        missing = []
        try:
            for table, columns in required_columns().items():
                try:
                    await self.select(table, None, columns=",".join(columns), limit=1)
                except SchemaNotProvisioned:
                    missing.append(table)
        except (UpstreamUnavailable, AuthenticationRequired) as e:
            logger.warning(f"⚠️ 스키마 점검 불가: {e}")
            self.schema_status = SchemaStatus.UNKNOWN
            return self.schema_status

        self.missing = missing
        self.schema_status = SchemaStatus.MISSING if missing else SchemaStatus.READY
        return self.schema_status

    def schema_error(self) -> SchemaNotProvisioned:
        return SchemaNotProvisioned(remediation=render_schema_sql())

    # ---------------------------------------------------------
    # 공통 / 유틸리티
    # ---------------------------------------------------------
    def _filters(self, filters: dict | None) -> dict:
        return {key: f"eq.{value}" for key, value in (filters or {}).items()}

    def _headers(self, token: str | None, extra: dict | None = None) -> dict:
        headers = {
            "apikey": self.api_key,
            "Authorization": f"Bearer {token or self.api_key}",
            "Content-Type": "application/json",
        }
        if extra:
            headers.update(extra)
        return headers

    async def _request(
        self,
        method: str,
        table: str,
        token: str | None,
        params: dict | None = None,
        json: dict | None = None,
        headers: dict | None = None,
    ) -> httpx.Response:
        url = f"{self.base_url}/{table}"
        try:
            response = await self.client.request(
                method, url, params=params, json=json, headers=self._headers(token, headers)
            )
        except httpx.HTTPError as e:
            logger.error(f"⛔ 행 저장소 요청 실패 ({method} {table}): {e}")
            raise UpstreamUnavailable("Row store is unreachable") from e

        if response.status_code >= 400:
            self._raise_for_error(response, method, table)
        return response

    def _raise_for_error(self, response: httpx.Response, method: str, table: str):
        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}
        code = body.get("code")
        message = body.get("message") or response.text or "Unknown error"

        if code == NO_ROWS:
            raise _NoRows()

        if response.status_code == 401 or code in AUTH_CODES:
            raise AuthenticationRequired("Token expired or invalid")

        if code in SCHEMA_CODES:
            logger.error(f"⛔ 스키마 미구성 감지 ({table}): {message}")
            self.schema_status = SchemaStatus.MISSING
            if table not in self.missing:
                self.missing.append(table)
            raise self.schema_error()

        if code == UNIQUE_VIOLATION:
            raise UniqueViolation(message=message)

        logger.error(f"HTTP Error {response.status_code} ({method} {table}): {message}")
        raise UpstreamUnavailable(f"Row store error: {message}")


class _NoRows(Exception):
    """select_one 내부 신호 (행 없음)"""


row_store = RowStore()

async def get_row_store() -> RowStore:
    return row_store

async def require_schema(store: RowStore = Depends(get_row_store)) -> RowStore:
    """시작 시 점검에서 스키마가 없다고 판정되면 요청을 바로 거절"""
    if store.schema_status == SchemaStatus.MISSING:
        raise store.schema_error()
    return store
