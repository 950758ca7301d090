import logging

import httpx

from stockwatch.client.session_gateway import SessionGateway
from stockwatch.core.config import settings
from stockwatch.core.exceptions import (
    ERRORS_BY_CODE,
    AuthenticationRequired,
    DuplicateSymbol,
    NotFound,
    SchemaNotProvisioned,
    UpstreamUnavailable,
    ValidationError,
    WatchlistError,
)
from stockwatch.core.threshold_math import to_decimal, validate_preference_range, validate_range
from stockwatch.schemas.preferences import UserPreferences
from stockwatch.schemas.quote import Quote
from stockwatch.schemas.watchlist import WatchlistEntry

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = frozenset({"lower_threshold", "upper_threshold", "target_price", "current_price"})

# 바디에 code 가 없을 때 HTTP 상태로 분류
ERRORS_BY_STATUS = {
    400: ValidationError,
    422: ValidationError,
    404: NotFound,
    409: DuplicateSymbol,
    503: SchemaNotProvisioned,
}


class WatchlistRepository:
    """
    관심 종목 API 클라이언트.
    - 입력 검증은 네트워크 호출 전에 로컬에서
    - 401 이면 토큰을 한 번 갱신하고 한 번만 재시도
    - 응답 에러는 서버와 같은 예외 분류로 복원
    """

    def __init__(
        self,
        session: SessionGateway,
        base_url: str | None = None,
        client: httpx.AsyncClient | None = None,
        timeout: float | None = None,
    ):
        self.session = session
        self.base_url = (base_url or settings.API_BASE_URL).rstrip("/")
        self.timeout = timeout or settings.ROW_STORE_TIMEOUT_SECONDS
        self._client = client

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
    # 관심 종목
    # ---------------------------------------------------------
    async def list(self) -> list[WatchlistEntry]:
        rows = await self._call("GET", "/watchlist")
        return [WatchlistEntry.model_validate(row) for row in rows]

    async def create(
        self,
        symbol: str,
        lower_threshold,
        upper_threshold,
        current_price=None,
        target_price=None,
    ) -> WatchlistEntry:
        symbol = (symbol or "").strip().upper()
        if not symbol:
            raise ValidationError("Missing required fields")
        validate_range(lower_threshold, upper_threshold)

        payload = {
            "stock_symbol": symbol,
            "lower_threshold": _wire(lower_threshold),
            "upper_threshold": _wire(upper_threshold),
        }
        if current_price is not None:
            payload["current_price"] = _wire(current_price)
        if target_price is not None:
            payload["target_price"] = _wire(target_price)

        row = await self._call("POST", "/watchlist", json=payload)
        return WatchlistEntry.model_validate(row)

    async def update(self, entry_id: str, **fields) -> WatchlistEntry:
        """부분 수정. 상/하한이 둘 다 주어지면 범위를 로컬에서 먼저 검사"""
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(f"Unknown fields: {', '.join(sorted(unknown))}")
        changes = {k: v for k, v in fields.items() if v is not None}
        if not changes:
            raise ValidationError("No changes provided")
        if "lower_threshold" in changes and "upper_threshold" in changes:
            validate_range(changes["lower_threshold"], changes["upper_threshold"])

        payload = {"id": entry_id, **{k: _wire(v) for k, v in changes.items()}}
        row = await self._call("PUT", "/watchlist", json=payload)
        return WatchlistEntry.model_validate(row)

    async def delete(self, entry_id: str) -> None:
        await self._call("DELETE", "/watchlist", params={"id": entry_id})

    # ---------------------------------------------------------
    # 기본 퍼센트 설정
    # ---------------------------------------------------------
    async def get_preferences(self) -> UserPreferences:
        body = await self._call("GET", "/preferences")
        return UserPreferences.model_validate(body)

    async def set_preferences(self, default_high_percentage, default_low_percentage) -> UserPreferences:
        validate_preference_range(default_high_percentage, default_low_percentage)
        body = await self._call(
            "PUT",
            "/preferences",
            json={
                "default_high_percentage": _wire(default_high_percentage),
                "default_low_percentage": _wire(default_low_percentage),
            },
        )
        return UserPreferences.model_validate(body)

    # ---------------------------------------------------------
    # 시세 (인증 불필요)
    # ---------------------------------------------------------
    async def get_quote(self, symbol: str, with_profile: bool = False) -> Quote:
        symbol = (symbol or "").strip().upper()
        if not symbol:
            raise ValidationError("Symbol is required")
        response = await self._send(
            "GET",
            "/stocks",
            token=None,
            params={"symbol": symbol, "profile": "true" if with_profile else "false"},
        )
        if response.is_error:
            raise self._error_from(response)
        return Quote.model_validate(response.json())

    # ---------------------------------------------------------
    # 공통 / 유틸리티
    # ---------------------------------------------------------
    async def _call(self, method: str, path: str, params: dict | None = None, json: dict | None = None):
        token = self.session.get_token()
        refreshed = False
        if token is None:
            token = await self.session.refresh()
            refreshed = True
            if token is None:
                raise AuthenticationRequired()

        while True:
            response = await self._send(method, path, token, params=params, json=json)
            if response.status_code != 401:
                break
            if refreshed:
                # 갱신한 토큰으로도 거절되면 더 시도하지 않는다
                logger.warning(f"⚠️ 재인증 후에도 401 ({method} {path})")
                self.session.require_login("authentication_failed")
                raise AuthenticationRequired()
            refreshed = True
            # 요청하는 사이 다른 호출자가 이미 갱신했다면 그 토큰으로 재시도
            current = self.session.get_token()
            if current is not None and current != token:
                token = current
                continue
            token = await self.session.refresh()
            if token is None:
                raise AuthenticationRequired()

        if response.is_error:
            raise self._error_from(response)
        return response.json()

    async def _send(
        self,
        method: str,
        path: str,
        token: str | None,
        params: dict | None = None,
        json: dict | None = None,
    ) -> httpx.Response:
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        try:
            return await self.client.request(
                method, f"{self.base_url}{path}", params=params, json=json, headers=headers
            )
        except httpx.HTTPError as e:
            logger.error(f"⛔ API 요청 실패 ({method} {path}): {e}")
            raise UpstreamUnavailable("Watchlist service is unreachable") from e

    def _error_from(self, response: httpx.Response) -> WatchlistError:
        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}

        error_cls = ERRORS_BY_CODE.get(body.get("code"))
        if error_cls is not None:
            return error_cls.from_dict(body)

        detail = body.get("detail")
        if not isinstance(detail, str):
            # 프레임워크 기본 검증 에러(422)는 detail 이 목록
            detail = None
        error_cls = ERRORS_BY_STATUS.get(response.status_code)
        if error_cls is not None:
            return error_cls.from_dict({"detail": detail})
        return UpstreamUnavailable(detail or f"Request failed ({response.status_code})")


def _wire(value) -> float:
    return float(to_decimal(value))
