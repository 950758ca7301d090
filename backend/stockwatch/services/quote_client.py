import logging
from decimal import Decimal

import httpx

from stockwatch.core.config import settings
from stockwatch.core.exceptions import (
    ConfigurationError,
    QuoteNotFound,
    QuoteServiceUnavailable,
    ValidationError,
)
from stockwatch.core.threshold_math import to_decimal
from stockwatch.schemas.quote import Quote

logger = logging.getLogger(__name__)


class QuoteClient:
    """
    외부 시세 API 클라이언트 (Finnhub 호환).
    캐시 없음: 매 호출이 실시간 요청이며, 호출 주기는 호출자가 정한다.
    """

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        client: httpx.AsyncClient | None = None,
        timeout: float | None = None,
    ):
        self._api_key = api_key
        self.base_url = (base_url or settings.FINNHUB_BASE_URL).rstrip("/")
        self.timeout = timeout or settings.QUOTE_TIMEOUT_SECONDS
        self._client = client

    @property
    def api_key(self) -> str:
        return self._api_key if self._api_key is not None else settings.FINNHUB_API_KEY

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def aclose(self):
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def get_quote(self, symbol: str, with_profile: bool = False) -> Quote:
        """
        현재가 단건 조회
        - 가격이 없거나 0 이면 QuoteNotFound
        - 전송/HTTP 오류는 QuoteServiceUnavailable
        """
        if not self.api_key:
            raise ConfigurationError()

        symbol = (symbol or "").strip().upper()
        if not symbol:
            raise ValidationError("Symbol is required")

        data = await self._get("/quote", {"symbol": symbol})

        price = data.get("c") if isinstance(data, dict) else None
        if not price:
            raise QuoteNotFound(symbol)

        company_name = None
        if with_profile:
            company_name = await self.get_company_name(symbol)

        return Quote(
            symbol=symbol,
            price=to_decimal(price),
            change=_optional_decimal(data.get("d")),
            change_percent=_optional_decimal(data.get("dp")),
            company_name=company_name,
        )

    async def get_company_name(self, symbol: str) -> str | None:
        """회사명 조회. 실패해도 시세 조회는 실패시키지 않는다"""
        try:
            data = await self._get("/stock/profile2", {"symbol": symbol})
        except QuoteServiceUnavailable as e:
            logger.warning(f"⚠️ [{symbol}] 회사명 조회 실패: {e}")
            return None
        if isinstance(data, dict):
            return data.get("name") or None
        return None

    async def _get(self, path: str, params: dict):
        url = f"{self.base_url}{path}"
        try:
            response = await self.client.get(url, params={**params, "token": self.api_key})
        except httpx.HTTPError as e:
            logger.error(f"⛔ 시세 API 요청 실패 ({path} {params}): {e}")
            raise QuoteServiceUnavailable() from e

        if response.status_code != 200:
            logger.error(f"HTTP Error {response.status_code}: {response.text}")
            raise QuoteServiceUnavailable()

        try:
            return response.json()
        except ValueError as e:
            raise QuoteServiceUnavailable() from e


def _optional_decimal(value) -> Decimal | None:
    if value is None:
        return None
    return to_decimal(value)


quote_client = QuoteClient()

async def get_quote_client() -> QuoteClient:
    return quote_client
