import asyncio
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Protocol

from stockwatch.client.events import (
    EntryAdded,
    EntryRemoved,
    EntryUpdated,
    ErrorRaised,
    EventBus,
    PreferencesChanged,
    PricesRefreshed,
    SignedOut,
)
from stockwatch.client.repository import WatchlistRepository
from stockwatch.client.state import EntryStatus, WatchlistItem, pending_key
from stockwatch.client.view_prefs import SortMode, ViewPreferences, ViewPreferencesStore, apply_view
from stockwatch.core.config import settings
from stockwatch.core.exceptions import (
    AuthenticationRequired,
    DuplicateSymbol,
    InvalidTarget,
    MutationInProgress,
    NotFound,
    ValidationError,
    WatchlistError,
)
from stockwatch.core.threshold_math import (
    default_thresholds,
    price_from_percentage,
    to_decimal,
    validate_preference_range,
    validate_range,
)
from stockwatch.schemas.preferences import UserPreferences
from stockwatch.schemas.quote import Quote
from stockwatch.schemas.watchlist import WatchlistEntry

logger = logging.getLogger(__name__)


class QuoteSource(Protocol):
    async def get_quote(self, symbol: str, with_profile: bool = False) -> Quote: ...


@dataclass
class RefreshResult:
    updated: dict[str, Decimal] = field(default_factory=dict)
    failed: list[str] = field(default_factory=list)


class WatchlistSyncController:
    """
    관심 종목 화면 상태 관리.

    - 추가는 낙관적으로 PENDING 행을 먼저 보여주고 결과로 교체/제거
    - 같은 종목에 대한 수정/삭제는 동시에 하나만 허용
    - 시세 갱신은 종목별로 독립 실행 (하나가 실패해도 나머지는 반영)
    - 시세 갱신 결과는 current_price 만 바꾸고, 수정 결과는 live 가격을 보존
    """

    def __init__(
        self,
        repository: WatchlistRepository,
        quotes: QuoteSource | None = None,
        events: EventBus | None = None,
        view_store: ViewPreferencesStore | None = None,
    ):
        self.repository = repository
        self.quotes = quotes or repository
        self.events = events or repository.session.events
        self.view_store = view_store
        self.view = view_store.load() if view_store else ViewPreferences()
        self._items: dict[str, WatchlistItem] = {}
        self._inflight: set[str] = set()
        self._preferences: UserPreferences | None = None
        self.events.subscribe(SignedOut, lambda _: self.clear())

    # ---------------------------------------------------------
    # 조회
    # ---------------------------------------------------------
    @property
    def items(self) -> list[WatchlistItem]:
        return list(self._items.values())

    def get(self, key: str) -> WatchlistItem | None:
        return self._items.get(key)

    def clear(self) -> None:
        """로그아웃 시 메모리 상태 정리"""
        self._items.clear()
        self._inflight.clear()
        self._preferences = None

    def visible(self) -> list[WatchlistItem]:
        return apply_view(self._items.values(), self.view)

    def set_filter(self, prefix: str) -> None:
        self._save_view(self.view.model_copy(update={"filter_prefix": prefix}))

    def set_sort(self, mode: SortMode) -> None:
        self._save_view(self.view.model_copy(update={"sort_mode": SortMode(mode)}))

    def _save_view(self, view: ViewPreferences) -> None:
        self.view = view
        if self.view_store:
            self.view_store.save(view)

    async def load(self) -> list[WatchlistItem]:
        """
        서버 목록으로 다시 구성.
        이미 시세를 받아둔 항목은 live 가격과 회사명을 유지한다.
        """
        try:
            entries = await self.repository.list()
        except WatchlistError as e:
            self._report(e)
            raise

        previous = self._items
        items: dict[str, WatchlistItem] = {}
        for entry in entries:
            known = previous.get(entry.id)
            item = WatchlistItem(entry=entry)
            if known is not None:
                item.company_name = known.company_name
                item.daily_change = known.daily_change
                item.with_price(known.entry.current_price)
            items[entry.id] = item
        # 요청 중인 추가 건은 유지
        for key, item in previous.items():
            if item.is_pending:
                items[key] = item
        self._items = items
        return self.items

    # ---------------------------------------------------------
    # 기본 퍼센트 설정
    # ---------------------------------------------------------
    async def load_preferences(self) -> UserPreferences:
        if self._preferences is None:
            try:
                self._preferences = await self.repository.get_preferences()
            except WatchlistError as e:
                self._report(e)
                raise
        return self._preferences

    async def save_preferences(self, default_high_percentage, default_low_percentage) -> UserPreferences:
        validate_preference_range(default_high_percentage, default_low_percentage)
        try:
            prefs = await self.repository.set_preferences(default_high_percentage, default_low_percentage)
        except WatchlistError as e:
            self._report(e)
            raise
        self._preferences = prefs
        self.events.publish(PreferencesChanged(preferences=prefs))
        return prefs

    # ---------------------------------------------------------
    # 추가 / 수정 / 삭제
    # ---------------------------------------------------------
    async def add_stock(
        self,
        symbol: str,
        lower_threshold=None,
        upper_threshold=None,
        target_price=None,
        current_price=None,
    ) -> WatchlistItem:
        """
        관심 종목 추가
        1. 입력 검증 (네트워크 호출 전)
        2. 가격이 없으면 시세 조회, 임계값이 없으면 기본 퍼센트로 계산
        3. PENDING 행 표시 후 저장, 성공하면 서버 행으로 교체
        """
        symbol = (symbol or "").strip().upper()
        if not symbol:
            raise ValidationError("Symbol is required")
        if (lower_threshold is None) != (upper_threshold is None):
            raise ValidationError("Both low and high prices are required")
        if lower_threshold is not None:
            validate_range(lower_threshold, upper_threshold)
        if any(item.symbol == symbol for item in self._items.values()):
            raise DuplicateSymbol(symbol)

        company_name = None
        daily_change = None
        if current_price is None:
            try:
                quote = await self.quotes.get_quote(symbol, with_profile=True)
            except WatchlistError as e:
                self._report(e)
                raise
            current_price = quote.price
            company_name = quote.company_name
            daily_change = quote.change
        current_price = to_decimal(current_price)
        target_price = to_decimal(target_price) if target_price is not None else current_price

        if lower_threshold is None:
            prefs = await self.load_preferences()
            lower_threshold, upper_threshold = default_thresholds(
                target_price, prefs.default_high_percentage, prefs.default_low_percentage
            )

        key = pending_key(symbol)
        pending = WatchlistItem(
            entry=WatchlistEntry(
                id=key,
                owner_id=self.repository.session.user_id or "",
                symbol=symbol,
                target_price=target_price,
                lower_threshold=to_decimal(lower_threshold),
                upper_threshold=to_decimal(upper_threshold),
                current_price=current_price,
            ),
            status=EntryStatus.PENDING,
            company_name=company_name,
            daily_change=daily_change,
        )
        self._items[key] = pending

        try:
            entry = await self.repository.create(
                symbol,
                lower_threshold,
                upper_threshold,
                current_price=current_price,
                target_price=target_price,
            )
        except WatchlistError as e:
            pending.status = EntryStatus.FAILED
            self._items.pop(key, None)
            self._report(e, key)
            raise

        self._items.pop(key, None)
        item = WatchlistItem(entry=entry, company_name=company_name, daily_change=daily_change)
        self._items[entry.id] = item
        logger.info(f"✅ [{symbol}] 관심 종목 추가")
        self.events.publish(EntryAdded(item=item))
        return item

    async def edit_stock(
        self,
        key: str,
        lower_threshold=None,
        upper_threshold=None,
        target_price=None,
    ) -> WatchlistItem:
        """임계값/목표가 수정. 합친 결과로 하한 < 상한 을 먼저 검사"""
        item = self._require(key)
        lower = lower_threshold if lower_threshold is not None else item.entry.lower_threshold
        upper = upper_threshold if upper_threshold is not None else item.entry.upper_threshold
        validate_range(lower, upper)
        if target_price is not None and to_decimal(target_price) <= 0:
            raise InvalidTarget()

        self._inflight.add(key)
        try:
            entry = await self.repository.update(
                key,
                lower_threshold=lower_threshold,
                upper_threshold=upper_threshold,
                target_price=target_price,
            )
        except NotFound as e:
            self._report(e, key)
            await self._reload_after_stale()
            raise
        except WatchlistError as e:
            self._report(e, key)
            raise
        finally:
            self._inflight.discard(key)

        current = self._items.get(key)
        if current is None:
            # 수정 중에 목록에서 빠진 경우
            return WatchlistItem(entry=entry)
        # 수정 응답의 current_price 는 저장 시점 값이므로 화면의 live 가격을 유지
        current.entry = entry.model_copy(update={"current_price": current.entry.current_price})
        self.events.publish(EntryUpdated(item=current))
        return current

    async def edit_stock_percentages(
        self,
        key: str,
        lower_percentage=None,
        upper_percentage=None,
        target_price=None,
    ) -> WatchlistItem:
        """퍼센트로 입력된 임계값을 목표가 기준 가격으로 바꿔 수정"""
        item = self._require(key)
        target = to_decimal(target_price) if target_price is not None else item.entry.target_price
        if target <= 0:
            raise InvalidTarget()
        lower = price_from_percentage(target, lower_percentage) if lower_percentage is not None else None
        upper = price_from_percentage(target, upper_percentage) if upper_percentage is not None else None
        return await self.edit_stock(key, lower, upper, target_price)

    async def delete_stock(self, key: str) -> None:
        item = self._require(key)
        symbol = item.symbol

        self._inflight.add(key)
        try:
            await self.repository.delete(key)
        except NotFound:
            # 이미 지워진 항목. 목록을 서버 기준으로 맞춘다
            logger.info(f"[{symbol}] 이미 삭제된 항목, 목록 다시 불러오기")
            self._items.pop(key, None)
            self.events.publish(EntryRemoved(key=key, symbol=symbol))
            await self._reload_after_stale()
            return
        except WatchlistError as e:
            self._report(e, key)
            raise
        finally:
            self._inflight.discard(key)

        self._items.pop(key, None)
        logger.info(f"🗑️ [{symbol}] 관심 종목 삭제")
        self.events.publish(EntryRemoved(key=key, symbol=symbol))

    # ---------------------------------------------------------
    # 시세 갱신
    # ---------------------------------------------------------
    async def refresh_prices(self) -> RefreshResult:
        """
        확정된 항목의 시세를 동시에 조회.
        종목별 실패는 해당 종목만 건너뛰고, 조회 중 삭제된 항목의 결과는 버린다.
        """
        targets = [
            (key, item.symbol)
            for key, item in self._items.items()
            if item.status in (EntryStatus.CONFIRMED, EntryStatus.STALE)
        ]
        result = RefreshResult()
        if not targets:
            return result

        for key, _ in targets:
            self._items[key].status = EntryStatus.STALE

        outcomes = await asyncio.gather(
            *(self._refresh_one(key, symbol) for key, symbol in targets),
            return_exceptions=True,
        )

        for (key, symbol), outcome in zip(targets, outcomes):
            if isinstance(outcome, BaseException):
                logger.error(f"⛔ [{symbol}] 시세 갱신 중 예외", exc_info=outcome)
                self._mark_confirmed(key)
                result.failed.append(symbol)
            elif outcome is None:
                result.failed.append(symbol)
            else:
                result.updated[symbol] = outcome

        self.events.publish(PricesRefreshed(updated=dict(result.updated), failed=tuple(result.failed)))
        return result

    async def _refresh_one(self, key: str, symbol: str) -> Decimal | None:
        try:
            quote = await self.quotes.get_quote(symbol)
        except WatchlistError as e:
            logger.warning(f"⚠️ [{symbol}] 시세 갱신 실패: {e}")
            self._mark_confirmed(key)
            return None

        item = self._items.get(key)
        if item is None:
            logger.debug(f"[{symbol}] 삭제된 항목의 시세 결과 무시")
            return None
        item.with_price(quote.price)
        if quote.change is not None:
            item.daily_change = quote.change
        item.status = EntryStatus.CONFIRMED
        return quote.price

    async def run_price_polling(self, interval: float | None = None) -> None:
        """주기적 시세 갱신. 취소될 때까지 반복"""
        interval = interval or settings.PRICE_REFRESH_INTERVAL_SECONDS
        logger.info(f"🚀 시세 갱신 시작 (간격 {interval}s)")
        try:
            while True:
                if self._items:
                    await self.refresh_prices()
                await asyncio.sleep(interval)
        except asyncio.CancelledError:
            logger.info("시세 갱신 중지")
            raise

    # ---------------------------------------------------------
    # 공통 / 유틸리티
    # ---------------------------------------------------------
    def _require(self, key: str) -> WatchlistItem:
        item = self._items.get(key)
        if item is None:
            raise NotFound()
        if item.is_pending or key in self._inflight:
            raise MutationInProgress()
        return item

    def _mark_confirmed(self, key: str) -> None:
        item = self._items.get(key)
        if item is not None and item.status == EntryStatus.STALE:
            item.status = EntryStatus.CONFIRMED

    async def _reload_after_stale(self) -> None:
        try:
            await self.load()
        except WatchlistError as e:
            logger.warning(f"⚠️ 목록 다시 불러오기 실패: {e}")

    def _report(self, error: WatchlistError, key: str | None = None) -> None:
        # 인증 만료는 세션 쪽에서 로그인 요구 이벤트를 이미 보냈다
        if isinstance(error, AuthenticationRequired):
            return
        self.events.publish(ErrorRaised(error=error, key=key))
