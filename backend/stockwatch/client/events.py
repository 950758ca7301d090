"""
타입이 있는 이벤트 버스

구독은 payload 클래스 단위로 한다. 문자열 이벤트 이름 대신
dataclass 타입을 키로 쓰기 때문에 발행/구독 양쪽이 같은 필드를 본다.
"""
import logging
from collections import defaultdict
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, TypeVar

from stockwatch.client.state import WatchlistItem
from stockwatch.core.exceptions import WatchlistError
from stockwatch.schemas.preferences import UserPreferences

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LoginRequired:
    """로그인 화면으로 보내야 함 (다른 에러 표시보다 우선)"""
    reason: str


@dataclass(frozen=True)
class SignedOut:
    pass


@dataclass(frozen=True)
class EntryAdded:
    item: WatchlistItem


@dataclass(frozen=True)
class EntryUpdated:
    item: WatchlistItem


@dataclass(frozen=True)
class EntryRemoved:
    key: str
    symbol: str


@dataclass(frozen=True)
class PricesRefreshed:
    updated: dict[str, Decimal]
    failed: tuple[str, ...]


@dataclass(frozen=True)
class PreferencesChanged:
    preferences: UserPreferences


@dataclass(frozen=True)
class ErrorRaised:
    error: WatchlistError
    key: str | None = None


EVENT_TYPES = (
    LoginRequired,
    SignedOut,
    EntryAdded,
    EntryUpdated,
    EntryRemoved,
    PricesRefreshed,
    PreferencesChanged,
    ErrorRaised,
)

E = TypeVar("E")


class EventBus:
    def __init__(self):
        self._handlers: dict[type, list[Callable]] = defaultdict(list)

    def subscribe(self, event_type: type[E], handler: Callable[[E], None]) -> Callable[[], None]:
        """구독 해제 함수를 반환"""
        if event_type not in EVENT_TYPES:
            raise TypeError(f"Unknown event type: {event_type!r}")
        self._handlers[event_type].append(handler)

        def unsubscribe():
            if handler in self._handlers[event_type]:
                self._handlers[event_type].remove(handler)

        return unsubscribe

    def publish(self, event) -> None:
        event_type = type(event)
        if event_type not in EVENT_TYPES:
            raise TypeError(f"Unknown event type: {event_type!r}")
        # 한 구독자의 실패가 다른 구독자나 발행자에게 번지지 않도록 개별 처리
        for handler in list(self._handlers[event_type]):
            try:
                handler(event)
            except Exception:
                logger.exception(f"⚠️ 이벤트 처리 실패 ({event_type.__name__})")
