"""
클라이언트 측 관심 종목 상태

서버가 확정한 행(WatchlistEntry) 위에 화면용 상태를 얹는다.
퍼센트/변화량은 저장하지 않고 읽을 때마다 threshold_math 로 계산한다.
"""
import enum
from dataclasses import dataclass
from decimal import Decimal

from stockwatch.core.threshold_math import change_from_target, derive_percentages
from stockwatch.schemas.watchlist import WatchlistEntry

PENDING_PREFIX = "pending:"


class EntryStatus(str, enum.Enum):
    PENDING = "pending"       # 추가 요청 중 (서버 id 없음)
    CONFIRMED = "confirmed"
    STALE = "stale"           # 시세 갱신 중
    FAILED = "failed"


@dataclass
class WatchlistItem:
    entry: WatchlistEntry
    status: EntryStatus = EntryStatus.CONFIRMED
    company_name: str | None = None
    daily_change: Decimal | None = None

    @property
    def key(self) -> str:
        return self.entry.id

    @property
    def symbol(self) -> str:
        return self.entry.symbol

    @property
    def is_pending(self) -> bool:
        return self.status == EntryStatus.PENDING

    @property
    def lower_percentage(self) -> Decimal | None:
        return self._percentages()[0]

    @property
    def upper_percentage(self) -> Decimal | None:
        return self._percentages()[1]

    @property
    def dollar_change(self) -> Decimal:
        """목표가 대비 금액 변화"""
        return change_from_target(self.entry.target_price, self.entry.current_price)[0]

    @property
    def percent_change(self) -> Decimal | None:
        """목표가 대비 퍼센트 변화 (목표가가 0 이하면 None)"""
        return change_from_target(self.entry.target_price, self.entry.current_price)[1]

    def _percentages(self):
        e = self.entry
        return derive_percentages(e.target_price, e.lower_threshold, e.upper_threshold)

    def with_price(self, price: Decimal) -> "WatchlistItem":
        """시세만 반영 (임계값/목표가는 건드리지 않는다)"""
        self.entry = self.entry.model_copy(update={"current_price": price})
        return self


def pending_key(symbol: str) -> str:
    return f"{PENDING_PREFIX}{symbol}"
