import logging
from datetime import datetime, timezone
from decimal import Decimal

from stockwatch.core.exceptions import DuplicateSymbol, NotFound, ValidationError
from stockwatch.core.security.token import CurrentUser
from stockwatch.core.threshold_math import round_cents, validate_range
from stockwatch.schemas.watchlist import (
    USER_EDIT_FIELDS,
    WatchlistCreate,
    WatchlistEntry,
    WatchlistUpdate,
)
from stockwatch.services.row_store import RowStore, UniqueViolation

logger = logging.getLogger(__name__)

TABLE = "watchlist"
# 정렬 기준은 종목 코드 오름차순 하나로 고정
ORDER = "stock_symbol.asc"


class WatchlistService:
    async def list_entries(self, store: RowStore, user: CurrentUser) -> list[WatchlistEntry]:
        """내 관심 종목 조회 (종목 코드 오름차순)"""
        rows = await store.select(TABLE, user.token, {"user_id": user.user_id}, order=ORDER)
        return [WatchlistEntry.model_validate(row) for row in rows]

    async def get_entry(self, store: RowStore, user: CurrentUser, entry_id: str) -> WatchlistEntry:
        """ID로 내 관심 종목 조회. 다른 사용자의 종목이면 NotFound"""
        row = await store.select_one(TABLE, user.token, {"id": entry_id, "user_id": user.user_id})
        if row is None:
            raise NotFound()
        return WatchlistEntry.model_validate(row)

    async def create_entry(
        self,
        store: RowStore,
        user: CurrentUser,
        entry_in: WatchlistCreate,
    ) -> WatchlistEntry:
        """관심 종목 추가"""
        symbol = entry_in.stock_symbol
        if not symbol or entry_in.lower_threshold is None or entry_in.upper_threshold is None:
            raise ValidationError("Missing required fields")

        # 저장 단위(센트)로 먼저 맞춘 뒤 검증한다
        lower = round_cents(entry_in.lower_threshold)
        upper = round_cents(entry_in.upper_threshold)
        validate_range(lower, upper)

        current_price = Decimal("0.00")
        if entry_in.current_price is not None:
            current_price = round_cents(entry_in.current_price)
        # 목표가 기본값은 추가 시점 가격
        target_price = round_cents(entry_in.target_price) if entry_in.target_price is not None else current_price
        if current_price < 0 or target_price < 0:
            raise ValidationError("Prices must not be negative")

        # 중복 체크
        existing = await store.select_one(TABLE, user.token, {"user_id": user.user_id, "stock_symbol": symbol})
        if existing:
            raise DuplicateSymbol(symbol)

        row = {
            "user_id": str(user.user_id),
            "stock_symbol": symbol,
            "lower_threshold": _wire(lower),
            "upper_threshold": _wire(upper),
            "current_price": _wire(current_price),
            "target_price": _wire(target_price),
        }
        try:
            new_row = await store.insert(TABLE, user.token, row)
        except UniqueViolation:
            # 중복 체크와 insert 사이에 같은 종목이 추가된 경우
            raise DuplicateSymbol(symbol)

        logger.info(f"✅ [{symbol}] 관심 종목 추가 (user={user.user_id})")
        return WatchlistEntry.model_validate(new_row)

    async def update_entry(
        self,
        store: RowStore,
        user: CurrentUser,
        entry_in: WatchlistUpdate,
    ) -> WatchlistEntry:
        """
        관심 종목 부분 수정
        기존 값과 요청 값을 합친 결과로 하한 < 상한 을 다시 검증한다.
        """
        changes = {key: round_cents(value) for key, value in entry_in.changes().items()}
        if not changes:
            raise ValidationError("No fields to update")

        existing = await self.get_entry(store, user, entry_in.id)

        lower = changes.get("lower_threshold", existing.lower_threshold)
        upper = changes.get("upper_threshold", existing.upper_threshold)
        validate_range(lower, upper)

        for field in ("target_price", "current_price"):
            if field in changes and changes[field] < 0:
                raise ValidationError("Prices must not be negative")

        values = {key: _wire(value) for key, value in changes.items()}
        if USER_EDIT_FIELDS & changes.keys():
            values["updated_at"] = datetime.now(timezone.utc).isoformat()

        updated = await store.update(TABLE, user.token, {"id": entry_in.id, "user_id": user.user_id}, values)
        if updated is None:
            raise NotFound()

        return WatchlistEntry.model_validate(updated)

    async def delete_entry(self, store: RowStore, user: CurrentUser, entry_id: str) -> None:
        """관심 종목 삭제"""
        deleted = await store.delete(TABLE, user.token, {"id": entry_id, "user_id": user.user_id})
        if not deleted:
            raise NotFound()
        logger.info(f"🗑️ 관심 종목 삭제 (id={entry_id}, user={user.user_id})")


def _wire(value: Decimal) -> float:
    return float(round_cents(value))


watchlist_service = WatchlistService()
