from datetime import datetime
from decimal import Decimal
from pydantic import BaseModel, Field, field_validator

from stockwatch.schemas.common import JsonDecimal

class WatchlistEntry(BaseModel):
    """
    관심 종목 1건.
    메모리에서는 의미 이름(owner_id, symbol), 전송 시에는 컬럼 이름(user_id, stock_symbol).
    """
    id: str
    owner_id: str = Field(alias="user_id")
    symbol: str = Field(alias="stock_symbol")
    target_price: JsonDecimal = Decimal("0")
    lower_threshold: JsonDecimal
    upper_threshold: JsonDecimal
    current_price: JsonDecimal = Decimal("0")
    created_at: datetime | None = None
    updated_at: datetime | None = None

    class Config:
        populate_by_name = True
        from_attributes = True

    @field_validator("id", "owner_id", mode="before")
    @classmethod
    def _stringify_id(cls, value):
        return str(value) if value is not None else value

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)

class WatchlistCreate(BaseModel):
    """POST /watchlist"""
    stock_symbol: str = Field(max_length=16)
    lower_threshold: JsonDecimal | None = None
    upper_threshold: JsonDecimal | None = None
    current_price: JsonDecimal | None = None
    target_price: JsonDecimal | None = None

    @field_validator("stock_symbol")
    @classmethod
    def _normalize_symbol(cls, value: str) -> str:
        return value.strip().upper()

class WatchlistUpdate(BaseModel):
    """PUT /watchlist (부분 수정, 보낸 필드만 반영)"""
    id: str
    lower_threshold: JsonDecimal | None = None
    upper_threshold: JsonDecimal | None = None
    target_price: JsonDecimal | None = None
    current_price: JsonDecimal | None = None

    def changes(self) -> dict:
        return self.model_dump(exclude={"id"}, exclude_none=True)

# 사용자 수정으로 취급되는 필드 (updated_at 갱신 대상)
USER_EDIT_FIELDS = frozenset({"lower_threshold", "upper_threshold", "target_price"})
