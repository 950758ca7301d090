from sqlalchemy import Column, String, ForeignKey, DateTime, Numeric, func, text, UniqueConstraint, CheckConstraint, Index
from sqlalchemy.dialects.postgresql import UUID
from stockwatch.database import Base

class Watchlist(Base):
    """사용자 관심 종목 (watchlist)"""
    __tablename__ = "watchlist"
    __table_args__ = (
        # (소유자, 종목) 중복 방지 -> unique violation 은 DuplicateSymbol 로 변환됨
        UniqueConstraint("user_id", "stock_symbol", name="watchlist_user_symbol_key"),
        CheckConstraint("lower_threshold < upper_threshold", name="watchlist_threshold_range"),
        Index("idx_watchlist_user_id", "user_id"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, server_default=text("gen_random_uuid()"))
    user_id = Column(UUID(as_uuid=True), ForeignKey("auth.users.id", ondelete="CASCADE"), nullable=False)
    stock_symbol = Column(String(16), nullable=False)

    target_price = Column(Numeric(12, 2), nullable=False, server_default=text("0"))
    lower_threshold = Column(Numeric(12, 2), nullable=False)
    upper_threshold = Column(Numeric(12, 2), nullable=False)
    current_price = Column(Numeric(12, 2), nullable=False, server_default=text("0"))

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    # 사용자 수정 시각 (가격 폴링은 저장하지 않으므로 갱신하지 않음)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
