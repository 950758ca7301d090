from sqlalchemy import Column, ForeignKey, DateTime, Numeric, func, text, CheckConstraint
from sqlalchemy.dialects.postgresql import UUID
from stockwatch.database import Base

class UserPreferences(Base):
    """사용자별 기본 상/하한 퍼센트 (user_preferences, 사용자당 1행)"""
    __tablename__ = "user_preferences"
    __table_args__ = (
        CheckConstraint(
            "default_high_percentage > default_low_percentage",
            name="user_preferences_percentage_range",
        ),
    )

    user_id = Column(UUID(as_uuid=True), ForeignKey("auth.users.id", ondelete="CASCADE"), primary_key=True)
    default_high_percentage = Column(Numeric(6, 2), nullable=False, server_default=text("10.00"))
    default_low_percentage = Column(Numeric(6, 2), nullable=False, server_default=text("-10.00"))

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now(), server_default=func.now(), nullable=False)
