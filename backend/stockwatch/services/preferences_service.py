import logging
from datetime import datetime, timezone

from stockwatch.core.security.token import CurrentUser
from stockwatch.core.threshold_math import (
    DEFAULT_HIGH_PERCENTAGE,
    DEFAULT_LOW_PERCENTAGE,
    round_cents,
    validate_preference_range,
)
from stockwatch.schemas.preferences import PreferencesUpdate, UserPreferences
from stockwatch.services.row_store import RowStore, UniqueViolation

logger = logging.getLogger(__name__)

TABLE = "user_preferences"


class PreferencesService:
    async def get_preferences(self, store: RowStore, user: CurrentUser) -> UserPreferences:
        """
        사용자 설정 조회
        최초 조회 시 기본값(10 / -10) 행을 만든다. 별도의 생성 API 는 없다.
        """
        row = await store.select_one(TABLE, user.token, {"user_id": user.user_id})
        if row is None:
            logger.info(f"기본 설정 생성 (user={user.user_id})")
            try:
                row = await store.insert(
                    TABLE,
                    user.token,
                    {
                        "user_id": str(user.user_id),
                        "default_high_percentage": float(DEFAULT_HIGH_PERCENTAGE),
                        "default_low_percentage": float(DEFAULT_LOW_PERCENTAGE),
                    },
                )
            except UniqueViolation:
                # 동시에 들어온 첫 조회가 먼저 만든 경우
                row = await store.select_one(TABLE, user.token, {"user_id": user.user_id})
        return UserPreferences.model_validate(row)

    async def set_preferences(
        self,
        store: RowStore,
        user: CurrentUser,
        prefs_in: PreferencesUpdate,
    ) -> UserPreferences:
        """사용자 설정 수정 (없으면 생성)"""
        # 컬럼 정밀도(소수 둘째 자리)로 맞춘 뒤 검증
        high = round_cents(prefs_in.default_high_percentage)
        low = round_cents(prefs_in.default_low_percentage)
        validate_preference_range(high, low)

        values = {
            "default_high_percentage": float(high),
            "default_low_percentage": float(low),
        }
        filters = {"user_id": user.user_id}

        existing = await store.select_one(TABLE, user.token, filters)
        if existing is None:
            try:
                row = await store.insert(TABLE, user.token, {"user_id": str(user.user_id), **values})
                return UserPreferences.model_validate(row)
            except UniqueViolation:
                pass

        values["updated_at"] = datetime.now(timezone.utc).isoformat()
        row = await store.update(TABLE, user.token, filters, values)
        return UserPreferences.model_validate(row)


preferences_service = PreferencesService()
