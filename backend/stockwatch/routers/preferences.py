from fastapi import APIRouter, Depends

from stockwatch.core.security.dependencies import get_current_user
from stockwatch.core.security.token import CurrentUser
from stockwatch.schemas.preferences import PreferencesUpdate, UserPreferences
from stockwatch.services.preferences_service import preferences_service
from stockwatch.services.row_store import RowStore, require_schema

router = APIRouter(
    prefix="/preferences",
    tags=["Preferences"],
    dependencies=[Depends(get_current_user)]
)

@router.get("", response_model=UserPreferences)
async def read_preferences(
    current_user: CurrentUser = Depends(get_current_user),
    store: RowStore = Depends(require_schema)
):
    """내 기본 퍼센트 설정 조회 (없으면 기본값으로 생성)"""
    return await preferences_service.get_preferences(store, current_user)

@router.put("", response_model=UserPreferences)
async def update_preferences(
    prefs_in: PreferencesUpdate,
    current_user: CurrentUser = Depends(get_current_user),
    store: RowStore = Depends(require_schema)
):
    """내 기본 퍼센트 설정 수정"""
    return await preferences_service.set_preferences(store, current_user, prefs_in)
