import logging
from fastapi import APIRouter, Depends, Query, status

from stockwatch.core.security.dependencies import get_current_user
from stockwatch.core.security.token import CurrentUser
from stockwatch.schemas.common import MessageResponse
from stockwatch.schemas.watchlist import WatchlistCreate, WatchlistEntry, WatchlistUpdate
from stockwatch.services.row_store import RowStore, require_schema
from stockwatch.services.watchlist_service import watchlist_service

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/watchlist",
    tags=["Watchlist"],
    dependencies=[Depends(get_current_user)]
)

@router.get("", response_model=list[WatchlistEntry])
async def list_watchlist(
    current_user: CurrentUser = Depends(get_current_user),
    store: RowStore = Depends(require_schema)
):
    """내 관심 종목 조회 (종목 코드 오름차순)"""
    return await watchlist_service.list_entries(store, current_user)

@router.post("", status_code=status.HTTP_201_CREATED, response_model=WatchlistEntry)
async def add_watchlist_entry(
    entry_in: WatchlistCreate,
    current_user: CurrentUser = Depends(get_current_user),
    store: RowStore = Depends(require_schema)
):
    """관심 종목 추가 (이미 있으면 409)"""
    return await watchlist_service.create_entry(store, current_user, entry_in)

@router.put("", response_model=WatchlistEntry)
async def update_watchlist_entry(
    entry_in: WatchlistUpdate,
    current_user: CurrentUser = Depends(get_current_user),
    store: RowStore = Depends(require_schema)
):
    """관심 종목 수정 (보낸 필드만 반영)"""
    return await watchlist_service.update_entry(store, current_user, entry_in)

@router.delete("", response_model=MessageResponse)
async def delete_watchlist_entry(
    id: str = Query(..., min_length=1),
    current_user: CurrentUser = Depends(get_current_user),
    store: RowStore = Depends(require_schema)
):
    """관심 종목 삭제"""
    await watchlist_service.delete_entry(store, current_user, id)
    return MessageResponse(message="Stock removed from watchlist")
