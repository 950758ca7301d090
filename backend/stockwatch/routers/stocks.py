from fastapi import APIRouter, Depends, Query

from stockwatch.schemas.quote import Quote
from stockwatch.services.quote_client import QuoteClient, get_quote_client

router = APIRouter(prefix="/stocks", tags=["Stocks"])

@router.get("", response_model=Quote)
async def get_stock_quote(
    symbol: str = Query(..., min_length=1),
    profile: bool = Query(True),
    quotes: QuoteClient = Depends(get_quote_client)
):
    """
    현재가 조회 (서버가 보관한 API 키 사용)
    - profile=false 면 회사명 조회 생략 (주기적 갱신용)
    - 데이터가 없으면 404, 시세 API 장애는 502
    """
    return await quotes.get_quote(symbol, with_profile=profile)
