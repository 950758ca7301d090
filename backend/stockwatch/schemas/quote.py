from pydantic import BaseModel

from stockwatch.schemas.common import JsonDecimal

class Quote(BaseModel):
    """시세 조회 결과 (요청 시점 기준, 캐시 없음)"""
    symbol: str
    price: JsonDecimal
    change: JsonDecimal | None = None
    change_percent: JsonDecimal | None = None
    company_name: str | None = None
