from decimal import Decimal
from typing import Annotated
from pydantic import BaseModel, PlainSerializer

# JSON 에서는 숫자(float)로, 메모리에서는 Decimal 로 다룬다
JsonDecimal = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]

class MessageResponse(BaseModel):
    """
    간단한 성공/오류 메시지 반환용
    """
    message: str

class ErrorResponse(BaseModel):
    """에러 응답 바디"""
    detail: str
    code: str
    remediation: str | None = None

class SetupStatus(BaseModel):
    """스키마 점검 결과"""
    status: str  # 'ready', 'missing', 'unknown'
    message: str
    missing: list[str] = []
    sql: str | None = None
