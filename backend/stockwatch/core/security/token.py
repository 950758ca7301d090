from datetime import datetime, timedelta, timezone
from jose import JWTError, jwt
from stockwatch.core.config import settings
from pydantic import BaseModel
import uuid

AUTHENTICATED_ROLE = "authenticated"

# --- Pydantic 스키마 ---
class TokenData(BaseModel):
    user_id: uuid.UUID | None = None
    role: str | None = None

class CurrentUser(BaseModel):
    """
    인증된 요청의 소유자.
    행 저장소에 그대로 전달하기 위해 원본 Bearer 토큰도 함께 보관한다.
    """
    user_id: uuid.UUID
    token: str

# --- 인증 제공자 JWT 발급(테스트/로컬용) 및 검증 ---
def create_access_token(user_id: uuid.UUID, expires_delta: timedelta | None = None) -> str:
    """
    인증 제공자가 발급하는 것과 같은 형식(sub, aud, role)의 Access Token.
    실제 발급은 인증 제공자가 하고, 여기서는 로컬 개발과 테스트에만 쓴다.
    """
    if expires_delta is None:
        expires_delta = timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    claims = {
        "sub": str(user_id),
        "aud": settings.JWT_AUDIENCE,
        "role": AUTHENTICATED_ROLE,
        "exp": datetime.now(timezone.utc) + expires_delta,
    }
    return jwt.encode(claims, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)

def verify_access_token(token: str) -> TokenData | None:
    """
    서명, 만료, aud 를 확인하고 sub 를 UUID 로 돌려준다.
    하나라도 맞지 않으면 None
    """
    try:
        claims = jwt.decode(
            token,
            settings.JWT_SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM],
            audience=settings.JWT_AUDIENCE,
        )
    except JWTError:
        return None

    user_id = _subject(claims)
    if user_id is None:
        return None
    return TokenData(user_id=user_id, role=claims.get("role"))

def _subject(claims: dict) -> uuid.UUID | None:
    try:
        return uuid.UUID(str(claims["sub"]))
    except (KeyError, ValueError):
        return None

def read_expiry(token: str) -> datetime | None:
    """서명 검증 없이 exp 클레임만 읽는다 (클라이언트 측 캐시 판단용)"""
    try:
        claims = jwt.get_unverified_claims(token)
    except JWTError:
        return None
    exp = claims.get("exp")
    if exp is None:
        return None
    return datetime.fromtimestamp(int(exp), tz=timezone.utc)
