from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer

from stockwatch.core.config import settings
from stockwatch.core.exceptions import AuthenticationRequired, ConfigurationError
from stockwatch.core.security.token import CurrentUser, verify_access_token

# 토큰 발급은 외부 인증 제공자가 담당
oauth2_scheme = OAuth2PasswordBearer(
    tokenUrl=f"{settings.auth_url}/token?grant_type=password",
    auto_error=False,
)

async def get_current_user(token: str | None = Depends(oauth2_scheme)) -> CurrentUser:
    """
    Access Token을 검증하고 현재 사용자를 반환하는 의존성
    """
    if not settings.JWT_SECRET_KEY:
        raise ConfigurationError("JWT secret not configured")

    if not token:
        raise AuthenticationRequired()

    token_data = verify_access_token(token)
    if token_data is None or token_data.user_id is None:
        raise AuthenticationRequired("Could not validate credentials")

    return CurrentUser(user_id=token_data.user_id, token=token)
