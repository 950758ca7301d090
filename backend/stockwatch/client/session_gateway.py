import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable

import httpx

from stockwatch.client.events import EventBus, LoginRequired, SignedOut
from stockwatch.core.config import settings
from stockwatch.core.exceptions import AuthenticationRequired, UpstreamUnavailable, ValidationError
from stockwatch.core.security.token import read_expiry

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Session:
    access_token: str
    refresh_token: str | None = None
    user_id: str | None = None
    expires_at: datetime | None = None

    @classmethod
    def from_response(cls, body: dict, now: datetime | None = None) -> "Session":
        """인증 제공자의 토큰 응답을 세션으로 변환"""
        access_token = body["access_token"]
        expires_at = None
        if body.get("expires_at"):
            expires_at = datetime.fromtimestamp(int(body["expires_at"]), tz=timezone.utc)
        elif body.get("expires_in"):
            expires_at = (now or _utcnow()) + timedelta(seconds=int(body["expires_in"]))
        else:
            expires_at = read_expiry(access_token)

        user = body.get("user") or {}
        return cls(
            access_token=access_token,
            refresh_token=body.get("refresh_token"),
            user_id=str(user["id"]) if user.get("id") else None,
            expires_at=expires_at,
        )


class SessionGateway:
    """
    인증 세션 관리.
    - 만료 전 토큰은 캐시에서 바로 반환
    - 갱신은 동시에 여러 번 요청돼도 한 번만 수행 (single-flight)
    - 갱신 실패 시 로그아웃 + 로그인 요구 이벤트
    """

    def __init__(
        self,
        auth_url: str | None = None,
        api_key: str | None = None,
        client: httpx.AsyncClient | None = None,
        events: EventBus | None = None,
        leeway_seconds: int | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.auth_url = (auth_url or settings.auth_url).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.SUPABASE_ANON_KEY
        self.events = events or EventBus()
        self.leeway = timedelta(
            seconds=leeway_seconds if leeway_seconds is not None else settings.TOKEN_REFRESH_LEEWAY_SECONDS
        )
        self._clock = clock
        self._client = client
        self._session: Session | None = None
        self._refresh_task: asyncio.Task | None = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=settings.ROW_STORE_TIMEOUT_SECONDS)
        return self._client

    async def aclose(self):
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    @property
    def session(self) -> Session | None:
        return self._session

    @property
    def user_id(self) -> str | None:
        return self._session.user_id if self._session else None

    def set_session(self, session: Session) -> None:
        self._session = session

    async def sign_in(self, email: str, password: str) -> Session:
        """이메일/비밀번호 로그인"""
        response = await self._post("password", {"email": email, "password": password})
        if response.status_code != 200:
            logger.warning(f"로그인 실패 ({response.status_code})")
            raise AuthenticationRequired("Invalid login credentials")
        try:
            self._session = Session.from_response(response.json(), now=self._clock())
        except (KeyError, TypeError, ValueError) as e:
            logger.error(f"⛔ 로그인 응답 해석 실패: {e!r}")
            raise UpstreamUnavailable("Unexpected response from authentication service") from e
        logger.info(f"✅ 로그인 성공: {self._session.user_id}")
        return self._session

    def get_token(self) -> str | None:
        """만료 여유시간 이상 남은 토큰만 반환. 그 외에는 None"""
        session = self._session
        if session is None:
            return None
        if session.expires_at is None:
            return session.access_token
        if session.expires_at - self.leeway > self._clock():
            return session.access_token
        return None

    async def refresh(self) -> str | None:
        """
        토큰 갱신. 진행 중인 갱신이 있으면 그 결과를 같이 기다린다.
        실패하면 None (이미 로그아웃 처리됨).
        """
        if self._refresh_task is None or self._refresh_task.done():
            self._refresh_task = asyncio.create_task(self._refresh())
        # 대기하던 호출자가 취소돼도 공유 갱신 작업은 계속 진행
        return await asyncio.shield(self._refresh_task)

    async def _refresh(self) -> str | None:
        session = self._session
        if session is None or not session.refresh_token:
            self.require_login("no_session")
            return None

        try:
            response = await self._post("refresh_token", {"refresh_token": session.refresh_token})
        except UpstreamUnavailable:
            self.require_login("refresh_failed")
            return None

        if response.status_code != 200:
            logger.warning(f"⚠️ 토큰 갱신 실패 ({response.status_code})")
            self.require_login("refresh_failed")
            return None

        try:
            refreshed = Session.from_response(response.json(), now=self._clock())
        except (KeyError, TypeError, ValueError) as e:
            # 200 이지만 토큰이 없거나 JSON 이 아닌 응답
            logger.warning(f"⚠️ 토큰 갱신 응답 해석 실패: {e!r}")
            self.require_login("refresh_failed")
            return None
        if refreshed.user_id is None:
            refreshed.user_id = session.user_id
        if refreshed.refresh_token is None:
            refreshed.refresh_token = session.refresh_token
        self._session = refreshed
        logger.info("🔄 토큰 갱신 완료")
        return refreshed.access_token

    async def request_password_reset(self, email: str, redirect_to: str | None = None) -> None:
        """
        비밀번호 재설정 메일 요청.
        가입 여부와 관계없이 인증 제공자는 성공으로 응답한다.
        """
        email = (email or "").strip()
        if not email:
            raise ValidationError("Email is required")

        params = {"redirect_to": redirect_to} if redirect_to else None
        try:
            response = await self.client.post(
                f"{self.auth_url}/recover",
                params=params,
                json={"email": email},
                headers={"apikey": self.api_key},
            )
        except httpx.HTTPError as e:
            logger.error(f"⛔ 비밀번호 재설정 요청 실패: {e}")
            raise UpstreamUnavailable("Authentication service is unreachable") from e

        if response.status_code in (400, 422):
            raise ValidationError(_provider_message(response) or "Invalid email address")
        if response.is_error:
            logger.warning(f"⚠️ 비밀번호 재설정 요청 거부 ({response.status_code})")
            raise UpstreamUnavailable(f"Password reset request failed ({response.status_code})")
        logger.info("📧 비밀번호 재설정 메일 요청 완료")

    def sign_out(self) -> None:
        """로컬 세션 정리 후 구독자에게 알림"""
        self._session = None
        self.events.publish(SignedOut())

    def require_login(self, reason: str) -> None:
        self.sign_out()
        self.events.publish(LoginRequired(reason=reason))

    async def _post(self, grant_type: str, payload: dict) -> httpx.Response:
        url = f"{self.auth_url}/token"
        try:
            return await self.client.post(
                url,
                params={"grant_type": grant_type},
                json=payload,
                headers={"apikey": self.api_key},
            )
        except httpx.HTTPError as e:
            logger.error(f"⛔ 인증 서버 요청 실패 ({grant_type}): {e}")
            raise UpstreamUnavailable("Authentication service is unreachable") from e


def _provider_message(response: httpx.Response) -> str | None:
    try:
        body = response.json()
    except ValueError:
        return None
    if not isinstance(body, dict):
        return None
    return body.get("msg") or body.get("error_description") or body.get("message")
