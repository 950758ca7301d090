import json
import os
import uuid
from datetime import datetime, timezone

# 설정은 import 시점에 읽히므로 가장 먼저 지정
os.environ["SUPABASE_URL"] = "http://store.test"
os.environ["SUPABASE_ANON_KEY"] = "anon-key"
os.environ["JWT_SECRET_KEY"] = "test-secret"
os.environ["FINNHUB_API_KEY"] = "test-finnhub-key"
os.environ["API_BASE_URL"] = "http://api.test"

import httpx
import pytest
from fastapi.testclient import TestClient

from stockwatch.client.events import EVENT_TYPES, EventBus
from stockwatch.client.repository import WatchlistRepository
from stockwatch.client.session_gateway import Session, SessionGateway
from stockwatch.core.security.token import create_access_token
from stockwatch.main import app
from stockwatch.services.quote_client import QuoteClient, get_quote_client
from stockwatch.services.row_store import SINGLE_OBJECT, RowStore, get_row_store


class FakePostgrest:
    """
    PostgREST 동작을 흉내내는 인메모리 행 저장소.
    eq 필터, order, limit, 단건 Accept 헤더, unique 제약, 테이블 누락을 지원한다.
    """

    UNIQUE = {
        "watchlist": ("user_id", "stock_symbol"),
        "user_preferences": ("user_id",),
    }
    DEFAULTS = {
        "watchlist": {"target_price": 0, "current_price": 0},
        "user_preferences": {"default_high_percentage": 10.0, "default_low_percentage": -10.0},
    }

    def __init__(self, missing=()):
        self.tables = {"watchlist": [], "user_preferences": []}
        self.missing = set(missing)
        self.rejected_tokens = {"bad-token"}
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        table = request.url.path.rsplit("/", 1)[-1]

        if request.headers.get("authorization", "").removeprefix("Bearer ") in self.rejected_tokens:
            return httpx.Response(401, json={"code": "PGRST301", "message": "JWT expired"})
        if table in self.missing:
            return httpx.Response(
                404,
                json={"code": "PGRST205", "message": f"Could not find the table 'public.{table}' in the schema cache"},
            )

        params = dict(request.url.params)
        filters = {k: v[3:] for k, v in params.items() if v.startswith("eq.")}
        rows = [r for r in self.tables[table] if all(str(r.get(k)) == v for k, v in filters.items())]

        if request.method == "GET":
            if "order" in params:
                column, _, direction = params["order"].partition(".")
                rows = sorted(rows, key=lambda r: r[column], reverse=direction == "desc")
            if "limit" in params:
                rows = rows[: int(params["limit"])]
            if request.headers.get("accept") == SINGLE_OBJECT:
                if len(rows) != 1:
                    return httpx.Response(
                        406,
                        json={"code": "PGRST116", "message": "JSON object requested, multiple (or no) rows returned"},
                    )
                return httpx.Response(200, json=rows[0])
            return httpx.Response(200, json=rows)

        if request.method == "POST":
            row = json.loads(request.content)
            unique = self.UNIQUE[table]
            if any(all(str(r[c]) == str(row[c]) for c in unique) for r in self.tables[table]):
                return httpx.Response(
                    409,
                    json={"code": "23505", "message": "duplicate key value violates unique constraint"},
                )
            now = datetime.now(timezone.utc).isoformat()
            row = {**self.DEFAULTS[table], "created_at": now, "updated_at": now, **row}
            if table == "watchlist":
                row.setdefault("id", str(uuid.uuid4()))
            self.tables[table].append(row)
            return httpx.Response(201, json=[row])

        if request.method == "PATCH":
            values = json.loads(request.content)
            for row in rows:
                row.update(values)
            return httpx.Response(200, json=rows)

        if request.method == "DELETE":
            for row in rows:
                self.tables[table].remove(row)
            return httpx.Response(200, json=rows)

        return httpx.Response(405, json={"message": "method not allowed"})


class FakeFinnhub:
    """시세 API 대역. prices 에 없는 종목은 c=0 (데이터 없음)"""

    def __init__(self, prices=None, names=None, down=()):
        self.prices = dict(prices or {})
        self.names = dict(names or {})
        self.down = set(down)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        symbol = request.url.params.get("symbol")
        if symbol in self.down:
            return httpx.Response(500, text="internal error")
        if request.url.path.endswith("/quote"):
            price = self.prices.get(symbol, 0)
            return httpx.Response(200, json={"c": price, "d": 1.5 if price else None, "dp": 0.8 if price else None})
        if request.url.path.endswith("/stock/profile2"):
            return httpx.Response(200, json={"name": self.names.get(symbol)} if symbol in self.names else {})
        return httpx.Response(404, json={})


class FakeAuth:
    """인증 제공자 대역 (토큰 발급/갱신)"""

    def __init__(self, user_id: uuid.UUID, password: str = "secret"):
        self.user_id = user_id
        self.password = password
        self.refresh_calls = 0
        self.fail_refresh = False
        # 지정하면 갱신 요청에 이 응답을 그대로 돌려준다
        self.refresh_response: httpx.Response | None = None
        self.recovery_requests: list[dict] = []

    def token_body(self, refresh_token: str) -> dict:
        return {
            "access_token": create_access_token(self.user_id),
            "token_type": "bearer",
            "expires_in": 3600,
            "refresh_token": refresh_token,
            "user": {"id": str(self.user_id)},
        }

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/recover"):
            return self.recover(request)
        grant_type = request.url.params.get("grant_type")
        payload = json.loads(request.content)
        if grant_type == "password":
            if payload.get("password") != self.password:
                return httpx.Response(400, json={"error": "invalid_grant"})
            return httpx.Response(200, json=self.token_body("refresh-1"))
        if grant_type == "refresh_token":
            self.refresh_calls += 1
            if self.fail_refresh:
                return httpx.Response(400, json={"error": "invalid_grant"})
            if self.refresh_response is not None:
                return self.refresh_response
            return httpx.Response(200, json=self.token_body(f"refresh-{self.refresh_calls + 1}"))
        return httpx.Response(400, json={"error": "unsupported_grant_type"})

    def recover(self, request: httpx.Request) -> httpx.Response:
        payload = json.loads(request.content)
        if "@" not in payload.get("email", ""):
            return httpx.Response(422, json={"code": 422, "msg": "Unable to validate email address: invalid format"})
        self.recovery_requests.append({
            "email": payload["email"],
            "redirect_to": request.url.params.get("redirect_to"),
            "apikey": request.headers.get("apikey"),
        })
        return httpx.Response(200, json={})


@pytest.fixture
def user_id():
    return uuid.uuid4()


@pytest.fixture
def token(user_id):
    return create_access_token(user_id)


@pytest.fixture
def auth_headers(token):
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def fake_store():
    return FakePostgrest()


@pytest.fixture
def row_store(fake_store):
    return RowStore(
        base_url="http://store.test/rest/v1",
        api_key="anon-key",
        client=httpx.AsyncClient(transport=httpx.MockTransport(fake_store)),
    )


@pytest.fixture
def fake_finnhub():
    return FakeFinnhub(prices={"AAPL": 50, "MSFT": 300.25}, names={"AAPL": "Apple Inc"})


@pytest.fixture
def quote_client(fake_finnhub):
    return QuoteClient(
        api_key="test-finnhub-key",
        base_url="http://finnhub.test/api/v1",
        client=httpx.AsyncClient(transport=httpx.MockTransport(fake_finnhub)),
    )


@pytest.fixture
def api_app(row_store, quote_client):
    app.dependency_overrides[get_row_store] = lambda: row_store
    app.dependency_overrides[get_quote_client] = lambda: quote_client
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
def api(api_app):
    # lifespan(시작 시 스키마 점검)은 실행하지 않는다
    return TestClient(api_app)


@pytest.fixture
def events():
    return EventBus()


@pytest.fixture
def fake_auth(user_id):
    return FakeAuth(user_id)


@pytest.fixture
def gateway(fake_auth, events, token, user_id):
    gw = SessionGateway(
        auth_url="http://store.test/auth/v1",
        api_key="anon-key",
        client=httpx.AsyncClient(transport=httpx.MockTransport(fake_auth)),
        events=events,
    )
    gw.set_session(Session(access_token=token, refresh_token="refresh-1", user_id=str(user_id)))
    return gw


@pytest.fixture
def repository(api_app, gateway):
    client = httpx.AsyncClient(transport=httpx.ASGITransport(app=api_app))
    return WatchlistRepository(gateway, base_url="http://api.test", client=client)


@pytest.fixture
def recorded(events):
    """발행된 이벤트를 순서대로 모은다"""
    seen = []
    for event_type in EVENT_TYPES:
        events.subscribe(event_type, seen.append)
    return seen
