from datetime import timedelta
from decimal import Decimal

import httpx
import pytest

from stockwatch.client.events import LoginRequired, SignedOut
from stockwatch.client.repository import WatchlistRepository
from stockwatch.client.session_gateway import Session
from stockwatch.core.exceptions import (
    AuthenticationRequired,
    DuplicateSymbol,
    NotFound,
    RangeInvalid,
    SchemaNotProvisioned,
    UpstreamUnavailable,
    ValidationError,
)
from stockwatch.core.security.token import create_access_token
from stockwatch.services.row_store import SchemaStatus


def stub_repository(gateway, handler) -> WatchlistRepository:
    return WatchlistRepository(
        gateway,
        base_url="http://api.test",
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )


def unexpected(request):
    raise AssertionError(f"unexpected request: {request.method} {request.url}")


async def test_create_and_list(repository, user_id):
    entry = await repository.create("aapl", 45, 55, current_price=50)
    assert entry.symbol == "AAPL"
    assert entry.owner_id == str(user_id)
    assert entry.target_price == Decimal("50")

    entries = await repository.list()
    assert [e.id for e in entries] == [entry.id]


async def test_update_and_delete(repository):
    entry = await repository.create("MSFT", 290, 310, current_price=300)
    updated = await repository.update(entry.id, upper_threshold=Decimal("320.00"))
    assert updated.upper_threshold == Decimal("320")
    assert updated.lower_threshold == Decimal("290")

    await repository.delete(entry.id)
    with pytest.raises(NotFound):
        await repository.delete(entry.id)


async def test_local_validation_happens_before_network(gateway):
    repo = stub_repository(gateway, unexpected)
    with pytest.raises(RangeInvalid):
        await repo.create("AAPL", 55, 45)
    with pytest.raises(ValidationError):
        await repo.create(" ", 1, 2)
    with pytest.raises(RangeInvalid):
        await repo.update("id-1", lower_threshold=10, upper_threshold=5)
    with pytest.raises(ValidationError):
        await repo.update("id-1")
    with pytest.raises(ValidationError):
        await repo.update("id-1", symbol="MSFT")
    with pytest.raises(ValidationError):
        await repo.set_preferences(-1, 1)


async def test_duplicate_is_restored_from_response(repository):
    await repository.create("AAPL", 45, 55)
    with pytest.raises(DuplicateSymbol):
        await repository.create("AAPL", 45, 55)


async def test_schema_error_keeps_remediation(repository, row_store):
    row_store.schema_status = SchemaStatus.MISSING
    with pytest.raises(SchemaNotProvisioned) as exc_info:
        await repository.list()
    assert "CREATE TABLE" in exc_info.value.remediation


async def test_framework_validation_error_is_validation_error(gateway):
    repo = stub_repository(
        gateway,
        lambda r: httpx.Response(422, json={"detail": [{"loc": ["body", "id"], "msg": "Field required"}]}),
    )
    with pytest.raises(ValidationError):
        await repo.list()


async def test_unmapped_error_is_upstream_unavailable(gateway):
    repo = stub_repository(gateway, lambda r: httpx.Response(500, text="oops"))
    with pytest.raises(UpstreamUnavailable):
        await repo.list()


async def test_transport_error_is_upstream_unavailable(gateway):
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(UpstreamUnavailable):
        await stub_repository(gateway, handler).list()


async def test_expired_token_is_refreshed_and_retried_once(api_app, gateway, fake_auth, fake_store, user_id):
    # 만료 시각을 모르는 토큰이라 캐시에서 그대로 쓰고, 서버가 401 로 거절한다
    expired = create_access_token(user_id, expires_delta=timedelta(minutes=-5))
    gateway.set_session(Session(access_token=expired, refresh_token="refresh-1", user_id=str(user_id)))

    repo = WatchlistRepository(
        gateway,
        base_url="http://api.test",
        client=httpx.AsyncClient(transport=httpx.ASGITransport(app=api_app)),
    )
    entry = await repo.create("AAPL", 45, 55, current_price=50)

    assert entry.symbol == "AAPL"
    assert fake_auth.refresh_calls == 1
    assert len(fake_store.tables["watchlist"]) == 1


async def test_second_401_signs_out(gateway, fake_auth, recorded):
    calls = []

    def handler(request):
        calls.append(request.headers["authorization"])
        return httpx.Response(401, json={"detail": "Token expired or invalid", "code": "authentication_required"})

    repo = stub_repository(gateway, handler)
    with pytest.raises(AuthenticationRequired):
        await repo.list()

    assert len(calls) == 2
    assert fake_auth.refresh_calls == 1
    assert gateway.session is None
    assert recorded == [SignedOut(), LoginRequired(reason="authentication_failed")]


async def test_401_after_another_callers_refresh_reuses_new_token(gateway, fake_auth, user_id, recorded):
    gateway.set_session(Session(access_token="stale", refresh_token="refresh-1", user_id=str(user_id)))
    sent = []

    async def handler(request):
        sent.append(request.headers["authorization"])
        if request.headers["authorization"] == "Bearer stale":
            # 이 요청이 처리되는 동안 다른 호출자가 갱신을 끝냈다
            await gateway.refresh()
            return httpx.Response(401, json={"code": "authentication_required"})
        return httpx.Response(200, json=[])

    assert await stub_repository(gateway, handler).list() == []

    assert fake_auth.refresh_calls == 1
    assert sent == ["Bearer stale", f"Bearer {gateway.get_token()}"]
    assert recorded == []


async def test_401_with_newer_token_is_the_only_retry(gateway, fake_auth, token, recorded):
    sent = []

    def handler(request):
        sent.append(request.headers["authorization"])
        if len(sent) == 1:
            gateway.set_session(Session(access_token="newer", refresh_token="refresh-2"))
        return httpx.Response(401, json={"code": "authentication_required"})

    with pytest.raises(AuthenticationRequired):
        await stub_repository(gateway, handler).list()

    assert sent == [f"Bearer {token}", "Bearer newer"]
    assert fake_auth.refresh_calls == 0
    assert recorded == [SignedOut(), LoginRequired(reason="authentication_failed")]


async def test_failed_refresh_stops_before_retry(gateway, fake_auth, recorded):
    fake_auth.fail_refresh = True
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(401, json={"code": "authentication_required"})

    with pytest.raises(AuthenticationRequired):
        await stub_repository(gateway, handler).list()

    assert len(calls) == 1
    assert recorded == [SignedOut(), LoginRequired(reason="refresh_failed")]


async def test_preferences_round_trip(repository):
    prefs = await repository.get_preferences()
    assert prefs.default_high_percentage == Decimal("10")
    updated = await repository.set_preferences(Decimal("12.5"), Decimal("-7.5"))
    assert updated.default_low_percentage == Decimal("-7.5")


async def test_quote_does_not_need_session(repository, gateway):
    gateway.sign_out()
    quote = await repository.get_quote("msft")
    assert quote.price == Decimal("300.25")
