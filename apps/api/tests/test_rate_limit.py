from types import SimpleNamespace

import pytest
from fastapi import HTTPException
from redis.exceptions import ConnectionError as RedisConnectionError
from starlette.requests import Request

from routers import rate_limit
from services.identity import IdentityResult


def _request(host: str = "10.0.0.1") -> Request:
    app = SimpleNamespace(state=SimpleNamespace(disable_rate_limits=False))
    return Request({"type": "http", "app": app, "client": (host, 4321), "headers": []})


@pytest.fixture
def redis_down(monkeypatch):
    def _unreachable(*args, **kwargs):
        raise RedisConnectionError("connection refused")

    monkeypatch.setattr(rate_limit.redis, "from_url", _unreachable)


def test_authenticated_callers_are_keyed_by_user_id():
    request = _request()

    assert rate_limit.quota_key("diagnosis", request, IdentityResult(user_id="u-1")) == "hucks:rate:diagnosis:user:u-1"
    assert rate_limit.quota_key("diagnosis", request, IdentityResult.anonymous("none")) == "hucks:rate:diagnosis:ip:10.0.0.1"


@pytest.mark.asyncio
async def test_users_sharing_an_address_have_separate_quotas(redis_down):
    limiter = rate_limit.rate_limit("diagnosis", limit=1, window_seconds=60)
    request = _request("192.168.0.10")

    await limiter(request, IdentityResult(user_id="alice"))
    await limiter(request, IdentityResult(user_id="bob"))

    with pytest.raises(HTTPException) as exc_info:
        await limiter(request, IdentityResult(user_id="alice"))
    assert exc_info.value.status_code == 429


@pytest.mark.asyncio
async def test_same_user_is_limited_across_addresses(redis_down):
    limiter = rate_limit.rate_limit("billing_checkout", limit=1, window_seconds=60)

    await limiter(_request("1.1.1.1"), IdentityResult(user_id="roamer"))

    with pytest.raises(HTTPException):
        await limiter(_request("2.2.2.2"), IdentityResult(user_id="roamer"))


@pytest.mark.asyncio
async def test_local_counters_drop_expired_windows(monkeypatch):
    rate_limit._local_counters["hucks:rate:diagnosis:ip:old"] = (5, 100.0)
    monkeypatch.setattr(rate_limit.time, "time", lambda: 200.0)

    allowed = await rate_limit._consume_local_quota("hucks:rate:diagnosis:ip:new", limit=1, window_seconds=60)

    assert allowed
    assert "hucks:rate:diagnosis:ip:old" not in rate_limit._local_counters
    assert rate_limit._local_counters["hucks:rate:diagnosis:ip:new"] == (1, 260.0)


@pytest.mark.asyncio
async def test_expired_window_resets_the_count(monkeypatch):
    key = "hucks:rate:diagnosis:user:u-1"
    rate_limit._local_counters[key] = (99, 100.0)
    monkeypatch.setattr(rate_limit.time, "time", lambda: 150.0)

    assert await rate_limit._consume_local_quota(key, limit=1, window_seconds=60)
