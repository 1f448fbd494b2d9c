"""Unit tests for the infrastructure layer (caches, HTTP client, geo providers)."""

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import geoip2.errors
import httpx
import pytest
from redis.exceptions import RedisError

from infrastructure.cache.memory_cache import MemoryCache
from infrastructure.cache.protocol import CacheBackend
from infrastructure.cache.redis_cache import RedisCache
from infrastructure.cache.redis_client import create_redis_client
from infrastructure.geo.maxmind import MaxMindProvider
from infrastructure.geo.protocol import GeoLookupError
from infrastructure.geo.providers import (
    HTTP_PROVIDERS,
    IpApiProvider,
    JsonGeoProvider,
    IpapiCoProvider,
    IpWhoisProvider,
)
from infrastructure.http_client import HttpClient
from schemas.models.click import Location


# ── Helpers ───────────────────────────────────────────────────────────────────


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def _fake_redis():
    """Return a mock async Redis client with a pipeline."""
    r = MagicMock()
    r.get = AsyncMock(return_value=None)
    r.set = AsyncMock(return_value=True)
    pipe = MagicMock()
    pipe.execute = AsyncMock(return_value=[True, 1])
    r.pipeline.return_value = pipe
    return r


def _http_client(handler) -> HttpClient:
    return HttpClient(transport=httpx.MockTransport(handler))


def _json_handler(payload, status_code: int = 200):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status_code, json=payload)

    return handler


# ── MemoryCache ───────────────────────────────────────────────────────────────


class TestMemoryCache:
    def test_implements_protocol(self):
        assert isinstance(MemoryCache(), CacheBackend)

    async def test_set_get(self):
        cache = MemoryCache()
        await cache.set("k", {"a": 1}, 60)
        assert await cache.get("k") == {"a": 1}

    async def test_miss_returns_none(self):
        assert await MemoryCache().get("missing") is None

    async def test_entries_expire(self):
        clock = FakeClock()
        cache = MemoryCache(clock=clock)
        await cache.set("k", "v", 10)
        clock.advance(9)
        assert await cache.get("k") == "v"
        clock.advance(1)
        assert await cache.get("k") is None

    async def test_add_only_when_absent(self):
        cache = MemoryCache()
        assert await cache.add("k", 1, 60) is True
        assert await cache.add("k", 2, 60) is False
        assert await cache.get("k") == 1

    async def test_add_after_expiry(self):
        clock = FakeClock()
        cache = MemoryCache(clock=clock)
        await cache.add("k", 1, 5)
        clock.advance(5)
        assert await cache.add("k", 2, 5) is True

    async def test_concurrent_add_has_single_winner(self):
        cache = MemoryCache()
        results = await asyncio.gather(*(cache.add("k", 1, 60) for _ in range(50)))
        assert results.count(True) == 1

    async def test_incr_fixed_window(self):
        clock = FakeClock()
        cache = MemoryCache(clock=clock)
        assert await cache.incr("c", 60) == 1
        clock.advance(30)
        assert await cache.incr("c", 60) == 2
        # TTL is not extended by the second increment
        clock.advance(30)
        assert await cache.incr("c", 60) == 1

    async def test_max_entries_evicts(self):
        cache = MemoryCache(max_entries=3)
        for i in range(5):
            await cache.set(f"k{i}", i, 60 + i)
        assert len(cache) <= 3
        assert await cache.get("k4") == 4

    async def test_eviction_drops_oldest_first(self):
        cache = MemoryCache(max_entries=3)
        await cache.set("old", 1, 3600)
        await cache.set("mid", 2, 60)
        await cache.set("new", 3, 3600)
        await cache.set("newest", 4, 3600)
        assert await cache.get("old") is None
        assert await cache.get("mid") == 2

    async def test_overwrite_counts_as_young(self):
        cache = MemoryCache(max_entries=3)
        await cache.set("a", 1, 60)
        await cache.set("b", 2, 60)
        await cache.set("c", 3, 60)
        await cache.set("a", 10, 60)
        await cache.set("d", 4, 60)
        assert await cache.get("a") == 10
        assert await cache.get("b") is None

    async def test_pinned_keys_never_evicted(self):
        cache = MemoryCache(max_entries=2, pinned_prefixes=("view:",))
        await cache.add("view:1:x", 1, 1800)
        await cache.add("view:2:x", 1, 1800)
        await cache.set("geo:x", {}, 60)
        assert await cache.get("view:1:x") == 1
        assert await cache.get("view:2:x") == 1

    async def test_expired_pinned_keys_reclaimed(self):
        clock = FakeClock()
        cache = MemoryCache(clock=clock, max_entries=2, pinned_prefixes=("view:",))
        await cache.add("view:1:x", 1, 10)
        await cache.add("view:2:x", 1, 10)
        clock.advance(11)
        await cache.set("geo:x", {}, 60)
        assert len(cache) == 1


# ── RedisCache ────────────────────────────────────────────────────────────────


class TestRedisCache:
    async def test_get_decodes_json(self):
        r = _fake_redis()
        r.get.return_value = json.dumps({"country_code": "US"})
        cache = RedisCache(r)
        assert await cache.get("geo:x") == {"country_code": "US"}
        r.get.assert_awaited_once_with("clicks:geo:x")

    async def test_get_redis_error_is_miss(self):
        r = _fake_redis()
        r.get.side_effect = RedisError("down")
        assert await RedisCache(r).get("k") is None

    async def test_get_corrupt_entry_is_miss(self):
        r = _fake_redis()
        r.get.return_value = "{not json"
        assert await RedisCache(r).get("k") is None

    async def test_set_uses_ttl(self):
        r = _fake_redis()
        await RedisCache(r).set("k", "yes", 3600)
        r.set.assert_awaited_once_with("clicks:k", '"yes"', ex=3600)

    async def test_set_swallows_redis_error(self):
        r = _fake_redis()
        r.set.side_effect = RedisError("down")
        await RedisCache(r).set("k", "v", 10)

    async def test_add_uses_set_nx(self):
        r = _fake_redis()
        assert await RedisCache(r).add("view:1:abc", 1, 1800) is True
        r.set.assert_awaited_once_with("clicks:view:1:abc", "1", nx=True, ex=1800)

    async def test_add_returns_false_when_key_exists(self):
        r = _fake_redis()
        r.set.return_value = None
        assert await RedisCache(r).add("k", 1, 60) is False

    async def test_add_fails_open(self):
        r = _fake_redis()
        r.set.side_effect = RedisError("down")
        assert await RedisCache(r).add("k", 1, 60) is True

    async def test_incr_pipeline(self):
        r = _fake_redis()
        r.pipeline.return_value.execute.return_value = [None, 7]
        assert await RedisCache(r).incr("rate:x", 60) == 7
        pipe = r.pipeline.return_value
        pipe.set.assert_called_once_with("clicks:rate:x", 0, nx=True, ex=60)
        pipe.incr.assert_called_once_with("clicks:rate:x")

    async def test_incr_error_returns_zero(self):
        r = _fake_redis()
        r.pipeline.return_value.execute.side_effect = RedisError("down")
        assert await RedisCache(r).incr("k", 60) == 0


class TestCreateRedisClient:
    async def test_none_without_uri(self):
        assert await create_redis_client(None) is None

    async def test_none_when_ping_fails(self, mocker):
        client = MagicMock()
        client.ping = AsyncMock(side_effect=RedisError("refused"))
        mocker.patch("infrastructure.cache.redis_client.aioredis.from_url", return_value=client)
        assert await create_redis_client("redis://localhost:6379") is None

    async def test_returns_client_when_ping_ok(self, mocker):
        client = MagicMock()
        client.ping = AsyncMock(return_value=True)
        mocker.patch("infrastructure.cache.redis_client.aioredis.from_url", return_value=client)
        assert await create_redis_client("redis://localhost:6379") is client


# ── HttpClient ────────────────────────────────────────────────────────────────


class TestHttpClient:
    async def test_get_delegates_to_httpx(self, mocker):
        client = HttpClient()
        fake_resp = MagicMock(status_code=200)
        mocker.patch.object(client._client, "get", return_value=fake_resp)
        resp = await client.get("http://example.com")
        assert resp.status_code == 200
        await client.aclose()

    async def test_get_propagates_exception(self, mocker):
        client = HttpClient()
        mocker.patch.object(
            client._client, "get", side_effect=httpx.ConnectError("refused")
        )
        with pytest.raises(httpx.ConnectError):
            await client.get("http://example.com")
        await client.aclose()

    async def test_mock_transport(self):
        async with _http_client(_json_handler({"ok": True})) as client:
            resp = await client.get("http://example.com")
        assert resp.json() == {"ok": True}


# ── HTTP geo providers ────────────────────────────────────────────────────────


class TestJsonGeoProvider:
    def test_base_cannot_be_instantiated(self):
        with pytest.raises(TypeError):
            JsonGeoProvider(MagicMock())

    def test_subclass_must_implement_parse(self):
        class UrlOnly(JsonGeoProvider):
            def url_for(self, ip):
                return f"https://geo.example/{ip}"

        with pytest.raises(TypeError):
            UrlOnly(MagicMock())

    @pytest.mark.parametrize("name", sorted(HTTP_PROVIDERS))
    def test_registered_providers_are_concrete(self, name):
        provider = HTTP_PROVIDERS[name](MagicMock())
        assert provider.name == name
        assert provider.remote is True


class TestIpApiProvider:
    async def test_success(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(str(request.url))
            return httpx.Response(
                200,
                json={
                    "status": "success",
                    "countryCode": "US",
                    "country": "United States",
                    "city": "Boston",
                },
            )

        async with _http_client(handler) as http:
            location = await IpApiProvider(http).resolve("81.2.69.160")
        assert location == Location("US", "United States", "Boston")
        assert seen[0].startswith("http://ip-api.com/json/81.2.69.160")

    async def test_fail_status(self):
        async with _http_client(_json_handler({"status": "fail", "message": "reserved range"})) as http:
            with pytest.raises(GeoLookupError) as exc:
                await IpApiProvider(http).resolve("81.2.69.160")
        assert exc.value.provider == "ip-api"

    async def test_non_200(self):
        async with _http_client(_json_handler({}, status_code=429)) as http:
            with pytest.raises(GeoLookupError, match="status 429"):
                await IpApiProvider(http).resolve("81.2.69.160")

    async def test_timeout(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        async with _http_client(handler) as http:
            with pytest.raises(GeoLookupError, match="timeout"):
                await IpApiProvider(http).resolve("81.2.69.160")

    async def test_invalid_json(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=b"<html>oops</html>")

        async with _http_client(handler) as http:
            with pytest.raises(GeoLookupError, match="invalid json"):
                await IpApiProvider(http).resolve("81.2.69.160")

    async def test_placeholder_country_rejected(self):
        payload = {"status": "success", "countryCode": "XX", "country": "?", "city": ""}
        async with _http_client(_json_handler(payload)) as http:
            with pytest.raises(GeoLookupError, match="invalid location"):
                await IpApiProvider(http).resolve("81.2.69.160")


class TestIpapiCoProvider:
    async def test_success(self):
        payload = {"country_code": "GB", "country_name": "United Kingdom", "city": "London"}
        async with _http_client(_json_handler(payload)) as http:
            location = await IpapiCoProvider(http).resolve("81.2.69.160")
        assert location == Location("GB", "United Kingdom", "London")

    async def test_error_flag(self):
        payload = {"error": True, "reason": "RateLimited"}
        async with _http_client(_json_handler(payload)) as http:
            with pytest.raises(GeoLookupError):
                await IpapiCoProvider(http).resolve("81.2.69.160")


class TestIpWhoisProvider:
    async def test_success(self):
        payload = {"success": True, "country_code": "DE", "country": "Germany", "city": "Berlin"}
        async with _http_client(_json_handler(payload)) as http:
            location = await IpWhoisProvider(http).resolve("81.2.69.160")
        assert location == Location("DE", "Germany", "Berlin")

    async def test_success_false(self):
        async with _http_client(_json_handler({"success": False})) as http:
            with pytest.raises(GeoLookupError):
                await IpWhoisProvider(http).resolve("81.2.69.160")

    async def test_non_object_payload(self):
        async with _http_client(_json_handler(["not", "a", "dict"])) as http:
            with pytest.raises(GeoLookupError, match="unexpected payload"):
                await IpWhoisProvider(http).resolve("81.2.69.160")


def test_http_provider_registry():
    assert set(HTTP_PROVIDERS) == {"ip-api", "ipapi", "ipwhois"}
    assert all(cls.remote for cls in HTTP_PROVIDERS.values())


# ── MaxMindProvider ───────────────────────────────────────────────────────────


def _city_result(code="US", country="United States", city="Boston"):
    result = MagicMock()
    result.country.iso_code = code
    result.country.name = country
    result.city.name = city
    return result


class TestMaxMindProvider:
    def test_is_local(self):
        assert MaxMindProvider("x.mmdb").remote is False

    async def test_missing_db_raises_lookup_error(self):
        provider = MaxMindProvider("nonexistent.mmdb")
        with pytest.raises(GeoLookupError, match="database unavailable"):
            await provider.resolve("81.2.69.160")

    async def test_success(self):
        provider = MaxMindProvider("nonexistent.mmdb")
        fake_reader = MagicMock()
        fake_reader.city.return_value = _city_result()
        provider._reader = fake_reader
        provider._loaded = True
        assert await provider.resolve("81.2.69.160") == Location("US", "United States", "Boston")

    async def test_address_not_found(self):
        provider = MaxMindProvider("nonexistent.mmdb")
        fake_reader = MagicMock()
        fake_reader.city.side_effect = geoip2.errors.AddressNotFoundError("not found")
        provider._reader = fake_reader
        provider._loaded = True
        with pytest.raises(GeoLookupError, match="address not found"):
            await provider.resolve("81.2.69.160")

    async def test_missing_country_rejected(self):
        provider = MaxMindProvider("nonexistent.mmdb")
        fake_reader = MagicMock()
        fake_reader.city.return_value = _city_result(code=None, country=None, city=None)
        provider._reader = fake_reader
        provider._loaded = True
        with pytest.raises(GeoLookupError):
            await provider.resolve("81.2.69.160")

    def test_close(self):
        provider = MaxMindProvider("nonexistent.mmdb")
        fake_reader = MagicMock()
        provider._reader = fake_reader
        provider.close()
        fake_reader.close.assert_called_once()
