"""
Tests du cache : backends et CacheCoordinator.

Le backend Redis est testé avec un faux client qui imite la
partie de l'API redis-py utilisée (get, set, scan_iter, delete).
"""

from __future__ import annotations

import fnmatch

import pytest
import redis

from ticketing.adapters.cache import (
    CacheCoordinator,
    CacheError,
    InMemoryCacheBackend,
    RedisCacheBackend,
    serialize_params,
)


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class FakeRedis:
    def __init__(self) -> None:
        self.data: dict[str, str] = {}
        self.ttls: dict[str, int] = {}
        self.delete_calls: list[tuple[str, ...]] = []

    def get(self, key):
        value = self.data.get(key)
        return value.encode("utf-8") if value is not None else None

    def set(self, key, value, ex=None):
        self.data[key] = value
        self.ttls[key] = ex

    def scan_iter(self, match=None, count=None):
        return iter([k for k in list(self.data) if fnmatch.fnmatchcase(k, match)])

    def delete(self, *keys):
        self.delete_calls.append(keys)
        for k in keys:
            self.data.pop(k, None)
        return len(keys)


class DownRedis:
    """Client dont toutes les opérations échouent."""

    def get(self, key):
        raise redis.ConnectionError("Connection refused")

    def set(self, key, value, ex=None):
        raise redis.ConnectionError("Connection refused")

    def scan_iter(self, match=None, count=None):
        raise redis.ConnectionError("Connection refused")


class BrokenBackend(InMemoryCacheBackend):
    def get(self, key):
        raise CacheError("down")

    def set(self, key, value, ttl_seconds):
        raise CacheError("down")

    def delete_by_prefix(self, prefix):
        raise CacheError("down")


# --- Backend en mémoire ---


class TestInMemoryCacheBackend:
    def test_expiration(self):
        clock = FakeClock()
        backend = InMemoryCacheBackend(clock=clock)
        backend.set("event:1", "{}", ttl_seconds=60)

        clock.now += 59
        assert backend.get("event:1") == "{}"
        clock.now += 1
        assert backend.get("event:1") is None

    def test_delete_by_prefix(self):
        backend = InMemoryCacheBackend()
        backend.set("booking:1", "a", 60)
        backend.set("booking:all:{}", "b", 60)
        backend.set("event:1", "c", 60)

        assert backend.delete_by_prefix("booking:") == 2
        assert backend.get("booking:1") is None
        assert backend.get("event:1") == "c"

    def test_clear(self):
        backend = InMemoryCacheBackend()
        backend.set("event:1", "c", 60)
        backend.clear()
        assert backend.get("event:1") is None


# --- Backend Redis ---


class TestRedisCacheBackend:
    def test_set_transmet_le_ttl(self):
        client = FakeRedis()
        RedisCacheBackend(client).set("event:1", "{}", 120)
        assert client.ttls["event:1"] == 120

    def test_get_décode_les_bytes(self):
        client = FakeRedis()
        backend = RedisCacheBackend(client)
        backend.set("event:1", '{"id": "1"}', 60)
        assert backend.get("event:1") == '{"id": "1"}'

    def test_delete_by_prefix_par_paquets(self):
        client = FakeRedis()
        backend = RedisCacheBackend(client, scan_count=2)
        for n in range(5):
            backend.set(f"booking:{n}", "x", 60)
        backend.set("event:1", "y", 60)

        assert backend.delete_by_prefix("booking:") == 5
        assert [len(c) for c in client.delete_calls] == [2, 2, 1]
        assert list(client.data) == ["event:1"]

    def test_les_erreurs_redis_deviennent_des_cache_error(self):
        backend = RedisCacheBackend(DownRedis())
        with pytest.raises(CacheError):
            backend.get("event:1")
        with pytest.raises(CacheError):
            backend.delete_by_prefix("event:")


# --- Coordinator ---


class TestCacheCoordinator:
    def test_aller_retour_json(self):
        cache = CacheCoordinator(InMemoryCacheBackend())
        cache.set("event:1", {"id": "1", "price": 25.0})
        assert cache.get("event:1") == {"id": "1", "price": 25.0}

    def test_ttl_par_défaut(self):
        clock = FakeClock()
        cache = CacheCoordinator(InMemoryCacheBackend(clock=clock), default_ttl=3600)
        cache.set("event:1", {"id": "1"})

        clock.now += 3599
        assert cache.get("event:1") is not None
        clock.now += 1
        assert cache.get("event:1") is None

    def test_ttl_explicite(self):
        clock = FakeClock()
        cache = CacheCoordinator(InMemoryCacheBackend(clock=clock))
        cache.set("event:1", {"id": "1"}, ttl_seconds=10)
        clock.now += 10
        assert cache.get("event:1") is None

    def test_backend_en_panne_devient_un_miss(self):
        cache = CacheCoordinator(BrokenBackend())
        cache.set("event:1", {"id": "1"})
        cache.delete_by_prefix("event:")
        assert cache.get("event:1") is None

    def test_redis_injoignable_devient_un_miss(self):
        cache = CacheCoordinator(RedisCacheBackend(DownRedis()))
        assert cache.get("booking:1") is None
        cache.set("booking:1", {"id": "1"})
        cache.delete_by_prefix("booking:")

    def test_entrée_illisible_ignorée(self):
        backend = InMemoryCacheBackend()
        backend.set("event:1", "pas du json", 60)
        assert CacheCoordinator(backend).get("event:1") is None

    def test_make_key(self):
        key = CacheCoordinator.make_key("booking", "user", "user-1", '{"page":1,"limit":10}')
        assert key == 'booking:user:user-1:{"page":1,"limit":10}'


def test_serialize_params_compact_et_ordonné():
    assert serialize_params({"page": 2, "limit": 20, "sortBy": "createdAt"}) == (
        '{"page":2,"limit":20,"sortBy":"createdAt"}'
    )
