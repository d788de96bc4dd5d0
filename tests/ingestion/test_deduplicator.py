from __future__ import annotations

from typing import Dict

from ingestion.services.deduplicator import InMemoryKeyStore, RedisKeyStore


class FakeRedis:
    def __init__(self) -> None:
        self._store: Dict[str, str] = {}
        self.ttls: Dict[str, int | None] = {}

    def exists(self, name: str) -> int:
        return 1 if name in self._store else 0

    def set(self, name: str, value: str, *, ex: int | None = None, nx: bool | None = None):
        if nx and name in self._store:
            return None
        self._store[name] = value
        self.ttls[name] = ex
        return True


def test_inmemory_keystore_basic():
    ks = InMemoryKeyStore(["bilibili:post:BV1"])
    assert ks.has("bilibili:post:BV1")
    assert not ks.has("k1")
    ks.add("k1")
    assert ks.has("k1")
    assert len(ks) == 2


def test_redis_keystore_prefix_and_ttl():
    client = FakeRedis()
    ks = RedisKeyStore(client, prefix="collected", default_ttl_seconds=60)
    assert not ks.has("zhihu:post:1")
    ks.add("zhihu:post:1")
    assert ks.has("zhihu:post:1")
    assert client.ttls["collected:zhihu:post:1"] == 60
    # NX keeps the first TTL
    ks.add("zhihu:post:1", ttl_seconds=5)
    assert client.ttls["collected:zhihu:post:1"] == 60
