"""Seen-key stores for collector runs (in-memory per run, Redis across runs)."""

from __future__ import annotations

from typing import Iterable, Protocol


class KeyStore(Protocol):
    def has(self, key: str) -> bool: ...  # noqa: D401
    def add(self, key: str, ttl_seconds: int | None = None) -> None: ...  # noqa: D401


class InMemoryKeyStore:
    """Set-backed keystore; one instance spans a single collector run."""

    def __init__(self, keys: Iterable[str] = ()) -> None:
        self._set: set[str] = set(keys)

    def has(self, key: str) -> bool:
        return key in self._set

    def add(self, key: str, ttl_seconds: int | None = None) -> None:
        self._set.add(key)

    def __len__(self) -> int:
        return len(self._set)


class _RedisLikeClient(Protocol):
    def exists(self, name: str) -> int: ...  # returns 1 if exists, else 0
    def set(self, name: str, value: str, *, ex: int | None = None, nx: bool | None = None) -> bool | None: ...


class RedisKeyStore:
    """Redis 기반 KeyStore 구현.

    - 존재 확인: `EXISTS key` → 정수(0/1)
    - 추가: `SET key value NX EX <ttl>` → 키가 없을 때만 설정, TTL 선택

    최근 수집·가져오기가 끝난 항목 키를 TTL 동안 기억해, 다음 수집 실행에서
    같은 항목을 다시 가져오기 파이프라인에 넣지 않도록 한다.
    """

    def __init__(self, client: _RedisLikeClient, *, prefix: str = "collected", default_ttl_seconds: int | None = None) -> None:
        self._client = client
        self._prefix = prefix
        self._default_ttl = default_ttl_seconds

    def _format(self, key: str) -> str:
        return f"{self._prefix}:{key}"

    def has(self, key: str) -> bool:
        return bool(self._client.exists(self._format(key)))

    def add(self, key: str, ttl_seconds: int | None = None) -> None:
        ttl = ttl_seconds if ttl_seconds is not None else self._default_ttl
        # redis-py: set(name, value, ex=seconds, nx=True) returns True if set, None if not set
        self._client.set(self._format(key), "1", ex=ttl, nx=True)
