"""Durable key-value storage for auth bookkeeping.

Values are JSON documents carrying their own timestamps, so freshness is
computed from the document and never from the engine's TTL. The TTL passed
to set() is only a cleanup hint.
"""

import json
import logging
from typing import Protocol

import redis

logger = logging.getLogger(__name__)


class KeyValueStore(Protocol):
    """Minimal durable store used by the limiter, codes and pending identity."""

    def get(self, key: str) -> dict | None: ...

    def set(self, key: str, value: dict, expire_seconds: int | None = None) -> None: ...

    def remove(self, key: str) -> None: ...


class ValkeyStore:
    """
    KeyValueStore backed by Valkey (Redis-compatible), through redis-py.

    Usage:
        store = ValkeyStore.from_url("redis://localhost:6379/0")
        store.set("verification_resend:a@x.com", {"attempts": 1}, expire_seconds=300)
        record = store.get("verification_resend:a@x.com")  # None if missing

    Fail-fast: connection and decoding errors propagate, never a fallback value.
    """

    def __init__(self, client: redis.Redis, namespace: str = "auth:"):
        self._client = client
        self._namespace = namespace

    @classmethod
    def from_url(cls, url: str, namespace: str = "auth:") -> "ValkeyStore":
        """
        Connect and verify the server answers.

        Raises:
            redis.ConnectionError: If the server is unreachable
        """
        client = redis.from_url(url, decode_responses=True)
        client.ping()
        logger.info("Valkey store connected")
        return cls(client, namespace)

    def _key(self, key: str) -> str:
        return f"{self._namespace}{key}"

    def get(self, key: str) -> dict | None:
        """
        Load a document. Returns None if the key doesn't exist.

        Raises ValueError if the stored value is not a JSON object.
        """
        raw = self._client.get(self._key(key))
        if raw is None:
            return None
        try:
            value = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in key '{key}': {e}")
        if not isinstance(value, dict):
            raise ValueError(f"Expected JSON object in key '{key}'")
        return value

    def set(self, key: str, value: dict, expire_seconds: int | None = None) -> None:
        if expire_seconds is not None:
            self._client.setex(self._key(key), expire_seconds, json.dumps(value))
        else:
            self._client.set(self._key(key), json.dumps(value))

    def remove(self, key: str) -> None:
        self._client.delete(self._key(key))


class MemoryStore:
    """
    In-process KeyValueStore.

    Values round-trip through JSON so callers see the same types they would
    get back from Valkey. TTL hints are ignored.
    """

    def __init__(self):
        self._data: dict[str, str] = {}

    def get(self, key: str) -> dict | None:
        raw = self._data.get(key)
        return None if raw is None else json.loads(raw)

    def set(self, key: str, value: dict, expire_seconds: int | None = None) -> None:
        self._data[key] = json.dumps(value)

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._data)
