"""Async key/value store for the persisted logs and override maps.

Every call is wrapped in optional simulated latency and a timeout. The timeout
covers latency and reads; writes always run to completion under the store
lock. Values must be JSON-serializable; both backends round-trip them through
JSON so callers never share mutable state with the store.
"""

import asyncio
import json
import os
import random
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from enum import Enum
from pathlib import Path
from typing import Any, TypeVar

import structlog

from cpa_alerts.config import Settings, get_settings
from cpa_alerts.errors import TransientIOError

logger = structlog.get_logger(__name__)

T = TypeVar("T")

NAMESPACE = "cpa_alerts_"


class StoreKey(str, Enum):
    """Keys used under the store namespace."""

    ALERT_ACTIONS = "alert_actions"
    CUSTOM_RULES = "custom_rules"
    RULE_TOGGLES = "rule_toggles"
    REMINDER_APPROVALS = "reminder_approvals"
    REMINDER_CANCELLATIONS = "reminder_cancellations"
    SENT_REMINDERS = "sent_reminders"
    CLIENT_STATUSES = "client_statuses"


def _key(key: str | StoreKey) -> str:
    return key.value if isinstance(key, StoreKey) else key


def _copy(value: Any) -> Any:
    return json.loads(json.dumps(value))


class BaseStore(ABC):
    """Abstract store implementing latency, timeouts and atomic updates.

    Subclasses implement the three raw operations; all public methods are
    coroutines that can be awaited independently.
    """

    def __init__(
        self,
        latency: tuple[float, float] | None = None,
        timeout: float | None = None,
    ):
        settings = get_settings()
        self._latency = latency or (settings.store_latency_min, settings.store_latency_max)
        self._timeout = timeout if timeout is not None else settings.store_timeout
        self._lock = asyncio.Lock()
        self._logger = logger.bind(component=type(self).__name__)

    @abstractmethod
    async def _read(self, key: str) -> Any | None:
        """Return the stored value or None when the key is absent."""

    @abstractmethod
    async def _write(self, key: str, value: Any) -> None:
        """Persist a value under the key."""

    @abstractmethod
    async def _clear(self) -> None:
        """Remove every key in the namespace."""

    async def _simulate_latency(self) -> None:
        low, high = self._latency
        if high > 0:
            await asyncio.sleep(random.uniform(low, high))

    def _io_failed(self, operation: str, key: str, exc: Exception) -> TransientIOError:
        self._logger.error("store_io_failed", operation=operation, key=key, error=str(exc))
        return TransientIOError(f"Store {operation} failed for {key!r}: {exc}")

    async def _guard(self, operation: str, key: str, factory: Callable[[], Awaitable[T]]) -> T:
        """Run simulated latency, then a read, under the store timeout."""

        async def run() -> T:
            await self._simulate_latency()
            return await factory()

        try:
            return await asyncio.wait_for(run(), timeout=self._timeout)
        except TimeoutError as exc:
            self._logger.warning("store_timeout", operation=operation, key=key)
            raise TransientIOError(f"Store {operation} timed out for {key!r}") from exc
        except (OSError, ValueError) as exc:
            raise self._io_failed(operation, key, exc) from exc

    async def _commit(self, operation: str, key: str, factory: Callable[[], Awaitable[None]]) -> None:
        """Run a write to completion.

        The timeout never interrupts the write itself: once it starts, it
        either lands or raises, and the caller learns which. A cancelled
        caller still waits for the write before the cancellation propagates.
        """
        task = asyncio.ensure_future(factory())
        try:
            await asyncio.shield(task)
        except asyncio.CancelledError:
            await asyncio.wait([task])
            raise
        except (OSError, ValueError) as exc:
            raise self._io_failed(operation, key, exc) from exc

    async def get(self, key: str | StoreKey, default: Any = None) -> Any:
        """Read a value, returning ``default`` when the key is absent."""
        name = _key(key)
        value = await self._guard("read", name, lambda: self._read(name))
        return _copy(default) if value is None else value

    async def set(self, key: str | StoreKey, value: Any) -> None:
        name = _key(key)
        payload = _copy(value)
        async with self._lock:
            await self._guard("write", name, lambda: asyncio.sleep(0))
            await self._commit("write", name, lambda: self._write(name, payload))

    async def update(
        self,
        key: str | StoreKey,
        mutate: Callable[[Any], Any],
        default: Any = None,
    ) -> Any:
        """Atomically read, transform and write a value.

        The lock covers the whole read-modify-write, so concurrent updates to
        the same store are applied one after another in call order. Errors
        raised by ``mutate`` propagate unchanged and nothing is written.
        """
        name = _key(key)
        async with self._lock:
            current = await self._guard("update", name, lambda: self._read(name))
            updated = _copy(mutate(_copy(default) if current is None else current))
            await self._commit("update", name, lambda: self._write(name, updated))
            return updated

    async def append(self, key: str | StoreKey, item: Any) -> None:
        """Append one item to the list stored under ``key``."""
        await self.update(key, lambda items: [*items, item], default=[])

    async def clear(self) -> None:
        """Irreversibly remove every key in the namespace and nothing else."""
        async with self._lock:
            await self._guard("clear", NAMESPACE + "*", lambda: asyncio.sleep(0))
            await self._commit("clear", NAMESPACE + "*", self._clear)
        self._logger.info("store_cleared")


class MemoryStore(BaseStore):
    """In-process store, used for tests and as the default backend."""

    def __init__(
        self,
        latency: tuple[float, float] | None = None,
        timeout: float | None = None,
    ):
        super().__init__(latency=latency, timeout=timeout)
        self._data: dict[str, str] = {}

    async def _read(self, key: str) -> Any | None:
        raw = self._data.get(NAMESPACE + key)
        return json.loads(raw) if raw is not None else None

    async def _write(self, key: str, value: Any) -> None:
        self._data[NAMESPACE + key] = json.dumps(value)

    async def _clear(self) -> None:
        for name in [k for k in self._data if k.startswith(NAMESPACE)]:
            del self._data[name]


class JsonFileStore(BaseStore):
    """Store keeping one ``cpa_alerts_<key>.json`` file per key in a directory."""

    def __init__(
        self,
        directory: str | Path,
        latency: tuple[float, float] | None = None,
        timeout: float | None = None,
    ):
        super().__init__(latency=latency, timeout=timeout)
        self._directory = Path(directory)

    def _path(self, key: str) -> Path:
        return self._directory / f"{NAMESPACE}{key}.json"

    def _read_sync(self, key: str) -> Any | None:
        path = self._path(key)
        if not path.exists():
            return None
        return json.loads(path.read_text(encoding="utf-8"))

    def _write_sync(self, key: str, value: Any) -> None:
        self._directory.mkdir(parents=True, exist_ok=True)
        path = self._path(key)
        tmp = path.with_suffix(".json.tmp")
        tmp.write_text(json.dumps(value, indent=2), encoding="utf-8")
        os.replace(tmp, path)

    def _clear_sync(self) -> None:
        if not self._directory.exists():
            return
        for path in self._directory.glob(f"{NAMESPACE}*.json"):
            path.unlink()

    async def _read(self, key: str) -> Any | None:
        return await asyncio.to_thread(self._read_sync, key)

    async def _write(self, key: str, value: Any) -> None:
        await asyncio.to_thread(self._write_sync, key, value)

    async def _clear(self) -> None:
        await asyncio.to_thread(self._clear_sync)


def create_store(settings: Settings | None = None) -> BaseStore:
    """Build the store configured by settings (JSON files or memory)."""
    settings = settings or get_settings()
    if settings.store_path:
        return JsonFileStore(settings.store_path)
    return MemoryStore()
