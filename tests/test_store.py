"""Tests for the async key/value stores."""

import asyncio
import json
import time

import pytest

from cpa_alerts.config import Settings
from cpa_alerts.errors import TransientIOError
from cpa_alerts.store import JsonFileStore, MemoryStore, StoreKey, create_store


class SlowWriteStore(JsonFileStore):
    """JSON store whose disk writes take longer than its timeout."""

    def _write_sync(self, key, value):
        time.sleep(0.2)
        super()._write_sync(key, value)


class TestMemoryStore:
    """Tests for MemoryStore."""

    @pytest.mark.asyncio
    async def test_get_returns_default_for_missing_key(self, store):
        assert await store.get(StoreKey.CUSTOM_RULES, []) == []
        assert await store.get("nothing") is None

    @pytest.mark.asyncio
    async def test_values_are_copied(self, store):
        value = {"a": [1, 2]}
        await store.set("thing", value)
        value["a"].append(3)

        loaded = await store.get("thing")
        loaded["a"].append(4)

        assert await store.get("thing") == {"a": [1, 2]}

    @pytest.mark.asyncio
    async def test_concurrent_appends_are_all_kept_in_order(self, store):
        await asyncio.gather(*(store.append(StoreKey.ALERT_ACTIONS, i) for i in range(50)))

        assert await store.get(StoreKey.ALERT_ACTIONS) == list(range(50))

    @pytest.mark.asyncio
    async def test_update_is_atomic(self, store):
        async def bump():
            await store.update("counter", lambda n: n + 1, default=0)

        await asyncio.gather(*(bump() for _ in range(25)))

        assert await store.get("counter") == 25

    @pytest.mark.asyncio
    async def test_clear_only_touches_namespace(self, store):
        await store.set(StoreKey.CLIENT_STATUSES, {"client-001": "disputed"})
        store._data["other_app_key"] = "keep"

        await store.clear()

        assert await store.get(StoreKey.CLIENT_STATUSES) is None
        assert store._data == {"other_app_key": "keep"}

    @pytest.mark.asyncio
    async def test_timeout_raises_transient_error(self):
        slow = MemoryStore(latency=(0.2, 0.2), timeout=0.01)

        with pytest.raises(TransientIOError):
            await slow.get(StoreKey.ALERT_ACTIONS)


class TestJsonFileStore:
    """Tests for JsonFileStore."""

    @pytest.mark.asyncio
    async def test_round_trip_through_files(self, tmp_path):
        store = JsonFileStore(tmp_path, latency=(0.0, 0.0))
        await store.append(StoreKey.ALERT_ACTIONS, {"alertId": "ar-1"})

        path = tmp_path / "cpa_alerts_alert_actions.json"
        assert json.loads(path.read_text()) == [{"alertId": "ar-1"}]

        reopened = JsonFileStore(tmp_path, latency=(0.0, 0.0))
        assert await reopened.get(StoreKey.ALERT_ACTIONS) == [{"alertId": "ar-1"}]

    @pytest.mark.asyncio
    async def test_clear_removes_namespace_files_only(self, tmp_path):
        store = JsonFileStore(tmp_path, latency=(0.0, 0.0))
        await store.set(StoreKey.RULE_TOGGLES, {"rule-1": False})
        other = tmp_path / "notes.json"
        other.write_text("{}")

        await store.clear()

        assert not (tmp_path / "cpa_alerts_rule_toggles.json").exists()
        assert other.exists()

    @pytest.mark.asyncio
    async def test_corrupt_file_is_transient_error(self, tmp_path):
        (tmp_path / "cpa_alerts_custom_rules.json").write_text("{not json")
        store = JsonFileStore(tmp_path, latency=(0.0, 0.0))

        with pytest.raises(TransientIOError):
            await store.get(StoreKey.CUSTOM_RULES, [])

    @pytest.mark.asyncio
    async def test_slow_write_completes_instead_of_timing_out(self, tmp_path):
        store = SlowWriteStore(tmp_path, latency=(0.0, 0.0), timeout=0.05)

        await store.append(StoreKey.ALERT_ACTIONS, {"n": 1})
        await store.append(StoreKey.ALERT_ACTIONS, {"n": 2})

        reopened = JsonFileStore(tmp_path, latency=(0.0, 0.0))
        assert await reopened.get(StoreKey.ALERT_ACTIONS) == [{"n": 1}, {"n": 2}]

    @pytest.mark.asyncio
    async def test_timed_out_write_leaves_nothing_behind(self, tmp_path):
        store = JsonFileStore(tmp_path, latency=(0.2, 0.2), timeout=0.05)

        with pytest.raises(TransientIOError):
            await store.append(StoreKey.ALERT_ACTIONS, {"n": 1})
        await asyncio.sleep(0.3)

        reopened = JsonFileStore(tmp_path, latency=(0.0, 0.0))
        assert await reopened.get(StoreKey.ALERT_ACTIONS, []) == []

    @pytest.mark.asyncio
    async def test_cancelled_caller_waits_for_write(self, tmp_path):
        store = SlowWriteStore(tmp_path, latency=(0.0, 0.0), timeout=5.0)
        task = asyncio.create_task(store.append(StoreKey.ALERT_ACTIONS, {"n": 1}))
        await asyncio.sleep(0.05)

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert json.loads((tmp_path / "cpa_alerts_alert_actions.json").read_text()) == [{"n": 1}]


class TestCreateStore:
    """Tests for store selection from settings."""

    def test_memory_by_default(self):
        assert isinstance(create_store(Settings(CPA_ALERTS_STORE_PATH=None)), MemoryStore)

    def test_json_store_when_path_set(self, tmp_path):
        store = create_store(Settings(CPA_ALERTS_STORE_PATH=str(tmp_path)))

        assert isinstance(store, JsonFileStore)
