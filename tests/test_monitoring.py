"""Tests de stats, registro de dispositivos, agregador y fan-out."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import orjson
import pytest
import redis

from telemetry_api.monitoring import DeviceRegistry, RuntimeStats, StatsAggregator
from telemetry_api.realtime import EventFanout, EventName
from telemetry_api.realtime.redis_relay import RedisEventRelay

from .conftest import EventRecorder


# =============================================================================
# RUNTIME STATS
# =============================================================================

class TestRuntimeStats:

    def test_success_rate_without_events(self):
        assert RuntimeStats().success_rate() == "0%"

    def test_success_rate_format(self):
        stats = RuntimeStats(total_events=4, successful_inserts=3, failed_inserts=1)
        assert stats.success_rate() == "75.00%"

    @pytest.mark.parametrize("total,ok", [(1, 0), (3, 3), (7, 2), (2, 5)])
    def test_success_rate_bounds(self, total, ok):
        rate = RuntimeStats(total_events=total, successful_inserts=ok).success_rate_percent()
        assert 0.0 <= rate <= 100.0

    def test_to_dict(self):
        data = RuntimeStats(total_events=2, successful_inserts=2, mqtt_messages=5).to_dict(connected_devices=3)

        assert data == {
            "total_events": 2,
            "successful_inserts": 2,
            "failed_inserts": 0,
            "mqtt_messages": 5,
            "anomalies_detected": 0,
            "connected_devices": 3,
            "success_rate": "100.00%",
        }


# =============================================================================
# DEVICE REGISTRY
# =============================================================================

class TestDeviceRegistry:

    @pytest.mark.asyncio
    async def test_online_offline(self):
        registry = DeviceRegistry()
        await registry.mark_online("rpi-1")
        await registry.mark_online("rpi-1")

        assert registry.count() == 1
        assert registry.is_online("rpi-1")

        await registry.mark_offline("rpi-1")
        assert registry.count() == 0

    @pytest.mark.asyncio
    async def test_add_then_remove_is_neutral(self):
        registry = DeviceRegistry()
        await registry.mark_online("rpi-1")
        before = registry.devices()

        await registry.mark_online("rpi-2")
        await registry.mark_offline("rpi-2")

        assert registry.devices() == before

    @pytest.mark.asyncio
    async def test_offline_unknown_device_is_noop(self):
        registry = DeviceRegistry()
        await registry.mark_offline("ghost")
        assert registry.count() == 0

    @pytest.mark.asyncio
    async def test_every_mutation_notifies_listener(self):
        registry = DeviceRegistry()
        listener = AsyncMock()
        registry.set_listener(listener)

        await registry.mark_online("rpi-1")
        await registry.mark_offline("rpi-1")
        await registry.apply_status("rpi-2", "connected")

        assert listener.await_count == 3

    @pytest.mark.asyncio
    async def test_apply_status(self):
        registry = DeviceRegistry()

        assert await registry.apply_status("rpi-1", "ONLINE") is True
        assert registry.is_online("rpi-1")
        assert await registry.apply_status("rpi-1", "offline") is True
        assert await registry.apply_status("rpi-1", None) is False


# =============================================================================
# STATS AGGREGATOR
# =============================================================================

class TestStatsAggregator:

    @pytest.fixture
    def parts(self):
        stats = RuntimeStats(total_events=1, successful_inserts=1)
        devices = DeviceRegistry()
        fanout = EventFanout()
        recorder = EventRecorder()
        fanout.subscribe(recorder)
        aggregator = StatsAggregator(
            stats,
            devices,
            fanout,
            interval_seconds=0.01,
            status_provider=lambda: {"connected_clients": 2, "mqtt_status": "disconnected"},
        )
        return stats, devices, aggregator, recorder

    @pytest.mark.asyncio
    async def test_broadcast_payload(self, parts):
        _, _, aggregator, recorder = parts
        await aggregator.broadcast()

        payload = recorder.payloads("stats")[0]["raspberry_pi"]
        assert payload["total_events"] == 1
        assert payload["success_rate"] == "100.00%"
        assert payload["connected_clients"] == 2
        assert payload["mqtt_status"] == "disconnected"
        assert "timestamp" in payload

    @pytest.mark.asyncio
    async def test_registry_mutation_triggers_broadcast(self, parts):
        _, devices, aggregator, recorder = parts
        devices.set_listener(aggregator.broadcast)

        await devices.mark_online("rpi-1")

        stats_events = recorder.payloads("stats")
        assert len(stats_events) == 1
        assert stats_events[0]["raspberry_pi"]["connected_devices"] == 1

    @pytest.mark.asyncio
    async def test_periodic_broadcast(self, parts):
        _, _, aggregator, recorder = parts

        await aggregator.start()
        assert aggregator.running
        await asyncio.sleep(0.05)
        await aggregator.stop()

        assert not aggregator.running
        assert aggregator.broadcasts >= 1
        assert len(recorder.payloads("stats")) == aggregator.broadcasts

    @pytest.mark.asyncio
    async def test_snapshot_matches_broadcast(self, parts):
        _, _, aggregator, recorder = parts
        await aggregator.broadcast()

        broadcast = dict(recorder.payloads("stats")[0]["raspberry_pi"])
        for key in ("timestamp", "connected_clients", "mqtt_status"):
            broadcast.pop(key)
        assert broadcast == aggregator.snapshot()


# =============================================================================
# EVENT FAN-OUT
# =============================================================================

class TestEventFanout:

    @pytest.mark.asyncio
    async def test_each_subscriber_gets_event_once(self):
        fanout = EventFanout()
        first, second = EventRecorder(), EventRecorder()
        fanout.subscribe(first)
        fanout.subscribe(second)

        await fanout.emit(EventName.NEW_ANOMALY, {"machine_id": "m1"})

        assert first.events == [("new-anomaly", {"machine_id": "m1"})]
        assert second.events == first.events
        assert fanout.emitted == {"new-anomaly": 1}

    @pytest.mark.asyncio
    async def test_failing_subscriber_does_not_block_others(self):
        fanout = EventFanout()
        broken = AsyncMock(side_effect=RuntimeError("socket closed"))
        recorder = EventRecorder()
        fanout.subscribe(broken)
        fanout.subscribe(recorder)

        await fanout.emit(EventName.STATS, {})

        assert recorder.names() == ["stats"]

    @pytest.mark.asyncio
    async def test_unsubscribe(self):
        fanout = EventFanout()
        recorder = EventRecorder()
        token = fanout.subscribe(recorder)
        fanout.unsubscribe(token)

        await fanout.emit("custom", 1)

        assert recorder.events == []
        assert fanout.subscriber_count == 0


# =============================================================================
# RELAY REDIS
# =============================================================================

class TestRedisEventRelay:

    @pytest.mark.asyncio
    async def test_publishes_event_envelope(self):
        client = MagicMock()
        relay = RedisEventRelay(client, channel="motor:events:test")

        await relay("new-anomaly", {"machine_id": "m1"})

        channel, message = client.publish.call_args.args
        assert channel == "motor:events:test"
        assert orjson.loads(message) == {"event": "new-anomaly", "data": {"machine_id": "m1"}}
        assert relay.stats["published"] == 1

    @pytest.mark.asyncio
    async def test_publish_failure_is_counted(self):
        client = MagicMock()
        client.publish.side_effect = redis.ConnectionError("down")
        relay = RedisEventRelay(client)

        await relay("stats", {})

        assert relay.stats == {"channel": "motor:events", "published": 0, "failed": 1}

    def test_from_url_returns_none_when_unreachable(self, monkeypatch):
        client = MagicMock()
        client.ping.side_effect = redis.ConnectionError("refused")
        monkeypatch.setattr(redis.Redis, "from_url", MagicMock(return_value=client))

        assert RedisEventRelay.from_url("redis://localhost:6399/0", "motor:events") is None
