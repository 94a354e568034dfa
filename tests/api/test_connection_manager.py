"""
Tests for the tracking WebSocket session manager in spoton_feed.api.websockets.connection_manager.

The websockets connector is replaced by an in-memory fake; the health endpoint
is faked with httpx.MockTransport.
"""
import asyncio
import json
from unittest.mock import MagicMock

import httpx
import pytest
import pytest_asyncio
from websockets.exceptions import ConnectionClosedError, ConnectionClosedOK
from websockets.frames import Close

from spoton_feed.api.websockets.connection_manager import ConnectionState, TrackingConnectionManager
from spoton_feed.services.health_monitor import HealthMonitor
from spoton_feed.services.tracking_data_processor import TrackingDataProcessor


class FakeWebSocket:
    """Minimal stand-in for a websockets client connection."""

    def __init__(self):
        self.inbox: asyncio.Queue = asyncio.Queue()
        self.closed_with = None

    async def recv(self):
        item = await self.inbox.get()
        if isinstance(item, Exception):
            raise item
        return item

    async def close(self, code=1000, reason=""):
        self.closed_with = (code, reason)
        await self.inbox.put(ConnectionClosedOK(Close(code, reason), Close(code, reason)))

    def feed(self, message):
        self.inbox.put_nowait(message)


class FakeConnector:
    def __init__(self):
        self.urls = []
        self.sockets = []
        self.fail_with = None

    async def __call__(self, url):
        self.urls.append(url)
        if self.fail_with is not None:
            raise self.fail_with
        websocket = FakeWebSocket()
        self.sockets.append(websocket)
        return websocket


def _health_monitor(status="healthy") -> HealthMonitor:
    transport = httpx.MockTransport(lambda request: httpx.Response(200, json={"status": status}))
    return HealthMonitor(
        health_url="http://backend.test/health",
        interval_seconds=60,
        timeout_seconds=0.5,
        client=httpx.AsyncClient(transport=transport),
    )


async def _wait_until(predicate, timeout=1.0):
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.005)


def _message(message_type, **fields) -> str:
    return json.dumps({"type": message_type, **fields})


@pytest.fixture
def connector():
    return FakeConnector()


@pytest_asyncio.fixture
async def manager(connector, tracking_processor):
    instance = TrackingConnectionManager(
        processor=tracking_processor,
        health_monitor=_health_monitor(),
        display_sizes={"c09": (960, 540), "c12": (960, 540)},
        ws_base_url="ws://backend.test",
        reconnect_delay=0.01,
        connector=connector,
    )
    yield instance
    await instance.stop()


@pytest.mark.asyncio
async def test_connect_refused_when_backend_unhealthy(connector, tracking_processor):
    manager = TrackingConnectionManager(
        processor=tracking_processor,
        health_monitor=_health_monitor("unhealthy"),
        connector=connector,
    )
    assert not await manager.connect("task-1")
    assert connector.urls == []
    assert manager.state == ConnectionState.DISCONNECTED
    await manager.stop()


@pytest.mark.asyncio
async def test_connect_opens_tracking_channel(manager, connector):
    assert await manager.connect("task-1")
    assert connector.urls == ["ws://backend.test/ws/tracking/task-1"]
    assert manager.state == ConnectionState.CONNECTED
    assert manager.status["is_healthy"]


@pytest.mark.asyncio
async def test_connection_established_sets_capabilities(manager):
    manager.handle_message(_message("connection_established", capabilities=["binary_frames"]))
    assert manager.connection_established
    assert manager.binary_frames_enabled
    assert not manager.compression_enabled


@pytest.mark.asyncio
async def test_tracking_update_reaches_frame_listener(manager, connector, sample_payload):
    received = []
    manager.add_frame_listener(received.append)
    await manager.connect("task-1")

    connector.sockets[0].feed(_message("tracking_update", payload=sample_payload))
    await _wait_until(lambda: received)

    frame = received[0]
    assert frame.global_frame_index == 7
    track = frame.processed_cameras["c09"].tracks[0]
    assert track.display_bbox.to_xyxy() == (5, 5, 25, 45)
    assert track.label == "P-p1 (90%)"
    assert manager.connection_stats["frames_processed"] == 1
    assert manager.latest_frame is frame


@pytest.mark.asyncio
async def test_per_camera_tracking_update_is_normalized(manager, track_factory):
    listener = MagicMock()
    manager.add_frame_listener(listener)
    manager.handle_message(_message("tracking_update", payload={
        "global_frame_index": 3,
        "scene_id": "factory",
        "timestamp_processed_utc": "2025-01-01T00:00:00Z",
        "camera_id": "c12",
        "camera_data": {"image_source": "000003.jpg", "tracks": [track_factory()]},
    }))
    listener.assert_called_once()
    assert set(listener.call_args[0][0].processed_cameras) == {"c12"}


@pytest.mark.asyncio
async def test_invalid_frame_is_dropped_whole(manager, sample_payload):
    sample_payload["cameras"]["c12"] = {"image_source": "b.jpg"}
    manager.handle_message(_message("tracking_update", payload=sample_payload))
    assert manager.connection_stats["frames_dropped"] == 1
    assert manager.connection_stats["frames_processed"] == 0
    assert manager.latest_frame is None


@pytest.mark.asyncio
async def test_geometry_error_is_logged_and_counted(manager, payload_factory, track_factory, caplog):
    manager.display_sizes["c99"] = (960, 540)
    raw = payload_factory(cameras={"c99": {"image_source": "x.jpg", "tracks": [track_factory()]}})
    manager.handle_message(_message("tracking_update", payload=raw))
    assert manager.connection_stats["frames_failed"] == 1
    assert "camera=c99" in caplog.text


@pytest.mark.asyncio
async def test_protocol_errors_are_counted(manager):
    manager.handle_message("{not json")
    manager.handle_message(_message("mystery"))
    manager.handle_message(json.dumps(["no", "type"]))
    assert manager.connection_stats["protocol_errors"] == 3


@pytest.mark.asyncio
async def test_status_messages_are_stored(manager):
    manager.handle_message(_message("status_update", payload={"status": "PROCESSING", "progress": 0.5}))
    assert manager.last_status_message == {"status": "PROCESSING", "progress": 0.5}


@pytest.mark.asyncio
async def test_binary_frames_are_counted(manager):
    manager.handle_message(b"\x00\x01\x02")
    assert manager.connection_stats["binary_frames"] == 1
    assert manager.connection_stats["binary_bytes"] == 3


@pytest.mark.asyncio
async def test_repeated_abnormal_closes_keep_a_single_reconnect_timer(manager):
    manager.reconnect_delay = 10
    manager.session_id = "task-1"
    manager.handle_close(1006, "lost")
    first_handle = manager._reconnect_handle
    manager.handle_close(1011, "lost again")

    assert manager.state == ConnectionState.RECONNECTING
    assert first_handle.cancelled()
    assert manager._reconnect_handle is not first_handle
    assert not manager._reconnect_handle.cancelled()


@pytest.mark.asyncio
async def test_normal_close_does_not_reconnect(manager):
    await manager.connect("task-1")
    manager.handle_close(1000, "bye")
    assert manager.state == ConnectionState.DISCONNECTED
    assert not manager.reconnect_pending


@pytest.mark.asyncio
async def test_abnormal_close_reconnects(manager, connector):
    await manager.connect("task-1")
    connector.sockets[0].feed(ConnectionClosedError(None, None))

    await _wait_until(lambda: len(connector.urls) == 2 and manager.state == ConnectionState.CONNECTED)
    assert manager.connection_stats["reconnect_attempts"] == 1
    assert not manager.reconnect_pending
    assert manager.last_error is None


@pytest.mark.asyncio
async def test_failed_connect_schedules_reconnect(manager, connector):
    connector.fail_with = OSError("connection refused")
    assert not await manager.connect("task-1")
    assert manager.state == ConnectionState.RECONNECTING
    assert manager.reconnect_pending
    assert "connection refused" in manager.last_error


@pytest.mark.asyncio
async def test_manual_disconnect_never_reconnects(manager, connector):
    await manager.connect("task-1")
    websocket = connector.sockets[0]
    await manager.disconnect()

    assert websocket.closed_with[0] == 1000
    assert manager.state == ConnectionState.DISCONNECTED
    await asyncio.sleep(0.05)
    assert len(connector.urls) == 1
    assert not manager.reconnect_pending


@pytest.mark.asyncio
async def test_stop_is_idempotent_and_final(manager, connector):
    await manager.connect("task-1")
    manager.handle_close(1006, "lost")
    await manager.stop()
    await manager.stop()

    assert not manager.reconnect_pending
    assert manager.state == ConnectionState.DISCONNECTED
    assert not await manager.connect("task-2")


@pytest.mark.asyncio
async def test_clear_all_trajectories_delegates(manager, sample_payload):
    manager.handle_message(_message("tracking_update", payload=sample_payload))
    assert len(manager.processor.trajectory_processor) == 1
    manager.clear_all_trajectories()
    assert len(manager.processor.trajectory_processor) == 0


@pytest.mark.asyncio
async def test_default_display_sizes_cover_configured_cameras(tracking_processor):
    manager = TrackingConnectionManager(processor=tracking_processor, health_monitor=_health_monitor())
    assert isinstance(manager.processor, TrackingDataProcessor)
    assert {"c09", "c12", "c01"} <= set(manager.display_sizes)
    await manager.stop()


@pytest.mark.asyncio
async def test_connect_starts_periodic_health_monitor(manager):
    assert not manager.health_monitor.is_running
    await manager.connect("task-1")
    assert manager.health_monitor.is_running
    await manager.stop()
    assert not manager.health_monitor.is_running


@pytest.mark.asyncio
async def test_reconnect_resumes_once_backend_recovers(connector, tracking_processor):
    health = {"status": "healthy"}
    transport = httpx.MockTransport(lambda request: httpx.Response(200, json={"status": health["status"]}))
    monitor = HealthMonitor(
        health_url="http://backend.test/health",
        interval_seconds=60,
        timeout_seconds=0.5,
        client=httpx.AsyncClient(transport=transport),
    )
    manager = TrackingConnectionManager(
        processor=tracking_processor,
        health_monitor=monitor,
        reconnect_delay=0.01,
        connector=connector,
    )
    try:
        assert await manager.connect("task-1")

        health["status"] = "unhealthy"
        connector.sockets[0].feed(ConnectionClosedError(None, None))
        await _wait_until(lambda: manager.connection_stats["reconnect_attempts"] >= 2)
        assert len(connector.urls) == 1
        assert manager.state == ConnectionState.RECONNECTING

        health["status"] = "healthy"
        await _wait_until(lambda: manager.state == ConnectionState.CONNECTED)
        assert len(connector.urls) == 2
        assert monitor.is_healthy
    finally:
        await manager.stop()
