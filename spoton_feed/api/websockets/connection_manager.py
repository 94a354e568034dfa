"""
WebSocket session manager for the tracking feed.

Handles:
- Connection state management (disconnected, connecting, connected, reconnecting)
- Health-gated connects
- Single pending reconnect timer after abnormal closes
- Message dispatch: binary frames, connection handshake, tracking updates, status messages
"""

import asyncio
import json
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Union

import websockets
from pydantic import ValidationError
from websockets.exceptions import ConnectionClosed, WebSocketException

from spoton_feed.api.schemas import MessageType, WebSocketMessage
from spoton_feed.core.config import settings
from spoton_feed.core.exceptions import GeometryConfigurationError, HealthCheckError, PayloadValidationError
from spoton_feed.domains.mapping.entities.display import FrameProcessingResult
from spoton_feed.services.health_monitor import HealthMonitor
from spoton_feed.services.payload_validator import PayloadValidator
from spoton_feed.services.tracking_data_processor import SizeLike, TrackingDataProcessor
from spoton_feed.services.tracking_payload_adapter import normalize_tracking_update_payload

logger = logging.getLogger(__name__)

NORMAL_CLOSURE = 1000
ABNORMAL_CLOSURE = 1006

Connector = Callable[[str], Awaitable[Any]]
FrameListener = Callable[[FrameProcessingResult], None]


class ConnectionState(Enum):
    """WebSocket session states."""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"


def _close_details(exc: ConnectionClosed):
    received = getattr(exc, "rcvd", None)
    if received is not None:
        return received.code, received.reason
    return ABNORMAL_CLOSURE, str(exc)


class TrackingConnectionManager:
    """
    Owns one tracking session and everything that hangs off it.

    Frames are handled synchronously as they arrive, so every frame's color and
    trajectory updates complete before the next message is read.
    """

    def __init__(
        self,
        processor: Optional[TrackingDataProcessor] = None,
        validator: Optional[PayloadValidator] = None,
        health_monitor: Optional[HealthMonitor] = None,
        display_sizes: Optional[Mapping[str, SizeLike]] = None,
        ws_base_url: Optional[str] = None,
        reconnect_delay: Optional[float] = None,
        connector: Optional[Connector] = None,
        require_healthy: bool = True
    ):
        self.processor = processor if processor is not None else TrackingDataProcessor()
        self.validator = validator if validator is not None else PayloadValidator()
        self.health_monitor = health_monitor if health_monitor is not None else HealthMonitor()
        self.display_sizes: Dict[str, SizeLike] = dict(display_sizes) if display_sizes is not None else {
            cam.cam_id: settings.default_display_size for cam in settings.CAMERAS
        }
        self.ws_base_url = (ws_base_url or settings.WS_BASE_URL).rstrip("/")
        self.reconnect_delay = reconnect_delay if reconnect_delay is not None else settings.WEBSOCKET_RECONNECT_DELAY_SECONDS
        self.require_healthy = require_healthy
        self._connector = connector or self._default_connector

        self.state = ConnectionState.DISCONNECTED
        self.session_id: Optional[str] = None
        self.connection_established = False
        self.binary_frames_enabled = False
        self.compression_enabled = False
        self.last_error: Optional[str] = None
        self.last_status_message: Optional[Dict[str, Any]] = None
        self.latest_frame: Optional[FrameProcessingResult] = None

        self._websocket = None
        self._receive_task: Optional[asyncio.Task] = None
        self._reconnect_handle: Optional[asyncio.TimerHandle] = None
        self._reconnect_task: Optional[asyncio.Task] = None
        self._manual_close = False
        self._stopped = False
        self._frame_listeners: List[FrameListener] = []

        self.connection_stats = {
            "messages_received": 0,
            "frames_processed": 0,
            "frames_dropped": 0,
            "frames_failed": 0,
            "protocol_errors": 0,
            "binary_frames": 0,
            "binary_bytes": 0,
            "reconnect_attempts": 0
        }

        logger.info(f"TrackingConnectionManager initialized (ws_base_url={self.ws_base_url})")

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def add_frame_listener(self, listener: FrameListener) -> None:
        self._frame_listeners.append(listener)

    def remove_frame_listener(self, listener: FrameListener) -> None:
        if listener in self._frame_listeners:
            self._frame_listeners.remove(listener)

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    def tracking_url(self, session_id: str) -> str:
        return settings.tracking_websocket_url(session_id, self.ws_base_url)

    async def _default_connector(self, url: str):
        return await websockets.connect(
            url,
            ping_interval=settings.WEBSOCKET_PING_INTERVAL_SECONDS,
            max_size=settings.WEBSOCKET_MAX_MESSAGE_SIZE,
            open_timeout=settings.HEALTH_CHECK_TIMEOUT_SECONDS
        )

    async def connect(self, session_id: str) -> bool:
        """
        Open the tracking channel for a session.

        Args:
            session_id: Processing task identifier

        Returns:
            True if the channel is open, False if refused or failed
        """
        if self._stopped:
            logger.warning("Connection manager is stopped; refusing to connect")
            return False

        if self.require_healthy:
            if not self.health_monitor.is_running:
                await self.health_monitor.start()
            try:
                self.health_monitor.ensure_healthy()
            except HealthCheckError as e:
                logger.warning(f"Refusing to connect session {session_id}: {e}")
                return False

        if self._websocket is not None:
            await self._close_current_session()

        self.session_id = session_id
        self._manual_close = False
        self.state = ConnectionState.CONNECTING
        url = self.tracking_url(session_id)
        logger.info(f"Connecting to tracking WebSocket for session '{session_id}' at {url}")

        try:
            websocket = await self._connector(url)
        except (OSError, asyncio.TimeoutError, WebSocketException) as e:
            logger.error(f"Failed to connect to {url}: {e}")
            self.handle_close(ABNORMAL_CLOSURE, str(e))
            return False

        self._cancel_reconnect()
        self._websocket = websocket
        self.state = ConnectionState.CONNECTED
        self.last_error = None
        self._receive_task = asyncio.create_task(self._receive_loop(websocket))
        logger.info(f"Connected to tracking WebSocket for session '{session_id}'")
        return True

    async def _receive_loop(self, websocket) -> None:
        code, reason = ABNORMAL_CLOSURE, ""
        try:
            while True:
                message = await websocket.recv()
                try:
                    self.handle_message(message)
                except Exception as e:
                    self.connection_stats["frames_failed"] += 1
                    logger.error(f"Error processing WebSocket message: {e}", exc_info=True)
        except ConnectionClosed as e:
            code, reason = _close_details(e)
        except OSError as e:
            reason = str(e)

        if websocket is self._websocket:
            self.handle_close(code, reason)

    def handle_close(self, code: int, reason: str = "") -> None:
        """React to the channel closing: stay down after a normal/manual close, otherwise reconnect."""
        self._websocket = None
        self.connection_established = False

        if self._manual_close or code == NORMAL_CLOSURE:
            self._cancel_reconnect()
            self.state = ConnectionState.DISCONNECTED
            logger.info(f"WebSocket connection (session {self.session_id}) closed normally")
            return

        self.last_error = f"Connection closed abnormally (code {code}): {reason}" if reason else f"Connection closed abnormally (code {code})"
        logger.warning(f"{self.last_error}; reconnecting in {self.reconnect_delay}s")
        self.state = ConnectionState.RECONNECTING
        self._schedule_reconnect()

    def _schedule_reconnect(self) -> None:
        self._cancel_reconnect()
        loop = asyncio.get_running_loop()
        self._reconnect_handle = loop.call_later(self.reconnect_delay, self._start_reconnect)

    def _cancel_reconnect(self) -> None:
        if self._reconnect_handle is not None:
            self._reconnect_handle.cancel()
            self._reconnect_handle = None

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_handle is not None

    def _start_reconnect(self) -> None:
        self._reconnect_handle = None
        if self._manual_close or self._stopped or self.session_id is None:
            return
        self.connection_stats["reconnect_attempts"] += 1
        self._reconnect_task = asyncio.create_task(self._reconnect(self.session_id))

    async def _reconnect(self, session_id: str) -> None:
        logger.info(f"Reconnecting session '{session_id}' (attempt {self.connection_stats['reconnect_attempts']})")
        if self.require_healthy:
            await self.health_monitor.check_health()
        connected = await self.connect(session_id)
        if not connected and self._reconnect_handle is None and not (self._manual_close or self._stopped):
            self.state = ConnectionState.RECONNECTING
            self._schedule_reconnect()

    async def _close_current_session(self) -> None:
        websocket, self._websocket = self._websocket, None
        if websocket is not None:
            try:
                await websocket.close(code=NORMAL_CLOSURE, reason="Client disconnect")
            except (OSError, WebSocketException) as e:
                logger.debug(f"Error while closing WebSocket: {e}")

        task, self._receive_task = self._receive_task, None
        if task is not None and task is not asyncio.current_task():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def disconnect(self) -> None:
        """Manual close: no reconnect follows."""
        self._manual_close = True
        self._cancel_reconnect()

        task, self._reconnect_task = self._reconnect_task, None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        await self._close_current_session()
        self.connection_established = False
        self.state = ConnectionState.DISCONNECTED
        logger.info(f"Disconnected session '{self.session_id}'")

    async def stop(self) -> None:
        """Tear down the session and the health monitor. Safe to call more than once."""
        if self._stopped:
            return
        await self.disconnect()
        self._stopped = True
        await self.health_monitor.stop()

    aclose = stop

    async def __aenter__(self) -> "TrackingConnectionManager":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    # ------------------------------------------------------------------
    # Message dispatch
    # ------------------------------------------------------------------

    def handle_message(self, raw: Union[str, bytes, bytearray, memoryview]) -> None:
        self.connection_stats["messages_received"] += 1

        if isinstance(raw, (bytes, bytearray, memoryview)):
            self._handle_binary_frame(bytes(raw))
            return

        try:
            envelope = WebSocketMessage.model_validate(json.loads(raw))
        except (json.JSONDecodeError, TypeError, ValidationError) as e:
            self.connection_stats["protocol_errors"] += 1
            logger.warning(f"Received malformed WebSocket message ({type(e).__name__}): {str(raw)[:200]}")
            return

        if envelope.type == MessageType.CONNECTION_ESTABLISHED.value:
            self._handle_connection_established(envelope)
        elif envelope.type == MessageType.TRACKING_UPDATE.value:
            self._handle_tracking_update(envelope)
        elif envelope.type in (MessageType.STATUS_UPDATE.value, MessageType.SYSTEM_STATUS.value):
            self.last_status_message = envelope.payload or envelope.data or {}
            logger.info(f"[{envelope.type.upper()}] {self.last_status_message}")
        else:
            self.connection_stats["protocol_errors"] += 1
            logger.warning(f"Received unknown message type '{envelope.type}'")

    def _handle_binary_frame(self, data: bytes) -> None:
        self.connection_stats["binary_frames"] += 1
        self.connection_stats["binary_bytes"] += len(data)
        logger.debug(f"Received binary frame ({len(data)} bytes)")

    def _handle_connection_established(self, envelope: WebSocketMessage) -> None:
        capabilities = envelope.capabilities or []
        self.connection_established = True
        self.binary_frames_enabled = "binary_frames" in capabilities
        self.compression_enabled = "message_compression" in capabilities
        logger.info(
            f"Connection established (binary_frames={self.binary_frames_enabled}, "
            f"compression={self.compression_enabled})"
        )

    def _handle_tracking_update(self, envelope: WebSocketMessage) -> None:
        normalized = normalize_tracking_update_payload(envelope.payload)
        if normalized is None:
            self.connection_stats["frames_dropped"] += 1
            return

        try:
            payload = self.validator.sanitize(normalized).raise_for_errors()
        except PayloadValidationError as e:
            self.connection_stats["frames_dropped"] += 1
            logger.debug(f"Dropped tracking update: {e}")
            return

        try:
            frame = self.processor.process_payload(payload, self.display_sizes)
        except GeometryConfigurationError as e:
            self.connection_stats["frames_failed"] += 1
            logger.error(f"Geometry configuration error while processing frame: {e}", exc_info=True)
            return

        self.connection_stats["frames_processed"] += 1
        self.latest_frame = frame
        for listener in list(self._frame_listeners):
            try:
                listener(frame)
            except Exception as e:
                logger.error(f"Frame listener {listener!r} raised: {e}", exc_info=True)

    # ------------------------------------------------------------------
    # UI surface
    # ------------------------------------------------------------------

    def clear_all_trajectories(self) -> None:
        self.processor.clear_all_trajectories()

    @property
    def status(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "session_id": self.session_id,
            "is_healthy": self.health_monitor.is_healthy,
            "health_status": self.health_monitor.status.value,
            "connection_established": self.connection_established,
            "binary_frames_enabled": self.binary_frames_enabled,
            "compression_enabled": self.compression_enabled,
            "reconnect_pending": self.reconnect_pending,
            "last_error": self.last_error,
            "last_frame_index": self.latest_frame.global_frame_index if self.latest_frame else None,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            **self.connection_stats,
            "validator": self.validator.get_statistics()
        }
