"""
Periodic liveness probe against the backend /health endpoint.

Every probe is bounded by a timeout. Transport failures, timeouts, non-2xx
responses and undecodable bodies all count as 'unhealthy'; a well-formed
response reporting a status outside the known set counts as 'unknown'.
"""
import asyncio
import logging
from typing import Callable, List, Optional

import httpx

from spoton_feed.api.schemas import HealthResponse, HealthStatus
from spoton_feed.core.config import settings
from spoton_feed.core.exceptions import HealthCheckError

logger = logging.getLogger(__name__)

HealthListener = Callable[[HealthStatus, HealthStatus], None]


class HealthMonitor:
    """
    Polls the backend health endpoint and tracks the latest status.

    Listeners are called as listener(new_status, previous_status) whenever the
    status changes.
    """

    def __init__(
        self,
        health_url: Optional[str] = None,
        interval_seconds: Optional[float] = None,
        timeout_seconds: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None
    ):
        self.health_url = health_url or settings.health_check_url()
        self.interval_seconds = interval_seconds if interval_seconds is not None else settings.HEALTH_CHECK_INTERVAL_SECONDS
        self.timeout_seconds = timeout_seconds if timeout_seconds is not None else settings.HEALTH_CHECK_TIMEOUT_SECONDS
        self._client = client

        self.status: HealthStatus = HealthStatus.UNKNOWN
        self.last_response: Optional[HealthResponse] = None
        self.last_error: Optional[str] = None
        self._listeners: List[HealthListener] = []
        self._task: Optional[asyncio.Task] = None

        self.health_stats = {
            "checks_performed": 0,
            "checks_failed": 0,
            "status_changes": 0
        }

    @property
    def is_healthy(self) -> bool:
        return self.status == HealthStatus.HEALTHY

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def add_listener(self, listener: HealthListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: HealthListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    async def check_health(self) -> HealthStatus:
        """Run a single probe and update the current status."""
        self.health_stats["checks_performed"] += 1
        try:
            response = await asyncio.wait_for(self._get(), timeout=self.timeout_seconds)
            response.raise_for_status()
            health = HealthResponse.model_validate(response.json())
        except (httpx.HTTPStatusError, httpx.RequestError, asyncio.TimeoutError, ValueError) as e:
            self.health_stats["checks_failed"] += 1
            self.last_error = f"{type(e).__name__}: {e}"
            logger.warning(f"Health check against {self.health_url} failed: {self.last_error}")
            self._set_status(HealthStatus.UNHEALTHY)
            return self.status

        self.last_response = health
        self.last_error = None
        if health.health_status == HealthStatus.UNKNOWN:
            logger.warning(f"Health endpoint reported unrecognised status '{health.status}'")
        self._set_status(health.health_status)
        return self.status

    def ensure_healthy(self) -> None:
        """Raise HealthCheckError unless the last probe reported healthy."""
        if not self.is_healthy:
            raise HealthCheckError(self.status.value, self.last_error)

    async def _get(self) -> httpx.Response:
        if self._client is not None:
            return await self._client.get(self.health_url, timeout=self.timeout_seconds)
        async with httpx.AsyncClient() as client:
            return await client.get(self.health_url, timeout=self.timeout_seconds)

    def _set_status(self, new_status: HealthStatus) -> None:
        previous = self.status
        self.status = new_status
        if new_status == previous:
            return

        self.health_stats["status_changes"] += 1
        logger.info(f"Backend health changed: {previous.value} -> {new_status.value}")
        for listener in list(self._listeners):
            try:
                listener(new_status, previous)
            except Exception as e:
                logger.error(f"Health listener {listener!r} raised: {e}", exc_info=True)

    async def start(self) -> None:
        """Probe immediately, then keep probing every interval_seconds in the background."""
        if self.is_running:
            return
        await self.check_health()
        self._task = asyncio.create_task(self._run())
        logger.info(f"Health monitor started for {self.health_url} (every {self.interval_seconds}s)")

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            await self.check_health()

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("Health monitor stopped")
