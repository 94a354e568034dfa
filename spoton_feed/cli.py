"""
Command-line listener for the tracking feed.

Waits for the backend to report healthy, optionally starts a processing task
for an environment, then connects to the task's tracking channel and logs a
one-line summary per processed frame until interrupted.
"""
import argparse
import asyncio
import json
import logging
import sys
from typing import List, Optional

import httpx

from spoton_feed.api.websockets.connection_manager import TrackingConnectionManager
from spoton_feed.core.config import settings
from spoton_feed.core.exceptions import HealthCheckError
from spoton_feed.domains.mapping.entities.display import FrameProcessingResult
from spoton_feed.services.health_monitor import HealthMonitor

logger = logging.getLogger("spoton_feed.cli")


async def start_processing_task(api_base_url: str, environment_id: str) -> Optional[str]:
    """Ask the backend to start processing an environment. Returns the task ID or None."""
    start_url = settings.task_start_url(api_base_url)
    logger.info(f"Requesting to start processing for environment: '{environment_id}' at {start_url}")

    async with httpx.AsyncClient() as client:
        try:
            response = await client.post(
                start_url, json={"environment_id": environment_id}, timeout=settings.TASK_START_TIMEOUT_SECONDS
            )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            logger.error(f"HTTP error starting task: {e.response.status_code} - {e.response.text}")
            return None
        except httpx.RequestError as e:
            logger.error(f"Request error starting task: {e}")
            return None
        except json.JSONDecodeError as e:
            logger.error(f"Failed to decode JSON response from start task: {e}")
            return None

    task_id = data.get("task_id") if isinstance(data, dict) else None
    if not task_id:
        logger.error(f"Could not get task_id from response: {data}")
        return None
    logger.info(f"Task '{task_id}' initiated")
    return str(task_id)


def log_frame_summary(frame: FrameProcessingResult) -> None:
    per_camera = ", ".join(f"{cam}={len(data.tracks)}" for cam, data in sorted(frame.processed_cameras.items()))
    logger.info(
        f"[FRAME {frame.global_frame_index}][{frame.scene_id}] persons={frame.total_persons} "
        f"unique={len(frame.unique_persons)} cameras: {per_camera or '-'}"
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="SpotOn tracking feed listener")
    parser.add_argument("environment", nargs="?", default="campus", help="Environment to process (e.g. 'campus', 'factory')")
    parser.add_argument("--task-id", help="Attach to an existing task instead of starting one")
    parser.add_argument("--api-url", default=settings.API_BASE_URL, help="Backend HTTP base URL")
    parser.add_argument("--ws-url", default=settings.WS_BASE_URL, help="Backend WebSocket base URL")
    parser.add_argument("--duration", type=float, default=None, help="Stop after this many seconds")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    return parser


async def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else settings.LOG_LEVEL,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    health_monitor = HealthMonitor(health_url=settings.health_check_url(args.api_url))
    manager = TrackingConnectionManager(health_monitor=health_monitor, ws_base_url=args.ws_url)
    manager.add_frame_listener(log_frame_summary)

    try:
        await health_monitor.start()
        try:
            health_monitor.ensure_healthy()
        except HealthCheckError as e:
            logger.error(f"{e}. Exiting client.")
            return 1

        task_id = args.task_id or await start_processing_task(args.api_url, args.environment)
        if not task_id:
            logger.error("Failed to start task. Exiting.")
            return 1

        if not await manager.connect(task_id):
            if not manager.reconnect_pending:
                logger.error(f"Could not connect to task '{task_id}': {manager.last_error}")
                return 1
            logger.warning(f"Initial connect failed ({manager.last_error}); retrying in the background")

        if args.duration is not None:
            await asyncio.sleep(args.duration)
        else:
            await asyncio.Event().wait()
    finally:
        await manager.stop()
        logger.info(f"Final status: {manager.status}")
    return 0


def run() -> None:
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        logger.info("Client stopped by user (Ctrl+C).")


if __name__ == "__main__":
    run()
