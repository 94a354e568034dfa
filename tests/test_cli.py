"""
Tests for the spoton-feed command-line listener.
"""
import httpx
import pytest

from spoton_feed import cli
from spoton_feed.domains.mapping.entities.display import FrameProcessingResult


def test_parser_defaults():
    args = cli.build_parser().parse_args([])
    assert args.environment == "campus"
    assert args.task_id is None
    assert args.duration is None


def test_parser_accepts_environment_and_task():
    args = cli.build_parser().parse_args(["factory", "--task-id", "t-1", "--duration", "2.5", "--verbose"])
    assert (args.environment, args.task_id, args.duration, args.verbose) == ("factory", "t-1", 2.5, True)


@pytest.mark.asyncio
async def test_start_processing_task_returns_task_id(mocker):
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["body"] = request.content
        return httpx.Response(202, json={"task_id": "abc-123", "websocket_url": "/ws/tracking/abc-123"})

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    mocker.patch("spoton_feed.cli.httpx.AsyncClient", return_value=client)

    assert await cli.start_processing_task("http://backend.test", "factory") == "abc-123"
    assert seen["url"] == "http://backend.test/api/v1/processing-tasks/start"
    assert b'"environment_id"' in seen["body"]


@pytest.mark.asyncio
async def test_start_processing_task_handles_http_error(mocker):
    client = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(500, text="boom")))
    mocker.patch("spoton_feed.cli.httpx.AsyncClient", return_value=client)
    assert await cli.start_processing_task("http://backend.test", "campus") is None


@pytest.mark.asyncio
async def test_main_exits_when_backend_unhealthy(mocker):
    async def fake_check(self):
        return self.status

    mocker.patch("spoton_feed.services.health_monitor.HealthMonitor.check_health", fake_check)
    start_task = mocker.patch("spoton_feed.cli.start_processing_task")
    assert await cli.main(["campus"]) == 1
    start_task.assert_not_called()


def test_log_frame_summary(caplog):
    caplog.set_level("INFO", logger="spoton_feed.cli")
    cli.log_frame_summary(FrameProcessingResult(global_frame_index=5, scene_id="campus"))
    assert "[FRAME 5][campus] persons=0" in caplog.text
