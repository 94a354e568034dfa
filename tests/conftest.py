"""
Global fixtures for the SpotOn feed test suite.
"""
import copy
from typing import Any, Dict, Optional

import pytest

from spoton_feed.core.config import CameraDisplayConfig, Settings
from spoton_feed.services.person_color_registry import PersonColorRegistry
from spoton_feed.services.tracking_data_processor import TrackingDataProcessor
from spoton_feed.services.trajectory_processor import TrajectoryProcessor


@pytest.fixture
def test_settings() -> Settings:
    """Settings with test-friendly timings and a two-camera factory scene."""
    return Settings(
        APP_NAME="SpotOn Feed Test",
        API_BASE_URL="http://backend.test",
        WS_BASE_URL="ws://backend.test",
        HEALTH_CHECK_INTERVAL_SECONDS=0.05,
        HEALTH_CHECK_TIMEOUT_SECONDS=0.5,
        WEBSOCKET_RECONNECT_DELAY_SECONDS=0.05,
        CAMERAS=[
            CameraDisplayConfig(env_id="factory", cam_id="c09", resolution=(1920, 1080)),
            CameraDisplayConfig(env_id="factory", cam_id="c12", resolution=(1920, 1080)),
        ],
    )


def make_track(
    track_id: int = 1,
    global_id: Optional[str] = "p1",
    bbox=(10, 10, 50, 90),
    confidence: Optional[float] = 0.9,
    **extra: Any
) -> Dict[str, Any]:
    track = {
        "track_id": track_id,
        "global_id": global_id,
        "bbox_xyxy": list(bbox),
        "confidence": confidence,
        "class_id": 1,
    }
    track.update(extra)
    return track


def make_payload(frame_index: int = 7, cameras: Optional[Dict[str, Any]] = None, **extra: Any) -> Dict[str, Any]:
    if cameras is None:
        cameras = {
            "c09": {
                "image_source": "000007.jpg",
                "frame_image_base64": None,
                "tracks": [make_track()],
            }
        }
    payload = {
        "global_frame_index": frame_index,
        "scene_id": "factory",
        "timestamp_processed_utc": "2025-01-01T00:00:00Z",
        "cameras": cameras,
    }
    payload.update(extra)
    return payload


@pytest.fixture
def sample_payload() -> Dict[str, Any]:
    """The single-camera, single-person frame used throughout the suite."""
    return copy.deepcopy(make_payload())


@pytest.fixture
def color_registry() -> PersonColorRegistry:
    return PersonColorRegistry()


@pytest.fixture
def trajectory_processor(color_registry) -> TrajectoryProcessor:
    return TrajectoryProcessor(color_registry=color_registry, max_points=100, enabled=True)


@pytest.fixture
def tracking_processor(trajectory_processor, test_settings) -> TrackingDataProcessor:
    return TrackingDataProcessor(
        camera_resolutions=test_settings.camera_resolution_map,
        trajectory_processor=trajectory_processor,
        confidence_threshold=0.3,
        enable_person_coloring=True,
        display_scaling=True,
        maintain_aspect_ratio=True,
    )


@pytest.fixture
def track_factory():
    return make_track


@pytest.fixture
def payload_factory():
    return make_payload
