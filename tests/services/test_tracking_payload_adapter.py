"""
Unit tests for spoton_feed.services.tracking_payload_adapter.
"""
from spoton_feed.services.payload_validator import validate_tracking_payload
from spoton_feed.services.tracking_payload_adapter import normalize_tracking_update_payload


def test_multi_camera_payload_passes_through(sample_payload):
    assert normalize_tracking_update_payload(sample_payload) is sample_payload


def test_per_camera_payload_is_wrapped(track_factory):
    message = {
        "global_frame_index": 12,
        "scene_id": "campus",
        "timestamp_processed_utc": "2025-01-01T00:00:01Z",
        "camera_id": "c01",
        "camera_data": {
            "frame_image_base64": "  abcd  ",
            "tracks": [track_factory()],
        },
    }
    normalized = normalize_tracking_update_payload(message, known_scenes={"campus", "factory"})

    assert normalized["global_frame_index"] == 12
    assert normalized["scene_id"] == "campus"
    camera = normalized["cameras"]["c01"]
    assert camera["image_source"] == "c01_12"
    assert camera["frame_image_base64"] == "abcd"
    assert validate_tracking_payload(normalized).ok


def test_per_camera_payload_unknown_scene_falls_back_to_default():
    message = {
        "global_frame_index": 1,
        "environment_id": "warehouse",
        "timestamp_processed_utc": "2025-01-01T00:00:01Z",
        "camera_id": "c09",
        "camera_data": {"image_source": "000001.jpg", "frame_image_base64": "   ", "tracks": []},
    }
    normalized = normalize_tracking_update_payload(message, known_scenes={"campus", "factory"})
    assert normalized["scene_id"] == "factory"
    assert normalized["cameras"]["c09"]["image_source"] == "000001.jpg"
    assert normalized["cameras"]["c09"]["frame_image_base64"] is None


def test_per_camera_payload_without_tracks_still_fails_validation():
    message = {
        "global_frame_index": 1,
        "scene_id": "factory",
        "timestamp_processed_utc": "2025-01-01T00:00:01Z",
        "camera_id": "c09",
        "camera_data": {"image_source": "000001.jpg"},
    }
    normalized = normalize_tracking_update_payload(message)
    assert "tracks" not in normalized["cameras"]["c09"]
    assert not validate_tracking_payload(normalized).ok


def test_unsupported_structures_return_none():
    assert normalize_tracking_update_payload(None) is None
    assert normalize_tracking_update_payload("tracking") is None
    assert normalize_tracking_update_payload({"frame": 1}) is None
