"""
Normalizes 'tracking_update' payloads into the multi-camera TrackingPayload shape.

The backend emits either the multi-camera shape (a 'cameras' mapping) or a
per-camera shape carrying 'camera_id' and 'camera_data'. Both are reduced to the
multi-camera dict here so validation and processing only deal with one shape.
The adapter does not validate: malformed per-camera data is passed through
untouched so the validator rejects it.
"""
import logging
from typing import Any, Dict, Iterable, Optional

from spoton_feed.core.config import settings

logger = logging.getLogger(__name__)

DEFAULT_SCENE_ID = "factory"


def _normalize_base64(value: Any) -> Optional[str]:
    """Trim base64 strings and drop blanks; non-strings are left for validation to reject."""
    if value is None:
        return None
    if not isinstance(value, str):
        return value
    trimmed = value.strip()
    return trimmed or None


def _coerce_scene_id(value: Any, known_scenes: Iterable[str]) -> str:
    if isinstance(value, str) and value in known_scenes:
        return value
    return DEFAULT_SCENE_ID


def normalize_tracking_update_payload(
    payload: Any,
    known_scenes: Optional[Iterable[str]] = None
) -> Optional[Dict[str, Any]]:
    """
    Reduce a tracking payload to the multi-camera shape.

    Args:
        payload: Decoded 'payload' of a tracking_update message
        known_scenes: Scene IDs accepted for per-camera messages; defaults to configured environments

    Returns:
        Dict in the multi-camera shape, or None when the structure is unsupported
    """
    if not isinstance(payload, dict):
        return None

    if isinstance(payload.get("cameras"), dict):
        return payload

    camera_id = payload.get("camera_id")
    if "camera_data" in payload and camera_id:
        if known_scenes is None:
            known_scenes = {cam.env_id for cam in settings.CAMERAS}

        camera_data = payload.get("camera_data") or {}
        if not isinstance(camera_data, dict):
            camera_data = {}

        image_source = camera_data.get("image_source")
        if not (isinstance(image_source, str) and image_source):
            image_source = f"{camera_id}_{payload.get('global_frame_index')}"

        normalized_camera: Dict[str, Any] = {
            "image_source": image_source,
            "frame_image_base64": _normalize_base64(camera_data.get("frame_image_base64")),
        }
        if "tracks" in camera_data:
            normalized_camera["tracks"] = camera_data["tracks"]

        return {
            "global_frame_index": payload.get("global_frame_index"),
            "scene_id": _coerce_scene_id(payload.get("scene_id") or payload.get("environment_id"), known_scenes),
            "timestamp_processed_utc": payload.get("timestamp_processed_utc"),
            "cameras": {str(camera_id): normalized_camera},
        }

    logger.warning(f"Received unsupported tracking payload structure with keys {sorted(payload.keys())}")
    return None
