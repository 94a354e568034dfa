"""
Validation and sanitization of inbound tracking payloads.

A frame is accepted or rejected as a whole: any structural violation anywhere in
the payload (a camera without tracks, a bbox with three numbers, a string where
a number belongs) drops the entire frame. Sanitization then clamps values that
are structurally fine but out of range, dropping an individual track only if it
still cannot be represented afterwards.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from pydantic import ValidationError

from spoton_feed.api.schemas import CameraTrackingData, TrackedPerson, TrackingPayload
from spoton_feed.core.exceptions import PayloadValidationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PayloadValidationResult:
    """Outcome of validating one frame; payload is set only when ok."""
    ok: bool
    payload: Optional[TrackingPayload] = None
    errors: Tuple[str, ...] = ()
    tracks_dropped: int = 0

    @classmethod
    def success(cls, payload: TrackingPayload, tracks_dropped: int = 0) -> "PayloadValidationResult":
        return cls(ok=True, payload=payload, tracks_dropped=tracks_dropped)

    @classmethod
    def failure(cls, errors: List[str]) -> "PayloadValidationResult":
        return cls(ok=False, errors=tuple(errors))

    def raise_for_errors(self) -> TrackingPayload:
        """Return the validated payload, or raise PayloadValidationError carrying every error."""
        if not self.ok or self.payload is None:
            raise PayloadValidationError(list(self.errors))
        return self.payload


def _format_validation_errors(exc: ValidationError) -> List[str]:
    messages = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ())) or "<root>"
        messages.append(f"{location}: {error.get('msg', 'invalid value')}")
    return messages


def validate_tracking_payload(raw: Any) -> PayloadValidationResult:
    """
    Structurally validate a decoded tracking payload.

    Args:
        raw: The decoded JSON value of a 'tracking_update' payload

    Returns:
        PayloadValidationResult with the typed payload, or every error found
    """
    if not isinstance(raw, dict):
        return PayloadValidationResult.failure([f"<root>: payload must be an object, got {type(raw).__name__}"])
    try:
        payload = TrackingPayload.model_validate(raw)
    except ValidationError as e:
        return PayloadValidationResult.failure(_format_validation_errors(e))
    return PayloadValidationResult.success(payload)


def _sanitize_track(track: TrackedPerson) -> TrackedPerson:
    data = track.model_dump()
    if data["confidence"] is not None:
        data["confidence"] = max(0.0, min(1.0, data["confidence"]))
    data["bbox_xyxy"] = [max(0.0, coord) for coord in data["bbox_xyxy"]]
    return TrackedPerson.model_validate(data)


def sanitize_tracking_payload(raw: Any) -> PayloadValidationResult:
    """Validate then sanitize a payload; tracks_dropped counts tracks removed by sanitization."""
    result = validate_tracking_payload(raw)
    if not result.ok:
        return result

    payload = result.payload
    dropped = 0
    cameras: Dict[str, CameraTrackingData] = {}
    for camera_id, camera_data in payload.cameras.items():
        clean_tracks = []
        for track in camera_data.tracks:
            try:
                clean_tracks.append(_sanitize_track(track))
            except ValidationError as e:
                dropped += 1
                logger.warning(
                    f"Dropping track {track.track_id} on camera {camera_id} "
                    f"(frame {payload.global_frame_index}) after sanitization: {e.error_count()} errors"
                )
        cameras[camera_id] = camera_data.model_copy(update={"tracks": clean_tracks})

    return PayloadValidationResult.success(payload.model_copy(update={"cameras": cameras}), tracks_dropped=dropped)


class PayloadValidator:
    """
    Stateful wrapper around validation and sanitization that keeps counters.
    """

    def __init__(self):
        self.validator_stats = {
            "frames_validated": 0,
            "frames_dropped": 0,
            "tracks_dropped": 0
        }

    def validate(self, raw: Any) -> PayloadValidationResult:
        result = validate_tracking_payload(raw)
        self._record(result)
        return result

    def sanitize(self, raw: Any) -> PayloadValidationResult:
        result = sanitize_tracking_payload(raw)
        self._record(result)
        return result

    def _record(self, result: PayloadValidationResult) -> None:
        if result.ok:
            self.validator_stats["frames_validated"] += 1
        else:
            self.validator_stats["frames_dropped"] += 1
            logger.warning(f"Dropping invalid tracking frame: {'; '.join(result.errors[:5])}")
        self.validator_stats["tracks_dropped"] += result.tracks_dropped

    def get_statistics(self) -> Dict[str, int]:
        return self.validator_stats.copy()

    def reset_statistics(self) -> None:
        for key in self.validator_stats:
            self.validator_stats[key] = 0
