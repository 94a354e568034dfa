"""
Per-frame orchestration of validated tracking payloads into display records.

For every camera in a frame the processor resolves the camera-native resolution
and the display size, rescales every detection, assigns colors and labels, and
feeds re-identified persons into the trajectory processor. Geometry for the
whole frame is resolved up front so a misconfigured camera fails the frame
before any color or trajectory state has been touched.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from spoton_feed.api.schemas import CameraTrackingData, TrackedPerson, TrackingPayload
from spoton_feed.core.config import settings
from spoton_feed.core.exceptions import GeometryConfigurationError
from spoton_feed.domains.mapping.entities.display import (
    CameraTrackingDisplayData,
    FrameProcessingResult,
    TrackedPersonDisplay,
)
from spoton_feed.domains.mapping.entities.geometry import BoundingBox, Point2D, Size
from spoton_feed.domains.mapping.models.coordinate_transformer import (
    TransformParameters,
    batch_transform_bounding_boxes,
    bounding_box_center,
    compute_transform_parameters,
    round_half_away_from_zero,
)
from spoton_feed.services.person_color_registry import DEFAULT_PERSON_COLOR, PersonColorRegistry
from spoton_feed.services.trajectory_processor import TrajectoryProcessor
from spoton_feed.shared.types import CameraID

logger = logging.getLogger(__name__)

SizeLike = Union[Size, Sequence[float]]


def create_person_label(track: TrackedPerson) -> str:
    """'P-<first 8 of global id>' or 'Track <id>', with ' (NN%)' when confidence is known."""
    if track.global_id is not None:
        label = f"P-{track.global_id[:8]}"
    else:
        label = f"Track {track.track_id}"
    if track.confidence is not None:
        label += f" ({round_half_away_from_zero(track.confidence * 100)}%)"
    return label


def _to_size(value: SizeLike) -> Size:
    if isinstance(value, Size):
        return value
    return Size.from_sequence(value)


@dataclass(frozen=True)
class _CameraGeometry:
    camera_id: CameraID
    camera_data: CameraTrackingData
    source_size: Size
    display_size: Size
    params: TransformParameters


class TrackingDataProcessor:
    """
    Turns validated TrackingPayload frames into FrameProcessingResult records.
    """

    def __init__(
        self,
        camera_resolutions: Optional[Mapping[str, SizeLike]] = None,
        trajectory_processor: Optional[TrajectoryProcessor] = None,
        color_registry: Optional[PersonColorRegistry] = None,
        confidence_threshold: Optional[float] = None,
        enable_person_coloring: Optional[bool] = None,
        display_scaling: Optional[bool] = None,
        maintain_aspect_ratio: Optional[bool] = None
    ):
        """
        Initialize the tracking data processor.

        Args:
            camera_resolutions: Native resolution per camera ID (default: from settings.CAMERAS)
            trajectory_processor: Receives one point per re-identified track per frame
            color_registry: Shared with the trajectory processor; must be its registry when both are given
            confidence_threshold: Tracks below this confidence are dropped (None confidence is kept)
            enable_person_coloring: Use palette colors for re-identified persons
            display_scaling: Rescale boxes to display size; otherwise keep source geometry
            maintain_aspect_ratio: Letterbox instead of stretching
        """
        resolutions = camera_resolutions if camera_resolutions is not None else settings.camera_resolution_map
        self.camera_resolutions: Dict[CameraID, Size] = {
            CameraID(cam_id): _to_size(res) for cam_id, res in resolutions.items()
        }

        if trajectory_processor is None:
            trajectory_processor = TrajectoryProcessor(color_registry=color_registry)
        elif color_registry is not None and color_registry is not trajectory_processor.color_registry:
            raise ValueError("color_registry must be the registry owned by trajectory_processor")
        self.trajectory_processor = trajectory_processor
        self.color_registry = trajectory_processor.color_registry

        self.confidence_threshold = confidence_threshold if confidence_threshold is not None else settings.CONFIDENCE_THRESHOLD
        self.enable_person_coloring = enable_person_coloring if enable_person_coloring is not None else settings.ENABLE_PERSON_COLORING
        self.display_scaling = display_scaling if display_scaling is not None else settings.DISPLAY_SCALING
        self.maintain_aspect_ratio = maintain_aspect_ratio if maintain_aspect_ratio is not None else settings.MAINTAIN_ASPECT_RATIO

        self.processing_stats = {
            "frames_processed": 0,
            "cameras_processed": 0,
            "cameras_skipped": 0,
            "tracks_processed": 0,
            "tracks_filtered": 0
        }

        logger.info(
            f"TrackingDataProcessor initialized for {len(self.camera_resolutions)} cameras "
            f"(confidence_threshold={self.confidence_threshold}, aspect={self.maintain_aspect_ratio})"
        )

    def process_payload(
        self,
        payload: TrackingPayload,
        display_sizes: Mapping[str, SizeLike]
    ) -> FrameProcessingResult:
        """
        Process one validated frame.

        Args:
            payload: Validated and sanitized tracking payload
            display_sizes: On-screen size per camera ID; cameras without one are skipped

        Returns:
            FrameProcessingResult with one record per processed camera

        Raises:
            GeometryConfigurationError: A camera has no known resolution or an invalid display size
        """
        frame_index = payload.global_frame_index
        geometries = self._resolve_geometry(payload, display_sizes)

        processed_cameras: Dict[CameraID, CameraTrackingDisplayData] = {}
        unique_persons = set()
        total_persons = 0
        last_updated = datetime.now(timezone.utc).isoformat()

        for geometry in geometries:
            camera_record = self._process_camera(geometry, last_updated)
            processed_cameras[geometry.camera_id] = camera_record
            total_persons += len(camera_record.tracks)
            unique_persons.update(t.global_id for t in camera_record.tracks if t.global_id is not None)

        self._update_trajectories(processed_cameras, payload.timestamp_processed_utc)

        self.processing_stats["frames_processed"] += 1
        self.processing_stats["cameras_processed"] += len(processed_cameras)
        self.processing_stats["tracks_processed"] += total_persons
        logger.debug(
            f"Processed frame {frame_index} ({payload.scene_id}): "
            f"{len(processed_cameras)} cameras, {total_persons} persons, {len(unique_persons)} unique"
        )

        return FrameProcessingResult(
            global_frame_index=frame_index,
            scene_id=payload.scene_id,
            processed_cameras=processed_cameras,
            total_persons=total_persons,
            unique_persons=frozenset(unique_persons)
        )

    def _resolve_geometry(
        self,
        payload: TrackingPayload,
        display_sizes: Mapping[str, SizeLike]
    ) -> List[_CameraGeometry]:
        frame_index = payload.global_frame_index
        geometries = []
        for cam_id, camera_data in payload.cameras.items():
            camera_id = CameraID(cam_id)
            raw_display_size = display_sizes.get(camera_id)
            if raw_display_size is None:
                logger.warning(f"No display size configured for camera {camera_id}; skipping it in frame {frame_index}")
                self.processing_stats["cameras_skipped"] += 1
                continue

            source_size = self.camera_resolutions.get(camera_id)
            if source_size is None:
                raise GeometryConfigurationError(
                    "Camera resolution not configured", camera_id=camera_id, frame_index=frame_index
                )

            try:
                display_size = _to_size(raw_display_size)
                params = compute_transform_parameters(source_size, display_size, self.maintain_aspect_ratio)
            except GeometryConfigurationError as e:
                raise e.with_context(camera_id=camera_id, frame_index=frame_index) from e
            except (TypeError, ValueError) as e:
                raise GeometryConfigurationError(
                    f"Invalid display size {raw_display_size!r}: {e}", camera_id=camera_id, frame_index=frame_index
                ) from e

            geometries.append(_CameraGeometry(camera_id, camera_data, source_size, display_size, params))
        return geometries

    def _process_camera(self, geometry: _CameraGeometry, last_updated: str) -> CameraTrackingDisplayData:
        kept_tracks = [
            track for track in geometry.camera_data.tracks
            if track.confidence is None or track.confidence >= self.confidence_threshold
        ]
        self.processing_stats["tracks_filtered"] += len(geometry.camera_data.tracks) - len(kept_tracks)

        source_boxes = [BoundingBox.from_xyxy(track.bbox_xyxy) for track in kept_tracks]
        if self.display_scaling:
            display_boxes = batch_transform_bounding_boxes(source_boxes, geometry.params)
            scale_factor = Point2D(geometry.params.scale_x, geometry.params.scale_y)
        else:
            display_boxes = source_boxes
            scale_factor = Point2D(1.0, 1.0)

        display_tracks = tuple(
            TrackedPersonDisplay(
                person=track,
                camera_id=geometry.camera_id,
                display_bbox=display_bbox,
                color=self._color_for(track),
                label=create_person_label(track),
                center=bounding_box_center(display_bbox)
            )
            for track, display_bbox in zip(kept_tracks, display_boxes)
        )

        frame_b64 = geometry.camera_data.frame_image_base64
        return CameraTrackingDisplayData(
            camera_id=geometry.camera_id,
            tracks=display_tracks,
            resolution=geometry.source_size,
            display_size=geometry.display_size,
            scale_factor=scale_factor,
            last_updated=last_updated,
            frame_image_url=f"data:image/jpeg;base64,{frame_b64}" if frame_b64 else None,
            is_active=True
        )

    def _color_for(self, track: TrackedPerson) -> str:
        if self.enable_person_coloring and track.global_id is not None:
            return self.color_registry.color_for(track.global_id)
        return DEFAULT_PERSON_COLOR

    def _update_trajectories(
        self,
        processed_cameras: Mapping[CameraID, CameraTrackingDisplayData],
        timestamp: str
    ) -> None:
        for camera_id, camera_record in processed_cameras.items():
            for display_track in camera_record.tracks:
                if display_track.global_id is None:
                    continue
                map_coords = display_track.person.map_coords
                position = Point2D.from_sequence(map_coords) if map_coords is not None else display_track.center
                self.trajectory_processor.record_point(
                    global_id=display_track.global_id,
                    position=position,
                    camera_id=camera_id,
                    confidence=display_track.confidence,
                    timestamp=timestamp
                )

    def get_tracking_statistics(
        self,
        processed_cameras: Mapping[CameraID, CameraTrackingDisplayData]
    ) -> Dict[str, Any]:
        return get_tracking_statistics(processed_cameras)

    def find_person_across_cameras(
        self,
        global_id: str,
        processed_cameras: Mapping[CameraID, CameraTrackingDisplayData]
    ) -> List[Tuple[CameraID, TrackedPersonDisplay]]:
        return find_person_across_cameras(global_id, processed_cameras)

    def clear_all_trajectories(self) -> None:
        self.trajectory_processor.clear_all()

    def get_statistics(self) -> Dict[str, Any]:
        return {
            **self.processing_stats,
            "trajectories": self.trajectory_processor.get_statistics()
        }


def get_tracking_statistics(processed_cameras: Mapping[CameraID, CameraTrackingDisplayData]) -> Dict[str, Any]:
    """Detection counts and mean confidence overall and per camera."""
    total_detections = 0
    confidence_sum = 0.0
    confidence_count = 0
    unique_persons = set()
    camera_stats: Dict[CameraID, Dict[str, float]] = {}

    for camera_id, camera_record in processed_cameras.items():
        camera_confidences = [t.confidence for t in camera_record.tracks if t.confidence is not None]
        total_detections += len(camera_record.tracks)
        unique_persons.update(t.global_id for t in camera_record.tracks if t.global_id is not None)
        confidence_sum += sum(camera_confidences)
        confidence_count += len(camera_confidences)
        camera_stats[camera_id] = {
            "detections": len(camera_record.tracks),
            "avg_confidence": sum(camera_confidences) / len(camera_confidences) if camera_confidences else 0.0
        }

    return {
        "total_detections": total_detections,
        "unique_persons": len(unique_persons),
        "average_confidence": confidence_sum / confidence_count if confidence_count else 0.0,
        "camera_stats": camera_stats
    }


def find_person_across_cameras(
    global_id: str,
    processed_cameras: Mapping[CameraID, CameraTrackingDisplayData]
) -> List[Tuple[CameraID, TrackedPersonDisplay]]:
    """First matching track per camera for a global person ID."""
    results = []
    for camera_id, camera_record in processed_cameras.items():
        match = next((t for t in camera_record.tracks if t.global_id == global_id), None)
        if match is not None:
            results.append((camera_id, match))
    return results
