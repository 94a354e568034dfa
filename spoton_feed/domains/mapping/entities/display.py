"""
Display-ready records produced for the rendering layer.

These wrap the wire-level TrackedPerson with display geometry, color and label,
and group them per camera and per frame.
"""

from dataclasses import dataclass, field
from typing import Dict, Any, FrozenSet, Optional, Tuple

from spoton_feed.api.schemas import TrackedPerson
from spoton_feed.domains.mapping.entities.geometry import BoundingBox, Point2D, Size
from spoton_feed.shared.types import CameraID


@dataclass(frozen=True)
class TrackedPersonDisplay:
    """A tracked person positioned and styled for one camera's display."""

    person: TrackedPerson
    camera_id: CameraID
    display_bbox: BoundingBox
    color: str
    label: str
    center: Point2D

    # UI flags
    is_selected: bool = False
    is_focused: bool = False
    is_highlighted: bool = False

    @property
    def track_id(self) -> int:
        return self.person.track_id

    @property
    def global_id(self) -> Optional[str]:
        return self.person.global_id

    @property
    def confidence(self) -> Optional[float]:
        return self.person.confidence

    def to_dict(self) -> Dict[str, Any]:
        return {
            **self.person.model_dump(),
            "camera_id": self.camera_id,
            "display_bbox": list(self.display_bbox.to_xyxy()),
            "color": self.color,
            "label": self.label,
            "center": self.center.to_dict(),
            "is_selected": self.is_selected,
            "is_focused": self.is_focused,
            "is_highlighted": self.is_highlighted
        }


@dataclass(frozen=True)
class CameraTrackingDisplayData:
    """Per-camera display record for a single frame."""

    camera_id: CameraID
    tracks: Tuple[TrackedPersonDisplay, ...]
    resolution: Size
    display_size: Size
    scale_factor: Point2D
    last_updated: str
    frame_image_url: Optional[str] = None
    is_active: bool = True

    @property
    def person_count(self) -> int:
        return len(self.tracks)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "camera_id": self.camera_id,
            "tracks": [t.to_dict() for t in self.tracks],
            "frame_image_url": self.frame_image_url,
            "is_active": self.is_active,
            "last_updated": self.last_updated,
            "resolution": self.resolution.to_dict(),
            "display_size": self.display_size.to_dict(),
            "scale_factor": self.scale_factor.to_dict()
        }


@dataclass(frozen=True)
class FrameProcessingResult:
    """Everything the rendering layer needs for one frame."""

    global_frame_index: int
    scene_id: str
    processed_cameras: Dict[CameraID, CameraTrackingDisplayData] = field(default_factory=dict)
    total_persons: int = 0
    unique_persons: FrozenSet[str] = frozenset()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "global_frame_index": self.global_frame_index,
            "scene_id": self.scene_id,
            "processed_cameras": {cid: data.to_dict() for cid, data in self.processed_cameras.items()},
            "total_persons": self.total_persons,
            "unique_persons": sorted(self.unique_persons)
        }
