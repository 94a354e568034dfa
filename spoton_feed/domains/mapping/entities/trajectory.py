"""
Trajectory entities for person movement tracking.

Snapshots handed out by the trajectory processor are immutable: the processor
builds a new PersonTrajectoryData for every recorded point, so a caller holding
an older snapshot never observes later mutations.
"""

from dataclasses import dataclass, field
from typing import Optional, Tuple, Dict, Any
from datetime import datetime, timezone

from spoton_feed.domains.mapping.entities.geometry import Point2D
from spoton_feed.shared.types import CameraID


@dataclass(frozen=True)
class TrajectoryPoint:
    """Single observed position of a person."""

    position: Point2D
    timestamp: Optional[datetime]
    camera_id: CameraID
    confidence: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "position": self.position.to_dict(),
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
            "camera_id": self.camera_id,
            "confidence": self.confidence
        }


@dataclass(frozen=True)
class PersonTrajectoryData:
    """Bounded movement history of one global person ID with derived kinematics."""

    global_id: str
    points: Tuple[TrajectoryPoint, ...] = ()
    color: str = ""
    total_distance: float = 0.0
    average_speed: float = 0.0
    last_updated: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    is_visible: bool = True

    def __post_init__(self):
        if not self.global_id:
            raise ValueError("Global ID cannot be empty")

    @property
    def latest_point(self) -> Optional[TrajectoryPoint]:
        return self.points[-1] if self.points else None

    @property
    def cameras_traversed(self) -> Tuple[CameraID, ...]:
        """Cameras in order of first appearance within the retained window."""
        seen = []
        for point in self.points:
            if point.camera_id not in seen:
                seen.append(point.camera_id)
        return tuple(seen)

    def __len__(self) -> int:
        return len(self.points)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "global_id": self.global_id,
            "points": [p.to_dict() for p in self.points],
            "color": self.color,
            "total_distance": self.total_distance,
            "average_speed": self.average_speed,
            "last_updated": self.last_updated.isoformat(),
            "is_visible": self.is_visible,
            "cameras_traversed": list(self.cameras_traversed)
        }
