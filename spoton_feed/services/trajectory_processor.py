"""
Trajectory Processor for per-person movement history.

Keeps a bounded FIFO of positions for every re-identified person and derives
total distance and average speed over the retained window.

Features:
- Owned trajectory store keyed by global person ID
- Oldest-first eviction beyond the configured point cap
- Immutable snapshots returned to callers
- Color assignments released together with the trajectory
"""
import logging
from datetime import datetime, timezone
from typing import Dict, Iterator, List, Optional, Union

import numpy as np

from spoton_feed.core.config import settings
from spoton_feed.domains.mapping.entities.geometry import Point2D
from spoton_feed.domains.mapping.entities.trajectory import PersonTrajectoryData, TrajectoryPoint
from spoton_feed.services.person_color_registry import PersonColorRegistry
from spoton_feed.shared.types import CameraID, GlobalID

logger = logging.getLogger(__name__)


def parse_timestamp(value: Union[str, datetime, None]) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp ('Z' suffix allowed). Unparseable input yields None."""
    if value is None or isinstance(value, datetime):
        return value
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (ValueError, AttributeError):
        logger.debug(f"Could not parse trajectory timestamp {value!r}")
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def compute_total_distance(points) -> float:
    """Sum of straight-line segment lengths between consecutive points."""
    if len(points) < 2:
        return 0.0
    coords = np.array([p.position.to_tuple() for p in points], dtype=np.float64)
    deltas = np.diff(coords, axis=0)
    return float(np.hypot(deltas[:, 0], deltas[:, 1]).sum())


def compute_average_speed(points, total_distance: float) -> float:
    """Distance per second between the first and last retained point; 0 when time is unknown."""
    if len(points) < 2:
        return 0.0
    first, last = points[0].timestamp, points[-1].timestamp
    if first is None or last is None:
        return 0.0
    elapsed = (last - first).total_seconds()
    return total_distance / elapsed if elapsed > 0 else 0.0


class TrajectoryStore:
    """Table of trajectory snapshots keyed by global person ID."""

    def __init__(self):
        self._trajectories: Dict[GlobalID, PersonTrajectoryData] = {}

    def get(self, global_id: GlobalID) -> Optional[PersonTrajectoryData]:
        return self._trajectories.get(global_id)

    def put(self, trajectory: PersonTrajectoryData) -> None:
        self._trajectories[trajectory.global_id] = trajectory

    def remove(self, global_id: GlobalID) -> Optional[PersonTrajectoryData]:
        return self._trajectories.pop(global_id, None)

    def clear(self) -> None:
        self._trajectories.clear()

    def ids(self) -> List[str]:
        return list(self._trajectories.keys())

    def snapshot(self) -> Dict[GlobalID, PersonTrajectoryData]:
        return dict(self._trajectories)

    def __len__(self) -> int:
        return len(self._trajectories)

    def __contains__(self, global_id: object) -> bool:
        return global_id in self._trajectories

    def __iter__(self) -> Iterator[str]:
        return iter(self.ids())


class TrajectoryProcessor:
    """
    Records per-person positions and maintains derived kinematics.

    The processor is the only writer of its store; color assignments come from
    the injected registry and are released whenever a trajectory is cleared.
    """

    def __init__(
        self,
        color_registry: Optional[PersonColorRegistry] = None,
        max_points: Optional[int] = None,
        enabled: Optional[bool] = None
    ):
        """
        Initialize the trajectory processor.

        Args:
            color_registry: Registry shared with the tracking data processor
            max_points: Maximum retained points per person (default: settings.MAX_TRAJECTORY_POINTS)
            enabled: Whether points are recorded at all (default: settings.ENABLE_TRAJECTORY_TRACKING)
        """
        self.color_registry = color_registry if color_registry is not None else PersonColorRegistry()
        self.max_points = max_points if max_points is not None else settings.MAX_TRAJECTORY_POINTS
        self.enabled = enabled if enabled is not None else settings.ENABLE_TRAJECTORY_TRACKING
        if self.max_points <= 0:
            raise ValueError(f"max_points must be positive, got {self.max_points}")

        self._store = TrajectoryStore()
        self.processor_stats = {
            "points_recorded": 0,
            "points_evicted": 0,
            "trajectories_created": 0,
            "trajectories_cleared": 0
        }

        logger.info(f"TrajectoryProcessor initialized (max_points={self.max_points}, enabled={self.enabled})")

    def record_point(
        self,
        global_id: GlobalID,
        position: Point2D,
        camera_id: CameraID,
        confidence: Optional[float] = None,
        timestamp: Union[str, datetime, None] = None
    ) -> Optional[PersonTrajectoryData]:
        """
        Append a position to a person's trajectory.

        Returns:
            The updated trajectory snapshot, or None when tracking is disabled
        """
        if not self.enabled:
            return None

        existing = self._store.get(global_id)
        if existing is None:
            existing = PersonTrajectoryData(global_id=global_id, color=self.color_registry.color_for(global_id))
            self.processor_stats["trajectories_created"] += 1

        point = TrajectoryPoint(
            position=position,
            timestamp=parse_timestamp(timestamp),
            camera_id=camera_id,
            confidence=confidence
        )
        points = existing.points + (point,)
        if len(points) > self.max_points:
            self.processor_stats["points_evicted"] += len(points) - self.max_points
            points = points[-self.max_points:]

        total_distance = compute_total_distance(points)
        updated = PersonTrajectoryData(
            global_id=global_id,
            points=points,
            color=existing.color,
            total_distance=total_distance,
            average_speed=compute_average_speed(points, total_distance),
            last_updated=datetime.now(timezone.utc),
            is_visible=existing.is_visible
        )
        self._store.put(updated)
        self.processor_stats["points_recorded"] += 1
        return updated

    def get(self, global_id: GlobalID) -> Optional[PersonTrajectoryData]:
        return self._store.get(global_id)

    def get_all(self) -> Dict[GlobalID, PersonTrajectoryData]:
        return self._store.snapshot()

    def clear(self, global_id: GlobalID) -> bool:
        """Remove one trajectory and release its color. Returns whether it existed."""
        removed = self._store.remove(global_id)
        self.color_registry.release(global_id)
        if removed is not None:
            self.processor_stats["trajectories_cleared"] += 1
        return removed is not None

    def clear_all(self) -> None:
        """Remove every trajectory and release every assigned color without rewinding the palette."""
        cleared = len(self._store)
        self._store.clear()
        for global_id in self.color_registry.assignments():
            self.color_registry.release(global_id)
        self.processor_stats["trajectories_cleared"] += cleared
        logger.info(f"Cleared {cleared} trajectories")

    def __len__(self) -> int:
        return len(self._store)

    def __contains__(self, global_id: object) -> bool:
        return global_id in self._store

    def get_statistics(self) -> Dict[str, Union[int, float]]:
        trajectories = self._store.snapshot().values()
        total_points = sum(len(t) for t in trajectories)
        return {
            **self.processor_stats,
            "active_trajectories": len(self._store),
            "total_points": total_points,
            "assigned_colors": len(self.color_registry),
            "max_points": self.max_points
        }
