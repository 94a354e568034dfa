"""
Geometric value objects shared by the coordinate transformer and the processors.

Point2D and BoundingBox carry image or display coordinates; Size carries a
resolution. All three are frozen and validate themselves on construction.
"""
from dataclasses import dataclass
from typing import Sequence, Tuple
import math
import numbers

from spoton_feed.core.exceptions import GeometryConfigurationError
from spoton_feed.domains.mapping.entities.base_value_object import BaseValueObject


def is_finite_number(value) -> bool:
    return isinstance(value, numbers.Real) and not isinstance(value, bool) and math.isfinite(value)


@dataclass(frozen=True)
class Point2D(BaseValueObject):
    """Real-valued screen or image coordinate."""

    x: float
    y: float

    def _validate(self) -> None:
        if not (is_finite_number(self.x) and is_finite_number(self.y)):
            raise GeometryConfigurationError(f"Point coordinates must be finite numbers, got ({self.x}, {self.y})")

    @classmethod
    def from_sequence(cls, coords: Sequence[float]) -> 'Point2D':
        if len(coords) != 2:
            raise GeometryConfigurationError(f"Point requires 2 coordinates, got {len(coords)}")
        return cls(x=coords[0], y=coords[1])

    def to_tuple(self) -> Tuple[float, float]:
        return (self.x, self.y)

    def distance_to(self, other: 'Point2D') -> float:
        return math.hypot(other.x - self.x, other.y - self.y)


@dataclass(frozen=True)
class Size(BaseValueObject):
    """Positive width/height pair."""

    width: float
    height: float

    def _validate(self) -> None:
        if not (is_finite_number(self.width) and is_finite_number(self.height)):
            raise GeometryConfigurationError(f"Size dimensions must be finite numbers, got {self.width}x{self.height}")
        if self.width <= 0 or self.height <= 0:
            raise GeometryConfigurationError(f"Size dimensions must be positive, got {self.width}x{self.height}")

    @classmethod
    def from_sequence(cls, dims: Sequence[float]) -> 'Size':
        if len(dims) != 2:
            raise GeometryConfigurationError(f"Size requires 2 dimensions, got {len(dims)}")
        return cls(width=dims[0], height=dims[1])

    @property
    def aspect_ratio(self) -> float:
        return self.width / self.height

    def to_tuple(self) -> Tuple[float, float]:
        return (self.width, self.height)


@dataclass(frozen=True)
class BoundingBox(BaseValueObject):
    """
    Axis-aligned rectangle in [x1, y1, x2, y2] form.

    Corners are stored as given; x1/x2 and y1/y2 need not be sorted, so every
    geometric helper takes min/max itself.
    """

    x1: float
    y1: float
    x2: float
    y2: float

    def _validate(self) -> None:
        coords = (self.x1, self.y1, self.x2, self.y2)
        if not all(is_finite_number(c) for c in coords):
            raise GeometryConfigurationError(f"Bounding box coordinates must be finite numbers, got {list(coords)}")

    @classmethod
    def from_xyxy(cls, coords: Sequence[float]) -> 'BoundingBox':
        """Create a BoundingBox from an [x1, y1, x2, y2] sequence."""
        if len(coords) != 4:
            raise GeometryConfigurationError(f"Bounding box requires 4 coordinates, got {len(coords)}")
        return cls(x1=coords[0], y1=coords[1], x2=coords[2], y2=coords[3])

    def to_xyxy(self) -> Tuple[float, float, float, float]:
        return (self.x1, self.y1, self.x2, self.y2)

    @property
    def min_x(self) -> float:
        return min(self.x1, self.x2)

    @property
    def max_x(self) -> float:
        return max(self.x1, self.x2)

    @property
    def min_y(self) -> float:
        return min(self.y1, self.y2)

    @property
    def max_y(self) -> float:
        return max(self.y1, self.y2)

    @property
    def top_left(self) -> Point2D:
        return Point2D(self.x1, self.y1)

    @property
    def bottom_right(self) -> Point2D:
        return Point2D(self.x2, self.y2)
