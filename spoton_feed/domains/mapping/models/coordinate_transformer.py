"""
Coordinate transformer for camera-to-display geometry.

Handles transformations between coordinate spaces including:
- Camera-native image coordinates to display (element) coordinates
- Display coordinates back to image coordinates (exact inverse)
- Aspect-ratio preserving (letterboxed) and independent per-axis scaling
- Bounding box helpers: center, size, area, containment, IoU, clamping

All functions are stateless. Invalid sizes or non-finite coordinates raise
GeometryConfigurationError; they point at a misconfigured camera resolution
or display size and are never clamped silently.
"""

import math
from dataclasses import dataclass
from typing import Iterable, List, Sequence

import numpy as np

from spoton_feed.core.exceptions import GeometryConfigurationError
from spoton_feed.domains.mapping.entities.geometry import BoundingBox, Point2D, Size, is_finite_number


def round_half_away_from_zero(value: float) -> int:
    """Round to the nearest integer, ties away from zero (2.5 -> 3, -2.5 -> -3)."""
    return int(math.copysign(math.floor(abs(value) + 0.5), value))


def _round_array_half_away_from_zero(values: np.ndarray) -> np.ndarray:
    return np.sign(values) * np.floor(np.abs(values) + 0.5)


def _require_size(size: Size, role: str) -> Size:
    if not isinstance(size, Size):
        raise GeometryConfigurationError(f"{role} size must be a Size, got {type(size).__name__}")
    if not is_valid_size(size):
        raise GeometryConfigurationError(f"{role} size must be positive, got {size.width}x{size.height}")
    return size


@dataclass(frozen=True)
class TransformParameters:
    """
    Precomputed scale and offset for one source -> target mapping.

    A frame can carry dozens of boxes per camera; computing the parameters once
    per camera and applying them to every box avoids re-deriving the scale for
    each point.
    """
    scale_x: float
    scale_y: float
    offset_x: float = 0.0
    offset_y: float = 0.0

    def apply(self, point: Point2D) -> Point2D:
        return Point2D(
            x=point.x * self.scale_x + self.offset_x,
            y=point.y * self.scale_y + self.offset_y
        )

    def invert(self, point: Point2D) -> Point2D:
        return Point2D(
            x=(point.x - self.offset_x) / self.scale_x,
            y=(point.y - self.offset_y) / self.scale_y
        )

    def apply_array(self, points: np.ndarray) -> np.ndarray:
        """Transform an (N, 2) array of points in one vectorised pass."""
        return points * np.array([self.scale_x, self.scale_y]) + np.array([self.offset_x, self.offset_y])

    def apply_bbox(self, bbox: BoundingBox) -> BoundingBox:
        """Transform both corners independently and round to whole pixels."""
        top_left = self.apply(bbox.top_left)
        bottom_right = self.apply(bbox.bottom_right)
        return BoundingBox(
            x1=round_half_away_from_zero(top_left.x),
            y1=round_half_away_from_zero(top_left.y),
            x2=round_half_away_from_zero(bottom_right.x),
            y2=round_half_away_from_zero(bottom_right.y)
        )


def compute_transform_parameters(
    source_size: Size,
    target_size: Size,
    maintain_aspect_ratio: bool = True
) -> TransformParameters:
    """
    Derive scale and offsets for mapping source_size onto target_size.

    Args:
        source_size: Resolution of the source space (e.g. camera native)
        target_size: Resolution of the target space (e.g. display element)
        maintain_aspect_ratio: Use one uniform scale and center the content

    Returns:
        TransformParameters for the mapping
    """
    _require_size(source_size, "Source")
    _require_size(target_size, "Target")

    if not maintain_aspect_ratio:
        scale_factors = calculate_scale_factors(source_size, target_size)
        return TransformParameters(scale_x=scale_factors.x, scale_y=scale_factors.y)

    scale = calculate_uniform_scale(source_size, target_size)
    offset_x = (target_size.width - source_size.width * scale) / 2
    offset_y = (target_size.height - source_size.height * scale) / 2
    return TransformParameters(scale_x=scale, scale_y=scale, offset_x=offset_x, offset_y=offset_y)


# ============================================================================
# Image Coordinate Transformations
# ============================================================================

def transform_point(
    point: Point2D,
    source_size: Size,
    target_size: Size,
    maintain_aspect_ratio: bool = True
) -> Point2D:
    """Transform a point from source resolution to target resolution."""
    params = compute_transform_parameters(source_size, target_size, maintain_aspect_ratio)
    return params.apply(point)


def transform_bounding_box(
    bbox: BoundingBox,
    source_size: Size,
    target_size: Size,
    maintain_aspect_ratio: bool = True
) -> BoundingBox:
    """Transform a bounding box; output corners are rounded to integer pixels."""
    params = compute_transform_parameters(source_size, target_size, maintain_aspect_ratio)
    return params.apply_bbox(bbox)


def transform_bounding_boxes(
    bboxes: Iterable[BoundingBox],
    source_size: Size,
    target_size: Size,
    maintain_aspect_ratio: bool = True
) -> List[BoundingBox]:
    params = compute_transform_parameters(source_size, target_size, maintain_aspect_ratio)
    return [params.apply_bbox(bbox) for bbox in bboxes]


def element_to_image_coordinates(
    point: Point2D,
    element_size: Size,
    image_size: Size,
    maintain_aspect_ratio: bool = True
) -> Point2D:
    """
    Convert a display (element) coordinate back into image coordinates.

    This is the inverse of transform_point(p, image_size, element_size, ...)
    under the same aspect-ratio mode.
    """
    params = compute_transform_parameters(image_size, element_size, maintain_aspect_ratio)
    return params.invert(point)


def batch_transform_points(
    points: Sequence[Point2D],
    source_size: Size,
    target_size: Size,
    maintain_aspect_ratio: bool = True
) -> List[Point2D]:
    """Transform many points with parameters computed once, using numpy."""
    params = compute_transform_parameters(source_size, target_size, maintain_aspect_ratio)
    if not points:
        return []

    coords = np.array([[p.x, p.y] for p in points], dtype=np.float64)
    transformed = params.apply_array(coords)
    return [Point2D(x=float(x), y=float(y)) for x, y in transformed]


def batch_transform_bounding_boxes(
    bboxes: Sequence[BoundingBox],
    params: TransformParameters
) -> List[BoundingBox]:
    """Transform many boxes with precomputed parameters, rounding like transform_bounding_box."""
    if not bboxes:
        return []

    corners = np.array([b.to_xyxy() for b in bboxes], dtype=np.float64).reshape(-1, 2)
    rounded = _round_array_half_away_from_zero(params.apply_array(corners)).reshape(-1, 4)
    return [BoundingBox(x1=int(r[0]), y1=int(r[1]), x2=int(r[2]), y2=int(r[3])) for r in rounded]


# ============================================================================
# Scaling Utilities
# ============================================================================

def calculate_scale_factors(source_size: Size, target_size: Size) -> Point2D:
    """Independent per-axis scale factors."""
    return Point2D(
        x=target_size.width / source_size.width,
        y=target_size.height / source_size.height
    )


def calculate_uniform_scale(source_size: Size, target_size: Size) -> float:
    """The tighter of width-fit and height-fit."""
    return min(
        target_size.width / source_size.width,
        target_size.height / source_size.height
    )


def calculate_display_size(source_size: Size, max_size: Size) -> Size:
    """Largest size with the source aspect ratio that fits inside max_size."""
    scale = calculate_uniform_scale(source_size, max_size)
    return Size(
        width=max(1, round_half_away_from_zero(source_size.width * scale)),
        height=max(1, round_half_away_from_zero(source_size.height * scale))
    )


# ============================================================================
# Bounding Box Utilities
# ============================================================================

def bounding_box_center(bbox: BoundingBox) -> Point2D:
    return Point2D(x=(bbox.x1 + bbox.x2) / 2, y=(bbox.y1 + bbox.y2) / 2)


def bounding_box_size(bbox: BoundingBox) -> Size:
    """Width and height of the box. Degenerate boxes have no valid Size, so this raises for them."""
    return Size(width=abs(bbox.x2 - bbox.x1), height=abs(bbox.y2 - bbox.y1))


def bounding_box_area(bbox: BoundingBox) -> float:
    return abs(bbox.x2 - bbox.x1) * abs(bbox.y2 - bbox.y1)


def is_point_in_bounding_box(point: Point2D, bbox: BoundingBox) -> bool:
    return bbox.min_x <= point.x <= bbox.max_x and bbox.min_y <= point.y <= bbox.max_y


def bounding_box_iou(bbox_a: BoundingBox, bbox_b: BoundingBox) -> float:
    """
    Intersection over union of two boxes.

    Corners are normalised with min/max first, so the result is symmetric and
    independent of corner order. Boxes that do not overlap (intersection width
    or height <= 0) score 0.
    """
    inter_width = min(bbox_a.max_x, bbox_b.max_x) - max(bbox_a.min_x, bbox_b.min_x)
    inter_height = min(bbox_a.max_y, bbox_b.max_y) - max(bbox_a.min_y, bbox_b.min_y)
    if inter_width <= 0 or inter_height <= 0:
        return 0.0

    intersection = inter_width * inter_height
    union = bounding_box_area(bbox_a) + bounding_box_area(bbox_b) - intersection
    return intersection / union if union > 0 else 0.0


# ============================================================================
# Validation and Clamping
# ============================================================================

def is_valid_point(point: Point2D) -> bool:
    return all(is_finite_number(v) for v in (point.x, point.y))


def is_valid_bounding_box(bbox: BoundingBox) -> bool:
    return all(is_finite_number(v) for v in bbox.to_xyxy())


def is_valid_size(size: Size) -> bool:
    return all(
        is_finite_number(v) and v > 0
        for v in (size.width, size.height)
    )


def clamp_point(point: Point2D, bounds: Size) -> Point2D:
    return Point2D(
        x=max(0, min(point.x, bounds.width)),
        y=max(0, min(point.y, bounds.height))
    )


def clamp_bounding_box(bbox: BoundingBox, bounds: Size) -> BoundingBox:
    return BoundingBox(
        x1=max(0, min(bbox.x1, bounds.width)),
        y1=max(0, min(bbox.y1, bounds.height)),
        x2=max(0, min(bbox.x2, bounds.width)),
        y2=max(0, min(bbox.y2, bounds.height))
    )
