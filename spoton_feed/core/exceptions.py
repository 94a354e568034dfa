"""
Exception hierarchy for the tracking feed pipeline.

Transport, protocol and payload problems are recovered inside the pipeline and
surface as counters and status flags. Geometry configuration problems are
programming errors (bad camera resolution or display size) and are raised.
"""
from typing import List, Optional


class SpotOnFeedError(Exception):
    """Base class for all feed pipeline errors."""


class GeometryConfigurationError(SpotOnFeedError, ValueError):
    """Invalid sizes or non-finite coordinates handed to the coordinate transformer."""

    def __init__(
        self,
        message: str,
        camera_id: Optional[str] = None,
        frame_index: Optional[int] = None
    ):
        self.camera_id = camera_id
        self.frame_index = frame_index
        context = []
        if camera_id is not None:
            context.append(f"camera={camera_id}")
        if frame_index is not None:
            context.append(f"frame={frame_index}")
        if context:
            message = f"{message} [{', '.join(context)}]"
        super().__init__(message)

    def with_context(self, camera_id: Optional[str] = None, frame_index: Optional[int] = None) -> "GeometryConfigurationError":
        """Return a copy of this error attributed to a camera and frame."""
        base_message = self.args[0].split(" [", 1)[0] if self.args else ""
        return GeometryConfigurationError(
            base_message,
            camera_id=camera_id if camera_id is not None else self.camera_id,
            frame_index=frame_index if frame_index is not None else self.frame_index
        )


class PayloadValidationError(SpotOnFeedError):
    """A tracking payload failed structural validation."""

    def __init__(self, errors: List[str]):
        self.errors = errors
        super().__init__("; ".join(errors) if errors else "Invalid tracking payload")


class HealthCheckError(SpotOnFeedError):
    """The backend is not reporting healthy."""

    def __init__(self, status: str, detail: Optional[str] = None):
        self.status = status
        self.detail = detail
        message = f"Backend health is '{status}'"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
