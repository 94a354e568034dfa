from enum import Enum
from pydantic import AllowInfNan, BaseModel, ConfigDict, Field, Strict, StrictInt, StrictStr
from typing import Annotated, List, Optional, Dict, Any

# --- Tracking Payload Schemas ---
# Inbound frames are validated strictly: no coercion between JSON types
# (ints are accepted where floats are expected), NaN/Infinity rejected,
# unknown fields ignored.

_WIRE_CONFIG = ConfigDict(frozen=True, extra="ignore", allow_inf_nan=False)

FiniteFloat = Annotated[float, Strict(), AllowInfNan(False)]


class TrackedPerson(BaseModel):
    """A single detection of a person within one camera in one frame."""
    model_config = _WIRE_CONFIG

    track_id: StrictInt = Field(..., description="Frame-local, camera-local detection index.")
    global_id: Optional[StrictStr] = Field(None, description="Re-identified person ID, stable across cameras (null if not assigned).")
    bbox_xyxy: List[FiniteFloat] = Field(..., min_length=4, max_length=4, description="Bounding box in camera-native pixels [x1, y1, x2, y2].")
    confidence: Optional[FiniteFloat] = Field(None, description="Detection confidence score, nominally in [0, 1].")
    class_id: StrictInt = Field(1, description="Class ID of the detection (1 = person).")
    map_coords: Optional[List[FiniteFloat]] = Field(None, min_length=2, max_length=2, description="Projected [X, Y] ground-plane coordinates. Null if not available.")


class CameraTrackingData(BaseModel):
    """Tracking data for a single camera in a frame."""
    model_config = _WIRE_CONFIG

    image_source: StrictStr = Field(..., description="Identifier of the image source for this camera (e.g., '000000.jpg').")
    frame_image_base64: Optional[StrictStr] = Field(None, description="Base64 encoded JPEG of the frame. Null if not sent.")
    tracks: List[TrackedPerson] = Field(..., description="Detections for this camera; required, may be empty.")


class TrackingPayload(BaseModel):
    """Payload of a 'tracking_update' message covering every camera of one frame."""
    model_config = _WIRE_CONFIG

    global_frame_index: StrictInt = Field(..., description="Absolute frame index for the task.")
    scene_id: StrictStr = Field(..., description="Identifier for the scene/environment (e.g., 'campus').")
    timestamp_processed_utc: StrictStr = Field(..., description="ISO UTC timestamp of when the frame was processed.")
    cameras: Dict[StrictStr, CameraTrackingData] # Keyed by CameraID string (e.g., "c09")


# --- WebSocket Envelope ---

class MessageType(str, Enum):
    CONNECTION_ESTABLISHED = "connection_established"
    TRACKING_UPDATE = "tracking_update"
    STATUS_UPDATE = "status_update"
    SYSTEM_STATUS = "system_status"


class WebSocketMessage(BaseModel):
    """Envelope of every JSON text frame on the tracking channel."""
    model_config = ConfigDict(extra="ignore")

    type: str
    payload: Optional[Dict[str, Any]] = None
    capabilities: Optional[List[str]] = None
    data: Optional[Dict[str, Any]] = None


# --- Health Probe ---

class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    UNKNOWN = "unknown"


class HealthResponse(BaseModel):
    """Body of GET /health. Anything beyond status/services is ignored."""
    model_config = ConfigDict(extra="ignore")

    status: str = Field(..., description="Reported overall status, e.g. 'healthy'.")
    services: Optional[Dict[str, Any]] = Field(None, description="Per-component status, backend-defined.")

    @property
    def health_status(self) -> HealthStatus:
        try:
            return HealthStatus(self.status)
        except ValueError:
            return HealthStatus.UNKNOWN
