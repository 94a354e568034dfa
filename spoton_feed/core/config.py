from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings
from typing import List, Dict, Optional, Tuple

from spoton_feed.shared.types import CameraID


class CameraDisplayConfig(BaseModel):
    env_id: str = Field(..., description="Environment ID (e.g., 'campus')")
    cam_id: str = Field(..., description="Camera ID (e.g., 'c01')")
    resolution: Tuple[int, int] = Field(default=(1920, 1080), description="Native camera resolution (width, height) in pixels.")
    name: str = Field(default="", description="Human-readable camera name.")


class Settings(BaseSettings):
    APP_NAME: str = "SpotOn Feed"
    API_V1_PREFIX: str = "/api/v1"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    API_BASE_URL: str = "http://localhost:3847"
    WS_BASE_URL: str = "ws://localhost:3847"
    HEALTH_ENDPOINT: str = "/health"
    WS_TRACKING_PATH_TEMPLATE: str = "/ws/tracking/{task_id}"

    HEALTH_CHECK_INTERVAL_SECONDS: float = Field(default=30.0, gt=0)
    HEALTH_CHECK_TIMEOUT_SECONDS: float = Field(default=5.0, gt=0)
    WEBSOCKET_RECONNECT_DELAY_SECONDS: float = Field(default=3.0, ge=0)
    WEBSOCKET_PING_INTERVAL_SECONDS: float = 20.0
    WEBSOCKET_MAX_MESSAGE_SIZE: int = 2**24
    TASK_START_TIMEOUT_SECONDS: float = 10.0

    MAX_TRAJECTORY_POINTS: int = Field(default=100, gt=0)
    CONFIDENCE_THRESHOLD: float = Field(default=0.3, ge=0.0, le=1.0)
    ENABLE_PERSON_COLORING: bool = True
    ENABLE_TRAJECTORY_TRACKING: bool = True
    DISPLAY_SCALING: bool = True
    MAINTAIN_ASPECT_RATIO: bool = True

    DEFAULT_DISPLAY_WIDTH: int = Field(default=960, gt=0)
    DEFAULT_DISPLAY_HEIGHT: int = Field(default=540, gt=0)

    CAMERAS: List[CameraDisplayConfig] = [
        CameraDisplayConfig(env_id="factory", cam_id="c09", name="Factory Camera 1 (Entrance)"),
        CameraDisplayConfig(env_id="factory", cam_id="c12", name="Factory Camera 2"),
        CameraDisplayConfig(env_id="factory", cam_id="c13", name="Factory Camera 3"),
        CameraDisplayConfig(env_id="factory", cam_id="c16", name="Factory Camera 4"),
        CameraDisplayConfig(env_id="campus", cam_id="c01", name="Campus Camera 1 (Main Entrance)"),
        CameraDisplayConfig(env_id="campus", cam_id="c02", name="Campus Camera 2"),
        CameraDisplayConfig(env_id="campus", cam_id="c03", name="Campus Camera 3"),
        CameraDisplayConfig(env_id="campus", cam_id="c05", name="Campus Camera 4"),
    ]

    model_config = {
        "extra": "ignore",
        "env_file": ".env",
        "env_file_encoding": "utf-8"
    }

    def health_check_url(self, api_base_url: Optional[str] = None) -> str:
        return f"{(api_base_url or self.API_BASE_URL).rstrip('/')}{self.HEALTH_ENDPOINT}"

    def task_start_url(self, api_base_url: Optional[str] = None) -> str:
        return f"{(api_base_url or self.API_BASE_URL).rstrip('/')}{self.API_V1_PREFIX}/processing-tasks/start"

    @property
    def camera_resolution_map(self) -> Dict[CameraID, Tuple[int, int]]:
        """Native resolution per camera ID. Camera IDs are unique across environments."""
        return {CameraID(cam.cam_id): cam.resolution for cam in self.CAMERAS}

    @property
    def default_display_size(self) -> Tuple[int, int]:
        return (self.DEFAULT_DISPLAY_WIDTH, self.DEFAULT_DISPLAY_HEIGHT)

    def tracking_websocket_url(self, task_id: str, ws_base_url: Optional[str] = None) -> str:
        path = self.WS_TRACKING_PATH_TEMPLATE.format(task_id=task_id)
        if not path.startswith("/"):
            path = "/" + path
        return f"{(ws_base_url or self.WS_BASE_URL).rstrip('/')}{path}"

    def cameras_for_environment(self, env_id: str) -> List[CameraDisplayConfig]:
        return [cam for cam in self.CAMERAS if cam.env_id == env_id]


settings = Settings()
