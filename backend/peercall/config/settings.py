from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class Settings(BaseSettings):
    # Relay service (server side)
    API_HOST: str = Field("0.0.0.0")
    API_PORT: int = Field(8080)
    LOG_LEVEL: str = Field("INFO")

    # Relay endpoint the client connects to; identity is appended as ?userId=
    RELAY_WS_URL: str = Field("ws://localhost:8080/call-signaling")

    # Network-path discovery (public rendezvous servers, no credentials)
    STUN_SERVERS: List[str] = Field(
        default_factory=lambda: [
            "stun:stun.l.google.com:19302",
            "stun:stun1.l.google.com:19302",
        ]
    )

    # Signaling reconnection
    RECONNECT_BASE_DELAY_SEC: float = Field(1.0)
    RECONNECT_MAX_DELAY_SEC: float = Field(30.0)
    RECONNECT_STABLE_AFTER_SEC: float = Field(10.0)

    # How long the error status is shown before reverting to idle
    CALL_ERROR_REVERT_SEC: float = Field(3.0)

    # Local capture devices (ffmpeg input names, see aiortc MediaPlayer)
    MEDIA_VIDEO_DEVICE: Optional[str] = Field("/dev/video0")
    MEDIA_VIDEO_FORMAT: Optional[str] = Field("v4l2")
    MEDIA_VIDEO_SIZE: str = Field("640x480")
    MEDIA_VIDEO_FRAMERATE: int = Field(30)
    MEDIA_AUDIO_DEVICE: Optional[str] = Field("default")
    MEDIA_AUDIO_FORMAT: Optional[str] = Field("pulse")

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        env_file_encoding="utf-8"
    )


settings = Settings()
