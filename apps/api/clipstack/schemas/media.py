"""Media metadata schemas."""

from pydantic import BaseModel


class VideoMetadata(BaseModel):
    duration: float = 0.0
    width: int = 0
    height: int = 0
    fps: float = 0.0
    audio_bitrate: int = 0
    aspect_ratio: float = 0.0
    file_size: int = 0


class ServiceIndex(BaseModel):
    status: str = "ok"
    message: str
    endpoints: dict[str, str]
