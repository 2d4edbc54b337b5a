"""Application configuration."""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration loaded from ``CLIPSTACK_*`` environment variables."""

    storage_root: Path = Path("storage")
    temp_dir: Path | None = None
    bgm_dir: Path | None = None
    jobs_dir: Path | None = None
    output_dir: Path | None = None

    ffmpeg_binary: str = "ffmpeg"
    whisper_binary: str = "whisper"
    whisper_model: str = "tiny"
    tool_timeout_seconds: float = Field(default=900.0, gt=0)
    transcription_timeout_seconds: float = Field(default=900.0, gt=0)
    download_timeout_seconds: float = Field(default=120.0, gt=0)
    max_input_bytes: int = Field(default=500 * 1024 * 1024, gt=0)

    retention_seconds: float = Field(default=60.0, ge=0)
    # None keeps failed jobs until an operator removes them.
    failed_retention_seconds: float | None = Field(default=None, ge=0)
    max_concurrent_jobs: int = Field(default=2, ge=1)
    resume_queued_jobs: bool = True

    thumbnail_time_fraction: float = 0.3
    bgm_volume: float = Field(default=0.25, ge=0)
    watermark_text: str = "𝘼𝙙𝙫𝙖𝙮254"
    inline_results: bool = True

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    model_config = SettingsConfigDict(env_prefix="CLIPSTACK_", extra="ignore")

    @field_validator("thumbnail_time_fraction")
    @classmethod
    def _fraction_in_range(cls, value: float) -> float:
        if not 0 < value <= 1:
            raise ValueError("must be in (0, 1]")
        return value

    @model_validator(mode="after")
    def _derive_directories(self) -> "Settings":
        root = self.storage_root
        self.temp_dir = self.temp_dir or root / "temp"
        self.bgm_dir = self.bgm_dir or root / "bgm"
        self.jobs_dir = self.jobs_dir or root / "jobs"
        self.output_dir = self.output_dir or root / "output"
        return self

    def ensure_directories(self) -> None:
        for directory in (self.temp_dir, self.bgm_dir, self.jobs_dir, self.output_dir):
            directory.mkdir(parents=True, exist_ok=True)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
