from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="SHORTS_", env_file=".env", env_file_encoding="utf-8")

    app_name: str = "short-video-service"
    host: str = "0.0.0.0"
    port: int = 3123
    log_level: str = "INFO"

    # Local persisted layout
    data_dir: Path = Path("data")
    job_snapshots_enabled: bool = False

    # Worker
    concurrency: int = Field(default=1, ge=1)

    # Stock footage provider
    pexels_api_key: str = ""
    pexels_base_url: str = "https://api.pexels.com"
    pexels_per_page: int = Field(default=80, ge=1, le=80)
    footage_timeout_ms: int = Field(default=20_000, gt=0)
    footage_max_attempts: int = Field(default=3, ge=1)
    footage_fallback_terms: list[str] = Field(default_factory=list)
    footage_download_timeout: float = 60.0

    # Narration / alignment
    tts_base_url: str = "http://localhost:8880"
    tts_model: str = "kokoro"
    tts_timeout: float = 120.0
    whisper_model: str = "base.en"
    caption_max_words: int = Field(default=6, ge=1)
    caption_max_duration_ms: int = Field(default=2_500, gt=0)

    # Music library
    music_dir: Path = Path("static/music")
    music_index_path: Path | None = None

    # Render backend
    render_fps: int = 25
    caption_font: str = "Arial"
    caption_font_size: int = 96


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
