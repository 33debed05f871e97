from __future__ import annotations

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .domain import (
    CaptionPosition,
    JobStatus,
    MusicMood,
    MusicVolume,
    Orientation,
    RenderConfig,
    Scene,
    VideoJob,
    Voice,
)


class SceneInput(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    text: str = Field(..., validation_alias="text")
    search_terms: List[str] = Field(..., validation_alias="searchTerms")

    @field_validator("text")
    @classmethod
    def validate_text(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("text must not be empty")
        return value.strip()

    @field_validator("search_terms")
    @classmethod
    def validate_search_terms(cls, value: List[str]) -> List[str]:
        terms = [term.strip() for term in value if term and term.strip()]
        if not terms:
            raise ValueError("searchTerms must contain at least one term")
        return terms

    def to_scene(self) -> Scene:
        return Scene(text=self.text, search_terms=self.search_terms)


class RenderConfigInput(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    padding_back: int = Field(default=1500, ge=0, validation_alias="paddingBack")
    music: MusicMood = Field(default=MusicMood.CHILL, validation_alias="music")
    caption_position: CaptionPosition = Field(default=CaptionPosition.BOTTOM, validation_alias="captionPosition")
    caption_background_color: str = Field(default="blue", min_length=1, validation_alias="captionBackgroundColor")
    voice: Voice = Field(default=Voice.AF_HEART, validation_alias="voice")
    orientation: Orientation = Field(default=Orientation.PORTRAIT, validation_alias="orientation")
    music_volume: MusicVolume = Field(default=MusicVolume.HIGH, validation_alias="musicVolume")

    def to_config(self) -> RenderConfig:
        return RenderConfig(
            padding_back_ms=self.padding_back,
            music_mood=self.music,
            caption_position=self.caption_position,
            caption_background_color=self.caption_background_color,
            voice=self.voice,
            orientation=self.orientation,
            music_volume=self.music_volume,
        )


class VideoCreateRequest(BaseModel):
    title: str = ""
    description: str = ""
    scenes: List[SceneInput] = Field(..., min_length=1)
    config: RenderConfigInput = Field(default_factory=RenderConfigInput)


class VideoCreateResponse(BaseModel):
    video_id: UUID = Field(serialization_alias="videoId")


class VideoStatusResponse(BaseModel):
    id: UUID
    status: JobStatus
    title: str
    description: str
    created_at: datetime = Field(serialization_alias="createdAt")
    error: Optional[str] = None

    @classmethod
    def from_job(cls, job: VideoJob) -> "VideoStatusResponse":
        return cls(
            id=job.id,
            status=job.status,
            title=job.title,
            description=job.description,
            created_at=job.created_at,
            error=job.error,
        )


class VideoListResponse(BaseModel):
    videos: List[VideoStatusResponse]


class DeleteResponse(BaseModel):
    success: bool = True

