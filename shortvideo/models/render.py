from __future__ import annotations

from typing import List

from pydantic import BaseModel, ConfigDict

from .domain import CaptionPosition, Caption, MusicMood, MusicVolume, NarrationAudio, Orientation, StockVideoAsset


class RenderMusic(BaseModel):
    model_config = ConfigDict(frozen=True)

    file: str
    mood: MusicMood
    duration_s: float
    volume: MusicVolume
    gain: float
    loop: bool


class RenderScene(BaseModel):
    model_config = ConfigDict(frozen=True)

    index: int
    start_ms: int
    duration_ms: int
    audio: NarrationAudio
    captions: List[Caption]
    video: StockVideoAsset


class RenderSpec(BaseModel):
    """Fully resolved description of one video, handed to the render backend as is."""

    model_config = ConfigDict(frozen=True)

    orientation: Orientation
    width_px: int
    height_px: int
    fps: int
    total_duration_ms: int
    padding_back_ms: int
    caption_position: CaptionPosition
    caption_background_color: str
    music: RenderMusic
    scenes: List[RenderScene]
