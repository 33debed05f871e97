from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class JobStatus(str, Enum):
    QUEUED = "queued"
    PROCESSING = "processing"
    READY = "ready"
    FAILED = "failed"


class MusicMood(str, Enum):
    SAD = "sad"
    MELANCHOLIC = "melancholic"
    HAPPY = "happy"
    EUPHORIC = "euphoric"
    EXCITED = "excited"
    CHILL = "chill"
    UNEASY = "uneasy"
    ANGRY = "angry"
    DARK = "dark"
    HOPEFUL = "hopeful"
    CONTEMPLATIVE = "contemplative"
    FUNNY = "funny"


class CaptionPosition(str, Enum):
    TOP = "top"
    CENTER = "center"
    BOTTOM = "bottom"


class Orientation(str, Enum):
    PORTRAIT = "portrait"
    LANDSCAPE = "landscape"
    SQUARE = "square"


class MusicVolume(str, Enum):
    MUTED = "muted"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Voice(str, Enum):
    AF_HEART = "af_heart"
    AF_ALLOY = "af_alloy"
    AF_AOEDE = "af_aoede"
    AF_BELLA = "af_bella"
    AF_JESSICA = "af_jessica"
    AF_KORE = "af_kore"
    AF_NICOLE = "af_nicole"
    AF_NOVA = "af_nova"
    AF_RIVER = "af_river"
    AF_SARAH = "af_sarah"
    AF_SKY = "af_sky"
    AM_ADAM = "am_adam"
    AM_ECHO = "am_echo"
    AM_ERIC = "am_eric"
    AM_FENRIR = "am_fenrir"
    AM_LIAM = "am_liam"
    AM_MICHAEL = "am_michael"
    AM_ONYX = "am_onyx"
    AM_PUCK = "am_puck"
    AM_SANTA = "am_santa"
    BF_EMMA = "bf_emma"
    BF_ISABELLA = "bf_isabella"
    BF_ALICE = "bf_alice"
    BF_LILY = "bf_lily"
    BM_GEORGE = "bm_george"
    BM_LEWIS = "bm_lewis"
    BM_DANIEL = "bm_daniel"
    BM_FABLE = "bm_fable"


class RenderConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    padding_back_ms: int = Field(default=1500, ge=0)
    music_mood: MusicMood = MusicMood.CHILL
    caption_position: CaptionPosition = CaptionPosition.BOTTOM
    caption_background_color: str = "blue"
    voice: Voice = Voice.AF_HEART
    orientation: Orientation = Orientation.PORTRAIT
    music_volume: MusicVolume = MusicVolume.HIGH


class Scene(BaseModel):
    text: str
    search_terms: List[str]


class Caption(BaseModel):
    text: str
    start_ms: int
    end_ms: int


class WordTiming(BaseModel):
    word: str
    start_ms: int
    end_ms: int


class NarrationAudio(BaseModel):
    data: bytes
    duration_ms: int


class StockVideoAsset(BaseModel):
    id: str
    url: str
    width_px: int
    height_px: int
    duration_s: float


class ResolvedScene(BaseModel):
    text: str
    search_terms: List[str]
    audio: Optional[NarrationAudio] = None
    captions: List[Caption] = Field(default_factory=list)
    video: Optional[StockVideoAsset] = None


class MusicTrack(BaseModel):
    file: str
    mood: MusicMood
    duration_s: float


class JobStatusHistory(BaseModel):
    status: JobStatus
    message: str
    occurred_at: datetime = Field(default_factory=datetime.utcnow)


class VideoJob(BaseModel):
    id: UUID
    status: JobStatus
    title: str = ""
    description: str = ""
    config: RenderConfig
    scenes: List[Scene]
    status_history: List[JobStatusHistory] = Field(default_factory=list)
    error: Optional[str] = None
    output_ref: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
