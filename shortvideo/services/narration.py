from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Protocol

from shortvideo.errors import ProviderError, ShortVideoError
from shortvideo.models.domain import Caption, NarrationAudio, Voice, WordTiming

SENTENCE_END = (".", "!", "?", ";", ":")


class NarrationEngine(Protocol):
    def synthesize(self, text: str, voice: Voice) -> tuple[bytes, int]: ...


class AlignmentEngine(Protocol):
    def align(self, audio: bytes, text: str) -> list[WordTiming]: ...


@dataclass
class SceneNarration:
    audio: NarrationAudio
    captions: List[Caption]


def build_captions(
    words: Iterable[WordTiming],
    duration_ms: int,
    max_words: int = 6,
    max_duration_ms: int = 2_500,
) -> List[Caption]:
    """Group word timings into caption cues.

    A cue closes once it holds ``max_words`` words, once adding the next word
    would stretch it past ``max_duration_ms``, or after a sentence-ending word.
    Timings are clamped to the audio and made monotonic, so the cues come out
    ordered, non-overlapping and never past ``duration_ms``.
    """
    if duration_ms <= 0:
        return []
    normalized: list[tuple[str, int, int]] = []
    cursor = 0
    for timing in sorted(words, key=lambda w: (w.start_ms, w.end_ms)):
        text = timing.word.strip()
        if not text:
            continue
        start = min(max(timing.start_ms, cursor), duration_ms)
        end = min(max(timing.end_ms, start), duration_ms)
        normalized.append((text, start, end))
        cursor = end
    if not normalized:
        return []

    groups: list[list[tuple[str, int, int]]] = []
    current: list[tuple[str, int, int]] = []
    for word in normalized:
        if current and (
            len(current) >= max_words
            or word[2] - current[0][1] > max_duration_ms
            or current[-1][0].endswith(SENTENCE_END)
        ):
            groups.append(current)
            current = []
        current.append(word)
    groups.append(current)

    cues: List[Caption] = []
    pending: list[str] = []
    for group in groups:
        text = " ".join(pending + [word[0] for word in group])
        start, end = group[0][1], group[-1][2]
        if end > start:
            cues.append(Caption(text=text, start_ms=start, end_ms=end))
            pending = []
        elif cues:
            last = cues[-1]
            cues[-1] = Caption(text=f"{last.text} {text}", start_ms=last.start_ms, end_ms=last.end_ms)
        else:
            # zero-length leading cue, carried into the next one
            pending = text.split(" ")
    if pending:
        return [Caption(text=" ".join(pending), start_ms=0, end_ms=duration_ms)]
    return cues


class NarrationResolver:
    def __init__(
        self,
        tts: NarrationEngine,
        aligner: AlignmentEngine,
        max_words: int = 6,
        max_duration_ms: int = 2_500,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.tts = tts
        self.aligner = aligner
        self.max_words = max_words
        self.max_duration_ms = max_duration_ms
        self.log = logger or logging.getLogger(__name__)

    def resolve(self, scene_text: str, voice: Voice) -> SceneNarration:
        try:
            audio_bytes, duration_ms = self.tts.synthesize(scene_text, voice)
        except ShortVideoError:
            raise
        except Exception as exc:
            raise ProviderError(f"narration synthesis failed: {exc}") from exc
        if duration_ms <= 0:
            raise ProviderError("narration synthesis returned empty audio")
        try:
            words = self.aligner.align(audio_bytes, scene_text)
        except ShortVideoError:
            raise
        except Exception as exc:
            raise ProviderError(f"word alignment failed: {exc}") from exc

        captions = build_captions(words, duration_ms, self.max_words, self.max_duration_ms)
        if not captions:
            self.log.warning("alignment returned no words, using a single caption", extra={"duration_ms": duration_ms})
            captions = [Caption(text=scene_text, start_ms=0, end_ms=duration_ms)]
        return SceneNarration(
            audio=NarrationAudio(data=audio_bytes, duration_ms=duration_ms),
            captions=captions,
        )
