from __future__ import annotations

import io
import logging
import wave
from typing import Optional

import httpx

from shortvideo.errors import ProviderError
from shortvideo.models.domain import Voice


class KokoroClient:
    """Client for a Kokoro server exposing the OpenAI compatible speech endpoint."""

    def __init__(
        self,
        base_url: str = "http://localhost:8880",
        model: str = "kokoro",
        timeout: float = 120.0,
        transport: httpx.BaseTransport | None = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.timeout = timeout
        self.transport = transport
        self.log = logger or logging.getLogger(__name__)

    def synthesize(self, text: str, voice: Voice) -> tuple[bytes, int]:
        url = f"{self.base_url}/v1/audio/speech"
        payload = {
            "model": self.model,
            "input": text,
            "voice": voice.value,
            "response_format": "wav",
            "speed": 1.0,
        }
        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                response = client.post(url, json=payload)
                response.raise_for_status()
                audio = response.content
        except httpx.HTTPError as exc:
            raise ProviderError(f"narration synthesis failed: {exc}") from exc
        duration_ms = wav_duration_ms(audio)
        self.log.info(
            "kokoro synthesis completed",
            extra={"voice": voice.value, "content_length": len(audio), "duration_ms": duration_ms},
        )
        return audio, duration_ms


def wav_duration_ms(audio: bytes) -> int:
    try:
        with wave.open(io.BytesIO(audio), "rb") as reader:
            frames = reader.getnframes()
            rate = reader.getframerate()
    except (wave.Error, EOFError) as exc:
        raise ProviderError("narration service returned invalid WAV audio") from exc
    if rate <= 0:
        raise ProviderError("narration service returned audio without a sample rate")
    return int(round(frames * 1000 / rate))
