from __future__ import annotations

import logging
import tempfile
import threading
from typing import Optional

from shortvideo.errors import ProviderError
from shortvideo.models.domain import WordTiming


class LocalWhisperClient:
    def __init__(
        self,
        model_name: str = "base.en",
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.model_name = model_name
        self.log = logger or logging.getLogger(__name__)
        self._model = None
        self._lock = threading.Lock()

    def _load_model(self):
        if self._model is None:
            import whisper

            self._model = whisper.load_model(self.model_name)
            self.log.info("local whisper model loaded", extra={"model": self.model_name})
        return self._model

    def align(self, audio: bytes, text: str) -> list[WordTiming]:
        # one model instance, one transcription at a time
        with self._lock:
            model = self._load_model()
            with tempfile.NamedTemporaryFile(suffix=".wav") as tmp:
                tmp.write(audio)
                tmp.flush()
                try:
                    result = model.transcribe(
                        tmp.name,
                        task="transcribe",
                        word_timestamps=True,
                        initial_prompt=text,
                        verbose=False,
                    )
                except Exception as exc:
                    raise ProviderError(f"word alignment failed: {exc}") from exc
        words: list[WordTiming] = []
        for segment in result.get("segments", []):
            for item in segment.get("words", []):
                word = (item.get("word") or "").strip()
                if not word:
                    continue
                words.append(
                    WordTiming(
                        word=word,
                        start_ms=int(round(float(item["start"]) * 1000)),
                        end_ms=int(round(float(item["end"]) * 1000)),
                    )
                )
        self.log.info(
            "whisper alignment completed (local)",
            extra={"model": self.model_name, "words": len(words)},
        )
        return words
