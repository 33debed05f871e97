from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Iterable, List, Optional

from shortvideo.errors import NotFoundError, ValidationError
from shortvideo.models.domain import MusicMood, MusicTrack

DEFAULT_MUSIC_INDEX = [
    {"file": "Sly Sky - Telecasted.mp3", "mood": "melancholic", "duration_s": 152.0},
    {"file": "No.2 Remembering Her - Esther Abrami.mp3", "mood": "melancholic", "duration_s": 134.0},
    {"file": "Champion - Telecasted.mp3", "mood": "chill", "duration_s": 142.0},
    {"file": "Oh Please - Telecasted.mp3", "mood": "chill", "duration_s": 154.0},
    {"file": "Jetski - Telecasted.mp3", "mood": "uneasy", "duration_s": 144.0},
    {"file": "Phantom - Density & Time.mp3", "mood": "uneasy", "duration_s": 178.0},
    {"file": "Name The Time And Place - Telecasted.mp3", "mood": "excited", "duration_s": 139.0},
    {"file": "Delayed Baggage - Ryan Stasik.mp3", "mood": "euphoric", "duration_s": 160.0},
    {"file": "Like It Loud - Dyalla.mp3", "mood": "euphoric", "duration_s": 158.0},
    {"file": "Night Hunt - Jimena Contreras.mp3", "mood": "dark", "duration_s": 149.0},
    {"file": "Traversing - Godmode.mp3", "mood": "dark", "duration_s": 120.0},
    {"file": "Restless Heart - Jimena Contreras.mp3", "mood": "sad", "duration_s": 130.0},
    {"file": "Hopeless - Jimena Contreras.mp3", "mood": "sad", "duration_s": 168.0},
    {"file": "Touch - Anno Domini Beats.mp3", "mood": "happy", "duration_s": 165.0},
    {"file": "Cafecito por la Manana - Cumbia Deli.mp3", "mood": "happy", "duration_s": 184.0},
    {"file": "Buckle Up - Jeremy Korpas.mp3", "mood": "angry", "duration_s": 128.0},
    {"file": "Twin Engines - Jeremy Korpas.mp3", "mood": "angry", "duration_s": 122.0},
    {"file": "Hopeful - Nat Keefe.mp3", "mood": "hopeful", "duration_s": 175.0},
    {"file": "Hopeful Freedom - Asher Fulero.mp3", "mood": "hopeful", "duration_s": 180.0},
    {"file": "Crystaline - Quincas Moreira.mp3", "mood": "contemplative", "duration_s": 140.0},
    {"file": "Final Soliloquy - Asher Fulero.mp3", "mood": "contemplative", "duration_s": 172.0},
    {"file": "Seagull - Telecasted.mp3", "mood": "funny", "duration_s": 123.0},
    {"file": "Banjo Doops - Joel Cummins.mp3", "mood": "funny", "duration_s": 110.0},
]


class MusicSelector:
    """Picks background tracks from a read-only mood index."""

    def __init__(
        self,
        tracks: Iterable[MusicTrack],
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.tracks: List[MusicTrack] = list(tracks)
        self.log = logger or logging.getLogger(__name__)

    @classmethod
    def from_index(
        cls,
        index_path: Path | None,
        music_dir: Path,
        logger: Optional[logging.Logger] = None,
    ) -> "MusicSelector":
        if index_path is None:
            entries = DEFAULT_MUSIC_INDEX
        else:
            try:
                payload = json.loads(index_path.read_text(encoding="utf-8"))
            except (OSError, ValueError) as exc:
                raise ValidationError(f"music index {index_path} could not be read: {exc}") from exc
            entries = payload.get("tracks") if isinstance(payload, dict) else payload
            if not isinstance(entries, list):
                raise ValidationError(f"music index {index_path} has no track list")
        try:
            tracks = [
                MusicTrack(
                    file=str(music_dir / entry["file"]),
                    mood=MusicMood(entry["mood"]),
                    duration_s=float(entry["duration_s"]),
                )
                for entry in entries
            ]
        except (KeyError, TypeError, ValueError) as exc:
            raise ValidationError(f"music index contains an invalid track: {exc}") from exc
        return cls(tracks, logger=logger)

    def moods(self) -> List[MusicMood]:
        present = {track.mood for track in self.tracks}
        return [mood for mood in MusicMood if mood in present]

    def select(self, mood: MusicMood, min_duration_s: float) -> MusicTrack:
        candidates = [track for track in self.tracks if track.mood == mood]
        if not candidates:
            raise NotFoundError(f"no music track for mood '{mood.value}'")
        long_enough = [track for track in candidates if track.duration_s >= min_duration_s]
        if long_enough:
            return min(long_enough, key=lambda track: (track.duration_s, track.file))
        track = max(candidates, key=lambda track: (track.duration_s, track.file))
        self.log.info(
            "no music track long enough, backend will loop the longest",
            extra={"mood": mood.value, "file": track.file, "min_duration_s": min_duration_s},
        )
        return track
