from __future__ import annotations

import logging
import os
import pathlib
import shutil
import subprocess
import tempfile
from pathlib import Path
from typing import Any, Optional

import httpx
from moviepy import (
    AudioFileClip,
    CompositeAudioClip,
    VideoFileClip,
    afx,
    concatenate_videoclips,
    vfx,
)

from shortvideo.errors import RenderError
from shortvideo.models.domain import CaptionPosition
from shortvideo.models.render import RenderScene, RenderSpec

# ASS numpad alignment
CAPTION_ALIGNMENT = {
    CaptionPosition.TOP: 8,
    CaptionPosition.CENTER: 5,
    CaptionPosition.BOTTOM: 2,
}

NAMED_COLORS = {
    "black": "#000000",
    "white": "#FFFFFF",
    "red": "#FF0000",
    "green": "#008000",
    "blue": "#0000FF",
    "yellow": "#FFFF00",
    "orange": "#FFA500",
    "purple": "#800080",
    "pink": "#FFC0CB",
    "gray": "#808080",
    "grey": "#808080",
}


class MoviePyRenderer:
    """Composites stock footage, narration, music and burned-in captions into an mp4."""

    def __init__(
        self,
        download_timeout: float = 60.0,
        caption_font: str = "Arial",
        caption_font_size: int = 96,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.download_timeout = download_timeout
        self.caption_font = caption_font
        self.caption_font_size = caption_font_size
        self.log = logger or logging.getLogger(__name__)

    def render(self, spec: RenderSpec, output_path: Path) -> Path:
        self.log.info(
            "rendering video",
            extra={
                "scenes": len(spec.scenes),
                "total_duration_ms": spec.total_duration_ms,
                "orientation": spec.orientation.value,
            },
        )
        try:
            with tempfile.TemporaryDirectory() as tmpdir:
                composed = self._compose(spec, tmpdir)
                subtitles_path = os.path.join(tmpdir, "captions.srt")
                with open(subtitles_path, "w", encoding="utf-8") as f:
                    f.write(self._build_srt(spec))
                burned = os.path.join(tmpdir, "final_with_captions.mp4")
                self._burn_captions(spec, composed, subtitles_path, burned)
                output_path.parent.mkdir(parents=True, exist_ok=True)
                shutil.move(burned, output_path)
        except RenderError:
            raise
        except Exception as exc:
            raise RenderError(f"video render failed: {exc}") from exc
        return output_path

    def _compose(self, spec: RenderSpec, tmpdir: str) -> str:
        total_s = spec.total_duration_ms / 1000
        resources: list[Any] = []
        try:
            clips = []
            narration = []
            for scene in spec.scenes:
                duration_s = scene.duration_ms / 1000
                if scene.index == len(spec.scenes) - 1:
                    duration_s += spec.padding_back_ms / 1000
                video_path = self._download_video(scene, tmpdir)
                clip = VideoFileClip(video_path).without_audio()
                resources.append(clip)
                clips.append(self._fit(clip, spec.width_px, spec.height_px, duration_s))

                audio_path = os.path.join(tmpdir, f"scene-{scene.index + 1}.wav")
                with open(audio_path, "wb") as f:
                    f.write(scene.audio.data)
                voice = AudioFileClip(audio_path)
                resources.append(voice)
                narration.append(voice.with_start(scene.start_ms / 1000))

            audio_layers = list(narration)
            music = self._music_layer(spec, total_s)
            if music is not None:
                resources.append(music)
                audio_layers.append(music)

            video = concatenate_videoclips(clips, method="compose")
            video = video.with_audio(CompositeAudioClip(audio_layers).with_duration(total_s))
            video = video.with_duration(total_s)
            output = os.path.join(tmpdir, "composed.mp4")
            video.write_videofile(
                output,
                fps=spec.fps,
                codec="libx264",
                audio_codec="aac",
                ffmpeg_params=["-pix_fmt", "yuv420p"],
                logger=None,
            )
            video.close()
            return output
        finally:
            for resource in resources:
                try:
                    resource.close()
                except Exception:  # pragma: no cover
                    self.log.debug("clip close failed", exc_info=True)

    def _fit(self, clip: VideoFileClip, width: int, height: int, duration_s: float):
        scale = max(width / clip.w, height / clip.h)
        clip = clip.resized(scale)
        clip = clip.cropped(x_center=clip.w / 2, y_center=clip.h / 2, width=width, height=height)
        if clip.duration >= duration_s:
            return clip.subclipped(0, duration_s)
        return clip.with_effects([vfx.Loop(duration=duration_s)])

    def _music_layer(self, spec: RenderSpec, total_s: float):
        if spec.music.gain <= 0:
            return None
        if not os.path.isfile(spec.music.file):
            self.log.warning("music file missing, rendering without music", extra={"file": spec.music.file})
            return None
        music = AudioFileClip(spec.music.file)
        if spec.music.loop or music.duration < total_s:
            music = music.with_effects([afx.AudioLoop(duration=total_s)])
        else:
            music = music.subclipped(0, total_s)
        return music.with_volume_scaled(spec.music.gain)

    def _download_video(self, scene: RenderScene, tmpdir: str) -> str:
        source = scene.video.url
        timeout = httpx.Timeout(connect=10.0, read=self.download_timeout, write=10.0, pool=self.download_timeout)
        suffix = pathlib.Path(httpx.URL(source).path).suffix or ".mp4"
        path = os.path.join(tmpdir, f"scene-{scene.index + 1}{suffix}")
        try:
            with httpx.stream("GET", source, timeout=timeout, follow_redirects=True) as resp:
                resp.raise_for_status()
                with open(path, "wb") as f:
                    for chunk in resp.iter_bytes():
                        if chunk:
                            f.write(chunk)
        except httpx.HTTPError as exc:
            raise RenderError(f"stock footage download failed for video {scene.video.id}: {exc}") from exc
        return path

    def _build_srt(self, spec: RenderSpec) -> str:
        blocks: list[str] = []
        counter = 1
        for scene in spec.scenes:
            for caption in scene.captions:
                start = self._format_timestamp(scene.start_ms + caption.start_ms)
                end = self._format_timestamp(scene.start_ms + caption.end_ms)
                blocks.append(f"{counter}\n{start} --> {end}\n{caption.text}\n")
                counter += 1
        return "\n".join(blocks)

    def _burn_captions(self, spec: RenderSpec, source: str, subtitles_path: str, target: str) -> None:
        subs_posix = pathlib.Path(subtitles_path).as_posix()
        vf = f"subtitles='{subs_posix}':force_style='{self._ffmpeg_force_style(spec)}'"
        cmd = [
            "ffmpeg",
            "-y",
            "-i",
            source,
            "-vf",
            vf,
            "-c:v",
            "libx264",
            "-pix_fmt",
            "yuv420p",
            "-c:a",
            "copy",
            target,
        ]
        try:
            subprocess.run(cmd, check=True, capture_output=True)
        except (OSError, subprocess.CalledProcessError) as exc:
            stderr = getattr(exc, "stderr", b"") or b""
            self.log.error("ffmpeg caption burn-in failed", extra={"stderr": stderr.decode("utf-8", "replace")[-2000:]})
            raise RenderError("caption burn-in failed") from exc

    def _ffmpeg_force_style(self, spec: RenderSpec) -> str:
        parts = [
            f"Fontname={self.caption_font}",
            f"Fontsize={self._scaled_font_size(spec)}",
            "PrimaryColour=&H00FFFFFF",
            "Bold=-1",
            "BorderStyle=3",
            "Outline=8",
            "Shadow=0",
            f"BackColour={self._ass_color(spec.caption_background_color)}",
            f"OutlineColour={self._ass_color(spec.caption_background_color)}",
            f"Alignment={CAPTION_ALIGNMENT[spec.caption_position]}",
            "MarginV=60",
        ]
        return ",".join(parts)

    def _scaled_font_size(self, spec: RenderSpec) -> int:
        # libass scales styles against a 288px high script
        return max(8, round(self.caption_font_size * 288 / spec.height_px))

    def _ass_color(self, value: str) -> str:
        hex_value = NAMED_COLORS.get(value.strip().lower(), value).lstrip("#")
        if len(hex_value) != 6:
            return "&H00FF0000"
        r = hex_value[0:2]
        g = hex_value[2:4]
        b = hex_value[4:6]
        return f"&H00{b}{g}{r}"

    def _format_timestamp(self, total_ms: int) -> str:
        total_ms = max(0, int(total_ms))
        hours = total_ms // 3_600_000
        minutes = (total_ms % 3_600_000) // 60_000
        secs = (total_ms % 60_000) // 1000
        millis = total_ms % 1000
        return f"{hours:02}:{minutes:02}:{secs:02},{millis:03}"
