from __future__ import annotations

import logging
import threading
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Protocol
from uuid import UUID, uuid4

from shortvideo.clients.pexels import PexelsClient
from shortvideo.clients.renderer import MoviePyRenderer
from shortvideo.clients.tts import KokoroClient
from shortvideo.clients.whisper import LocalWhisperClient
from shortvideo.config import Settings
from shortvideo.errors import ConflictError, NotFoundError
from shortvideo.models.api import VideoCreateRequest
from shortvideo.models.domain import (
    JobStatus,
    JobStatusHistory,
    MusicMood,
    ResolvedScene,
    VideoJob,
    Voice,
)
from shortvideo.models.render import RenderSpec
from shortvideo.queue.queue import BaseQueue
from shortvideo.services.cancellation import CancellationToken
from shortvideo.services.footage import StockFootageSelector
from shortvideo.services.music import MusicSelector
from shortvideo.services.narration import NarrationResolver
from shortvideo.services.render_spec import build_render_spec
from shortvideo.storage.outputs import LocalOutputStorage
from shortvideo.storage.repository import VideoJobRepository


class RenderBackend(Protocol):
    def render(self, spec: RenderSpec, output_path: Path) -> Path: ...


class VideoService:
    def __init__(
        self,
        repo: VideoJobRepository,
        outputs: LocalOutputStorage,
        narration: NarrationResolver,
        footage: StockFootageSelector,
        music: MusicSelector,
        renderer: RenderBackend,
        render_fps: int = 25,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.repo = repo
        self.outputs = outputs
        self.narration = narration
        self.footage = footage
        self.music = music
        self.renderer = renderer
        self.render_fps = render_fps
        self.queue: BaseQueue | None = None
        self.log = logger or logging.getLogger(__name__)
        self._tokens: Dict[UUID, CancellationToken] = {}
        self._tokens_lock = threading.Lock()

    @classmethod
    def from_settings(cls, repo: VideoJobRepository, settings: Settings) -> "VideoService":
        log = logging.getLogger(__name__)
        narration = NarrationResolver(
            tts=KokoroClient(
                base_url=settings.tts_base_url,
                model=settings.tts_model,
                timeout=settings.tts_timeout,
                logger=log,
            ),
            aligner=LocalWhisperClient(model_name=settings.whisper_model, logger=log),
            max_words=settings.caption_max_words,
            max_duration_ms=settings.caption_max_duration_ms,
            logger=log,
        )
        footage = StockFootageSelector(
            executor=PexelsClient(
                api_key=settings.pexels_api_key,
                base_url=settings.pexels_base_url,
                per_page=settings.pexels_per_page,
                logger=log,
            ),
            default_timeout_ms=settings.footage_timeout_ms,
            max_attempts=settings.footage_max_attempts,
            fallback_terms=settings.footage_fallback_terms,
            logger=log,
        )
        renderer = MoviePyRenderer(
            download_timeout=settings.footage_download_timeout,
            caption_font=settings.caption_font,
            caption_font_size=settings.caption_font_size,
            logger=log,
        )
        return cls(
            repo=repo,
            outputs=LocalOutputStorage(settings.data_dir / "videos"),
            narration=narration,
            footage=footage,
            music=MusicSelector.from_index(settings.music_index_path, settings.music_dir, logger=log),
            renderer=renderer,
            render_fps=settings.render_fps,
            logger=log,
        )

    def bind_queue(self, queue: BaseQueue) -> None:
        self.queue = queue

    def create_job(self, payload: VideoCreateRequest) -> VideoJob:
        job = VideoJob(
            id=uuid4(),
            status=JobStatus.QUEUED,
            title=payload.title.strip(),
            description=payload.description.strip(),
            config=payload.config.to_config(),
            scenes=[scene.to_scene() for scene in payload.scenes],
            status_history=[JobStatusHistory(status=JobStatus.QUEUED, message="Job enqueued")],
        )
        self.repo.save(job)
        self.log.info("video job created", extra={"job_id": str(job.id), "scenes": len(job.scenes)})
        if self.queue is not None:
            self.queue.enqueue(job.id)
        return job

    def get_job(self, job_id: UUID) -> VideoJob:
        job = self.repo.get(job_id)
        if not job:
            raise NotFoundError(f"video job {job_id} not found")
        return job

    def list_jobs(self) -> List[VideoJob]:
        jobs = self.repo.list()
        jobs.sort(key=lambda job: job.created_at, reverse=True)
        return jobs

    def delete_job(self, job_id: UUID) -> None:
        job = self.repo.delete(job_id)
        removed = self.outputs.delete(job_id)
        if job.output_ref:
            removed = self.outputs.discard(Path(job.output_ref)) or removed
        self.log.info("video job deleted", extra={"job_id": str(job_id), "output_removed": removed})

    def get_output_path(self, job_id: UUID) -> Path:
        job = self.get_job(job_id)
        if job.status != JobStatus.READY or not job.output_ref:
            raise NotFoundError(f"video job {job_id} has no rendered output")
        path = Path(job.output_ref)
        if not path.is_file():
            raise NotFoundError(f"rendered output for video job {job_id} is missing")
        return path

    def list_voices(self) -> List[Voice]:
        return list(Voice)

    def list_music_tags(self) -> List[MusicMood]:
        return self.music.moods()

    def recover_jobs(self) -> None:
        """Re-enqueue queued jobs and fail jobs a previous process left half done."""
        for job in sorted(self.repo.list(), key=lambda item: item.created_at):
            if job.status == JobStatus.PROCESSING:
                self._transition(job.id, JobStatus.FAILED, "Video generation failed", error="interrupted by restart")
            elif job.status == JobStatus.QUEUED and self.queue is not None:
                self.queue.enqueue(job.id)

    def cancel_active_jobs(self) -> None:
        with self._tokens_lock:
            tokens = list(self._tokens.items())
        for job_id, token in tokens:
            self.log.warning("cancelling active video job", extra={"job_id": str(job_id)})
            token.cancel()

    def shutdown(self) -> None:
        self.cancel_active_jobs()
        if self.queue is not None:
            self.queue.stop()

    def process_job(self, job_id: UUID) -> None:
        try:
            job = self.repo.update(job_id, self._claim)
        except NotFoundError:
            self.log.info("video job deleted before processing", extra={"job_id": str(job_id)})
            return
        except ConflictError:
            self.log.warning("video job is not queued, skipping", extra={"job_id": str(job_id)})
            return

        token = CancellationToken()
        with self._tokens_lock:
            self._tokens[job_id] = token
        try:
            output = self._pipeline(job, token)
        except Exception as exc:
            self.log.exception("video job failed", extra={"job_id": str(job_id)})
            self.outputs.delete(job_id)
            self._transition(job_id, JobStatus.FAILED, "Video generation failed", error=str(exc) or type(exc).__name__)
        else:
            self._transition(job_id, JobStatus.READY, "Video is ready", output_ref=str(output))
            self.log.info("video job ready", extra={"job_id": str(job_id), "output": str(output)})
        finally:
            with self._tokens_lock:
                self._tokens.pop(job_id, None)

    def _claim(self, job: VideoJob) -> None:
        if job.status != JobStatus.QUEUED:
            raise ConflictError(f"video job {job.id} is {job.status.value}")
        self._apply_status(job, JobStatus.PROCESSING, "Processing started")

    def _pipeline(self, job: VideoJob, token: CancellationToken) -> Path:
        config = job.config
        resolved: List[ResolvedScene] = []
        used_video_ids: set[str] = set()
        last_index = len(job.scenes) - 1
        for index, scene in enumerate(job.scenes):
            token.raise_if_cancelled(f"narration of scene {index + 1}")
            self.log.debug("resolving narration", extra={"job_id": str(job.id), "scene": index + 1})
            narration = self.narration.resolve(scene.text, config.voice)

            token.raise_if_cancelled(f"footage of scene {index + 1}")
            min_duration_s = narration.audio.duration_ms / 1000
            if index == last_index:
                min_duration_s += config.padding_back_ms / 1000
            video = self.footage.find_video(
                scene.search_terms,
                min_duration_s,
                exclude_ids=used_video_ids,
                orientation=config.orientation,
            )
            used_video_ids.add(video.id)
            resolved.append(
                ResolvedScene(
                    text=scene.text,
                    search_terms=scene.search_terms,
                    audio=narration.audio,
                    captions=narration.captions,
                    video=video,
                )
            )

        token.raise_if_cancelled("music selection")
        total_ms = sum(scene.audio.duration_ms for scene in resolved if scene.audio) + config.padding_back_ms
        track = self.music.select(config.music_mood, total_ms / 1000)

        token.raise_if_cancelled("render spec assembly")
        spec = build_render_spec(resolved, track, config, fps=self.render_fps)

        token.raise_if_cancelled("rendering")
        self.log.info(
            "rendering video job",
            extra={"job_id": str(job.id), "total_duration_ms": spec.total_duration_ms, "music": track.file},
        )
        return self.renderer.render(spec, self.outputs.path_for(job.id))

    def _transition(
        self,
        job_id: UUID,
        status: JobStatus,
        message: str,
        error: str | None = None,
        output_ref: str | None = None,
    ) -> VideoJob | None:
        try:
            return self.repo.update(
                job_id,
                lambda job: self._apply_status(job, status, message, error=error, output_ref=output_ref),
            )
        except NotFoundError:
            self.log.warning("video job vanished during update", extra={"job_id": str(job_id)})
            return None

    def _apply_status(
        self,
        job: VideoJob,
        status: JobStatus,
        message: str,
        error: str | None = None,
        output_ref: str | None = None,
    ) -> None:
        job.status = status
        job.error = error if status == JobStatus.FAILED else None
        job.output_ref = output_ref if status == JobStatus.READY else None
        job.status_history.append(JobStatusHistory(status=status, message=message))
        job.updated_at = datetime.utcnow()
