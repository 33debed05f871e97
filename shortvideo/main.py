from __future__ import annotations

import logging
import threading
from contextlib import asynccontextmanager
from typing import List
from uuid import UUID

from fastapi import Depends, FastAPI, HTTPException, status
from fastapi.responses import FileResponse

from shortvideo.config import Settings, get_settings
from shortvideo.errors import ConflictError, NotFoundError
from shortvideo.models.api import (
    DeleteResponse,
    VideoCreateRequest,
    VideoCreateResponse,
    VideoListResponse,
    VideoStatusResponse,
)
from shortvideo.models.domain import MusicMood, Voice
from shortvideo.queue.queue import LocalQueue
from shortvideo.services.video_service import VideoService
from shortvideo.storage.repository import VideoJobRepository

logging.basicConfig(
    level=get_settings().log_level.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)

_service: VideoService | None = None
_service_lock = threading.Lock()


@asynccontextmanager
async def lifespan(_: FastAPI):
    yield
    if _service is not None:
        _service.shutdown()


app = FastAPI(title="short-video-service", lifespan=lifespan)


def get_video_service(settings: Settings = Depends(get_settings)) -> VideoService:
    global _service
    if _service is not None:
        return _service
    with _service_lock:
        if _service is None:
            snapshot_dir = settings.data_dir / "jobs" if settings.job_snapshots_enabled else None
            repo = VideoJobRepository(snapshot_dir=snapshot_dir)
            service = VideoService.from_settings(repo, settings)
            service.bind_queue(LocalQueue(processor=service.process_job, concurrency=settings.concurrency))
            service.recover_jobs()
            _service = service
    return _service


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.post("/api/short-video", response_model=VideoCreateResponse, status_code=status.HTTP_202_ACCEPTED)
def create_video(
    payload: VideoCreateRequest,
    service: VideoService = Depends(get_video_service),
) -> VideoCreateResponse:
    job = service.create_job(payload)
    return VideoCreateResponse(video_id=job.id)


@app.get("/api/short-videos", response_model=VideoListResponse)
def list_videos(service: VideoService = Depends(get_video_service)) -> VideoListResponse:
    return VideoListResponse(videos=[VideoStatusResponse.from_job(job) for job in service.list_jobs()])


@app.get("/api/short-video/{job_id}/status", response_model=VideoStatusResponse)
def get_video_status(job_id: UUID, service: VideoService = Depends(get_video_service)) -> VideoStatusResponse:
    try:
        job = service.get_job(job_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return VideoStatusResponse.from_job(job)


@app.get("/api/short-video/{job_id}", response_class=FileResponse)
def get_video_content(job_id: UUID, service: VideoService = Depends(get_video_service)) -> FileResponse:
    try:
        path = service.get_output_path(job_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return FileResponse(path, media_type="video/mp4", filename=f"{job_id}.mp4")


@app.delete("/api/short-video/{job_id}", response_model=DeleteResponse)
def delete_video(job_id: UUID, service: VideoService = Depends(get_video_service)) -> DeleteResponse:
    try:
        service.delete_job(job_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except ConflictError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    return DeleteResponse()


@app.get("/api/voices", response_model=List[Voice])
def list_voices(service: VideoService = Depends(get_video_service)) -> List[Voice]:
    return service.list_voices()


@app.get("/api/music-tags", response_model=List[MusicMood])
def list_music_tags(service: VideoService = Depends(get_video_service)) -> List[MusicMood]:
    return service.list_music_tags()


def run() -> None:
    import uvicorn

    settings = get_settings()
    uvicorn.run(app, host=settings.host, port=settings.port)
