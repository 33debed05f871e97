from __future__ import annotations

import logging
from pathlib import Path
from threading import Lock
from typing import Callable, Dict, List, Optional
from uuid import UUID

from pydantic import ValidationError as PydanticValidationError

from shortvideo.errors import ConflictError, NotFoundError
from shortvideo.models.domain import JobStatus, VideoJob


class VideoJobRepository:
    """In-memory job store, optionally mirrored to one JSON snapshot per job.

    Every read returns a deep copy so callers never observe a record while the
    worker is mutating it.
    """

    def __init__(self, snapshot_dir: Path | None = None, logger: Optional[logging.Logger] = None) -> None:
        self._jobs: Dict[UUID, VideoJob] = {}
        self._lock = Lock()
        self._snapshot_dir = snapshot_dir
        self.log = logger or logging.getLogger(__name__)
        if self._snapshot_dir is not None:
            self._snapshot_dir.mkdir(parents=True, exist_ok=True)
            self._load_snapshots()

    def save(self, job: VideoJob) -> VideoJob:
        with self._lock:
            self._jobs[job.id] = job.model_copy(deep=True)
            self._write_snapshot(job)
        return job

    def get(self, job_id: UUID) -> VideoJob | None:
        with self._lock:
            job = self._jobs.get(job_id)
            return job.model_copy(deep=True) if job else None

    def list(self) -> List[VideoJob]:
        with self._lock:
            return [job.model_copy(deep=True) for job in self._jobs.values()]

    def update(self, job_id: UUID, mutate: Callable[[VideoJob], None]) -> VideoJob:
        """Apply ``mutate`` to the stored record atomically and return a copy of the result."""
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                raise NotFoundError(f"video job {job_id} not found")
            updated = job.model_copy(deep=True)
            mutate(updated)
            self._jobs[job_id] = updated
            self._write_snapshot(updated)
            return updated.model_copy(deep=True)

    def delete(self, job_id: UUID) -> VideoJob:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                raise NotFoundError(f"video job {job_id} not found")
            if job.status == JobStatus.PROCESSING:
                raise ConflictError(f"video job {job_id} is processing and cannot be deleted")
            del self._jobs[job_id]
            self._remove_snapshot(job_id)
            return job

    def _snapshot_path(self, job_id: UUID) -> Path:
        assert self._snapshot_dir is not None
        return self._snapshot_dir / f"{job_id}.json"

    def _write_snapshot(self, job: VideoJob) -> None:
        if self._snapshot_dir is None:
            return
        path = self._snapshot_path(job.id)
        tmp_path = path.with_suffix(".json.tmp")
        tmp_path.write_text(job.model_dump_json(indent=2), encoding="utf-8")
        tmp_path.replace(path)

    def _remove_snapshot(self, job_id: UUID) -> None:
        if self._snapshot_dir is None:
            return
        self._snapshot_path(job_id).unlink(missing_ok=True)

    def _load_snapshots(self) -> None:
        assert self._snapshot_dir is not None
        for path in sorted(self._snapshot_dir.glob("*.json")):
            try:
                job = VideoJob.model_validate_json(path.read_text(encoding="utf-8"))
            except (OSError, PydanticValidationError):
                self.log.warning("job snapshot parse failed", extra={"path": str(path)}, exc_info=True)
                continue
            self._jobs[job.id] = job
        if self._jobs:
            self.log.info("job snapshots loaded", extra={"count": len(self._jobs)})
