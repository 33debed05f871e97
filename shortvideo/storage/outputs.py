from __future__ import annotations

from pathlib import Path
from uuid import UUID


class LocalOutputStorage:
    """One rendered artifact per job id under ``root``."""

    def __init__(self, root: Path) -> None:
        self.root = root
        self.root.mkdir(parents=True, exist_ok=True)

    def path_for(self, job_id: UUID) -> Path:
        return self.root / f"{job_id}.mp4"

    def exists(self, job_id: UUID) -> bool:
        return self.path_for(job_id).is_file()

    def delete(self, job_id: UUID) -> bool:
        return self.discard(self.path_for(job_id))

    def discard(self, path: Path) -> bool:
        if not path.is_file():
            return False
        path.unlink()
        return True
