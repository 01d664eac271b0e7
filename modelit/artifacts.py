"""Filesystem-backed access to the per-job result files.

Every artifact lives at ``{results_root}/{job}/{job}{suffix}``. The layout is
shared with the external template search and modeling tools, so suffixes must
not change.
"""

from __future__ import annotations

import logging
import os
from enum import Enum
from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Union

from .identity import is_valid_job_name, validate_job_name

_logger = logging.getLogger("modelit.artifacts")


class ArtifactKind(str, Enum):
    SEQUENCE = ".fa"
    FULL_SEQUENCE = ".full.fa"
    TEMPLATES = ".man.templates"
    REPORT = ".report"
    TS_LOCK = ".TS.lock"
    MB_LOCK = ".MB.lock"
    STRUCTURE = ".reconstructed.pdb"
    RENUMBERED_STRUCTURE = ".renum.pdb"
    ERROR_LOG = ".err.log"
    OUTPUT_LOG = ".out.log"

    @property
    def suffix(self) -> str:
        return self.value


# Only files this server authors itself; everything else belongs to the external tools.
WRITABLE_KINDS = frozenset({ArtifactKind.SEQUENCE, ArtifactKind.FULL_SEQUENCE, ArtifactKind.TEMPLATES})


class JobExistsError(FileExistsError):
    """Raised when a job directory already exists at creation time."""


class ArtifactStore:
    def __init__(self, results_root: Path) -> None:
        self.results_root = Path(results_root)

    # -- paths -------------------------------------------------------------
    def job_dir(self, job: str) -> Path:
        return self.results_root / validate_job_name(job)

    def path(self, job: str, kind: ArtifactKind) -> Path:
        return self.job_dir(job) / f"{job}{kind.suffix}"

    # -- observation -------------------------------------------------------
    def job_exists(self, job: str) -> bool:
        return self.job_dir(job).is_dir()

    def exists(self, job: str, kind: ArtifactKind) -> bool:
        return self.path(job, kind).exists()

    def mtime(self, job: str, kind: ArtifactKind) -> Optional[float]:
        try:
            return self.path(job, kind).stat().st_mtime
        except FileNotFoundError:
            return None

    def read_lines(self, job: str, kind: ArtifactKind) -> Optional[List[str]]:
        """Return the file's lines without line endings, or ``None`` if it is missing."""
        try:
            text = self.path(job, kind).read_text(encoding="utf-8", errors="replace")
        except FileNotFoundError:
            return None
        return text.splitlines()

    # -- mutation ----------------------------------------------------------
    def create_job_dir(self, job: str) -> Path:
        self.results_root.mkdir(parents=True, exist_ok=True)
        job_dir = self.job_dir(job)
        try:
            job_dir.mkdir()
        except FileExistsError as exc:
            raise JobExistsError(f"Job directory already exists: {job_dir}") from exc
        _logger.info("[artifacts] job_dir.created -> %s", job_dir)
        return job_dir

    def write(self, job: str, kind: ArtifactKind, data: Union[str, bytes], *, exclusive: bool = False) -> Path:
        """Write a server-authored artifact.

        With ``exclusive`` the file is created with ``O_CREAT|O_EXCL`` and
        ``FileExistsError`` is raised if it is already there.
        """
        if kind not in WRITABLE_KINDS:
            raise ValueError(f"Refusing to write {kind.name} artifact for {job}; it is produced externally")
        path = self.path(job, kind)
        payload = data if isinstance(data, bytes) else data.encode("utf-8")
        if exclusive:
            fd = os.open(path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
            with os.fdopen(fd, "wb") as handle:
                handle.write(payload)
        else:
            path.write_bytes(payload)
        _logger.debug("[artifacts] write -> %s (%s exclusive=%s)", path, kind.name, exclusive)
        return path

    def create_exclusive(self, job: str, kind: ArtifactKind) -> bool:
        """Atomically create an empty artifact; ``False`` if it already existed."""
        path = self.path(job, kind)
        try:
            fd = os.open(path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError:
            return False
        os.close(fd)
        _logger.debug("[artifacts] create_exclusive -> %s", path)
        return True

    # -- enumeration -------------------------------------------------------
    def list_jobs(self) -> Iterator[str]:
        """Yield job names from the subdirectories of the results root."""
        if not self.results_root.is_dir():
            return
        with os.scandir(self.results_root) as entries:
            for entry in entries:
                if entry.is_dir() and is_valid_job_name(entry.name):
                    yield entry.name

    def jobs_by_recency(self, jobs: Optional[Iterable[str]] = None) -> List[str]:
        """Order jobs by sequence file mtime, newest first; jobs without one go last."""
        candidates = list(self.list_jobs() if jobs is None else jobs)
        stamped = [(job, self.mtime(job, ArtifactKind.SEQUENCE)) for job in candidates]
        # sorted() is stable, so undated jobs keep their input order.
        stamped.sort(key=lambda item: (item[1] is None, -(item[1] or 0.0)))
        return [job for job, _ in stamped]


__all__ = [
    "ArtifactKind",
    "ArtifactStore",
    "JobExistsError",
    "WRITABLE_KINDS",
]
