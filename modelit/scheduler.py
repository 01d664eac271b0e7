"""Grid Engine interaction helpers (qsub + qstat wrappers)."""

from __future__ import annotations

import logging
import re
import shlex
import subprocess
import time
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, FrozenSet, Iterable, Optional, Sequence

from .config import SchedulerConfig, load_config

_logger = logging.getLogger("modelit.scheduler")

_SUBMITTED_RE = re.compile(r"Your job(?:-array)? (\d+)")


class SchedulerError(RuntimeError):
    """Raised when the scheduler cannot be queried."""


@dataclass
class CommandResult:
    exit_code: int
    stdout: str
    stderr: str
    command: str = ""
    started_at: Optional[float] = None
    finished_at: Optional[float] = None
    duration: Optional[float] = None


@dataclass
class SubmissionResult:
    accepted: bool
    exit_code: int
    stderr_path: Path
    command: str
    scheduler_job_id: Optional[str] = None
    message: Optional[str] = None


def parse_qstat_job_names(xml_text: str) -> FrozenSet[str]:
    """Extract ``JB_name`` values from ``qstat -xml`` output."""
    text = (xml_text or "").strip()
    if not text:
        return frozenset()
    try:
        root = ET.fromstring(text)
    except ET.ParseError as exc:
        raise SchedulerError(f"Failed to parse qstat XML output: {exc}") from exc
    return frozenset((node.text or "").strip() for node in root.iter("JB_name") if (node.text or "").strip())


class SchedulerClient:
    def __init__(
        self,
        cfg: Optional[SchedulerConfig] = None,
        *,
        log_hook: Optional[Callable[[str], None]] = None,
    ) -> None:
        self.cfg = cfg or load_config().scheduler
        self._log_hook = log_hook
        self._emit(
            f"[scheduler] init -> qsub={self.cfg.qsub_path} qstat={self.cfg.qstat_path} "
            f"queue={self.cfg.queue} mock={self.cfg.mock}"
        )

    def _emit(self, message: str, *, level: int = logging.DEBUG) -> None:
        if self.cfg.debug and level < logging.INFO:
            level = logging.INFO
        _logger.log(level, message)
        if self._log_hook:
            try:
                self._log_hook(message)
            except Exception as exc:  # pragma: no cover
                _logger.warning("[scheduler] log_hook error: %s", exc)

    def _run(self, cmd: Iterable[str], *, check: bool = True) -> CommandResult:
        cmd_list = list(cmd)
        display_cmd = " ".join(shlex.quote(part) for part in cmd_list)
        started = time.time()
        self._emit(f"[scheduler] exec.start -> {display_cmd}", level=logging.INFO)
        try:
            process = subprocess.run(cmd_list, capture_output=True, text=True)
        except OSError as exc:
            if check:
                raise SchedulerError(f"Could not execute {display_cmd}: {exc}") from exc
            return CommandResult(127, "", str(exc), command=display_cmd, started_at=started)
        finished = time.time()
        duration = finished - started
        for line in (process.stderr or "").splitlines():
            self._emit(f"[scheduler] exec.stderr | {line}", level=logging.WARNING)
        self._emit(f"[scheduler] exec.exit -> code={process.returncode} duration={duration:.2f}s")
        if check and process.returncode != 0:
            error_msg = f"Command failed ({process.returncode}): {display_cmd}\n{process.stderr}"
            self._emit(f"[scheduler] exec.error -> {error_msg.strip()}", level=logging.ERROR)
            raise SchedulerError(error_msg)
        return CommandResult(
            process.returncode,
            process.stdout,
            process.stderr,
            command=display_cmd,
            started_at=started,
            finished_at=finished,
            duration=duration,
        )

    def _queue_user(self, user: Optional[str]) -> str:
        queue_user = user or self.cfg.queue_user()
        if not queue_user:
            raise SchedulerError("Scheduler user not configured; set scheduler.user or MODELIT_SCHEDULER_USER")
        return queue_user

    # -- queries -----------------------------------------------------------
    def list_active_jobs(self, user: Optional[str] = None) -> FrozenSet[str]:
        """Return the names of all queued or running jobs owned by ``user``."""
        if self.cfg.mock:
            self._emit("[scheduler] qstat (mock) -> no active jobs")
            return frozenset()
        cmd = [self.cfg.qstat_path, "-u", self._queue_user(user), "-xml"]
        result = self._run(cmd, check=True)
        names = parse_qstat_job_names(result.stdout)
        self._emit(f"[scheduler] qstat -> {len(names)} active job(s)")
        return names

    def is_active(self, scheduler_job_name: str) -> bool:
        return scheduler_job_name in self.list_active_jobs()

    # -- submission --------------------------------------------------------
    def submit(
        self,
        executable: str,
        args: Sequence[str],
        *,
        job_name: str,
        stdout_path: Path,
        stderr_path: Path,
        parallel_slots: Optional[int] = None,
    ) -> SubmissionResult:
        """Hand a command to ``qsub``; returns once the scheduler has answered."""
        opts = ["-V", "-N", job_name, "-o", str(stdout_path), "-e", str(stderr_path), "-q", self.cfg.queue]
        if parallel_slots:
            opts = ["-pe", self.cfg.parallel_env, str(int(parallel_slots)), *opts]
        cmd = [self.cfg.qsub_path, *opts, executable, *[str(arg) for arg in args]]
        display = " ".join(shlex.quote(part) for part in cmd)

        if self.cfg.mock:
            self._emit(f"[scheduler] qsub (mock) -> {display}", level=logging.INFO)
            return SubmissionResult(True, 0, Path(stderr_path), display, scheduler_job_id="mock")

        result = self._run(cmd, check=False)
        accepted = result.exit_code == 0
        match = _SUBMITTED_RE.search(result.stdout or "")
        message = (result.stderr or result.stdout or "").strip() or None
        if accepted:
            self._emit(f"[scheduler] qsub accepted -> {job_name} id={match.group(1) if match else '?'}", level=logging.INFO)
        else:
            self._emit(f"[scheduler] qsub rejected -> {job_name} code={result.exit_code}", level=logging.ERROR)
        return SubmissionResult(
            accepted,
            result.exit_code,
            Path(stderr_path),
            display,
            scheduler_job_id=match.group(1) if match else None,
            message=message,
        )


class ActiveJobsSnapshot:
    """One scheduler listing per request, fetched on first membership test."""

    def __init__(self, scheduler: SchedulerClient, user: Optional[str] = None) -> None:
        self._scheduler = scheduler
        self._user = user
        self._names: Optional[FrozenSet[str]] = None

    @property
    def fetched(self) -> bool:
        return self._names is not None

    def names(self) -> FrozenSet[str]:
        if self._names is None:
            self._names = self._scheduler.list_active_jobs(self._user)
        return self._names

    def __contains__(self, scheduler_job_name: object) -> bool:
        return scheduler_job_name in self.names()


__all__ = [
    "ActiveJobsSnapshot",
    "CommandResult",
    "SchedulerClient",
    "SchedulerError",
    "SubmissionResult",
    "parse_qstat_job_names",
]
