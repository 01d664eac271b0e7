"""Submit each pipeline stage to the scheduler at most once per job."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional

from .artifacts import ArtifactKind, ArtifactStore
from .config import SchedulerConfig
from .scheduler import SchedulerClient
from .stages import Stage

_logger = logging.getLogger("modelit.launcher")


class LaunchOutcome(str, Enum):
    SUBMITTED = "submitted"
    ALREADY_SUBMITTED = "already_submitted"


class LaunchError(RuntimeError):
    """The scheduler rejected the submission outright."""

    def __init__(self, message: str, *, job_name: str, stage: Stage, stderr_path: Path, exit_code: int) -> None:
        super().__init__(message)
        self.job_name = job_name
        self.stage = stage
        self.stderr_path = stderr_path
        self.exit_code = exit_code


class StagePreconditionError(RuntimeError):
    def __init__(self, stage: Stage, reason: str) -> None:
        super().__init__(f"{stage.label}: {reason}")
        self.stage = stage
        self.reason = reason


@dataclass(slots=True)
class CommandSpec:
    executable: str
    args: List[str] = field(default_factory=list)
    parallel_slots: Optional[int] = None


@dataclass(slots=True)
class LaunchResult:
    job_name: str
    stage: Stage
    outcome: LaunchOutcome
    scheduler_job_name: str
    started_at: Optional[float] = None
    scheduler_job_id: Optional[str] = None


def read_template_ids(store: ArtifactStore, job: str) -> Optional[List[str]]:
    lines = store.read_lines(job, ArtifactKind.TEMPLATES)
    if lines is None:
        return None
    return [line.strip() for line in lines if line.strip()]


class StageLauncher:
    def __init__(self, store: ArtifactStore, scheduler: SchedulerClient, cfg: SchedulerConfig) -> None:
        self.store = store
        self.scheduler = scheduler
        self.cfg = cfg

    def build_command(self, job: str, stage: Stage) -> CommandSpec:
        job_dir = str(self.store.job_dir(job))
        seq_file = str(self.store.path(job, ArtifactKind.SEQUENCE))
        if stage is Stage.TEMPLATE_SELECTION:
            ts = self.cfg.template_selection
            args = ["-i", seq_file]
            slots: Optional[int] = None
            if ts.use_parallel_blast:
                args.extend(["-a", str(ts.num_cpus)])
                slots = ts.num_cpus
            args.extend([
                "-o", job_dir,
                "-j", str(ts.psiblast_iterations),
                "-e", str(ts.evalue_cutoff),
                "-x", str(ts.num_templates),
            ])
            return CommandSpec(ts.script, args, slots)

        mb = self.cfg.modeling
        args = ["-A"] if mb.use_parallel_tinker else []
        args.extend(["-i", seq_file, "-o", job_dir, "-t", str(self.store.path(job, ArtifactKind.TEMPLATES))])
        return CommandSpec(mb.script, args)

    def check_preconditions(self, job: str, stage: Stage) -> None:
        if not self.store.job_exists(job):
            raise StagePreconditionError(stage, f"job {job} does not exist")
        if stage is Stage.TEMPLATE_SELECTION:
            if not self.store.exists(job, ArtifactKind.SEQUENCE):
                raise StagePreconditionError(stage, "sequence file not found")
            return
        if not self.store.exists(job, Stage.TEMPLATE_SELECTION.terminal):
            raise StagePreconditionError(stage, "template search has not completed")
        if not read_template_ids(self.store, job):
            raise StagePreconditionError(stage, "no templates selected")

    def submit(self, job: str, stage: Stage, command: Optional[CommandSpec] = None) -> LaunchResult:
        scheduler_name = stage.scheduler_job_name(job)
        if self.store.exists(job, stage.lock):
            _logger.info("[launcher] %s already submitted for %s", stage.value, job)
            return self._already_submitted(job, stage)

        # Preconditions come before the lock; a lock without a launch would strand the job.
        self.check_preconditions(job, stage)

        if not self.store.create_exclusive(job, stage.lock):
            _logger.info("[launcher] %s lock lost race for %s", stage.value, job)
            return self._already_submitted(job, stage)

        spec = command or self.build_command(job, stage)
        stderr_path = self.store.path(job, ArtifactKind.ERROR_LOG)
        result = self.scheduler.submit(
            spec.executable,
            spec.args,
            job_name=scheduler_name,
            stdout_path=self.store.path(job, ArtifactKind.OUTPUT_LOG),
            stderr_path=stderr_path,
            parallel_slots=spec.parallel_slots,
        )
        if not result.accepted:
            _logger.error("[launcher] %s rejected for %s (exit %s)", stage.value, job, result.exit_code)
            raise LaunchError(
                f"Scheduler rejected {scheduler_name} (exit status {result.exit_code})",
                job_name=job,
                stage=stage,
                stderr_path=stderr_path,
                exit_code=result.exit_code,
            )
        _logger.info("[launcher] %s submitted for %s as %s", stage.value, job, scheduler_name)
        return LaunchResult(
            job_name=job,
            stage=stage,
            outcome=LaunchOutcome.SUBMITTED,
            scheduler_job_name=scheduler_name,
            started_at=self.store.mtime(job, stage.lock),
            scheduler_job_id=result.scheduler_job_id,
        )

    def _already_submitted(self, job: str, stage: Stage) -> LaunchResult:
        return LaunchResult(
            job_name=job,
            stage=stage,
            outcome=LaunchOutcome.ALREADY_SUBMITTED,
            scheduler_job_name=stage.scheduler_job_name(job),
            started_at=self.store.mtime(job, stage.lock),
        )


__all__ = [
    "CommandSpec",
    "LaunchError",
    "LaunchOutcome",
    "LaunchResult",
    "StageLauncher",
    "StagePreconditionError",
    "read_template_ids",
]
