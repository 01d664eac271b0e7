"""Stage and job status derived from result files and the scheduler queue.

Nothing here is stored: every call looks at the lock file, the terminal file
and (only when those two do not settle it) the scheduler listing.

``APPARENTLY_FAILED`` is an inference. A job that has just left the queue but
has not yet written its output looks the same as one that crashed, so the
state is reported as a warning and never acted upon automatically.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Container, Optional

from .artifacts import ArtifactStore
from .scheduler import ActiveJobsSnapshot, SchedulerClient
from .stages import Stage


class StageState(str, Enum):
    NOT_STARTED = "not_started"
    RUNNING = "running"
    COMPLETED = "completed"
    APPARENTLY_FAILED = "apparently_failed"


AWAITING_TEMPLATE_SELECTION = "awaiting_template_selection"


def derive_stage_state(lock_exists: bool, terminal_exists: bool, scheduler_active: bool) -> StageState:
    if not lock_exists:
        return StageState.NOT_STARTED
    if terminal_exists:
        return StageState.COMPLETED
    if scheduler_active:
        return StageState.RUNNING
    return StageState.APPARENTLY_FAILED


@dataclass(slots=True)
class StageStatus:
    stage: Stage
    state: StageState
    scheduler_job_name: str
    started_at: Optional[float] = None
    finished_at: Optional[float] = None

    @property
    def warning(self) -> Optional[str]:
        if self.state is StageState.APPARENTLY_FAILED:
            return (
                f"{self.stage.label} is no longer queued but produced no result; "
                "the job probably failed. Check the error log."
            )
        return None


@dataclass(slots=True)
class JobStatus:
    job_name: str
    template_selection: StageStatus
    modeling: StageStatus

    @property
    def active_stage(self) -> Stage:
        if self.modeling.state is not StageState.NOT_STARTED:
            return Stage.MODELING
        return Stage.TEMPLATE_SELECTION

    @property
    def display_state(self) -> str:
        if (
            self.template_selection.state is StageState.COMPLETED
            and self.modeling.state is StageState.NOT_STARTED
        ):
            return AWAITING_TEMPLATE_SELECTION
        return self.stage(self.active_stage).state.value

    def stage(self, stage: Stage) -> StageStatus:
        return self.template_selection if stage is Stage.TEMPLATE_SELECTION else self.modeling


class JobStateMachine:
    def __init__(self, store: ArtifactStore, scheduler: SchedulerClient) -> None:
        self.store = store
        self.scheduler = scheduler

    def snapshot(self) -> ActiveJobsSnapshot:
        return ActiveJobsSnapshot(self.scheduler)

    def stage_status(
        self, job: str, stage: Stage, *, active_jobs: Optional[Container[str]] = None
    ) -> StageStatus:
        scheduler_name = stage.scheduler_job_name(job)
        lock_exists = self.store.exists(job, stage.lock)
        terminal_exists = lock_exists and self.store.exists(job, stage.terminal)
        scheduler_active = False
        if lock_exists and not terminal_exists:
            if active_jobs is None:
                scheduler_active = self.scheduler.is_active(scheduler_name)
            else:
                scheduler_active = scheduler_name in active_jobs
        return StageStatus(
            stage=stage,
            state=derive_stage_state(lock_exists, terminal_exists, scheduler_active),
            scheduler_job_name=scheduler_name,
            started_at=self.store.mtime(job, stage.lock) if lock_exists else None,
            finished_at=self.store.mtime(job, stage.terminal) if terminal_exists else None,
        )

    def job_status(self, job: str, *, active_jobs: Optional[Container[str]] = None) -> JobStatus:
        snapshot = active_jobs if active_jobs is not None else self.snapshot()
        return JobStatus(
            job_name=job,
            template_selection=self.stage_status(job, Stage.TEMPLATE_SELECTION, active_jobs=snapshot),
            modeling=self.stage_status(job, Stage.MODELING, active_jobs=snapshot),
        )


__all__ = [
    "AWAITING_TEMPLATE_SELECTION",
    "JobStateMachine",
    "JobStatus",
    "StageState",
    "StageStatus",
    "derive_stage_state",
]
