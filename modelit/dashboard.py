"""Result overview across all jobs."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

from .artifacts import ArtifactKind, ArtifactStore
from .state import JobStateMachine, JobStatus


@dataclass(slots=True)
class DashboardRow:
    job_name: str
    submitted_at: Optional[float]
    has_templates: bool
    status: JobStatus


class ResultAggregator:
    def __init__(self, store: ArtifactStore, state_machine: JobStateMachine) -> None:
        self.store = store
        self.state_machine = state_machine

    def rows(self) -> List[DashboardRow]:
        """Newest jobs first; all rows share one scheduler listing."""
        active = self.state_machine.snapshot()
        rows: List[DashboardRow] = []
        for job in self.store.jobs_by_recency():
            rows.append(
                DashboardRow(
                    job_name=job,
                    submitted_at=self.store.mtime(job, ArtifactKind.SEQUENCE),
                    has_templates=self.store.exists(job, ArtifactKind.TEMPLATES),
                    status=self.state_machine.job_status(job, active_jobs=active),
                )
            )
        return rows


__all__ = ["DashboardRow", "ResultAggregator"]
