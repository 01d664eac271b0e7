from __future__ import annotations

from pathlib import Path
from typing import List, Optional, Sequence, Set

import pytest

from modelit.artifacts import ArtifactKind, ArtifactStore
from modelit.config import SchedulerConfig
from modelit.launcher import StageLauncher
from modelit.scheduler import SchedulerClient, SchedulerError, SubmissionResult
from modelit.state import JobStateMachine


class FakeScheduler(SchedulerClient):
    """In-memory stand-in for qsub/qstat."""

    def __init__(self, cfg: Optional[SchedulerConfig] = None) -> None:
        super().__init__(cfg or SchedulerConfig(user="tester"))
        self.active: Set[str] = set()
        self.accept = True
        self.fail_listing = False
        self.list_calls = 0
        self.submissions: List[dict] = []

    def list_active_jobs(self, user: Optional[str] = None):
        self.list_calls += 1
        if self.fail_listing:
            raise SchedulerError("qstat unavailable")
        return frozenset(self.active)

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
        self.submissions.append(
            {
                "executable": executable,
                "args": list(args),
                "job_name": job_name,
                "stdout_path": Path(stdout_path),
                "stderr_path": Path(stderr_path),
                "parallel_slots": parallel_slots,
            }
        )
        if not self.accept:
            Path(stderr_path).write_text("qsub: queue all.q does not exist\n")
            return SubmissionResult(False, 1, Path(stderr_path), "qsub", message="rejected")
        self.active.add(job_name)
        return SubmissionResult(True, 0, Path(stderr_path), "qsub", scheduler_job_id=str(len(self.submissions)))


REPORT_TEXT = (
    "Templates for job1\n"
    "pdb\tpsiblast evalue\tidentity\tcoverage\tlength\tgtg score\tgtg evalue\tscop id\ttitle\n"
    "1tdrA\t1e-40\t45\t0.95\t159\t12.0\t1e-3\td.1.1\tdihydrofolate reductase\n"
    "7dfrA\t1e-30\t38\t0.90\t159\t11.0\t1e-2\td.1.1\tDHFR from E. coli\n"
)


@pytest.fixture
def store(tmp_path: Path) -> ArtifactStore:
    return ArtifactStore(tmp_path / "results")


@pytest.fixture
def scheduler() -> FakeScheduler:
    return FakeScheduler()


@pytest.fixture
def launcher(store: ArtifactStore, scheduler: FakeScheduler) -> StageLauncher:
    return StageLauncher(store, scheduler, scheduler.cfg)


@pytest.fixture
def state_machine(store: ArtifactStore, scheduler: FakeScheduler) -> JobStateMachine:
    return JobStateMachine(store, scheduler)


@pytest.fixture
def make_job(store: ArtifactStore):
    """Lay out a job directory with the given artifacts, bypassing intake."""

    def _make(job: str, *kinds: ArtifactKind, sequence: str = "ACDEFGHIK") -> None:
        store.job_dir(job).mkdir(parents=True, exist_ok=True)
        store.path(job, ArtifactKind.SEQUENCE).write_text(f">{job}\n{sequence}\n")
        for kind in kinds:
            if kind is ArtifactKind.REPORT:
                store.path(job, kind).write_text(REPORT_TEXT)
            else:
                store.path(job, kind).touch()

    return _make


@pytest.fixture
def report_text() -> str:
    return REPORT_TEXT
