import itertools

import pytest

from modelit.artifacts import ArtifactKind
from modelit.stages import Stage
from modelit.state import (
    AWAITING_TEMPLATE_SELECTION,
    JobStateMachine,
    StageState,
    derive_stage_state,
)


@pytest.mark.parametrize("terminal, active", list(itertools.product([False, True], repeat=2)))
def test_no_lock_is_not_started(terminal, active):
    assert derive_stage_state(False, terminal, active) is StageState.NOT_STARTED


def test_state_table():
    assert derive_stage_state(True, True, True) is StageState.COMPLETED
    assert derive_stage_state(True, True, False) is StageState.COMPLETED
    assert derive_stage_state(True, False, True) is StageState.RUNNING
    assert derive_stage_state(True, False, False) is StageState.APPARENTLY_FAILED


def test_lock_without_report_and_idle_scheduler_apparently_failed(state_machine: JobStateMachine, make_job):
    make_job("job1", ArtifactKind.TS_LOCK)
    status = state_machine.stage_status("job1", Stage.TEMPLATE_SELECTION)
    assert status.state is StageState.APPARENTLY_FAILED
    assert status.warning and "error log" in status.warning
    assert status.started_at is not None
    assert status.finished_at is None


def test_running_while_scheduler_lists_job(state_machine: JobStateMachine, scheduler, make_job):
    make_job("job1", ArtifactKind.TS_LOCK)
    scheduler.active.add("TS-job1")
    status = state_machine.stage_status("job1", Stage.TEMPLATE_SELECTION)
    assert status.state is StageState.RUNNING
    assert status.warning is None


def test_exact_scheduler_name_match(state_machine: JobStateMachine, scheduler, make_job):
    make_job("job1", ArtifactKind.TS_LOCK)
    scheduler.active.update({"TS-job10", "job1", "MB-job1"})
    status = state_machine.stage_status("job1", Stage.TEMPLATE_SELECTION)
    assert status.state is StageState.APPARENTLY_FAILED


def test_files_decide_without_scheduler_query(state_machine: JobStateMachine, scheduler, make_job):
    make_job("fresh")
    make_job("done", ArtifactKind.TS_LOCK, ArtifactKind.REPORT)
    assert state_machine.stage_status("fresh", Stage.TEMPLATE_SELECTION).state is StageState.NOT_STARTED
    completed = state_machine.stage_status("done", Stage.TEMPLATE_SELECTION)
    assert completed.state is StageState.COMPLETED
    assert completed.finished_at is not None
    assert scheduler.list_calls == 0


def test_awaiting_template_selection(state_machine: JobStateMachine, make_job):
    make_job("job1", ArtifactKind.TS_LOCK, ArtifactKind.REPORT)
    status = state_machine.job_status("job1")
    assert status.display_state == AWAITING_TEMPLATE_SELECTION
    assert status.active_stage is Stage.TEMPLATE_SELECTION


def test_modeling_becomes_active_stage_once_locked(state_machine: JobStateMachine, scheduler, make_job):
    make_job("job1", ArtifactKind.TS_LOCK, ArtifactKind.REPORT, ArtifactKind.MB_LOCK)
    scheduler.active.add("MB-job1")
    status = state_machine.job_status("job1")
    assert status.active_stage is Stage.MODELING
    assert status.display_state == "running"

    scheduler.active.clear()
    (state_machine.store.path("job1", ArtifactKind.STRUCTURE)).write_text("ATOM\n")
    assert state_machine.job_status("job1").display_state == "completed"


def test_job_status_queries_scheduler_once(state_machine: JobStateMachine, scheduler, make_job):
    make_job("job1", ArtifactKind.TS_LOCK, ArtifactKind.REPORT, ArtifactKind.MB_LOCK)
    make_job("job2", ArtifactKind.TS_LOCK)
    snapshot = state_machine.snapshot()
    state_machine.job_status("job1", active_jobs=snapshot)
    state_machine.job_status("job2", active_jobs=snapshot)
    assert scheduler.list_calls == 1
