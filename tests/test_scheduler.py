from pathlib import Path
from types import SimpleNamespace

import pytest

from modelit import scheduler as scheduler_mod
from modelit.config import SchedulerConfig
from modelit.scheduler import ActiveJobsSnapshot, SchedulerClient, SchedulerError, parse_qstat_job_names

QSTAT_XML = """<?xml version='1.0'?>
<job_info xmlns:xsd="http://arc.liv.ac.uk/repos/darcs/sge/source/dist/util/resources/schemas/qstat/qstat.xsd">
  <queue_info>
    <job_list state="running">
      <JB_job_number>4711</JB_job_number>
      <JB_name>TS-job1</JB_name>
      <JB_owner>tester</JB_owner>
    </job_list>
  </queue_info>
  <job_info>
    <job_list state="pending">
      <JB_job_number>4712</JB_job_number>
      <JB_name>MB-job2</JB_name>
      <JB_owner>tester</JB_owner>
    </job_list>
  </job_info>
</job_info>
"""


def test_parse_qstat_job_names():
    assert parse_qstat_job_names(QSTAT_XML) == frozenset({"TS-job1", "MB-job2"})
    assert parse_qstat_job_names("") == frozenset()


def test_parse_qstat_rejects_garbage():
    with pytest.raises(SchedulerError):
        parse_qstat_job_names("<job_info><unclosed>")


def _fake_run(calls, *, returncode=0, stdout="", stderr=""):
    def run(cmd, capture_output, text):
        calls.append(list(cmd))
        return SimpleNamespace(returncode=returncode, stdout=stdout, stderr=stderr)

    return run


def test_list_active_jobs_runs_qstat_for_user(monkeypatch):
    calls = []
    monkeypatch.setattr(scheduler_mod.subprocess, "run", _fake_run(calls, stdout=QSTAT_XML))
    client = SchedulerClient(SchedulerConfig(qstat_path="/sge/bin/qstat", user="alice"))
    assert client.is_active("TS-job1")
    assert not client.is_active("TS-job2")
    assert calls[0] == ["/sge/bin/qstat", "-u", "alice", "-xml"]


def test_failing_qstat_raises(monkeypatch):
    calls = []
    monkeypatch.setattr(scheduler_mod.subprocess, "run", _fake_run(calls, returncode=1, stderr="cannot reach qmaster"))
    client = SchedulerClient(SchedulerConfig(user="alice"))
    with pytest.raises(SchedulerError):
        client.list_active_jobs()


def test_missing_qstat_binary_raises(monkeypatch):
    def run(cmd, capture_output, text):
        raise FileNotFoundError(cmd[0])

    monkeypatch.setattr(scheduler_mod.subprocess, "run", run)
    client = SchedulerClient(SchedulerConfig(user="alice"))
    with pytest.raises(SchedulerError):
        client.list_active_jobs()


def test_submit_builds_qsub_command(monkeypatch, tmp_path: Path):
    calls = []
    monkeypatch.setattr(
        scheduler_mod.subprocess,
        "run",
        _fake_run(calls, stdout='Your job 4711 ("TS-job1") has been submitted\n'),
    )
    client = SchedulerClient(SchedulerConfig(qsub_path="qsub", queue="all.q", parallel_env="threaded", user="alice"))
    out, err = tmp_path / "job1.out.log", tmp_path / "job1.err.log"
    result = client.submit("templateSelection", ["-i", "job1.fa"], job_name="TS-job1", stdout_path=out, stderr_path=err, parallel_slots=8)
    assert result.accepted
    assert result.scheduler_job_id == "4711"
    assert calls[0] == [
        "qsub",
        "-pe", "threaded", "8",
        "-V",
        "-N", "TS-job1",
        "-o", str(out),
        "-e", str(err),
        "-q", "all.q",
        "templateSelection", "-i", "job1.fa",
    ]


def test_rejected_submit_is_not_an_exception(monkeypatch, tmp_path: Path):
    calls = []
    monkeypatch.setattr(scheduler_mod.subprocess, "run", _fake_run(calls, returncode=2, stderr="Unable to run job"))
    client = SchedulerClient(SchedulerConfig(user="alice"))
    result = client.submit("model_it", [], job_name="MB-job1", stdout_path=tmp_path / "o", stderr_path=tmp_path / "e")
    assert not result.accepted
    assert result.exit_code == 2
    assert result.message == "Unable to run job"
    assert "-pe" not in calls[0]


def test_mock_mode_never_calls_subprocess(monkeypatch, tmp_path: Path):
    def run(*_args, **_kwargs):
        raise AssertionError("subprocess.run should not be called in mock mode")

    monkeypatch.setattr(scheduler_mod.subprocess, "run", run)
    client = SchedulerClient(SchedulerConfig(mock=True))
    assert client.list_active_jobs() == frozenset()
    result = client.submit("x", [], job_name="TS-a", stdout_path=tmp_path / "o", stderr_path=tmp_path / "e")
    assert result.accepted and result.scheduler_job_id == "mock"


def test_log_hook_receives_messages(monkeypatch):
    seen = []
    monkeypatch.setattr(scheduler_mod.subprocess, "run", _fake_run([], stdout=QSTAT_XML))
    client = SchedulerClient(SchedulerConfig(user="alice"), log_hook=seen.append)
    client.list_active_jobs()
    assert any("qstat" in message for message in seen)


def test_missing_user_raises(monkeypatch):
    monkeypatch.delenv("MODELIT_SCHEDULER_USER", raising=False)
    monkeypatch.delenv("USER", raising=False)
    client = SchedulerClient(SchedulerConfig())
    with pytest.raises(SchedulerError):
        client.list_active_jobs()


def test_snapshot_is_lazy_and_fetched_once():
    class Counting(SchedulerClient):
        def __init__(self):
            super().__init__(SchedulerConfig(user="alice"))
            self.calls = 0

        def list_active_jobs(self, user=None):
            self.calls += 1
            return frozenset({"TS-a"})

    client = Counting()
    snapshot = ActiveJobsSnapshot(client)
    assert not snapshot.fetched
    assert "TS-a" in snapshot
    assert "TS-b" not in snapshot
    assert snapshot.fetched
    assert client.calls == 1
