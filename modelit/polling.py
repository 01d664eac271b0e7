"""Per-request polling decisions for the wait pages."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional

from .stages import Stage
from .state import JobStateMachine, StageState, StageStatus

UrlBuilder = Callable[[str, Stage], str]


@dataclass(slots=True)
class PollDecision:
    job_name: str
    stage: Stage
    status: StageStatus
    redirect_url: Optional[str] = None
    retry_after: Optional[int] = None

    @property
    def completed(self) -> bool:
        return self.redirect_url is not None

    @property
    def warning(self) -> Optional[str]:
        return self.status.warning


class PollingController:
    """Recomputes a stage's state on each request.

    There is no server-side wait: an unfinished stage answers with a retry
    interval and the client repeats the identical request; a finished stage
    answers with the URL of its result view.
    """

    def __init__(self, state_machine: JobStateMachine, *, refresh_seconds: int, result_url: UrlBuilder) -> None:
        self.state_machine = state_machine
        self.refresh_seconds = max(1, int(refresh_seconds))
        self.result_url = result_url

    def poll(self, job: str, stage: Stage) -> PollDecision:
        status = self.state_machine.stage_status(job, stage)
        if status.state is StageState.COMPLETED:
            return PollDecision(job, stage, status, redirect_url=self.result_url(job, stage))
        return PollDecision(job, stage, status, retry_after=self.refresh_seconds)


__all__ = ["PollDecision", "PollingController", "UrlBuilder"]
