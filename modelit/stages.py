"""The two sequential pipeline stages and their artifacts."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from .artifacts import ArtifactKind


class Stage(str, Enum):
    TEMPLATE_SELECTION = "template_selection"
    MODELING = "modeling"

    @property
    def info(self) -> "StageInfo":
        return _STAGE_INFO[self]

    @property
    def lock(self) -> ArtifactKind:
        return self.info.lock

    @property
    def terminal(self) -> ArtifactKind:
        return self.info.terminal

    @property
    def label(self) -> str:
        return self.info.label

    def scheduler_job_name(self, job: str) -> str:
        # The prefix keeps the two stages apart and avoids clashing with the bare job name.
        return f"{self.info.scheduler_prefix}{job}"


@dataclass(frozen=True)
class StageInfo:
    label: str
    scheduler_prefix: str
    lock: ArtifactKind
    terminal: ArtifactKind


_STAGE_INFO = {
    Stage.TEMPLATE_SELECTION: StageInfo(
        label="Template search",
        scheduler_prefix="TS-",
        lock=ArtifactKind.TS_LOCK,
        terminal=ArtifactKind.REPORT,
    ),
    Stage.MODELING: StageInfo(
        label="Structure modeling",
        scheduler_prefix="MB-",
        lock=ArtifactKind.MB_LOCK,
        terminal=ArtifactKind.STRUCTURE,
    ),
}


__all__ = ["Stage", "StageInfo"]
