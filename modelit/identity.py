"""Job name validation.

A job name doubles as a directory name under the results root and as the
suffix of the scheduler job name, so it is checked against an allow-list
instead of being escaped.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Optional

JOB_NAME_MAX_LENGTH = 50
_JOB_NAME_RE = re.compile(r"[A-Za-z0-9_-]+")


class JobNameProblem(str, Enum):
    EMPTY = "empty"
    INVALID_CHARSET = "invalid_charset"
    TOO_LONG = "too_long"


_MESSAGES = {
    JobNameProblem.EMPTY: "Please provide a job name",
    JobNameProblem.INVALID_CHARSET: "Wrong job name: please use only letters, numbers, dashes and underscores",
    JobNameProblem.TOO_LONG: f"Job name must be at most {JOB_NAME_MAX_LENGTH} characters",
}


class InvalidJobNameError(ValueError):
    def __init__(self, name: Optional[str], problem: JobNameProblem) -> None:
        super().__init__(_MESSAGES[problem])
        self.name = name
        self.problem = problem


def validate_job_name(name: Optional[str]) -> str:
    """Return ``name`` unchanged if it is a usable job name, else raise."""
    if not name:
        raise InvalidJobNameError(name, JobNameProblem.EMPTY)
    if not _JOB_NAME_RE.fullmatch(name):
        raise InvalidJobNameError(name, JobNameProblem.INVALID_CHARSET)
    if len(name) > JOB_NAME_MAX_LENGTH:
        raise InvalidJobNameError(name, JobNameProblem.TOO_LONG)
    return name


def is_valid_job_name(name: Optional[str]) -> bool:
    try:
        validate_job_name(name)
    except InvalidJobNameError:
        return False
    return True


__all__ = [
    "JOB_NAME_MAX_LENGTH",
    "InvalidJobNameError",
    "JobNameProblem",
    "is_valid_job_name",
    "validate_job_name",
]
