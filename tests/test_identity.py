import pytest

from modelit.identity import (
    JOB_NAME_MAX_LENGTH,
    InvalidJobNameError,
    JobNameProblem,
    is_valid_job_name,
    validate_job_name,
)


@pytest.mark.parametrize("name", ["test1", "a", "A-b_c-9", "x" * JOB_NAME_MAX_LENGTH])
def test_valid_names_pass_through_unchanged(name: str):
    assert validate_job_name(name) == name
    assert is_valid_job_name(name)


@pytest.mark.parametrize(
    "name, problem",
    [
        ("", JobNameProblem.EMPTY),
        (None, JobNameProblem.EMPTY),
        ("bad name!", JobNameProblem.INVALID_CHARSET),
        ("../etc", JobNameProblem.INVALID_CHARSET),
        ("job\n", JobNameProblem.INVALID_CHARSET),
        ("jöb", JobNameProblem.INVALID_CHARSET),
        ("x" * (JOB_NAME_MAX_LENGTH + 1), JobNameProblem.TOO_LONG),
    ],
)
def test_invalid_names_report_problem(name, problem):
    with pytest.raises(InvalidJobNameError) as excinfo:
        validate_job_name(name)
    assert excinfo.value.problem is problem
    assert not is_valid_job_name(name)


def test_charset_checked_before_length():
    with pytest.raises(InvalidJobNameError) as excinfo:
        validate_job_name("!" * (JOB_NAME_MAX_LENGTH + 5))
    assert excinfo.value.problem is JobNameProblem.INVALID_CHARSET
