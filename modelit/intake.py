"""Intake of new jobs: field validation, job directory and sequence files."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Dict, Optional, Tuple, Union

from .artifacts import ArtifactKind, ArtifactStore, JobExistsError
from .identity import InvalidJobNameError, validate_job_name

_logger = logging.getLogger("modelit.intake")

_SEQUENCE_RE = re.compile(r"[A-Za-z]+")


class InputValidationError(ValueError):
    """Carries one message per offending form field."""

    def __init__(self, errors: Dict[str, str]) -> None:
        super().__init__("; ".join(f"{key}: {msg}" for key, msg in errors.items()))
        self.errors = dict(errors)


@dataclass(frozen=True)
class JobDraft:
    job_name: str
    sequence: str
    seq_from: int
    seq_to: int

    @property
    def seq_range(self) -> Tuple[int, int]:
        return self.seq_from, self.seq_to

    @property
    def subsequence(self) -> str:
        return self.sequence[self.seq_from - 1 : self.seq_to]

    @property
    def marked_sequence(self) -> str:
        """Full sequence with the modeled range in upper case and the rest in lower case."""
        head = self.sequence[: self.seq_from - 1].lower()
        tail = self.sequence[self.seq_to :].lower()
        return f"{head}{self.subsequence.upper()}{tail}"

    def sequence_fasta(self) -> str:
        return f">{self.job_name}\n{self.subsequence}\n"

    def full_sequence_fasta(self) -> str:
        return f">{self.seq_from}-{self.seq_to}\n{self.marked_sequence}\n"


def clean_sequence(raw: Optional[str]) -> str:
    text = (raw or "").strip()
    return text.replace("\n", "").replace("\r", "")


def _parse_bound(value: Union[int, str, None]) -> Optional[int]:
    """Blank means unset; anything else must be a whole number."""
    if value is None or isinstance(value, int):
        return value
    text = str(value).strip()
    if not text:
        return None
    return int(text)


def _resolve_range(
    seq_len: int, raw_from: Union[int, str, None], raw_to: Union[int, str, None]
) -> Tuple[Optional[Tuple[int, int]], Optional[str]]:
    try:
        seq_from = _parse_bound(raw_from)
        seq_to = _parse_bound(raw_to)
    except ValueError:
        return None, f"Invalid sequence range {raw_from}-{raw_to}: start and end must be whole numbers"
    if seq_from is None and seq_to is None:
        return (1, seq_len), None
    if seq_from is None or seq_to is None:
        return None, "Please give both the start and the end of the sequence range"
    if seq_from < 1 or seq_to > seq_len or seq_to < seq_from:
        return None, f"Invalid sequence range {seq_from}-{seq_to} for a sequence of length {seq_len}"
    return (seq_from, seq_to), None


def validate_draft(
    job_name: Optional[str],
    sequence: Optional[str],
    seq_from: Union[int, str, None] = None,
    seq_to: Union[int, str, None] = None,
    *,
    store: Optional[ArtifactStore] = None,
) -> JobDraft:
    """Check every intake field and collect all problems before raising."""
    errors: Dict[str, str] = {}

    name = (job_name or "").strip()
    try:
        validate_job_name(name)
    except InvalidJobNameError as exc:
        errors["job_name"] = str(exc)
    else:
        if store is not None and store.job_exists(name):
            errors["job_name"] = "This job name exists already. Please choose a different one."

    seq = clean_sequence(sequence)
    seq_range: Optional[Tuple[int, int]] = None
    if not seq:
        errors["sequence"] = "Please provide a sequence"
    elif not _SEQUENCE_RE.fullmatch(seq):
        errors["sequence"] = "Illegal character in sequence: please provide a plain protein sequence without fasta header"
    else:
        seq_range, range_error = _resolve_range(len(seq), seq_from, seq_to)
        if range_error:
            errors["seq_range"] = range_error

    if errors or seq_range is None:
        raise InputValidationError(errors)
    return JobDraft(job_name=name, sequence=seq.upper(), seq_from=seq_range[0], seq_to=seq_range[1])


def create_job(store: ArtifactStore, draft: JobDraft) -> None:
    """Create the job directory and write both sequence files.

    The directory is created exclusively, so two simultaneous requests for the
    same name cannot both get past this point.
    """
    try:
        store.create_job_dir(draft.job_name)
    except JobExistsError as exc:
        raise InputValidationError(
            {"job_name": "This job name exists already. Please choose a different one."}
        ) from exc
    store.write(draft.job_name, ArtifactKind.SEQUENCE, draft.sequence_fasta())
    store.write(draft.job_name, ArtifactKind.FULL_SEQUENCE, draft.full_sequence_fasta())
    _logger.info(
        "[intake] job.created -> %s range=%d-%d length=%d",
        draft.job_name,
        draft.seq_from,
        draft.seq_to,
        len(draft.sequence),
    )


__all__ = [
    "InputValidationError",
    "JobDraft",
    "clean_sequence",
    "create_job",
    "validate_draft",
]
