"""Helpers to load template search and modeling artifacts for the UI."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

from .artifacts import ArtifactKind, ArtifactStore
from .intake import InputValidationError
from .launcher import read_template_ids

CUSTOM_TEMPLATE_RE = re.compile(r"[0-9][0-9a-z]{3}[A-Z]")
# GTG score columns are not shown in the template table.
_HIDDEN_COLUMNS = {5, 6}


class ReportNotFoundError(FileNotFoundError):
    """Raised when the template search report could not be located."""


@dataclass(slots=True)
class TemplateHit:
    rank: int
    template_id: str
    fields: Dict[str, str]


@dataclass(slots=True)
class TemplateReport:
    job_name: str
    title: str
    columns: List[str]
    hits: List[TemplateHit] = field(default_factory=list)

    def template_ids(self) -> List[str]:
        return [hit.template_id for hit in self.hits]


@dataclass(slots=True)
class ModelingResult:
    job_name: str
    sequence: Optional[str]
    full_sequence: Optional[str]
    seq_interval: Optional[str]
    templates: Optional[List[str]]
    structure_path: Optional[Path]


def _display_label(header: str) -> str:
    label = header.strip()
    lowered = label.lower()
    if "scop id" in lowered:
        return "scop"
    if "title" in lowered:
        return "description"
    return label


def parse_report_lines(job: str, lines: List[str]) -> TemplateReport:
    """Parse a ranked template report.

    Line 1 is a title, line 2 the tab-separated column header and every further
    line one hit, template id first. Two lines or fewer means no hits.
    """
    title = lines[0].strip() if lines else ""
    if len(lines) < 2:
        return TemplateReport(job_name=job, title=title, columns=[])
    header = lines[1].split("\t")
    visible = [idx for idx in range(len(header)) if idx not in _HIDDEN_COLUMNS]
    columns = [_display_label(header[idx]) for idx in visible]
    hits: List[TemplateHit] = []
    for line in lines[2:]:
        if not line.strip():
            continue
        values = line.split("\t")
        template_id = values[0].strip()
        if not template_id:
            continue
        row = {columns[pos]: values[idx].strip() for pos, idx in enumerate(visible) if idx < len(values)}
        hits.append(TemplateHit(rank=len(hits) + 1, template_id=template_id, fields=row))
    return TemplateReport(job_name=job, title=title, columns=columns, hits=hits)


def load_template_report(store: ArtifactStore, job: str) -> TemplateReport:
    lines = store.read_lines(job, ArtifactKind.REPORT)
    if lines is None:
        raise ReportNotFoundError(f"Template report not found for {job}")
    return parse_report_lines(job, lines)


def _dedupe(items: Iterable[str]) -> List[str]:
    seen: Dict[str, None] = {}
    for item in items:
        seen.setdefault(item, None)
    return list(seen)


def resolve_template_selection(
    report: TemplateReport, selected: Iterable[str], custom_templates: Optional[str] = None
) -> List[str]:
    """Combine ticked report hits with free-text template ids.

    May return an empty list; refusing an empty selection is up to the
    modeling launcher.
    """
    known = set(report.template_ids())
    chosen: List[str] = []
    unknown: List[str] = []
    for raw in selected:
        template_id = str(raw).strip()
        if not template_id:
            continue
        if template_id in known:
            chosen.append(template_id)
        else:
            unknown.append(template_id)

    invalid: List[str] = []
    for token in (custom_templates or "").split(","):
        token = token.strip()
        if not token:
            continue
        if CUSTOM_TEMPLATE_RE.fullmatch(token):
            chosen.append(token)
        else:
            invalid.append(token)

    errors: Dict[str, str] = {}
    if unknown:
        errors["templates"] = f"Templates not in the search report: {', '.join(unknown)}"
    if invalid:
        errors["custom_templates"] = (
            f"Invalid template string {', '.join(invalid)}. Please enter a comma separated list "
            "of pdb codes including chain identifier, e.g. 1tdrA"
        )
    if errors:
        raise InputValidationError(errors)
    return _dedupe(chosen)


def _read_fasta(lines: Optional[List[str]]) -> Tuple[Optional[str], Optional[str]]:
    if not lines or len(lines) < 2:
        return None, None
    header = lines[0].strip()
    return header[1:].strip() if header.startswith(">") else header, lines[1].strip()


def load_modeling_result(store: ArtifactStore, job: str) -> ModelingResult:
    """Collect what the result view shows; missing files become ``None``."""
    _, sequence = _read_fasta(store.read_lines(job, ArtifactKind.SEQUENCE))
    interval, full_sequence = _read_fasta(store.read_lines(job, ArtifactKind.FULL_SEQUENCE))
    structure_path: Optional[Path] = None
    for kind in (ArtifactKind.RENUMBERED_STRUCTURE, ArtifactKind.STRUCTURE):
        if store.exists(job, kind):
            structure_path = store.path(job, kind)
            break
    return ModelingResult(
        job_name=job,
        sequence=sequence,
        full_sequence=full_sequence,
        seq_interval=interval,
        templates=read_template_ids(store, job),
        structure_path=structure_path,
    )


__all__ = [
    "CUSTOM_TEMPLATE_RE",
    "ModelingResult",
    "ReportNotFoundError",
    "TemplateHit",
    "TemplateReport",
    "load_modeling_result",
    "load_template_report",
    "parse_report_lines",
    "resolve_template_selection",
]
