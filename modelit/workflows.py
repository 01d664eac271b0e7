"""High-level submission flows invoked by API endpoints."""

from __future__ import annotations

import logging
from typing import List, Optional, Tuple

from .artifacts import ArtifactKind, ArtifactStore
from .intake import JobDraft, create_job, validate_draft
from .launcher import LaunchResult, StageLauncher, StagePreconditionError, read_template_ids
from .models import JobSubmitRequest, TemplateSelectionRequest
from .reports import ReportNotFoundError, load_template_report, resolve_template_selection
from .stages import Stage

_logger = logging.getLogger("modelit.workflows")


def submit_new_job(
    request: JobSubmitRequest, *, store: ArtifactStore, launcher: StageLauncher
) -> Tuple[JobDraft, LaunchResult]:
    """Validate the intake form, create the job and start its template search."""
    draft = validate_draft(
        request.job_name,
        request.sequence,
        request.seq_from,
        request.seq_to,
        store=store,
    )
    create_job(store, draft)
    result = launcher.submit(draft.job_name, Stage.TEMPLATE_SELECTION)
    return draft, result


def submit_template_selection(
    job: str,
    request: TemplateSelectionRequest,
    *,
    store: ArtifactStore,
    launcher: StageLauncher,
) -> Tuple[Optional[List[str]], LaunchResult]:
    """Record the chosen templates and start modeling.

    The template file is written at most once. If it already exists, or
    modeling has already been submitted, the ids on disk are returned
    together with the existing submission.
    """
    if store.exists(job, Stage.MODELING.lock):
        return read_template_ids(store, job), launcher.submit(job, Stage.MODELING)

    try:
        report = load_template_report(store, job)
    except ReportNotFoundError as exc:
        raise StagePreconditionError(Stage.MODELING, "template search has not completed") from exc

    templates = resolve_template_selection(report, request.templates, request.custom_templates)
    if templates:
        try:
            store.write(job, ArtifactKind.TEMPLATES, "".join(f"{tid}\n" for tid in templates), exclusive=True)
        except FileExistsError:
            _logger.info("[workflows] templates.kept -> %s already has a template selection", job)
        else:
            _logger.info("[workflows] templates.selected -> %s: %s", job, ", ".join(templates))
    result = launcher.submit(job, Stage.MODELING)
    return read_template_ids(store, job), result


__all__ = ["submit_new_job", "submit_template_selection"]
