"""FastAPI application entrypoint for the ModelIt web backend."""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Request, Response
from fastapi.responses import FileResponse, JSONResponse, RedirectResponse
from fastapi.staticfiles import StaticFiles

from . import __version__
from .artifacts import ArtifactKind, ArtifactStore
from .config import ServerConfig, load_config
from .dashboard import ResultAggregator
from .identity import InvalidJobNameError, validate_job_name
from .intake import InputValidationError
from .launcher import (
    LaunchError,
    LaunchOutcome,
    LaunchResult,
    StageLauncher,
    StagePreconditionError,
    read_template_ids,
)
from .logs import configure_logging
from .models import (
    DashboardResponse,
    DashboardRowModel,
    ErrorResponse,
    JobStatusResponse,
    JobSubmitRequest,
    ModelingResultResponse,
    PollResponse,
    StageStatusModel,
    SubmissionResponse,
    TemplateHitModel,
    TemplateReportResponse,
    TemplateSelectionRequest,
)
from .polling import PollingController
from .reports import ReportNotFoundError, load_modeling_result, load_template_report
from .scheduler import SchedulerClient, SchedulerError
from .stages import Stage
from .state import JobStateMachine, StageState, StageStatus
from .workflows import submit_new_job, submit_template_selection

app = FastAPI(title="ModelIt structure prediction API", version=__version__)

_DOWNLOADS = {
    "sequence": ArtifactKind.SEQUENCE,
    "full_sequence": ArtifactKind.FULL_SEQUENCE,
    "templates": ArtifactKind.TEMPLATES,
    "report": ArtifactKind.REPORT,
    "structure": ArtifactKind.STRUCTURE,
    "renumbered_structure": ArtifactKind.RENUMBERED_STRUCTURE,
    "error_log": ArtifactKind.ERROR_LOG,
    "output_log": ArtifactKind.OUTPUT_LOG,
}
_DOWNLOAD_NAMES = {kind: name for name, kind in _DOWNLOADS.items()}
_MEDIA_TYPES = {
    ArtifactKind.SEQUENCE: "text/x-fasta",
    ArtifactKind.FULL_SEQUENCE: "text/x-fasta",
    ArtifactKind.STRUCTURE: "chemical/x-pdb",
    ArtifactKind.RENUMBERED_STRUCTURE: "chemical/x-pdb",
}

_ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Malformed job name"},
    404: {"model": ErrorResponse, "description": "Unknown job"},
    409: {"model": ErrorResponse, "description": "Stage cannot start yet"},
    422: {"model": ErrorResponse, "description": "Invalid form fields"},
    502: {"model": ErrorResponse, "description": "Scheduler rejected the submission"},
    503: {"model": ErrorResponse, "description": "Scheduler unavailable"},
}


# -- wiring -----------------------------------------------------------------
@dataclass
class Services:
    cfg: ServerConfig
    store: ArtifactStore
    scheduler: SchedulerClient
    launcher: StageLauncher
    state_machine: JobStateMachine
    polling: PollingController
    dashboard: ResultAggregator


def build_services(cfg: ServerConfig, *, scheduler: Optional[SchedulerClient] = None) -> Services:
    store = ArtifactStore(cfg.paths.results_root)
    scheduler = scheduler or SchedulerClient(cfg.scheduler)
    state_machine = JobStateMachine(store, scheduler)
    return Services(
        cfg=cfg,
        store=store,
        scheduler=scheduler,
        launcher=StageLauncher(store, scheduler, cfg.scheduler),
        state_machine=state_machine,
        polling=PollingController(state_machine, refresh_seconds=cfg.refresh_seconds, result_url=result_url),
        dashboard=ResultAggregator(store, state_machine),
    )


@lru_cache(maxsize=1)
def _default_services() -> Services:
    return build_services(load_config())


def get_services() -> Services:
    return _default_services()


def request_services(request: Request, services: Services = Depends(get_services)) -> Services:
    """Route dependency; keeps the services on the request for the error handlers."""
    request.state.services = services
    return services


# -- url helpers --------------------------------------------------------------
def file_url(job: str, kind: ArtifactKind) -> str:
    return f"/api/jobs/{job}/files/{_DOWNLOAD_NAMES[kind]}"


def poll_url(job: str, stage: Stage) -> str:
    return f"/api/jobs/{job}/stages/{stage.value}/poll"


def result_url(job: str, stage: Stage) -> str:
    if stage is Stage.TEMPLATE_SELECTION:
        return f"/api/jobs/{job}/templates"
    return f"/api/jobs/{job}/result"


def _require_job(services: Services, job_name: str) -> str:
    job = validate_job_name(job_name)
    if not services.store.job_exists(job):
        raise HTTPException(status_code=404, detail=f"Job {job} not found")
    return job


def _error_log_url(services: Services, job: str) -> Optional[str]:
    if services.store.exists(job, ArtifactKind.ERROR_LOG):
        return file_url(job, ArtifactKind.ERROR_LOG)
    return None


def _stage_status_model(status: StageStatus) -> StageStatusModel:
    return StageStatusModel(
        stage=status.stage.value,
        label=status.stage.label,
        state=status.state.value,
        scheduler_job_name=status.scheduler_job_name,
        started_at=status.started_at,
        finished_at=status.finished_at,
        warning=status.warning,
    )


def _submission_response(result: LaunchResult, **extra: object) -> SubmissionResponse:
    if result.outcome is LaunchOutcome.SUBMITTED:
        message = f"{result.stage.label} submitted for {result.job_name}"
    else:
        message = f"{result.stage.label} was already submitted for {result.job_name}"
    return SubmissionResponse(
        job_name=result.job_name,
        stage=result.stage.value,
        outcome=result.outcome.value,
        scheduler_job_name=result.scheduler_job_name,
        started_at=result.started_at,
        poll_url=poll_url(result.job_name, result.stage),
        message=message,
        **extra,
    )


# -- error mapping ----------------------------------------------------------
@app.exception_handler(InputValidationError)
async def _input_validation_handler(request: Request, exc: InputValidationError) -> JSONResponse:
    return JSONResponse(status_code=422, content={"detail": "Invalid input", "errors": exc.errors})


@app.exception_handler(InvalidJobNameError)
async def _job_name_handler(request: Request, exc: InvalidJobNameError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"detail": str(exc), "errors": {"job_name": exc.problem.value}})


@app.exception_handler(StagePreconditionError)
async def _precondition_handler(request: Request, exc: StagePreconditionError) -> JSONResponse:
    return JSONResponse(status_code=409, content={"detail": str(exc), "errors": {"stage": exc.reason}})


@app.exception_handler(LaunchError)
async def _launch_error_handler(request: Request, exc: LaunchError) -> JSONResponse:
    return JSONResponse(
        status_code=502,
        content={
            "detail": f"An error occurred (exit status={exc.exit_code}). See the error log.",
            "error_log_url": file_url(exc.job_name, ArtifactKind.ERROR_LOG),
        },
    )


@app.exception_handler(SchedulerError)
async def _scheduler_error_handler(request: Request, exc: SchedulerError) -> JSONResponse:
    services: Optional[Services] = getattr(request.state, "services", None)
    cfg = services.cfg if services is not None else load_config()
    retry = str(cfg.refresh_seconds)
    return JSONResponse(
        status_code=503,
        content={"detail": f"Scheduler unavailable: {exc}"},
        headers={"Retry-After": retry},
    )


@app.on_event("startup")
async def _startup() -> None:  # pragma: no cover - FastAPI hook
    cfg = load_config()
    cfg.ensure_dirs()
    configure_logging(cfg.log_dir, debug=cfg.scheduler.debug)
    static_dir = cfg.paths.static_dir
    if static_dir and static_dir.exists():
        app.mount("/static", StaticFiles(directory=static_dir), name="static")


# -- routes -----------------------------------------------------------------
@app.get("/healthz")
async def healthz() -> dict[str, str]:
    return {"status": "ok"}


@app.post("/api/jobs", response_model=SubmissionResponse, responses=_ERROR_RESPONSES)
def api_submit_job(payload: JobSubmitRequest, services: Services = Depends(request_services)) -> SubmissionResponse:
    draft, result = submit_new_job(payload, store=services.store, launcher=services.launcher)
    return _submission_response(result, seq_from=draft.seq_from, seq_to=draft.seq_to)


@app.get("/api/jobs", response_model=DashboardResponse)
def api_dashboard(response: Response, services: Services = Depends(request_services)) -> DashboardResponse:
    rows = []
    for row in services.dashboard.rows():
        status = row.status
        ts_done = status.template_selection.state is StageState.COMPLETED
        mb_done = status.modeling.state is StageState.COMPLETED
        rows.append(
            DashboardRowModel(
                job_name=row.job_name,
                submitted_at=row.submitted_at,
                display_state=status.display_state,
                has_templates=row.has_templates,
                template_selection=_stage_status_model(status.template_selection),
                modeling=_stage_status_model(status.modeling),
                status_url=f"/api/jobs/{row.job_name}",
                template_selection_url=result_url(row.job_name, Stage.TEMPLATE_SELECTION) if ts_done else None,
                result_url=result_url(row.job_name, Stage.MODELING) if mb_done else None,
            )
        )
    refresh = services.cfg.refresh_seconds
    response.headers["Refresh"] = str(refresh)
    return DashboardResponse(jobs=rows, refresh_seconds=refresh)


@app.get("/api/jobs/{job_name}", response_model=JobStatusResponse)
def api_job_status(job_name: str, services: Services = Depends(request_services)) -> JobStatusResponse:
    job = _require_job(services, job_name)
    status = services.state_machine.job_status(job)
    return JobStatusResponse(
        job_name=job,
        display_state=status.display_state,
        active_stage=status.active_stage.value,
        template_selection=_stage_status_model(status.template_selection),
        modeling=_stage_status_model(status.modeling),
        error_log_url=_error_log_url(services, job),
    )


@app.post("/api/jobs/{job_name}/stages/{stage}/submit", response_model=SubmissionResponse, responses=_ERROR_RESPONSES)
def api_submit_stage(job_name: str, stage: Stage, services: Services = Depends(request_services)) -> SubmissionResponse:
    job = _require_job(services, job_name)
    return _submission_response(services.launcher.submit(job, stage))


@app.get("/api/jobs/{job_name}/stages/{stage}/poll", response_model=PollResponse)
def api_poll_stage(job_name: str, stage: Stage, services: Services = Depends(request_services)):
    job = _require_job(services, job_name)
    decision = services.polling.poll(job, stage)
    if decision.redirect_url:
        return RedirectResponse(decision.redirect_url, status_code=303)
    retry = decision.retry_after or services.cfg.refresh_seconds
    body = PollResponse(
        job_name=job,
        stage=stage.value,
        state=decision.status.state.value,
        retry_after=retry,
        status=_stage_status_model(decision.status),
        warning=decision.warning,
        error_log_url=_error_log_url(services, job) if decision.warning else None,
    )
    return JSONResponse(
        content=body.model_dump(),
        headers={"Refresh": str(retry), "Retry-After": str(retry), "Cache-Control": "no-store"},
    )


@app.get("/api/jobs/{job_name}/templates", response_model=TemplateReportResponse)
def api_template_report(job_name: str, services: Services = Depends(request_services)) -> TemplateReportResponse:
    job = _require_job(services, job_name)
    selected = read_template_ids(services.store, job)
    output_log = file_url(job, ArtifactKind.OUTPUT_LOG) if services.store.exists(job, ArtifactKind.OUTPUT_LOG) else None
    try:
        report = load_template_report(services.store, job)
    except ReportNotFoundError:
        return TemplateReportResponse(
            job_name=job,
            report_found=False,
            selected_templates=selected,
            modeling_submitted=services.store.exists(job, Stage.MODELING.lock),
            output_log_url=output_log,
        )
    chosen = set(selected or [])
    report_ids = set(report.template_ids())
    return TemplateReportResponse(
        job_name=job,
        title=report.title,
        columns=report.columns,
        hits=[
            TemplateHitModel(
                rank=hit.rank,
                template_id=hit.template_id,
                fields=hit.fields,
                selected=hit.template_id in chosen,
            )
            for hit in report.hits
        ],
        selected_templates=selected,
        additional_templates=[tid for tid in (selected or []) if tid not in report_ids],
        modeling_submitted=services.store.exists(job, Stage.MODELING.lock),
        output_log_url=output_log,
    )


@app.post("/api/jobs/{job_name}/templates", response_model=SubmissionResponse, responses=_ERROR_RESPONSES)
def api_select_templates(
    job_name: str,
    payload: TemplateSelectionRequest,
    services: Services = Depends(request_services),
) -> SubmissionResponse:
    job = _require_job(services, job_name)
    templates, result = submit_template_selection(job, payload, store=services.store, launcher=services.launcher)
    return _submission_response(result, templates=templates)


@app.get("/api/jobs/{job_name}/result", response_model=ModelingResultResponse)
def api_modeling_result(job_name: str, services: Services = Depends(request_services)) -> ModelingResultResponse:
    job = _require_job(services, job_name)
    status = services.state_machine.stage_status(job, Stage.MODELING)
    result = load_modeling_result(services.store, job)
    structure_url = None
    if result.structure_path is not None:
        kind = (
            ArtifactKind.RENUMBERED_STRUCTURE
            if result.structure_path.name.endswith(ArtifactKind.RENUMBERED_STRUCTURE.suffix)
            else ArtifactKind.STRUCTURE
        )
        structure_url = file_url(job, kind)
    return ModelingResultResponse(
        job_name=job,
        state=status.state.value,
        sequence=result.sequence,
        full_sequence=result.full_sequence,
        seq_interval=result.seq_interval,
        templates=result.templates,
        structure_url=structure_url,
        warning=status.warning,
    )


@app.get("/api/jobs/{job_name}/files/{kind}")
def api_job_file(job_name: str, kind: str, services: Services = Depends(request_services)) -> FileResponse:
    job = _require_job(services, job_name)
    artifact = _DOWNLOADS.get(kind)
    if artifact is None:
        raise HTTPException(status_code=404, detail="Download not available")
    path = services.store.path(job, artifact)
    if not path.is_file():
        raise HTTPException(status_code=404, detail="File not found")
    return FileResponse(path, filename=path.name, media_type=_MEDIA_TYPES.get(artifact, "text/plain"))


def serve(argv: Optional[list[str]] = None) -> None:
    """Run the API under uvicorn."""
    import argparse

    import uvicorn

    parser = argparse.ArgumentParser(description="ModelIt web backend")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument("--reload", action="store_true", help="Restart on code changes (development)")
    args = parser.parse_args(argv)
    uvicorn.run("modelit.main:app", host=args.host, port=args.port, reload=args.reload)
