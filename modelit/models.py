"""Pydantic models shared across FastAPI endpoints."""

from __future__ import annotations

from typing import Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, validator

StageName = Literal["template_selection", "modeling"]
StageStateName = Literal["not_started", "running", "completed", "apparently_failed"]


class JobSubmitRequest(BaseModel):
    # Field rules live in modelit.intake so every problem is reported per field.
    job_name: Optional[str] = Field(None, description="Job name, letters, digits, '-' and '_' only")
    sequence: Optional[str] = Field(None, description="Plain protein sequence without fasta header")
    seq_from: Optional[Union[int, str]] = Field(None, description="First residue to model (1-based)")
    seq_to: Optional[Union[int, str]] = Field(None, description="Last residue to model (inclusive)")

    @validator("seq_from", "seq_to", pre=True)
    def _blank_to_none(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value


class TemplateSelectionRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    templates: List[str] = Field(default_factory=list, description="Template ids ticked in the report table")
    custom_templates: Optional[str] = Field(
        None,
        max_length=500,
        description="Comma separated extra templates, e.g. '1tdrA, 7dfrA'",
    )

    @validator("templates", each_item=True)
    def _strip_template(cls, value: str) -> str:
        return value.strip()


class StageStatusModel(BaseModel):
    stage: StageName
    label: str
    state: StageStateName
    scheduler_job_name: str
    started_at: Optional[float] = None
    finished_at: Optional[float] = None
    warning: Optional[str] = None


class JobStatusResponse(BaseModel):
    job_name: str
    display_state: str
    active_stage: StageName
    template_selection: StageStatusModel
    modeling: StageStatusModel
    error_log_url: Optional[str] = None


class SubmissionResponse(BaseModel):
    job_name: str
    stage: StageName
    outcome: Literal["submitted", "already_submitted"]
    scheduler_job_name: str
    started_at: Optional[float] = None
    poll_url: str
    message: str
    seq_from: Optional[int] = None
    seq_to: Optional[int] = None
    templates: Optional[List[str]] = None


class PollResponse(BaseModel):
    job_name: str
    stage: StageName
    state: StageStateName
    retry_after: int
    status: StageStatusModel
    warning: Optional[str] = None
    error_log_url: Optional[str] = None


class DashboardRowModel(BaseModel):
    job_name: str
    submitted_at: Optional[float] = None
    display_state: str
    has_templates: bool = False
    template_selection: StageStatusModel
    modeling: StageStatusModel
    status_url: str
    template_selection_url: Optional[str] = None
    result_url: Optional[str] = None


class DashboardResponse(BaseModel):
    jobs: List[DashboardRowModel] = Field(default_factory=list)
    refresh_seconds: int


class TemplateHitModel(BaseModel):
    rank: int
    template_id: str
    fields: Dict[str, str] = Field(default_factory=dict)
    selected: bool = False


class TemplateReportResponse(BaseModel):
    job_name: str
    report_found: bool = True
    title: str = ""
    columns: List[str] = Field(default_factory=list)
    hits: List[TemplateHitModel] = Field(default_factory=list)
    selected_templates: Optional[List[str]] = None
    additional_templates: List[str] = Field(default_factory=list)
    modeling_submitted: bool = False
    output_log_url: Optional[str] = None


class ModelingResultResponse(BaseModel):
    job_name: str
    state: StageStateName
    sequence: Optional[str] = None
    full_sequence: Optional[str] = None
    seq_interval: Optional[str] = None
    templates: Optional[List[str]] = None
    structure_url: Optional[str] = None
    warning: Optional[str] = None


class ErrorResponse(BaseModel):
    detail: str
    errors: Dict[str, str] = Field(default_factory=dict)
    error_log_url: Optional[str] = None
