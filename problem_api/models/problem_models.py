"""
Request and response models for the problems API.
"""

from typing import Dict, List, Optional, Union

from pydantic import AliasChoices, Field, field_validator, model_validator

from problem_api.database.models.problem import Problem
from problem_api.models.base import APIBaseModel, UTCDatetime
from problem_api.services.lifecycle_service import parse_status


def _strip(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


class CreateProblemRequest(APIBaseModel):
    """Request to report a new problem."""

    reporter_id: str = Field(
        ...,
        min_length=1,
        max_length=128,
        validation_alias=AliasChoices("reporterId", "reporter_id", "chefId"),
        description="Entity reporting the problem",
    )
    category: str = Field(
        ...,
        min_length=1,
        max_length=50,
        validation_alias=AliasChoices("category", "type"),
        description="Specialty required to solve the problem",
    )
    title: Optional[str] = Field(None, max_length=200, description="Short title")
    description: Optional[str] = Field(None, description="Problem description")

    @field_validator("reporter_id", "category")
    @classmethod
    def not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value

    @field_validator("title", "description")
    @classmethod
    def strip_text(cls, value: Optional[str]) -> Optional[str]:
        return _strip(value)

    @model_validator(mode="after")
    def require_text(self) -> "CreateProblemRequest":
        if not self.description and not self.title:
            raise ValueError("either description or title is required")
        return self


class CreatePredefinedProblemRequest(APIBaseModel):
    """Request to add a predefined (template) problem to the catalog."""

    category: str = Field(
        ...,
        min_length=1,
        max_length=50,
        validation_alias=AliasChoices("category", "type"),
    )
    title: Optional[str] = Field(None, max_length=200)
    description: Optional[str] = None

    @field_validator("category")
    @classmethod
    def not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value

    @field_validator("title", "description")
    @classmethod
    def strip_text(cls, value: Optional[str]) -> Optional[str]:
        return _strip(value)

    @model_validator(mode="after")
    def require_text(self) -> "CreatePredefinedProblemRequest":
        if not self.description and not self.title:
            raise ValueError("either description or title is required")
        return self


class UpdateStatusRequest(APIBaseModel):
    """Request to change the status of a problem."""

    status: str = Field(..., description="New status (waiting, in_progress, solved)")

    @field_validator("status")
    @classmethod
    def known_status(cls, value: str) -> str:
        try:
            return parse_status(value).value
        except ValueError:
            raise ValueError("status must be one of: waiting, in_progress, solved")


class ProblemResponse(APIBaseModel):
    """A problem as returned by the API."""

    id: str
    reporter_id: str
    title: Optional[str] = None
    description: str
    category: str
    status: str
    is_template: bool
    assigned_technician: Optional[str] = None
    created_at: Optional[UTCDatetime] = None
    solved_at: Optional[UTCDatetime] = None

    @classmethod
    def from_problem(cls, problem: Problem) -> "ProblemResponse":
        return cls(
            id=str(problem.id),
            reporter_id=problem.reporter_id,
            title=problem.title,
            description=problem.description,
            category=problem.category,
            status=problem.status,
            is_template=problem.is_template,
            assigned_technician=(
                str(problem.assigned_technician_id) if problem.assigned_technician_id else None
            ),
            created_at=problem.created_at,
            solved_at=problem.solved_at,
        )


class CreateProblemResponse(APIBaseModel):
    """Result of creating and assigning a problem."""

    id: str
    assigned_to: str = Field(..., description="Technician id or 'no available technician'")
    current_workload: Union[int, str] = Field(
        ..., description="Workload used for the decision, or 'N/A'"
    )
    message: str


class CreatePredefinedProblemResponse(APIBaseModel):
    """Result of creating a predefined problem."""

    id: str
    message: str
    assigned_technician: Optional[str] = None
    status: str


class UpdateStatusResponse(APIBaseModel):
    """Result of a status change."""

    message: str
    status: str
    technician_updated: bool


class MessageResponse(APIBaseModel):
    """Plain confirmation message."""

    message: str


class BackfillResponse(APIBaseModel):
    """Result of a backfill run."""

    examined: int
    assigned: List[str]
    still_unassigned: int


class ReconcileResponse(APIBaseModel):
    """Result of a technician reconciliation."""

    technicians: int
    released_assignments: int
    availability_changed: int


class OutboxMessageResponse(APIBaseModel):
    """An outbound message and its delivery state."""

    id: str
    kind: str
    idempotency_key: str
    status: str
    attempts: int
    last_error: Optional[str] = None
    next_attempt_at: Optional[UTCDatetime] = None
    created_at: Optional[UTCDatetime] = None
    sent_at: Optional[UTCDatetime] = None


class OutboxListResponse(APIBaseModel):
    """Outbound messages with counts by status."""

    messages: List[OutboxMessageResponse]
    counts_by_status: Dict[str, int]
