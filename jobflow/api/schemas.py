"""Request bodies of the intent endpoints."""

from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field

from jobflow.domain.jobs.value_objects import JobPriority, JobStatus, JobType, RequestType


class CreateJobRequest(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    job_type: JobType = JobType.SERVICE
    priority: JobPriority = JobPriority.MEDIUM
    description: str = ""
    customer_id: str | None = None
    forklift_id: UUID | None = None
    scheduled_date: datetime | None = None
    job_number: str | None = None
    sla_target_minutes: int | None = Field(None, gt=0)

class MutateJobRequest(BaseModel):
    changes: dict[str, Any] = Field(min_length=1)


class AssignJobRequest(BaseModel):
    technician_id: str


class ReasonRequest(BaseModel):
    reason: str


class NotesRequest(BaseModel):
    notes: str


class OptionalNotesRequest(BaseModel):
    notes: str | None = None


class ResolutionRequest(BaseModel):
    resolution: str


class StartJobRequest(BaseModel):
    hourmeter_reading: int | None = None
    checklist: dict[str, str] | None = None


class ContinueTomorrowRequest(BaseModel):
    reason: str
    hourmeter_reading: int | None = None


class ChangeStatusRequest(BaseModel):
    target: JobStatus
    reason: str | None = None
    technician_id: str | None = None
    hourmeter_reading: int | None = None
    checklist: dict[str, str] | None = None


class AppendNoteRequest(BaseModel):
    text: str


class AddPartRequest(BaseModel):
    part_id: str
    part_name: str
    quantity: int
    unit_price: Decimal


class UpdatePartPriceRequest(BaseModel):
    unit_price: Decimal


class AddExtraChargeRequest(BaseModel):
    name: str
    amount: Decimal
    description: str = ""


class UpdateChecklistRequest(BaseModel):
    items: dict[str, str]


class RecordSignatureRequest(BaseModel):
    signer_role: str
    signer_name: str
    signature_url: str | None = None


class RegisterForkliftRequest(BaseModel):
    serial_number: str
    customer_id: str | None = None
    hourmeter: int | None = None
    avg_daily_usage_hours: float | None = None


class MeterReadingRequest(BaseModel):
    reading: int


class ProposeAmendmentRequest(BaseModel):
    amended_reading: int
    reason: str


class CreateJobRequestRequest(BaseModel):
    request_type: RequestType
    description: str
    photo_url: str | None = None


class UpdateJobRequestRequest(BaseModel):
    description: str | None = None
    photo_url: str | None = None


class ApproveJobRequestRequest(BaseModel):
    notes: str | None = None
    part_id: str | None = None
    part_name: str | None = None
    quantity: int | None = None
    unit_price: Decimal | None = None
    helper_id: str | None = None
