"""Pydantic schemas for request/response validation."""
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator
from extra_pay.models.enums import ContractStatus, RequestStatus


# Contract schemas
class ContractCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    contract_type: Optional[str] = None
    department: Optional[str] = None
    amount: Decimal = Field(..., gt=0, max_digits=10, decimal_places=2)
    start_date: date
    end_date: date
    status: ContractStatus = ContractStatus.ACTIVE

    @model_validator(mode="after")
    def check_dates(self):
        if self.end_date < self.start_date:
            raise ValueError("end_date cannot be before start_date")
        return self


class ContractResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    district_id: int
    title: str
    description: Optional[str]
    contract_type: Optional[str]
    department: Optional[str]
    amount: Decimal
    start_date: date
    end_date: date
    status: ContractStatus
    created_by: str
    created_at: datetime
    updated_at: datetime


class ContractStatusUpdate(BaseModel):
    status: str


# Request schemas
class RequestCreate(BaseModel):
    contract_id: int
    employee_id: int
    amount: Decimal = Field(..., gt=0, max_digits=10, decimal_places=2)
    hours_worked: Optional[Decimal] = Field(None, ge=0, max_digits=5, decimal_places=2)
    work_date: date
    description: str = Field(..., min_length=1)
    notes: Optional[str] = None


class RequestResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    district_id: int
    contract_id: int
    employee_id: int
    requested_by: str
    amount: Decimal
    hours_worked: Optional[Decimal]
    work_date: date
    description: str
    notes: Optional[str]
    status: RequestStatus
    approved_by: Optional[str]
    approved_at: Optional[datetime]
    rejected_by: Optional[str]
    rejected_at: Optional[datetime]
    rejection_reason: Optional[str]
    paid_at: Optional[datetime]
    created_at: datetime
    updated_at: datetime


class RequestApprove(BaseModel):
    comments: Optional[str] = None
    workflow_step: Optional[int] = None


class RequestReject(BaseModel):
    # Left optional so a blank reason reaches the guard and gets its message
    reason: Optional[str] = None
    workflow_step: Optional[int] = None


class RequestStatusUpdate(BaseModel):
    status: str
    reason: Optional[str] = None
    comments: Optional[str] = None
    workflow_step: Optional[int] = None


class WorkflowStepCreate(BaseModel):
    step: int = Field(..., ge=1)
    action: str = Field(..., min_length=1, max_length=200)
    metadata: Dict[str, Any] = Field(default_factory=dict)


class WorkflowStepRecorded(BaseModel):
    event_id: int


# Timeline schemas
class TimelineEvent(BaseModel):
    """One audit event as shown on a timeline."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    entity_type: str
    entity_id: int
    event_type: str
    event_description: str
    from_status: Optional[str]
    to_status: str
    actor_id: str
    actor_role: str
    workflow_step: Optional[int]
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    # ORM attribute is payload_json; `metadata` on the model is SQLAlchemy's
    metadata: Dict[str, Any] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("payload_json", "metadata")
    )
    timestamp: datetime


class ContractDetail(ContractResponse):
    timeline: List[TimelineEvent] = []


class RequestDetail(RequestResponse):
    timeline: List[TimelineEvent] = []


# Custom field schemas
class CustomFieldCreate(BaseModel):
    field_name: str = Field(..., min_length=1, max_length=100)
    display_label: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    field_type: str = "text"
    category: str = Field(..., min_length=1)
    section: str = Field(..., min_length=1)
    display_order: int = 0
    is_required: bool = False
    is_visible: bool = True
    options: List[Any] = []


class CustomFieldResponse(CustomFieldCreate):
    model_config = ConfigDict(from_attributes=True)

    id: int
    district_id: int
    created_by: str
    created_at: datetime
    updated_at: datetime


# Dashboard
class DashboardStats(BaseModel):
    contract_stats: Dict[str, int]
    request_stats: Dict[str, int]
    recent_requests: List[RequestResponse]


# Error responses
class ErrorResponse(BaseModel):
    """Body returned for any refused or failed action."""
    error: str
    detail: Optional[Any] = None
    from_status: Optional[str] = None
    to_status: Optional[str] = None
