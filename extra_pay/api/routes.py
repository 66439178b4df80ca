"""API routes for extra pay contracts, requests to pay and their timelines."""
from datetime import date
from typing import List, Optional
from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session

from extra_pay.config import Settings, get_settings
from extra_pay.database import get_db
from extra_pay.models.enums import ContractStatus, EntityType, RequestStatus
from extra_pay.services.event_store import Actor
from extra_pay.services.repository import ContractRepository, CustomFieldRepository, RequestRepository
from extra_pay.services.state_machine import StateMachine
from extra_pay.services.timeline import TimelineReader
from extra_pay.api.dependencies import get_actor, get_district_id
from extra_pay.api.schemas import (
    ContractCreate,
    ContractResponse,
    ContractDetail,
    ContractStatusUpdate,
    RequestCreate,
    RequestResponse,
    RequestDetail,
    RequestApprove,
    RequestReject,
    RequestStatusUpdate,
    TimelineEvent,
    WorkflowStepCreate,
    WorkflowStepRecorded,
    CustomFieldCreate,
    CustomFieldResponse,
    DashboardStats,
    ErrorResponse
)

router = APIRouter()

REFUSALS = {
    400: {"model": ErrorResponse, "description": "Validation error or invalid transition"},
    404: {"model": ErrorResponse, "description": "Not found in caller's district"},
}


def _timeline(events) -> List[TimelineEvent]:
    return [TimelineEvent.model_validate(event) for event in events]


# Contract endpoints
@router.get("/contracts", response_model=List[ContractResponse])
def list_contracts(
    status_filter: Optional[ContractStatus] = Query(None, alias="status"),
    search: Optional[str] = None,
    limit: Optional[int] = Query(None, ge=1),
    offset: int = Query(0, ge=0),
    district_id: int = Depends(get_district_id),
    settings: Settings = Depends(get_settings),
    db: Session = Depends(get_db)
):
    """List the district's contracts, newest first."""
    return ContractRepository(db).list(
        district_id,
        status=status_filter,
        search=search,
        limit=settings.page_size(limit),
        offset=offset
    )


@router.post("/contracts", response_model=ContractResponse, status_code=status.HTTP_201_CREATED, responses=REFUSALS)
def create_contract(
    contract_data: ContractCreate,
    district_id: int = Depends(get_district_id),
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db)
):
    """Create a contract. Records a `created` event."""
    return StateMachine(db).create_contract(district_id, actor, **contract_data.model_dump())


@router.post("/contracts/expire", response_model=List[ContractResponse])
def expire_contracts(
    today: Optional[date] = None,
    district_id: int = Depends(get_district_id),
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db)
):
    """Expire every contract whose end date has passed. Returns the contracts expired."""
    return StateMachine(db).expire_contracts(district_id, today=today, actor=actor)


@router.get("/contracts/{contract_id}", response_model=ContractDetail, responses=REFUSALS)
def get_contract(
    contract_id: int,
    district_id: int = Depends(get_district_id),
    db: Session = Depends(get_db)
):
    """Get a contract with its own timeline."""
    contract = ContractRepository(db).get(district_id, contract_id)
    events = TimelineReader(db).get_timeline(EntityType.CONTRACT, contract.id, district_id)
    detail = ContractDetail.model_validate(contract)
    detail.timeline = _timeline(events)
    return detail


@router.get("/contracts/{contract_id}/activity", response_model=List[TimelineEvent], responses=REFUSALS)
def get_contract_activity(
    contract_id: int,
    district_id: int = Depends(get_district_id),
    db: Session = Depends(get_db)
):
    """Contract events merged with the events of every request against it."""
    return _timeline(TimelineReader(db).get_contract_activity(contract_id, district_id))


@router.patch("/contracts/{contract_id}/status", response_model=ContractResponse, responses=REFUSALS)
def update_contract_status(
    contract_id: int,
    status_data: ContractStatusUpdate,
    district_id: int = Depends(get_district_id),
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db)
):
    """Move a contract between active and inactive."""
    contract = ContractRepository(db).get(district_id, contract_id)
    return StateMachine(db).set_contract_status(contract, status_data.status, actor)


@router.post(
    "/contracts/{contract_id}/workflow-step",
    response_model=WorkflowStepRecorded,
    status_code=status.HTTP_201_CREATED,
    responses=REFUSALS
)
def record_contract_workflow_step(
    contract_id: int,
    step_data: WorkflowStepCreate,
    district_id: int = Depends(get_district_id),
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db)
):
    """Record a workflow step on a contract's timeline. Status is unchanged."""
    contract = ContractRepository(db).get(district_id, contract_id)
    event_id = StateMachine(db).record_workflow_step(
        contract, step_data.step, step_data.action, actor, metadata=step_data.metadata
    )
    return WorkflowStepRecorded(event_id=event_id)


@router.delete("/contracts/{contract_id}", status_code=status.HTTP_204_NO_CONTENT, responses={
    **REFUSALS,
    409: {"model": ErrorResponse, "description": "Contract still referenced by requests"}
})
def delete_contract(
    contract_id: int,
    district_id: int = Depends(get_district_id),
    db: Session = Depends(get_db)
):
    """Delete a contract that no request references."""
    ContractRepository(db).delete(district_id, contract_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# Request endpoints
@router.get("/requests", response_model=List[RequestResponse])
def list_requests(
    status_filter: Optional[RequestStatus] = Query(None, alias="status"),
    contract_id: Optional[int] = None,
    employee_id: Optional[int] = None,
    search: Optional[str] = None,
    limit: Optional[int] = Query(None, ge=1),
    offset: int = Query(0, ge=0),
    district_id: int = Depends(get_district_id),
    settings: Settings = Depends(get_settings),
    db: Session = Depends(get_db)
):
    """List the district's requests to pay, newest first."""
    return RequestRepository(db).list(
        district_id,
        status=status_filter,
        contract_id=contract_id,
        employee_id=employee_id,
        search=search,
        limit=settings.page_size(limit),
        offset=offset
    )


@router.post("/requests", response_model=RequestResponse, status_code=status.HTTP_201_CREATED, responses=REFUSALS)
def create_request(
    request_data: RequestCreate,
    district_id: int = Depends(get_district_id),
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db)
):
    """Create a pending request against an active contract."""
    return StateMachine(db).create_request(district_id, actor, **request_data.model_dump())


@router.get("/requests/{request_id}", response_model=RequestDetail, responses=REFUSALS)
def get_request(
    request_id: int,
    district_id: int = Depends(get_district_id),
    db: Session = Depends(get_db)
):
    """Get a request with its timeline."""
    request = RequestRepository(db).get(district_id, request_id)
    events = TimelineReader(db).get_timeline(EntityType.REQUEST, request.id, district_id)
    detail = RequestDetail.model_validate(request)
    detail.timeline = _timeline(events)
    return detail


@router.patch("/requests/{request_id}/approve", response_model=RequestResponse, responses=REFUSALS)
def approve_request(
    request_id: int,
    approve_data: Optional[RequestApprove] = None,
    district_id: int = Depends(get_district_id),
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db)
):
    """Approve a pending request."""
    approve_data = approve_data or RequestApprove()
    request = RequestRepository(db).get(district_id, request_id)
    return StateMachine(db).approve(
        request, actor,
        comments=approve_data.comments,
        workflow_step=approve_data.workflow_step
    )


@router.patch("/requests/{request_id}/reject", response_model=RequestResponse, responses=REFUSALS)
def reject_request(
    request_id: int,
    reject_data: RequestReject,
    district_id: int = Depends(get_district_id),
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db)
):
    """Reject a pending request. A reason is required."""
    request = RequestRepository(db).get(district_id, request_id)
    return StateMachine(db).reject(
        request, actor,
        reason=reject_data.reason,
        workflow_step=reject_data.workflow_step
    )


@router.patch("/requests/{request_id}/mark-paid", response_model=RequestResponse, responses=REFUSALS)
def mark_request_paid(
    request_id: int,
    district_id: int = Depends(get_district_id),
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db)
):
    """Mark an approved request as paid."""
    request = RequestRepository(db).get(district_id, request_id)
    return StateMachine(db).mark_paid(request, actor)


@router.patch("/requests/{request_id}/status", response_model=RequestResponse, responses=REFUSALS)
def update_request_status(
    request_id: int,
    status_data: RequestStatusUpdate,
    district_id: int = Depends(get_district_id),
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db)
):
    """Generic transition endpoint; same rules as approve/reject/mark-paid."""
    request = RequestRepository(db).get(district_id, request_id)
    return StateMachine(db).apply_transition(
        request, status_data.status, actor,
        reason=status_data.reason,
        comments=status_data.comments,
        workflow_step=status_data.workflow_step
    )


@router.post(
    "/requests/{request_id}/workflow-step",
    response_model=WorkflowStepRecorded,
    status_code=status.HTTP_201_CREATED,
    responses=REFUSALS
)
def record_request_workflow_step(
    request_id: int,
    step_data: WorkflowStepCreate,
    district_id: int = Depends(get_district_id),
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db)
):
    """Record a workflow step on a request's timeline. Status is unchanged."""
    request = RequestRepository(db).get(district_id, request_id)
    event_id = StateMachine(db).record_workflow_step(
        request, step_data.step, step_data.action, actor, metadata=step_data.metadata
    )
    return WorkflowStepRecorded(event_id=event_id)


# Custom fields
@router.get("/custom-fields", response_model=List[CustomFieldResponse])
def list_custom_fields(
    section: Optional[str] = None,
    category: Optional[str] = None,
    district_id: int = Depends(get_district_id),
    db: Session = Depends(get_db)
):
    """The district's custom form fields in display order."""
    return CustomFieldRepository(db).list(district_id, section=section, category=category)


@router.post(
    "/custom-fields",
    response_model=CustomFieldResponse,
    status_code=status.HTTP_201_CREATED,
    responses=REFUSALS
)
def create_custom_field(
    field_data: CustomFieldCreate,
    district_id: int = Depends(get_district_id),
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db)
):
    """Define a custom form field for the district."""
    return CustomFieldRepository(db).create(district_id, actor.id, **field_data.model_dump())


# Dashboard
@router.get("/dashboard-stats", response_model=DashboardStats)
def get_dashboard_stats(
    district_id: int = Depends(get_district_id),
    db: Session = Depends(get_db)
):
    """Contract and request counts by status, plus the ten latest requests."""
    requests = RequestRepository(db)
    return DashboardStats(
        contract_stats=ContractRepository(db).status_counts(district_id),
        request_stats=requests.status_counts(district_id),
        recent_requests=[RequestResponse.model_validate(r) for r in requests.recent(district_id)]
    )
