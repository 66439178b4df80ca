"""
State machine that enforces the extra pay status transitions.

All status changes MUST go through here: each accepted change mutates the
entity and appends exactly one audit event inside a single transaction.
"""
from contextlib import contextmanager
from datetime import date, datetime
from decimal import Decimal
from typing import Dict, FrozenSet, List, Optional
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from extra_pay.models.domain import ExtraPayContract, ExtraPayRequest
from extra_pay.models.enums import ContractStatus, EntityType, EventType, RequestStatus
from extra_pay.services.errors import (
    InvalidTransitionError,
    StorageUnavailable,
    ValidationError
)
from extra_pay.services.event_store import Actor, EventStore
from extra_pay.services.repository import ContractRepository, RequestRepository


SYSTEM_ACTOR = Actor(id="system", role="system")


class StateMachine:
    """Transition guard for contracts and requests to pay."""

    REQUEST_TRANSITIONS: Dict[RequestStatus, FrozenSet[RequestStatus]] = {
        RequestStatus.PENDING: frozenset({RequestStatus.APPROVED, RequestStatus.REJECTED}),
        RequestStatus.APPROVED: frozenset({RequestStatus.PAID}),
        RequestStatus.REJECTED: frozenset(),  # Terminal
        RequestStatus.PAID: frozenset(),  # Terminal
    }

    # EXPIRED is reached only through expire_contracts(), never requested
    CONTRACT_TRANSITIONS: Dict[ContractStatus, FrozenSet[ContractStatus]] = {
        ContractStatus.ACTIVE: frozenset({ContractStatus.INACTIVE}),
        ContractStatus.INACTIVE: frozenset({ContractStatus.ACTIVE}),
        ContractStatus.EXPIRED: frozenset(),
    }

    REQUEST_EVENT_TYPES: Dict[RequestStatus, EventType] = {
        RequestStatus.APPROVED: EventType.APPROVED,
        RequestStatus.REJECTED: EventType.REJECTED,
        RequestStatus.PAID: EventType.PAID,
    }

    def __init__(self, db: Session):
        self.db = db
        self.events = EventStore(db)
        self.contracts = ContractRepository(db)
        self.requests = RequestRepository(db)

    # ------------------------------------------------------------------
    # Transition table
    # ------------------------------------------------------------------

    @classmethod
    def can_transition_request(cls, from_status: RequestStatus, to_status: RequestStatus) -> bool:
        return to_status in cls.REQUEST_TRANSITIONS[from_status]

    @classmethod
    def can_transition_contract(cls, from_status: ContractStatus, to_status: ContractStatus) -> bool:
        return to_status in cls.CONTRACT_TRANSITIONS[from_status]

    @classmethod
    def next_request_statuses(cls, current: RequestStatus) -> List[RequestStatus]:
        return sorted(cls.REQUEST_TRANSITIONS[current], key=lambda s: s.value)

    @staticmethod
    def _coerce(enum_cls, value):
        """Turn a requested status into a member of the entity's status enum."""
        if isinstance(value, enum_cls):
            return value
        try:
            return enum_cls(value)
        except ValueError:
            allowed = ", ".join(m.value for m in enum_cls)
            raise ValidationError(f"Unknown status '{value}'. Expected one of: {allowed}")

    @contextmanager
    def _atomic(self):
        """
        Commit everything staged inside the block, or nothing.

        Entity mutations and event appends share this transaction.
        """
        try:
            yield
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise StorageUnavailable(f"Database operation failed: {exc}") from exc
        except Exception:
            self.db.rollback()
            raise

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create_contract(
        self,
        district_id: int,
        actor: Actor,
        *,
        title: str,
        amount: Decimal,
        start_date: date,
        end_date: date,
        description: Optional[str] = None,
        contract_type: Optional[str] = None,
        department: Optional[str] = None,
        status: ContractStatus = ContractStatus.ACTIVE
    ) -> ExtraPayContract:
        """Create a contract and record its `created` event."""
        status = self._coerce(ContractStatus, status)
        if status == ContractStatus.EXPIRED:
            raise ValidationError("A contract cannot be created as expired")
        if not title or not title.strip():
            raise ValidationError("Contract title is required")
        if end_date < start_date:
            raise ValidationError("Contract end date cannot be before its start date")

        contract = ExtraPayContract(
            district_id=district_id,
            title=title.strip(),
            description=description,
            contract_type=contract_type,
            department=department,
            amount=amount,
            start_date=start_date,
            end_date=end_date,
            status=status,
            created_by=actor.id
        )
        with self._atomic():
            self.contracts.add(contract)
            self.events.append(
                district_id=district_id,
                entity_type=EntityType.CONTRACT,
                entity_id=contract.id,
                event_type=EventType.CREATED,
                description="Extra pay contract created",
                actor=actor,
                to_status=status.value,
                metadata={
                    "title": contract.title,
                    "amount": str(amount),
                    "contract_type": contract_type
                }
            )
        self.db.refresh(contract)
        return contract

    def create_request(
        self,
        district_id: int,
        actor: Actor,
        *,
        contract_id: int,
        employee_id: int,
        amount: Decimal,
        work_date: date,
        description: str,
        hours_worked: Optional[Decimal] = None,
        notes: Optional[str] = None
    ) -> ExtraPayRequest:
        """
        Create a pending request against an active contract in the same district.

        Raises NotFoundError when the contract is outside the caller's district.
        """
        contract = self.contracts.get(district_id, contract_id)
        if contract.status != ContractStatus.ACTIVE:
            raise ValidationError(
                f"Requests can only be made against active contracts (contract is {contract.status.value})"
            )
        if not description or not description.strip():
            raise ValidationError("Request description is required")

        request = ExtraPayRequest(
            district_id=district_id,
            contract_id=contract.id,
            employee_id=employee_id,
            requested_by=actor.id,
            amount=amount,
            hours_worked=hours_worked,
            work_date=work_date,
            description=description.strip(),
            notes=notes,
            status=RequestStatus.PENDING
        )
        with self._atomic():
            self.requests.add(request)
            self.events.append(
                district_id=district_id,
                entity_type=EntityType.REQUEST,
                entity_id=request.id,
                event_type=EventType.CREATED,
                description="Extra pay request created",
                actor=actor,
                to_status=RequestStatus.PENDING.value,
                metadata={
                    "contract_id": contract.id,
                    "employee_id": employee_id,
                    "amount": str(amount)
                }
            )
        self.db.refresh(request)
        return request

    # ------------------------------------------------------------------
    # Request transitions
    # ------------------------------------------------------------------

    def transition_request(
        self,
        request: ExtraPayRequest,
        requested_status,
        actor: Actor,
        reason: Optional[str] = None,
        comments: Optional[str] = None,
        workflow_step: Optional[int] = None
    ) -> ExtraPayRequest:
        """
        Apply a status change to a request.

        Invariants:
        - requested_status must be a RequestStatus (ValidationError otherwise)
        - Rejection needs a non-blank reason; this is checked before the table
        - Illegal changes, including same-to-same, raise InvalidTransitionError
          and leave the request untouched
        """
        to_status = self._coerce(RequestStatus, requested_status)
        reason = (reason or "").strip()
        if to_status == RequestStatus.REJECTED and not reason:
            raise ValidationError("Rejection reason is required")

        from_status = request.status
        if not self.can_transition_request(from_status, to_status):
            raise InvalidTransitionError(from_status.value, to_status.value)

        now = datetime.utcnow()
        metadata = {}
        if to_status == RequestStatus.APPROVED:
            stamps = {"approved_by": actor.id, "approved_at": now}
            description = "Extra pay request approved"
            if comments:
                metadata["comments"] = comments
        elif to_status == RequestStatus.REJECTED:
            stamps = {"rejected_by": actor.id, "rejected_at": now, "rejection_reason": reason}
            description = f"Extra pay request rejected: {reason}"
            metadata["rejectionReason"] = reason
        else:
            stamps = {"paid_at": now}
            description = "Extra pay request marked as paid"

        with self._atomic():
            if not self.requests.set_status_if(request, from_status, {"status": to_status, **stamps}):
                # Another session moved the request after it was read
                current = self.requests.current_status(request)
                raise InvalidTransitionError(
                    current.value, to_status.value,
                    f"request is no longer {from_status.value}"
                )
            self.events.append(
                district_id=request.district_id,
                entity_type=EntityType.REQUEST,
                entity_id=request.id,
                event_type=self.REQUEST_EVENT_TYPES[to_status],
                description=description,
                actor=actor,
                from_status=from_status.value,
                to_status=to_status.value,
                workflow_step=workflow_step,
                metadata=metadata
            )
        self.db.refresh(request)
        return request

    def approve(self, request, actor, comments=None, workflow_step=None):
        return self.transition_request(
            request, RequestStatus.APPROVED, actor,
            comments=comments, workflow_step=workflow_step
        )

    def reject(self, request, actor, reason, workflow_step=None):
        return self.transition_request(
            request, RequestStatus.REJECTED, actor,
            reason=reason, workflow_step=workflow_step
        )

    def mark_paid(self, request, actor):
        return self.transition_request(request, RequestStatus.PAID, actor)

    def record_workflow_step(
        self,
        entity,
        step: int,
        action: str,
        actor: Actor,
        metadata: Optional[Dict] = None
    ) -> int:
        """
        Record progress through an approval workflow without changing status.

        The event carries the entity's current status as both from and to, so
        replaying the timeline still yields that status.
        """
        if isinstance(entity, ExtraPayRequest):
            entity_type = EntityType.REQUEST
        elif isinstance(entity, ExtraPayContract):
            entity_type = EntityType.CONTRACT
        else:
            raise TypeError(f"Unsupported entity: {type(entity).__name__}")
        if step < 1:
            raise ValidationError("Workflow step must be a positive number")
        action = (action or "").strip()
        if not action:
            raise ValidationError("Workflow step action is required")

        current = entity.status.value
        with self._atomic():
            event_id = self.events.append(
                district_id=entity.district_id,
                entity_type=entity_type,
                entity_id=entity.id,
                event_type=EventType.WORKFLOW_STEP,
                description=f"Workflow step {step}: {action}",
                actor=actor,
                from_status=current,
                to_status=current,
                workflow_step=step,
                metadata=metadata
            )
        return event_id

    # ------------------------------------------------------------------
    # Contract transitions
    # ------------------------------------------------------------------

    def set_contract_status(
        self,
        contract: ExtraPayContract,
        requested_status,
        actor: Actor,
        today: Optional[date] = None
    ) -> ExtraPayContract:
        """Toggle a contract between active and inactive."""
        to_status = self._coerce(ContractStatus, requested_status)
        from_status = contract.status
        if to_status == ContractStatus.EXPIRED and from_status != ContractStatus.EXPIRED:
            raise InvalidTransitionError(
                from_status.value, to_status.value,
                "contracts expire automatically once their end date passes"
            )
        if not self.can_transition_contract(from_status, to_status):
            raise InvalidTransitionError(from_status.value, to_status.value)

        today = today or date.today()
        if to_status == ContractStatus.ACTIVE and contract.end_date < today:
            raise ValidationError("Cannot activate a contract whose end date has passed")

        with self._atomic():
            if not self._record_contract_change(contract, from_status, to_status, actor, trigger="manual"):
                current = self.contracts.current_status(contract)
                raise InvalidTransitionError(
                    current.value, to_status.value,
                    f"contract is no longer {from_status.value}"
                )
        self.db.refresh(contract)
        return contract

    def expire_contracts(
        self,
        district_id: int,
        today: Optional[date] = None,
        actor: Actor = SYSTEM_ACTOR
    ) -> List[ExtraPayContract]:
        """Mark every contract past its end date as expired, one event each."""
        today = today or date.today()
        due = self.contracts.list_expirable(district_id, today)
        if not due:
            return []
        expired = []
        with self._atomic():
            for contract in due:
                # Skipped when another session already moved it; the next sweep retries
                if self._record_contract_change(
                    contract, contract.status, ContractStatus.EXPIRED, actor, trigger="end_date_passed"
                ):
                    expired.append(contract)
        for contract in expired:
            self.db.refresh(contract)
        return expired

    def apply_transition(self, entity, requested_status, actor: Actor, **kwargs):
        """Dispatch a status change to the guard for the entity's type."""
        if isinstance(entity, ExtraPayRequest):
            return self.transition_request(entity, requested_status, actor, **kwargs)
        if isinstance(entity, ExtraPayContract):
            return self.set_contract_status(entity, requested_status, actor)
        raise TypeError(f"Unsupported entity: {type(entity).__name__}")

    def _record_contract_change(self, contract, from_status, to_status, actor, trigger) -> bool:
        """Stage a status change and its event. False if the stored status moved on."""
        if not self.contracts.set_status_if(contract, from_status, to_status):
            return False
        self.events.append(
            district_id=contract.district_id,
            entity_type=EntityType.CONTRACT,
            entity_id=contract.id,
            event_type=EventType.STATUS_CHANGE,
            description=f"Contract status changed from {from_status.value} to {to_status.value}",
            actor=actor,
            from_status=from_status.value,
            to_status=to_status.value,
            metadata={"trigger": trigger}
        )
        return True
