"""
Tenant-scoped data access for contracts and requests.

Every method takes the caller's district_id explicitly; rows belonging to
another district are indistinguishable from rows that do not exist.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional
from sqlalchemy import func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from extra_pay.models.domain import ExtraPayContract, ExtraPayCustomField, ExtraPayRequest
from extra_pay.models.enums import ContractStatus, RequestStatus
from extra_pay.services.errors import (
    ContractInUseError,
    NotFoundError,
    StorageUnavailable,
    ValidationError
)


def _contains(column, text: str):
    """Case-insensitive substring predicate."""
    return column.ilike(f"%{text}%")


def _set_status_if(db: Session, model, entity, expected, values: Dict[str, Any]) -> bool:
    # Conditional UPDATE; the WHERE on status serializes concurrent transitions
    values = {**values, "updated_at": datetime.utcnow()}
    matched = db.query(model).filter(
        model.id == entity.id,
        model.district_id == entity.district_id,
        model.status == expected
    ).update(values, synchronize_session=False)
    return matched == 1


def _stored_status(db: Session, model, entity):
    return db.query(model.status).filter(model.id == entity.id).scalar()


class ContractRepository:
    """Scoped CRUD for extra pay contracts."""

    def __init__(self, db: Session):
        self.db = db

    def get(self, district_id: int, contract_id: int) -> ExtraPayContract:
        contract = self.db.query(ExtraPayContract).filter(
            ExtraPayContract.id == contract_id,
            ExtraPayContract.district_id == district_id
        ).first()
        if not contract:
            raise NotFoundError("Contract")
        return contract

    def list(
        self,
        district_id: int,
        status: Optional[str] = None,
        search: Optional[str] = None,
        limit: int = 50,
        offset: int = 0
    ) -> List[ExtraPayContract]:
        """List contracts newest first. Filters are ANDed together."""
        query = self.db.query(ExtraPayContract).filter(
            ExtraPayContract.district_id == district_id
        )
        if status:
            query = query.filter(ExtraPayContract.status == status)
        if search:
            query = query.filter(or_(
                _contains(ExtraPayContract.title, search),
                _contains(ExtraPayContract.description, search)
            ))
        return query.order_by(
            ExtraPayContract.created_at.desc(),
            ExtraPayContract.id.desc()
        ).offset(offset).limit(limit).all()

    def list_expirable(self, district_id: int, today) -> List[ExtraPayContract]:
        """Active or inactive contracts whose end_date is before today."""
        return self.db.query(ExtraPayContract).filter(
            ExtraPayContract.district_id == district_id,
            ExtraPayContract.status != ContractStatus.EXPIRED,
            ExtraPayContract.end_date < today
        ).order_by(ExtraPayContract.id).all()

    def add(self, contract: ExtraPayContract) -> ExtraPayContract:
        """Stage a new contract and flush so it has an id. Does not commit."""
        now = datetime.utcnow()
        contract.created_at = now
        contract.updated_at = now
        self.db.add(contract)
        self.db.flush()
        return contract

    def set_status_if(
        self,
        contract: ExtraPayContract,
        expected: ContractStatus,
        new_status: ContractStatus
    ) -> bool:
        """Move the contract to new_status only if its stored status is still expected."""
        return _set_status_if(self.db, ExtraPayContract, contract, expected, {"status": new_status})

    def current_status(self, contract: ExtraPayContract) -> ContractStatus:
        return _stored_status(self.db, ExtraPayContract, contract)

    def has_requests(self, contract: ExtraPayContract) -> bool:
        return self.db.query(ExtraPayRequest.id).filter(
            ExtraPayRequest.contract_id == contract.id
        ).first() is not None

    def delete(self, district_id: int, contract_id: int) -> None:
        """Hard-delete a contract. Refused while any request references it."""
        contract = self.get(district_id, contract_id)
        if self.has_requests(contract):
            raise ContractInUseError(
                "Contract has requests to pay and cannot be deleted; set it inactive instead"
            )
        try:
            self.db.delete(contract)
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise StorageUnavailable(f"Could not delete contract: {exc}") from exc

    def status_counts(self, district_id: int) -> Dict[str, int]:
        rows = self.db.query(
            ExtraPayContract.status,
            func.count(ExtraPayContract.id)
        ).filter(
            ExtraPayContract.district_id == district_id
        ).group_by(ExtraPayContract.status).all()
        return {status.value: count for status, count in rows}


class RequestRepository:
    """Scoped CRUD for requests to pay."""

    def __init__(self, db: Session):
        self.db = db

    def get(self, district_id: int, request_id: int) -> ExtraPayRequest:
        request = self.db.query(ExtraPayRequest).filter(
            ExtraPayRequest.id == request_id,
            ExtraPayRequest.district_id == district_id
        ).first()
        if not request:
            raise NotFoundError("Request")
        return request

    def list(
        self,
        district_id: int,
        status: Optional[str] = None,
        contract_id: Optional[int] = None,
        employee_id: Optional[int] = None,
        search: Optional[str] = None,
        limit: int = 50,
        offset: int = 0
    ) -> List[ExtraPayRequest]:
        """List requests newest first. Filters are ANDed together."""
        query = self.db.query(ExtraPayRequest).filter(
            ExtraPayRequest.district_id == district_id
        )
        if status:
            query = query.filter(ExtraPayRequest.status == status)
        if contract_id is not None:
            query = query.filter(ExtraPayRequest.contract_id == contract_id)
        if employee_id is not None:
            query = query.filter(ExtraPayRequest.employee_id == employee_id)
        if search:
            query = query.filter(_contains(ExtraPayRequest.description, search))
        return query.order_by(
            ExtraPayRequest.created_at.desc(),
            ExtraPayRequest.id.desc()
        ).offset(offset).limit(limit).all()

    def ids_for_contract(self, district_id: int, contract_id: int) -> List[int]:
        rows = self.db.query(ExtraPayRequest.id).filter(
            ExtraPayRequest.district_id == district_id,
            ExtraPayRequest.contract_id == contract_id
        ).all()
        return [row[0] for row in rows]

    def add(self, request: ExtraPayRequest) -> ExtraPayRequest:
        """Stage a new request and flush so it has an id. Does not commit."""
        now = datetime.utcnow()
        request.created_at = now
        request.updated_at = now
        self.db.add(request)
        self.db.flush()
        return request

    def set_status_if(
        self,
        request: ExtraPayRequest,
        expected: RequestStatus,
        values: Dict[str, Any]
    ) -> bool:
        """
        Write status and stamps only if the stored status is still expected.

        Returns False when another session changed the request first; nothing
        is written in that case.
        """
        return _set_status_if(self.db, ExtraPayRequest, request, expected, values)

    def current_status(self, request: ExtraPayRequest) -> RequestStatus:
        return _stored_status(self.db, ExtraPayRequest, request)

    def status_counts(self, district_id: int) -> Dict[str, int]:
        rows = self.db.query(
            ExtraPayRequest.status,
            func.count(ExtraPayRequest.id)
        ).filter(
            ExtraPayRequest.district_id == district_id
        ).group_by(ExtraPayRequest.status).all()
        return {status.value: count for status, count in rows}

    def recent(self, district_id: int, limit: int = 10) -> List[ExtraPayRequest]:
        return self.list(district_id, limit=limit)


class CustomFieldRepository:
    """District-defined form fields for extra pay screens."""

    def __init__(self, db: Session):
        self.db = db

    def list(
        self,
        district_id: int,
        section: Optional[str] = None,
        category: Optional[str] = None
    ) -> List[ExtraPayCustomField]:
        """Fields in display order. Filters are ANDed together."""
        query = self.db.query(ExtraPayCustomField).filter(
            ExtraPayCustomField.district_id == district_id
        )
        if section:
            query = query.filter(ExtraPayCustomField.section == section)
        if category:
            query = query.filter(ExtraPayCustomField.category == category)
        return query.order_by(
            ExtraPayCustomField.display_order.asc(),
            ExtraPayCustomField.id.asc()
        ).all()

    def exists(self, district_id: int, field_name: str) -> bool:
        return self.db.query(ExtraPayCustomField.id).filter(
            ExtraPayCustomField.district_id == district_id,
            ExtraPayCustomField.field_name == field_name
        ).first() is not None

    def create(self, district_id: int, created_by: str, **fields) -> ExtraPayCustomField:
        """Create and commit a field. field_name must be unused in the district."""
        if self.exists(district_id, fields["field_name"]):
            raise ValidationError(f"Custom field '{fields['field_name']}' already exists")
        now = datetime.utcnow()
        field = ExtraPayCustomField(
            district_id=district_id,
            created_by=created_by,
            created_at=now,
            updated_at=now,
            **fields
        )
        try:
            self.db.add(field)
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise StorageUnavailable(f"Could not create custom field: {exc}") from exc
        self.db.refresh(field)
        return field
