"""Domain models - contracts and the requests to pay made against them."""
from datetime import datetime
from sqlalchemy import (
    Boolean, Column, String, Integer, Date, DateTime, ForeignKey, JSON, Numeric, Text,
    UniqueConstraint, Enum as SQLEnum
)
from sqlalchemy.orm import relationship
from extra_pay.database import Base
from extra_pay.models.enums import ContractStatus, RequestStatus


def _enum_values(enum_cls):
    # Persist "pending", not "PENDING", so rows read the same as audit events
    return [member.value for member in enum_cls]


class ExtraPayContract(Base):
    """
    A recurring-pay authorization (coaching, tutoring, after school, ...).

    Invariants:
    - status is a cached projection of the contract's event history
    - Never hard-deleted while requests reference it
    - Every row belongs to exactly one district
    """
    __tablename__ = "extra_pay_contracts"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    district_id = Column(Integer, nullable=False, index=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    contract_type = Column(String, nullable=True)
    department = Column(String, nullable=True)
    amount = Column(Numeric(10, 2), nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    status = Column(
        SQLEnum(ContractStatus, values_callable=_enum_values),
        nullable=False,
        default=ContractStatus.ACTIVE
    )
    created_by = Column(String, nullable=False)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    requests = relationship("ExtraPayRequest", back_populates="contract")


class ExtraPayRequest(Base):
    """
    A single claim for payment against a contract.

    Lifecycle: pending → approved → paid, or pending → rejected.
    """
    __tablename__ = "extra_pay_requests"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    district_id = Column(Integer, nullable=False, index=True)
    contract_id = Column(Integer, ForeignKey("extra_pay_contracts.id"), nullable=False, index=True)
    employee_id = Column(Integer, nullable=False, index=True)
    requested_by = Column(String, nullable=False)
    amount = Column(Numeric(10, 2), nullable=False)
    hours_worked = Column(Numeric(5, 2), nullable=True)
    work_date = Column(Date, nullable=False)
    description = Column(Text, nullable=False)
    notes = Column(Text, nullable=True)
    status = Column(
        SQLEnum(RequestStatus, values_callable=_enum_values),
        nullable=False,
        default=RequestStatus.PENDING
    )

    # Stamped by the transition that sets them
    approved_by = Column(String, nullable=True)
    approved_at = Column(DateTime, nullable=True)
    rejected_by = Column(String, nullable=True)
    rejected_at = Column(DateTime, nullable=True)
    rejection_reason = Column(Text, nullable=True)
    paid_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    contract = relationship("ExtraPayContract", back_populates="requests")


class ExtraPayCustomField(Base):
    """
    A district-defined field shown on extra pay forms.

    Fields are grouped by category and section and listed by display_order.
    field_name is unique within a district.
    """
    __tablename__ = "extra_pay_custom_fields"
    __table_args__ = (
        UniqueConstraint("district_id", "field_name", name="uq_extra_pay_custom_fields_name"),
    )

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    district_id = Column(Integer, nullable=False, index=True)
    field_name = Column(String, nullable=False)
    display_label = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    field_type = Column(String, nullable=False, default="text")  # text, number, date, select, ...
    category = Column(String, nullable=False)
    section = Column(String, nullable=False)
    display_order = Column(Integer, nullable=False, default=0)
    is_required = Column(Boolean, nullable=False, default=False)
    is_visible = Column(Boolean, nullable=False, default=True)
    options = Column(JSON, nullable=False, default=list)  # Choices for select fields
    created_by = Column(String, nullable=False)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow)
