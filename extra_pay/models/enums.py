"""Enums for the extra pay system - the closed sets of statuses and event kinds."""
from enum import Enum


class ContractStatus(str, Enum):
    """Status of an extra pay contract. EXPIRED is derived from end_date, never requested."""
    ACTIVE = "active"
    INACTIVE = "inactive"
    EXPIRED = "expired"


class RequestStatus(str, Enum):
    """Status of a request to pay. REJECTED and PAID are terminal."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    PAID = "paid"


class EntityType(str, Enum):
    """Entities that carry an audit timeline."""
    CONTRACT = "contract"
    REQUEST = "request"


class EventType(str, Enum):
    """Kinds of audit events."""
    CREATED = "created"
    STATUS_CHANGE = "status_change"
    APPROVED = "approved"
    REJECTED = "rejected"
    PAID = "paid"
    WORKFLOW_STEP = "workflow_step"  # Records progress without changing status
