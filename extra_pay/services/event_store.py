"""
Append-only store for extra pay audit events.

The store never commits: the caller owns the transaction, so an event and
the entity mutation it describes land together or not at all.
"""
from dataclasses import dataclass
from typing import Any, Dict, Optional
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from extra_pay.models.audit import ExtraPayEvent
from extra_pay.models.enums import EntityType, EventType
from extra_pay.services.errors import StorageUnavailable


@dataclass(frozen=True)
class Actor:
    """Who performed an action, and from where, for attribution on every event."""
    id: str
    role: str
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


class EventStore:
    """Durable, append-only log of ExtraPayEvent rows. No update or delete is exposed."""

    def __init__(self, db: Session):
        self.db = db

    def append(
        self,
        *,
        district_id: int,
        entity_type: EntityType,
        entity_id: int,
        event_type: EventType,
        description: str,
        actor: Actor,
        to_status: str,
        from_status: Optional[str] = None,
        workflow_step: Optional[int] = None,
        metadata: Optional[Dict[str, Any]] = None
    ) -> int:
        """Stage a new event in the current transaction and return its id."""
        event = ExtraPayEvent(
            district_id=district_id,
            entity_type=entity_type.value,
            entity_id=entity_id,
            event_type=event_type.value,
            event_description=description,
            from_status=from_status,
            to_status=to_status,
            actor_id=actor.id,
            actor_role=actor.role,
            workflow_step=workflow_step,
            ip_address=actor.ip_address,
            user_agent=actor.user_agent,
            payload_json=metadata or {}
        )
        try:
            self.db.add(event)
            # Flush to obtain the monotonic id without committing
            self.db.flush()
        except SQLAlchemyError as exc:
            raise StorageUnavailable(f"Could not append audit event: {exc}") from exc
        return event.id
