"""
Audit event model for the extra pay timeline.

Rows here are the source of truth for "who changed what, when". The status
columns on contracts and requests are projections of this history.
"""
from datetime import datetime
from sqlalchemy import Column, String, Integer, DateTime, JSON, Text, Index
from extra_pay.database import Base


class ExtraPayEvent(Base):
    """
    Immutable audit event.

    Invariants:
    - Once written, never edited or deleted
    - Append-only; id is monotonic and breaks timestamp ties
    - Scoped to the district that owns the entity
    """
    __tablename__ = "extra_pay_events"
    __table_args__ = (
        Index("ix_extra_pay_events_entity", "entity_type", "entity_id"),
    )

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    district_id = Column(Integer, nullable=False, index=True)
    entity_type = Column(String, nullable=False)  # "contract" or "request"
    entity_id = Column(Integer, nullable=False)
    event_type = Column(String, nullable=False, index=True)
    event_description = Column(Text, nullable=False)
    from_status = Column(String, nullable=True)  # None for creation events
    to_status = Column(String, nullable=False)
    actor_id = Column(String, nullable=False)
    actor_role = Column(String, nullable=False)
    workflow_step = Column(Integer, nullable=True)
    ip_address = Column(String, nullable=True)
    user_agent = Column(String, nullable=True)
    payload_json = Column(JSON, nullable=False, default=dict)  # Shape depends on event_type
    timestamp = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
