"""Read-only views over the audit event log."""
from typing import Iterable, List, Optional
from sqlalchemy import and_, or_
from sqlalchemy.orm import Session
from extra_pay.models.audit import ExtraPayEvent
from extra_pay.models.enums import EntityType, EventType
from extra_pay.services.repository import ContractRepository, RequestRepository


class TimelineReader:
    """
    Reconstructs time-ordered event histories.

    Ordering is ascending by timestamp with ties broken by the monotonic
    event id. Reads never write.
    """

    def __init__(self, db: Session):
        self.db = db

    def _ordered(self, query):
        return query.order_by(ExtraPayEvent.timestamp.asc(), ExtraPayEvent.id.asc()).all()

    def get_timeline(
        self,
        entity_type: EntityType,
        entity_id: int,
        district_id: int
    ) -> List[ExtraPayEvent]:
        """Events for one entity in the caller's district."""
        query = self.db.query(ExtraPayEvent).filter(
            ExtraPayEvent.district_id == district_id,
            ExtraPayEvent.entity_type == EntityType(entity_type).value,
            ExtraPayEvent.entity_id == entity_id
        )
        return self._ordered(query)

    def get_contract_activity(self, contract_id: int, district_id: int) -> List[ExtraPayEvent]:
        """
        The contract's own events merged with those of every request against it.

        Raises NotFoundError if the contract is not in the caller's district.
        """
        ContractRepository(self.db).get(district_id, contract_id)
        request_ids = RequestRepository(self.db).ids_for_contract(district_id, contract_id)

        scopes = [and_(
            ExtraPayEvent.entity_type == EntityType.CONTRACT.value,
            ExtraPayEvent.entity_id == contract_id
        )]
        if request_ids:
            scopes.append(and_(
                ExtraPayEvent.entity_type == EntityType.REQUEST.value,
                ExtraPayEvent.entity_id.in_(request_ids)
            ))
        query = self.db.query(ExtraPayEvent).filter(
            ExtraPayEvent.district_id == district_id,
            or_(*scopes)
        )
        return self._ordered(query)


def replay_status(events: Iterable[ExtraPayEvent]) -> Optional[str]:
    """
    Fold one entity's ordered events into the status they imply.

    Raises ValueError if an event does not start from the folded status,
    i.e. the history has a gap or was recorded out of order.
    """
    current = None
    for event in events:
        if event.event_type == EventType.CREATED.value:
            if current is not None:
                raise ValueError(f"Event {event.id}: entity created twice")
        elif event.from_status != current:
            raise ValueError(
                f"Event {event.id}: expected from_status '{current}', got '{event.from_status}'"
            )
        current = event.to_status
    return current
