"""
Domain events for downstream consumers.

Publishing is best-effort: a failed publish is logged through the PII
sanitizer and reported as False, never raised.
"""
from enum import Enum
from typing import Dict, Optional

from esupervision.integrations.base import DomainEventBus
from esupervision.utils.clock import utc_now
from esupervision.utils.constants import DOMAIN_EVENT_PREFIX, DOMAIN_EVENT_VERSION
from esupervision.utils.logging import get_logger
from esupervision.utils.metrics import record_domain_event_failure
from esupervision.utils.pii import sanitize_exception

logger = get_logger(__name__)


class DomainEventType(Enum):
    """(type suffix, detail path, description)"""
    SETUP_COMPLETED = ("setup.completed", "setup", "Offender setup completed")
    CHECKIN_CREATED = ("check-in.created", "checkin", "Check-in created")
    CHECKIN_RECEIVED = ("check-in.received", "checkin", "Check-in received")
    CHECKIN_REVIEWED = ("check-in.reviewed", "checkin", "Check-in reviewed")
    CHECKIN_EXPIRED = ("check-in.expired", "checkin", "Check-in expired")

    @property
    def type_name(self) -> str:
        return f"{DOMAIN_EVENT_PREFIX}.{self.value[0]}"

    @property
    def path(self) -> str:
        return self.value[1]

    @property
    def description(self) -> str:
        return self.value[2]


class DomainEventPublisher:
    
    def __init__(self, bus: Optional[DomainEventBus], hosted_at: str, clock=utc_now):
        self.bus = bus
        self.hosted_at = hosted_at.rstrip('/')
        self.clock = clock
    
    def detail_url(self, event_type: DomainEventType, entity_uuid: str) -> str:
        return f"{self.hosted_at}/v2/events/{event_type.path}/{entity_uuid}"
    
    def build_payload(self, event_type: DomainEventType, crn: str, entity_uuid: str) -> Dict[str, object]:
        return {
            'eventType': event_type.type_name,
            'version': DOMAIN_EVENT_VERSION,
            'description': event_type.description,
            'detailUrl': self.detail_url(event_type, entity_uuid),
            'occurredAt': self.clock().isoformat(),
            'personReference': {'identifiers': [{'type': 'CRN', 'value': crn}]},
        }
    
    def publish(self, event_type: DomainEventType, crn: str, entity_uuid: str) -> bool:
        """Publish one event; returns False if it could not be sent."""
        if self.bus is None:
            logger.debug("No domain event bus configured", event_type=event_type.type_name)
            return False
        try:
            self.bus.publish(event_type.type_name, self.build_payload(event_type, crn, entity_uuid))
            return True
        except Exception as e:
            record_domain_event_failure(event_type.type_name)
            logger.error(
                "Domain event publish failed",
                event_type=event_type.type_name,
                error=sanitize_exception(e, crn=crn, uuid=entity_uuid),
            )
            return False
    
    def setup_completed(self, offender) -> bool:
        return self.publish(DomainEventType.SETUP_COMPLETED, offender.crn, offender.uuid)
    
    def checkin_created(self, checkin, offender) -> bool:
        return self.publish(DomainEventType.CHECKIN_CREATED, offender.crn, checkin.uuid)
    
    def checkin_received(self, checkin, offender) -> bool:
        return self.publish(DomainEventType.CHECKIN_RECEIVED, offender.crn, checkin.uuid)
    
    def checkin_reviewed(self, checkin, offender) -> bool:
        return self.publish(DomainEventType.CHECKIN_REVIEWED, offender.crn, checkin.uuid)
    
    def checkin_expired(self, checkin, offender) -> bool:
        return self.publish(DomainEventType.CHECKIN_EXPIRED, offender.crn, checkin.uuid)
