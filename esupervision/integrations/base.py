"""
Abstract collaborator interfaces.
All external adapters must implement these interfaces.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from typing import Dict, Iterable, Mapping, Optional


@dataclass(frozen=True)
class Name:
    forename: str
    surname: str


@dataclass(frozen=True)
class OrganisationalUnit:
    """Probation organisational unit (code plus description)."""
    code: str
    description: Optional[str] = None


@dataclass(frozen=True)
class PractitionerDetails:
    name: Name
    email: Optional[str] = None
    local_admin_unit: Optional[OrganisationalUnit] = None
    probation_delivery_unit: Optional[OrganisationalUnit] = None
    provider: Optional[OrganisationalUnit] = None


@dataclass(frozen=True)
class ContactDetails:
    """Offender contact details and supervising practitioner from case data."""
    crn: str
    name: Name
    mobile: Optional[str] = None
    email: Optional[str] = None
    practitioner: Optional[PractitionerDetails] = None


@dataclass(frozen=True)
class ImageRef:
    """Object storage coordinate of an image."""
    bucket: str
    key: str


class RecipientMethod(str, Enum):
    SMS = "SMS"
    EMAIL = "EMAIL"


@dataclass(frozen=True)
class Recipient:
    method: RecipientMethod
    address: str


class ObjectStorage(ABC):
    """Uploaded photos, snapshots and videos."""
    
    @abstractmethod
    def photo_exists(self, setup) -> bool:
        """Whether the setup's reference photo has been uploaded."""
        pass
    
    @abstractmethod
    def get_offender_photo(self, offender) -> Optional[str]:
        """Signed, time-limited URL of the offender's reference photo."""
        pass
    
    @abstractmethod
    def setup_photo_ref(self, offender_uuid: str) -> ImageRef:
        pass
    
    @abstractmethod
    def checkin_snapshot_ref(self, checkin_uuid: str, index: int) -> ImageRef:
        pass


class CaseDataProvider(ABC):
    """Upstream case data. Lookups return None on any failure."""
    
    @abstractmethod
    def get_contact_details(self, crn: str) -> Optional[ContactDetails]:
        pass
    
    def get_contact_details_for_multiple(self, crns: Iterable[str]) -> Dict[str, ContactDetails]:
        """Resolved contact details keyed by crn; unresolved crns are absent."""
        results = {}
        for crn in crns:
            details = self.get_contact_details(crn)
            if details is not None:
                results[crn] = details
        return results


class NotificationChannel(ABC):
    """Outbound SMS and email."""
    
    @abstractmethod
    def send(self, notification_type: str, recipient: Recipient, reference_context: Mapping[str, object]):
        """Send one message. Raises on failure."""
        pass


class DomainEventBus(ABC):
    
    @abstractmethod
    def publish(self, event_type: str, payload: Mapping[str, object]):
        """Publish one event. Raises on failure."""
        pass


class LockProvider(ABC):
    """Distributed lease-based mutual exclusion."""
    
    @abstractmethod
    def try_acquire(self, lock_name: str, lease: timedelta) -> bool:
        """Acquire without blocking; the lease expires on its own."""
        pass
    
    @abstractmethod
    def release(self, lock_name: str, hold_for: Optional[timedelta] = None):
        """Release the lock, or keep it for hold_for more and let it expire."""
        pass


class FaceComparator(ABC):
    """Raw face comparison between two stored images."""
    
    @abstractmethod
    def compare(self, reference: ImageRef, snapshot: ImageRef, similarity_threshold: float) -> Optional[float]:
        """
        Compare the face in reference against the faces in snapshot.
        
        Returns:
            Top similarity of matched faces, or None when no face matched
        
        Raises:
            NoFaceDetected: no face found in either image
            ComparisonServiceError: any other service failure
        """
        pass
