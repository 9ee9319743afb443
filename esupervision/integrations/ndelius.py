"""
Case data client for the upstream probation case management system.
"""
from typing import Dict, Iterable, Optional

import requests

from esupervision.integrations.base import (
    CaseDataProvider,
    ContactDetails,
    Name,
    OrganisationalUnit,
    PractitionerDetails,
)
from esupervision.utils.constants import MAX_CONTACT_BATCH_SIZE
from esupervision.utils.logging import get_logger
from esupervision.utils.pii import sanitize_exception

logger = get_logger(__name__)


def _unit(data: Optional[dict]) -> Optional[OrganisationalUnit]:
    if not data or not data.get('code'):
        return None
    return OrganisationalUnit(code=data['code'], description=data.get('description'))


def _name(data: Optional[dict]) -> Name:
    data = data or {}
    return Name(forename=data.get('forename', ''), surname=data.get('surname', ''))


def parse_contact_details(data: dict) -> ContactDetails:
    """Build ContactDetails from the case data JSON shape."""
    practitioner = None
    practitioner_data = data.get('practitioner')
    if practitioner_data:
        practitioner = PractitionerDetails(
            name=_name(practitioner_data.get('name')),
            email=practitioner_data.get('email'),
            local_admin_unit=_unit(practitioner_data.get('localAdminUnit')),
            probation_delivery_unit=_unit(practitioner_data.get('probationDeliveryUnit')),
            provider=_unit(practitioner_data.get('provider')),
        )
    return ContactDetails(
        crn=data['crn'],
        name=_name(data.get('name')),
        mobile=data.get('mobile'),
        email=data.get('email'),
        practitioner=practitioner,
    )


class NdeliusCaseDataClient(CaseDataProvider):
    """
    HTTP client for contact and practitioner details.
    
    Any failure resolves to None (single) or a missing key (batch).
    """
    
    def __init__(self, base_url: str, timeout: int = 10, session: requests.Session = None):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({'Accept': 'application/json'})
    
    def get_contact_details(self, crn: str) -> Optional[ContactDetails]:
        try:
            response = self.session.get(f"{self.base_url}/case/{crn}", timeout=self.timeout)
            if response.status_code == 404:
                logger.info("No case data for crn", crn=crn)
                return None
            response.raise_for_status()
            return parse_contact_details(response.json())
        except (requests.RequestException, KeyError, ValueError) as e:
            logger.warning("Contact details lookup failed", error=sanitize_exception(e, crn=crn))
            return None
    
    def get_contact_details_for_multiple(self, crns: Iterable[str]) -> Dict[str, ContactDetails]:
        crns = list(dict.fromkeys(crns))
        results = {}
        for start in range(0, len(crns), MAX_CONTACT_BATCH_SIZE):
            chunk = crns[start:start + MAX_CONTACT_BATCH_SIZE]
            try:
                response = self.session.post(f"{self.base_url}/cases", json=chunk, timeout=self.timeout)
                response.raise_for_status()
                for item in response.json():
                    details = parse_contact_details(item)
                    results[details.crn] = details
            except (requests.RequestException, KeyError, ValueError) as e:
                logger.warning(
                    "Batch contact details lookup failed",
                    batch_size=len(chunk),
                    error=sanitize_exception(e),
                )
        return results
