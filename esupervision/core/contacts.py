"""Guarded upstream contact lookups for side effects."""
from typing import Dict, Iterable, Optional

from esupervision.integrations.base import CaseDataProvider, ContactDetails
from esupervision.utils.logging import get_logger
from esupervision.utils.pii import sanitize_exception

logger = get_logger(__name__)


def lookup_contact(case_data: CaseDataProvider, crn: str) -> Optional[ContactDetails]:
    """Contact details for crn, or None if they cannot be resolved."""
    try:
        contact = case_data.get_contact_details(crn)
    except Exception as e:
        logger.warning("Contact details unavailable", error=sanitize_exception(e, crn=crn))
        return None
    if contact is None:
        logger.warning("Contact details unavailable", crn=crn)
    return contact


def lookup_contacts(case_data: CaseDataProvider, crns: Iterable[str]) -> Dict[str, ContactDetails]:
    """Resolved contact details keyed by crn; unresolved crns are absent."""
    crns = list(dict.fromkeys(crns))
    if not crns:
        return {}
    try:
        return case_data.get_contact_details_for_multiple(crns)
    except Exception as e:
        logger.warning("Batch contact details unavailable", count=len(crns), error=sanitize_exception(e))
        return {}
