"""
Fire-and-forget notification dispatch.

Every Notifier method returns the number of messages sent. None of them
raise: a failed send is logged through the PII sanitizer, counted, and
otherwise ignored.
"""
from enum import Enum
from typing import Dict, List, Optional

from esupervision.integrations.base import ContactDetails, NotificationChannel, Recipient, RecipientMethod
from esupervision.utils.logging import get_logger
from esupervision.utils.metrics import record_notification_failure
from esupervision.utils.pii import sanitize_exception

logger = get_logger(__name__)


class NotificationType(str, Enum):
    REGISTRATION_CONFIRMATION = "REGISTRATION_CONFIRMATION"
    CHECKIN_INVITE = "CHECKIN_INVITE"
    CHECKIN_REMINDER = "CHECKIN_REMINDER"
    CHECKIN_SUBMITTED_OFFENDER = "CHECKIN_SUBMITTED_OFFENDER"
    CHECKIN_SUBMITTED_PRACTITIONER = "CHECKIN_SUBMITTED_PRACTITIONER"
    CHECKIN_MISSED_PRACTITIONER = "CHECKIN_MISSED_PRACTITIONER"
    CHECKINS_STOPPED = "CHECKINS_STOPPED"


def offender_recipients(contact: ContactDetails) -> List[Recipient]:
    recipients = []
    if contact.mobile:
        recipients.append(Recipient(RecipientMethod.SMS, contact.mobile))
    if contact.email:
        recipients.append(Recipient(RecipientMethod.EMAIL, contact.email))
    return recipients


def practitioner_recipients(contact: ContactDetails) -> List[Recipient]:
    if contact.practitioner and contact.practitioner.email:
        return [Recipient(RecipientMethod.EMAIL, contact.practitioner.email)]
    return []


def _offender_context(offender) -> Dict[str, object]:
    return {'crn': offender.crn, 'offender_uuid': offender.uuid}


def _checkin_context(checkin, offender) -> Dict[str, object]:
    context = _offender_context(offender)
    context.update({
        'checkin_uuid': checkin.uuid,
        'due_date': checkin.due_date.isoformat() if checkin.due_date else None,
    })
    return context


class Notifier:
    
    def __init__(self, channel: NotificationChannel):
        self.channel = channel
    
    def registration_confirmed(self, offender, contact: Optional[ContactDetails]) -> int:
        return self._to_offender(NotificationType.REGISTRATION_CONFIRMATION, offender, contact,
                                 _offender_context(offender))
    
    def checkin_invite(self, checkin, offender, contact: Optional[ContactDetails]) -> int:
        return self._to_offender(NotificationType.CHECKIN_INVITE, offender, contact,
                                 _checkin_context(checkin, offender))
    
    def checkin_reminder(self, checkin, offender, contact: Optional[ContactDetails]) -> int:
        return self._to_offender(NotificationType.CHECKIN_REMINDER, offender, contact,
                                 _checkin_context(checkin, offender))
    
    def checkin_submitted(self, checkin, offender, contact: Optional[ContactDetails]) -> int:
        context = _checkin_context(checkin, offender)
        context['auto_id_check'] = checkin.auto_id_check
        sent = self._to_practitioner(NotificationType.CHECKIN_SUBMITTED_PRACTITIONER, offender, contact, context)
        sent += self._to_offender(NotificationType.CHECKIN_SUBMITTED_OFFENDER, offender, contact,
                                  _checkin_context(checkin, offender))
        return sent
    
    def checkin_missed(self, checkin, offender, contact: Optional[ContactDetails]) -> int:
        return self._to_practitioner(NotificationType.CHECKIN_MISSED_PRACTITIONER, offender, contact,
                                     _checkin_context(checkin, offender))
    
    def checkins_stopped(self, offender, contact: Optional[ContactDetails]) -> int:
        return self._to_offender(NotificationType.CHECKINS_STOPPED, offender, contact,
                                 _offender_context(offender))
    
    def _to_offender(self, notification_type, offender, contact, context) -> int:
        if contact is None:
            logger.warning("No contact details, notification not sent",
                           notification_type=notification_type.value, crn=offender.crn)
            return 0
        return self._send_all(notification_type, offender_recipients(contact), context, offender.crn)
    
    def _to_practitioner(self, notification_type, offender, contact, context) -> int:
        if contact is None:
            logger.warning("No contact details, notification not sent",
                           notification_type=notification_type.value, crn=offender.crn)
            return 0
        return self._send_all(notification_type, practitioner_recipients(contact), context, offender.crn)
    
    def _send_all(self, notification_type, recipients, context, crn) -> int:
        if not recipients:
            logger.warning("No recipients for notification",
                           notification_type=notification_type.value, crn=crn)
            return 0
        sent = 0
        for recipient in recipients:
            try:
                self.channel.send(notification_type.value, recipient, context)
                sent += 1
            except Exception as e:
                record_notification_failure(notification_type.value)
                logger.error(
                    "Notification failed",
                    notification_type=notification_type.value,
                    method=recipient.method.value,
                    error=sanitize_exception(e, crn=crn),
                )
        return sent
