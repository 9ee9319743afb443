"""
HTTP notification channel.
"""
from typing import Mapping

import requests

from esupervision.integrations.base import NotificationChannel, Recipient


class HttpNotificationChannel(NotificationChannel):
    """Posts SMS and email requests to the notification gateway."""
    
    def __init__(self, base_url: str, api_key: str, timeout: int = 10, session: requests.Session = None):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.session = session or requests.Session()
        if api_key:
            self.session.headers.update({'Authorization': f'Bearer {api_key}'})
    
    def send(self, notification_type: str, recipient: Recipient, reference_context: Mapping[str, object]):
        response = self.session.post(
            f"{self.base_url}/notifications/{recipient.method.value.lower()}",
            json={
                'template': notification_type,
                'recipient': recipient.address,
                'reference': dict(reference_context),
            },
            timeout=self.timeout,
        )
        response.raise_for_status()
