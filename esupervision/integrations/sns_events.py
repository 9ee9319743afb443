"""
Domain event bus backed by an SNS topic.
"""
import json
from typing import Mapping

from esupervision.integrations.base import DomainEventBus
from esupervision.utils.logging import get_logger

logger = get_logger(__name__)


class SnsDomainEventBus(DomainEventBus):
    """
    Publishes domain events to SNS.
    
    The topic is validated on construction, so a missing or unreachable
    topic fails at process start rather than on first publish.
    """
    
    def __init__(self, sns_client, topic_arn: str):
        if not topic_arn:
            raise ValueError("DOMAIN_EVENTS_TOPIC_ARN is not configured")
        self.client = sns_client
        self.topic_arn = topic_arn
        self.client.get_topic_attributes(TopicArn=topic_arn)
        logger.info("Domain event topic resolved", topic_arn=topic_arn)
    
    def publish(self, event_type: str, payload: Mapping[str, object]):
        self.client.publish(
            TopicArn=self.topic_arn,
            Message=json.dumps(payload, default=str),
            MessageAttributes={
                "eventType": {"DataType": "String", "StringValue": event_type},
            },
        )
