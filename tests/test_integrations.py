import json
from datetime import datetime, timedelta
from types import SimpleNamespace
from unittest.mock import MagicMock

import boto3
import pytest
import requests
from botocore.stub import ANY, Stubber
from redis.exceptions import ConnectionError as RedisConnectionError, LockError

from conftest import RecordingChannel, RecordingEventBus, make_contact
from esupervision.core.domain_events import DomainEventPublisher, DomainEventType
from esupervision.core.exceptions import ComparisonServiceError, NoFaceDetected
from esupervision.core.notifications import Notifier
from esupervision.integrations.base import ImageRef, RecipientMethod
from esupervision.integrations.ndelius import NdeliusCaseDataClient, parse_contact_details
from esupervision.integrations.notify import HttpNotificationChannel
from esupervision.integrations.redis_lock import RedisLockProvider
from esupervision.integrations.rekognition import RekognitionFaceComparator
from esupervision.integrations.s3_storage import S3ObjectStorage
from esupervision.integrations.sns_events import SnsDomainEventBus
from esupervision.scheduler.sweeps import SweepRunner


TOPIC = "arn:aws:sns:eu-west-2:000000000000:domain-events"
REFERENCE = ImageRef("images", "setup-o1")
SNAPSHOT = ImageRef("images", "checkin-c1/0")


def aws_client(service):
    return boto3.client(
        service,
        region_name="eu-west-2",
        aws_access_key_id="testing",
        aws_secret_access_key="testing",
    )


def compare_params():
    return {
        "SourceImage": {"S3Object": {"Bucket": "images", "Name": "setup-o1"}},
        "TargetImage": {"S3Object": {"Bucket": "images", "Name": "checkin-c1/0"}},
        "SimilarityThreshold": 90.0,
    }


# ========== REKOGNITION ==========

def test_rekognition_returns_top_similarity():
    client = aws_client("rekognition")
    with Stubber(client) as stubber:
        stubber.add_response("compare_faces", {
            "FaceMatches": [{"Similarity": 93.5}, {"Similarity": 97.25}],
            "UnmatchedFaces": [],
        }, compare_params())

        assert RekognitionFaceComparator(client).compare(REFERENCE, SNAPSHOT, 90.0) == 97.25


def test_rekognition_no_matches():
    client = aws_client("rekognition")
    with Stubber(client) as stubber:
        stubber.add_response("compare_faces", {"FaceMatches": [], "UnmatchedFaces": [{}]}, compare_params())

        assert RekognitionFaceComparator(client).compare(REFERENCE, SNAPSHOT, 90.0) is None


def test_rekognition_invalid_parameter_means_no_face():
    client = aws_client("rekognition")
    with Stubber(client) as stubber:
        stubber.add_client_error("compare_faces", service_error_code="InvalidParameterException",
                                 http_status_code=400)

        with pytest.raises(NoFaceDetected):
            RekognitionFaceComparator(client).compare(REFERENCE, SNAPSHOT, 90.0)


@pytest.mark.parametrize("code, status, transient", [
    ("ThrottlingException", 400, True),
    ("InternalServerError", 500, True),
    ("AccessDeniedException", 403, False),
])
def test_rekognition_service_errors(code, status, transient):
    client = aws_client("rekognition")
    with Stubber(client) as stubber:
        stubber.add_client_error("compare_faces", service_error_code=code, http_status_code=status)

        with pytest.raises(ComparisonServiceError) as exc_info:
            RekognitionFaceComparator(client).compare(REFERENCE, SNAPSHOT, 90.0)

    assert exc_info.value.transient is transient


# ========== S3 ==========

def test_s3_photo_exists():
    client = aws_client("s3")
    storage = S3ObjectStorage(client, "images", "videos")
    setup = SimpleNamespace(offender=SimpleNamespace(uuid="o1"))
    with Stubber(client) as stubber:
        stubber.add_response("head_object", {"ContentLength": 10}, {"Bucket": "images", "Key": "setup-o1"})
        stubber.add_client_error("head_object", service_error_code="404", http_status_code=404)

        assert storage.photo_exists(setup) is True
        assert storage.photo_exists(setup) is False


def test_s3_other_errors_propagate():
    client = aws_client("s3")
    storage = S3ObjectStorage(client, "images", "videos")
    with Stubber(client) as stubber:
        stubber.add_client_error("head_object", service_error_code="AccessDenied", http_status_code=403)

        with pytest.raises(Exception):
            storage.get_offender_photo(SimpleNamespace(uuid="o1"))


def test_s3_presigned_photo_url():
    client = aws_client("s3")
    storage = S3ObjectStorage(client, "images", "videos", url_ttl_seconds=300)
    with Stubber(client) as stubber:
        stubber.add_response("head_object", {}, {"Bucket": "images", "Key": "setup-o1"})

        url = storage.get_offender_photo(SimpleNamespace(uuid="o1"))

    assert "setup-o1" in url
    assert "Expires=300" in url or "X-Amz-Expires=300" in url


def test_s3_keys():
    storage = S3ObjectStorage(MagicMock(), "images", "videos")

    assert storage.checkin_snapshot_ref("c1", 2) == ImageRef("images", "checkin-c1/2")
    assert storage.checkin_video_ref("c1") == ImageRef("videos", "checkin-c1/video")


# ========== SNS ==========

def test_sns_requires_topic():
    with pytest.raises(ValueError):
        SnsDomainEventBus(MagicMock(), "")


def test_sns_fails_fast_on_missing_topic():
    client = aws_client("sns")
    with Stubber(client) as stubber:
        stubber.add_client_error("get_topic_attributes", service_error_code="NotFound", http_status_code=404)

        with pytest.raises(Exception):
            SnsDomainEventBus(client, TOPIC)


def test_sns_publish():
    client = aws_client("sns")
    with Stubber(client) as stubber:
        stubber.add_response("get_topic_attributes", {"Attributes": {}}, {"TopicArn": TOPIC})
        stubber.add_response("publish", {"MessageId": "m1"}, {
            "TopicArn": TOPIC,
            "Message": ANY,
            "MessageAttributes": {
                "eventType": {"DataType": "String", "StringValue": "esupervision.check-in.created"},
            },
        })

        bus = SnsDomainEventBus(client, TOPIC)
        bus.publish("esupervision.check-in.created", {"eventType": "esupervision.check-in.created"})
        stubber.assert_no_pending_responses()


# ========== CASE DATA ==========

CASE_JSON = {
    "crn": "X123456",
    "name": {"forename": "John", "surname": "Smith"},
    "mobile": "07700900123",
    "email": "john.smith@example.test",
    "practitioner": {
        "name": {"forename": "Pat", "surname": "Officer"},
        "email": "pat.officer@probation.test",
        "localAdminUnit": {"code": "LAU1", "description": "North Team"},
        "probationDeliveryUnit": {"code": "PDU1", "description": "North PDU"},
        "provider": {"code": "N07", "description": "London"},
    },
}


def fake_response(status_code=200, payload=None):
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = payload
    if status_code >= 400:
        response.raise_for_status.side_effect = requests.HTTPError(f"{status_code} error")
    return response


def test_parse_contact_details():
    contact = parse_contact_details(CASE_JSON)

    assert contact.crn == "X123456"
    assert contact.practitioner.local_admin_unit.code == "LAU1"
    assert contact.practitioner.provider.description == "London"


def test_case_data_lookup():
    session = MagicMock()
    session.headers = {}
    session.get.return_value = fake_response(payload=CASE_JSON)
    client = NdeliusCaseDataClient("http://ndelius.test/", session=session)

    assert client.get_contact_details("X123456").mobile == "07700900123"
    session.get.assert_called_once_with("http://ndelius.test/case/X123456", timeout=10)


@pytest.mark.parametrize("response", [fake_response(404), fake_response(500)])
def test_case_data_lookup_failures_resolve_to_none(response):
    session = MagicMock()
    session.headers = {}
    session.get.return_value = response

    assert NdeliusCaseDataClient("http://ndelius.test", session=session).get_contact_details("X123456") is None


def test_case_data_connection_error_resolves_to_none():
    session = MagicMock()
    session.headers = {}
    session.get.side_effect = requests.ConnectionError("refused")

    assert NdeliusCaseDataClient("http://ndelius.test", session=session).get_contact_details("X123456") is None


def test_case_data_batch_lookup_drops_failed_chunks(monkeypatch):
    monkeypatch.setattr("esupervision.integrations.ndelius.MAX_CONTACT_BATCH_SIZE", 2)
    session = MagicMock()
    session.headers = {}
    session.post.side_effect = [
        fake_response(payload=[CASE_JSON, dict(CASE_JSON, crn="X000002")]),
        fake_response(503),
    ]
    client = NdeliusCaseDataClient("http://ndelius.test", session=session)

    contacts = client.get_contact_details_for_multiple(["X123456", "X000002", "X000003"])

    assert sorted(contacts) == ["X000002", "X123456"]
    assert session.post.call_count == 2


# ========== NOTIFICATIONS ==========

def test_http_channel_posts_by_method():
    session = MagicMock()
    session.headers = {}
    session.post.return_value = fake_response()
    channel = HttpNotificationChannel("http://notify.test", "key", session=session)
    contact = make_contact("X123456")

    Notifier(channel).checkin_invite(
        SimpleNamespace(uuid="c1", due_date=datetime(2025, 6, 2).date()),
        SimpleNamespace(crn="X123456", uuid="o1"),
        contact,
    )

    urls = [call.args[0] for call in session.post.call_args_list]
    assert urls == ["http://notify.test/notifications/sms", "http://notify.test/notifications/email"]
    assert session.headers["Authorization"] == "Bearer key"


def test_notifier_routes_to_practitioner():
    channel = RecordingChannel()
    offender = SimpleNamespace(crn="X123456", uuid="o1")
    checkin = SimpleNamespace(uuid="c1", due_date=datetime(2025, 6, 2).date())

    assert Notifier(channel).checkin_missed(checkin, offender, make_contact("X123456")) == 1

    [(notification_type, recipient, context)] = channel.sent
    assert notification_type == "CHECKIN_MISSED_PRACTITIONER"
    assert recipient.method is RecipientMethod.EMAIL
    assert recipient.address == "pat.officer@probation.test"
    assert context["checkin_uuid"] == "c1"


def test_notifier_without_contact_or_with_failing_channel():
    channel = RecordingChannel()
    offender = SimpleNamespace(crn="X123456", uuid="o1")
    notifier = Notifier(channel)

    assert notifier.registration_confirmed(offender, None) == 0
    assert notifier.checkin_missed(SimpleNamespace(uuid="c1", due_date=None), offender,
                                   make_contact("X123456", with_practitioner=False)) == 0
    channel.fail = True
    assert notifier.registration_confirmed(offender, make_contact("X123456")) == 0


# ========== DOMAIN EVENTS ==========

def test_domain_event_payload():
    bus = RecordingEventBus()
    publisher = DomainEventPublisher(bus, "https://esupervision.test/", clock=lambda: datetime(2025, 6, 2, 9, 0))

    assert publisher.checkin_expired(SimpleNamespace(uuid="c1"), SimpleNamespace(crn="X123456", uuid="o1"))

    [(event_type, payload)] = bus.published
    assert event_type == "esupervision.check-in.expired"
    assert payload == {
        "eventType": "esupervision.check-in.expired",
        "version": 1,
        "description": "Check-in expired",
        "detailUrl": "https://esupervision.test/v2/events/checkin/c1",
        "occurredAt": "2025-06-02T09:00:00",
        "personReference": {"identifiers": [{"type": "CRN", "value": "X123456"}]},
    }
    json.dumps(payload)


def test_domain_event_failures_are_reported_not_raised():
    bus = RecordingEventBus()
    bus.fail = True
    publisher = DomainEventPublisher(bus, "https://esupervision.test")

    assert publisher.publish(DomainEventType.SETUP_COMPLETED, "X123456", "o1") is False
    assert DomainEventPublisher(None, "https://esupervision.test").publish(
        DomainEventType.SETUP_COMPLETED, "X123456", "o1") is False


# ========== LOCKS ==========

def test_redis_lock_acquire_and_release():
    client = MagicMock()
    lock = client.lock.return_value
    lock.acquire.return_value = True
    provider = RedisLockProvider(client)

    assert provider.try_acquire("checkin-expiry", timedelta(minutes=30)) is True
    client.lock.assert_called_once_with("esupervision:lock:checkin-expiry", timeout=1800.0, thread_local=False)
    lock.acquire.assert_called_once_with(blocking=False)

    provider.release("checkin-expiry")
    lock.release.assert_called_once_with()


def test_redis_lock_held_elsewhere():
    client = MagicMock()
    client.lock.return_value.acquire.return_value = False

    assert RedisLockProvider(client).try_acquire("checkin-expiry", timedelta(minutes=30)) is False


def test_redis_lock_release_holds_for_minimum():
    client = MagicMock()
    lock = client.lock.return_value
    lock.acquire.return_value = True
    provider = RedisLockProvider(client)
    provider.try_acquire("checkin-expiry", timedelta(minutes=30))

    provider.release("checkin-expiry", hold_for=timedelta(seconds=4))

    lock.extend.assert_called_once_with(4.0, replace_ttl=True)
    lock.release.assert_not_called()


def test_redis_lock_expired_lease_is_not_an_error():
    client = MagicMock()
    lock = client.lock.return_value
    lock.acquire.return_value = True
    lock.release.side_effect = LockError("Cannot release a lock that's no longer owned")
    provider = RedisLockProvider(client)
    provider.try_acquire("checkin-expiry", timedelta(minutes=30))

    provider.release("checkin-expiry")
    provider.release("never-held")


def test_redis_lock_unavailable_backend_is_not_acquired():
    client = MagicMock()
    client.lock.return_value.acquire.side_effect = RedisConnectionError("Connection refused")
    provider = RedisLockProvider(client)

    assert provider.try_acquire("checkin-expiry", timedelta(minutes=30)) is False
    provider.release("checkin-expiry")
    client.lock.return_value.release.assert_not_called()


def test_redis_lock_release_connection_error_is_logged():
    client = MagicMock()
    lock = client.lock.return_value
    lock.acquire.return_value = True
    lock.release.side_effect = RedisConnectionError("Connection reset")
    provider = RedisLockProvider(client)
    provider.try_acquire("checkin-expiry", timedelta(minutes=30))

    provider.release("checkin-expiry")

    lock.release.assert_called_once_with()


def test_sweep_skips_when_redis_is_down(session_factory, clock):
    client = MagicMock()
    client.lock.side_effect = RedisConnectionError("Connection refused")
    runner = SweepRunner(RedisLockProvider(client), session_factory=session_factory, clock=clock)
    body = MagicMock(return_value={})

    assert runner.run("checkin-expiry", body, timedelta(minutes=30), timedelta(seconds=5)) is None
    body.assert_not_called()
