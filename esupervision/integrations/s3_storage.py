"""
S3 object storage for setup photos and check-in media.
"""
from typing import Optional

from botocore.exceptions import ClientError

from esupervision.integrations.base import ImageRef, ObjectStorage
from esupervision.utils.constants import CHECKIN_SNAPSHOT_KEY, CHECKIN_VIDEO_KEY, SETUP_PHOTO_KEY
from esupervision.utils.logging import get_logger

logger = get_logger(__name__)

_MISSING_CODES = {"404", "NoSuchKey", "NotFound"}


class S3ObjectStorage(ObjectStorage):
    """
    Images live in the image bucket, videos in the video bucket.
    
    Keys:
    - setup-{offender_uuid} for the reference photo
    - checkin-{checkin_uuid}/{index} for submitted snapshots
    - checkin-{checkin_uuid}/video for the submitted video
    """
    
    def __init__(self, s3_client, image_bucket: str, video_bucket: str, url_ttl_seconds: int = 600):
        self.client = s3_client
        self.image_bucket = image_bucket
        self.video_bucket = video_bucket
        self.url_ttl_seconds = url_ttl_seconds
    
    def setup_photo_ref(self, offender_uuid: str) -> ImageRef:
        return ImageRef(self.image_bucket, SETUP_PHOTO_KEY.format(offender_uuid=offender_uuid))
    
    def checkin_snapshot_ref(self, checkin_uuid: str, index: int) -> ImageRef:
        return ImageRef(self.image_bucket, CHECKIN_SNAPSHOT_KEY.format(checkin_uuid=checkin_uuid, index=index))
    
    def checkin_video_ref(self, checkin_uuid: str) -> ImageRef:
        return ImageRef(self.video_bucket, CHECKIN_VIDEO_KEY.format(checkin_uuid=checkin_uuid))
    
    def photo_exists(self, setup) -> bool:
        return self._exists(self.setup_photo_ref(setup.offender.uuid))
    
    def get_offender_photo(self, offender) -> Optional[str]:
        ref = self.setup_photo_ref(offender.uuid)
        if not self._exists(ref):
            return None
        return self.client.generate_presigned_url(
            "get_object",
            Params={"Bucket": ref.bucket, "Key": ref.key},
            ExpiresIn=self.url_ttl_seconds,
            HttpMethod="GET",
        )
    
    def _exists(self, ref: ImageRef) -> bool:
        try:
            self.client.head_object(Bucket=ref.bucket, Key=ref.key)
            return True
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in _MISSING_CODES:
                return False
            raise
