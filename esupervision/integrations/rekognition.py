"""
AWS Rekognition face comparison.
"""
from typing import Optional

from botocore.exceptions import (
    ClientError,
    ConnectTimeoutError,
    EndpointConnectionError,
    ReadTimeoutError,
)

from esupervision.core.exceptions import ComparisonServiceError, NoFaceDetected
from esupervision.integrations.base import FaceComparator, ImageRef
from esupervision.utils.logging import get_logger

logger = get_logger(__name__)

# Error codes worth retrying
TRANSIENT_ERROR_CODES = {
    "ThrottlingException",
    "ProvisionedThroughputExceededException",
    "InternalServerError",
    "ServiceUnavailableException",
}


class RekognitionFaceComparator(FaceComparator):
    """Wraps rekognition.compare_faces for images already in S3."""
    
    def __init__(self, rekognition_client):
        self.client = rekognition_client
    
    def compare(self, reference: ImageRef, snapshot: ImageRef, similarity_threshold: float) -> Optional[float]:
        try:
            response = self.client.compare_faces(
                SourceImage={"S3Object": {"Bucket": reference.bucket, "Name": reference.key}},
                TargetImage={"S3Object": {"Bucket": snapshot.bucket, "Name": snapshot.key}},
                SimilarityThreshold=similarity_threshold,
            )
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code", "Unknown")
            if code == "InvalidParameterException":
                raise NoFaceDetected(f"No face detected comparing {snapshot.key}") from e
            raise ComparisonServiceError(
                f"Rekognition compare_faces failed: {code}",
                transient=code in TRANSIENT_ERROR_CODES,
            ) from e
        except (EndpointConnectionError, ConnectTimeoutError, ReadTimeoutError) as e:
            raise ComparisonServiceError(
                f"Rekognition unreachable: {type(e).__name__}", transient=True
            ) from e
        
        matches = response.get("FaceMatches", [])
        top_similarity = max((m.get("Similarity", 0.0) for m in matches), default=None)
        logger.debug(
            "Rekognition comparison",
            snapshot=snapshot.key,
            face_matches=len(matches),
            unmatched_faces=len(response.get("UnmatchedFaces", [])),
            top_similarity=top_similarity,
        )
        return top_similarity
