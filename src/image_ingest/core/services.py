"""Leaf adapters: object storage, metadata, renditions and moderation."""

import hashlib
import io
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from botocore.exceptions import BotoCoreError, ClientError
from PIL import Image, UnidentifiedImageError

from .error_handling import CompensationContext, retry_transient, translate_storage_errors
from .exceptions import ClassificationError, MetadataExtractionError, RenditionError
from .image_utils import content_type_for, extract_exif_data, strip_binary_fields
from .models import Likelihood, SafetyVerdict
from .protocols import (
    LoggerProtocol,
    MetadataExtractor,
    RekognitionClientProtocol,
    RenditionGenerator,
    S3ClientProtocol,
    SafetyClassifier,
    StorageGateway,
)


class S3StorageGateway(StorageGateway):
    """Object storage backed by an S3 client."""

    def __init__(self, s3_client: S3ClientProtocol, logger: LoggerProtocol):
        self._s3_client = s3_client
        self._logger = logger

    @translate_storage_errors
    def download(self, bucket: str, key: str, destination: Path) -> Path:
        """Download an object to ``destination``. Not retried."""
        self._logger.debug(f"Downloading s3://{bucket}/{key} to {destination}")
        response = self._s3_client.get_object(Bucket=bucket, Key=key)
        destination.parent.mkdir(parents=True, exist_ok=True)
        with open(destination, "wb") as fh:
            fh.write(response["Body"].read())
        return destination

    @retry_transient()
    @translate_storage_errors
    def upload(self, bucket: str, key: str, data: bytes, content_type: str) -> None:
        self._logger.debug(f"Uploading {len(data)} bytes to s3://{bucket}/{key}")
        self._s3_client.put_object(
            Bucket=bucket, Key=key, Body=data, ContentType=content_type
        )

    @translate_storage_errors
    def move(self, bucket: str, key: str, dest_bucket: str, dest_key: str) -> None:
        """
        Copy then delete; the source is only removed after the copy lands.

        If the source cannot be deleted the copy is removed again before the
        error propagates, so the object never remains in both buckets.
        """
        self._logger.debug(f"Moving s3://{bucket}/{key} to s3://{dest_bucket}/{dest_key}")
        self._s3_client.copy_object(
            Bucket=dest_bucket,
            Key=dest_key,
            CopySource={"Bucket": bucket, "Key": key},
        )
        try:
            self._s3_client.delete_object(Bucket=bucket, Key=key)
        except (ClientError, BotoCoreError):
            with CompensationContext(
                f"Rollback of copy to s3://{dest_bucket}/{dest_key}", logger=self._logger
            ) as rollback:
                rollback.attempt(
                    f"s3://{dest_bucket}/{dest_key}",
                    self._s3_client.delete_object,
                    Bucket=dest_bucket,
                    Key=dest_key,
                )
            raise

    @retry_transient()
    @translate_storage_errors
    def delete(self, bucket: str, key: str) -> None:
        self._logger.debug(f"Deleting s3://{bucket}/{key}")
        self._s3_client.delete_object(Bucket=bucket, Key=key)


class ExifMetadataExtractor(MetadataExtractor):
    """Metadata extractor built on Pillow's EXIF reader."""

    def __init__(self, logger: LoggerProtocol):
        self._logger = logger

    def extract(self, path: Path) -> Dict[str, Any]:
        """
        Extract file and EXIF metadata from a local image.

        Args:
            path: Local path of the downloaded original

        Returns:
            Mapping with a ``File`` group and any ``EXIF``/``GPS`` groups,
            with embedded previews and binary blobs removed

        Raises:
            MetadataExtractionError: If the file cannot be read or decoded
        """
        path = Path(path)
        try:
            data = path.read_bytes()
            with Image.open(io.BytesIO(data)) as image:
                metadata: Dict[str, Any] = {
                    "File": {
                        "FileName": path.name,
                        "FileSize": len(data),
                        "SHA256": hashlib.sha256(data).hexdigest(),
                        "Format": image.format or "unknown",
                        "Mode": image.mode,
                        "ImageWidth": image.width,
                        "ImageHeight": image.height,
                    }
                }
                metadata.update(extract_exif_data(image))
        except (OSError, UnidentifiedImageError, Image.DecompressionBombError, SyntaxError) as e:
            raise MetadataExtractionError(
                f"Failed to extract metadata from {path.name}: {e}"
            ) from e

        self._logger.debug(
            f"Extracted metadata groups {sorted(metadata)} from {path.name}"
        )
        return strip_binary_fields(metadata)


class PillowRenditionGenerator(RenditionGenerator):
    """WebP rendition codec built on Pillow."""

    extension = "webp"
    content_type = content_type_for("webp")

    def __init__(self, quality: int = 90, method: int = 4):
        self._quality = quality
        self._method = method

    def _open(self, image_bytes: bytes) -> "Image.Image":
        try:
            image = Image.open(io.BytesIO(image_bytes))
            image.load()
        except (OSError, UnidentifiedImageError, Image.DecompressionBombError, SyntaxError) as e:
            raise RenditionError(f"Failed to decode source image: {e}") from e
        return image

    def measure(self, image_bytes: bytes) -> Tuple[int, int]:
        image = self._open(image_bytes)
        return image.width, image.height

    def render(self, image_bytes: bytes, width: int) -> bytes:
        """Resize to ``width`` keeping the aspect ratio and encode as WebP."""
        if width <= 0:
            raise RenditionError(f"Invalid target width: {width}")
        image = self._open(image_bytes)
        if width >= image.width:
            raise RenditionError(
                f"Refusing to upscale {image.width}px image to {width}px"
            )

        if image.mode not in ("RGB", "RGBA"):
            has_alpha = image.mode in ("LA", "PA") or (
                image.mode == "P" and "transparency" in image.info
            )
            image = image.convert("RGBA" if has_alpha else "RGB")

        height = max(1, round(image.height * width / image.width))
        resized = image.resize((width, height), Image.Resampling.LANCZOS)

        output_stream = io.BytesIO()
        resized.save(
            output_stream,
            format="WEBP",
            quality=self._quality,
            method=self._method,
        )
        return output_stream.getvalue()


class RekognitionSafetyClassifier(SafetyClassifier):
    """Moderation classifier backed by Amazon Rekognition."""

    # Rekognition accepts at most 5 MiB of inline image bytes.
    MAX_INLINE_BYTES = 5 * 1024 * 1024

    CATEGORY_LABELS = {
        "adult": frozenset(
            {
                "Explicit",
                "Explicit Nudity",
                "Non-Explicit Nudity of Intimate parts and Kissing",
            }
        ),
        "racy": frozenset({"Suggestive", "Swimwear or Underwear"}),
        "violence": frozenset({"Violence", "Visually Disturbing", "Graphic Violence Or Gore"}),
    }

    def __init__(
        self,
        client: RekognitionClientProtocol,
        logger: LoggerProtocol,
        min_confidence: float = 20.0,
    ):
        self._client = client
        self._logger = logger
        self._min_confidence = min_confidence

    @staticmethod
    def confidence_to_likelihood(confidence: Optional[float]) -> Likelihood:
        if confidence is None:
            return Likelihood.VERY_UNLIKELY
        if confidence >= 90:
            return Likelihood.VERY_LIKELY
        if confidence >= 70:
            return Likelihood.LIKELY
        if confidence >= 50:
            return Likelihood.POSSIBLE
        if confidence >= 20:
            return Likelihood.UNLIKELY
        return Likelihood.VERY_UNLIKELY

    def classify(
        self,
        image_bytes: bytes,
        bucket: Optional[str] = None,
        key: Optional[str] = None,
    ) -> SafetyVerdict:
        if len(image_bytes) <= self.MAX_INLINE_BYTES:
            image: Dict[str, Any] = {"Bytes": image_bytes}
        elif bucket and key:
            image = {"S3Object": {"Bucket": bucket, "Name": key}}
        else:
            raise ClassificationError(
                f"Image of {len(image_bytes)} bytes exceeds the inline limit "
                "and no storage reference was given"
            )

        try:
            response = self._client.detect_moderation_labels(
                Image=image, MinConfidence=self._min_confidence
            )
        except (ClientError, BotoCoreError) as e:
            raise ClassificationError(f"Moderation request failed: {e}") from e

        best: Dict[str, float] = {}
        for label in response.get("ModerationLabels", []):
            names = {label.get("Name", ""), label.get("ParentName", "")}
            confidence = float(label.get("Confidence", 0.0))
            for category, labels in self.CATEGORY_LABELS.items():
                if names & labels:
                    best[category] = max(best.get(category, 0.0), confidence)

        verdict = SafetyVerdict(
            **{
                category: self.confidence_to_likelihood(best.get(category))
                for category in self.CATEGORY_LABELS
            }
        )
        self._logger.debug(f"Moderation verdict: {verdict.model_dump(mode='json')}")
        return verdict
