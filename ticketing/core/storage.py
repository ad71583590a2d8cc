"""
Photo storage on S3, keyed by ``{collection}/{id}.jpeg``.
"""

import logging
from io import BytesIO
from typing import Any, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from PIL import Image, ImageOps, UnidentifiedImageError

from ticketing.core.errors import NotFound, UpstreamFailure, ValidationError
from ticketing.core.settings import settings

logger = logging.getLogger(__name__)

JPEG_QUALITY = 90


def to_jpeg(data: bytes, size: Optional[tuple[int, int]] = None) -> bytes:
    """Re-encode an uploaded image as JPEG, optionally cropped to ``size``"""
    try:
        with Image.open(BytesIO(data)) as img:
            processed = ImageOps.exif_transpose(img)
            if processed.mode in ("RGBA", "LA"):
                background = Image.new("RGB", processed.size, (255, 255, 255))
                background.paste(processed, mask=processed.split()[-1])
                processed = background
            elif processed.mode != "RGB":
                processed = processed.convert("RGB")

            if size:
                processed = ImageOps.fit(processed, size, Image.Resampling.LANCZOS)

            output = BytesIO()
            processed.save(output, format="JPEG", quality=JPEG_QUALITY)
            return output.getvalue()
    except (UnidentifiedImageError, OSError):
        raise ValidationError("The uploaded file is not an image. Please upload only images.")


class S3BlobStore:
    def __init__(self, bucket: Optional[str] = None, client: Any = None) -> None:
        self.bucket = bucket or settings.storage.S3_BUCKET
        self.client = client or boto3.client(
            "s3",
            region_name=settings.storage.S3_REGION,
            endpoint_url=settings.storage.S3_ENDPOINT_URL,
            aws_access_key_id=settings.storage.AWS_ACCESS_KEY_ID,
            aws_secret_access_key=settings.storage.AWS_SECRET_ACCESS_KEY,
        )

    def put(self, data: bytes, key: str) -> None:
        try:
            self.client.put_object(
                Bucket=self.bucket, Key=key, Body=data, ContentType="image/jpeg"
            )
        except (BotoCoreError, ClientError) as e:
            logger.error(f"S3 upload failed for {key}: {e}")
            raise UpstreamFailure("The photo could not be stored. Try again later.") from e
        logger.info(f"Stored {key} in bucket {self.bucket}")

    def get(self, key: str) -> bytes:
        try:
            response = self.client.get_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in ("NoSuchKey", "404"):
                raise NotFound("The specified image does not exist.") from e
            logger.error(f"S3 download failed for {key}: {e}")
            raise UpstreamFailure("The photo could not be loaded. Try again later.") from e
        except BotoCoreError as e:
            logger.error(f"S3 download failed for {key}: {e}")
            raise UpstreamFailure("The photo could not be loaded. Try again later.") from e
        return bytes(response["Body"].read())


_blob_store: Optional[S3BlobStore] = None


def get_blob_store() -> S3BlobStore:
    global _blob_store
    if _blob_store is None:
        _blob_store = S3BlobStore()
    return _blob_store
