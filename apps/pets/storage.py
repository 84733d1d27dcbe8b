"""Pet photos in S3. The stored value is the object's public URL."""
import logging
import os
import uuid

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from django.conf import settings

from apps.scheduling.exceptions import TransportError


logger = logging.getLogger(__name__)

s3 = boto3.client("s3", region_name=settings.AWS_REGION)


def public_url(key: str) -> str:
    return f"https://{settings.PET_PHOTOS_BUCKET}.s3.{settings.AWS_REGION}.amazonaws.com/{key}"


def upload_pet_photo(pet, upload) -> str:
    ext = os.path.splitext(upload.name)[1].lower() or ".jpg"
    key = f"{pet.owner_id}/{pet.pk}/{uuid.uuid4().hex}{ext}"
    try:
        s3.put_object(
            Bucket=settings.PET_PHOTOS_BUCKET,
            Key=key,
            Body=upload.read(),
            ContentType=upload.content_type or "application/octet-stream",
        )
    except (BotoCoreError, ClientError) as e:
        logger.error(
            "Failed to upload pet photo",
            extra={"pet_id": pet.pk, "key": key, "error": str(e)},
            exc_info=True,
        )
        raise TransportError("Could not store the pet photo.")

    logger.info("Pet photo uploaded", extra={"pet_id": pet.pk, "key": key})
    return public_url(key)
