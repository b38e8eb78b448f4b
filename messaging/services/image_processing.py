# messaging/services/image_processing.py
import logging
import uuid
from dataclasses import dataclass
from io import BytesIO

from django.conf import settings
from django.core.files.base import ContentFile
from django.core.files.storage import default_storage
from django.utils import timezone
from PIL import Image, ImageOps, UnidentifiedImageError

from messaging.exceptions import UpstreamStoreError, ValidationError

logger = logging.getLogger(__name__)

ALLOWED_IMAGE_TYPES = ["image/jpeg", "image/png", "image/gif", "image/webp"]


@dataclass(frozen=True)
class StoredImage:
    name: str
    url: str
    metadata: dict


def reencode_image(raw: bytes):
    """
    Downscale to the configured bounding box and re-encode with a lossy
    codec. Returns (bytes, extension, mime type, (width, height)).
    """
    config = settings.MESSAGING
    max_dimension = config.get("IMAGE_MAX_DIMENSION", 1280)
    quality = config.get("IMAGE_QUALITY", 80)
    image_format = config.get("IMAGE_FORMAT", "WEBP").upper()

    try:
        with Image.open(BytesIO(raw)) as source:
            source.load()
            image = ImageOps.exif_transpose(source)
            image.thumbnail((max_dimension, max_dimension), Image.Resampling.LANCZOS)

            if image_format == "JPEG" and image.mode != "RGB":
                image = image.convert("RGB")
            elif image.mode not in ("RGB", "RGBA"):
                image = image.convert("RGBA" if "A" in image.getbands() else "RGB")

            output = BytesIO()
            image.save(output, format=image_format, quality=quality)
            size = image.size
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError) as e:
        logger.warning(f"Rejected unreadable image upload: {str(e)}")
        raise ValidationError("The uploaded file is not a valid image.")

    extension = "jpg" if image_format == "JPEG" else image_format.lower()
    mime_type = Image.MIME.get(image_format, f"image/{extension}")
    return output.getvalue(), extension, mime_type, size


def store_chat_image(upload) -> StoredImage:
    """
    Validate, re-encode and persist an uploaded chat image. Runs inline with
    the request; any failure aborts before a message row exists.
    """
    if upload is None:
        raise ValidationError("No image was provided.")

    max_size = settings.MESSAGING.get("MAX_UPLOAD_SIZE", 5242880)
    if upload.size > max_size:
        raise ValidationError(f"Image size exceeds {max_size} bytes.")

    content_type = getattr(upload, "content_type", None)
    if content_type and content_type not in ALLOWED_IMAGE_TYPES:
        raise ValidationError(f"Unsupported image type: {content_type}")

    data, extension, mime_type, (width, height) = reencode_image(upload.read())

    upload_dir = settings.MESSAGING.get("IMAGE_UPLOAD_DIR", "chat-images")
    name = f"{upload_dir}/{timezone.now():%Y/%m/%d}/{uuid.uuid4().hex}.{extension}"
    try:
        saved_name = default_storage.save(name, ContentFile(data))
        url = default_storage.url(saved_name)
    except Exception as e:
        logger.error(f"Failed to store chat image {name}: {str(e)}", exc_info=True)
        raise UpstreamStoreError()

    logger.info(f"Stored chat image {saved_name} ({upload.size} -> {len(data)} bytes)")
    return StoredImage(
        name=saved_name,
        url=url,
        metadata={
            "fileName": upload.name,
            "size": upload.size,
            "mimetype": content_type,
            "storedName": saved_name,
            "storedMimetype": mime_type,
            "width": width,
            "height": height,
        },
    )


def discard_chat_image(name: str) -> None:
    try:
        default_storage.delete(name)
    except Exception as e:
        logger.error(f"Failed to remove orphaned chat image {name}: {str(e)}", exc_info=True)
