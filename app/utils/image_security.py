import io
import logging
from typing import Optional, Tuple

from fastapi import UploadFile
from PIL import Image, UnidentifiedImageError

from app.utils.exceptions import ValidationError

logger = logging.getLogger(__name__)


class ImageSecurityUtils:
    # Allowed image MIME types
    ALLOWED_MIME_TYPES = {
        'image/jpeg',
        'image/png',
        'image/gif',
        'image/webp'
    }

    # Pillow format name -> MIME type
    FORMAT_MIME_TYPES = {
        'JPEG': 'image/jpeg',
        'PNG': 'image/png',
        'GIF': 'image/gif',
        'WEBP': 'image/webp'
    }

    # Maximum image dimensions
    MAX_IMAGE_DIMENSIONS = (4096, 4096)

    @classmethod
    def validate_image(cls, image_data: bytes, max_size: int) -> str:
        """Check size, decodability and dimensions; return the detected MIME type."""
        if not image_data:
            raise ValidationError("Image is empty")
        if len(image_data) > max_size:
            raise ValidationError("Image too large")

        try:
            with Image.open(io.BytesIO(image_data)) as img:
                img.verify()
                image_format = img.format
                size = img.size
        except (UnidentifiedImageError, OSError, SyntaxError) as e:
            logger.error(f"Image validation error: {str(e)}")
            raise ValidationError("Invalid image format")

        mime_type = cls.FORMAT_MIME_TYPES.get(image_format)
        if mime_type not in cls.ALLOWED_MIME_TYPES:
            raise ValidationError("Invalid image format")

        if size[0] > cls.MAX_IMAGE_DIMENSIONS[0] or size[1] > cls.MAX_IMAGE_DIMENSIONS[1]:
            raise ValidationError("Image dimensions too large")

        return mime_type

    @classmethod
    async def read_upload(cls, upload: Optional[UploadFile], max_size: int) -> Tuple[Optional[bytes], Optional[str]]:
        """Read an optional multipart image; returns ``(None, None)`` when nothing was sent."""
        if upload is None or not upload.filename:
            return None, None

        # One extra byte is enough to tell an oversized upload apart
        image_data = await upload.read(max_size + 1)
        mime_type = cls.validate_image(image_data, max_size)
        return image_data, mime_type
