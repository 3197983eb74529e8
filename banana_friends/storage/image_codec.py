"""
Base64 image helpers and AVIF/WebP/JPEG re-encoding
"""
import base64
import binascii
import io
import logging
import re
from typing import Dict, Tuple
from PIL import Image, UnidentifiedImageError
from banana_friends.api.errors import InvalidRequestError

logger = logging.getLogger(__name__)

DATA_URL_PREFIX = re.compile(r"^data:image/[a-zA-Z0-9.+-]+;base64,")

# Preferred output formats, best compression first
OUTPUT_FORMATS = (("AVIF", "image/avif"), ("WEBP", "image/webp"), ("JPEG", "image/jpeg"))


def decode_base64_image(data: str) -> bytes:
    """
    Decode a base64 image, with or without a data URL prefix
    Raises:
        InvalidRequestError when the payload is not valid base64
    """
    payload = DATA_URL_PREFIX.sub("", data.strip())
    try:
        return base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError):
        raise InvalidRequestError("Invalid base64 image data")


def _encode(image: Image.Image, fmt: str, quality: int) -> bytes:
    if fmt == "JPEG" and image.mode not in ("RGB", "L"):
        image = image.convert("RGB")
    buffer = io.BytesIO()
    image.save(buffer, format=fmt, quality=quality)
    return buffer.getvalue()


def reencode(image: Image.Image, quality: int) -> Tuple[bytes, str, str]:
    """Encode with the first format this Pillow build can write"""
    for fmt, mime in OUTPUT_FORMATS:
        try:
            return _encode(image, fmt, quality), fmt.lower(), mime
        except (KeyError, OSError, ValueError) as e:
            logger.info(f"{fmt} encoding unavailable ({e}), trying next format")
    raise RuntimeError("No output format available")


def convert_base64_image(base64_image: str, quality: int = 80) -> Dict[str, object]:
    """
    Convert a base64 image to AVIF, falling back to WebP and then JPEG
    Returns:
        convertedImage as a data URL, the format used and the size statistics
    """
    raw = decode_base64_image(base64_image)
    try:
        image = Image.open(io.BytesIO(raw))
        image.load()
    except (UnidentifiedImageError, OSError) as e:
        raise InvalidRequestError(f"Image conversion failed: {e}")

    encoded, fmt, mime = reencode(image, quality)
    converted = f"data:{mime};base64,{base64.b64encode(encoded).decode('ascii')}"

    original_kb = round(len(base64_image) / 1024)
    converted_kb = round(len(converted) / 1024)
    ratio = round((1 - len(converted) / len(base64_image)) * 100)
    logger.info(f"Converted image to {fmt.upper()}: {original_kb}KB -> {converted_kb}KB ({ratio}% smaller)")
    return {
        "success": True,
        "convertedImage": converted,
        "format": fmt,
        "originalSize": original_kb,
        "compressedSize": converted_kb,
        "compressionRatio": ratio,
    }
