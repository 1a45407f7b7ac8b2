"""Image utility functions for mime detection and data URLs."""

import base64
import binascii
import io
from typing import Optional
from PIL import Image


class ImageFormat:
    """Supported image formats."""
    PNG = "PNG"
    JPEG = "JPEG"
    WEBP = "WEBP"
    GIF = "GIF"


_MIME_TYPES = {
    ImageFormat.PNG: "image/png",
    ImageFormat.JPEG: "image/jpeg",
    ImageFormat.WEBP: "image/webp",
    ImageFormat.GIF: "image/gif",
}


def detect_mime_type(image_bytes: bytes) -> str:
    """Detect the mime type of image bytes from their magic number.

    Args:
        image_bytes: Raw image bytes

    Returns:
        Mime type string, "image/png" when the format is unknown
    """
    if image_bytes.startswith(b'\x89PNG'):
        return 'image/png'
    if image_bytes.startswith(b'\xff\xd8'):
        return 'image/jpeg'
    if image_bytes.startswith(b'GIF8'):
        return 'image/gif'
    if image_bytes[:4] == b'RIFF' and image_bytes[8:12] == b'WEBP':
        return 'image/webp'
    return 'image/png'  # default


def to_data_url(image_bytes: bytes, mime_type: Optional[str] = None) -> str:
    """Encode image bytes as a base64 data URL.

    Args:
        image_bytes: Raw image bytes
        mime_type: Optional explicit mime type (detected when omitted)

    Returns:
        "data:<mime>;base64,<payload>" string
    """
    mime_type = mime_type or detect_mime_type(image_bytes)
    encoded = base64.b64encode(image_bytes).decode('utf-8')
    return f"data:{mime_type};base64,{encoded}"


def b64_to_data_url(b64_payload: str, format: str = ImageFormat.PNG) -> str:
    """Wrap an already base64-encoded image into a data URL."""
    return f"data:{_MIME_TYPES.get(format, 'image/png')};base64,{b64_payload}"


def pil_to_data_url(image: Image.Image, format: str = ImageFormat.PNG) -> str:
    """Serialize a PIL image into a data URL.

    Args:
        image: PIL Image object
        format: Output format (PNG, JPEG or WEBP)

    Returns:
        Data URL string
    """
    output = io.BytesIO()
    if format == ImageFormat.JPEG and image.mode in ('RGBA', 'LA', 'P'):
        # JPEG doesn't support transparency
        image = image.convert('RGB')
    image.save(output, format=format)
    return to_data_url(output.getvalue(), _MIME_TYPES.get(format))


def decode_data_url(url: str) -> Optional[bytes]:
    """Decode the payload of a base64 data URL.

    Args:
        url: String starting with "data:"

    Returns:
        Decoded bytes, or None if the URL is not a valid base64 data URL
    """
    if not url.startswith("data:") or ";base64," not in url:
        return None
    payload = url.split(";base64,", 1)[1]
    try:
        decoded = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError):
        return None
    return decoded or None

