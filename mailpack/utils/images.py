"""Image helpers for scan submissions."""

import base64
import binascii


def detect_image_mime_type(image_bytes: bytes) -> str:
    """
    Detect MIME type from image bytes.

    Args:
        image_bytes: Image data as bytes

    Returns:
        MIME type string (e.g., 'image/png', 'image/jpeg')
    """
    # Check magic bytes for common image formats
    if image_bytes.startswith(b"\x89PNG\r\n\x1a\n"):
        return "image/png"
    elif image_bytes.startswith(b"\xff\xd8\xff"):
        return "image/jpeg"
    elif image_bytes.startswith(b"GIF87a") or image_bytes.startswith(b"GIF89a"):
        return "image/gif"
    elif image_bytes.startswith(b"RIFF") and b"WEBP" in image_bytes[:20]:
        return "image/webp"
    elif image_bytes.startswith(b"BM"):
        return "image/bmp"
    else:
        return "application/octet-stream"


def decode_base64_image(image_data: str) -> bytes:
    """
    Decode base64 image data, accepting an optional data URL prefix.

    Raises:
        ValueError: Data is not valid base64 or is empty
    """
    if image_data.startswith("data:") and "," in image_data:
        image_data = image_data.split(",", 1)[1]
    try:
        decoded = base64.b64decode(image_data, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValueError(f"Invalid base64 image data: {e}") from e
    if not decoded:
        raise ValueError("Image data is empty")
    return decoded
