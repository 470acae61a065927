"""
Upload collaborators for scan images and OCR text.

The workflow only needs ``store(data, content_type, metadata) -> storage_ref``.
Any failure is reported as UploadFailed so callers can retry the whole submit.
"""

import base64
import logging
import os
import re
from pathlib import Path
from typing import Protocol
from uuid import uuid4

import requests

from mailpack.errors import UploadFailed

logger = logging.getLogger(__name__)

EXTENSIONS = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/gif": ".gif",
    "image/webp": ".webp",
    "image/bmp": ".bmp",
    "text/plain": ".txt",
}


class ScanUploader(Protocol):
    def store(self, data: bytes, content_type: str, metadata: dict[str, str]) -> str:
        """
        Persist bytes and return a storage reference.

        Raises:
            UploadFailed: The bytes could not be stored
        """
        ...


def build_filename(content_type: str, metadata: dict[str, str]) -> str:
    """
    Deterministic filename for an artifact.

    Images are named by their sequence, the combined OCR text ``ocr.txt``.
    """
    extension = EXTENSIONS.get(content_type, ".bin")
    if metadata.get("document_type") == "ocr_text":
        return f"ocr{extension}"
    sequence = metadata.get("sequence")
    if sequence:
        return f"{sequence}{extension}"
    return f"{uuid4().hex}{extension}"


class HttpScanUploader:
    """
    Uploads artifacts to the mail scan upload API.

    Each call POSTs a JSON body with base64 file data; the response carries
    the storage reference.
    """

    def __init__(
        self,
        base_url: str | None = None,
        api_token: str | None = None,
        timeout: float = 30.0,
        session: requests.Session | None = None,
    ):
        self.base_url = (base_url or os.getenv("UPLOAD_API_URL", "")).rstrip("/")
        if not self.base_url:
            raise ValueError("UPLOAD_API_URL environment variable is required")
        self.api_token = api_token or os.getenv("UPLOAD_API_TOKEN")
        self.timeout = timeout
        self._session = session or requests.Session()

    def store(self, data: bytes, content_type: str, metadata: dict[str, str]) -> str:
        body = {
            "mailPackageId": metadata.get("package_id"),
            "documentType": metadata.get("document_type", "scan"),
            "imageSequence": (
                int(metadata["sequence"]) if metadata.get("sequence") else None
            ),
            "fileData": base64.b64encode(data).decode("ascii"),
            "filename": build_filename(content_type, metadata),
            "mimeType": content_type,
            "metadata": metadata,
        }
        headers = {}
        if self.api_token:
            headers["Authorization"] = f"Bearer {self.api_token}"

        try:
            response = self._session.post(
                f"{self.base_url}/mail-scans",
                json=body,
                headers=headers,
                timeout=self.timeout,
            )
            response.raise_for_status()
            payload = response.json()
        except (requests.RequestException, ValueError) as e:
            raise UploadFailed(f"Failed to upload {body['filename']}: {e}") from e

        if not payload.get("success", True):
            raise UploadFailed(payload.get("message") or "Upload rejected")

        storage_ref = payload.get("storageRef") or payload.get("s3Key")
        if not storage_ref:
            raise UploadFailed("Upload response did not include a storage reference")
        return storage_ref


class LocalScanUploader:
    """Writes artifacts under a local directory. Intended for development."""

    def __init__(self, root: str | Path | None = None):
        self.root = Path(root or os.getenv("LOCAL_UPLOAD_DIR", "uploads"))

    def store(self, data: bytes, content_type: str, metadata: dict[str, str]) -> str:
        package_id = re.sub(r"[^\w\-]", "_", metadata.get("package_id", "unassigned"))
        relative = Path("scans") / package_id / build_filename(content_type, metadata)
        target = self.root / relative
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        except OSError as e:
            raise UploadFailed(f"Failed to write {relative}: {e}") from e
        logger.debug("Stored %d bytes at %s", len(data), target)
        return relative.as_posix()


def create_uploader() -> ScanUploader:
    """HTTP uploader when UPLOAD_API_URL is set, local files otherwise."""
    if os.getenv("UPLOAD_API_URL"):
        return HttpScanUploader()
    return LocalScanUploader()
