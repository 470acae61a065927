"""Artifact storage collaborators."""

from mailpack.storage.uploader import (
    HttpScanUploader,
    LocalScanUploader,
    ScanUploader,
    create_uploader,
)

__all__ = ["HttpScanUploader", "LocalScanUploader", "ScanUploader", "create_uploader"]
