"""
IngestionGateway: accepts scans and hands finished packages to enrichment.

Uploads always happen before any store write, so a failed upload leaves no
record behind and the whole submission can be retried.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from uuid import uuid4

from mailpack.db.store import PackageStore
from mailpack.errors import InvalidScan, InvalidState, PreconditionFailed, UploadFailed
from mailpack.models.job import EnrichmentJob
from mailpack.models.package import (
    REPROCESSABLE_STATES,
    MailPackage,
    PackageArtifacts,
    PackageState,
    ScanReference,
)
from mailpack.storage.uploader import ScanUploader
from mailpack.utils.hash import compute_sha256
from mailpack.utils.images import detect_image_mime_type
from mailpack.worker.queue import EnrichmentQueue

logger = logging.getLogger(__name__)


@dataclass
class ScanImage:
    """Raw scan image handed in by the client."""

    data: bytes
    content_type: str | None = None
    filename: str | None = None


class IngestionGateway:
    """Client-facing scan submission, finalize, retry and reprocess commands."""

    def __init__(
        self,
        store: PackageStore,
        uploader: ScanUploader,
        queue: EnrichmentQueue,
    ):
        self.store = store
        self.uploader = uploader
        self.queue = queue

    def submit_scan(
        self,
        package_id: str | None,
        images: list[ScanImage],
        ocr_text: str | None = None,
    ) -> MailPackage:
        """
        Create a package or append scans to one, optionally finishing it.

        Args:
            package_id: Existing package to append to, or None for a new one
            images: Scan images in capture order
            ocr_text: Combined OCR text; when given, scanning is finished and
                enrichment is queued

        Returns:
            The package after the submission

        Raises:
            PackageNotFound: package_id does not exist
            InvalidScan: New package without images, or blank OCR text
            InvalidState: Appending to a package that is no longer scanning
            UploadFailed: An artifact could not be stored (nothing was written)
        """
        existing: MailPackage | None = None
        if package_id is not None:
            existing = self.store.get(package_id)
            if existing.state != PackageState.SCANNING:
                if images:
                    raise InvalidState(
                        package_id, existing.state.value, "append scans to"
                    )
                if ocr_text is not None:
                    logger.info(
                        "Package %s already finalized (%s), ignoring repeat",
                        package_id,
                        existing.state.value,
                    )
                    return existing
                raise InvalidState(package_id, existing.state.value, "submit scans to")
        elif not images:
            raise InvalidScan("A new mail package needs at least one image")

        if ocr_text is not None and not ocr_text.strip():
            raise InvalidScan("OCR text is empty")

        if package_id is None:
            package_id = str(uuid4())

        first_sequence = len(existing.artifacts.images) + 1 if existing else 1
        references = self._upload_images(package_id, images, first_sequence)

        image_count = first_sequence - 1 + len(references)
        ocr_text_ref = None
        if ocr_text is not None:
            if image_count == 0:
                raise InvalidScan("Cannot finish scanning a package without images")
            ocr_text_ref = self._upload_ocr_text(package_id, ocr_text, image_count)

        if existing is None:
            self.store.create(PackageArtifacts(images=references), package_id=package_id)
            logger.info(
                "Created package %s with %d image(s)", package_id, len(references)
            )
        elif references:

            def append(package: MailPackage) -> MailPackage:
                package.artifacts.images.extend(references)
                return package

            self.store.apply_transition(package_id, PackageState.SCANNING, append)
            logger.info(
                "Appended %d image(s) to package %s", len(references), package_id
            )

        if ocr_text is None:
            return self.store.get(package_id)

        return self._finalize(package_id, ocr_text, ocr_text_ref)

    def finalize_scan(self, package_id: str, ocr_text: str) -> MailPackage:
        """Finish scanning a package and queue its enrichment."""
        return self.submit_scan(package_id, [], ocr_text)

    def retry_failed(self, package_id: str) -> MailPackage:
        """
        Send a failed package back to enrichment with a fresh attempt budget.

        Raises:
            InvalidState: The package is not failed
        """
        package = self.store.get(package_id)
        if package.state != PackageState.FAILED:
            raise InvalidState(package_id, package.state.value, "retry")
        return self._restart_processing(package, PackageState.FAILED)

    def reprocess(self, package_id: str) -> MailPackage:
        """
        Discard enrichment and survey results and run enrichment again.

        Raises:
            InvalidState: The package is still scanning or processing
        """
        package = self.store.get(package_id)
        if package.state not in REPROCESSABLE_STATES:
            raise InvalidState(package_id, package.state.value, "reprocess")
        return self._restart_processing(package, package.state, clear_results=True)

    def _finalize(
        self, package_id: str, ocr_text: str, ocr_text_ref: str | None
    ) -> MailPackage:
        """Move scanning -> processing and queue exactly one job."""
        now = datetime.now(timezone.utc)

        def finish(package: MailPackage) -> MailPackage:
            if not package.artifacts.images:
                raise InvalidScan("Cannot finish scanning a package without images")
            package.artifacts.ocr_text = ocr_text
            package.artifacts.ocr_text_ref = ocr_text_ref
            package.state = PackageState.PROCESSING
            package.processing_started_at = now
            package.retry_budget_start = package.retry_count
            return package

        try:
            package = self.store.apply_transition(
                package_id, PackageState.SCANNING, finish
            )
        except PreconditionFailed:
            current = self.store.get(package_id)
            if current.state != PackageState.SCANNING:
                # A concurrent finalize won; same outcome as a repeat call
                return current
            raise

        self.queue.enqueue(EnrichmentJob(package_id=package_id, payload=ocr_text))
        logger.info("Package %s finalized, enrichment queued", package_id)
        return package

    def _restart_processing(
        self,
        package: MailPackage,
        expected_state: PackageState,
        clear_results: bool = False,
    ) -> MailPackage:
        if not package.artifacts.ocr_text:
            raise InvalidState(package.id, package.state.value, "restart enrichment of")

        now = datetime.now(timezone.utc)

        def restart(current: MailPackage) -> MailPackage:
            current.state = PackageState.PROCESSING
            current.failure_reason = None
            current.retry_budget_start = current.retry_count
            current.processing_started_at = now
            current.processing_completed_at = None
            if clear_results:
                current.enrichment = None
                current.survey_result = None
                current.survey_completed_at = None
            return current

        updated = self.store.apply_transition(package.id, expected_state, restart)
        self.queue.enqueue(
            EnrichmentJob(package_id=package.id, payload=package.artifacts.ocr_text)
        )
        logger.info(
            "Package %s back to processing from %s", package.id, expected_state.value
        )
        return updated

    def _upload_images(
        self, package_id: str, images: list[ScanImage], first_sequence: int
    ) -> list[ScanReference]:
        references = []
        for offset, image in enumerate(images):
            if not image.data:
                raise InvalidScan(f"Image {offset + 1} is empty")
            sequence = first_sequence + offset
            content_type = image.content_type or detect_image_mime_type(image.data)
            digest = compute_sha256(image.data)
            metadata = {
                "package_id": package_id,
                "document_type": "scan",
                "sequence": str(sequence),
                "sha256": digest,
            }
            if image.filename:
                metadata["original_filename"] = image.filename
            storage_ref = self._store(image.data, content_type, metadata)
            references.append(
                ScanReference(
                    storage_ref=storage_ref,
                    sequence=sequence,
                    content_type=content_type,
                    sha256=digest,
                    size_bytes=len(image.data),
                )
            )
        return references

    def _upload_ocr_text(self, package_id: str, ocr_text: str, image_count: int) -> str:
        return self._store(
            ocr_text.encode("utf-8"),
            "text/plain",
            {
                "package_id": package_id,
                "document_type": "ocr_text",
                "type": "combined_ocr",
                "image_count": str(image_count),
            },
        )

    def _store(self, data: bytes, content_type: str, metadata: dict[str, str]) -> str:
        try:
            return self.uploader.store(data, content_type, metadata)
        except UploadFailed:
            raise
        except Exception as e:
            raise UploadFailed(f"Upload failed: {e}") from e
