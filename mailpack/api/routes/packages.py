"""
Mail package API routes.

Clients create packages by uploading scans, finalize them with OCR text,
poll status while enrichment runs, then submit the survey.
"""

from fastapi import APIRouter, HTTPException, Query, Request

from mailpack.errors import (
    AlreadyComplete,
    DuplicateJob,
    InvalidScan,
    InvalidState,
    InvalidSurvey,
    MailPackError,
    NotReady,
    PackageNotFound,
    PreconditionFailed,
    UploadFailed,
)
from mailpack.models.ingest import (
    FinalizeScanRequest,
    PackageListResponse,
    PackageResponse,
    ScanImagePayload,
    SubmitScanRequest,
    SubmitSurveyRequest,
)
from mailpack.models.package import MailPackage, PackageState, PackageStatus
from mailpack.services import IngestionGateway, ScanImage, StatusProjector, SurveyGateway
from mailpack.services.status import to_package_status
from mailpack.utils.images import decode_base64_image

router = APIRouter()

ERROR_STATUS_CODES: list[tuple[type[MailPackError], int]] = [
    (PackageNotFound, 404),
    (InvalidState, 409),
    (NotReady, 409),
    (AlreadyComplete, 409),
    (PreconditionFailed, 409),
    (DuplicateJob, 409),
    (InvalidScan, 422),
    (InvalidSurvey, 422),
    (UploadFailed, 502),
]


def _http_error(error: MailPackError) -> HTTPException:
    """Translate a workflow error into an HTTP error response."""
    for error_type, status_code in ERROR_STATUS_CODES:
        if isinstance(error, error_type):
            return HTTPException(status_code=status_code, detail=str(error))
    return HTTPException(status_code=500, detail=str(error))


def _package_response(package: MailPackage) -> PackageResponse:
    return PackageResponse(package=package, status=to_package_status(package))


def _decode_images(images: list[ScanImagePayload]) -> list[ScanImage]:
    decoded = []
    for index, image in enumerate(images, 1):
        try:
            data = decode_base64_image(image.image_data)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=f"Image {index}: {e}")
        decoded.append(
            ScanImage(
                data=data, content_type=image.content_type, filename=image.filename
            )
        )
    return decoded


def _ingestion(request: Request) -> IngestionGateway:
    return request.app.state.ingestion


@router.post(
    "/packages/scans",
    response_model=PackageResponse,
    operation_id="submitScans",
)
async def submit_scans(body: SubmitScanRequest, request: Request) -> PackageResponse:
    """
    Create a mail package or append scans to an existing one.

    Including ``ocr_text`` (or ``page_texts``) finishes scanning and queues
    enrichment in the same call.

    Args:
        body: Images (base64), optional package_id and OCR text

    Returns:
        PackageResponse with the package and its display status
    """
    images = _decode_images(body.images)
    try:
        package = _ingestion(request).submit_scan(
            body.package_id, images, body.combined_text()
        )
    except MailPackError as e:
        raise _http_error(e)
    return _package_response(package)


@router.post(
    "/packages/{package_id}/finalize",
    response_model=PackageResponse,
    operation_id="finalizeScans",
)
async def finalize_scans(
    package_id: str, body: FinalizeScanRequest, request: Request
) -> PackageResponse:
    """
    Finish scanning and start enrichment.

    Repeating the call for a package that is already past scanning returns
    its current state without queueing another job.
    """
    ocr_text = body.combined_text()
    assert ocr_text is not None
    try:
        package = _ingestion(request).finalize_scan(package_id, ocr_text)
    except MailPackError as e:
        raise _http_error(e)
    return _package_response(package)


@router.get("/packages", response_model=PackageListResponse)
async def list_packages(
    request: Request,
    state: str | None = Query(default=None, description="Filter by package state"),
    limit: int = Query(default=100, ge=1, le=500, description="Maximum packages"),
    offset: int = Query(default=0, ge=0, description="Number of packages to skip"),
) -> PackageListResponse:
    """
    List packages with their display status, oldest first.

    Args:
        state: Optional state filter (e.g., "processing", "failed")
        limit: Maximum number of packages to return (max 500)
        offset: Number of packages to skip for pagination
    """
    package_state = None
    if state:
        try:
            package_state = PackageState(state)
        except ValueError:
            raise HTTPException(
                status_code=400,
                detail=f"Invalid state: {state}. Valid values: {[s.value for s in PackageState]}",
            )

    packages, total = request.app.state.store.list_packages(
        state=package_state, limit=limit, offset=offset
    )
    return PackageListResponse(
        packages=[to_package_status(package) for package in packages],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/packages/{package_id}", response_model=PackageResponse)
async def get_package(package_id: str, request: Request) -> PackageResponse:
    """Get a package with its artifacts, enrichment and survey result."""
    try:
        package = request.app.state.store.get(package_id)
    except MailPackError as e:
        raise _http_error(e)
    return _package_response(package)


@router.get("/packages/{package_id}/status", response_model=PackageStatus)
async def get_package_status(package_id: str, request: Request) -> PackageStatus:
    """Lightweight status for polling clients."""
    projector: StatusProjector = request.app.state.status
    try:
        return projector.status(package_id)
    except MailPackError as e:
        raise _http_error(e)


@router.post("/packages/{package_id}/survey", response_model=PackageResponse)
async def submit_survey(
    package_id: str, body: SubmitSurveyRequest, request: Request
) -> PackageResponse:
    """
    Submit the survey for an enriched package.

    Returns 409 while the package is still processing and once the survey
    has been recorded.
    """
    survey: SurveyGateway = request.app.state.survey
    try:
        package = survey.submit_survey(package_id, body)
    except MailPackError as e:
        raise _http_error(e)
    return _package_response(package)


@router.post("/packages/{package_id}/retry", response_model=PackageResponse)
async def retry_package(package_id: str, request: Request) -> PackageResponse:
    """Send a failed package back to enrichment."""
    try:
        package = _ingestion(request).retry_failed(package_id)
    except MailPackError as e:
        raise _http_error(e)
    return _package_response(package)


@router.post("/packages/{package_id}/reprocess", response_model=PackageResponse)
async def reprocess_package(package_id: str, request: Request) -> PackageResponse:
    """Discard enrichment and survey results and enrich the package again."""
    try:
        package = _ingestion(request).reprocess(package_id)
    except MailPackError as e:
        raise _http_error(e)
    return _package_response(package)
