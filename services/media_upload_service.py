"""
Product image upload with an inline fallback.

Files are processed one at a time. Each accepted file ends up either as a
public URL from the upload endpoint or, when that upload fails for any
reason, as a base64 data URI. The fallback is silent; only size, type and
slot rejections are reported back.
"""

import base64
from typing import AsyncIterator, Iterable, Optional, Protocol, Union

import requests
import structlog
from fastapi.concurrency import run_in_threadpool

from config import settings
from exceptions import AssetUploadError
from models.media import (
    AssetUploadResult,
    InlineEncoded,
    RejectionReason,
    SourceFile,
    Uploaded,
    UploadRejection,
)

logger = structlog.get_logger(__name__)

BatchItem = Union[AssetUploadResult, UploadRejection]


class AssetUploadClient(Protocol):
    """Primary upload path. Returns the public URL or raises AssetUploadError."""

    def upload(self, file: SourceFile, vendor_id: str) -> str: ...


class RemoteAssetUploadClient:
    """
    Posts one file to the public upload endpoint.

    The endpoint takes multipart form data (file, vendorId, category,
    isPublic) and answers {"url": "..."}.
    """

    def __init__(
        self,
        url: Optional[str] = None,
        timeout: Optional[float] = None,
        category: Optional[str] = None,
        session: Optional[requests.Session] = None
    ):
        self.url = url or settings.upload_url
        self.timeout = timeout or settings.upload_timeout_seconds
        self.category = category or settings.upload_category
        self.session = session or requests.Session()

    def upload(self, file: SourceFile, vendor_id: str) -> str:
        """
        Upload a single file.

        Returns:
            Public URL of the stored file

        Raises:
            AssetUploadError: On network error, non-2xx status or malformed response
        """
        try:
            response = self.session.post(
                self.url,
                files={"file": (file.filename, file.data, file.media_type)},
                data={
                    "vendorId": vendor_id,
                    "category": self.category,
                    "isPublic": "true",
                },
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise AssetUploadError(
                f"Upload request failed: {e}",
                details={"filename": file.filename, "error_type": type(e).__name__}
            ) from e

        if not response.ok:
            raise AssetUploadError(
                f"Upload endpoint returned {response.status_code}",
                details={"filename": file.filename, "status_code": response.status_code}
            )

        try:
            body = response.json()
        except ValueError as e:
            raise AssetUploadError(
                "Upload endpoint returned invalid JSON",
                details={"filename": file.filename}
            ) from e

        url = body.get("url") if isinstance(body, dict) else None
        if not isinstance(url, str) or not url:
            raise AssetUploadError(
                "Upload response has no url",
                details={"filename": file.filename}
            )
        return url


def encode_inline(file: SourceFile) -> str:
    """Embed the file bytes as a data URI."""
    encoded = base64.b64encode(file.data).decode("ascii")
    return f"data:{file.media_type};base64,{encoded}"


class MediaUploadPipeline:
    """
    Turns selected files into image slots.

    Uploads run on the threadpool, so a batch never blocks the event loop
    and cancel() can land between two files.

    Usage:
        pipeline = MediaUploadPipeline(RemoteAssetUploadClient(), vendor_id="v-1")
        async for item in pipeline.upload_batch(files, current_count=2):
            ...
    """

    def __init__(
        self,
        client: AssetUploadClient,
        vendor_id: str,
        max_slots: Optional[int] = None,
        max_file_bytes: Optional[int] = None
    ):
        self.client = client
        self.vendor_id = vendor_id
        self.max_slots = max_slots or settings.max_image_slots
        self.max_file_bytes = max_file_bytes or settings.max_image_bytes
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        """Stop before the next file of any running batch. Permanent for this pipeline."""
        self._cancelled = True

    async def upload_batch(self, files: Iterable[SourceFile], current_count: int) -> AsyncIterator[BatchItem]:
        """
        Process files in order, yielding one result or rejection per file.

        Args:
            files: Files in the order the vendor selected them
            current_count: Images already on the product

        Yields:
            AssetUploadResult for accepted files, UploadRejection otherwise
        """
        files = list(files)
        free_slots = max(self.max_slots - current_count, 0)
        accepted = 0

        logger.info(
            "image_batch_started",
            vendor_id=self.vendor_id,
            files=len(files),
            current_count=current_count,
            free_slots=free_slots
        )

        for position, file in enumerate(files):
            if self._cancelled:
                logger.info(
                    "image_batch_cancelled",
                    vendor_id=self.vendor_id,
                    remaining=len(files) - position
                )
                return

            rejection = self._reject_reason(file, accepted, free_slots)
            if rejection is not None:
                logger.info(
                    "image_rejected",
                    filename=file.filename,
                    reason=rejection.reason.value
                )
                yield rejection
                continue

            accepted += 1
            yield await self._upload_one(file)

        logger.info(
            "image_batch_complete",
            vendor_id=self.vendor_id,
            accepted=accepted,
            rejected=len(files) - accepted
        )

    def _reject_reason(self, file: SourceFile, accepted: int, free_slots: int) -> Optional[UploadRejection]:
        if accepted >= free_slots:
            return UploadRejection(
                source_file_ref=file.filename,
                reason=RejectionReason.SLOT_LIMIT,
                message=f"You can only upload {free_slots} more image(s)"
            )
        if file.size == 0:
            return UploadRejection(
                source_file_ref=file.filename,
                reason=RejectionReason.EMPTY_FILE,
                message=f"{file.filename} is empty"
            )
        if not file.media_type.startswith("image/"):
            return UploadRejection(
                source_file_ref=file.filename,
                reason=RejectionReason.NOT_AN_IMAGE,
                message=f"{file.filename} is not an image"
            )
        if file.size > self.max_file_bytes:
            limit_mb = self.max_file_bytes // (1024 * 1024)
            return UploadRejection(
                source_file_ref=file.filename,
                reason=RejectionReason.TOO_LARGE,
                message=f"{file.filename} is larger than {limit_mb}MB"
            )
        return None

    async def _upload_one(self, file: SourceFile) -> AssetUploadResult:
        try:
            url = await run_in_threadpool(self.client.upload, file, self.vendor_id)
        except AssetUploadError as e:
            logger.warning(
                "image_upload_fallback",
                filename=file.filename,
                error=e.message,
                details=e.details
            )
            return AssetUploadResult(
                source_file_ref=file.filename,
                outcome=InlineEncoded(payload=encode_inline(file))
            )

        logger.debug("image_uploaded", filename=file.filename, url=url)
        return AssetUploadResult(source_file_ref=file.filename, outcome=Uploaded(url=url))
