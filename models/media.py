"""
Product image schemas.

An AssetUploadResult holds exactly one outcome: the public URL returned by
the upload endpoint, or the inline data URI used when that upload failed.
"""

import mimetypes
from dataclasses import dataclass
from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import Field

from models.base import BaseSchema


@dataclass(frozen=True)
class SourceFile:
    """A file selected by the vendor, read fully into memory."""

    filename: str
    data: bytes
    content_type: Optional[str] = None

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def media_type(self) -> str:
        """Declared content type, else guessed from the filename."""
        if self.content_type and self.content_type != "application/octet-stream":
            return self.content_type
        guessed, _ = mimetypes.guess_type(self.filename)
        return guessed or "application/octet-stream"


class Uploaded(BaseSchema):
    kind: Literal["uploaded"] = "uploaded"
    url: str = Field(..., min_length=1)


class InlineEncoded(BaseSchema):
    kind: Literal["inline"] = "inline"
    payload: str = Field(..., min_length=1, description="data: URI with base64 body")


AssetOutcome = Annotated[Union[Uploaded, InlineEncoded], Field(discriminator="kind")]


class AssetUploadResult(BaseSchema):
    """One image slot of the product."""

    source_file_ref: str = Field(..., description="Original filename or URL")
    outcome: AssetOutcome

    @property
    def value(self) -> str:
        """String sent to the backend: URL or data URI."""
        if isinstance(self.outcome, Uploaded):
            return self.outcome.url
        return self.outcome.payload

    @property
    def is_inline(self) -> bool:
        return isinstance(self.outcome, InlineEncoded)


class RejectionReason(str, Enum):
    """Why a selected file was skipped."""
    SLOT_LIMIT = "slot_limit"
    TOO_LARGE = "too_large"
    NOT_AN_IMAGE = "not_an_image"
    EMPTY_FILE = "empty_file"


class UploadRejection(BaseSchema):
    source_file_ref: str
    reason: RejectionReason
    message: str


class BatchUploadReport(BaseSchema):
    """Outcome of one add-images request."""
    accepted: list[AssetUploadResult] = Field(default_factory=list)
    rejected: list[UploadRejection] = Field(default_factory=list)
    cancelled: bool = False
    image_count: int = Field(0, ge=0, description="Images on the product after the batch")


class ImageUrlRequest(BaseSchema):
    """Add an already-hosted image by URL."""
    url: str = Field(..., min_length=1)
