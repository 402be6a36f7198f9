"""
Pydantic models for validation and serialization.
"""

from models.base import (
    BaseSchema,
    TimestampMixin,
)
from models.taxonomy import (
    TaxonomyKind,
    MasterEntry,
    TaxonomyTerm,
    TaxonomyOptionsResponse,
)
from models.media import (
    SourceFile,
    Uploaded,
    InlineEncoded,
    AssetUploadResult,
    RejectionReason,
    UploadRejection,
    BatchUploadReport,
    ImageUrlRequest,
)
from models.product import (
    ProductVariants,
    ProductFormState,
    EDITABLE_FIELDS,
    VendorProductPayload,
    VendorProductResponse,
)
from models.draft import DraftRecord
from models.wizard import (
    StepDefinition,
    PRODUCT_STEPS,
    WizardStatus,
    StepOutcome,
    SubmitOutcome,
    OpenSessionRequest,
    FieldUpdateRequest,
    TaxonomySelectRequest,
    WizardSessionView,
)

__all__ = [
    # Base
    "BaseSchema",
    "TimestampMixin",

    # Taxonomy
    "TaxonomyKind",
    "MasterEntry",
    "TaxonomyTerm",
    "TaxonomyOptionsResponse",

    # Media
    "SourceFile",
    "Uploaded",
    "InlineEncoded",
    "AssetUploadResult",
    "RejectionReason",
    "UploadRejection",
    "BatchUploadReport",
    "ImageUrlRequest",

    # Product
    "ProductVariants",
    "ProductFormState",
    "EDITABLE_FIELDS",
    "VendorProductPayload",
    "VendorProductResponse",

    # Draft
    "DraftRecord",

    # Wizard
    "StepDefinition",
    "PRODUCT_STEPS",
    "WizardStatus",
    "StepOutcome",
    "SubmitOutcome",
    "OpenSessionRequest",
    "FieldUpdateRequest",
    "TaxonomySelectRequest",
    "WizardSessionView",
]
