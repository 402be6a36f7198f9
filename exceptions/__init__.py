"""
Custom exceptions module.
"""

from exceptions.errors import (
    # Base exceptions
    AppError,
    NotFoundError,
    ValidationError,
    ConflictError,
    ExternalServiceError,
    DatabaseError,

    # Product
    ProductNotFoundError,
    ProductSubmitError,

    # Taxonomy
    UnknownTaxonomyKindError,

    # Asset upload
    AssetUploadError,
    ImageIndexError,
    ImageSlotsExhaustedError,

    # Wizard
    WizardSessionNotFoundError,
    WizardClosedError,
    InvalidStepTransitionError,
    InvalidFieldValueError,
)

__all__ = [
    # Base
    "AppError",
    "NotFoundError",
    "ValidationError",
    "ConflictError",
    "ExternalServiceError",
    "DatabaseError",

    # Product
    "ProductNotFoundError",
    "ProductSubmitError",

    # Taxonomy
    "UnknownTaxonomyKindError",

    # Asset upload
    "AssetUploadError",
    "ImageIndexError",
    "ImageSlotsExhaustedError",

    # Wizard
    "WizardSessionNotFoundError",
    "WizardClosedError",
    "InvalidStepTransitionError",
    "InvalidFieldValueError",
]
