"""
Custom exception classes for the application.

Every error that reaches the API layer is an AppError and renders into the
standard error envelope via to_dict().
"""

from typing import Optional, Any
from datetime import datetime, timezone


class AppError(Exception):
    """
    Base exception for all application errors.

    All custom exceptions inherit from this.

    Attributes:
        code: Error code (e.g., "PRODUCT_NOT_FOUND")
        message: Human-readable message
        status_code: HTTP status code
        details: Additional context
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        details: Optional[dict[str, Any]] = None
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc).isoformat()
        super().__init__(message)

    def to_dict(self) -> dict:
        """Convert to API response format."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
                "timestamp": self.timestamp
            }
        }


class NotFoundError(AppError):
    """Resource not found (404)."""

    def __init__(
        self,
        resource: str,
        identifier: str,
        code: Optional[str] = None
    ):
        super().__init__(
            code=code or f"{resource.upper()}_NOT_FOUND",
            message=f"{resource} not found",
            status_code=404,
            details={"id": identifier}
        )


class ValidationError(AppError):
    """Validation failed (422)."""

    def __init__(
        self,
        message: str,
        code: str = "VALIDATION_ERROR",
        details: Optional[dict] = None
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=422,
            details=details
        )


class ConflictError(AppError):
    """Conflict with the current resource state (409)."""

    def __init__(
        self,
        message: str,
        code: str = "CONFLICT",
        details: Optional[dict] = None
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=409,
            details=details
        )


class ExternalServiceError(AppError):
    """External service failure (503)."""

    def __init__(
        self,
        service: str,
        message: str,
        details: Optional[dict] = None
    ):
        super().__init__(
            code=f"{service.upper()}_ERROR",
            message=message,
            status_code=503,
            details={"service": service, **(details or {})}
        )


class DatabaseError(AppError):
    """Database operation failed (500)."""

    def __init__(
        self,
        operation: str,
        message: str,
        details: Optional[dict] = None
    ):
        super().__init__(
            code="DATABASE_ERROR",
            message=f"Database {operation} failed: {message}",
            status_code=500,
            details={"operation": operation, **(details or {})}
        )


# ===================
# PRODUCT ERRORS
# ===================

class ProductNotFoundError(NotFoundError):
    """Vendor product not found."""

    def __init__(self, product_id: str):
        super().__init__(
            resource="Product",
            identifier=product_id,
            code="PRODUCT_NOT_FOUND"
        )


class ProductSubmitError(AppError):
    """Persisting the finished product failed (502). The draft is kept."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(
            code="PRODUCT_SUBMIT_FAILED",
            message=message,
            status_code=502,
            details={"draft_retained": True, **(details or {})}
        )


# ===================
# TAXONOMY ERRORS
# ===================

class UnknownTaxonomyKindError(ValidationError):
    """Taxonomy kind outside categories/subcategories/units/brands."""

    def __init__(self, kind: str, valid: list[str]):
        super().__init__(
            code="TAXONOMY_INVALID_KIND",
            message=f"Unknown taxonomy kind: {kind}",
            details={"provided": kind, "valid": valid}
        )


# ===================
# ASSET UPLOAD ERRORS
# ===================

class AssetUploadError(ExternalServiceError):
    """Primary asset upload failed. Triggers the inline fallback."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(
            service="asset_upload",
            message=message,
            details=details
        )


class ImageIndexError(NotFoundError):
    """No image at the requested position."""

    def __init__(self, index: int):
        super().__init__(
            resource="Image",
            identifier=str(index),
            code="IMAGE_NOT_FOUND"
        )


class ImageSlotsExhaustedError(ConflictError):
    """Every image slot is already taken."""

    def __init__(self, max_slots: int):
        super().__init__(
            code="IMAGE_SLOTS_EXHAUSTED",
            message=f"You can only add {max_slots} images",
            details={"max_slots": max_slots}
        )


# ===================
# WIZARD ERRORS
# ===================

class WizardSessionNotFoundError(NotFoundError):
    """Wizard session id unknown or already torn down."""

    def __init__(self, session_id: str):
        super().__init__(
            resource="Wizard session",
            identifier=session_id,
            code="WIZARD_SESSION_NOT_FOUND"
        )


class WizardClosedError(ConflictError):
    """Wizard already submitted; the instance is terminal."""

    def __init__(self, session_id: Optional[str] = None):
        super().__init__(
            code="WIZARD_CLOSED",
            message="This wizard has already been submitted",
            details={"session_id": session_id}
        )


class InvalidStepTransitionError(ConflictError):
    """Requested step change is not allowed from the current step."""

    def __init__(self, current_step: int, requested_step: int, reason: str):
        super().__init__(
            code="INVALID_STEP_TRANSITION",
            message=f"Cannot move from step {current_step} to step {requested_step}",
            details={
                "current_step": current_step,
                "requested_step": requested_step,
                "reason": reason
            }
        )


class InvalidFieldValueError(ValidationError):
    """A field edit could not be applied to the form."""

    def __init__(self, field: str, reason: str):
        super().__init__(
            code="INVALID_FIELD_VALUE",
            message=f"Invalid value for {field}",
            details={"field": field, "reason": reason}
        )
