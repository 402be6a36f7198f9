"""
Wizard step definitions and API schemas.
"""

from dataclasses import dataclass
from pydantic import Field
from typing import Any, Optional
from enum import Enum

from models.base import BaseSchema
from models.product import ProductFormState, VendorProductResponse


@dataclass(frozen=True)
class StepDefinition:
    """One page of the wizard and the fields that must be valid to leave it forward."""

    id: int
    name: str
    required_fields: frozenset[str] = frozenset()


PRODUCT_STEPS: tuple[StepDefinition, ...] = (
    StepDefinition(1, "Basic Info", frozenset({"name", "category", "unit"})),
    StepDefinition(2, "Description & Specs", frozenset({"description"})),
    StepDefinition(3, "Pricing & Stock", frozenset({"selling_price", "price", "stock"})),
    StepDefinition(4, "Media"),
)


class WizardStatus(str, Enum):
    """Lifecycle of a wizard instance. DONE is terminal."""
    EDITING = "editing"
    SUBMITTING = "submitting"
    DONE = "done"


class StepOutcome(BaseSchema):
    """Result of a navigation request."""
    moved: bool
    step: int = Field(..., ge=1)
    errors: dict[str, str] = Field(default_factory=dict)
    message: Optional[str] = None


class SubmitOutcome(BaseSchema):
    """Result of a submit request that did not hit a backend failure."""
    submitted: bool
    step: int = Field(..., ge=1)
    errors: dict[str, str] = Field(default_factory=dict)
    message: Optional[str] = None
    product: Optional[VendorProductResponse] = None


# ===================
# API SCHEMAS
# ===================

class OpenSessionRequest(BaseSchema):
    """Start creating a product, or editing one when product_id is set."""
    vendor_id: str = Field(..., min_length=1)
    product_id: Optional[str] = None
    allowed_category_ids: Optional[list[str]] = Field(
        None,
        description="Vendor's pre-selected categories; null offers the full list"
    )
    restore_draft: bool = True


class FieldUpdateRequest(BaseSchema):
    fields: dict[str, Any] = Field(..., min_length=1)


class TaxonomySelectRequest(BaseSchema):
    selection: Optional[str] = Field(
        None,
        description="Master entry id or name, a new custom name, or null to clear"
    )


class WizardSessionView(BaseSchema):
    """Everything a client needs to render the wizard."""
    session_id: str
    vendor_id: str
    product_id: Optional[str] = None
    step: int
    step_name: str
    total_steps: int
    status: WizardStatus
    form: ProductFormState
    errors: dict[str, str] = Field(default_factory=dict)
    restored_draft: bool = False
    max_images: int
