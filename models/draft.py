"""
Wizard draft schema.

A DraftRecord is a point-in-time copy of the form; the live session's
form stays authoritative.
"""

from pydantic import Field
from datetime import datetime

from models.base import BaseSchema
from models.product import ProductFormState


class DraftRecord(BaseSchema):
    """Locally persisted, not-yet-submitted snapshot of a wizard."""

    data: ProductFormState = Field(..., description="Form snapshot")
    step: int = Field(..., ge=1, description="Step the vendor was on when saved")
    saved_at: datetime = Field(..., description="Write time (UTC)")
