"""
Taxonomy schemas: master-list entries and the terms a vendor selects.
"""

from pydantic import ConfigDict, Field, model_validator
from typing import Optional
from enum import Enum

from models.base import BaseSchema


class TaxonomyKind(str, Enum):
    """Master lists a product is classified against. Values are table names."""
    CATEGORY = "categories"
    SUBCATEGORY = "subcategories"
    UNIT = "units"
    BRAND = "brands"

    @property
    def form_field(self) -> str:
        """ProductFormState attribute holding a term of this kind."""
        return {
            TaxonomyKind.CATEGORY: "category",
            TaxonomyKind.SUBCATEGORY: "subcategory",
            TaxonomyKind.UNIT: "unit",
            TaxonomyKind.BRAND: "brand",
        }[self]


class MasterEntry(BaseSchema):
    """
    One row of a master list.

    Subcategories and brands carry the category they belong to; a brand
    without category_id is offered under every category.
    """

    id: str = Field(..., min_length=1, description="Master entry UUID")
    name: str = Field(..., min_length=1, description="Display name")
    category_id: Optional[str] = Field(
        None,
        description="Parent category (subcategories, brands)"
    )
    vendor_id: Optional[str] = Field(
        None,
        description="Owning vendor for vendor-specific entries, null = global"
    )


class TaxonomyTerm(BaseSchema):
    """
    A selected taxonomy value.

    Either resolved against a master entry (resolved_id set) or a custom
    name pending creation at submit time. Never both, never neither.
    """

    model_config = ConfigDict(
        str_strip_whitespace=True,
        frozen=True
    )

    name: str = Field(..., min_length=1)
    resolved_id: Optional[str] = None
    is_custom_pending: bool = False

    @model_validator(mode="after")
    def exactly_one_state(self) -> "TaxonomyTerm":
        if self.is_custom_pending and self.resolved_id is not None:
            raise ValueError("custom pending term cannot carry a resolved id")
        if not self.is_custom_pending and self.resolved_id is None:
            raise ValueError("term must be resolved or marked custom pending")
        return self

    @classmethod
    def from_entry(cls, entry: MasterEntry) -> "TaxonomyTerm":
        return cls(name=entry.name, resolved_id=entry.id)

    @classmethod
    def custom(cls, name: str) -> "TaxonomyTerm":
        return cls(name=name, is_custom_pending=True)

    @property
    def is_resolved(self) -> bool:
        return self.resolved_id is not None


class TaxonomyOptionsResponse(BaseSchema):
    """Candidate list offered to the vendor for one taxonomy field."""
    kind: TaxonomyKind
    options: list[MasterEntry]
    selected: Optional[TaxonomyTerm] = None
