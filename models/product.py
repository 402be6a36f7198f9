"""
Vendor product schemas for the entry wizard.

ProductFormState is the in-progress form; VendorProductPayload is the
finalized record handed to the persistence API.
"""

from pydantic import Field, field_validator
from typing import Optional
from decimal import Decimal

from models.base import BaseSchema, TimestampMixin
from models.media import AssetUploadResult, InlineEncoded, Uploaded
from models.taxonomy import TaxonomyTerm

DEFAULT_ICON = "📦"


class ProductVariants(BaseSchema):
    """Free-text variant options offered to customers."""
    size: list[str] = Field(default_factory=list)
    color: list[str] = Field(default_factory=list)
    material: list[str] = Field(default_factory=list)
    style: list[str] = Field(default_factory=list)
    pack_size: list[str] = Field(default_factory=list)


class ProductFormState(BaseSchema):
    """
    Every field of the wizard, possibly incomplete.

    Assignments are validated (validate_assignment), so raw form input such
    as "149.00" is coerced and junk is rejected before it lands here.
    Required-field checks happen in the ValidationGate, not here.
    """

    # Identity
    name: str = ""
    icon: str = DEFAULT_ICON

    # Taxonomy
    category: Optional[TaxonomyTerm] = None
    subcategory: Optional[TaxonomyTerm] = None
    brand: Optional[TaxonomyTerm] = None
    unit: Optional[TaxonomyTerm] = None

    # Description
    description: str = ""
    specifications: list[str] = Field(default_factory=list)
    variants: ProductVariants = Field(default_factory=ProductVariants)

    # Pricing & inventory
    mrp: Optional[Decimal] = Field(None, ge=0, description="Maximum retail price")
    selling_price: Optional[Decimal] = None
    price: Optional[Decimal] = None
    stock: Optional[int] = None

    # Media
    images: list[AssetUploadResult] = Field(default_factory=list)

    # Flags
    is_active: bool = True
    requires_prescription: bool = False

    @field_validator("specifications")
    @classmethod
    def drop_blank_specifications(cls, v: list[str]) -> list[str]:
        return [s.strip() for s in v if s and s.strip()]


# Fields a plain edit may touch. Taxonomy and images have dedicated operations.
EDITABLE_FIELDS = frozenset({
    "name",
    "icon",
    "description",
    "specifications",
    "variants",
    "mrp",
    "selling_price",
    "price",
    "stock",
    "is_active",
    "requires_prescription",
})


class VendorProductPayload(BaseSchema):
    """
    Finalized product sent to create/update.

    Every taxonomy value is resolved; images are plain strings.
    """

    vendor_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    icon: str = DEFAULT_ICON
    category_id: str = Field(..., min_length=1)
    category: str = Field(..., min_length=1)
    subcategory_id: Optional[str] = None
    subcategory: Optional[str] = None
    brand_id: Optional[str] = None
    brand: Optional[str] = None
    unit_id: str = Field(..., min_length=1)
    unit: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    specifications: list[str] = Field(default_factory=list)
    variants: ProductVariants = Field(default_factory=ProductVariants)
    mrp: Optional[Decimal] = Field(None, ge=0)
    selling_price: Decimal = Field(..., ge=1)
    price: Decimal = Field(..., ge=1)
    stock: int = Field(..., ge=0)
    images: list[str] = Field(default_factory=list)
    is_active: bool = True
    requires_prescription: bool = False

    def to_row(self) -> dict:
        """Column dict for Supabase insert/update."""
        row = self.model_dump(mode="json")
        for key in ("mrp", "selling_price", "price"):
            value = getattr(self, key)
            row[key] = float(value) if value is not None else None
        return row


def stored_image(value: str) -> AssetUploadResult:
    """Rebuild an image slot from the string the backend stored."""
    if value.startswith("data:"):
        return AssetUploadResult(source_file_ref="inline", outcome=InlineEncoded(payload=value))
    return AssetUploadResult(source_file_ref=value, outcome=Uploaded(url=value))


class VendorProductResponse(BaseSchema, TimestampMixin):
    """Stored vendor product as returned by the persistence API."""

    id: str
    vendor_id: str
    name: str
    icon: Optional[str] = None
    category_id: Optional[str] = None
    category: Optional[str] = None
    subcategory_id: Optional[str] = None
    subcategory: Optional[str] = None
    brand_id: Optional[str] = None
    brand: Optional[str] = None
    unit_id: Optional[str] = None
    unit: Optional[str] = None
    description: Optional[str] = None
    specifications: list[str] = Field(default_factory=list)
    variants: Optional[ProductVariants] = None
    mrp: Optional[Decimal] = None
    selling_price: Optional[Decimal] = None
    price: Optional[Decimal] = None
    stock: Optional[int] = None
    images: list[str] = Field(default_factory=list)
    is_active: bool = True
    requires_prescription: bool = False

    def to_form_state(self) -> ProductFormState:
        """Seed the wizard form for editing this product."""

        def term(name: Optional[str], resolved_id: Optional[str]) -> Optional[TaxonomyTerm]:
            if not name:
                return None
            if resolved_id:
                return TaxonomyTerm(name=name, resolved_id=resolved_id)
            return TaxonomyTerm.custom(name)

        return ProductFormState(
            name=self.name,
            icon=self.icon or DEFAULT_ICON,
            category=term(self.category, self.category_id),
            subcategory=term(self.subcategory, self.subcategory_id),
            brand=term(self.brand, self.brand_id),
            unit=term(self.unit, self.unit_id),
            description=self.description or "",
            specifications=self.specifications,
            variants=self.variants or ProductVariants(),
            mrp=self.mrp,
            # Older rows only carry price
            selling_price=self.selling_price or self.price,
            price=self.price,
            stock=self.stock,
            images=[stored_image(value) for value in self.images],
            is_active=self.is_active,
            requires_prescription=self.requires_prescription,
        )
