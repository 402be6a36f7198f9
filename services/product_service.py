"""
Vendor product persistence.

Stores the finalized record produced by the wizard.
"""

from typing import Optional, Protocol
import structlog

from config import get_supabase_client
from models.product import VendorProductPayload, VendorProductResponse
from exceptions import (
    ProductNotFoundError,
    DatabaseError
)

logger = structlog.get_logger(__name__)


class ProductPersistence(Protocol):
    def get_by_id(self, product_id: str) -> VendorProductResponse: ...

    def create(self, data: VendorProductPayload) -> VendorProductResponse: ...

    def update(self, product_id: str, data: VendorProductPayload) -> VendorProductResponse: ...


class VendorProductService:
    """
    Vendor product business logic.

    Handles read, create and update for the vendor_products table.
    """

    def __init__(self):
        self.db = get_supabase_client()
        self.table = "vendor_products"

    # ===================
    # READ OPERATIONS
    # ===================

    def get_by_id(self, product_id: str) -> VendorProductResponse:
        """
        Get a single product by ID.

        Args:
            product_id: Product UUID

        Returns:
            VendorProductResponse

        Raises:
            ProductNotFoundError: If product doesn't exist
        """
        logger.debug("getting_vendor_product", product_id=product_id)

        try:
            result = (
                self.db.table(self.table)
                .select("*")
                .eq("id", product_id)
                .single()
                .execute()
            )

            if not result.data:
                raise ProductNotFoundError(product_id)

            return VendorProductResponse(**result.data)

        except ProductNotFoundError:
            raise
        except Exception as e:
            logger.error(
                "get_vendor_product_failed",
                product_id=product_id,
                error=str(e)
            )
            # Supabase reports a missing single() row as an error
            if "0 rows" in str(e) or "no rows" in str(e).lower():
                raise ProductNotFoundError(product_id)
            raise DatabaseError("select", str(e))

    # ===================
    # WRITE OPERATIONS
    # ===================

    def create(self, data: VendorProductPayload) -> VendorProductResponse:
        """
        Create a new vendor product.

        Args:
            data: Finalized product from the wizard

        Returns:
            Created VendorProductResponse
        """
        logger.info("creating_vendor_product", vendor_id=data.vendor_id, name=data.name)

        try:
            result = (
                self.db.table(self.table)
                .insert(data.to_row())
                .execute()
            )

            product = VendorProductResponse(**result.data[0])

            logger.info(
                "vendor_product_created",
                product_id=product.id,
                vendor_id=product.vendor_id
            )

            return product

        except Exception as e:
            logger.error(
                "create_vendor_product_failed",
                vendor_id=data.vendor_id,
                error=str(e)
            )
            raise DatabaseError("insert", str(e))

    def update(self, product_id: str, data: VendorProductPayload) -> VendorProductResponse:
        """
        Replace an existing vendor product with the wizard's record.

        Raises:
            ProductNotFoundError: If product doesn't exist
        """
        logger.info("updating_vendor_product", product_id=product_id)

        try:
            result = (
                self.db.table(self.table)
                .update(data.to_row())
                .eq("id", product_id)
                .execute()
            )
        except Exception as e:
            logger.error(
                "update_vendor_product_failed",
                product_id=product_id,
                error=str(e)
            )
            raise DatabaseError("update", str(e))

        if not result.data:
            raise ProductNotFoundError(product_id)

        product = VendorProductResponse(**result.data[0])
        logger.info("vendor_product_updated", product_id=product.id)
        return product


# Singleton instance for convenience
_product_service: Optional[VendorProductService] = None


def get_product_service() -> VendorProductService:
    """Get or create VendorProductService instance."""
    global _product_service
    if _product_service is None:
        _product_service = VendorProductService()
    return _product_service
