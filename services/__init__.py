"""
Business logic services.

Each service handles one domain area.
"""

from services.product_service import VendorProductService, get_product_service
from services.taxonomy_service import TaxonomyService, TaxonomyResolver, get_taxonomy_service
from services.draft_store import DraftStore, FileDraftStorage, InMemoryDraftStorage, LoopScheduler, draft_key
from services.validation_gate import ValidationGate, GateResult
from services.media_upload_service import MediaUploadPipeline, RemoteAssetUploadClient
from services.wizard_service import StepController, WizardSessionRegistry, get_wizard_registry

__all__ = [
    "VendorProductService",
    "get_product_service",
    "TaxonomyService",
    "TaxonomyResolver",
    "get_taxonomy_service",
    "DraftStore",
    "FileDraftStorage",
    "InMemoryDraftStorage",
    "LoopScheduler",
    "draft_key",
    "ValidationGate",
    "GateResult",
    "MediaUploadPipeline",
    "RemoteAssetUploadClient",
    "StepController",
    "WizardSessionRegistry",
    "get_wizard_registry",
]
