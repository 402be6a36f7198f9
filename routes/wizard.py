"""
Product wizard API routes.

One session per mounted wizard. The session holds the form; every route
acts on it and returns the updated state.
"""

from fastapi import APIRouter, File, UploadFile
from fastapi.responses import JSONResponse, Response
import structlog

from models.media import BatchUploadReport, ImageUrlRequest, SourceFile
from models.taxonomy import TaxonomyOptionsResponse
from models.wizard import (
    FieldUpdateRequest,
    OpenSessionRequest,
    StepOutcome,
    SubmitOutcome,
    TaxonomySelectRequest,
    WizardSessionView,
)
from services.taxonomy_service import parse_kind
from services.wizard_service import get_wizard_registry
from exceptions import AppError

logger = structlog.get_logger(__name__)

router = APIRouter()


# ===================
# EXCEPTION HANDLER
# ===================

def handle_error(e: Exception) -> JSONResponse:
    """Convert exception to JSON response."""
    if isinstance(e, AppError):
        return JSONResponse(
            status_code=e.status_code,
            content=e.to_dict()
        )
    # Unexpected error
    logger.error("unexpected_error", error=str(e), type=type(e).__name__)
    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred"
            }
        }
    )


# ===================
# SESSIONS
# ===================

@router.post("/sessions", response_model=WizardSessionView, status_code=201)
async def open_session(body: OpenSessionRequest):
    """
    Mount a wizard for a new product, or for editing product_id.

    A saved draft younger than the TTL is restored; the wizard still opens
    on step 1.

    Raises:
        404: Product not found
    """
    try:
        wizard = get_wizard_registry().open(body)
        return wizard.view()
    except Exception as e:
        return handle_error(e)


@router.get("/sessions/{session_id}", response_model=WizardSessionView)
async def get_session(session_id: str):
    """
    Current wizard state.

    Raises:
        404: Session not found
    """
    try:
        return get_wizard_registry().get(session_id).view()
    except Exception as e:
        return handle_error(e)


@router.delete("/sessions/{session_id}", status_code=204, response_class=Response)
async def close_session(session_id: str):
    """
    Unmount the wizard. Unsaved edits are written to the draft first.

    Raises:
        404: Session not found
    """
    try:
        get_wizard_registry().close(session_id)
        return Response(status_code=204)
    except Exception as e:
        return handle_error(e)


@router.delete("/sessions/{session_id}/draft", response_model=WizardSessionView)
async def discard_draft(session_id: str):
    """Delete the saved draft and reset the form."""
    try:
        wizard = get_wizard_registry().get(session_id)
        wizard.discard_draft()
        return wizard.view()
    except Exception as e:
        return handle_error(e)


# ===================
# FIELDS
# ===================

@router.patch("/sessions/{session_id}/fields", response_model=WizardSessionView)
async def update_fields(session_id: str, body: FieldUpdateRequest):
    """
    Edit form fields.

    Raises:
        409: Wizard already submitted
        422: Unknown field or invalid value
    """
    try:
        wizard = get_wizard_registry().get(session_id)
        wizard.update_fields(body.fields)
        return wizard.view()
    except Exception as e:
        return handle_error(e)


@router.get("/sessions/{session_id}/taxonomy/{kind}", response_model=TaxonomyOptionsResponse)
async def taxonomy_options(session_id: str, kind: str):
    """Options offered for categories, subcategories, units or brands."""
    try:
        taxonomy_kind = parse_kind(kind)
        wizard = get_wizard_registry().get(session_id)
        return TaxonomyOptionsResponse(
            kind=taxonomy_kind,
            options=wizard.taxonomy_options(taxonomy_kind),
            selected=getattr(wizard.form, taxonomy_kind.form_field)
        )
    except Exception as e:
        return handle_error(e)


@router.put("/sessions/{session_id}/taxonomy/{kind}", response_model=WizardSessionView)
async def select_taxonomy(session_id: str, kind: str, body: TaxonomySelectRequest):
    """
    Pick a master entry (by id or name) or type a custom term.

    Custom terms are created when the product is submitted.
    """
    try:
        taxonomy_kind = parse_kind(kind)
        wizard = get_wizard_registry().get(session_id)
        wizard.select_taxonomy(taxonomy_kind, body.selection)
        return wizard.view()
    except Exception as e:
        return handle_error(e)


# ===================
# NAVIGATION
# ===================

@router.post("/sessions/{session_id}/next", response_model=StepOutcome)
async def next_step(session_id: str):
    """Validate the current step and move forward."""
    try:
        return get_wizard_registry().get(session_id).next()
    except Exception as e:
        return handle_error(e)


@router.post("/sessions/{session_id}/back", response_model=StepOutcome)
async def previous_step(session_id: str):
    """Move back one step."""
    try:
        return get_wizard_registry().get(session_id).back()
    except Exception as e:
        return handle_error(e)


@router.post("/sessions/{session_id}/jump/{step}", response_model=StepOutcome)
async def jump_to_step(session_id: str, step: int):
    """
    Move back to a completed step.

    Raises:
        409: Step ahead of the current one or out of range
    """
    try:
        return get_wizard_registry().get(session_id).jump_to(step)
    except Exception as e:
        return handle_error(e)


# ===================
# IMAGES
# ===================

@router.post("/sessions/{session_id}/images", response_model=BatchUploadReport)
async def add_images(session_id: str, files: list[UploadFile] = File(...)):
    """
    Upload product images.

    Files over the size limit, non-images and files beyond the free slots
    are reported in `rejected`; the rest are added in order.
    """
    logger.info(
        "image_upload_requested",
        session_id=session_id,
        files=len(files)
    )

    try:
        wizard = get_wizard_registry().get(session_id)
        selected = [
            SourceFile(
                filename=upload.filename or "image",
                data=await upload.read(),
                content_type=upload.content_type
            )
            for upload in files
        ]
        return await wizard.add_images(selected)
    except Exception as e:
        return handle_error(e)


@router.post("/sessions/{session_id}/images/url", response_model=WizardSessionView)
async def add_image_url(session_id: str, body: ImageUrlRequest):
    """
    Add an image by URL.

    Raises:
        409: No free image slot
    """
    try:
        wizard = get_wizard_registry().get(session_id)
        wizard.add_image_url(body.url)
        return wizard.view()
    except Exception as e:
        return handle_error(e)


@router.delete("/sessions/{session_id}/images/{index}", response_model=WizardSessionView)
async def remove_image(session_id: str, index: int):
    """
    Remove one image.

    Raises:
        404: No image at index
    """
    try:
        wizard = get_wizard_registry().get(session_id)
        wizard.remove_image(index)
        return wizard.view()
    except Exception as e:
        return handle_error(e)


# ===================
# SUBMIT
# ===================

@router.post("/sessions/{session_id}/submit", response_model=SubmitOutcome)
async def submit(session_id: str):
    """
    Create or update the product.

    Validation problems come back with submitted=false. A submitted
    wizard is released, so later calls on its session return 404.

    Raises:
        409: Not on the last step
        502: Saving failed; the draft is kept for a retry
    """
    try:
        return get_wizard_registry().submit(session_id)
    except Exception as e:
        return handle_error(e)
