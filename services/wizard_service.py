"""
Product entry wizard.

StepController owns the form for one wizard instance and drives it through
the ordered steps:

    Step 1 .. Step N  --submit-->  Submitting  --ok-->  Done
                                        |
                                        +--error--> Step N (draft kept)

Every edit schedules a debounced draft write; step changes and teardown
write immediately. Forward moves must pass the ValidationGate for the step
being left. A wizard always opens on step 1, even when a draft saved on a
later step is restored.
"""

from datetime import datetime, timedelta
from typing import Callable, Iterable, Optional, Sequence
from uuid import uuid4
import structlog
from pydantic import ValidationError as PydanticValidationError

from config import settings
from exceptions import (
    AppError,
    ImageIndexError,
    ImageSlotsExhaustedError,
    InvalidFieldValueError,
    InvalidStepTransitionError,
    ProductSubmitError,
    ValidationError,
    WizardClosedError,
    WizardSessionNotFoundError,
)
from models.media import (
    AssetUploadResult,
    BatchUploadReport,
    RejectionReason,
    SourceFile,
    Uploaded,
    UploadRejection,
)
from models.product import EDITABLE_FIELDS, ProductFormState, VendorProductPayload, VendorProductResponse
from models.taxonomy import MasterEntry, TaxonomyKind, TaxonomyTerm
from models.wizard import (
    PRODUCT_STEPS,
    OpenSessionRequest,
    StepDefinition,
    StepOutcome,
    SubmitOutcome,
    WizardSessionView,
    WizardStatus,
)
from services.draft_store import (
    DraftStorage,
    DraftStore,
    FileDraftStorage,
    LoopScheduler,
    Scheduler,
    draft_key,
    utc_now,
)
from services.media_upload_service import AssetUploadClient, MediaUploadPipeline, RemoteAssetUploadClient
from services.product_service import ProductPersistence, get_product_service
from services.taxonomy_service import TaxonomyLookup, TaxonomyResolver, get_taxonomy_service
from services.validation_gate import ValidationGate

logger = structlog.get_logger(__name__)


class StepController:
    """
    State machine for one product wizard.

    Usage:
        wizard = StepController.open(vendor_id="v-1", draft_store=..., ...)
        wizard.update_fields({"name": "Basmati Rice 5kg"})
        wizard.select_taxonomy(TaxonomyKind.CATEGORY, "Groceries")
        outcome = wizard.next()
        ...
        wizard.submit()
    """

    def __init__(
        self,
        vendor_id: str,
        form: ProductFormState,
        draft_store: DraftStore,
        gate: ValidationGate,
        uploads: MediaUploadPipeline,
        taxonomy: TaxonomyResolver,
        persistence: ProductPersistence,
        product_id: Optional[str] = None,
        steps: Sequence[StepDefinition] = PRODUCT_STEPS,
        baseline: Optional[ProductFormState] = None,
        restored_draft: bool = False,
        session_id: Optional[str] = None
    ):
        if not steps:
            raise ValueError("A wizard needs at least one step")

        self.session_id = session_id or str(uuid4())
        self.vendor_id = vendor_id
        self.product_id = product_id
        self.steps = tuple(steps)
        self.form = form
        self.drafts = draft_store
        self.gate = gate
        self.uploads = uploads
        self.taxonomy = taxonomy
        self.persistence = persistence
        self.restored_draft = restored_draft
        self.status = WizardStatus.EDITING
        self.errors: dict[str, str] = {}
        self.result: Optional[VendorProductResponse] = None

        self._baseline = (baseline or ProductFormState()).model_copy(deep=True)
        self._step = 1
        self._dirty = False

    @classmethod
    def open(
        cls,
        vendor_id: str,
        draft_store: DraftStore,
        persistence: ProductPersistence,
        taxonomy_lookup: TaxonomyLookup,
        upload_client: AssetUploadClient,
        product_id: Optional[str] = None,
        allowed_category_ids: Optional[list[str]] = None,
        restore_draft: bool = True,
        steps: Sequence[StepDefinition] = PRODUCT_STEPS,
        max_images: Optional[int] = None,
        max_image_bytes: Optional[int] = None
    ) -> "StepController":
        """
        Mount a wizard for creating (no product_id) or editing a product.

        The stored product seeds the form when editing; a fresh draft, if
        one exists, replaces it.

        Raises:
            ProductNotFoundError: If product_id does not exist
        """
        baseline = (
            persistence.get_by_id(product_id).to_form_state()
            if product_id
            else ProductFormState()
        )

        record = draft_store.read() if restore_draft else None
        form = record.data if record else baseline.model_copy(deep=True)

        allowed = None
        if allowed_category_ids is not None:
            allowed = {TaxonomyKind.CATEGORY: list(allowed_category_ids)}

        controller = cls(
            vendor_id=vendor_id,
            product_id=product_id,
            form=form,
            draft_store=draft_store,
            gate=ValidationGate(steps),
            uploads=MediaUploadPipeline(
                upload_client,
                vendor_id=vendor_id,
                max_slots=max_images,
                max_file_bytes=max_image_bytes
            ),
            taxonomy=TaxonomyResolver(taxonomy_lookup, vendor_id, allowed),
            persistence=persistence,
            steps=steps,
            baseline=baseline,
            restored_draft=record is not None,
        )
        controller._match_custom_terms()

        logger.info(
            "wizard_opened",
            session_id=controller.session_id,
            vendor_id=vendor_id,
            product_id=product_id,
            restored_draft=controller.restored_draft,
            draft_step=record.step if record else None
        )
        return controller

    # ===================
    # STATE
    # ===================

    @property
    def step(self) -> int:
        return self._step

    @property
    def total_steps(self) -> int:
        return len(self.steps)

    @property
    def current_step(self) -> StepDefinition:
        return self.steps[self._step - 1]

    @property
    def max_images(self) -> int:
        return self.uploads.max_slots

    def view(self) -> WizardSessionView:
        return WizardSessionView(
            session_id=self.session_id,
            vendor_id=self.vendor_id,
            product_id=self.product_id,
            step=self._step,
            step_name=self.current_step.name,
            total_steps=self.total_steps,
            status=self.status,
            form=self.form,
            errors=dict(self.errors),
            restored_draft=self.restored_draft,
            max_images=self.max_images,
        )

    def _ensure_open(self) -> None:
        if self.status == WizardStatus.DONE:
            raise WizardClosedError(self.session_id)

    def _changed(self) -> None:
        self._dirty = True
        self.drafts.schedule(self.form, self._step)

    def _move_to(self, step: int) -> None:
        previous = self._step
        self._step = step
        self.drafts.write(self.form, self._step)
        logger.info(
            "wizard_step_changed",
            session_id=self.session_id,
            from_step=previous,
            to_step=step
        )

    # ===================
    # FIELD EDITS
    # ===================

    def update_fields(self, fields: dict) -> ProductFormState:
        """
        Apply field edits atomically.

        selling_price is mirrored into price unless price is set in the
        same edit.

        Raises:
            InvalidFieldValueError: If a field is unknown, not editable here,
                or the value cannot be coerced. The form is left untouched.
        """
        self._ensure_open()

        for name in fields:
            if name not in EDITABLE_FIELDS:
                raise InvalidFieldValueError(name, "Field is not editable")

        candidate = self.form.model_copy(deep=True)
        for name, value in fields.items():
            try:
                setattr(candidate, name, value)
            except PydanticValidationError as e:
                raise InvalidFieldValueError(name, e.errors()[0]["msg"])

        if "selling_price" in fields and "price" not in fields:
            candidate.price = candidate.selling_price

        self.form = candidate
        self._changed()
        return self.form

    def select_taxonomy(self, kind: TaxonomyKind, selection: Optional[str]) -> Optional[TaxonomyTerm]:
        """
        Set a taxonomy field from a master-list pick or free text.

        A blank selection clears the field. Changing the category clears
        the subcategory and any brand that belongs to another category.

        Raises:
            ValidationError: If a subcategory is picked before a category
        """
        self._ensure_open()

        term: Optional[TaxonomyTerm] = None
        if selection is not None and selection.strip():
            if kind == TaxonomyKind.SUBCATEGORY and self.form.category is None:
                raise ValidationError(
                    message="Select a category first",
                    code="TAXONOMY_CATEGORY_REQUIRED",
                    details={"kind": kind.value}
                )
            term = self.taxonomy.resolve(kind, selection, category=self.form.category)

        # Every lookup happens before the form is touched
        subcategory, brand = self.form.subcategory, self.form.brand
        if kind == TaxonomyKind.CATEGORY and term != self.form.category:
            subcategory = None
            if brand is not None and brand.is_resolved and term is not None:
                offered = {e.id for e in self.taxonomy.candidates(TaxonomyKind.BRAND, term)}
                if brand.resolved_id not in offered:
                    brand = None

        self.form.subcategory = subcategory
        self.form.brand = brand
        setattr(self.form, kind.form_field, term)
        self._changed()
        return term

    def taxonomy_options(self, kind: TaxonomyKind) -> list[MasterEntry]:
        """Candidates offered for kind under the current category."""
        return self.taxonomy.candidates(kind, category=self.form.category)

    def _match_custom_terms(self) -> None:
        """Resolve custom terms that now exist in the master lists."""
        for kind in (TaxonomyKind.CATEGORY, TaxonomyKind.SUBCATEGORY, TaxonomyKind.BRAND, TaxonomyKind.UNIT):
            term = getattr(self.form, kind.form_field)
            if term is None or term.is_resolved:
                continue
            category = self.form.category if kind != TaxonomyKind.CATEGORY else None
            matched = self.taxonomy.resolve(kind, term.name, category=category)
            if matched.is_resolved:
                setattr(self.form, kind.form_field, matched)

    # ===================
    # NAVIGATION
    # ===================

    def next(self) -> StepOutcome:
        """
        Leave the current step forward if its required fields pass.

        On failure the step does not change, nothing is saved, and errors
        already reported for other steps' fields are kept.
        """
        self._ensure_open()

        current = self.current_step
        result = self.gate.check(current.id, self.form)

        for name in current.required_fields:
            self.errors.pop(name, None)
        self.errors.update(result.errors)

        if not result.passed:
            return StepOutcome(
                moved=False,
                step=self._step,
                errors=dict(self.errors),
                message=result.summary
            )

        target = min(self._step + 1, self.total_steps)
        moved = target != self._step
        self._move_to(target)
        return StepOutcome(moved=moved, step=self._step, errors=dict(self.errors))

    def back(self) -> StepOutcome:
        """Go to the previous step. Never validated."""
        self._ensure_open()

        target = max(self._step - 1, 1)
        moved = target != self._step
        self._move_to(target)
        return StepOutcome(moved=moved, step=self._step, errors=dict(self.errors))

    def jump_to(self, step: int) -> StepOutcome:
        """
        Go back to an earlier step directly.

        Raises:
            InvalidStepTransitionError: If step is out of range or ahead of
                the current step
        """
        self._ensure_open()

        if step < 1 or step > self.total_steps:
            raise InvalidStepTransitionError(self._step, step, "Step does not exist")
        if step > self._step:
            raise InvalidStepTransitionError(self._step, step, "Forward moves must use next")

        moved = step != self._step
        self._move_to(step)
        return StepOutcome(moved=moved, step=self._step, errors=dict(self.errors))

    # ===================
    # MEDIA
    # ===================

    async def add_images(self, files: Iterable[SourceFile]) -> BatchUploadReport:
        """
        Upload selected files into free image slots, in order.

        Other requests, teardown included, are served while a file uploads.
        Results already produced are kept if the batch is cancelled.
        """
        self._ensure_open()

        report = BatchUploadReport(image_count=len(self.form.images))
        async for item in self.uploads.upload_batch(files, current_count=len(self.form.images)):
            if isinstance(item, AssetUploadResult) and len(self.form.images) >= self.max_images:
                # Slot taken by an image added while this file was uploading
                item = UploadRejection(
                    source_file_ref=item.source_file_ref,
                    reason=RejectionReason.SLOT_LIMIT,
                    message="You can only upload 0 more image(s)"
                )
            if isinstance(item, AssetUploadResult):
                self.form.images = [*self.form.images, item]
                report.accepted.append(item)
            else:
                report.rejected.append(item)

        report.cancelled = self.uploads.cancelled
        report.image_count = len(self.form.images)
        if report.accepted and self.status != WizardStatus.DONE:
            if report.cancelled:
                # Torn down mid-batch: no timer will fire after this
                self._dirty = True
                self.drafts.write(self.form, self._step)
            else:
                self._changed()
        return report

    def add_image_url(self, url: str) -> AssetUploadResult:
        """
        Add an already-hosted image.

        Raises:
            ImageSlotsExhaustedError: If every slot is taken
        """
        self._ensure_open()

        if len(self.form.images) >= self.max_images:
            raise ImageSlotsExhaustedError(self.max_images)

        url = url.strip()
        result = AssetUploadResult(source_file_ref=url, outcome=Uploaded(url=url))
        self.form.images = [*self.form.images, result]
        self._changed()
        return result

    def remove_image(self, index: int) -> None:
        """
        Remove the image at index. Other slots are untouched.

        Raises:
            ImageIndexError: If there is no image at index
        """
        self._ensure_open()

        if index < 0 or index >= len(self.form.images):
            raise ImageIndexError(index)

        images = list(self.form.images)
        removed = images.pop(index)
        self.form.images = images
        logger.info("image_removed", session_id=self.session_id, index=index, source=removed.source_file_ref)
        self._changed()

    # ===================
    # SUBMIT
    # ===================

    def submit(self) -> SubmitOutcome:
        """
        Finalize and persist the product.

        Only available on the last step. Validation failures come back in
        the outcome. On success the draft is deleted and the wizard is done.

        Raises:
            InvalidStepTransitionError: If not on the last step
            ProductSubmitError: If creating custom terms or saving the product
                failed. The wizard stays on the last step and the draft is kept.
        """
        self._ensure_open()

        if self._step != self.total_steps:
            raise InvalidStepTransitionError(
                self._step,
                self.total_steps,
                "Submit is only available on the last step"
            )

        result = self.gate.check_all(self.form)
        for step in self.steps:
            for name in step.required_fields:
                self.errors.pop(name, None)
        self.errors.update(result.errors)

        if not result.passed:
            return SubmitOutcome(
                submitted=False,
                step=self._step,
                errors=dict(self.errors),
                message=result.summary
            )

        self.status = WizardStatus.SUBMITTING
        self.drafts.write(self.form, self._step)
        logger.info(
            "wizard_submitting",
            session_id=self.session_id,
            vendor_id=self.vendor_id,
            product_id=self.product_id
        )

        try:
            self._finalize_taxonomy()
            payload = self._build_payload()
            if self.product_id:
                product = self.persistence.update(self.product_id, payload)
            else:
                product = self.persistence.create(payload)
        except Exception as e:
            self.status = WizardStatus.EDITING
            self.drafts.write(self.form, self._step)
            logger.error(
                "wizard_submit_failed",
                session_id=self.session_id,
                error=str(e),
                error_type=type(e).__name__
            )
            if isinstance(e, AppError):
                raise ProductSubmitError(
                    f"Failed to save product: {e.message}",
                    details={"cause": e.code}
                ) from e
            raise

        self.drafts.clear()
        self.status = WizardStatus.DONE
        self.result = product
        self.errors = {}
        self._dirty = False

        logger.info(
            "wizard_submitted",
            session_id=self.session_id,
            product_id=product.id,
            images=len(payload.images),
            inline_images=sum(1 for img in self.form.images if img.is_inline)
        )
        return SubmitOutcome(submitted=True, step=self._step, product=product)

    def _finalize_taxonomy(self) -> None:
        # Each created term is written back at once so a retry does not create it twice
        form = self.form
        if form.category is not None:
            form.category = self.taxonomy.finalize(TaxonomyKind.CATEGORY, form.category)

        category_id = form.category.resolved_id if form.category else None
        if form.subcategory is not None:
            form.subcategory = self.taxonomy.finalize(
                TaxonomyKind.SUBCATEGORY, form.subcategory, category_id=category_id
            )
        if form.brand is not None:
            form.brand = self.taxonomy.finalize(
                TaxonomyKind.BRAND, form.brand, category_id=category_id
            )
        if form.unit is not None:
            form.unit = self.taxonomy.finalize(TaxonomyKind.UNIT, form.unit)

    def _build_payload(self) -> VendorProductPayload:
        form = self.form
        for kind in TaxonomyKind:
            term = getattr(form, kind.form_field)
            if term is not None and not term.is_resolved:
                raise RuntimeError(f"{kind.value} term '{term.name}' was not finalized")

        return VendorProductPayload(
            vendor_id=self.vendor_id,
            name=form.name,
            icon=form.icon,
            category_id=form.category.resolved_id,
            category=form.category.name,
            subcategory_id=form.subcategory.resolved_id if form.subcategory else None,
            subcategory=form.subcategory.name if form.subcategory else None,
            brand_id=form.brand.resolved_id if form.brand else None,
            brand=form.brand.name if form.brand else None,
            unit_id=form.unit.resolved_id,
            unit=form.unit.name,
            description=form.description,
            specifications=form.specifications,
            variants=form.variants,
            mrp=form.mrp,
            selling_price=form.selling_price,
            price=form.selling_price,
            stock=form.stock,
            images=[image.value for image in form.images],
            is_active=form.is_active,
            requires_prescription=form.requires_prescription,
        )

    # ===================
    # DRAFT LIFECYCLE
    # ===================

    def discard_draft(self) -> None:
        """Delete the saved draft and start over from the stored product (or blank)."""
        self._ensure_open()

        self.drafts.clear()
        self.form = self._baseline.model_copy(deep=True)
        self.errors = {}
        self.restored_draft = False
        self._step = 1
        self._dirty = False
        logger.info("wizard_draft_discarded", session_id=self.session_id)

    def teardown(self) -> None:
        """
        Unmount the wizard.

        Stops any upload batch and writes unsaved edits immediately.
        """
        self.uploads.cancel()
        if self.status == WizardStatus.DONE:
            return
        if self._dirty:
            self.drafts.write(self.form, self._step)
        else:
            self.drafts.cancel()
        logger.info("wizard_torn_down", session_id=self.session_id, saved=self._dirty)


# ===================
# SESSION REGISTRY
# ===================

class WizardSessionRegistry:
    """
    Live wizards of this process, by session id.

    A session leaves the registry when it is closed, when its product is
    submitted, or when nobody has touched it for idle_timeout. Idle sessions
    are torn down first so unsaved edits reach the draft.

    Collaborators default to the Supabase-backed services, the public upload
    endpoint, file-backed drafts and the running event loop.
    """

    def __init__(
        self,
        persistence: Optional[ProductPersistence] = None,
        taxonomy_lookup: Optional[TaxonomyLookup] = None,
        upload_client: Optional[AssetUploadClient] = None,
        draft_storage: Optional[DraftStorage] = None,
        scheduler: Optional[Scheduler] = None,
        idle_timeout: Optional[timedelta] = None,
        clock: Callable[[], datetime] = utc_now
    ):
        self._persistence = persistence
        self._taxonomy_lookup = taxonomy_lookup
        self._upload_client = upload_client
        self.draft_storage = draft_storage or FileDraftStorage(settings.draft_storage_dir)
        self.scheduler = scheduler or LoopScheduler()
        self.idle_timeout = idle_timeout or timedelta(minutes=settings.session_idle_minutes)
        self._clock = clock
        self._sessions: dict[str, StepController] = {}
        self._last_seen: dict[str, datetime] = {}

    def open(self, request: OpenSessionRequest) -> StepController:
        """Mount a wizard and register it."""
        self.evict_idle()

        controller = StepController.open(
            vendor_id=request.vendor_id,
            product_id=request.product_id,
            draft_store=DraftStore(
                self.draft_storage,
                draft_key(request.vendor_id, request.product_id),
                self.scheduler
            ),
            persistence=self._persistence or get_product_service(),
            taxonomy_lookup=self._taxonomy_lookup or get_taxonomy_service(),
            upload_client=self._upload_client or RemoteAssetUploadClient(),
            allowed_category_ids=request.allowed_category_ids,
            restore_draft=request.restore_draft,
        )
        self._sessions[controller.session_id] = controller
        self._last_seen[controller.session_id] = self._clock()
        return controller

    def get(self, session_id: str) -> StepController:
        """
        Raises:
            WizardSessionNotFoundError: If no live session has this id
        """
        self.evict_idle()

        controller = self._sessions.get(session_id)
        if controller is None:
            raise WizardSessionNotFoundError(session_id)
        self._last_seen[session_id] = self._clock()
        return controller

    def submit(self, session_id: str) -> SubmitOutcome:
        """Submit a session's product; a finished wizard is released."""
        controller = self.get(session_id)
        outcome = controller.submit()
        if controller.status == WizardStatus.DONE:
            self._forget(session_id)
            logger.info("wizard_session_released", session_id=session_id)
        return outcome

    def close(self, session_id: str) -> None:
        """Tear down and forget a session."""
        controller = self._sessions.get(session_id)
        if controller is None:
            raise WizardSessionNotFoundError(session_id)
        self._forget(session_id)
        controller.teardown()

    def evict_idle(self) -> int:
        """Tear down sessions untouched for longer than idle_timeout."""
        cutoff = self._clock() - self.idle_timeout
        expired = [sid for sid, seen in self._last_seen.items() if seen < cutoff]
        for session_id in expired:
            logger.info("wizard_session_expired", session_id=session_id)
            self.close(session_id)
        return len(expired)

    def close_all(self) -> None:
        """Tear down every session, e.g. on shutdown."""
        for session_id in list(self._sessions):
            self.close(session_id)

    def _forget(self, session_id: str) -> None:
        del self._sessions[session_id]
        self._last_seen.pop(session_id, None)

    def __len__(self) -> int:
        return len(self._sessions)


# Singleton instance for convenience
_wizard_registry: Optional[WizardSessionRegistry] = None


def get_wizard_registry() -> WizardSessionRegistry:
    """Get or create the process-wide WizardSessionRegistry."""
    global _wizard_registry
    if _wizard_registry is None:
        _wizard_registry = WizardSessionRegistry()
    return _wizard_registry
