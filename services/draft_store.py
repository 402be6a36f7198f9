"""
Local draft persistence for the product wizard.

Autosave is best-effort: storage failures are logged and swallowed, never
raised to the wizard. Bursts of edits are coalesced by a single debounce
timer per wizard; a new edit replaces the pending write instead of queueing
behind it.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Optional, Protocol
from urllib.parse import quote

import structlog
from pydantic import ValidationError as PydanticValidationError

from config import settings
from models.draft import DraftRecord
from models.product import ProductFormState

logger = structlog.get_logger(__name__)

NEW_ENTITY = "new"


def draft_key(scope: str, entity_id: Optional[str] = None) -> str:
    """
    Build the storage key for a wizard.

    Creating and editing never collide: edits use the product id, creates
    use the "new" sentinel.
    """
    return f"{scope}:{entity_id or NEW_ENTITY}"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# ===================
# STORAGE BACKENDS
# ===================

class DraftStorage(Protocol):
    """Key-value store with no server round-trip."""

    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...


class InMemoryDraftStorage:
    """Process-local storage. Drafts die with the process."""

    def __init__(self):
        self._items: dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set(self, key: str, value: str) -> None:
        self._items[key] = value

    def delete(self, key: str) -> None:
        self._items.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._items)


class FileDraftStorage:
    """One JSON file per key under a directory."""

    def __init__(self, directory: str | Path):
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        return self.directory / f"{quote(key, safe='')}.json"

    def get(self, key: str) -> Optional[str]:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def set(self, key: str, value: str) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self._path(key)
        tmp = path.with_suffix(".tmp")
        tmp.write_text(value, encoding="utf-8")
        tmp.replace(path)

    def delete(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)


# ===================
# TIMERS
# ===================

class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle: ...


class LoopScheduler:
    """Runs callbacks on the asyncio event loop serving the wizard."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop

    def call_later(self, delay: float, callback: Callable[[], None]) -> asyncio.TimerHandle:
        loop = self._loop or asyncio.get_running_loop()
        return loop.call_later(delay, callback)


# ===================
# DRAFT STORE
# ===================

class DraftStore:
    """
    Debounced, TTL-bound draft persistence for one wizard instance.

    Usage:
        store = DraftStore(FileDraftStorage(".drafts"), draft_key("vendor-1"), LoopScheduler())
        store.schedule(form, step=2)   # coalesced, fires after the debounce window
        store.write(form, step=3)      # immediate, cancels the pending timer
        record = store.read()          # None when missing or expired
    """

    def __init__(
        self,
        storage: DraftStorage,
        key: str,
        scheduler: Scheduler,
        debounce_seconds: Optional[float] = None,
        ttl: Optional[timedelta] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.storage = storage
        self.key = key
        self.scheduler = scheduler
        self.debounce_seconds = (
            settings.draft_debounce_seconds if debounce_seconds is None else debounce_seconds
        )
        self.ttl = ttl or timedelta(days=settings.draft_ttl_days)
        self.clock = clock
        self._timer: Optional[TimerHandle] = None
        self._pending: Optional[tuple[ProductFormState, int]] = None

    @property
    def has_pending(self) -> bool:
        return self._pending is not None

    # ===================
    # WRITE OPERATIONS
    # ===================

    def schedule(self, data: ProductFormState, step: int) -> None:
        """
        Arm the debounce timer with a snapshot of data.

        Any pending, not-yet-fired write is cancelled and replaced.
        """
        self.cancel()
        self._pending = (data.model_copy(deep=True), step)
        try:
            self._timer = self.scheduler.call_later(self.debounce_seconds, self._fire)
        except RuntimeError as e:
            # No event loop to debounce on
            logger.warning("draft_schedule_unavailable", key=self.key, error=str(e))
            self.flush()
            return

        logger.debug("draft_save_scheduled", key=self.key, step=step)

    def write(self, data: ProductFormState, step: int) -> bool:
        """
        Persist immediately, bypassing the debounce.

        Returns:
            True if the draft was stored, False if storage failed
        """
        self.cancel()
        return self._persist(data, step)

    def flush(self) -> bool:
        """Perform the pending write now. False if nothing was pending."""
        if self._pending is None:
            return False
        data, step = self._pending
        return self.write(data, step)

    def cancel(self) -> None:
        """Drop the pending write, if any."""
        if self._timer is not None:
            self._timer.cancel()
        self._timer = None
        self._pending = None

    def clear(self, key: Optional[str] = None) -> None:
        """Delete the draft. Used on successful submit and explicit discard."""
        if key is None or key == self.key:
            self.cancel()
        self._delete(key or self.key)
        logger.info("draft_cleared", key=key or self.key)

    def _fire(self) -> None:
        pending = self._pending
        self._timer = None
        self._pending = None
        if pending is not None:
            self._persist(*pending)

    def _persist(self, data: ProductFormState, step: int) -> bool:
        try:
            record = DraftRecord(data=data, step=step, saved_at=self.clock())
            self.storage.set(self.key, record.model_dump_json())
        except Exception as e:
            logger.warning(
                "draft_write_failed",
                key=self.key,
                step=step,
                error=str(e),
                error_type=type(e).__name__
            )
            return False

        logger.debug("draft_saved", key=self.key, step=step)
        return True

    # ===================
    # READ OPERATIONS
    # ===================

    def read(self, key: Optional[str] = None) -> Optional[DraftRecord]:
        """
        Load a draft if it is still fresh.

        Stale or unreadable entries are deleted as a side effect.

        Returns:
            DraftRecord, or None if missing, expired or unreadable
        """
        key = key or self.key

        try:
            raw = self.storage.get(key)
        except Exception as e:
            logger.warning("draft_read_failed", key=key, error=str(e), error_type=type(e).__name__)
            return None

        if raw is None:
            return None

        try:
            record = DraftRecord.model_validate_json(raw)
        except PydanticValidationError as e:
            logger.warning("draft_unreadable", key=key, error_count=e.error_count())
            self._delete(key)
            return None

        saved_at = record.saved_at
        if saved_at.tzinfo is None:
            saved_at = saved_at.replace(tzinfo=timezone.utc)

        age = self.clock() - saved_at
        if age > self.ttl:
            logger.info("draft_expired", key=key, age_hours=round(age.total_seconds() / 3600, 1))
            self._delete(key)
            return None

        return record

    def _delete(self, key: str) -> None:
        try:
            self.storage.delete(key)
        except Exception as e:
            logger.warning("draft_delete_failed", key=key, error=str(e), error_type=type(e).__name__)
