"""
Shared test fixtures.

Provides a chainable mock Supabase client, in-memory fakes for the
wizard's external collaborators, a manual scheduler for debounce timers
and a controllable clock.
"""

import os
import sys
import threading
from pathlib import Path

# Add project root to Python path
project_dir = Path(__file__).parent.parent
sys.path.insert(0, str(project_dir))

# Settings are loaded at import time and require Supabase credentials
os.environ.setdefault("SUPABASE_URL", "https://test-project.supabase.co")
os.environ.setdefault("SUPABASE_KEY", "test-anon-key")

import pytest
from unittest.mock import patch
from datetime import datetime, timedelta, timezone
from itertools import count
from typing import Callable, Generator, Optional

from exceptions import AssetUploadError, DatabaseError, ProductNotFoundError
from models.media import SourceFile
from models.product import VendorProductPayload, VendorProductResponse
from models.taxonomy import MasterEntry, TaxonomyKind
from services.draft_store import DraftStore, InMemoryDraftStorage, draft_key
from services.wizard_service import StepController

from tests.factories import TaxonomyFactory

# ===================
# MOCK SUPABASE CLIENT
# ===================

class MockSupabaseResponse:
    """Mock Supabase query response."""

    def __init__(self, data: list = None, count: int = None):
        self.data = data or []
        self.count = count if count is not None else len(self.data)


class MockSupabaseQuery:
    """Mock Supabase query builder with chainable methods."""

    def __init__(self, data: list = None, count: int = None):
        self._data = data or []
        self._count = count
        self._is_single = False

    def select(self, *args, **kwargs):
        return self

    def insert(self, data):
        # Simulate insert - add id and timestamps
        if isinstance(data, dict):
            data = [dict(data)]
        for item in data:
            item["id"] = "test-uuid-123"
            item["created_at"] = datetime.now(timezone.utc).isoformat()
            item["updated_at"] = datetime.now(timezone.utc).isoformat()
        self._data = data
        return self

    def update(self, data):
        # Simulate update - merge with existing rows; no rows matched stays empty
        self._data = [
            {**item, **data, "updated_at": datetime.now(timezone.utc).isoformat()}
            for item in self._data
        ]
        return self

    def delete(self):
        return self

    def eq(self, column, value):
        return self

    def is_(self, column, value):
        return self

    def or_(self, filters):
        return self

    def in_(self, column, values):
        return self

    def single(self):
        self._is_single = True
        return self

    def order(self, column, **kwargs):
        return self

    def limit(self, count):
        return self

    def execute(self) -> MockSupabaseResponse:
        if self._is_single:
            # Return first item or empty for single()
            data = self._data[0] if self._data else None
            return MockSupabaseResponse(
                data=data,
                count=1 if data else 0
            )
        return MockSupabaseResponse(
            data=self._data,
            count=self._count if self._count is not None else len(self._data)
        )


class MockSupabaseTable:
    """Mock Supabase table with configurable responses."""

    def __init__(self, data: list = None, count: int = None):
        self._data = data or []
        self._count = count

    def select(self, *args, **kwargs):
        return MockSupabaseQuery(self._data.copy(), self._count)

    def insert(self, data):
        query = MockSupabaseQuery(self._data.copy(), self._count)
        return query.insert(data)

    def update(self, data):
        query = MockSupabaseQuery(self._data.copy(), self._count)
        return query.update(data)

    def delete(self):
        return MockSupabaseQuery(self._data.copy(), self._count)


class MockSupabaseClient:
    """Mock Supabase client."""

    def __init__(self):
        self._tables = {}

    def set_table_data(self, table_name: str, data: list, count: int = None):
        """Configure mock data for a table."""
        self._tables[table_name] = {"data": data, "count": count}

    def table(self, name: str) -> MockSupabaseTable:
        """Get mock table."""
        config = self._tables.get(name, {"data": [], "count": None})
        return MockSupabaseTable(config["data"], config["count"])


# ===================
# TIMERS & CLOCK
# ===================

class ManualTimer:
    def __init__(self, when: float, callback: Callable[[], None]):
        self.when = when
        self.callback = callback
        self.cancelled = False
        self.fired = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Scheduler whose timers only fire when the test advances time."""

    def __init__(self):
        self.now = 0.0
        self.timers: list[ManualTimer] = []

    def call_later(self, delay: float, callback: Callable[[], None]) -> ManualTimer:
        timer = ManualTimer(self.now + delay, callback)
        self.timers.append(timer)
        return timer

    @property
    def pending(self) -> list[ManualTimer]:
        return [t for t in self.timers if not t.cancelled and not t.fired]

    def advance(self, seconds: float) -> None:
        self.now += seconds
        for timer in sorted(self.pending, key=lambda t: t.when):
            if timer.when <= self.now:
                timer.fired = True
                timer.callback()


class FakeClock:
    """Callable clock for DraftStore; starts at a fixed UTC instant."""

    def __init__(self, start: Optional[datetime] = None):
        self.current = start or datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.current

    def advance(self, delta: timedelta) -> None:
        self.current += delta


# ===================
# STORAGE FAKES
# ===================

class RecordingDraftStorage(InMemoryDraftStorage):
    """In-memory storage that remembers every write."""

    def __init__(self):
        super().__init__()
        self.writes: list[tuple[str, str]] = []

    def set(self, key: str, value: str) -> None:
        self.writes.append((key, value))
        super().set(key, value)


class FailingDraftStorage:
    """Storage that fails like a full or unavailable disk."""

    def get(self, key: str):
        raise OSError("storage unavailable")

    def set(self, key: str, value: str) -> None:
        raise OSError("quota exceeded")

    def delete(self, key: str) -> None:
        raise OSError("storage unavailable")


# ===================
# COLLABORATOR FAKES
# ===================

class FakeUploadClient:
    """
    Upload endpoint stand-in. Fails for filenames listed in fail_for.

    on_upload, when set, is called with each filename as its upload starts.
    """

    def __init__(self, fail_for: Optional[set[str]] = None):
        self.fail_for = fail_for or set()
        self.calls: list[str] = []
        self.on_upload: Optional[Callable[[str], None]] = None

    def upload(self, file: SourceFile, vendor_id: str) -> str:
        self.calls.append(file.filename)
        if self.on_upload is not None:
            self.on_upload(file.filename)
        if file.filename in self.fail_for:
            raise AssetUploadError("Upload endpoint returned 500", details={"status_code": 500})
        return f"https://cdn.example.com/{vendor_id}/{file.filename}"


class GatedUploadClient(FakeUploadClient):
    """Holds each upload until the test sets release; started marks one in flight."""

    def __init__(self):
        super().__init__()
        self.started = threading.Event()
        self.release = threading.Event()

    def upload(self, file: SourceFile, vendor_id: str) -> str:
        self.started.set()
        if not self.release.wait(timeout=5):
            raise AssetUploadError("Upload never released")
        return super().upload(file, vendor_id)


class FakeProductPersistence:
    """Product API stand-in. Set fail_with to make the next write fail."""

    def __init__(self, existing: Optional[list[VendorProductResponse]] = None):
        self.products = {p.id: p for p in existing or []}
        self.created: list[VendorProductPayload] = []
        self.updated: list[tuple[str, VendorProductPayload]] = []
        self.fail_with: Optional[Exception] = None
        self._ids = count(1)

    def get_by_id(self, product_id: str) -> VendorProductResponse:
        if product_id not in self.products:
            raise ProductNotFoundError(product_id)
        return self.products[product_id]

    def _maybe_fail(self) -> None:
        if self.fail_with is not None:
            error, self.fail_with = self.fail_with, None
            raise error

    def create(self, data: VendorProductPayload) -> VendorProductResponse:
        self._maybe_fail()
        self.created.append(data)
        product = VendorProductResponse(id=f"prod-{next(self._ids)}", **data.model_dump())
        self.products[product.id] = product
        return product

    def update(self, product_id: str, data: VendorProductPayload) -> VendorProductResponse:
        self._maybe_fail()
        self.get_by_id(product_id)
        self.updated.append((product_id, data))
        product = VendorProductResponse(id=product_id, **data.model_dump())
        self.products[product_id] = product
        return product


class FakeTaxonomyLookup:
    """Master lists held in memory; custom entries get predictable ids."""

    def __init__(self, entries: Optional[dict[TaxonomyKind, list[MasterEntry]]] = None):
        self.entries = entries if entries is not None else TaxonomyFactory.master_lists()
        self.created: list[tuple[TaxonomyKind, str, Optional[str]]] = []
        self.list_calls = 0
        self.fail_create: bool = False
        self.fail_list: set[TaxonomyKind] = set()

    def list_entries(self, kind: TaxonomyKind, vendor_id: Optional[str] = None) -> list[MasterEntry]:
        self.list_calls += 1
        if kind in self.fail_list:
            raise DatabaseError("select", "connection reset")
        return list(self.entries.get(kind, []))

    def create_entry(
        self,
        kind: TaxonomyKind,
        name: str,
        category_id: Optional[str] = None,
        vendor_id: Optional[str] = None
    ) -> MasterEntry:
        if self.fail_create:
            raise DatabaseError("insert", "connection reset")
        self.created.append((kind, name, category_id))
        entry = MasterEntry(
            id=f"{kind.value}-custom-{len(self.created)}",
            name=name,
            category_id=category_id,
            vendor_id=vendor_id
        )
        self.entries.setdefault(kind, []).append(entry)
        return entry


# ===================
# FIXTURES
# ===================

@pytest.fixture
def mock_supabase() -> MockSupabaseClient:
    """
    Create a mock Supabase client.

    Usage:
        def test_something(mock_supabase):
            mock_supabase.set_table_data("categories", [
                {"id": "cat-1", "name": "Groceries"}
            ])
    """
    return MockSupabaseClient()


@pytest.fixture
def mock_db(mock_supabase) -> Generator:
    """
    Patch the database client with mock.

    Any service constructed inside the test gets the mock client.
    """
    with patch("config.database.get_supabase_client", return_value=mock_supabase):
        with patch("services.product_service.get_supabase_client", return_value=mock_supabase):
            with patch("services.taxonomy_service.get_supabase_client", return_value=mock_supabase):
                yield mock_supabase


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def storage() -> RecordingDraftStorage:
    return RecordingDraftStorage()


@pytest.fixture
def upload_client() -> FakeUploadClient:
    return FakeUploadClient()


@pytest.fixture
def persistence() -> FakeProductPersistence:
    return FakeProductPersistence()


@pytest.fixture
def taxonomy_lookup() -> FakeTaxonomyLookup:
    return FakeTaxonomyLookup()


@pytest.fixture
def make_draft_store(storage, scheduler, clock):
    """Build a DraftStore on the shared fakes with a 1s debounce and 7 day TTL."""

    def factory(vendor_id: str = "vendor-1", product_id: Optional[str] = None) -> DraftStore:
        return DraftStore(
            storage,
            draft_key(vendor_id, product_id),
            scheduler,
            debounce_seconds=1.0,
            ttl=timedelta(days=7),
            clock=clock
        )

    return factory


@pytest.fixture
def make_wizard(make_draft_store, persistence, taxonomy_lookup, upload_client):
    """
    Open a StepController wired to the in-memory fakes.

    Usage:
        def test_something(make_wizard):
            wizard = make_wizard()
            wizard = make_wizard(product_id="prod-9", allowed_category_ids=["cat-1"])
    """

    def factory(
        vendor_id: str = "vendor-1",
        product_id: Optional[str] = None,
        **kwargs
    ) -> StepController:
        kwargs.setdefault("max_images", 4)
        kwargs.setdefault("max_image_bytes", 10 * 1024 * 1024)
        kwargs.setdefault("upload_client", upload_client)
        return StepController.open(
            vendor_id=vendor_id,
            product_id=product_id,
            draft_store=make_draft_store(vendor_id, product_id),
            persistence=persistence,
            taxonomy_lookup=taxonomy_lookup,
            **kwargs
        )

    return factory


@pytest.fixture
def test_client_with_fakes(storage, scheduler, persistence, taxonomy_lookup, upload_client):
    """
    FastAPI test client whose wizard registry uses the in-memory fakes.

    Usage:
        def test_endpoint(test_client_with_fakes):
            client, registry = test_client_with_fakes
            response = client.post("/api/wizard/sessions", json={"vendor_id": "v-1"})
    """
    from fastapi.testclient import TestClient
    from main import app
    from services.wizard_service import WizardSessionRegistry

    registry = WizardSessionRegistry(
        persistence=persistence,
        taxonomy_lookup=taxonomy_lookup,
        upload_client=upload_client,
        draft_storage=storage,
        scheduler=scheduler
    )
    with patch("routes.wizard.get_wizard_registry", return_value=registry):
        yield TestClient(app), registry
