"""
Taxonomy master lists and resolution of vendor selections.

TaxonomyService talks to the master tables (categories, subcategories,
units, brands). TaxonomyResolver turns what the vendor picked or typed
into a TaxonomyTerm, and creates custom terms only when the product is
submitted.
"""

from typing import Iterable, Optional, Protocol
import structlog

from config import get_supabase_client
from exceptions import DatabaseError, UnknownTaxonomyKindError, ValidationError
from models.taxonomy import MasterEntry, TaxonomyKind, TaxonomyTerm

logger = structlog.get_logger(__name__)

# Master lists that may hold vendor-specific rows next to the global ones
VENDOR_SCOPED_KINDS = frozenset({TaxonomyKind.CATEGORY, TaxonomyKind.SUBCATEGORY})

# Kinds whose rows point at a parent category
CATEGORY_CHILD_KINDS = frozenset({TaxonomyKind.SUBCATEGORY, TaxonomyKind.BRAND})


def parse_kind(value: str) -> TaxonomyKind:
    """
    Parse a taxonomy kind from an API path segment.

    Raises:
        UnknownTaxonomyKindError: If value is not a known kind
    """
    try:
        return TaxonomyKind(value)
    except ValueError:
        raise UnknownTaxonomyKindError(value, [k.value for k in TaxonomyKind])


class TaxonomyLookup(Protocol):
    def list_entries(self, kind: TaxonomyKind, vendor_id: Optional[str] = None) -> list[MasterEntry]: ...

    def create_entry(
        self,
        kind: TaxonomyKind,
        name: str,
        category_id: Optional[str] = None,
        vendor_id: Optional[str] = None
    ) -> MasterEntry: ...


class TaxonomyService:
    """
    Master-list access backed by Supabase.

    Handles reads of the four master tables and inserts of custom terms.
    """

    def __init__(self):
        self.db = get_supabase_client()

    def list_entries(self, kind: TaxonomyKind, vendor_id: Optional[str] = None) -> list[MasterEntry]:
        """
        Get a master list.

        Args:
            kind: Which master table to read
            vendor_id: Include this vendor's own entries next to the global ones

        Returns:
            Entries ordered by name
        """
        logger.debug("getting_taxonomy_entries", kind=kind.value, vendor_id=vendor_id)

        try:
            query = self.db.table(kind.value).select("*")

            if kind in VENDOR_SCOPED_KINDS:
                if vendor_id:
                    query = query.or_(f"vendor_id.is.null,vendor_id.eq.{vendor_id}")
                else:
                    query = query.is_("vendor_id", "null")

            result = query.order("name").execute()
            entries = [MasterEntry(**row) for row in result.data]

            logger.debug("taxonomy_entries_retrieved", kind=kind.value, count=len(entries))
            return entries

        except Exception as e:
            logger.error(
                "get_taxonomy_entries_failed",
                kind=kind.value,
                error=str(e)
            )
            raise DatabaseError("select", str(e), details={"table": kind.value})

    def create_entry(
        self,
        kind: TaxonomyKind,
        name: str,
        category_id: Optional[str] = None,
        vendor_id: Optional[str] = None
    ) -> MasterEntry:
        """
        Create a custom master entry.

        Args:
            kind: Master table
            name: Display name typed by the vendor
            category_id: Parent category for subcategories and brands
            vendor_id: Owner for vendor-scoped kinds

        Returns:
            Created MasterEntry
        """
        logger.info("creating_taxonomy_entry", kind=kind.value, name=name)

        insert_data: dict = {"name": name}
        if kind in CATEGORY_CHILD_KINDS:
            insert_data["category_id"] = category_id
        if kind in VENDOR_SCOPED_KINDS:
            insert_data["vendor_id"] = vendor_id

        try:
            result = self.db.table(kind.value).insert(insert_data).execute()
            entry = MasterEntry(**result.data[0])
        except Exception as e:
            logger.error(
                "create_taxonomy_entry_failed",
                kind=kind.value,
                name=name,
                error=str(e)
            )
            raise DatabaseError("insert", str(e), details={"table": kind.value})

        logger.info("taxonomy_entry_created", kind=kind.value, entry_id=entry.id, name=entry.name)
        return entry


# Singleton instance for convenience
_taxonomy_service: Optional[TaxonomyService] = None


def get_taxonomy_service() -> TaxonomyService:
    """Get or create TaxonomyService instance."""
    global _taxonomy_service
    if _taxonomy_service is None:
        _taxonomy_service = TaxonomyService()
    return _taxonomy_service


# ===================
# RESOLUTION
# ===================

def filter_candidates(
    entries: Iterable[MasterEntry],
    allowed_ids: Optional[Iterable[str]] = None
) -> list[MasterEntry]:
    """
    Restrict a master list to an allowed subset.

    No subset configured (None) means the full list is offered.
    """
    entries = list(entries)
    if allowed_ids is None:
        return entries
    allowed = set(allowed_ids)
    return [e for e in entries if e.id in allowed]


def resolve(selection: str, candidates: Iterable[MasterEntry]) -> TaxonomyTerm:
    """
    Turn a selection into a term.

    Matches a candidate by id, then by name (case-insensitive, trimmed).
    Anything else becomes a custom term pending creation.

    Raises:
        ValidationError: If the selection is blank
    """
    text = (selection or "").strip()
    if not text:
        raise ValidationError(
            message="Selection cannot be blank",
            code="TAXONOMY_BLANK_SELECTION"
        )

    candidates = list(candidates)
    for entry in candidates:
        if entry.id == text:
            return TaxonomyTerm.from_entry(entry)

    wanted = text.casefold()
    for entry in candidates:
        if entry.name.strip().casefold() == wanted:
            return TaxonomyTerm.from_entry(entry)

    return TaxonomyTerm.custom(text)


class TaxonomyResolver:
    """
    Offers filtered candidates and resolves selections for one wizard.

    Master lists are fetched once per wizard and cached.
    """

    def __init__(
        self,
        lookup: TaxonomyLookup,
        vendor_id: str,
        allowed_ids: Optional[dict[TaxonomyKind, list[str]]] = None
    ):
        self.lookup = lookup
        self.vendor_id = vendor_id
        self.allowed_ids = allowed_ids or {}
        self._master: dict[TaxonomyKind, list[MasterEntry]] = {}

    def master_list(self, kind: TaxonomyKind) -> list[MasterEntry]:
        if kind not in self._master:
            self._master[kind] = self.lookup.list_entries(kind, vendor_id=self.vendor_id)
        return self._master[kind]

    def candidates(
        self,
        kind: TaxonomyKind,
        category: Optional[TaxonomyTerm] = None
    ) -> list[MasterEntry]:
        """
        Entries offered for kind given the current category selection.

        Subcategories need a resolved category. Brands follow the category
        when one is resolved; global brands are always offered.
        """
        entries = filter_candidates(self.master_list(kind), self.allowed_ids.get(kind))

        if kind == TaxonomyKind.SUBCATEGORY:
            if category is None or not category.is_resolved:
                return []
            return [e for e in entries if e.category_id == category.resolved_id]

        if kind == TaxonomyKind.BRAND and category is not None:
            parent = category.resolved_id
            return [e for e in entries if e.category_id is None or e.category_id == parent]

        return entries

    def resolve(
        self,
        kind: TaxonomyKind,
        selection: str,
        category: Optional[TaxonomyTerm] = None
    ) -> TaxonomyTerm:
        term = resolve(selection, self.candidates(kind, category))
        logger.debug(
            "taxonomy_selection_resolved",
            kind=kind.value,
            name=term.name,
            custom=term.is_custom_pending
        )
        return term

    def finalize(
        self,
        kind: TaxonomyKind,
        term: TaxonomyTerm,
        category_id: Optional[str] = None
    ) -> TaxonomyTerm:
        """
        Create the master entry behind a custom term.

        Resolved terms are returned unchanged.
        """
        if term.is_resolved:
            return term

        entry = self.lookup.create_entry(
            kind,
            term.name,
            category_id=category_id,
            vendor_id=self.vendor_id
        )
        if kind in self._master:
            self._master[kind].append(entry)
        return TaxonomyTerm.from_entry(entry)
