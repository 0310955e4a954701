"""
term_service.py — Application service for the herbal dictionary.

TermService is the API consumed by the admin route handlers. It converts
primitive input into value objects, enforces term-text uniqueness, keeps
"see also" links symmetric and delegates storage to a TermRepository.

Errors are raised, never returned:
- ValidationError (models.py) for malformed values
- DuplicateTermError when the term text is already used
- NotFoundError when an id does not resolve
Storage errors from the repository propagate unchanged.
"""

import logging
from dataclasses import dataclass
from typing import Optional, List, Dict, Any

from models import (
    DictionaryError,
    ValidationError,
    Term,
    TermId,
    Definition,
    Category,
    Reference,
    to_term_id,
    to_category,
)
from term_repository import TermRepository

logger = logging.getLogger(__name__)

# Marks "argument not given", since None is a meaningful reference value
UNSET = object()


class DuplicateTermError(DictionaryError):
    """A term with the same text already exists."""

    def __init__(self, term: str, category: Category):
        self.term = term
        self.category = category
        super().__init__(f"Term '{term}' already exists in the {category.value} dictionary")


class NotFoundError(DictionaryError, LookupError):
    """No term with the given id."""

    def __init__(self, term_id, label: str = 'Term'):
        self.term_id = term_id
        super().__init__(f"{label} with ID {term_id} not found")


@dataclass(frozen=True)
class CreateTermCommand:
    """Input for creating a dictionary term, as built by the admin form handler."""
    term: str
    definition: str
    category: Category
    reference: Optional[str] = None
    reference_url: Optional[str] = None


def _build_reference(reference: Optional[str], url: Optional[str]) -> Optional[Reference]:
    if not reference:
        return None
    return Reference(reference, url or None)


class TermService:
    """Creation, update, deletion, search and cross-referencing of terms."""

    def __init__(self, repository: TermRepository):
        self.repository = repository

    def _require(self, term_id, label: str = 'Term') -> Term:
        tid = to_term_id(term_id)
        term = self.repository.find_by_id(tid)
        if term is None:
            raise NotFoundError(tid.value, label)
        return term

    # ========================================
    # CRUD
    # ========================================

    def create_term(
        self,
        term: str,
        definition: str,
        category,
        reference: Optional[str] = None,
        url: Optional[str] = None
    ) -> Term:
        """
        Create and persist a new term.

        Args:
            term: Display text, e.g. "Decoction"
            definition: Definition text (at most 5000 characters)
            category: Category member or its string value
            reference: Citation source; empty or None means no citation
            url: Optional URL for the citation

        Returns:
            The stored Term, carrying its repository-assigned id

        Raises:
            DuplicateTermError: if any term already uses this exact text
            ValidationError: if a field is malformed
        """
        existing = self.repository.find_by_exact_term(term)
        if existing:
            logger.warning(
                "Rejected duplicate term %r (exists as %s)", term, existing[0].category.value
            )
            raise DuplicateTermError(term, existing[0].category)

        draft = Term(
            id=None,
            term=term,
            definition=Definition(definition),
            category=to_category(category),
            reference=_build_reference(reference, url),
        )

        saved = self.repository.save(draft)
        logger.info("Created term %r (ID: %s, %s)", saved.term, saved.id, saved.category.value)
        return saved

    def create_from_command(self, command: CreateTermCommand) -> Term:
        return self.create_term(
            command.term,
            command.definition,
            command.category,
            command.reference,
            command.reference_url,
        )

    def update_term(
        self,
        term_id,
        definition: Optional[str] = None,
        category=None,
        reference=UNSET,
        url: Optional[str] = None
    ) -> Term:
        """
        Update the given fields of an existing term.

        Omitted (or None) definition/category are left unchanged.
        For the citation: leave `reference` out to keep it, pass None or ""
        to clear it, or pass a source string (plus optional `url`) to replace it.
        """
        term = self._require(term_id)

        if definition is not None:
            term.update_definition(Definition(definition))

        if category is not None:
            term.update_category(to_category(category))

        if reference is not UNSET:
            term.update_reference(_build_reference(reference, url))

        saved = self.repository.save(term)
        logger.info("Updated term %r (ID: %s)", saved.term, saved.id)
        return saved

    def delete_term(self, term_id) -> bool:
        """Delete a term with all its relationships. Returns False if nothing was removed."""
        removed = self.repository.delete(to_term_id(term_id))
        if removed:
            logger.info("Deleted term ID %s", term_id)
        return removed

    def get_term(self, term_id) -> Optional[Term]:
        return self.repository.find_by_id(to_term_id(term_id))

    def list_terms(self) -> List[Term]:
        return self.repository.find_all()

    # ========================================
    # Relationships
    # ========================================

    def add_related_term(self, term_id, related_term_id, relationship_type: Optional[str] = None):
        """
        Link two existing terms in both directions.

        Raises:
            NotFoundError: if either term does not exist
            ValidationError: if both ids are the same, or relationship_type
                is longer than 50 characters
        """
        term = self._require(term_id)
        related = self._require(related_term_id, 'Related term')

        if term.id == related.id:
            raise ValidationError("A term cannot be related to itself")

        self.repository.link(term.id, related.id, relationship_type)
        logger.info("Linked terms %s <-> %s", term.id, related.id)

    def remove_related_term(self, term_id, related_term_id):
        """Unlink two terms in both directions. Unknown ids are ignored."""
        self.repository.unlink(to_term_id(term_id), to_term_id(related_term_id))
        logger.info("Unlinked terms %s <-> %s", term_id, related_term_id)

    def get_related_terms(self, term_id) -> List[Term]:
        return self.repository.find_related_terms(to_term_id(term_id))

    # ========================================
    # Search
    # ========================================

    def search_terms(self, text: str, category=None) -> List[Term]:
        """Case-insensitive substring search, optionally restricted to one category."""
        results = self.repository.search_by_term(text)

        if category is not None:
            wanted = to_category(category)
            results = [t for t in results if t.category == wanted]

        return results

    def get_terms_by_category(self, category) -> List[Term]:
        return self.repository.find_by_category(to_category(category))

    # ========================================
    # Plant links
    # ========================================

    def link_term_to_plant(self, term_id, plant_id: int, context: Optional[str] = None):
        term = self._require(term_id)
        if isinstance(plant_id, bool) or not isinstance(plant_id, int) or plant_id <= 0:
            raise ValidationError("Plant id must be a positive integer")
        self.repository.link_plant(term.id, plant_id, context or None)
        logger.info("Linked term %s to plant %s", term.id, plant_id)

    def unlink_term_from_plant(self, term_id, plant_id: int) -> bool:
        return self.repository.unlink_plant(to_term_id(term_id), plant_id)

    def get_plant_links(self, term_id) -> List[Dict[str, Any]]:
        return self.repository.find_plant_links(to_term_id(term_id))
