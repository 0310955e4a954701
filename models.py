"""
models.py — Value objects and the Term aggregate for the herbal dictionary.

Value objects validate on construction and never change afterwards.
Term owns its related-term ids; keeping links symmetric across two terms
is the job of term_service.TermService.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Set, Dict, Any


MAX_TERM_LENGTH = 100
MAX_DEFINITION_LENGTH = 5000
MAX_REFERENCE_LENGTH = 255
MAX_RELATIONSHIP_TYPE_LENGTH = 50


class DictionaryError(Exception):
    """Base class for dictionary errors."""
    pass


class ValidationError(DictionaryError, ValueError):
    """A field value is malformed (empty, too long, wrong type...)."""
    pass


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# ========================================
# Value Objects
# ========================================

class Category(str, Enum):
    """Taxonomy bucket a term belongs to."""
    MEDICAL = 'medical'
    BOTANICAL = 'botanical'
    HORTICULTURAL = 'horticultural'
    FARMING = 'farming'
    CHEMICAL = 'chemical'
    GENERAL = 'general'

    @classmethod
    def _missing_(cls, value):
        # Accept "Botanical", "BOTANICAL", " botanical "
        if isinstance(value, str):
            wanted = value.strip().lower()
            for member in cls:
                if member.value == wanted:
                    return member
        valid = ', '.join(m.value for m in cls)
        raise ValidationError(f"Category must be one of: {valid} (got {value!r})")

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class TermId:
    """Positive integer identifier assigned by persistence."""
    value: int

    def __post_init__(self):
        if isinstance(self.value, bool) or not isinstance(self.value, int):
            raise ValidationError(f"TermId must be an integer (got {self.value!r})")
        if self.value <= 0:
            raise ValidationError("TermId must be a positive integer")

    def __str__(self) -> str:
        return str(self.value)


@dataclass(frozen=True)
class Definition:
    value: str

    def __post_init__(self):
        if not isinstance(self.value, str) or not self.value.strip():
            raise ValidationError("Definition cannot be empty")
        if len(self.value) > MAX_DEFINITION_LENGTH:
            raise ValidationError(
                f"Definition is too long (maximum {MAX_DEFINITION_LENGTH} characters)"
            )

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class Reference:
    """Citation for a term: a source (book, monograph...) and an optional URL."""
    source: str
    url: Optional[str] = None

    def __post_init__(self):
        if not isinstance(self.source, str) or not self.source.strip():
            raise ValidationError("Reference source cannot be empty")
        if len(self.source) > MAX_REFERENCE_LENGTH:
            raise ValidationError(
                f"Reference source is too long (maximum {MAX_REFERENCE_LENGTH} characters)"
            )
        if self.url is not None:
            if not isinstance(self.url, str):
                raise ValidationError("Reference URL must be a string")
            if len(self.url) > MAX_REFERENCE_LENGTH:
                raise ValidationError(
                    f"URL is too long (maximum {MAX_REFERENCE_LENGTH} characters)"
                )

    def __str__(self) -> str:
        return f"{self.source} ({self.url})" if self.url else self.source


# ========================================
# Term Aggregate
# ========================================

@dataclass
class Term:
    """
    A glossary entry: display text, definition, category, optional citation
    and "see also" links to other terms.

    A term with id None is a draft that has not been saved yet; the
    repository assigns the id on first save.
    """
    id: Optional[TermId]
    term: str
    definition: Definition
    category: Category
    reference: Optional[Reference] = None
    related_term_ids: Set[TermId] = field(default_factory=set)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        if self.id is not None and not isinstance(self.id, TermId):
            raise ValidationError("Term id must be a TermId or None")
        if not isinstance(self.term, str) or not self.term.strip():
            raise ValidationError("Term cannot be empty")
        if len(self.term) > MAX_TERM_LENGTH:
            raise ValidationError(f"Term is too long (maximum {MAX_TERM_LENGTH} characters)")
        if not isinstance(self.definition, Definition):
            raise ValidationError("Term definition must be a Definition")
        if not isinstance(self.category, Category):
            raise ValidationError("Term category must be a Category")
        if self.reference is not None and not isinstance(self.reference, Reference):
            raise ValidationError("Term reference must be a Reference or None")

        related = set(self.related_term_ids or ())
        if any(not isinstance(r, TermId) for r in related):
            raise ValidationError("Related term ids must be TermId values")
        if self.id is not None and self.id in related:
            raise ValidationError("A term cannot be related to itself")
        self.related_term_ids = related

        now = utc_now()
        if self.created_at is None:
            self.created_at = now
        if self.updated_at is None:
            self.updated_at = self.created_at

    @property
    def is_persisted(self) -> bool:
        return self.id is not None

    def _touch(self):
        self.updated_at = utc_now()

    def update_definition(self, definition: Definition):
        if not isinstance(definition, Definition):
            raise ValidationError("Term definition must be a Definition")
        self.definition = definition
        self._touch()

    def update_category(self, category: Category):
        if not isinstance(category, Category):
            raise ValidationError("Term category must be a Category")
        self.category = category
        self._touch()

    def update_reference(self, reference: Optional[Reference]):
        """Replace the citation; None clears it."""
        if reference is not None and not isinstance(reference, Reference):
            raise ValidationError("Term reference must be a Reference or None")
        self.reference = reference
        self._touch()

    def add_related_term(self, term_id: TermId):
        """Add a "see also" link. Adding an existing link is a no-op."""
        if self.id is not None and term_id == self.id:
            raise ValidationError("A term cannot be related to itself")
        if term_id in self.related_term_ids:
            return
        self.related_term_ids.add(term_id)
        self._touch()

    def remove_related_term(self, term_id: TermId):
        """Drop a "see also" link. Removing an absent link is a no-op."""
        if term_id not in self.related_term_ids:
            return
        self.related_term_ids.discard(term_id)
        self._touch()

    def with_id(self, term_id: TermId) -> 'Term':
        """Return a copy of this term carrying the id assigned on save."""
        return Term(
            id=term_id,
            term=self.term,
            definition=self.definition,
            category=self.category,
            reference=self.reference,
            related_term_ids=set(self.related_term_ids),
            created_at=self.created_at,
            updated_at=self.updated_at,
        )

    def serialize(self) -> Dict[str, Any]:
        """Plain snapshot of the term for transport or storage."""
        return {
            'id': self.id.value if self.id is not None else None,
            'term': self.term,
            'definition': self.definition.value,
            'category': self.category.value,
            'reference': {
                'source': self.reference.source,
                'url': self.reference.url,
            } if self.reference else None,
            'related_term_ids': sorted(r.value for r in self.related_term_ids),
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }


def to_term_id(value) -> TermId:
    """Coerce an int (or an existing TermId) to a TermId."""
    if isinstance(value, TermId):
        return value
    return TermId(value)


def to_category(value) -> Category:
    if isinstance(value, Category):
        return value
    return Category(value)


def normalize_term(text: str) -> str:
    """Search key for term text: Unicode-aware case folding."""
    return text.casefold()


def to_relationship_type(value) -> Optional[str]:
    """Validate an edge label; None or blank means unlabelled."""
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError("Relationship type must be a string")
    value = value.strip()
    if not value:
        return None
    if len(value) > MAX_RELATIONSHIP_TYPE_LENGTH:
        raise ValidationError(
            f"Relationship type is too long (maximum {MAX_RELATIONSHIP_TYPE_LENGTH} characters)"
        )
    return value
