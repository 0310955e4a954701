"""
term_repository.py — Persistence contract for dictionary terms.

TermRepository decouples TermService from the storage technology.
Two adapters exist:
- InMemoryTermRepository (below): dict-backed, for tests and scripts
- SqliteTermRepository (dictionary_database.py): the on-disk store

Relationship rows are directed edges (term_id -> related_term_id).
link()/unlink() write both directions at once; add_relationship() and
remove_relationship() touch a single direction.
"""

import copy
import sqlite3
from abc import ABC, abstractmethod
from typing import Optional, List, Dict, Any, Tuple

from models import Term, TermId, Category, normalize_term, to_relationship_type


class TermRepository(ABC):
    """Repository interface for Term operations."""

    @abstractmethod
    def find_by_id(self, term_id: TermId) -> Optional[Term]:
        """Get a term by ID, or None."""
        pass

    @abstractmethod
    def find_by_exact_term(self, text: str) -> List[Term]:
        """Terms whose text equals `text` exactly (case-sensitive)."""
        pass

    @abstractmethod
    def search_by_term(self, partial: str) -> List[Term]:
        """Terms whose text contains `partial`, ignoring case."""
        pass

    @abstractmethod
    def find_by_category(self, category: Category) -> List[Term]:
        pass

    @abstractmethod
    def find_related_terms(self, term_id: TermId) -> List[Term]:
        """Full Term entities for every outgoing edge of `term_id`."""
        pass

    @abstractmethod
    def find_all(self) -> List[Term]:
        pass

    @abstractmethod
    def save(self, term: Term) -> Term:
        """
        Insert a draft (id None, or an id not stored yet) or update an
        existing term, then synchronise its outgoing relationship rows.

        Returns the stored term, carrying its assigned id.
        """
        pass

    @abstractmethod
    def delete(self, term_id: TermId) -> bool:
        """Delete a term and every edge touching it. True if a row was removed."""
        pass

    @abstractmethod
    def add_relationship(self, term_id: TermId, related_term_id: TermId,
                         relationship_type: Optional[str] = None):
        """
        Insert the directed edge unless it already exists.

        Both ids must name stored terms (sqlite3.IntegrityError otherwise);
        relationship_type is checked by models.to_relationship_type.
        """
        pass

    @abstractmethod
    def remove_relationship(self, term_id: TermId, related_term_id: TermId):
        """Delete the directed edge if present."""
        pass

    @abstractmethod
    def link(self, term_id: TermId, related_term_id: TermId,
             relationship_type: Optional[str] = None):
        """Insert both directed edges atomically."""
        pass

    @abstractmethod
    def unlink(self, term_id: TermId, related_term_id: TermId):
        """Delete both directed edges atomically."""
        pass

    @abstractmethod
    def link_plant(self, term_id: TermId, plant_id: int,
                   context: Optional[str] = None):
        """Attach a term to a plant record (idempotent per term/plant pair)."""
        pass

    @abstractmethod
    def unlink_plant(self, term_id: TermId, plant_id: int) -> bool:
        pass

    @abstractmethod
    def find_plant_links(self, term_id: TermId) -> List[Dict[str, Any]]:
        """List of {'plant_id', 'context'} dicts for a term, ordered by plant id."""
        pass

    @abstractmethod
    def count(self) -> int:
        pass


class InMemoryTermRepository(TermRepository):
    """
    Dict-backed repository.

    Stored terms are copies, so mutating a returned Term has no effect
    until it is saved again, just like a database row. Edges and plant
    links to unknown term ids raise sqlite3.IntegrityError, as the
    SQLite store's foreign keys do.
    """

    def __init__(self):
        self._terms: Dict[int, Term] = {}
        self._edges: Dict[Tuple[int, int], Optional[str]] = {}
        self._plant_links: Dict[Tuple[int, int], Optional[str]] = {}
        self._next_id = 1

    def _load(self, term_id: int) -> Term:
        stored = copy.deepcopy(self._terms[term_id])
        stored.related_term_ids = {
            TermId(b) for (a, b) in self._edges if a == term_id
        }
        return stored

    def _sorted(self, ids) -> List[Term]:
        terms = [self._load(i) for i in ids]
        return sorted(terms, key=lambda t: (t.term.lower(), t.id.value))

    def _require(self, *term_ids: int):
        missing = [i for i in term_ids if i not in self._terms]
        if missing:
            raise sqlite3.IntegrityError(
                f"FOREIGN KEY constraint failed: unknown term id(s) {missing}"
            )

    def find_by_id(self, term_id: TermId) -> Optional[Term]:
        if term_id.value not in self._terms:
            return None
        return self._load(term_id.value)

    def find_by_exact_term(self, text: str) -> List[Term]:
        return self._sorted(i for i, t in self._terms.items() if t.term == text)

    def search_by_term(self, partial: str) -> List[Term]:
        needle = normalize_term(partial)
        return self._sorted(
            i for i, t in self._terms.items() if needle in normalize_term(t.term)
        )

    def find_by_category(self, category: Category) -> List[Term]:
        return self._sorted(i for i, t in self._terms.items() if t.category == category)

    def find_related_terms(self, term_id: TermId) -> List[Term]:
        return self._sorted(
            b for (a, b) in self._edges if a == term_id.value and b in self._terms
        )

    def find_all(self) -> List[Term]:
        return self._sorted(self._terms)

    def save(self, term: Term) -> Term:
        wanted = {r.value for r in term.related_term_ids}
        self._require(*sorted(wanted))

        if term.id is None:
            term = term.with_id(TermId(self._next_id))
        self._next_id = max(self._next_id, term.id.value + 1)

        stored = copy.deepcopy(term)
        stored.related_term_ids = set()
        self._terms[term.id.value] = stored

        for (a, b) in list(self._edges):
            if a == term.id.value and b not in wanted:
                del self._edges[(a, b)]
        for b in wanted:
            self._edges.setdefault((term.id.value, b), None)

        return self._load(term.id.value)

    def delete(self, term_id: TermId) -> bool:
        tid = term_id.value
        for key in [k for k in self._edges if tid in k]:
            del self._edges[key]
        for key in [k for k in self._plant_links if k[0] == tid]:
            del self._plant_links[key]
        return self._terms.pop(tid, None) is not None

    def add_relationship(self, term_id, related_term_id, relationship_type=None):
        relationship_type = to_relationship_type(relationship_type)
        self._require(term_id.value, related_term_id.value)
        self._edges.setdefault((term_id.value, related_term_id.value), relationship_type)

    def remove_relationship(self, term_id, related_term_id):
        self._edges.pop((term_id.value, related_term_id.value), None)

    def link(self, term_id, related_term_id, relationship_type=None):
        relationship_type = to_relationship_type(relationship_type)
        self._require(term_id.value, related_term_id.value)
        self._edges.setdefault((term_id.value, related_term_id.value), relationship_type)
        self._edges.setdefault((related_term_id.value, term_id.value), relationship_type)

    def unlink(self, term_id, related_term_id):
        self.remove_relationship(term_id, related_term_id)
        self.remove_relationship(related_term_id, term_id)

    def link_plant(self, term_id, plant_id, context=None):
        self._require(term_id.value)
        self._plant_links[(term_id.value, plant_id)] = context

    def unlink_plant(self, term_id, plant_id):
        key = (term_id.value, plant_id)
        if key not in self._plant_links:
            return False
        del self._plant_links[key]
        return True

    def find_plant_links(self, term_id):
        return [
            {'plant_id': p, 'context': ctx}
            for (t, p), ctx in sorted(self._plant_links.items())
            if t == term_id.value
        ]

    def count(self) -> int:
        return len(self._terms)
