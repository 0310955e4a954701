"""
tests/test_models.py — Tests for the dictionary value objects and Term entity.

Tests cover:
- Category parsing
- TermId / Definition / Reference validation and equality
- Term construction bounds and mutations
- Serialization snapshot
"""

from datetime import datetime, timezone

import pytest

from models import (
    Category,
    Definition,
    Reference,
    Term,
    TermId,
    ValidationError,
)


PAST = datetime(2020, 1, 1, tzinfo=timezone.utc)


def make_term(term_id=1, text="Decoction", **kwargs):
    return Term(
        TermId(term_id) if term_id is not None else None,
        text,
        Definition("A herbal preparation made by boiling plant material in water."),
        kwargs.pop('category', Category.BOTANICAL),
        created_at=PAST,
        updated_at=PAST,
        **kwargs
    )


# ========================================
# Value Object Tests
# ========================================

class TestCategory:

    def test_values(self):
        assert [c.value for c in Category] == [
            'medical', 'botanical', 'horticultural', 'farming', 'chemical', 'general'
        ]

    def test_lookup_by_value(self):
        assert Category('botanical') is Category.BOTANICAL

    def test_lookup_ignores_case(self):
        assert Category('MEDICAL') is Category.MEDICAL
        assert Category(' Farming ') is Category.FARMING

    def test_invalid_category(self):
        with pytest.raises(ValidationError, match="Category must be one of"):
            Category('culinary')

    def test_non_string_category(self):
        with pytest.raises(ValidationError):
            Category(3)

    def test_str(self):
        assert str(Category.CHEMICAL) == 'chemical'


class TestTermId:

    def test_positive(self):
        assert TermId(7).value == 7

    @pytest.mark.parametrize('value', [0, -1])
    def test_non_positive(self, value):
        with pytest.raises(ValidationError):
            TermId(value)

    @pytest.mark.parametrize('value', [1.5, '3', None, True])
    def test_not_an_integer(self, value):
        with pytest.raises(ValidationError):
            TermId(value)

    def test_equality_and_hash(self):
        assert TermId(3) == TermId(3)
        assert TermId(3) != TermId(4)
        assert len({TermId(3), TermId(3)}) == 1

    def test_immutable(self):
        tid = TermId(3)
        with pytest.raises(AttributeError):
            tid.value = 4


class TestDefinition:

    def test_max_length_accepted(self):
        assert len(Definition("x" * 5000).value) == 5000

    def test_too_long(self):
        with pytest.raises(ValidationError, match="too long"):
            Definition("x" * 5001)

    @pytest.mark.parametrize('value', ["", "   ", None])
    def test_empty(self, value):
        with pytest.raises(ValidationError):
            Definition(value)


class TestReference:

    def test_with_url(self):
        ref = Reference("British Herbal Pharmacopoeia", "https://example.org/bhp")
        assert str(ref) == "British Herbal Pharmacopoeia (https://example.org/bhp)"

    def test_without_url(self):
        assert str(Reference("Culpeper")) == "Culpeper"

    def test_equality_includes_url(self):
        assert Reference("Culpeper") == Reference("Culpeper")
        assert Reference("Culpeper", "https://a") != Reference("Culpeper", "https://b")

    def test_empty_source(self):
        with pytest.raises(ValidationError):
            Reference("  ")

    def test_source_too_long(self):
        Reference("s" * 255)
        with pytest.raises(ValidationError):
            Reference("s" * 256)

    def test_url_too_long(self):
        with pytest.raises(ValidationError, match="URL"):
            Reference("Culpeper", "u" * 256)


# ========================================
# Term Entity Tests
# ========================================

class TestTermConstruction:

    def test_fields(self):
        term = make_term(reference=Reference("Culpeper"))
        assert term.id == TermId(1)
        assert term.term == "Decoction"
        assert term.category is Category.BOTANICAL
        assert term.reference == Reference("Culpeper")
        assert term.related_term_ids == set()

    def test_term_length_bounds(self):
        assert make_term(text="t" * 100).term == "t" * 100
        with pytest.raises(ValidationError, match="too long"):
            make_term(text="t" * 101)

    @pytest.mark.parametrize('text', ["", "   ", "\t\n"])
    def test_empty_term(self, text):
        with pytest.raises(ValidationError, match="empty"):
            make_term(text=text)

    def test_draft_has_no_id(self):
        term = make_term(term_id=None)
        assert not term.is_persisted
        assert term.with_id(TermId(9)).is_persisted

    def test_related_ids_deduplicated(self):
        term = make_term(related_term_ids=[TermId(2), TermId(2), TermId(3)])
        assert term.related_term_ids == {TermId(2), TermId(3)}

    def test_self_relation_rejected(self):
        with pytest.raises(ValidationError, match="itself"):
            make_term(related_term_ids=[TermId(1)])

    def test_timestamps_default_to_now(self):
        term = Term(None, "Tincture", Definition("An alcoholic extract."), Category.MEDICAL)
        assert term.created_at is not None
        assert term.updated_at == term.created_at

    def test_category_must_be_category(self):
        with pytest.raises(ValidationError):
            Term(None, "Tincture", Definition("An alcoholic extract."), 'medical')


class TestTermMutations:

    def test_update_definition(self):
        term = make_term()
        term.update_definition(Definition("Simmered extract."))
        assert term.definition.value == "Simmered extract."
        assert term.updated_at > PAST
        assert term.created_at == PAST

    def test_update_category(self):
        term = make_term()
        term.update_category(Category.MEDICAL)
        assert term.category is Category.MEDICAL
        assert term.updated_at > PAST

    def test_update_reference_and_clear(self):
        term = make_term()
        term.update_reference(Reference("Grieve"))
        assert term.reference == Reference("Grieve")
        term.update_reference(None)
        assert term.reference is None

    def test_add_related_term_idempotent(self):
        term = make_term()
        term.add_related_term(TermId(2))
        first_update = term.updated_at
        term.add_related_term(TermId(2))
        assert term.related_term_ids == {TermId(2)}
        assert term.updated_at == first_update

    def test_add_self_rejected(self):
        term = make_term()
        with pytest.raises(ValidationError):
            term.add_related_term(TermId(1))

    def test_remove_related_term(self):
        term = make_term(related_term_ids=[TermId(2)])
        term.remove_related_term(TermId(2))
        assert term.related_term_ids == set()
        assert term.updated_at > PAST

    def test_remove_absent_keeps_timestamp(self):
        term = make_term()
        term.remove_related_term(TermId(5))
        assert term.updated_at == PAST


class TestSerialize:

    def test_snapshot(self):
        term = make_term(
            reference=Reference("Culpeper", "https://example.org"),
            related_term_ids=[TermId(4), TermId(2)],
        )
        data = term.serialize()

        assert data == {
            'id': 1,
            'term': "Decoction",
            'definition': "A herbal preparation made by boiling plant material in water.",
            'category': 'botanical',
            'reference': {'source': "Culpeper", 'url': "https://example.org"},
            'related_term_ids': [2, 4],
            'created_at': PAST.isoformat(),
            'updated_at': PAST.isoformat(),
        }

    def test_snapshot_without_reference(self):
        data = make_term().serialize()
        assert data['reference'] is None
