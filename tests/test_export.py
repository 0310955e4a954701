"""
tests/test_export.py — Tests for glossary JSON export/import, Excel export and backups.
"""

import os
import tempfile

import openpyxl
import pytest

from dictionary_database import init_dictionary_db, SqliteTermRepository
from models import Category, Reference
from term_repository import InMemoryTermRepository
from term_service import TermService
from utils.backup import backup_db, list_backups
from utils.export import export_glossary_json, import_glossary_json, generate_glossary_excel


@pytest.fixture
def service():
    return TermService(InMemoryTermRepository())


@pytest.fixture
def sqlite_service():
    db_fd, db_path = tempfile.mkstemp(suffix='.db')
    init_dictionary_db(db_path)

    yield TermService(SqliteTermRepository(db_path))

    os.close(db_fd)
    for path in (db_path, db_path + '-wal', db_path + '-shm'):
        try:
            os.unlink(path)
        except (FileNotFoundError, PermissionError):
            pass  # Windows may hold the file


def seed(service):
    basil = service.create_term("Basil", "Ocimum basilicum.", Category.BOTANICAL)
    sage = service.create_term("Sage", "Salvia officinalis.", Category.MEDICAL,
                               "Culpeper", "https://example.org/culpeper")
    tannin = service.create_term("Tannin", "Astringent polyphenol.", Category.CHEMICAL)
    service.add_related_term(basil.id, sage.id)
    service.add_related_term(sage.id, tannin.id)
    return basil, sage, tannin


# ========================================
# JSON Export/Import Tests
# ========================================

class TestJSONExportImport:

    def test_export(self, service):
        seed(service)

        data = export_glossary_json(service)

        assert [t['term'] for t in data['terms']] == ["Basil", "Sage", "Tannin"]
        sage = data['terms'][1]
        assert sage['category'] == 'medical'
        assert sage['reference'] == "Culpeper"
        assert sage['url'] == "https://example.org/culpeper"
        assert sage['related_terms'] == ["Basil", "Tannin"]

    def test_roundtrip_into_empty_store(self, service):
        seed(service)
        exported = export_glossary_json(service)

        target = TermService(InMemoryTermRepository())
        success, message, stats = import_glossary_json(target, exported)

        assert success
        assert stats['added'] == 3
        assert export_glossary_json(target) == exported

        [sage] = target.search_terms("sage")
        assert {t.term for t in target.get_related_terms(sage.id)} == {"Basil", "Tannin"}

    def test_roundtrip_counts_each_link_once(self, service):
        seed(service)
        exported = export_glossary_json(service)

        target = TermService(InMemoryTermRepository())
        success, message, stats = import_glossary_json(target, exported)

        # Basil-Sage and Sage-Tannin, each listed from both sides
        assert success
        assert stats['links'] == 2
        assert "2 links" in message

    def test_merge_updates_existing(self, service):
        seed(service)

        success, _, stats = import_glossary_json(service, {
            'terms': [
                {'term': "Basil", 'definition': "Sweet basil.", 'category': 'horticultural'},
                {'term': "Rosemary", 'definition': "Salvia rosmarinus.", 'category': 'botanical'},
            ]
        })

        assert success
        assert stats['updated'] == 1
        assert stats['added'] == 1
        [basil] = service.search_terms("Basil")
        assert basil.category is Category.HORTICULTURAL
        assert basil.definition.value == "Sweet basil."
        # Merge without a 'reference' key keeps the existing citation
        [sage] = service.search_terms("Sage")
        assert sage.reference == Reference("Culpeper", "https://example.org/culpeper")

    def test_replace(self, service):
        seed(service)

        success, _, stats = import_glossary_json(service, {
            'terms': [{'term': "Rosemary", 'definition': "Salvia rosmarinus.", 'category': 'botanical'}]
        }, mode='replace')

        assert success
        assert [t.term for t in service.list_terms()] == ["Rosemary"]

    def test_replace_backs_up_sqlite(self, sqlite_service, tmp_path):
        seed(sqlite_service)

        success, _, _ = import_glossary_json(
            sqlite_service, {'terms': []}, mode='replace', backup_dir=str(tmp_path)
        )

        assert success
        assert sqlite_service.list_terms() == []
        backups = list_backups(str(tmp_path))
        assert len(backups) == 1
        assert backups[0]['reason'] == 'pre_import'

    def test_invalid_rows_are_counted(self, service):
        success, message, stats = import_glossary_json(service, {
            'terms': [
                "not an object",
                {'definition': "No term text."},
                {'term': "Bad", 'definition': "x", 'category': 'culinary'},
                {'term': "Good", 'definition': "Fine.", 'category': 'general',
                 'related_terms': ["Missing"]},
            ]
        })

        assert success
        assert stats['added'] == 1
        assert stats['errors'] == 4
        assert "4 errors" in message

    def test_missing_terms_key(self, service):
        success, message, stats = import_glossary_json(service, {})
        assert not success
        assert "terms" in message

    def test_unknown_mode(self, service):
        success, _, _ = import_glossary_json(service, {'terms': []}, mode='append')
        assert not success


# ========================================
# Excel Export Tests
# ========================================

class TestExcelExport:

    def test_empty_glossary(self, service):
        assert generate_glossary_excel(service) == (None, None)

    def test_one_sheet_per_category(self, service):
        seed(service)

        buffer, filename = generate_glossary_excel(service)
        wb = openpyxl.load_workbook(buffer)

        assert filename == "glossary.xlsx"
        assert wb.sheetnames == ["Medical", "Botanical", "Chemical"]

        ws = wb["Medical"]
        assert ws.cell(row=1, column=1).value == "Term"
        assert ws.cell(row=2, column=1).value == "Sage"
        assert ws.cell(row=2, column=3).value == "Culpeper"
        assert ws.cell(row=2, column=5).value == "Basil, Tannin"
        assert ws.freeze_panes == 'A2'


# ========================================
# Backup Tests
# ========================================

class TestBackup:

    def test_backup_missing_database(self, tmp_path):
        assert backup_db(str(tmp_path / 'nope.db'), backup_dir=str(tmp_path)) is None

    def test_backup_copies_data(self, sqlite_service, tmp_path):
        seed(sqlite_service)

        filename = backup_db(sqlite_service.repository.db_path, 'manual', str(tmp_path))

        assert filename.startswith('dictionary_')
        copy = SqliteTermRepository(str(tmp_path / filename))
        assert copy.count() == 3
