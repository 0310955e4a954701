"""
utils/export.py — Glossary export and import.

- JSON export/import of all terms; relationships are written by term
  text so a file can be loaded into an empty database.
- Excel export using openpyxl: one sheet per category, styled header row.
  Columns: Term, Definition, Reference, URL, Related terms.
"""

import logging
from io import BytesIO
from typing import Optional, Dict, Any, List, Tuple

from openpyxl.styles import Font, PatternFill, Alignment, Border, Side

from models import Category, DictionaryError
from term_service import TermService, UNSET
from utils.backup import backup_db

logger = logging.getLogger(__name__)


# Category colors for sheet tabs and header styling
CATEGORY_COLORS = {
    Category.MEDICAL: 'D32F2F',
    Category.BOTANICAL: '4CAF50',
    Category.HORTICULTURAL: '00897B',
    Category.FARMING: 'FFB300',
    Category.CHEMICAL: '7B1FA2',
    Category.GENERAL: '546E7A',
}

HEADER_FONT = Font(name='Calibri', bold=True, color='FFFFFF', size=11)
HEADER_ALIGNMENT = Alignment(horizontal='center', vertical='center', wrap_text=True)
HEADER_BORDER = Border(
    bottom=Side(style='thin', color='0D47A1'),
    right=Side(style='thin', color='E2E8F0'),
)
CELL_BORDER = Border(
    bottom=Side(style='thin', color='E2E8F0'),
    right=Side(style='thin', color='E2E8F0'),
)
WRAP = Alignment(vertical='top', wrap_text=True)

COLUMNS = [('Term', 24), ('Definition', 70), ('Reference', 30), ('URL', 30), ('Related terms', 30)]


# ========================================
# JSON Export / Import
# ========================================

def export_glossary_json(service: TermService) -> Dict[str, Any]:
    """
    Export the entire glossary as JSON-ready data.

    Returns:
        Dict with 'terms' key containing list of term objects
    """
    terms = service.list_terms()
    text_by_id = {t.id: t.term for t in terms}

    result = []
    for term in terms:
        result.append({
            'term': term.term,
            'definition': term.definition.value,
            'category': term.category.value,
            'reference': term.reference.source if term.reference else None,
            'url': term.reference.url if term.reference else None,
            'related_terms': sorted(
                text_by_id[r] for r in term.related_term_ids if r in text_by_id
            ),
        })

    return {'terms': result}


def import_glossary_json(
    service: TermService,
    data: Dict[str, Any],
    mode: str = 'merge',
    backup_dir: Optional[str] = None
) -> Tuple[bool, str, Dict[str, int]]:
    """
    Import terms from JSON data.

    Args:
        service: TermService to write through
        data: JSON data with 'terms' key
        mode: 'merge' to add/update, 'replace' to clear and replace all
        backup_dir: Where the pre-import backup goes in 'replace' mode

    Returns:
        Tuple of (success, message, stats)
        stats contains: added, updated, links, errors
    """
    if not data or 'terms' not in data:
        return False, "Invalid JSON format: missing 'terms' key.", {}

    terms_data = data['terms']
    if not isinstance(terms_data, list):
        return False, "Invalid JSON format: 'terms' must be a list.", {}

    if mode not in ('merge', 'replace'):
        return False, f"Unknown import mode: {mode}", {}

    stats = {'added': 0, 'updated': 0, 'links': 0, 'errors': 0}
    errors: List[str] = []

    if mode == 'replace':
        # Only the SQLite repository has a file worth backing up
        db_path = getattr(service.repository, 'db_path', None)
        if db_path:
            backup_db(db_path, 'pre_import', backup_dir)
        for term in service.list_terms():
            service.delete_term(term.id)

    imported = {}
    for entry in terms_data:
        if not isinstance(entry, dict):
            stats['errors'] += 1
            errors.append("Invalid entry (not an object)")
            continue

        text = entry.get('term')
        if not isinstance(text, str) or not text.strip():
            stats['errors'] += 1
            errors.append("Entry without term text")
            continue

        try:
            existing = service.repository.find_by_exact_term(text)
            if existing:
                term = service.update_term(
                    existing[0].id,
                    definition=entry.get('definition'),
                    category=entry.get('category'),
                    reference=entry.get('reference', UNSET),
                    url=entry.get('url'),
                )
                stats['updated'] += 1
            else:
                term = service.create_term(
                    text,
                    entry.get('definition'),
                    entry.get('category'),
                    entry.get('reference'),
                    entry.get('url'),
                )
                stats['added'] += 1
        except DictionaryError as e:
            stats['errors'] += 1
            errors.append(f"{text}: {e}")
            continue

        imported[text] = (term, entry.get('related_terms') or [])

    # Relationships last, once every term has an id
    linked = set()
    for text, (term, related_texts) in imported.items():
        for related_text in related_texts:
            if related_text == text:
                continue
            target = imported.get(related_text, (None,))[0]
            if target is None:
                matches = service.repository.find_by_exact_term(related_text)
                target = matches[0] if matches else None
            if target is None:
                stats['errors'] += 1
                errors.append(f"{text}: unknown related term '{related_text}'")
                continue
            pair = frozenset((term.id, target.id))
            if pair in linked:
                continue
            service.add_related_term(term.id, target.id)
            linked.add(pair)
            stats['links'] += 1

    message = f"Import finished: {stats['added']} added, {stats['updated']} updated, {stats['links']} links"
    if stats['errors'] > 0:
        message += f", {stats['errors']} errors"
        for err in errors:
            logger.warning("Glossary import: %s", err)

    logger.info(message)
    return True, message, stats


# ========================================
# Excel Export
# ========================================

def _build_sheet(ws, category: Category, terms, text_by_id):
    """Populate a worksheet with one category's terms and a styled header."""
    header_fill = PatternFill(
        start_color=CATEGORY_COLORS[category], end_color=CATEGORY_COLORS[category], fill_type='solid'
    )

    for col_idx, (col_name, _) in enumerate(COLUMNS, 1):
        cell = ws.cell(row=1, column=col_idx, value=col_name)
        cell.font = HEADER_FONT
        cell.fill = header_fill
        cell.alignment = HEADER_ALIGNMENT
        cell.border = HEADER_BORDER

    for row_idx, term in enumerate(terms, 2):
        related = ', '.join(sorted(text_by_id[r] for r in term.related_term_ids if r in text_by_id))
        values = [
            term.term,
            term.definition.value,
            term.reference.source if term.reference else '',
            (term.reference.url or '') if term.reference else '',
            related,
        ]
        for col_idx, value in enumerate(values, 1):
            cell = ws.cell(row=row_idx, column=col_idx, value=value)
            cell.border = CELL_BORDER
            cell.alignment = WRAP

    # Column widths
    for col_idx, (_, width) in enumerate(COLUMNS):
        ws.column_dimensions[chr(ord('A') + col_idx)].width = width

    # Freeze header row
    ws.freeze_panes = 'A2'
    ws.sheet_properties.tabColor = CATEGORY_COLORS[category]


def generate_glossary_excel(service: TermService):
    """Generate an Excel workbook with one sheet per non-empty category.

    Returns:
        (BytesIO buffer, filename) on success, (None, None) if the glossary is empty.
    """
    import openpyxl

    terms = service.list_terms()
    if not terms:
        return None, None

    text_by_id = {t.id: t.term for t in terms}

    wb = openpyxl.Workbook()
    # Remove default sheet
    wb.remove(wb.active)

    for category in Category:
        in_category = [t for t in terms if t.category == category]
        if not in_category:
            continue
        ws = wb.create_sheet(title=category.value.capitalize())
        _build_sheet(ws, category, in_category, text_by_id)

    buffer = BytesIO()
    wb.save(buffer)
    buffer.seek(0)

    return buffer, "glossary.xlsx"
