"""
dictionary_database.py — SQLite storage for the herbal dictionary.

Manages a SEPARATE SQLite database for glossary data:
- dictionary_terms: one row per term (text, definition, category, citation),
  plus term_norm, the case-folded text that search_by_term matches against
- related_terms: directed "see also" edges between terms
- term_plant_relationships: links from a term to plant records

SqliteTermRepository implements term_repository.TermRepository on top of it.
Every operation opens its own connection; writes commit or roll back as a unit.
"""

import logging
import os
import sqlite3
from datetime import datetime
from typing import Optional, List, Dict, Any, Tuple

from models import (
    Term, TermId, Definition, Category, Reference, utc_now,
    normalize_term, to_relationship_type,
)
from term_repository import TermRepository

logger = logging.getLogger(__name__)


# Default path for the dictionary database (can be overridden via env var)
def get_dictionary_db_path() -> str:
    """Get the dictionary database path from environment or default."""
    default_path = os.path.join(os.path.dirname(os.path.abspath(__file__)), 'data', 'dictionary.db')
    return os.environ.get('DICTIONARY_DB_PATH', default_path)


# ========================================
# Database Connection Management
# ========================================

def get_dictionary_db(db_path: Optional[str] = None) -> sqlite3.Connection:
    """
    Get a connection to the dictionary database.

    Creates the database directory and file if they don't exist.
    Uses WAL mode for concurrent read performance.
    """
    db_path = db_path or get_dictionary_db_path()
    directory = os.path.dirname(db_path)
    if directory:
        os.makedirs(directory, exist_ok=True)

    conn = sqlite3.connect(db_path)
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")
    conn.row_factory = sqlite3.Row
    return conn


def init_dictionary_db(db_path: Optional[str] = None):
    """
    Initialize the dictionary database schema.

    Creates all tables and indexes if they don't exist.
    This function is idempotent - safe to call multiple times.
    """
    conn = get_dictionary_db(db_path)
    cursor = conn.cursor()

    categories = ', '.join(f"'{c.value}'" for c in Category)

    # Table: dictionary_terms
    # - term is not UNIQUE: uniqueness is a service rule, and the same
    #   text may legitimately exist under several categories in imports
    cursor.execute(f"""
        CREATE TABLE IF NOT EXISTS dictionary_terms (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            term TEXT NOT NULL CHECK (length(term) <= 100),
            term_norm TEXT NOT NULL DEFAULT '',
            definition TEXT NOT NULL,
            category TEXT NOT NULL CHECK (category IN ({categories})),
            reference TEXT,
            url TEXT,
            created_at TIMESTAMP NOT NULL,
            updated_at TIMESTAMP NOT NULL
        )
    """)

    cursor.execute("""
        CREATE INDEX IF NOT EXISTS idx_dictionary_terms_term
        ON dictionary_terms(term)
    """)

    cursor.execute("""
        CREATE INDEX IF NOT EXISTS idx_dictionary_terms_category
        ON dictionary_terms(category)
    """)

    # Table: related_terms (one row per direction)
    cursor.execute("""
        CREATE TABLE IF NOT EXISTS related_terms (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            term_id INTEGER NOT NULL REFERENCES dictionary_terms(id) ON DELETE CASCADE,
            related_term_id INTEGER NOT NULL REFERENCES dictionary_terms(id) ON DELETE CASCADE,
            relationship_type TEXT CHECK (length(relationship_type) <= 50),
            created_at TIMESTAMP NOT NULL,
            updated_at TIMESTAMP NOT NULL,
            UNIQUE(term_id, related_term_id)
        )
    """)

    cursor.execute("""
        CREATE INDEX IF NOT EXISTS idx_related_terms_related
        ON related_terms(related_term_id)
    """)

    # Table: term_plant_relationships
    # - plant_id points into the plant database, so no foreign key here
    cursor.execute("""
        CREATE TABLE IF NOT EXISTS term_plant_relationships (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            term_id INTEGER NOT NULL REFERENCES dictionary_terms(id) ON DELETE CASCADE,
            plant_id INTEGER NOT NULL,
            context TEXT,
            created_at TIMESTAMP NOT NULL,
            updated_at TIMESTAMP NOT NULL,
            UNIQUE(term_id, plant_id)
        )
    """)

    conn.commit()
    conn.close()

    _migrate_dictionary_db_schema(db_path)


def _migrate_dictionary_db_schema(db_path: Optional[str] = None):
    """
    Migrate an existing dictionary database to the current schema.

    Adds:
    - term_norm to dictionary_terms, backfilled from term

    This function is idempotent - safe to call multiple times.
    """
    conn = get_dictionary_db(db_path)
    cursor = conn.cursor()

    try:
        term_columns = [i[1] for i in cursor.execute("PRAGMA table_info(dictionary_terms)").fetchall()]

        if 'term_norm' not in term_columns:
            cursor.execute("ALTER TABLE dictionary_terms ADD COLUMN term_norm TEXT NOT NULL DEFAULT ''")

        # Rows written before the column existed; SQLite's lower() only folds ASCII
        stale = cursor.execute(
            "SELECT id, term FROM dictionary_terms WHERE term_norm = ''"
        ).fetchall()
        cursor.executemany(
            "UPDATE dictionary_terms SET term_norm = ? WHERE id = ?",
            [(normalize_term(row['term']), row['id']) for row in stale]
        )

        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_dictionary_terms_term_norm
            ON dictionary_terms(term_norm)
        """)

        conn.commit()
        if stale:
            logger.info("Backfilled term_norm for %d dictionary terms", len(stale))

    except sqlite3.Error as e:
        conn.rollback()
        logger.error("Dictionary database migration failed, rolled back: %s", e)
        raise
    finally:
        conn.close()


def check_dictionary_db_health(db_path: Optional[str] = None) -> Tuple[bool, str]:
    """
    Check if the dictionary database is healthy and accessible.

    Returns:
        Tuple of (is_healthy, message)
    """
    try:
        conn = get_dictionary_db(db_path)
        try:
            count = conn.execute("SELECT COUNT(*) FROM dictionary_terms").fetchone()[0]
        finally:
            conn.close()
        return True, f"Dictionary database OK ({count} terms)"
    except sqlite3.Error as e:
        return False, f"Database error: {str(e)}"


# ========================================
# Row Mapping Helpers
# ========================================

def _escape_like(text: str) -> str:
    """Escape LIKE wildcards so they match literally."""
    return text.replace('\\', '\\\\').replace('%', '\\%').replace('_', '\\_')


def _parse_timestamp(value) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


def _row_to_term(row: sqlite3.Row, related: List[int]) -> Term:
    reference = Reference(row['reference'], row['url']) if row['reference'] else None
    return Term(
        id=TermId(row['id']),
        term=row['term'],
        definition=Definition(row['definition']),
        category=Category(row['category']),
        reference=reference,
        related_term_ids={TermId(r) for r in related},
        created_at=_parse_timestamp(row['created_at']),
        updated_at=_parse_timestamp(row['updated_at']),
    )


def _rows_to_terms(cursor: sqlite3.Cursor, rows: List[sqlite3.Row]) -> List[Term]:
    """Map term rows to entities, loading outgoing edges in one query."""
    if not rows:
        return []

    ids = [row['id'] for row in rows]
    placeholders = ', '.join('?' for _ in ids)
    edges = cursor.execute(
        f"SELECT term_id, related_term_id FROM related_terms WHERE term_id IN ({placeholders})",
        ids
    ).fetchall()

    related: Dict[int, List[int]] = {i: [] for i in ids}
    for edge in edges:
        related[edge['term_id']].append(edge['related_term_id'])

    return [_row_to_term(row, related[row['id']]) for row in rows]


ORDER_BY_TERM = "ORDER BY term COLLATE NOCASE, id"


# ========================================
# SQLite Repository
# ========================================

class SqliteTermRepository(TermRepository):
    """TermRepository backed by the SQLite dictionary database."""

    def __init__(self, db_path: Optional[str] = None):
        self.db_path = db_path or get_dictionary_db_path()

    def _connect(self) -> sqlite3.Connection:
        return get_dictionary_db(self.db_path)

    def _query(self, sql: str, params=()) -> List[Term]:
        conn = self._connect()
        try:
            cursor = conn.cursor()
            rows = cursor.execute(sql, params).fetchall()
            return _rows_to_terms(cursor, rows)
        finally:
            conn.close()

    def _write(self, action: str, statements: List[Tuple[str, tuple]]) -> int:
        """Run statements in one transaction. Returns the total rowcount."""
        conn = self._connect()
        cursor = conn.cursor()
        try:
            changed = 0
            for sql, params in statements:
                cursor.execute(sql, params)
                changed += max(cursor.rowcount, 0)
            conn.commit()
            return changed
        except sqlite3.Error as e:
            conn.rollback()
            logger.error("Dictionary %s failed, rolled back: %s", action, e)
            raise
        finally:
            conn.close()

    # --- Lookups ---

    def find_by_id(self, term_id: TermId) -> Optional[Term]:
        terms = self._query("SELECT * FROM dictionary_terms WHERE id = ?", (term_id.value,))
        return terms[0] if terms else None

    def find_by_exact_term(self, text: str) -> List[Term]:
        # "=" uses BINARY collation, so the match is case-sensitive
        return self._query(
            f"SELECT * FROM dictionary_terms WHERE term = ? {ORDER_BY_TERM}", (text,)
        )

    def search_by_term(self, partial: str) -> List[Term]:
        pattern = f"%{_escape_like(normalize_term(partial))}%"
        return self._query(
            f"SELECT * FROM dictionary_terms WHERE term_norm LIKE ? ESCAPE '\\' {ORDER_BY_TERM}",
            (pattern,)
        )

    def find_by_category(self, category: Category) -> List[Term]:
        return self._query(
            f"SELECT * FROM dictionary_terms WHERE category = ? {ORDER_BY_TERM}",
            (category.value,)
        )

    def find_related_terms(self, term_id: TermId) -> List[Term]:
        return self._query(
            """SELECT t.* FROM dictionary_terms t
               JOIN related_terms r ON r.related_term_id = t.id
               WHERE r.term_id = ?
               ORDER BY t.term COLLATE NOCASE, t.id""",
            (term_id.value,)
        )

    def find_all(self) -> List[Term]:
        return self._query(f"SELECT * FROM dictionary_terms {ORDER_BY_TERM}")

    def count(self) -> int:
        conn = self._connect()
        try:
            return conn.execute("SELECT COUNT(*) FROM dictionary_terms").fetchone()[0]
        finally:
            conn.close()

    # --- Writes ---

    def save(self, term: Term) -> Term:
        conn = self._connect()
        cursor = conn.cursor()

        values = (
            term.term,
            normalize_term(term.term),
            term.definition.value,
            term.category.value,
            term.reference.source if term.reference else None,
            term.reference.url if term.reference else None,
            term.created_at.isoformat(),
            term.updated_at.isoformat(),
        )

        try:
            existing = None
            if term.id is not None:
                existing = cursor.execute(
                    "SELECT id FROM dictionary_terms WHERE id = ?", (term.id.value,)
                ).fetchone()

            if existing:
                cursor.execute(
                    """UPDATE dictionary_terms
                       SET term = ?, term_norm = ?, definition = ?, category = ?, reference = ?, url = ?,
                           created_at = ?, updated_at = ?
                       WHERE id = ?""",
                    values + (term.id.value,)
                )
            elif term.id is None:
                cursor.execute(
                    """INSERT INTO dictionary_terms
                       (term, term_norm, definition, category, reference, url, created_at, updated_at)
                       VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
                    values
                )
                term = term.with_id(TermId(cursor.lastrowid))
            else:
                cursor.execute(
                    """INSERT INTO dictionary_terms
                       (id, term, term_norm, definition, category, reference, url, created_at, updated_at)
                       VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                    (term.id.value,) + values
                )

            self._sync_relationships(cursor, term)
            conn.commit()

        except sqlite3.Error as e:
            conn.rollback()
            logger.error("Saving term %r failed, rolled back: %s", term.term, e)
            raise
        finally:
            conn.close()

        return self.find_by_id(term.id)

    def _sync_relationships(self, cursor: sqlite3.Cursor, term: Term):
        """Make the stored outgoing edges of `term` match term.related_term_ids."""
        current = {
            row['related_term_id'] for row in cursor.execute(
                "SELECT related_term_id FROM related_terms WHERE term_id = ?",
                (term.id.value,)
            ).fetchall()
        }
        wanted = {r.value for r in term.related_term_ids}

        for related_id in current - wanted:
            cursor.execute(
                "DELETE FROM related_terms WHERE term_id = ? AND related_term_id = ?",
                (term.id.value, related_id)
            )

        now = utc_now().isoformat()
        for related_id in sorted(wanted - current):
            cursor.execute(
                """INSERT OR IGNORE INTO related_terms
                   (term_id, related_term_id, relationship_type, created_at, updated_at)
                   VALUES (?, ?, NULL, ?, ?)""",
                (term.id.value, related_id, now, now)
            )

    def delete(self, term_id: TermId) -> bool:
        tid = term_id.value
        conn = self._connect()
        cursor = conn.cursor()
        try:
            cursor.execute(
                "DELETE FROM related_terms WHERE term_id = ? OR related_term_id = ?",
                (tid, tid)
            )
            cursor.execute("DELETE FROM term_plant_relationships WHERE term_id = ?", (tid,))
            cursor.execute("DELETE FROM dictionary_terms WHERE id = ?", (tid,))
            removed = cursor.rowcount > 0
            conn.commit()
            return removed
        except sqlite3.Error as e:
            conn.rollback()
            logger.error("Deleting term %s failed, rolled back: %s", tid, e)
            raise
        finally:
            conn.close()

    def _insert_edge(self, term_id: TermId, related_term_id: TermId,
                     relationship_type: Optional[str]) -> Tuple[str, tuple]:
        now = utc_now().isoformat()
        return (
            """INSERT OR IGNORE INTO related_terms
               (term_id, related_term_id, relationship_type, created_at, updated_at)
               VALUES (?, ?, ?, ?, ?)""",
            (term_id.value, related_term_id.value, relationship_type, now, now)
        )

    def _delete_edge(self, term_id: TermId, related_term_id: TermId) -> Tuple[str, tuple]:
        return (
            "DELETE FROM related_terms WHERE term_id = ? AND related_term_id = ?",
            (term_id.value, related_term_id.value)
        )

    def add_relationship(self, term_id, related_term_id, relationship_type=None):
        relationship_type = to_relationship_type(relationship_type)
        self._write('add_relationship', [
            self._insert_edge(term_id, related_term_id, relationship_type),
        ])

    def remove_relationship(self, term_id, related_term_id):
        self._write('remove_relationship', [
            self._delete_edge(term_id, related_term_id),
        ])

    def link(self, term_id, related_term_id, relationship_type=None):
        relationship_type = to_relationship_type(relationship_type)
        self._write('link', [
            self._insert_edge(term_id, related_term_id, relationship_type),
            self._insert_edge(related_term_id, term_id, relationship_type),
        ])

    def unlink(self, term_id, related_term_id):
        self._write('unlink', [
            self._delete_edge(term_id, related_term_id),
            self._delete_edge(related_term_id, term_id),
        ])

    # --- Plant links ---

    def link_plant(self, term_id, plant_id, context=None):
        now = utc_now().isoformat()
        self._write('link_plant', [(
            """INSERT INTO term_plant_relationships
               (term_id, plant_id, context, created_at, updated_at)
               VALUES (?, ?, ?, ?, ?)
               ON CONFLICT(term_id, plant_id)
               DO UPDATE SET context = excluded.context, updated_at = excluded.updated_at""",
            (term_id.value, plant_id, context, now, now)
        )])

    def unlink_plant(self, term_id, plant_id) -> bool:
        removed = self._write('unlink_plant', [(
            "DELETE FROM term_plant_relationships WHERE term_id = ? AND plant_id = ?",
            (term_id.value, plant_id)
        )])
        return removed > 0

    def find_plant_links(self, term_id) -> List[Dict[str, Any]]:
        conn = self._connect()
        try:
            rows = conn.execute(
                """SELECT plant_id, context FROM term_plant_relationships
                   WHERE term_id = ? ORDER BY plant_id""",
                (term_id.value,)
            ).fetchall()
            return [{'plant_id': r['plant_id'], 'context': r['context']} for r in rows]
        finally:
            conn.close()
