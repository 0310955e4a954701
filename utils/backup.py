"""
utils/backup.py — Dictionary database backups.

Copies the dictionary .db file to a backups directory with timestamped
filenames. Triggered before a 'replace' import wipes the glossary.
Format: dictionary_YYYYMMDD_HHMMSS_{reason}.db
"""

import logging
import os
import sqlite3
from datetime import datetime
from typing import Optional, List, Dict, Any

from flask import current_app, has_app_context

logger = logging.getLogger(__name__)

BASE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
FILENAME_PREFIX = 'dictionary_'


def get_backup_dir() -> str:
    """
    Backup directory: the app's BACKUP_DIR setting inside an app context,
    otherwise the BACKUP_DIR env var or backups/ beside the code.
    """
    if has_app_context() and current_app.config.get('BACKUP_DIR'):
        return current_app.config['BACKUP_DIR']
    return os.environ.get('BACKUP_DIR', os.path.join(BASE_DIR, 'backups'))


def backup_db(db_path: str, reason: str = 'manual', backup_dir: Optional[str] = None) -> Optional[str]:
    """
    Copy the dictionary database to the backup directory.

    Uses the SQLite online backup API, so pages still sitting in the WAL
    file are included.

    Args:
        db_path: Path of the live database file.
        reason: Short tag for the backup trigger (e.g., 'manual', 'pre_import').
        backup_dir: Target directory; defaults to get_backup_dir().

    Returns:
        The filename of the created backup, or None if there is no database yet.
    """
    if not os.path.exists(db_path):
        return None

    backup_dir = backup_dir or get_backup_dir()
    os.makedirs(backup_dir, exist_ok=True)

    timestamp = datetime.now().strftime('%Y%m%d_%H%M%S')
    # Sanitize reason string
    safe_reason = reason.replace(' ', '_').replace('/', '_')[:30]
    filename = f'{FILENAME_PREFIX}{timestamp}_{safe_reason}.db'
    dest = os.path.join(backup_dir, filename)

    src = sqlite3.connect(db_path)
    dst = sqlite3.connect(dest)
    try:
        src.backup(dst)
    finally:
        dst.close()
        src.close()

    logger.info("Dictionary backup written: %s", filename)
    return filename


def list_backups(backup_dir: Optional[str] = None) -> List[Dict[str, Any]]:
    """
    List dictionary backups.

    Returns:
        List of dicts with keys: filename, timestamp, size_bytes, reason.
        Sorted by timestamp descending (newest first).
    """
    backup_dir = backup_dir or get_backup_dir()
    if not os.path.isdir(backup_dir):
        return []

    backups = []
    for f in os.listdir(backup_dir):
        if not (f.startswith(FILENAME_PREFIX) and f.endswith('.db')):
            continue

        # parts: ['YYYYMMDD', 'HHMMSS', 'reason', ...]
        parts = f[len(FILENAME_PREFIX):-len('.db')].split('_')
        timestamp_str = ''
        reason = ''
        if len(parts) >= 2:
            date_part, time_part = parts[0], parts[1]
            timestamp_str = f'{date_part[:4]}-{date_part[4:6]}-{date_part[6:8]} {time_part[:2]}:{time_part[2:4]}:{time_part[4:6]}'
            reason = '_'.join(parts[2:])

        backups.append({
            'filename': f,
            'timestamp': timestamp_str,
            'size_bytes': os.stat(os.path.join(backup_dir, f)).st_size,
            'reason': reason,
        })

    backups.sort(key=lambda b: b['filename'], reverse=True)
    return backups
