import os
import shutil
import sqlite3
from datetime import datetime
from typing import List, Optional

import structlog
from sqlalchemy.engine import make_url

from storefront.core.config import settings

logger = structlog.get_logger()

BACKUP_PREFIX = "backup-"
PRE_RESTORE_PREFIX = "pre-restore-"


class BackupError(Exception):
    pass


def sqlite_database_path(database_url: Optional[str] = None) -> str:
    """Filesystem path of the SQLite database behind DATABASE_URL."""
    url = make_url(database_url or settings.DATABASE_URL)
    if url.get_backend_name() != "sqlite" or not url.database or url.database == ":memory:":
        raise BackupError("Backups are only supported for file-based SQLite databases")
    return os.path.abspath(url.database)


def _timestamp() -> str:
    return datetime.utcnow().strftime("%Y%m%d-%H%M%S-%f")


def list_backups(backup_dir: Optional[str] = None) -> List[str]:
    """Backup files, newest first."""
    backup_dir = backup_dir or settings.BACKUP_DIR
    if not os.path.isdir(backup_dir):
        return []
    names = [
        name for name in os.listdir(backup_dir)
        if name.startswith(BACKUP_PREFIX) and name.endswith(".db")
    ]
    return [os.path.join(backup_dir, name) for name in sorted(names, reverse=True)]


def prune_backups(backup_dir: Optional[str] = None, retention: Optional[int] = None) -> int:
    retention = settings.BACKUP_RETENTION if retention is None else retention
    removed = 0
    for path in list_backups(backup_dir)[retention:]:
        os.remove(path)
        removed += 1
    return removed


def backup_database(database_url: Optional[str] = None, backup_dir: Optional[str] = None,
                    retention: Optional[int] = None) -> str:
    """Take an online copy of the SQLite database and prune old copies."""
    source_path = sqlite_database_path(database_url)
    if not os.path.exists(source_path):
        raise BackupError(f"Database file not found: {source_path}")

    backup_dir = backup_dir or settings.BACKUP_DIR
    os.makedirs(backup_dir, exist_ok=True)
    target_path = os.path.join(backup_dir, f"{BACKUP_PREFIX}{_timestamp()}.db")

    source = sqlite3.connect(source_path)
    target = sqlite3.connect(target_path)
    try:
        with target:
            source.backup(target)
    finally:
        target.close()
        source.close()

    removed = prune_backups(backup_dir, retention)
    logger.info(
        "database_backup_created",
        path=target_path,
        size_bytes=os.path.getsize(target_path),
        pruned=removed,
    )
    return target_path


def restore_database(backup_path: str, database_url: Optional[str] = None,
                     backup_dir: Optional[str] = None) -> Optional[str]:
    """
    Replace the live database with a backup.

    The current file is saved as ``pre-restore-<timestamp>.db`` first and its
    path is returned (None when there was no database to save).
    """
    if not os.path.isfile(backup_path):
        raise BackupError(f"Backup file not found: {backup_path}")

    target_path = sqlite_database_path(database_url)
    backup_dir = backup_dir or settings.BACKUP_DIR
    os.makedirs(backup_dir, exist_ok=True)

    safety_copy = None
    if os.path.exists(target_path):
        safety_copy = os.path.join(backup_dir, f"{PRE_RESTORE_PREFIX}{_timestamp()}.db")
        shutil.copy2(target_path, safety_copy)

    shutil.copy2(backup_path, target_path)
    logger.info("database_restored", source=backup_path, target=target_path, safety_copy=safety_copy)
    return safety_copy
