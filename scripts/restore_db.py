#!/usr/bin/env python3
"""Restore the storefront SQLite database from a backup.

Without a backup argument the available backups are listed. The live
database is copied to ``pre-restore-<timestamp>.db`` before it is replaced.
"""

from __future__ import annotations

import argparse
import os
import sys

from storefront.core.config import settings
from storefront.services import backup_service

CONFIRMATION_WORD = "RESTORE"


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Restore the storefront SQLite database from a backup")
    parser.add_argument("backup", nargs="?", help="Backup file name or path")
    parser.add_argument("--database-url", default=settings.DATABASE_URL)
    parser.add_argument("--backup-dir", default=settings.BACKUP_DIR)
    parser.add_argument("--yes", action="store_true", help="Skip the confirmation prompt")
    return parser.parse_args()


def resolve_backup(name: str, backup_dir: str) -> str:
    if os.path.isfile(name):
        return name
    return os.path.join(backup_dir, name)


def main() -> int:
    args = parse_args()

    if not args.backup:
        backups = backup_service.list_backups(args.backup_dir)
        if not backups:
            print(f"No backups found in {args.backup_dir}")
            return 1
        print("Available backups (newest first):")
        for path in backups:
            print(f"- {os.path.basename(path)}")
        return 0

    backup_path = resolve_backup(args.backup, args.backup_dir)
    if not os.path.isfile(backup_path):
        print(f"ERROR: Backup not found: {backup_path}", file=sys.stderr)
        return 1

    if not args.yes:
        print(f"This replaces the live database with {backup_path}.")
        answer = input(f"Type {CONFIRMATION_WORD} to continue: ").strip()
        if answer != CONFIRMATION_WORD:
            print("Restore cancelled")
            return 1

    try:
        safety_copy = backup_service.restore_database(
            backup_path,
            database_url=args.database_url,
            backup_dir=args.backup_dir,
        )
    except backup_service.BackupError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1

    if safety_copy:
        print(f"Previous database saved to {safety_copy}")
    print("Restore complete. Restart the application.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
