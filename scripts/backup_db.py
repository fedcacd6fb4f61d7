#!/usr/bin/env python3
"""Take an online copy of the storefront SQLite database.

Writes ``BACKUP_DIR/backup-<timestamp>.db`` and prunes old copies down to
``BACKUP_RETENTION``.
"""

from __future__ import annotations

import argparse
import os
import sys

from storefront.core.config import settings
from storefront.services import backup_service


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Back up the storefront SQLite database")
    parser.add_argument("--database-url", default=settings.DATABASE_URL)
    parser.add_argument("--backup-dir", default=settings.BACKUP_DIR)
    parser.add_argument("--retention", type=int, default=settings.BACKUP_RETENTION)
    return parser.parse_args()


def main() -> int:
    args = parse_args()

    try:
        path = backup_service.backup_database(
            database_url=args.database_url,
            backup_dir=args.backup_dir,
            retention=args.retention,
        )
    except backup_service.BackupError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1

    size_mb = os.path.getsize(path) / 1024 / 1024
    print(f"Backup written: {path} ({size_mb:.2f} MB)")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
