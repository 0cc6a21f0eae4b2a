"""
Database backups.

A backup is a consistent copy of the SQLite store taken with SQLite's online
backup API, so it is safe to run while the service keeps writing. Copies
land in BACKUP_DIR as finance_backup_<timestamp>.db and are pruned after
BACKUP_KEEP_DAYS days.

The blocking sqlite3 work runs in a worker thread.
"""

import asyncio
import logging
import sqlite3
import time
from datetime import datetime, timezone
from pathlib import Path

from kantong.config import settings
from kantong.database import sqlite_database_path
from kantong.exceptions import BackupError

logger = logging.getLogger(__name__)

BACKUP_PREFIX = "finance_backup_"
BACKUP_SUFFIX = ".db"


def _backup_dir(backup_dir: str | Path | None) -> Path:
    return Path(backup_dir or settings.BACKUP_DIR)


def _copy_database(source: Path, target: Path) -> None:
    src = sqlite3.connect(source)
    try:
        dst = sqlite3.connect(target)
        try:
            src.backup(dst)
        finally:
            dst.close()
    finally:
        src.close()


async def create_backup(
    database_path: str | Path | None = None,
    backup_dir: str | Path | None = None,
) -> dict:
    """
    Copy the store into the backup directory.

    Returns:
        {"file_name", "file_path", "size", "timestamp"}

    Raises:
        BackupError: If the store is not a file-based SQLite database, or
            the file does not exist.
    """
    source = Path(database_path) if database_path else sqlite_database_path(settings.DATABASE_URL)
    if source is None:
        raise BackupError("Backups need a file-based SQLite DATABASE_URL")
    if not source.exists():
        raise BackupError(f"Database file {source} does not exist")

    target_dir = _backup_dir(backup_dir)
    target_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now(timezone.utc)
    file_name = f"{BACKUP_PREFIX}{timestamp.strftime('%Y-%m-%dT%H-%M-%S-%f')}{BACKUP_SUFFIX}"
    target = target_dir / file_name

    await asyncio.to_thread(_copy_database, source, target)

    size = target.stat().st_size
    logger.info("Database backup created: %s (%d bytes)", file_name, size)
    return {
        "file_name": file_name,
        "file_path": str(target),
        "size": size,
        "timestamp": timestamp,
    }


def _backup_files(directory: Path) -> list[Path]:
    if not directory.exists():
        return []
    return [
        path for path in directory.iterdir()
        if path.is_file() and path.name.startswith(BACKUP_PREFIX) and path.suffix == BACKUP_SUFFIX
    ]


def clean_old_backups(
    keep_days: int | None = None,
    backup_dir: str | Path | None = None,
    now: float | None = None,
) -> int:
    """Delete backups older than `keep_days` (by modification time). Returns how many went."""
    keep_days = settings.BACKUP_KEEP_DAYS if keep_days is None else keep_days
    max_age = keep_days * 24 * 60 * 60
    now = time.time() if now is None else now

    deleted = 0
    for path in _backup_files(_backup_dir(backup_dir)):
        if now - path.stat().st_mtime > max_age:
            path.unlink()
            deleted += 1
            logger.info("Deleted old backup %s", path.name)

    if deleted:
        logger.info("Cleaned %d old backup(s)", deleted)
    return deleted


def get_backup_stats(backup_dir: str | Path | None = None) -> dict:
    """Count, total size and listing (newest first) of the backups on disk."""
    backups = []
    for path in _backup_files(_backup_dir(backup_dir)):
        stat = path.stat()
        backups.append({
            "name": path.name,
            "size": stat.st_size,
            "created": datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
        })
    backups.sort(key=lambda backup: backup["created"], reverse=True)

    return {
        "total": len(backups),
        "total_size": sum(backup["size"] for backup in backups),
        "latest": backups[0] if backups else None,
        "backups": backups,
    }
