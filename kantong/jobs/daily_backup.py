"""Daily database backup scheduled job."""

import logging

from kantong.services import backup_service

logger = logging.getLogger(__name__)


async def daily_backup() -> None:
    """Back up the store and prune copies older than BACKUP_KEEP_DAYS."""
    backup = await backup_service.create_backup()
    deleted = backup_service.clean_old_backups()
    stats = backup_service.get_backup_stats()

    logger.info(
        "daily_backup completed: %s, %d pruned, %d on disk (%d bytes)",
        backup["file_name"],
        deleted,
        stats["total"],
        stats["total_size"],
    )
