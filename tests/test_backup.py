"""
Tests for database backups and the daily backup job.

A real SQLite file is created in tmp_path for each test; the in-memory
test database cannot be backed up.
"""

import os
import sqlite3
import time

import pytest

from kantong.config import settings
from kantong.exceptions import BackupError
from kantong.jobs.daily_backup import daily_backup
from kantong.services import backup_service

DAY = 24 * 60 * 60


@pytest.fixture
def database(tmp_path):
    path = tmp_path / "finance.db"
    conn = sqlite3.connect(path)
    conn.execute("CREATE TABLE wallets (name TEXT)")
    conn.execute("INSERT INTO wallets VALUES ('cash')")
    conn.commit()
    conn.close()
    return path


def _age(path, days, now):
    stamp = now - days * DAY
    os.utime(path, (stamp, stamp))


class TestCreateBackup:

    async def test_backup_is_a_readable_copy(self, database, tmp_path):
        backup_dir = tmp_path / "backups"

        backup = await backup_service.create_backup(database, backup_dir)
        assert backup["file_name"].startswith("finance_backup_")
        assert backup["file_name"].endswith(".db")
        assert backup["size"] > 0

        conn = sqlite3.connect(backup["file_path"])
        try:
            rows = conn.execute("SELECT name FROM wallets").fetchall()
        finally:
            conn.close()
        assert rows == [("cash",)]

    async def test_backups_do_not_overwrite(self, database, tmp_path):
        first = await backup_service.create_backup(database, tmp_path / "backups")
        second = await backup_service.create_backup(database, tmp_path / "backups")
        assert first["file_name"] != second["file_name"]

    async def test_uses_configured_url(self, database, tmp_dirs, monkeypatch):
        monkeypatch.setattr(settings, "DATABASE_URL", f"sqlite+aiosqlite:///{database}")

        backup = await backup_service.create_backup()
        assert backup["file_path"].startswith(str(tmp_dirs["backups"]))

    async def test_memory_database_rejected(self, monkeypatch, tmp_dirs):
        monkeypatch.setattr(settings, "DATABASE_URL", "sqlite+aiosqlite://")
        with pytest.raises(BackupError):
            await backup_service.create_backup()

    async def test_non_sqlite_rejected(self, monkeypatch, tmp_dirs):
        monkeypatch.setattr(settings, "DATABASE_URL", "postgresql+asyncpg://u:p@localhost/kantong")
        with pytest.raises(BackupError):
            await backup_service.create_backup()

    async def test_missing_file_rejected(self, tmp_path):
        with pytest.raises(BackupError) as exc_info:
            await backup_service.create_backup(tmp_path / "nope.db", tmp_path / "backups")
        assert exc_info.value.code == "BACKUP_FAILED"


class TestRetention:

    async def test_old_backups_are_pruned(self, database, tmp_path):
        backup_dir = tmp_path / "backups"
        now = time.time()
        old = await backup_service.create_backup(database, backup_dir)
        recent = await backup_service.create_backup(database, backup_dir)
        _age(old["file_path"], 8, now)
        _age(recent["file_path"], 6, now)

        deleted = backup_service.clean_old_backups(keep_days=7, backup_dir=backup_dir, now=now)
        assert deleted == 1
        assert not os.path.exists(old["file_path"])
        assert os.path.exists(recent["file_path"])

    async def test_other_files_are_left_alone(self, tmp_path):
        backup_dir = tmp_path / "backups"
        backup_dir.mkdir()
        stray = backup_dir / "notes.txt"
        stray.write_text("keep me")
        now = time.time()
        _age(stray, 30, now)

        assert backup_service.clean_old_backups(keep_days=7, backup_dir=backup_dir, now=now) == 0
        assert stray.exists()

    def test_missing_directory(self, tmp_path):
        assert backup_service.clean_old_backups(backup_dir=tmp_path / "none") == 0

    async def test_stats(self, database, tmp_path):
        backup_dir = tmp_path / "backups"
        assert backup_service.get_backup_stats(backup_dir)["total"] == 0

        now = time.time()
        older = await backup_service.create_backup(database, backup_dir)
        newer = await backup_service.create_backup(database, backup_dir)
        _age(older["file_path"], 1, now)

        stats = backup_service.get_backup_stats(backup_dir)
        assert stats["total"] == 2
        assert stats["total_size"] == older["size"] + newer["size"]
        assert stats["latest"]["name"] == newer["file_name"]


class TestDailyBackupJob:

    async def test_job_backs_up_and_prunes(self, database, tmp_dirs, monkeypatch):
        monkeypatch.setattr(settings, "DATABASE_URL", f"sqlite+aiosqlite:///{database}")
        monkeypatch.setattr(settings, "BACKUP_KEEP_DAYS", 7)

        stale = await backup_service.create_backup()
        _age(stale["file_path"], 10, time.time())

        await daily_backup()

        stats = backup_service.get_backup_stats()
        assert stats["total"] == 1
        assert stats["latest"]["name"] != stale["file_name"]

    async def test_job_failure_propagates(self, monkeypatch, tmp_dirs):
        monkeypatch.setattr(settings, "DATABASE_URL", "sqlite+aiosqlite://")
        with pytest.raises(BackupError):
            await daily_backup()
