"""
Tests for the CSV transaction export.
"""

import csv
from datetime import date
from decimal import Decimal

import pytest

from kantong.services import export_service, ledger_service, wallet_service


def _read(path):
    with open(path, newline="", encoding="utf-8-sig") as f:
        return list(csv.reader(f))


async def _seed(db, user_id):
    await wallet_service.create_wallet(db, user_id, "cash")
    await wallet_service.create_wallet(db, user_id, "tabungan", "savings", False)
    await ledger_service.add_income(db, user_id, 100000, "gaji", category="gaji")
    await ledger_service.add_expense(db, user_id, 25000, "makan siang", category="makanan")
    await ledger_service.add_expense(db, user_id, 5000, "parkir, motor", category="transportasi")
    await ledger_service.add_income(db, user_id, 999, "lama", when=date(2020, 1, 1))


class TestExportTransactions:

    async def test_all_types(self, db_session, user_id, tmp_dirs):
        await _seed(db_session, user_id)

        result = await export_service.export_transactions(db_session, user_id)
        assert result["count"] == 3
        assert result["total_income"] == Decimal("100000")
        assert result["total_expense"] == Decimal("30000")
        assert result["file_name"].startswith("Transaksi_6281234567890_c_us_")
        assert result["file_name"].endswith(".csv")

        rows = _read(result["file_path"])
        assert rows[0] == export_service.TRANSACTION_HEADER
        assert {row[2] for row in rows[1:4]} == {"Pemasukan", "Pengeluaran"}
        assert [row[0] for row in rows[1:4]] == ["1", "2", "3"]
        # Commas inside a description stay in one cell
        assert "parkir, motor" in [row[5] for row in rows[1:4]]

    async def test_totals_and_wallet_summary(self, db_session, user_id, tmp_dirs):
        await _seed(db_session, user_id)

        result = await export_service.export_transactions(db_session, user_id, "all", "all_time")
        rows = _read(result["file_path"])

        totals = {row[1]: row[3] for row in rows if len(row) == 4 and row[0] == ""}
        assert Decimal(totals["Total Pemasukan"]) == Decimal("100999")
        assert Decimal(totals["Net"]) == Decimal("70999")

        header_index = rows.index(export_service.WALLET_HEADER)
        wallets = rows[header_index + 1:]
        assert [row[0] for row in wallets] == ["cash", "tabungan", "Total"]
        assert wallets[1][3] == "Tidak"
        assert Decimal(wallets[2][2]) == Decimal("70999")

    async def test_filter_by_type(self, db_session, user_id, tmp_dirs):
        await _seed(db_session, user_id)

        result = await export_service.export_transactions(db_session, user_id, "expense")
        assert result["count"] == 2
        assert result["total_income"] == 0
        assert result["file_name"].startswith("Pengeluaran_")

        rows = _read(result["file_path"])
        assert [row[2] for row in rows[1:3]] == ["Pengeluaran", "Pengeluaran"]

    async def test_specific_month(self, db_session, user_id, tmp_dirs):
        await _seed(db_session, user_id)

        result = await export_service.export_transactions(
            db_session, user_id, "income", "specific_month", "2020-01"
        )
        assert result["count"] == 1
        assert result["total_income"] == Decimal("999")

    async def test_nothing_to_export_writes_no_file(self, db_session, user_id, tmp_dirs):
        result = await export_service.export_transactions(db_session, user_id, "all", "today")
        assert result["count"] == 0
        assert result["file_path"] is None
        assert not tmp_dirs["exports"].exists()

    async def test_explicit_directory(self, db_session, user_id, tmp_path):
        await _seed(db_session, user_id)
        result = await export_service.export_transactions(
            db_session, user_id, export_dir=tmp_path / "out"
        )
        assert result["file_path"].startswith(str(tmp_path / "out"))

    async def test_unknown_type(self, db_session, user_id):
        with pytest.raises(ValueError):
            await export_service.export_transactions(db_session, user_id, "transfer")
