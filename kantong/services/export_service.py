"""
Transaction export.

Writes a period's transactions to a CSV file that opens directly in
spreadsheet tools: the transaction list with its totals first, then a
summary of the user's wallets. The file is UTF-8 with a BOM so Excel
picks up the encoding.
"""

import csv
import logging
import re
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path

from sqlalchemy.ext.asyncio import AsyncSession

from kantong.config import settings
from kantong.services import report_service, wallet_service
from kantong.utils.periods import to_local

logger = logging.getLogger(__name__)

EXPORT_TYPES = ("income", "expense", "all")

_TYPE_LABELS = {"income": "Pemasukan", "expense": "Pengeluaran", "all": "Transaksi"}

TRANSACTION_HEADER = ["No", "Tanggal", "Tipe", "Jumlah", "Kategori", "Deskripsi", "Kantong"]
WALLET_HEADER = ["Kantong", "Tipe", "Saldo", "Dihitung dalam total"]


def _safe_user(user_id: str) -> str:
    return re.sub(r"[^A-Za-z0-9]+", "_", user_id).strip("_") or "user"


async def export_transactions(
    db: AsyncSession,
    user_id: str,
    type: str = "all",
    period: str = "this_month",
    year_month: str | None = None,
    export_dir: str | Path | None = None,
) -> dict:
    """
    Export the user's transactions for a period.

    Args:
        type: income | expense | all.
        period, year_month: as for report_service.get_history_by_period.

    Returns:
        {"file_path", "file_name", "total_income", "total_expense", "count"}.
        When nothing matches, count is 0 and no file is written
        (file_path and file_name are None).
    """
    if type not in EXPORT_TYPES:
        raise ValueError(f"Unknown export type {type!r}")

    transactions = await report_service.get_history_by_period(
        db, user_id, period, year_month, limit=None
    )
    if type != "all":
        transactions = [tx for tx in transactions if tx.type == type]

    total_income = sum((tx.amount for tx in transactions if tx.type == "income"), Decimal("0"))
    total_expense = sum((tx.amount for tx in transactions if tx.type == "expense"), Decimal("0"))

    result = {
        "file_path": None,
        "file_name": None,
        "total_income": total_income,
        "total_expense": total_expense,
        "count": len(transactions),
    }
    if not transactions:
        return result

    wallets = await wallet_service.list_wallets(db, user_id)

    rows = [TRANSACTION_HEADER]
    for index, tx in enumerate(transactions, start=1):
        rows.append([
            index,
            to_local(tx.created_at).strftime("%Y-%m-%d %H:%M"),
            "Pemasukan" if tx.type == "income" else "Pengeluaran",
            str(tx.amount),
            tx.category or "",
            tx.description or "",
            tx.wallet_name,
        ])
    rows.append([])
    rows.append(["", "Total Pemasukan", "", str(total_income)])
    rows.append(["", "Total Pengeluaran", "", str(total_expense)])
    rows.append(["", "Net", "", str(total_income - total_expense)])

    rows.append([])
    rows.append(WALLET_HEADER)
    for wallet in wallets:
        rows.append([
            wallet.name,
            wallet.type,
            str(wallet.balance),
            "Ya" if wallet.include_in_total else "Tidak",
        ])
    counted = sum((w.balance for w in wallets if w.include_in_total), Decimal("0"))
    rows.append(["Total", "", str(counted), ""])

    directory = Path(export_dir or settings.EXPORT_DIR)
    directory.mkdir(parents=True, exist_ok=True)
    stamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S_%f")
    file_name = f"{_TYPE_LABELS[type]}_{_safe_user(user_id)}_{stamp}.csv"
    path = directory / file_name

    with open(path, "w", newline="", encoding="utf-8-sig") as f:
        writer = csv.writer(f)
        writer.writerows(rows)

    logger.info("Exported %d transaction(s) to %s", len(transactions), file_name)
    result.update(file_path=str(path), file_name=file_name)
    return result
