"""
Tests for the chat dispatcher and the /chat/messages endpoint.

The Gemini-backed decision step is replaced by ScriptedDecisionMaker, so
each test states exactly which decision the "model" returns.

These tests verify:
  - Decisions reach the ledger, report and business services
  - Domain errors become Indonesian reply texts, unknown errors a generic one
  - multi_command items succeed or fail independently
  - Chat history is recorded and fed back to the decision step
  - Session expiry and "exit" close the business session
  - Backup replies go to the owner with the file attached
"""

import asyncio
import csv
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path
import sqlite3

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from kantong.config import settings
from kantong.database import Base, enable_sqlite_savepoints
from kantong.exceptions import DecisionParseError
from kantong.main import app
from kantong.services import business_service, ledger_service, wallet_service
from kantong.services.chat_service import (
    CANNOT_PROCESS,
    GENERIC_ERROR,
    HELP_TEXT,
    NOT_UNDERSTOOD,
    ChatService,
    get_chat_service,
)


@pytest.fixture
def chat(decision_maker, chat_store):
    return ChatService(decision_maker=decision_maker, store=chat_store)


async def _say(chat, db, user_id, decision, text="pesan"):
    chat.decision_maker.push(decision)
    return await chat.handle_message(db, user_id, text)


async def _balance(db, user_id, name):
    return (await wallet_service.get_wallet_balance(db, user_id, name))["cached_balance"]


class TestLedgerActions:

    async def test_income(self, chat, db_session, user_id):
        await wallet_service.create_wallet(db_session, user_id, "cash")

        response = await _say(chat, db_session, user_id, {
            "action": "income",
            "params": {"amount": "50rb", "wallet": "cash", "description": "gaji"},
        })
        assert response.action == "income"
        assert len(response.replies) == 1
        reply = response.replies[0]
        assert reply.recipient == user_id
        assert reply.text == "✅ Pemasukan Rp 50.000 ke cash"
        assert await _balance(db_session, user_id, "cash") == Decimal("50000")

    async def test_backdated_expense_mentions_date(self, chat, db_session, user_id):
        await wallet_service.create_wallet(db_session, user_id, "cash")

        response = await _say(chat, db_session, user_id, {
            "action": "expense",
            "params": {"amount": 25000, "description": "makan", "date": "2025-01-14"},
        })
        assert response.replies[0].text == "✅ Pengeluaran Rp 25.000 dari cash (2025-01-14)"

    async def test_insufficient_balance_reply(self, chat, db_session, user_id):
        await wallet_service.create_wallet(db_session, user_id, "cash")
        await wallet_service.create_wallet(db_session, user_id, "tabungan")

        response = await _say(chat, db_session, user_id, {
            "action": "transfer",
            "params": {"amount": "100rb", "fromWallet": "cash", "toWallet": "tabungan"},
        })
        assert response.replies[0].text == "❌ Saldo tidak cukup."
        assert await _balance(db_session, user_id, "cash") == 0

    async def test_missing_wallet_reply(self, chat, db_session, user_id):
        response = await _say(chat, db_session, user_id, {
            "action": "income",
            "params": {"amount": 1000, "wallet": "nope"},
        })
        assert response.replies[0].text == "❌ Kantong tidak ditemukan."

    async def test_balance(self, chat, db_session, user_id):
        await wallet_service.create_wallet(db_session, user_id, "cash")
        await wallet_service.create_wallet(db_session, user_id, "tabungan", "savings", False)
        await ledger_service.add_income(db_session, user_id, 20000, "gaji")
        await ledger_service.add_income(db_session, user_id, 5000, "sisa", wallet="tabungan")

        response = await _say(chat, db_session, user_id, {"action": "check_balance", "params": {}})
        assert response.replies[0].text == (
            "💰 *Saldo Total*\nRp 20.000\n\n"
            "📊 *Per Kantong:*\n"
            "💼 cash: Rp 20.000\n"
            "🐷 tabungan: Rp 5.000"
        )

        response = await _say(chat, db_session, user_id, {
            "action": "check_wallet_balance",
            "params": {"wallet": "Tabungan"},
        })
        assert response.replies[0].text == "💰 Saldo *tabungan*: Rp 5.000"

    async def test_adjustment(self, chat, db_session, user_id):
        await wallet_service.create_wallet(db_session, user_id, "tabungan", "savings")
        await ledger_service.add_income(db_session, user_id, 50000, None, wallet="tabungan")

        response = await _say(chat, db_session, user_id, {
            "action": "adjustment",
            "params": {"wallet": "tabungan", "realBalance": 150000},
        })
        text = response.replies[0].text
        assert text.startswith("✅ *Penyesuaian Saldo*")
        assert "Selisih: +Rp 100.000" in text
        assert "💰 Saldo baru: Rp 150.000" in text
        assert await _balance(db_session, user_id, "tabungan") == Decimal("150000")

    async def test_adjustment_ignores_reported_current_balance(self, chat, db_session, user_id):
        await wallet_service.create_wallet(db_session, user_id, "tabungan", "savings")
        await ledger_service.add_income(db_session, user_id, 70000, None, wallet="tabungan")

        response = await _say(chat, db_session, user_id, {
            "action": "adjustment",
            "params": {"wallet": "tabungan", "currentBalance": 50000, "realBalance": 150000},
        })
        text = response.replies[0].text
        assert "Saldo tercatat: Rp 70.000" in text
        assert "Selisih: +Rp 80.000" in text
        assert await _balance(db_session, user_id, "tabungan") == Decimal("150000")

        response = await _say(chat, db_session, user_id, {
            "action": "multi_command",
            "params": {"commands": [
                {"type": "adjustment", "wallet": "tabungan", "currentBalance": 1, "realBalance": 120000},
            ]},
        })
        assert response.replies[0].text == "✅ Adjustment tabungan: -Rp 30.000"
        assert await _balance(db_session, user_id, "tabungan") == Decimal("120000")

    async def test_adjustment_unknown_wallet(self, chat, db_session, user_id):
        response = await _say(chat, db_session, user_id, {
            "action": "adjustment",
            "params": {"wallet": "nope", "realBalance": 1},
        })
        assert response.replies[0].text == "❌ Kantong *nope* tidak ditemukan."

    async def test_wallet_lifecycle(self, chat, db_session, user_id):
        response = await _say(chat, db_session, user_id, {
            "action": "create_wallet",
            "params": {"name": "Darurat", "type": "savings", "includeInTotal": False},
        })
        assert response.replies[0].text == "✅ Kantong *darurat* berhasil dibuat"

        response = await _say(chat, db_session, user_id, {
            "action": "create_wallet",
            "params": {"name": "darurat"},
        })
        assert response.replies[0].text == "⚠️ Kantong sudah ada."

        response = await _say(chat, db_session, user_id, {
            "action": "update_wallet",
            "params": {"name": "darurat", "includeInTotal": True},
        })
        assert response.replies[0].text == "✅ Kantong *darurat* berhasil diupdate\n✓ Dihitung dalam total saldo"

        response = await _say(chat, db_session, user_id, {
            "action": "delete_wallet",
            "params": {"name": "darurat"},
        })
        assert response.replies[0].text == "🗑️ Kantong *darurat* berhasil dihapus"

    async def test_unexpected_error_is_generic(self, chat, db_session, user_id, monkeypatch):
        await wallet_service.create_wallet(db_session, user_id, "cash")

        async def broken(*args, **kwargs):
            raise RuntimeError("boom")

        monkeypatch.setattr(ledger_service, "add_income", broken)

        response = await _say(chat, db_session, user_id, {"action": "income", "params": {"amount": 1}})
        assert response.replies[0].text == GENERIC_ERROR


class TestMultiCommand:

    async def test_items_fail_independently(self, chat, db_session, user_id):
        await wallet_service.create_wallet(db_session, user_id, "cash")
        await ledger_service.add_income(db_session, user_id, 30000, "awal")

        response = await _say(chat, db_session, user_id, {
            "action": "multi_command",
            "params": {"commands": [
                {"type": "create_wallet", "name": "cash"},
                {"type": "create_wallet", "name": "tabungan", "walletType": "savings"},
                {"type": "transfer", "amount": "1jt", "fromWallet": "cash", "toWallet": "tabungan"},
                {"type": "transfer", "amount": "10rb", "fromWallet": "cash", "toWallet": "tabungan"},
                {"type": "expense", "amount": 5000, "wallet": "cash", "description": "parkir"},
                {"type": "income", "amount": 1000, "wallet": "nope"},
            ]},
        })
        assert response.replies[0].text.split("\n") == [
            "⚠️ Kantong *cash* sudah ada",
            "✅ Kantong *tabungan* dibuat",
            "❌ Saldo tidak cukup",
            "✅ Transfer Rp 10.000: cash → tabungan",
            "✅ Pengeluaran Rp 5.000",
            "❌ Kantong tidak ditemukan",
        ]
        assert await _balance(db_session, user_id, "cash") == Decimal("15000")
        assert await _balance(db_session, user_id, "tabungan") == Decimal("10000")

    async def test_adjustment_item(self, chat, db_session, user_id):
        await wallet_service.create_wallet(db_session, user_id, "cash")

        response = await _say(chat, db_session, user_id, {
            "action": "multi_command",
            "params": {"commands": [
                {"type": "adjustment", "wallet": "cash", "realBalance": "75rb"},
                {"type": "adjustment", "wallet": "cash", "realBalance": "75rb"},
            ]},
        })
        assert response.replies[0].text.split("\n") == [
            "✅ Adjustment cash: +Rp 75.000",
            "ℹ️ Saldo cash sudah sesuai",
        ]

    async def test_empty_commands(self, chat, db_session, user_id):
        response = await _say(chat, db_session, user_id, {"action": "multi_command", "params": {"commands": []}})
        assert response.replies[0].text == NOT_UNDERSTOOD


class TestDecisionFailures:

    async def test_unparseable_decision(self, chat, db_session, user_id):
        response = await _say(chat, db_session, user_id, DecisionParseError("bad"))
        assert response.action is None
        assert response.replies[0].text == NOT_UNDERSTOOD

    async def test_disabled_maker(self, chat, db_session, user_id):
        response = await _say(chat, db_session, user_id, None)
        assert response.replies[0].text == CANNOT_PROCESS

    async def test_transport_failure(self, chat, db_session, user_id):
        response = await _say(chat, db_session, user_id, TimeoutError("slow model"))
        assert response.replies[0].text == CANNOT_PROCESS

    async def test_help_and_other(self, chat, db_session, user_id):
        response = await _say(chat, db_session, user_id, {"action": "help"})
        assert response.replies[0].text == HELP_TEXT

        response = await _say(chat, db_session, user_id, {"action": "other", "reasoning": "ngobrol"})
        assert response.replies[0].text == NOT_UNDERSTOOD


class TestReports:

    async def test_empty_history(self, chat, db_session, user_id):
        response = await _say(chat, db_session, user_id, {"action": "show_history", "params": {}})
        assert response.replies[0].text == "📋 *Riwayat Transaksi Hari Ini*\n\nBelum ada transaksi."

    async def test_history_lists_entries(self, chat, db_session, user_id):
        await wallet_service.create_wallet(db_session, user_id, "cash")
        await ledger_service.add_expense(db_session, user_id, 12000, "kopi", category="makanan")

        response = await _say(chat, db_session, user_id, {
            "action": "show_history",
            "params": {"period": "this_month"},
        })
        text = response.replies[0].text
        assert text.startswith("📋 *Riwayat Transaksi Bulan Ini*")
        assert "1. 📉 *Pengeluaran*" in text
        assert "-Rp 12.000" in text
        assert "🏷️ makanan" in text
        assert text.endswith("💰 *Saldo Saat Ini*\n-Rp 12.000")

    async def test_stats_with_categories(self, chat, db_session, user_id):
        await wallet_service.create_wallet(db_session, user_id, "cash")
        await ledger_service.add_income(db_session, user_id, 100000, "gaji")
        await ledger_service.add_expense(db_session, user_id, 30000, "makan", category="makanan")
        await ledger_service.add_expense(db_session, user_id, 10000, "ojek", category="transportasi")

        response = await _say(chat, db_session, user_id, {"action": "show_stats", "params": {"period": "today"}})
        text = response.replies[0].text
        assert text.startswith("📊 *Statistik Hari Ini*")
        assert "🍔 makanan: Rp 30.000 (75.0%)" in text
        assert "🚗 transportasi: Rp 10.000 (25.0%)" in text
        assert text.endswith("📊 Net: Rp 60.000")

    async def test_all_time_stats_show_trends(self, chat, db_session, user_id):
        response = await _say(chat, db_session, user_id, {"action": "show_stats", "params": {"period": "all_time"}})
        assert response.replies[0].text == "📊 *Belum ada data transaksi*"

        await wallet_service.create_wallet(db_session, user_id, "cash")
        await ledger_service.add_income(db_session, user_id, 5000, "a", when=datetime(2025, 1, 2, tzinfo=timezone.utc))

        response = await _say(chat, db_session, user_id, {"action": "show_stats", "params": {"period": "all_time"}})
        text = response.replies[0].text
        assert text.startswith("📈 *Trend Bulanan* (1 bulan)")
        assert "📅 Jan 2025" in text

    async def test_show_wallets(self, chat, db_session, user_id):
        response = await _say(chat, db_session, user_id, {"action": "show_wallets"})
        assert response.replies[0].text.startswith("🏦 *Belum ada kantong*")

        await wallet_service.create_wallet(db_session, user_id, "darurat", "savings", False)
        response = await _say(chat, db_session, user_id, {"action": "show_wallets"})
        text = response.replies[0].text
        assert "1. 🐷 *darurat* (tidak dihitung)" in text
        assert text.endswith("💰 *Total Saldo*: Rp 0")


class TestHistoryAndSessions:

    async def test_turns_are_fed_back(self, chat, db_session, user_id, chat_store):
        await _say(chat, db_session, user_id, {"action": "help"}, text="bantuan")
        await _say(chat, db_session, user_id, {"action": "other"}, text="terima kasih")

        second_call = chat.decision_maker.calls[1]
        assert [turn.role for turn in second_call["history"]] == ["user", "bot"]
        assert second_call["history"][0].text == "bantuan"
        assert second_call["message"] == "terima kasih"

        session = chat_store.get(user_id)
        assert [turn.text for turn in session.history][-2:] == ["terima kasih", NOT_UNDERSTOOD]

    async def test_expired_session_logs_out_business(self, chat, db_session, user_id, chat_store):
        business = await business_service.create_business(db_session, user_id, "Toko", "admin", "pw")
        await business_service.start_business_session(db_session, user_id, business.id)
        chat_store.open(user_id, now=datetime.now(timezone.utc) - timedelta(hours=2))

        await _say(chat, db_session, user_id, {"action": "help"})
        assert await business_service.get_active_session(db_session, user_id) is None

    async def test_exit_ends_everything(self, chat, db_session, user_id, chat_store):
        business = await business_service.create_business(db_session, user_id, "Toko", "admin", "pw")
        await business_service.start_business_session(db_session, user_id, business.id)

        response = await _say(chat, db_session, user_id, {"action": "exit"})
        assert response.replies[0].text == "👋 Sesi diakhiri. Sampai jumpa!"
        assert chat_store.get(user_id) is None
        assert await business_service.get_active_session(db_session, user_id) is None


class TestBusinessActions:

    async def test_business_flow(self, chat, db_session, user_id, chat_store):
        response = await _say(chat, db_session, user_id, {
            "action": "create_business",
            "params": {"name": "Toko Bunga", "username": "admin", "password": "rahasia"},
        })
        assert response.replies[0].text.startswith("✅ Bisnis *Toko Bunga* berhasil dibuat")

        response = await _say(chat, db_session, user_id, {
            "action": "add_material",
            "params": {"name": "mawar", "price": "5rb"},
        })
        assert response.replies[0].text.startswith("🔒 Belum login ke bisnis")

        response = await _say(chat, db_session, user_id, {
            "action": "login_business",
            "params": {"name": "toko bunga", "username": "admin", "password": "salah"},
        })
        assert response.replies[0].text == "❌ Nama bisnis, username atau password salah."

        response = await _say(chat, db_session, user_id, {
            "action": "login_business",
            "params": {"name": "toko bunga", "username": "admin", "password": "rahasia"},
        })
        assert response.replies[0].text == "🔓 Berhasil login ke bisnis *Toko Bunga*"
        assert chat_store.get(user_id).business_id is not None

        response = await _say(chat, db_session, user_id, {
            "action": "add_material",
            "params": {"name": "mawar", "price": "5rb"},
        })
        assert response.replies[0].text == "✅ Bahan *mawar* ditambahkan: Rp 5.000/pcs"

        response = await _say(chat, db_session, user_id, {
            "action": "add_catalog",
            "params": {"name": "buket mawar", "materials": [{"name": "Mawar", "qty": 3}]},
        })
        text = response.replies[0].text
        assert text.startswith("✅ Katalog *buket mawar* ditambahkan\n💰 Harga: Rp 20.000")
        assert "🧾 Modal: Rp 15.000" in text
        assert "• mawar x3 @ Rp 5.000" in text

        await _say(chat, db_session, user_id, {
            "action": "business_income",
            "params": {"amount": "50rb", "description": "jual buket"},
        })
        await _say(chat, db_session, user_id, {
            "action": "business_expense",
            "params": {"amount": "20rb", "description": "beli mawar"},
        })
        response = await _say(chat, db_session, user_id, {"action": "business_stats"})
        text = response.replies[0].text
        assert "💰 Profit: Rp 30.000" in text
        assert "🛍️ Katalog: 1" in text

        response = await _say(chat, db_session, user_id, {"action": "logout_business"})
        assert response.replies[0].text == "👋 Logout dari bisnis berhasil"
        assert chat_store.get(user_id).business_id is None

    async def test_catalog_without_price_or_materials(self, chat, db_session, user_id):
        business = await business_service.create_business(db_session, user_id, "Toko", "admin", "pw")
        await business_service.start_business_session(db_session, user_id, business.id)

        response = await _say(chat, db_session, user_id, {"action": "add_catalog", "params": {"name": "misteri"}})
        assert response.replies[0].text.startswith("❌ Harga katalog belum diisi")


class TestBackupAndExport:

    async def test_backup_goes_to_owner(self, chat, db_session, user_id, tmp_path, tmp_dirs, monkeypatch):
        database = tmp_path / "finance.db"
        with sqlite3.connect(database) as conn:
            conn.execute("CREATE TABLE t (x INTEGER)")
        monkeypatch.setattr(settings, "DATABASE_URL", f"sqlite+aiosqlite:///{database}")
        monkeypatch.setattr(settings, "OWNER_HANDLE", "owner@c.us")

        response = await _say(chat, db_session, user_id, {"action": "backup_database"})
        owner_reply, user_reply = response.replies
        assert owner_reply.recipient == "owner@c.us"
        assert owner_reply.text.startswith("🔐 *Database Backup*")
        assert Path(owner_reply.attachment).exists()
        assert user_reply.recipient == user_id
        assert user_reply.text == "✅ Backup database berhasil dikirim ke owner!"

        # Only replies addressed to the sender become chat history
        bot_turns = [turn.text for turn in chat.store.get(user_id).history if turn.role == "bot"]
        assert bot_turns == [user_reply.text]

    async def test_backup_without_owner(self, chat, db_session, user_id, monkeypatch):
        monkeypatch.setattr(settings, "OWNER_HANDLE", None)
        response = await _say(chat, db_session, user_id, {"action": "backup_database"})
        assert response.replies[0].text.startswith("❌ Gagal backup database")

    async def test_export_attachment(self, chat, db_session, user_id, tmp_dirs):
        await wallet_service.create_wallet(db_session, user_id, "cash")
        await ledger_service.add_income(db_session, user_id, 100000, "gaji")
        await ledger_service.add_expense(db_session, user_id, 20000, "makan", category="makanan")

        response = await _say(chat, db_session, user_id, {
            "action": "export_excel",
            "params": {"type": "expense", "period": "all_time"},
        })
        reply = response.replies[0]
        assert "📋 Jumlah: 1 transaksi" in reply.text
        with open(reply.attachment, newline="", encoding="utf-8-sig") as f:
            rows = list(csv.reader(f))
        assert rows[0][0] == "No"
        assert rows[1][2] == "Pengeluaran"
        assert rows[1][5] == "makan"

    async def test_export_nothing(self, chat, db_session, user_id, tmp_dirs):
        response = await _say(chat, db_session, user_id, {
            "action": "export_excel",
            "params": {"type": "income", "period": "today"},
        })
        assert response.replies[0].text == "📊 Tidak ada pemasukan hari ini"
        assert response.replies[0].attachment is None


class TestChatEndpoint:

    async def test_post_message(self, client, decision_maker, chat_store):
        app.dependency_overrides[get_chat_service] = lambda: ChatService(decision_maker, chat_store)
        decision_maker.push({"action": "create_wallet", "params": {"name": "cash"}})

        response = await client.post("/chat/messages", json={"text": "buatkan kantong cash"})
        assert response.status_code == 200
        data = response.json()
        assert data["action"] == "create_wallet"
        assert data["replies"][0]["text"] == "✅ Kantong *cash* berhasil dibuat"

        # The wallet was committed with the request
        assert (await client.get("/wallets/cash")).status_code == 200

    async def test_requires_user_header(self, client):
        response = await client.post("/chat/messages", json={"text": "saldo"}, headers={"X-User-Id": ""})
        assert response.status_code == 401

    async def test_rejects_empty_text(self, client):
        response = await client.post("/chat/messages", json={"text": ""})
        assert response.status_code == 422


class TestSameUserSerialization:

    @pytest.fixture
    async def file_sessions(self, tmp_path):
        """Sessions on a file-based store, so two messages use two connections."""
        engine = create_async_engine(
            f"sqlite+aiosqlite:///{tmp_path / 'kantong.db'}", connect_args={"timeout": 30}
        )
        enable_sqlite_savepoints(engine)
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
        await engine.dispose()

    async def test_concurrent_transfers_cannot_overdraw(self, file_sessions, decision_maker, chat_store, user_id):
        async with file_sessions() as db:
            await wallet_service.create_wallet(db, user_id, "cash")
            await wallet_service.create_wallet(db, user_id, "tabungan", "savings")
            await ledger_service.add_income(db, user_id, 100000, "gaji")
            await db.commit()

        chat = ChatService(decision_maker=decision_maker, store=chat_store)
        transfer = {"action": "transfer", "params": {"amount": 60000, "fromWallet": "cash", "toWallet": "tabungan"}}
        decision_maker.push(transfer, transfer)

        async def send():
            async with file_sessions() as db:
                response = await chat.handle_message(db, user_id, "pindah 60rb ke tabungan")
            return response.replies[0].text

        texts = await asyncio.gather(send(), send())
        assert sorted(texts) == sorted(["✅ Transfer Rp 60.000: cash → tabungan", "❌ Saldo tidak cukup."])

        async with file_sessions() as db:
            assert await _balance(db, user_id, "cash") == Decimal("40000")
            assert await _balance(db, user_id, "tabungan") == Decimal("60000")
