"""
Chat dispatcher — one inbound chat message in, outbound reply messages out.

handle_message() is the whole conversational loop for a single message:

    open session -> record user turn -> load wallets -> decide -> dispatch
    -> record bot turns -> return replies

Messages from the same user are serialized on the session's lock, and the
message's transaction is committed before that lock is released. The
dispatch runs inside a SAVEPOINT, so an action that fails half-way leaves
nothing behind; multi_command items get a SAVEPOINT each, so one failing
item never undoes or blocks its siblings.

Domain errors (KantongError) become Indonesian reply texts keyed by their
`code`. Anything else is logged with its traceback and answered with a
generic notice: a bad message never takes the service down.

Replies are addressed to the sender, except the database backup, which goes
to OWNER_HANDLE with the backup file attached.
"""

import logging
from decimal import Decimal
from functools import lru_cache

from sqlalchemy.ext.asyncio import AsyncSession

from kantong.config import settings
from kantong.exceptions import DecisionParseError, KantongError
from kantong.models.wallet import Wallet
from kantong.schemas.chat import ChatMessageResponse, ReplyMessage
from kantong.schemas.decision import (
    AddCatalog,
    AddEmptyBouquet,
    AddMaterial,
    AddPriceTier,
    Adjustment,
    AdjustmentCommand,
    BackupDatabase,
    BusinessExpense,
    BusinessIncome,
    BusinessStats,
    CheckBalance,
    CheckWalletBalance,
    CreateBusiness,
    CreateWallet,
    CreateWalletCommand,
    DeleteWallet,
    Exit,
    Expense,
    ExpenseCommand,
    ExportExcel,
    Help,
    Income,
    IncomeCommand,
    LoginBusiness,
    LogoutBusiness,
    MultiCommand,
    Other,
    ShowCatalogs,
    ShowHistory,
    ShowMaterials,
    ShowStats,
    ShowWallets,
    Transfer,
    TransferCommand,
    UpdateWallet,
)
from kantong.services import (
    backup_service,
    business_service,
    export_service,
    ledger_service,
    report_service,
    wallet_service,
)
from kantong.services.decision_service import DecisionMaker
from kantong.services.session_store import ChatSession, SessionStore, session_store
from kantong.utils.formatting import (
    PERIOD_LABELS,
    category_icon,
    format_currency,
    format_date,
    format_datetime,
    month_label,
    short_month_label,
)
from kantong.utils.periods import local_now

logger = logging.getLogger(__name__)


CANNOT_PROCESS = '❌ Maaf, saya tidak bisa memproses pesan Anda. Ketik "help" untuk bantuan.'
NOT_UNDERSTOOD = '❓ Maaf, saya kurang paham. Ketik "help" untuk melihat panduan.'
GENERIC_ERROR = '❌ Terjadi kesalahan. Ketik "help" untuk bantuan.'

ERROR_MESSAGES = {
    "ALREADY_EXISTS": "⚠️ Kantong sudah ada.",
    "NOT_FOUND": "❌ Kantong tidak ditemukan.",
    "WALLET_NOT_FOUND": "❌ Kantong tidak ditemukan.",
    "FROM_WALLET_NOT_FOUND": "❌ Kantong asal tidak ditemukan.",
    "TO_WALLET_NOT_FOUND": "❌ Kantong tujuan tidak ditemukan.",
    "INSUFFICIENT_BALANCE": "❌ Saldo tidak cukup.",
    "SAME_WALLET": "⚠️ Kantong asal dan tujuan tidak boleh sama.",
    "NOT_EMPTY": "⚠️ Kantong masih memiliki saldo. Kosongkan dulu sebelum dihapus.",
    "NO_UPDATES": "ℹ️ Tidak ada yang diubah.",
    "INVALID_AMOUNT": "❌ Jumlah harus lebih dari 0.",
    "INVALID_PERIOD": "❌ Periode tidak valid. Gunakan format bulan YYYY-MM.",
    "BUSINESS_ALREADY_EXISTS": "⚠️ Bisnis dengan nama itu sudah ada.",
    "INVALID_CREDENTIALS": "❌ Nama bisnis, username atau password salah.",
    "NO_ACTIVE_BUSINESS": "🔒 Belum login ke bisnis. Login dulu dengan nama bisnis, username dan password.",
    "MATERIAL_ALREADY_EXISTS": "⚠️ Bahan sudah ada.",
    "MATERIAL_NOT_FOUND": "❌ Bahan tidak ditemukan.",
    "PRICE_ALREADY_EXISTS": "⚠️ Harga sudah ada di daftar harga.",
    "CATALOG_NOT_FOUND": "❌ Katalog tidak ditemukan.",
    "EMPTY_BOUQUET_ALREADY_EXISTS": "⚠️ Ukuran buket kosong sudah ada.",
    "EMPTY_BOUQUET_NOT_FOUND": "❌ Ukuran buket kosong tidak ditemukan.",
    "INVALID_DECISION": NOT_UNDERSTOOD,
}

HELP_TEXT = """🤖 *Bot Keuangan - Bantuan*

📊 *Cek Saldo:*
• "saldo" - total saldo
• "saldo tabungan" - saldo wallet tertentu

📝 *Transaksi:*
• "dapat gaji 5jt"
• "beli makan 25rb"
• "transfer 100rb ke tabungan"

🏦 *Kantong:*
• "buatkan kantong cash"
• "buat kantong tabungan"
• "daftar kantong"
• "hapus kantong darurat"

📋 *Riwayat & Statistik:*
• "riwayat" - transaksi hari ini
• "statistik bulan ini"
• "statistik selama ini"

⚖️ *Penyesuaian Saldo:*
• "tabungan saya sekarang 1.5jt"
Bot akan otomatis adjust jika beda

💾 *Backup Database:*
• "backup database"

📊 *Export:*
• "export excel" - semua transaksi bulan ini
• "export pengeluaran hari ini"

🏪 *Bisnis:*
• "buat bisnis toko bunga, username admin, password rahasia"
• "login bisnis toko bunga admin rahasia"
• "tambah bahan mawar 5rb"
• "statistik bisnis"
• "logout bisnis"

👋 *Selesai:*
• "exit" - akhiri sesi

_Semua perintah diproses dengan AI - cukup chat natural!_"""


def error_message(exc: KantongError) -> str:
    """User-facing text for a domain error."""
    if exc.code == "BACKUP_FAILED":
        return f"❌ Gagal backup database: {exc.detail}"
    return ERROR_MESSAGES.get(exc.code, f"❌ Gagal: {exc.detail}")


def _signed(amount: Decimal) -> str:
    return ("+" if amount > 0 else "") + format_currency(amount)


def _wallet_icon(wallet: Wallet) -> str:
    return "🐷" if wallet.type == "savings" else "💼"


def _date_suffix(value) -> str:
    return f" ({value.isoformat()})" if value else ""


def _period_label(period: str, month: str | None) -> str:
    if period == "specific_month" and month:
        return month_label(month)
    return PERIOD_LABELS[period]


class ChatService:
    """Dispatches decoded decisions to the ledger, report and business services."""

    def __init__(
        self,
        decision_maker: DecisionMaker | None = None,
        store: SessionStore | None = None,
    ):
        self.decision_maker = decision_maker if decision_maker is not None else DecisionMaker()
        self.store = store if store is not None else session_store

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    async def handle_message(self, db: AsyncSession, user_id: str, text: str) -> ChatMessageResponse:
        session, expired = self.store.open(user_id)

        async with session.lock:
            if expired:
                await business_service.end_business_session(db, user_id)
                logger.info("Chat session of %s expired; business session closed", user_id)

            text = text.strip()
            history = session.recent_turns(settings.CHAT_CONTEXT_TURNS)
            session.add_turn("user", text)
            logger.info("Message from %s: %s", user_id, text)

            wallets = await wallet_service.list_wallets(db, user_id)

            action = None
            try:
                decision = await self.decision_maker.decide(
                    text, history, wallets, today=local_now().date()
                )
            except DecisionParseError as exc:
                logger.warning("Undecodable decision for %s: %s", user_id, exc.detail)
                decision = None
                replies = [self._reply(user_id, NOT_UNDERSTOOD)]
            except Exception:
                logger.exception("Decision step failed for %s", user_id)
                decision = None
                replies = [self._reply(user_id, CANNOT_PROCESS)]
            else:
                if decision is None:
                    replies = [self._reply(user_id, CANNOT_PROCESS)]

            if decision is not None:
                action = decision.action
                replies = await self._run(db, session, decision, wallets)

            for reply in replies:
                if reply.recipient == user_id:
                    session.add_turn("bot", reply.text)

            # Commit before the next message of this user may start
            await db.commit()

        return ChatMessageResponse(action=action, replies=replies)

    async def _run(self, db: AsyncSession, session: ChatSession, decision, wallets) -> list[ReplyMessage]:
        user_id = session.user_id
        try:
            async with db.begin_nested():
                return await self._dispatch(db, session, decision, wallets)
        except KantongError as exc:
            logger.info("%s failed for %s: %s %s", decision.action, user_id, exc.code, exc.detail)
            return [self._reply(user_id, error_message(exc))]
        except Exception:
            logger.exception("Unhandled error while handling %s for %s", decision.action, user_id)
            return [self._reply(user_id, GENERIC_ERROR)]

    @staticmethod
    def _reply(recipient: str, text: str, attachment: str | None = None) -> ReplyMessage:
        return ReplyMessage(recipient=recipient, text=text, attachment=attachment)

    async def _dispatch(self, db: AsyncSession, session: ChatSession, decision, wallets) -> list[ReplyMessage]:
        user_id = session.user_id
        match decision:
            case CheckBalance(params=params) if params.wallet:
                text = self._wallet_balance_text(params.wallet, wallets)
            case CheckBalance():
                text = await self._balance_text(db, user_id, wallets)
            case CheckWalletBalance(params=params):
                text = self._wallet_balance_text(params.wallet, wallets)
            case Adjustment(params=params):
                text = await self._adjustment(db, user_id, params, wallets)
            case Income(params=params):
                result = await ledger_service.add_income(
                    db, user_id, params.amount, params.description,
                    params.wallet, params.category, params.date,
                )
                text = (
                    f"✅ Pemasukan {format_currency(params.amount)} ke "
                    f"{result['wallet_name']}{_date_suffix(params.date)}"
                )
            case Expense(params=params):
                result = await ledger_service.add_expense(
                    db, user_id, params.amount, params.description,
                    params.wallet, params.category, params.date,
                )
                text = (
                    f"✅ Pengeluaran {format_currency(params.amount)} dari "
                    f"{result['wallet_name']}{_date_suffix(params.date)}"
                )
            case Transfer(params=params):
                result = await ledger_service.transfer_between_wallets(
                    db, user_id, params.amount, params.from_wallet, params.to_wallet,
                    params.description, params.date,
                )
                text = (
                    f"✅ Transfer {format_currency(result['amount'])}: "
                    f"{result['from_wallet']} → {result['to_wallet']}"
                )
            case CreateWallet(params=params):
                wallet = await wallet_service.create_wallet(
                    db, user_id, params.name, params.type, params.include_in_total
                )
                text = f"✅ Kantong *{wallet.name}* berhasil dibuat"
            case UpdateWallet(params=params):
                wallet = await wallet_service.update_wallet(
                    db, user_id, params.name,
                    wallet_type=params.type, include_in_total=params.include_in_total,
                )
                text = f"✅ Kantong *{wallet.name}* berhasil diupdate"
                if params.include_in_total is not None:
                    mark = "✓" if wallet.include_in_total else "✗"
                    text += f"\n{mark} Dihitung dalam total saldo"
            case DeleteWallet(params=params):
                name = await wallet_service.delete_wallet(db, user_id, params.name)
                text = f"🗑️ Kantong *{name}* berhasil dihapus"
            case MultiCommand(params=params):
                text = await self._multi_command(db, user_id, params.commands)
            case ShowHistory(params=params):
                text = await self._history(db, user_id, params.period, params.month, params.limit)
            case ShowStats(params=params):
                text = await self._stats(db, user_id, params.period, params.month)
            case ShowWallets():
                text = await self._wallets_text(db, user_id)
            case BackupDatabase():
                return await self._backup(user_id)
            case ExportExcel(params=params):
                return await self._export(db, user_id, params.type, params.period, params.month)
            case Help():
                text = HELP_TEXT
            case Other():
                text = NOT_UNDERSTOOD
            case CreateBusiness(params=params):
                business = await business_service.create_business(
                    db, user_id, params.name, params.username, params.password, params.description
                )
                text = (
                    f"✅ Bisnis *{business.name}* berhasil dibuat\n\n"
                    "Login dengan nama bisnis, username dan password untuk mulai mencatat."
                )
            case LoginBusiness(params=params):
                business = await business_service.login_business(
                    db, user_id, params.name, params.username, params.password
                )
                session.business_id = business.id
                text = f"🔓 Berhasil login ke bisnis *{business.name}*"
            case LogoutBusiness():
                ended = await business_service.end_business_session(db, user_id)
                session.business_id = None
                text = "👋 Logout dari bisnis berhasil" if ended else "ℹ️ Tidak ada bisnis yang sedang aktif."
            case Exit():
                await business_service.end_business_session(db, user_id)
                self.store.end(user_id)
                text = "👋 Sesi diakhiri. Sampai jumpa!"
            case _:
                text = await self._business_action(db, session, decision)

        return [self._reply(user_id, text)]

    # ------------------------------------------------------------------
    # Wallets and ledger
    # ------------------------------------------------------------------

    async def _balance_text(self, db: AsyncSession, user_id: str, wallets: list[Wallet]) -> str:
        total = await report_service.get_balance(db, user_id)
        text = f"💰 *Saldo Total*\n{format_currency(total)}\n\n"
        if wallets:
            text += "📊 *Per Kantong:*\n"
            for wallet in wallets:
                text += f"{_wallet_icon(wallet)} {wallet.name}: {format_currency(wallet.balance)}\n"
        return text.rstrip()

    @staticmethod
    def _find_loaded(name: str, wallets: list[Wallet]) -> Wallet | None:
        normalized = wallet_service.normalize_wallet_name(name)
        return next((wallet for wallet in wallets if wallet.name == normalized), None)

    def _wallet_balance_text(self, name: str, wallets: list[Wallet]) -> str:
        wallet = self._find_loaded(name, wallets)
        if wallet is None:
            return f"❌ Kantong *{name}* tidak ditemukan."
        return f"💰 Saldo *{wallet.name}*: {format_currency(wallet.balance)}"

    async def _adjustment(self, db: AsyncSession, user_id: str, params, wallets: list[Wallet]) -> str:
        if self._find_loaded(params.wallet, wallets) is None:
            return f"❌ Kantong *{params.wallet}* tidak ditemukan."

        result = await ledger_service.adjust_wallet_balance(
            db, user_id, params.wallet, current_balance=None,
            real_balance=params.real_balance, description=params.description,
        )
        name = result["wallet_name"]
        if result["difference"] == 0:
            return f"ℹ️ Saldo {name} sudah sesuai ({format_currency(params.real_balance)})"

        recorded = params.real_balance - result["difference"]
        return (
            "✅ *Penyesuaian Saldo*\n\n"
            f"Kantong: {name}\n"
            f"Saldo tercatat: {format_currency(recorded)}\n"
            f"Saldo sebenarnya: {format_currency(params.real_balance)}\n"
            f"Selisih: {_signed(result['difference'])}\n\n"
            f"💰 Saldo baru: {format_currency(result['new_balance'])}"
        )

    async def _multi_command(self, db: AsyncSession, user_id: str, commands) -> str:
        if not commands:
            return NOT_UNDERSTOOD

        lines = []
        for command in commands:
            try:
                async with db.begin_nested():
                    lines.append(await self._run_command(db, user_id, command))
            except KantongError as exc:
                if exc.code == "ALREADY_EXISTS":
                    lines.append(f"⚠️ Kantong *{exc.name}* sudah ada")
                else:
                    lines.append(error_message(exc).rstrip("."))
            except Exception:
                logger.exception("multi_command item %s failed for %s", command.type, user_id)
                lines.append("❌ Gagal: terjadi kesalahan")
        return "\n".join(lines)

    async def _run_command(self, db: AsyncSession, user_id: str, command) -> str:
        match command:
            case CreateWalletCommand():
                wallet = await wallet_service.create_wallet(
                    db, user_id, command.name, command.wallet_type, command.include_in_total
                )
                return f"✅ Kantong *{wallet.name}* dibuat"
            case TransferCommand():
                result = await ledger_service.transfer_between_wallets(
                    db, user_id, command.amount, command.from_wallet, command.to_wallet,
                    command.description, command.date,
                )
                return (
                    f"✅ Transfer {format_currency(result['amount'])}: "
                    f"{result['from_wallet']} → {result['to_wallet']}"
                )
            case IncomeCommand():
                await ledger_service.add_income(
                    db, user_id, command.amount, command.description,
                    command.wallet, command.category, command.date,
                )
                return f"✅ Pemasukan {format_currency(command.amount)}"
            case ExpenseCommand():
                await ledger_service.add_expense(
                    db, user_id, command.amount, command.description,
                    command.wallet, command.category, command.date,
                )
                return f"✅ Pengeluaran {format_currency(command.amount)}"
            case AdjustmentCommand():
                result = await ledger_service.adjust_wallet_balance(
                    db, user_id, command.wallet, current_balance=None,
                    real_balance=command.real_balance, description=command.description,
                )
                if result["difference"] == 0:
                    return f"ℹ️ Saldo {result['wallet_name']} sudah sesuai"
                return f"✅ Adjustment {result['wallet_name']}: {_signed(result['difference'])}"
        raise ValueError(f"Unknown command type {command.type!r}")

    # ------------------------------------------------------------------
    # Reports
    # ------------------------------------------------------------------

    async def _history(self, db: AsyncSession, user_id: str, period: str, month: str | None, limit: int) -> str:
        transactions = await report_service.get_history_by_period(db, user_id, period, month, limit)

        if not transactions:
            return f"📋 *Riwayat Transaksi {_period_label(period, month)}*\n\nBelum ada transaksi."

        label = _period_label(period, month)
        if period == "all_time":
            label = f"Semua ({len(transactions)} transaksi)"

        text = f"📋 *Riwayat Transaksi {label}*\n\n"
        for index, tx in enumerate(transactions, start=1):
            income = tx.type == "income"
            text += f"{index}. {'📈' if income else '📉'} *{'Pemasukan' if income else 'Pengeluaran'}*\n"
            text += f"   {'+' if income else '-'}{format_currency(tx.amount)}\n"
            text += f"   📝 {tx.description or '-'}\n"
            if tx.category:
                text += f"   🏷️ {tx.category}\n"
            text += f"   💼 {tx.wallet_name}\n"
            text += f"   🕐 {format_datetime(tx.created_at)}\n\n"

        balance = await report_service.get_balance(db, user_id)
        text += f"💰 *Saldo Saat Ini*\n{format_currency(balance)}"
        return text

    async def _stats(self, db: AsyncSession, user_id: str, period: str, month: str | None) -> str:
        if period == "all_time":
            return await self._trends_text(db, user_id)

        balance = await report_service.get_balance(db, user_id)

        label = _period_label(period, month)
        stats = await report_service.get_period_stats(db, user_id, period, month)
        categories = await report_service.get_category_stats(db, user_id, period, month)

        text = (
            f"📊 *Statistik {label}*\n\n"
            f"📈 Pemasukan: {format_currency(stats['income'])}\n"
            f"   ({stats['income_count']} transaksi)\n\n"
            f"📉 Pengeluaran: {format_currency(stats['expense'])}\n"
            f"   ({stats['expense_count']} transaksi)\n\n"
        )

        if not categories:
            empty = "hari ini" if period == "today" else "di periode ini"
            return text + (
                f"💰 Saldo: {format_currency(balance)}\n\n"
                f"📊 Net: {format_currency(stats['net'])}\n\n"
                f"_Belum ada pengeluaran {empty}_"
            )

        total_expense = sum((row["total"] for row in categories), Decimal("0"))
        text += "🏷️ *Pengeluaran per Kategori:*\n"
        for row in categories:
            share = row["total"] / total_expense * 100 if total_expense else Decimal("0")
            text += (
                f"{category_icon(row['category'])} {row['category']}: "
                f"{format_currency(row['total'])} ({share:.1f}%)\n"
            )
        text += f"\n💰 Saldo: {format_currency(balance)}\n"
        text += f"📊 Net: {format_currency(stats['net'])}"
        return text

    async def _trends_text(self, db: AsyncSession, user_id: str) -> str:
        trends = await report_service.get_monthly_trends(db, user_id)
        if not trends:
            return "📊 *Belum ada data transaksi*"

        totals = await report_service.get_all_time_stats(db, user_id)
        first = await report_service.get_first_transaction_date(db, user_id)

        text = f"📈 *Trend Bulanan* ({len(trends)} bulan)\n"
        if first is not None:
            text += f"Sejak {format_date(first)}\n"
        text += "\n"
        for key, bucket in trends.items():
            net = bucket["income"] - bucket["expense"]
            text += (
                f"📅 {short_month_label(key)}\n"
                f"   📈 {format_currency(bucket['income'])}  📉 {format_currency(bucket['expense'])}"
                f"  📊 {format_currency(net)}\n"
            )
        text += (
            f"\n💰 Total Pemasukan: {format_currency(totals['income'])}\n"
            f"💸 Total Pengeluaran: {format_currency(totals['expense'])}\n"
            f"📊 Net: {format_currency(totals['net'])}"
        )
        return text

    async def _wallets_text(self, db: AsyncSession, user_id: str) -> str:
        wallets = await wallet_service.list_wallets(db, user_id)
        if not wallets:
            return (
                "🏦 *Belum ada kantong*\n\nBuat kantong dulu dengan:\n"
                '• "buatkan kantong cash"\n• "buat kantong tabungan"'
            )

        total = await report_service.get_balance(db, user_id)
        text = "🏦 *Kantong Anda*\n\n"
        for index, wallet in enumerate(wallets, start=1):
            excluded = "" if wallet.include_in_total else " (tidak dihitung)"
            text += f"{index}. {_wallet_icon(wallet)} *{wallet.name}*{excluded}\n"
            text += f"   Saldo: {format_currency(wallet.balance)}\n"
            text += f"   Tipe: {wallet.type}\n\n"
        text += f"💰 *Total Saldo*: {format_currency(total)}"
        return text

    # ------------------------------------------------------------------
    # Backup and export
    # ------------------------------------------------------------------

    async def _backup(self, user_id: str) -> list[ReplyMessage]:
        owner = settings.OWNER_HANDLE
        if not owner:
            return [self._reply(user_id, "❌ Gagal backup database: OWNER_HANDLE belum dikonfigurasi")]

        backup = await backup_service.create_backup()
        backup_service.clean_old_backups()

        caption = (
            "🔐 *Database Backup*\n\n"
            f"📅 Tanggal: {format_datetime(backup['timestamp'])}\n"
            f"📦 File: {backup['file_name']}\n"
            f"💾 Size: {backup['size'] / 1024:.2f} KB"
        )
        return [
            self._reply(owner, caption, attachment=backup["file_path"]),
            self._reply(user_id, "✅ Backup database berhasil dikirim ke owner!"),
        ]

    async def _export(
        self, db: AsyncSession, user_id: str, export_type: str, period: str, month: str | None
    ) -> list[ReplyMessage]:
        result = await export_service.export_transactions(db, user_id, export_type, period, month)

        if result["count"] == 0:
            kind = {"income": "pemasukan", "expense": "pengeluaran"}.get(export_type, "transaksi")
            return [self._reply(user_id, f"📊 Tidak ada {kind} {_period_label(period, month).lower()}")]

        caption = (
            "📊 *Export Transaksi*\n\n"
            f"📄 File: {result['file_name']}\n"
            f"📋 Jumlah: {result['count']} transaksi\n"
            f"📈 Total Pemasukan: {format_currency(result['total_income'])}\n"
            f"📉 Total Pengeluaran: {format_currency(result['total_expense'])}"
        )
        return [self._reply(user_id, caption, attachment=result["file_path"])]

    # ------------------------------------------------------------------
    # Business book (requires a logged-in business)
    # ------------------------------------------------------------------

    async def _business_action(self, db: AsyncSession, session: ChatSession, decision) -> str:
        business = await business_service.require_active_business(db, session.user_id)
        session.business_id = business.id
        params = decision.params

        match decision:
            case AddMaterial():
                material = await business_service.add_material(
                    db, business.id, params.name, params.unit_price, params.pack_price, params.per_pack
                )
                text = f"✅ Bahan *{material.name}* ditambahkan: {format_currency(material.unit_price)}/pcs"
                if material.pack_price is not None and material.per_pack:
                    text += f"\n📦 Pack {format_currency(material.pack_price)} isi {material.per_pack}"
                return text

            case ShowMaterials():
                materials = await business_service.list_materials(db, business.id)
                if not materials:
                    return "📦 Belum ada bahan."
                text = f"📦 *Daftar Bahan {business.name}*\n\n"
                for index, material in enumerate(materials, start=1):
                    text += f"{index}. {material.name}: {format_currency(material.unit_price)}/pcs\n"
                return text.rstrip()

            case AddPriceTier():
                tier = await business_service.add_price_tier(db, business.id, params.price)
                return f"✅ Harga {format_currency(tier.price)} ditambahkan ke daftar harga"

            case AddCatalog():
                lines = await business_service.resolve_material_lines(db, business.id, params.materials)
                cost = business_service.calculate_cost(lines) if lines else None
                price = params.price
                if price is None:
                    if cost is None:
                        return "❌ Harga katalog belum diisi. Sebutkan harga atau bahan-bahannya."
                    price = await business_service.suggest_selling_price(db, business.id, cost)

                catalog = await business_service.add_catalog(
                    db, business.id, params.name, price, params.image_path,
                    production_cost=cost, production_materials=lines or None,
                )
                text = f"✅ Katalog *{catalog.name}* ditambahkan\n💰 Harga: {format_currency(catalog.price)}"
                if cost is not None:
                    text += f"\n🧾 Modal: {format_currency(cost)}\n📦 Bahan:"
                    for line in lines:
                        text += (
                            f"\n• {line['name']} x{line['quantity'].normalize():f} "
                            f"@ {format_currency(line['unit_price'])}"
                        )
                return text

            case ShowCatalogs():
                if params.price is not None:
                    catalogs = await business_service.list_catalogs_by_price(db, business.id, params.price)
                else:
                    catalogs = await business_service.list_catalogs(db, business.id)
                if not catalogs:
                    return "🛍️ Belum ada katalog."
                text = f"🛍️ *Katalog {business.name}*\n\n"
                for index, catalog in enumerate(catalogs, start=1):
                    text += f"{index}. {catalog.name} - {format_currency(catalog.price)}\n"
                return text.rstrip()

            case BusinessExpense():
                expense = await business_service.add_business_expense(
                    db, business.id, params.description, params.amount
                )
                return f"✅ Pengeluaran bisnis {format_currency(expense.amount)} dicatat: {expense.description}"

            case BusinessIncome():
                income = await business_service.add_business_income(
                    db, business.id, params.description, params.amount
                )
                return f"✅ Pemasukan bisnis {format_currency(income.amount)} dicatat: {income.description}"

            case BusinessStats():
                stats = await business_service.get_business_stats(db, business.id)
                return (
                    f"📊 *Statistik Bisnis {business.name}*\n\n"
                    f"📈 Pemasukan: {format_currency(stats['total_income'])}\n"
                    f"📉 Pengeluaran: {format_currency(stats['total_expense'])}\n"
                    f"💰 Profit: {format_currency(stats['profit'])}\n\n"
                    f"📦 Bahan: {stats['materials_count']}\n"
                    f"🛍️ Katalog: {stats['catalogs_count']}\n"
                    f"🧾 Pengeluaran belum dicatat: {stats['unrecorded_expenses_count']}"
                )

            case AddEmptyBouquet():
                bouquet = await business_service.add_empty_bouquet(db, business.id, params.size, params.price)
                return f"✅ Buket kosong ukuran *{bouquet.size}*: {format_currency(bouquet.price)}"

        logger.warning("No handler for action %s", decision.action)
        return NOT_UNDERSTOOD


@lru_cache
def get_chat_service() -> ChatService:
    """FastAPI dependency; overridden in tests with a fake decision maker."""
    return ChatService()
