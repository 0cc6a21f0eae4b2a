"""
Decision maker: turns one chat message into a typed Decision via Gemini.

The model sees the message, the last few chat turns, the user's wallets and
today's date, and answers with {action, params, reasoning}. The reply is cut
down to its outermost JSON object and decoded by kantong.schemas.decision.

Boundaries:
  - never touches the database; wallets are passed in by the caller
  - returns None when no API key is configured, so the chat endpoint can
    answer with a "cannot process" notice
  - transport errors are retried (3 attempts, exponential wait); a reply
    that does not decode raises DecisionParseError and is not retried
"""

import asyncio
import logging
from datetime import date
from typing import Iterable, Sequence

import google.generativeai as genai
from google.api_core import exceptions as google_exceptions
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from kantong.config import settings
from kantong.schemas.decision import Decision, decode_decision, extract_json_object
from kantong.services.session_store import ChatTurn

logger = logging.getLogger(__name__)

_PLACEHOLDER_KEYS = {"", "your_gemini_api_key_here"}

_TRANSIENT_ERRORS = (
    asyncio.TimeoutError,
    google_exceptions.ServiceUnavailable,
    google_exceptions.DeadlineExceeded,
    google_exceptions.InternalServerError,
    google_exceptions.ResourceExhausted,
)

ACTIONS_GUIDE = """Kamu adalah AI financial assistant. Analisis pesan user dan TENTUKAN ACTION yang tepat berdasarkan:
1. Isi pesan user
2. Chat history sebagai konteks
3. Wallet yang dimiliki user
4. Semua fitur yang tersedia

AVAILABLE ACTIONS:
1. "check_balance" - Cek saldo total
   params: {}
2. "check_wallet_balance" - Cek saldo wallet spesifik
   params: {"wallet": "nama_wallet"}
3. "adjustment" - Adjust saldo jika user bilang saldo real berbeda
   params: {"wallet": "...", "realBalance": angka, "description": "..."}
4. "income" - Tambah pemasukan
   params: {"amount": angka, "wallet": "...", "description": "...", "category": "...", "date": "YYYY-MM-DD" atau null}
5. "expense" - Tambah pengeluaran
   params: {"amount": angka, "wallet": "...", "description": "...", "category": "...", "date": "YYYY-MM-DD" atau null}
6. "transfer" - Transfer antar wallet
   params: {"amount": angka, "fromWallet": "...", "toWallet": "...", "description": "...", "date": "YYYY-MM-DD" atau null}
7. "create_wallet" - Buat wallet baru
   params: {"name": "...", "type": "regular/savings", "includeInTotal": true/false}
8. "update_wallet" - Update pengaturan wallet yang sudah ada
   params: {"name": "...", "includeInTotal": true/false} atau {"name": "...", "type": "regular/savings"}
9. "delete_wallet" - Hapus wallet (hanya jika saldo 0)
   params: {"name": "..."}
10. "multi_command" - Untuk multiple actions dalam 1 pesan
   params: {"commands": [array of command objects]}
   Command types: create_wallet, income, expense, transfer, adjustment
   - create_wallet: {"type":"create_wallet","name":"...","walletType":"regular/savings","includeInTotal":true/false}
   - income: {"type":"income","amount":...,"wallet":"...","description":"...","category":"...","date":"YYYY-MM-DD"}
   - expense: {"type":"expense","amount":...,"wallet":"...","description":"...","category":"...","date":"YYYY-MM-DD"}
   - transfer: {"type":"transfer","amount":...,"fromWallet":"...","toWallet":"...","description":"...","date":"YYYY-MM-DD"}
   - adjustment: {"type":"adjustment","wallet":"...","realBalance":...,"description":"..."}
11. "show_history" - Tampilkan riwayat transaksi (DEFAULT: hari ini)
    params: {"period": "today|this_month|last_month|all_time|specific_month", "month": "YYYY-MM" (optional), "limit": number}
12. "show_stats" - Tampilkan statistik (DEFAULT: hari ini)
    params: {"period": "today|this_month|last_month|all_time|specific_month", "month": "YYYY-MM" (optional)}
13. "show_wallets" - Tampilkan daftar wallet
14. "backup_database" - Backup dan kirim database ke owner
15. "export_excel" - Export transaksi ke spreadsheet
    params: {"type": "income|expense|all", "period": "today|this_month|last_month|all_time|specific_month", "month": "YYYY-MM" (optional)}
16. "help" - Tampilkan bantuan
17. "other" - Tidak jelas/perlu info lebih

AKSI BISNIS:
18. "create_business" - params: {"name": "...", "username": "...", "password": "...", "description": "..."}
19. "login_business" - params: {"name": "...", "username": "...", "password": "..."}
20. "logout_business" - params: {}
21. "add_material" - params: {"name": "...", "unitPrice": angka} atau {"name": "...", "packPrice": angka, "perPack": angka}
22. "show_materials" - params: {}
23. "add_price_tier" - params: {"price": angka}
24. "add_catalog" - params: {"name": "...", "price": angka atau null, "materials": [{"name": "...", "quantity": angka}]}
25. "show_catalogs" - params: {"price": angka (optional)}
26. "business_expense" - params: {"amount": angka, "description": "..."}
27. "business_income" - params: {"amount": angka, "description": "..."}
28. "business_stats" - params: {}
29. "add_empty_bouquet" - params: {"size": "...", "price": angka}
30. "exit" - Akhiri sesi chat dan logout bisnis

LOGIC RULES:
- Jika user bilang "tabungan saya 1.5jt" dan dari history/wallet data terlihat beda -> ACTION: adjustment
- Jika user tanya "saldo tabungan" -> ACTION: check_wallet_balance dengan wallet: "tabungan"
- Jika user minta "buatkan kantong X" -> ACTION: create_wallet
- Jika user minta "backup database", "kirim database" -> ACTION: backup_database
- DEFAULT statistik adalah HARI INI, bukan bulan ini
- Parse angka: "1jt 500" = 1500000, "50rb" = 50000, "5jt" = 5000000, "2500" = 2500
- Parse tanggal relatif ("kemarin", "tanggal 24") terhadap TANGGAL HARI INI
- PENTING: Untuk multiple actions gunakan multi_command dengan array commands
- Setiap command dalam multi_command harus punya field "type"

CONTOH DECISIONS:
User: "tabungan saya sekarang 1jt 500"
-> {"action": "adjustment", "params": {"wallet": "tabungan", "realBalance": 1500000, "description": "Penyesuaian saldo tabungan"}, "reasoning": "User menyebutkan saldo real"}

User: "buatkan kantong Cash dan Tabungan"
-> {"action": "multi_command", "params": {"commands": [
  {"type":"create_wallet","name":"cash","walletType":"regular","includeInTotal":true},
  {"type":"create_wallet","name":"tabungan","walletType":"savings","includeInTotal":true}
]}, "reasoning": "User minta buat 2 kantong sekaligus"}

User: "export excel pengeluaran bulan ini"
-> {"action": "export_excel", "params": {"type": "expense", "period": "this_month"}, "reasoning": "Export pengeluaran bulan ini"}
"""

RESPONSE_FORMAT = """Berikan response dalam format JSON:
{
  "action": "nama_action",
  "params": {...},
  "reasoning": "penjelasan singkat kenapa pilih action ini"
}"""


def build_prompt(
    message: str,
    history: Sequence[ChatTurn] = (),
    wallets: Iterable = (),
    today: date | None = None,
) -> str:
    """Assemble the decision prompt. `wallets` are Wallet rows (name, balance, type, include_in_total)."""
    parts = []

    if history:
        lines = [f"CHAT HISTORY ({len(history)} terakhir):"]
        for turn in history:
            speaker = "User" if turn.role == "user" else "Bot"
            lines.append(f"{speaker}: {turn.text}")
        parts.append("\n".join(lines))

    wallets = list(wallets)
    if wallets:
        lines = ["WALLET USER:"]
        for wallet in wallets:
            lines.append(
                f"- {wallet.name}: {wallet.balance} "
                f"(type: {wallet.type}, include_in_total: {str(wallet.include_in_total).lower()})"
            )
        parts.append("\n".join(lines))

    today = today or date.today()
    parts.append(f"TANGGAL HARI INI: {today.isoformat()}")
    parts.append(ACTIONS_GUIDE)
    parts.append(f'Pesan user: "{message}"')
    parts.append(RESPONSE_FORMAT)
    return "\n\n".join(parts)


class DecisionMaker:
    """Thin async client around one Gemini model."""

    def __init__(
        self,
        api_key: str | None = None,
        model_name: str | None = None,
        timeout_seconds: float | None = None,
    ):
        self._api_key = api_key if api_key is not None else settings.GEMINI_API_KEY
        self._model_name = model_name or settings.GEMINI_MODEL
        self._timeout = timeout_seconds or settings.LLM_TIMEOUT_SECONDS
        self._model = None

        if self.enabled:
            genai.configure(api_key=self._api_key)
            self._model = genai.GenerativeModel(
                model_name=self._model_name,
                generation_config={"temperature": 0.1},
            )

    @property
    def enabled(self) -> bool:
        return (self._api_key or "").strip() not in _PLACEHOLDER_KEYS

    @retry(
        retry=retry_if_exception_type(_TRANSIENT_ERRORS),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=8),
        reraise=True,
    )
    async def _generate(self, prompt: str) -> str:
        response = await asyncio.wait_for(
            self._model.generate_content_async(prompt),
            timeout=self._timeout,
        )
        return response.text.strip()

    async def decide(
        self,
        message: str,
        history: Sequence[ChatTurn] = (),
        wallets: Iterable = (),
        today: date | None = None,
    ) -> Decision | None:
        """
        Ask the model what to do with `message`.

        Returns None when the maker is disabled (no API key).

        Raises:
            DecisionParseError: If the reply is not a valid decision.
        """
        if not self.enabled:
            return None

        prompt = build_prompt(message, history, wallets, today)
        text = await self._generate(prompt)
        decision = decode_decision(extract_json_object(text))
        logger.info("Decision: %s (%s)", decision.action, decision.reasoning or "-")
        return decision
