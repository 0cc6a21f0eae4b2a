"""
Decision schemas: the typed form of the LLM's {action, params, reasoning} reply.

Every action the chat dispatcher understands is one model here, and the
`Decision` union is discriminated on `action`, so an unknown action or a
malformed parameter set is rejected at decode time instead of falling through
the dispatcher. Multi-command items are a second union, discriminated on
`type`.

The LLM writes camelCase keys (fromWallet, realBalance, includeInTotal, ...)
and amounts as numbers or as shorthand strings ("50rb"); both are accepted.
"""

import json
from decimal import Decimal
from typing import Annotated, Literal, Union

from pydantic import AliasChoices, BaseModel, BeforeValidator, ConfigDict, Field, TypeAdapter, ValidationError

from kantong.config import settings
from kantong.exceptions import DecisionParseError
from kantong.schemas.types import Amount, OptionalDate, OptionalText, WalletName

Period = Literal["today", "this_month", "last_month", "specific_month", "all_time"]


def _alias(*names: str) -> AliasChoices:
    return AliasChoices(*names)


def _default_limit(value):
    # The model sends null when the user gave no count
    return 10 if value is None else value


class Params(BaseModel):
    """Base for all params models: unknown keys from the LLM are ignored."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class _DecisionBase(BaseModel):
    model_config = ConfigDict(extra="ignore")

    reasoning: str | None = None


# ---------------------------------------------------------------------------
# Params
# ---------------------------------------------------------------------------

class NoParams(Params):
    pass


class WalletRef(Params):
    wallet: str = Field(validation_alias=_alias("wallet", "name"))


class OptionalWalletRef(Params):
    wallet: OptionalText = None


class EntryParams(Params):
    amount: Amount
    wallet: WalletName = settings.DEFAULT_WALLET
    description: OptionalText = None
    category: OptionalText = None
    date: OptionalDate = None


class TransferParams(Params):
    amount: Amount
    from_wallet: str = Field(validation_alias=_alias("from_wallet", "fromWallet"))
    to_wallet: str = Field(validation_alias=_alias("to_wallet", "toWallet"))
    description: OptionalText = None
    date: OptionalDate = None


class AdjustmentParams(Params):
    wallet: str
    real_balance: Amount = Field(validation_alias=_alias("real_balance", "realBalance"))
    description: OptionalText = None


class CreateWalletParams(Params):
    name: str
    type: Literal["regular", "savings"] = Field(
        "regular", validation_alias=_alias("type", "walletType", "wallet_type")
    )
    include_in_total: bool = Field(
        True, validation_alias=_alias("include_in_total", "includeInTotal")
    )


class UpdateWalletParams(Params):
    name: str
    type: Literal["regular", "savings"] | None = Field(
        None, validation_alias=_alias("type", "walletType", "wallet_type")
    )
    include_in_total: bool | None = Field(
        None, validation_alias=_alias("include_in_total", "includeInTotal")
    )


class DeleteWalletParams(Params):
    name: str = Field(validation_alias=_alias("name", "wallet"))


class HistoryParams(Params):
    period: Period = "today"
    month: OptionalText = None
    limit: Annotated[int, BeforeValidator(_default_limit)] = Field(10, gt=0)


class StatsParams(Params):
    period: Period = "today"
    month: OptionalText = None


class ExportParams(Params):
    type: Literal["income", "expense", "all"] = "all"
    period: Period = "this_month"
    month: OptionalText = None


# --- multi_command items ---

class CreateWalletCommand(Params):
    type: Literal["create_wallet"]
    name: str
    wallet_type: Literal["regular", "savings"] = Field(
        "regular", validation_alias=_alias("wallet_type", "walletType")
    )
    include_in_total: bool = Field(
        True, validation_alias=_alias("include_in_total", "includeInTotal")
    )


class IncomeCommand(EntryParams):
    type: Literal["income"]


class ExpenseCommand(EntryParams):
    type: Literal["expense"]


class TransferCommand(TransferParams):
    type: Literal["transfer"]


class AdjustmentCommand(AdjustmentParams):
    type: Literal["adjustment"]


Command = Annotated[
    Union[CreateWalletCommand, IncomeCommand, ExpenseCommand, TransferCommand, AdjustmentCommand],
    Field(discriminator="type"),
]


class MultiCommandParams(Params):
    commands: list[Command] = []


# --- business book ---

class CreateBusinessParams(Params):
    name: str
    username: str
    password: str
    description: str = ""


class LoginBusinessParams(Params):
    name: str
    username: str
    password: str


class AddMaterialParams(Params):
    name: str
    unit_price: Amount | None = Field(
        None, validation_alias=_alias("unit_price", "unitPrice", "price")
    )
    pack_price: Amount | None = Field(None, validation_alias=_alias("pack_price", "packPrice"))
    per_pack: int | None = Field(None, gt=0, validation_alias=_alias("per_pack", "perPack"))


class PriceParams(Params):
    price: Amount


class MaterialLineParams(Params):
    name: str
    quantity: Decimal = Field(Decimal("1"), validation_alias=_alias("quantity", "qty"))
    unit_price: Amount | None = Field(
        None, validation_alias=_alias("unit_price", "unitPrice", "price")
    )


class AddCatalogParams(Params):
    name: str
    price: Amount | None = None
    image_path: OptionalText = Field(None, validation_alias=_alias("image_path", "imagePath"))
    materials: list[MaterialLineParams] = []


class ShowCatalogsParams(Params):
    price: Amount | None = None


class BusinessEntryParams(Params):
    amount: Amount
    description: str = ""


class EmptyBouquetParams(Params):
    size: str
    price: Amount


# ---------------------------------------------------------------------------
# Decision variants
# ---------------------------------------------------------------------------

class CheckBalance(_DecisionBase):
    action: Literal["check_balance"]
    params: OptionalWalletRef = OptionalWalletRef()


class CheckWalletBalance(_DecisionBase):
    action: Literal["check_wallet_balance"]
    params: WalletRef


class Adjustment(_DecisionBase):
    action: Literal["adjustment"]
    params: AdjustmentParams


class Income(_DecisionBase):
    action: Literal["income"]
    params: EntryParams


class Expense(_DecisionBase):
    action: Literal["expense"]
    params: EntryParams


class Transfer(_DecisionBase):
    action: Literal["transfer"]
    params: TransferParams


class CreateWallet(_DecisionBase):
    action: Literal["create_wallet"]
    params: CreateWalletParams


class UpdateWallet(_DecisionBase):
    action: Literal["update_wallet"]
    params: UpdateWalletParams


class DeleteWallet(_DecisionBase):
    action: Literal["delete_wallet"]
    params: DeleteWalletParams


class MultiCommand(_DecisionBase):
    action: Literal["multi_command"]
    params: MultiCommandParams


class ShowHistory(_DecisionBase):
    action: Literal["show_history"]
    params: HistoryParams = HistoryParams()


class ShowStats(_DecisionBase):
    action: Literal["show_stats"]
    params: StatsParams = StatsParams()


class ShowWallets(_DecisionBase):
    action: Literal["show_wallets"]
    params: NoParams = NoParams()


class BackupDatabase(_DecisionBase):
    action: Literal["backup_database"]
    params: NoParams = NoParams()


class ExportExcel(_DecisionBase):
    action: Literal["export_excel"]
    params: ExportParams = ExportParams()


class Help(_DecisionBase):
    action: Literal["help"]
    params: NoParams = NoParams()


class Other(_DecisionBase):
    action: Literal["other"]
    params: NoParams = NoParams()


class CreateBusiness(_DecisionBase):
    action: Literal["create_business"]
    params: CreateBusinessParams


class LoginBusiness(_DecisionBase):
    action: Literal["login_business"]
    params: LoginBusinessParams


class LogoutBusiness(_DecisionBase):
    action: Literal["logout_business"]
    params: NoParams = NoParams()


class AddMaterial(_DecisionBase):
    action: Literal["add_material"]
    params: AddMaterialParams


class ShowMaterials(_DecisionBase):
    action: Literal["show_materials"]
    params: NoParams = NoParams()


class AddPriceTier(_DecisionBase):
    action: Literal["add_price_tier"]
    params: PriceParams


class AddCatalog(_DecisionBase):
    action: Literal["add_catalog"]
    params: AddCatalogParams


class ShowCatalogs(_DecisionBase):
    action: Literal["show_catalogs"]
    params: ShowCatalogsParams = ShowCatalogsParams()


class BusinessExpense(_DecisionBase):
    action: Literal["business_expense"]
    params: BusinessEntryParams


class BusinessIncome(_DecisionBase):
    action: Literal["business_income"]
    params: BusinessEntryParams


class BusinessStats(_DecisionBase):
    action: Literal["business_stats"]
    params: NoParams = NoParams()


class AddEmptyBouquet(_DecisionBase):
    action: Literal["add_empty_bouquet"]
    params: EmptyBouquetParams


class Exit(_DecisionBase):
    action: Literal["exit"]
    params: NoParams = NoParams()


Decision = Annotated[
    Union[
        CheckBalance, CheckWalletBalance, Adjustment, Income, Expense, Transfer,
        CreateWallet, UpdateWallet, DeleteWallet, MultiCommand,
        ShowHistory, ShowStats, ShowWallets, BackupDatabase, ExportExcel, Help, Other,
        CreateBusiness, LoginBusiness, LogoutBusiness, AddMaterial, ShowMaterials,
        AddPriceTier, AddCatalog, ShowCatalogs, BusinessExpense, BusinessIncome,
        BusinessStats, AddEmptyBouquet, Exit,
    ],
    Field(discriminator="action"),
]

_decision_adapter = TypeAdapter(Decision)


def extract_json_object(text: str) -> dict:
    """
    Pull the outermost {...} object out of a model reply.

    Replies often wrap the JSON in prose or ```json fences; everything
    before the first "{" and after the last "}" is dropped.
    """
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end <= start:
        raise DecisionParseError("No JSON object in model reply", raw=text)
    try:
        data = json.loads(text[start:end + 1])
    except json.JSONDecodeError as exc:
        raise DecisionParseError(f"Model reply is not valid JSON: {exc.msg}", raw=text) from exc
    if not isinstance(data, dict):
        raise DecisionParseError("Model reply is not a JSON object", raw=text)
    return data


def decode_decision(raw: dict | str) -> Decision:
    """
    Decode a raw decision (dict, or the model's reply text) into its variant.

    Raises DecisionParseError for an unknown action or invalid params.
    """
    data = extract_json_object(raw) if isinstance(raw, str) else raw
    if not isinstance(data, dict):
        raise DecisionParseError("Decision must be a JSON object", raw=raw)

    data = dict(data)
    if data.get("params") is None:
        data["params"] = {}

    try:
        return _decision_adapter.validate_python(data)
    except ValidationError as exc:
        first = exc.errors()[0]
        location = ".".join(str(part) for part in first["loc"])
        raise DecisionParseError(
            f"Invalid decision for action {data.get('action')!r}: {location}: {first['msg']}",
            raw=raw,
        ) from exc
