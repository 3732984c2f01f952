"""Order, entitlement and product data models."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, Field, field_validator

RECORD_PREFIX = "v2|"


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return ""


def _int_or_none(value: Any) -> int | None:
    if isinstance(value, bool) or value in (None, ""):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _codes(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(code) for code in value if code]


@dataclass(slots=True)
class RawEntitlement:
    machine_name: str
    human_name: str
    key_type: str
    expiry_date: str = ""
    custom_instructions_html: str = ""
    is_expired: bool = False
    is_gift: bool = False
    sold_out: bool = False
    steam_app_id: int | None = None
    redeemed_key_val: str = ""
    keyindex: int | None = None
    direct_redeem: bool = False
    exclusive_countries: list[str] = field(default_factory=list)
    disallowed_countries: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> RawEntitlement:
        return cls(
            machine_name=_text(data.get("machine_name")),
            human_name=_text(data.get("human_name")),
            key_type=_text(data.get("key_type")),
            expiry_date=_text(data.get("expiry_date")),
            custom_instructions_html=_text(data.get("custom_instructions_html")),
            is_expired=bool(data.get("is_expired")),
            is_gift=bool(data.get("is_gift")),
            sold_out=bool(data.get("sold_out")),
            steam_app_id=_int_or_none(data.get("steam_app_id")),
            redeemed_key_val=_text(data.get("redeemed_key_val")),
            keyindex=_int_or_none(data.get("keyindex")),
            direct_redeem=bool(data.get("direct_redeem")),
            exclusive_countries=_codes(data.get("exclusive_countries")),
            disallowed_countries=_codes(data.get("disallowed_countries")),
        )


@dataclass(slots=True)
class RawOrder:
    gamekey: str
    created: str
    category: str
    human_name: str
    choice_url: str = ""
    entitlements: list[RawEntitlement] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], key: str | None = None) -> RawOrder:
        product = data.get("product")
        if not isinstance(product, Mapping):
            product = {}
        tpkd_dict = data.get("tpkd_dict")
        all_tpks = tpkd_dict.get("all_tpks") if isinstance(tpkd_dict, Mapping) else None
        if not isinstance(all_tpks, list):
            all_tpks = []
        gamekey = _text(data.get("gamekey"))
        if not gamekey and key:
            gamekey = key.removeprefix(RECORD_PREFIX)
        return cls(
            gamekey=gamekey,
            created=_text(data.get("created")),
            category=_text(product.get("category")),
            human_name=_text(product.get("human_name")),
            choice_url=_text(product.get("choice_url")),
            entitlements=[RawEntitlement.from_dict(tpk) for tpk in all_tpks if isinstance(tpk, Mapping)],
        )


@dataclass(frozen=True, slots=True)
class Product:
    machine_name: str
    category: str
    category_id: str
    category_human_name: str
    human_name: str
    key_type: str
    type: str
    redeemed_key_val: str
    is_gift: bool
    is_expired: bool
    owned: str
    expiry_date: str = ""
    steam_app_id: int | None = None
    created: str = ""
    keyindex: int | None = None
    exclusive_countries: tuple[str, ...] = ()
    disallowed_countries: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class RedeemTarget:
    machine_name: str
    category_id: str
    keyindex: int | None = 0


@dataclass(slots=True)
class ChoiceOrder:
    gamekey: str
    choice_url: str
    human_name: str


@dataclass(slots=True)
class RedeemedChoiceKey:
    game_name: str
    machine_name: str
    key_type: str
    key: str
    choice_title: str
    error: str | None = None


class ChoiceTpkd(BaseModel):
    model_config = ConfigDict(extra="ignore")

    machine_name: str = ""
    key_type: str = ""
    human_name: str = ""
    is_expired: bool = False
    sold_out: bool = False
    steam_app_id: int | None = None
    redeemed_key_val: str | None = None

    @field_validator("is_expired", "sold_out", mode="before")
    @classmethod
    def _null_is_false(cls, value: Any) -> bool:
        return bool(value)

    @field_validator("machine_name", "key_type", "human_name", mode="before")
    @classmethod
    def _null_is_empty(cls, value: Any) -> str:
        return value or ""

    @property
    def is_keyless(self) -> bool:
        return self.key_type.endswith("_keyless")


class ChoiceGameData(BaseModel):
    model_config = ConfigDict(extra="ignore")

    title: str = ""
    tpkds: list[ChoiceTpkd] = Field(default_factory=list)

    @field_validator("title", mode="before")
    @classmethod
    def _null_title(cls, value: Any) -> str:
        return value or ""

    @field_validator("tpkds", mode="before")
    @classmethod
    def _null_is_empty(cls, value: Any) -> Any:
        return value or []


class ContentChoiceData(BaseModel):
    model_config = ConfigDict(extra="ignore")

    display_order: list[str] = Field(default_factory=list)
    game_data: dict[str, ChoiceGameData] = Field(default_factory=dict)


class ChoicesMade(BaseModel):
    model_config = ConfigDict(extra="ignore")

    choices_made: list[str] = Field(default_factory=list)

    @field_validator("choices_made", mode="before")
    @classmethod
    def _null_is_empty(cls, value: Any) -> Any:
        return value or []


class ContentChoiceOptions(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    gamekey: str = ""
    can_redeem_games: bool = Field(False, alias="canRedeemGames")
    title: str = ""
    content_choice_data: ContentChoiceData = Field(alias="contentChoiceData")
    content_choices_made: dict[str, ChoicesMade] = Field(default_factory=dict, alias="contentChoicesMade")

    @field_validator("content_choices_made", mode="before")
    @classmethod
    def _null_is_empty(cls, value: Any) -> Any:
        return value or {}

    def already_chosen(self) -> set[str]:
        return {item for made in self.content_choices_made.values() for item in made.choices_made}


class ChoicePageData(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    parent_identifier: str = Field("initial", alias="parentIdentifier")
    product_is_choiceless: bool = Field(False, alias="productIsChoiceless")
    content_choice_options: ContentChoiceOptions = Field(alias="contentChoiceOptions")

    @field_validator("parent_identifier", mode="before")
    @classmethod
    def _default_parent(cls, value: Any) -> Any:
        return value or "initial"
