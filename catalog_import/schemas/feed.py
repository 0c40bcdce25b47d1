"""Pydantic models for validated feed records, ready to be upserted."""
from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Annotated, Any, Optional

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, StringConstraints, field_validator

EAN_PATTERN = r"^[0-9]{13}$"
DEFAULT_CURRENCY = "EUR"
DEFAULT_LANGUAGE = "en"
DEFAULT_PROPERTY_GROUP = "General"


def parse_decimal(value: Any) -> Decimal | None:
    """Parse feed numbers, accepting a decimal comma (``"12,50"``)."""

    if value is None or isinstance(value, Decimal):
        return value
    if isinstance(value, (int, float)):
        return Decimal(str(value))
    text = str(value).strip().replace(" ", "").replace(",", ".")
    if not text:
        return None
    try:
        number = Decimal(text)
    except InvalidOperation:
        msg = f"{value!r} is not a number"
        raise ValueError(msg) from None
    if not number.is_finite():
        msg = f"{value!r} is not a finite number"
        raise ValueError(msg)
    return number


def parse_quantity(value: Any) -> int:
    number = parse_decimal(value)
    if number is None:
        return 0
    if number != number.to_integral_value():
        msg = f"{value!r} is not a whole quantity"
        raise ValueError(msg)
    return int(number)


FeedDecimal = Annotated[Decimal | None, BeforeValidator(parse_decimal)]
Quantity = Annotated[int, BeforeValidator(parse_quantity), Field(ge=0)]
Ean = Optional[Annotated[str, StringConstraints(pattern=EAN_PATTERN)]]
NonEmptyStr = Annotated[str, Field(min_length=1)]


class FeedModel(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, frozen=True)


class ReferencePayload(FeedModel):
    """Category, producer or unit reference keyed by ``code``."""

    code: NonEmptyStr
    name: NonEmptyStr
    path: str | None = None
    parent_code: str | None = None


class PricePayload(FeedModel):
    price_type: NonEmptyStr = "retail"
    currency: NonEmptyStr = DEFAULT_CURRENCY
    gross_price: FeedDecimal = None
    net_price: FeedDecimal = None

    @field_validator("currency", mode="before")
    @classmethod
    def default_currency(cls, value: str | None) -> str:
        return (value or DEFAULT_CURRENCY).upper()


class VariantPayload(FeedModel):
    code: NonEmptyStr
    name: str | None = None
    ean: Ean = None
    weight: FeedDecimal = None
    gross_weight: FeedDecimal = None
    stock_quantity: Quantity = 0
    prices: tuple[PricePayload, ...] = ()

    @property
    def available(self) -> bool:
        return self.stock_quantity > 0


class ImagePayload(FeedModel):
    url: NonEmptyStr
    position: int = 0
    is_main: bool = False


class DocumentPayload(FeedModel):
    url: NonEmptyStr
    title: str | None = None
    doc_type: str | None = None
    language: str = DEFAULT_LANGUAGE

    @field_validator("language", mode="before")
    @classmethod
    def default_language(cls, value: str | None) -> str:
        return value or DEFAULT_LANGUAGE


class PropertyPayload(FeedModel):
    name: NonEmptyStr
    value: str | None = None
    group_name: str = DEFAULT_PROPERTY_GROUP
    language: str = DEFAULT_LANGUAGE
    position: int = 0

    @field_validator("group_name", mode="before")
    @classmethod
    def default_group(cls, value: str | None) -> str:
        return value or DEFAULT_PROPERTY_GROUP

    @field_validator("language", mode="before")
    @classmethod
    def default_language(cls, value: str | None) -> str:
        return value or DEFAULT_LANGUAGE


class ProductPayload(FeedModel):
    """Validated scalar fields of one product."""

    code: NonEmptyStr
    name: NonEmptyStr = Field(description="Display name; required by the feed contract")
    ean: Ean = None
    vat: FeedDecimal = None
    description_short: str | None = None
    description_long: str | None = None
    producer_code: str | None = None
    code_on_card: str | None = None
    url: str | None = None

    @field_validator("vat")
    @classmethod
    def vat_in_range(cls, value: Decimal | None) -> Decimal | None:
        if value is not None and not (0 <= value <= 100):
            msg = "vat must be a percentage between 0 and 100"
            raise ValueError(msg)
        return value
