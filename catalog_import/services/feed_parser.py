"""Streaming parser for GEKO-format XML product feeds.

The feed is read with ``ElementTree.iterparse`` so only the ``<product>``
element currently being converted is held in memory; finished elements are
cleared and detached from their parent as soon as they have been read.

Every ``<product>`` becomes either a :class:`RawItem` or an
:class:`ItemParseError` marker, and the stream ends with a single
:class:`ParseComplete` carrying the number of items seen. Problems with the
document as a whole (wrong root, truncated file, bad encoding) raise
:class:`FatalParseError` instead.
"""
from __future__ import annotations

import logging
import os
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from pathlib import Path
from typing import BinaryIO, Iterator, Union

from catalog_import.services.errors import FatalParseError, ItemParseError

logger = logging.getLogger(__name__)

ROOT_TAGS = frozenset({"geko", "offer"})
PRODUCTS_TAG = "products"
PRODUCT_TAG = "product"

FeedSource = Union[str, "os.PathLike[str]", BinaryIO]


@dataclass
class RawPrice:
    price_type: str
    currency: str | None = None
    gross: str | None = None
    net: str | None = None


@dataclass
class RawVariant:
    code: str | None = None
    name: str | None = None
    ean: str | None = None
    weight: str | None = None
    gross_weight: str | None = None
    stock: str | None = None
    prices: list[RawPrice] = field(default_factory=list)


@dataclass
class RawImage:
    url: str | None
    main: bool = False


@dataclass
class RawDocument:
    url: str | None
    doc_type: str | None = None
    title: str | None = None
    language: str | None = None


@dataclass
class RawProperty:
    name: str | None
    value: str | None = None
    group: str | None = None
    language: str | None = None


@dataclass
class RawReference:
    """Category, producer or unit reference as written in the feed."""

    id: str | None = None
    name: str | None = None
    path: str | None = None


@dataclass
class RawItem:
    """One not yet validated ``<product>`` record; all scalars are raw strings."""

    position: int
    code: str
    name: str | None = None
    ean: str | None = None
    vat: str | None = None
    description_short: str | None = None
    description_long: str | None = None
    producer_code: str | None = None
    code_on_card: str | None = None
    url: str | None = None
    weight: str | None = None
    gross_weight: str | None = None
    category: RawReference | None = None
    producer: RawReference | None = None
    unit: RawReference | None = None
    variants: list[RawVariant] = field(default_factory=list)
    images: list[RawImage] = field(default_factory=list)
    documents: list[RawDocument] = field(default_factory=list)
    properties: list[RawProperty] = field(default_factory=list)


@dataclass(frozen=True)
class ParseComplete:
    total: int


FeedEvent = Union[RawItem, ItemParseError, ParseComplete]


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


def _value(elem: ET.Element, *names: str) -> str | None:
    """Read a single-valued field given as an attribute or a child element.

    Raises:
        ItemParseError: If the field is given more than once with different
            values, or the child carries nested elements instead of text
    """
    found: list[str] = []
    for name in names:
        attr = _clean(elem.get(name))
        if attr is not None:
            found.append(attr)
        for child in elem.findall(name):
            if len(child):
                raise ItemParseError(f"<{name}> must be a plain value, got nested elements")
            text = _clean(child.text)
            if text is not None:
                found.append(text)

    if not found:
        return None
    if any(candidate != found[0] for candidate in found[1:]):
        raise ItemParseError(f"conflicting values for {names[0]!r}: {sorted(set(found))}")
    return found[0]


def _value_or_text(elem: ET.Element, *names: str) -> str | None:
    value = _value(elem, *names)
    if value is None and not len(elem):
        value = _clean(elem.text)
    return value


def _truthy(value: str | None) -> bool:
    return (value or "").strip().lower() in {"1", "true", "yes", "y"}


def _reference(elem: ET.Element | None) -> RawReference | None:
    if elem is None:
        return None
    ref = RawReference(
        id=_value(elem, "id", "code"),
        name=_value_or_text(elem, "name"),
        path=_value(elem, "path"),
    )
    if ref.id is None and ref.name is None and ref.path is None:
        return None
    return ref


def _size_variant(size: ET.Element) -> RawVariant:
    variant = RawVariant(
        code=_value(size, "code"),
        name=_value(size, "name", "size"),
        ean=_value(size, "ean"),
        weight=_value(size, "weight"),
        gross_weight=_value(size, "grossWeight", "gross_weight"),
        stock=_value(size, "stock"),
    )
    stock = size.find("stock")
    if stock is not None and len(stock) == 0 and stock.get("quantity") is not None:
        variant.stock = _clean(stock.get("quantity"))

    for tag, price_type in (("price", "retail"), ("srp", "srp")):
        price = size.find(tag)
        if price is None or price.get("gross") is None and price.get("net") is None:
            continue
        variant.prices.append(
            RawPrice(
                price_type=price_type,
                currency=_clean(price.get("currency")),
                gross=_clean(price.get("gross")),
                net=_clean(price.get("net")),
            )
        )
    return variant


def _listed_variant(elem: ET.Element) -> RawVariant:
    variant = RawVariant(
        code=_value(elem, "code"),
        name=_value(elem, "name"),
        ean=_value(elem, "ean"),
        weight=_value(elem, "weight"),
        gross_weight=_value(elem, "grossWeight", "gross_weight"),
        stock=_value(elem, "stock", "quantity"),
    )
    for price in elem.findall("prices/price"):
        variant.prices.append(
            RawPrice(
                price_type=_clean(price.get("type")) or "retail",
                currency=_clean(price.get("currency")),
                gross=_clean(price.get("amount")) or _clean(price.get("gross")) or _clean(price.text),
                net=_clean(price.get("net")),
            )
        )
    return variant


def _build_item(elem: ET.Element, position: int) -> RawItem:
    code = _value(elem, "code")
    if code is None:
        raise ItemParseError("missing product code", position=position)

    try:
        description = elem.find("description")
        name = _value(description, "name") if description is not None else None
        item = RawItem(
            position=position,
            code=code,
            name=name or _value(elem, "name"),
            ean=_value(elem, "ean"),
            vat=_value(elem, "vat"),
            description_short=_value(description, "short") if description is not None else None,
            description_long=_value(description, "long") if description is not None else None,
            producer_code=_value(elem, "producer_code", "producerCode"),
            code_on_card=_value(elem, "code_on_card", "codeOnCard"),
            url=_value(elem, "url"),
            weight=_value(elem, "weight"),
            gross_weight=_value(elem, "grossWeight", "gross_weight"),
            category=_reference(elem.find("category")),
            producer=_reference(elem.find("producer")),
            unit=_reference(elem.find("unit")),
        )

        item.variants = [_size_variant(size) for size in elem.findall("sizes/size")]
        item.variants.extend(_listed_variant(variant) for variant in elem.findall("variants/variant"))

        images = elem.findall("images/large/image") or elem.findall("images/image")
        item.images = [RawImage(url=_value_or_text(image, "url"), main=_truthy(image.get("main"))) for image in images]

        item.documents = [
            RawDocument(
                url=_value_or_text(doc, "url"),
                doc_type=_value(doc, "type"),
                title=_value(doc, "title"),
                language=_value(doc, "language", "lang"),
            )
            for doc in elem.findall("documents/document")
        ]

        properties = elem.findall("properties/property") + elem.findall("specifications/property")
        item.properties = [
            RawProperty(
                name=_value(prop, "name"),
                value=_value_or_text(prop, "value"),
                group=_value(prop, "group"),
                language=_value(prop, "language", "lang"),
            )
            for prop in properties
        ]
    except ItemParseError as exc:
        exc.position = position
        exc.key = code
        raise
    return item


class GekoFeedParser:
    """Forward-only reader over one feed file.

    ``source`` is a filesystem path or a binary file object. Each call to
    :meth:`iter_items` or :meth:`count_items` makes one full pass; file
    objects are rewound between passes when they support seeking.
    """

    def __init__(self, source: FeedSource) -> None:
        self._source = source

    def _open(self) -> BinaryIO | str:
        if isinstance(self._source, (str, os.PathLike)):
            return str(Path(self._source))
        if self._source.seekable():
            self._source.seek(0)
        return self._source

    def _product_elements(self) -> Iterator[ET.Element]:
        stack: list[ET.Element] = []
        try:
            for event, elem in ET.iterparse(self._open(), events=("start", "end")):
                if event == "start":
                    if not stack and elem.tag not in ROOT_TAGS:
                        raise FatalParseError(
                            f"Unexpected root element <{elem.tag}>, expected one of {sorted(ROOT_TAGS)}"
                        )
                    stack.append(elem)
                    continue

                stack.pop()
                if elem.tag != PRODUCT_TAG or not stack or stack[-1].tag != PRODUCTS_TAG:
                    continue
                yield elem
                elem.clear()
                stack[-1].remove(elem)
        except ET.ParseError as exc:
            raise FatalParseError(f"Malformed XML document: {exc}", position=getattr(exc, "position", None)) from exc
        except UnicodeDecodeError as exc:
            raise FatalParseError(f"Invalid document encoding: {exc}") from exc

    def iter_items(self) -> Iterator[FeedEvent]:
        """Yield RawItem or ItemParseError per product, then ParseComplete.

        Raises:
            FatalParseError: If the document cannot be read to the end
        """
        position = 0
        for elem in self._product_elements():
            position += 1
            try:
                yield _build_item(elem, position)
            except ItemParseError as exc:
                if exc.position is None:
                    exc.position = position
                logger.debug(f"Structural error in feed item #{position}: {exc.reason}")
                yield exc
        yield ParseComplete(total=position)

    def count_items(self) -> int:
        """Count ``<product>`` entries without building records."""

        return sum(1 for _ in self._product_elements())
