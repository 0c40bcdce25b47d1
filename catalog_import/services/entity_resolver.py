"""Turn raw feed items into validated, deduplicated entity sets.

Validation happens in :meth:`EntityResolver.resolve` and never touches the
database. Foreign keys for categories, producers and units are resolved
separately by :meth:`EntityResolver.resolve_references`, inside the item's
transaction, through a per-job :class:`ReferenceCache`.
"""
from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from catalog_import.models import Category, Producer, Unit
from catalog_import.schemas.feed import (
    DocumentPayload,
    ImagePayload,
    PricePayload,
    ProductPayload,
    PropertyPayload,
    ReferencePayload,
    VariantPayload,
)
from catalog_import.services.errors import ItemValidationError
from catalog_import.services.feed_parser import RawItem, RawReference, RawVariant

if TYPE_CHECKING:
    from catalog_import.services.upsert_engine import CatalogUpsertEngine

logger = logging.getLogger(__name__)

CATEGORY = "category"
PRODUCER = "producer"
UNIT = "unit"

REFERENCE_MODELS = {CATEGORY: Category, PRODUCER: Producer, UNIT: Unit}


@dataclass
class ResolvedEntitySet:
    """Everything one feed item writes, in a shape the upsert engine accepts."""

    position: int
    product: ProductPayload
    categories: tuple[ReferencePayload, ...] = ()
    producer: ReferencePayload | None = None
    unit: ReferencePayload | None = None
    variants: tuple[VariantPayload, ...] = ()
    images: tuple[ImagePayload, ...] = ()
    documents: tuple[DocumentPayload, ...] = ()
    properties: tuple[PropertyPayload, ...] = ()
    category_id: int | None = None
    producer_id: int | None = None
    unit_id: int | None = None

    @property
    def code(self) -> str:
        return self.product.code


class ReferenceCache:
    """Job-scoped ``(kind, code) -> id`` map for categories, producers and units.

    Ids learned while an item is being written are staged and only become
    visible to later items once :meth:`commit` is called after that item's
    transaction commits; :meth:`discard` drops them when it rolls back.

    A category seen without a path is cached as unplaced, so a later mention
    that carries its path still reaches the database to link it into the tree.
    """

    def __init__(self) -> None:
        self._ids: dict[tuple[str, str], tuple[int, bool]] = {}
        self._pending: dict[tuple[str, str], tuple[int, bool]] = {}

    def get(self, kind: str, code: str, *, placed: bool = False) -> int | None:
        """Return the cached id, or None. With ``placed`` an unplaced entry is a miss."""

        key = (kind, code)
        entry = self._pending.get(key) or self._ids.get(key)
        if entry is None or (placed and not entry[1]):
            return None
        return entry[0]

    def stage(self, kind: str, code: str, ref_id: int, *, placed: bool = True) -> None:
        self._pending[(kind, code)] = (ref_id, placed)

    def staged(self) -> Counter[str]:
        """Kinds of the staged references not resolved by an earlier item."""

        return Counter(kind for kind, code in self._pending if (kind, code) not in self._ids)

    def commit(self) -> Counter[str]:
        """Publish staged ids and return how many new ones each kind gained."""

        gained = self.staged()
        self._ids.update(self._pending)
        self._pending.clear()
        return gained

    def discard(self) -> None:
        self._pending.clear()

    def __len__(self) -> int:
        return len(self._ids)


def _validation_reason(exc: ValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()))
        parts.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
    return "; ".join(parts)


def _category_chain(raw: RawReference) -> tuple[dict[str, Any], ...]:
    """Expand ``A/B/C`` into one reference per level, leaf last."""

    segments = [segment.strip() for segment in (raw.path or "").split("/") if segment.strip()]
    if not segments:
        code = raw.id or raw.name
        return ({"code": code, "name": raw.name or raw.id},)

    chain: list[dict[str, Any]] = []
    parent_code = None
    for depth in range(1, len(segments) + 1):
        path = "/".join(segments[:depth])
        is_leaf = depth == len(segments)
        code = (raw.id or path) if is_leaf else path
        name = (raw.name or segments[-1]) if is_leaf else segments[depth - 1]
        chain.append({"code": code, "name": name, "path": path, "parent_code": parent_code})
        parent_code = code
    return tuple(chain)


def _simple_reference(raw: RawReference | None) -> dict[str, Any] | None:
    if raw is None or not (raw.id or raw.name):
        return None
    return {"code": raw.id or raw.name, "name": raw.name or raw.id}


class EntityResolver:
    """Validates raw items and resolves their shared references.

    Args:
        cache: Reference cache shared by every item of one job
    """

    def __init__(self, cache: ReferenceCache | None = None) -> None:
        self.cache = cache or ReferenceCache()

    def resolve(self, raw: RawItem) -> ResolvedEntitySet:
        """Validate one raw item into a ResolvedEntitySet.

        Raises:
            ItemValidationError: If a required field is missing or a value is invalid
        """
        if not raw.name:
            raise ItemValidationError("missing product name", position=raw.position, key=raw.code)

        try:
            product = ProductPayload(
                code=raw.code,
                name=raw.name,
                ean=raw.ean,
                vat=raw.vat,
                description_short=raw.description_short,
                description_long=raw.description_long,
                producer_code=raw.producer_code,
                code_on_card=raw.code_on_card,
                url=raw.url,
            )
            categories = tuple(
                ReferencePayload(**level) for level in (_category_chain(raw.category) if raw.category else ())
            )
            producer = _simple_reference(raw.producer)
            unit = _simple_reference(raw.unit)
            entity_set = ResolvedEntitySet(
                position=raw.position,
                product=product,
                categories=categories,
                producer=ReferencePayload(**producer) if producer else None,
                unit=ReferencePayload(**unit) if unit else None,
                variants=self._variants(raw),
                images=self._images(raw),
                documents=self._documents(raw),
                properties=self._properties(raw),
            )
        except ValidationError as exc:
            raise ItemValidationError(_validation_reason(exc), position=raw.position, key=raw.code) from exc
        except ValueError as exc:
            raise ItemValidationError(str(exc), position=raw.position, key=raw.code) from exc
        return entity_set

    def _variants(self, raw: RawItem) -> tuple[VariantPayload, ...]:
        raw_variants = raw.variants or [
            RawVariant(code=raw.code, ean=raw.ean, weight=raw.weight, gross_weight=raw.gross_weight)
        ]

        # same code twice within one product: last occurrence wins
        by_code: dict[str, VariantPayload] = {}
        for raw_variant in raw_variants:
            prices: dict[tuple[str, str], PricePayload] = {}
            for raw_price in raw_variant.prices:
                price = PricePayload(
                    price_type=raw_price.price_type,
                    currency=raw_price.currency,
                    gross_price=raw_price.gross,
                    net_price=raw_price.net,
                )
                prices[(price.price_type, price.currency)] = price

            variant = VariantPayload(
                code=raw_variant.code or raw.code,
                name=raw_variant.name,
                ean=raw_variant.ean,
                weight=raw_variant.weight,
                gross_weight=raw_variant.gross_weight,
                stock_quantity=raw_variant.stock,
                prices=tuple(prices.values()),
            )
            by_code.pop(variant.code, None)
            by_code[variant.code] = variant
        return tuple(by_code.values())

    def _images(self, raw: RawItem) -> tuple[ImagePayload, ...]:
        urls: list[str] = []
        main_url = None
        for image in raw.images:
            if not image.url:
                raise ValueError("image without url")
            if image.url not in urls:
                urls.append(image.url)
            if image.main and main_url is None:
                main_url = image.url
        if urls and main_url is None:
            main_url = urls[0]
        return tuple(
            ImagePayload(url=url, position=position, is_main=url == main_url) for position, url in enumerate(urls)
        )

    def _documents(self, raw: RawItem) -> tuple[DocumentPayload, ...]:
        documents: dict[str, DocumentPayload] = {}
        for doc in raw.documents:
            if not doc.url:
                raise ValueError("document without url")
            documents[doc.url] = DocumentPayload(
                url=doc.url,
                title=doc.title,
                doc_type=doc.doc_type,
                language=doc.language,
            )
        return tuple(documents.values())

    def _properties(self, raw: RawItem) -> tuple[PropertyPayload, ...]:
        positions: dict[str, int] = {}
        properties: dict[str, PropertyPayload] = {}
        for prop in raw.properties:
            if not prop.name:
                raise ValueError("property without name")
            position = positions.setdefault(prop.name, len(positions))
            properties[prop.name] = PropertyPayload(
                name=prop.name,
                value=prop.value,
                group_name=prop.group,
                language=prop.language,
                position=position,
            )
        return tuple(properties.values())

    def resolve_references(self, engine: CatalogUpsertEngine, entity_set: ResolvedEntitySet) -> None:
        """Fill category/producer/unit ids, creating missing rows through ``engine``.

        Cache hits skip the database entirely. Must run inside the item's
        transaction; call ``cache.commit()`` or ``cache.discard()`` afterwards.
        """
        parent_id = None
        for level in entity_set.categories:
            parent_id = self._reference_id(engine, CATEGORY, level, parent_id=parent_id)
        entity_set.category_id = parent_id

        if entity_set.producer is not None:
            entity_set.producer_id = self._reference_id(engine, PRODUCER, entity_set.producer)
        if entity_set.unit is not None:
            entity_set.unit_id = self._reference_id(engine, UNIT, entity_set.unit)

    def _reference_id(
        self,
        engine: CatalogUpsertEngine,
        kind: str,
        payload: ReferencePayload,
        *,
        parent_id: int | None = None,
    ) -> int:
        placed = kind != CATEGORY or payload.path is not None
        cached = self.cache.get(kind, payload.code, placed=placed)
        if cached is not None:
            return cached
        ref_id = engine.upsert_reference(REFERENCE_MODELS[kind], payload, parent_id=parent_id)
        self.cache.stage(kind, payload.code, ref_id, placed=placed)
        logger.debug(f"Resolved {kind} {payload.code!r} -> {ref_id}")
        return ref_id
