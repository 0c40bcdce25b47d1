"""Natural-key upserts for one resolved catalog item."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Sequence

from sqlalchemy import func, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from catalog_import.models import Document, Image, Price, Product, ProductProperty, Variant
from catalog_import.models.base import Base
from catalog_import.schemas.feed import ReferencePayload, VariantPayload
from catalog_import.services.errors import CatalogImportError
from catalog_import.services.entity_resolver import ResolvedEntitySet

logger = logging.getLogger(__name__)

_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


@dataclass
class UpsertOutcome:
    """Row counts written for one item."""

    product_id: int
    product_created: bool
    variants: int = 0
    prices: int = 0
    images: int = 0
    documents: int = 0
    properties: int = 0


class CatalogUpsertEngine:
    """Writes entity sets with ``INSERT ... ON CONFLICT DO UPDATE``.

    The engine never commits: the caller owns the per-item transaction, so
    either every statement for an item lands or none does.
    """

    def __init__(self, session: Session, *, skip_images: bool = False) -> None:
        """Initialize the engine with a SQLAlchemy session.

        Args:
            session: Session bound to the item's transaction
            skip_images: Parse images but do not store them
        """
        self._session = session
        self._skip_images = skip_images
        dialect = session.get_bind().dialect.name
        try:
            self._insert = _INSERTS[dialect]
        except KeyError:
            msg = f"Upserts are not supported on the {dialect!r} dialect"
            raise CatalogImportError(msg) from None

    def _upsert(
        self,
        model: type[Base],
        values: dict[str, Any],
        conflict_columns: Sequence[str],
        *,
        insert_only: Sequence[str] = (),
    ) -> int:
        """Insert or update one row keyed on ``conflict_columns`` and return its id.

        Columns in ``insert_only`` are written for new rows but never overwrite an existing one.
        """
        stmt = self._insert(model).values(**values)
        keep = {*conflict_columns, *insert_only}
        set_ = {column: stmt.excluded[column] for column in values if column not in keep}
        if "updated_at" in model.__table__.c:
            set_["updated_at"] = func.now()
        if not set_:
            # DO NOTHING would return no row; a no-op update still yields the id
            set_ = {conflict_columns[0]: stmt.excluded[conflict_columns[0]]}
        stmt = stmt.on_conflict_do_update(index_elements=list(conflict_columns), set_=set_).returning(model.id)
        return self._session.execute(stmt).scalar_one()

    def upsert_reference(self, model: type[Base], payload: ReferencePayload, *, parent_id: int | None = None) -> int:
        """Lookup-or-create a category, producer or unit by its code.

        Returns:
            Database id of the row
        """
        values: dict[str, Any] = {"code": payload.code, "name": payload.name}
        insert_only: tuple[str, ...] = ()
        if "path" in model.__table__.c:
            values["path"] = payload.path
            values["parent_id"] = parent_id
            if payload.path is None:
                # a bare mention must not unlink a category placed in the tree earlier
                insert_only = ("path", "parent_id")
        return self._upsert(model, values, ["code"], insert_only=insert_only)

    def persist(self, entity_set: ResolvedEntitySet) -> UpsertOutcome:
        """Write the product and all of its children in dependency order.

        References must already be resolved on ``entity_set``.

        Returns:
            UpsertOutcome with the product id and per-entity row counts

        Raises:
            IntegrityError: If a unique constraint (e.g. product EAN) is violated
            DataError: If a value does not fit its column
        """
        product = entity_set.product
        existing_id = self._session.scalar(select(Product.id).where(Product.code == product.code))

        product_id = self._upsert(
            Product,
            {
                **product.model_dump(),
                "category_id": entity_set.category_id,
                "producer_id": entity_set.producer_id,
                "unit_id": entity_set.unit_id,
            },
            ["code"],
        )
        outcome = UpsertOutcome(product_id=product_id, product_created=existing_id is None)

        for variant in entity_set.variants:
            variant_id = self._upsert_variant(product_id, variant)
            outcome.variants += 1
            for price in variant.prices:
                self._upsert(
                    Price,
                    {"variant_id": variant_id, **price.model_dump()},
                    ["variant_id", "price_type", "currency"],
                )
                outcome.prices += 1

        if not self._skip_images and entity_set.images:
            for image in entity_set.images:
                self._upsert(Image, {"product_id": product_id, **image.model_dump()}, ["product_id", "url"])
                outcome.images += 1
            main_url = next(image.url for image in entity_set.images if image.is_main)
            self._session.execute(
                update(Image)
                .where(Image.product_id == product_id, Image.url != main_url, Image.is_main.is_(True))
                .values(is_main=False)
            )

        for document in entity_set.documents:
            self._upsert(Document, {"product_id": product_id, **document.model_dump()}, ["product_id", "url"])
            outcome.documents += 1

        for prop in entity_set.properties:
            self._upsert(ProductProperty, {"product_id": product_id, **prop.model_dump()}, ["product_id", "name"])
            outcome.properties += 1

        return outcome

    def _upsert_variant(self, product_id: int, variant: VariantPayload) -> int:
        values = variant.model_dump(exclude={"prices"})
        values["available"] = variant.available
        return self._upsert(Variant, {"product_id": product_id, **values}, ["product_id", "code"])
