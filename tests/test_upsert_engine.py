"""Tests for CatalogUpsertEngine against a real database."""
from __future__ import annotations

from decimal import Decimal

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from catalog_import.models import Category, Document, Image, Price, Product, ProductProperty, Variant
from catalog_import.schemas.feed import ReferencePayload
from catalog_import.services.entity_resolver import EntityResolver
from catalog_import.services.feed_parser import RawDocument, RawImage, RawItem, RawPrice, RawProperty, RawReference, RawVariant
from catalog_import.services.upsert_engine import CatalogUpsertEngine


def _count(session, model) -> int:
    return session.scalar(select(func.count()).select_from(model))


def _persist(session, raw: RawItem, *, skip_images: bool = False, resolver: EntityResolver | None = None):
    resolver = resolver or EntityResolver()
    engine = CatalogUpsertEngine(session, skip_images=skip_images)
    entity_set = resolver.resolve(raw)
    resolver.resolve_references(engine, entity_set)
    outcome = engine.persist(entity_set)
    session.commit()
    resolver.cache.commit()
    return outcome


def _raw(code="P1", **overrides) -> RawItem:
    values = {
        "position": 1,
        "code": code,
        "name": f"Product {code}",
        "category": RawReference(path="Tools/Drills"),
        "producer": RawReference(name="Bosch"),
        "variants": [
            RawVariant(code="A1", stock="3", prices=[RawPrice("retail", gross="10", net="8"), RawPrice("srp", gross="12")]),
            RawVariant(code="B2"),
        ],
        "images": [RawImage("http://img/1.jpg"), RawImage("http://img/2.jpg")],
        "properties": [RawProperty("Color", "red")],
    }
    values.update(overrides)
    return RawItem(**values)


class TestUpsertReference:
    def test_lookup_or_create_is_idempotent(self, db_session):
        engine = CatalogUpsertEngine(db_session)
        payload = ReferencePayload(code="Tools", name="Tools", path="Tools")

        first = engine.upsert_reference(Category, payload)
        second = engine.upsert_reference(Category, payload)
        db_session.commit()

        assert first == second
        assert _count(db_session, Category) == 1


    def test_bare_category_keeps_existing_parent(self, db_session):
        engine = CatalogUpsertEngine(db_session)
        parent_id = engine.upsert_reference(Category, ReferencePayload(code="Tools", name="Tools", path="Tools"))
        leaf_id = engine.upsert_reference(
            Category, ReferencePayload(code="10", name="Drills", path="Tools/Drills"), parent_id=parent_id
        )

        again = engine.upsert_reference(Category, ReferencePayload(code="10", name="Drill bits"))
        db_session.commit()

        leaf = db_session.get(Category, leaf_id)
        db_session.refresh(leaf)
        assert again == leaf_id
        assert (leaf.name, leaf.path, leaf.parent_id) == ("Drill bits", "Tools/Drills", parent_id)


class TestPersist:
    """Tests for the per-item dependency-ordered upsert."""

    def test_writes_full_entity_set(self, db_session):
        outcome = _persist(db_session, _raw())

        assert outcome.product_created is True
        assert (outcome.variants, outcome.prices, outcome.images, outcome.properties) == (2, 2, 2, 1)

        product = db_session.scalar(select(Product).where(Product.code == "P1"))
        leaf = db_session.get(Category, product.category_id)
        assert leaf.code == "Tools/Drills"
        assert db_session.get(Category, leaf.parent_id).code == "Tools"
        prices = db_session.scalars(select(Price).order_by(Price.price_type)).all()
        assert [(p.price_type, p.currency, p.gross_price) for p in prices] == [
            ("retail", "EUR", Decimal("10.00")),
            ("srp", "EUR", Decimal("12.00")),
        ]

    def test_reimport_updates_without_duplicates(self, db_session):
        _persist(db_session, _raw())
        outcome = _persist(db_session, _raw(name="Renamed"))

        assert outcome.product_created is False
        assert _count(db_session, Product) == 1
        assert _count(db_session, Variant) == 2
        assert _count(db_session, Price) == 2
        assert _count(db_session, Image) == 2
        assert _count(db_session, ProductProperty) == 1
        assert db_session.scalar(select(Product.name)) == "Renamed"

    def test_variant_codes_are_scoped_to_their_product(self, db_session):
        _persist(db_session, _raw("P1", variants=[RawVariant(code="A1")]))
        _persist(db_session, _raw("P2", variants=[RawVariant(code="A1")]))

        assert _count(db_session, Variant) == 2

    def test_main_image_moves_on_reimport(self, db_session):
        _persist(db_session, _raw())
        _persist(db_session, _raw(images=[RawImage("http://img/1.jpg"), RawImage("http://img/2.jpg", main=True)]))

        main = db_session.scalars(select(Image.url).where(Image.is_main.is_(True))).all()
        assert main == ["http://img/2.jpg"]

    def test_skip_images(self, db_session):
        outcome = _persist(db_session, _raw(), skip_images=True)

        assert outcome.images == 0
        assert _count(db_session, Image) == 0

    def test_documents_and_properties_upsert_by_key(self, db_session):
        raw = _raw(documents=[RawDocument("http://doc/1.pdf", title="Manual")])
        _persist(db_session, raw)
        _persist(db_session, _raw(documents=[RawDocument("http://doc/1.pdf", title="Manual v2")], properties=[RawProperty("Color", "blue")]))

        assert db_session.scalar(select(Document.title)) == "Manual v2"
        assert db_session.scalar(select(ProductProperty.value)) == "blue"

    def test_duplicate_ean_across_products_is_rejected(self, db_session):
        _persist(db_session, _raw("P1", ean="5901234123457"))

        with pytest.raises(IntegrityError):
            _persist(db_session, _raw("P2", ean="5901234123457"))
        db_session.rollback()

        assert _count(db_session, Product) == 1
