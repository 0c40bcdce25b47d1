"""Tests for EntityResolver validation, dedup and reference caching."""
from __future__ import annotations

from decimal import Decimal
from unittest.mock import Mock

import pytest

from catalog_import.models import Category, Producer, Unit
from catalog_import.services.entity_resolver import CATEGORY, PRODUCER, EntityResolver, ReferenceCache
from catalog_import.services.errors import ItemValidationError
from catalog_import.services.feed_parser import (
    RawDocument,
    RawImage,
    RawItem,
    RawPrice,
    RawProperty,
    RawReference,
    RawVariant,
)


def _item(**overrides) -> RawItem:
    values = {"position": 1, "code": "P1", "name": "Product"}
    values.update(overrides)
    return RawItem(**values)


class TestResolveValidation:
    """Field validation turns bad values into ItemValidationError."""

    def test_minimal_item_gets_default_variant(self):
        entity_set = EntityResolver().resolve(_item(ean="5901234123457"))

        assert entity_set.product.code == "P1"
        assert [v.code for v in entity_set.variants] == ["P1"]
        assert entity_set.variants[0].ean == "5901234123457"

    def test_missing_name(self):
        with pytest.raises(ItemValidationError) as exc_info:
            EntityResolver().resolve(_item(name=None, position=4))

        assert exc_info.value.key == "P1"
        assert exc_info.value.position == 4
        assert "name" in exc_info.value.reason

    @pytest.mark.parametrize("ean", ["123", "590123412345X", "59012341234570", "\u0661" * 13])
    def test_invalid_product_ean(self, ean):
        with pytest.raises(ItemValidationError, match="ean"):
            EntityResolver().resolve(_item(ean=ean))

    def test_invalid_variant_ean(self):
        with pytest.raises(ItemValidationError):
            EntityResolver().resolve(_item(variants=[RawVariant(code="V1", ean="12")]))

    def test_decimal_comma_is_accepted(self):
        entity_set = EntityResolver().resolve(
            _item(
                vat="8,5",
                variants=[RawVariant(code="V1", weight="1,25", prices=[RawPrice("retail", gross="12,30", net="10,00")])],
            )
        )

        assert entity_set.product.vat == Decimal("8.5")
        assert entity_set.variants[0].weight == Decimal("1.25")
        assert entity_set.variants[0].prices[0].gross_price == Decimal("12.30")
        assert entity_set.variants[0].prices[0].currency == "EUR"

    @pytest.mark.parametrize(
        "overrides",
        [
            {"vat": "abc"},
            {"variants": [RawVariant(code="V1", weight="heavy")]},
            {"variants": [RawVariant(code="V1", stock="lots")]},
            {"variants": [RawVariant(code="V1", prices=[RawPrice("retail", gross="free")])]},
        ],
    )
    def test_non_numeric_values(self, overrides):
        with pytest.raises(ItemValidationError):
            EntityResolver().resolve(_item(**overrides))

    def test_image_without_url(self):
        with pytest.raises(ItemValidationError, match="image"):
            EntityResolver().resolve(_item(images=[RawImage(url=None)]))

    def test_document_without_url(self):
        with pytest.raises(ItemValidationError, match="document"):
            EntityResolver().resolve(_item(documents=[RawDocument(url=None)]))


class TestResolveShaping:
    """Dedup and normalization rules inside one item."""

    def test_same_variant_code_collapses_last_write_wins(self):
        entity_set = EntityResolver().resolve(
            _item(variants=[RawVariant(code="A1", stock="1"), RawVariant(code="B2"), RawVariant(code="A1", stock="7")])
        )

        by_code = {v.code: v for v in entity_set.variants}
        assert len(entity_set.variants) == 2
        assert by_code["A1"].stock_quantity == 7
        assert by_code["A1"].available is True
        assert by_code["B2"].available is False

    def test_prices_keyed_by_type_and_currency(self):
        entity_set = EntityResolver().resolve(
            _item(
                variants=[
                    RawVariant(
                        code="V1",
                        prices=[
                            RawPrice("retail", gross="1"),
                            RawPrice("retail", gross="2"),
                            RawPrice("srp", gross="3"),
                            RawPrice("retail", currency="pln", gross="4"),
                        ],
                    )
                ]
            )
        )

        prices = {(p.price_type, p.currency): p.gross_price for p in entity_set.variants[0].prices}
        assert prices == {("retail", "EUR"): Decimal("2"), ("srp", "EUR"): Decimal("3"), ("retail", "PLN"): Decimal("4")}

    def test_first_image_is_main_unless_flagged(self):
        resolver = EntityResolver()

        plain = resolver.resolve(_item(images=[RawImage("a.jpg"), RawImage("b.jpg"), RawImage("a.jpg")]))
        flagged = resolver.resolve(_item(images=[RawImage("a.jpg"), RawImage("b.jpg", main=True)]))

        assert [(i.url, i.position, i.is_main) for i in plain.images] == [("a.jpg", 0, True), ("b.jpg", 1, False)]
        assert [i.url for i in flagged.images if i.is_main] == ["b.jpg"]

    def test_properties_dedup_by_name_and_defaults(self):
        entity_set = EntityResolver().resolve(
            _item(properties=[RawProperty("Color", "red"), RawProperty("Size", "L"), RawProperty("Color", "blue")])
        )

        assert [(p.name, p.value, p.position) for p in entity_set.properties] == [("Color", "blue", 0), ("Size", "L", 1)]
        assert entity_set.properties[0].group_name == "General"
        assert entity_set.properties[0].language == "en"

    def test_category_path_becomes_chain(self):
        entity_set = EntityResolver().resolve(
            _item(category=RawReference(id="77", name="Drills", path="Tools/Power/Drills"))
        )

        assert [(c.code, c.name, c.parent_code) for c in entity_set.categories] == [
            ("Tools", "Tools", None),
            ("Tools/Power", "Power", "Tools"),
            ("77", "Drills", "Tools/Power"),
        ]

    def test_category_without_path_or_id_uses_name(self):
        entity_set = EntityResolver().resolve(_item(category=RawReference(name="Garden")))

        assert [(c.code, c.name) for c in entity_set.categories] == [("Garden", "Garden")]

    def test_producer_and_unit_fall_back_to_name(self):
        entity_set = EntityResolver().resolve(
            _item(producer=RawReference(name="Bosch"), unit=RawReference(id="szt", name="piece"))
        )

        assert (entity_set.producer.code, entity_set.producer.name) == ("Bosch", "Bosch")
        assert (entity_set.unit.code, entity_set.unit.name) == ("szt", "piece")


class TestReferenceCache:
    """Tests for the staged job-level reference cache."""

    def test_staged_ids_are_visible_then_committed(self):
        cache = ReferenceCache()
        cache.stage(CATEGORY, "Tools", 1)
        cache.stage(PRODUCER, "Bosch", 2)

        assert cache.get(CATEGORY, "Tools") == 1
        assert cache.staged() == {CATEGORY: 1, PRODUCER: 1}

        gained = cache.commit()

        assert gained == {CATEGORY: 1, PRODUCER: 1}
        assert cache.get(PRODUCER, "Bosch") == 2
        assert len(cache) == 2

    def test_unplaced_category_is_a_miss_for_placed_lookup(self):
        cache = ReferenceCache()
        cache.stage(CATEGORY, "10", 5, placed=False)
        cache.commit()

        assert cache.get(CATEGORY, "10") == 5
        assert cache.get(CATEGORY, "10", placed=True) is None

        cache.stage(CATEGORY, "10", 5)

        assert cache.staged() == {}
        assert cache.commit() == {}
        assert cache.get(CATEGORY, "10", placed=True) == 5

    def test_discard_forgets_uncommitted_ids(self):
        cache = ReferenceCache()
        cache.stage(CATEGORY, "Tools", 1)
        cache.discard()

        assert cache.get(CATEGORY, "Tools") is None
        assert cache.commit() == {}


class TestResolveReferences:
    """Tests for lookup-or-create through the upsert engine boundary."""

    def test_creates_chain_with_parent_ids_and_reuses_cache(self):
        engine = Mock()
        engine.upsert_reference.side_effect = [10, 11, 20, 30]
        resolver = EntityResolver()
        raw = _item(
            category=RawReference(path="Tools/Drills"),
            producer=RawReference(name="Bosch"),
            unit=RawReference(name="szt"),
        )

        first = resolver.resolve(raw)
        resolver.resolve_references(engine, first)
        resolver.cache.commit()

        assert (first.category_id, first.producer_id, first.unit_id) == (11, 20, 30)
        calls = engine.upsert_reference.call_args_list
        assert calls[0].args[0] is Category and calls[0].kwargs["parent_id"] is None
        assert calls[1].kwargs["parent_id"] == 10
        assert calls[2].args[0] is Producer
        assert calls[3].args[0] is Unit

        second = resolver.resolve(raw)
        resolver.resolve_references(engine, second)

        assert engine.upsert_reference.call_count == 4
        assert second.category_id == 11
