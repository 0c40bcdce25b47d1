"""Pytest configuration and shared fixtures."""
from __future__ import annotations

import os

# Settings are required at import time; point them at throwaway backends.
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/15")
os.environ.setdefault("CELERY_BROKER_URL", "memory://")
os.environ.setdefault("CELERY_RESULT_BACKEND", "cache+memory://")

from pathlib import Path
from typing import Callable, Generator
from xml.sax.saxutils import quoteattr

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from catalog_import.core.config import Settings, get_settings
from catalog_import.core.redis_manager import CancellationFlags
from catalog_import.models.base import Base
from catalog_import.services.job_controller import ImportJobController

# SQLite by default; set TEST_DATABASE_URL to run against PostgreSQL
TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL")


class FakeRedis:
    """In-memory stand-in for the handful of Redis commands the service uses."""

    def __init__(self) -> None:
        self.store: dict[str, str] = {}
        self.expiries: dict[str, int | None] = {}

    def get(self, key: str) -> str | None:
        return self.store.get(key)

    def set(self, key: str, value: str, ex: int | None = None) -> bool:
        self.store[key] = value
        self.expiries[key] = ex
        return True

    def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            if self.store.pop(key, None) is not None:
                removed += 1
            self.expiries.pop(key, None)
        return removed

    def exists(self, *keys: str) -> int:
        return sum(1 for key in keys if key in self.store)


@pytest.fixture
def db_engine(tmp_path):
    """Fresh schema per test; a file database so every session sees the same data."""
    url = TEST_DATABASE_URL or f"sqlite:///{tmp_path / 'catalog.db'}"
    engine = create_engine(url, future=True)
    Base.metadata.drop_all(engine)
    Base.metadata.create_all(engine)

    yield engine

    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> sessionmaker:
    return sessionmaker(bind=db_engine, autoflush=False, autocommit=False, expire_on_commit=False)


@pytest.fixture
def db_session(session_factory) -> Generator[Session, None, None]:
    """Plain session for assertions and direct repository tests."""
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def cancellation(fake_redis) -> CancellationFlags:
    return CancellationFlags(fake_redis, ttl_seconds=60)


@pytest.fixture
def settings(tmp_path) -> Settings:
    return get_settings().model_copy(update={"upload_tmp_dir": str(tmp_path / "uploads")})


@pytest.fixture
def controller(session_factory, cancellation, settings) -> ImportJobController:
    return ImportJobController(session_factory=session_factory, cancellation=cancellation, settings=settings)


def _attrs(**values) -> str:
    return "".join(f" {key}={quoteattr(str(value))}" for key, value in values.items() if value is not None)


def build_product(
    code: str | None,
    name: str | None = "Product",
    *,
    ean: str | None = None,
    vat: str | None = None,
    category: str | None = None,
    category_id: str | None = None,
    producer: str | None = None,
    unit: str | None = None,
    sizes: list[dict] | None = None,
    images: list[str] | None = None,
    documents: list[dict] | None = None,
    properties: list[dict] | None = None,
    extra: str = "",
) -> str:
    """Render one ``<product>`` element in the GEKO feed shape."""
    parts = [f"<product{_attrs(code=code, ean=ean, vat=vat)}>"]
    if name is not None:
        parts.append(f"<description><name>{name}</name><short>Short text</short></description>")
    if category is not None:
        name_part = category.rsplit("/", 1)[-1]
        parts.append(f"<category{_attrs(id=category_id)}><name>{name_part}</name><path>{category}</path></category>")
    if producer is not None:
        parts.append(f"<producer{_attrs(name=producer)}/>")
    if unit is not None:
        parts.append(f"<unit>{unit}</unit>")
    if sizes:
        parts.append("<sizes>")
        for size in sizes:
            price = size.get("price")
            parts.append(
                f"<size{_attrs(code=size.get('code'), ean=size.get('ean'), weight=size.get('weight'))}>"
                f"<stock{_attrs(quantity=size.get('stock', 0))}/>"
                + (f"<price{_attrs(gross=price[0], net=price[1])}/>" if price else "")
                + "</size>"
            )
        parts.append("</sizes>")
    if images:
        parts.append("<images><large>")
        parts.extend(f"<image{_attrs(url=url)}/>" for url in images)
        parts.append("</large></images>")
    if documents:
        parts.append("<documents>")
        parts.extend(f"<document{_attrs(**doc)}/>" for doc in documents)
        parts.append("</documents>")
    if properties:
        parts.append("<properties>")
        parts.extend(f"<property{_attrs(**prop)}/>" for prop in properties)
        parts.append("</properties>")
    parts.append(extra)
    parts.append("</product>")
    return "".join(parts)


def build_feed(*products: str, root: str = "geko") -> str:
    return f'<?xml version="1.0" encoding="UTF-8"?>\n<{root}><products>{"".join(products)}</products></{root}>'


@pytest.fixture
def product_xml() -> Callable[..., str]:
    return build_product


@pytest.fixture
def write_feed(tmp_path) -> Callable[..., Path]:
    """Write a feed built from product snippets, or ``raw`` text/bytes, to a new file."""
    counter = {"n": 0}

    def _write(*products: str, root: str = "geko", raw: str | bytes | None = None) -> Path:
        counter["n"] += 1
        path = tmp_path / f"feed-{counter['n']}.xml"
        content = build_feed(*products, root=root) if raw is None else raw
        if isinstance(content, str):
            path.write_text(content, encoding="utf-8")
        else:
            path.write_bytes(content)
        return path

    return _write


@pytest.fixture
def feed_text() -> Callable[..., str]:
    return build_feed
