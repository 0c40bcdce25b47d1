"""Catalog tables and import_jobs for the XML import pipeline."""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "001_catalog_import"
down_revision = None
branch_labels = None
depends_on = None

IMPORT_JOB_STATUSES = ("pending", "processing", "completed", "failed", "cancelled")

# SQLite only autoincrements INTEGER PRIMARY KEY columns
BIGINT = sa.BigInteger().with_variant(sa.Integer(), "sqlite")


def _timestamps(*, created: bool = True) -> list[sa.Column]:
    columns = []
    if created:
        columns.append(sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()))
    columns.append(sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()))
    return columns


def upgrade() -> None:
    op.create_table(
        "import_jobs",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("filename", sa.Text(), nullable=False),
        sa.Column("file_size", sa.Integer(), nullable=True),
        sa.Column("options", sa.JSON(), nullable=False),
        sa.Column(
            "status",
            sa.Enum(*IMPORT_JOB_STATUSES, name="import_job_status"),
            nullable=False,
            server_default="pending",
        ),
        sa.Column("progress", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_items", sa.Integer(), nullable=True),
        sa.Column("processed_items", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("stats", sa.JSON(), nullable=False),
        sa.Column("item_errors", sa.JSON(), nullable=False),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("duration", sa.Float(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_import_jobs_created_at", "import_jobs", ["created_at"])

    op.create_table(
        "categories",
        sa.Column("id", BIGINT, primary_key=True, autoincrement=True),
        sa.Column("code", sa.Text(), nullable=False, unique=True),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("path", sa.Text(), nullable=True),
        sa.Column("parent_id", BIGINT, sa.ForeignKey("categories.id", ondelete="SET NULL"), nullable=True),
        *_timestamps(),
    )

    for table in ("producers", "units"):
        columns = [
            sa.Column("id", BIGINT, primary_key=True, autoincrement=True),
            sa.Column("code", sa.Text(), nullable=False, unique=True),
            sa.Column("name", sa.Text(), nullable=False),
        ]
        if table == "producers":
            columns.extend(_timestamps())
        op.create_table(table, *columns)

    op.create_table(
        "products",
        sa.Column("id", BIGINT, primary_key=True, autoincrement=True),
        sa.Column("code", sa.Text(), nullable=False, unique=True),
        sa.Column("ean", sa.Text(), nullable=True, unique=True),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("description_short", sa.Text(), nullable=True),
        sa.Column("description_long", sa.Text(), nullable=True),
        sa.Column("vat", sa.Numeric(5, 2), nullable=True),
        sa.Column("producer_code", sa.Text(), nullable=True),
        sa.Column("code_on_card", sa.Text(), nullable=True),
        sa.Column("url", sa.Text(), nullable=True),
        sa.Column("category_id", BIGINT, sa.ForeignKey("categories.id", ondelete="SET NULL"), nullable=True),
        sa.Column("producer_id", BIGINT, sa.ForeignKey("producers.id", ondelete="SET NULL"), nullable=True),
        sa.Column("unit_id", BIGINT, sa.ForeignKey("units.id", ondelete="SET NULL"), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        "variants",
        sa.Column("id", BIGINT, primary_key=True, autoincrement=True),
        sa.Column("product_id", BIGINT, sa.ForeignKey("products.id", ondelete="CASCADE"), nullable=False),
        sa.Column("code", sa.Text(), nullable=False),
        sa.Column("name", sa.Text(), nullable=True),
        sa.Column("ean", sa.Text(), nullable=True),
        sa.Column("weight", sa.Numeric(12, 4), nullable=True),
        sa.Column("gross_weight", sa.Numeric(12, 4), nullable=True),
        sa.Column("stock_quantity", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("available", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(created=False),
        sa.UniqueConstraint("product_id", "code", name="uq_variants_product_code"),
    )
    op.create_index("ix_variants_product_id", "variants", ["product_id"])

    op.create_table(
        "prices",
        sa.Column("id", BIGINT, primary_key=True, autoincrement=True),
        sa.Column("variant_id", BIGINT, sa.ForeignKey("variants.id", ondelete="CASCADE"), nullable=False),
        sa.Column("price_type", sa.Text(), nullable=False),
        sa.Column("currency", sa.Text(), nullable=False),
        sa.Column("gross_price", sa.Numeric(12, 2), nullable=True),
        sa.Column("net_price", sa.Numeric(12, 2), nullable=True),
        sa.UniqueConstraint("variant_id", "price_type", "currency", name="uq_prices_variant_type_currency"),
    )
    op.create_index("ix_prices_variant_id", "prices", ["variant_id"])

    op.create_table(
        "images",
        sa.Column("id", BIGINT, primary_key=True, autoincrement=True),
        sa.Column("product_id", BIGINT, sa.ForeignKey("products.id", ondelete="CASCADE"), nullable=False),
        sa.Column("url", sa.Text(), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_main", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.UniqueConstraint("product_id", "url", name="uq_images_product_url"),
    )
    op.create_index("ix_images_product_id", "images", ["product_id"])

    op.create_table(
        "documents",
        sa.Column("id", BIGINT, primary_key=True, autoincrement=True),
        sa.Column("product_id", BIGINT, sa.ForeignKey("products.id", ondelete="CASCADE"), nullable=False),
        sa.Column("url", sa.Text(), nullable=False),
        sa.Column("title", sa.Text(), nullable=True),
        sa.Column("doc_type", sa.Text(), nullable=True),
        sa.Column("language", sa.Text(), nullable=False, server_default="en"),
        sa.UniqueConstraint("product_id", "url", name="uq_documents_product_url"),
    )
    op.create_index("ix_documents_product_id", "documents", ["product_id"])

    op.create_table(
        "product_properties",
        sa.Column("id", BIGINT, primary_key=True, autoincrement=True),
        sa.Column("product_id", BIGINT, sa.ForeignKey("products.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("value", sa.Text(), nullable=True),
        sa.Column("group_name", sa.Text(), nullable=False, server_default="General"),
        sa.Column("language", sa.Text(), nullable=False, server_default="en"),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        sa.UniqueConstraint("product_id", "name", name="uq_product_properties_product_name"),
    )
    op.create_index("ix_product_properties_product_id", "product_properties", ["product_id"])


def downgrade() -> None:
    for table in (
        "product_properties",
        "documents",
        "images",
        "prices",
        "variants",
        "products",
        "units",
        "producers",
        "categories",
        "import_jobs",
    ):
        op.drop_table(table)
    sa.Enum(name="import_job_status").drop(op.get_bind(), checkfirst=True)
