"""Product property (specification attribute) model definition."""
from __future__ import annotations

from sqlalchemy import ForeignKey, Integer, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, BigIntPK


class ProductProperty(Base):
    """Named attribute of a product, unique per product by name."""

    __tablename__ = "product_properties"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    product_id: Mapped[int] = mapped_column(
        BigIntPK, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(Text, nullable=False)
    value: Mapped[str | None] = mapped_column(Text, nullable=True)
    group_name: Mapped[str] = mapped_column(Text, nullable=False, default="General", server_default="General")
    language: Mapped[str] = mapped_column(Text, nullable=False, default="en", server_default="en")
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")

    __table_args__ = (UniqueConstraint("product_id", "name", name="uq_product_properties_product_name"),)
