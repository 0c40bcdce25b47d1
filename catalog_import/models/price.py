"""Variant price model definition."""
from __future__ import annotations

from decimal import Decimal

from sqlalchemy import ForeignKey, Numeric, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, BigIntPK


class Price(Base):
    """One price of a variant per (type, currency); type is ``retail`` or ``srp``."""

    __tablename__ = "prices"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    variant_id: Mapped[int] = mapped_column(
        BigIntPK, ForeignKey("variants.id", ondelete="CASCADE"), nullable=False, index=True
    )
    price_type: Mapped[str] = mapped_column(Text, nullable=False)
    currency: Mapped[str] = mapped_column(Text, nullable=False)
    gross_price: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    net_price: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)

    __table_args__ = (UniqueConstraint("variant_id", "price_type", "currency", name="uq_prices_variant_type_currency"),)
