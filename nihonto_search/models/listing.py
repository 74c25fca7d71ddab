"""
Nihonto Search — Listing Model

One dealer item. Created on first scrape discovery, mutated by the ingestion
pipeline on each re-scrape, never deleted: lifecycle is a status transition
(available → sold / presumed_sold / withdrawn).

price_value IS NULL ⇔ ask item (price on request). price_jpy is price_value
converted to JPY and is the only price used for filtering and sorting.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    BOOLEAN,
    DECIMAL,
    INTEGER,
    JSON,
    TIMESTAMP,
    ForeignKey,
    Index,
    String,
    Text,
    false,
    func,
)
from sqlalchemy.dialects.postgresql import TSVECTOR
from sqlalchemy.orm import Mapped, mapped_column

from nihonto_search.models.base import Base


class Listing(Base):
    __tablename__ = "listings"

    id: Mapped[int] = mapped_column(INTEGER, primary_key=True, autoincrement=True)
    url: Mapped[str] = mapped_column(String, nullable=False, unique=True, comment="Source URL on the dealer site")
    dealer_id: Mapped[int] = mapped_column(INTEGER, ForeignKey("dealers.id"), nullable=False)

    # Free text (source language + machine translation)
    title: Mapped[str | None] = mapped_column(String, nullable=True)
    title_en: Mapped[str | None] = mapped_column(String, nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    description_en: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Classification
    item_type: Mapped[str | None] = mapped_column(
        String, nullable=True, comment="Raw type as scraped, e.g. 'katana', 'Tsuba', 'fuchi_kashira'"
    )
    item_category: Mapped[str | None] = mapped_column(String, nullable=True)

    # Attribution
    smith: Mapped[str | None] = mapped_column(String, nullable=True)
    smith_romaji: Mapped[str | None] = mapped_column(String, nullable=True)
    tosogu_maker: Mapped[str | None] = mapped_column(String, nullable=True)
    school: Mapped[str | None] = mapped_column(String, nullable=True)
    tosogu_school: Mapped[str | None] = mapped_column(String, nullable=True)
    province: Mapped[str | None] = mapped_column(String, nullable=True)
    era: Mapped[str | None] = mapped_column(String, nullable=True)
    historical_period: Mapped[str | None] = mapped_column(
        String, nullable=True, comment="Normalized period: Heian … Reiwa"
    )
    signature_status: Mapped[str | None] = mapped_column(String, nullable=True, comment="'signed' | 'unsigned'")
    mei_type: Mapped[str | None] = mapped_column(String, nullable=True)

    # Certification
    cert_type: Mapped[str | None] = mapped_column(
        String, nullable=True, comment="Raw spelling; folded via the certification variant table"
    )
    cert_session: Mapped[int | None] = mapped_column(INTEGER, nullable=True)
    cert_organization: Mapped[str | None] = mapped_column(String, nullable=True)

    # Measurements
    nagasa_cm: Mapped[Decimal | None] = mapped_column(DECIMAL(6, 2), nullable=True, comment="Blade length")
    sori_cm: Mapped[Decimal | None] = mapped_column(DECIMAL(5, 2), nullable=True, comment="Curvature")
    height_cm: Mapped[Decimal | None] = mapped_column(DECIMAL(6, 2), nullable=True, comment="Fittings height")

    # Price
    price_value: Mapped[Decimal | None] = mapped_column(
        DECIMAL(14, 2), nullable=True, comment="Original price; NULL = ask"
    )
    price_currency: Mapped[str | None] = mapped_column(String(3), nullable=True)
    price_jpy: Mapped[Decimal | None] = mapped_column(
        DECIMAL(14, 2), nullable=True, comment="price_value normalized to JPY"
    )

    # Lifecycle
    status: Mapped[str] = mapped_column(
        String, nullable=False, default="available",
        comment="available | sold | presumed_sold | withdrawn",
    )
    is_available: Mapped[bool | None] = mapped_column(BOOLEAN, nullable=True)
    is_sold: Mapped[bool | None] = mapped_column(BOOLEAN, nullable=True)
    first_seen_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), server_default=func.now())
    last_scraped_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    status_changed_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    is_initial_import: Mapped[bool | None] = mapped_column(
        BOOLEAN, nullable=True, comment="Discovered during the dealer's initial bulk import"
    )

    # Ranking
    featured_score: Mapped[Decimal | None] = mapped_column(DECIMAL(10, 2), nullable=True)
    artisan_id: Mapped[str | None] = mapped_column(String, nullable=True, comment="Artisan registry code")
    artisan_confidence: Mapped[str | None] = mapped_column(String, nullable=True, comment="HIGH | MEDIUM | LOW")
    artisan_elite_factor: Mapped[Decimal | None] = mapped_column(DECIMAL(6, 4), nullable=True)
    artisan_elite_count: Mapped[int | None] = mapped_column(INTEGER, nullable=True)

    admin_hidden: Mapped[bool] = mapped_column(
        BOOLEAN, nullable=False, default=False, server_default=false(),
    )
    images: Mapped[list[Any] | None] = mapped_column(JSON, nullable=True, comment="Image URLs")

    search_vector: Mapped[Any | None] = mapped_column(
        Text().with_variant(TSVECTOR(), "postgresql"),
        nullable=True,
        comment="Denormalized 'simple' tsvector over the text fields",
    )

    __table_args__ = (
        Index("ix_listings_status", "status"),
        Index("ix_listings_dealer_id", "dealer_id"),
        Index("ix_listings_first_seen_at", "first_seen_at"),
        Index("ix_listings_price_jpy", "price_jpy"),
        Index("ix_listings_cert_type", "cert_type"),
        Index("ix_listings_historical_period", "historical_period"),
        Index("ix_listings_signature_status", "signature_status"),
        Index("ix_listings_featured_score", "featured_score"),
        Index("ix_listings_artisan_id", "artisan_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<Listing id={self.id} dealer_id={self.dealer_id} "
            f"type={self.item_type!r} price_jpy={self.price_jpy}>"
        )
