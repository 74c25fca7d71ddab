"""Initial schema — dealers, listings

Revision ID: 001_initial_schema
Revises: None
Create Date: 2026-10-16
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import TSVECTOR

# revision identifiers
revision: str = "001_initial_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

_LISTING_INDEXES = (
    ("ix_listings_status", ["status"]),
    ("ix_listings_dealer_id", ["dealer_id"]),
    ("ix_listings_first_seen_at", ["first_seen_at"]),
    ("ix_listings_price_jpy", ["price_jpy"]),
    ("ix_listings_cert_type", ["cert_type"]),
    ("ix_listings_historical_period", ["historical_period"]),
    ("ix_listings_signature_status", ["signature_status"]),
    ("ix_listings_featured_score", ["featured_score"]),
    ("ix_listings_artisan_id", ["artisan_id"]),
)


def upgrade() -> None:
    # --- dealers ---
    op.create_table(
        "dealers",
        sa.Column("id", sa.INTEGER(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(), nullable=False, comment="Display name (romaji)"),
        sa.Column("name_ja", sa.String(), nullable=True, comment="Display name (Japanese)"),
        sa.Column("domain", sa.String(), nullable=False, unique=True, comment="Site host, e.g. 'aoijapan.com'"),
        sa.Column("is_active", sa.BOOLEAN(), nullable=False, server_default=sa.true()),
        sa.Column(
            "earliest_listing_at",
            sa.TIMESTAMP(timezone=True),
            nullable=True,
            comment="first_seen_at of the dealer's first scraped listing (initial import baseline)",
        ),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )

    # --- listings ---
    op.create_table(
        "listings",
        sa.Column("id", sa.INTEGER(), primary_key=True, autoincrement=True),
        sa.Column("url", sa.String(), nullable=False, unique=True, comment="Source URL on the dealer site"),
        sa.Column("dealer_id", sa.INTEGER(), sa.ForeignKey("dealers.id"), nullable=False),
        sa.Column("title", sa.String(), nullable=True),
        sa.Column("title_en", sa.String(), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("description_en", sa.Text(), nullable=True),
        sa.Column("item_type", sa.String(), nullable=True, comment="Raw type as scraped"),
        sa.Column("item_category", sa.String(), nullable=True),
        sa.Column("smith", sa.String(), nullable=True),
        sa.Column("smith_romaji", sa.String(), nullable=True),
        sa.Column("tosogu_maker", sa.String(), nullable=True),
        sa.Column("school", sa.String(), nullable=True),
        sa.Column("tosogu_school", sa.String(), nullable=True),
        sa.Column("province", sa.String(), nullable=True),
        sa.Column("era", sa.String(), nullable=True),
        sa.Column("historical_period", sa.String(), nullable=True),
        sa.Column("signature_status", sa.String(), nullable=True),
        sa.Column("mei_type", sa.String(), nullable=True),
        sa.Column("cert_type", sa.String(), nullable=True),
        sa.Column("cert_session", sa.INTEGER(), nullable=True),
        sa.Column("cert_organization", sa.String(), nullable=True),
        sa.Column("nagasa_cm", sa.DECIMAL(6, 2), nullable=True),
        sa.Column("sori_cm", sa.DECIMAL(5, 2), nullable=True),
        sa.Column("height_cm", sa.DECIMAL(6, 2), nullable=True),
        sa.Column("price_value", sa.DECIMAL(14, 2), nullable=True, comment="Original price; NULL = ask"),
        sa.Column("price_currency", sa.String(3), nullable=True),
        sa.Column("price_jpy", sa.DECIMAL(14, 2), nullable=True),
        sa.Column("status", sa.String(), nullable=False, server_default="available"),
        sa.Column("is_available", sa.BOOLEAN(), nullable=True),
        sa.Column("is_sold", sa.BOOLEAN(), nullable=True),
        sa.Column(
            "first_seen_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column("last_scraped_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("status_changed_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("is_initial_import", sa.BOOLEAN(), nullable=True),
        sa.Column("featured_score", sa.DECIMAL(10, 2), nullable=True),
        sa.Column("artisan_id", sa.String(), nullable=True),
        sa.Column("artisan_confidence", sa.String(), nullable=True),
        sa.Column("artisan_elite_factor", sa.DECIMAL(6, 4), nullable=True),
        sa.Column("artisan_elite_count", sa.INTEGER(), nullable=True),
        sa.Column("admin_hidden", sa.BOOLEAN(), nullable=False, server_default=sa.false()),
        sa.Column("images", sa.JSON(), nullable=True),
        sa.Column("search_vector", TSVECTOR(), nullable=True),
    )
    for name, columns in _LISTING_INDEXES:
        op.create_index(name, "listings", columns)
    op.create_index(
        "ix_listings_search_vector", "listings", ["search_vector"], postgresql_using="gin"
    )


def downgrade() -> None:
    op.drop_index("ix_listings_search_vector", table_name="listings")
    for name, _ in reversed(_LISTING_INDEXES):
        op.drop_index(name, table_name="listings")
    op.drop_table("listings")
    op.drop_table("dealers")
