"""
Nihonto Search — Dealer Model

A listing source. earliest_listing_at is the baseline that separates a
dealer's initial bulk import from genuinely new inventory.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import BOOLEAN, INTEGER, TIMESTAMP, String, func, true
from sqlalchemy.orm import Mapped, mapped_column

from nihonto_search.models.base import Base


class Dealer(Base):
    __tablename__ = "dealers"

    id: Mapped[int] = mapped_column(INTEGER, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String, nullable=False, comment="Display name (romaji)")
    name_ja: Mapped[str | None] = mapped_column(String, nullable=True, comment="Display name (Japanese)")
    domain: Mapped[str] = mapped_column(
        String, nullable=False, unique=True, comment="Site host, e.g. 'aoijapan.com'"
    )
    is_active: Mapped[bool] = mapped_column(
        BOOLEAN, nullable=False, default=True, server_default=true(),
        comment="Inactive dealers are no longer scraped",
    )
    earliest_listing_at: Mapped[datetime | None] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=True,
        comment="first_seen_at of the dealer's first scraped listing (initial import baseline)",
    )
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(),
    )

    def __repr__(self) -> str:
        return f"<Dealer id={self.id} domain={self.domain!r}>"
