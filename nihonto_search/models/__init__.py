"""
Models package — export all SQLAlchemy models.
"""

from nihonto_search.models.base import Base
from nihonto_search.models.dealer import Dealer
from nihonto_search.models.listing import Listing

__all__ = ["Base", "Dealer", "Listing"]
