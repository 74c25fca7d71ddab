from nihonto_search.store.sql import SearchPage, SqlListingStore

__all__ = ["SearchPage", "SqlListingStore"]
