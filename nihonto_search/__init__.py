"""Nihonto Search — faceted browse and search over aggregated dealer listings."""

__version__ = "0.1.0"
