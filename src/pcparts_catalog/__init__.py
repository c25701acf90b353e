"""Catalog, ordering and component-compatibility backend for a computer-parts store."""

__version__ = "0.3.0"
