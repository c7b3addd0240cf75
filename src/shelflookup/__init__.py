"""Shelf Lookup -- resolve scanned barcodes and titles to book metadata and covers.

Subpackages:
    core -- ISBN normalization, catalog clients, fallback resolver, cover probing
    web  -- FastAPI service exposing the resolver to the library app
"""

__version__ = "0.1.0"
