"""
Catalog Application Service Module
"""

from examkit.application.catalog.service import CatalogService

__all__ = ["CatalogService"]
