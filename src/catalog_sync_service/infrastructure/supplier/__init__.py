"""Supplier feed infrastructure."""

from catalog_sync_service.infrastructure.supplier.feed import SupplierFeedFetcher

__all__ = ["SupplierFeedFetcher"]
