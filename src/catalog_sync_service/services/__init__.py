"""Business logic services."""

from catalog_sync_service.services.bulk_actions import BulkActionCoordinator
from catalog_sync_service.services.category_sync import CategorySyncService
from catalog_sync_service.services.dictionaries import AttributeDictionarySync
from catalog_sync_service.services.feed_transformer import FeedTransformer
from catalog_sync_service.services.maintenance import MaintenanceService
from catalog_sync_service.services.product_sync import CatalogSyncOrchestrator
from catalog_sync_service.services.reconciliation import ReconciliationEngine
from catalog_sync_service.services.ring_assignment import RingAssignmentService
from catalog_sync_service.services.saga import Saga

__all__ = [
    "AttributeDictionarySync",
    "BulkActionCoordinator",
    "CatalogSyncOrchestrator",
    "CategorySyncService",
    "FeedTransformer",
    "MaintenanceService",
    "ReconciliationEngine",
    "RingAssignmentService",
    "Saga",
]
