"""FastAPI dependency providers for the sync services."""

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from catalog_sync_service.infrastructure.catalog import CatalogGateway, get_catalog_gateway
from catalog_sync_service.infrastructure.database.connection import get_session
from catalog_sync_service.services.bulk_actions import BulkActionCoordinator
from catalog_sync_service.services.category_sync import CategorySyncService
from catalog_sync_service.services.dictionaries import AttributeDictionarySync
from catalog_sync_service.services.product_sync import CatalogSyncOrchestrator
from catalog_sync_service.services.ring_assignment import RingAssignmentService
from catalog_sync_service.services.variations import VariationRepository


def get_variation_repository(
    session: AsyncSession = Depends(get_session),
) -> VariationRepository:
    return VariationRepository(session)


def get_orchestrator(
    session: AsyncSession = Depends(get_session),
    gateway: CatalogGateway = Depends(get_catalog_gateway),
) -> CatalogSyncOrchestrator:
    return CatalogSyncOrchestrator(session, gateway)


def get_bulk_coordinator(
    session: AsyncSession = Depends(get_session),
    gateway: CatalogGateway = Depends(get_catalog_gateway),
) -> BulkActionCoordinator:
    return BulkActionCoordinator(session, gateway)


def get_dictionary_sync(
    session: AsyncSession = Depends(get_session),
    gateway: CatalogGateway = Depends(get_catalog_gateway),
) -> AttributeDictionarySync:
    return AttributeDictionarySync(session, gateway)


def get_category_sync(
    session: AsyncSession = Depends(get_session),
    gateway: CatalogGateway = Depends(get_catalog_gateway),
) -> CategorySyncService:
    return CategorySyncService(session, gateway)


def get_ring_assignment(
    session: AsyncSession = Depends(get_session),
) -> RingAssignmentService:
    return RingAssignmentService(session)
