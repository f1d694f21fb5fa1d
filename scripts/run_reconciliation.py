#!/usr/bin/env python3
"""CLI script to reconcile the supplier feed once, optionally syncing categories first."""

import argparse
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import structlog

from catalog_sync_service.infrastructure.catalog import CatalogGateway
from catalog_sync_service.infrastructure.database.connection import get_db_session
from catalog_sync_service.services.category_sync import CategorySyncService
from catalog_sync_service.services.reconciliation import run_reconciliation
from sync_worker.tasks.runtime import run_job

logger = structlog.get_logger()


async def reconcile(gateway: CatalogGateway, with_categories: bool) -> None:
    if with_categories:
        async with get_db_session() as session:
            summary = await CategorySyncService(session, gateway).sync_categories()
        logger.info("Category sync completed", **summary.to_dict())

    summary = await run_reconciliation(gateway)
    logger.info("Reconciliation completed", **summary.to_dict())


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--with-categories",
        action="store_true",
        help="pull remote collections into the categories table first",
    )
    args = parser.parse_args()

    logger.info("Starting reconciliation")
    run_job(lambda gateway: reconcile(gateway, args.with_categories))


if __name__ == "__main__":
    main()
