"""Supplier feed reconciliation task."""

import structlog
from celery import shared_task

from catalog_sync_service.services.reconciliation import run_reconciliation
from sync_worker.tasks.runtime import run_job

logger = structlog.get_logger()


@shared_task(bind=True, max_retries=3, default_retry_delay=300)
def reconcile_supplier_feed(self) -> dict:
    """
    Reconcile the supplier feed with the local catalog.

    This task:
    1. Fetches every page of the supplier feed
    2. Groups eligible records by family, metal and stone
    3. Inserts, updates and deletes local variations
    4. Pushes price updates and deletes to the remote catalog

    Returns:
        dict: Summary of the reconciliation
    """
    logger.info("Starting supplier feed reconciliation")
    try:
        summary = run_job(run_reconciliation)
    except Exception as exc:
        logger.error("Reconciliation failed", error=str(exc), retries=self.request.retries)
        raise self.retry(exc=exc)

    logger.info("Reconciliation completed", **summary.to_dict())
    return summary.to_dict()
