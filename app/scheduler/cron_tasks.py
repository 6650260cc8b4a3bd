"""
Scheduler: periodic order recovery, catalog refresh and inventory reconciliation.

Each job runs as a single instance; a run still in progress makes the next
trigger of the same job skip rather than overlap.
"""
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger
from app.services.inventory_sync_service import inventory_sync_service
from app.services.recovery_service import recovery_service
from app.utils.config import settings
import logging

logger = logging.getLogger(__name__)
scheduler = AsyncIOScheduler()


async def incomplete_order_recovery_job():
    """Replay unplaced orders every few minutes."""
    try:
        result = await recovery_service.run_incomplete_order_recovery()
        logger.info(f"Incomplete order recovery completed: {result}")
    except Exception as e:
        logger.error(f"Incomplete order recovery failed: {e}", exc_info=True)


async def catalog_refresh_job():
    """Mirror the storefront catalog once a day."""
    try:
        logger.info("Running catalog refresh...")
        result = await inventory_sync_service.refresh_catalog()
        logger.info(f"Catalog refresh completed: {result}")
    except Exception as e:
        logger.error(f"Catalog refresh failed: {e}", exc_info=True)


async def inventory_sync_job():
    """Align storefront stock with the POS feed at fixed hours."""
    try:
        logger.info("Running inventory sync...")
        result = await inventory_sync_service.run_inventory_sync()
        logger.info(f"Inventory sync completed: {result.to_dict()}")
    except Exception as e:
        logger.error(f"Inventory sync failed: {e}", exc_info=True)


def configure_scheduler():
    """Configure all scheduled jobs. Call during startup."""
    single = {"max_instances": 1, "coalesce": True, "replace_existing": True}
    scheduler.add_job(incomplete_order_recovery_job, IntervalTrigger(minutes=settings.RECOVERY_INTERVAL_MINUTES),
                      id="incomplete_order_recovery", name="Incomplete Order Recovery", **single)
    scheduler.add_job(catalog_refresh_job, CronTrigger(hour=settings.CATALOG_REFRESH_HOUR, minute=0),
                      id="catalog_refresh", name="Catalog Refresh", **single)
    scheduler.add_job(inventory_sync_job, CronTrigger(hour=settings.INVENTORY_SYNC_HOURS, minute=0),
                      id="inventory_sync", name="Inventory Sync", **single)
    logger.info("Scheduler configured: incomplete_order_recovery, catalog_refresh, inventory_sync")


def start_scheduler():
    """Start the scheduler."""
    if not scheduler.running:
        scheduler.start()
        logger.info("Scheduler started.")


def shutdown_scheduler():
    """Shutdown the scheduler gracefully."""
    if scheduler.running:
        scheduler.shutdown()
        logger.info("Scheduler shutdown.")
