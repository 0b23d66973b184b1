import logging

from asgiref.sync import async_to_sync

from townbook.dependencies.database import SessionLocal
from townbook.services.celery_config import celery_app
from townbook.services.lifecycle_service import reconcile_inventory

logger = logging.getLogger(__name__)


async def _reconcile_inventory() -> dict:
    async with SessionLocal() as db:
        return await reconcile_inventory(db)


@celery_app.task(name="townbook.services.tasks.reconcile_inventory_task")
def reconcile_inventory_task():
    """Періодична звірка статусів примірників і слотів з підтвердженими бронюваннями."""
    report = async_to_sync(_reconcile_inventory)()
    logger.info(f"[RECONCILE] {report}")
    return report
