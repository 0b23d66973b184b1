from celery import Celery
from celery.schedules import crontab

from townbook.config import config

celery_app = Celery("townbook")

celery_app.conf.update(
    broker_url=config.CELERY_BROKER_URL,
    result_backend=config.CELERY_RESULT_BACKEND,
    task_routes={"townbook.services.tasks.*": {"queue": "default"}},
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    beat_schedule={
        "reconcile-inventory": {
            "task": "townbook.services.tasks.reconcile_inventory_task",
            "schedule": crontab(minute=f"*/{config.RECONCILE_INTERVAL_MINUTES}"),
        },
    },
)
celery_app.autodiscover_tasks(["townbook.services"], related_name="tasks")
