from celery import Celery
from loguru import logger

from ..config import Settings, get_settings

settings = get_settings()


def configure_celery(app: Celery, settings: Settings) -> Celery:
    app.conf.update(
        task_serializer="json",
        accept_content=["json"],
        result_serializer="json",
        timezone="UTC",
        task_track_started=True,
        # Batches hold the single planning session for their whole duration
        task_time_limit=12 * 3600,
        task_soft_time_limit=12 * 3600 - 300,
        task_acks_late=True,
        worker_prefetch_multiplier=1,
        worker_concurrency=1,
        task_reject_on_worker_lost=True,
        # Batches and jobs live in the API process's in-memory store, and the
        # planning engine session belongs to that process too, so a separate
        # worker would never find them. Tasks always run in-process.
        task_always_eager=True,
    )
    if settings.environment != "dev":
        logger.info(
            "Environment {}: batches run inside the API process; broker {} is not used for dispatch",
            settings.environment, settings.broker_url,
        )
    return app


celery_app = configure_celery(
    Celery(
        "batchopt",
        broker=settings.broker_url,
        backend=settings.result_backend,
        include=["batchopt.tasks.batch_tasks"],
    ),
    settings,
)
