from celery import Celery

from campus_rewards.core.config import get_settings

settings = get_settings()

celery_app = Celery(
    "campus_rewards",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=[
        "campus_rewards.workers.tasks.redemption_maintenance",
    ],
)

celery_app.conf.update(
    task_default_queue="q_normal",
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone=settings.campus_timezone,
    enable_utc=True,
)


@celery_app.task(name="campus_rewards.workers.celery_app.ping")
def ping() -> str:
    return "pong"
