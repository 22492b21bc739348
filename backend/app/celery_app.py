from celery import Celery

from app.config import settings

celery = Celery(
    "casedocket",
    broker=settings.redis_url,
    backend=settings.redis_url,
)

celery.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    beat_schedule={
        "purge-expired-sessions": {
            "task": "purge_expired_sessions",
            "schedule": float(max(settings.session_sweep_interval_seconds, 60)),
        },
    },
)

celery.autodiscover_tasks(["app.auth"], related_name="celery_tasks")
