"""
Celery worker for outbound mail. The API only enqueues; every template is
rendered and sent here.
"""

from __future__ import annotations

import logging
from typing import Any

from celery import Celery, Task
from celery.signals import setup_logging
from kombu import Queue

from .core.settings import settings

logger = logging.getLogger(__name__)

MAIL_QUEUE = "emails"

celery_app = Celery(
    "ticketing",
    broker=settings.celery.CELERY_BROKER_URL,
    backend=settings.celery.CELERY_RESULT_BACKEND,
    include=["ticketing.tasks"],
)

celery_app.conf.update(
    task_serializer=settings.celery.CELERY_TASK_SERIALIZER,
    result_serializer=settings.celery.CELERY_RESULT_SERIALIZER,
    accept_content=settings.celery.CELERY_ACCEPT_CONTENT,
    timezone=settings.celery.CELERY_TIMEZONE,
    enable_utc=settings.celery.CELERY_ENABLE_UTC,
    task_default_queue=MAIL_QUEUE,
    task_queues={MAIL_QUEUE: Queue(MAIL_QUEUE)},
    task_routes={"ticketing.tasks.send_templated_email": {"queue": MAIL_QUEUE}},
    task_annotations={"ticketing.tasks.send_templated_email": {"rate_limit": "100/m"}},
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    worker_prefetch_multiplier=1,
    broker_connection_retry_on_startup=True,
    result_expires=3600,
    task_soft_time_limit=60,
    task_time_limit=120,
)


@setup_logging.connect  # type: ignore[misc]
def config_loggers(*args: Any, **kwargs: Any) -> None:
    """Workers log JSON lines, like the API process."""
    from logging.config import dictConfig

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "json": {
                    "()": "pythonjsonlogger.json.JsonFormatter",
                    "format": "%(levelname)s %(asctime)s %(processName)s %(name)s %(message)s",
                    "rename_fields": {"levelname": "level", "asctime": "time"},
                },
            },
            "handlers": {
                "console": {"class": "logging.StreamHandler", "formatter": "json"},
            },
            "root": {"level": settings.monitoring.LOG_LEVEL, "handlers": ["console"]},
            "loggers": {
                "celery": {"level": "INFO", "handlers": ["console"], "propagate": False},
            },
        }
    )


class MailTask(Task):
    """Logs the template and recipient of every delivery attempt."""

    abstract = True

    def _describe(self, args: tuple[Any, ...]) -> dict[str, Any]:
        template = args[0] if args else None
        recipient = args[1] if len(args) > 1 and isinstance(args[1], dict) else {}
        return {"task_name": self.name, "template": template, "recipient": recipient.get("email")}

    def on_failure(
        self,
        exc: Exception,
        task_id: str,
        args: tuple[Any, ...],
        kwargs: dict[str, Any],
        einfo: Any,
    ) -> None:
        logger.error(
            f"Mail task {task_id} gave up: {exc}",
            extra={"task_id": task_id, **self._describe(args)},
        )

    def on_retry(
        self,
        exc: Exception,
        task_id: str,
        args: tuple[Any, ...],
        kwargs: dict[str, Any],
        einfo: Any,
    ) -> None:
        logger.warning(
            f"Mail task {task_id} retrying: {exc}",
            extra={
                "task_id": task_id,
                "retry_count": self.request.retries,
                **self._describe(args),
            },
        )

    def on_success(
        self, retval: Any, task_id: str, args: tuple[Any, ...], kwargs: dict[str, Any]
    ) -> None:
        logger.info(
            f"Mail task {task_id} finished",
            extra={"task_id": task_id, "delivered": bool(retval), **self._describe(args)},
        )


celery_app.Task = MailTask
