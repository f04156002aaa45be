import logging

from celery import Celery
from celery.schedules import crontab

from core.settings import settings
from tasks.invite_tasks import create_invite_expiry_task
from tasks.recurrence_tasks import create_recurrence_task
from tasks.rent_notifications import create_rent_notification_task
from tasks.side_effect_tasks import create_side_effect_task

logger = logging.getLogger(__name__)


class CeleryManager:
    def __init__(self):
        self.REDIS_URL = settings.CELERY_REDIS_URL

        self.app = Celery(
            "propman_tasks",
            broker=self.REDIS_URL,
            backend=self.REDIS_URL,
            include=[
                "tasks.recurrence_tasks",
                "tasks.side_effect_tasks",
                "tasks.invite_tasks",
                "tasks.rent_notifications",
            ],
        )

        self.app.conf.update(
            task_serializer="json",
            task_track_started=True,
            accept_content=["json"],
            result_serializer="json",
            timezone="UTC",
            enable_utc=True,
            broker_connection_retry=True,
            broker_connection_retry_on_startup=True,
            broker_connection_max_retries=None,
            task_acks_late=False,
            redis_socket_keepalive=True,
            redis_socket_timeout=30,
            broker_transport_options={"visibility_timeout": 3600},
            worker_hijack_root_logger=False,
        )
        if self.REDIS_URL.startswith("rediss://"):
            self.app.conf.update(
                broker_use_ssl={"ssl_cert_reqs": "required"},
                redis_backend_use_ssl={"ssl_cert_reqs": "required"},
            )

        RecurrenceTask = create_recurrence_task(self.app)
        self.app.register_task(RecurrenceTask())

        DrainSideEffectsTask = create_side_effect_task(self.app)
        self.app.register_task(DrainSideEffectsTask())

        InviteExpiryTask = create_invite_expiry_task(self.app)
        self.app.register_task(InviteExpiryTask())

        RentNotificationsTask = create_rent_notification_task(self.app)
        self.app.register_task(RentNotificationsTask())

        self.app.conf.beat_schedule = {
            "run-recurrence-every-15-minutes": {
                "task": "run_recurrence",
                "schedule": crontab(minute="*/15"),
            },
            "drain-side-effects-every-minute": {
                "task": "drain_side_effects",
                "schedule": crontab(),
            },
            "expire-invites-hourly": {
                "task": "expire_stale_invites",
                "schedule": crontab(minute=0),
            },
            "process-rent-notifications-daily": {
                "task": "process_rent_notifications",
                "schedule": crontab(hour=1, minute=0),
            },
        }


celery_app = CeleryManager()
app = celery_app.app
