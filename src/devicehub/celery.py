"""Celery application for Device Hub.

Notification delivery is routed to its own queue so a backlog of fan-out
work never delays other tasks sharing the broker.
"""

import os

from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "devicehub.settings")

app = Celery("devicehub")
app.config_from_object("django.conf:settings", namespace="CELERY")
app.conf.task_default_queue = "default"
app.conf.task_routes = {
    "lending.tasks.deliver_notification": {
        "queue": os.environ.get("NOTIFICATION_QUEUE", "notifications"),
    },
}
app.autodiscover_tasks(["lending"])
