"""Celery tasks for the lending app."""

from celery import shared_task


@shared_task(
    bind=True,
    autoretry_for=(Exception,),
    max_retries=3,
    retry_backoff=30,
    retry_backoff_max=300,
)
def deliver_notification(self, event: dict):
    """Persist the in-app notifications for one lending event."""
    from .services.notifications import NotificationEvent, deliver

    created = deliver(NotificationEvent(**event))
    return len(created)
