"""In-app notification events and their delivery."""

import logging
from dataclasses import asdict, dataclass, field

from django.contrib.auth import get_user_model
from django.db.models import Q

from ..models import Notification

logger = logging.getLogger(__name__)

User = get_user_model()


@dataclass
class NotificationEvent:
    type: str
    target_user_ids: list
    title: str
    message: str
    related_request_id: int = None
    related_device_id: int = None
    link: str = ""
    metadata: dict = field(default_factory=dict)

    def as_dict(self) -> dict:
        return asdict(self)


def admin_ids() -> list:
    """Primary keys of every active user who can review requests."""
    return list(
        User.objects.filter(is_active=True)
        .filter(
            Q(is_superuser=True)
            | Q(role__in=[User.ROLE_ADMIN, User.ROLE_SUPERUSER])
        )
        .order_by("pk")
        .values_list("pk", flat=True)
    )


def dispatch(event: NotificationEvent) -> None:
    """Hand the event to the Celery worker for delivery."""
    from ..tasks import deliver_notification

    if not event.target_user_ids:
        logger.debug("Notification %s has no recipients", event.type)
        return
    deliver_notification.delay(event.as_dict())


def deliver(event: NotificationEvent) -> list:
    """Persist one Notification per distinct active recipient."""
    recipients = User.objects.filter(
        pk__in=set(event.target_user_ids), is_active=True
    ).order_by("pk")
    created = Notification.objects.bulk_create(
        [
            Notification(
                user=user,
                type=event.type,
                title=event.title,
                message=event.message,
                link=event.link,
                related_request_id=event.related_request_id,
                related_device_id=event.related_device_id,
            )
            for user in recipients
        ]
    )
    logger.info(
        "Delivered %s notification to %d user(s)", event.type, len(created)
    )
    return created


def unread_count(user) -> int:
    return Notification.objects.filter(user=user, is_read=False).count()


def mark_read(user, ids=None) -> int:
    """Mark the user's notifications read; all of them when ids is None."""
    qs = Notification.objects.filter(user=user, is_read=False)
    if ids is not None:
        qs = qs.filter(pk__in=ids)
    return qs.update(is_read=True)
