"""Audit records for lending state mutations.

Records go to the ``lending.audit`` logger as one JSON document per
line; whatever ships those logs is responsible for keeping them.
"""

import json
import logging
from dataclasses import asdict, dataclass, field

from django.core.serializers.json import DjangoJSONEncoder
from django.utils import timezone

logger = logging.getLogger("lending.audit")

ACTION_CREATE = "create"
ACTION_STATUS_CHANGE = "status_change"
ACTION_UPDATE = "update"

SENSITIVE_KEYS = ("password", "token", "secret", "api_key")
REDACTED = "[REDACTED]"


@dataclass
class AuditRecord:
    action: str
    object_type: str
    object_id: int
    actor: dict
    before: dict = field(default_factory=dict)
    after: dict = field(default_factory=dict)
    metadata: dict = field(default_factory=dict)
    timestamp: object = field(default_factory=timezone.now)

    def as_dict(self) -> dict:
        data = asdict(self)
        for key in ("before", "after", "metadata"):
            data[key] = redact(data[key])
        return data


def actor_snapshot(user) -> dict:
    if user is None:
        return {"user_id": None, "email": None, "role": "system"}
    return {
        "user_id": user.pk,
        "email": user.email,
        "role": getattr(user, "role", None),
    }


def redact(value):
    """Replace values under sensitive keys, recursing into containers."""
    if isinstance(value, dict):
        return {
            key: (
                REDACTED
                if any(s in str(key).lower() for s in SENSITIVE_KEYS)
                else redact(item)
            )
            for key, item in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [redact(item) for item in value]
    return value


def emit_audit(record: AuditRecord) -> None:
    logger.info(json.dumps(record.as_dict(), cls=DjangoJSONEncoder))
