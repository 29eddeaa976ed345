"""Request state machines and transition validation."""

from ..exceptions import InvalidTransitionError, ValidationError
from ..models import BorrowRequest, RenewalRequest

BORROW = "borrow_request"
RENEWAL = "renewal_request"

MODELS = {
    BORROW: BorrowRequest,
    RENEWAL: RenewalRequest,
}


def _model_for(request_type):
    try:
        return MODELS[request_type]
    except KeyError:
        raise ValueError(f"Unknown request type '{request_type}'.") from None


def validate_status(request_type: str, status: str) -> None:
    """Raise ValidationError if ``status`` is not a status of the type."""
    model = _model_for(request_type)
    if status not in dict(model.STATUS_CHOICES):
        raise ValidationError(f"'{status}' is not a valid status.")


def validate_transition(request_type: str, current: str, target: str) -> None:
    """Validate and raise if the status transition is not allowed.

    Raises ValidationError for an unknown target status and
    InvalidTransitionError for any move the table does not list,
    including moves out of a terminal state and no-op moves.
    """
    validate_status(request_type, target)
    model = _model_for(request_type)
    allowed = model.VALID_TRANSITIONS.get(current, [])
    if target not in allowed:
        raise InvalidTransitionError(
            f"Cannot transition from '{current}' to '{target}'. "
            f"Allowed transitions: {', '.join(allowed) or 'none'}."
        )


def transition_request(request_type: str, obj, target: str, **fields):
    """Validate and perform a status transition on a locked request.

    Extra ``fields`` are written in the same save. Returns the saved
    object.
    """
    validate_transition(request_type, obj.status, target)
    obj.status = target
    for name, value in fields.items():
        setattr(obj, name, value)
    update_fields = ["status", *fields]
    if request_type == BORROW:
        update_fields.append("updated_at")
    obj.save(update_fields=update_fields)
    return obj
