"""Transaction coordinator with retry on transient storage errors."""

import logging
import time

from django.conf import settings
from django.db import InterfaceError, OperationalError
from django.db import transaction as db_transaction

from ..exceptions import TransientStorageError

logger = logging.getLogger(__name__)

TRANSIENT_ERRORS = (OperationalError, InterfaceError)

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BACKOFF = 0.2


def execute(fn, *, max_attempts=None, backoff=None):
    """Run ``fn()`` inside ``transaction.atomic()`` and return its result.

    Connection loss, deadlocks, lock-wait timeouts and serialization
    failures surface from Django as OperationalError or InterfaceError;
    those are retried with exponential backoff. Anything else propagates
    on the first attempt. When retries run out, TransientStorageError is
    raised from the last error.

    Inside an outer atomic block the outer transaction is already
    unusable after a storage error, so ``fn`` runs exactly once.
    """
    if max_attempts is None:
        max_attempts = getattr(
            settings, "LENDING_TRANSACTION_MAX_ATTEMPTS", DEFAULT_MAX_ATTEMPTS
        )
    if backoff is None:
        backoff = getattr(
            settings, "LENDING_TRANSACTION_BACKOFF", DEFAULT_BACKOFF
        )
    max_attempts = max(1, int(max_attempts))
    if db_transaction.get_connection().in_atomic_block:
        max_attempts = 1

    attempt = 0
    while True:
        attempt += 1
        try:
            with db_transaction.atomic():
                return fn()
        except TRANSIENT_ERRORS as exc:
            if attempt >= max_attempts:
                logger.error(
                    "Transaction %s failed after %d attempt(s): %s",
                    getattr(fn, "__name__", fn),
                    attempt,
                    exc,
                )
                raise TransientStorageError() from exc
            delay = backoff * 2 ** (attempt - 1)
            logger.warning(
                "Transient storage error on attempt %d/%d of %s, "
                "retrying in %.2fs: %s",
                attempt,
                max_attempts,
                getattr(fn, "__name__", fn),
                delay,
                exc,
            )
            time.sleep(delay)
