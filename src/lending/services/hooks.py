"""Post-commit hooks that must never fail the operation that queued them."""

import logging

from django.db import transaction as db_transaction

logger = logging.getLogger(__name__)


def run_after_commit(func, *args, **kwargs):
    """Schedule ``func(*args, **kwargs)`` for after the current commit.

    Runs immediately when there is no open transaction. Failures are
    logged with their traceback and swallowed: the data is already
    committed.
    """
    name = getattr(func, "__name__", repr(func))

    def hook():
        try:
            func(*args, **kwargs)
        except Exception:
            logger.exception("Post-commit hook %s failed", name)

    db_transaction.on_commit(hook)
