"""Tests for the transaction coordinator."""

import logging
from unittest.mock import patch

import pytest

from django.db import IntegrityError, InterfaceError, OperationalError
from django.db import transaction as db_transaction
from django.test.utils import override_settings

from lending.exceptions import ConflictError, TransientStorageError
from lending.models import Device
from lending.services.transactions import execute


class Flaky:
    """Callable failing ``failures`` times before returning ``result``."""

    def __init__(self, failures, exc=OperationalError, result="ok"):
        self.failures = failures
        self.exc = exc
        self.result = result
        self.calls = 0
        self.__name__ = "flaky"

    def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.exc("deadlock detected")
        return self.result


@pytest.mark.django_db(transaction=True)
class TestRetry:
    def test_returns_result(self):
        assert execute(lambda: 42) == 42

    def test_commits_writes(self):
        execute(lambda: Device.objects.create(name="Pixel", asset_tag="P-1"))
        assert Device.objects.filter(asset_tag="P-1").exists()

    def test_retries_transient_errors_with_backoff(self):
        fn = Flaky(failures=2)
        with patch("lending.services.transactions.time.sleep") as sleep:
            result = execute(fn, max_attempts=3, backoff=0.5)
        assert result == "ok"
        assert fn.calls == 3
        assert [c.args[0] for c in sleep.call_args_list] == [0.5, 1.0]

    def test_interface_error_is_transient(self):
        fn = Flaky(failures=1, exc=InterfaceError)
        with patch("lending.services.transactions.time.sleep"):
            assert execute(fn, max_attempts=2, backoff=0) == "ok"
        assert fn.calls == 2

    def test_exhaustion_raises_transient_storage_error(self):
        fn = Flaky(failures=10)
        with patch("lending.services.transactions.time.sleep") as sleep:
            with pytest.raises(TransientStorageError) as excinfo:
                execute(fn, max_attempts=3, backoff=0.1)
        assert fn.calls == 3
        assert sleep.call_count == 2
        assert isinstance(excinfo.value.__cause__, OperationalError)
        assert excinfo.value.http_status == 503
        assert "retry" in excinfo.value.message

    def test_failed_attempts_roll_back(self):
        def create_then_fail():
            Device.objects.create(name="Pixel", asset_tag="P-2")
            raise OperationalError("connection lost")

        with patch("lending.services.transactions.time.sleep"):
            with pytest.raises(TransientStorageError):
                execute(create_then_fail, max_attempts=2, backoff=0)
        assert not Device.objects.filter(asset_tag="P-2").exists()

    def test_domain_errors_are_not_retried(self):
        fn = Flaky(failures=5, exc=ConflictError)
        with pytest.raises(ConflictError):
            execute(fn, max_attempts=3, backoff=0)
        assert fn.calls == 1

    def test_integrity_errors_are_not_retried(self):
        fn = Flaky(failures=5, exc=IntegrityError)
        with pytest.raises(IntegrityError):
            execute(fn, max_attempts=3, backoff=0)
        assert fn.calls == 1

    @override_settings(
        LENDING_TRANSACTION_MAX_ATTEMPTS=2, LENDING_TRANSACTION_BACKOFF=0.3
    )
    def test_defaults_come_from_settings(self):
        fn = Flaky(failures=10)
        with patch("lending.services.transactions.time.sleep") as sleep:
            with pytest.raises(TransientStorageError):
                execute(fn)
        assert fn.calls == 2
        sleep.assert_called_once_with(0.3)

    def test_logs_each_retry_and_exhaustion(self, caplog):
        fn = Flaky(failures=10)
        with caplog.at_level(logging.WARNING, logger="lending"):
            with patch("lending.services.transactions.time.sleep"):
                with pytest.raises(TransientStorageError):
                    execute(fn, max_attempts=3, backoff=0)
        levels = [
            r.levelname
            for r in caplog.records
            if r.name == "lending.services.transactions"
        ]
        assert levels == ["WARNING", "WARNING", "ERROR"]


@pytest.mark.django_db
class TestNestedAtomic:
    def test_runs_once_inside_outer_transaction(self):
        fn = Flaky(failures=1)
        with patch("lending.services.transactions.time.sleep") as sleep:
            with pytest.raises(TransientStorageError):
                execute(fn, max_attempts=5, backoff=0)
        assert fn.calls == 1
        sleep.assert_not_called()

    def test_success_inside_outer_transaction(self):
        with db_transaction.atomic():
            assert execute(lambda: "done") == "done"
