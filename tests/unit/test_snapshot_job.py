"""Unit tests for the month-end snapshot job"""

import logging
from datetime import date

from koperasi_ledger.config import Settings
from koperasi_ledger.domain.exceptions import SnapshotFinalizedError
from koperasi_ledger.infrastructure.settings_provider import ConfigSettingsProvider
from koperasi_ledger.services.snapshot_job import is_snapshot_day, run_month_end_snapshot


class StubReportService:
    def __init__(self, error: Exception = None, days_before: int = 3):
        self.settings = ConfigSettingsProvider(Settings(snapshot_days_before_month_end=days_before))
        self.error = error
        self.calls = []

    def generate_snapshot(self, month, year, actor_id):
        self.calls.append((month, year, actor_id))
        if self.error is not None:
            raise self.error
        return "snapshot"


def test_is_snapshot_day():
    """Three days before the last day of the month"""
    assert is_snapshot_day(date(2024, 3, 28), 3)
    assert is_snapshot_day(date(2024, 2, 26), 3)  # leap February ends on the 29th
    assert not is_snapshot_day(date(2024, 3, 27), 3)
    assert not is_snapshot_day(date(2024, 3, 31), 3)
    assert is_snapshot_day(date(2024, 3, 31), 0)


def test_job_generates_on_snapshot_day():
    service = StubReportService()

    assert run_month_end_snapshot(date(2024, 4, 27), service) == "snapshot"
    assert service.calls == [(4, 2024, 1)]


def test_job_skips_other_days():
    service = StubReportService()

    assert run_month_end_snapshot(date(2024, 4, 10), service) is None
    assert service.calls == []


def test_job_honours_configured_day():
    service = StubReportService(days_before=1)

    assert run_month_end_snapshot(date(2024, 4, 27), service) is None
    assert run_month_end_snapshot(date(2024, 4, 29), service) == "snapshot"


def test_job_failure_is_logged_not_raised(caplog):
    service = StubReportService(error=SnapshotFinalizedError("snapshot 04/2024 is FINAL"))

    with caplog.at_level(logging.WARNING, logger="koperasi_ledger.services.snapshot_job"):
        result = run_month_end_snapshot(date(2024, 4, 27), service)

    assert result is None
    assert "Month-end snapshot failed" in caplog.text
