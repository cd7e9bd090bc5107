"""Month-end DRAFT snapshot job, run daily from cron"""

import logging
from datetime import date
from typing import Optional

from koperasi_ledger.config import settings
from koperasi_ledger.domain.models import FinancialSnapshot
from koperasi_ledger.infrastructure.cache import report_cache
from koperasi_ledger.infrastructure.clients.audit import LoggingAuditSink
from koperasi_ledger.infrastructure.database.reports import SqlReportStore
from koperasi_ledger.infrastructure.database.session import session_scope
from koperasi_ledger.infrastructure.observability.logging import setup_logging
from koperasi_ledger.infrastructure.settings_provider import ConfigSettingsProvider
from koperasi_ledger.services.reports import ReportService
from koperasi_ledger.utils.date_utils import days_until_month_end

logger = logging.getLogger(__name__)


def is_snapshot_day(today: date, days_before: Optional[int] = None) -> bool:
    """True exactly days_before days ahead of the month's last day"""
    if days_before is None:
        days_before = settings.snapshot_days_before_month_end
    return days_until_month_end(today) == days_before


def run_month_end_snapshot(today: date, service: ReportService) -> Optional[FinancialSnapshot]:
    """
    Generate the current month's DRAFT snapshot on the configured day.

    Returns the snapshot, or None when today is not the snapshot day or
    generation failed. Failures are logged as warnings and never raised.
    """
    days_before = int(service.settings.get_number("snapshot.daysBeforeMonthEnd"))
    if not is_snapshot_day(today, days_before):
        return None

    try:
        return service.generate_snapshot(today.month, today.year, settings.snapshot_system_user_id)
    except Exception as e:
        logger.warning(
            f"Month-end snapshot failed: {e}",
            extra={"month": today.month, "year": today.year, "step": "snapshot_job"},
        )
        return None


def main() -> None:
    """Console entry point: koperasi-month-end-snapshot"""
    setup_logging(settings.log_level)
    with session_scope() as db:
        service = ReportService(
            store=SqlReportStore(db),
            cache=report_cache,
            settings_provider=ConfigSettingsProvider(),
            audit=LoggingAuditSink(),
        )
        snapshot = run_month_end_snapshot(date.today(), service)
    if snapshot is not None:
        logger.info("Month-end snapshot generated", extra={"snapshot_id": snapshot.id})


if __name__ == "__main__":
    main()
