"""Reporting aggregator - period reports, cache-aside, and financial snapshots"""

import logging
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from koperasi_ledger.domain.exceptions import NotFoundError, PreconditionError, SnapshotFinalizedError
from koperasi_ledger.domain.models import (
    INFLOW_KINDS,
    OUTFLOW_KINDS,
    AuditEvent,
    FinancialSnapshot,
    PeriodTotals,
    SavingsCategory,
    TransactionKind,
)
from koperasi_ledger.domain.money import Money
from koperasi_ledger.domain.ports import AuditSink, ReportCache, ReportStore, SettingsProvider
from koperasi_ledger.domain.reporting import (
    average_amount,
    cash_resilience_risk,
    cashflow_risk,
    credit_expansion_risk,
    deficit_streak,
    growth,
    liquidity_risk,
    member_activity_risk,
    ratio_str,
    safe_divide,
)
from koperasi_ledger.infrastructure.observability.metrics import record_report_cache, snapshot_counter
from koperasi_ledger.utils.date_utils import (
    MAX_PERIOD_YEAR,
    MIN_PERIOD_YEAR,
    days_in_month,
    month_range,
    shift_month,
    subtract_months,
    utcnow,
)

logger = logging.getLogger(__name__)

Payload = Dict[str, Any]

DASHBOARD_TREND_MONTHS = 6
DASHBOARD_TOP_LOANS = 5


class ReportKind(str, Enum):
    MONTHLY = "monthly"
    TRANSACTIONS = "transactions"
    INSTALLMENTS = "installments"
    WITHDRAWALS = "withdrawals"
    LOANS = "loans"
    SAVINGS = "savings"
    CASHFLOW = "cashflow"
    MEMBERSHIP = "membership"
    DASHBOARD = "dashboard"


def validate_period(month: int, year: int) -> None:
    if not 1 <= month <= 12:
        raise PreconditionError(f"month must be between 1 and 12, got {month}")
    if not MIN_PERIOD_YEAR <= year <= MAX_PERIOD_YEAR:
        raise PreconditionError(f"year must be between {MIN_PERIOD_YEAR} and {MAX_PERIOD_YEAR}, got {year}")


def cache_key(kind: ReportKind, month: int, year: int) -> str:
    return f"{period_prefix(month, year)}{kind.value}"


def period_prefix(month: int, year: int) -> str:
    return f"report:{year}-{month:02d}:"


def _amount(value: Optional[Money]) -> Optional[str]:
    return None if value is None else value.serialize()


def snapshot_payload(snapshot: FinancialSnapshot) -> Payload:
    return {
        "id": snapshot.id,
        "month": snapshot.month,
        "year": snapshot.year,
        "total_deposits": _amount(snapshot.total_deposits),
        "total_withdrawals": _amount(snapshot.total_withdrawals),
        "total_disbursements": _amount(snapshot.total_disbursements),
        "total_installments": _amount(snapshot.total_installments),
        "closing_balance": _amount(snapshot.closing_balance),
        "status": snapshot.status.value,
        "generated_by_id": snapshot.generated_by_id,
        "generated_at": snapshot.generated_at.isoformat(),
    }


class ReportService:
    """
    Builds period reports from the ledger.

    A stored snapshot (DRAFT or FINAL) is authoritative for its period's
    per-kind totals; otherwise totals are summed live from APPROVED
    transactions. Balance figures (savings, outstanding loans) are always
    current. Responses are cached per period and invalidated by snapshot
    writes.
    """

    def __init__(
        self,
        store: ReportStore,
        cache: ReportCache,
        settings_provider: SettingsProvider,
        audit: Optional[AuditSink] = None,
    ):
        self.store = store
        self.cache = cache
        self.settings = settings_provider
        self.audit = audit
        self._builders: Dict[ReportKind, Callable[[int, int], Payload]] = {
            ReportKind.MONTHLY: self._monthly,
            ReportKind.TRANSACTIONS: self._transactions,
            ReportKind.INSTALLMENTS: self._installments,
            ReportKind.WITHDRAWALS: self._withdrawals,
            ReportKind.LOANS: self._loans,
            ReportKind.SAVINGS: self._savings,
            ReportKind.CASHFLOW: self._cashflow,
            ReportKind.MEMBERSHIP: self._membership,
            ReportKind.DASHBOARD: self._dashboard,
        }

    # Public API

    def get_report(self, kind: ReportKind, month: int, year: int) -> Payload:
        """Cache-aside lookup of one report payload"""
        validate_period(month, year)
        key = cache_key(kind, month, year)

        cached = self.cache.get(key)
        if cached is not None:
            record_report_cache(kind.value, hit=True)
            return cached

        record_report_cache(kind.value, hit=False)
        payload = {"period": {"month": month, "year": year}}
        payload.update(self._builders[kind](month, year))
        self.cache.set(key, payload)
        return payload

    def generate_snapshot(self, month: int, year: int, actor_id: int) -> FinancialSnapshot:
        """
        Recompute the period's totals from the ledger and store them as DRAFT.

        Raises:
            SnapshotFinalizedError: the period's snapshot is FINAL
        """
        validate_period(month, year)
        existing = self.store.find_snapshot(month, year)

        totals = self.live_totals(month, year)
        closing = self.opening_balance(month, year) + totals.net_cashflow
        try:
            snapshot = self.store.save_snapshot(
                month=month,
                year=year,
                totals=totals,
                closing_balance=closing,
                generated_by_id=actor_id,
                generated_at=utcnow(),
            )
        except SnapshotFinalizedError:
            snapshot_counter.labels(action="rejected").inc()
            raise

        # Later periods read this one for growth, deficit streaks and trends
        self.cache.delete_prefix("report:")
        snapshot_counter.labels(action="generate").inc()
        logger.info(
            "Snapshot generated",
            extra={"snapshot_id": snapshot.id, "month": month, "year": year, "step": "snapshot_generate"},
        )
        self._audit(
            AuditEvent(
                action="GENERATE_SNAPSHOT",
                entity="financial_snapshot",
                entity_id=snapshot.id,
                actor_id=actor_id,
                before=snapshot_payload(existing) if existing is not None else None,
                after=snapshot_payload(snapshot),
            )
        )
        return snapshot

    def finalize_snapshot(self, snapshot_id: int, actor_id: Optional[int] = None) -> FinancialSnapshot:
        """One-way DRAFT -> FINAL"""
        try:
            snapshot = self.store.finalize_snapshot(snapshot_id)
        except SnapshotFinalizedError:
            snapshot_counter.labels(action="rejected").inc()
            raise
        if snapshot is None:
            raise NotFoundError(f"snapshot {snapshot_id} not found")

        # A FINAL closing balance opens every later period
        self.cache.delete_prefix("report:")
        snapshot_counter.labels(action="finalize").inc()
        logger.info(
            "Snapshot finalized",
            extra={"snapshot_id": snapshot.id, "month": snapshot.month, "year": snapshot.year, "step": "snapshot_finalize"},
        )
        self._audit(
            AuditEvent(
                action="FINALIZE_SNAPSHOT",
                entity="financial_snapshot",
                entity_id=snapshot.id,
                actor_id=actor_id,
                before={"status": "DRAFT"},
                after={"status": snapshot.status.value},
            )
        )
        return snapshot

    def find_snapshot(self, month: int, year: int) -> FinancialSnapshot:
        validate_period(month, year)
        snapshot = self.store.find_snapshot(month, year)
        if snapshot is None:
            raise NotFoundError(f"snapshot {month:02d}/{year} not found")
        return snapshot

    # Period figures

    def live_totals(self, month: int, year: int) -> PeriodTotals:
        start, end = month_range(month, year)
        return PeriodTotals(
            deposits=self.store.sum_amount([TransactionKind.DEPOSIT], start, end),
            withdrawals=self.store.sum_amount([TransactionKind.WITHDRAWAL], start, end),
            disbursements=self.store.sum_amount([TransactionKind.DISBURSEMENT], start, end),
            installments=self.store.sum_amount([TransactionKind.INSTALLMENT], start, end),
        )

    def period_totals(self, month: int, year: int) -> PeriodTotals:
        """Snapshot totals when the period has one, live sums otherwise"""
        snapshot = self.store.find_snapshot(month, year)
        if snapshot is not None:
            return snapshot.totals
        return self.live_totals(month, year)

    def opening_balance(self, month: int, year: int) -> Money:
        previous = self.store.find_previous_final_snapshot(month, year)
        return previous.closing_balance if previous is not None else Money.zero()

    def _setting(self, key: str) -> int:
        return int(self.settings.get_number(key))

    def _audit(self, event: AuditEvent) -> None:
        if self.audit is None:
            return
        try:
            self.audit.record(event)
        except Exception:
            logger.warning("Audit sink failed", extra={"entity_id": event.entity_id}, exc_info=True)

    # Report builders

    def _monthly(self, month: int, year: int) -> Payload:
        start, end = month_range(month, year)
        prev_month, prev_year = shift_month(month, year, -1)
        prev_start, prev_end = month_range(prev_month, prev_year)

        totals = self.period_totals(month, year)
        prev_totals = self.period_totals(prev_month, prev_year)
        opening = self.opening_balance(month, year)
        closing = opening + totals.net_cashflow

        total_outstanding = self.store.total_outstanding()
        total_savings = self.store.total_savings()

        members_active = self.store.count_members(active_only=True)
        members_total = self.store.count_members()
        members_new = self.store.count_members(created_between=(start, end))
        members_left = self.store.count_members(left_between=(start, end))
        prev_members_total = self.store.count_members(created_before=prev_end)

        transaction_count = self.store.count_transactions(start, end)
        prev_transaction_count = self.store.count_transactions(prev_start, prev_end)

        liquidity = safe_divide(closing, totals.withdrawals)
        active_credit = safe_divide(total_outstanding, total_savings)
        cash_coverage = safe_divide(totals.installments, totals.disbursements)
        member_activity = safe_divide(members_active, members_total)

        return {
            "summary": {
                "total_deposits": _amount(totals.deposits),
                "total_disbursed": _amount(totals.disbursements),
                "total_installments": _amount(totals.installments),
                "total_withdrawals": _amount(totals.withdrawals),
                "opening_balance": _amount(opening),
                "closing_balance": _amount(closing),
                "members_active": members_active,
                "members_total": members_total,
                "members_new": members_new,
                "members_left": members_left,
            },
            "performance": {
                "deposit_growth": ratio_str(growth(totals.deposits, prev_totals.deposits)),
                "loan_growth": ratio_str(growth(totals.disbursements, prev_totals.disbursements)),
                "transaction_growth": ratio_str(growth(transaction_count, prev_transaction_count)),
                "member_growth": ratio_str(growth(members_total, prev_members_total)),
                "net_cashflow": _amount(totals.net_cashflow),
            },
            "financial_indicators": {
                "liquidity_ratio": ratio_str(liquidity),
                "active_credit_ratio": ratio_str(active_credit),
                "cash_coverage_ratio": ratio_str(cash_coverage),
                "member_activity_ratio": ratio_str(member_activity),
            },
            "risk_evaluation": {
                "liquidity": liquidity_risk(liquidity),
                "credit_expansion": credit_expansion_risk(active_credit),
                "cashflow": cashflow_risk(totals.net_cashflow),
                "cash_resilience": cash_resilience_risk(cash_coverage),
                "member_activity": member_activity_risk(member_activity),
            },
        }

    def _transactions(self, month: int, year: int) -> Payload:
        start, end = month_range(month, year)
        by_kind = self.store.totals_by_kind(start, end)
        total_count = sum(count for count, _ in by_kind.values())
        total_amount = Money.total(amount for _, amount in by_kind.values())

        breakdown = {}
        for kind in TransactionKind:
            count, amount = by_kind[kind]
            breakdown[kind.value] = {
                "count": count,
                "total": _amount(amount),
                "average": _amount(average_amount(amount, count)),
                "share_of_total": ratio_str(safe_divide(amount, total_amount)),
            }

        return {
            "summary": {
                "total_count": total_count,
                "total_amount": _amount(total_amount),
                "average_per_day": ratio_str(safe_divide(total_count, days_in_month(month, year))),
            },
            "breakdown": breakdown,
        }

    def _installments(self, month: int, year: int) -> Payload:
        start, end = month_range(month, year)
        totals = self.period_totals(month, year)
        count = self.store.count_transactions(start, end, kinds=[TransactionKind.INSTALLMENT])
        borrowers = self.store.count_distinct_members([TransactionKind.INSTALLMENT], start, end)
        outstanding = self.store.total_outstanding()

        return {
            "summary": {
                "total_installments": _amount(totals.installments),
                "count": count,
                "average_installment": _amount(average_amount(totals.installments, count)),
            },
            "metrics": {
                "payment_ratio": ratio_str(safe_divide(totals.installments, outstanding)),
                "disbursement_coverage": ratio_str(safe_divide(totals.installments, totals.disbursements)),
                "average_per_borrower": _amount(average_amount(totals.installments, borrowers)),
            },
        }

    def _withdrawals(self, month: int, year: int) -> Payload:
        start, end = month_range(month, year)
        prev_month, prev_year = shift_month(month, year, -1)

        totals = self.period_totals(month, year)
        prev_totals = self.period_totals(prev_month, prev_year)
        count = self.store.count_transactions(start, end, kinds=[TransactionKind.WITHDRAWAL])
        top3 = Money.total(self.store.top_member_totals(TransactionKind.WITHDRAWAL, start, end, 3))

        return {
            "summary": {
                "total_withdrawals": _amount(totals.withdrawals),
                "count": count,
                "average_withdrawal": _amount(average_amount(totals.withdrawals, count)),
            },
            "metrics": {
                "ratio_to_savings": ratio_str(safe_divide(totals.withdrawals, self.store.total_savings())),
                "growth_vs_previous_month": ratio_str(growth(totals.withdrawals, prev_totals.withdrawals)),
                "top3_concentration": ratio_str(safe_divide(top3, totals.withdrawals)),
            },
        }

    def _loans(self, month: int, year: int) -> Payload:
        start, end = month_range(month, year)
        top_n = self._setting("report.topConcentrationSize")

        active_count = self.store.count_active_loans()
        outstanding = self.store.total_outstanding()
        new_count, new_principal = self.store.loans_approved_between(start, end)
        top_outstanding = Money.total(self.store.top_outstanding(top_n))

        return {
            "summary": {
                "active_loans": active_count,
                "total_outstanding": _amount(outstanding),
                "new_loans": new_count,
                "new_loans_principal": _amount(new_principal),
            },
            "metrics": {
                "loan_to_savings_ratio": ratio_str(safe_divide(outstanding, self.store.total_savings())),
                "top_concentration_size": top_n,
                "top_concentration": ratio_str(safe_divide(top_outstanding, outstanding)),
                "average_outstanding": _amount(average_amount(outstanding, active_count)),
            },
        }

    def _savings(self, month: int, year: int) -> Payload:
        totals = self.period_totals(month, year)
        by_category = self.store.savings_by_category()
        total_savings = self.store.total_savings()
        members_active = self.store.count_members(active_only=True)

        previous_total = total_savings - (totals.deposits - totals.withdrawals)

        return {
            "summary": {
                "total_savings": _amount(total_savings),
                "mandatory_initial": _amount(by_category[SavingsCategory.MANDATORY_INITIAL]),
                "mandatory_monthly": _amount(by_category[SavingsCategory.MANDATORY_MONTHLY]),
                "voluntary": _amount(by_category[SavingsCategory.VOLUNTARY]),
            },
            "metrics": {
                "savings_growth": ratio_str(growth(total_savings, previous_total)),
                "voluntary_share": ratio_str(safe_divide(by_category[SavingsCategory.VOLUNTARY], total_savings)),
                "average_balance_per_member": _amount(average_amount(total_savings, members_active)),
            },
        }

    def _cashflow(self, month: int, year: int) -> Payload:
        window = self._setting("report.deficitStreakMonths")
        totals = self.period_totals(month, year)
        opening = self.opening_balance(month, year)
        closing = opening + totals.net_cashflow

        prev_month, prev_year = shift_month(month, year, -1)
        prev_surplus = self.period_totals(prev_month, prev_year).net_cashflow

        net_flows: List[Money] = [totals.net_cashflow]
        for offset in range(1, window):
            m, y = shift_month(month, year, -offset)
            net_flows.append(self.period_totals(m, y).net_cashflow)

        return {
            "summary": {
                "opening_balance": _amount(opening),
                "inflow": _amount(totals.inflow),
                "outflow": _amount(totals.outflow),
                "surplus": _amount(totals.net_cashflow),
                "closing_balance": _amount(closing),
            },
            "ratios": {
                "liquidity_ratio": ratio_str(safe_divide(opening + totals.inflow, totals.outflow)),
                "expense_ratio": ratio_str(safe_divide(totals.outflow, totals.inflow)),
            },
            "trend": {
                "surplus_delta": _amount(totals.net_cashflow - prev_surplus),
                "consecutive_deficit_months": deficit_streak(net_flows),
                "deficit_window_months": window,
            },
        }

    def _membership(self, month: int, year: int) -> Payload:
        start, end = month_range(month, year)
        dormant_months = self._setting("report.dormantMemberMonths")

        total = self.store.count_members()
        active = self.store.count_members(active_only=True)
        new = self.store.count_members(created_between=(start, end))
        left = self.store.count_members(left_between=(start, end))
        with_loans = self.store.count_members_with_active_loans()
        transacting = self.store.count_distinct_members(INFLOW_KINDS + OUTFLOW_KINDS, start, end)
        dormant = self.store.count_dormant_members(subtract_months(end, dormant_months))

        return {
            "population": {
                "total": total,
                "active": active,
                "new": new,
                "left": left,
                "dormant_active": dormant,
            },
            "credit": {
                "members_with_active_loans": with_loans,
                "average_loan_per_borrower": _amount(
                    average_amount(self.store.total_outstanding(), with_loans)
                ),
            },
            "ratios": {
                "activity_ratio": ratio_str(safe_divide(active, total)),
                "growth_ratio": ratio_str(safe_divide(new - left, total)),
                "participation_ratio": ratio_str(safe_divide(transacting, active)),
                "active_loan_ratio": ratio_str(safe_divide(with_loans, active)),
            },
        }

    def _dashboard(self, month: int, year: int) -> Payload:
        """Period figures plus six-month cashflow and membership trends ending at the period"""
        totals = self.period_totals(month, year)
        total_savings = self.store.total_savings()
        by_category = self.store.savings_by_category()
        previous_savings = total_savings - (totals.deposits - totals.withdrawals)

        cashflow_trend = []
        membership_trend = []
        for offset in range(DASHBOARD_TREND_MONTHS - 1, -1, -1):
            m, y = shift_month(month, year, -offset)
            start, end = month_range(m, y)
            flows = self.period_totals(m, y)
            cashflow_trend.append(
                {"month": m, "year": y, "inflow": _amount(flows.inflow), "outflow": _amount(flows.outflow)}
            )
            membership_trend.append(
                {
                    "month": m,
                    "year": y,
                    "new": self.store.count_members(created_between=(start, end)),
                    "left": self.store.count_members(left_between=(start, end)),
                }
            )

        return {
            "financial_summary": {
                "total_savings": _amount(total_savings),
                "total_outstanding": _amount(self.store.total_outstanding()),
                "deposits": _amount(totals.deposits),
                "withdrawals": _amount(totals.withdrawals),
                "installments": _amount(totals.installments),
                "savings_growth": ratio_str(growth(total_savings, previous_savings)),
            },
            "savings_composition": {
                category.value: _amount(by_category[category]) for category in SavingsCategory
            },
            "cashflow_trend": cashflow_trend,
            "top_outstanding": [
                {"loan_id": loan_id, "outstanding": _amount(amount)}
                for loan_id, amount in self.store.top_outstanding_loans(DASHBOARD_TOP_LOANS)
            ],
            "membership": {
                "total": self.store.count_members(),
                "active": self.store.count_members(active_only=True),
                "trend": membership_trend,
            },
        }
