"""Aggregate queries over the ledger and financial snapshot persistence"""

import logging
from datetime import datetime
from typing import Callable, Dict, List, Optional, Sequence, Tuple, TypeVar

from sqlalchemy import and_, func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from koperasi_ledger.domain.exceptions import SnapshotFinalizedError, StorageError
from koperasi_ledger.domain.models import (
    FinancialSnapshot,
    LoanStatus,
    MemberStatus,
    PeriodTotals,
    SavingsCategory,
    SnapshotStatus,
    TransactionKind,
    TransactionStatus,
)
from koperasi_ledger.domain.money import Money
from koperasi_ledger.infrastructure.database.models import (
    FinancialSnapshotRow,
    LedgerTransaction,
    Loan,
    Member,
    SavingsAccount,
)
from koperasi_ledger.infrastructure.database.repositories import to_money

logger = logging.getLogger(__name__)

T = TypeVar("T")


def to_snapshot(row: FinancialSnapshotRow) -> FinancialSnapshot:
    return FinancialSnapshot(
        id=row.id,
        month=row.month,
        year=row.year,
        total_deposits=to_money(row.total_deposits),
        total_withdrawals=to_money(row.total_withdrawals),
        total_disbursements=to_money(row.total_disbursements),
        total_installments=to_money(row.total_installments),
        closing_balance=to_money(row.closing_balance),
        status=SnapshotStatus(row.status),
        generated_by_id=row.generated_by_id,
        generated_at=row.generated_at,
    )


def _kind_values(kinds: Sequence[TransactionKind]) -> List[str]:
    return [k.value for k in kinds]


class SqlReportStore:
    """Repository for report aggregates and snapshots"""

    def __init__(self, db: Session):
        self.db = db

    def _period(self, query, start: datetime, end: datetime, approved_only: bool = True):
        """Half-open [start, end) window over live (non-deleted) transactions"""
        query = query.filter(
            LedgerTransaction.deleted_at.is_(None),
            LedgerTransaction.occurred_at >= start,
            LedgerTransaction.occurred_at < end,
        )
        if approved_only:
            query = query.filter(LedgerTransaction.status == TransactionStatus.APPROVED.value)
        return query

    def _write(self, fn: Callable[[], T]) -> T:
        try:
            result = fn()
            self.db.commit()
            return result
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StorageError(f"Snapshot write failed: {e.__class__.__name__}") from e
        except Exception:
            self.db.rollback()
            raise

    # Ledger aggregates

    def sum_amount(self, kinds: Sequence[TransactionKind], start: datetime, end: datetime) -> Money:
        query = self._period(
            self.db.query(func.coalesce(func.sum(LedgerTransaction.amount), 0)), start, end
        ).filter(LedgerTransaction.kind.in_(_kind_values(kinds)))
        return to_money(query.scalar())

    def count_transactions(
        self,
        start: datetime,
        end: datetime,
        kinds: Optional[Sequence[TransactionKind]] = None,
        approved_only: bool = True,
    ) -> int:
        query = self._period(self.db.query(func.count(LedgerTransaction.id)), start, end, approved_only)
        if kinds is not None:
            query = query.filter(LedgerTransaction.kind.in_(_kind_values(kinds)))
        return query.scalar() or 0

    def totals_by_kind(self, start: datetime, end: datetime) -> Dict[TransactionKind, Tuple[int, Money]]:
        rows = (
            self._period(
                self.db.query(
                    LedgerTransaction.kind,
                    func.count(LedgerTransaction.id),
                    func.coalesce(func.sum(LedgerTransaction.amount), 0),
                ),
                start,
                end,
            )
            .group_by(LedgerTransaction.kind)
            .all()
        )
        totals = {kind: (0, Money.zero()) for kind in TransactionKind}
        for kind, count, amount in rows:
            totals[TransactionKind(kind)] = (count, to_money(amount))
        return totals

    def count_distinct_members(
        self, kinds: Sequence[TransactionKind], start: datetime, end: datetime
    ) -> int:
        query = self._period(
            self.db.query(func.count(func.distinct(LedgerTransaction.member_id))), start, end
        ).filter(LedgerTransaction.kind.in_(_kind_values(kinds)))
        return query.scalar() or 0

    def top_member_totals(
        self, kind: TransactionKind, start: datetime, end: datetime, limit: int
    ) -> List[Money]:
        """Largest per-member totals of one kind, descending"""
        total = func.sum(LedgerTransaction.amount)
        rows = (
            self._period(self.db.query(LedgerTransaction.member_id, total), start, end)
            .filter(LedgerTransaction.kind == kind.value)
            .group_by(LedgerTransaction.member_id)
            .order_by(total.desc())
            .limit(limit)
            .all()
        )
        return [to_money(amount) for _, amount in rows]

    # Balance aggregates (current, not period-scoped)

    def total_savings(self) -> Money:
        value = (
            self.db.query(func.coalesce(func.sum(SavingsAccount.balance), 0))
            .filter(SavingsAccount.deleted_at.is_(None))
            .scalar()
        )
        return to_money(value)

    def savings_by_category(self) -> Dict[SavingsCategory, Money]:
        rows = (
            self.db.query(SavingsAccount.category, func.coalesce(func.sum(SavingsAccount.balance), 0))
            .filter(SavingsAccount.deleted_at.is_(None))
            .group_by(SavingsAccount.category)
            .all()
        )
        totals = {category: Money.zero() for category in SavingsCategory}
        for category, amount in rows:
            totals[SavingsCategory(category)] = to_money(amount)
        return totals

    def _active_loans(self, query):
        return query.filter(
            Loan.deleted_at.is_(None),
            Loan.status == LoanStatus.APPROVED.value,
            Loan.outstanding_balance > 0,
        )

    def count_active_loans(self) -> int:
        return self._active_loans(self.db.query(func.count(Loan.id))).scalar() or 0

    def total_outstanding(self) -> Money:
        value = self._active_loans(
            self.db.query(func.coalesce(func.sum(Loan.outstanding_balance), 0))
        ).scalar()
        return to_money(value)

    def top_outstanding_loans(self, limit: int) -> List[Tuple[int, Money]]:
        rows = (
            self._active_loans(self.db.query(Loan.id, Loan.outstanding_balance))
            .order_by(Loan.outstanding_balance.desc(), Loan.id)
            .limit(limit)
            .all()
        )
        return [(loan_id, to_money(amount)) for loan_id, amount in rows]

    def top_outstanding(self, limit: int) -> List[Money]:
        return [amount for _, amount in self.top_outstanding_loans(limit)]

    def count_members_with_active_loans(self) -> int:
        query = self._active_loans(self.db.query(func.count(func.distinct(Loan.member_id))))
        return query.scalar() or 0

    def loans_approved_between(self, start: datetime, end: datetime) -> Tuple[int, Money]:
        count, principal = (
            self.db.query(func.count(Loan.id), func.coalesce(func.sum(Loan.principal), 0))
            .filter(
                Loan.deleted_at.is_(None),
                Loan.status.in_([LoanStatus.APPROVED.value, LoanStatus.PAID_OFF.value]),
                Loan.approved_at >= start,
                Loan.approved_at < end,
            )
            .one()
        )
        return count or 0, to_money(principal)

    # Membership

    def count_members(
        self,
        active_only: bool = False,
        created_between: Optional[Tuple[datetime, datetime]] = None,
        left_between: Optional[Tuple[datetime, datetime]] = None,
        created_before: Optional[datetime] = None,
    ) -> int:
        """
        Count members matching every given filter.

        Args:
            active_only: only ACTIVE members
            created_between: joined inside [start, end)
            left_between: became INACTIVE inside [start, end)
            created_before: joined before this instant
        """
        query = self.db.query(func.count(Member.id)).filter(Member.deleted_at.is_(None))
        if active_only:
            query = query.filter(Member.status == MemberStatus.ACTIVE.value)
        if created_between is not None:
            start, end = created_between
            query = query.filter(Member.created_at >= start, Member.created_at < end)
        if left_between is not None:
            start, end = left_between
            query = query.filter(
                Member.status == MemberStatus.INACTIVE.value,
                Member.updated_at >= start,
                Member.updated_at < end,
            )
        if created_before is not None:
            query = query.filter(Member.created_at < created_before)
        return query.scalar() or 0

    def count_dormant_members(self, threshold: datetime) -> int:
        """Active members without an approved transaction since threshold"""
        recent = (
            self.db.query(LedgerTransaction.id)
            .filter(
                and_(
                    LedgerTransaction.member_id == Member.id,
                    LedgerTransaction.status == TransactionStatus.APPROVED.value,
                    LedgerTransaction.deleted_at.is_(None),
                    LedgerTransaction.occurred_at >= threshold,
                )
            )
            .exists()
        )
        query = self.db.query(func.count(Member.id)).filter(
            Member.deleted_at.is_(None),
            Member.status == MemberStatus.ACTIVE.value,
            ~recent,
        )
        return query.scalar() or 0

    # Snapshots

    def find_snapshot(self, month: int, year: int) -> Optional[FinancialSnapshot]:
        row = (
            self.db.query(FinancialSnapshotRow)
            .filter(FinancialSnapshotRow.month == month, FinancialSnapshotRow.year == year)
            .first()
        )
        return to_snapshot(row) if row is not None else None

    def find_snapshot_by_id(self, snapshot_id: int) -> Optional[FinancialSnapshot]:
        row = self.db.query(FinancialSnapshotRow).filter(FinancialSnapshotRow.id == snapshot_id).first()
        return to_snapshot(row) if row is not None else None

    def find_previous_final_snapshot(self, month: int, year: int) -> Optional[FinancialSnapshot]:
        """Latest FINAL snapshot strictly before the given period"""
        row = (
            self.db.query(FinancialSnapshotRow)
            .filter(
                FinancialSnapshotRow.status == SnapshotStatus.FINAL.value,
                (FinancialSnapshotRow.year * 12 + FinancialSnapshotRow.month) < (year * 12 + month),
            )
            .order_by(FinancialSnapshotRow.year.desc(), FinancialSnapshotRow.month.desc())
            .first()
        )
        return to_snapshot(row) if row is not None else None

    def save_snapshot(
        self,
        month: int,
        year: int,
        totals: PeriodTotals,
        closing_balance: Money,
        generated_by_id: int,
        generated_at: datetime,
    ) -> FinancialSnapshot:
        """
        Insert or overwrite the DRAFT snapshot for a period.

        The row lock only covers an existing row. When a concurrent writer
        inserts the period first, the unique (month, year) constraint rejects
        our insert and the write is retried once against the committed row.
        """

        def write() -> FinancialSnapshot:
            row = (
                self.db.query(FinancialSnapshotRow)
                .filter(FinancialSnapshotRow.month == month, FinancialSnapshotRow.year == year)
                .with_for_update()
                .populate_existing()
                .first()
            )
            if row is not None and row.status == SnapshotStatus.FINAL.value:
                raise SnapshotFinalizedError(f"snapshot {month:02d}/{year} is already FINAL")
            if row is None:
                row = FinancialSnapshotRow(month=month, year=year, status=SnapshotStatus.DRAFT.value)
                self.db.add(row)

            row.total_deposits = totals.deposits.amount
            row.total_withdrawals = totals.withdrawals.amount
            row.total_disbursements = totals.disbursements.amount
            row.total_installments = totals.installments.amount
            row.closing_balance = closing_balance.amount
            row.generated_by_id = generated_by_id
            row.generated_at = generated_at
            self.db.flush()
            return to_snapshot(row)

        try:
            return self._write(write)
        except StorageError as e:
            if not isinstance(e.__cause__, IntegrityError):
                raise
            logger.info(
                "Snapshot insert lost to a concurrent writer, retrying",
                extra={"month": month, "year": year, "step": "snapshot_generate"},
            )
            return self._write(write)

    def finalize_snapshot(self, snapshot_id: int) -> Optional[FinancialSnapshot]:
        """One-way DRAFT -> FINAL flip; the conditional UPDATE guards double finalization"""

        def write() -> Optional[FinancialSnapshot]:
            updated = (
                self.db.query(FinancialSnapshotRow)
                .filter(
                    FinancialSnapshotRow.id == snapshot_id,
                    FinancialSnapshotRow.status == SnapshotStatus.DRAFT.value,
                )
                .update({FinancialSnapshotRow.status: SnapshotStatus.FINAL.value}, synchronize_session=False)
            )
            row = (
                self.db.query(FinancialSnapshotRow)
                .filter(FinancialSnapshotRow.id == snapshot_id)
                .populate_existing()
                .first()
            )
            if row is None:
                return None
            if updated == 0:
                raise SnapshotFinalizedError(f"snapshot {snapshot_id} is already FINAL")
            return to_snapshot(row)

        return self._write(write)
