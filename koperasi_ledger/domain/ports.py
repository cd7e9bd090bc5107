"""Interfaces the core consumes; implemented in infrastructure and by test fakes"""

from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence, Tuple, TypeVar

from koperasi_ledger.domain.models import (
    AccountState,
    AuditEvent,
    Decision,
    FinancialSnapshot,
    LoanState,
    MemberState,
    NewTransaction,
    Page,
    PeriodTotals,
    ProcessingContext,
    SavingsCategory,
    StaffState,
    TransactionFilter,
    TransactionKind,
    TransactionRecord,
)
from koperasi_ledger.domain.money import Money

T = TypeVar("T")


class LedgerUnitOfWork(Protocol):
    """Operations valid inside one atomic unit"""

    def create_transaction(self, draft: NewTransaction) -> TransactionRecord: ...

    def load_for_processing(self, transaction_id: int) -> Optional[ProcessingContext]:
        """Read the transaction, its member and its target, locking the mutable rows"""
        ...

    def apply_decision(self, context: ProcessingContext, decision: Decision) -> TransactionRecord:
        """Write the balance update (if approved) and the terminal status"""
        ...


class LedgerStore(Protocol):
    """Persistence gateway for transactions, savings accounts and loans"""

    def atomically(self, fn: Callable[[LedgerUnitOfWork], T]) -> T:
        """Run fn in one all-or-nothing unit; raises StorageError on commit failure"""
        ...

    def find_account(self, account_id: int) -> Optional[AccountState]: ...

    def find_loan(self, loan_id: int) -> Optional[LoanState]: ...

    def find_transaction(self, transaction_id: int) -> Optional[TransactionRecord]: ...

    def list_transactions(
        self, filters: TransactionFilter, cursor: Optional[int], limit: int
    ) -> Page: ...

    def export_transactions(self, filters: TransactionFilter) -> List[TransactionRecord]: ...

    def list_accounts_by_member(self, member_id: int) -> List[AccountState]: ...

    def list_loans_by_member(self, member_id: int, cursor: Optional[int], limit: int) -> Page: ...


class IdentityLookup(Protocol):
    def find_acting_staff(self, identity: int) -> Optional[StaffState]: ...

    def find_member_state(self, member_id: int) -> Optional[MemberState]: ...


class AuditSink(Protocol):
    def record(self, event: AuditEvent) -> None: ...


class SettingsProvider(Protocol):
    def get_number(self, key: str) -> float: ...

    def get_bool(self, key: str) -> bool: ...


class ReportCache(Protocol):
    def get(self, key: str) -> Optional[Dict[str, Any]]: ...

    def set(self, key: str, value: Dict[str, Any]) -> None: ...

    def delete_prefix(self, prefix: str) -> None: ...


class ReportStore(Protocol):
    """Read-only aggregates over the ledger plus snapshot persistence"""

    def sum_amount(
        self, kinds: Sequence[TransactionKind], start: datetime, end: datetime
    ) -> Money: ...

    def count_transactions(
        self,
        start: datetime,
        end: datetime,
        kinds: Optional[Sequence[TransactionKind]] = None,
        approved_only: bool = True,
    ) -> int: ...

    def totals_by_kind(
        self, start: datetime, end: datetime
    ) -> Dict[TransactionKind, Tuple[int, Money]]: ...

    def count_distinct_members(
        self, kinds: Sequence[TransactionKind], start: datetime, end: datetime
    ) -> int: ...

    def top_member_totals(
        self, kind: TransactionKind, start: datetime, end: datetime, limit: int
    ) -> List[Money]: ...

    def total_savings(self) -> Money: ...

    def savings_by_category(self) -> Dict[SavingsCategory, Money]: ...

    def count_active_loans(self) -> int: ...

    def total_outstanding(self) -> Money: ...

    def top_outstanding(self, limit: int) -> List[Money]: ...

    def top_outstanding_loans(self, limit: int) -> List[Tuple[int, Money]]:
        """(loan id, outstanding) pairs, largest first"""
        ...

    def count_members_with_active_loans(self) -> int: ...

    def loans_approved_between(self, start: datetime, end: datetime) -> Tuple[int, Money]: ...

    def count_members(
        self,
        active_only: bool = False,
        created_between: Optional[Tuple[datetime, datetime]] = None,
        left_between: Optional[Tuple[datetime, datetime]] = None,
        created_before: Optional[datetime] = None,
    ) -> int: ...

    def count_dormant_members(self, threshold: datetime) -> int: ...

    def find_snapshot(self, month: int, year: int) -> Optional[FinancialSnapshot]: ...

    def find_snapshot_by_id(self, snapshot_id: int) -> Optional[FinancialSnapshot]: ...

    def find_previous_final_snapshot(self, month: int, year: int) -> Optional[FinancialSnapshot]: ...

    def save_snapshot(
        self,
        month: int,
        year: int,
        totals: PeriodTotals,
        closing_balance: Money,
        generated_by_id: int,
        generated_at: datetime,
    ) -> FinancialSnapshot:
        """Insert a DRAFT snapshot or overwrite an existing DRAFT; FINAL raises SnapshotFinalizedError"""
        ...

    def finalize_snapshot(self, snapshot_id: int) -> Optional[FinancialSnapshot]:
        """Flip DRAFT to FINAL; returns None when not found, raises when already FINAL"""
        ...
