"""In-memory stand-ins for the storage, identity and audit ports"""

import copy
import threading
from dataclasses import replace
from decimal import Decimal
from typing import Dict, List, Optional

from koperasi_ledger.domain.exceptions import StorageError
from koperasi_ledger.domain.models import (
    AccountState,
    AuditEvent,
    Decision,
    LoanState,
    LoanStatus,
    MemberState,
    MemberStatus,
    NewTransaction,
    Page,
    ProcessingContext,
    SavingsCategory,
    StaffState,
    TransactionFilter,
    TransactionRecord,
    TransactionStatus,
)
from koperasi_ledger.domain.money import Money
from koperasi_ledger.utils.date_utils import utcnow


class _Unit:
    def __init__(self, store: "InMemoryLedgerStore"):
        self.store = store

    def create_transaction(self, draft: NewTransaction) -> TransactionRecord:
        record = TransactionRecord(
            id=self.store._next_id,
            member_id=draft.member_id,
            staff_id=draft.staff_id,
            kind=draft.kind,
            amount=draft.amount,
            occurred_at=draft.occurred_at,
            payment_method=draft.payment_method,
            status=TransactionStatus.PENDING,
            account_id=draft.account_id,
            loan_id=draft.loan_id,
            note=draft.note,
            evidence_url=draft.evidence_url,
            created_at=utcnow(),
        )
        self.store._next_id += 1
        self.store.transactions[record.id] = record
        return replace(record)

    def load_for_processing(self, transaction_id: int) -> Optional[ProcessingContext]:
        record = self.store.transactions.get(transaction_id)
        if record is None:
            return None
        account = self.store.accounts.get(record.account_id) if record.account_id else None
        loan = self.store.loans.get(record.loan_id) if record.loan_id else None
        return ProcessingContext(
            transaction=replace(record),
            member=self.store.members.get(record.member_id),
            account=replace(account) if account else None,
            loan=replace(loan) if loan else None,
        )

    def apply_decision(self, context: ProcessingContext, decision: Decision) -> TransactionRecord:
        self.store.apply_calls += 1
        if self.store.fail_on_apply:
            raise StorageError("simulated commit failure")
        record = self.store.transactions[context.transaction.id]
        if decision.approved:
            if decision.new_account_balance is not None:
                account = self.store.accounts[context.account.id]
                account.balance = decision.new_account_balance
            if decision.new_outstanding_balance is not None:
                loan = self.store.loans[context.loan.id]
                loan.outstanding_balance = decision.new_outstanding_balance
                if decision.new_loan_status is not None:
                    loan.status = decision.new_loan_status
        elif decision.reason:
            record.note = decision.reason
        record.status = decision.status
        return replace(record)


class InMemoryLedgerStore:
    """
    LedgerStore + IdentityLookup over dicts.

    atomically() serialises units with a lock and restores the previous
    state when the unit raises.
    """

    def __init__(self):
        self.members: Dict[int, MemberState] = {}
        self.staff: Dict[int, StaffState] = {}
        self.accounts: Dict[int, AccountState] = {}
        self.loans: Dict[int, LoanState] = {}
        self.transactions: Dict[int, TransactionRecord] = {}
        self._next_id = 1
        self._lock = threading.Lock()
        self.fail_on_apply = False
        self.apply_calls = 0

    # Seeding

    def add_staff(self, identity: int, staff_id: Optional[int] = None, is_active: bool = True) -> StaffState:
        staff = StaffState(id=staff_id or identity, is_active=is_active)
        self.staff[identity] = staff
        return staff

    def add_member(self, member_id: int, status: MemberStatus = MemberStatus.ACTIVE) -> MemberState:
        member = MemberState(id=member_id, status=status)
        self.members[member_id] = member
        return member

    def add_account(
        self,
        account_id: int,
        member_id: int,
        balance: str = "0",
        category: SavingsCategory = SavingsCategory.VOLUNTARY,
    ) -> AccountState:
        account = AccountState(id=account_id, member_id=member_id, category=category, balance=Money.of(balance))
        self.accounts[account_id] = account
        return account

    def add_loan(
        self,
        loan_id: int,
        member_id: int,
        principal: str,
        tenor_months: int = 6,
        status: LoanStatus = LoanStatus.APPROVED,
        outstanding: str = "0",
    ) -> LoanState:
        loan = LoanState(
            id=loan_id,
            member_id=member_id,
            principal=Money.of(principal),
            interest_percent=Decimal("1.5"),
            tenor_months=tenor_months,
            outstanding_balance=Money.of(outstanding),
            status=status,
            approved_at=utcnow(),
        )
        self.loans[loan_id] = loan
        return loan

    # LedgerStore

    def atomically(self, fn):
        with self._lock:
            saved = copy.deepcopy((self.accounts, self.loans, self.transactions, self._next_id))
            try:
                return fn(_Unit(self))
            except Exception:
                self.accounts, self.loans, self.transactions, self._next_id = saved
                raise

    def find_account(self, account_id: int) -> Optional[AccountState]:
        account = self.accounts.get(account_id)
        return replace(account) if account and not account.deleted else None

    def find_loan(self, loan_id: int) -> Optional[LoanState]:
        loan = self.loans.get(loan_id)
        return replace(loan) if loan and not loan.deleted else None

    def find_transaction(self, transaction_id: int) -> Optional[TransactionRecord]:
        record = self.transactions.get(transaction_id)
        return replace(record) if record else None

    def _matching(self, filters: TransactionFilter) -> List[TransactionRecord]:
        result = []
        for record in sorted(self.transactions.values(), key=lambda r: r.id, reverse=True):
            if filters.status is not None and record.status != filters.status:
                continue
            if filters.kind is not None and record.kind != filters.kind:
                continue
            if filters.member_id is not None and record.member_id != filters.member_id:
                continue
            if filters.staff_id is not None and record.staff_id != filters.staff_id:
                continue
            if filters.account_id is not None and record.account_id != filters.account_id:
                continue
            if filters.loan_id is not None and record.loan_id != filters.loan_id:
                continue
            if filters.occurred_from is not None and record.occurred_at < filters.occurred_from:
                continue
            if filters.occurred_to is not None and record.occurred_at > filters.occurred_to:
                continue
            result.append(replace(record))
        return result

    def list_transactions(self, filters: TransactionFilter, cursor: Optional[int], limit: int) -> Page:
        rows = [r for r in self._matching(filters) if cursor is None or r.id < cursor]
        items = rows[:limit]
        next_cursor = items[-1].id if len(rows) > limit else None
        return Page(items=items, next_cursor=next_cursor, limit=limit)

    def export_transactions(self, filters: TransactionFilter) -> List[TransactionRecord]:
        return self._matching(filters)

    def list_accounts_by_member(self, member_id: int) -> List[AccountState]:
        return [
            replace(a)
            for a in sorted(self.accounts.values(), key=lambda a: a.id)
            if a.member_id == member_id and not a.deleted
        ]

    def list_loans_by_member(self, member_id: int, cursor: Optional[int], limit: int) -> Page:
        rows = [
            replace(loan)
            for loan in sorted(self.loans.values(), key=lambda loan: loan.id, reverse=True)
            if loan.member_id == member_id and not loan.deleted and (cursor is None or loan.id < cursor)
        ]
        items = rows[:limit]
        next_cursor = items[-1].id if len(rows) > limit else None
        return Page(items=items, next_cursor=next_cursor, limit=limit)

    # IdentityLookup

    def find_acting_staff(self, identity: int) -> Optional[StaffState]:
        return self.staff.get(identity)

    def find_member_state(self, member_id: int) -> Optional[MemberState]:
        return self.members.get(member_id)


class RecordingAuditSink:
    def __init__(self):
        self.events: List[AuditEvent] = []

    def record(self, event: AuditEvent) -> None:
        self.events.append(event)


class FailingAuditSink:
    def record(self, event: AuditEvent) -> None:
        raise ConnectionError("audit service down")


class RecordingAuditClient:
    """Stands in for AuditClient inside BackgroundAuditSink"""

    def __init__(self):
        self.payloads: List[dict] = []

    async def send_event(self, payload: dict) -> bool:
        self.payloads.append(payload)
        return True
