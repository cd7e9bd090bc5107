"""Data access layer for the transaction ledger and the two balance holders"""

from decimal import Decimal
from typing import Callable, List, Optional, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from koperasi_ledger.domain.exceptions import StorageError
from koperasi_ledger.domain.models import (
    AccountState,
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
    TransactionKind,
    TransactionRecord,
    TransactionStatus,
)
from koperasi_ledger.domain.money import Money
from koperasi_ledger.infrastructure.database.models import (
    LedgerTransaction,
    Loan,
    Member,
    SavingsAccount,
    Staff,
)

T = TypeVar("T")


def to_money(value: Optional[Decimal]) -> Money:
    """Convert a NUMERIC(18, 2) column value (None for empty aggregates)"""
    if value is None:
        return Money.zero()
    return Money.of(Decimal(value).quantize(Decimal("0.01")))


def to_transaction_record(row: LedgerTransaction) -> TransactionRecord:
    return TransactionRecord(
        id=row.id,
        member_id=row.member_id,
        staff_id=row.staff_id,
        kind=TransactionKind(row.kind),
        amount=to_money(row.amount),
        occurred_at=row.occurred_at,
        payment_method=row.payment_method,
        status=TransactionStatus(row.status),
        account_id=row.account_id,
        loan_id=row.loan_id,
        note=row.note,
        evidence_url=row.evidence_url,
        created_at=row.created_at,
    )


def to_account_state(row: SavingsAccount) -> AccountState:
    return AccountState(
        id=row.id,
        member_id=row.member_id,
        category=SavingsCategory(row.category),
        balance=to_money(row.balance),
        deleted=row.deleted_at is not None,
    )


def to_loan_state(row: Loan) -> LoanState:
    return LoanState(
        id=row.id,
        member_id=row.member_id,
        principal=to_money(row.principal),
        interest_percent=Decimal(row.interest_percent or 0),
        tenor_months=row.tenor_months,
        outstanding_balance=to_money(row.outstanding_balance),
        status=LoanStatus(row.status),
        approved_by_id=row.approved_by_id,
        approved_at=row.approved_at,
        deleted=row.deleted_at is not None,
    )


def apply_filters(query, filters: TransactionFilter):
    query = query.filter(LedgerTransaction.deleted_at.is_(None))
    if filters.status is not None:
        query = query.filter(LedgerTransaction.status == filters.status.value)
    if filters.kind is not None:
        query = query.filter(LedgerTransaction.kind == filters.kind.value)
    if filters.occurred_from is not None:
        query = query.filter(LedgerTransaction.occurred_at >= filters.occurred_from)
    if filters.occurred_to is not None:
        query = query.filter(LedgerTransaction.occurred_at <= filters.occurred_to)
    if filters.member_id is not None:
        query = query.filter(LedgerTransaction.member_id == filters.member_id)
    if filters.staff_id is not None:
        query = query.filter(LedgerTransaction.staff_id == filters.staff_id)
    if filters.account_id is not None:
        query = query.filter(LedgerTransaction.account_id == filters.account_id)
    if filters.loan_id is not None:
        query = query.filter(LedgerTransaction.loan_id == filters.loan_id)
    return query


class SqlLedgerUnitOfWork:
    """Writes performed inside one database transaction"""

    def __init__(self, db: Session):
        self.db = db

    def _locked(self, model, row_id: int):
        # populate_existing: rows read earlier in this session must be refreshed under the lock
        return (
            self.db.query(model)
            .filter(model.id == row_id)
            .with_for_update()
            .populate_existing()
            .first()
        )

    def create_transaction(self, draft: NewTransaction) -> TransactionRecord:
        row = LedgerTransaction(
            member_id=draft.member_id,
            staff_id=draft.staff_id,
            account_id=draft.account_id,
            loan_id=draft.loan_id,
            kind=draft.kind.value,
            amount=draft.amount.amount,
            occurred_at=draft.occurred_at,
            payment_method=draft.payment_method,
            status=TransactionStatus.PENDING.value,
            evidence_url=draft.evidence_url,
            note=draft.note,
        )
        self.db.add(row)
        self.db.flush()  # Get ID without committing
        return to_transaction_record(row)

    def load_for_processing(self, transaction_id: int) -> Optional[ProcessingContext]:
        """Lock the transaction and its target row for the rest of the unit"""
        row = self._locked(LedgerTransaction, transaction_id)
        if row is None or row.deleted_at is not None:
            return None

        member_row = self.db.get(Member, row.member_id)
        member = None
        if member_row is not None and member_row.deleted_at is None:
            member = MemberState(id=member_row.id, status=MemberStatus(member_row.status))

        account = None
        if row.account_id is not None:
            account_row = self._locked(SavingsAccount, row.account_id)
            account = to_account_state(account_row) if account_row is not None else None

        loan = None
        if row.loan_id is not None:
            loan_row = self._locked(Loan, row.loan_id)
            loan = to_loan_state(loan_row) if loan_row is not None else None

        return ProcessingContext(
            transaction=to_transaction_record(row),
            member=member,
            account=account,
            loan=loan,
        )

    def apply_decision(self, context: ProcessingContext, decision: Decision) -> TransactionRecord:
        """Balance/loan update and status flip, flushed together"""
        row = self.db.get(LedgerTransaction, context.transaction.id)

        if decision.approved:
            if decision.new_account_balance is not None and context.account is not None:
                account_row = self.db.get(SavingsAccount, context.account.id)
                account_row.balance = decision.new_account_balance.amount
            if decision.new_outstanding_balance is not None and context.loan is not None:
                loan_row = self.db.get(Loan, context.loan.id)
                loan_row.outstanding_balance = decision.new_outstanding_balance.amount
                if decision.new_loan_status is not None:
                    loan_row.status = decision.new_loan_status.value
        elif decision.reason:
            row.note = decision.reason

        row.status = decision.status.value
        self.db.flush()
        return to_transaction_record(row)


class SqlLedgerStore:
    """Ledger store over a request-scoped SQLAlchemy session"""

    def __init__(self, db: Session):
        self.db = db

    def atomically(self, fn: Callable[[SqlLedgerUnitOfWork], T]) -> T:
        """
        Run fn in one database transaction.

        Commits when fn returns; rolls back on any exception. Database
        failures surface as StorageError so callers never see driver types.
        """
        try:
            result = fn(SqlLedgerUnitOfWork(self.db))
            self.db.commit()
            return result
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StorageError(f"Atomic commit failed: {e.__class__.__name__}") from e
        except Exception:
            self.db.rollback()
            raise

    def find_account(self, account_id: int) -> Optional[AccountState]:
        row = (
            self.db.query(SavingsAccount)
            .filter(SavingsAccount.id == account_id, SavingsAccount.deleted_at.is_(None))
            .first()
        )
        return to_account_state(row) if row is not None else None

    def find_loan(self, loan_id: int) -> Optional[LoanState]:
        row = self.db.query(Loan).filter(Loan.id == loan_id, Loan.deleted_at.is_(None)).first()
        return to_loan_state(row) if row is not None else None

    def find_transaction(self, transaction_id: int) -> Optional[TransactionRecord]:
        row = (
            self.db.query(LedgerTransaction)
            .filter(LedgerTransaction.id == transaction_id, LedgerTransaction.deleted_at.is_(None))
            .first()
        )
        return to_transaction_record(row) if row is not None else None

    def list_transactions(
        self, filters: TransactionFilter, cursor: Optional[int], limit: int
    ) -> Page:
        """Id-descending page after the last-seen id"""
        query = apply_filters(self.db.query(LedgerTransaction), filters)
        if cursor is not None:
            query = query.filter(LedgerTransaction.id < cursor)
        rows = query.order_by(LedgerTransaction.id.desc()).limit(limit + 1).all()

        items = [to_transaction_record(r) for r in rows[:limit]]
        next_cursor = items[-1].id if len(rows) > limit else None
        return Page(items=items, next_cursor=next_cursor, limit=limit)

    def export_transactions(self, filters: TransactionFilter) -> List[TransactionRecord]:
        """Unpaginated listing for exports"""
        query = apply_filters(self.db.query(LedgerTransaction), filters)
        return [to_transaction_record(r) for r in query.order_by(LedgerTransaction.id.desc()).all()]

    def list_accounts_by_member(self, member_id: int) -> List[AccountState]:
        rows = (
            self.db.query(SavingsAccount)
            .filter(SavingsAccount.member_id == member_id, SavingsAccount.deleted_at.is_(None))
            .order_by(SavingsAccount.id)
            .all()
        )
        return [to_account_state(r) for r in rows]

    def list_loans_by_member(self, member_id: int, cursor: Optional[int], limit: int) -> Page:
        """Id-descending page of a member's loans"""
        query = self.db.query(Loan).filter(Loan.member_id == member_id, Loan.deleted_at.is_(None))
        if cursor is not None:
            query = query.filter(Loan.id < cursor)
        rows = query.order_by(Loan.id.desc()).limit(limit + 1).all()

        items = [to_loan_state(r) for r in rows[:limit]]
        next_cursor = items[-1].id if len(rows) > limit else None
        return Page(items=items, next_cursor=next_cursor, limit=limit)


class IdentityRepository:
    """Staff and member lookups backing the identity port"""

    def __init__(self, db: Session):
        self.db = db

    def find_acting_staff(self, identity: int) -> Optional[StaffState]:
        row = self.db.query(Staff).filter(Staff.user_id == identity).first()
        if row is None:
            return None
        return StaffState(id=row.id, is_active=row.is_active)

    def find_member_state(self, member_id: int) -> Optional[MemberState]:
        row = self.db.query(Member).filter(Member.id == member_id, Member.deleted_at.is_(None)).first()
        if row is None:
            return None
        return MemberState(id=row.id, status=MemberStatus(row.status))
