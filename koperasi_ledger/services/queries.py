"""Read-side queries over the ledger: listings, details, export, installment schedule"""

from typing import List, Optional, Tuple

from koperasi_ledger.config import settings
from koperasi_ledger.domain.exceptions import NotFoundError
from koperasi_ledger.domain.installments import generate_installment_schedule
from koperasi_ledger.domain.models import (
    AccountState,
    Installment,
    LoanState,
    Page,
    TransactionFilter,
    TransactionRecord,
    TransactionStatus,
)
from koperasi_ledger.domain.ports import IdentityLookup, LedgerStore
from koperasi_ledger.utils.pagination import decode_cursor


class LedgerQueries:
    """Cursor-paginated listings and detail lookups"""

    def __init__(self, store: LedgerStore, identity: IdentityLookup, page_size: Optional[int] = None):
        self.store = store
        self.identity = identity
        self.page_size = page_size or settings.page_size

    def list_transactions(self, filters: TransactionFilter, cursor: Optional[str] = None) -> Page:
        """One id-descending page; cursor is the opaque token from the previous page"""
        return self.store.list_transactions(filters, decode_cursor(cursor), self.page_size)

    def list_pending(self, cursor: Optional[str] = None) -> Page:
        return self.list_transactions(TransactionFilter(status=TransactionStatus.PENDING), cursor)

    def list_by_member(self, member_id: int, cursor: Optional[str] = None) -> Page:
        return self.list_transactions(TransactionFilter(member_id=member_id), cursor)

    def list_by_staff(self, staff_id: int, cursor: Optional[str] = None) -> Page:
        return self.list_transactions(TransactionFilter(staff_id=staff_id), cursor)

    def list_by_account(self, account_id: int, cursor: Optional[str] = None) -> Page:
        self.get_account(account_id)
        return self.list_transactions(TransactionFilter(account_id=account_id), cursor)

    def list_by_loan(self, loan_id: int, cursor: Optional[str] = None) -> Page:
        self.get_loan(loan_id)
        return self.list_transactions(TransactionFilter(loan_id=loan_id), cursor)

    def list_accounts_by_member(self, member_id: int) -> List[AccountState]:
        """Every live savings account of the member, oldest first"""
        self._require_member(member_id)
        return self.store.list_accounts_by_member(member_id)

    def list_loans_by_member(self, member_id: int, cursor: Optional[str] = None) -> Page:
        self._require_member(member_id)
        return self.store.list_loans_by_member(member_id, decode_cursor(cursor), self.page_size)

    def export_transactions(self, filters: TransactionFilter) -> List[TransactionRecord]:
        return self.store.export_transactions(filters)

    def get_transaction(self, transaction_id: int) -> TransactionRecord:
        record = self.store.find_transaction(transaction_id)
        if record is None:
            raise NotFoundError(f"transaction {transaction_id} not found")
        return record

    def get_account(self, account_id: int) -> AccountState:
        account = self.store.find_account(account_id)
        if account is None:
            raise NotFoundError(f"savings account {account_id} not found")
        return account

    def get_loan(self, loan_id: int) -> LoanState:
        loan = self.store.find_loan(loan_id)
        if loan is None:
            raise NotFoundError(f"loan {loan_id} not found")
        return loan

    def _require_member(self, member_id: int) -> None:
        if self.identity.find_member_state(member_id) is None:
            raise NotFoundError(f"member {member_id} not found")

    def get_loan_schedule(self, loan_id: int) -> Tuple[LoanState, List[Installment]]:
        """Informational repayment schedule starting from the approval date"""
        loan = self.get_loan(loan_id)
        start = loan.approved_at.date() if loan.approved_at is not None else None
        return loan, generate_installment_schedule(loan.principal, loan.tenor_months, start)
