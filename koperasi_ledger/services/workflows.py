"""Precondition gates in front of the orchestrator for each transaction-producing operation"""

from datetime import datetime
from decimal import Decimal
from typing import Optional, Union

from koperasi_ledger.domain.exceptions import (
    InactiveMemberError,
    InactiveStaffError,
    InvalidTransactionError,
    LoanNotApprovedError,
    NotFoundError,
)
from koperasi_ledger.domain.installments import generate_installment_schedule
from koperasi_ledger.domain.models import (
    LOAN_KINDS,
    SAVINGS_KINDS,
    LoanState,
    LoanStatus,
    MemberStatus,
    NewTransaction,
    StaffState,
    TransactionKind,
    TransactionRecord,
)
from koperasi_ledger.domain.money import Money
from koperasi_ledger.domain.ports import IdentityLookup, LedgerStore
from koperasi_ledger.services.orchestrator import TransactionOrchestrator
from koperasi_ledger.utils.date_utils import to_storage_datetime, utcnow

AmountInput = Union[Money, Decimal, str, int]


def resolve_acting_staff(identity: IdentityLookup, actor_id: int) -> StaffState:
    """Acting staff must exist and be active"""
    staff = identity.find_acting_staff(actor_id)
    if staff is None:
        raise NotFoundError(f"staff for identity {actor_id} not found")
    if not staff.is_active:
        raise InactiveStaffError(f"staff {staff.id} is inactive")
    return staff


def require_active_member(identity: IdentityLookup, member_id: int) -> None:
    member = identity.find_member_state(member_id)
    if member is None:
        raise NotFoundError(f"member {member_id} not found")
    if member.status != MemberStatus.ACTIVE:
        raise InactiveMemberError(f"member {member_id} is {member.status.value}")


def _occurred_at(value: Optional[datetime]) -> datetime:
    return to_storage_datetime(value) if value is not None else utcnow()


class SavingsWorkflow:
    """Deposits and withdrawals against a savings account"""

    def __init__(self, store: LedgerStore, identity: IdentityLookup, orchestrator: TransactionOrchestrator):
        self.store = store
        self.identity = identity
        self.orchestrator = orchestrator

    def submit(
        self,
        account_id: int,
        kind: TransactionKind,
        amount: AmountInput,
        payment_method: str,
        actor_id: int,
        occurred_at: Optional[datetime] = None,
        note: Optional[str] = None,
        evidence_url: Optional[str] = None,
    ) -> TransactionRecord:
        """
        Gate and process one savings transaction.

        Precondition failures raise before any record exists; business rule
        failures (e.g. insufficient balance) come back as a REJECTED record.
        """
        if kind not in SAVINGS_KINDS:
            raise InvalidTransactionError(f"{kind.value} is not a savings transaction")

        staff = resolve_acting_staff(self.identity, actor_id)

        account = self.store.find_account(account_id)
        if account is None:
            raise NotFoundError(f"savings account {account_id} not found")

        require_active_member(self.identity, account.member_id)

        draft = NewTransaction(
            member_id=account.member_id,
            staff_id=staff.id,
            kind=kind,
            amount=Money.of(amount),
            occurred_at=_occurred_at(occurred_at),
            payment_method=payment_method,
            account_id=account.id,
            note=note,
            evidence_url=evidence_url,
        )
        return self.orchestrator.submit_and_process(draft, actor_id=actor_id)

    def deposit(self, account_id: int, amount: AmountInput, payment_method: str, actor_id: int, **kwargs) -> TransactionRecord:
        return self.submit(account_id, TransactionKind.DEPOSIT, amount, payment_method, actor_id, **kwargs)

    def withdraw(self, account_id: int, amount: AmountInput, payment_method: str, actor_id: int, **kwargs) -> TransactionRecord:
        return self.submit(account_id, TransactionKind.WITHDRAWAL, amount, payment_method, actor_id, **kwargs)


def default_loan_amount(loan: LoanState, kind: TransactionKind) -> Money:
    """Full principal for a disbursement; the scheduled installment (capped at outstanding) otherwise"""
    if kind == TransactionKind.DISBURSEMENT:
        return loan.principal
    schedule = generate_installment_schedule(loan.principal, loan.tenor_months)
    if not schedule:
        return loan.outstanding_balance
    return min(schedule[0].amount, loan.outstanding_balance)


class LoanWorkflow:
    """Disbursement and installment payments against an approved loan"""

    def __init__(self, store: LedgerStore, identity: IdentityLookup, orchestrator: TransactionOrchestrator):
        self.store = store
        self.identity = identity
        self.orchestrator = orchestrator

    def submit(
        self,
        loan_id: int,
        kind: TransactionKind,
        payment_method: str,
        actor_id: int,
        amount: Optional[AmountInput] = None,
        occurred_at: Optional[datetime] = None,
        note: Optional[str] = None,
        evidence_url: Optional[str] = None,
    ) -> TransactionRecord:
        """
        Gate and process one loan transaction.

        The member-active check is left to the state machine, so an inactive
        borrower yields a REJECTED record rather than a precondition error.
        """
        if kind not in LOAN_KINDS:
            raise InvalidTransactionError(f"{kind.value} is not a loan transaction")

        staff = resolve_acting_staff(self.identity, actor_id)

        loan = self.store.find_loan(loan_id)
        if loan is None:
            raise NotFoundError(f"loan {loan_id} not found")
        if loan.status != LoanStatus.APPROVED:
            raise LoanNotApprovedError(f"loan {loan_id} is {loan.status.value}")

        value = Money.of(amount) if amount is not None else default_loan_amount(loan, kind)

        draft = NewTransaction(
            member_id=loan.member_id,
            staff_id=staff.id,
            kind=kind,
            amount=value,
            occurred_at=_occurred_at(occurred_at),
            payment_method=payment_method,
            loan_id=loan.id,
            note=note,
            evidence_url=evidence_url,
        )
        return self.orchestrator.submit_and_process(draft, actor_id=actor_id)

    def disburse(self, loan_id: int, payment_method: str, actor_id: int, **kwargs) -> TransactionRecord:
        return self.submit(loan_id, TransactionKind.DISBURSEMENT, payment_method, actor_id, **kwargs)

    def pay_installment(self, loan_id: int, payment_method: str, actor_id: int, **kwargs) -> TransactionRecord:
        return self.submit(loan_id, TransactionKind.INSTALLMENT, payment_method, actor_id, **kwargs)


class OperatorWorkflow:
    """Generic back-office path: create any kind, optionally defer processing"""

    def __init__(self, store: LedgerStore, identity: IdentityLookup, orchestrator: TransactionOrchestrator):
        self.store = store
        self.identity = identity
        self.orchestrator = orchestrator

    def create_transaction(
        self,
        member_id: int,
        kind: TransactionKind,
        amount: AmountInput,
        payment_method: str,
        actor_id: int,
        account_id: Optional[int] = None,
        loan_id: Optional[int] = None,
        occurred_at: Optional[datetime] = None,
        note: Optional[str] = None,
        evidence_url: Optional[str] = None,
        defer: bool = False,
    ) -> TransactionRecord:
        """
        Validate and record a transaction; process it unless defer is set.

        Requirements:
        - Acting staff exists and is active
        - Member exists and is ACTIVE
        - Exactly one target, matching the kind, owned by the member
        - Loan targets must be APPROVED

        Deferred records stay PENDING until process() is called.
        """
        staff = resolve_acting_staff(self.identity, actor_id)
        require_active_member(self.identity, member_id)

        draft = NewTransaction(
            member_id=member_id,
            staff_id=staff.id,
            kind=kind,
            amount=Money.of(amount),
            occurred_at=_occurred_at(occurred_at),
            payment_method=payment_method,
            account_id=account_id,
            loan_id=loan_id,
            note=note,
            evidence_url=evidence_url,
        )

        if draft.account_id is not None:
            account = self.store.find_account(draft.account_id)
            if account is None:
                raise NotFoundError(f"savings account {draft.account_id} not found")
            if account.member_id != member_id:
                raise InvalidTransactionError("savings account does not belong to member")
        if draft.loan_id is not None:
            loan = self.store.find_loan(draft.loan_id)
            if loan is None:
                raise NotFoundError(f"loan {draft.loan_id} not found")
            if loan.member_id != member_id:
                raise InvalidTransactionError("loan does not belong to member")
            if loan.status != LoanStatus.APPROVED:
                raise LoanNotApprovedError(f"loan {draft.loan_id} is {loan.status.value}")

        record = self.orchestrator.create_pending(draft)
        if defer:
            return record
        return self.orchestrator.process(record.id, actor_id=actor_id)

    def process(self, transaction_id: int, actor_id: int) -> TransactionRecord:
        """Manual processing of a deferred record"""
        resolve_acting_staff(self.identity, actor_id)
        return self.orchestrator.process(transaction_id, actor_id=actor_id)
