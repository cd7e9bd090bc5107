"""Domain models - pure Python dataclasses representing business entities"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from koperasi_ledger.domain.exceptions import InvalidTransactionError
from koperasi_ledger.domain.money import Money


class TransactionKind(str, Enum):
    DEPOSIT = "DEPOSIT"
    WITHDRAWAL = "WITHDRAWAL"
    DISBURSEMENT = "DISBURSEMENT"
    INSTALLMENT = "INSTALLMENT"

    @property
    def targets_account(self) -> bool:
        return self in (TransactionKind.DEPOSIT, TransactionKind.WITHDRAWAL)

    @property
    def targets_loan(self) -> bool:
        return self in (TransactionKind.DISBURSEMENT, TransactionKind.INSTALLMENT)


SAVINGS_KINDS = (TransactionKind.DEPOSIT, TransactionKind.WITHDRAWAL)
LOAN_KINDS = (TransactionKind.DISBURSEMENT, TransactionKind.INSTALLMENT)
INFLOW_KINDS = (TransactionKind.DEPOSIT, TransactionKind.INSTALLMENT)
OUTFLOW_KINDS = (TransactionKind.WITHDRAWAL, TransactionKind.DISBURSEMENT)


class TransactionStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class LoanStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    PAID_OFF = "PAID_OFF"


class MemberStatus(str, Enum):
    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    REJECTED = "REJECTED"


class SavingsCategory(str, Enum):
    MANDATORY_INITIAL = "MANDATORY_INITIAL"
    MANDATORY_MONTHLY = "MANDATORY_MONTHLY"
    VOLUNTARY = "VOLUNTARY"


class SnapshotStatus(str, Enum):
    DRAFT = "DRAFT"
    FINAL = "FINAL"


@dataclass
class StaffState:
    """Acting staff member resolved from an identity"""

    id: int
    is_active: bool


@dataclass
class MemberState:
    id: int
    status: MemberStatus


@dataclass
class AccountState:
    """Savings account projection used by the state machine"""

    id: int
    member_id: int
    category: SavingsCategory
    balance: Money
    deleted: bool = False


@dataclass
class LoanState:
    """Loan projection used by the state machine"""

    id: int
    member_id: int
    principal: Money
    interest_percent: Decimal
    tenor_months: int
    outstanding_balance: Money
    status: LoanStatus
    approved_by_id: Optional[int] = None
    approved_at: Optional[datetime] = None
    deleted: bool = False


@dataclass
class NewTransaction:
    """Validated request to record a PENDING transaction"""

    member_id: int
    staff_id: int
    kind: TransactionKind
    amount: Money
    occurred_at: datetime
    payment_method: str
    account_id: Optional[int] = None
    loan_id: Optional[int] = None
    note: Optional[str] = None
    evidence_url: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.amount.is_positive():
            raise InvalidTransactionError("amount must be greater than 0")
        if self.account_id is not None and self.loan_id is not None:
            raise InvalidTransactionError("transaction cannot target both a savings account and a loan")
        if self.kind.targets_account and self.account_id is None:
            raise InvalidTransactionError(f"{self.kind.value} requires a savings account")
        if self.kind.targets_loan and self.loan_id is None:
            raise InvalidTransactionError(f"{self.kind.value} requires a loan")


@dataclass
class TransactionRecord:
    """Persisted transaction"""

    id: int
    member_id: int
    staff_id: int
    kind: TransactionKind
    amount: Money
    occurred_at: datetime
    payment_method: str
    status: TransactionStatus
    account_id: Optional[int] = None
    loan_id: Optional[int] = None
    note: Optional[str] = None
    evidence_url: Optional[str] = None
    created_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.status != TransactionStatus.PENDING


@dataclass
class ProcessingContext:
    """Transaction with its owner and target, read under lock"""

    transaction: TransactionRecord
    member: Optional[MemberState]
    account: Optional[AccountState] = None
    loan: Optional[LoanState] = None


@dataclass
class Decision:
    """Output of the state machine"""

    status: TransactionStatus
    reason: Optional[str] = None
    balance_delta: Money = field(default_factory=Money.zero)
    new_account_balance: Optional[Money] = None
    new_outstanding_balance: Optional[Money] = None
    new_loan_status: Optional[LoanStatus] = None

    @property
    def approved(self) -> bool:
        return self.status == TransactionStatus.APPROVED

    @classmethod
    def reject(cls, reason: str) -> "Decision":
        return cls(status=TransactionStatus.REJECTED, reason=reason)


@dataclass
class TransactionFilter:
    status: Optional[TransactionStatus] = None
    kind: Optional[TransactionKind] = None
    occurred_from: Optional[datetime] = None
    occurred_to: Optional[datetime] = None
    member_id: Optional[int] = None
    staff_id: Optional[int] = None
    account_id: Optional[int] = None
    loan_id: Optional[int] = None


@dataclass
class Page:
    """One page of a cursor-paginated listing"""

    items: List[Any]
    next_cursor: Optional[int]
    limit: int

    @property
    def has_next(self) -> bool:
        return self.next_cursor is not None


@dataclass
class PeriodTotals:
    """Per-kind approved totals for one month"""

    deposits: Money
    withdrawals: Money
    disbursements: Money
    installments: Money

    @property
    def inflow(self) -> Money:
        return self.deposits + self.installments

    @property
    def outflow(self) -> Money:
        return self.withdrawals + self.disbursements

    @property
    def net_cashflow(self) -> Money:
        return self.inflow - self.outflow


@dataclass
class FinancialSnapshot:
    id: int
    month: int
    year: int
    total_deposits: Money
    total_withdrawals: Money
    total_disbursements: Money
    total_installments: Money
    closing_balance: Money
    status: SnapshotStatus
    generated_by_id: int
    generated_at: datetime

    @property
    def totals(self) -> PeriodTotals:
        return PeriodTotals(
            deposits=self.total_deposits,
            withdrawals=self.total_withdrawals,
            disbursements=self.total_disbursements,
            installments=self.total_installments,
        )


@dataclass
class Installment:
    """Single payment in a loan repayment schedule"""

    number: int
    due_date: date
    amount: Money


@dataclass
class AuditEvent:
    action: str
    entity: str
    entity_id: int
    actor_id: Optional[int]
    before: Optional[Dict[str, Any]] = None
    after: Optional[Dict[str, Any]] = None
    ip: Optional[str] = None
