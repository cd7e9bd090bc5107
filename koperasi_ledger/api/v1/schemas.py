"""Pydantic schemas for API request/response validation"""

from datetime import date, datetime
from decimal import Decimal
from typing import Annotated, List, Optional

from pydantic import BaseModel, Field

from koperasi_ledger.domain.models import (
    AccountState,
    FinancialSnapshot,
    Installment,
    LoanState,
    Page,
    TransactionKind,
    TransactionRecord,
)
from koperasi_ledger.utils.date_utils import MAX_PERIOD_YEAR, MIN_PERIOD_YEAR
from koperasi_ledger.utils.pagination import encode_cursor

# Amounts travel as exact decimal strings; JSON numbers are accepted on input
Amount = Annotated[Decimal, Field(gt=0, max_digits=18, decimal_places=2)]


class SavingsTransactionRequest(BaseModel):
    """Request body for POST /v1/savings/{account_id}/deposits and /withdrawals"""

    amount: Amount
    payment_method: str = Field(..., min_length=1, max_length=32)
    occurred_at: Optional[datetime] = None
    note: Optional[str] = None
    evidence_url: Optional[str] = None


class LoanTransactionRequest(BaseModel):
    """Request body for POST /v1/loans/{loan_id}/disbursements and /installments"""

    amount: Optional[Decimal] = Field(
        None, gt=0, max_digits=18, decimal_places=2,
        description="Defaults to the principal (disbursement) or the scheduled installment",
    )
    payment_method: str = Field(..., min_length=1, max_length=32)
    occurred_at: Optional[datetime] = None
    note: Optional[str] = None
    evidence_url: Optional[str] = None


class CreateTransactionRequest(BaseModel):
    """Request body for POST /v1/transactions (operator path)"""

    member_id: int = Field(..., gt=0)
    kind: TransactionKind
    amount: Amount
    payment_method: str = Field(..., min_length=1, max_length=32)
    account_id: Optional[int] = Field(None, gt=0)
    loan_id: Optional[int] = Field(None, gt=0)
    occurred_at: Optional[datetime] = None
    note: Optional[str] = None
    evidence_url: Optional[str] = None
    defer: bool = Field(False, description="Leave the transaction PENDING for manual processing")


class TransactionResponse(BaseModel):
    """Single transaction; check status, a REJECTED record is still a success response"""

    id: int
    member_id: int
    staff_id: int
    kind: str
    amount: str
    status: str
    payment_method: str
    account_id: Optional[int] = None
    loan_id: Optional[int] = None
    note: Optional[str] = None
    evidence_url: Optional[str] = None
    occurred_at: datetime
    created_at: Optional[datetime] = None

    @classmethod
    def from_record(cls, record: TransactionRecord) -> "TransactionResponse":
        return cls(
            id=record.id,
            member_id=record.member_id,
            staff_id=record.staff_id,
            kind=record.kind.value,
            amount=record.amount.serialize(),
            status=record.status.value,
            payment_method=record.payment_method,
            account_id=record.account_id,
            loan_id=record.loan_id,
            note=record.note,
            evidence_url=record.evidence_url,
            occurred_at=record.occurred_at,
            created_at=record.created_at,
        )


class TransactionPageResponse(BaseModel):
    """Cursor page; pass next_cursor back as ?cursor= for the following page"""

    items: List[TransactionResponse]
    next_cursor: Optional[str] = None
    has_next: bool
    limit: int

    @classmethod
    def from_page(cls, page: Page) -> "TransactionPageResponse":
        return cls(
            items=[TransactionResponse.from_record(r) for r in page.items],
            next_cursor=encode_cursor(page.next_cursor),
            has_next=page.has_next,
            limit=page.limit,
        )


class TransactionExportResponse(BaseModel):
    count: int
    items: List[TransactionResponse]


class AccountResponse(BaseModel):
    id: int
    member_id: int
    category: str
    balance: str

    @classmethod
    def from_state(cls, account: AccountState) -> "AccountResponse":
        return cls(
            id=account.id,
            member_id=account.member_id,
            category=account.category.value,
            balance=account.balance.serialize(),
        )


class AccountListResponse(BaseModel):
    items: List[AccountResponse]


class LoanResponse(BaseModel):
    id: int
    member_id: int
    principal: str
    interest_percent: str
    tenor_months: int
    outstanding_balance: str
    status: str
    approved_at: Optional[datetime] = None

    @classmethod
    def from_state(cls, loan: LoanState) -> "LoanResponse":
        return cls(
            id=loan.id,
            member_id=loan.member_id,
            principal=loan.principal.serialize(),
            interest_percent=str(loan.interest_percent),
            tenor_months=loan.tenor_months,
            outstanding_balance=loan.outstanding_balance.serialize(),
            status=loan.status.value,
            approved_at=loan.approved_at,
        )


class LoanPageResponse(BaseModel):
    """Cursor page of loans, same paging contract as TransactionPageResponse"""

    items: List[LoanResponse]
    next_cursor: Optional[str] = None
    has_next: bool
    limit: int

    @classmethod
    def from_page(cls, page: Page) -> "LoanPageResponse":
        return cls(
            items=[LoanResponse.from_state(loan) for loan in page.items],
            next_cursor=encode_cursor(page.next_cursor),
            has_next=page.has_next,
            limit=page.limit,
        )


class InstallmentSchema(BaseModel):
    """Single installment in a repayment schedule"""

    number: int
    due_date: date
    amount: str

    @classmethod
    def from_installment(cls, installment: Installment) -> "InstallmentSchema":
        return cls(number=installment.number, due_date=installment.due_date, amount=installment.amount.serialize())


class LoanScheduleResponse(BaseModel):
    """Response for GET /v1/loans/{loan_id}/schedule"""

    loan_id: int
    principal: str
    tenor_months: int
    installments: List[InstallmentSchema]


class SnapshotGenerateRequest(BaseModel):
    month: int = Field(..., ge=1, le=12)
    year: int = Field(..., ge=MIN_PERIOD_YEAR, le=MAX_PERIOD_YEAR)


class SnapshotResponse(BaseModel):
    id: int
    month: int
    year: int
    total_deposits: str
    total_withdrawals: str
    total_disbursements: str
    total_installments: str
    closing_balance: str
    status: str
    generated_by_id: int
    generated_at: datetime

    @classmethod
    def from_snapshot(cls, snapshot: FinancialSnapshot) -> "SnapshotResponse":
        return cls(
            id=snapshot.id,
            month=snapshot.month,
            year=snapshot.year,
            total_deposits=snapshot.total_deposits.serialize(),
            total_withdrawals=snapshot.total_withdrawals.serialize(),
            total_disbursements=snapshot.total_disbursements.serialize(),
            total_installments=snapshot.total_installments.serialize(),
            closing_balance=snapshot.closing_balance.serialize(),
            status=snapshot.status.value,
            generated_by_id=snapshot.generated_by_id,
            generated_at=snapshot.generated_at,
        )
