"""Loan endpoints - disbursement, installments, loan detail and schedule"""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from koperasi_ledger.api.dependencies import get_actor_id, get_loan_workflow, get_queries
from koperasi_ledger.api.v1.schemas import (
    InstallmentSchema,
    LoanPageResponse,
    LoanResponse,
    LoanScheduleResponse,
    LoanTransactionRequest,
    TransactionPageResponse,
    TransactionResponse,
)
from koperasi_ledger.services.queries import LedgerQueries
from koperasi_ledger.services.workflows import LoanWorkflow

router = APIRouter()


@router.post("/loans/{loan_id}/disbursements", response_model=TransactionResponse, status_code=201)
def disburse(
    loan_id: int,
    body: LoanTransactionRequest,
    actor_id: int = Depends(get_actor_id),
    workflow: LoanWorkflow = Depends(get_loan_workflow),
):
    """
    Release the loan principal.

    Amount defaults to the principal; any other amount is REJECTED
    ("amount mismatch"), as is a second disbursement ("already disbursed").
    """
    record = workflow.disburse(
        loan_id,
        body.payment_method,
        actor_id,
        amount=body.amount,
        occurred_at=body.occurred_at,
        note=body.note,
        evidence_url=body.evidence_url,
    )
    return TransactionResponse.from_record(record)


@router.post("/loans/{loan_id}/installments", response_model=TransactionResponse, status_code=201)
def pay_installment(
    loan_id: int,
    body: LoanTransactionRequest,
    actor_id: int = Depends(get_actor_id),
    workflow: LoanWorkflow = Depends(get_loan_workflow),
):
    """Pay an installment; the payment that clears the outstanding balance marks the loan PAID_OFF"""
    record = workflow.pay_installment(
        loan_id,
        body.payment_method,
        actor_id,
        amount=body.amount,
        occurred_at=body.occurred_at,
        note=body.note,
        evidence_url=body.evidence_url,
    )
    return TransactionResponse.from_record(record)


@router.get("/loans/{loan_id}", response_model=LoanResponse)
def get_loan(loan_id: int, queries: LedgerQueries = Depends(get_queries)):
    return LoanResponse.from_state(queries.get_loan(loan_id))


@router.get("/loans/{loan_id}/schedule", response_model=LoanScheduleResponse)
def get_loan_schedule(loan_id: int, queries: LedgerQueries = Depends(get_queries)):
    """
    Informational repayment schedule.

    Returns:
        One installment per tenor month; the last absorbs the rounding remainder
    """
    loan, installments = queries.get_loan_schedule(loan_id)
    return LoanScheduleResponse(
        loan_id=loan.id,
        principal=loan.principal.serialize(),
        tenor_months=loan.tenor_months,
        installments=[InstallmentSchema.from_installment(i) for i in installments],
    )


@router.get("/loans/{loan_id}/transactions", response_model=TransactionPageResponse)
def list_loan_transactions(
    loan_id: int,
    cursor: Optional[str] = Query(None, description="Opaque cursor from the previous page"),
    queries: LedgerQueries = Depends(get_queries),
):
    return TransactionPageResponse.from_page(queries.list_by_loan(loan_id, cursor))


@router.get("/members/{member_id}/loans", response_model=LoanPageResponse)
def list_member_loans(
    member_id: int,
    cursor: Optional[str] = Query(None, description="Opaque cursor from the previous page"),
    queries: LedgerQueries = Depends(get_queries),
):
    return LoanPageResponse.from_page(queries.list_loans_by_member(member_id, cursor))
