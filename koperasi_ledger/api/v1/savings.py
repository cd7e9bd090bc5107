"""Savings account endpoints - deposits, withdrawals, account detail"""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from koperasi_ledger.api.dependencies import get_actor_id, get_queries, get_savings_workflow
from koperasi_ledger.api.v1.schemas import (
    AccountListResponse,
    AccountResponse,
    SavingsTransactionRequest,
    TransactionPageResponse,
    TransactionResponse,
)
from koperasi_ledger.services.queries import LedgerQueries
from koperasi_ledger.services.workflows import SavingsWorkflow

router = APIRouter()


@router.post("/savings/{account_id}/deposits", response_model=TransactionResponse, status_code=201)
def deposit(
    account_id: int,
    body: SavingsTransactionRequest,
    actor_id: int = Depends(get_actor_id),
    workflow: SavingsWorkflow = Depends(get_savings_workflow),
):
    """
    Deposit into a savings account.

    The transaction is decided synchronously; the response carries the
    terminal status (APPROVED or REJECTED).
    """
    record = workflow.deposit(
        account_id,
        body.amount,
        body.payment_method,
        actor_id,
        occurred_at=body.occurred_at,
        note=body.note,
        evidence_url=body.evidence_url,
    )
    return TransactionResponse.from_record(record)


@router.post("/savings/{account_id}/withdrawals", response_model=TransactionResponse, status_code=201)
def withdraw(
    account_id: int,
    body: SavingsTransactionRequest,
    actor_id: int = Depends(get_actor_id),
    workflow: SavingsWorkflow = Depends(get_savings_workflow),
):
    """
    Withdraw from a savings account.

    Returns:
        REJECTED with note "insufficient balance" when the balance is short
    """
    record = workflow.withdraw(
        account_id,
        body.amount,
        body.payment_method,
        actor_id,
        occurred_at=body.occurred_at,
        note=body.note,
        evidence_url=body.evidence_url,
    )
    return TransactionResponse.from_record(record)


@router.get("/savings/{account_id}", response_model=AccountResponse)
def get_account(account_id: int, queries: LedgerQueries = Depends(get_queries)):
    return AccountResponse.from_state(queries.get_account(account_id))


@router.get("/savings/{account_id}/transactions", response_model=TransactionPageResponse)
def list_account_transactions(
    account_id: int,
    cursor: Optional[str] = Query(None, description="Opaque cursor from the previous page"),
    queries: LedgerQueries = Depends(get_queries),
):
    return TransactionPageResponse.from_page(queries.list_by_account(account_id, cursor))


@router.get("/members/{member_id}/savings", response_model=AccountListResponse)
def list_member_accounts(member_id: int, queries: LedgerQueries = Depends(get_queries)):
    """All savings accounts held by a member; 404 when the member does not exist"""
    accounts = queries.list_accounts_by_member(member_id)
    return AccountListResponse(items=[AccountResponse.from_state(a) for a in accounts])
