"""Transaction endpoints - operator creation, manual processing, listings and export"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query

from koperasi_ledger.api.dependencies import get_actor_id, get_operator_workflow, get_queries
from koperasi_ledger.api.v1.schemas import (
    CreateTransactionRequest,
    TransactionExportResponse,
    TransactionPageResponse,
    TransactionResponse,
)
from koperasi_ledger.domain.models import TransactionFilter, TransactionKind, TransactionStatus
from koperasi_ledger.services.queries import LedgerQueries
from koperasi_ledger.services.workflows import OperatorWorkflow
from koperasi_ledger.utils.date_utils import to_storage_datetime

router = APIRouter()

CursorQuery = Query(None, description="Opaque cursor from the previous page")


def transaction_filter(
    status: Optional[TransactionStatus] = Query(None),
    kind: Optional[TransactionKind] = Query(None),
    occurred_from: Optional[datetime] = Query(None),
    occurred_to: Optional[datetime] = Query(None),
) -> TransactionFilter:
    return TransactionFilter(
        status=status,
        kind=kind,
        occurred_from=to_storage_datetime(occurred_from) if occurred_from else None,
        occurred_to=to_storage_datetime(occurred_to) if occurred_to else None,
    )


@router.post("/transactions", response_model=TransactionResponse, status_code=201)
def create_transaction(
    body: CreateTransactionRequest,
    actor_id: int = Depends(get_actor_id),
    workflow: OperatorWorkflow = Depends(get_operator_workflow),
):
    """
    Operator path: record a transaction of any kind.

    With defer=true the record stays PENDING until
    POST /v1/transactions/{id}/process is called.
    """
    record = workflow.create_transaction(
        member_id=body.member_id,
        kind=body.kind,
        amount=body.amount,
        payment_method=body.payment_method,
        actor_id=actor_id,
        account_id=body.account_id,
        loan_id=body.loan_id,
        occurred_at=body.occurred_at,
        note=body.note,
        evidence_url=body.evidence_url,
        defer=body.defer,
    )
    return TransactionResponse.from_record(record)


@router.post("/transactions/{transaction_id}/process", response_model=TransactionResponse)
def process_transaction(
    transaction_id: int,
    actor_id: int = Depends(get_actor_id),
    workflow: OperatorWorkflow = Depends(get_operator_workflow),
):
    """Process a PENDING transaction; 409 if it is already APPROVED or REJECTED"""
    return TransactionResponse.from_record(workflow.process(transaction_id, actor_id))


@router.get("/transactions", response_model=TransactionPageResponse)
def list_transactions(
    cursor: Optional[str] = CursorQuery,
    filters: TransactionFilter = Depends(transaction_filter),
    queries: LedgerQueries = Depends(get_queries),
):
    return TransactionPageResponse.from_page(queries.list_transactions(filters, cursor))


@router.get("/transactions/pending", response_model=TransactionPageResponse)
def list_pending_transactions(
    cursor: Optional[str] = CursorQuery,
    queries: LedgerQueries = Depends(get_queries),
):
    return TransactionPageResponse.from_page(queries.list_pending(cursor))


@router.get("/transactions/export", response_model=TransactionExportResponse)
def export_transactions(
    filters: TransactionFilter = Depends(transaction_filter),
    queries: LedgerQueries = Depends(get_queries),
):
    """Unpaginated filtered listing"""
    records = queries.export_transactions(filters)
    return TransactionExportResponse(
        count=len(records),
        items=[TransactionResponse.from_record(r) for r in records],
    )


@router.get("/transactions/{transaction_id}", response_model=TransactionResponse)
def get_transaction(transaction_id: int, queries: LedgerQueries = Depends(get_queries)):
    return TransactionResponse.from_record(queries.get_transaction(transaction_id))


@router.get("/members/{member_id}/transactions", response_model=TransactionPageResponse)
def list_member_transactions(
    member_id: int,
    cursor: Optional[str] = CursorQuery,
    queries: LedgerQueries = Depends(get_queries),
):
    return TransactionPageResponse.from_page(queries.list_by_member(member_id, cursor))


@router.get("/staff/{staff_id}/transactions", response_model=TransactionPageResponse)
def list_staff_transactions(
    staff_id: int,
    cursor: Optional[str] = CursorQuery,
    queries: LedgerQueries = Depends(get_queries),
):
    return TransactionPageResponse.from_page(queries.list_by_staff(staff_id, cursor))
