"""Transaction orchestrator - drives PENDING transactions to a terminal status"""

import logging
import time
from typing import Optional, Tuple

from koperasi_ledger.domain.exceptions import AlreadyProcessedError, NotFoundError, StorageError
from koperasi_ledger.domain.models import (
    AuditEvent,
    Decision,
    NewTransaction,
    ProcessingContext,
    TransactionRecord,
    TransactionStatus,
)
from koperasi_ledger.domain.ports import AuditSink, LedgerStore, LedgerUnitOfWork
from koperasi_ledger.domain.state_machine import decide
from koperasi_ledger.infrastructure.observability.logging import log_transaction_outcome
from koperasi_ledger.infrastructure.observability.metrics import record_transaction, storage_failure_counter

logger = logging.getLogger(__name__)


def _target_snapshot(context: ProcessingContext) -> dict:
    if context.account is not None:
        return {"account_id": context.account.id, "balance": context.account.balance.serialize()}
    if context.loan is not None:
        return {
            "loan_id": context.loan.id,
            "outstanding_balance": context.loan.outstanding_balance.serialize(),
            "loan_status": context.loan.status.value,
        }
    return {}


class TransactionOrchestrator:
    """
    Creates and processes transactions against a LedgerStore.

    Processing is a one-shot operation: the locked read, the decision and
    the balance/status write all happen inside one atomic unit, so two
    concurrent submissions against the same account or loan can never both
    observe the same pre-update balance.
    """

    def __init__(
        self,
        store: LedgerStore,
        audit: Optional[AuditSink] = None,
        request_id: Optional[str] = None,
    ):
        self.store = store
        self.audit = audit
        self.request_id = request_id

    def create_pending(self, draft: NewTransaction) -> TransactionRecord:
        """Persist a PENDING transaction in its own atomic unit"""
        return self.store.atomically(lambda uow: uow.create_transaction(draft))

    def submit_and_process(self, draft: NewTransaction, actor_id: Optional[int] = None) -> TransactionRecord:
        record = self.create_pending(draft)
        return self.process(record.id, actor_id=actor_id)

    def process(self, transaction_id: int, actor_id: Optional[int] = None) -> TransactionRecord:
        """
        Decide and commit a PENDING transaction.

        Raises:
            NotFoundError: no such transaction
            AlreadyProcessedError: transaction is already APPROVED or REJECTED
            StorageError: the atomic unit failed; the transaction stays PENDING
        """
        start_time = time.time()

        def unit(uow: LedgerUnitOfWork) -> Tuple[ProcessingContext, Decision, TransactionRecord]:
            context = uow.load_for_processing(transaction_id)
            if context is None:
                raise NotFoundError(f"transaction {transaction_id} not found")
            if context.transaction.is_terminal:
                raise AlreadyProcessedError(
                    f"transaction {transaction_id} already {context.transaction.status.value}"
                )
            decision = self._decide(context)
            return context, decision, uow.apply_decision(context, decision)

        try:
            context, decision, result = self.store.atomically(unit)
        except StorageError:
            storage_failure_counter.inc()
            logger.error(
                "Transaction processing aborted",
                extra={"request_id": self.request_id, "transaction_id": transaction_id},
                exc_info=True,
            )
            raise

        duration = time.time() - start_time
        record_transaction(result.kind.value, result.status.value, duration)
        log_transaction_outcome(result, duration * 1000, request_id=self.request_id)
        self._audit(context, decision, result, actor_id)
        return result

    def _decide(self, context: ProcessingContext) -> Decision:
        """State machine call; an unexpected error rejects instead of aborting the unit"""
        try:
            return decide(context)
        except Exception as e:
            logger.exception(
                "State machine failed; rejecting transaction",
                extra={"request_id": self.request_id, "transaction_id": context.transaction.id},
            )
            return Decision.reject(str(e) or e.__class__.__name__)

    def _audit(
        self,
        context: ProcessingContext,
        decision: Decision,
        result: TransactionRecord,
        actor_id: Optional[int],
    ) -> None:
        if self.audit is None:
            return
        after = {"status": result.status.value, "note": result.note}
        if decision.new_account_balance is not None:
            after["balance"] = decision.new_account_balance.serialize()
        if decision.new_outstanding_balance is not None:
            after["outstanding_balance"] = decision.new_outstanding_balance.serialize()
        if decision.new_loan_status is not None:
            after["loan_status"] = decision.new_loan_status.value
        event = AuditEvent(
            action="PROCESS_TRANSACTION",
            entity="transaction",
            entity_id=result.id,
            actor_id=actor_id,
            before={"status": TransactionStatus.PENDING.value, **_target_snapshot(context)},
            after=after,
        )
        try:
            self.audit.record(event)
        except Exception:
            logger.warning(
                "Audit sink failed",
                extra={"request_id": self.request_id, "transaction_id": result.id},
                exc_info=True,
            )

