"""Transaction state machine - pure decision logic for balance mutations"""

from koperasi_ledger.domain.exceptions import (
    AlreadyDisbursed,
    AmountMismatch,
    BusinessRuleViolation,
    ExceedsOutstanding,
    InsufficientBalance,
    LoanNotApproved,
    MemberInactive,
    TargetMissing,
)
from koperasi_ledger.domain.models import (
    AccountState,
    Decision,
    LoanState,
    LoanStatus,
    MemberStatus,
    ProcessingContext,
    TransactionKind,
    TransactionRecord,
    TransactionStatus,
)
from koperasi_ledger.domain.money import Money


def check_member_active(context: ProcessingContext) -> None:
    """Owning member must be ACTIVE at the moment of processing, whatever the kind"""
    if context.member is None or context.member.status != MemberStatus.ACTIVE:
        raise MemberInactive()


def evaluate_savings(transaction: TransactionRecord, account: AccountState | None) -> Decision:
    """
    DEPOSIT adds unconditionally; WITHDRAWAL requires balance >= amount.

    The boundary is inclusive: withdrawing the whole balance leaves 0.
    """
    if account is None or account.deleted:
        raise TargetMissing("savings account not found")

    if transaction.kind == TransactionKind.DEPOSIT:
        delta = transaction.amount
    else:
        if account.balance < transaction.amount:
            raise InsufficientBalance()
        delta = -transaction.amount

    return Decision(
        status=TransactionStatus.APPROVED,
        balance_delta=delta,
        new_account_balance=account.balance + delta,
    )


def evaluate_loan(transaction: TransactionRecord, loan: LoanState | None) -> Decision:
    """
    DISBURSEMENT releases the full principal exactly once; INSTALLMENT
    reduces the outstanding balance and pays the loan off at zero.

    Rules:
    - Only APPROVED loans accept either kind
    - Outstanding > 0 means the loan was already disbursed
    - Disbursed amount must equal principal exactly (no tolerance)
    - Installment may not exceed outstanding (inclusive boundary)
    """
    if loan is None or loan.deleted:
        raise TargetMissing("loan not found")

    if loan.status != LoanStatus.APPROVED:
        raise LoanNotApproved()

    if transaction.kind == TransactionKind.DISBURSEMENT:
        if loan.outstanding_balance.is_positive():
            raise AlreadyDisbursed()
        if transaction.amount != loan.principal:
            raise AmountMismatch()
        return Decision(
            status=TransactionStatus.APPROVED,
            balance_delta=loan.principal,
            new_outstanding_balance=loan.principal,
        )

    if loan.outstanding_balance < transaction.amount:
        raise ExceedsOutstanding()

    remaining = loan.outstanding_balance - transaction.amount
    return Decision(
        status=TransactionStatus.APPROVED,
        balance_delta=-transaction.amount,
        new_outstanding_balance=remaining,
        new_loan_status=LoanStatus.PAID_OFF if remaining <= Money.zero() else None,
    )


def evaluate(context: ProcessingContext) -> Decision:
    """
    Compute the approval decision, raising BusinessRuleViolation on failure.

    The member-active check runs before any kind-specific rule.
    """
    check_member_active(context)

    transaction = context.transaction
    if transaction.kind.targets_account:
        return evaluate_savings(transaction, context.account)
    if transaction.kind.targets_loan:
        return evaluate_loan(transaction, context.loan)

    raise BusinessRuleViolation(f"unknown transaction kind: {transaction.kind}")


def decide(context: ProcessingContext) -> Decision:
    """
    Main entry point: decide the terminal state of a PENDING transaction.

    Business rule failures come back as a REJECTED decision carrying the
    reason; they are outcomes, not errors.
    """
    try:
        return evaluate(context)
    except BusinessRuleViolation as e:
        return Decision.reject(str(e))
