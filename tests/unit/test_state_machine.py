"""Unit tests for the transaction state machine"""

from datetime import datetime
from decimal import Decimal

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from koperasi_ledger.domain.models import (
    AccountState,
    LoanState,
    LoanStatus,
    MemberState,
    MemberStatus,
    ProcessingContext,
    SavingsCategory,
    TransactionKind,
    TransactionRecord,
    TransactionStatus,
)
from koperasi_ledger.domain.money import Money
from koperasi_ledger.domain.state_machine import decide


def make_transaction(kind: TransactionKind, amount: str, **kwargs) -> TransactionRecord:
    return TransactionRecord(
        id=1,
        member_id=1,
        staff_id=1,
        kind=kind,
        amount=Money.of(amount),
        occurred_at=datetime(2024, 3, 1),
        payment_method="CASH",
        status=TransactionStatus.PENDING,
        account_id=kwargs.get("account_id"),
        loan_id=kwargs.get("loan_id"),
    )


def make_account(balance: str) -> AccountState:
    return AccountState(id=1, member_id=1, category=SavingsCategory.VOLUNTARY, balance=Money.of(balance))


def make_loan(principal: str = "2000000", outstanding: str = "0", status: LoanStatus = LoanStatus.APPROVED) -> LoanState:
    return LoanState(
        id=1,
        member_id=1,
        principal=Money.of(principal),
        interest_percent=Decimal("1.5"),
        tenor_months=6,
        outstanding_balance=Money.of(outstanding),
        status=status,
    )


def savings_context(kind, amount, balance, member_status=MemberStatus.ACTIVE, account=True):
    return ProcessingContext(
        transaction=make_transaction(kind, amount, account_id=1),
        member=MemberState(id=1, status=member_status),
        account=make_account(balance) if account else None,
    )


def loan_context(kind, amount, loan, member_status=MemberStatus.ACTIVE):
    return ProcessingContext(
        transaction=make_transaction(kind, amount, loan_id=1),
        member=MemberState(id=1, status=member_status),
        loan=loan,
    )


def test_deposit_adds_to_balance():
    decision = decide(savings_context(TransactionKind.DEPOSIT, "500000", "0"))

    assert decision.approved
    assert decision.new_account_balance == Money.of("500000")
    assert decision.balance_delta == Money.of("500000")


def test_withdrawal_subtracts():
    decision = decide(savings_context(TransactionKind.WITHDRAWAL, "200000", "500000"))

    assert decision.approved
    assert decision.new_account_balance == Money.of("300000")
    assert decision.balance_delta == Money.of("-200000")


def test_withdrawal_of_entire_balance_is_allowed():
    decision = decide(savings_context(TransactionKind.WITHDRAWAL, "300000", "300000"))

    assert decision.approved
    assert decision.new_account_balance.is_zero()


def test_withdrawal_over_balance_rejected():
    decision = decide(savings_context(TransactionKind.WITHDRAWAL, "400000", "300000"))

    assert decision.status == TransactionStatus.REJECTED
    assert decision.reason == "insufficient balance"
    assert decision.new_account_balance is None


def test_one_cent_short_rejected():
    decision = decide(savings_context(TransactionKind.WITHDRAWAL, "100.01", "100.00"))
    assert decision.reason == "insufficient balance"


def test_missing_account_rejected():
    decision = decide(savings_context(TransactionKind.DEPOSIT, "10", "0", account=False))
    assert decision.reason == "savings account not found"


def test_deleted_account_rejected():
    context = savings_context(TransactionKind.DEPOSIT, "10", "0")
    context.account.deleted = True
    assert decide(context).reason == "savings account not found"


@pytest.mark.parametrize("status", [MemberStatus.INACTIVE, MemberStatus.PENDING, MemberStatus.REJECTED])
def test_inactive_member_rejects_deposit(status):
    decision = decide(savings_context(TransactionKind.DEPOSIT, "10", "0", member_status=status))

    assert decision.status == TransactionStatus.REJECTED
    assert decision.reason == "member inactive"


def test_member_check_precedes_loan_rules():
    """An inactive member is reported even when the loan would also fail"""
    context = loan_context(
        TransactionKind.DISBURSEMENT,
        "1",
        make_loan(status=LoanStatus.PENDING),
        member_status=MemberStatus.INACTIVE,
    )
    assert decide(context).reason == "member inactive"


def test_missing_member_rejects():
    context = savings_context(TransactionKind.DEPOSIT, "10", "0")
    context.member = None
    assert decide(context).reason == "member inactive"


def test_full_principal_disbursed():
    decision = decide(loan_context(TransactionKind.DISBURSEMENT, "2000000", make_loan()))

    assert decision.approved
    assert decision.new_outstanding_balance == Money.of("2000000")
    assert decision.new_loan_status is None


def test_second_disbursement_rejected():
    loan = make_loan(outstanding="2000000")
    decision = decide(loan_context(TransactionKind.DISBURSEMENT, "2000000", loan))
    assert decision.reason == "already disbursed"


def test_amount_mismatch_uses_exact_equality():
    decision = decide(loan_context(TransactionKind.DISBURSEMENT, "1999999.99", make_loan()))
    assert decision.reason == "amount mismatch"


def test_loan_not_approved():
    loan = make_loan(status=LoanStatus.PENDING)
    decision = decide(loan_context(TransactionKind.DISBURSEMENT, "2000000", loan))
    assert decision.reason == "loan not approved"


def test_already_disbursed_checked_before_mismatch():
    loan = make_loan(outstanding="100")
    decision = decide(loan_context(TransactionKind.DISBURSEMENT, "5", loan))
    assert decision.reason == "already disbursed"


def test_installment_reduces_outstanding():
    loan = make_loan(outstanding="2000000")
    decision = decide(loan_context(TransactionKind.INSTALLMENT, "333334", loan))

    assert decision.approved
    assert decision.new_outstanding_balance == Money.of("1666666")
    assert decision.new_loan_status is None


def test_final_installment_pays_off():
    loan = make_loan(outstanding="333330")
    decision = decide(loan_context(TransactionKind.INSTALLMENT, "333330", loan))

    assert decision.approved
    assert decision.new_outstanding_balance.is_zero()
    assert decision.new_loan_status == LoanStatus.PAID_OFF


def test_exceeds_outstanding_rejected():
    loan = make_loan(outstanding="100")
    decision = decide(loan_context(TransactionKind.INSTALLMENT, "100.01", loan))
    assert decision.reason == "exceeds outstanding"


def test_paid_off_loan_rejects_installment():
    loan = make_loan(status=LoanStatus.PAID_OFF)
    decision = decide(loan_context(TransactionKind.INSTALLMENT, "1", loan))
    assert decision.reason == "loan not approved"


def test_missing_loan_rejected():
    decision = decide(loan_context(TransactionKind.INSTALLMENT, "1", None))
    assert decision.reason == "loan not found"


amounts = st.decimals(min_value=Decimal("0.01"), max_value=Decimal("100000"), places=2)


@settings(max_examples=200, deadline=None)
@given(st.decimals(min_value=Decimal("0"), max_value=Decimal("1000000"), places=2), st.lists(amounts, max_size=40))
def test_approved_withdrawals_never_go_negative(opening: Decimal, withdrawals):
    balance = Money.of(opening)
    for amount in withdrawals:
        decision = decide(savings_context(TransactionKind.WITHDRAWAL, str(amount), balance.serialize()))
        if decision.approved:
            balance = decision.new_account_balance
        assert not balance.is_negative()


@settings(max_examples=200, deadline=None)
@given(st.decimals(min_value=Decimal("1"), max_value=Decimal("1000000"), places=2), st.lists(amounts, max_size=40))
def test_installments_decline_monotonically_to_zero(principal: Decimal, payments):
    loan = make_loan(principal=str(principal), outstanding=str(principal))
    for amount in payments + [None]:
        if loan.status != LoanStatus.APPROVED:
            break
        paying = Money.of(amount) if amount is not None else loan.outstanding_balance
        decision = decide(loan_context(TransactionKind.INSTALLMENT, paying.serialize(), loan))
        if not decision.approved:
            assert decision.reason == "exceeds outstanding"
            continue
        assert decision.new_outstanding_balance <= loan.outstanding_balance
        loan.outstanding_balance = decision.new_outstanding_balance
        if decision.new_loan_status is not None:
            assert loan.outstanding_balance.is_zero()
            loan.status = decision.new_loan_status

    assert not loan.outstanding_balance.is_negative()
    assert (loan.status == LoanStatus.PAID_OFF) == loan.outstanding_balance.is_zero()
