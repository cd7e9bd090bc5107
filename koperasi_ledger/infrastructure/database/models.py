"""SQLAlchemy ORM models for members, balances, transactions and snapshots"""

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

Base = declarative_base()

# Amounts are stored as exact NUMERIC(18, 2); never Float
AMOUNT = Numeric(18, 2, asdecimal=True)


class Member(Base):
    """Cooperative member (nasabah)"""

    __tablename__ = "member"

    id = Column(Integer, primary_key=True, autoincrement=True)
    member_number = Column(String(32), nullable=True, unique=True)
    name = Column(Text, nullable=False)
    status = Column(String(16), nullable=False, default="PENDING", index=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())
    deleted_at = Column(DateTime, nullable=True)

    accounts = relationship("SavingsAccount", back_populates="member")
    loans = relationship("Loan", back_populates="member")


class Staff(Base):
    """Back-office employee (pegawai) linked to an authenticated identity"""

    __tablename__ = "staff"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, nullable=False, unique=True, index=True)
    name = Column(Text, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())


class SavingsAccount(Base):
    """One running balance per member per savings category"""

    __tablename__ = "savings_account"
    __table_args__ = (
        UniqueConstraint("member_id", "category", name="uq_savings_account_member_category"),
        CheckConstraint("balance >= 0", name="ck_savings_account_balance_non_negative"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    member_id = Column(Integer, ForeignKey("member.id"), nullable=False, index=True)
    category = Column(String(32), nullable=False)
    balance = Column(AMOUNT, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, server_default=func.now())
    deleted_at = Column(DateTime, nullable=True)

    member = relationship("Member", back_populates="accounts")


class Loan(Base):
    """Single-disbursement, declining-balance loan (pinjaman)"""

    __tablename__ = "loan"
    __table_args__ = (
        CheckConstraint("outstanding_balance >= 0", name="ck_loan_outstanding_non_negative"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    member_id = Column(Integer, ForeignKey("member.id"), nullable=False, index=True)
    principal = Column(AMOUNT, nullable=False)
    interest_percent = Column(Numeric(5, 2), nullable=False, default=0)
    tenor_months = Column(Integer, nullable=False)
    outstanding_balance = Column(AMOUNT, nullable=False, default=0)
    status = Column(String(16), nullable=False, default="PENDING", index=True)
    approved_by_id = Column(Integer, ForeignKey("staff.id"), nullable=True)
    approved_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())
    deleted_at = Column(DateTime, nullable=True)

    member = relationship("Member", back_populates="loans")


class LedgerTransaction(Base):
    """One monetary movement against a savings account XOR a loan"""

    __tablename__ = "ledger_transaction"
    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_ledger_transaction_amount_positive"),
        CheckConstraint(
            "(account_id IS NULL) <> (loan_id IS NULL)",
            name="ck_ledger_transaction_single_target",
        ),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    member_id = Column(Integer, ForeignKey("member.id"), nullable=False, index=True)
    staff_id = Column(Integer, ForeignKey("staff.id"), nullable=False, index=True)
    account_id = Column(Integer, ForeignKey("savings_account.id"), nullable=True, index=True)
    loan_id = Column(Integer, ForeignKey("loan.id"), nullable=True, index=True)
    kind = Column(String(16), nullable=False, index=True)
    amount = Column(AMOUNT, nullable=False)
    occurred_at = Column(DateTime, nullable=False, index=True)
    payment_method = Column(String(32), nullable=False)
    status = Column(String(16), nullable=False, default="PENDING", index=True)
    evidence_url = Column(Text, nullable=True)
    note = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())
    deleted_at = Column(DateTime, nullable=True)


class FinancialSnapshotRow(Base):
    """Period-keyed financial summary (laporan keuangan), DRAFT until finalized"""

    __tablename__ = "financial_snapshot"
    __table_args__ = (
        UniqueConstraint("month", "year", name="uq_financial_snapshot_period"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    month = Column(Integer, nullable=False)
    year = Column(Integer, nullable=False)
    total_deposits = Column(AMOUNT, nullable=False)
    total_withdrawals = Column(AMOUNT, nullable=False)
    total_disbursements = Column(AMOUNT, nullable=False)
    total_installments = Column(AMOUNT, nullable=False)
    closing_balance = Column(AMOUNT, nullable=False)
    status = Column(String(8), nullable=False, default="DRAFT")
    generated_by_id = Column(Integer, nullable=False)
    generated_at = Column(DateTime, nullable=False)
