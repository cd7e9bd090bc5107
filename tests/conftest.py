"""Pytest fixtures for testing"""

from datetime import datetime
from decimal import Decimal
from typing import Generator, Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from fakes import InMemoryLedgerStore, RecordingAuditClient, RecordingAuditSink
from koperasi_ledger.api.dependencies import get_audit_client, get_report_cache
from koperasi_ledger.api.main import create_app
from koperasi_ledger.infrastructure.cache import InMemoryReportCache
from koperasi_ledger.infrastructure.database.models import (
    Base,
    LedgerTransaction,
    Loan,
    Member,
    SavingsAccount,
    Staff,
)
from koperasi_ledger.infrastructure.database.session import get_db

# Test database: one shared in-memory SQLite connection
TEST_DATABASE_URL = "sqlite://"
engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)

TELLER_IDENTITY = 100


class Seeder:
    """Inserts members, staff, accounts, loans and historical transactions"""

    def __init__(self, db: Session):
        self.db = db

    def _add(self, row):
        self.db.add(row)
        self.db.commit()
        return row

    def staff(self, user_id: int = TELLER_IDENTITY, is_active: bool = True) -> Staff:
        return self._add(Staff(user_id=user_id, name=f"Staff {user_id}", is_active=is_active))

    def member(
        self,
        status: str = "ACTIVE",
        created_at: Optional[datetime] = None,
        updated_at: Optional[datetime] = None,
    ) -> Member:
        created_at = created_at or datetime(2024, 1, 1)
        return self._add(
            Member(name="Anggota", status=status, created_at=created_at, updated_at=updated_at or created_at)
        )

    def account(self, member: Member, balance: str = "0", category: str = "VOLUNTARY") -> SavingsAccount:
        return self._add(SavingsAccount(member_id=member.id, category=category, balance=Decimal(balance)))

    def loan(
        self,
        member: Member,
        principal: str = "2000000",
        tenor_months: int = 6,
        status: str = "APPROVED",
        outstanding: str = "0",
        approved_at: Optional[datetime] = None,
    ) -> Loan:
        return self._add(
            Loan(
                member_id=member.id,
                principal=Decimal(principal),
                interest_percent=Decimal("1.50"),
                tenor_months=tenor_months,
                outstanding_balance=Decimal(outstanding),
                status=status,
                approved_at=approved_at or datetime(2024, 1, 5),
            )
        )

    def transaction(
        self,
        member: Member,
        staff: Staff,
        kind: str,
        amount: str,
        occurred_at: datetime,
        status: str = "APPROVED",
        account: Optional[SavingsAccount] = None,
        loan: Optional[Loan] = None,
    ) -> LedgerTransaction:
        """Historical ledger row; balances are not touched"""
        return self._add(
            LedgerTransaction(
                member_id=member.id,
                staff_id=staff.id,
                account_id=account.id if account is not None else None,
                loan_id=loan.id if loan is not None else None,
                kind=kind,
                amount=Decimal(amount),
                occurred_at=occurred_at,
                payment_method="CASH",
                status=status,
            )
        )


@pytest.fixture
def db() -> Generator[Session, None, None]:
    """Create test database and session"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def seed(db: Session) -> Seeder:
    return Seeder(db)


@pytest.fixture
def audit_client() -> RecordingAuditClient:
    return RecordingAuditClient()


@pytest.fixture
def client(db: Session, audit_client: RecordingAuditClient) -> TestClient:
    """Create FastAPI test client with test database"""
    app = create_app()
    cache = InMemoryReportCache(ttl_seconds=900)

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_audit_client] = lambda: audit_client
    app.dependency_overrides[get_report_cache] = lambda: cache
    return TestClient(app)


@pytest.fixture
def teller_headers() -> dict:
    return {"X-Actor-Id": str(TELLER_IDENTITY)}


@pytest.fixture
def ledger() -> InMemoryLedgerStore:
    """In-memory store with one active teller (identity 100 -> staff 1) and member 1"""
    store = InMemoryLedgerStore()
    store.add_staff(TELLER_IDENTITY, staff_id=1)
    store.add_member(1)
    return store


@pytest.fixture
def audit_sink() -> RecordingAuditSink:
    return RecordingAuditSink()
