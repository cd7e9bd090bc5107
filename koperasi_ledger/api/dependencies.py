"""Dependency injection for FastAPI endpoints"""

from fastapi import BackgroundTasks, Depends, Header, Request
from sqlalchemy.orm import Session

from koperasi_ledger.infrastructure.cache import InMemoryReportCache, report_cache
from koperasi_ledger.infrastructure.clients.audit import AuditClient, BackgroundAuditSink
from koperasi_ledger.infrastructure.database.reports import SqlReportStore
from koperasi_ledger.infrastructure.database.repositories import IdentityRepository, SqlLedgerStore
from koperasi_ledger.infrastructure.database.session import get_db
from koperasi_ledger.infrastructure.settings_provider import ConfigSettingsProvider
from koperasi_ledger.services.orchestrator import TransactionOrchestrator
from koperasi_ledger.services.queries import LedgerQueries
from koperasi_ledger.services.reports import ReportService
from koperasi_ledger.services.workflows import LoanWorkflow, OperatorWorkflow, SavingsWorkflow


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_actor_id(x_actor_id: int = Header(..., alias="X-Actor-Id", description="Authenticated user id")) -> int:
    """Identity of the caller, resolved to a staff member by the workflows"""
    return x_actor_id


def get_audit_client() -> AuditClient:
    """Provide audit webhook client instance"""
    return AuditClient()


def get_audit_sink(
    request: Request,
    background_tasks: BackgroundTasks,
    client: AuditClient = Depends(get_audit_client),
) -> BackgroundAuditSink:
    ip = request.client.host if request.client is not None else None
    return BackgroundAuditSink(background_tasks, client, ip=ip)


def get_report_cache() -> InMemoryReportCache:
    return report_cache


def get_settings_provider() -> ConfigSettingsProvider:
    return ConfigSettingsProvider()


def get_ledger_store(db: Session = Depends(get_db)) -> SqlLedgerStore:
    return SqlLedgerStore(db)


def get_identity(db: Session = Depends(get_db)) -> IdentityRepository:
    return IdentityRepository(db)


def get_orchestrator(
    request: Request,
    store: SqlLedgerStore = Depends(get_ledger_store),
    audit: BackgroundAuditSink = Depends(get_audit_sink),
) -> TransactionOrchestrator:
    return TransactionOrchestrator(store, audit=audit, request_id=get_request_id(request))


def get_savings_workflow(
    store: SqlLedgerStore = Depends(get_ledger_store),
    identity: IdentityRepository = Depends(get_identity),
    orchestrator: TransactionOrchestrator = Depends(get_orchestrator),
) -> SavingsWorkflow:
    return SavingsWorkflow(store, identity, orchestrator)


def get_loan_workflow(
    store: SqlLedgerStore = Depends(get_ledger_store),
    identity: IdentityRepository = Depends(get_identity),
    orchestrator: TransactionOrchestrator = Depends(get_orchestrator),
) -> LoanWorkflow:
    return LoanWorkflow(store, identity, orchestrator)


def get_operator_workflow(
    store: SqlLedgerStore = Depends(get_ledger_store),
    identity: IdentityRepository = Depends(get_identity),
    orchestrator: TransactionOrchestrator = Depends(get_orchestrator),
) -> OperatorWorkflow:
    return OperatorWorkflow(store, identity, orchestrator)


def get_queries(
    store: SqlLedgerStore = Depends(get_ledger_store),
    identity: IdentityRepository = Depends(get_identity),
) -> LedgerQueries:
    return LedgerQueries(store, identity)


def get_report_service(
    db: Session = Depends(get_db),
    cache: InMemoryReportCache = Depends(get_report_cache),
    settings_provider: ConfigSettingsProvider = Depends(get_settings_provider),
    audit: BackgroundAuditSink = Depends(get_audit_sink),
) -> ReportService:
    return ReportService(SqlReportStore(db), cache, settings_provider, audit=audit)
