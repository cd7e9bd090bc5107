"""Report endpoints - period reports and financial snapshots"""

from typing import Any, Dict

from fastapi import APIRouter, Depends, Query

from koperasi_ledger.api.dependencies import get_actor_id, get_report_service
from koperasi_ledger.api.v1.schemas import SnapshotGenerateRequest, SnapshotResponse
from koperasi_ledger.services.reports import ReportKind, ReportService
from koperasi_ledger.utils.date_utils import MAX_PERIOD_YEAR, MIN_PERIOD_YEAR

router = APIRouter()


@router.get("/reports/snapshots", response_model=SnapshotResponse)
def get_snapshot(
    month: int = Query(..., ge=1, le=12),
    year: int = Query(..., ge=MIN_PERIOD_YEAR, le=MAX_PERIOD_YEAR),
    service: ReportService = Depends(get_report_service),
):
    return SnapshotResponse.from_snapshot(service.find_snapshot(month, year))


@router.post("/reports/snapshots", response_model=SnapshotResponse, status_code=201)
def generate_snapshot(
    body: SnapshotGenerateRequest,
    actor_id: int = Depends(get_actor_id),
    service: ReportService = Depends(get_report_service),
):
    """
    Recompute and store the period's DRAFT snapshot.

    Returns 409 when the period's snapshot is already FINAL.
    """
    return SnapshotResponse.from_snapshot(service.generate_snapshot(body.month, body.year, actor_id))


@router.post("/reports/snapshots/{snapshot_id}/finalize", response_model=SnapshotResponse)
def finalize_snapshot(
    snapshot_id: int,
    actor_id: int = Depends(get_actor_id),
    service: ReportService = Depends(get_report_service),
):
    return SnapshotResponse.from_snapshot(service.finalize_snapshot(snapshot_id, actor_id=actor_id))


@router.get("/reports/{kind}", response_model=Dict[str, Any])
def get_report(
    kind: ReportKind,
    month: int = Query(..., ge=1, le=12),
    year: int = Query(..., ge=MIN_PERIOD_YEAR, le=MAX_PERIOD_YEAR),
    service: ReportService = Depends(get_report_service),
):
    """
    Period report payload.

    Amounts are decimal strings, ratios 4-place decimal strings, and
    undefined ratios (zero denominator, no previous data) are null.
    """
    return service.get_report(kind, month, year)
