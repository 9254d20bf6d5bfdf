from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session
from typing import Optional

from leave_management.core.limiter import limiter, ADMIN_LIMIT
from leave_management.core.permissions import Principal
from leave_management.core.schemas import DataResponse
from leave_management.database import get_db
from leave_management.routers.auth_deps import require_hr_or_admin
from leave_management.schemas.report import OrgStatisticsResponse, ReportFilters, ReportResponse
from leave_management.services.org_statistics import read_snapshot, refresher
from leave_management.services.reports import ReportService

router = APIRouter(
    prefix="/admin/reports",
    tags=["reports"],
    dependencies=[Depends(require_hr_or_admin())]
)


def _snapshot_response(snapshot) -> dict:
    return {
        "year": snapshot.year,
        "last_refreshed": snapshot.last_refreshed,
        "stale": refresher.is_stale,
        "statistics": snapshot.payload,
    }


@router.get("/org-stats", response_model=DataResponse[OrgStatisticsResponse])
@limiter.limit(ADMIN_LIMIT)
def get_org_statistics(request: Request, db: Session = Depends(get_db)):
    """
    Last stored organisation snapshot. Never waits for a pending refresh;
    `stale` tells whether writes happened since it was computed.
    """
    return {"data": _snapshot_response(read_snapshot(db))}


@router.post("/org-stats/refresh", response_model=DataResponse[OrgStatisticsResponse])
@limiter.limit(ADMIN_LIMIT)
def refresh_org_statistics(request: Request, db: Session = Depends(get_db)):
    return {"data": _snapshot_response(refresher.refresh_now(db))}


@router.post("/{report_type}", response_model=DataResponse[ReportResponse])
@limiter.limit(ADMIN_LIMIT)
def generate_report(
    request: Request,
    report_type: str,
    filters: Optional[ReportFilters] = None,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_hr_or_admin()),
):
    """leave-usage, leave-by-type, leave-by-department, leave-trends or employee-balances."""
    return {"data": ReportService(db, principal).generate(report_type, filters or ReportFilters())}
