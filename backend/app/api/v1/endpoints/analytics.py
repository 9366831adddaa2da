"""
Analytics API Endpoints.

Read-only dashboard metrics, scoped to the caller's company.
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.db.session import get_db
from backend.app.models.enums import UserRole
from backend.app.schemas.analytics import AnalyticsSummary, LoadsByStatus, VehicleUtilizationResponse
from backend.app.services.analytics import AnalyticsService
from backend.app.core.guards import require_role, CompanyScopeGuard

router = APIRouter(prefix="/analytics", tags=["Analytics"])

company_guard = CompanyScopeGuard()


@router.get("/summary", response_model=AnalyticsSummary)
async def get_summary(
    period: str = Query("month", description="day, week, month, quarter or year"),
    current_user: dict = Depends(require_role([UserRole.DISPATCHER])),
    db: AsyncSession = Depends(get_db)
):
    """Revenue, on-time percentage and average transit time for a period."""
    return await AnalyticsService.summary(db, period, company_guard.filter_by_company(current_user))


@router.get("/loads-by-status", response_model=LoadsByStatus)
async def get_loads_by_status(
    current_user: dict = Depends(require_role([UserRole.DISPATCHER])),
    db: AsyncSession = Depends(get_db)
):
    counts = await AnalyticsService.loads_by_status(db, company_guard.filter_by_company(current_user))
    return AnalyticsService.loads_by_status_response(counts)


@router.get("/vehicles", response_model=VehicleUtilizationResponse)
async def get_vehicle_utilization(
    period: str = Query("month", description="day, week, month, quarter or year"),
    current_user: dict = Depends(require_role([UserRole.DISPATCHER])),
    db: AsyncSession = Depends(get_db)
):
    vehicles = await AnalyticsService.vehicle_utilization(
        db, period, company_guard.filter_by_company(current_user)
    )
    return VehicleUtilizationResponse(period=period, vehicles=vehicles)
