"""
FixMyArea - Report Routes
Aggregated complaint counts for the analytics dashboard
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from fixmyarea.auth.oauth2 import Identity, require_roles
from fixmyarea.database import get_db
from fixmyarea.models.db_models import UserRole
from fixmyarea.services import report_service

router = APIRouter(prefix="/api/reports", tags=["Reports"])


@router.get("/complaints")
async def complaint_report(
    group_by: str = Query("status", alias="groupBy"),
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    identity: Identity = Depends(require_roles(UserRole.ADMIN, UserRole.STAFF)),
    db: AsyncSession = Depends(get_db),
):
    """groupBy: status | category | priority | district | state | month"""
    data = await report_service.group_by(db, group_by, start_date, end_date)
    return {"success": True, "data": data}


@router.get("/staff-performance")
async def staff_performance(
    identity: Identity = Depends(require_roles(UserRole.ADMIN)),
    db: AsyncSession = Depends(get_db),
):
    data = await report_service.staff_performance(db)
    return {"success": True, "data": data}
