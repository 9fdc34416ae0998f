"""
FixMyArea - Complaint Reports
Server-side group counts for the analytics dashboard.
"""
from datetime import date, datetime, time, timezone
from typing import Any, Dict, List, Optional, Union

from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from fixmyarea.exceptions import ValidationError
from fixmyarea.models.db_models import Complaint, ComplaintStatus, User

GROUP_COLUMNS = {
    "status": Complaint.status,
    "category": Complaint.category,
    "priority": Complaint.priority,
    "district": Complaint.district,
    "state": Complaint.state,
    "month": Complaint.created_at,
}

DateLike = Union[date, datetime, str, None]


def _as_datetime(value: DateLike, end_of_day: bool = False) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, str):
        try:
            # A bare date covers the whole day
            value = date.fromisoformat(value) if len(value) == 10 else datetime.fromisoformat(value)
        except ValueError:
            raise ValidationError(f"Invalid date: {value}")
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.replace(tzinfo=None)
    return datetime.combine(value, time.max if end_of_day else time.min)


def _month_expression(dialect: str, column):
    """YYYY-MM label for a timestamp column"""
    if dialect == "sqlite":
        return func.strftime("%Y-%m", column)
    return func.to_char(column, "YYYY-MM")


async def group_by(
    db: AsyncSession,
    field: str,
    start_date: DateLike = None,
    end_date: DateLike = None,
) -> List[Dict[str, Any]]:
    """[{_id: <group value>, count: n}], optionally bounded by created_at"""
    column = GROUP_COLUMNS.get(field or "")
    if column is None:
        raise ValidationError(f"groupBy must be one of: {', '.join(sorted(GROUP_COLUMNS))}")
    if field == "month":
        column = _month_expression(db.bind.dialect.name, column)

    count = func.count(Complaint.id)
    query = select(column, count).group_by(column)
    start = _as_datetime(start_date)
    end = _as_datetime(end_date, end_of_day=True)
    if start is not None:
        query = query.where(Complaint.created_at >= start)
    if end is not None:
        query = query.where(Complaint.created_at <= end)

    result = await db.execute(query)
    rows = [(getattr(group, "value", group), n) for group, n in result.all()]
    return [
        {"_id": group, "count": n}
        for group, n in sorted(rows, key=lambda item: (-item[1], str(item[0])))
    ]


async def staff_performance(db: AsyncSession) -> List[Dict[str, Any]]:
    """Resolved vs total complaints per assignee"""
    resolved = func.sum(case((Complaint.status == ComplaintStatus.RESOLVED, 1), else_=0))
    result = await db.execute(
        select(User.name, resolved, func.count(Complaint.id))
        .select_from(Complaint)
        .join(User, User.id == Complaint.assigned_to)
        .group_by(Complaint.assigned_to, User.name)
    )
    return [
        {"name": name, "resolvedCount": int(resolved_count or 0), "totalCount": total}
        for name, resolved_count, total in result.all()
    ]
