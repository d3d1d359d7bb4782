"""
Analytics APIs.

Figures are scoped to the caller's tenant. The dashboard summary is cached per
tenant for CACHE_TTL_SECONDS; it is not invalidated on writes.
"""
from datetime import datetime, timedelta
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from sqlalchemy import func

from database.models import (
    User, UserRole, ApprovalStatus, College, Project, DataSubmission, SubmissionStatus,
    Sensor, SensorReading, Report, AuditLog,
)
from auth.dependencies import get_db_session, get_cache, require_admin, require_approved
from core.utils import model_to_dict
from services.cache_service import CacheBackend
from services.tenant_scope import scope_to_tenant, scope_colleges
from core.logger import logger
import config


router = APIRouter(prefix="/api/analytics", tags=["analytics"], dependencies=[Depends(require_approved)])


def dashboard_cache_key(principal: User) -> str:
    if principal.role == UserRole.SUPER_ADMIN:
        return "dashboard_stats:all"
    return f"dashboard_stats:college:{principal.college_id}"


def _enum_counts(rows) -> dict:
    return {(key.value if hasattr(key, "value") else key): count for key, count in rows}


def compute_dashboard(db: Session, principal: User) -> dict:
    users = scope_to_tenant(db.query(User), principal, User.id)
    projects = scope_to_tenant(db.query(Project), principal, Project.created_by)
    submissions = scope_to_tenant(db.query(DataSubmission), principal, DataSubmission.student_id)
    reports = scope_to_tenant(db.query(Report), principal, Report.created_by)

    week_ago = datetime.utcnow() - timedelta(days=7)
    return {
        "users": {
            "total": users.count(),
            "pending": users.filter(User.status == ApprovalStatus.PENDING).count(),
            "active": users.filter(User.is_active.is_(True)).count(),
        },
        "colleges": {
            "total": scope_colleges(db.query(College), principal, include_own=True).count(),
            "pending": scope_colleges(
                db.query(College).filter(College.status == ApprovalStatus.PENDING), principal
            ).count(),
        },
        "projects": {
            "total": projects.count(),
            "active": projects.filter(Project.status == "ACTIVE").count(),
        },
        "submissions": {
            "total": submissions.count(),
            "pending": submissions.filter(DataSubmission.status == SubmissionStatus.PENDING).count(),
            "approved": submissions.filter(DataSubmission.status == SubmissionStatus.APPROVED).count(),
            "lastWeek": submissions.filter(DataSubmission.created_at >= week_ago).count(),
        },
        "reports": {"total": reports.count()},
        "sensors": {
            "total": db.query(func.count(Sensor.id)).scalar() or 0,
            "readingsLastWeek": db.query(func.count(SensorReading.id)).filter(
                SensorReading.timestamp >= week_ago
            ).scalar() or 0,
        },
        "generatedAt": datetime.utcnow().isoformat(),
    }


@router.get("/dashboard")
async def dashboard(
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db_session),
    cache: CacheBackend = Depends(get_cache)
):
    """Summary counts for admins. Served from cache for CACHE_TTL_SECONDS."""
    key = dashboard_cache_key(current_user)
    stats, hit = cache.get_or_set(key, lambda: compute_dashboard(db, current_user), ttl=config.CACHE_TTL_SECONDS)
    if hit:
        logger.debug(f"Dashboard served from cache ({key})")
        return {**stats, "cached": True}
    return stats


@router.get("/users/by-role")
async def users_by_role(
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db_session)
):
    query = scope_to_tenant(db.query(User.role, func.count(User.id)), current_user, User.id)
    counts = {role.value: 0 for role in UserRole}
    counts.update(_enum_counts(query.group_by(User.role).all()))
    return {"data": counts}


@router.get("/projects/by-status")
async def projects_by_status(
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db_session)
):
    query = scope_to_tenant(db.query(Project.status, func.count(Project.id)), current_user, Project.created_by)
    return {"data": _enum_counts(query.group_by(Project.status).all())}


@router.get("/activity/recent")
async def recent_activity(
    limit: int = Query(20, ge=1, le=100),
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db_session)
):
    """Latest audit entries by users of the caller's tenant."""
    query = scope_to_tenant(db.query(AuditLog), current_user, AuditLog.user_id)
    entries = query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).limit(limit).all()
    return {"data": [model_to_dict(e) for e in entries], "total": len(entries)}


@router.get("/growth/monthly")
async def monthly_growth(
    months: int = Query(6, ge=1, le=24),
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db_session)
):
    """New users, projects and submissions per calendar month, oldest first."""
    today = datetime.utcnow().date()
    buckets = []
    year, month = today.year, today.month
    for _ in range(months):
        buckets.append(f"{year:04d}-{month:02d}")
        month -= 1
        if month == 0:
            year, month = year - 1, 12
    buckets.reverse()
    start = datetime.strptime(buckets[0] + "-01", "%Y-%m-%d")

    # Bucketed in Python so the query stays portable across databases
    def tally(query, column):
        counts = dict.fromkeys(buckets, 0)
        for (created_at,) in query.with_entities(column).filter(column >= start).all():
            bucket = created_at.strftime("%Y-%m")
            if bucket in counts:
                counts[bucket] += 1
        return counts

    users = tally(scope_to_tenant(db.query(User), current_user, User.id), User.created_at)
    projects = tally(scope_to_tenant(db.query(Project), current_user, Project.created_by), Project.created_at)
    submissions = tally(
        scope_to_tenant(db.query(DataSubmission), current_user, DataSubmission.student_id),
        DataSubmission.created_at,
    )
    return {
        "data": [
            {"month": m, "users": users[m], "projects": projects[m], "submissions": submissions[m]}
            for m in buckets
        ]
    }
