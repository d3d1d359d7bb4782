"""
Global search across users, projects, colleges, discussions and submissions.
"""
from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.orm import Session
from sqlalchemy import or_, cast, String
from typing import Optional

from database.models import User, ApprovalStatus, Project, College, Discussion, DataSubmission
from auth.dependencies import get_db_session, get_current_user, require_approved
from core.utils import model_to_dict, serialize_user
from services.tenant_scope import scope_to_tenant, scope_colleges


router = APIRouter(prefix="/api/search", tags=["search"], dependencies=[Depends(require_approved)])

SEARCH_TYPES = ("users", "projects", "colleges", "discussions", "submissions")
SECTION_LIMIT = 10


def search_users(db: Session, principal: User, pattern: str):
    query = db.query(User).filter(
        User.status == ApprovalStatus.APPROVED,
        or_(User.name.ilike(pattern), User.email.ilike(pattern), User.department.ilike(pattern))
    )
    rows = scope_to_tenant(query, principal, User.id).order_by(User.name.asc()).limit(SECTION_LIMIT).all()
    return [serialize_user(u) for u in rows]


def search_projects(db: Session, principal: User, pattern: str):
    query = db.query(Project).filter(
        or_(Project.name.ilike(pattern), Project.description.ilike(pattern), Project.department.ilike(pattern))
    )
    rows = scope_to_tenant(query, principal, Project.created_by).order_by(
        Project.created_at.desc(), Project.id.desc()
    ).limit(SECTION_LIMIT).all()
    return [model_to_dict(p) for p in rows]


def search_colleges(db: Session, principal: User, pattern: str):
    query = db.query(College).filter(
        or_(College.name.ilike(pattern), College.college_code.ilike(pattern), College.location.ilike(pattern))
    )
    rows = scope_colleges(query, principal).order_by(College.name.asc()).limit(SECTION_LIMIT).all()
    return [model_to_dict(c) for c in rows]


def search_discussions(db: Session, principal: User, pattern: str):
    query = db.query(Discussion).filter(or_(Discussion.title.ilike(pattern), Discussion.content.ilike(pattern)))
    rows = scope_to_tenant(query, principal, Discussion.created_by).order_by(
        Discussion.created_at.desc(), Discussion.id.desc()
    ).limit(SECTION_LIMIT).all()
    return [model_to_dict(d) for d in rows]


def search_submissions(db: Session, principal: User, pattern: str):
    query = db.query(DataSubmission).filter(
        or_(DataSubmission.submission_type.ilike(pattern), cast(DataSubmission.data_content, String).ilike(pattern))
    )
    rows = scope_to_tenant(query, principal, DataSubmission.student_id).order_by(
        DataSubmission.created_at.desc(), DataSubmission.id.desc()
    ).limit(SECTION_LIMIT).all()
    return [model_to_dict(s) for s in rows]


SEARCHERS = {
    "users": search_users,
    "projects": search_projects,
    "colleges": search_colleges,
    "discussions": search_discussions,
    "submissions": search_submissions,
}


@router.get("")
async def search(
    q: str = Query(""),
    type: Optional[str] = Query(None),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    """
    Case-insensitive substring search, tenant scoped. Colleges are only
    searchable by super_admin; everyone else gets an empty section.
    """
    term = q.strip()
    if len(term) < 2:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Search query must be at least 2 characters")
    if type is not None and type not in SEARCH_TYPES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid type. Must be one of: {', '.join(SEARCH_TYPES)}"
        )

    pattern = f"%{term}%"
    sections = [type] if type else list(SEARCH_TYPES)
    results = {name: SEARCHERS[name](db, current_user, pattern) for name in sections}
    return {
        "query": term,
        "results": results,
        "total": sum(len(rows) for rows in results.values()),
    }
