"""
Tenant scoping for multi-tenant queries.

Every listing or search over tenant-owned rows goes through scope_to_tenant so
the rule lives in one place: super_admin is unscoped, everyone else sees only
rows whose owning user belongs to their own college.
"""
from sqlalchemy import false, or_, select
from sqlalchemy.orm import Query, Session

from database.models import College, Project, Sensor, User, UserRole


def college_member_ids(college_id: int):
    """Subquery of user ids attached to a college."""
    return select(User.id).where(User.college_id == college_id)


def scope_to_tenant(query: Query, principal: User, owner_column) -> Query:
    """
    Restrict a query to the principal's tenant.

    Args:
        query: Query over a tenant-owned entity
        principal: Current user
        owner_column: Column holding the owning user's id (e.g. Project.created_by),
            or User.id when the query is over users themselves

    Returns:
        The filtered query
    """
    if principal.role == UserRole.SUPER_ADMIN:
        return query
    if principal.college_id is None:
        return query.filter(false())
    return query.filter(owner_column.in_(college_member_ids(principal.college_id)))


def scope_colleges(query: Query, principal: User, include_own: bool = False) -> Query:
    """
    Colleges are unscoped for super_admin. Other callers get no rows, or only
    their own college when include_own is set.
    """
    if principal.role == UserRole.SUPER_ADMIN:
        return query
    if include_own and principal.college_id is not None:
        return query.filter(College.id == principal.college_id)
    return query.filter(false())


def get_in_tenant(db: Session, model, entity_id: int, principal: User, owner_column):
    """Load one tenant-owned row by id; None when it is missing or belongs to another tenant."""
    query = db.query(model).filter(model.id == entity_id)
    return scope_to_tenant(query, principal, owner_column).first()


def tenant_project_ids(college_id: int):
    """Subquery of project ids created by members of a college."""
    return select(Project.id).where(Project.created_by.in_(college_member_ids(college_id)))


def scope_sensors(query: Query, principal: User, sensor_column=None) -> Query:
    """
    Sensors are visible when unassigned or attached to a project of the
    principal's tenant. Pass sensor_column to scope a query over another entity
    (e.g. SensorReading.sensor_id) by its sensor.
    """
    if principal.role == UserRole.SUPER_ADMIN:
        return query
    if principal.college_id is None:
        return query.filter(false())
    visible = or_(Sensor.project_id.is_(None), Sensor.project_id.in_(tenant_project_ids(principal.college_id)))
    if sensor_column is None:
        return query.filter(visible)
    return query.filter(sensor_column.in_(select(Sensor.id).where(visible)))
