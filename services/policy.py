"""
Declarative authorization policy.

POLICIES maps (entity, action) to a predicate over (principal, resource).
Routers call enforce() instead of re-writing ownership and role checks.
Unknown (entity, action) pairs are denied.
"""
from typing import Any, Callable, Dict, Optional, Tuple

from database.models import User, UserRole
from core.exceptions import AuthorizationError
from core.logger import logger

Predicate = Callable[[User, Any], bool]

SUPER_ADMIN = frozenset({UserRole.SUPER_ADMIN})
ADMINS = frozenset({UserRole.SUPER_ADMIN, UserRole.COLLEGE_ADMIN})
REVIEWERS = frozenset({UserRole.SUPER_ADMIN, UserRole.COLLEGE_ADMIN, UserRole.PROFESSOR})


def has_role(roles) -> Predicate:
    return lambda principal, resource: principal.role in roles


def owns(attr: str) -> Predicate:
    return lambda principal, resource: resource is not None and getattr(resource, attr, None) == principal.id


def any_of(*predicates: Predicate) -> Predicate:
    return lambda principal, resource: any(p(principal, resource) for p in predicates)


def same_college(principal: User, target: User) -> bool:
    return principal.college_id is not None and principal.college_id == target.college_id


def can_transition_user(principal: User, target: User) -> bool:
    """
    Approval authority over another account.

    super_admin may act on anyone else; college_admin only on non-admin users
    of their own college. Nobody acts on their own account.
    """
    if target is None or principal.id == target.id:
        return False
    if principal.role == UserRole.SUPER_ADMIN:
        return True
    if principal.role == UserRole.COLLEGE_ADMIN:
        return target.role not in ADMINS and same_college(principal, target)
    return False


def can_read_user(principal: User, target: User) -> bool:
    if principal.id == target.id or principal.role == UserRole.SUPER_ADMIN:
        return True
    return principal.role in REVIEWERS and same_college(principal, target)


def can_update_user(principal: User, target: User) -> bool:
    return principal.id == target.id or can_transition_user(principal, target)


def can_update_college(principal: User, college) -> bool:
    if principal.role == UserRole.SUPER_ADMIN:
        return True
    return principal.role == UserRole.COLLEGE_ADMIN and principal.college_id == college.id


def reviewer_in_tenant(principal: User, submission) -> bool:
    """Reviewer role, and (below super_admin) the same college as the submitting student."""
    if principal.role not in REVIEWERS:
        return False
    if principal.role == UserRole.SUPER_ADMIN:
        return True
    return submission.student is not None and same_college(principal, submission.student)


def can_review_submission(principal: User, submission) -> bool:
    return submission.student_id != principal.id and reviewer_in_tenant(principal, submission)


def admin_over(owner_attr: str) -> Predicate:
    """super_admin, or a college_admin of the same college as the resource's owner."""
    def predicate(principal: User, resource) -> bool:
        if principal.role == UserRole.SUPER_ADMIN:
            return True
        if principal.role != UserRole.COLLEGE_ADMIN or resource is None:
            return False
        owner = getattr(resource, owner_attr, None)
        return owner is not None and same_college(principal, owner)
    return predicate


def sensor_in_tenant(principal: User, sensor) -> bool:
    """Unassigned sensors are shared; assigned ones belong to the project creator's college."""
    if principal.role == UserRole.SUPER_ADMIN:
        return True
    if sensor is None or principal.college_id is None:
        return False
    if sensor.project is None:
        return True
    creator = sensor.project.creator
    return creator is not None and same_college(principal, creator)


owner_or_admin = any_of(owns("created_by"), admin_over("creator"))

POLICIES: Dict[Tuple[str, str], Predicate] = {
    # Colleges
    ("college", "update"): can_update_college,
    ("college", "delete"): has_role(SUPER_ADMIN),
    ("college", "approve"): has_role(SUPER_ADMIN),
    ("college", "reject"): has_role(SUPER_ADMIN),

    # Users
    ("user", "read"): can_read_user,
    ("user", "update"): can_update_user,
    ("user", "delete"): can_transition_user,
    ("user", "set_active"): can_transition_user,
    ("user", "approve"): can_transition_user,
    ("user", "reject"): can_transition_user,

    # Projects and reports
    ("project", "update"): owner_or_admin,
    ("project", "delete"): owner_or_admin,
    ("report", "update"): owner_or_admin,
    ("report", "delete"): owner_or_admin,
    ("report", "publish"): owner_or_admin,

    # Data submissions
    ("submission", "read"): any_of(owns("student_id"), reviewer_in_tenant),
    ("submission", "update"): any_of(owns("student_id"), reviewer_in_tenant),
    ("submission", "delete"): any_of(owns("student_id"), reviewer_in_tenant),
    ("submission", "submit"): owns("student_id"),
    ("submission", "review"): can_review_submission,

    # Research data and models
    ("research_data", "update"): any_of(owns("user_id"), admin_over("owner")),
    ("research_data", "delete"): any_of(owns("user_id"), admin_over("owner")),
    ("ml_model", "update"): owner_or_admin,
    ("ml_model", "delete"): owner_or_admin,

    # Sensor telemetry
    ("sensor_reading", "write"): sensor_in_tenant,

    # Announcements
    ("announcement", "create"): has_role(REVIEWERS),
}


def is_allowed(entity: str, action: str, principal: User, resource: Any = None) -> bool:
    predicate = POLICIES.get((entity, action))
    if predicate is None:
        logger.warning(f"No policy for ({entity}, {action}); denying")
        return False
    return bool(predicate(principal, resource))


def enforce(entity: str, action: str, principal: User, resource: Any = None,
            message: Optional[str] = None) -> None:
    """Raise AuthorizationError unless the policy allows the action."""
    if not is_allowed(entity, action, principal, resource):
        logger.warning(
            f"Denied {entity}.{action} for user {principal.id} ({principal.role.value})"
        )
        raise AuthorizationError(message or f"Not authorized to {action} this {entity.replace('_', ' ')}")
