"""
Tenant and status workflow.

College approval, user approval and data submission review all move a row out
of a single source status. Each transition is one conditional UPDATE
(... WHERE id = :id AND status = :expected); when no row is affected the row is
re-read to tell "missing" (404) from "already moved" (409). Two concurrent
reviewers therefore cannot both succeed.
"""
from datetime import datetime
from typing import Any, Dict, Optional, Tuple
from sqlalchemy.orm import Session, Query

from database.models import (
    User, UserRole, College, ApprovalStatus, DataSubmission, SubmissionStatus
)
from services.policy import enforce, is_allowed, same_college, ADMINS
from services.notification_service import NotificationService
from core.exceptions import (
    AuthorizationError, ConflictError, NotFoundError, ValidationFailedError
)
from core.logger import logger


def _status_value(status) -> str:
    return status.value if hasattr(status, "value") else str(status)


def _compare_and_set(
    db: Session,
    model,
    entity_id: int,
    expected,
    values: Dict[str, Any],
    label: str,
    conflict_message: str,
):
    """
    Apply values only if the row is still in the expected status.

    Returns the refreshed row; raises NotFoundError or ConflictError otherwise.
    """
    values = dict(values)
    values.setdefault("updated_at", datetime.utcnow())
    affected = db.query(model).filter(
        model.id == entity_id,
        model.status == expected
    ).update(values, synchronize_session=False)

    if affected == 0:
        db.rollback()
        current = db.query(model.status).filter(model.id == entity_id).scalar()
        if current is None:
            raise NotFoundError(label, entity_id)
        raise ConflictError(
            f"{conflict_message} (status: {_status_value(current)})",
            details={"status": _status_value(current)}
        )

    db.flush()
    row = db.get(model, entity_id)
    db.refresh(row)
    return row


class WorkflowService:
    """Lifecycle transitions for colleges, users and data submissions."""

    # ------------------------------------------------------------------
    # Colleges
    # ------------------------------------------------------------------
    @staticmethod
    def decide_college(db: Session, college_id: int, actor: User, approve: bool) -> College:
        """pending -> approved | rejected. super_admin only."""
        action = "approve" if approve else "reject"
        enforce("college", action, actor, message="Only super admins can approve or reject colleges")
        target = ApprovalStatus.APPROVED if approve else ApprovalStatus.REJECTED
        college = _compare_and_set(
            db, College, college_id, ApprovalStatus.PENDING,
            {"status": target}, "College", "College is not pending approval"
        )
        db.commit()
        logger.info(f"College {college_id} {target.value} by user {actor.id}")
        return college

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------
    @staticmethod
    def _user_denial_message(actor: User, target: User) -> str:
        if actor.id == target.id:
            return "You cannot change the approval status of your own account"
        if actor.role not in ADMINS:
            return "Only super admins and college admins can approve users"
        if target.role in ADMINS and actor.role != UserRole.SUPER_ADMIN:
            return "Only super admins can approve or reject college admins"
        if not same_college(actor, target):
            return "You can only manage users from your own college"
        return "Access denied"

    @staticmethod
    def check_user_authority(db: Session, user_id: int, actor: User, action: str) -> User:
        """Load the target user and re-check the actor's authority over them."""
        target = db.get(User, user_id)
        if target is None:
            raise NotFoundError("User", user_id)
        if not is_allowed("user", action, actor, target):
            message = WorkflowService._user_denial_message(actor, target)
            logger.warning(f"User {actor.id} denied {action} on user {user_id}: {message}")
            raise AuthorizationError(message)
        return target

    @staticmethod
    def decide_user(
        db: Session,
        user_id: int,
        actor: User,
        approve: bool,
        reason: Optional[str] = None,
    ) -> User:
        """
        pending -> approved | rejected.

        The pending queue is already filtered per role, but authority is
        re-checked here against the target row.
        """
        action = "approve" if approve else "reject"
        WorkflowService.check_user_authority(db, user_id, actor, action)

        target_status = ApprovalStatus.APPROVED if approve else ApprovalStatus.REJECTED
        user = _compare_and_set(
            db, User, user_id, ApprovalStatus.PENDING,
            {"status": target_status}, "User", "User is not pending approval"
        )

        message = "Your account has been approved." if approve else "Your account registration was rejected."
        if reason and not approve:
            message = f"{message} Reason: {reason}"
        NotificationService.notify(
            db, user.id,
            title=f"Account {target_status.value}",
            message=message,
            type="success" if approve else "warning",
            related_type="user",
            related_id=user.id,
        )
        db.commit()
        logger.info(f"User {user_id} {target_status.value} by user {actor.id} ({actor.role.value})")
        return user

    @staticmethod
    def pending_users_query(db: Session, actor: User) -> Query:
        """
        Pending approval queue, derived from the actor's role.

        college_admin: pending users of their own college, never admins.
        super_admin: pending college_admins only.
        """
        query = db.query(User).filter(User.status == ApprovalStatus.PENDING)
        if actor.role == UserRole.SUPER_ADMIN:
            return query.filter(User.role == UserRole.COLLEGE_ADMIN)
        if actor.role == UserRole.COLLEGE_ADMIN:
            if actor.college_id is None:
                return query.filter(User.id == -1)
            return query.filter(
                User.college_id == actor.college_id,
                User.role.notin_([UserRole.COLLEGE_ADMIN, UserRole.SUPER_ADMIN])
            )
        raise AuthorizationError("Only super admins and college admins can view pending users")

    # ------------------------------------------------------------------
    # Data submissions
    # ------------------------------------------------------------------
    @staticmethod
    def save_draft(
        db: Session,
        student: User,
        project_id: Optional[int],
        fields: Dict[str, Any],
    ) -> Tuple[DataSubmission, bool]:
        """
        Upsert the single draft for (student, project).

        Returns:
            (draft, created)
        """
        query = db.query(DataSubmission).filter(
            DataSubmission.student_id == student.id,
            DataSubmission.status == SubmissionStatus.DRAFT,
        )
        if project_id is None:
            query = query.filter(DataSubmission.project_id.is_(None))
        else:
            query = query.filter(DataSubmission.project_id == project_id)

        draft = query.first()
        created = draft is None
        if created:
            draft = DataSubmission(
                student_id=student.id,
                project_id=project_id,
                status=SubmissionStatus.DRAFT,
            )
            db.add(draft)

        for key, value in fields.items():
            if value is not None:
                setattr(draft, key, value)
        draft.updated_at = datetime.utcnow()

        db.commit()
        db.refresh(draft)
        logger.info(f"Draft {'created' if created else 'updated'}: submission {draft.id} "
                    f"(student {student.id}, project {project_id})")
        return draft, created

    @staticmethod
    def submit_draft(db: Session, submission_id: int, actor: User) -> DataSubmission:
        """draft -> pending, owner only."""
        submission = db.get(DataSubmission, submission_id)
        if submission is None:
            raise NotFoundError("Submission", submission_id)
        enforce("submission", "submit", actor, submission, message="Only the owner can submit this draft")

        submission = _compare_and_set(
            db, DataSubmission, submission_id, SubmissionStatus.DRAFT,
            {"status": SubmissionStatus.PENDING, "submitted_at": datetime.utcnow()},
            "Submission", "Only drafts can be submitted"
        )
        db.commit()
        logger.info(f"Submission {submission_id} submitted for review by user {actor.id}")
        return submission

    @staticmethod
    def review_submission(
        db: Session,
        submission_id: int,
        reviewer: User,
        approve: bool,
        rejection_reason: Optional[str] = None,
        quality_score: Optional[float] = None,
    ) -> DataSubmission:
        """
        pending -> approved | rejected.

        A rejection needs a non-blank reason; that is checked before any row
        is read or written.
        """
        reason = (rejection_reason or "").strip()
        if not approve and not reason:
            raise ValidationFailedError("Rejection reason is required")

        submission = db.get(DataSubmission, submission_id)
        if submission is None:
            raise NotFoundError("Submission", submission_id)
        enforce("submission", "review", reviewer, submission,
                message="You are not allowed to review this submission")

        values: Dict[str, Any] = {
            "status": SubmissionStatus.APPROVED if approve else SubmissionStatus.REJECTED,
            "reviewed_by": reviewer.id,
            "reviewed_at": datetime.utcnow(),
            "rejection_reason": None if approve else reason,
        }
        if approve and quality_score is not None:
            values["quality_score"] = quality_score

        submission = _compare_and_set(
            db, DataSubmission, submission_id, SubmissionStatus.PENDING,
            values, "Submission", "Submission has already been reviewed"
        )

        NotificationService.notify(
            db, submission.student_id,
            title=f"Submission {values['status'].value}",
            message=(
                "Your data submission was approved."
                if approve else f"Your data submission was rejected: {reason}"
            ),
            type="success" if approve else "warning",
            related_type="data_submission",
            related_id=submission.id,
        )
        db.commit()
        logger.info(f"Submission {submission_id} {values['status'].value} by user {reviewer.id}")
        return submission
