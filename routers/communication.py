"""
Communication APIs: conversations, announcements and discussions.
"""
from datetime import datetime
from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.orm import Session
from sqlalchemy import or_
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List

from database.models import (
    User, UserRole, Conversation, Message, Announcement, Discussion, DiscussionReply,
)
from auth.dependencies import get_db_session, get_current_user, require_approved
from core.utils import model_to_dict
from services.notification_service import NotificationService
from services.policy import enforce
from services.tenant_scope import scope_to_tenant
from core.logger import logger


router = APIRouter(prefix="/api/communication", tags=["communication"], dependencies=[Depends(require_approved)])


class ConversationCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    title: Optional[str] = None
    type: str = "direct"
    participant_ids: List[int] = Field(..., alias="participantIds")
    project_id: Optional[int] = Field(None, alias="projectId")


class MessageCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    content: str = Field(..., min_length=1)
    message_type: str = Field("text", alias="messageType")
    attachments: List[str] = Field(default_factory=list)


class AnnouncementCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    title: str = Field(..., min_length=1)
    content: str = Field(..., min_length=1)
    type: str = "general"
    priority: str = "normal"
    target_roles: List[UserRole] = Field(default_factory=list, alias="targetRoles")
    target_colleges: List[int] = Field(default_factory=list, alias="targetColleges")
    expires_at: Optional[datetime] = Field(None, alias="expiresAt")


class DiscussionCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    title: str = Field(..., min_length=1)
    content: str = Field(..., min_length=1)
    category: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    project_id: Optional[int] = Field(None, alias="projectId")


class ReplyCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    content: str = Field(..., min_length=1)
    parent_reply_id: Optional[int] = Field(None, alias="parentReplyId")
    attachments: List[str] = Field(default_factory=list)


def _get_conversation_for(db: Session, conversation_id: int, current_user: User) -> Conversation:
    conversation = db.get(Conversation, conversation_id)
    if conversation is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Conversation not found")
    if current_user.id not in (conversation.participant_ids or []):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You are not a participant in this conversation")
    return conversation


def _get_discussion_or_404(db: Session, current_user: User, discussion_id: int) -> Discussion:
    discussion = scope_to_tenant(
        db.query(Discussion).filter(Discussion.id == discussion_id), current_user, Discussion.created_by
    ).first()
    if discussion is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Discussion not found")
    return discussion


# ----------------------------------------------------------------------------
# Conversations
# ----------------------------------------------------------------------------

@router.get("/conversations")
async def list_conversations(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    """Conversations the caller takes part in, most recent activity first."""
    # participant_ids is a JSON list; membership is checked in Python for portability
    conversations = db.query(Conversation).order_by(Conversation.updated_at.desc(), Conversation.id.desc()).all()
    mine = [c for c in conversations if current_user.id in (c.participant_ids or [])]
    mine.sort(key=lambda c: c.last_message_at or c.created_at, reverse=True)
    return {"data": [model_to_dict(c) for c in mine], "total": len(mine)}


@router.post("/conversations", status_code=status.HTTP_201_CREATED)
async def create_conversation(
    body: ConversationCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    participants = sorted(set(body.participant_ids) | {current_user.id})
    if len(participants) < 2:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="A conversation needs at least 2 participants")
    found = db.query(User.id).filter(User.id.in_(participants)).count()
    if found != len(participants):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="One or more participants do not exist")

    conversation = Conversation(
        title=body.title,
        type=body.type,
        participant_ids=participants,
        project_id=body.project_id,
        created_by=current_user.id,
    )
    db.add(conversation)
    db.commit()
    db.refresh(conversation)
    return {"message": "Conversation created", "conversation": model_to_dict(conversation)}


@router.get("/conversations/{conversation_id}/messages")
async def list_messages(
    conversation_id: int,
    limit: int = Query(100, ge=1, le=500),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    _get_conversation_for(db, conversation_id, current_user)
    messages = db.query(Message).filter(
        Message.conversation_id == conversation_id
    ).order_by(Message.created_at.asc(), Message.id.asc()).limit(limit).all()
    return {"data": [model_to_dict(m) for m in messages], "total": len(messages)}


@router.post("/conversations/{conversation_id}/messages", status_code=status.HTTP_201_CREATED)
async def send_message(
    conversation_id: int,
    body: MessageCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    conversation = _get_conversation_for(db, conversation_id, current_user)
    message = Message(
        conversation_id=conversation.id,
        sender_id=current_user.id,
        content=body.content,
        message_type=body.message_type,
        attachments=body.attachments,
    )
    db.add(message)
    conversation.last_message_at = datetime.utcnow()
    for participant_id in conversation.participant_ids:
        if participant_id != current_user.id:
            NotificationService.notify(
                db, participant_id, "New message", f"{current_user.name} sent you a message",
                type="message", related_type="conversation", related_id=conversation.id
            )
    db.commit()
    db.refresh(message)
    return {"message": "Message sent", "data": model_to_dict(message)}


# ----------------------------------------------------------------------------
# Announcements
# ----------------------------------------------------------------------------

def _targets(announcement: Announcement, user: User) -> bool:
    roles = announcement.target_roles or []
    colleges = announcement.target_colleges or []
    if roles and user.role.value not in roles:
        return False
    if colleges and user.college_id not in colleges:
        return False
    return True


@router.get("/announcements")
async def list_announcements(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    """Active, unexpired announcements addressed to the caller's role and college."""
    now = datetime.utcnow()
    announcements = db.query(Announcement).filter(
        Announcement.is_active.is_(True),
        or_(Announcement.expires_at.is_(None), Announcement.expires_at > now)
    ).order_by(Announcement.created_at.desc(), Announcement.id.desc()).all()
    visible = [a for a in announcements if _targets(a, current_user)]
    return {"data": [model_to_dict(a) for a in visible], "total": len(visible)}


@router.post("/announcements", status_code=status.HTTP_201_CREATED)
async def create_announcement(
    body: AnnouncementCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    enforce("announcement", "create", current_user, message="Only admins and professors can post announcements")
    target_colleges = body.target_colleges
    if current_user.role != UserRole.SUPER_ADMIN:
        # Below super_admin an announcement never leaves the author's college
        target_colleges = [current_user.college_id]

    announcement = Announcement(
        title=body.title,
        content=body.content,
        type=body.type,
        priority=body.priority,
        target_roles=[r.value for r in body.target_roles],
        target_colleges=target_colleges,
        expires_at=body.expires_at,
        created_by=current_user.id,
    )
    db.add(announcement)
    db.commit()
    db.refresh(announcement)
    logger.info(f"Announcement {announcement.id} posted by user {current_user.id}")
    return {"message": "Announcement created", "announcement": model_to_dict(announcement)}


# ----------------------------------------------------------------------------
# Discussions
# ----------------------------------------------------------------------------

@router.get("/discussions")
async def list_discussions(
    category: Optional[str] = Query(None),
    project_id: Optional[int] = Query(None, alias="projectId"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    query = scope_to_tenant(db.query(Discussion), current_user, Discussion.created_by)
    if category:
        query = query.filter(Discussion.category == category)
    if project_id is not None:
        query = query.filter(Discussion.project_id == project_id)
    discussions = query.order_by(
        Discussion.is_pinned.desc(), Discussion.created_at.desc(), Discussion.id.desc()
    ).all()
    data = []
    for discussion in discussions:
        item = model_to_dict(discussion)
        item["replyCount"] = len(discussion.replies)
        data.append(item)
    return {"data": data, "total": len(data)}


@router.post("/discussions", status_code=status.HTTP_201_CREATED)
async def create_discussion(
    body: DiscussionCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    discussion = Discussion(**body.model_dump(), created_by=current_user.id)
    db.add(discussion)
    db.commit()
    db.refresh(discussion)
    return {"message": "Discussion created", "discussion": model_to_dict(discussion)}


@router.get("/discussions/{discussion_id}")
async def get_discussion(
    discussion_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    discussion = _get_discussion_or_404(db, current_user, discussion_id)
    data = model_to_dict(discussion)
    replies = db.query(DiscussionReply).filter(
        DiscussionReply.discussion_id == discussion_id
    ).order_by(DiscussionReply.created_at.asc(), DiscussionReply.id.asc()).all()
    data["replies"] = [model_to_dict(r) for r in replies]
    return data


@router.post("/discussions/{discussion_id}/replies", status_code=status.HTTP_201_CREATED)
async def create_reply(
    discussion_id: int,
    body: ReplyCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    discussion = _get_discussion_or_404(db, current_user, discussion_id)
    if body.parent_reply_id is not None:
        parent = db.get(DiscussionReply, body.parent_reply_id)
        if parent is None or parent.discussion_id != discussion.id:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Parent reply not found in this discussion")

    reply = DiscussionReply(
        discussion_id=discussion.id,
        parent_reply_id=body.parent_reply_id,
        content=body.content,
        attachments=body.attachments,
        created_by=current_user.id,
    )
    db.add(reply)
    if discussion.created_by is not None and discussion.created_by != current_user.id:
        NotificationService.notify(
            db, discussion.created_by, "New reply", f"{current_user.name} replied to \"{discussion.title}\"",
            type="discussion", related_type="discussion", related_id=discussion.id
        )
    db.commit()
    db.refresh(reply)
    return {"message": "Reply posted", "reply": model_to_dict(reply)}
