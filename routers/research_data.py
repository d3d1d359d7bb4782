"""
Research data APIs.
"""
from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.orm import Session
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List, Dict, Any

from database.models import User, ResearchData
from auth.dependencies import get_db_session, get_current_user, require_approved
from core.utils import model_to_dict
from services.policy import enforce
from services.tenant_scope import get_in_tenant, scope_to_tenant
from routers.projects import check_project_reference


router = APIRouter(prefix="/api/research-data", tags=["research-data"], dependencies=[Depends(require_approved)])


class ResearchDataCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    project_id: Optional[int] = Field(None, alias="projectId")
    data_type: str = Field(..., alias="dataType", min_length=1)
    metadata: Optional[Dict[str, Any]] = None
    image_urls: List[str] = Field(default_factory=list, alias="imageUrls")
    video_urls: List[str] = Field(default_factory=list, alias="videoUrls")
    audio_urls: List[str] = Field(default_factory=list, alias="audioUrls")
    file_urls: List[str] = Field(default_factory=list, alias="fileUrls")


class ResearchDataUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    data_type: Optional[str] = Field(None, alias="dataType", min_length=1)
    metadata: Optional[Dict[str, Any]] = None
    image_urls: Optional[List[str]] = Field(None, alias="imageUrls")
    video_urls: Optional[List[str]] = Field(None, alias="videoUrls")
    audio_urls: Optional[List[str]] = Field(None, alias="audioUrls")
    file_urls: Optional[List[str]] = Field(None, alias="fileUrls")


def _get_record_or_404(db: Session, record_id: int, current_user: User) -> ResearchData:
    record = get_in_tenant(db, ResearchData, record_id, current_user, ResearchData.user_id)
    if record is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Research data not found")
    return record


@router.get("")
async def list_research_data(
    project_id: Optional[int] = Query(None, alias="projectId"),
    data_type: Optional[str] = Query(None, alias="dataType"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    query = scope_to_tenant(db.query(ResearchData), current_user, ResearchData.user_id)
    if project_id is not None:
        query = query.filter(ResearchData.project_id == project_id)
    if data_type:
        query = query.filter(ResearchData.data_type == data_type)
    records = query.order_by(ResearchData.created_at.desc(), ResearchData.id.desc()).all()
    return {"data": [model_to_dict(r) for r in records], "total": len(records)}


@router.get("/{record_id}")
async def get_research_data(
    record_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    return model_to_dict(_get_record_or_404(db, record_id, current_user))


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_research_data(
    body: ResearchDataCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    check_project_reference(db, body.project_id, current_user)
    fields = body.model_dump(exclude={"metadata"})
    record = ResearchData(**fields, extra_metadata=body.metadata, user_id=current_user.id)
    db.add(record)
    db.commit()
    db.refresh(record)
    return {"message": "Research data created", "data": model_to_dict(record)}


@router.patch("/{record_id}")
async def update_research_data(
    record_id: int,
    body: ResearchDataUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    record = _get_record_or_404(db, record_id, current_user)
    enforce("research_data", "update", current_user, record)
    updates = body.model_dump(exclude_unset=True)
    if not updates:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No fields to update")
    if "metadata" in updates:
        record.extra_metadata = updates.pop("metadata")
    if updates.get("data_type", "") is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="dataType cannot be empty")
    for field, value in updates.items():
        setattr(record, field, [] if value is None else value)
    db.commit()
    db.refresh(record)
    return {"message": "Research data updated", "data": model_to_dict(record)}


@router.delete("/{record_id}")
async def delete_research_data(
    record_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    record = _get_record_or_404(db, record_id, current_user)
    enforce("research_data", "delete", current_user, record)
    db.delete(record)
    db.commit()
    return {"message": "Research data deleted"}
