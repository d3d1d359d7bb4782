"""
ML model registry APIs.
"""
from datetime import datetime
from fastapi import APIRouter, Depends, HTTPException, status, Query, Request
from sqlalchemy.orm import Session
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, Dict, Any

from database.models import User, MLModel
from auth.dependencies import get_db_session, get_current_user, require_approved
from core.utils import model_to_dict
from services.audit_service import AuditService
from services.policy import enforce
from services.tenant_scope import get_in_tenant, scope_to_tenant
from routers.projects import check_project_reference
from core.logger import logger


router = APIRouter(prefix="/api/ml-models", tags=["ml-models"], dependencies=[Depends(require_approved)])

MODEL_STATUSES = ("DRAFT", "TRAINING", "TRAINED", "DEPLOYED", "ARCHIVED", "FAILED")
JSON_FIELDS = ("hyperparameters", "training_config", "deployment_config", "metrics")


class MLModelCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True, protected_namespaces=())

    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    type: Optional[str] = None
    framework: Optional[str] = None
    version: str = "1.0.0"
    project_id: Optional[int] = Field(None, alias="projectId")
    hyperparameters: Dict[str, Any] = Field(default_factory=dict)
    training_config: Dict[str, Any] = Field(default_factory=dict, alias="trainingConfig")
    deployment_config: Dict[str, Any] = Field(default_factory=dict, alias="deploymentConfig")


class MLModelUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True, protected_namespaces=())

    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    type: Optional[str] = None
    framework: Optional[str] = None
    status: Optional[str] = None
    version: Optional[str] = None
    hyperparameters: Optional[Dict[str, Any]] = None
    training_config: Optional[Dict[str, Any]] = Field(None, alias="trainingConfig")
    deployment_config: Optional[Dict[str, Any]] = Field(None, alias="deploymentConfig")
    metrics: Optional[Dict[str, Any]] = None
    accuracy: Optional[float] = Field(None, ge=0, le=1)
    model_path: Optional[str] = Field(None, alias="modelPath")


def _get_model_or_404(db: Session, model_id: int, current_user: User) -> MLModel:
    model = get_in_tenant(db, MLModel, model_id, current_user, MLModel.created_by)
    if model is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Model not found")
    return model


def apply_status(model: MLModel, new_status: str):
    """Set status and stamp trained_at / deployed_at on the matching transitions."""
    new_status = new_status.upper()
    if new_status not in MODEL_STATUSES:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Invalid status: {new_status}")
    if new_status == "TRAINED" and model.status != "TRAINED":
        model.trained_at = datetime.utcnow()
    if new_status == "DEPLOYED" and model.status != "DEPLOYED":
        model.deployed_at = datetime.utcnow()
    model.status = new_status


@router.get("")
async def list_models(
    status_filter: Optional[str] = Query(None, alias="status"),
    project_id: Optional[int] = Query(None, alias="projectId"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    query = scope_to_tenant(db.query(MLModel), current_user, MLModel.created_by)
    if status_filter:
        query = query.filter(MLModel.status == status_filter.upper())
    if project_id is not None:
        query = query.filter(MLModel.project_id == project_id)
    models = query.order_by(MLModel.created_at.desc(), MLModel.id.desc()).all()
    return {"data": [model_to_dict(m) for m in models], "total": len(models)}


@router.get("/{model_id}")
async def get_model(
    model_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    return model_to_dict(_get_model_or_404(db, model_id, current_user))


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_model(
    body: MLModelCreate,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    check_project_reference(db, body.project_id, current_user)
    model = MLModel(**body.model_dump(), status="DRAFT", created_by=current_user.id)
    db.add(model)
    db.commit()
    db.refresh(model)
    AuditService.log_from_request(
        db, request, "ml_model_created", user_id=current_user.id, resource_type="ml_model", resource_id=model.id
    )
    return {"message": "Model created successfully", "model": model_to_dict(model)}


@router.patch("/{model_id}")
async def update_model(
    model_id: int,
    body: MLModelUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    model = _get_model_or_404(db, model_id, current_user)
    enforce("ml_model", "update", current_user, model)

    updates = body.model_dump(exclude_unset=True)
    if not updates:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No fields to update")
    new_status = updates.pop("status", None)
    if new_status:
        apply_status(model, new_status)
    if updates.get("name", "") is None or updates.get("version", "") is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Name and version cannot be empty")
    for field, value in updates.items():
        if field in JSON_FIELDS and value is None:
            value = {}
        setattr(model, field, value)
    db.commit()
    db.refresh(model)
    if new_status:
        logger.info(f"Model {model_id} moved to {model.status} by user {current_user.id}")
    return {"message": "Model updated successfully", "model": model_to_dict(model)}


@router.delete("/{model_id}")
async def delete_model(
    model_id: int,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    model = _get_model_or_404(db, model_id, current_user)
    enforce("ml_model", "delete", current_user, model)
    db.delete(model)
    db.commit()
    AuditService.log_from_request(
        db, request, "ml_model_deleted", user_id=current_user.id, resource_type="ml_model", resource_id=model_id
    )
    return {"message": "Model deleted successfully"}
