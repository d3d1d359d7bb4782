"""
Sensor reading APIs.
"""
from datetime import datetime, timedelta
from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.orm import Session
from sqlalchemy import func
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, Dict, Any

from database.models import User, SensorReading
from auth.dependencies import get_db_session, get_current_user, require_approved
from core.utils import model_to_dict
from services.policy import enforce
from services.tenant_scope import scope_sensors
from routers.sensors import ReadingCreate, get_sensor_or_404, record_reading


router = APIRouter(prefix="/api/sensor-readings", tags=["sensor-readings"], dependencies=[Depends(require_approved)])

STAT_FIELDS = ("value", "temperature", "humidity", "soil_moisture", "ph_level", "light_intensity")


class ReadingCreateRequest(ReadingCreate):
    sensor_id: int = Field(..., alias="sensorId")


class ReadingUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    value: Optional[float] = None
    unit: Optional[str] = None
    temperature: Optional[float] = None
    humidity: Optional[float] = None
    soil_moisture: Optional[float] = Field(None, alias="soilMoisture")
    ph_level: Optional[float] = Field(None, alias="phLevel")
    light_intensity: Optional[float] = Field(None, alias="lightIntensity")
    metadata: Optional[Dict[str, Any]] = None
    is_valid: Optional[bool] = Field(None, alias="isValid")
    error_message: Optional[str] = Field(None, alias="errorMessage")


def _get_reading_or_404(db: Session, reading_id: int, current_user: User) -> SensorReading:
    query = db.query(SensorReading).filter(SensorReading.id == reading_id)
    reading = scope_sensors(query, current_user, SensorReading.sensor_id).first()
    if reading is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Reading not found")
    return reading


@router.get("")
async def list_readings(
    sensor_id: Optional[int] = Query(None, alias="sensorId"),
    start: Optional[datetime] = Query(None, alias="startDate"),
    end: Optional[datetime] = Query(None, alias="endDate"),
    valid_only: bool = Query(False, alias="validOnly"),
    limit: int = Query(100, ge=1, le=1000),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    query = scope_sensors(db.query(SensorReading), current_user, SensorReading.sensor_id)
    if sensor_id is not None:
        query = query.filter(SensorReading.sensor_id == sensor_id)
    if start:
        query = query.filter(SensorReading.timestamp >= start)
    if end:
        query = query.filter(SensorReading.timestamp <= end)
    if valid_only:
        query = query.filter(SensorReading.is_valid.is_(True))
    readings = query.order_by(SensorReading.timestamp.desc(), SensorReading.id.desc()).limit(limit).all()
    return {"data": [model_to_dict(r) for r in readings], "total": len(readings)}


@router.get("/recent")
async def recent_readings(
    hours: int = Query(24, ge=1, le=24 * 30),
    limit: int = Query(50, ge=1, le=500),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    since = datetime.utcnow() - timedelta(hours=hours)
    readings = scope_sensors(db.query(SensorReading), current_user, SensorReading.sensor_id).filter(
        SensorReading.timestamp >= since
    ).order_by(SensorReading.timestamp.desc(), SensorReading.id.desc()).limit(limit).all()
    return {"data": [model_to_dict(r) for r in readings], "total": len(readings)}


@router.get("/stats/{sensor_id}")
async def reading_stats(
    sensor_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    """Count, min, max and average per measurement over valid readings."""
    get_sensor_or_404(db, sensor_id, current_user)
    base = db.query(SensorReading).filter(
        SensorReading.sensor_id == sensor_id,
        SensorReading.is_valid.is_(True)
    )
    stats = {"sensorId": sensor_id, "count": base.count()}
    for field in STAT_FIELDS:
        column = getattr(SensorReading, field)
        low, high, avg = base.with_entities(func.min(column), func.max(column), func.avg(column)).one()
        stats[field] = {
            "min": low,
            "max": high,
            "avg": round(float(avg), 3) if avg is not None else None,
        }
    latest = base.order_by(SensorReading.timestamp.desc()).first()
    stats["latest"] = model_to_dict(latest)
    return stats


@router.get("/{reading_id}")
async def get_reading(
    reading_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    return model_to_dict(_get_reading_or_404(db, reading_id, current_user))


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_reading(
    body: ReadingCreateRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    sensor = get_sensor_or_404(db, body.sensor_id, current_user)
    enforce("sensor_reading", "write", current_user, sensor)
    reading = record_reading(db, sensor, body)
    db.commit()
    db.refresh(reading)
    return {"message": "Reading recorded", "reading": model_to_dict(reading)}


@router.patch("/{reading_id}")
async def update_reading(
    reading_id: int,
    body: ReadingUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    reading = _get_reading_or_404(db, reading_id, current_user)
    enforce("sensor_reading", "write", current_user, reading.sensor)
    updates = body.model_dump(exclude_unset=True)
    if not updates:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No fields to update")
    if "metadata" in updates:
        reading.extra_metadata = updates.pop("metadata")
    for field, value in updates.items():
        setattr(reading, field, value)
    db.commit()
    db.refresh(reading)
    return {"message": "Reading updated successfully", "reading": model_to_dict(reading)}


@router.delete("/{reading_id}")
async def delete_reading(
    reading_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    reading = _get_reading_or_404(db, reading_id, current_user)
    enforce("sensor_reading", "write", current_user, reading.sensor)
    db.delete(reading)
    db.commit()
    return {"message": "Reading deleted successfully"}
