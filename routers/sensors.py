"""
Sensor registry APIs.
"""
from datetime import datetime
from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.orm import Session
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, Dict, Any

from database.models import User, Sensor, SensorReading
from auth.dependencies import get_db_session, get_current_user, require_approved
from core.utils import model_to_dict
from services.policy import enforce
from services.tenant_scope import scope_sensors
from routers.projects import check_project_reference
from core.logger import logger


router = APIRouter(prefix="/api/sensors", tags=["sensors"], dependencies=[Depends(require_approved)])


class SensorCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(..., min_length=1)
    type: str = Field(..., min_length=1)
    project_id: Optional[int] = Field(None, alias="projectId")
    location: Optional[Dict[str, Any]] = None
    configuration: Dict[str, Any] = Field(default_factory=dict)
    status: str = "active"


class ReadingCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    timestamp: Optional[datetime] = None
    value: Optional[float] = None
    unit: Optional[str] = None
    temperature: Optional[float] = None
    humidity: Optional[float] = None
    soil_moisture: Optional[float] = Field(None, alias="soilMoisture")
    ph_level: Optional[float] = Field(None, alias="phLevel")
    light_intensity: Optional[float] = Field(None, alias="lightIntensity")
    metadata: Optional[Dict[str, Any]] = None
    is_valid: bool = Field(True, alias="isValid")
    error_message: Optional[str] = Field(None, alias="errorMessage")


def get_sensor_or_404(db: Session, sensor_id: int, current_user: User) -> Sensor:
    sensor = scope_sensors(db.query(Sensor).filter(Sensor.id == sensor_id), current_user).first()
    if sensor is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Sensor not found")
    return sensor


def record_reading(db: Session, sensor: Sensor, body: ReadingCreate) -> SensorReading:
    """Store a reading and move the sensor's last_reading forward. Caller commits."""
    fields = body.model_dump(exclude={"metadata", "timestamp", "sensor_id"})
    reading = SensorReading(
        sensor_id=sensor.id,
        timestamp=body.timestamp or datetime.utcnow(),
        extra_metadata=body.metadata,
        **fields,
    )
    db.add(reading)
    if sensor.last_reading is None or reading.timestamp > sensor.last_reading:
        sensor.last_reading = reading.timestamp
    return reading


@router.get("")
async def list_sensors(
    project_id: Optional[int] = Query(None, alias="projectId"),
    type: Optional[str] = Query(None),
    status_filter: Optional[str] = Query(None, alias="status"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    query = scope_sensors(db.query(Sensor), current_user)
    if project_id is not None:
        query = query.filter(Sensor.project_id == project_id)
    if type:
        query = query.filter(Sensor.type == type)
    if status_filter:
        query = query.filter(Sensor.status == status_filter)
    sensors = query.order_by(Sensor.created_at.desc(), Sensor.id.desc()).all()
    return {"data": [model_to_dict(s) for s in sensors], "total": len(sensors)}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_sensor(
    body: SensorCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    check_project_reference(db, body.project_id, current_user)
    sensor = Sensor(**body.model_dump())
    db.add(sensor)
    db.commit()
    db.refresh(sensor)
    logger.info(f"Sensor {sensor.id} ({sensor.type}) registered by user {current_user.id}")
    return {"message": "Sensor created successfully", "sensor": model_to_dict(sensor)}


@router.get("/{sensor_id}")
async def get_sensor(
    sensor_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    sensor = get_sensor_or_404(db, sensor_id, current_user)
    data = model_to_dict(sensor)
    data["readingCount"] = db.query(SensorReading).filter(SensorReading.sensor_id == sensor_id).count()
    return data


@router.get("/{sensor_id}/readings")
async def list_sensor_readings(
    sensor_id: int,
    limit: int = Query(100, ge=1, le=1000),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    get_sensor_or_404(db, sensor_id, current_user)
    readings = db.query(SensorReading).filter(
        SensorReading.sensor_id == sensor_id
    ).order_by(SensorReading.timestamp.desc(), SensorReading.id.desc()).limit(limit).all()
    return {"data": [model_to_dict(r) for r in readings], "total": len(readings)}


@router.post("/{sensor_id}/readings", status_code=status.HTTP_201_CREATED)
async def create_sensor_reading(
    sensor_id: int,
    body: ReadingCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    sensor = get_sensor_or_404(db, sensor_id, current_user)
    enforce("sensor_reading", "write", current_user, sensor)
    reading = record_reading(db, sensor, body)
    db.commit()
    db.refresh(reading)
    return {"message": "Reading recorded", "reading": model_to_dict(reading)}
