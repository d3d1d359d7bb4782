"""
Response helpers shared by the routers.
"""
import enum
from datetime import date, datetime
from typing import Any, Dict, Iterable, Optional

from sqlalchemy import inspect


def to_json_value(value: Any) -> Any:
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


def model_to_dict(obj, exclude: Iterable[str] = ()) -> Optional[Dict[str, Any]]:
    """
    Serialize an ORM row by column name.

    Columns mapped under a different attribute (extra_metadata -> "metadata")
    come out under their database name.
    """
    if obj is None:
        return None
    excluded = set(exclude)
    result = {}
    for attr in inspect(obj).mapper.column_attrs:
        name = attr.columns[0].name
        if attr.key in excluded or name in excluded:
            continue
        result[name] = to_json_value(getattr(obj, attr.key))
    return result


def serialize_user(user) -> Optional[Dict[str, Any]]:
    """User without the password hash."""
    return model_to_dict(user, exclude={"password_hash"})

