from datetime import datetime
from typing import Any

from bson import ObjectId
from bson.errors import InvalidId

from devcircle.utils.exceptions import ValidationError


def parse_object_id(value: Any, field: str = "id") -> ObjectId:
    """Turn a path/body id into an ObjectId, raising a 400 on garbage."""
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        raise ValidationError(f"Invalid {field}: {value}", field=field, value=value)


def same_id(a: Any, b: Any) -> bool:
    if a is None or b is None:
        return False
    return str(a) == str(b)


def to_jsonable(value: Any) -> Any:
    """Recursively convert ObjectIds and datetimes in a Mongo document."""
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(v) for v in value]
    return value


def paginate(items: list, page: int, limit: int) -> list:
    start = (page - 1) * limit
    return items[start:start + limit]
