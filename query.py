"""
Decoding of list-query parameters and loosely typed body fields.

Query strings carry JSON for where/sort/select, the way the legacy Express
API accepted them. Everything is turned into typed values here, before any
service code runs.
"""
import json
import math
from datetime import datetime, timezone
from typing import Any, List, Optional, Tuple

from dateutil import parser
from pydantic import BaseModel, Field

from database import to_object_id
from errors import ValidationError

SORT_DIRECTIONS = {
    1: 1, -1: -1,
    "1": 1, "-1": -1,
    "asc": 1, "ascending": 1,
    "desc": -1, "descending": -1,
}


class ListQuery(BaseModel):
    where: dict = Field(default_factory=dict)
    sort: Optional[List[Tuple[str, int]]] = None
    projection: Optional[dict] = None
    skip: Optional[int] = None
    limit: Optional[int] = None
    count: bool = False

    @classmethod
    def from_params(
        cls,
        where: Optional[str] = None,
        sort: Optional[str] = None,
        select: Optional[str] = None,
        skip: Optional[int] = None,
        limit: Optional[int] = None,
        count: bool = False,
        default_limit: Optional[int] = None,
    ) -> "ListQuery":
        filter_dict = parse_json_param("where", where)
        if filter_dict is None:
            filter_dict = {}
        if not isinstance(filter_dict, dict):
            raise ValidationError("where must be a JSON object", field="where")
        if skip is not None and skip < 0:
            raise ValidationError("skip must not be negative", field="skip")
        if limit is not None and limit < 0:
            raise ValidationError("limit must not be negative", field="limit")
        return cls(
            where=cast_object_ids(filter_dict),
            sort=parse_sort(sort),
            projection=parse_select(select),
            skip=skip,
            limit=limit if limit is not None else default_limit,
            count=count,
        )


def parse_json_param(name: str, raw: Optional[str]) -> Any:
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except ValueError:
        raise ValidationError("Invalid JSON in query parameters", field=name)


def parse_sort(raw: Optional[str]) -> Optional[List[Tuple[str, int]]]:
    value = parse_json_param("sort", raw)
    if value is None:
        return None
    if not isinstance(value, dict):
        raise ValidationError("sort must be a JSON object", field="sort")
    keys = []
    for field_name, direction in value.items():
        if isinstance(direction, str):
            direction = direction.lower()
        if not isinstance(direction, (int, str)) or isinstance(direction, bool) \
                or direction not in SORT_DIRECTIONS:
            raise ValidationError(f"Invalid sort direction for {field_name}", field="sort")
        keys.append((field_name, SORT_DIRECTIONS[direction]))
    return keys or None


def parse_select(raw: Optional[str]) -> Optional[dict]:
    value = parse_json_param("select", raw)
    if value is None:
        return None
    if isinstance(value, str):
        # Space-separated form: "name -email"
        value = {
            part.lstrip("-"): 0 if part.startswith("-") else 1
            for part in value.split()
        }
    if not isinstance(value, dict):
        raise ValidationError("select must be a JSON object", field="select")

    projection = {}
    for field_name, flag in value.items():
        if flag not in (0, 1) or isinstance(flag, float):
            raise ValidationError(f"Invalid select flag for {field_name}", field="select")
        projection[field_name] = bool(flag)
    modes = {flag for name, flag in projection.items() if name != "_id"}
    if len(modes) > 1:
        raise ValidationError("select cannot mix inclusion and exclusion", field="select")
    return projection or None


def cast_object_ids(filter_dict: dict) -> dict:
    """Turn hex-string `_id` values into ObjectIds so clients can filter by id."""
    out = {}
    for key, value in filter_dict.items():
        if key == "_id":
            out[key] = _cast_id_value(value)
        elif key in ("$and", "$or", "$nor") and isinstance(value, list):
            out[key] = [cast_object_ids(v) if isinstance(v, dict) else v for v in value]
        else:
            out[key] = value
    return out


def _cast_id_value(value):
    if isinstance(value, str):
        return to_object_id(value) or value
    if isinstance(value, list):
        return [_cast_id_value(v) for v in value]
    if isinstance(value, dict):
        return {op: _cast_id_value(v) for op, v in value.items()}
    return value


def parse_deadline(value) -> Optional[datetime]:
    """Epoch milliseconds (number or numeric string) or a date string; None when invalid."""
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return _from_millis(value) if value > 0 else None
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    try:
        millis = float(text)
    except ValueError:
        millis = None
    if millis is not None:
        return _from_millis(millis) if millis > 0 else None
    try:
        parsed = parser.parse(text)
    except (ValueError, OverflowError):
        return None
    return parsed.astimezone(timezone.utc) if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def _from_millis(millis) -> Optional[datetime]:
    if not math.isfinite(millis):
        return None
    try:
        return datetime.fromtimestamp(millis / 1000, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


def coerce_bool(value, default: bool = False) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        text = value.strip().lower()
        if text in ("true", "1"):
            return True
        if text in ("false", "0"):
            return False
    return default
