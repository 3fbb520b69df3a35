"""Shared utilities for the service layer."""

import json
from collections.abc import Mapping, Sequence
from datetime import UTC, datetime
from decimal import Decimal, InvalidOperation
from uuid import uuid4

# JSON column types: rule payload columns store either a dict or a list.
JsonDict = dict[str, object]
JsonList = list[object]
Serializable = Mapping[str, object] | Sequence[object]


def new_id() -> str:
    return str(uuid4())


def utc_now() -> datetime:
    return datetime.now(UTC)


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes (SQLite drops tzinfo); aware values pass through."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def parse_instant(raw: object) -> datetime | None:
    """Parse an ISO string or datetime into an aware datetime. Bad input -> None."""
    if isinstance(raw, datetime):
        return as_utc(raw)
    if not isinstance(raw, str) or not raw.strip():
        return None
    try:
        return as_utc(datetime.fromisoformat(raw.strip().replace("Z", "+00:00")))
    except ValueError:
        return None


def to_decimal(raw: object, default: Decimal | None = None) -> Decimal | None:
    """Coerce numbers and numeric strings to Decimal via their string form."""
    if raw is None or isinstance(raw, bool):
        return default
    if isinstance(raw, Decimal):
        return raw
    try:
        return Decimal(str(raw).strip())
    except (InvalidOperation, ValueError):
        return default


def load_json_list(raw: str | list[object] | None) -> JsonList:
    """Deserialize a JSON TEXT column holding a list. Raises on malformed JSON."""
    if raw is None or raw == "":
        return []
    if isinstance(raw, list):
        return list(raw)
    result: object = json.loads(raw)
    if isinstance(result, list):
        return result
    raise ValueError(f"expected a JSON array, got {type(result).__name__}")


def dump_json(obj: Serializable) -> str:
    return json.dumps(obj, default=str)
