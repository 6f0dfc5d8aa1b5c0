"""
Textual serialization of NarrativeState.

Timestamps are written as tagged objects ({"__type": "Date", "value": iso})
so they are reconstructed as datetimes rather than left as plain strings.
Older payloads are migrated before validation.
"""

import json
import logging
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import ValidationError

from .schema import NarrativeState, PHASE_ORDER

logger = logging.getLogger(__name__)

CURRENT_SCHEMA_VERSION = "1.1.0"
DATE_TAG = "Date"


class StateDeserializationError(ValueError):
    """
    Stored state exists but cannot be read.

    Distinct from "no state yet" (which deserializes to None). The raw
    payload is kept so callers can attempt a repair instead of losing data.
    """

    def __init__(self, message: str, payload: str):
        super().__init__(message)
        self.payload = payload


# -----------------------------------------------------------------------------
# Encoding
# -----------------------------------------------------------------------------

def _encode(value: Any) -> Any:
    if isinstance(value, datetime):
        return {"__type": DATE_TAG, "value": value.isoformat()}
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: _encode(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_encode(v) for v in value]
    return value


def serialize_state(state: NarrativeState, indent: int | None = None) -> str:
    return json.dumps(_encode(state.model_dump()), indent=indent)


# -----------------------------------------------------------------------------
# Decoding
# -----------------------------------------------------------------------------

def _decode_hook(obj: dict) -> Any:
    if obj.get("__type") == DATE_TAG and "value" in obj:
        return datetime.fromisoformat(obj["value"])
    return obj


def _version_tuple(version: str) -> tuple[int, ...]:
    """Convert version string to comparable tuple."""
    try:
        return tuple(int(x) for x in version.split("."))
    except ValueError:
        return (0, 0, 0)


def _phase_from_title(title: str) -> str:
    """Beat titles are '<Template name> - <phase>'."""
    _, sep, suffix = title.rpartition(" - ")
    suffix = suffix.strip().lower()
    if sep and suffix in {p.value for p in PHASE_ORDER}:
        return suffix
    return PHASE_ORDER[0].value


def migrate_state_data(data: dict) -> dict:
    """
    Bring a decoded payload up to the current schema version.

    Version 1.0.0 payloads carry an integer `version` field instead of
    `schema_version`, beats without an explicit phase and no story seeds.
    """
    data = dict(data)

    if "schema_version" not in data:
        data["schema_version"] = "1.0.0"
        data.pop("version", None)

    version = _version_tuple(data["schema_version"])
    if version >= _version_tuple(CURRENT_SCHEMA_VERSION):
        return data

    logger.warning(
        f"Migrating narrative state from {data['schema_version']} to {CURRENT_SCHEMA_VERSION}"
    )

    # 1.0.0 -> 1.1.0: explicit beat phases, story seeds
    if version < (1, 1, 0):
        for key in ("active_arcs", "completed_arcs", "arc_queue"):
            arcs = []
            for arc in data.get(key, []):
                arc = dict(arc)
                beats = []
                for beat in arc.get("beats", []):
                    beat = dict(beat)
                    beat.setdefault("phase", _phase_from_title(beat.get("title", "")))
                    beats.append(beat)
                arc["beats"] = beats
                arcs.append(arc)
            data[key] = arcs
        data.setdefault("story_seeds", [])

    data["schema_version"] = CURRENT_SCHEMA_VERSION
    return data


def deserialize_state(payload: str | None) -> NarrativeState | None:
    """
    Inverse of serialize_state.

    Returns None for empty input (no state saved yet). Raises
    StateDeserializationError for corrupt or schema-mismatched payloads.
    """
    if payload is None or not payload.strip():
        return None

    try:
        data = json.loads(payload, object_hook=_decode_hook)
    except json.JSONDecodeError as e:
        raise StateDeserializationError(f"Malformed state JSON: {e}", payload) from e

    if not isinstance(data, dict):
        raise StateDeserializationError("State payload is not an object", payload)

    try:
        return NarrativeState.model_validate(migrate_state_data(data))
    except ValidationError as e:
        raise StateDeserializationError(f"State does not match schema: {e}", payload) from e
