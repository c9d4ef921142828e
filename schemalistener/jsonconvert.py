"""Conversion of OpenAPI v3 component schemas into an OpenAPI v2 definitions document."""

from __future__ import annotations

import json
from typing import Any

_V3_SCHEMAS_PATH = "components/schemas"
_V2_DEFINITIONS_PATH = "definitions"


def parse_json(data: Any) -> Any:
    """Rewrite one schema object in place into its v2 form and return it.

    Empty ``default`` objects are dropped, and an ``allOf`` holding a single
    ``$ref`` is replaced by that reference, pointed at ``definitions``.
    Nested objects are rewritten too; values that are not objects are
    returned untouched.
    """
    if not isinstance(data, dict):
        return data

    default = data.get("default")
    if isinstance(default, dict) and not default:
        del data["default"]

    all_of = data.get("allOf")
    if isinstance(all_of, list) and len(all_of) == 1:
        ref_obj = all_of[0]
        if isinstance(ref_obj, dict) and isinstance(ref_obj.get("$ref"), str):
            data["$ref"] = ref_obj["$ref"].replace(_V3_SCHEMAS_PATH, _V2_DEFINITIONS_PATH)
            del data["allOf"]

    for key, value in list(data.items()):
        data[key] = parse_json(value)
    return data


def _as_object(value: Any, what: str) -> dict | None:
    if value is None or isinstance(value, dict):
        return value
    raise ValueError(f"failed to unmarshal JSON: {what} is not an object")


def convert_json(v3_json: bytes | str) -> bytes:
    """Convert an OpenAPI v3 document into v2 ``definitions`` JSON bytes."""
    try:
        document = json.loads(v3_json)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ValueError(f"failed to unmarshal JSON: {exc}") from exc

    root = _as_object(document, "document") or {}
    components = _as_object(root.get("components"), "components") or {}
    schemas = _as_object(components.get("schemas"), "schemas")

    definitions = parse_json(schemas)
    if definitions is not None and not isinstance(definitions, dict):
        raise ValueError("failed to validate converted JSON")

    encoded = json.dumps(
        {"definitions": definitions},
        separators=(",", ":"),
        sort_keys=True,
        ensure_ascii=False,
    )
    return (encoded + "\n").encode("utf-8")