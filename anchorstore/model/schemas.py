# anchorstore/model/schemas.py
"""JSON Schemas (draft 2020-12) for every closed document shape.

Every object level that the builders validate lists its keys exhaustively
(``additionalProperties: false``). ``metadata`` and event ``data`` are opaque.
"""

from functools import lru_cache
from typing import Any, Dict, List

from jsonschema import Draft202012Validator, validators

from anchorstore.core.errors import ValidationError

HEX = {"type": "string", "pattern": "^0x[0-9a-f]+$"}
ADDRESS = {"type": "string", "pattern": "^0x[0-9a-f]{64}$"}
NON_NEGATIVE_INT = {"type": "integer", "minimum": 0}
SIGNATURE = {"type": "string", "pattern": "^[A-Za-z0-9_-]+$"}
METADATA = {"type": "object"}


def _closed(properties: Dict[str, Any], required: List[str]) -> Dict[str, Any]:
    return {
        "type": "object",
        "properties": properties,
        "required": required,
        "additionalProperties": False,
    }


ASSET_SCHEMA = _closed(
    {
        "assetId": HEX,
        "content": _closed(
            {
                "idData": _closed(
                    {
                        "createdBy": ADDRESS,
                        "timestamp": NON_NEGATIVE_INT,
                        "sequenceNumber": NON_NEGATIVE_INT,
                    },
                    ["createdBy", "timestamp"],
                ),
                "signature": SIGNATURE,
            },
            ["idData", "signature"],
        ),
        "metadata": METADATA,
    },
    ["assetId", "content"],
)

EVENT_SCHEMA = _closed(
    {
        "eventId": HEX,
        "content": _closed(
            {
                "idData": _closed(
                    {
                        "createdBy": ADDRESS,
                        "timestamp": NON_NEGATIVE_INT,
                        "assetId": HEX,
                        "accessLevel": NON_NEGATIVE_INT,
                        "dataHash": HEX,
                    },
                    ["createdBy", "timestamp", "assetId", "accessLevel"],
                ),
                "signature": SIGNATURE,
            },
            ["idData", "signature"],
        ),
        "data": {},
        "metadata": METADATA,
    },
    ["eventId", "content"],
)

BUNDLE_SCHEMA = _closed(
    {
        "bundleId": HEX,
        "content": _closed(
            {
                "idData": _closed(
                    {
                        "createdBy": ADDRESS,
                        "timestamp": NON_NEGATIVE_INT,
                        "entriesHash": HEX,
                    },
                    ["createdBy", "timestamp", "entriesHash"],
                ),
                "signature": SIGNATURE,
                "entries": {"type": "array", "items": {"type": "object"}},
            },
            ["idData", "signature", "entries"],
        ),
        "metadata": {},
    },
    ["bundleId", "content"],
)

ADD_ACCOUNT_SCHEMA = _closed(
    {
        "address": ADDRESS,
        "permissions": {"type": "array", "items": {"type": "string"}},
        "accessLevel": NON_NEGATIVE_INT,
    },
    ["address", "permissions", "accessLevel"],
)

MODIFY_ACCOUNT_SCHEMA = _closed(
    {
        "permissions": {"type": "array", "items": {"type": "string"}},
        "accessLevel": NON_NEGATIVE_INT,
    },
    [],
)

FIND_EVENTS_SCHEMA = _closed(
    {
        "assetId": HEX,
        "createdBy": ADDRESS,
        "fromTimestamp": NON_NEGATIVE_INT,
        "toTimestamp": NON_NEGATIVE_INT,
        "page": NON_NEGATIVE_INT,
        "perPage": {"type": "integer", "minimum": 1, "maximum": 100},
    },
    [],
)


def _is_strict_integer(checker, instance) -> bool:
    # 2.0 is an "integer" to plain JSON Schema; counters and levels must be real ints
    return isinstance(instance, int) and not isinstance(instance, bool)


StrictValidator = validators.extend(
    Draft202012Validator,
    type_checker=Draft202012Validator.TYPE_CHECKER.redefine("integer", _is_strict_integer),
)


@lru_cache(maxsize=None)
def _validator(name: str) -> Draft202012Validator:
    schema = globals()[name]
    Draft202012Validator.check_schema(schema)
    return StrictValidator(schema)


def schema_errors(obj: Any, schema_name: str) -> List[str]:
    """All violations of the named schema, as `path: message` strings (empty if valid)."""
    validator = _validator(schema_name)
    return [
        f"{error.json_path}: {error.message}"
        for error in sorted(validator.iter_errors(obj), key=lambda e: [str(p) for p in e.path])
    ]


def ensure_matches(obj: Any, schema_name: str, what: str) -> None:
    errors = schema_errors(obj, schema_name)
    if errors:
        raise ValidationError(f"Invalid {what}: {errors[0]}", errors)
