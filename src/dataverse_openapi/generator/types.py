"""Maps EDM and Dataverse attribute type names to OpenAPI primitive types."""

import logging

logger = logging.getLogger(__name__)

_STRING = ("string", None)
_INT32 = ("integer", "int32")
_INT64 = ("integer", "int64")
_BOOLEAN = ("boolean", None)
_DOUBLE = ("number", "double")
_DATE_TIME = ("string", "date-time")
_DATE = ("string", "date")
_TIME = ("string", "time")
_UUID = ("string", "uuid")
_BINARY = ("string", "binary")

# Keys are lower-cased; lookups are case-insensitive.
TYPE_MAP: dict[str, tuple[str, str | None]] = {
    "edm.string": _STRING,
    "string": _STRING,
    "memo": _STRING,
    "virtual": _STRING,
    "multiselectpicklist": _STRING,
    "entityname": _STRING,
    "edm.int16": _INT32,
    "edm.int32": _INT32,
    "edm.byte": _INT32,
    "edm.sbyte": _INT32,
    "integer": _INT32,
    "picklist": _INT32,
    "state": _INT32,
    "status": _INT32,
    "edm.int64": _INT64,
    "bigint": _INT64,
    "edm.boolean": _BOOLEAN,
    "boolean": _BOOLEAN,
    "edm.double": _DOUBLE,
    "edm.single": _DOUBLE,
    "double": _DOUBLE,
    # Money and decimal precision is not carried into the description.
    "edm.decimal": _DOUBLE,
    "decimal": _DOUBLE,
    "money": _DOUBLE,
    "edm.datetimeoffset": _DATE_TIME,
    "edm.datetime": _DATE_TIME,
    "datetime": _DATE_TIME,
    "edm.date": _DATE,
    "date": _DATE,
    "edm.time": _TIME,
    "edm.timeofday": _TIME,
    "edm.duration": _TIME,
    "time": _TIME,
    "edm.guid": _UUID,
    "uniqueidentifier": _UUID,
    "lookup": _UUID,
    "owner": _UUID,
    "customer": _UUID,
    "edm.binary": _BINARY,
    "edm.stream": _BINARY,
    "image": _BINARY,
    "file": _BINARY,
}

FORMAT_HINTS = {
    "email": "email",
    "url": "uri",
}


def map_type(source_type: str | None) -> dict:
    """Return an OpenAPI `{type, format}` schema for a source type name.

    Unknown or empty names resolve to a plain string schema.
    """
    key = (source_type or "").strip().lower()
    mapped = TYPE_MAP.get(key)
    if mapped is None:
        logger.debug("Unmapped type %r, using string", source_type)
        mapped = _STRING

    type_name, fmt = mapped
    result = {"type": type_name}
    if fmt:
        result["format"] = fmt
    return result


def apply_format_hint(schema: dict, hint: str | None) -> dict:
    """Refine a string schema with a schema-file column format (Email, Url)."""
    if not hint or schema.get("type") != "string":
        return schema
    fmt = FORMAT_HINTS.get(hint.strip().lower())
    if fmt:
        schema["format"] = fmt
    return schema
