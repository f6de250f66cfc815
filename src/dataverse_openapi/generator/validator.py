"""Validates generated OpenAPI documents for referential correctness."""

import re

SCHEMA_REF_PREFIX = "#/components/schemas/"
HTTP_METHODS = ("get", "put", "post", "delete", "options", "head", "patch", "trace")
REQUIRED_KEYS = ("openapi", "info", "servers", "paths", "components")
ITEM_PATH = re.compile(r"^/(?P<set>[^/(]+)\(\{[^}]+\}\)$")


def collect_refs(node) -> set[str]:
    """Return every schema name referenced by `$ref` anywhere inside `node`."""
    refs = set()
    stack = [node]
    while stack:
        current = stack.pop()
        if isinstance(current, dict):
            for key, value in current.items():
                if key == "$ref" and isinstance(value, str):
                    if value.startswith(SCHEMA_REF_PREFIX):
                        refs.add(value[len(SCHEMA_REF_PREFIX):])
                    else:
                        refs.add(value)
                else:
                    stack.append(value)
        elif isinstance(current, list):
            stack.extend(current)
    return refs


def referenced_schemas(paths: dict, schemas: dict) -> set[str]:
    """Return schema names reachable from `paths`, following refs between schemas."""
    reachable = set()
    pending = list(collect_refs(paths))
    while pending:
        name = pending.pop()
        if name in reachable or name not in schemas:
            continue
        reachable.add(name)
        pending.extend(collect_refs(schemas[name]))
    return reachable


def validate_structure(doc) -> dict[str, str]:
    """Check the top-level shape of the document.

    Returns dict of {location: error_message}.
    """
    if not isinstance(doc, dict):
        return {"document": "Document is not a mapping"}

    errors = {}
    for key in REQUIRED_KEYS:
        if key not in doc:
            errors[key] = f"Missing required key '{key}'"
    if "paths" in doc and not isinstance(doc["paths"], dict):
        errors["paths"] = "'paths' is not a mapping"
    components = doc.get("components")
    if "components" in doc and not isinstance(components, dict):
        errors["components"] = "'components' is not a mapping"
    elif isinstance(components, dict) and not isinstance(components.get("schemas") or {}, dict):
        errors["components.schemas"] = "'components.schemas' is not a mapping"
    return errors


def validate_refs(doc: dict) -> dict[str, str]:
    """Check that every `$ref` resolves to a component schema.

    Returns dict of {location: error_message}.
    """
    errors = {}
    schemas = (doc.get("components") or {}).get("schemas") or {}
    for path, item in (doc.get("paths") or {}).items():
        for name in sorted(collect_refs(item)):
            if name not in schemas:
                errors[f"paths.{path}"] = f"Unresolved reference '{name}'"
    for schema_name, schema in schemas.items():
        for name in sorted(collect_refs(schema)):
            if name not in schemas:
                errors[f"components.schemas.{schema_name}"] = f"Unresolved reference '{name}'"
    return errors


def validate_orphans(doc: dict) -> dict[str, str]:
    """Check that every component schema is reachable from some path.

    Returns dict of {location: error_message}.
    """
    schemas = (doc.get("components") or {}).get("schemas") or {}
    reachable = referenced_schemas(doc.get("paths") or {}, schemas)
    return {
        f"components.schemas.{name}": "Schema is not referenced by any path"
        for name in schemas
        if name not in reachable
    }


def validate_item_paths(doc: dict) -> dict[str, str]:
    """Check that every item path belongs to an entity whose schema exists.

    Returns dict of {location: error_message}.
    """
    errors = {}
    schemas = (doc.get("components") or {}).get("schemas") or {}
    for path, item in (doc.get("paths") or {}).items():
        if not isinstance(path, str) or not ITEM_PATH.match(path):
            continue
        refs = collect_refs(item)
        if not refs or any(name not in schemas for name in refs):
            errors[f"paths.{path}"] = "Item path has no matching entity schema"
    return errors


def validate_operation_ids(doc: dict) -> dict[str, str]:
    """Check that operation ids are unique across the document.

    Returns dict of {location: error_message}.
    """
    errors = {}
    seen: dict[str, str] = {}
    for path, item in (doc.get("paths") or {}).items():
        for method in HTTP_METHODS:
            operation = item.get(method) if isinstance(item, dict) else None
            if not isinstance(operation, dict) or "operationId" not in operation:
                continue
            op_id = operation["operationId"]
            location = f"{method.upper()} {path}"
            if op_id in seen:
                errors[location] = f"Duplicate operationId '{op_id}' (also on {seen[op_id]})"
            else:
                seen[op_id] = location
    return errors


def validate_document(doc) -> dict[str, str]:
    """Run all validations on a generated document.

    Returns dict of {location: error_message} for all problems found.
    Runs the structural check first, then the reference checks only if the
    structure is sound.
    """
    errors = validate_structure(doc)
    if errors:
        return errors

    errors.update(validate_refs(doc))
    errors.update(validate_orphans(doc))
    errors.update(validate_item_paths(doc))
    errors.update(validate_operation_ids(doc))
    return errors
