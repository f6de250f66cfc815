"""Path and schema synthesis for a single normalized entity."""

import copy

from dataverse_openapi.parser.base import NormalizedEntity, PropertyDef
from dataverse_openapi.generator.types import apply_format_hint, map_type

JSON = "application/json"

QUERY_PARAMETERS = (
    ("$top", "Show only the first n items", {"type": "integer", "minimum": 0}),
    ("$skip", "Skip the first n items", {"type": "integer", "minimum": 0}),
    ("$filter", "Filter items by property values", {"type": "string"}),
    ("$select", "Select properties to be returned", {"type": "string"}),
    ("$orderby", "Order items by property values", {"type": "string"}),
    ("$expand", "Expand related entities", {"type": "string"}),
)

AUDIT_FIELDS = {
    "createdon": {"type": "string", "format": "date-time", "readOnly": True},
    "modifiedon": {"type": "string", "format": "date-time", "readOnly": True},
    "statecode": {"type": "integer", "enum": [0, 1]},
    "statuscode": {"type": "integer"},
}


def schema_ref(name: str) -> dict:
    return {"$ref": f"#/components/schemas/{name}"}


def collection_path(entity: NormalizedEntity) -> str:
    return f"/{entity.set_name}"


def item_path(entity: NormalizedEntity) -> str:
    return f"/{entity.set_name}({{{entity.id_param}}})"


def property_schema(prop: PropertyDef) -> dict:
    """Build the OpenAPI schema for one property."""
    schema = apply_format_hint(map_type(prop.source_type), prop.format_hint)
    if prop.max_length is not None and schema["type"] == "string":
        schema["maxLength"] = prop.max_length
    if prop.description:
        schema["description"] = prop.description
    if prop.read_only:
        schema["readOnly"] = True
    return schema


def build_schema(entity: NormalizedEntity, audit_fields: bool = False) -> dict:
    """Build the component schema: key first, then declared properties.

    With `audit_fields`, the standard Dataverse audit and state columns are
    added unless the entity already declares them.
    """
    properties = {}
    if entity.primary_key is not None:
        properties[entity.primary_key.name] = property_schema(entity.primary_key)

    required = []
    for prop in entity.properties:
        if prop.name in properties:
            continue
        properties[prop.name] = property_schema(prop)
        if not prop.nullable and not prop.read_only:
            required.append(prop.name)

    if audit_fields:
        for name, field in AUDIT_FIELDS.items():
            properties.setdefault(name, copy.deepcopy(field))

    schema = {"type": "object"}
    if entity.description:
        schema["description"] = entity.description
    schema["properties"] = properties
    if required:
        schema["required"] = required
    return schema


def synthesize_paths(entity: NormalizedEntity) -> dict[str, dict]:
    """Return the collection and item path items for an entity, in that order."""
    return {
        collection_path(entity): _collection_item(entity),
        item_path(entity): _single_item(entity),
    }


def _query_parameters() -> list[dict]:
    return [
        {"name": name, "in": "query", "required": False, "description": description, "schema": dict(schema)}
        for name, description, schema in QUERY_PARAMETERS
    ]


def _id_parameter(entity: NormalizedEntity) -> dict:
    if entity.primary_key is not None:
        schema = map_type(entity.primary_key.source_type)
    else:
        schema = {"type": "string"}
    return {
        "name": entity.id_param,
        "in": "path",
        "required": True,
        "description": f"Primary key of the {entity.name}",
        "schema": schema,
    }


def _json_body(entity: NormalizedEntity) -> dict:
    return {"required": True, "content": {JSON: {"schema": schema_ref(entity.name)}}}


def _collection_item(entity: NormalizedEntity) -> dict:
    name = entity.name
    return {
        "get": {
            "tags": [entity.tag],
            "summary": f"Get list of {entity.set_name}",
            "operationId": f"list{name}",
            "parameters": _query_parameters(),
            "responses": {
                "200": {
                    "description": f"A list of {entity.set_name}",
                    "content": {
                        JSON: {
                            "schema": {
                                "type": "object",
                                "properties": {
                                    "@odata.context": {"type": "string"},
                                    "@odata.count": {"type": "integer"},
                                    "value": {"type": "array", "items": schema_ref(name)},
                                },
                            }
                        }
                    },
                }
            },
        },
        "post": {
            "tags": [entity.tag],
            "summary": f"Create a new {name}",
            "operationId": f"create{name}",
            "requestBody": _json_body(entity),
            "responses": {"201": {"description": f"Created {name}"}},
        },
    }


def _single_item(entity: NormalizedEntity) -> dict:
    name = entity.name
    return {
        "get": {
            "tags": [entity.tag],
            "summary": f"Get a {name} by id",
            "operationId": f"get{name}",
            "parameters": [_id_parameter(entity)],
            "responses": {
                "200": {"description": f"A {name}", "content": {JSON: {"schema": schema_ref(name)}}},
                "404": {"description": f"{name} not found"},
            },
        },
        "patch": {
            "tags": [entity.tag],
            "summary": f"Update a {name}",
            "operationId": f"update{name}",
            "parameters": [_id_parameter(entity)],
            "requestBody": _json_body(entity),
            "responses": {"204": {"description": f"{name} updated"}},
        },
        "delete": {
            "tags": [entity.tag],
            "summary": f"Delete a {name}",
            "operationId": f"delete{name}",
            "parameters": [_id_parameter(entity)],
            "responses": {"204": {"description": f"{name} deleted"}},
        },
    }
