"""Assembles a complete OpenAPI document from a schema source.

`assemble` is the single public entry point of the conversion engine. It
never raises: any failure is logged and replaced by the fallback document.
"""

import logging

from dataverse_openapi.parser.base import (
    DocumentValidationError,
    FilterCriterion,
    JsonSchemaFile,
    PathPatternFilter,
    PrefixFilter,
    PublisherFilter,
    SchemaSource,
)
from dataverse_openapi.parser.normalize import normalize_source
from dataverse_openapi.generator.fallback import BEARER_SCHEME, DEFAULT_TITLE, OPENAPI_VERSION, fallback
from dataverse_openapi.generator.filters import describe, include, match_path
from dataverse_openapi.generator.paths import build_schema, synthesize_paths
from dataverse_openapi.generator.validator import referenced_schemas, validate_document

logger = logging.getLogger(__name__)


def assemble(
    source: SchemaSource,
    criterion: FilterCriterion | None = None,
    base_url: str = "",
    title: str | None = None,
) -> dict:
    """Convert a schema source into an OpenAPI 3.0 document.

    Args:
        source: EDMX metadata text or a loaded schema file.
        criterion: Optional entity-level or path-level filter. For schema
            files a prefix criterion also namespaces the generated names.
        base_url: Used verbatim as the document's server URL.
        title: Document title; defaults to "Dataverse OData API".

    Returns:
        The generated document, or the fallback document if anything failed.
    """
    kind = getattr(source, "kind", type(source).__name__)
    logger.info("Starting %s to OpenAPI conversion", kind)
    try:
        doc = _build(source, criterion, base_url, title or DEFAULT_TITLE)
        errors = validate_document(doc)
        if errors:
            raise DocumentValidationError(errors)
    except Exception as e:
        logger.exception("Error in %s to OpenAPI conversion", kind)
        return fallback(base_url, e, title=title)

    logger.info(
        "Successfully generated OpenAPI document with %d paths and %d schemas",
        len(doc["paths"]),
        len(doc["components"]["schemas"]),
    )
    return doc


def _build(source: SchemaSource, criterion: FilterCriterion | None, base_url: str, title: str) -> dict:
    curated = isinstance(source, JsonSchemaFile)
    naming_prefix = criterion.prefix if curated and isinstance(criterion, PrefixFilter) else ""

    entities = normalize_source(source, prefix=naming_prefix)
    selected = [e for e in entities if include(e.logical_name, criterion)]
    logger.info("%d of %d entities matched the filter", len(selected), len(entities))

    doc = _empty_document(base_url, title)
    tags = doc["tags"]
    for entity in selected:
        doc["components"]["schemas"][entity.name] = build_schema(entity, audit_fields=curated)
        doc["paths"].update(synthesize_paths(entity))
        if all(tag["name"] != entity.tag for tag in tags):
            tag = {"name": entity.tag}
            if entity.description:
                tag["description"] = entity.description
            tags.append(tag)

    total_paths = len(doc["paths"])
    if isinstance(criterion, PathPatternFilter):
        if curated:
            logger.info("Schema file sources are curated, skipping path pattern %r", criterion.pattern)
        else:
            _apply_path_pattern(doc, criterion)

    doc["info"]["description"] = _description(source, criterion, len(entities), len(selected), total_paths, doc)
    doc["info"]["x-generation"] = {
        "source": source.kind,
        "filter": describe(criterion),
        "entities": {"total": len(entities), "matched": len(selected)},
        "paths": {"total": total_paths, "matched": len(doc["paths"])},
    }
    return doc


def _empty_document(base_url: str, title: str) -> dict:
    return {
        "openapi": OPENAPI_VERSION,
        "info": {"title": title, "version": "1.0.0"},
        "servers": [{"url": base_url}],
        "tags": [],
        "paths": {},
        "components": {
            "schemas": {},
            "securitySchemes": {name: dict(scheme) for name, scheme in BEARER_SCHEME.items()},
        },
        "security": [{"bearerAuth": []}],
    }


def _apply_path_pattern(doc: dict, criterion: PathPatternFilter) -> None:
    """Keep only matching paths, then drop schemas and tags nothing uses."""
    paths = {path: item for path, item in doc["paths"].items() if match_path(path, criterion)}
    logger.info("Path pattern %r matched %d of %d paths", criterion.pattern, len(paths), len(doc["paths"]))
    doc["paths"] = paths

    schemas = doc["components"]["schemas"]
    keep = referenced_schemas(paths, schemas)
    doc["components"]["schemas"] = {name: schema for name, schema in schemas.items() if name in keep}

    used_tags = {
        tag
        for item in paths.values()
        for operation in item.values()
        if isinstance(operation, dict)
        for tag in operation.get("tags", [])
    }
    doc["tags"] = [tag for tag in doc["tags"] if tag["name"] in used_tags]


def _description(source, criterion, total: int, matched: int, total_paths: int, doc: dict) -> str:
    text = f"Automatically generated API docs from Dataverse metadata ({source.kind})."
    if isinstance(criterion, PrefixFilter):
        text += f"\n\nThis documentation only includes entities with the prefix: {criterion.prefix}"
    elif isinstance(criterion, PublisherFilter):
        text += f"\n\nThis documentation only includes entities from the publisher: {criterion.publisher}"
    elif isinstance(criterion, PathPatternFilter) and not isinstance(source, JsonSchemaFile):
        text += f"\n\nThis documentation only includes paths matching: {criterion.pattern}"
    text += f"\n\nEntities: {matched} of {total}. Paths: {len(doc['paths'])} of {total_paths}."
    return text
