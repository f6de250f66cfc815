"""Shape normalizer.

Turns the ambiguously shaped trees produced by the XML reader or loaded from a
schema file into an ordered list of NormalizedEntity records. Single-vs-list
shapes and alternative key spellings are resolved here, once, so nothing
downstream has to re-check them.
"""

import logging
import re

from .base import (
    JsonSchemaFile,
    MalformedSchemaError,
    NormalizedEntity,
    PropertyDef,
    SchemaSource,
    XmlMetadata,
)
from .xmltree import ATTRIBUTES_KEY, parse_xml

logger = logging.getLogger(__name__)

# EDMX element aliases, tried in order.
EDMX = ("edmx:Edmx", "Edmx")
DATA_SERVICES = ("edmx:DataServices", "DataServices")
SCHEMA = ("Schema", "edm:Schema")
ENTITY_TYPE = ("EntityType", "edm:EntityType")
ENTITY_CONTAINER = ("EntityContainer", "edm:EntityContainer")
ENTITY_SET = ("EntitySet", "edm:EntitySet")
PROPERTY = ("Property", "edm:Property")
KEY = ("Key", "edm:Key")
PROPERTY_REF = ("PropertyRef", "edm:PropertyRef")

# Schema file aliases.
TABLES = ("tables", "entities")
TABLE_NAME = ("logicalName", "logical_name", "name")
DISPLAY_NAME = ("displayName", "display_name")
DESCRIPTION = ("description",)
ENTITY_SET_NAME = ("entitySetName", "entity_set_name", "setName")
PRIMARY_ATTRIBUTE = ("primaryAttribute", "primary_attribute")
PRIMARY_ATTRIBUTE_NAME = ("schemaName", "logicalName", "schema_name", "logical_name", "name")
ATTRIBUTES = ("attributes", "columns")
ATTRIBUTE_NAME = ("logicalName", "schemaName", "logical_name", "name")
ATTRIBUTE_TYPE = ("type", "attributeType", "attribute_type")
ATTRIBUTE_FORMAT = ("format",)
MAX_LENGTH = ("maxLength", "max_length")
NULLABLE = ("nullable", "isNullable")

DEFAULT_PRIMARY_ATTRIBUTE_LENGTH = 200


def as_list(value) -> list:
    """Wrap a single node in a list; `None` becomes an empty list."""
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


def lookup(node, aliases: tuple[str, ...], default=None):
    """Find the first alias present in `node`, ignoring case and namespace prefixes."""
    if not isinstance(node, dict):
        return default

    by_lower = {}
    by_local = {}
    for key in node:
        by_lower.setdefault(key.lower(), key)
        by_local.setdefault(key.split(":")[-1].lower(), key)

    for alias in aliases:
        key = by_lower.get(alias.lower())
        if key is not None:
            return node[key]
    for alias in aliases:
        key = by_local.get(alias.split(":")[-1].lower())
        if key is not None:
            return node[key]
    return default


def normalize(tree, source_kind: str, prefix: str = "") -> list[NormalizedEntity]:
    """Normalize a parsed metadata tree into entities in document order.

    `prefix` only applies to schema files, where it namespaces every
    generated name.

    Raises:
        MalformedSchemaError: a required structural element is missing.
    """
    if source_kind == "xml":
        entities = _normalize_xml(tree)
    elif source_kind == "schema-file":
        entities = _normalize_schema_file(tree, prefix)
    else:
        raise ValueError(f"Unknown source kind: {source_kind}")
    return _unique(entities)


def normalize_source(source: SchemaSource, prefix: str = "") -> list[NormalizedEntity]:
    """Parse (for XML) and normalize a schema source."""
    if isinstance(source, XmlMetadata):
        return normalize(parse_xml(source.text), "xml")
    if isinstance(source, JsonSchemaFile):
        return normalize(source.document, "schema-file", prefix=prefix)
    raise TypeError(f"Unsupported schema source: {type(source).__name__}")


def pluralize(word: str) -> str:
    lowered = word.lower()
    if len(word) > 1 and lowered.endswith("y") and lowered[-2] not in "aeiou":
        return word[:-1] + "ies"
    if lowered.endswith(("s", "x", "z", "ch", "sh")):
        return word + "es"
    return word + "s"


def pascal_case(text: str) -> str:
    parts = [p for p in re.split(r"[^0-9A-Za-z]+", text) if p]
    return "".join(p[:1].upper() + p[1:] for p in parts)


# --- EDMX ---------------------------------------------------------------


def _attr(node, names: tuple[str, ...]) -> str | None:
    value = lookup(lookup(node, (ATTRIBUTES_KEY,), {}), names)
    if value is None:
        return None
    return str(value).strip() or None


def _normalize_xml(tree) -> list[NormalizedEntity]:
    edmx = lookup(tree, EDMX)
    if not isinstance(edmx, dict):
        raise MalformedSchemaError("No Edmx root element found in metadata")
    data_services = lookup(edmx, DATA_SERVICES)
    if not isinstance(data_services, dict):
        raise MalformedSchemaError("No DataServices element found in metadata")
    schemas = [s for s in as_list(lookup(data_services, SCHEMA)) if isinstance(s, dict)]
    if not schemas:
        raise MalformedSchemaError("No Schema element found in metadata")

    types: dict[str, dict] = {}
    qualified: dict[str, str] = {}
    for schema in schemas:
        namespaces = [n for n in (_attr(schema, ("Namespace",)), _attr(schema, ("Alias",))) if n]
        for node in as_list(lookup(schema, ENTITY_TYPE)):
            name = _attr(node, ("Name",))
            if not name:
                logger.warning("Skipping entity type without a name")
                continue
            if name in types:
                logger.warning("Skipping duplicate entity type %s", name)
                continue
            types[name] = node
            for namespace in namespaces:
                qualified[f"{namespace}.{name}"] = name

    sets: dict[str, str] = {}
    set_count = 0
    for schema in schemas:
        for container in as_list(lookup(schema, ENTITY_CONTAINER)):
            for entity_set in as_list(lookup(container, ENTITY_SET)):
                set_count += 1
                set_name = _attr(entity_set, ("Name",))
                type_ref = _attr(entity_set, ("EntityType",))
                if not set_name or not type_ref:
                    logger.warning("Skipping entity set without a name or entity type")
                    continue
                type_name = _resolve_type(type_ref, types, qualified)
                if type_name is None:
                    logger.warning("Skipping entity set %s: unknown entity type %s", set_name, type_ref)
                    continue
                sets.setdefault(type_name, set_name)

    logger.info("Found %d entity types", len(types))
    logger.info("Found %d entity sets", set_count)

    entities = []
    for name in types:
        set_name = sets.get(name)
        if not set_name:
            logger.debug("Entity type %s has no entity set, skipping", name)
            continue
        entities.append(_xml_entity(name, set_name, types, qualified))
    return entities


def _resolve_type(ref: str, types: dict[str, dict], qualified: dict[str, str]) -> str | None:
    if ref in qualified:
        return qualified[ref]
    short = ref.split(".")[-1]
    if short in types:
        return short
    return None


def _type_chain(name: str, types: dict[str, dict], qualified: dict[str, str]) -> list[str]:
    """Return `name` followed by its base types, stopping at cycles or unknown bases."""
    chain = [name]
    current = name
    while True:
        base_ref = _attr(types[current], ("BaseType",))
        base = _resolve_type(base_ref, types, qualified) if base_ref else None
        if base is None or base in chain:
            return chain
        chain.append(base)
        current = base


def _xml_entity(name: str, set_name: str, types: dict[str, dict], qualified: dict[str, str]) -> NormalizedEntity:
    chain = _type_chain(name, types, qualified)

    properties: list[PropertyDef] = []
    for type_name in reversed(chain):
        for node in as_list(lookup(types[type_name], PROPERTY)):
            prop_name = _attr(node, ("Name",))
            if not prop_name:
                logger.warning("Skipping property without a name on %s", type_name)
                continue
            properties.append(
                PropertyDef(
                    name=prop_name,
                    source_type=_attr(node, ("Type",)) or "",
                    max_length=_parse_length(_attr(node, ("MaxLength",))),
                    nullable=_parse_bool(_attr(node, ("Nullable",)), default=True),
                )
            )
    properties = _dedupe(properties, name)

    key_name = None
    for type_name in chain:
        refs = as_list(lookup(lookup(types[type_name], KEY), PROPERTY_REF))
        key_names = [n for n in (_attr(ref, ("Name",)) for ref in refs) if n]
        if key_names:
            key_name = key_names[0]
            break

    primary_key = None
    if key_name:
        for prop in properties:
            if prop.name == key_name:
                primary_key = prop.model_copy(update={"read_only": True, "nullable": False})
                break
        else:
            primary_key = PropertyDef(name=key_name, source_type="Edm.Guid", read_only=True, nullable=False)
        properties = [p for p in properties if p.name != key_name]

    return NormalizedEntity(
        name=name,
        set_name=set_name,
        logical_name=name,
        properties=properties,
        primary_key=primary_key,
    )


# --- Schema files -------------------------------------------------------


def _normalize_schema_file(document, prefix: str) -> list[NormalizedEntity]:
    if not isinstance(document, dict):
        raise MalformedSchemaError("Invalid schema: expected a mapping with a tables array")
    tables = lookup(document, TABLES)
    if tables is None:
        raise MalformedSchemaError("Invalid schema: missing tables array")

    naming_prefix = _naming_prefix(prefix)
    entities = []
    for table in as_list(tables):
        entity = _table_entity(table, naming_prefix)
        if entity is not None:
            entities.append(entity)

    logger.info("Loaded %d tables from schema file", len(entities))
    return entities


def _naming_prefix(prefix: str) -> str:
    prefix = (prefix or "").strip()
    if prefix and not prefix.endswith("_"):
        prefix += "_"
    return prefix


def _prefixed(naming_prefix: str, name: str) -> str:
    if naming_prefix and name.lower().startswith(naming_prefix.lower()):
        return name
    return naming_prefix + name


def _table_entity(table, naming_prefix: str) -> NormalizedEntity | None:
    if not isinstance(table, dict):
        logger.warning("Skipping table entry that is not a mapping")
        return None
    logical = _text(lookup(table, TABLE_NAME))
    if not logical:
        logger.warning("Skipping table without a logicalName")
        return None

    logical_name = _prefixed(naming_prefix, logical)
    bare = logical_name[len(naming_prefix):] if naming_prefix else logical_name
    key = PropertyDef(
        name=f"{logical_name}id",
        source_type="Edm.Guid",
        nullable=False,
        read_only=True,
    )

    properties = []
    primary = lookup(table, PRIMARY_ATTRIBUTE)
    if isinstance(primary, str):
        primary = {"schemaName": primary}
    elif primary is not None and not isinstance(primary, dict):
        logger.warning("Ignoring primaryAttribute on %s: expected a name or a mapping", logical_name)
        primary = None
    primary_name = _text(lookup(primary, PRIMARY_ATTRIBUTE_NAME))
    if primary_name:
        properties.append(
            PropertyDef(
                name=_prefixed(naming_prefix, primary_name.lower()),
                source_type="String",
                max_length=_parse_length(lookup(primary, MAX_LENGTH)) or DEFAULT_PRIMARY_ATTRIBUTE_LENGTH,
                description=_text(lookup(primary, DESCRIPTION)),
            )
        )

    for attr in as_list(lookup(table, ATTRIBUTES)):
        attr_name = _text(lookup(attr, ATTRIBUTE_NAME))
        if not attr_name:
            logger.warning("Skipping attribute without a logicalName on %s", logical_name)
            continue
        properties.append(
            PropertyDef(
                name=_prefixed(naming_prefix, attr_name),
                source_type=_text(lookup(attr, ATTRIBUTE_TYPE)) or "",
                max_length=_parse_length(lookup(attr, MAX_LENGTH)),
                nullable=_parse_bool(lookup(attr, NULLABLE), default=True),
                description=_text(lookup(attr, DESCRIPTION)),
                format_hint=_text(lookup(attr, ATTRIBUTE_FORMAT)),
            )
        )

    return NormalizedEntity(
        name=pascal_case(bare) or logical_name,
        set_name=_text(lookup(table, ENTITY_SET_NAME)) or pluralize(logical_name),
        logical_name=logical_name,
        properties=_dedupe([p for p in properties if p.name != key.name], logical_name),
        primary_key=key,
        description=_text(lookup(table, DESCRIPTION)),
        display_name=_text(lookup(table, DISPLAY_NAME)),
        id_param=key.name,
    )


# --- Helpers ------------------------------------------------------------


def _text(value) -> str | None:
    if value is None or isinstance(value, (dict, list)):
        return None
    text = str(value).strip()
    return text or None


def _parse_int(value) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _parse_length(value) -> int | None:
    length = _parse_int(value)
    if length is None or length < 0:
        return None
    return length


def _parse_bool(value, default: bool) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return default
    text = str(value).strip().lower()
    if text in ("true", "1", "yes"):
        return True
    if text in ("false", "0", "no"):
        return False
    return default


def _dedupe(properties: list[PropertyDef], owner: str) -> list[PropertyDef]:
    seen = set()
    result = []
    for prop in properties:
        if prop.name in seen:
            logger.debug("Duplicate property %s on %s, keeping the first", prop.name, owner)
            continue
        seen.add(prop.name)
        result.append(prop)
    return result


def _unique(entities: list[NormalizedEntity]) -> list[NormalizedEntity]:
    names = set()
    set_names = set()
    result = []
    for entity in entities:
        if entity.name in names or entity.set_name in set_names:
            logger.warning("Skipping duplicate entity %s (%s)", entity.name, entity.set_name)
            continue
        names.add(entity.name)
        set_names.add(entity.set_name)
        result.append(entity)
    return result
