"""Entity-level and path-level filtering.

Entity filters (prefix, publisher) decide which schemas and paths exist at
all. Path patterns are applied afterwards to the finished document.
"""

import logging
import re

from dataverse_openapi.parser.base import (
    FilterCriterion,
    NoFilter,
    PathPatternFilter,
    PrefixFilter,
    PublisherFilter,
)

logger = logging.getLogger(__name__)


def include(
    entity_name: str,
    criterion: FilterCriterion | None,
    lookup: dict[str, str] | None = None,
) -> bool:
    """Decide whether an entity survives the entity-level filter."""
    if criterion is None or isinstance(criterion, NoFilter):
        return True

    if isinstance(criterion, PrefixFilter):
        return entity_name.lower().startswith(criterion.prefix.lower())

    if isinstance(criterion, PublisherFilter):
        publishers = lookup if lookup is not None else criterion.lookup
        publisher = publishers.get(entity_name)
        if not publisher:
            # Entities without provenance data stay visible.
            logger.info("No publisher information found for entity %s, including it", entity_name)
            return True
        if publisher != criterion.publisher:
            logger.debug("Filtering out entity %s from publisher %s", entity_name, publisher)
            return False
        return True

    # Path patterns only apply to the assembled document.
    return True


def compile_pattern(criterion: PathPatternFilter) -> re.Pattern:
    pattern = criterion.pattern if criterion.is_regex else re.escape(criterion.pattern)
    return re.compile(pattern, re.IGNORECASE)


def match_path(path: str, criterion: FilterCriterion | None) -> bool:
    """Test a synthesized path template against a path-pattern criterion."""
    if not isinstance(criterion, PathPatternFilter):
        return True
    return compile_pattern(criterion).search(path) is not None


def build_publisher_lookup(entity_names: list[str], publishers: list[dict]) -> dict[str, str]:
    """Map entity names to publisher unique names by customization prefix.

    Publishers without a prefix are ignored; the longest matching prefix wins.
    """
    prefixes = []
    for pub in publishers:
        prefix = (pub.get("customizationprefix") or "").strip().lower()
        name = pub.get("uniquename") or pub.get("friendlyname")
        if prefix and name:
            prefixes.append((prefix + "_", name))
    prefixes.sort(key=lambda item: len(item[0]), reverse=True)

    lookup = {}
    for entity in entity_names:
        lowered = entity.lower()
        for prefix, name in prefixes:
            if lowered.startswith(prefix):
                lookup[entity] = name
                break
    return lookup


def describe(criterion: FilterCriterion | None) -> dict:
    """Summarize a criterion for the document's provenance metadata."""
    if criterion is None:
        return {"kind": "none"}
    data = criterion.model_dump()
    data.pop("lookup", None)
    return data
