"""Auto-detect and load metadata sources from disk."""

import json
import logging
from pathlib import Path

import yaml

from .base import JsonSchemaFile, SchemaSource, XmlMetadata

logger = logging.getLogger(__name__)


def _load_mapping(text: str) -> dict | None:
    # YAML is a superset of JSON, but try JSON as well for files YAML rejects
    try:
        data = yaml.safe_load(text)
        if isinstance(data, dict):
            return data
    except yaml.YAMLError:
        pass

    try:
        data = json.loads(text)
        if isinstance(data, dict):
            return data
    except (json.JSONDecodeError, ValueError):
        pass

    return None


def detect_format(file_path: Path) -> str:
    """Detect the format of a metadata file.

    Returns: 'xml' or 'schema-file'.
    """
    text = file_path.read_text(encoding="utf-8-sig")
    if text.lstrip().startswith("<"):
        return "xml"

    data = _load_mapping(text)
    if data is not None and any(str(key).lower() in ("tables", "entities") for key in data):
        return "schema-file"

    # Unknown content goes down the XML path so the normalizer reports it
    return "xml"


def load_source(file_path: Path, fmt: str = "auto") -> SchemaSource:
    """Read a metadata file into a schema source."""
    if fmt == "auto":
        fmt = detect_format(file_path)

    text = file_path.read_text(encoding="utf-8-sig")
    if fmt == "xml":
        return XmlMetadata(text=text)

    data = _load_mapping(text)
    if data is None:
        logger.warning("Could not parse %s as a JSON or YAML mapping", file_path)
        data = {}
    return JsonSchemaFile(document=data)
