"""Dataverse Web API client wrapper around requests.

Fetches the raw inputs of the conversion engine: the `$metadata` document and
the publisher list used for publisher filtering. Environments whose
`$metadata` endpoint answers with JSON are read through `EntityDefinitions`
instead, and an equivalent EDMX document is built from those.
"""

import logging
import re

import requests
from lxml import etree

from dataverse_openapi.parser.base import MetadataFetchError

logger = logging.getLogger(__name__)

API_PATH = "api/data/v9.2/"
DEFAULT_TIMEOUT = 30

EDMX_NS = "http://docs.oasis-open.org/odata/ns/edmx"
EDM_NS = "http://docs.oasis-open.org/odata/ns/edm"
CRM_NAMESPACE = "Microsoft.Dynamics.CRM"

ENTITY_DEFINITIONS_PARAMS = {
    "$select": "LogicalName,SchemaName,DisplayName,EntitySetName,PrimaryIdAttribute",
    "$expand": "Attributes($select=LogicalName,SchemaName,AttributeType,DisplayName)",
}

# AttributeType -> EDM type; anything missing is Edm.String
CRM_EDM_TYPES = {
    "string": "Edm.String",
    "memo": "Edm.String",
    "integer": "Edm.Int32",
    "bigint": "Edm.Int64",
    "boolean": "Edm.Boolean",
    "double": "Edm.Double",
    "decimal": "Edm.Decimal",
    "money": "Edm.Decimal",
    "datetime": "Edm.DateTimeOffset",
    "date": "Edm.Date",
    "lookup": "Edm.Guid",
    "owner": "Edm.Guid",
    "customer": "Edm.Guid",
    "uniqueidentifier": "Edm.Guid",
    "virtual": "Edm.String",
    "state": "Edm.Int32",
    "status": "Edm.Int32",
    "picklist": "Edm.Int32",
    "multiselectpicklist": "Edm.String",
}


def crm_to_edm_type(attribute_type: str | None) -> str:
    return CRM_EDM_TYPES.get((attribute_type or "").strip().lower(), "Edm.String")


def build_edmx(definitions: list[dict]) -> str:
    """Build an EDMX document from `EntityDefinitions` records.

    Each definition becomes an EntityType keyed on its PrimaryIdAttribute, and
    definitions with an EntitySetName also get an EntitySet.
    """
    root = etree.Element(f"{{{EDMX_NS}}}Edmx", nsmap={"edmx": EDMX_NS}, Version="4.0")
    data_services = etree.SubElement(root, f"{{{EDMX_NS}}}DataServices")
    schema = etree.SubElement(data_services, f"{{{EDM_NS}}}Schema", nsmap={None: EDM_NS}, Namespace=CRM_NAMESPACE)

    sets = []
    for entity in definitions:
        if not isinstance(entity, dict):
            continue
        name = entity.get("LogicalName") or entity.get("SchemaName")
        if not name:
            logger.warning("Skipping entity definition without a name")
            continue
        entity_type = etree.SubElement(schema, f"{{{EDM_NS}}}EntityType", Name=str(name))

        key = entity.get("PrimaryIdAttribute")
        if key:
            key_node = etree.SubElement(entity_type, f"{{{EDM_NS}}}Key")
            etree.SubElement(key_node, f"{{{EDM_NS}}}PropertyRef", Name=str(key))

        for attr in entity.get("Attributes") or []:
            if not isinstance(attr, dict):
                continue
            attr_name = attr.get("LogicalName") or attr.get("SchemaName")
            if not attr_name:
                continue
            etree.SubElement(
                entity_type,
                f"{{{EDM_NS}}}Property",
                Name=str(attr_name),
                Type=crm_to_edm_type(attr.get("AttributeType")),
            )

        if entity.get("EntitySetName"):
            sets.append((str(entity["EntitySetName"]), str(name)))

    container = etree.SubElement(schema, f"{{{EDM_NS}}}EntityContainer", Name="DefaultContainer")
    for set_name, type_name in sets:
        etree.SubElement(
            container,
            f"{{{EDM_NS}}}EntitySet",
            Name=set_name,
            EntityType=f"{CRM_NAMESPACE}.{type_name}",
        )

    return etree.tostring(root, xml_declaration=True, encoding="utf-8", pretty_print=True).decode("utf-8")


def normalize_dataverse_url(url: str) -> str:
    """Return the Web API root for a Dataverse environment URL, with a trailing slash."""
    normalized = (url or "").strip()
    if not normalized:
        raise ValueError("Dataverse URL is empty")
    normalized = re.sub(r"\$metadata$", "", normalized)
    if not normalized.endswith("/"):
        normalized += "/"

    if "/api/data/v" not in normalized:
        if normalized.endswith("/web/"):
            normalized = normalized[: -len("web/")] + API_PATH
        else:
            normalized += API_PATH
    return normalized


def metadata_url(url: str) -> str:
    """Return the `$metadata` URL for a Dataverse environment URL."""
    if url.strip().endswith("$metadata"):
        return url.strip()
    return normalize_dataverse_url(url) + "$metadata"


class DataverseClient:
    """Authenticated access to one Dataverse environment."""

    def __init__(self, base_url: str, token: str, timeout: float = DEFAULT_TIMEOUT):
        self.base_url = normalize_dataverse_url(base_url)
        self.timeout = timeout
        self.session = requests.Session()
        self.session.headers.update(
            {
                "Authorization": f"Bearer {token}",
                "OData-MaxVersion": "4.0",
                "OData-Version": "4.0",
            }
        )

    def fetch_metadata(self) -> str:
        """Fetch the EDMX metadata document as text.

        A JSON answer from `$metadata` falls back to `fetch_entity_definitions`.
        """
        url = self.base_url + "$metadata"
        logger.info("Fetching metadata from: %s", url)
        try:
            response = self.session.get(url, headers={"Accept": "application/xml"}, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            raise MetadataFetchError(f"Failed to fetch metadata: {e}") from e

        text = response.text or ""
        if text.lstrip().startswith("<"):
            logger.info("Successfully fetched metadata in XML format, size: %d", len(text))
            return text

        if text.lstrip().startswith(("{", "[")):
            logger.warning("Server returned JSON instead of XML, reading EntityDefinitions")
            return self.fetch_entity_definitions()
        logger.error("Metadata response preview: %s", text[:200])
        raise MetadataFetchError("Metadata endpoint did not return XML format as expected")

    def fetch_entity_definitions(self) -> str:
        """Build EDMX metadata from the `EntityDefinitions` endpoint."""
        url = self.base_url + "EntityDefinitions"
        logger.info("Fetching entity definitions from: %s", url)
        try:
            response = self.session.get(
                url, params=ENTITY_DEFINITIONS_PARAMS, headers={"Accept": "application/json"}, timeout=self.timeout
            )
            response.raise_for_status()
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            raise MetadataFetchError(f"Failed to fetch entity definitions: {e}") from e

        if not isinstance(data, dict) or not isinstance(data.get("value"), list):
            raise MetadataFetchError("Could not fetch metadata in any supported format")

        edmx = build_edmx(data["value"])
        logger.info("Generated EDMX metadata from %d entity definitions, size: %d", len(data["value"]), len(edmx))
        return edmx

    def fetch_publishers(self) -> list[dict]:
        """Fetch publishers with a display text combining name and prefix."""
        url = self.base_url + "publishers"
        params = {
            "$select": "publisherid,friendlyname,uniquename,customizationprefix",
            "$top": "100",
        }
        logger.info("Fetching publishers from: %s", url)
        try:
            response = self.session.get(
                url, params=params, headers={"Accept": "application/json"}, timeout=self.timeout
            )
            response.raise_for_status()
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            raise MetadataFetchError(f"Failed to fetch publishers: {e}") from e

        if not isinstance(data, dict) or not isinstance(data.get("value"), list):
            logger.warning("Publisher response did not contain expected data format")
            return []

        publishers = []
        for pub in data["value"]:
            name = pub.get("friendlyname") or pub.get("uniquename")
            prefix = pub.get("customizationprefix")
            publishers.append({**pub, "displayText": f"{name} ({prefix}_)" if prefix else name})
        logger.info("Successfully fetched %d publishers", len(publishers))
        return publishers
