"""Unified data models for parsed schema metadata.

Both source kinds (EDMX XML and hand-authored schema files) are normalized
into these models before any OpenAPI generation happens.
"""

from typing import Literal

from pydantic import BaseModel, field_validator


class DataverseOpenApiError(Exception):
    """Base class for all errors raised by this package."""


class MalformedSchemaError(DataverseOpenApiError):
    """A required structural element is missing from the raw metadata."""


class DocumentValidationError(DataverseOpenApiError):
    """An assembled document is not referentially closed."""

    def __init__(self, errors: dict[str, str]):
        self.errors = errors
        details = "; ".join(f"{key}: {msg}" for key, msg in errors.items())
        super().__init__(f"Generated document is invalid: {details}")


class MetadataFetchError(DataverseOpenApiError):
    """The metadata endpoint could not be read."""


class XmlMetadata(BaseModel):
    """Raw EDMX text from a `$metadata` endpoint."""

    kind: Literal["xml"] = "xml"
    text: str


class JsonSchemaFile(BaseModel):
    """A curated schema document shaped `{tables: [...]}`."""

    kind: Literal["schema-file"] = "schema-file"
    document: dict


SchemaSource = XmlMetadata | JsonSchemaFile


class PropertyDef(BaseModel):
    """A single entity property (column)."""

    name: str
    source_type: str = ""  # Edm.String / String / Picklist ...
    max_length: int | None = None
    nullable: bool = True
    description: str | None = None
    format_hint: str | None = None  # Email / Url, schema files only
    read_only: bool = False


class NormalizedEntity(BaseModel):
    """One entity with its collection name and ordered properties."""

    name: str
    set_name: str
    logical_name: str
    properties: list[PropertyDef] = []
    primary_key: PropertyDef | None = None
    description: str | None = None
    display_name: str | None = None
    id_param: str = "id"

    @field_validator("name", "set_name", "logical_name")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("must be a non-empty string")
        return value

    @property
    def tag(self) -> str:
        return self.display_name or self.name


class NoFilter(BaseModel):
    kind: Literal["none"] = "none"


class PrefixFilter(BaseModel):
    kind: Literal["prefix"] = "prefix"
    prefix: str


class PublisherFilter(BaseModel):
    kind: Literal["publisher"] = "publisher"
    publisher: str
    lookup: dict[str, str] = {}  # entity logical name -> publisher


class PathPatternFilter(BaseModel):
    kind: Literal["pattern"] = "pattern"
    pattern: str
    is_regex: bool = False


FilterCriterion = NoFilter | PrefixFilter | PublisherFilter | PathPatternFilter
