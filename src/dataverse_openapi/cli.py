"""CLI entry point for dataverse-openapi."""

import json
from pathlib import Path

import click
import yaml

from dataverse_openapi.client import DataverseClient, normalize_dataverse_url
from dataverse_openapi.config import get_settings
from dataverse_openapi.generator.assemble import assemble
from dataverse_openapi.generator.filters import build_publisher_lookup
from dataverse_openapi.generator.validator import validate_document
from dataverse_openapi.logging_config import setup_logging
from dataverse_openapi.parser.base import (
    DataverseOpenApiError,
    FilterCriterion,
    NoFilter,
    PathPatternFilter,
    PrefixFilter,
    PublisherFilter,
    XmlMetadata,
)
from dataverse_openapi.parser.detect import load_source
from dataverse_openapi.parser.normalize import normalize_source


def _filter_options(func):
    """Attach the shared filter options to a command."""
    options = [
        click.option("--prefix", default=None, help="Only include entities whose name starts with this prefix (names schema-file tables)."),
        click.option("--publisher", default=None, help="Only include entities from this publisher."),
        click.option("--publisher-map", type=click.Path(exists=True, path_type=Path), default=None, help="JSON/YAML mapping of entity name to publisher."),
        click.option("--pattern", default=None, help="Only keep paths matching this pattern."),
        click.option("--regex", is_flag=True, default=False, help="Treat --pattern as a regular expression."),
        click.option("--title", default=None, help="Document title."),
        click.option("--output-format", default="auto", type=click.Choice(["auto", "json", "yaml"]), help="Output format (auto uses the file extension)."),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def _build_criterion(
    prefix: str | None,
    publisher: str | None,
    publisher_map: Path | None,
    pattern: str | None,
    regex: bool,
) -> FilterCriterion:
    """Build the single filter criterion selected on the command line."""
    given = [name for name, value in (("--prefix", prefix), ("--publisher", publisher), ("--pattern", pattern)) if value]
    if len(given) > 1:
        raise click.UsageError(f"Options {', '.join(given)} are mutually exclusive.")

    if prefix:
        return PrefixFilter(prefix=prefix)
    if publisher:
        lookup = {}
        if publisher_map:
            try:
                data = yaml.safe_load(publisher_map.read_text(encoding="utf-8"))
            except (OSError, UnicodeDecodeError, yaml.YAMLError) as e:
                raise click.ClickException(f"Could not read publisher map {publisher_map}: {e}") from e
            if not isinstance(data, dict):
                raise click.UsageError("--publisher-map must contain a mapping of entity name to publisher.")
            lookup = {str(k): str(v) for k, v in data.items()}
        return PublisherFilter(publisher=publisher, lookup=lookup)
    if pattern:
        return PathPatternFilter(pattern=pattern, is_regex=regex)

    settings_prefix = get_settings().prefix
    if settings_prefix:
        return PrefixFilter(prefix=settings_prefix)
    return NoFilter()


def _write_document(doc: dict, output: Path, output_format: str) -> None:
    if output_format == "auto":
        output_format = "yaml" if output.suffix.lower() in (".yaml", ".yml") else "json"

    if output_format == "yaml":
        text = yaml.safe_dump(doc, sort_keys=False, allow_unicode=True)
    else:
        text = json.dumps(doc, indent=2, ensure_ascii=False) + "\n"

    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(text, encoding="utf-8")


def _summary(doc: dict) -> str:
    return f"{len(doc['paths'])} paths, {len(doc['components']['schemas'])} schemas"


@click.group()
@click.option("-v", "--verbose", is_flag=True, default=False, help="Enable debug logging.")
def main(verbose: bool):
    """Dataverse OpenAPI: generate OpenAPI documents from Dataverse metadata."""
    setup_logging(verbose or get_settings().verbose)


@main.command()
@click.argument("source_path", required=False, type=click.Path(path_type=Path))
@click.option("-o", "--output", required=True, type=click.Path(path_type=Path), help="Output file for the OpenAPI document.")
@click.option("--format", "fmt", default="auto", type=click.Choice(["auto", "xml", "schema-file"]), help="Source format.")
@click.option("--base-url", default=None, help="Server URL written into the document.")
@_filter_options
def convert(
    source_path: Path | None,
    output: Path,
    fmt: str,
    base_url: str | None,
    prefix: str | None,
    publisher: str | None,
    publisher_map: Path | None,
    pattern: str | None,
    regex: bool,
    title: str | None,
    output_format: str,
):
    """Convert an EDMX metadata file or a schema file to OpenAPI."""
    settings = get_settings()
    if source_path is None and settings.schema_file_path:
        source_path = Path(settings.schema_file_path)
    if source_path is None:
        raise click.UsageError("A source file is required (argument or SCHEMA_FILE_PATH).")
    if not source_path.is_file():
        raise click.BadParameter(f"File '{source_path}' does not exist.", param_hint="SOURCE_PATH")
    criterion = _build_criterion(prefix, publisher, publisher_map, pattern, regex)

    click.echo(f"Reading {source_path} (format: {fmt})...")
    try:
        source = load_source(source_path, fmt)
    except (OSError, UnicodeDecodeError) as e:
        raise click.ClickException(f"Could not read {source_path}: {e}") from e

    doc = assemble(source, criterion, base_url or settings.dataverse_url, title=title or settings.title)
    _write_document(doc, output, output_format)
    click.echo(f"Generated {_summary(doc)}.")
    click.echo(f"OpenAPI document saved to {output}")


@main.command()
@click.argument("url", required=False)
@click.option("-o", "--output", required=True, type=click.Path(path_type=Path), help="Output file for the OpenAPI document.")
@click.option("--token", default=None, help="Bearer token (defaults to DATAVERSE_TOKEN).")
@click.option("--save-metadata", type=click.Path(path_type=Path), default=None, help="Also save the fetched EDMX to this file.")
@_filter_options
def fetch(
    url: str | None,
    output: Path,
    token: str | None,
    save_metadata: Path | None,
    prefix: str | None,
    publisher: str | None,
    publisher_map: Path | None,
    pattern: str | None,
    regex: bool,
    title: str | None,
    output_format: str,
):
    """Fetch live metadata from a Dataverse environment and convert it."""
    settings = get_settings()
    url = url or settings.dataverse_url
    token = token or settings.token
    if not url:
        raise click.UsageError("A Dataverse URL is required (argument or DATAVERSE_URL).")
    if not token:
        raise click.UsageError("A bearer token is required (--token or DATAVERSE_TOKEN).")
    criterion = _build_criterion(prefix, publisher, publisher_map, pattern, regex)

    client = DataverseClient(url, token, timeout=settings.timeout)
    click.echo(f"Fetching metadata from {client.base_url}...")
    try:
        metadata = client.fetch_metadata()
        if isinstance(criterion, PublisherFilter) and not criterion.lookup:
            criterion = _with_publisher_lookup(criterion, metadata, client.fetch_publishers())
    except DataverseOpenApiError as e:
        raise click.ClickException(str(e)) from e

    if save_metadata:
        save_metadata.parent.mkdir(parents=True, exist_ok=True)
        save_metadata.write_text(metadata, encoding="utf-8")
        click.echo(f"  Metadata saved to {save_metadata}")

    doc = assemble(XmlMetadata(text=metadata), criterion, normalize_dataverse_url(url), title=title or settings.title)
    _write_document(doc, output, output_format)
    click.echo(f"Generated {_summary(doc)}.")
    click.echo(f"OpenAPI document saved to {output}")


def _with_publisher_lookup(criterion: PublisherFilter, metadata: str, publishers: list[dict]) -> PublisherFilter:
    try:
        entities = normalize_source(XmlMetadata(text=metadata))
    except DataverseOpenApiError:
        # assemble reports the malformed metadata through the fallback document
        return criterion
    lookup = build_publisher_lookup([e.logical_name for e in entities], publishers)
    return criterion.model_copy(update={"lookup": lookup})


@main.command()
@click.argument("doc_path", type=click.Path(exists=True, path_type=Path))
def check(doc_path: Path):
    """Check an OpenAPI document for unresolved or unused schema references."""
    try:
        doc = yaml.safe_load(doc_path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, yaml.YAMLError) as e:
        raise click.ClickException(f"Could not parse {doc_path}: {e}") from e

    errors = validate_document(doc)
    if errors:
        for location, message in errors.items():
            click.echo(f"  {location}: {message}")
        raise click.ClickException(f"{len(errors)} problem(s) found in {doc_path}")
    click.echo(f"{doc_path} is valid.")
