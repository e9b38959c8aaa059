"""Command-line interface for udmbridge."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import click

from udmbridge import __version__
from udmbridge.conversion.transformer import TransformOptions, UDMTransformer
from udmbridge.core.exceptions import UDMBridgeError
from udmbridge.core.observability import configure_logging
from udmbridge.core.types import EMRSystem
from udmbridge.parsers.config import HL7ParserConfig, load_parser_config
from udmbridge.parsers.hl7v2 import HL7v2Parser
from udmbridge.schemas.loader import SchemaLoader

EMR_SYSTEM_CHOICE = click.Choice([s.value for s in EMRSystem], case_sensitive=False)


def _emit(result: Any, output: Path | None, pretty: bool) -> None:
    output_json = json.dumps(result, indent=2 if pretty else None, default=str)
    if output:
        output.write_text(output_json)
        click.echo(f"Output written to {output}")
    else:
        click.echo(output_json)


def _single_or_list(results: list[dict[str, Any]]) -> dict[str, Any] | list[dict[str, Any]]:
    return results[0] if len(results) == 1 else results


def _build_parser(
    config_path: Path | None, lenient: bool, allow_custom_segments: bool
) -> HL7v2Parser:
    config = load_parser_config(config_path) if config_path else HL7ParserConfig()
    if lenient:
        config = config.with_overrides(strict_mode=False)
    if allow_custom_segments:
        config = config.with_overrides(allow_custom_segments=True)
    return HL7v2Parser(config)


def _parse_messages(parser: HL7v2Parser, input_file: Path, emr_system: str) -> list[Any]:
    batch = parser.parse_file(input_file, emr_system)
    for index, error in batch.errors:
        click.echo(f"Warning: Skipping message {index} - {error}", err=True)
    if not batch.messages:
        if batch.errors:
            raise click.ClickException(str(batch.errors[0][1]))
        raise click.ClickException("No valid HL7 messages found in file")
    return batch.messages


def parser_options(func: Any) -> Any:
    """Options shared by commands that parse HL7 input."""
    func = click.option(
        "--config",
        "config_path",
        type=click.Path(exists=True, dir_okay=False, path_type=Path),
        default=None,
        help="YAML parser configuration",
    )(func)
    func = click.option(
        "--allow-custom-segments",
        is_flag=True,
        help="Keep well-formed segments that are not in the registry (Z-segments)",
    )(func)
    func = click.option(
        "--lenient",
        is_flag=True,
        help="Drop invalid segments and skip required-segment checks",
    )(func)
    return func


def output_options(func: Any) -> Any:
    """Options shared by commands that print JSON."""
    func = click.option(
        "--pretty/--compact",
        default=True,
        help="Pretty print JSON output",
    )(func)
    func = click.option(
        "--output",
        "-o",
        type=click.Path(path_type=Path),
        default=None,
        help="Output file (default: stdout)",
    )(func)
    return func


@click.group()
@click.version_option(version=__version__)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="WARNING",
    help="Minimum level of log events written to stderr",
)
@click.option("--log-json", is_flag=True, help="Write log events as JSON lines")
def cli(log_level: str, log_json: bool) -> None:
    """udmbridge - HL7 v2 parsing and Universal Data Model transformation."""
    configure_logging(log_level, json_output=log_json)


@cli.command()
@click.argument("input_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--emr-system",
    "-e",
    type=EMR_SYSTEM_CHOICE,
    default=EMRSystem.GENERIC_FHIR.value,
    help="EMR system the messages came from",
)
@parser_options
@output_options
def parse(
    input_file: Path,
    emr_system: str,
    lenient: bool,
    allow_custom_segments: bool,
    config_path: Path | None,
    output: Path | None,
    pretty: bool,
) -> None:
    """Parse HL7 v2.x messages into JSON.

    Examples:

        udmbridge parse message.hl7

        udmbridge parse --lenient --allow-custom-segments batch.hl7 -o parsed.json
    """
    try:
        parser = _build_parser(config_path, lenient, allow_custom_segments)
        messages = _parse_messages(parser, input_file, emr_system)
    except (UDMBridgeError, FileNotFoundError) as e:
        raise click.ClickException(str(e)) from e

    _emit(_single_or_list([parser.to_json(m) for m in messages]), output, pretty)


@cli.command()
@click.argument("input_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--emr-system",
    "-e",
    type=EMR_SYSTEM_CHOICE,
    required=True,
    help="EMR system whose normalization rules apply",
)
@click.option(
    "--format",
    "input_format",
    type=click.Choice(["hl7", "fhir"], case_sensitive=False),
    default="hl7",
    help="Input format: HL7 v2 text or FHIR JSON (default: hl7)",
)
@click.option(
    "--strict-validation",
    is_flag=True,
    help="Fail when the UDM record has validation errors",
)
@parser_options
@output_options
def transform(
    input_file: Path,
    emr_system: str,
    input_format: str,
    strict_validation: bool,
    lenient: bool,
    allow_custom_segments: bool,
    config_path: Path | None,
    output: Path | None,
    pretty: bool,
) -> None:
    """Transform HL7 v2 messages or FHIR resources into UDM records.

    Examples:

        udmbridge transform -e EPIC message.hl7

        udmbridge transform -e CERNER --format fhir task.json --strict-validation
    """
    transformer = UDMTransformer()
    options = TransformOptions(strict_validation=strict_validation)

    try:
        if input_format.lower() == "hl7":
            parser = _build_parser(config_path, lenient, allow_custom_segments)
            sources: list[Any] = _parse_messages(parser, input_file, emr_system)
        else:
            sources = _load_fhir(input_file)
        records = [transformer.transform(s, emr_system, options).to_dict() for s in sources]
    except (UDMBridgeError, FileNotFoundError) as e:
        raise click.ClickException(str(e)) from e

    _emit(_single_or_list(records), output, pretty)


def _load_fhir(input_file: Path) -> list[dict[str, Any]]:
    """Read one resource, a JSON list of resources, or a Bundle's entries."""
    try:
        data = json.loads(input_file.read_text())
    except json.JSONDecodeError as e:
        raise click.ClickException(f"Invalid JSON in {input_file.name}") from e

    if isinstance(data, dict) and data.get("resourceType") == "Bundle":
        data = [
            entry["resource"]
            for entry in data.get("entry") or []
            if isinstance(entry, dict) and "resource" in entry
        ]
    resources = data if isinstance(data, list) else [data]
    if not resources:
        raise click.ClickException("No FHIR resources found in file")
    if not all(isinstance(resource, dict) for resource in resources):
        raise click.ClickException(f"FHIR resources in {input_file.name} must be JSON objects")
    return resources


@cli.command("validate-config")
@click.argument("config_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
def validate_config(config_file: Path) -> None:
    """Check a YAML parser configuration file.

    Example:

        udmbridge validate-config parser.yaml
    """
    try:
        config = load_parser_config(config_file)
    except UDMBridgeError as e:
        raise click.ClickException(f"Invalid configuration: {e}") from e

    click.echo("Configuration OK")
    click.echo(f"  strict_mode: {config.strict_mode}")
    click.echo(f"  validate_checksum: {config.validate_checksum}")
    click.echo(f"  allow_custom_segments: {config.allow_custom_segments}")
    click.echo(f"  supported_versions: {', '.join(config.supported_versions)}")


@cli.command("list-vendors")
def list_vendors() -> None:
    """List EMR systems with normalization rules."""
    loader = SchemaLoader()

    click.echo("Available EMR systems:")
    click.echo()
    for vendor in loader.list_vendors():
        rules = loader.load_vendor_rules(vendor)
        click.echo(f"  - {vendor}: {rules.description}")


def main() -> None:
    """Entry point for CLI."""
    cli()


if __name__ == "__main__":
    main()
