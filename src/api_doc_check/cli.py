"""CLI entry point for api-doc-check."""

import asyncio
import logging
import sys
from pathlib import Path

import click
from dotenv import load_dotenv

from api_doc_check.config import (
    TableKind,
    ValidationConfig,
    load_table_config,
    load_validation_config,
)
from api_doc_check.errors import ConfigurationError
from api_doc_check.http.parser import HTTP_VERSION_MARKER, try_parse_request, try_parse_response
from api_doc_check.http.transport import ExponentialBackoff, HttpTransport, NoRetry
from api_doc_check.issues import IssueLogger, IssuePolicy
from api_doc_check.parser.base import ParameterDefinition
from api_doc_check.parser.markdown import extract_page_file
from api_doc_check.parser.tables import TableSpecConverter
from api_doc_check.scenario import ScenarioRunner, load_scenario
from api_doc_check.validator.schema import JsonSchema, SchemaRegistry


def _root_logger(config: ValidationConfig, only_unique: bool = False) -> IssueLogger:
    policy = IssuePolicy(config.suppressions, config.treat_errors_as_warnings_workloads)
    return IssueLogger(only_unique=only_unique, policy=policy)


def _report(issues: IssueLogger, fail_on_warnings: bool) -> int:
    """Print findings and the suppression audit; return the exit code."""
    for issue in issues.messages:
        click.echo(str(issue))
    for issue in issues.warnings + issues.errors:
        click.echo(str(issue), err=True)

    downgraded = issues.downgraded
    if downgraded:
        click.echo(f"\n{len(downgraded)} error(s) treated as warnings:")
        for issue in downgraded:
            click.echo(f"  {issue.text}")
    unused = issues.unused_suppressions
    if unused:
        click.echo(f"\n{len(unused)} suppression(s) were never used:")
        for text in unused:
            click.echo(f"  {text}")

    errors, warnings = len(issues.errors), len(issues.warnings)
    click.echo(f"\n{errors} error(s), {warnings} warning(s).")
    if errors or (fail_on_warnings and warnings):
        return 1
    return 0


def _scan_page(page: Path, converter: TableSpecConverter, issues: IssueLogger) -> list[ParameterDefinition]:
    """Parse every table and HTTP block on a page; return its resource properties."""
    scope = issues.for_scope(page.name)
    extracted = extract_page_file(page)
    properties = []
    for block in extracted.tables:
        definition = converter.parse_table_spec(block.table, block.heading, scope.for_scope(f"line {block.line_number}"))
        if definition.kind in (TableKind.RESOURCE_PROPERTY_DESCRIPTIONS, TableKind.RESOURCE_NAVIGATION_PROPERTY_DESCRIPTIONS):
            properties.extend(definition.items)
    for block in extracted.http_blocks:
        block_scope = scope.for_scope(f"line {block.line_number}")
        if block.text.lstrip().startswith(HTTP_VERSION_MARKER):
            try_parse_response(block.text, block_scope)
        else:
            try_parse_request(block.text, block_scope)
    click.echo(f"{page}: {len(extracted.tables)} table(s), {len(extracted.http_blocks)} HTTP block(s)")
    return properties


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Log debug output.")
def main(verbose: bool):
    """API Doc Check: verify that API documentation matches the real API."""
    load_dotenv()
    logging.basicConfig(level=logging.DEBUG if verbose else logging.WARNING, format="%(levelname)s %(name)s: %(message)s")


@main.command()
@click.argument("pages", nargs=-1, required=True, type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--tables", "tables_path", default=None, type=click.Path(exists=True, path_type=Path), help="Table decoder configuration (YAML).")
@click.option("--config", "config_path", default=None, type=click.Path(exists=True, path_type=Path), help="Validation configuration (YAML).")
@click.option("--only-unique", is_flag=True, help="Collapse repeated identical issues per scope.")
@click.option("--fail-on-warnings", is_flag=True, help="Exit non-zero when warnings remain.")
def scan(pages: tuple[Path, ...], tables_path: Path | None, config_path: Path | None, only_unique: bool, fail_on_warnings: bool):
    """Parse documentation pages and report table and HTTP block problems."""
    try:
        converter = TableSpecConverter(load_table_config(tables_path))
        config = load_validation_config(config_path)
    except ConfigurationError as e:
        raise click.ClickException(str(e))

    issues = _root_logger(config, only_unique)
    for page in pages:
        _scan_page(page, converter, issues)
    sys.exit(_report(issues, fail_on_warnings))


@main.command()
@click.argument("scenario_path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--config", "config_path", default=None, type=click.Path(exists=True, path_type=Path), help="Validation configuration (YAML).")
@click.option("--resource", "resource_pages", multiple=True, type=click.Path(exists=True, dir_okay=False, path_type=Path),
              help="Resource page whose property table becomes a schema named after the file.")
@click.option("--retry", is_flag=True, help="Retry throttled and unavailable responses with backoff.")
@click.option("--fail-on-warnings", is_flag=True, help="Exit non-zero when warnings remain.")
def run(scenario_path: Path, config_path: Path | None, resource_pages: tuple[Path, ...], retry: bool, fail_on_warnings: bool):
    """Execute a scenario of documented requests against the configured service."""
    try:
        config = load_validation_config(config_path)
        steps = load_scenario(scenario_path)
        converter = TableSpecConverter.from_default_configuration()
    except ConfigurationError as e:
        raise click.ClickException(str(e))

    issues = _root_logger(config)
    registry = SchemaRegistry()
    for page in resource_pages:
        properties = _scan_page(page, converter, issues)
        registry.register(JsonSchema.from_definitions(page.stem, properties))

    click.echo(f"Running {len(steps)} step(s) from {scenario_path}...")
    results = asyncio.run(_run_steps(steps, config, registry, issues, retry))
    for result in results:
        status = "PASS" if result.passed else "FAIL"
        code = result.response.status_code if result.response else "-"
        click.echo(f"  [{status}] {result.name} ({code})")
    sys.exit(_report(issues, fail_on_warnings))


async def _run_steps(steps, config: ValidationConfig, registry: SchemaRegistry, issues: IssueLogger, retry: bool):
    strategy = ExponentialBackoff() if retry else NoRetry()
    async with HttpTransport(config.account, config.concurrency, config.timeout, strategy) as transport:
        runner = ScenarioRunner(transport, issues, config=config, registry=registry)
        return await runner.run(steps)
