"""Command line entry point.

Usage:
    # Seed Fineract from ./data (or DATA_DIR)
    fineract-seed run [--data-dir PATH] [--log-level DEBUG]

    # Show how each sheet of a workbook would be classified, without calling the API
    fineract-seed classify data/workbook-templates/Roles.xls
"""

import logging
import sys
from pathlib import Path
from typing import Optional

import click

from fineract_seed.core.auth import build_auth_provider
from fineract_seed.core.classifier import classify_sheet
from fineract_seed.core.config import settings
from fineract_seed.core.fineract_client import FineractClient
from fineract_seed.core.header_map import read_header_map
from fineract_seed.core.manifest import ManifestError
from fineract_seed.core.orchestrator import EXIT_INTERRUPTED, create_context, run_import
from fineract_seed.core.workbook_reader import WorkbookReadError, load_workbook

logger = logging.getLogger("fineract_seed.cli")


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


@click.group()
@click.option("--log-level", default=None, help="Logging level (default: LOG_LEVEL or INFO)")
def cli(log_level: Optional[str]):
    """Seed a Fineract instance from spreadsheet templates."""
    _configure_logging(log_level or settings.log_level)


@cli.command("run")
@click.option("--data-dir", type=click.Path(file_okay=False, path_type=Path), default=None,
              help="Directory holding the templates (default: DATA_DIR)")
def run_cmd(data_dir: Optional[Path]):
    """Import every workbook and template, then exit with the run's status."""
    data_path = data_dir or settings.data_path
    client = FineractClient.from_settings(settings, auth=build_auth_provider(settings))
    ctx = create_context(client, settings)

    try:
        summary = run_import(
            ctx,
            data_path,
            workbook_subdir=settings.workbook_subdir,
            manifest_path=data_path / settings.manifest_file,
        )
    except ManifestError as e:
        raise click.ClickException(str(e))
    except KeyboardInterrupt:
        click.echo("\nInterrupted", err=True)
        sys.exit(EXIT_INTERRUPTED)
    finally:
        client.close()

    totals = summary.totals
    click.echo(f"\nRun {summary.run_id}: {summary.status}")
    click.echo(f"  Created:  {totals['created']}")
    click.echo(f"  Skipped:  {totals['skipped']}")
    click.echo(f"  Failed:   {totals['failed']}")
    click.echo(f"  Rejected: {totals['rejected']}")
    click.echo(f"  Templates uploaded: {totals['templates_uploaded']}, failed: {totals['templates_failed']}")
    if summary.unreadable_workbooks:
        click.echo(f"  Unreadable workbooks: {', '.join(summary.unreadable_workbooks)}")
    if summary.unrecognized_sheets:
        click.echo(f"  Unrecognized sheets: {', '.join(summary.unrecognized_sheets)}")
    sys.exit(summary.exit_code)


@cli.command("classify")
@click.argument("files", nargs=-1, required=True, type=click.Path(exists=True, dir_okay=False, path_type=Path))
def classify_cmd(files: tuple[Path, ...]):
    """Print the entity type detected for each sheet of FILES."""
    failed = False
    for path in files:
        try:
            workbook = load_workbook(path)
        except WorkbookReadError as e:
            click.echo(f"{path.name}: {e}", err=True)
            failed = True
            continue
        for sheet in workbook.sheets:
            entity_type = classify_sheet(path.name, sheet.name, read_header_map(sheet))
            label = entity_type.value if entity_type else "unrecognized"
            click.echo(f"{path.name} / {sheet.name}: {label}")
    if failed:
        sys.exit(1)


if __name__ == "__main__":
    cli()
