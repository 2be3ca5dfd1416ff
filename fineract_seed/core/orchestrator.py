"""Import Orchestrator — runs a full seeding pass and aggregates its outcome.

Pipeline:
1. Read every workbook under the workbook directory, classify its sheets
2. Import the recognized sheets in entity dependency order
3. Upload the direct templates through their manifest endpoints
4. Build the run summary (totals, exit code)

Nothing below the run aborts it: unreadable workbooks, unrecognized sheets,
rejected or failed rows and failed templates are logged and tallied. Only an
interruption stops the run early.
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Callable, Optional

from fineract_seed.core.classifier import classify_sheet
from fineract_seed.core.config import Settings
from fineract_seed.core.discovery import discover_templates, discover_workbooks
from fineract_seed.core.existing_index import ExistingEntityIndex
from fineract_seed.core.fineract_client import FineractClient
from fineract_seed.core.header_map import HeaderMap, read_header_map
from fineract_seed.core.id_gen import new_run_id
from fineract_seed.core.manifest import UploadManifest, load_manifest
from fineract_seed.core.models import (
    DEPENDENCY_ORDER,
    EntityType,
    HttpMethod,
    ImportRunResponse,
    SheetOutcomeResponse,
    TemplateOutcomeResponse,
)
from fineract_seed.core.projector import ProjectionContext
from fineract_seed.core.sheet_processor import ImportContext, ImportInterrupted, SheetOutcome, process_sheet
from fineract_seed.core.upload_driver import RetryPolicy, UploadDriver
from fineract_seed.core.workbook_reader import Sheet, WorkbookReadError, load_workbook, load_workbook_bytes

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURES = 1
EXIT_INTERRUPTED = 130


@dataclass
class TemplateOutcome:
    template: str
    endpoint: Optional[str]
    uploaded: bool
    message: Optional[str] = None


@dataclass
class RunSummary:
    run_id: str
    started_at: datetime
    completed_at: Optional[datetime] = None
    sheets: list[SheetOutcome] = field(default_factory=list)
    templates: list[TemplateOutcome] = field(default_factory=list)
    unrecognized_sheets: list[str] = field(default_factory=list)
    unreadable_workbooks: list[str] = field(default_factory=list)
    interrupted: bool = False

    @property
    def totals(self) -> dict[str, int]:
        return {
            "created": sum(s.created for s in self.sheets),
            "skipped": sum(s.skipped for s in self.sheets),
            "failed": sum(s.failed for s in self.sheets),
            "rejected": sum(s.rejected for s in self.sheets),
            "templates_uploaded": sum(1 for t in self.templates if t.uploaded),
            "templates_failed": sum(1 for t in self.templates if not t.uploaded),
            "unreadable_workbooks": len(self.unreadable_workbooks),
            "unrecognized_sheets": len(self.unrecognized_sheets),
        }

    @property
    def has_failures(self) -> bool:
        totals = self.totals
        return bool(totals["failed"] or totals["templates_failed"] or totals["unreadable_workbooks"])

    @property
    def exit_code(self) -> int:
        if self.interrupted:
            return EXIT_INTERRUPTED
        return EXIT_FAILURES if self.has_failures else EXIT_OK

    @property
    def status(self) -> str:
        if self.interrupted:
            return "interrupted"
        return "completed_with_failures" if self.has_failures else "completed"

    def to_response(self) -> ImportRunResponse:
        return ImportRunResponse(
            run_id=self.run_id,
            started_at=self.started_at,
            completed_at=self.completed_at,
            status=self.status,
            exit_code=self.exit_code,
            totals=self.totals,
            sheets=[
                SheetOutcomeResponse(
                    workbook=s.workbook,
                    sheet=s.sheet,
                    entity_type=s.entity_type,
                    created=s.created,
                    skipped=s.skipped,
                    failed=s.failed,
                    rejected=s.rejected,
                )
                for s in self.sheets
            ],
            templates=[
                TemplateOutcomeResponse(
                    template=t.template,
                    endpoint=t.endpoint,
                    uploaded=t.uploaded,
                    message=t.message,
                )
                for t in self.templates
            ],
        )


@dataclass
class ClassifiedSheet:
    workbook: str
    sheet: Sheet
    entity_type: EntityType
    header: HeaderMap


def create_context(
    client: FineractClient,
    settings: Settings,
    sleep: Callable[[float], None] = time.sleep,
    today: Optional[date] = None,
) -> ImportContext:
    """Wire the run-scoped collaborators for one import run."""
    return ImportContext(
        driver=UploadDriver(client, RetryPolicy.from_settings(settings), sleep=sleep),
        index=ExistingEntityIndex(client, page_size=settings.client_page_size),
        projection=ProjectionContext(
            locale=settings.fineract_locale,
            date_format=settings.fineract_date_format,
            today=today or date.today(),
        ),
    )


def collect_sheets(workbook_paths: list[Path], summary: RunSummary) -> list[ClassifiedSheet]:
    """Read and classify every sheet, ordered by entity dependency.

    Sheets of the same type keep their discovery order.
    """
    classified: list[ClassifiedSheet] = []
    for path in workbook_paths:
        try:
            workbook = load_workbook(path)
        except WorkbookReadError as e:
            logger.error(f"Skipping unreadable workbook {path.name}: {e}")
            summary.unreadable_workbooks.append(path.name)
            continue

        for sheet in workbook.sheets:
            header = read_header_map(sheet)
            entity_type = classify_sheet(path.name, sheet.name, header)
            if entity_type is None:
                summary.unrecognized_sheets.append(f"{path.name}/{sheet.name}")
                continue
            classified.append(ClassifiedSheet(path.name, sheet, entity_type, header))

    classified.sort(key=lambda c: DEPENDENCY_ORDER.index(c.entity_type))
    return classified


def upload_template(ctx: ImportContext, path: Path, manifest: UploadManifest) -> TemplateOutcome:
    """Validate and deliver one direct-upload template.

    Raises ImportInterrupted when the upload is interrupted.
    """
    spec = manifest.spec_for(path.name)
    if spec is None:
        logger.warning(f"No endpoint configured for template: {path.name}")
        return TemplateOutcome(path.name, None, False, "no endpoint configured")

    try:
        content = path.read_bytes()
        load_workbook_bytes(path.name, content)
    except (OSError, WorkbookReadError) as e:
        logger.error(f"Template validation failed for {path.name}: {e}")
        return TemplateOutcome(path.name, spec.endpoint, False, f"validation failed: {e}")

    if spec.method == HttpMethod.GET:
        result = ctx.driver.retrieve_template(spec.endpoint, params=spec.resolved_params())
    else:
        result = ctx.driver.upload_file(
            spec.endpoint,
            path.name,
            content,
            entity_type=spec.resolved_entity_type(),
            params=spec.resolved_params(),
        )

    if result.interrupted:
        raise ImportInterrupted(f"Interrupted while uploading template {path.name}")
    if result.ok:
        logger.info(f"Successfully uploaded {path.name} to {spec.endpoint}")
        return TemplateOutcome(path.name, spec.endpoint, True)
    return TemplateOutcome(path.name, spec.endpoint, False, result.error)


def run_import(
    ctx: ImportContext,
    data_dir: Path,
    workbook_subdir: str = "workbook-templates",
    manifest_path: Optional[Path] = None,
) -> RunSummary:
    """Run one full import: JSON workbooks first, then direct templates.

    A bad manifest raises ManifestError before anything is sent.
    """
    summary = RunSummary(run_id=new_run_id(), started_at=datetime.now(timezone.utc))
    manifest = load_manifest(manifest_path or data_dir / "manifest.yaml")
    logger.info(f"Starting import run {summary.run_id} from {data_dir}")

    try:
        for item in collect_sheets(discover_workbooks(data_dir, workbook_subdir), summary):
            try:
                outcome = process_sheet(ctx, item.workbook, item.sheet, item.entity_type, item.header)
            except ImportInterrupted as e:
                if e.outcome is not None:
                    summary.sheets.append(e.outcome)
                raise
            summary.sheets.append(outcome)

        for path in discover_templates(data_dir):
            try:
                summary.templates.append(upload_template(ctx, path, manifest))
            except ImportInterrupted:
                summary.templates.append(TemplateOutcome(path.name, None, False, "interrupted"))
                raise
            except KeyboardInterrupt as e:
                summary.templates.append(TemplateOutcome(path.name, None, False, "interrupted"))
                raise ImportInterrupted(f"Interrupted while uploading template {path.name}") from e
    except ImportInterrupted as e:
        summary.interrupted = True
        logger.warning(f"Import run {summary.run_id} interrupted: {e}")
    finally:
        summary.completed_at = datetime.now(timezone.utc)

    totals = summary.totals
    logger.info(
        f"Import run {summary.run_id} finished ({summary.status}): "
        f"created={totals['created']} skipped={totals['skipped']} failed={totals['failed']} "
        f"rejected={totals['rejected']} templates uploaded={totals['templates_uploaded']} "
        f"failed={totals['templates_failed']}"
    )
    return summary
