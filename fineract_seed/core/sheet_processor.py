"""Sheet processing — projects, reconciles and delivers the rows of one sheet.

Every entity type except Currencies is handled row by row: project the row,
skip it when its natural key already exists remotely, otherwise POST it.
Roles additionally get a permission update, whether the role was just created
or already existed. Currencies collapse the whole sheet into one PUT.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from fineract_seed.core.existing_index import ExistingEntityIndex
from fineract_seed.core.header_map import HeaderMap, is_blank_row, read_header_map
from fineract_seed.core.models import ENTITY_ENDPOINTS, EntityType, HttpMethod
from fineract_seed.core.projector import (
    ProjectedRow,
    ProjectionContext,
    RowRejected,
    build_currencies_payload,
    build_permissions_payload,
    parse_permission_tokens,
    project_currency_codes,
    project_row,
    select_permissions,
    thaw,
)
from fineract_seed.core.upload_driver import DeliveryResult, UploadDriver
from fineract_seed.core.workbook_reader import Sheet

logger = logging.getLogger(__name__)

# Types whose follow-up calls need the id of the created entity
NEEDS_RESOURCE_ID = frozenset({EntityType.ROLES, EntityType.TELLERS})


class ImportInterrupted(Exception):
    """Raised when the run is interrupted while an item is being delivered.

    `outcome` carries the tally of the sheet that was in progress.
    """

    def __init__(self, message: str, outcome: Optional["SheetOutcome"] = None):
        super().__init__(message)
        self.outcome = outcome


@dataclass
class SheetOutcome:
    workbook: str
    sheet: str
    entity_type: Optional[EntityType] = None
    created: int = 0
    skipped: int = 0
    failed: int = 0
    rejected: int = 0

    @property
    def attempted(self) -> int:
        return self.created + self.skipped + self.failed


@dataclass
class ImportContext:
    """Collaborators shared by every sheet of one run."""
    driver: UploadDriver
    index: ExistingEntityIndex
    projection: ProjectionContext


def process_sheet(
    ctx: ImportContext,
    workbook_name: str,
    sheet: Sheet,
    entity_type: EntityType,
    header: Optional[HeaderMap] = None,
) -> SheetOutcome:
    """Import one classified sheet and return its tally.

    Raises ImportInterrupted when delivery was interrupted; the item being
    delivered is already counted as failed.
    """
    if header is None:
        header = read_header_map(sheet)
    outcome = SheetOutcome(workbook=workbook_name, sheet=sheet.name, entity_type=entity_type)
    logger.info(f"Processing sheet '{sheet.name}' of {workbook_name} as {entity_type.value}")

    try:
        if entity_type == EntityType.CURRENCIES:
            _process_currencies(ctx, sheet, header, outcome)
        else:
            _process_rows(ctx, sheet, entity_type, header, outcome)
    except ImportInterrupted as e:
        e.outcome = outcome
        raise
    except KeyboardInterrupt as e:
        # Interrupted outside a retry sleep, mid-request
        outcome.failed += 1
        raise ImportInterrupted(f"Interrupted while processing sheet '{sheet.name}'", outcome) from e

    logger.info(
        f"Sheet '{sheet.name}' ({entity_type.value}): created={outcome.created} "
        f"skipped={outcome.skipped} failed={outcome.failed} rejected={outcome.rejected}"
    )
    return outcome


def _process_rows(
    ctx: ImportContext,
    sheet: Sheet,
    entity_type: EntityType,
    header: HeaderMap,
    outcome: SheetOutcome,
) -> None:
    for idx in range(header.data_start, len(sheet.rows)):
        row = sheet.rows[idx]
        if is_blank_row(row):
            continue
        row_number = idx + 1

        try:
            projected = project_row(entity_type, row, row_number, header, ctx.projection)
        except Exception as e:
            outcome.failed += 1
            logger.error(
                f"{entity_type.value} sheet '{sheet.name}' row {row_number}: projection failed: {e}",
                exc_info=True,
            )
            continue

        if isinstance(projected, RowRejected):
            outcome.rejected += 1
            logger.warning(
                f"{entity_type.value} sheet '{sheet.name}' row {row_number} rejected: {projected.reason}"
            )
            continue

        try:
            _import_row(ctx, sheet, projected, outcome)
        except ImportInterrupted:
            raise
        except Exception as e:
            outcome.failed += 1
            logger.error(
                f"{entity_type.value} sheet '{sheet.name}' row {row_number} ({projected.label}) "
                f"failed: {e}; payload={thaw(projected.payload)}",
                exc_info=True,
            )


def _import_row(ctx: ImportContext, sheet: Sheet, projected: ProjectedRow, outcome: SheetOutcome) -> None:
    entity_type = projected.entity_type
    existing_id = ctx.index.lookup(entity_type, projected.natural_key)

    if ctx.index.contains(entity_type, projected.natural_key):
        outcome.skipped += 1
        logger.info(f"{entity_type.value} '{projected.label}' already exists (id={existing_id}); skipping")
        if entity_type == EntityType.ROLES and existing_id is not None:
            _grant_permissions(ctx, projected, existing_id)
        return

    result = ctx.driver.deliver(HttpMethod.POST, ENTITY_ENDPOINTS[entity_type], projected.payload)
    if result.interrupted:
        outcome.failed += 1
        raise ImportInterrupted(f"Interrupted while creating {entity_type.value} '{projected.label}'")
    if not result.ok:
        outcome.failed += 1
        _log_delivery_failure(sheet, projected, result)
        return

    outcome.created += 1
    resource_id = result.resource_id
    ctx.index.record(entity_type, projected.natural_key, resource_id)
    logger.info(f"Created {entity_type.value} '{projected.label}' (id={resource_id})")

    if resource_id is None and entity_type in NEEDS_RESOURCE_ID:
        logger.warning(f"{entity_type.value} '{projected.label}' created but no resourceId returned")
    if entity_type == EntityType.ROLES and resource_id is not None:
        _grant_permissions(ctx, projected, resource_id)


def _grant_permissions(ctx: ImportContext, projected: ProjectedRow, role_id: int) -> None:
    tokens = parse_permission_tokens(projected.permissions)
    if not tokens:
        return

    granted, dropped = select_permissions(tokens, ctx.index.permission_names())
    for perm in dropped:
        logger.warning(f"Permission '{perm}' is not available; dropped for role '{projected.label}'")
    if not granted:
        logger.warning(
            f"No valid permissions for role '{projected.label}'; all {len(tokens)} requested were unavailable"
        )
        return

    endpoint = f"roles/{role_id}/permissions"
    result = ctx.driver.deliver(HttpMethod.PUT, endpoint, build_permissions_payload(granted))
    if result.interrupted:
        # The role itself keeps its created or skipped tally
        logger.warning(
            f"Permission update for role '{projected.label}' (id={role_id}) aborted; "
            f"{len(granted)} permission(s) not assigned"
        )
        raise ImportInterrupted(f"Interrupted while updating permissions of role '{projected.label}'")
    if result.ok:
        logger.info(
            f"Assigned {len(granted)} permission(s) to role '{projected.label}' "
            f"(skipped {len(dropped)} unavailable)"
        )
    else:
        logger.error(
            f"Permission update for role '{projected.label}' failed "
            f"({result.status_code}): {result.body}"
        )


def _process_currencies(ctx: ImportContext, sheet: Sheet, header: HeaderMap, outcome: SheetOutcome) -> None:
    codes = project_currency_codes(sheet, header)
    if not codes:
        logger.info(f"No currency codes found in sheet '{sheet.name}'")
        return

    existing = ctx.index.get(EntityType.CURRENCIES)
    seen: set[str] = set(existing)
    new_rows = 0
    for _, code in codes:
        if code not in seen:
            new_rows += 1
            seen.add(code)

    if new_rows == 0:
        outcome.skipped += len(codes)
        logger.info(f"All {len(codes)} currencies already selected; skipping update")
        return

    code_list = [code for _, code in codes]
    payload = build_currencies_payload(code_list)
    result = ctx.driver.deliver(HttpMethod.PUT, ENTITY_ENDPOINTS[EntityType.CURRENCIES], payload)
    if result.interrupted:
        outcome.failed += len(codes)
        raise ImportInterrupted("Interrupted while updating currencies")
    if not result.ok:
        outcome.failed += len(codes)
        logger.error(
            f"currencies sheet '{sheet.name}' rows {codes[0][0]}-{codes[-1][0]}: update failed "
            f"({result.status_code}): {result.body}; payload={thaw(payload)}"
        )
        return

    outcome.created += new_rows
    outcome.skipped += len(codes) - new_rows
    for _, code in codes:
        ctx.index.record(EntityType.CURRENCIES, code, None)
    logger.info(f"Updated currencies: {code_list}")


def _log_delivery_failure(sheet: Sheet, projected: ProjectedRow, result: DeliveryResult) -> None:
    logger.error(
        f"{projected.entity_type.value} sheet '{sheet.name}' row {projected.row_number} "
        f"({projected.label}): delivery failed after {result.attempts} attempt(s) "
        f"({result.error}); response={result.body}; payload={thaw(projected.payload)}"
    )
