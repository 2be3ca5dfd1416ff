"""Resource discovery — finds workbook and direct-upload template files on disk."""

import logging
from pathlib import Path

from fineract_seed.core.workbook_reader import WORKBOOK_SUFFIXES

logger = logging.getLogger(__name__)


def _spreadsheets_in(directory: Path) -> list[Path]:
    if not directory.is_dir():
        logger.warning(f"Template directory not found: {directory}")
        return []
    return sorted(
        p for p in directory.iterdir()
        if p.is_file()
        and p.suffix.lower() in WORKBOOK_SUFFIXES
        # Office lock files and hidden files
        and not p.name.startswith(("~$", "."))
    )


def discover_workbooks(data_dir: Path, workbook_subdir: str) -> list[Path]:
    """Workbooks whose sheets are imported row by row through the JSON API."""
    paths = _spreadsheets_in(data_dir / workbook_subdir)
    logger.info(f"Discovered {len(paths)} workbook(s) under {data_dir / workbook_subdir}")
    return paths


def discover_templates(data_dir: Path) -> list[Path]:
    """Templates uploaded as whole files to a bulk-import endpoint."""
    paths = _spreadsheets_in(data_dir)
    logger.info(f"Discovered {len(paths)} direct upload template(s) under {data_dir}")
    return paths
