"""Import run endpoints.

Runs execute synchronously inside the request, one at a time.
"""

import logging
import threading

from fastapi import APIRouter, Depends, HTTPException, Request

from fineract_seed.api.deps import get_client
from fineract_seed.core.config import settings
from fineract_seed.core.fineract_client import FineractClient
from fineract_seed.core.manifest import ManifestError
from fineract_seed.core.models import ImportRunResponse
from fineract_seed.core.orchestrator import create_context, run_import

logger = logging.getLogger(__name__)

router = APIRouter()

_run_lock = threading.Lock()


@router.post("/imports", response_model=ImportRunResponse)
def create_import(request: Request, client: FineractClient = Depends(get_client)):
    """Run a full import from the configured data directory and return its summary."""
    if not _run_lock.acquire(blocking=False):
        raise HTTPException(status_code=409, detail="An import run is already in progress")
    try:
        ctx = create_context(client, settings)
        summary = run_import(
            ctx,
            settings.data_path,
            workbook_subdir=settings.workbook_subdir,
            manifest_path=settings.data_path / settings.manifest_file,
        )
    except ManifestError as e:
        raise HTTPException(status_code=400, detail=f"Invalid template manifest: {e}")
    finally:
        _run_lock.release()

    response = summary.to_response()
    request.app.state.latest_run = response
    return response


@router.get("/imports/latest", response_model=ImportRunResponse)
def get_latest_import(request: Request):
    """Summary of the most recent import run."""
    latest = getattr(request.app.state, "latest_run", None)
    if latest is None:
        raise HTTPException(status_code=404, detail="No import run yet")
    return latest
