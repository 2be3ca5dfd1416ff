"""Health check endpoint — verifies the backend can reach and authenticate to Fineract."""

from fastapi import APIRouter, Depends

from fineract_seed.api.deps import get_client
from fineract_seed.core.fineract_client import FineractClient
from fineract_seed.core.models import HealthResponse

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
def health_check(client: FineractClient = Depends(get_client)):
    """Check authentication and connectivity to the Fineract API."""
    auth = client.session.auth
    auth_ok = auth.is_authenticated() if hasattr(auth, "is_authenticated") else auth is not None
    fineract_ok = auth_ok and client.check_connection()

    return HealthResponse(
        status="ok" if fineract_ok else "degraded",
        services={
            "auth": "ok" if auth_ok else "error",
            "fineract": "ok" if fineract_ok else "error",
        },
    )
