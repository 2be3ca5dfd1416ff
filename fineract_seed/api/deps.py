"""FastAPI dependencies for the shared Fineract client."""

from fastapi import HTTPException, Request

from fineract_seed.core.fineract_client import FineractClient


def get_client(request: Request) -> FineractClient:
    """Return the client created at startup.

    Raises 503 if the application started without one.
    """
    client = getattr(request.app.state, "client", None)
    if client is None:
        raise HTTPException(status_code=503, detail="Fineract client is not initialized")
    return client
