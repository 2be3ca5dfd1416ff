"""Run identifiers: UUID v7, so ids sort by start time."""

from uuid_extensions import uuid7

RUN_ID_PREFIX = "run_"


def new_run_id() -> str:
    """Return e.g. "run_01926f4e8b7d7a8e9c0d1e2f3a4b5c6d" (32 hex chars, no hyphens)."""
    return f"{RUN_ID_PREFIX}{uuid7().hex}"
