"""Shared test fixtures for the fineract_seed test suite."""

import json
import tempfile
from dataclasses import dataclass, field
from datetime import date, datetime
from pathlib import Path
from typing import Any, Optional

import openpyxl
import pytest
import requests

from fineract_seed.core.cells import BLANK, Cell, CellKind
from fineract_seed.core.existing_index import ExistingEntityIndex
from fineract_seed.core.fineract_client import FineractClient
from fineract_seed.core.projector import ProjectionContext
from fineract_seed.core.sheet_processor import ImportContext
from fineract_seed.core.upload_driver import RetryPolicy, UploadDriver
from fineract_seed.core.workbook_reader import Sheet

BASE_URL = "https://fineract.test/fineract-provider/api/v1"
RUN_DATE = date(2025, 3, 5)


def make_response(status: int = 200, body: Any = None, url: str = BASE_URL) -> requests.Response:
    """Build a real requests.Response with a JSON body."""
    response = requests.Response()
    response.status_code = status
    response.url = url
    response.encoding = "utf-8"
    if body is None:
        response._content = b""
    else:
        response._content = json.dumps(body).encode("utf-8")
        response.headers["Content-Type"] = "application/json"
    return response


@dataclass
class RecordedCall:
    method: str
    endpoint: str
    kwargs: dict = field(default_factory=dict)

    @property
    def json(self) -> Any:
        return self.kwargs.get("json")


class FakeSession(requests.Session):
    """requests.Session that answers from queued responses instead of the network.

    Responses are queued per (method, endpoint); the last one queued keeps
    answering once the others are used up. Unknown routes answer 404.
    """

    def __init__(self):
        super().__init__()
        self.routes: dict[tuple[str, str], list] = {}
        self.calls: list[RecordedCall] = []

    def add(self, method: str, endpoint: str, *responses) -> "FakeSession":
        self.routes.setdefault((method, endpoint), []).extend(responses)
        return self

    def request(self, method, url, **kwargs):
        endpoint = url[len(BASE_URL) + 1:] if url.startswith(BASE_URL + "/") else url
        self.calls.append(RecordedCall(method, endpoint, kwargs))
        queue = self.routes.get((method, endpoint))
        if not queue:
            return make_response(404, {"defaultUserMessage": "not found"}, url=url)
        item = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(item, Exception):
            raise item
        return item

    def calls_to(self, method: str, endpoint: Optional[str] = None) -> list[RecordedCall]:
        return [
            c for c in self.calls
            if c.method == method and (endpoint is None or c.endpoint == endpoint)
        ]


class RecordingSleep:
    def __init__(self):
        self.calls: list[float] = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def fake_session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def client(fake_session) -> FineractClient:
    return FineractClient(BASE_URL, tenant="default", session=fake_session)


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def ctx(client, sleep) -> ImportContext:
    return make_context(client, sleep)


def make_context(client: FineractClient, sleep=None, policy: Optional[RetryPolicy] = None) -> ImportContext:
    return ImportContext(
        driver=UploadDriver(client, policy or RetryPolicy(), sleep=sleep or RecordingSleep()),
        index=ExistingEntityIndex(client, page_size=2),
        projection=ProjectionContext(locale="en", date_format="dd MMMM yyyy", today=RUN_DATE),
    )


def to_cell(value: Any) -> Cell:
    """Typed cell for a plain Python value, as the workbook reader would yield it."""
    if value is None:
        return BLANK
    if isinstance(value, bool):
        return Cell(CellKind.BOOLEAN, value=value)
    if isinstance(value, (int, float)):
        return Cell(CellKind.NUMBER, value=value)
    if isinstance(value, (date, datetime)):
        return Cell(CellKind.DATE, value=value)
    return Cell(CellKind.STRING, value=str(value))


def make_sheet(rows: list[list], name: str = "Sheet1") -> Sheet:
    return Sheet(name=name, rows=[[to_cell(v) for v in row] for row in rows])


def create_workbook(
    sheets: dict[str, list[list]],
    directory: Optional[Path] = None,
    file_name: Optional[str] = None,
) -> Path:
    """Create an .xlsx file with the given sheets (name -> rows)."""
    wb = openpyxl.Workbook()
    wb.remove(wb.active)
    for sheet_name, rows in sheets.items():
        ws = wb.create_sheet(sheet_name)
        for row in rows:
            ws.append(row)
    if directory is None:
        path = Path(tempfile.mktemp(suffix=".xlsx"))
    else:
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / (file_name or "Workbook.xlsx")
    wb.save(path)
    wb.close()
    return path
