"""
Shared pytest fixtures for gitgov tests.
"""

from __future__ import annotations

from pathlib import Path

import pytest
import requests
from dulwich.repo import Repo
from requests.structures import CaseInsensitiveDict

TESTS_DIR = Path(__file__).resolve().parent
EMAILS_DIR = TESTS_DIR / "emails"
PAGES_DIR = TESTS_DIR / "pages"

TRUSTED_HOST = "www.gov.uk"
PAGE_URL = "https://www.gov.uk/government/consultations/bus-open-data"
HTML_ATTACHMENT_URL = "https://www.gov.uk/government/consultations/bus-open-data/bus-open-data-html"
RESPONSE_PDF_URL = (
    "https://www.gov.uk/government/uploads/system/uploads/attachment_data/file/792313/"
    "bus-open-data-consultation-response.pdf"
)
CASE_PDF_URL = (
    "https://www.gov.uk/government/uploads/system/uploads/attachment_data/file/722576/"
    "bus-open-data-case-for-change.pdf"
)
RESPONSE_PDF = b"%PDF-1.4\n% consultation response\n\x00\x01\xfe\xff%%EOF\n"
CASE_PDF = b"%PDF-1.7\n% case for change\n\xde\xad\xbe\xef%%EOF\n"

AUTHOR = b"GOV.UK <info@gov.uk>"
COMMITTER = b"gitgov <gitgov@localhost>"


def read_email(name: str) -> bytes:
    return (EMAILS_DIR / name).read_bytes()


def read_page(name: str) -> bytes:
    return (PAGES_DIR / name).read_bytes()


class FakeResponse:
    """Just enough of requests.Response for the fetcher."""

    def __init__(self, content: bytes, content_type: str, status_code: int = 200) -> None:
        self.content = content
        self.status_code = status_code
        self.headers = CaseInsensitiveDict({"Content-Type": content_type})
        self.encoding = "utf-8" if "charset" in content_type else None


def html_response(content: bytes) -> FakeResponse:
    return FakeResponse(content, "text/html; charset=utf-8")


def pdf_response(content: bytes) -> FakeResponse:
    return FakeResponse(content, "application/pdf")


class FakeSession:
    """Serves canned responses by URL and records every request."""

    def __init__(self, routes: dict[str, FakeResponse | Exception] | None = None) -> None:
        self.routes = dict(routes or {})
        self.headers: dict[str, str] = {}
        self.calls: list[str] = []

    def get(self, url: str, timeout: float | None = None) -> FakeResponse:
        self.calls.append(url)
        route = self.routes.get(url)
        if route is None:
            return FakeResponse(b"Not found", "text/plain", status_code=404)
        if isinstance(route, Exception):
            raise route
        return route


@pytest.fixture
def bus_routes() -> dict[str, FakeResponse]:
    """The bus open data consultation with its attachments."""
    return {
        PAGE_URL: html_response(read_page("bus-open-data.html")),
        HTML_ATTACHMENT_URL: html_response(read_page("bus-open-data-html.html")),
        RESPONSE_PDF_URL: pdf_response(RESPONSE_PDF),
        CASE_PDF_URL: pdf_response(CASE_PDF),
    }


@pytest.fixture
def session(bus_routes) -> FakeSession:
    return FakeSession(bus_routes)


@pytest.fixture
def bare_repo(tmp_path) -> Repo:
    """Empty bare repository."""
    path = tmp_path / "archive.git"
    path.mkdir()
    repo = Repo.init_bare(str(path))
    yield repo
    repo.close()


@pytest.fixture
def unreachable() -> requests.ConnectionError:
    return requests.ConnectionError("Connection refused")
