"""Typed containers shared across the pipeline."""

from __future__ import annotations

import posixpath
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Optional, Union
from urllib.parse import urlsplit


@dataclass(frozen=True)
class ChangeEvent:
    """One document update announced by a notification email."""

    url: str
    change: str
    updated_at: str
    category: Optional[str] = None

    def commit_message(self) -> str:
        message = f"{self.updated_at}: {self.change}"
        if self.category:
            message = f"{message} [{self.category}]"
        return message


@dataclass(frozen=True)
class DocumentRevision:
    """Entry of a page's public change history."""

    timestamp: datetime
    summary: str


@dataclass
class HtmlDocument:
    """Canonical main content of a page plus what it links to."""

    canonical_body: str
    attachment_urls: list[str] = field(default_factory=list)
    revision_history: list[DocumentRevision] = field(default_factory=list)

    @property
    def payload(self) -> bytes:
        return self.canonical_body.encode("utf-8")


@dataclass
class BinaryDocument:
    """Opaque file retrieved verbatim."""

    content: bytes

    @property
    def payload(self) -> bytes:
        return self.content


Document = Union[HtmlDocument, BinaryDocument]


@dataclass
class FetchedDocument:
    """A document coupled with the URL it was retrieved from."""

    url: str
    document: Document

    @property
    def is_html(self) -> bool:
        return isinstance(self.document, HtmlDocument)

    @property
    def storage_path(self) -> str:
        return storage_path_for(self.url, html=self.is_html)


def storage_path_for(url: str, html: bool) -> str:
    """Map a URL onto its path in the archive tree."""
    path = urlsplit(url).path
    if path.startswith("/"):
        path = path[1:]
    if not path or path.endswith("/"):
        path = f"{path}index"
    if html:
        root, _ = posixpath.splitext(path)
        path = f"{root}.html"
    return path


@dataclass
class PendingEmail:
    """Raw email waiting in the pending tree."""

    path: Path
    domain: str
    recipients: str

    @property
    def relative_path(self) -> Path:
        return Path(self.domain) / self.recipients / self.path.name


@dataclass
class ProcessResult:
    """Outcome of folding one email into the history."""

    email: PendingEmail
    events: list[ChangeEvent]
    commit_id: Optional[str]
    archived_to: Optional[Path] = None
    already_recorded: bool = False
