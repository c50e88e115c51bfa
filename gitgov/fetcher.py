"""Retrieve a changed page together with the attachments it links to."""

from __future__ import annotations

import logging
from collections import deque
from typing import Iterable
from urllib.parse import urljoin, urlsplit

import requests
from bs4 import BeautifulSoup
from requests import Response

from .canonical import CANONICAL_FORMATTER, HTML_PARSER, canonicalize
from .errors import ContentShapeError, NetworkError, RenderError
from .models import BinaryDocument, DocumentRevision, FetchedDocument, HtmlDocument
from .utils import normalize_url, parse_iso_datetime, url_host

logger = logging.getLogger(__name__)

ATTACHMENT_SELECTOR = ".attachment .title a, .attachment .download a"
HISTORY_SELECTOR = "#full-history li"


def parse_html_document(html: str, url: str | None = None) -> HtmlDocument:
    """Extract the canonical main content, attachments and history of a page.

    Attachment hrefs are resolved against ``url`` when it is given.
    """
    soup = BeautifulSoup(html, HTML_PARSER)
    main = soup.find("main")
    if main is None:
        raise ContentShapeError(url)

    attachments: list[str] = []
    for link in soup.select(ATTACHMENT_SELECTOR):
        href = link.get("href")
        if not href:
            continue
        try:
            resolved = urljoin(url, href) if url else href
            urlsplit(resolved)
        except ValueError as exc:
            logger.warning("Skipping unparseable attachment link %r on %s: %s", href, url, exc)
            continue
        attachments.append(resolved)

    return HtmlDocument(
        canonical_body=canonicalize(main.decode(formatter=CANONICAL_FORMATTER)),
        attachment_urls=attachments,
        revision_history=_revision_history(soup, url),
    )


def _revision_history(soup: BeautifulSoup, url: str | None) -> list[DocumentRevision]:
    history: list[DocumentRevision] = []
    for entry in soup.select(HISTORY_SELECTOR):
        time_tag = entry.find("time", attrs={"datetime": True})
        summary = entry.find("p")
        if time_tag is None or summary is None:
            logger.warning("Dropping history entry without time or summary on %s", url)
            continue
        try:
            timestamp = parse_iso_datetime(time_tag["datetime"])
        except ValueError:
            logger.warning(
                "Dropping history entry with bad timestamp %r on %s", time_tag["datetime"], url
            )
            continue
        history.append(DocumentRevision(timestamp, summary.decode_contents()))
    return history


class DocumentFetcher:
    """Breadth-first crawl of a page and its attachments on trusted hosts."""

    def __init__(
        self,
        trusted_host: str,
        extra_hosts: Iterable[str] = (),
        session: requests.Session | None = None,
        timeout: float = 30.0,
        max_depth: int = 3,
        max_documents: int = 500,
        user_agent: str | None = None,
    ) -> None:
        self.allowed_hosts = {trusted_host.lower(), *(host.lower() for host in extra_hosts)}
        self.session = session or requests.Session()
        if user_agent:
            self.session.headers["User-Agent"] = user_agent
        self.timeout = timeout
        self.max_depth = max_depth
        self.max_documents = max_documents

    def fetch(self, seed: str) -> list[FetchedDocument]:
        """Fetch ``seed`` and everything reachable through its attachment links."""
        seed = normalize_url(seed)
        queue: deque[tuple[str, int]] = deque([(seed, 0)])
        seen = {seed}
        documents: list[FetchedDocument] = []
        capped = False

        while queue:
            url, depth = queue.popleft()
            if url_host(url) not in self.allowed_hosts:
                logger.info("Skipping offsite url %s", url)
                continue

            try:
                document = self.retrieve(url)
            except RenderError as exc:
                logger.error("Could not canonicalize %s, leaving it out: %s", url, exc)
                continue
            documents.append(FetchedDocument(url=url, document=document))

            if not isinstance(document, HtmlDocument):
                continue
            if depth >= self.max_depth:
                if document.attachment_urls:
                    logger.warning("Not following attachments of %s beyond depth %s", url, depth)
                continue
            for attachment in document.attachment_urls:
                attachment = normalize_url(attachment)
                if attachment in seen:
                    logger.debug("Already queued %s", attachment)
                    continue
                if len(seen) >= self.max_documents:
                    if not capped:
                        logger.warning(
                            "Crawl from %s hit the %s document limit", seed, self.max_documents
                        )
                        capped = True
                    break
                seen.add(attachment)
                queue.append((attachment, depth + 1))

        return documents

    def retrieve(self, url: str) -> HtmlDocument | BinaryDocument:
        """Retrieve one URL and classify it by declared media type."""
        logger.info("Retrieving url %s", url)
        response = self._get(url)
        content_type = response.headers.get("Content-Type", "")
        media_type = content_type.split(";", 1)[0].strip().lower()

        if media_type == "text/html":
            encoding = response.encoding if "charset" in content_type.lower() else None
            try:
                html = response.content.decode(encoding or "utf-8", errors="replace")
            except LookupError:
                logger.warning("Unknown charset %r for %s, assuming utf-8", encoding, url)
                html = response.content.decode("utf-8", errors="replace")
            return parse_html_document(html, url)
        return BinaryDocument(content=response.content)

    def _get(self, url: str) -> Response:
        try:
            resp = self.session.get(url, timeout=self.timeout)
        except requests.RequestException as exc:
            raise NetworkError(url, f"Error retrieving: {exc}") from exc
        if resp.status_code >= 400:
            logger.error("Request for %s failed (%s)", url, resp.status_code)
            raise NetworkError(url, f"HTTP {resp.status_code}", status_code=resp.status_code)
        return resp
