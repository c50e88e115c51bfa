"""Turn GOV.UK notification emails into change events.

Notification bodies come in a handful of templates which are told apart by
the text of their first paragraph:

* single update: one linked document followed by summary, change and
  timestamp paragraphs;
* daily/weekly digest: a category ``<h1>`` followed by one ``<h2>`` section per
  document, each with the same three paragraphs and closed by an ``<hr>``;
* informational notices that carry no change at all.

Anything else is reported as :class:`UnknownEmailFormat` so a template change
upstream gets noticed instead of silently dropping updates.
"""

from __future__ import annotations

import email
import logging
from email import policy
from email.message import EmailMessage
from enum import Enum

from bs4 import BeautifulSoup, Tag

from .errors import MalformedEmail, UnknownEmailFormat, UntrustedSource
from .models import ChangeEvent
from .utils import normalize_url, url_host

logger = logging.getLogger(__name__)


class EmailTemplate(Enum):
    SINGLE_UPDATE = "single_update"
    DIGEST = "digest"
    INFORMATIONAL = "informational"


SINGLE_UPDATE_HEADINGS = ("update on gov.uk.",)
DIGEST_HEADINGS = (
    "daily update from gov.uk for:",
    "weekly update from gov.uk for:",
)
INFORMATIONAL_PREFIXES = (
    "this link will expire",
    "this link expires",
    "confirm that you want to get emails from gov.uk",
)
BOILERPLATE_SECTION_TITLES = ("why am i getting this email",)

SECTION_FIELDS = ("summary", "change description", "timestamp")


def _collapse(text: str) -> str:
    # zero-width spaces are inserted by the mailer to break auto-linking
    return " ".join(text.replace("\u200b", "").split())


def classify_heading(heading: str) -> EmailTemplate:
    """Map the first paragraph of an email onto a known template."""
    normalized = _collapse(heading).lower()
    if normalized in SINGLE_UPDATE_HEADINGS:
        return EmailTemplate.SINGLE_UPDATE
    if normalized in DIGEST_HEADINGS:
        return EmailTemplate.DIGEST
    if normalized.startswith(INFORMATIONAL_PREFIXES):
        return EmailTemplate.INFORMATIONAL
    raise UnknownEmailFormat(_collapse(heading))


def parse_email(raw: bytes | str, trusted_host: str) -> list[ChangeEvent]:
    """Parse a complete RFC 822 message into its change events."""
    if isinstance(raw, str):
        message = email.message_from_string(raw, policy=policy.default)
    else:
        message = email.message_from_bytes(raw, policy=policy.default)
    return parse_email_html(_html_body(message), trusted_host)


def parse_email_html(html: str, trusted_host: str) -> list[ChangeEvent]:
    """Parse the HTML body of a notification email."""
    soup = BeautifulSoup(html, "html.parser")
    paragraphs = soup.find_all("p")
    if not paragraphs:
        raise MalformedEmail("Missing first <p> with email heading", field="heading")

    template = classify_heading(paragraphs[0].get_text())
    logger.debug("Email classified as %s", template.value)

    if template is EmailTemplate.INFORMATIONAL:
        return []
    if template is EmailTemplate.SINGLE_UPDATE:
        return [_single_update(paragraphs, trusted_host.lower())]
    return _digest(soup, trusted_host.lower())


def _html_body(message: EmailMessage) -> str:
    for part in message.walk():
        if part.get_content_type() != "text/html":
            continue
        try:
            return part.get_content()
        except (LookupError, UnicodeError, ValueError) as exc:
            raise MalformedEmail(
                f"Failed to decode text/html part: {exc}", field="text/html part"
            ) from exc
    raise MalformedEmail("Email doesn't have a text/html part", field="text/html part")


def _single_update(paragraphs: list[Tag], trusted_host: str) -> ChangeEvent:
    def nth(index: int, field: str) -> Tag:
        if len(paragraphs) <= index:
            raise MalformedEmail(f"Missing <p> with {field}", field=field)
        return paragraphs[index]

    url = _document_url(nth(1, "document link"), trusted_host)
    nth(2, "summary")
    change = _labelled_value(nth(3, "change description"), "change description")
    updated_at = _labelled_value(nth(4, "timestamp"), "timestamp")
    return ChangeEvent(url=url, change=change, updated_at=updated_at)


def _digest(soup: BeautifulSoup, trusted_host: str) -> list[ChangeEvent]:
    events: list[ChangeEvent] = []
    for heading in soup.find_all("h2"):
        link = heading.find("a", href=True)
        title = _collapse(heading.get_text()).lower().rstrip("?")
        if title.startswith(BOILERPLATE_SECTION_TITLES):
            continue
        if link is None:
            raise MalformedEmail(
                f"Section heading {_collapse(heading.get_text())!r} has no document link",
                field="document link",
            )

        category_tag = heading.find_previous("h1")
        if category_tag is None:
            raise MalformedEmail("Missing <h1> with digest category", field="category")
        category = _collapse(category_tag.get_text())

        section: list[Tag] = []
        for sibling in heading.find_next_siblings():
            if sibling.name in ("hr", "h1", "h2"):
                break
            if sibling.name == "p":
                section.append(sibling)
        if len(section) < len(SECTION_FIELDS):
            field = SECTION_FIELDS[len(section)]
            raise MalformedEmail(
                f"Section {_collapse(link.get_text())!r} is missing its {field} paragraph",
                field=field,
            )

        events.append(
            ChangeEvent(
                url=_checked_url(link["href"], trusted_host),
                change=_labelled_value(section[1], "change description"),
                updated_at=_labelled_value(section[2], "timestamp"),
                category=category,
            )
        )

    if not events:
        raise MalformedEmail("Digest email lists no documents", field="document section")
    return events


def _document_url(paragraph: Tag, trusted_host: str) -> str:
    link = paragraph.find("a", href=True)
    if link is None:
        raise MalformedEmail("No link on document title", field="document link")
    return _checked_url(link["href"], trusted_host)


def _checked_url(href: str, trusted_host: str) -> str:
    try:
        url = normalize_url(href)
        host = url_host(url)
    except ValueError as exc:
        raise MalformedEmail(f"Unparseable document link {href!r}: {exc}", field="document link") from exc
    if host != trusted_host:
        raise UntrustedSource(url, trusted_host)
    return url


def _labelled_value(paragraph: Tag, field: str) -> str:
    # first text node is the label, e.g. "Change made:"
    strings = [_collapse(text) for text in paragraph.stripped_strings]
    strings = [text for text in strings if text]
    if len(strings) < 2:
        raise MalformedEmail(f"Missing {field} contents", field=field)
    return strings[1]
