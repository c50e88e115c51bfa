"""Strip volatile markup from fetched HTML so unchanged pages diff clean."""

from __future__ import annotations

import logging

from bs4 import BeautifulSoup
from bs4.builder import ParserRejectedMarkup
from bs4.dammit import EntitySubstitution
from bs4.formatter import HTMLFormatter

from .errors import RenderError

logger = logging.getLogger(__name__)

# Attributes carrying server generated ids that change between fetches.
VOLATILE_ATTRIBUTES = ("id", "aria-labelledby", "aria-hidden")

# Not part of the document, changes for unrelated reasons.
SIDEBAR_SELECTOR = ".gem-c-contextual-sidebar"

# HTML5 tree builder; keeps the case of SVG and MathML attributes.
HTML_PARSER = "html5lib"

# Only &, < and > are escaped; text, void tags and empty attributes stay as written.
# Attributes come out sorted by name.
CANONICAL_FORMATTER = HTMLFormatter(
    entity_substitution=EntitySubstitution.substitute_xml,
    void_element_close_prefix=None,
)


def canonicalize(fragment: str) -> str:
    """Return ``fragment`` without volatile attributes and sidebar elements."""
    try:
        soup = BeautifulSoup(fragment, HTML_PARSER)
    except ParserRejectedMarkup as exc:
        raise RenderError(f"Unable to parse HTML fragment: {exc}") from exc

    removed = 0
    for sidebar in soup.select(SIDEBAR_SELECTOR):
        if sidebar.decomposed:
            # nested inside a sidebar that is already gone
            continue
        sidebar.decompose()
        removed += 1

    for element in soup.find_all(True):
        for attribute in VOLATILE_ATTRIBUTES:
            element.attrs.pop(attribute, None)

    if removed:
        logger.debug("Removed %s contextual sidebar element(s)", removed)
    # html5lib wraps the fragment in html/head/body
    return soup.body.decode_contents(formatter=CANONICAL_FORMATTER)
