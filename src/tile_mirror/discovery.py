"""Link discovery: narrow href pattern matching over raw page bodies."""

import logging
import re
from collections.abc import Iterator, Sequence
from urllib.parse import urlsplit

from .utils import join_path, with_path

logger = logging.getLogger(__name__)

TILE_PREFIX = "tileSG-"
TILE_LINK_RE = re.compile(r'href="([^"]*?\.tif)"')


def build_link_templates(page_ranges: Sequence[str]) -> list[str]:
    """Prefix every "|"-separated part of each page range with the tile token."""
    return [
        "|".join(TILE_PREFIX + part for part in page_range.split("|"))
        for page_range in page_ranges
    ]


def subpage_pattern(template: str) -> re.Pattern[str]:
    """Compile the href matcher for one link template (trailing slash required)."""
    return re.compile(rf'href="({template})/"')


def _decode(body: bytes | str) -> str:
    if isinstance(body, str):
        return body
    return body.decode("utf-8", errors="surrogateescape")


def discover_subpages(
    page_url: str, body: bytes | str, templates: Sequence[str]
) -> Iterator[str]:
    """
    Yield sub-page URLs linked from an index page.
    Templates are scanned one after another, each in document order.
    Every URL keeps the scheme and host of page_url and ends with "/".
    """
    text = _decode(body)
    base_path = urlsplit(page_url).path
    for template in templates:
        pattern = subpage_pattern(template)
        for match in pattern.finditer(text):
            link = with_path(page_url, join_path(base_path, match.group(1)) + "/")
            logger.debug("Found sub-page %s", link)
            yield link


def discover_tile_files(page_url: str, body: bytes | str) -> Iterator[str]:
    """Yield absolute URLs of .tif files linked from a sub-page, in document order."""
    text = _decode(body)
    base_path = urlsplit(page_url).path
    for match in TILE_LINK_RE.finditer(text):
        yield with_path(page_url, join_path(base_path, match.group(1)))
