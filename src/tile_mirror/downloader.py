"""Stream tile files to disk under the target directory."""

import logging
from pathlib import Path
from urllib.parse import urlsplit

import httpx

from .errors import DownloadError
from .utils import target_file_path

logger = logging.getLogger(__name__)

DIR_MODE = 0o755
PARTIAL_SUFFIX = ".part"


def make_dirs(directory: Path) -> None:
    """Create directory and every missing ancestor with DIR_MODE."""
    for path in [*reversed(directory.parents), directory]:
        if not path.is_dir():
            path.mkdir(mode=DIR_MODE, exist_ok=True)


async def download_file(client: httpx.AsyncClient, url: str, target_dir: Path) -> int:
    """
    Download url to the path derived from its last three path segments.

    Missing directories are created. The body is streamed into a ".part"
    sibling that replaces the destination only once the transfer completes,
    so a failed transfer leaves any earlier copy untouched.
    Returns the number of bytes written. Raises DownloadError on any failure.
    """
    logger.info("Downloading %s", url)
    try:
        destination = target_file_path(target_dir, urlsplit(url).path)
    except ValueError as e:
        raise DownloadError(url, e) from e

    partial = destination.with_name(destination.name + PARTIAL_SUFFIX)
    written = 0
    try:
        async with client.stream("GET", url) as response:
            response.raise_for_status()
            make_dirs(destination.parent)
            with partial.open("wb") as f:
                async for chunk in response.aiter_bytes():
                    f.write(chunk)
                    written += len(chunk)
        partial.replace(destination)
    except (httpx.HTTPError, httpx.InvalidURL, OSError) as e:
        if partial.exists():
            partial.unlink()
        raise DownloadError(url, e) from e

    logger.debug("Wrote %d bytes to %s", written, destination)
    return written
