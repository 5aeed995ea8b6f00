"""URL and path helpers for resolving discovered links."""

from pathlib import Path
from urllib.parse import quote, unquote, urlsplit, urlunsplit

# Characters left as-is when percent-encoding a path; "%" keeps existing escapes.
PATH_SAFE = "/%:@!$&'()*+,;=~"


def parse_root_url(url: str) -> str:
    """Validate an absolute http(s) URL and return it unchanged."""
    parsed = urlsplit(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValueError(f"not an absolute http(s) URL: {url!r}")
    return url


def join_path(base: str, relative: str) -> str:
    """
    Join a relative link onto a URL path and clean the result.
    The relative part is always appended, even when it starts with "/",
    then "." and ".." segments are resolved and empty segments dropped.
    """
    segments: list[str] = []
    for segment in f"{base}/{relative}".split("/"):
        if segment in ("", "."):
            continue
        if segment == "..":
            if segments:
                segments.pop()
            continue
        segments.append(segment)
    return "/" + "/".join(segments)


def with_path(url: str, path: str) -> str:
    """
    Return url with its path replaced; scheme and host are kept, query and
    fragment dropped. Bytes that were not valid UTF-8 in the page body
    (carried as surrogate escapes) are percent-encoded back to the raw byte.
    """
    parsed = urlsplit(url)
    encoded = quote(path, safe=PATH_SAFE, errors="surrogateescape")
    return urlunsplit((parsed.scheme, parsed.netloc, encoded, "", ""))


def target_file_path(target_dir: Path, url_path: str) -> Path:
    """
    Map a remote URL path to its local destination.

    The last three path segments are used: the first two become
    directories under target_dir, the last one is the file name.
    /archive/vol1/p3/image1.tif -> <target_dir>/vol1/p3/image1.tif
    """
    parts = [unquote(p, errors="surrogateescape") for p in url_path.split("/") if p]
    if len(parts) < 3:
        raise ValueError(f"URL path {url_path!r} has fewer than three segments")
    tail = parts[-3:]
    if any(p in ("", ".", "..") or "/" in p or "\0" in p for p in tail):
        raise ValueError(f"URL path {url_path!r} has an unusable segment")
    return Path(target_dir).joinpath(*tail)
