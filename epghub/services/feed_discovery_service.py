"""
Feed URL Discovery

Reads guide-feed URLs advertised in a playlist header such as
``#EXTM3U x-tvg-url="a.xml.gz,b.xml.gz"``.
"""
import logging
import re
from collections.abc import Iterable

logger = logging.getLogger(__name__)

PLAYLIST_HEADER_TAG = "#EXTM3U"

# Checked in order, first non-blank value wins
GUIDE_URL_KEYS = (
    "x-tvg-url",
    "url-tvg",
    "tvg-url",
    "x-tvg-url1",
    "x-tvg-url2",
)

_JOINED_SPLIT_RE = re.compile(r",|\r\n|\n")


def extract_epg_urls(playlist_text: str | None) -> list[str]:
    """
    Extract guide URLs from the playlist header line.

    Only the first non-blank line is inspected and only when it is the
    ``#EXTM3U`` header.

    Args:
        playlist_text: Full playlist text

    Returns:
        Deduplicated list of URLs, empty when nothing is advertised
    """
    if not playlist_text or not playlist_text.strip():
        return []

    first_line = next(
        (line.strip() for line in playlist_text.splitlines() if line.strip()),
        None,
    )
    if first_line is None or not first_line.upper().startswith(PLAYLIST_HEADER_TAG):
        return []

    attributes = parse_header_attributes(first_line)
    for key in GUIDE_URL_KEYS:
        raw = attributes.get(key)
        if raw and raw.strip():
            urls = normalize_urls(_split_raw_urls(raw))
            logger.info("Discovered %s guide URL(s) from playlist header (%s)", len(urls), key)
            return urls

    logger.debug("Playlist header carries no guide URL attribute")
    return []


def parse_header_attributes(header_line: str) -> dict[str, str]:
    """
    Parse ``key="value"`` and ``key=value`` tokens after the header tag.

    Keys are lower-cased; later duplicates overwrite earlier ones. Tokens
    without ``=`` are skipped.
    """
    attributes: dict[str, str] = {}

    space = header_line.find(" ")
    if space < 0:
        return attributes

    line = header_line
    length = len(line)
    i = space + 1

    while i < length:
        while i < length and line[i].isspace():
            i += 1
        if i >= length:
            break

        key_start = i
        while i < length and not line[i].isspace() and line[i] != "=":
            i += 1
        key = line[key_start:i].strip()

        while i < length and line[i].isspace():
            i += 1
        if i >= length or line[i] != "=":
            # bare token, next token starts here
            continue
        i += 1

        while i < length and line[i].isspace():
            i += 1
        if i >= length:
            break

        if line[i] == '"':
            i += 1
            value_start = i
            while i < length and line[i] != '"':
                i += 1
            value = line[value_start:i]
            if i < length:
                i += 1
        else:
            value_start = i
            while i < length and not line[i].isspace():
                i += 1
            value = line[value_start:i]

        if key:
            attributes[key.lower()] = value

    return attributes


def normalize_urls(urls: Iterable[str]) -> list[str]:
    """Trim, de-quote, drop empties and deduplicate case-insensitively."""
    result: list[str] = []
    seen: set[str] = set()
    for url in urls:
        cleaned = (url or "").strip().strip('"').strip()
        if not cleaned:
            continue
        folded = cleaned.casefold()
        if folded in seen:
            continue
        seen.add(folded)
        result.append(cleaned)
    return result


def join_urls(urls: Iterable[str]) -> str:
    """Serialize a URL list for storage as a single comma-separated value."""
    return ",".join(normalize_urls(urls))


def split_joined_urls(joined: str | None) -> list[str]:
    """Read back a stored comma- or newline-separated URL list."""
    if not joined or not joined.strip():
        return []
    return normalize_urls(_JOINED_SPLIT_RE.split(joined))


def _split_raw_urls(raw: str) -> list[str]:
    parts = [part.strip().strip('"') for part in raw.split(",")]
    parts = [part for part in parts if part]
    if not parts and raw.strip():
        parts = [raw.strip().strip('"')]
    return parts
