"""
EPG Downloader Service

Retrieves raw XMLTV text from a URL or a local file, handling compression,
charset decoding and bounded retries.
"""
import asyncio
import codecs
import gzip
import logging
import zlib
from pathlib import Path

import aiofiles
import httpx

from epghub.exceptions import DownloadFailure, FeedDownloadError
from epghub.services.fetch_types import HttpConfig


logger = logging.getLogger(__name__)

GZIP_MAGIC = b"\x1f\x8b"

# Fixed retry schedule: attempt delays in seconds
RETRY_DELAYS: tuple[float, ...] = (0.0, 0.8, 2.0)

MIN_TIMEOUT_SEC = 10
MAX_TIMEOUT_SEC = 600


def clamp_timeout(seconds: int | float | None) -> float:
    """Clamp a request timeout to [10, 600] seconds."""
    value = float(seconds or 0)
    return max(float(MIN_TIMEOUT_SEC), min(float(MAX_TIMEOUT_SEC), value))


def looks_like_gzip(payload: bytes) -> bool:
    return len(payload) > 2 and payload[:2] == GZIP_MAGIC


def decompress_gzip(payload: bytes) -> bytes:
    """Decompress a gzip payload, tolerating trailing garbage."""
    try:
        return gzip.decompress(payload)
    except (OSError, EOFError, zlib.error):
        decompressor = zlib.decompressobj(16 + zlib.MAX_WBITS)
        return decompressor.decompress(payload)


def decode_payload(payload: bytes, charset: str | None) -> str:
    """
    Decode bytes using the declared charset, falling back to UTF-8.

    Invalid UTF-8 sequences are replaced rather than raising.
    """
    if charset and charset.strip():
        try:
            codecs.lookup(charset.strip())
            return payload.decode(charset.strip())
        except (LookupError, UnicodeDecodeError):
            logger.debug("Charset %s failed, falling back to UTF-8", charset)

    return payload.decode("utf-8", errors="replace")


def build_request_headers(http: HttpConfig) -> dict[str, str]:
    """Request headers for a normalized HttpConfig"""
    headers = {
        "User-Agent": http.user_agent or "",
        "Accept-Encoding": "gzip, deflate",
    }
    if http.referer:
        headers["Referer"] = http.referer
    if http.headers:
        headers.update(http.headers)
    return headers


async def load_xmltv_text(
    url: str | None,
    file_path: str | Path | None,
    http: HttpConfig,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> str:
    """
    Load XMLTV text from a local file (preferred when given) or a URL.

    Args:
        url: Feed URL
        file_path: Local XMLTV file, optionally gzip-compressed
        http: Provider HTTP configuration

    Keyword Args:
        transport: Optional httpx transport (used by tests)

    Returns:
        Decoded feed text

    Raises:
        FeedDownloadError: If the feed could not be retrieved
    """
    if file_path is not None and str(file_path).strip():
        return await read_local_feed(Path(str(file_path).strip()))

    if not url or not url.strip():
        raise FeedDownloadError("No feed URL or file path given", DownloadFailure.NOT_FOUND)

    return await download_text_with_retry(url.strip(), http, transport=transport)


async def read_local_feed(file_path: Path) -> str:
    """Read a local XMLTV file, decompressing .gz or gzip-looking content."""
    if not file_path.is_file():
        raise FeedDownloadError(f"XMLTV file not found: {file_path}", DownloadFailure.NOT_FOUND)

    async with aiofiles.open(file_path, "rb") as f:
        payload = await f.read()

    logger.info(f"Read {len(payload) / (1024 * 1024):.2f} MB from {file_path}")

    if file_path.name.lower().endswith(".gz") or looks_like_gzip(payload):
        try:
            payload = decompress_gzip(payload)
        except (OSError, EOFError, zlib.error) as e:
            raise FeedDownloadError(f"Corrupt gzip file {file_path}: {e}", DownloadFailure.EMPTY) from e

    return decode_payload(payload, charset=None)


async def download_text_with_retry(
    url: str,
    http: HttpConfig,
    *,
    delays: tuple[float, ...] = RETRY_DELAYS,
    transport: httpx.AsyncBaseTransport | None = None,
) -> str:
    """
    Download feed text following the fixed retry schedule.

    Retries on timeouts, transport errors and 5xx responses. Does NOT retry on
    4xx responses, and never retries a successful response.

    Raises:
        FeedDownloadError: If every attempt failed
    """
    http = http.normalized()
    last_error: FeedDownloadError | None = None

    for attempt, delay in enumerate(delays, start=1):
        if delay > 0:
            await asyncio.sleep(delay)

        try:
            return await download_text(url, http, transport=transport)

        except httpx.TimeoutException as e:
            last_error = FeedDownloadError(f"Timed out fetching {url}: {e}", DownloadFailure.TIMEOUT)
            logger.warning(
                f"Download attempt {attempt}/{len(delays)} timed out: {type(e).__name__}"
            )

        except httpx.TransportError as e:
            last_error = FeedDownloadError(f"Transport error fetching {url}: {e}", DownloadFailure.TRANSPORT)
            logger.warning(
                f"Download attempt {attempt}/{len(delays)} failed (transient error): {type(e).__name__}"
            )

        except httpx.HTTPStatusError as e:
            status_code = e.response.status_code
            error = FeedDownloadError(
                f"HTTP {status_code} fetching {url}",
                DownloadFailure.HTTP_STATUS,
                status_code=status_code,
            )
            if 400 <= status_code < 500:
                logger.error(f"HTTP {status_code} (client error), not retrying")
                raise error from e

            last_error = error
            logger.warning(
                f"Download attempt {attempt}/{len(delays)} failed (HTTP {status_code} server error)"
            )

    logger.error(f"Download failed after {len(delays)} attempts")
    if last_error:
        raise last_error
    raise FeedDownloadError(f"Failed to download {url}", DownloadFailure.TRANSPORT)


async def download_text(
    url: str,
    http: HttpConfig,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> str:
    """
    Single download attempt.

    Raises:
        httpx.HTTPError: On transport failure or non-success status
    """
    timeout = clamp_timeout(http.timeout_seconds)

    async with httpx.AsyncClient(
        timeout=timeout,
        follow_redirects=True,
        headers=build_request_headers(http),
        transport=transport,
    ) as client:
        response = await client.get(url)
        response.raise_for_status()

        payload = response.content
        logger.debug(f"Downloaded {len(payload) / (1024 * 1024):.2f} MB from {url}")

        # Some sources serve .xml.gz without a Content-Encoding header
        if looks_like_gzip(payload):
            try:
                payload = decompress_gzip(payload)
            except (OSError, EOFError, zlib.error) as e:
                raise FeedDownloadError(
                    f"Corrupt gzip payload from {url}: {e}",
                    DownloadFailure.EMPTY,
                ) from e

        return decode_payload(payload, response.charset_encoding)
