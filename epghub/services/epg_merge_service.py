"""
EPG Merge Service

Fetches many XMLTV feeds concurrently under per-host rate limits, parses them,
and merges the results into one canonical snapshot per provider.
"""
from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol, Sequence
from urllib.parse import urlsplit

import httpx

from epghub.config import settings
from epghub.exceptions import FeedDownloadError, FeedParseError
from epghub.services.epg_downloader_service import load_xmltv_text
from epghub.services.fetch_types import (
    EpgSnapshot,
    FeedFormat,
    FeedSource,
    HttpConfig,
    SourceStatus,
)
from epghub.services.xmltv_parser_service import classify_feed_text, parse_xmltv_async
from epghub.utils.data_merging import merge_channels, merge_programs
from epghub.utils.file_operations import write_report


logger = logging.getLogger(__name__)

PREVIEW_LENGTH = 40


class SnapshotSaver(Protocol):
    async def save(self, snapshot: EpgSnapshot) -> None: ...


@dataclass(slots=True)
class SourceSummary:
    index: int
    source_url: str
    sanitized_url: str
    started_at: datetime
    completed_at: datetime
    status: SourceStatus
    channels_parsed: int = 0
    programs_parsed: int = 0
    preview: str | None = None
    error: str | None = None

    @property
    def duration_seconds(self) -> float:
        return max(0.0, (self.completed_at - self.started_at).total_seconds())

    def report_line(self) -> str:
        if self.status is SourceStatus.OK:
            return (
                f"{self.status.value} {self.sanitized_url} "
                f"programs={self.programs_parsed} channels={self.channels_parsed}"
            )
        if self.status is SourceStatus.NOT_GUIDE_FORMAT:
            return f"{self.status.value} {self.sanitized_url} (head: {self.preview or ''})"
        return f"{self.status.value} {self.sanitized_url}"

    def to_dict(self) -> dict:
        payload = {
            "source_index": self.index,
            "sanitized_url": self.sanitized_url,
            "status": self.status.value,
            "channels_parsed": self.channels_parsed,
            "programs_parsed": self.programs_parsed,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat(),
            "duration_seconds": self.duration_seconds,
        }
        if self.preview is not None:
            payload["preview"] = self.preview
        if self.error:
            payload["error"] = self.error
        return payload


@dataclass(slots=True)
class MergeSummary:
    """Aggregate counts reported to the caller after a merge run."""
    ok: int = 0
    download_failed: int = 0
    parse_failed: int = 0
    not_guide_format: int = 0
    programs: int = 0
    channels: int = 0

    @property
    def sources_total(self) -> int:
        return self.ok + self.download_failed + self.parse_failed + self.not_guide_format

    def message(self) -> str:
        return (
            f"EPG: OK={self.ok}, DL_FAIL={self.download_failed}, "
            f"PARSE_FAIL={self.parse_failed}, NOT_XML={self.not_guide_format}, "
            f"Programs={self.programs}, Channels={self.channels}"
        )

    def to_dict(self) -> dict:
        return {
            "ok": self.ok,
            "download_failed": self.download_failed,
            "parse_failed": self.parse_failed,
            "not_guide_format": self.not_guide_format,
            "programs": self.programs,
            "channels": self.channels,
        }


@dataclass(slots=True)
class MergeResult:
    snapshot: EpgSnapshot
    summary: MergeSummary
    report_lines: list[str] = field(default_factory=list)
    sources: list[SourceSummary] = field(default_factory=list)


def default_parallelism() -> int:
    """Normal-group pool size: CPU count clamped to [4, 12]."""
    return max(4, min(12, os.cpu_count() or 1))


def is_restricted_url(url: str, restricted_hosts: Sequence[str]) -> bool:
    """True when the URL's host contains one of the restricted host markers."""
    markers = [marker.lower() for marker in restricted_hosts if marker]
    if not markers:
        return False
    try:
        host = (urlsplit(url).hostname or "").lower()
    except ValueError:
        host = ""
    if not host:
        lowered = url.lower()
        return any(marker in lowered for marker in markers)
    return any(marker in host for marker in markers)


def safe_head(text: str, limit: int = PREVIEW_LENGTH) -> str:
    """Short single-line preview of a body for the diagnostic report."""
    trimmed = text.lstrip("\ufeff \t\r\n")
    head = trimmed[:limit].replace("\r", " ").replace("\n", " ")
    return head + "..." if len(trimmed) > limit else head


def report_file_path(report_dir: str | Path, provider_id: str) -> Path:
    return Path(report_dir) / f"epg_report_{provider_id}.txt"


def _sanitize_url_for_logging(url: str) -> str:
    """Remove credentials from URL for safe logging."""
    if "://" not in url:
        return url
    try:
        protocol, rest = url.split("://", 1)
        if "@" in rest.split("/", 1)[0]:
            rest = rest.split("@", 1)[1]
            return f"{protocol}://***:***@{rest}"
        return url
    except (ValueError, IndexError):
        return url


class EPGMergePipeline:
    """Coordinates download, classification, parse and merge for one provider."""

    def __init__(
        self,
        provider_id: str,
        urls: Sequence[str],
        http: HttpConfig | None = None,
        *,
        store: SnapshotSaver | None = None,
        report_dir: str | Path | None = None,
        restricted_hosts: Sequence[str] | None = None,
        restricted_concurrency: int | None = None,
        restricted_stagger_seconds: float | None = None,
        normal_concurrency: int | None = None,
        parse_timeout_seconds: int | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.provider_id = provider_id
        self.urls = [url.strip() for url in urls if url and url.strip()]
        self.total_sources = len(self.urls)
        self.http = (http or HttpConfig()).normalized()
        self.store = store
        self.report_dir = Path(report_dir) if report_dir is not None else Path(settings.report_dir)
        self.restricted_hosts = list(
            settings.restricted_feed_hosts if restricted_hosts is None else restricted_hosts
        )
        self._restricted_concurrency = max(
            1, restricted_concurrency or settings.restricted_max_concurrency
        )
        self._stagger_seconds = (
            settings.restricted_stagger_ms / 1000
            if restricted_stagger_seconds is None
            else max(0.0, restricted_stagger_seconds)
        )
        self._normal_concurrency = max(1, normal_concurrency or default_parallelism())
        self._parse_timeout = (
            settings.epg_parse_timeout_sec if parse_timeout_seconds is None else parse_timeout_seconds
        )
        self._transport = transport

    async def run(self) -> MergeResult:
        logger.info(
            "Merging %s feed(s) for provider %s",
            self.total_sources,
            self.provider_id,
        )

        sources, summaries = await self._collect_sources()

        programs = merge_programs(sources)
        channels = merge_channels(sources)
        snapshot = EpgSnapshot.create(self.provider_id, programs, channels)

        summary = self._build_summary(summaries, len(programs), len(channels))
        report_lines = sorted(s.report_line() for s in summaries)

        if self.store is not None:
            await self.store.save(snapshot)

        report_path = report_file_path(self.report_dir, self.provider_id)
        try:
            await write_report(report_path, report_lines)
        except OSError as exc:
            logger.error("Failed to write EPG report %s: %s", report_path, exc)

        logger.info(summary.message())
        return MergeResult(
            snapshot=snapshot,
            summary=summary,
            report_lines=report_lines,
            sources=summaries,
        )

    def partition_urls(self) -> tuple[list[tuple[int, str]], list[tuple[int, str]]]:
        """Split (position, url) pairs into restricted and normal groups."""
        restricted: list[tuple[int, str]] = []
        normal: list[tuple[int, str]] = []
        for position, url in enumerate(self.urls):
            if is_restricted_url(url, self.restricted_hosts):
                restricted.append((position, url))
            else:
                normal.append((position, url))
        return restricted, normal

    async def _collect_sources(self) -> tuple[list[FeedSource], list[SourceSummary]]:
        if not self.urls:
            logger.warning("No feed URLs for provider %s - producing empty snapshot", self.provider_id)
            return [], []

        restricted, normal = self.partition_urls()
        restricted_gate = asyncio.Semaphore(self._restricted_concurrency)
        normal_gate = asyncio.Semaphore(self._normal_concurrency)

        logger.info(
            "Restricted group: %s url(s), concurrency %s; normal group: %s url(s), concurrency %s",
            len(restricted),
            self._restricted_concurrency,
            len(normal),
            self._normal_concurrency,
        )

        tasks = [
            asyncio.create_task(
                self._process_source(position, url, restricted_gate, start_delay=group_index * self._stagger_seconds)
            )
            for group_index, (position, url) in enumerate(restricted)
        ]
        tasks.extend(
            asyncio.create_task(self._process_source(position, url, normal_gate, start_delay=0.0))
            for position, url in normal
        )

        results = await asyncio.gather(*tasks)
        results.sort(key=lambda item: item[1].index)

        sources = [source for source, _ in results if source is not None]
        summaries = [summary for _, summary in results]
        return sources, summaries

    async def _process_source(
        self,
        position: int,
        source_url: str,
        gate: asyncio.Semaphore,
        *,
        start_delay: float,
    ) -> tuple[FeedSource | None, SourceSummary]:
        index = position + 1
        sanitized_url = _sanitize_url_for_logging(source_url)
        started_at = datetime.now(timezone.utc)

        if start_delay > 0:
            await asyncio.sleep(start_delay)

        async with gate:
            logger.info(
                "[Source %s/%s] Starting download: %s",
                index,
                self.total_sources,
                sanitized_url,
            )

            def summary(status: SourceStatus, **extra) -> SourceSummary:
                return SourceSummary(
                    index=index,
                    source_url=source_url,
                    sanitized_url=sanitized_url,
                    started_at=started_at,
                    completed_at=datetime.now(timezone.utc),
                    status=status,
                    **extra,
                )

            try:
                xml_text = await load_xmltv_text(source_url, None, self.http, transport=self._transport)
            except FeedDownloadError as exc:
                logger.error("[Source %s] Download failed for %s: %s", index, sanitized_url, exc)
                return None, summary(SourceStatus.DOWNLOAD_FAILED, error=str(exc))
            except Exception as exc:  # Isolate per-source failures from the batch
                logger.error(
                    "[Source %s] Unexpected error downloading %s: %s",
                    index,
                    sanitized_url,
                    exc,
                    exc_info=True,
                )
                return None, summary(SourceStatus.DOWNLOAD_FAILED, error=str(exc))

            feed_format = classify_feed_text(xml_text)
            if feed_format is FeedFormat.EMPTY:
                logger.error("[Source %s] Empty body from %s", index, sanitized_url)
                return None, summary(SourceStatus.DOWNLOAD_FAILED, error="empty body")

            if feed_format is FeedFormat.NOT_GUIDE_FORMAT:
                preview = safe_head(xml_text)
                logger.error(
                    "[Source %s] Not an XMLTV document: %s (head: %s)",
                    index,
                    sanitized_url,
                    preview,
                )
                return None, summary(SourceStatus.NOT_GUIDE_FORMAT, preview=preview)

            try:
                programs, channels = await parse_xmltv_async(
                    xml_text,
                    parse_timeout_seconds=self._parse_timeout,
                )
            except FeedParseError as exc:
                logger.error("[Source %s] Failed to parse %s: %s", index, sanitized_url, exc)
                return None, summary(SourceStatus.PARSE_FAILED, error=str(exc))
            except Exception as exc:
                logger.error(
                    "[Source %s] Unexpected error parsing %s: %s",
                    index,
                    sanitized_url,
                    exc,
                    exc_info=True,
                )
                return None, summary(SourceStatus.PARSE_FAILED, error=str(exc))

        logger.info(
            "[Source %s/%s] Completed: %s (%s channels, %s programs)",
            index,
            self.total_sources,
            sanitized_url,
            len(channels),
            len(programs),
        )

        source = FeedSource(url=source_url, position=position, programs=programs, channels=channels)
        return source, summary(
            SourceStatus.OK,
            channels_parsed=len(channels),
            programs_parsed=len(programs),
        )

    @staticmethod
    def _build_summary(summaries: list[SourceSummary], programs: int, channels: int) -> MergeSummary:
        result = MergeSummary(programs=programs, channels=channels)
        for s in summaries:
            if s.status is SourceStatus.OK:
                result.ok += 1
            elif s.status is SourceStatus.DOWNLOAD_FAILED:
                result.download_failed += 1
            elif s.status is SourceStatus.PARSE_FAILED:
                result.parse_failed += 1
            else:
                result.not_guide_format += 1
        return result


async def merge_feeds(
    provider_id: str,
    urls: Sequence[str],
    http: HttpConfig | None = None,
    **options,
) -> MergeResult:
    """Convenience wrapper running one EPGMergePipeline."""
    pipeline = EPGMergePipeline(provider_id, urls, http, **options)
    return await pipeline.run()
