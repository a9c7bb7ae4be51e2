"""
Provider Service

Orchestrates guide refreshes for a provider and serves schedule queries from
the provider's current snapshot.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Literal, Sequence

from epghub.config import settings
from epghub.exceptions import UnrecognizedFeedError
from epghub.services.channel_index_service import SnapshotCache
from epghub.services.epg_downloader_service import load_xmltv_text
from epghub.services.epg_merge_service import EPGMergePipeline, MergeSummary, report_file_path
from epghub.services.epg_query_service import EpgQueryService, NowNext, TimelineItem
from epghub.services.fetch_coordinator import FetchCoordinator
from epghub.services.feed_discovery_service import extract_epg_urls, normalize_urls
from epghub.services.fetch_types import EpgSnapshot, FeedFormat, HttpConfig, PlaylistChannel
from epghub.services.notifications import Notification, NotificationHub, NotificationKind
from epghub.services.snapshot_store import SnapshotStore
from epghub.services.xmltv_parser_service import classify_feed_text, parse_xmltv_async
from epghub.utils.file_operations import read_report


logger = logging.getLogger(__name__)


@dataclass(slots=True)
class RefreshResult:
    provider_id: str
    source: Literal["file", "urls", "none"]
    urls: list[str] = field(default_factory=list)
    snapshot: EpgSnapshot | None = None
    summary: MergeSummary | None = None
    report_lines: list[str] = field(default_factory=list)
    source_details: list[dict] = field(default_factory=list)
    message: str = ""


def http_config_from_settings() -> HttpConfig:
    return HttpConfig(
        user_agent=settings.http_user_agent,
        referer=settings.http_referer,
        timeout_seconds=settings.http_timeout_sec,
    )


class ProviderService:
    """Refreshes provider snapshots and answers now/next and timeline queries."""

    def __init__(
        self,
        store: SnapshotStore | None = None,
        *,
        cache: SnapshotCache | None = None,
        notifier: NotificationHub | None = None,
        coordinator: FetchCoordinator | None = None,
        http: HttpConfig | None = None,
        merge_options: dict[str, Any] | None = None,
    ):
        self.store = store or SnapshotStore()
        self.cache = cache or SnapshotCache()
        self.notifier = notifier or NotificationHub()
        self.coordinator = coordinator or FetchCoordinator()
        self.query = EpgQueryService(self.cache)
        self.http = http or http_config_from_settings()
        self.merge_options = dict(merge_options or {})

    def resolve_urls(
        self,
        *,
        urls: Sequence[str] | None = None,
        playlist_text: str | None = None,
    ) -> list[str]:
        """
        Decide which feed URLs to use.

        Manually configured URLs win, then URLs advertised in the playlist
        header, then the configured default sources.
        """
        manual = normalize_urls(urls or [])
        if manual:
            return manual

        discovered = extract_epg_urls(playlist_text)
        if discovered:
            return discovered

        return normalize_urls(settings.epg_sources)

    async def refresh(
        self,
        provider_id: str,
        *,
        urls: Sequence[str] | None = None,
        playlist_text: str | None = None,
        file_path: str | None = None,
        http: HttpConfig | None = None,
    ) -> RefreshResult:
        """
        Refresh guide data for a provider.

        A manual file path is loaded as a single source; otherwise every URL is
        fetched and merged.

        Raises:
            RefreshInProgress: If this provider is already refreshing
            EpgError: For single-file loads that fail
        """
        http_config = http or self.http

        async def run() -> RefreshResult:
            if file_path and file_path.strip():
                return await self._refresh_from_file(provider_id, file_path.strip(), http_config)

            feed_urls = self.resolve_urls(urls=urls, playlist_text=playlist_text)
            if not feed_urls:
                message = "EPG not found (no guide URL configured or advertised)"
                logger.warning("Provider %s: %s", provider_id, message)
                self.notifier.message(message, provider_id=provider_id)
                return RefreshResult(provider_id=provider_id, source="none", message=message)

            return await self._refresh_from_urls(provider_id, feed_urls, http_config)

        result = await self.coordinator.execute(provider_id, run)
        self.notifier.providers_changed(provider_id)
        return result

    async def _refresh_from_urls(self, provider_id: str, urls: list[str], http: HttpConfig) -> RefreshResult:
        pipeline = EPGMergePipeline(provider_id, urls, http, store=self.store, **self.merge_options)
        merge = await pipeline.run()

        self.cache.publish(merge.snapshot)
        message = merge.summary.message()
        self.notifier.publish(
            Notification(
                NotificationKind.MERGE_SUMMARY,
                provider_id=provider_id,
                message=message,
                payload=merge.summary.to_dict(),
            )
        )

        return RefreshResult(
            provider_id=provider_id,
            source="urls",
            urls=urls,
            snapshot=merge.snapshot,
            summary=merge.summary,
            report_lines=merge.report_lines,
            source_details=[summary.to_dict() for summary in merge.sources],
            message=message,
        )

    async def _refresh_from_file(self, provider_id: str, file_path: str, http: HttpConfig) -> RefreshResult:
        snapshot = await self.load_single_file(provider_id, file_path, http)

        await self.store.save(snapshot)
        self.cache.publish(snapshot)

        message = f"EPG loaded: {len(snapshot.programs)} programs, {len(snapshot.channels)} channels"
        self.notifier.message(message, provider_id=provider_id)
        return RefreshResult(
            provider_id=provider_id,
            source="file",
            snapshot=snapshot,
            message=message,
        )

    async def load_single_file(self, provider_id: str, file_path: str, http: HttpConfig | None = None) -> EpgSnapshot:
        """
        Build a snapshot from one local XMLTV file.

        There is no other source to fall back on, so failures are raised.

        Raises:
            FeedDownloadError: If the file is missing or unreadable
            UnrecognizedFeedError: If the content is not XMLTV
            FeedParseError: If the document is malformed
        """
        xml_text = await load_xmltv_text(None, file_path, http or self.http)

        if classify_feed_text(xml_text) is not FeedFormat.OK:
            self.notifier.message("EPG could not be loaded (not XMLTV)", provider_id=provider_id)
            raise UnrecognizedFeedError(f"File is not an XMLTV document: {file_path}")

        programs, channels = await parse_xmltv_async(
            xml_text,
            parse_timeout_seconds=settings.epg_parse_timeout_sec,
        )
        return EpgSnapshot.create(provider_id, programs, channels)

    async def get_snapshot(self, provider_id: str) -> EpgSnapshot | None:
        """Current snapshot from the cache, falling back to the store."""
        snapshot = self.cache.current(provider_id)
        if snapshot is not None:
            return snapshot

        snapshot = await self.store.load(provider_id)
        if snapshot is not None:
            self.cache.publish(snapshot)
        return snapshot

    async def get_report(self, provider_id: str) -> list[str]:
        """Lines of the last diagnostic report written for a provider."""
        report_dir = self.merge_options.get("report_dir", settings.report_dir)
        return await read_report(report_file_path(report_dir, provider_id))

    async def delete_provider(self, provider_id: str) -> None:
        await self.store.delete(provider_id)
        self.cache.evict(provider_id)
        self.notifier.providers_changed(provider_id)
        self.notifier.message("Provider guide data deleted", provider_id=provider_id)

    async def now_next(self, provider_id: str, channel: PlaylistChannel, at: datetime) -> NowNext:
        snapshot = await self.get_snapshot(provider_id)
        if snapshot is None:
            return NowNext()
        return self.query.get_now_next(snapshot, channel, at)

    async def timeline(
        self,
        provider_id: str,
        channel: PlaylistChannel,
        at: datetime,
        past: timedelta,
        future: timedelta,
    ) -> list[TimelineItem]:
        snapshot = await self.get_snapshot(provider_id)
        if snapshot is None:
            return []
        return self.query.get_timeline_items(snapshot, channel, at, past, future)
