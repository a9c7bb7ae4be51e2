"""
Shared dataclasses used across the EPG fetching, merge and query pipeline.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from uuid import uuid4


UNTITLED_PROGRAM = "(Untitled)"

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
DEFAULT_TIMEOUT_SEC = 180


@dataclass(slots=True, frozen=True)
class EpgProgram:
    """Single programme entry with UTC start/stop instants."""
    channel_id: str
    title: str
    start_time: datetime
    stop_time: datetime
    description: str | None = None


@dataclass(slots=True, frozen=True)
class EpgChannel:
    """Guide channel with every display name seen for it."""
    channel_id: str
    display_names: tuple[str, ...] = ()


@dataclass(slots=True, frozen=True)
class EpgSnapshot:
    """Immutable merged guide data for one provider.

    A refresh never edits a snapshot; it builds a new one with a fresh
    ``snapshot_id`` which is what per-snapshot caches are keyed on.
    """
    provider_id: str
    created_at: str
    programs: tuple[EpgProgram, ...] = ()
    channels: tuple[EpgChannel, ...] = ()
    snapshot_id: str = field(default_factory=lambda: uuid4().hex)

    @classmethod
    def create(
        cls,
        provider_id: str,
        programs: list[EpgProgram] | tuple[EpgProgram, ...],
        channels: list[EpgChannel] | tuple[EpgChannel, ...],
    ) -> "EpgSnapshot":
        return cls(
            provider_id=provider_id,
            created_at=datetime.now(timezone.utc).isoformat(),
            programs=tuple(programs),
            channels=tuple(channels),
        )


@dataclass(slots=True, frozen=True)
class PlaylistChannel:
    """Channel entry coming from the playlist catalog."""
    provider_id: str
    name: str
    stream_url: str = ""
    category_name: str = ""
    tvg_id: str | None = None
    logo_url: str | None = None


@dataclass(slots=True)
class HttpConfig:
    """Per-provider HTTP settings used when downloading feeds."""
    user_agent: str | None = None
    referer: str | None = None
    headers: dict[str, str] | None = None
    timeout_seconds: int = DEFAULT_TIMEOUT_SEC

    def normalized(self) -> "HttpConfig":
        user_agent = (self.user_agent or "").strip() or DEFAULT_USER_AGENT
        referer = (self.referer or "").strip() or None
        timeout = self.timeout_seconds if self.timeout_seconds and self.timeout_seconds > 0 else DEFAULT_TIMEOUT_SEC

        headers = None
        if self.headers:
            headers = {
                key.strip(): value.strip()
                for key, value in self.headers.items()
                if key and key.strip() and value and value.strip()
            } or None

        return HttpConfig(
            user_agent=user_agent,
            referer=referer,
            headers=headers,
            timeout_seconds=timeout,
        )


class FeedFormat(str, Enum):
    """Result of sniffing a downloaded body before parsing it."""
    OK = "ok"
    NOT_GUIDE_FORMAT = "not_guide_format"
    EMPTY = "empty"


class SourceStatus(str, Enum):
    OK = "OK"
    DOWNLOAD_FAILED = "DL_FAIL"
    PARSE_FAILED = "PARSE_FAIL"
    NOT_GUIDE_FORMAT = "NOT_XML"


@dataclass(slots=True)
class FeedSource:
    """Parsed feed kept only for the duration of one merge run."""
    url: str
    position: int
    programs: list[EpgProgram] = field(default_factory=list)
    channels: list[EpgChannel] = field(default_factory=list)


__all__ = [
    "DEFAULT_TIMEOUT_SEC",
    "DEFAULT_USER_AGENT",
    "EpgChannel",
    "EpgProgram",
    "EpgSnapshot",
    "FeedFormat",
    "FeedSource",
    "HttpConfig",
    "PlaylistChannel",
    "SourceStatus",
    "UNTITLED_PROGRAM",
]
