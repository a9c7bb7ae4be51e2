"""
EPG Query Service

Now/next and time-window queries against a resolved channel's program list.
The program lists come from the resolution index and are sorted by start.
"""
from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from epghub.services.channel_index_service import SnapshotCache
from epghub.services.channel_matcher_service import ChannelMatcher
from epghub.services.fetch_types import EpgProgram, EpgSnapshot, PlaylistChannel
from epghub.utils.data_merging import dedup_programs
from epghub.utils.timezone import ensure_utc

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class NowNext:
    now: EpgProgram | None = None
    next: EpgProgram | None = None


@dataclass(slots=True, frozen=True)
class TimelineItem:
    program: EpgProgram
    is_now: bool
    progress: int


def pick_now_next(programs: Sequence[EpgProgram], at: datetime) -> NowNext:
    """
    Pick the airing and the following program.

    Args:
        programs: Programs sorted ascending by start
        at: Query instant

    Returns:
        NowNext; ``now`` is None when nothing airs at ``at``
    """
    at = ensure_utc(at)

    current = next((p for p in programs if p.start_time <= at < p.stop_time), None)
    if current is None:
        upcoming = next((p for p in programs if p.start_time > at), None)
        return NowNext(now=None, next=upcoming)

    following = next((p for p in programs if p.start_time >= current.stop_time), None)
    return NowNext(now=current, next=following)


EARLIEST = datetime.min.replace(tzinfo=timezone.utc)
LATEST = datetime.max.replace(tzinfo=timezone.utc)


def _shift(at: datetime, delta: timedelta) -> datetime:
    """Move an instant by delta, saturating at the representable range."""
    try:
        return at + delta
    except OverflowError:
        return EARLIEST if delta < timedelta(0) else LATEST


def select_timeline(
    programs: Sequence[EpgProgram],
    at: datetime,
    past: timedelta,
    future: timedelta,
) -> list[EpgProgram]:
    """
    Programs overlapping (at - past, at + future).

    Negative windows are treated as zero. Scanning stops at the first program
    starting at or after the upper bound, which relies on start ordering.
    """
    at = ensure_utc(at)
    if past < timedelta(0):
        past = timedelta(0)
    if future < timedelta(0):
        future = timedelta(0)

    window_start = _shift(at, -past)
    window_end = _shift(at, future)

    windowed: list[EpgProgram] = []
    for program in programs:
        if program.stop_time <= window_start:
            continue
        if program.start_time >= window_end:
            break
        windowed.append(program)

    result = dedup_programs(windowed)
    result.sort(key=lambda program: program.start_time)
    return result


def build_timeline_items(programs: Sequence[EpgProgram], at: datetime) -> list[TimelineItem]:
    """Annotate programs with an ``is_now`` flag and 0-100 progress."""
    at = ensure_utc(at)
    items: list[TimelineItem] = []

    for program in programs:
        is_now = program.start_time <= at < program.stop_time
        progress = 0
        if is_now:
            total = (program.stop_time - program.start_time).total_seconds()
            if total > 0:
                done = (at - program.start_time).total_seconds()
                progress = int(max(0.0, min(100.0, done / total * 100)))
        items.append(TimelineItem(program=program, is_now=is_now, progress=progress))

    return items


class EpgQueryService:
    """Resolves playlist channels and answers schedule queries for a snapshot."""

    def __init__(self, cache: SnapshotCache, matcher: ChannelMatcher | None = None):
        self.cache = cache
        self.matcher = matcher or ChannelMatcher()

    def resolve_programs(self, snapshot: EpgSnapshot, channel: PlaylistChannel) -> tuple[str | None, list[EpgProgram]]:
        entry = self.cache.entry_for(snapshot)
        channel_id = self.matcher.resolve(entry, channel)
        if not channel_id:
            return None, []
        return channel_id, entry.index.programs_for(channel_id)

    def get_now_next(self, snapshot: EpgSnapshot, channel: PlaylistChannel, at: datetime) -> NowNext:
        _, programs = self.resolve_programs(snapshot, channel)
        if not programs:
            return NowNext()
        return pick_now_next(programs, at)

    def get_timeline(
        self,
        snapshot: EpgSnapshot,
        channel: PlaylistChannel,
        at: datetime,
        past: timedelta,
        future: timedelta,
    ) -> list[EpgProgram]:
        _, programs = self.resolve_programs(snapshot, channel)
        if not programs:
            return []
        return select_timeline(programs, at, past, future)

    def get_timeline_items(
        self,
        snapshot: EpgSnapshot,
        channel: PlaylistChannel,
        at: datetime,
        past: timedelta,
        future: timedelta,
    ) -> list[TimelineItem]:
        programs = self.get_timeline(snapshot, channel, at, past, future)
        return build_timeline_items(programs, at)
