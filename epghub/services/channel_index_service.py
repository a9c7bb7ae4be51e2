"""
Channel Resolution Index

Lookup structures built once per snapshot, and the cache that scopes them (and
the matcher's resolutions) to a single snapshot instance.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field

from epghub.services.fetch_types import EpgProgram, EpgSnapshot
from epghub.utils.normalization import normalize_key

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ResolutionIndex:
    """Read-only lookup tables for one snapshot.

    ``programs_by_id`` lists are sorted ascending by start time; the query
    engine relies on that order for early exit.
    """
    programs_by_id: dict[str, list[EpgProgram]]
    raw_ids: dict[str, str]
    ids_by_normalized: dict[str, list[str]]
    id_by_display_name: dict[str, str]

    def lookup_raw(self, candidate: str) -> str | None:
        """Case-insensitive exact id lookup returning the stored spelling."""
        return self.raw_ids.get(candidate.strip().casefold())

    def programs_for(self, channel_id: str) -> list[EpgProgram]:
        raw = self.lookup_raw(channel_id)
        if raw is None:
            return []
        return self.programs_by_id.get(raw, [])

    def is_empty(self) -> bool:
        return not self.programs_by_id


def build_index(snapshot: EpgSnapshot) -> ResolutionIndex:
    """
    Build the resolution index for a snapshot.

    Args:
        snapshot: Snapshot to index

    Returns:
        ResolutionIndex with programs grouped by channel id and sorted by start
    """
    programs_by_id: dict[str, list[EpgProgram]] = {}
    raw_ids: dict[str, str] = {}

    for program in snapshot.programs:
        raw = program.channel_id.strip()
        if not raw:
            continue
        folded = raw.casefold()
        canonical = raw_ids.setdefault(folded, raw)
        programs_by_id.setdefault(canonical, []).append(program)

    for programs in programs_by_id.values():
        programs.sort(key=lambda program: program.start_time)

    # normalized display-name -> channel id, first one wins
    id_by_display_name: dict[str, str] = {}
    for channel in snapshot.channels:
        channel_id = channel.channel_id.strip()
        if not channel_id:
            continue
        for display_name in channel.display_names:
            key = normalize_key(display_name)
            if key and key not in id_by_display_name:
                id_by_display_name[key] = channel_id

    ids_by_normalized: dict[str, list[str]] = {}
    for raw in programs_by_id:
        key = normalize_key(raw)
        if key:
            ids_by_normalized.setdefault(key, []).append(raw)

    logger.debug(
        "Built index for %s/%s: %s channel ids, %s display names",
        snapshot.provider_id,
        snapshot.snapshot_id,
        len(programs_by_id),
        len(id_by_display_name),
    )

    return ResolutionIndex(
        programs_by_id=programs_by_id,
        raw_ids=raw_ids,
        ids_by_normalized=ids_by_normalized,
        id_by_display_name=id_by_display_name,
    )


@dataclass(slots=True)
class SnapshotEntry:
    """Index and positive resolution cache owned by one snapshot instance."""
    snapshot: EpgSnapshot
    index: ResolutionIndex
    resolutions: dict[str, str] = field(default_factory=dict)

    @property
    def snapshot_id(self) -> str:
        return self.snapshot.snapshot_id


class SnapshotCache:
    """
    Provider id -> {snapshot, index, resolution cache}.

    Entries are replaced when a snapshot with a different id is published or
    queried, so nothing outlives the snapshot it was derived from. Index
    construction happens outside the lock; two concurrent builds for the same
    snapshot waste work but produce identical results.
    """

    def __init__(self):
        self._entries: dict[str, SnapshotEntry] = {}
        self._lock = threading.Lock()

    def entry_for(self, snapshot: EpgSnapshot) -> SnapshotEntry:
        """Return the cached entry for this snapshot, building it on first use."""
        with self._lock:
            entry = self._entries.get(snapshot.provider_id)
        if entry is not None and entry.snapshot_id == snapshot.snapshot_id:
            return entry

        entry = SnapshotEntry(snapshot=snapshot, index=build_index(snapshot))
        with self._lock:
            current = self._entries.get(snapshot.provider_id)
            if current is not None and current.snapshot_id == snapshot.snapshot_id:
                return current
            self._entries[snapshot.provider_id] = entry
        return entry

    def publish(self, snapshot: EpgSnapshot) -> None:
        """Make ``snapshot`` the current one for its provider, dropping the old entry."""
        with self._lock:
            previous = self._entries.pop(snapshot.provider_id, None)
        if previous is not None and previous.snapshot_id != snapshot.snapshot_id:
            logger.info(
                "Evicted cached index for provider %s (snapshot %s replaced by %s)",
                snapshot.provider_id,
                previous.snapshot_id,
                snapshot.snapshot_id,
            )
        self.entry_for(snapshot)

    def current(self, provider_id: str) -> EpgSnapshot | None:
        with self._lock:
            entry = self._entries.get(provider_id)
        return entry.snapshot if entry else None

    def evict(self, provider_id: str) -> None:
        with self._lock:
            self._entries.pop(provider_id, None)

    def __contains__(self, provider_id: str) -> bool:
        with self._lock:
            return provider_id in self._entries
