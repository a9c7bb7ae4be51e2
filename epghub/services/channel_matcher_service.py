"""
Channel Matcher

Resolves a playlist channel (name + optional tvg-id) to a guide channel id
through four tiers, each tried only when the previous one found nothing:

1. exact raw id
2. normalized display name
3. normalized id
4. fuzzy normalized id
"""
import logging
from collections.abc import Iterable

from epghub.services.channel_index_service import ResolutionIndex, SnapshotEntry
from epghub.services.fetch_types import PlaylistChannel
from epghub.utils.normalization import normalize_key, remove_country_suffix, strip_quality_tokens

logger = logging.getLogger(__name__)

FUZZY_MIN_SCORE = 55
FUZZY_MAX_LENGTH_PENALTY = 20


def build_cache_key(channel: PlaylistChannel) -> str:
    """Resolution cache key: tvg-id when present, otherwise the trimmed name."""
    if channel.tvg_id and channel.tvg_id.strip():
        return "id:" + channel.tvg_id.strip().casefold()
    return "name:" + (channel.name or "").strip().casefold()


def build_raw_candidates(channel: PlaylistChannel) -> list[str]:
    """
    Ordered exact-match candidates for a playlist channel.

    tvg-id, tvg-id without a ``.xx`` country suffix, tvg-id without a ``-xx``
    suffix, the name, the name without quality tokens. Deduplicated
    case-insensitively.
    """
    candidates: list[str] = []

    if channel.tvg_id and channel.tvg_id.strip():
        tvg_id = channel.tvg_id.strip()
        candidates.append(tvg_id)
        candidates.append(remove_country_suffix(tvg_id, "."))
        candidates.append(remove_country_suffix(tvg_id, "-"))

    if channel.name and channel.name.strip():
        candidates.append(channel.name.strip())
        candidates.append(strip_quality_tokens(channel.name))

    result: list[str] = []
    seen: set[str] = set()
    for candidate in candidates:
        candidate = candidate.strip()
        folded = candidate.casefold()
        if candidate and folded not in seen:
            seen.add(folded)
            result.append(candidate)
    return result


def fuzzy_score(key: str, query: str) -> int:
    """Score a normalized id key against a normalized query (0 when unrelated)."""
    if key == query:
        score = 100
    elif key.startswith(query):
        score = 80
    elif query.startswith(key):
        score = 70
    elif query in key:
        score = 60
    elif key in query:
        score = 55
    else:
        return 0

    return score - min(abs(len(key) - len(query)), FUZZY_MAX_LENGTH_PENALTY)


def find_best_fuzzy(normalized_keys: Iterable[str], query: str) -> str | None:
    """Best scoring key with score >= 55; earlier keys win ties."""
    best = None
    best_score = 0

    for key in normalized_keys:
        score = fuzzy_score(key, query)
        if score > best_score:
            best_score = score
            best = key

    return best if best_score >= FUZZY_MIN_SCORE else None


def _shortest(raw_ids: list[str]) -> str:
    return min(raw_ids, key=lambda raw: (len(raw), raw))


def resolve_channel_id(index: ResolutionIndex, channel: PlaylistChannel) -> str | None:
    """
    Resolve a playlist channel against an index without caching.

    Returns:
        Guide channel id, or None when no tier matched
    """
    raw_candidates = build_raw_candidates(channel)

    for candidate in raw_candidates:
        raw = index.lookup_raw(candidate)
        if raw is not None:
            logger.debug("Resolved %r via exact id %r", channel.name, raw)
            return raw

    if channel.name and channel.name.strip():
        for key in (normalize_key(channel.name), normalize_key(strip_quality_tokens(channel.name))):
            if key and key in index.id_by_display_name:
                logger.debug("Resolved %r via display name %r", channel.name, key)
                return index.id_by_display_name[key]

    normalized_candidates: list[str] = []
    for candidate in raw_candidates:
        key = normalize_key(candidate)
        if key and key not in normalized_candidates:
            normalized_candidates.append(key)

    for key in normalized_candidates:
        hits = index.ids_by_normalized.get(key)
        if hits:
            logger.debug("Resolved %r via normalized id %r", channel.name, key)
            return _shortest(hits)

    for key in normalized_candidates:
        best = find_best_fuzzy(index.ids_by_normalized.keys(), key)
        if best is not None:
            hits = index.ids_by_normalized.get(best)
            if hits:
                logger.debug("Resolved %r via fuzzy match %r -> %r", channel.name, key, best)
                return _shortest(hits)

    return None


class ChannelMatcher:
    """Resolves playlist channels, memoizing positive results per snapshot."""

    def resolve(self, entry: SnapshotEntry, channel: PlaylistChannel) -> str | None:
        """
        Resolve a channel against a snapshot entry.

        Misses are not cached so a later snapshot can still resolve them.

        Args:
            entry: Snapshot entry holding the index and resolution cache
            channel: Playlist channel to resolve

        Returns:
            Guide channel id or None ("no guide data")
        """
        if entry.index.is_empty():
            return None

        cache_key = build_cache_key(channel)
        cached = entry.resolutions.get(cache_key)
        if cached:
            return cached

        resolved = resolve_channel_id(entry.index, channel)
        if resolved:
            entry.resolutions[cache_key] = resolved
        else:
            logger.debug("No guide channel for %r (tvg-id=%r)", channel.name, channel.tvg_id)
        return resolved
