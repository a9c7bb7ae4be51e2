"""
Data merging utilities

This module handles merging of channels and programs from multiple sources.
"""
import logging
from collections.abc import Iterable, Sequence
from datetime import datetime

from epghub.services.fetch_types import EpgChannel, EpgProgram, FeedSource
from epghub.utils.normalization import normalize_title

logger = logging.getLogger(__name__)

ProgramKey = tuple[str, datetime, datetime, str]


def create_program_key(program: EpgProgram) -> ProgramKey:
    """
    Create the strict duplicate key for a program.

    Channel id (case-insensitive), exact start and stop instants and the
    normalized title. No tolerance is applied to the times.

    Args:
        program: EpgProgram instance

    Returns:
        Hashable key tuple
    """
    return (
        program.channel_id.strip().casefold(),
        program.start_time,
        program.stop_time,
        normalize_title(program.title),
    )


def dedup_programs(programs: Iterable[EpgProgram]) -> list[EpgProgram]:
    """Drop exact duplicates, keeping the first occurrence and input order."""
    seen: set[ProgramKey] = set()
    result: list[EpgProgram] = []
    duplicates = 0

    for program in programs:
        key = create_program_key(program)
        if key in seen:
            duplicates += 1
            continue
        seen.add(key)
        result.append(program)

    if duplicates:
        logger.debug("Dropped %s duplicate program(s)", duplicates)
    return result


def select_winning_sources(sources: Sequence[FeedSource]) -> dict[str, FeedSource]:
    """
    Pick exactly one source per channel id.

    The source contributing the most programs for a channel wins; on equal
    counts the source listed earlier in the input URL list wins.

    Args:
        sources: Successfully parsed sources, in any order

    Returns:
        Mapping of case-folded channel id -> winning FeedSource
    """
    best: dict[str, tuple[int, FeedSource]] = {}

    for source in sources:
        counts: dict[str, int] = {}
        for program in source.programs:
            channel_key = program.channel_id.strip().casefold()
            if channel_key:
                counts[channel_key] = counts.get(channel_key, 0) + 1

        for channel_key, count in counts.items():
            current = best.get(channel_key)
            if current is None:
                best[channel_key] = (count, source)
                continue

            best_count, best_source = current
            if count > best_count or (count == best_count and source.position < best_source.position):
                best[channel_key] = (count, source)

    return {channel_key: source for channel_key, (_, source) in best.items()}


def merge_programs(sources: Sequence[FeedSource]) -> list[EpgProgram]:
    """
    Merge programs keeping, per channel, only those from the winning source.

    Args:
        sources: Successfully parsed sources

    Returns:
        Deduplicated merged program list
    """
    winners = select_winning_sources(sources)
    ordered = sorted(sources, key=lambda source: source.position)

    merged: list[EpgProgram] = []
    for source in ordered:
        for program in source.programs:
            channel_key = program.channel_id.strip().casefold()
            if winners.get(channel_key) is source:
                merged.append(program)

    logger.debug(
        "Winner selection kept %s of %s programs across %s channel(s)",
        len(merged),
        sum(len(source.programs) for source in sources),
        len(winners),
    )
    return dedup_programs(merged)


def merge_channels(sources: Sequence[FeedSource]) -> list[EpgChannel]:
    """
    Merge channel display names across all sources (not just winners).

    Channels sharing an id (case-insensitive) are combined; the first spelling
    of the id is kept and display names are deduplicated case-insensitively.

    Args:
        sources: Successfully parsed sources

    Returns:
        List of merged channels in first-seen order
    """
    merged: dict[str, tuple[str, list[str], set[str]]] = {}

    for source in sorted(sources, key=lambda source: source.position):
        for channel in source.channels:
            channel_key = channel.channel_id.strip().casefold()
            if not channel_key:
                continue

            entry = merged.get(channel_key)
            if entry is None:
                entry = (channel.channel_id.strip(), [], set())
                merged[channel_key] = entry

            _, names, seen = entry
            for name in channel.display_names:
                if not name or not name.strip():
                    continue
                folded = name.casefold()
                if folded not in seen:
                    seen.add(folded)
                    names.append(name)

    return [
        EpgChannel(channel_id=channel_id, display_names=tuple(names))
        for channel_id, names, _ in merged.values()
    ]
