"""
Snapshot persistence

Saves and loads whole guide snapshots per provider.
"""
import logging
from collections.abc import Sequence
from datetime import datetime
from time import perf_counter

from sqlalchemy import delete, insert, select
from sqlalchemy.ext.asyncio import AsyncSession

from epghub.database import session_scope
from epghub.models import Snapshot, SnapshotChannel, SnapshotProgram
from epghub.services.fetch_types import EpgChannel, EpgProgram, EpgSnapshot


logger = logging.getLogger(__name__)

INSERT_CHUNK_SIZE = 50000


class SnapshotStore:
    """Loads and saves EpgSnapshot records keyed by provider id."""

    async def save(self, snapshot: EpgSnapshot) -> None:
        """
        Replace the stored snapshot for ``snapshot.provider_id``.

        Args:
            snapshot: Snapshot to persist
        """
        started = perf_counter()
        async with session_scope() as session:
            await _delete_provider_rows(session, snapshot.provider_id)

            session.add(
                Snapshot(
                    provider_id=snapshot.provider_id,
                    snapshot_id=snapshot.snapshot_id,
                    created_at=snapshot.created_at,
                )
            )
            await session.flush()

            await _store_channels(session, snapshot.provider_id, snapshot.channels)
            await _store_programs(session, snapshot.provider_id, snapshot.programs)

        logger.info(
            "Saved snapshot %s for provider %s: %s channels, %s programs (%.2fs)",
            snapshot.snapshot_id,
            snapshot.provider_id,
            len(snapshot.channels),
            len(snapshot.programs),
            perf_counter() - started,
        )

    async def load(self, provider_id: str) -> EpgSnapshot | None:
        """
        Load the stored snapshot for a provider.

        Returns:
            EpgSnapshot with programs in start order, or None if nothing is stored
        """
        async with session_scope() as session:
            header = await session.get(Snapshot, provider_id)
            if header is None:
                return None

            channel_rows = (
                await session.execute(
                    select(SnapshotChannel)
                    .where(SnapshotChannel.provider_id == provider_id)
                    .order_by(SnapshotChannel.id)
                )
            ).scalars().all()

            program_rows = (
                await session.execute(
                    select(SnapshotProgram)
                    .where(SnapshotProgram.provider_id == provider_id)
                    .order_by(SnapshotProgram.start_time, SnapshotProgram.id)
                )
            ).scalars().all()

            channels = tuple(
                EpgChannel(channel_id=row.channel_id, display_names=tuple(row.display_names or ()))
                for row in channel_rows
            )
            programs = tuple(
                EpgProgram(
                    channel_id=row.channel_id,
                    title=row.title,
                    description=row.description,
                    start_time=datetime.fromisoformat(row.start_time),
                    stop_time=datetime.fromisoformat(row.stop_time),
                )
                for row in program_rows
            )

            logger.debug(
                "Loaded snapshot %s for provider %s: %s channels, %s programs",
                header.snapshot_id,
                provider_id,
                len(channels),
                len(programs),
            )

            return EpgSnapshot(
                provider_id=header.provider_id,
                created_at=header.created_at,
                programs=programs,
                channels=channels,
                snapshot_id=header.snapshot_id,
            )

    async def delete(self, provider_id: str) -> None:
        async with session_scope() as session:
            await _delete_provider_rows(session, provider_id)
        logger.info("Deleted stored snapshot for provider %s", provider_id)


async def _delete_provider_rows(db: AsyncSession, provider_id: str) -> None:
    await db.execute(delete(SnapshotProgram).where(SnapshotProgram.provider_id == provider_id))
    await db.execute(delete(SnapshotChannel).where(SnapshotChannel.provider_id == provider_id))
    await db.execute(delete(Snapshot).where(Snapshot.provider_id == provider_id))


async def _store_channels(db: AsyncSession, provider_id: str, channels: Sequence[EpgChannel]) -> None:
    """Store channels using executemany batches."""
    if not channels:
        logger.debug("No channels to store")
        return

    payload = [
        {
            "provider_id": provider_id,
            "channel_id": channel.channel_id,
            "display_names": list(channel.display_names),
        }
        for channel in channels
    ]
    for start_index in range(0, len(payload), INSERT_CHUNK_SIZE):
        await db.execute(insert(SnapshotChannel), payload[start_index:start_index + INSERT_CHUNK_SIZE])


async def _store_programs(db: AsyncSession, provider_id: str, programs: Sequence[EpgProgram]) -> None:
    """Store programs using executemany batches."""
    if not programs:
        logger.debug("No programs to store")
        return

    chunk_number = 0
    for start_index in range(0, len(programs), INSERT_CHUNK_SIZE):
        chunk_number += 1
        loop_start = perf_counter()
        chunk = programs[start_index:start_index + INSERT_CHUNK_SIZE]
        payload = [
            {
                "provider_id": provider_id,
                "channel_id": program.channel_id,
                "start_time": program.start_time.isoformat(),
                "stop_time": program.stop_time.isoformat(),
                "title": program.title,
                "description": program.description,
            }
            for program in chunk
        ]
        await db.execute(insert(SnapshotProgram), payload)
        logger.debug(
            "Chunk %s persisted: %s programs in %.2fs",
            chunk_number,
            len(payload),
            perf_counter() - loop_start,
        )
