import asyncio
import os
import tempfile
from datetime import datetime, timedelta, timezone
from xml.sax.saxutils import escape

import pytest

_TEST_DATA_DIR = tempfile.mkdtemp(prefix="epghub-tests-")
os.environ.setdefault("DATABASE_PATH", os.path.join(_TEST_DATA_DIR, "epg.db"))
os.environ.setdefault("REPORT_DIR", os.path.join(_TEST_DATA_DIR, "reports"))
os.environ.setdefault("EPG_SOURCES", "")

from epghub.database import close_db, init_db  # noqa: E402
from epghub.services.fetch_types import EpgChannel, EpgProgram, EpgSnapshot  # noqa: E402


BASE_TIME = datetime(2024, 3, 1, 0, 0, tzinfo=timezone.utc)


def xmltv_time(value: datetime) -> str:
    return value.astimezone(timezone.utc).strftime("%Y%m%d%H%M%S +0000")


def build_xmltv(channels=(), programmes=()) -> str:
    """
    Build an XMLTV document.

    channels: iterable of (channel_id, [display names])
    programmes: iterable of (channel_id, start, stop, title)
    """
    parts = ['<?xml version="1.0" encoding="UTF-8"?>', '<tv generator-info-name="tests">']
    for channel_id, names in channels:
        parts.append(f'<channel id="{escape(channel_id)}">')
        for name in names:
            parts.append(f"<display-name>{escape(name)}</display-name>")
        parts.append("</channel>")
    for channel_id, start, stop, title in programmes:
        parts.append(
            f'<programme start="{xmltv_time(start)}" stop="{xmltv_time(stop)}" channel="{escape(channel_id)}">'
            f"<title>{escape(title)}</title></programme>"
        )
    parts.append("</tv>")
    return "\n".join(parts)


def hourly_programmes(channel_id: str, count: int, prefix: str, start: datetime = BASE_TIME):
    return [
        (channel_id, start + timedelta(hours=i), start + timedelta(hours=i + 1), f"{prefix} {i}")
        for i in range(count)
    ]


def make_program(channel_id: str, start_hour: float, stop_hour: float, title: str = "Show") -> EpgProgram:
    return EpgProgram(
        channel_id=channel_id,
        title=title,
        start_time=BASE_TIME + timedelta(hours=start_hour),
        stop_time=BASE_TIME + timedelta(hours=stop_hour),
    )


def make_snapshot(programs, channels=(), provider_id: str = "p1") -> EpgSnapshot:
    return EpgSnapshot.create(provider_id, list(programs), list(channels))


class InMemorySnapshotStore:
    """Snapshot store double keeping snapshots in a dict."""

    def __init__(self):
        self.snapshots: dict[str, EpgSnapshot] = {}
        self.saves = 0

    async def save(self, snapshot: EpgSnapshot) -> None:
        self.saves += 1
        self.snapshots[snapshot.provider_id] = snapshot

    async def load(self, provider_id: str):
        return self.snapshots.get(provider_id)

    async def delete(self, provider_id: str) -> None:
        self.snapshots.pop(provider_id, None)


@pytest.fixture
def memory_store():
    return InMemorySnapshotStore()


@pytest.fixture
def run_with_db(tmp_path):
    """Run an async scenario against a fresh SQLite database."""
    db_path = str(tmp_path / "epg.db")

    def runner(scenario):
        async def wrapped():
            await init_db(db_path)
            try:
                return await scenario()
            finally:
                await close_db()

        return asyncio.run(wrapped())

    return runner


@pytest.fixture
def channel_factory():
    def factory(channel_id: str, *names: str) -> EpgChannel:
        return EpgChannel(channel_id=channel_id, display_names=tuple(names))

    return factory
