"""
File operation utilities

Writes operator-facing diagnostic reports.
"""
import logging
from collections.abc import Iterable
from pathlib import Path

import aiofiles


logger = logging.getLogger(__name__)


async def write_report(file_path: Path, lines: Iterable[str]) -> Path:
    """
    Write report lines to a text file, one per line

    Args:
        file_path: Destination file, parent directories are created
        lines: Report lines (already in the desired order)

    Returns:
        Path of the written report

    Raises:
        OSError: If the file cannot be written
    """
    file_path.parent.mkdir(parents=True, exist_ok=True)
    content = "".join(f"{line}\n" for line in lines)

    async with aiofiles.open(file_path, "w", encoding="utf-8") as f:
        await f.write(content)

    logger.debug(f"Wrote EPG report to {file_path}")
    return file_path


async def read_report(file_path: Path) -> list[str]:
    """Read a previously written report; missing file yields an empty list."""
    if not file_path.exists():
        return []

    async with aiofiles.open(file_path, "r", encoding="utf-8") as f:
        content = await f.read()
    return [line for line in content.splitlines() if line]
