"""Append timestamped lines to the indicator calculation log file."""

from __future__ import annotations

import asyncio
from datetime import datetime
from pathlib import Path

LOG_FILE_NAME = "indicator_calculations.log"


def _append(directory: Path, message: str) -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / LOG_FILE_NAME
    stamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S.%f")[:-3]
    with path.open("a", encoding="utf-8") as handle:
        handle.write(f"[{stamp}] {message}\n")
    return path


async def log_to_file(message: str, log_dir: str | Path = "logs") -> Path:
    """Append ``message`` with a local timestamp; returns the log file path."""
    return await asyncio.to_thread(_append, Path(log_dir), message)