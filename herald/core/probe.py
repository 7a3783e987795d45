"""
Duration probing through an external `ffprobe` process.

`ffprobe <file>` prints a banner on stderr that contains a line such as::

    Duration: 00:03:25.47, start: 0.000000, bitrate: 320 kb/s

We only ever parse that line. The fractional part keeps its own precision:
".47" is 47/100 of a second, ".470" is 470/1000.
"""

from __future__ import annotations

import asyncio
import logging
import re
import shutil
from pathlib import Path

from herald.core import NoDurationError, ProbeError

logger = logging.getLogger(__name__)

DURATION_RE = re.compile(r"Duration: (\d{2}):(\d{2}):(\d{2})\.(\d+)")

# Tail of stderr kept in error messages
_STDERR_TAIL = 500


def parse_duration(output: str) -> float:
    """
    Seconds from the first `Duration: HH:MM:SS.frac` in `output`.

    Raises `NoDurationError` when there is none (e.g. "Duration: N/A").
    """
    match = DURATION_RE.search(output)
    if match is None:
        raise NoDurationError("no duration found in probe output")
    hours, minutes, seconds, frac = match.groups()
    return int(hours) * 3600 + int(minutes) * 60 + int(seconds) + int(frac) / 10 ** len(frac)


class DurationProbe:
    """
    Async callable: `await probe(path) -> seconds`.

    Args:
        binary: Name or path of the ffprobe executable.
        timeout: Seconds to wait for the process before killing it (None: wait forever).
    """

    def __init__(self, binary: str = "ffprobe", timeout: float | None = 30.0) -> None:
        self.binary = binary
        self.timeout = timeout

    def available(self) -> bool:
        return shutil.which(self.binary) is not None

    async def __call__(self, path: Path) -> float:
        logger.debug("Probing %s", path)
        try:
            proc = await asyncio.create_subprocess_exec(
                self.binary,
                str(path),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as e:
            raise ProbeError(f"probe binary not found: {self.binary}") from e

        try:
            _, stderr = await asyncio.wait_for(proc.communicate(), timeout=self.timeout)
        except TimeoutError:
            proc.kill()
            await proc.wait()
            raise ProbeError(f"{self.binary} timed out after {self.timeout}s on {path}") from None

        text = stderr.decode("utf-8", errors="replace")
        if proc.returncode != 0:
            raise ProbeError(
                f"{self.binary} exited with {proc.returncode} on {path}: {text[-_STDERR_TAIL:].strip()}"
            )
        return parse_duration(text)
