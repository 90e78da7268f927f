"""
Probe Service - Single Responsibility: read container metadata.

Runs ``ffprobe`` as an async subprocess so the event loop is never blocked.
"""
import asyncio
import json
import logging
from pathlib import Path

logger = logging.getLogger(__name__)


class ProbeError(Exception):
    """Container metadata could not be read."""


class FFProbeService:
    """
    Reads duration from a media container with ffprobe.

    Implements IMediaProbe protocol.
    """

    def __init__(self, binary: str = "ffprobe", timeout: float = 30):
        self._binary = binary
        self._timeout = timeout

    async def duration(self, path: Path) -> float:
        """
        Probe media duration.

        Args:
            path: Path to media file

        Returns:
            Duration in seconds

        Raises:
            ProbeError: ffprobe is missing, failed, or reported no duration
        """
        payload = await self._run(Path(path))
        fmt = payload.get("format")
        raw = fmt.get("duration") if isinstance(fmt, dict) else None
        if raw is None:
            raise ProbeError(f"no duration reported for {Path(path).name}")
        try:
            return float(raw)
        except (TypeError, ValueError) as exc:
            raise ProbeError(f"invalid duration {raw!r}") from exc

    async def _run(self, path: Path) -> dict:
        try:
            proc = await asyncio.create_subprocess_exec(
                self._binary,
                "-v", "error",
                "-show_entries", "format=duration",
                "-of", "json",
                str(path),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as exc:
            raise ProbeError(f"{self._binary} is not available") from exc

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=self._timeout)
        except asyncio.TimeoutError as exc:
            proc.kill()
            await proc.wait()
            raise ProbeError(f"{self._binary} timed out") from exc

        if proc.returncode != 0:
            detail = stderr.decode(errors="replace").strip()[:300]
            raise ProbeError(f"{self._binary} failed: {detail or proc.returncode}")

        try:
            return json.loads(stdout or b"{}")
        except ValueError as exc:
            raise ProbeError(f"{self._binary} returned invalid JSON") from exc
