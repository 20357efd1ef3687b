"""
SalesIQ — Audio File Service

Prepares an uploaded recording for analysis:
  • full-content base64 payload for the provider request
  • playable duration, measured by opening the file with PyAV

Both run in the default executor at the same time; the combined call
finishes only when both have, and the first failure propagates.
"""

from __future__ import annotations

import asyncio
import base64
import logging
from typing import Tuple

import av
from av.error import FFmpegError

from ..core.errors import EncodingError, UnsupportedFormatError
from ..core.models import AudioFile

logger = logging.getLogger("salesiq.audio")


def format_duration(seconds: float) -> str:
    """`M:SS`, or `H:MM:SS` from one hour up."""
    total = max(0, int(seconds))
    hours, rem = divmod(total, 3600)
    minutes, secs = divmod(rem, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


def read_base64(path: str) -> str:
    try:
        with open(path, "rb") as handle:
            data = handle.read()
    except OSError as e:
        raise EncodingError(f"Could not read {path}: {e}") from e
    return base64.b64encode(data).decode("ascii")


def read_duration(path: str) -> float:
    """Seconds of playable audio. Raises UnsupportedFormatError if undecodable."""
    try:
        container = av.open(path)
    except FileNotFoundError as e:
        raise EncodingError(f"File vanished before probing: {path}") from e
    except FFmpegError as e:
        raise UnsupportedFormatError(f"Cannot decode {path}: {e}") from e

    try:
        if not container.streams.audio:
            raise UnsupportedFormatError(f"No audio stream in {path}")
        stream = container.streams.audio[0]

        if stream.duration is not None and stream.time_base is not None:
            return float(stream.duration * stream.time_base)
        if container.duration is not None:
            return container.duration / av.time_base

        # Some containers carry no duration header; decode to find the end
        end = 0.0
        for frame in container.decode(stream):
            if frame.time is not None and frame.sample_rate:
                end = max(end, frame.time + frame.samples / frame.sample_rate)
        if end <= 0:
            raise UnsupportedFormatError(f"No decodable audio frames in {path}")
        return end
    except FFmpegError as e:
        raise UnsupportedFormatError(f"Cannot decode {path}: {e}") from e
    finally:
        container.close()


class AudioFileService:
    """Encodes a recording and extracts its duration label."""

    async def encode(self, audio: AudioFile) -> Tuple[str, str]:
        loop = asyncio.get_running_loop()
        payload, seconds = await asyncio.gather(
            loop.run_in_executor(None, read_base64, audio.path),
            loop.run_in_executor(None, read_duration, audio.path),
        )
        label = format_duration(seconds)
        logger.info(
            f"Encoded {audio.name}: {len(payload)} base64 chars, duration {label}"
        )
        return payload, label
