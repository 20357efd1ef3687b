"""
SalesIQ — Transcript Sync

Keeps the transcript in step with audio playback:
  • timecode parsing ("MM:SS" / "HH:MM:SS" → seconds)
  • active segment for the current playback time
  • search + highlight inside the transcript
  • seek-on-click

Timestamps come from a generative model, so malformed ones degrade to 0
instead of failing the whole view.
"""

from __future__ import annotations

import logging
import re
from typing import List, Optional, Protocol, Sequence, Tuple

from ..core.models import TranscriptSegment

logger = logging.getLogger("salesiq.sync")


_TIME_PART = re.compile(r"\d+(?:\.\d+)?")


def parse_timecode(text: Optional[str]) -> float:
    if not text:
        return 0.0
    parts = [p.strip() for p in text.strip().split(":")]
    # Plain decimal digits only: float() would also take "nan", "inf" and "1_0"
    if not all(_TIME_PART.fullmatch(p) for p in parts):
        return 0.0
    values = [float(p) for p in parts]
    if len(values) == 2:
        return values[0] * 60 + values[1]
    if len(values) == 3:
        return values[0] * 3600 + values[1] * 60 + values[2]
    return 0.0


def active_segment(
    transcript: Sequence[TranscriptSegment],
    current_time: float,
) -> Optional[TranscriptSegment]:
    """Last segment (scanning from the end) whose start is at or before current_time."""
    for segment in reversed(transcript):
        if parse_timecode(segment.start_time) <= current_time:
            return segment
    return None


def search(
    transcript: Sequence[TranscriptSegment],
    query: Optional[str],
) -> Sequence[TranscriptSegment]:
    """Case-insensitive match on speaker or text. Blank query → input unchanged."""
    if not query or not query.strip():
        return transcript
    needle = query.lower()
    return tuple(
        segment for segment in transcript
        if needle in segment.text.lower() or needle in segment.speaker.lower()
    )


def highlight(text: str, query: Optional[str]) -> List[Tuple[str, bool]]:
    """Split text into (fragment, is_match) pairs; the query is matched literally."""
    if not query or not query.strip():
        return [(text, False)]
    pattern = re.compile(f"({re.escape(query)})", re.IGNORECASE)
    return [
        (part, i % 2 == 1)
        for i, part in enumerate(pattern.split(text))
        if part
    ]


def find_topic_segment(
    transcript: Sequence[TranscriptSegment],
    topic: str,
) -> Optional[TranscriptSegment]:
    """First segment mentioning a topic chip, for jump-to-topic."""
    needle = topic.lower()
    for segment in transcript:
        if needle in segment.text.lower():
            return segment
    return None


# ---------------------------------------------------------------------------
# Seeking
# ---------------------------------------------------------------------------

class Player(Protocol):
    def seek(self, seconds: float) -> None: ...

    def play(self) -> None: ...


def seek(player: Player, timecode: str) -> float:
    """Jump the player to a timecode and resume. Playback refusals are ignored."""
    seconds = parse_timecode(timecode)
    player.seek(seconds)
    try:
        player.play()
    except Exception as e:
        logger.debug(f"Playback did not resume after seek to {timecode}: {e}")
    return seconds


# ═══════════════════════════════════════════════════════════════════════════
# Cursor — pushed playback time → active segment
# ═══════════════════════════════════════════════════════════════════════════

class TranscriptCursor:
    """
    Holds the externally pushed playback time and the bound transcript.
    The active segment is recomputed only when one of the two changes.

    Usage:
        cursor = TranscriptCursor()
        cursor.bind(result.transcript)
        cursor.update_time(42.0)
        cursor.active        # → segment playing at 0:42
    """

    def __init__(self) -> None:
        self._transcript: Sequence[TranscriptSegment] = ()
        self._time = 0.0
        self._active: Optional[TranscriptSegment] = None
        self._dirty = False
        self.playing = False
        self.recomputations = 0

    @property
    def current_time(self) -> float:
        return self._time

    @property
    def transcript(self) -> Sequence[TranscriptSegment]:
        return self._transcript

    def bind(self, transcript: Sequence[TranscriptSegment]) -> None:
        if transcript is self._transcript:
            return
        self._transcript = transcript
        self._time = 0.0
        self._dirty = True

    def update_time(self, seconds: float) -> None:
        seconds = max(0.0, float(seconds))
        if seconds == self._time:
            return
        self._time = seconds
        self._dirty = True

    # Player protocol, so seek() can drive the cursor directly
    def seek(self, seconds: float) -> None:
        self.update_time(seconds)

    def play(self) -> None:
        self.playing = True

    def pause(self) -> None:
        self.playing = False

    @property
    def active(self) -> Optional[TranscriptSegment]:
        if self._dirty:
            self._active = active_segment(self._transcript, self._time)
            self._dirty = False
            self.recomputations += 1
        return self._active

    def active_index(self) -> Optional[int]:
        segment = self.active
        if segment is None:
            return None
        for i, candidate in enumerate(self._transcript):
            if candidate is segment:
                return i
        return None
