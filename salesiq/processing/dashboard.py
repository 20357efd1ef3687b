"""
SalesIQ — Dashboard helpers

Small derived values the dashboard shows next to the raw result.
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Sequence

from ..core.models import AnalysisResult, TranscriptSegment
from .transcript_sync import parse_timecode

# Assumed length of a turn with no end timestamp (seconds)
DEFAULT_TURN_SECONDS = 2.0

_NEUTRAL_LABELS = {
    "speaker a": "Salesperson",
    "speaker 1": "Salesperson",
    "speaker b": "Prospect",
    "speaker 2": "Prospect",
}


def display_speaker(speaker: str) -> str:
    """Neutral diarization labels mapped onto sales roles; anything else as-is."""
    return _NEUTRAL_LABELS.get(speaker.strip().lower(), speaker)


def speaker_talk_time(transcript: Sequence[TranscriptSegment]) -> Dict[str, float]:
    stats: Dict[str, float] = {}
    for seg in transcript:
        name = display_speaker(seg.speaker)
        start = parse_timecode(seg.start_time)
        end = parse_timecode(seg.end_time) if seg.end_time else start + DEFAULT_TURN_SECONDS
        stats[name] = stats.get(name, 0.0) + max(0.0, end - start)
    return stats


def talk_ratio_feedback(ratio: float) -> str:
    # 30-40% is the target band for the salesperson
    if ratio <= 40:
        return "Excellent"
    if ratio <= 50:
        return "Good"
    if ratio <= 60:
        return "Too High"
    return "Way Too High"


def format_talk_time(seconds: float) -> str:
    return f"{int(seconds // 60)}m {int(seconds % 60)}s"


def dashboard_extras(result: AnalysisResult) -> Dict[str, Any]:
    talk = speaker_talk_time(result.transcript)
    ratio: Optional[float] = (
        result.sales_metrics.talk_ratio_percent if result.sales_metrics else None
    )
    return {
        "speakerTalkTime": {name: format_talk_time(s) for name, s in talk.items()},
        "talkRatioFeedback": talk_ratio_feedback(ratio) if ratio is not None else None,
        "segmentCount": len(result.transcript),
    }
