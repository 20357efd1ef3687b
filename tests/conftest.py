import copy
import json
import os
import wave

import pytest

from salesiq.core.errors import ConfigurationError
from salesiq.core.models import AudioFile


CANNED_RESULT = {
    "callType": "discovery",
    "verdict": "Strong discovery but missed budget qualification",
    "summary": "The rep uncovered the prospect's reporting pain. Budget is still open.",
    "topics": ["Reporting", "Pricing", "Onboarding"],
    "transcript": [
        {"speaker": "Salesperson", "timestamp": "00:00", "endTime": "00:12", "text": "Thanks for joining, how is reporting handled today?"},
        {"speaker": "Prospect", "timestamp": "00:12", "endTime": "00:30", "text": "Mostly spreadsheets. The Price of the current tool is too high."},
        {"speaker": "Salesperson", "timestamp": "00:30", "endTime": "00:41", "text": "What would a 3+1 seat bundle change for you?"},
        {"speaker": "Prospect", "timestamp": "01:05", "endTime": "01:20", "text": "We'd need to check with our CFO about onboarding."},
    ],
    "sentiment": [
        {"timePoint": "00:00", "score": 55, "context": "Polite opening"},
        {"timePoint": "00:30", "score": 72.4, "context": "Engaged on pain"},
        {"timePoint": "01:05", "score": 48, "context": "Hesitation on authority"},
    ],
    "coaching": {
        "strengths": ["Opened with a pain question", "Quantified impact", "Kept turns short"],
        "improvements": ["Qualify budget", "Name the decision maker", "Book the next meeting live"],
    },
    "salesMetrics": {
        "talkRatio": 38,
        "questionCount": 6,
        "fillerWordCount": 4,
        "longestMonologue": 41.5,
        "buyingSignals": ["How soon can we start?"],
        "riskSignals": ["Our budget is tight"],
    },
    "riskAssessment": {
        "score": 7,
        "level": "medium",
        "reasons": ["Clear pain", "No budget yet"],
        "dealBreakers": [],
    },
    "objections": [
        {
            "type": "price",
            "quote": "The price of the current tool is too high.",
            "timestamp": "00:12",
            "rebuttalQuality": "weak",
            "suggestedRebuttal": "Anchor on the cost of manual reporting hours.",
        },
        {
            "type": "authority",
            "quote": "We'd need to check with our CFO.",
            "timestamp": "01:05",
            "rebuttalQuality": "missed",
        },
    ],
    "nextSteps": {
        "primary": "Send ROI case study",
        "timeline": "Within 24 hours",
        "secondary": ["Invite the CFO", "Share onboarding plan"],
        "followUpEmail": "Hi Dana, thanks for the time today...",
    },
}


class FakeProvider:
    """Canned-JSON stand-in for GeminiProvider."""

    def __init__(self, reply=None, error=None, configured=True):
        self.reply = json.dumps(CANNED_RESULT) if reply is None else reply
        self.error = error
        self.configured = configured
        self.calls = []

    def check_configured(self):
        if not self.configured:
            raise ConfigurationError("no key")

    async def generate(self, audio, mime_type, prompt, schema):
        self.calls.append({"bytes": len(audio), "mime_type": mime_type, "prompt": prompt, "schema": schema})
        if self.error is not None:
            raise self.error
        return self.reply


def write_wav(path, seconds=3.0, sample_rate=8000):
    frames = int(seconds * sample_rate)
    with wave.open(str(path), "wb") as handle:
        handle.setnchannels(1)
        handle.setsampwidth(2)
        handle.setframerate(sample_rate)
        handle.writeframes(b"\x00\x00" * frames)
    return str(path)


def audio_file_for(path, name=None, mime_type="audio/wav", last_modified=1700000000000):
    return AudioFile(
        name=name or os.path.basename(path),
        path=str(path),
        mime_type=mime_type,
        size=os.path.getsize(path),
        last_modified=last_modified,
    )


@pytest.fixture
def canned_result():
    return copy.deepcopy(CANNED_RESULT)


@pytest.fixture
def fake_provider():
    return FakeProvider()


@pytest.fixture
def wav_path(tmp_path):
    return write_wav(tmp_path / "call.wav")
