"""
SalesIQ — Data Models

Two families live here:

  • The analysis result, parsed from the provider's JSON with pydantic.
    Field aliases are the wire names declared in the response schema, so
    `model_validate(json)` accepts the provider reply as-is and
    `to_dict()` hands the dashboard the same camelCase shape back.
  • Plain dataclasses for everything the pipeline creates itself
    (uploaded file, fingerprint, cached session).
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .config import CACHE_VERSION


# ---------------------------------------------------------------------------
# Categorical values
# ---------------------------------------------------------------------------

class CallType(str, Enum):
    DISCOVERY = "discovery"
    DEMO = "demo"
    NEGOTIATION = "negotiation"
    CLOSING = "closing"
    RENEWAL = "renewal"
    OTHER = "other"


class ObjectionCategory(str, Enum):
    PRICE = "price"
    TIMING = "timing"
    AUTHORITY = "authority"
    NEED = "need"
    COMPETITOR = "competitor"
    OTHER = "other"


class HandlingQuality(str, Enum):
    STRONG = "strong"
    WEAK = "weak"
    MISSED = "missed"


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


def risk_level_for_score(score: int) -> RiskLevel:
    """Scoring guide from the prompt: 8-10 low, 5-7 medium, 3-4 high, 1-2 critical."""
    if score >= 8:
        return RiskLevel.LOW
    if score >= 5:
        return RiskLevel.MEDIUM
    if score >= 3:
        return RiskLevel.HIGH
    return RiskLevel.CRITICAL


def _fold_unknown(value: Any, enum_cls: type[Enum], fallback: Enum) -> Any:
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {m.value for m in enum_cls}:
            return lowered
        return fallback.value
    return value


def _round_number(value: Any) -> Any:
    if isinstance(value, float):
        return round(value)
    return value


# ---------------------------------------------------------------------------
# Analysis result (provider JSON)
# ---------------------------------------------------------------------------

class _WireModel(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")


class TranscriptSegment(_WireModel):
    speaker: str
    text: str
    start_time: str = Field("", alias="timestamp")
    end_time: Optional[str] = Field(None, alias="endTime")


class SentimentPoint(_WireModel):
    time_point: str = Field("", alias="timePoint")
    score: int
    context: str = ""

    @field_validator("score", mode="before")
    @classmethod
    def round_score(cls, value: Any) -> Any:
        return _round_number(value)

    @field_validator("score")
    @classmethod
    def clamp_score(cls, value: int) -> int:
        return max(0, min(100, value))


class CoachingData(_WireModel):
    strengths: Tuple[str, ...] = ()
    improvements: Tuple[str, ...] = ()


class Objection(_WireModel):
    category: ObjectionCategory = Field(ObjectionCategory.OTHER, alias="type")
    quote: str = ""
    timestamp: str = ""
    # An unrated objection counts as not handled
    handling_quality: HandlingQuality = Field(HandlingQuality.MISSED, alias="rebuttalQuality")
    suggested_rebuttal: Optional[str] = Field(None, alias="suggestedRebuttal")

    @field_validator("category", mode="before")
    @classmethod
    def fold_category(cls, value: Any) -> Any:
        return _fold_unknown(value, ObjectionCategory, ObjectionCategory.OTHER)

    @field_validator("handling_quality", mode="before")
    @classmethod
    def fold_quality(cls, value: Any) -> Any:
        if value is None:
            return HandlingQuality.MISSED.value
        return _fold_unknown(value, HandlingQuality, HandlingQuality.MISSED)


class SalesMetrics(_WireModel):
    talk_ratio_percent: float = Field(0.0, alias="talkRatio")
    question_count: int = Field(0, alias="questionCount")
    filler_word_count: int = Field(0, alias="fillerWordCount")
    longest_monologue_seconds: float = Field(0.0, alias="longestMonologue")
    buying_signals: Tuple[str, ...] = Field((), alias="buyingSignals")
    risk_signals: Tuple[str, ...] = Field((), alias="riskSignals")

    @field_validator("question_count", "filler_word_count", mode="before")
    @classmethod
    def round_counts(cls, value: Any) -> Any:
        return _round_number(value)

    @field_validator("talk_ratio_percent")
    @classmethod
    def clamp_ratio(cls, value: float) -> float:
        return max(0.0, min(100.0, value))

    @field_validator("question_count", "filler_word_count")
    @classmethod
    def non_negative_count(cls, value: int) -> int:
        return max(0, value)

    @field_validator("longest_monologue_seconds")
    @classmethod
    def non_negative_seconds(cls, value: float) -> float:
        return max(0.0, value)


class RiskAssessment(_WireModel):
    score: int
    level: RiskLevel
    reasons: Tuple[str, ...] = ()
    deal_breakers: Tuple[str, ...] = Field((), alias="dealBreakers")

    @model_validator(mode="before")
    @classmethod
    def normalise_score_and_level(cls, data: Any) -> Any:
        if not isinstance(data, dict) or "score" not in data:
            return data
        data = dict(data)
        try:
            score = max(1, min(10, round(float(data["score"]))))
        except (TypeError, ValueError):
            return data
        data["score"] = score
        level = data.get("level")
        valid = {m.value for m in RiskLevel}
        if not isinstance(level, str) or level.strip().lower() not in valid:
            data["level"] = risk_level_for_score(score).value
        else:
            data["level"] = level.strip().lower()
        return data


class NextSteps(_WireModel):
    primary_action: str = Field("", alias="primary")
    timeline: str = ""
    secondary_actions: Tuple[str, ...] = Field((), alias="secondary")
    follow_up_email_draft: str = Field("", alias="followUpEmail")


class AnalysisResult(_WireModel):
    """One provider reply. Immutable; replaced wholesale, never edited."""

    call_type: CallType = Field(CallType.OTHER, alias="callType")
    verdict: str = ""
    summary: str
    topics: Tuple[str, ...] = ()
    transcript: Tuple[TranscriptSegment, ...]
    sentiment: Tuple[SentimentPoint, ...]
    coaching: CoachingData
    sales_metrics: Optional[SalesMetrics] = Field(None, alias="salesMetrics")
    risk_assessment: Optional[RiskAssessment] = Field(None, alias="riskAssessment")
    objections: Tuple[Objection, ...] = ()
    next_steps: Optional[NextSteps] = Field(None, alias="nextSteps")

    @field_validator("call_type", mode="before")
    @classmethod
    def fold_call_type(cls, value: Any) -> Any:
        return _fold_unknown(value, CallType, CallType.OTHER)

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


# ---------------------------------------------------------------------------
# Pipeline records
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class AudioFile:
    """An uploaded recording on local disk."""
    name: str
    path: str
    mime_type: str = "audio/wav"
    size: int = 0
    last_modified: int = 0  # client-side epoch milliseconds


@dataclass(frozen=True)
class UploadFingerprint:
    """Cache key from file metadata. Not a content hash."""
    name: str
    size: int
    last_modified: int
    version: str = CACHE_VERSION

    @classmethod
    def for_file(cls, audio: AudioFile) -> "UploadFingerprint":
        return cls(name=audio.name, size=audio.size, last_modified=audio.last_modified)

    @property
    def key(self) -> str:
        return f"{self.version}-{self.name}-{self.size}-{self.last_modified}"


@dataclass
class Session:
    fingerprint: UploadFingerprint
    result: AnalysisResult
    duration_label: str
    file_name: str
    audio_file: Optional[AudioFile] = None
    audio_url: Optional[str] = None  # persisted copy, when a store is configured
    created_at: float = field(default_factory=time.time)

    def to_summary(self) -> Dict[str, Any]:
        return {
            "key": self.fingerprint.key,
            "fileName": self.file_name,
            "duration": self.duration_label,
            "callType": self.result.call_type.value,
            "verdict": self.result.verdict,
            "riskScore": self.result.risk_assessment.score if self.result.risk_assessment else None,
            "audioUrl": self.audio_url,
            "createdAt": self.created_at,
        }
