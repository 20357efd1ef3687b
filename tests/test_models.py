import pytest
from pydantic import ValidationError

from salesiq.core.config import CACHE_VERSION
from salesiq.core.models import (
    AnalysisResult,
    AudioFile,
    CallType,
    HandlingQuality,
    ObjectionCategory,
    RiskAssessment,
    RiskLevel,
    SentimentPoint,
    Session,
    UploadFingerprint,
    risk_level_for_score,
)


def test_canned_result_parses_with_wire_names(canned_result):
    result = AnalysisResult.model_validate(canned_result)

    assert result.call_type is CallType.DISCOVERY
    assert result.risk_assessment.score == 7
    assert result.risk_assessment.level is RiskLevel.MEDIUM
    assert result.transcript[1].start_time == "00:12"
    assert result.transcript[1].end_time == "00:30"
    assert result.objections[0].category is ObjectionCategory.PRICE
    assert result.objections[1].handling_quality is HandlingQuality.MISSED
    assert result.objections[1].suggested_rebuttal is None
    assert result.next_steps.follow_up_email_draft.startswith("Hi Dana")
    # 72.4 rounds to an integer score
    assert result.sentiment[1].score == 72


def test_to_dict_round_trips_wire_names(canned_result):
    data = AnalysisResult.model_validate(canned_result).to_dict()
    assert data["callType"] == "discovery"
    assert data["transcript"][0]["timestamp"] == "00:00"
    assert data["transcript"][0]["endTime"] == "00:12"
    assert data["riskAssessment"]["dealBreakers"] == []
    assert data["objections"][0]["type"] == "price"
    assert data["objections"][0]["rebuttalQuality"] == "weak"
    assert AnalysisResult.model_validate(data) == AnalysisResult.model_validate(canned_result)


def test_result_is_immutable(canned_result):
    result = AnalysisResult.model_validate(canned_result)
    with pytest.raises(ValidationError):
        result.summary = "edited"


def test_unknown_call_type_folds_to_other(canned_result):
    canned_result["callType"] = "Cold Call"
    assert AnalysisResult.model_validate(canned_result).call_type is CallType.OTHER


def test_missing_call_type_defaults_to_other(canned_result):
    del canned_result["callType"]
    assert AnalysisResult.model_validate(canned_result).call_type is CallType.OTHER


def test_unknown_objection_category_folds_to_other(canned_result):
    canned_result["objections"][0]["type"] = "legal"
    result = AnalysisResult.model_validate(canned_result)
    assert result.objections[0].category is ObjectionCategory.OTHER


def test_unknown_or_missing_handling_quality_counts_as_missed(canned_result):
    canned_result["objections"][0]["rebuttalQuality"] = "meh"
    del canned_result["objections"][1]["rebuttalQuality"]
    result = AnalysisResult.model_validate(canned_result)

    assert [o.handling_quality for o in result.objections] == [HandlingQuality.MISSED, HandlingQuality.MISSED]
    # The rest of the analysis survives
    assert len(result.transcript) == 4


def test_null_handling_quality_counts_as_missed(canned_result):
    canned_result["objections"][0]["rebuttalQuality"] = None
    result = AnalysisResult.model_validate(canned_result)
    assert result.objections[0].handling_quality is HandlingQuality.MISSED


def test_handling_quality_case_insensitive(canned_result):
    canned_result["objections"][0]["rebuttalQuality"] = "Strong"
    result = AnalysisResult.model_validate(canned_result)
    assert result.objections[0].handling_quality is HandlingQuality.STRONG


@pytest.mark.parametrize("field", ["summary", "transcript", "sentiment", "coaching"])
def test_required_fields(canned_result, field):
    del canned_result[field]
    with pytest.raises(ValidationError):
        AnalysisResult.model_validate(canned_result)


def test_optional_sections_may_be_absent(canned_result):
    for key in ("salesMetrics", "riskAssessment", "nextSteps", "objections", "topics", "verdict"):
        del canned_result[key]
    result = AnalysisResult.model_validate(canned_result)
    assert result.sales_metrics is None
    assert result.risk_assessment is None
    assert result.next_steps is None
    assert result.objections == ()
    assert result.topics == ()
    assert result.verdict == ""


@pytest.mark.parametrize(
    "score, level",
    [(10, RiskLevel.LOW), (8, RiskLevel.LOW), (7, RiskLevel.MEDIUM), (5, RiskLevel.MEDIUM),
     (4, RiskLevel.HIGH), (3, RiskLevel.HIGH), (2, RiskLevel.CRITICAL), (1, RiskLevel.CRITICAL)],
)
def test_risk_level_for_score(score, level):
    assert risk_level_for_score(score) is level


def test_risk_score_clamped_and_level_derived():
    risk = RiskAssessment.model_validate({"score": 14.2, "level": "unknown"})
    assert risk.score == 10
    assert risk.level is RiskLevel.LOW

    risk = RiskAssessment.model_validate({"score": 0})
    assert risk.score == 1
    assert risk.level is RiskLevel.CRITICAL


def test_risk_explicit_level_kept():
    risk = RiskAssessment.model_validate({"score": 9, "level": "HIGH"})
    assert risk.level is RiskLevel.HIGH


def test_sentiment_score_clamped():
    assert SentimentPoint.model_validate({"timePoint": "00:10", "score": 130}).score == 100
    assert SentimentPoint.model_validate({"timePoint": "00:10", "score": -3}).score == 0


def test_metrics_clamped(canned_result):
    canned_result["salesMetrics"].update({"talkRatio": 140, "questionCount": -2, "fillerWordCount": 3.6})
    metrics = AnalysisResult.model_validate(canned_result).sales_metrics
    assert metrics.talk_ratio_percent == 100.0
    assert metrics.question_count == 0
    assert metrics.filler_word_count == 4


def test_fingerprint_key_from_metadata():
    audio = AudioFile(name="call.wav", path="/tmp/x", size=10485760, last_modified=1700000000000)
    fp = UploadFingerprint.for_file(audio)
    assert fp.version == CACHE_VERSION
    assert fp.key == f"{CACHE_VERSION}-call.wav-10485760-1700000000000"
    # Path is not part of the identity
    moved = AudioFile(name="call.wav", path="/elsewhere", size=10485760, last_modified=1700000000000)
    assert UploadFingerprint.for_file(moved) == fp


def test_session_summary(canned_result):
    result = AnalysisResult.model_validate(canned_result)
    fp = UploadFingerprint(name="call.wav", size=5, last_modified=9)
    session = Session(fingerprint=fp, result=result, duration_label="1:20", file_name="call.wav")
    summary = session.to_summary()
    assert summary["key"] == fp.key
    assert summary["callType"] == "discovery"
    assert summary["riskScore"] == 7
    assert summary["audioUrl"] is None
