import pytest

from salesiq.core.models import AnalysisResult, TranscriptSegment
from salesiq.processing.dashboard import (
    dashboard_extras,
    display_speaker,
    format_talk_time,
    speaker_talk_time,
    talk_ratio_feedback,
)


@pytest.mark.parametrize(
    "raw, shown",
    [("Speaker A", "Salesperson"), ("speaker 2", "Prospect"), ("Vendedor", "Vendedor")],
)
def test_display_speaker(raw, shown):
    assert display_speaker(raw) == shown


@pytest.mark.parametrize(
    "ratio, label",
    [(35, "Excellent"), (40, "Excellent"), (45, "Good"), (60, "Too High"), (75, "Way Too High")],
)
def test_talk_ratio_feedback(ratio, label):
    assert talk_ratio_feedback(ratio) == label


def test_speaker_talk_time_uses_default_turn_without_end():
    transcript = (
        TranscriptSegment(speaker="Salesperson", timestamp="00:00", endTime="00:10", text="a"),
        TranscriptSegment(speaker="Prospect", timestamp="00:10", text="b"),
        TranscriptSegment(speaker="Speaker 1", timestamp="00:12", endTime="00:20", text="c"),
    )
    assert speaker_talk_time(transcript) == {"Salesperson": 18.0, "Prospect": 2.0}


def test_format_talk_time():
    assert format_talk_time(125.4) == "2m 5s"


def test_dashboard_extras(canned_result):
    extras = dashboard_extras(AnalysisResult.model_validate(canned_result))
    assert extras["talkRatioFeedback"] == "Excellent"
    assert extras["segmentCount"] == 4
    assert extras["speakerTalkTime"] == {"Salesperson": "0m 23s", "Prospect": "0m 33s"}


def test_dashboard_extras_without_metrics(canned_result):
    del canned_result["salesMetrics"]
    extras = dashboard_extras(AnalysisResult.model_validate(canned_result))
    assert extras["talkRatioFeedback"] is None
