"""
SalesIQ — Export

One-way renderings of an AnalysisResult: transcript CSV, full-analysis CSV
and the share-by-email text. Nothing here is ever read back.
"""

from __future__ import annotations

import csv
import io
import os
from typing import Any, Dict, Iterable, List, Sequence
from urllib.parse import quote

from ..core.models import AnalysisResult, TranscriptSegment


def _write_rows(rows: Iterable[Sequence[Any]]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerows(rows)
    return buffer.getvalue()


def export_filename(file_name: str, suffix: str) -> str:
    stem = os.path.splitext(os.path.basename(file_name or ""))[0] or "call"
    return f"{stem}_{suffix}.csv"


def transcript_csv(transcript: Sequence[TranscriptSegment]) -> str:
    rows: List[Sequence[Any]] = [("Speaker", "Start", "End", "Text")]
    for seg in transcript:
        rows.append((seg.speaker, seg.start_time, seg.end_time or "", seg.text))
    return _write_rows(rows)


def analysis_csv(result: AnalysisResult) -> str:
    """Flattened sections, one `Section, Field, Value...` row per fact."""
    rows: List[Sequence[Any]] = [("Section", "Field", "Value", "Detail")]

    rows.append(("Summary", "Call Type", result.call_type.value, ""))
    rows.append(("Summary", "Verdict", result.verdict, ""))
    rows.append(("Summary", "Summary", result.summary, ""))
    for topic in result.topics:
        rows.append(("Topics", "Topic", topic, ""))

    for item in result.coaching.strengths:
        rows.append(("Coaching", "Strength", item, ""))
    for item in result.coaching.improvements:
        rows.append(("Coaching", "Improvement", item, ""))

    for point in result.sentiment:
        rows.append(("Sentiment", point.time_point, point.score, point.context))

    metrics = result.sales_metrics
    if metrics is not None:
        rows.append(("Sales Metrics", "Talk Ratio (%)", metrics.talk_ratio_percent, ""))
        rows.append(("Sales Metrics", "Questions Asked", metrics.question_count, ""))
        rows.append(("Sales Metrics", "Filler Words", metrics.filler_word_count, ""))
        rows.append(("Sales Metrics", "Longest Monologue (s)", metrics.longest_monologue_seconds, ""))
        for signal in metrics.buying_signals:
            rows.append(("Sales Metrics", "Buying Signal", signal, ""))
        for signal in metrics.risk_signals:
            rows.append(("Sales Metrics", "Risk Signal", signal, ""))

    risk = result.risk_assessment
    if risk is not None:
        rows.append(("Risk", "Score", risk.score, risk.level.value))
        for reason in risk.reasons:
            rows.append(("Risk", "Reason", reason, ""))
        for breaker in risk.deal_breakers:
            rows.append(("Risk", "Deal Breaker", breaker, ""))

    for objection in result.objections:
        rows.append((
            "Objections",
            objection.category.value,
            objection.quote,
            f"{objection.timestamp} | {objection.handling_quality.value}"
            + (f" | {objection.suggested_rebuttal}" if objection.suggested_rebuttal else ""),
        ))

    steps = result.next_steps
    if steps is not None:
        rows.append(("Next Steps", "Primary", steps.primary_action, steps.timeline))
        for action in steps.secondary_actions:
            rows.append(("Next Steps", "Secondary", action, ""))
        rows.append(("Next Steps", "Follow-up Email", steps.follow_up_email_draft, ""))

    return _write_rows(rows)


def share_email(result: AnalysisResult, file_name: str, duration: str) -> Dict[str, str]:
    subject = f"Sales Analysis Report: {file_name}"
    strengths = "\n".join(f"- {s}" for s in result.coaching.strengths)
    improvements = "\n".join(f"- {s}" for s in result.coaching.improvements)
    body = (
        f"Here is the sales analysis report for {file_name} ({duration}).\n\n"
        f"Summary:\n{result.summary}\n\n"
        f"Topics:\n{', '.join(result.topics)}\n\n"
        f"Strengths:\n{strengths}\n\n"
        f"Improvements:\n{improvements}\n"
    )
    return {
        "subject": subject,
        "body": body,
        "mailto": f"mailto:?subject={quote(subject)}&body={quote(body)}",
    }
