from __future__ import annotations

import dataclasses
import json
from dataclasses import dataclass
from datetime import date, datetime, tzinfo
from enum import Enum
from pathlib import Path
from typing import Any, List, Optional, Sequence

import numpy as np

from chatprofile.behavior import (
    DetectorResult,
    HourlyHeatmap,
    NgramResult,
    compute_hourly_heatmap,
    compute_ngrams,
    detect_catch_phrases,
    detect_confusion,
    detect_gratitude,
    detect_questions,
)
from chatprofile.config import get_timezone
from chatprofile.evidence import WordFrequency
from chatprofile.models import Conversation
from chatprofile.statistics import (
    WEEKDAY_NAMES,
    ActivityPattern,
    BasicStats,
    ConversationSummary,
    compute_activity_pattern,
    compute_basic_stats,
    compute_word_frequency,
    rank_conversations,
)
from chatprofile.tokenizer import Tokenizer


@dataclass(frozen=True)
class StatisticsReport:
    basic: BasicStats
    activity: ActivityPattern
    heatmap: HourlyHeatmap
    frequent_words: List[WordFrequency]
    ngrams: NgramResult
    questions: DetectorResult
    gratitude: DetectorResult
    confusion: DetectorResult
    catch_phrases: DetectorResult
    most_active_conversations: List[ConversationSummary]
    earliest_conversations: List[ConversationSummary]
    insights: List[str]


def build_statistics_report(
    conversations: Sequence[Conversation],
    *,
    tz: Optional[tzinfo] = None,
    tokenizer: Optional[Tokenizer] = None,
) -> StatisticsReport:
    tz = tz or get_timezone()
    basic = compute_basic_stats(conversations, tz)
    activity = compute_activity_pattern(conversations, tz)
    heatmap = compute_hourly_heatmap(conversations, tz)
    questions = detect_questions(conversations)
    gratitude = detect_gratitude(conversations)
    most_active, earliest = rank_conversations(conversations)
    return StatisticsReport(
        basic=basic,
        activity=activity,
        heatmap=heatmap,
        frequent_words=compute_word_frequency(conversations, tokenizer),
        ngrams=compute_ngrams(conversations, tokenizer),
        questions=questions,
        gratitude=gratitude,
        confusion=detect_confusion(conversations),
        catch_phrases=detect_catch_phrases(conversations),
        most_active_conversations=most_active,
        earliest_conversations=earliest,
        insights=_insights(basic, activity, heatmap, questions, gratitude),
    )


def _insights(
    basic: BasicStats,
    activity: ActivityPattern,
    heatmap: HourlyHeatmap,
    questions: DetectorResult,
    gratitude: DetectorResult,
) -> List[str]:
    if basic.total_messages == 0:
        return ["No messages found in the export."]
    lines = [
        f"{basic.total_messages} messages in {basic.total_conversations} conversations over {basic.active_days} active days.",
        f"Longest streak: {basic.longest_streak} consecutive days.",
        f"Estimated volume: about {basic.estimated_tokens} tokens.",
    ]
    if heatmap.total:
        day = WEEKDAY_NAMES[heatmap.peak.day]
        lines.append(f"Busiest slot: {day} {heatmap.peak.hour:02d}:00 ({heatmap.peak.count} messages).")
    if any(activity.weekday_counts):
        busiest = max(range(7), key=lambda i: activity.weekday_counts[i])
        lines.append(f"Most active weekday: {WEEKDAY_NAMES[busiest]}.")
    lines.append(f"Questions appear in {questions.rate * 100:.1f}% of your messages.")
    lines.append(f"You said thanks {gratitude.total_occurrences} times ({gratitude.rate * 100:.1f}% of messages).")
    return lines


def to_jsonable(obj: Any) -> Any:
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return {f.name: to_jsonable(getattr(obj, f.name)) for f in dataclasses.fields(obj)}
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, dict):
        return {str(k): to_jsonable(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple, set, frozenset)):
        return [to_jsonable(v) for v in obj]
    if isinstance(obj, np.generic):
        return obj.item()
    return obj


def write_json(obj: Any, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(to_jsonable(obj), ensure_ascii=False, indent=2), encoding="utf-8")


def summary_lines(report: StatisticsReport) -> List[str]:
    lines = ["# Chat history statistics", ""]
    lines.extend(f"- {item}" for item in report.insights)
    if report.frequent_words:
        lines.append("")
        lines.append("## Frequent words")
        lines.append(", ".join(f"{w.key} ({w.count})" for w in report.frequent_words[:10]))
    if report.catch_phrases.items:
        lines.append("")
        lines.append("## Catch phrases")
        lines.append(", ".join(f"{p.key} ({p.count})" for p in report.catch_phrases.items))
    if report.most_active_conversations:
        lines.append("")
        lines.append("## Most active conversations")
        for conv in report.most_active_conversations:
            lines.append(f"- {conv.title}: {conv.message_count} messages")
    return lines
