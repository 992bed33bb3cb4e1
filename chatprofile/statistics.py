"""
Aggregate statistics over normalized conversations.

Everything here is local and deterministic. Time-based metrics use the
message timestamp (or the conversation creation time when a message has
none) converted to the configured timezone. Day-of-week index 0 is Sunday.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, datetime, tzinfo
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union

import pandas as pd

from chatprofile.config import CHARS_PER_TOKEN, TOP_CONVERSATIONS, TOP_WORDS, get_timezone
from chatprofile.evidence import Evidence, EvidenceCounter, WordFrequency
from chatprofile.models import Conversation
from chatprofile.tokenizer import Tokenizer, is_noise_token, normalize_token, segment

WEEKDAY_NAMES = ["Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat"]

STOP_WORDS = frozenset(
    [
        # Japanese function words
        "の", "に", "は", "を", "た", "が", "で", "て", "と", "し", "れ", "さ",
        "ある", "いる", "も", "する", "から", "な", "こと", "として", "い", "や",
        "れる", "など", "なっ", "ない", "この", "ため", "その", "あっ", "よう",
        "また", "もの", "という", "あり", "まで", "られ", "なる", "へ", "か",
        "だ", "これ", "によって", "により", "おり", "より", "による", "ず", "なり",
        "られる", "において", "ば", "なかっ", "なく", "しかし", "について", "せ",
        "だっ", "その他", "できる", "それ", "う", "ので", "なお", "のみ", "でき",
        "き", "つ", "における", "および", "いう", "さらに", "でも", "ら", "たり",
        "その後", "ただし", "かつて", "それぞれ", "または", "お", "ほど", "ものの",
        # English
        "the", "a", "an", "is", "are", "was", "were", "be", "been", "being",
        "have", "has", "had", "do", "does", "did", "will", "would", "could", "should",
        "may", "might", "must", "shall", "can", "need", "dare", "ought", "used",
        "to", "of", "in", "for", "on", "with", "at", "by", "from", "as", "into",
        "through", "during", "before", "after", "above", "below", "between",
        "and", "but", "or", "nor", "so", "yet", "both", "either", "neither",
        "not", "only", "own", "same", "than", "too", "very", "just", "that", "this",
        "these", "those", "i", "you", "he", "she", "it", "we", "they", "me", "him",
        "her", "us", "them", "my", "your", "his", "its", "our", "their",
        "what", "which", "who", "whom", "when", "where", "why", "how",
        "all", "each", "every", "any", "some", "no", "if", "then", "else",
    ]
)

_FRAME_COLUMNS = [
    "conversation_id",
    "message_id",
    "role",
    "chars",
    "timestamp_dt",
    "date",
    "month",
    "year",
    "hour",
    "weekday",
]


@dataclass(frozen=True)
class DateRange:
    start: datetime
    end: datetime


@dataclass(frozen=True)
class BasicStats:
    total_conversations: int
    total_messages: int
    user_messages: int
    assistant_messages: int
    total_characters: int
    estimated_tokens: int
    active_days: int
    longest_streak: int
    date_range: Optional[DateRange]


@dataclass(frozen=True)
class MonthlyCount:
    month: str
    count: int


@dataclass(frozen=True)
class YearHeatmap:
    year: int
    total: int
    daily_counts: Dict[str, int]
    daily_conversations: Dict[str, List[str]]


@dataclass(frozen=True)
class ActivityPattern:
    hourly_matrix: List[List[int]]
    monthly: List[MonthlyCount]
    weekday_counts: List[int]
    yearly: List[YearHeatmap]


@dataclass(frozen=True)
class ConversationSummary:
    id: str
    title: str
    create_time: datetime
    message_count: int
    user_message_count: int
    assistant_message_count: int
    total_characters: int


# --------- Message frame ---------

def message_frame(
    conversations: Sequence[Conversation],
    tz: Optional[tzinfo] = None,
    *,
    role: Optional[str] = None,
) -> pd.DataFrame:
    """One row per message with local calendar fields already derived."""
    tz = tz or get_timezone()
    rows = []
    for conv in conversations:
        for msg in conv.messages:
            if role is not None and msg.role != role:
                continue
            rows.append(
                {
                    "conversation_id": conv.id,
                    "message_id": msg.id,
                    "role": msg.role,
                    "chars": len(msg.content),
                    "timestamp_dt": msg.effective_time(conv),
                }
            )
    if not rows:
        return pd.DataFrame(columns=_FRAME_COLUMNS)

    df = pd.DataFrame(rows)
    df["timestamp_dt"] = pd.to_datetime(df["timestamp_dt"], utc=True, errors="coerce").dt.tz_convert(tz)
    df = df.dropna(subset=["timestamp_dt"]).copy()
    if df.empty:
        return pd.DataFrame(columns=_FRAME_COLUMNS)
    ts = df["timestamp_dt"].dt
    df["date"] = ts.strftime("%Y-%m-%d")
    df["month"] = ts.strftime("%Y-%m")
    df["year"] = ts.year.astype(int)
    df["hour"] = ts.hour.astype(int)
    df["weekday"] = ((ts.dayofweek + 1) % 7).astype(int)
    return df[_FRAME_COLUMNS]


def weekday_hour_matrix(df: pd.DataFrame) -> List[List[int]]:
    """7x24 message counts, rows Sunday..Saturday, columns hour 0..23."""
    if df.empty:
        return [[0] * 24 for _ in range(7)]
    table = pd.crosstab(df["weekday"], df["hour"]).reindex(
        index=range(7), columns=range(24), fill_value=0
    )
    return [[int(v) for v in row] for row in table.to_numpy()]


# --------- Basic stats ---------

def estimate_tokens(total_chars: int) -> int:
    return int(math.floor(total_chars / CHARS_PER_TOKEN + 0.5))


def longest_streak(dates: Iterable[Union[str, date]]) -> int:
    """Longest run of consecutive calendar days."""
    days = sorted({d if isinstance(d, date) else date.fromisoformat(d) for d in dates})
    if not days:
        return 0
    best = run = 1
    for prev, cur in zip(days, days[1:]):
        if (cur - prev).days == 1:
            run += 1
            best = max(best, run)
        else:
            run = 1
    return best


def compute_basic_stats(conversations: Sequence[Conversation], tz: Optional[tzinfo] = None) -> BasicStats:
    df = message_frame(conversations, tz)
    total_messages = int(len(df))
    if total_messages == 0:
        return BasicStats(
            total_conversations=len(conversations),
            total_messages=0,
            user_messages=0,
            assistant_messages=0,
            total_characters=0,
            estimated_tokens=0,
            active_days=0,
            longest_streak=0,
            date_range=None,
        )

    role_counts = df["role"].value_counts()
    total_chars = int(df["chars"].sum())
    dates = df["date"].unique().tolist()
    return BasicStats(
        total_conversations=len(conversations),
        total_messages=total_messages,
        user_messages=int(role_counts.get("user", 0)),
        assistant_messages=int(role_counts.get("assistant", 0)),
        total_characters=total_chars,
        estimated_tokens=estimate_tokens(total_chars),
        active_days=len(dates),
        longest_streak=longest_streak(dates),
        date_range=DateRange(
            start=df["timestamp_dt"].min().to_pydatetime(),
            end=df["timestamp_dt"].max().to_pydatetime(),
        ),
    )


# --------- Activity ---------

def compute_activity_pattern(conversations: Sequence[Conversation], tz: Optional[tzinfo] = None) -> ActivityPattern:
    df = message_frame(conversations, tz)
    if df.empty:
        return ActivityPattern(
            hourly_matrix=weekday_hour_matrix(df),
            monthly=[],
            weekday_counts=[0] * 7,
            yearly=[],
        )

    monthly = [
        MonthlyCount(month=str(month), count=int(count))
        for month, count in df["month"].value_counts().sort_index().items()
    ]
    weekday_counts = [int(c) for c in df["weekday"].value_counts().reindex(range(7), fill_value=0)]

    yearly: List[YearHeatmap] = []
    for year, grp in df.groupby("year", sort=True):
        by_date = grp.groupby("date", sort=True)
        yearly.append(
            YearHeatmap(
                year=int(year),
                total=int(len(grp)),
                daily_counts={str(d): int(c) for d, c in by_date.size().items()},
                daily_conversations={
                    str(d): list(dict.fromkeys(g["conversation_id"].tolist())) for d, g in by_date
                },
            )
        )
    yearly.reverse()

    return ActivityPattern(
        hourly_matrix=weekday_hour_matrix(df),
        monthly=monthly,
        weekday_counts=weekday_counts,
        yearly=yearly,
    )


# --------- Words ---------

def compute_word_frequency(
    conversations: Sequence[Conversation],
    tokenizer: Optional[Tokenizer] = None,
    *,
    limit: int = TOP_WORDS,
) -> List[WordFrequency]:
    tokenize = tokenizer or segment
    counter = EvidenceCounter()
    for conv in conversations:
        for msg in conv.messages_by_role("user"):
            evidence = Evidence.from_message(conv, msg)
            seen = set()
            for raw in tokenize(msg.content):
                word = normalize_token(raw)
                if is_noise_token(word) or word in STOP_WORDS:
                    continue
                counter.add(word, evidence=None if word in seen else evidence)
                seen.add(word)
    return counter.ranked(limit=limit)


# --------- Conversation highlights ---------

def summarize_conversation(conv: Conversation) -> ConversationSummary:
    return ConversationSummary(
        id=conv.id,
        title=conv.title,
        create_time=conv.create_time,
        message_count=len(conv.messages),
        user_message_count=sum(1 for m in conv.messages if m.role == "user"),
        assistant_message_count=sum(1 for m in conv.messages if m.role == "assistant"),
        total_characters=sum(len(m.content) for m in conv.messages),
    )


def rank_conversations(
    conversations: Sequence[Conversation],
    *,
    limit: int = TOP_CONVERSATIONS,
) -> Tuple[List[ConversationSummary], List[ConversationSummary]]:
    """Return (most active by message count, earliest by creation time)."""
    summaries = [summarize_conversation(c) for c in conversations]
    most_active = sorted(summaries, key=lambda s: -s.message_count)[:limit]
    earliest = sorted(summaries, key=lambda s: s.create_time)[:limit]
    return most_active, earliest
