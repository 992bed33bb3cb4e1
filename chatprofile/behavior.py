"""
Text-pattern behaviour detectors, n-gram phrases and the user heatmap.

Detectors test every user message against a fixed list of labelled regexes.
`total_occurrences` counts every match; `matched_messages` counts a message
once per detector no matter how many of its patterns fired, so
`rate = matched_messages / total_messages` is a per-message share.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import tzinfo
from typing import List, Optional, Sequence, Tuple

import numpy as np

from chatprofile.config import (
    CATCH_PHRASE_MIN_COUNT,
    NGRAM_LIMITS,
    NGRAM_MIN_COUNTS,
    TOP_CATCH_PHRASES,
)
from chatprofile.evidence import Evidence, EvidenceCounter, NgramPhrase, PhraseCount
from chatprofile.models import Conversation
from chatprofile.statistics import message_frame, weekday_hour_matrix
from chatprofile.tokenizer import Tokenizer, has_japanese, is_hiragana_only, is_noise_token, segment


@dataclass(frozen=True)
class PhrasePattern:
    label: str
    regex: re.Pattern


def literal_patterns(phrases: Sequence[str]) -> List[PhrasePattern]:
    return [PhrasePattern(p, re.compile(re.escape(p), re.IGNORECASE)) for p in phrases]


def regex_patterns(pairs: Sequence[Tuple[str, str]]) -> List[PhrasePattern]:
    return [PhrasePattern(label, re.compile(expr, re.IGNORECASE)) for label, expr in pairs]


QUESTION_PATTERNS = regex_patterns(
    [
        ("？/?", r"[？?]"),
        ("教えて", r"教えて|おしえて"),
        ("どうすれば", r"どうすれば|どうしたら|どうやって"),
        ("なぜ", r"なぜ|なんで|どうして"),
        ("何", r"何|なに|なん"),
        ("どう", r"どう(?!すれば|したら|やって|して)"),
    ]
)

GRATITUDE_PATTERNS = regex_patterns(
    [
        ("ありがとう", r"ありがとう"),
        ("ありがと", r"ありがと(?!う)"),
        ("サンキュー", r"サンキュー"),
        ("thanks", r"thanks"),
        ("thank you", r"thank you"),
        ("感謝", r"感謝"),
        ("助かり", r"助かり"),
    ]
)

CONFUSION_PATTERNS = regex_patterns(
    [
        ("わからない", r"わからない|分からない|わかんない"),
        ("教えて", r"教えて|おしえて"),
        ("どうすれば", r"どうすれば|どうしたら"),
        ("困って", r"困って|こまって"),
        ("できない", r"できない|出来ない"),
        ("うまくいかない", r"うまくいかない|上手くいかない"),
        ("エラー", r"エラー|error"),
        ("なぜ", r"なぜ|なんで"),
        ("助けて", r"助けて|たすけて"),
    ]
)

CATCH_PHRASE_PATTERNS = literal_patterns(
    [
        # fillers
        "ちょっと", "とりあえず", "なんか", "っていうか", "まあ", "えーと", "あのー",
        "その", "なんだろう", "なんていうか",
        # agreement
        "やっぱり", "やっぱ", "やはり", "なるほど", "たしかに", "そうですね", "おっしゃる通り",
        # topic shifts
        "ちなみに", "というか", "ていうか", "ところで", "そういえば", "あと", "それと", "ついでに",
        # summarising
        "ぶっちゃけ", "正直", "結局", "要するに", "簡単に言うと", "つまり", "例えば",
        "具体的には", "基本的に", "一応",
        # requests
        "お願い", "してほしい", "してください", "していただけ", "教えて", "助けて",
        # apologies
        "すみません", "すいません", "ごめん", "お手数", "恐れ入り", "申し訳",
        # emphasis and feeling
        "なんとなく", "めっちゃ", "すごく", "かなり", "けっこう", "本当に", "マジで",
        "絶対", "必ず", "特に", "とにかく",
        # hedging
        "多分", "たぶん", "おそらく", "思うんですけど", "気がする", "かもしれない",
        # contrast
        "でも", "ただ", "けど", "ただし", "もし", "仮に",
        # misc
        "〜的な", "〜みたいな", "〜っぽい", "いわゆる", "そもそも", "実は", "個人的に",
    ]
)

NGRAM_STOP_WORDS = frozenset(
    [
        "の", "に", "は", "を", "た", "が", "で", "て", "と", "し", "れ", "さ",
        "も", "な", "い", "や", "か", "だ", "う", "ね", "よ", "わ", "ん",
        "です", "ます", "ある", "いる", "する", "なる", "こと", "もの", "ない",
        "この", "その", "あの", "どの", "これ", "それ", "あれ", "どれ",
        "から", "まで", "より", "ので", "のに", "けど", "けれど",
        "という", "といった", "として", "について", "における", "によって",
        "ください", "ほしい", "たい", "られ", "せる", "させ",
    ]
)


@dataclass(frozen=True)
class DetectorResult:
    total_occurrences: int
    matched_messages: int
    total_messages: int
    rate: float
    items: List[PhraseCount]


@dataclass(frozen=True)
class NgramResult:
    unigrams: List[NgramPhrase]
    bigrams: List[NgramPhrase]
    trigrams: List[NgramPhrase]


@dataclass(frozen=True)
class HeatmapPeak:
    day: int
    hour: int
    count: int


@dataclass(frozen=True)
class HourlyHeatmap:
    matrix: List[List[int]]
    total: int
    peak: HeatmapPeak


class PatternDetector:
    def __init__(
        self,
        name: str,
        patterns: Sequence[PhrasePattern],
        *,
        count_occurrences: bool = True,
        lowercase: bool = False,
        min_count: int = 1,
        limit: Optional[int] = None,
    ):
        self.name = name
        self.patterns = list(patterns)
        self.count_occurrences = count_occurrences
        self.lowercase = lowercase
        self.min_count = min_count
        self.limit = limit

    def run(self, conversations: Sequence[Conversation]) -> DetectorResult:
        counter = EvidenceCounter()
        total_messages = 0
        matched_messages = 0
        for conv in conversations:
            for msg in conv.messages_by_role("user"):
                total_messages += 1
                text = msg.content.lower() if self.lowercase else msg.content
                evidence = Evidence.from_message(conv, msg)
                matched = False
                for pattern in self.patterns:
                    hits = len(pattern.regex.findall(text))
                    if not hits:
                        continue
                    matched = True
                    counter.add(pattern.label, hits if self.count_occurrences else 1, evidence)
                if matched:
                    matched_messages += 1

        rate = matched_messages / total_messages if total_messages else 0.0
        return DetectorResult(
            total_occurrences=counter.total(),
            matched_messages=matched_messages,
            total_messages=total_messages,
            rate=rate,
            items=counter.ranked(min_count=self.min_count, limit=self.limit),
        )


QUESTION_DETECTOR = PatternDetector("questions", QUESTION_PATTERNS, count_occurrences=False)
GRATITUDE_DETECTOR = PatternDetector("gratitude", GRATITUDE_PATTERNS)
CONFUSION_DETECTOR = PatternDetector("confusion", CONFUSION_PATTERNS)
CATCH_PHRASE_DETECTOR = PatternDetector(
    "catch_phrases",
    CATCH_PHRASE_PATTERNS,
    lowercase=True,
    min_count=CATCH_PHRASE_MIN_COUNT,
    limit=TOP_CATCH_PHRASES,
)


def detect_questions(conversations: Sequence[Conversation]) -> DetectorResult:
    return QUESTION_DETECTOR.run(conversations)


def detect_gratitude(conversations: Sequence[Conversation]) -> DetectorResult:
    return GRATITUDE_DETECTOR.run(conversations)


def detect_confusion(conversations: Sequence[Conversation]) -> DetectorResult:
    return CONFUSION_DETECTOR.run(conversations)


def detect_catch_phrases(conversations: Sequence[Conversation]) -> DetectorResult:
    return CATCH_PHRASE_DETECTOR.run(conversations)


# --------- N-grams ---------

def is_ngram_token(token: str) -> bool:
    if len(token) < 2 or not has_japanese(token):
        return False
    if token in NGRAM_STOP_WORDS or is_noise_token(token):
        return False
    # short kana runs are almost always grammar
    if len(token) <= 2 and is_hiragana_only(token):
        return False
    return True


def compute_ngrams(
    conversations: Sequence[Conversation],
    tokenizer: Optional[Tokenizer] = None,
) -> NgramResult:
    tokenize = tokenizer or segment
    counters = {n: EvidenceCounter() for n in (1, 2, 3)}
    for conv in conversations:
        for msg in conv.messages_by_role("user"):
            tokens = [t.strip() for t in tokenize(msg.content)]
            tokens = [t for t in tokens if is_ngram_token(t)]
            evidence = Evidence.from_message(conv, msg)
            for n, counter in counters.items():
                seen = set()
                for i in range(len(tokens) - n + 1):
                    phrase = " ".join(tokens[i : i + n])
                    counter.add(phrase, evidence=None if phrase in seen else evidence)
                    seen.add(phrase)

    buckets = {}
    for n, counter in counters.items():
        ranked = counter.ranked(min_count=NGRAM_MIN_COUNTS[n], limit=NGRAM_LIMITS[n])
        buckets[n] = [NgramPhrase(key=p.key, count=p.count, evidence=p.evidence, n=n) for p in ranked]
    return NgramResult(unigrams=buckets[1], bigrams=buckets[2], trigrams=buckets[3])


# --------- Heatmap ---------

def compute_hourly_heatmap(conversations: Sequence[Conversation], tz: Optional[tzinfo] = None) -> HourlyHeatmap:
    df = message_frame(conversations, tz, role="user")
    matrix = weekday_hour_matrix(df)
    grid = np.asarray(matrix)
    # argmax returns the first maximum in day-major order
    flat = int(grid.argmax())
    day, hour = divmod(flat, 24)
    return HourlyHeatmap(
        matrix=matrix,
        total=int(grid.sum()),
        peak=HeatmapPeak(day=day, hour=hour, count=int(grid[day, hour])),
    )
