from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from chatprofile.config import EVIDENCE_LIMIT
from chatprofile.models import Conversation, Message


@dataclass(frozen=True)
class Evidence:
    """Where a word or phrase was seen."""

    conversation_id: str
    conversation_title: str
    message_content: str
    create_time: datetime

    @classmethod
    def from_message(cls, conversation: Conversation, message: Message) -> "Evidence":
        return cls(
            conversation_id=conversation.id,
            conversation_title=conversation.title,
            message_content=message.content,
            create_time=message.effective_time(conversation),
        )


@dataclass(frozen=True)
class PhraseCount:
    key: str
    count: int
    evidence: Tuple[Evidence, ...] = ()


@dataclass(frozen=True)
class NgramPhrase(PhraseCount):
    n: int = 1


WordFrequency = PhraseCount
CatchPhrase = PhraseCount
GratitudeVariation = PhraseCount
ConfusionPattern = PhraseCount
QuestionPattern = PhraseCount


class EvidenceCounter:
    """
    Occurrence counts per key with a bounded evidence list.
    Keys keep first-seen order so ranking ties are deterministic.
    """

    def __init__(self, evidence_limit: int = EVIDENCE_LIMIT):
        self.evidence_limit = evidence_limit
        self._counts: Dict[str, int] = {}
        self._evidence: Dict[str, List[Evidence]] = {}

    def add(self, key: str, occurrences: int = 1, evidence: Optional[Evidence] = None) -> None:
        if occurrences <= 0:
            return
        self._counts[key] = self._counts.get(key, 0) + occurrences
        bucket = self._evidence.setdefault(key, [])
        if evidence is not None and len(bucket) < self.evidence_limit:
            bucket.append(evidence)

    def total(self) -> int:
        return sum(self._counts.values())

    def ranked(self, *, min_count: int = 1, limit: Optional[int] = None) -> List[PhraseCount]:
        keys = [k for k, c in self._counts.items() if c >= min_count]
        keys.sort(key=lambda k: -self._counts[k])
        if limit is not None:
            keys = keys[:limit]
        return [PhraseCount(key=k, count=self._counts[k], evidence=tuple(self._evidence[k])) for k in keys]
