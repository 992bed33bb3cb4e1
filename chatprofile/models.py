from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Tuple


@dataclass(frozen=True)
class Message:
    id: str
    role: str
    content: str
    create_time: Optional[datetime] = None

    def effective_time(self, conversation: "Conversation") -> datetime:
        return self.create_time or conversation.create_time


@dataclass(frozen=True)
class Conversation:
    id: str
    title: str
    create_time: datetime
    update_time: datetime
    messages: Tuple[Message, ...] = ()

    def messages_by_role(self, role: str) -> List[Message]:
        return [m for m in self.messages if m.role == role]


@dataclass(frozen=True)
class ParseStats:
    total_conversations: int
    total_messages: int
    skipped_messages: int


@dataclass(frozen=True)
class ParseResult:
    conversations: List[Conversation]
    stats: ParseStats
