"""
Intelligence map: summarise conversations, embed the summaries, project to 2-D.

Conversations are processed in batches; within a batch the summary+embedding
calls run concurrently, bounded by what is left of the map deadline. A
conversation whose calls fail is left off the map.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence

from chatprofile.config import (
    AXIS_LABEL_MIN_REMAINING_SECONDS,
    AXIS_SAMPLE_SIZE,
    DIGEST_CONVERSATION_CHARS,
    DIGEST_MESSAGE_CHARS,
    MAP_BATCH_SIZE,
    MAP_MAX_CONVERSATIONS,
    MAP_MIN_POINTS,
    MAP_SUMMARY_CHARS,
    MAP_TIMEOUT_SECONDS,
)
from chatprofile.llm_client import GenerativeClient
from chatprofile.models import Conversation
from chatprofile.prompts import axis_labels_prompt, conversation_summary_prompt
from chatprofile.reducer import reduce_to_2d
from chatprofile.schemas import AxisLabelsSchema

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MapPoint:
    x: float
    y: float
    conversation_id: str
    title: str
    summary: str


@dataclass(frozen=True)
class AxisLabels:
    x_positive: str
    x_negative: str
    y_positive: str
    y_negative: str


@dataclass(frozen=True)
class IntelligenceMap:
    points: List[MapPoint]
    axis_labels: AxisLabels


DEFAULT_AXIS_LABELS = AxisLabels(
    x_positive="Creative",
    x_negative="Practical",
    y_positive="Technical",
    y_negative="Everyday",
)


@dataclass(frozen=True)
class _Sample:
    conversation: Conversation
    summary: str
    embedding: List[float]


def extreme_summaries(points: Sequence[MapPoint], size: int = AXIS_SAMPLE_SIZE) -> Dict[str, List[str]]:
    by_x = sorted(points, key=lambda p: p.x)
    by_y = sorted(points, key=lambda p: p.y)
    return {
        "x_positive": [p.summary for p in reversed(by_x[-size:])],
        "x_negative": [p.summary for p in by_x[:size]],
        "y_positive": [p.summary for p in reversed(by_y[-size:])],
        "y_negative": [p.summary for p in by_y[:size]],
    }


def conversation_excerpt(conv: Conversation) -> str:
    text = "\n".join(m.content[:DIGEST_MESSAGE_CHARS] for m in conv.messages_by_role("user"))
    return text[:DIGEST_CONVERSATION_CHARS]


class IntelligenceMapService:
    def __init__(
        self,
        client: GenerativeClient,
        *,
        max_conversations: int = MAP_MAX_CONVERSATIONS,
        batch_size: int = MAP_BATCH_SIZE,
        min_points: int = MAP_MIN_POINTS,
        map_timeout: float = MAP_TIMEOUT_SECONDS,
        axis_label_min_remaining: float = AXIS_LABEL_MIN_REMAINING_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        is_aborted: Optional[Callable[[], bool]] = None,
    ):
        self.client = client
        self.max_conversations = max_conversations
        self.batch_size = max(1, batch_size)
        self.min_points = min_points
        self.map_timeout = map_timeout
        self.axis_label_min_remaining = axis_label_min_remaining
        self._clock = clock
        self._is_aborted = is_aborted or (lambda: False)

    def _remaining(self, start: float) -> float:
        return self.map_timeout - (self._clock() - start)

    async def generate_map(self, conversations: Sequence[Conversation]) -> Optional[IntelligenceMap]:
        start = self._clock()
        samples = await self._collect_samples(list(conversations)[: self.max_conversations], start)
        if len(samples) < self.min_points:
            logger.info("Only %d conversations summarised; skipping intelligence map", len(samples))
            return None

        coords = reduce_to_2d([s.embedding for s in samples])
        points = [
            MapPoint(
                x=x,
                y=y,
                conversation_id=s.conversation.id,
                title=s.conversation.title,
                summary=s.summary,
            )
            for s, (x, y) in zip(samples, coords)
        ]
        labels = await self._axis_labels(points, start)
        return IntelligenceMap(points=points, axis_labels=labels)

    async def _collect_samples(self, conversations: List[Conversation], start: float) -> List[_Sample]:
        samples: List[_Sample] = []
        for i in range(0, len(conversations), self.batch_size):
            if self._is_aborted():
                logger.info("Intelligence map aborted after %d conversations", i)
                break
            remaining = self._remaining(start)
            if remaining <= 0:
                logger.warning("Intelligence map deadline reached after %d conversations", i)
                break

            batch = conversations[i : i + self.batch_size]
            tasks = [asyncio.ensure_future(self._sample(conv)) for conv in batch]
            try:
                done, pending = await asyncio.wait(tasks, timeout=remaining)
            finally:
                for task in tasks:
                    if not task.done():
                        task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)
                logger.warning("%d conversations did not finish before the map deadline", len(pending))
            # batch order, not completion order
            for task in tasks:
                if task in done and not task.cancelled() and task.result() is not None:
                    samples.append(task.result())
        return samples

    async def _sample(self, conv: Conversation) -> Optional[_Sample]:
        if self._is_aborted():
            return None
        prompt = conversation_summary_prompt(conv.title, conversation_excerpt(conv))
        try:
            summary = (await self.client.generate(prompt)).strip()[:MAP_SUMMARY_CHARS]
            if not summary or self._is_aborted():
                return None
            embedding = await self.client.get_embedding(summary)
        except Exception as e:
            logger.warning("Leaving conversation %s off the map: %s", conv.id, e)
            return None
        return _Sample(conversation=conv, summary=summary, embedding=embedding)

    async def _axis_labels(self, points: Sequence[MapPoint], start: float) -> AxisLabels:
        remaining = self._remaining(start)
        if remaining <= self.axis_label_min_remaining or self._is_aborted():
            logger.info("%.1fs left on the map deadline; using default axis labels", remaining)
            return DEFAULT_AXIS_LABELS
        prompt = axis_labels_prompt(extreme_summaries(points))
        try:
            data = await asyncio.wait_for(
                self.client.generate_with_schema(prompt, AxisLabelsSchema, name="axis_labels"),
                timeout=remaining,
            )
        except Exception as e:
            logger.warning("Axis label inference failed, using defaults: %s", e)
            return DEFAULT_AXIS_LABELS
        return AxisLabels(
            **{
                key: (str(data.get(key) or "").strip() or getattr(DEFAULT_AXIS_LABELS, key))
                for key in ("x_positive", "x_negative", "y_positive", "y_negative")
            }
        )
