"""
Sequential, deadline-bound analysis pipeline.

Steps run one at a time in declared order. Each step gets the same digest
and the results gathered so far, and is raced against a per-step timeout.
A failing or slow step only leaves its own field empty. When the global
deadline passes, or `abort()` is called, the loop stops and whatever has
been gathered is returned as a normal result.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, Awaitable, Callable, List, Optional, Sequence, Tuple, Type

from pydantic import BaseModel

from chatprofile.config import (
    DIGEST_CONVERSATION_CHARS,
    DIGEST_MAX_CONVERSATIONS,
    DIGEST_MESSAGE_CHARS,
    STEP_TIMEOUT_SECONDS,
    TOTAL_TIMEOUT_SECONDS,
)
from chatprofile.intelligence_map import IntelligenceMap, IntelligenceMapService
from chatprofile.llm_client import GenerativeClient
from chatprofile.models import Conversation
from chatprofile import prompts
from chatprofile import schemas

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, str], None]


@dataclass
class AnalysisResults:
    big_five: Optional[dict] = None
    mbti: Optional[dict] = None
    thinking_style: Optional[dict] = None
    communication: Optional[dict] = None
    topic_classification: Optional[dict] = None
    writing_style: Optional[dict] = None
    intelligence_map: Optional[IntelligenceMap] = None
    personality_summary: Optional[dict] = None

    @classmethod
    def field_names(cls) -> Tuple[str, ...]:
        return tuple(f.name for f in fields(cls))

    def merge(self, key: str, value: Any) -> None:
        """Set a step's result; None never overwrites an earlier value."""
        if key not in self.field_names():
            raise KeyError(key)
        if value is not None:
            setattr(self, key, value)

    def completed(self) -> List[str]:
        return [name for name in self.field_names() if getattr(self, name) is not None]


@dataclass(frozen=True)
class ConversationDigest:
    text: str
    conversations: Tuple[Conversation, ...] = field(default_factory=tuple)


StepHandler = Callable[[ConversationDigest, AnalysisResults], Awaitable[Any]]


@dataclass(frozen=True)
class AnalysisStep:
    key: str
    label: str
    weight: int
    handler: StepHandler


class RunState(str, Enum):
    NOT_STARTED = "not_started"
    RUNNING = "running"
    COMPLETED = "completed"
    TIMED_OUT = "timed_out"
    ABORTED = "aborted"


def build_digest(
    conversations: Sequence[Conversation],
    *,
    max_conversations: int = DIGEST_MAX_CONVERSATIONS,
    message_chars: int = DIGEST_MESSAGE_CHARS,
    conversation_chars: int = DIGEST_CONVERSATION_CHARS,
) -> ConversationDigest:
    subset = tuple(conversations[:max_conversations])
    blocks = []
    for i, conv in enumerate(subset, start=1):
        user_text = "\n".join(m.content[:message_chars] for m in conv.messages_by_role("user"))
        blocks.append(
            f"[Conversation {i}] {conv.title}\n"
            f"Date: {conv.create_time.isoformat()}\n"
            f"User messages:\n{user_text[:conversation_chars]}"
        )
    return ConversationDigest(text="\n\n---\n\n".join(blocks), conversations=subset)


class AnalysisOrchestrator:
    def __init__(
        self,
        client: GenerativeClient,
        *,
        steps: Optional[Sequence[AnalysisStep]] = None,
        total_timeout: float = TOTAL_TIMEOUT_SECONDS,
        step_timeout: float = STEP_TIMEOUT_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        map_service: Optional[IntelligenceMapService] = None,
    ):
        if client is None:
            raise ValueError("AnalysisOrchestrator needs a generative client")
        self.client = client
        self.total_timeout = total_timeout
        self.step_timeout = step_timeout
        self._clock = clock
        self._aborted = False
        self.state = RunState.NOT_STARTED
        self.current_step: Optional[str] = None
        self.map_service = map_service or IntelligenceMapService(
            client,
            clock=clock,
            is_aborted=lambda: self._aborted,
        )
        self.steps: List[AnalysisStep] = list(steps) if steps is not None else self.default_steps()
        self._check_steps()

    def _check_steps(self) -> None:
        total = sum(s.weight for s in self.steps)
        if total != 100:
            raise ValueError(f"step weights must sum to 100, got {total}")
        known = AnalysisResults.field_names()
        for step in self.steps:
            if step.key not in known:
                raise ValueError(f"unknown step key {step.key!r}")

    def default_steps(self) -> List[AnalysisStep]:
        return [
            AnalysisStep("big_five", "Big Five personality", 15, self._big_five),
            AnalysisStep("mbti", "MBTI type", 10, self._mbti),
            AnalysisStep("thinking_style", "Thinking style", 10, self._thinking_style),
            AnalysisStep("communication", "Communication style", 10, self._communication),
            AnalysisStep("topic_classification", "Topic classification", 10, self._topics),
            AnalysisStep("writing_style", "Writing style", 10, self._writing_style),
            AnalysisStep("intelligence_map", "Intelligence map", 20, self._intelligence_map),
            AnalysisStep("personality_summary", "Personality summary", 15, self._personality_summary),
        ]

    @property
    def aborted(self) -> bool:
        return self._aborted

    def abort(self) -> None:
        logger.info("Analysis abort requested")
        self._aborted = True
        self.client.abort()

    async def run_all_analyses(
        self,
        conversations: Sequence[Conversation],
        on_progress: Optional[ProgressCallback] = None,
    ) -> AnalysisResults:
        report = on_progress or (lambda percent, label: None)
        results = AnalysisResults()
        digest = build_digest(conversations)
        start = self._clock()
        progress = 0
        self.state = RunState.RUNNING

        for step in self.steps:
            if self._aborted:
                self.state = RunState.ABORTED
                logger.info("Analysis aborted before %s", step.key)
                break
            elapsed = self._clock() - start
            if elapsed > self.total_timeout:
                self.state = RunState.TIMED_OUT
                logger.warning(
                    "Analysis deadline of %.0fs passed before %s; returning partial results",
                    self.total_timeout,
                    step.key,
                )
                report(progress, "Time limit reached, returning partial results")
                break

            self.current_step = step.key
            report(progress, f"{step.label}...")
            result = await self._run_step(step, digest, results)
            results.merge(step.key, result)
            progress += step.weight
            report(progress, f"{step.label} done")
        else:
            self.state = RunState.COMPLETED

        self.current_step = None
        if self.state == RunState.COMPLETED and self._aborted:
            # abort landed during the last step
            self.state = RunState.ABORTED
        if self.state == RunState.COMPLETED:
            report(100, "Analysis complete")
        logger.info(
            "Analysis finished (%s): %s",
            self.state.value,
            ", ".join(results.completed()) or "no results",
        )
        return results

    async def _run_step(self, step: AnalysisStep, digest: ConversationDigest, results: AnalysisResults) -> Any:
        try:
            return await asyncio.wait_for(step.handler(digest, results), timeout=self.step_timeout)
        except asyncio.TimeoutError:
            logger.warning("Step %s timed out after %.0fs", step.key, self.step_timeout)
        except Exception:
            logger.exception("Step %s failed", step.key)
        return None

    # --------- Step handlers ---------

    async def _structured(self, prompt: str, schema: Type[BaseModel], name: str) -> dict:
        return await self.client.generate_with_schema(prompt, schema, name=name)

    async def _big_five(self, digest: ConversationDigest, results: AnalysisResults) -> dict:
        data = await self._structured(prompts.big_five_prompt(digest.text), schemas.BigFiveSchema, "big_five")
        scores = data.get("scores") or {}
        if scores and data.get("dominant_trait") not in scores:
            data["dominant_trait"] = max(scores, key=lambda k: scores[k])
        return data

    async def _mbti(self, digest: ConversationDigest, results: AnalysisResults) -> dict:
        data = await self._structured(prompts.mbti_prompt(digest.text), schemas.MbtiSchema, "mbti")
        data["type"] = str(data.get("type") or "").strip().upper()
        return data

    async def _thinking_style(self, digest: ConversationDigest, results: AnalysisResults) -> dict:
        return await self._structured(
            prompts.thinking_style_prompt(digest.text), schemas.ThinkingStyleSchema, "thinking_style"
        )

    async def _communication(self, digest: ConversationDigest, results: AnalysisResults) -> dict:
        return await self._structured(
            prompts.communication_prompt(digest.text), schemas.CommunicationSchema, "communication"
        )

    async def _topics(self, digest: ConversationDigest, results: AnalysisResults) -> dict:
        return await self._structured(
            prompts.topic_classification_prompt(digest.text),
            schemas.TopicClassificationSchema,
            "topic_classification",
        )

    async def _writing_style(self, digest: ConversationDigest, results: AnalysisResults) -> dict:
        return await self._structured(
            prompts.writing_style_prompt(digest.text), schemas.WritingStyleSchema, "writing_style"
        )

    async def _intelligence_map(self, digest: ConversationDigest, results: AnalysisResults) -> Optional[IntelligenceMap]:
        return await self.map_service.generate_map(digest.conversations)

    async def _personality_summary(self, digest: ConversationDigest, results: AnalysisResults) -> dict:
        prompt = prompts.personality_summary_prompt(digest.text, prompts.summary_context(results))
        return await self._structured(prompt, schemas.PersonalitySummarySchema, "personality_summary")
