"""
Generative provider contract and the OpenAI implementation.

Every failure surfaces as a ProviderError carrying an ApiErrorCode.
Transient failures (rate limit, timeout, network, 5xx) are retried with
exponential backoff; `abort()` cancels whatever request is in flight.
"""

from __future__ import annotations

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Type, TypeVar

import openai
from openai import AsyncOpenAI
from pydantic import BaseModel, ValidationError

from chatprofile.config import (
    EMBEDDING_MODEL,
    MAX_EMBEDDING_TOKENS,
    MODEL,
    PROVIDER_BACKOFF_SECONDS,
    PROVIDER_MAX_RETRIES,
    PROVIDER_REQUEST_TIMEOUT_SECONDS,
    RATE_LIMIT_DEFAULT_RETRY_AFTER,
)
from chatprofile.errors import ApiErrorCode, ProviderError, RequestAborted
from chatprofile.schemas import to_strict_schema
from chatprofile.token_utils import truncate_to_tokens

logger = logging.getLogger(__name__)

T = TypeVar("T")


class GenerativeClient(ABC):
    @abstractmethod
    async def generate(self, prompt: str) -> str:
        ...

    @abstractmethod
    async def generate_with_schema(self, prompt: str, schema: Type[BaseModel], *, name: str = "analysis") -> Dict[str, Any]:
        ...

    @abstractmethod
    async def get_embedding(self, text: str) -> List[float]:
        ...

    @abstractmethod
    def abort(self) -> None:
        ...


def _retry_after(exc: openai.APIStatusError) -> float:
    raw = None
    try:
        raw = exc.response.headers.get("retry-after")
    except AttributeError:
        pass
    try:
        return float(raw) if raw is not None else float(RATE_LIMIT_DEFAULT_RETRY_AFTER)
    except ValueError:
        return float(RATE_LIMIT_DEFAULT_RETRY_AFTER)


def classify_error(exc: BaseException) -> ProviderError:
    if isinstance(exc, ProviderError):
        return exc
    # APITimeoutError subclasses APIConnectionError, so check it first
    if isinstance(exc, openai.APITimeoutError):
        return ProviderError(ApiErrorCode.TIMEOUT, "Request timed out")
    if isinstance(exc, openai.APIConnectionError):
        return ProviderError(ApiErrorCode.NETWORK_ERROR, f"Network error: {exc}")
    if isinstance(exc, openai.APIStatusError):
        status = exc.status_code
        if status == 429:
            return ProviderError(ApiErrorCode.RATE_LIMIT, "Rate limit exceeded", retry_after=_retry_after(exc))
        if status in (401, 403):
            return ProviderError(ApiErrorCode.AUTH_ERROR, "Invalid API key or insufficient permissions")
        if status >= 500:
            return ProviderError(ApiErrorCode.SERVER_ERROR, f"Server error ({status})")
        return ProviderError(ApiErrorCode.UNKNOWN, f"API error ({status}): {exc}")
    if isinstance(exc, asyncio.TimeoutError):
        return ProviderError(ApiErrorCode.TIMEOUT, "Request timed out")
    if isinstance(exc, ConnectionError):
        return ProviderError(ApiErrorCode.NETWORK_ERROR, f"Network error: {exc}")
    return ProviderError(ApiErrorCode.UNKNOWN, str(exc) or type(exc).__name__)


class OpenAIClient(GenerativeClient):
    def __init__(
        self,
        *,
        client: Optional[AsyncOpenAI] = None,
        model: str = MODEL,
        embedding_model: str = EMBEDDING_MODEL,
        max_retries: int = PROVIDER_MAX_RETRIES,
        backoff: float = PROVIDER_BACKOFF_SECONDS,
        timeout: float = PROVIDER_REQUEST_TIMEOUT_SECONDS,
    ):
        # retries are ours, the SDK's own would hide error classes
        self._client = client or AsyncOpenAI(max_retries=0, timeout=timeout)
        self.model = model
        self.embedding_model = embedding_model
        self.max_retries = max_retries
        self.backoff = backoff
        self._inflight: Set[asyncio.Task] = set()
        self._aborted = False

    @property
    def aborted(self) -> bool:
        return self._aborted

    def abort(self) -> None:
        self._aborted = True
        for task in list(self._inflight):
            task.cancel()

    def reset(self) -> None:
        self._aborted = False

    async def _tracked(self, aw: Awaitable[T]) -> T:
        task = asyncio.ensure_future(aw)
        self._inflight.add(task)
        try:
            return await task
        except asyncio.CancelledError:
            current = asyncio.current_task()
            # only our abort() is turned into an error; outer cancellation propagates
            if self._aborted and not (current is not None and current.cancelling()):
                raise RequestAborted() from None
            raise
        finally:
            self._inflight.discard(task)

    async def _request(self, label: str, factory: Callable[[], Awaitable[T]]) -> T:
        attempt = 0
        while True:
            if self._aborted:
                raise RequestAborted()
            try:
                return await self._tracked(factory())
            except RequestAborted:
                raise
            except Exception as e:
                error = classify_error(e)
                if not error.retryable or attempt >= self.max_retries:
                    logger.warning("%s failed: %s", label, error)
                    raise error from e
            delay = self.backoff * (2 ** attempt)
            attempt += 1
            logger.warning(
                "%s failed (%s); retry %d/%d in %.1fs",
                label,
                error.code.value,
                attempt,
                self.max_retries,
                delay,
            )
            await self._tracked(asyncio.sleep(delay))

    async def generate(self, prompt: str) -> str:
        resp = await self._request(
            "generate",
            lambda: self._client.responses.create(model=self.model, input=prompt),
        )
        text = (resp.output_text or "").strip()
        if not text:
            raise ProviderError(ApiErrorCode.UNKNOWN, "Empty response from model")
        return text

    async def generate_with_schema(self, prompt: str, schema: Type[BaseModel], *, name: str = "analysis") -> Dict[str, Any]:
        text_format = {
            "format": {
                "type": "json_schema",
                "name": name,
                "schema": to_strict_schema(schema),
                "strict": True,
            }
        }
        resp = await self._request(
            f"generate_with_schema[{name}]",
            lambda: self._client.responses.create(model=self.model, input=prompt, text=text_format),
        )
        raw = (resp.output_text or "").strip()
        if not raw:
            raise ProviderError(ApiErrorCode.UNKNOWN, "Empty response from model")
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ProviderError(ApiErrorCode.UNKNOWN, f"Response was not valid JSON: {e}") from e
        try:
            validated = schema.model_validate(data)
        except ValidationError as e:
            raise ProviderError(ApiErrorCode.UNKNOWN, f"Response did not match {schema.__name__}: {e}") from e
        return validated.model_dump()

    async def get_embedding(self, text: str) -> List[float]:
        text = (text or "").strip()
        if not text:
            raise ProviderError(ApiErrorCode.UNKNOWN, "Cannot embed empty text")
        text = truncate_to_tokens(text, MAX_EMBEDDING_TOKENS)
        resp = await self._request(
            "embedding",
            lambda: self._client.embeddings.create(model=self.embedding_model, input=text),
        )
        if not resp.data:
            raise ProviderError(ApiErrorCode.UNKNOWN, "Empty embedding response")
        return [float(v) for v in resp.data[0].embedding]
