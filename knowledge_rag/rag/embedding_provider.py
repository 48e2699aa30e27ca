"""Embedding providers: deterministic hash vectors, OpenAI-compatible HTTP, and Gemini.

Providers never raise for normal input. The network-backed providers retry
transient failures and then fall back to a deterministic provider of their own
dimension, so every vector a provider returns has ``dimension()`` components.
The synchronous google-generativeai SDK runs through run_in_executor so it
does not block the event loop.
"""

from __future__ import annotations

import asyncio
import logging
import math
import os
from abc import ABC, abstractmethod
from typing import Any, Mapping, Optional

import aiohttp
import google.generativeai as genai  # type: ignore[import-untyped]

from knowledge_rag.exceptions import ProviderError
from knowledge_rag.models.config import EmbeddingConfig
from knowledge_rag.models.enums import EmbeddingBackend
from knowledge_rag.utils.http_session import embedding_session
from knowledge_rag.utils.retry_strategies import RetryConfig, create_retry_decorator
from knowledge_rag.utils.structured_log import log_embedding_fallback

logger = logging.getLogger(__name__)

DETERMINISTIC_DIMENSION = 384
OPENAI_DIMENSION = 1536
GEMINI_DIMENSION = 768
_MAX_INPUT_CHARS = 8000


class _RetryableStatus(ProviderError):
    """HTTP 429 or 5xx from the embeddings endpoint."""


class EmbeddingProvider(ABC):
    """Turns text into a fixed-length vector."""

    @abstractmethod
    async def generate_embedding(self, text: str) -> list[float]:
        ...

    @abstractmethod
    def name(self) -> str:
        ...

    @abstractmethod
    def dimension(self) -> int:
        ...


class DeterministicEmbeddingProvider(EmbeddingProvider):
    """Reproducible, network-free vectors derived from character codes.

    Component i is ``sum(ord(c_j) * (i+1) * (j+1))`` mapped into [-1, 1) via
    ``((v mod 2000) - 1000) / 1000``; the vector is then L2-normalized. The
    inner sum factors as ``(i+1) * S`` with ``S = sum(ord(c_j) * (j+1))``.
    """

    def __init__(self, dimension: int = DETERMINISTIC_DIMENSION) -> None:
        if dimension <= 0:
            raise ValueError(f"dimension must be positive, got {dimension}")
        self._dimension = dimension

    def name(self) -> str:
        return "deterministic"

    def dimension(self) -> int:
        return self._dimension

    def embed_sync(self, text: str) -> list[float]:
        if not text:
            return [0.0] * self._dimension
        weighted_sum = sum(ord(ch) * (j + 1) for j, ch in enumerate(text))
        vec = [
            (((i + 1) * weighted_sum) % 2000 - 1000) / 1000
            for i in range(self._dimension)
        ]
        magnitude = math.sqrt(sum(v * v for v in vec))
        if magnitude > 0:
            vec = [v / magnitude for v in vec]
        return vec

    async def generate_embedding(self, text: str) -> list[float]:
        return self.embed_sync(text)


class _FallbackMixin:
    """Shared fallback path for network-backed providers."""

    _fallback: DeterministicEmbeddingProvider

    def _fall_back(self, provider_name: str, text: str, error: Exception | str) -> list[float]:
        logger.warning("%s embedding failed, using deterministic fallback: %s", provider_name, error)
        log_embedding_fallback(provider_name, str(error))
        return self._fallback.embed_sync(text)


def _openai_embedding(data: Any) -> list[float]:
    """Extract ``data[0].embedding``; any malformed payload is a ProviderError."""
    items = data.get("data") if isinstance(data, dict) else None
    first = items[0] if isinstance(items, list) and items else None
    raw = first.get("embedding") if isinstance(first, dict) else None
    if not isinstance(raw, list) or not raw:
        raise ProviderError("OpenAI response carried no embedding")
    try:
        return [float(v) for v in raw]
    except (TypeError, ValueError) as exc:
        raise ProviderError(f"OpenAI embedding has non-numeric components: {exc}") from exc


class OpenAIEmbeddingProvider(_FallbackMixin, EmbeddingProvider):
    """Calls an OpenAI-compatible ``/embeddings`` endpoint with aiohttp."""

    def __init__(
        self,
        api_key: str,
        model: str = "text-embedding-3-small",
        base_url: str = "https://api.openai.com/v1/embeddings",
        dimension: int = OPENAI_DIMENSION,
        timeout: float = 30.0,
        max_retries: int = 3,
        verify_ssl: bool = True,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._base_url = base_url
        self._dimension = dimension
        self._timeout = timeout
        self._verify_ssl = verify_ssl
        self._fallback = DeterministicEmbeddingProvider(dimension)
        retry = create_retry_decorator(
            RetryConfig(
                max_attempts=max_retries,
                initial_delay=1.0,
                max_delay=10.0,
                retryable_exceptions=(aiohttp.ClientError, asyncio.TimeoutError, _RetryableStatus),
            )
        )
        self._request_with_retry = retry(self._request)

    def name(self) -> str:
        return f"openai:{self._model}"

    def dimension(self) -> int:
        return self._dimension

    async def _request(self, text: str) -> list[float]:
        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }
        payload = {"model": self._model, "input": text[:_MAX_INPUT_CHARS]}
        async with embedding_session(self._timeout, self._verify_ssl) as session:
            async with session.post(self._base_url, json=payload, headers=headers) as resp:
                if resp.status == 429 or resp.status >= 500:
                    body = await resp.text()
                    raise _RetryableStatus(f"OpenAI API error {resp.status}: {body[:300]}")
                if resp.status != 200:
                    body = await resp.text()
                    raise ProviderError(f"OpenAI API error {resp.status}: {body[:300]}")
                data: Any = await resp.json()
        return _openai_embedding(data)

    async def generate_embedding(self, text: str) -> list[float]:
        if not text:
            return [0.0] * self._dimension
        try:
            vec = await self._request_with_retry(text)
        except asyncio.CancelledError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError, ProviderError, ValueError) as exc:
            return self._fall_back(self.name(), text, exc)
        if len(vec) != self._dimension:
            return self._fall_back(
                self.name(),
                text,
                f"expected {self._dimension} components, got {len(vec)}",
            )
        return vec


def _gemini_embed_sync(api_key: str, model: str, text: str) -> list[float]:
    """Synchronous Gemini embedding call -- run in executor to avoid blocking."""
    genai.configure(api_key=api_key)
    resp = genai.embed_content(
        model=model,
        content=text[:_MAX_INPUT_CHARS],
        task_type="retrieval_document",
    )
    vec = resp.get("embedding") if isinstance(resp, dict) else getattr(resp, "embedding", None)
    if not vec:
        raise ProviderError("Gemini response carried no embedding")
    return [float(v) for v in vec]


class GeminiEmbeddingProvider(_FallbackMixin, EmbeddingProvider):
    """Google text-embedding model via google-generativeai."""

    def __init__(
        self,
        api_key: str,
        model: str = "models/text-embedding-004",
        dimension: int = GEMINI_DIMENSION,
        max_retries: int = 3,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._dimension = dimension
        self._fallback = DeterministicEmbeddingProvider(dimension)
        retry = create_retry_decorator(
            RetryConfig(max_attempts=max_retries, initial_delay=1.0, max_delay=10.0)
        )
        self._request_with_retry = retry(self._request)

    def name(self) -> str:
        return f"gemini:{self._model}"

    def dimension(self) -> int:
        return self._dimension

    async def _request(self, text: str) -> list[float]:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None, _gemini_embed_sync, self._api_key, self._model, text
        )

    async def generate_embedding(self, text: str) -> list[float]:
        if not text:
            return [0.0] * self._dimension
        try:
            vec = await self._request_with_retry(text)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            # SDK raises google.api_core exceptions as well as plain ValueErrors.
            return self._fall_back(self.name(), text, exc)
        if len(vec) != self._dimension:
            return self._fall_back(
                self.name(),
                text,
                f"expected {self._dimension} components, got {len(vec)}",
            )
        return vec


def create_embedding_provider(
    config: Optional[EmbeddingConfig] = None,
    env: Optional[Mapping[str, str]] = None,
) -> EmbeddingProvider:
    """Build the provider selected by ``config.backend``.

    ``auto`` prefers OpenAI, then Gemini, by which API key is present. An
    explicit backend whose key is missing degrades to deterministic.
    """
    config = config or EmbeddingConfig()
    env = os.environ if env is None else env
    openai_key = env.get("OPENAI_API_KEY", "")
    gemini_key = env.get("GEMINI_API_KEY", "")

    backend = config.backend
    if backend == EmbeddingBackend.AUTO:
        if openai_key:
            backend = EmbeddingBackend.OPENAI
        elif gemini_key:
            backend = EmbeddingBackend.GEMINI
        else:
            backend = EmbeddingBackend.DETERMINISTIC

    if backend == EmbeddingBackend.OPENAI:
        if openai_key:
            return OpenAIEmbeddingProvider(
                api_key=openai_key,
                model=config.openai_model,
                base_url=config.openai_base_url,
                dimension=config.openai_dimension,
                timeout=config.request_timeout,
                max_retries=config.max_retries,
                verify_ssl=config.verify_ssl,
            )
        logger.warning("OPENAI_API_KEY not set; using deterministic embeddings")
    elif backend == EmbeddingBackend.GEMINI:
        if gemini_key:
            return GeminiEmbeddingProvider(
                api_key=gemini_key,
                model=config.gemini_model,
                dimension=config.gemini_dimension,
                max_retries=config.max_retries,
            )
        logger.warning("GEMINI_API_KEY not set; using deterministic embeddings")

    return DeterministicEmbeddingProvider(config.deterministic_dimension)
