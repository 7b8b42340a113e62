"""
Embedding Provider Infrastructure
=================================

Named embedding providers behind one interface.

Providers:
- gemini: text-embedding-004 through Google's OpenAI-compatible endpoint
- openai: text-embedding-3-small
- zai: Z.AI embedding-2
- mock: deterministic hash-seeded vectors, no network

Every provider has a fixed output dimension that is known without calling
the model, so collections can be sized before the first embedding.
"""

import asyncio
import hashlib
import random
from abc import ABC, abstractmethod
from typing import Callable, Dict, List, Optional

from openai import AsyncOpenAI
from zai import ZaiClient

from incident_hub.config import settings
from incident_hub.core import ConfigurationException, EmbeddingException
from incident_hub.shared.infrastructure.logging import get_logger, log_latency

logger = get_logger(__name__)

GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/openai/"

DEFAULT_MODELS: Dict[str, str] = {
    "gemini": "text-embedding-004",
    "openai": "text-embedding-3-small",
    "zai": "embedding-2",
    "mock": "mock-embedding",
}

PROVIDER_DIMENSIONS: Dict[str, int] = {
    "gemini": 768,
    "openai": 1536,
    "zai": 1024,
}


def embedding_dimension(provider_name: str) -> int:
    """
    Output dimension of a provider, without calling the model.

    Raises:
        ConfigurationException: If the provider name is unknown
    """
    name = provider_name.strip().lower()
    if name == "mock":
        return settings.embedding_dimension
    if name not in PROVIDER_DIMENSIONS:
        raise ConfigurationException(
            f"Unknown embedding provider '{provider_name}'",
            {"known_providers": sorted(DEFAULT_MODELS)}
        )
    return PROVIDER_DIMENSIONS[name]


class IEmbeddingProvider(ABC):
    """
    Interface for embedding providers.

    Implementations make one outbound call per method invocation and
    keep no cache.
    """

    name: str
    model: str

    @property
    def dimension(self) -> int:
        return embedding_dimension(self.name)

    async def embed(self, text: str) -> List[float]:
        """
        Embed a single text.

        Raises:
            EmbeddingException: If the model call fails or times out
        """
        vectors = await self.embed_many([text])
        return vectors[0]

    @abstractmethod
    async def embed_many(self, texts: List[str]) -> List[List[float]]:
        """
        Embed several texts in one call.

        The result has the same length and order as ``texts``. A failure
        for any text fails the whole call; there are no partial results.

        Raises:
            EmbeddingException: If the model call fails or times out
        """

    async def ping(self) -> bool:
        """Return True if the provider answers a trivial request."""
        try:
            await self.embed("ping")
            return True
        except EmbeddingException as e:
            logger.warning("Embedding provider unreachable", extra={"provider": self.name, "error": str(e)})
            return False


def _check_batch(provider: str, texts: List[str], vectors: List[List[float]]) -> List[List[float]]:
    if len(vectors) != len(texts):
        raise EmbeddingException(
            f"{provider} returned {len(vectors)} embeddings for {len(texts)} inputs"
        )
    return vectors


class OpenAIEmbeddingProvider(IEmbeddingProvider):
    """
    OpenAI embeddings via the async SDK.

    Also serves any OpenAI-compatible endpoint through ``base_url``.
    """

    name = "openai"

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None
    ):
        self._api_key = api_key or self._configured_key()
        if not self._api_key:
            raise ConfigurationException(f"{self.name} API key not configured")

        self.model = model or settings.embedding_model or DEFAULT_MODELS[self.name]
        self._timeout = timeout or settings.embedding_timeout_seconds
        self._client = AsyncOpenAI(
            api_key=self._api_key,
            base_url=base_url,
            timeout=self._timeout,
            max_retries=0
        )

    def _configured_key(self) -> Optional[str]:
        return settings.openai_api_key

    async def embed_many(self, texts: List[str]) -> List[List[float]]:
        if not texts:
            return []

        try:
            with log_latency(logger, "embedding", provider=self.name, batch_size=len(texts)):
                response = await asyncio.wait_for(
                    self._client.embeddings.create(model=self.model, input=texts),
                    timeout=self._timeout
                )
        except asyncio.TimeoutError:
            raise EmbeddingException(f"{self.name} embedding timed out after {self._timeout}s")
        except Exception as e:
            raise EmbeddingException(f"{self.name} embedding failed: {str(e)}")

        ordered = sorted(response.data, key=lambda item: item.index)
        return _check_batch(self.name, texts, [item.embedding for item in ordered])


class GeminiEmbeddingProvider(OpenAIEmbeddingProvider):
    """Google Gemini embeddings through the OpenAI-compatible endpoint."""

    name = "gemini"

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None
    ):
        super().__init__(api_key=api_key, model=model, base_url=GEMINI_BASE_URL, timeout=timeout)

    def _configured_key(self) -> Optional[str]:
        return settings.gemini_api_key


class ZAIEmbeddingProvider(IEmbeddingProvider):
    """
    Z.AI SDK embeddings.

    The SDK client is synchronous, so calls run in a worker thread.
    """

    name = "zai"

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None
    ):
        self._api_key = api_key or settings.zai_api_key
        if not self._api_key:
            raise ConfigurationException("Z.AI API key not configured")

        self._client = ZaiClient(api_key=self._api_key)
        self.model = model or settings.embedding_model or DEFAULT_MODELS[self.name]
        self._timeout = timeout or settings.embedding_timeout_seconds

    async def embed_many(self, texts: List[str]) -> List[List[float]]:
        if not texts:
            return []

        try:
            with log_latency(logger, "embedding", provider=self.name, batch_size=len(texts)):
                response = await asyncio.wait_for(
                    asyncio.to_thread(self._client.embeddings.create, model=self.model, input=texts),
                    timeout=self._timeout
                )
        except asyncio.TimeoutError:
            raise EmbeddingException(f"zai embedding timed out after {self._timeout}s")
        except Exception as e:
            raise EmbeddingException(f"zai embedding failed: {str(e)}")

        ordered = sorted(response.data, key=lambda item: item.index)
        return _check_batch(self.name, texts, [item.embedding for item in ordered])


class MockEmbeddingProvider(IEmbeddingProvider):
    """
    Deterministic embeddings for tests and local runs.

    The vector is seeded from a SHA-256 of the text, so identical text
    always maps to the identical vector.
    """

    name = "mock"

    def __init__(self, dimension: Optional[int] = None, **_: object):
        self._dimension = dimension or settings.embedding_dimension
        self.model = DEFAULT_MODELS["mock"]
        self.calls = 0

    @property
    def dimension(self) -> int:
        return self._dimension

    async def embed_many(self, texts: List[str]) -> List[List[float]]:
        self.calls += 1
        vectors = []
        for text in texts:
            seed = int(hashlib.sha256(text.encode("utf-8")).hexdigest()[:16], 16)
            rng = random.Random(seed)
            vectors.append([rng.uniform(-1, 1) for _ in range(self._dimension)])
        return vectors


PROVIDERS: Dict[str, Callable[..., IEmbeddingProvider]] = {
    "gemini": GeminiEmbeddingProvider,
    "openai": OpenAIEmbeddingProvider,
    "zai": ZAIEmbeddingProvider,
    "mock": MockEmbeddingProvider,
}


def create_embedding_provider(name: Optional[str] = None, **kwargs) -> IEmbeddingProvider:
    """
    Build the embedding provider registered under ``name``.

    Args:
        name: Provider name; defaults to settings.embedding_provider

    Raises:
        ConfigurationException: Unknown name or missing API key
    """
    provider_name = (name or settings.embedding_provider).strip().lower()
    factory = PROVIDERS.get(provider_name)
    if factory is None:
        raise ConfigurationException(
            f"Unknown embedding provider '{provider_name}'",
            {"known_providers": sorted(PROVIDERS)}
        )

    provider = factory(**kwargs)
    logger.info(
        "Embedding provider created",
        extra={"provider": provider_name, "model": provider.model, "dimension": provider.dimension}
    )
    return provider
