"""Embedding providers - OpenAI-compatible API (OpenAI, Ollama, LM Studio, etc.)."""

from typing import Protocol, runtime_checkable

import httpx

from mnemo.core.config import Settings
from mnemo.core.logging import get_logger
from mnemo.core.typing import Vector

logger = get_logger("memory.embeddings")


class EmbeddingError(Exception):
    """Embedding backend unavailable or returned an unusable response."""


@runtime_checkable
class EmbeddingProvider(Protocol):
    """Anything that turns text into a fixed-length float vector."""

    async def embed(self, text: str) -> Vector:
        ...


class HttpEmbeddingProvider:
    """Embeddings via an OpenAI-compatible /embeddings endpoint."""

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        model: str = "text-embedding-3-small",
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=headers,
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def embed(self, text: str) -> Vector:
        if not self.base_url:
            raise EmbeddingError("Embedding endpoint not configured")

        payload = {"model": self.model, "input": text, "encoding_format": "float"}
        logger.debug(f"Embedding request: model={self.model}, chars={len(text)}")

        try:
            response = await self.client.post("/embeddings", json=payload)
            response.raise_for_status()
            data = response.json()
            embedding = data["data"][0]["embedding"]
        except httpx.ConnectError as e:
            raise EmbeddingError(f"Embedding backend not reachable at {self.base_url}: {e}") from e
        except httpx.TimeoutException as e:
            raise EmbeddingError(f"Embedding request timed out: {e}") from e
        except httpx.HTTPStatusError as e:
            raise EmbeddingError(f"Embedding error: HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise EmbeddingError(f"Embedding transport error: {e}") from e
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise EmbeddingError(f"Malformed embedding response: {e}") from e

        return [float(x) for x in embedding]

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


def create_embedding_provider(settings: Settings) -> HttpEmbeddingProvider | None:
    """Build the configured provider, or None when semantic indexing is disabled."""
    if not settings.embedding_url:
        logger.info("No embedding endpoint configured, recall is keyword-only")
        return None
    return HttpEmbeddingProvider(
        base_url=settings.embedding_url,
        api_key=settings.embedding_api_key,
        model=settings.embedding_model,
        timeout=settings.embedding_timeout,
    )
