"""
Embedding providers for the per-request similarity index.

Each backend maps a text to a fixed-length vector. The backend is chosen
once per deployment from the configured credentials: Gemini first, then
OpenAI.
"""
import logging
import re
from abc import ABC, abstractmethod
from typing import List

import httpx

from apps.rag.config import ProviderConfig

logger = logging.getLogger(__name__)

GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"

# Longest question we accept from the client
MAX_QUERY_LENGTH = 4000


class EmbeddingUnavailable(Exception):
    """Raised when no embedding provider credential is configured."""
    pass


class EmbeddingProviderError(Exception):
    """Raised when an embedding backend call fails."""

    def __init__(self, message: str, retriable: bool = False):
        super().__init__(message)
        self.retriable = retriable


class QueryValidationError(Exception):
    """Raised when query validation fails."""
    pass


def normalize_query(query: str) -> str:
    """
    Normalize a user question.

    - Strip leading/trailing whitespace
    - Collapse multiple whitespace to single space
    - Raise if empty or too long
    """
    if not query or not isinstance(query, str):
        raise QueryValidationError("Message cannot be empty")

    normalized = re.sub(r'\s+', ' ', query.strip())

    if not normalized:
        raise QueryValidationError("Message cannot be empty")

    if len(normalized) > MAX_QUERY_LENGTH:
        raise QueryValidationError(f"Message too long (max {MAX_QUERY_LENGTH} characters)")

    return normalized


def _is_retriable_status(status_code: int) -> bool:
    return status_code == 429 or status_code >= 500


class BaseEmbedder(ABC):
    """Abstract base class for embedding backends."""

    provider = ""

    @abstractmethod
    def embed(self, text: str) -> List[float]:
        """
        Embed a single text.

        Raises:
            EmbeddingProviderError: If the backend call fails
        """
        pass

    @property
    @abstractmethod
    def model_name(self) -> str:
        pass


class GeminiEmbedder(BaseEmbedder):
    """Embeddings from the Google Generative Language API."""

    provider = "gemini"

    def __init__(self, api_key: str, model: str = "text-embedding-004", timeout: float = 60.0):
        if not api_key:
            raise EmbeddingUnavailable("GEMINI_API_KEY not configured")
        self.api_key = api_key
        self.model = model
        self.timeout = timeout

    @property
    def model_name(self) -> str:
        return self.model

    def embed(self, text: str) -> List[float]:
        url = f"{GEMINI_BASE_URL}/models/{self.model}:embedContent?key={self.api_key}"
        body = {
            "model": f"models/{self.model}",
            "content": {"parts": [{"text": text}]},
        }

        try:
            with httpx.Client(timeout=float(self.timeout)) as client:
                response = client.post(url, json=body)
                response.raise_for_status()
                data = response.json()

            # Response format: {"embedding": {"values": [...]}}
            values = data.get("embedding", {}).get("values")
            if not values:
                raise EmbeddingProviderError("Gemini returned empty embedding")
            return values

        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            logger.error(f"Gemini embedding HTTP error: {status}")
            raise EmbeddingProviderError(
                f"Gemini embedding error: {status}",
                retriable=_is_retriable_status(status),
            )
        except httpx.TimeoutException:
            logger.error("Gemini embedding request timed out")
            raise EmbeddingProviderError("Gemini embedding timed out", retriable=True)
        except httpx.RequestError as e:
            logger.error(f"Gemini embedding connection error: {e}")
            raise EmbeddingProviderError("Could not connect to Gemini API", retriable=True)
        except (ValueError, AttributeError, TypeError) as e:
            logger.error(f"Unexpected Gemini embedding response: {e}")
            raise EmbeddingProviderError("Invalid response from Gemini embedding API")


class OpenAIEmbedder(BaseEmbedder):
    """Embeddings from an OpenAI-compatible /embeddings endpoint."""

    provider = "openai"

    def __init__(
        self,
        api_key: str,
        model: str = "text-embedding-3-small",
        base_url: str = "https://api.openai.com/v1",
        timeout: float = 60.0,
    ):
        if not api_key:
            raise EmbeddingUnavailable("OPENAI_API_KEY not configured")
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    @property
    def model_name(self) -> str:
        return self.model

    def embed(self, text: str) -> List[float]:
        try:
            with httpx.Client(timeout=float(self.timeout)) as client:
                response = client.post(
                    f"{self.base_url}/embeddings",
                    json={"model": self.model, "input": text},
                    headers={
                        "Authorization": f"Bearer {self.api_key}",
                        "Content-Type": "application/json",
                    },
                )
                response.raise_for_status()
                data = response.json()

            items = data.get("data", [])
            if not items or not items[0].get("embedding"):
                raise EmbeddingProviderError("OpenAI returned empty embedding")
            return items[0]["embedding"]

        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            logger.error(f"OpenAI embedding HTTP error: {status}")
            raise EmbeddingProviderError(
                f"OpenAI embedding error: {status}",
                retriable=_is_retriable_status(status),
            )
        except httpx.TimeoutException:
            logger.error("OpenAI embedding request timed out")
            raise EmbeddingProviderError("OpenAI embedding timed out", retriable=True)
        except httpx.RequestError as e:
            logger.error(f"OpenAI embedding connection error: {e}")
            raise EmbeddingProviderError("Could not connect to OpenAI API", retriable=True)
        except (ValueError, AttributeError, TypeError) as e:
            logger.error(f"Unexpected OpenAI embedding response: {e}")
            raise EmbeddingProviderError("Invalid response from OpenAI embedding API")


def resolve_embedder(config: ProviderConfig) -> BaseEmbedder:
    """
    Pick the embedding backend for this deployment.

    Preference order is Gemini, then OpenAI. Anthropic has no embedding API.

    Raises:
        EmbeddingUnavailable: If neither credential is configured
    """
    if config.has_gemini:
        logger.debug("Using Gemini for embeddings")
        return GeminiEmbedder(
            api_key=config.gemini_api_key,
            model=config.gemini_embed_model,
            timeout=config.embed_timeout,
        )
    if config.has_openai:
        logger.debug("Using OpenAI for embeddings")
        return OpenAIEmbedder(
            api_key=config.openai_api_key,
            model=config.openai_embed_model,
            base_url=config.openai_base_url,
            timeout=config.embed_timeout,
        )
    raise EmbeddingUnavailable("No embedding API key available")
