"""
LLM Client Abstraction Layer.

Provides a unified interface for chat and streaming calls against:
- OpenAI (or any OpenAI-compatible API)
- Anthropic Messages API
- Google Gemini API

The client for a request is picked from the requested model name and the
configured credentials by ``resolve_llm_client``.
"""
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional, Tuple

import httpx

from apps.rag.config import ProviderConfig

logger = logging.getLogger(__name__)

GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
ANTHROPIC_BASE_URL = "https://api.anthropic.com/v1"
ANTHROPIC_VERSION = "2023-06-01"

# Model used when the requested one cannot be served by its own provider
DEFAULT_MODELS = {
    "gemini": "gemini-1.5-flash",
    "openai": "gpt-4o-mini",
    "anthropic": "claude-3-5-haiku-20241022",
}

# Order in which providers are tried when the model name matches none
FALLBACK_ORDER = ("gemini", "openai", "anthropic")


@dataclass
class LLMMessage:
    """A message in a chat conversation."""
    role: str  # "system", "user", or "assistant"
    content: str


@dataclass
class LLMResponse:
    """Response from an LLM call."""
    content: str
    model: str
    usage: Optional[Dict[str, int]] = None  # token usage if available


class LLMError(Exception):
    """Raised when LLM call fails."""
    pass


class NoProviderAvailable(Exception):
    """Raised when no configured provider can serve the requested model."""
    pass


def iter_sse_data(response: httpx.Response) -> Iterator[str]:
    """Yield the payload of every ``data:`` line of a server-sent event stream."""
    for line in response.iter_lines():
        if line.startswith("data:"):
            yield line[len("data:"):].strip()


class BaseLLMClient(ABC):
    """Abstract base class for LLM clients."""

    provider = ""

    def __init__(self, api_key: str, model: str, timeout: float = 120.0):
        if not api_key:
            raise LLMError(f"{self.provider} API key not configured")
        self.api_key = api_key
        self.model = model
        self.timeout = timeout

    @property
    def model_name(self) -> str:
        return self.model

    @abstractmethod
    def build_request(
        self,
        messages: List[LLMMessage],
        temperature: float,
        max_tokens: int,
        stream: bool,
    ) -> Tuple[str, Dict[str, Any], Dict[str, str]]:
        """Return (url, json body, headers) for a chat request."""
        pass

    @abstractmethod
    def parse_response(self, data: Dict[str, Any]) -> LLMResponse:
        """Extract the answer from a non-streaming response body."""
        pass

    @abstractmethod
    def parse_stream_event(self, data: Dict[str, Any]) -> Optional[str]:
        """Extract a text delta from one streamed event (None if it carries no text)."""
        pass

    def chat(
        self,
        messages: List[LLMMessage],
        temperature: float = 0.2,
        max_tokens: int = 500,
    ) -> LLMResponse:
        """
        Send a chat completion request.

        Args:
            messages: List of messages in the conversation
            temperature: Sampling temperature (0-1)
            max_tokens: Maximum tokens in response

        Returns:
            LLMResponse with the model's response

        Raises:
            LLMError: If the request fails
        """
        logger.info(f"Calling {self.provider} chat: model={self.model}, temp={temperature}")
        url, body, headers = self.build_request(messages, temperature, max_tokens, stream=False)

        try:
            with httpx.Client(timeout=float(self.timeout)) as client:
                response = client.post(url, json=body, headers=headers)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as e:
            logger.error(f"{self.provider} HTTP error: {e.response.status_code}")
            raise LLMError(f"{self.provider} API error: {e.response.status_code}")
        except httpx.TimeoutException:
            logger.error(f"{self.provider} request timed out")
            raise LLMError(f"{self.provider} API timed out")
        except httpx.RequestError as e:
            logger.error(f"{self.provider} connection error: {e}")
            raise LLMError(f"Could not connect to {self.provider} API")
        except ValueError:
            raise LLMError(f"Invalid JSON from {self.provider} API")

        try:
            result = self.parse_response(data)
        except (AttributeError, TypeError, KeyError, IndexError) as e:
            logger.error(f"Unexpected {self.provider} response shape: {e}")
            raise LLMError(f"Invalid response from {self.provider} API")

        logger.info(f"{self.provider} response: {len(result.content)} chars")
        return result

    def stream_chat(
        self,
        messages: List[LLMMessage],
        temperature: float = 0.7,
        max_tokens: int = 1024,
    ) -> Iterator[str]:
        """
        Stream a chat completion as text deltas.

        The HTTP connection stays open while the caller iterates. Closing
        the iterator early closes the connection.

        Raises:
            LLMError: If the request fails before or during streaming
        """
        logger.info(f"Opening {self.provider} stream: model={self.model}, temp={temperature}")
        url, body, headers = self.build_request(messages, temperature, max_tokens, stream=True)
        delta_count = 0

        try:
            with httpx.Client(timeout=float(self.timeout)) as client:
                with client.stream("POST", url, json=body, headers=headers) as response:
                    response.raise_for_status()
                    for payload in iter_sse_data(response):
                        if not payload:
                            continue
                        if payload == "[DONE]":
                            break
                        delta = self.parse_stream_event(json.loads(payload))
                        if delta:
                            delta_count += 1
                            yield delta
        except httpx.HTTPStatusError as e:
            logger.error(f"{self.provider} stream HTTP error: {e.response.status_code}")
            raise LLMError(f"{self.provider} API error: {e.response.status_code}")
        except httpx.TimeoutException:
            logger.error(f"{self.provider} stream timed out after {delta_count} chunks")
            raise LLMError(f"{self.provider} API timed out")
        except httpx.RequestError as e:
            logger.error(f"{self.provider} stream connection error: {e}")
            raise LLMError(f"Could not connect to {self.provider} API")
        except json.JSONDecodeError as e:
            logger.error(f"{self.provider} stream sent malformed event: {e}")
            raise LLMError(f"Malformed stream event from {self.provider} API")
        except (AttributeError, TypeError, KeyError, IndexError) as e:
            logger.error(f"{self.provider} stream event has unexpected shape: {e}")
            raise LLMError(f"Malformed stream event from {self.provider} API")

        logger.info(f"{self.provider} stream finished: {delta_count} chunks")


class OpenAICompatibleClient(BaseLLMClient):
    """
    LLM client for OpenAI-compatible APIs.

    Works with: OpenAI, Azure OpenAI, Groq, Together, local servers, etc.
    """

    provider = "openai"

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str = "https://api.openai.com/v1",
        timeout: float = 120.0,
    ):
        super().__init__(api_key, model, timeout)
        self.base_url = base_url.rstrip("/")

    def build_request(self, messages, temperature, max_tokens, stream):
        body = {
            "model": self.model,
            "messages": [{"role": m.role, "content": m.content} for m in messages],
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if stream:
            body["stream"] = True
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        return f"{self.base_url}/chat/completions", body, headers

    def parse_response(self, data):
        choices = data.get("choices") or []
        if not choices:
            raise LLMError("No choices in OpenAI response")

        content = (choices[0].get("message") or {}).get("content") or ""
        if not content:
            raise LLMError("Empty response from OpenAI")

        return LLMResponse(content=content, model=self.model, usage=data.get("usage"))

    def parse_stream_event(self, data):
        choices = data.get("choices") or []
        if not choices:
            return None
        return (choices[0].get("delta") or {}).get("content")


class AnthropicClient(BaseLLMClient):
    """LLM client for the Anthropic Messages API."""

    provider = "anthropic"

    def build_request(self, messages, temperature, max_tokens, stream):
        # System prompts go in a top-level field, not in the message list
        system = "\n\n".join(m.content for m in messages if m.role == "system")
        body: Dict[str, Any] = {
            "model": self.model,
            "messages": [
                {"role": m.role, "content": m.content}
                for m in messages if m.role != "system"
            ],
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if system:
            body["system"] = system
        if stream:
            body["stream"] = True
        headers = {
            "x-api-key": self.api_key,
            "anthropic-version": ANTHROPIC_VERSION,
            "Content-Type": "application/json",
        }
        return f"{ANTHROPIC_BASE_URL}/messages", body, headers

    def parse_response(self, data):
        blocks = data.get("content") or []
        text = "".join(b.get("text") or "" for b in blocks if b.get("type") == "text")
        if not text:
            raise LLMError("Empty response from Anthropic")

        usage = None
        if data.get("usage"):
            usage = {
                "prompt_tokens": data["usage"].get("input_tokens", 0),
                "completion_tokens": data["usage"].get("output_tokens", 0),
            }
        return LLMResponse(content=text, model=self.model, usage=usage)

    def parse_stream_event(self, data):
        event_type = data.get("type")
        if event_type == "error":
            message = (data.get("error") or {}).get("message", "unknown error")
            raise LLMError(f"Anthropic stream error: {message}")
        if event_type == "content_block_delta":
            return (data.get("delta") or {}).get("text")
        return None


class GeminiClient(BaseLLMClient):
    """LLM client for Google Gemini API."""

    provider = "gemini"

    def build_request(self, messages, temperature, max_tokens, stream):
        # Gemini uses "contents" with "parts"; system prompt goes in systemInstruction
        system_instruction = None
        contents = []
        for msg in messages:
            if msg.role == "system":
                system_instruction = msg.content
            else:
                role = "model" if msg.role == "assistant" else "user"
                contents.append({"role": role, "parts": [{"text": msg.content}]})

        body: Dict[str, Any] = {
            "contents": contents,
            "generationConfig": {
                "temperature": temperature,
                "maxOutputTokens": max_tokens,
                "topP": 0.95,
            },
        }
        if system_instruction:
            body["systemInstruction"] = {"parts": [{"text": system_instruction}]}

        if stream:
            url = f"{GEMINI_BASE_URL}/models/{self.model}:streamGenerateContent?alt=sse&key={self.api_key}"
        else:
            url = f"{GEMINI_BASE_URL}/models/{self.model}:generateContent?key={self.api_key}"
        return url, body, {"Content-Type": "application/json"}

    def parse_response(self, data):
        candidates = data.get("candidates") or []
        if not candidates:
            if (data.get("promptFeedback") or {}).get("blockReason"):
                reason = data["promptFeedback"]["blockReason"]
                raise LLMError(f"Request blocked by Gemini: {reason}")
            raise LLMError("No response from Gemini API")

        text = self._candidate_text(candidates[0])
        if not text:
            raise LLMError("Empty text in Gemini response")

        usage = None
        if data.get("usageMetadata"):
            meta = data["usageMetadata"]
            usage = {
                "prompt_tokens": meta.get("promptTokenCount", 0),
                "completion_tokens": meta.get("candidatesTokenCount", 0),
                "total_tokens": meta.get("totalTokenCount", 0),
            }
        return LLMResponse(content=text, model=self.model, usage=usage)

    def parse_stream_event(self, data):
        candidates = data.get("candidates") or []
        if not candidates:
            if (data.get("promptFeedback") or {}).get("blockReason"):
                raise LLMError(f"Request blocked by Gemini: {data['promptFeedback']['blockReason']}")
            return None
        return self._candidate_text(candidates[0])

    @staticmethod
    def _candidate_text(candidate: Dict[str, Any]) -> str:
        parts = (candidate.get("content") or {}).get("parts") or []
        return "".join(p.get("text") or "" for p in parts)


# =============================================================================
# Provider resolution
# =============================================================================

def _configured(provider: str, config: ProviderConfig) -> bool:
    return {
        "gemini": config.has_gemini,
        "openai": config.has_openai,
        "anthropic": config.has_anthropic,
    }[provider]


def resolve_provider(model: str, config: ProviderConfig) -> Tuple[str, str]:
    """
    Map a requested model name to (provider, model).

    The provider is taken from the model name ("gpt", "claude", "gemini")
    when its credential is configured. Otherwise the first configured
    provider in FALLBACK_ORDER serves the request with its default model.

    Raises:
        NoProviderAvailable: If no provider credential is configured
    """
    name = (model or "").lower()

    if "gpt" in name and config.has_openai:
        return "openai", model
    if "claude" in name and config.has_anthropic:
        return "anthropic", model
    if "gemini" in name and config.has_gemini:
        return "gemini", model

    for provider in FALLBACK_ORDER:
        if _configured(provider, config):
            fallback = DEFAULT_MODELS[provider]
            logger.info(f"Model '{model}' not servable directly, falling back to {provider}/{fallback}")
            return provider, fallback

    raise NoProviderAvailable("No suitable model available")


def resolve_llm_client(model: str, config: ProviderConfig) -> BaseLLMClient:
    """Build the client that serves ``model`` under ``config``."""
    provider, resolved_model = resolve_provider(model, config)

    if provider == "openai":
        return OpenAICompatibleClient(
            api_key=config.openai_api_key,
            model=resolved_model,
            base_url=config.openai_base_url,
            timeout=config.llm_timeout,
        )
    if provider == "anthropic":
        return AnthropicClient(
            api_key=config.anthropic_api_key,
            model=resolved_model,
            timeout=config.llm_timeout,
        )
    return GeminiClient(
        api_key=config.gemini_api_key,
        model=resolved_model,
        timeout=config.llm_timeout,
    )
