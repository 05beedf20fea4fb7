"""
Shared test doubles for the RAG pipeline.

The fakes implement the real provider interfaces so the pipeline runs
end to end without network access.
"""
from typing import List, Optional, Sequence

import pytest

from apps.rag.config import ProviderConfig
from apps.rag.embeddings import BaseEmbedder, EmbeddingProviderError
from apps.rag.index import IndexedDocument
from apps.rag.llm_client import BaseLLMClient, LLMError, LLMResponse


# Each vocabulary word is one embedding dimension
VOCAB = [
    "refund", "policy", "return", "shipping", "invoice",
    "holiday", "vacation", "security", "password", "budget",
]


class KeywordEmbedder(BaseEmbedder):
    """Bag-of-words embedder over VOCAB; raises for texts containing a fail marker."""

    provider = "fake"

    def __init__(self, fail_on: Sequence[str] = ()):
        self.fail_on = list(fail_on)
        self.calls: List[str] = []

    @property
    def model_name(self) -> str:
        return "fake-embed"

    def embed(self, text: str) -> List[float]:
        self.calls.append(text)
        if any(marker in text for marker in self.fail_on):
            raise EmbeddingProviderError("embedding backend rejected text")
        lower = text.lower()
        return [float(lower.count(word)) for word in VOCAB]


class FakeLLMClient(BaseLLMClient):
    """Scripted LLM: fixed chat reply, fixed stream chunks, optional failures."""

    provider = "fake"

    def __init__(
        self,
        chunks: Sequence[str] = (),
        chat_reply: str = "",
        chat_error: Optional[Exception] = None,
        fail_after: Optional[int] = None,
        model: str = "fake-model",
    ):
        super().__init__(api_key="test-key", model=model)
        self.chunks = list(chunks)
        self.chat_reply = chat_reply
        self.chat_error = chat_error
        self.fail_after = fail_after
        self.chat_calls = []
        self.stream_calls = []
        self.emitted = 0
        self.upstream_closed = False

    def build_request(self, messages, temperature, max_tokens, stream):
        raise NotImplementedError

    def parse_response(self, data):
        raise NotImplementedError

    def parse_stream_event(self, data):
        raise NotImplementedError

    def chat(self, messages, temperature=0.2, max_tokens=500):
        self.chat_calls.append(messages)
        if self.chat_error:
            raise self.chat_error
        return LLMResponse(content=self.chat_reply, model=self.model)

    def stream_chat(self, messages, temperature=0.7, max_tokens=1024):
        self.stream_calls.append(messages)
        try:
            for i, chunk in enumerate(self.chunks):
                if self.fail_after is not None and i >= self.fail_after:
                    raise LLMError("provider connection reset")
                self.emitted += 1
                yield chunk
        finally:
            self.upstream_closed = True


@pytest.fixture
def provider_config():
    """Config with every provider configured and no thread pool surprises."""
    return ProviderConfig(
        gemini_api_key="gemini-key",
        openai_api_key="openai-key",
        anthropic_api_key="anthropic-key",
        embed_max_workers=4,
        retrieval_max_workers=4,
    )


@pytest.fixture
def policy_doc():
    return IndexedDocument(
        id="d1",
        title="Policy",
        content="Refunds within 30 days. See the refund policy for return rules.",
        url="https://docs.google.com/document/d/d1/edit",
        last_modified="2024-05-01T10:00:00Z",
    )


@pytest.fixture
def sample_docs(policy_doc):
    """A small mixed document set; only the first is about refunds."""
    return [
        policy_doc,
        IndexedDocument(id="d2", title="Shipping", content="Shipping takes 5 days. Shipping is free."),
        IndexedDocument(id="d3", title="Holidays", content="Holiday and vacation calendar."),
        IndexedDocument(id="d4", title="Security", content="Password rotation and security rules."),
    ]
