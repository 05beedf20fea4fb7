"""
RAG request pipeline.

Runs the per-request steps (index build, keyword expansion, retrieval,
prompt assembly) up front, then hands back an AnswerStream that produces
typed StreamEvents as the model generates.

Fatal problems (no embedding provider, no answering model) are raised by
``prepare_answer`` before any byte is streamed, so the view can still
answer with a JSON error.
"""
import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterator, List, Optional

from apps.rag.chat import (
    DEFAULT_MAX_TOKENS,
    DEFAULT_TEMPERATURE,
    ConversationTurn,
    build_prompt,
)
from apps.rag.config import ProviderConfig
from apps.rag.embeddings import BaseEmbedder, normalize_query, resolve_embedder
from apps.rag.index import EphemeralIndex, IndexedDocument
from apps.rag.llm_client import BaseLLMClient, LLMError, LLMMessage, resolve_llm_client
from apps.rag.query_expander import expand_query
from apps.rag.retrieval import RetrievalResult, retrieve_documents

logger = logging.getLogger(__name__)

DONE_FRAME = "data: [DONE]\n\n"


class StreamFailure(Exception):
    """Raised when the provider stream breaks after streaming started."""
    pass


class StreamState(str, Enum):
    """Lifecycle of an answer stream."""
    IDLE = "idle"
    STREAMING = "streaming"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"  # Consumer went away mid-stream


@dataclass
class StreamEvent:
    """
    One unit of streamed output.

    ``done`` marks the terminal sentinel; it carries no content.
    """
    content: str = ""
    sources: Optional[List[str]] = None
    done: bool = False

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"content": self.content}
        # Omitted entirely (not an empty list) when nothing was retrieved
        if self.sources:
            data["sources"] = self.sources
        return data

    def to_sse(self) -> str:
        """Encode as a server-sent event frame."""
        if self.done:
            return DONE_FRAME
        return f"data: {json.dumps(self.to_dict())}\n\n"


DONE_EVENT = StreamEvent(done=True)


@dataclass
class ChatRequest:
    """Validated body of a chat request."""
    message: str
    model: str
    history: List[ConversationTurn] = field(default_factory=list)
    documents: List[IndexedDocument] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChatRequest":
        """
        Parse the client payload ``{message, history, model, indexedDocs}``.

        Raises:
            QueryValidationError: If the message is empty or too long
            ValueError: If any other field is malformed
        """
        if not isinstance(data, dict):
            raise ValueError("Request body must be a JSON object")

        message = normalize_query(data.get("message", ""))

        model = data.get("model") or ""
        if not isinstance(model, str):
            raise ValueError("model must be a string")

        raw_history = data.get("history") or []
        if not isinstance(raw_history, list):
            raise ValueError("history must be a list")
        history = [ConversationTurn.from_dict(turn) for turn in raw_history]

        raw_docs = data.get("indexedDocs") or []
        if not isinstance(raw_docs, list):
            raise ValueError("indexedDocs must be a list")
        try:
            documents = [IndexedDocument.from_dict(doc) for doc in raw_docs]
        except (KeyError, TypeError, AttributeError):
            raise ValueError("Each indexed document needs at least an id")

        return cls(message=message, model=model, history=history, documents=documents)


class AnswerStream:
    """
    Streams one generated answer.

    Every text delta from the provider becomes a StreamEvent carrying the
    full, precomputed source list. A terminal sentinel follows normal
    completion. A provider error mid-stream raises StreamFailure and no
    sentinel is produced. Closing the iterator early closes the provider
    connection.
    """

    def __init__(
        self,
        client: BaseLLMClient,
        prompt: str,
        retrieval: RetrievalResult,
        keywords: Optional[List[str]] = None,
        temperature: float = DEFAULT_TEMPERATURE,
        max_tokens: int = DEFAULT_MAX_TOKENS,
    ):
        self.client = client
        self.prompt = prompt
        self.retrieval = retrieval
        self.keywords = keywords or []
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.state = StreamState.IDLE
        self.delta_count = 0

    @property
    def sources(self) -> List[str]:
        return self.retrieval.sources

    def events(self) -> Iterator[StreamEvent]:
        """Generate StreamEvents; may only be consumed once."""
        if self.state != StreamState.IDLE:
            raise RuntimeError(f"Answer stream already {self.state.value}")

        self.state = StreamState.STREAMING
        sources = self.sources or None
        upstream = self.client.stream_chat(
            [LLMMessage(role="user", content=self.prompt)],
            temperature=self.temperature,
            max_tokens=self.max_tokens,
        )

        try:
            for delta in upstream:
                self.delta_count += 1
                yield StreamEvent(content=delta, sources=sources)
        except GeneratorExit:
            self.state = StreamState.CANCELLED
            logger.info(
                f"Consumer closed stream after {self.delta_count} chunks, "
                f"aborting {self.client.provider} call"
            )
            raise
        except LLMError as e:
            self.state = StreamState.FAILED
            logger.error(f"Answer stream failed after {self.delta_count} chunks: {e}")
            raise StreamFailure(str(e)) from e
        except Exception:
            self.state = StreamState.FAILED
            logger.exception(f"Unexpected error in answer stream after {self.delta_count} chunks")
            raise
        finally:
            upstream.close()

        self.state = StreamState.COMPLETED
        logger.info(
            f"Answer stream completed: {self.delta_count} chunks, "
            f"{len(self.sources)} sources"
        )
        yield DONE_EVENT


def sse_frames(stream: AnswerStream) -> Iterator[str]:
    """Encode an AnswerStream as ``data: ...`` frames for the transport."""
    events = stream.events()
    try:
        for event in events:
            yield event.to_sse()
    finally:
        events.close()


def prepare_answer(
    request: ChatRequest,
    config: ProviderConfig,
    *,
    embedder: Optional[BaseEmbedder] = None,
    llm_resolver: Optional[Callable[[str, ProviderConfig], BaseLLMClient]] = None,
) -> AnswerStream:
    """
    Run everything that precedes generation for one chat request.

    Args:
        request: Parsed chat request
        config: Provider configuration
        embedder: Optional embedder override (defaults to the configured backend)
        llm_resolver: Optional override of the LLM client factory

    Returns:
        AnswerStream ready to be consumed

    Raises:
        EmbeddingUnavailable: If no embedding provider is configured
        NoProviderAvailable: If no provider can serve the requested model
        IndexBuildError: If the document set is invalid
    """
    resolver = llm_resolver or resolve_llm_client

    embedder = embedder or resolve_embedder(config)
    # Fail before spending any embedding calls if nobody can answer
    client = resolver(request.model, config)

    index = EphemeralIndex.build(
        request.documents,
        embedder,
        max_workers=config.embed_max_workers,
    )

    if len(index) > 0:
        keywords = expand_query(request.message, config, llm_resolver=resolver)
    else:
        # Nothing to search; the extra LLM call would be wasted
        keywords = []

    retrieval = retrieve_documents(
        index,
        request.message,
        keywords,
        max_workers=config.retrieval_max_workers,
    )

    prompt = build_prompt(request.message, retrieval.documents, request.history)

    logger.info(
        f"Answer prepared: model={client.model_name}, documents={len(request.documents)}, "
        f"indexed={len(index)}, keywords={len(keywords)}, sources={len(retrieval.documents)}"
    )

    return AnswerStream(
        client=client,
        prompt=prompt,
        retrieval=retrieval,
        keywords=keywords,
    )
