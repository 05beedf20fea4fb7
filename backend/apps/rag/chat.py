"""
Prompt construction for RAG answers.

Renders retrieved documents and the prior conversation into the single
prompt sent to the answering model.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Sequence

from apps.rag.index import IndexedDocument

logger = logging.getLogger(__name__)

# Answer generation parameters
DEFAULT_TEMPERATURE = 0.7
DEFAULT_MAX_TOKENS = 2048

VALID_ROLES = ("user", "assistant")

SYSTEM_PROMPT = """You are a helpful AI assistant that answers questions based on Google Docs content.
Use the provided context to answer the user's question. If you reference specific information,
include the document title in your response using this format: [Source: Document Title].

Context:
{context}

Previous conversation:
{history}

Current question: {question}

Please provide a helpful and accurate response based on the context provided."""


@dataclass
class ConversationTurn:
    """One earlier message of the conversation, oldest first."""
    role: str
    content: str
    sources: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ConversationTurn":
        """
        Build from the client payload.

        Raises:
            ValueError: If the entry, its role or its content is malformed
        """
        if not isinstance(data, dict):
            raise ValueError("History entries must be objects")

        role = data.get("role")
        if role not in VALID_ROLES:
            raise ValueError(f"Invalid history role: {role!r}")

        content = data.get("content", "")
        if not isinstance(content, str):
            raise ValueError("History content must be a string")

        sources = data.get("sources") or []
        if not isinstance(sources, list):
            raise ValueError("History sources must be a list")

        return cls(role=role, content=content, sources=[str(s) for s in sources])


def build_context_block(documents: Sequence[IndexedDocument]) -> str:
    """
    Render documents as labeled blocks separated by blank lines.

    Format:
    Document: Refund Policy
    Content: Refunds are accepted within 30 days...
    """
    return "\n\n".join(
        f"Document: {doc.title}\nContent: {doc.content}" for doc in documents
    )


def build_history_block(history: Sequence[ConversationTurn]) -> str:
    """Render history as ``role: content`` lines in chronological order."""
    return "\n".join(f"{turn.role}: {turn.content}" for turn in history)


def build_prompt(
    question: str,
    documents: Sequence[IndexedDocument],
    history: Sequence[ConversationTurn] = (),
) -> str:
    """
    Build the complete prompt with context, history and question.
    """
    prompt = SYSTEM_PROMPT.format(
        context=build_context_block(documents),
        history=build_history_block(history),
        question=question,
    )
    logger.debug(
        f"Prompt built: {len(prompt)} chars, {len(documents)} documents, "
        f"{len(history)} history turns"
    )
    return prompt
