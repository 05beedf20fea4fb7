"""
Query Expander module for RAG.

Asks an LLM for a few search keywords related to the user's question.
Each keyword is run as an extra similarity query next to the question.

Key features:
- One auxiliary LLM call per request, fast default model
- Plain comma-separated output, no JSON to validate
- Silent fallback to question-only retrieval on any failure (no retry)
"""
import logging
from typing import Callable, List, Optional

from apps.rag.config import ProviderConfig
from apps.rag.llm_client import (
    BaseLLMClient,
    LLMError,
    LLMMessage,
    NoProviderAvailable,
    resolve_llm_client,
)

logger = logging.getLogger(__name__)

# Model asked for keywords; resolution falls back to another provider's default
EXPANSION_MODEL = "gemini-1.5-flash"
EXPANSION_TEMPERATURE = 0.2
EXPANSION_MAX_TOKENS = 100

KEYWORD_PROMPT_TEMPLATE = """Based on this user question, generate 3-5 relevant keywords for searching documents:
Question: {question}

Return only the keywords separated by commas, no other text."""


def parse_keywords(response_text: str) -> List[str]:
    """
    Split a comma-separated LLM answer into keywords.

    Tokens are trimmed; empty tokens are dropped.
    """
    if not response_text:
        return []
    return [k.strip() for k in response_text.split(",") if k.strip()]


def expand_query(
    question: str,
    config: ProviderConfig,
    llm_resolver: Optional[Callable[[str, ProviderConfig], BaseLLMClient]] = None,
) -> List[str]:
    """
    Derive search keywords for a question.

    Args:
        question: The user's (normalized) question
        config: Provider configuration
        llm_resolver: Optional override of the client factory (for tests)

    Returns:
        Keywords in the order the model produced them; [] on any failure
    """
    if not config.enable_query_expansion:
        logger.debug("Query expansion disabled at server level")
        return []

    if not question or not question.strip():
        return []

    resolver = llm_resolver or resolve_llm_client
    prompt = KEYWORD_PROMPT_TEMPLATE.format(question=question.strip())

    try:
        client = resolver(EXPANSION_MODEL, config)
        response = client.chat(
            [LLMMessage(role="user", content=prompt)],
            temperature=EXPANSION_TEMPERATURE,
            max_tokens=EXPANSION_MAX_TOKENS,
        )
        keywords = parse_keywords(response.content)
    except (LLMError, NoProviderAvailable) as e:
        logger.warning(f"Query expansion failed, using question only: {e}")
        return []
    except Exception as e:
        logger.warning(f"Query expansion: unexpected error, using question only: {e}")
        return []

    logger.info(f"Query expanded into {len(keywords)} keywords")
    return keywords
