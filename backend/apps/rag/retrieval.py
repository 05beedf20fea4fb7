"""
Retrieval service for RAG queries.

Runs the question and every expanded keyword as separate similarity
queries against the request's index, then merges the hits.
"""
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import List, Sequence

from apps.rag.embeddings import EmbeddingProviderError
from apps.rag.index import EphemeralIndex, IndexedDocument, RetrievedMatch

logger = logging.getLogger(__name__)

# Hits per individual query
SEARCH_TOP_K = 3

# Maximum unique documents forwarded to the prompt
MAX_CONTEXT_DOCUMENTS = 8


@dataclass
class RetrievalResult:
    """Deduplicated documents for one question, in priority order."""
    query: str
    documents: List[IndexedDocument] = field(default_factory=list)

    @property
    def sources(self) -> List[str]:
        """Document titles used as citation labels."""
        return [doc.title for doc in self.documents]

    def to_dict(self) -> dict:
        """Convert to JSON-serializable dict (document text left out)."""
        return {
            "query": self.query,
            "documents": [
                {"id": doc.id, "title": doc.title, "url": doc.url}
                for doc in self.documents
            ],
        }


def merge_matches(
    match_lists: Sequence[Sequence[RetrievedMatch]],
    limit: int = MAX_CONTEXT_DOCUMENTS,
) -> List[IndexedDocument]:
    """
    Concatenate per-query hits and keep the first occurrence of each document.

    ``match_lists`` must be in query issue order: a document found by an
    earlier query keeps that query's position.
    """
    seen = set()
    merged: List[IndexedDocument] = []

    for matches in match_lists:
        for match in matches:
            doc_id = match.document.id
            if doc_id in seen:
                continue
            seen.add(doc_id)
            merged.append(match.document)

    return merged[:limit]


def retrieve_documents(
    index: EphemeralIndex,
    question: str,
    keywords: Sequence[str] = (),
    top_k: int = SEARCH_TOP_K,
    limit: int = MAX_CONTEXT_DOCUMENTS,
    max_workers: int = 4,
) -> RetrievalResult:
    """
    Multi-query retrieval with deduplication.

    Args:
        index: The request's similarity index
        question: The user's question (always queried first)
        keywords: Expanded keywords, queried after the question
        top_k: Hits per query
        limit: Cap on unique documents returned
        max_workers: Thread pool size for the independent queries

    Returns:
        RetrievalResult with at most ``limit`` unique documents
    """
    queries = [question, *keywords]

    if len(index) == 0:
        logger.info("Index is empty, skipping retrieval")
        return RetrievalResult(query=question)

    def run_query(text: str) -> List[RetrievedMatch]:
        try:
            return index.query(text, top_k)
        except EmbeddingProviderError as e:
            logger.warning(f"Similarity query failed for one search term: {e}")
            return []

    workers = max(1, min(max_workers, len(queries)))
    with ThreadPoolExecutor(max_workers=workers) as pool:
        # map() returns results in submission order regardless of completion order
        match_lists = list(pool.map(run_query, queries))

    documents = merge_matches(match_lists, limit=limit)

    total_hits = sum(len(m) for m in match_lists)
    logger.info(
        f"Retrieved {len(documents)} unique documents from {total_hits} hits "
        f"across {len(queries)} queries"
    )

    return RetrievalResult(query=question, documents=documents)
