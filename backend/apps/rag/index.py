"""
Ephemeral in-memory similarity index.

Built once per chat request from the documents the client sends, queried
a handful of times, then dropped. Nothing is persisted or shared between
requests.
"""
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from apps.rag.embeddings import BaseEmbedder, EmbeddingProviderError
from apps.rag.retry import EMBEDDING_RETRY_CONFIG, RetryExhausted, retry_with_backoff

logger = logging.getLogger(__name__)


class IndexBuildError(Exception):
    """Raised when the document set cannot be indexed at all."""
    pass


@dataclass(frozen=True)
class IndexedDocument:
    """A document extracted upstream and supplied with the request."""
    id: str
    title: str
    content: str
    url: str = ""
    last_modified: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "IndexedDocument":
        """Build from the client payload (camelCase keys)."""
        return cls(
            id=str(data["id"]),
            title=str(data.get("title") or "Untitled Document"),
            content=str(data.get("content") or ""),
            url=str(data.get("url") or ""),
            last_modified=str(
                data.get("lastModified") or datetime.now(timezone.utc).isoformat()
            ),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to JSON-serializable dict."""
        return {
            "id": self.id,
            "title": self.title,
            "content": self.content,
            "url": self.url,
            "lastModified": self.last_modified,
        }


@dataclass
class RetrievedMatch:
    """One hit from a similarity query (higher score = more similar)."""
    document: IndexedDocument
    score: float


@dataclass
class EphemeralIndex:
    """
    Cosine-similarity index over whole documents.

    Stored vectors are L2-normalized at build time so a query is a single
    matrix-vector product.
    """
    embedder: BaseEmbedder
    documents: List[IndexedDocument] = field(default_factory=list)
    vectors: Optional[np.ndarray] = None
    failed_ids: List[str] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.documents)

    @classmethod
    def build(
        cls,
        documents: Sequence[IndexedDocument],
        embedder: BaseEmbedder,
        max_workers: int = 8,
        retry_config: Optional[dict] = None,
    ) -> "EphemeralIndex":
        """
        Embed every document and build the index.

        Documents are embedded concurrently. A document that fails to embed
        is dropped and logged; the rest are still indexed.

        Raises:
            IndexBuildError: If document ids are not unique or the provider
                returns vectors of inconsistent dimensions
        """
        ids = [doc.id for doc in documents]
        if len(set(ids)) != len(ids):
            raise IndexBuildError("Document ids must be unique")

        if not documents:
            logger.info("Building empty index (no documents supplied)")
            return cls(embedder=embedder)

        config = retry_config or EMBEDDING_RETRY_CONFIG

        def embed_document(doc: IndexedDocument) -> Optional[List[float]]:
            if not doc.content.strip():
                logger.warning(f"Skipping document {doc.id}: empty content")
                return None
            try:
                return retry_with_backoff(
                    lambda: embedder.embed(doc.content),
                    config=config,
                    exceptions=(EmbeddingProviderError,),
                )
            except (EmbeddingProviderError, RetryExhausted) as e:
                # Drop the document, keep going with the others
                logger.warning(f"Dropping document {doc.id} from index: {e}")
                return None

        workers = max(1, min(max_workers, len(documents)))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            # map() preserves input order, which the tie-break relies on
            results = list(pool.map(embed_document, documents))

        kept: List[IndexedDocument] = []
        rows: List[np.ndarray] = []
        failed: List[str] = []
        for doc, vector in zip(documents, results):
            if vector is None:
                failed.append(doc.id)
                continue
            kept.append(doc)
            rows.append(np.asarray(vector, dtype=np.float32))

        if rows and len({row.shape for row in rows}) != 1:
            raise IndexBuildError("Embedding provider returned inconsistent dimensions")

        matrix = np.vstack(rows) if rows else None
        if matrix is not None:
            matrix = _normalize_rows(matrix)

        logger.info(
            f"Index built: {len(kept)} documents embedded, {len(failed)} dropped "
            f"(model={embedder.model_name})"
        )
        return cls(embedder=embedder, documents=kept, vectors=matrix, failed_ids=failed)

    def query(self, text: str, k: int) -> List[RetrievedMatch]:
        """
        Return the k most similar documents, most similar first.

        Ties keep original document order.

        Raises:
            EmbeddingProviderError: If the query cannot be embedded
        """
        if not self.documents or k <= 0:
            return []

        query_vector = np.asarray(self.embedder.embed(text), dtype=np.float32)
        if query_vector.shape[0] != self.vectors.shape[1]:
            raise EmbeddingProviderError(
                f"Query embedding has {query_vector.shape[0]} dimensions, "
                f"index has {self.vectors.shape[1]}"
            )

        norm = np.linalg.norm(query_vector)
        if norm > 0:
            query_vector = query_vector / norm

        scores = self.vectors @ query_vector
        order = np.argsort(-scores, kind="stable")[:k]

        return [
            RetrievedMatch(document=self.documents[i], score=float(scores[i]))
            for i in order
        ]


def _normalize_rows(matrix: np.ndarray) -> np.ndarray:
    """L2-normalize rows; zero rows stay zero."""
    norms = np.linalg.norm(matrix, axis=1, keepdims=True)
    norms[norms == 0] = 1.0
    return matrix / norms
