"""Cross-encoder reranking of an already retrieved candidate set.

Reranking is best effort: a missing credential, a disabled flag, or a
provider failure all hand the input back unchanged.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from knowledge_search.core.config import SearchConfig
from knowledge_search.core.constants import LARGE_RERANK_RESULT_COUNT
from knowledge_search.core.logging import get_logger
from knowledge_search.domain.models import ScoredCandidate

if TYPE_CHECKING:
    from knowledge_search.services import RerankService

logger = get_logger(__name__)


def document_for(result: ScoredCandidate) -> str:
    """Text sent to the reranker: title, blank line, best available body."""
    title = result.title or ""
    body = result.document_text()
    if body:
        return f"{title}\n\n{body}"
    return title


def calculate_improvement(reranked: list[ScoredCandidate]) -> float:
    """Mean shift from original to rerank score, over results that have both."""
    deltas = [
        r.rerank_score - r.original_score
        for r in reranked
        if r.rerank_score is not None and r.original_score is not None
    ]
    if not deltas:
        return 0.0
    return sum(deltas) / len(deltas)


class Reranker:
    def __init__(
        self,
        service: RerankService | None,
        config: SearchConfig | None = None,
        model: str | None = None,
        large_model: str | None = None,
    ):
        self.service = service
        self.config = config or SearchConfig()
        self.model = model
        self.large_model = large_model or model

    @property
    def enabled(self) -> bool:
        return self.config.rerank_enabled and self.service is not None and self.service.is_configured

    def select_model(self, result_count: int) -> str | None:
        """Larger candidate sets go to the stronger model."""
        if result_count > LARGE_RERANK_RESULT_COUNT:
            return self.large_model
        return self.model

    async def rerank(
        self,
        query: str,
        results: list[ScoredCandidate],
        top_k: int | None = None,
        threshold: float | None = None,
    ) -> list[ScoredCandidate]:
        """Reorder ``results`` by provider relevance.

        Args:
            query: Query text
            results: Candidates in their current order
            top_k: Maximum results to keep (config default)
            threshold: Minimum rerank score to keep (config default)

        Returns:
            Reranked, filtered and truncated results, or ``results`` unchanged
            when reranking is unavailable or fails
        """
        service = self.service
        if service is None or not self.enabled or len(results) <= 1:
            return results

        top_k = top_k if top_k is not None else self.config.rerank_top_k
        threshold = threshold if threshold is not None else self.config.rerank_threshold
        documents = [document_for(r) for r in results]
        try:
            hits = await asyncio.wait_for(
                service.rerank(
                    query,
                    documents,
                    top_n=len(documents),
                    model=self.select_model(len(documents)),
                ),
                timeout=self.config.rerank_timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "Rerank timed out, keeping original order",
                extra={"timeout_seconds": self.config.rerank_timeout_seconds, "results": len(results)},
            )
            return results
        except Exception as e:
            logger.warning(
                f"Rerank failed, keeping original order: {e!s}",
                extra={"error_type": type(e).__name__, "results": len(results)},
            )
            return results

        scores = {hit.index: hit.relevance_score for hit in hits if 0 <= hit.index < len(results)}
        reranked = [
            r.model_copy(
                update={
                    "original_score": r.score,
                    "rerank_score": scores.get(i, 0.0),
                    "score": scores.get(i, 0.0),
                }
            )
            for i, r in enumerate(results)
        ]
        reranked.sort(key=lambda r: (-(r.rerank_score or 0.0), r.source_id))
        kept = [r for r in reranked if (r.rerank_score or 0.0) >= threshold][:top_k]

        logger.debug(
            "Reranked results",
            extra={
                "input": len(results),
                "kept": len(kept),
                "improvement": calculate_improvement(kept),
            },
        )
        return kept
