"""Write side of the search indexes.

Chunks and embeds entry text into the chunk index, and turns entry text into
atomic memories for the memory index.
"""

from __future__ import annotations

from datetime import UTC, date, datetime
from typing import TYPE_CHECKING

from pydantic import ValidationError

from knowledge_search.core.base import AIServiceErrorDetails, ErrorLevel
from knowledge_search.core.config import SearchConfig
from knowledge_search.core.constants import EMBEDDING_BATCH_SIZE
from knowledge_search.core.decorators import with_error_handling
from knowledge_search.core.errors import ProcessingError
from knowledge_search.core.logging import get_logger
from knowledge_search.domain.models import Memory
from knowledge_search.services import chunker
from knowledge_search.services.rate_limiter import RateLimiter
from knowledge_search.services.similarity import deduplicate_memories

if TYPE_CHECKING:
    from knowledge_search.services import EmbeddingService, KnowledgeStore, MemoryExtractor

logger = get_logger(__name__)

EMBED_OPERATION = "embed"


class IndexingService:
    def __init__(
        self,
        store: KnowledgeStore,
        embeddings: EmbeddingService,
        extractor: MemoryExtractor | None = None,
        rate_limiter: RateLimiter | None = None,
        config: SearchConfig | None = None,
        batch_size: int = EMBEDDING_BATCH_SIZE,
    ):
        self.store = store
        self.embeddings = embeddings
        self.extractor = extractor
        self.config = config or SearchConfig()
        self.rate_limiter = rate_limiter if rate_limiter is not None else RateLimiter(
            self.config.rate_limits, enabled=self.config.rate_limit_enabled
        )
        self.batch_size = batch_size

    async def embed_texts(self, texts: list[str]) -> list[list[float]]:
        """Embed ``texts`` in provider-sized batches, preserving order."""
        vectors: list[list[float]] = []
        for start in range(0, len(texts), self.batch_size):
            batch = texts[start : start + self.batch_size]
            batch_vectors = await self.embeddings.embed_batch(batch)
            if len(batch_vectors) != len(batch):
                raise ProcessingError(
                    message=f"Expected {len(batch)} embeddings, got {len(batch_vectors)}",
                    details=AIServiceErrorDetails(
                        source="indexing",
                        operation="embed_texts",
                        service_name="embeddings",
                        model_name=self.embeddings.model_name,
                        batch_size=len(batch),
                    ),
                )
            vectors.extend(batch_vectors)
        return vectors

    @with_error_handling(error_level=ErrorLevel.ERROR, reraise=True)
    async def index_entry(self, entry_id: str, user_id: str, text: str | None) -> int:
        """Replace the entry's chunk vectors for the active model.

        Returns:
            Number of chunk vectors stored; 0 when the text has no content
        """
        self.rate_limiter.enforce(user_id, EMBED_OPERATION)

        chunks = chunker.chunk(text, self.config.max_chunk_tokens, self.config.overlap_tokens)
        if not chunks:
            logger.debug(f"Entry {entry_id} has no embeddable content")
            return 0

        vectors = await self.embed_texts([c.text for c in chunks])
        stored = await self.store.replace_chunk_embeddings(
            user_id,
            entry_id,
            chunks,
            vectors,
            self.embeddings.model_name,
            embedded_at=datetime.now(UTC),
        )
        logger.info(
            f"Embedded entry {entry_id}",
            extra={"chunks": len(chunks), "stored": stored, "model": self.embeddings.model_name},
        )
        return stored

    async def extract_memories(
        self,
        text: str | None,
        reference_date: date | None = None,
        entry_id: str | None = None,
        user_id: str | None = None,
    ) -> list[Memory]:
        """Extract deduplicated atomic memories from ``text``.

        The text is split into small chunks and each is sent to the extractor
        on its own. A chunk whose extraction fails is logged and skipped, as
        is any candidate that does not form a valid memory.
        """
        if self.extractor is None:
            raise ProcessingError(
                message="No memory extractor configured",
                details={"source": "indexing", "operation": "extract_memories"},
            )

        reference_date = reference_date or datetime.now(UTC).date()
        chunks = chunker.chunk(text, self.config.memory_chunk_tokens, self.config.memory_overlap_tokens)

        memories: list[Memory] = []
        for index, piece in enumerate(chunks):
            try:
                candidates = await self.extractor.extract(piece.text, reference_date)
            except Exception as e:
                logger.warning(
                    f"Memory extraction failed for chunk {index}: {e!s}",
                    extra={"entry_id": entry_id, "chunk_index": index, "error_type": type(e).__name__},
                )
                continue

            for raw in candidates:
                try:
                    memories.append(
                        Memory.from_extraction(
                            raw,
                            chunk_index=index,
                            chunk_text=piece.text,
                            entry_id=entry_id,
                            user_id=user_id,
                        )
                    )
                except ValidationError as e:
                    logger.debug(
                        "Skipping malformed memory candidate",
                        extra={"chunk_index": index, "errors": e.error_count()},
                    )

        unique = deduplicate_memories(memories)
        logger.debug(
            "Extracted memories",
            extra={"entry_id": entry_id, "chunks": len(chunks), "extracted": len(memories), "kept": len(unique)},
        )
        return unique

    @with_error_handling(error_level=ErrorLevel.ERROR, reraise=True)
    async def reprocess_memories(
        self,
        entry_id: str,
        user_id: str,
        text: str | None,
        reference_date: date | None = None,
    ) -> list[Memory]:
        """Re-extract the entry's memories and replace the stored set."""
        memories = await self.extract_memories(text, reference_date, entry_id=entry_id, user_id=user_id)
        vectors = await self.embed_texts([m.content for m in memories]) if memories else []
        stored = await self.store.replace_memories(user_id, entry_id, memories, vectors)
        logger.info(f"Reprocessed memories for entry {entry_id}", extra={"stored": stored})
        return memories
