"""Tuning constants shared across the pipeline."""

# Chunking
CHARS_PER_TOKEN = 4
MIN_CHUNK_CHARS = 20
DEFAULT_MAX_CHUNK_TOKENS = 500
DEFAULT_OVERLAP_TOKENS = 50

# Memory deduplication
DUPLICATE_SIMILARITY_THRESHOLD = 0.9
WINKLER_PREFIX_LIMIT = 4
WINKLER_SCALING = 0.1

# Verification
HIGH_CONFIDENCE_THRESHOLD = 0.7
MEDIUM_CONFIDENCE_THRESHOLD = 0.4

# Reranking
LARGE_RERANK_RESULT_COUNT = 50

# Retrieval fan-out
HYBRID_CANDIDATE_MULTIPLIER = 3
TWO_LAYER_CANDIDATE_MULTIPLIER = 2

# Provider request sizing
EMBEDDING_BATCH_SIZE = 100
