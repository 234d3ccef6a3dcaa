"""Split long text into overlapping, token-bounded chunks for embedding.

Token counts are estimated at four characters per token. Each chunk ends on
the most natural boundary found in the back half of its window: a sentence
end, then a paragraph break, then a line break, then whitespace.
"""

from knowledge_search.core.constants import (
    CHARS_PER_TOKEN,
    DEFAULT_MAX_CHUNK_TOKENS,
    DEFAULT_OVERLAP_TOKENS,
    MIN_CHUNK_CHARS,
)
from knowledge_search.domain.models import Chunk

_SENTENCE_ENDINGS = (". ", "! ", "? ")


def estimate_tokens(text: str) -> int:
    """Rough token estimate; never below one."""
    return max(1, len(text) // CHARS_PER_TOKEN)


def find_break_point(window: str) -> int:
    """Index just past the best break in ``window``, searching only its second half."""
    length = len(window)
    min_pos = length // 2
    search = window[min_pos:]

    sentence = max(search.rfind(ending) for ending in _SENTENCE_ENDINGS)
    if sentence >= 0:
        # Keep the punctuation, drop the following space
        return min_pos + sentence + 1

    paragraph = search.find("\n\n")
    if paragraph >= 0:
        return min_pos + paragraph

    line = search.find("\n")
    if line >= 0:
        return min_pos + line + 1

    space = max(search.rfind(" "), search.rfind("\t"))
    if space >= 0:
        return min_pos + space

    return length


def _append_chunk(chunks: list[Chunk], raw: str, base_offset: int) -> None:
    stripped = raw.strip()
    if not stripped:
        return
    start = base_offset + (len(raw) - len(raw.lstrip()))
    chunks.append(
        Chunk(
            text=stripped,
            start_offset=start,
            end_offset=start + len(stripped),
            estimated_token_count=estimate_tokens(stripped),
        )
    )


def chunk(
    text: str | None,
    max_tokens: int = DEFAULT_MAX_CHUNK_TOKENS,
    overlap_tokens: int = DEFAULT_OVERLAP_TOKENS,
) -> list[Chunk]:
    """Chunk ``text`` into overlapping pieces.

    Offsets index into ``text`` exactly as given, leading whitespace included,
    so ``text[c.start_offset:c.end_offset] == c.text`` for every chunk.

    Args:
        text: Source text; None or whitespace-only yields no chunks
        max_tokens: Upper bound on estimated tokens per chunk
        overlap_tokens: Estimated tokens shared by consecutive chunks

    Returns:
        Chunks in source order
    """
    if not text or not text.strip():
        return []

    max_chars = max(max_tokens * CHARS_PER_TOKEN, MIN_CHUNK_CHARS)
    overlap_chars = min(overlap_tokens * CHARS_PER_TOKEN, max_chars // 2)

    leading = len(text) - len(text.lstrip())
    remaining = text.strip()
    offset = leading
    chunks: list[Chunk] = []

    while True:
        length = len(remaining)
        if length <= max_chars:
            _append_chunk(chunks, remaining, offset)
            return chunks

        break_point = find_break_point(remaining[:max_chars])
        break_point = max(break_point, overlap_chars + MIN_CHUNK_CHARS)
        break_point = min(break_point, max_chars, length)
        _append_chunk(chunks, remaining[:break_point], offset)

        next_start = max(0, break_point - overlap_chars, break_point // 2)
        if next_start == 0:
            # No forward progress; consume half of what is left
            next_start = length // 2

        remaining = remaining[next_start:]
        offset += next_start
