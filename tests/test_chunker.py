import pytest

from knowledge_search.core.constants import CHARS_PER_TOKEN
from knowledge_search.services.chunker import chunk, estimate_tokens, find_break_point

PARAGRAPH = (
    "The reading list keeps growing. Most of it is about distributed systems! "
    "Some of it is about gardening? A little is about neither.\n\n"
)


def covered(text: str, chunks) -> bool:
    for i, char in enumerate(text):
        if char.isspace():
            continue
        if not any(c.start_offset <= i < c.end_offset for c in chunks):
            return False
    return True


@pytest.mark.parametrize("text", [None, "", "   \n\t  "])
def test_empty_input_yields_no_chunks(text):
    assert chunk(text) == []


def test_short_text_is_one_chunk():
    text = "  A short note about tomatoes.  "
    chunks = chunk(text)

    assert len(chunks) == 1
    only = chunks[0]
    assert only.text == "A short note about tomatoes."
    assert text[only.start_offset : only.end_offset] == only.text
    assert only.estimated_token_count == estimate_tokens(only.text)


def test_long_text_chunks_cover_source_without_gaps():
    text = PARAGRAPH * 40
    max_tokens = 60
    chunks = chunk(text, max_tokens=max_tokens, overlap_tokens=10)

    assert len(chunks) > 1
    assert covered(text, chunks)
    for c in chunks:
        assert len(c.text) <= max_tokens * CHARS_PER_TOKEN
        assert text[c.start_offset : c.end_offset] == c.text
        assert c.end_offset > c.start_offset


def test_consecutive_chunks_overlap_or_touch():
    text = PARAGRAPH * 20
    chunks = chunk(text, max_tokens=50, overlap_tokens=10)

    for previous, current in zip(chunks, chunks[1:], strict=False):
        assert current.start_offset <= previous.end_offset
        assert current.start_offset > previous.start_offset


def test_text_without_whitespace_terminates():
    text = "x" * 5_000
    chunks = chunk(text, max_tokens=100, overlap_tokens=50)

    assert chunks
    assert all(len(c.text) <= 400 for c in chunks)
    assert chunks[-1].end_offset == len(text)
    assert covered(text, chunks)


def test_break_point_prefers_sentence_end():
    window = "Opening words go here and then. Closing"
    point = find_break_point(window)
    assert window[:point] == "Opening words go here and then."


def test_break_point_falls_back_to_window_length():
    window = "abcdefghij" * 4
    assert find_break_point(window) == len(window)


def test_estimate_tokens_never_below_one():
    assert estimate_tokens("") == 1
    assert estimate_tokens("abcdefgh") == 2


def test_tiny_window_never_exceeds_max_chars():
    text = "x" * 200
    chunks = chunk(text, max_tokens=5, overlap_tokens=5)

    assert len(chunks) > 1
    assert all(len(c.text) <= 5 * CHARS_PER_TOKEN for c in chunks)
    assert chunks[-1].end_offset == len(text)
    assert covered(text, chunks)
