from knowledge_search.core.logging import clear_log_context, get_log_context, set_log_context, update_log_context
from knowledge_search.core.logging.setup import add_search_context


def test_log_context_helpers():
    set_log_context({"user_id": "alice"})
    update_log_context("search_type", "hybrid")

    assert get_log_context() == {"user_id": "alice", "search_type": "hybrid"}

    clear_log_context()
    assert get_log_context() == {}


def test_add_search_context_flattens_extra():
    event = add_search_context(
        None,
        "info",
        {"event": "Search completed", "extra": {"duration_ms": 12.5, "event": "ignored"}, "error": ValueError()},
    )

    assert event["duration_ms"] == 12.5
    assert event["event"] == "Search completed"
    assert event["error_type"] == "ValueError"
    assert "extra" not in event
