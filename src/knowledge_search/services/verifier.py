"""Post-retrieval relevance check.

Scores each result by the share of query keywords it contains, grades the
set as a whole, and filters out results below the threshold.
"""

from knowledge_search.core.config import SearchConfig
from knowledge_search.core.constants import HIGH_CONFIDENCE_THRESHOLD, MEDIUM_CONFIDENCE_THRESHOLD
from knowledge_search.domain.models import Confidence, ScoredCandidate, VerificationReport
from knowledge_search.services.query_reformulator import extract_keywords

ADD_CONTEXT = "Try adding more context to your search query"
SPLIT_QUERY = "Try splitting your query into separate searches"
BROADEN_QUERY = "Try using different keywords or broadening your search"


def keyword_overlap(query: str, text: str) -> float:
    """Fraction of the query's keywords that appear in ``text``."""
    query_keywords = extract_keywords(query)
    if not query_keywords:
        return 0.0
    text_keywords = set(extract_keywords(text))
    matches = sum(1 for keyword in query_keywords if keyword in text_keywords)
    return matches / len(query_keywords)


def determine_confidence(assessed: list[ScoredCandidate]) -> Confidence:
    if not assessed:
        return Confidence.INSUFFICIENT
    average = sum(r.relevance_score or 0.0 for r in assessed) / len(assessed)
    if average >= HIGH_CONFIDENCE_THRESHOLD:
        return Confidence.HIGH
    if average >= MEDIUM_CONFIDENCE_THRESHOLD:
        return Confidence.MEDIUM
    return Confidence.LOW


def suggest_reformulation(query: str, results: list[ScoredCandidate]) -> str | None:
    if len(query) < 10:
        return ADD_CONTEXT
    if " and " in query or " or " in query:
        return SPLIT_QUERY
    if not results:
        return BROADEN_QUERY
    return None


class Verifier:
    def __init__(self, config: SearchConfig | None = None):
        self.config = config or SearchConfig()

    @property
    def enabled(self) -> bool:
        return self.config.verification_enabled

    def assess_relevance(self, query: str, results: list[ScoredCandidate]) -> list[ScoredCandidate]:
        return [
            r.model_copy(update={"relevance_score": keyword_overlap(query, f"{r.title or ''} {r.document_text()}")})
            for r in results
        ]

    def verify(
        self,
        query: str,
        results: list[ScoredCandidate],
        threshold: float | None = None,
        enabled: bool | None = None,
    ) -> VerificationReport:
        """Grade ``results`` against ``query``.

        Disabled verification passes everything through as ``skipped``.
        A suggestion is only offered for low or insufficient confidence.
        """
        if not (self.enabled if enabled is None else enabled):
            return VerificationReport(
                results=results,
                confidence=Confidence.SKIPPED,
                original_count=len(results),
                filtered_count=len(results),
            )
        if not results:
            return VerificationReport(
                results=[],
                confidence=Confidence.INSUFFICIENT,
                suggestion=suggest_reformulation(query, []),
            )

        threshold = self.config.verification_threshold if threshold is None else threshold
        assessed = self.assess_relevance(query, results)
        confidence = determine_confidence(assessed)
        # Results without a relevance score are kept
        filtered = [
            r for r in assessed if (r.relevance_score if r.relevance_score is not None else 1.0) >= threshold
        ]

        suggestion = None
        if confidence in (Confidence.LOW, Confidence.INSUFFICIENT):
            suggestion = suggest_reformulation(query, filtered)

        return VerificationReport(
            results=filtered,
            confidence=confidence,
            suggestion=suggestion,
            original_count=len(results),
            filtered_count=len(filtered),
        )
