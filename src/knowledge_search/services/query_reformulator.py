"""Query expansion for better recall.

Rule-based only: abbreviation expansion, clause splitting for compound
questions, and a small synonym table. The original query always comes first
so callers can treat variant zero as authoritative.
"""

import re
from collections.abc import Iterable

from pydantic import BaseModel

from knowledge_search.core.config import SearchConfig
from knowledge_search.domain.models import QueryVariant, ScoredCandidate

ABBREVIATIONS: dict[str, str] = {
    "ml": "machine learning",
    "ai": "artificial intelligence",
    "nlp": "natural language processing",
    "llm": "large language model",
    "api": "application programming interface",
    "ui": "user interface",
    "ux": "user experience",
    "db": "database",
    "sql": "structured query language",
    "js": "javascript",
    "ts": "typescript",
    "py": "python",
    "rb": "ruby",
    "ex": "elixir",
    "oop": "object oriented programming",
    "fp": "functional programming",
    "tdd": "test driven development",
    "ci": "continuous integration",
    "cd": "continuous deployment",
    "k8s": "kubernetes",
    "aws": "amazon web services",
    "gcp": "google cloud platform",
}

SYNONYMS: dict[str, list[str]] = {
    "find": ["search", "locate", "discover"],
    "search": ["find", "look for"],
    "documents": ["files", "entries", "records"],
    "create": ["make", "build", "generate"],
    "update": ["modify", "change", "edit"],
    "delete": ["remove", "erase"],
}

STOP_WORDS = frozenset(
    """a an the is are was were be been being have has had do does did
    will would could should may might must shall can this that these
    those it its what which who whom whose when where why how and or
    but if then else for of to from by with at in on as""".split()
)

MIN_QUERY_LENGTH = 5
MIN_COMPLEX_LENGTH = 10
MIN_SUB_QUERY_LENGTH = 4
MAX_SYNONYM_VARIANTS = 2

_CLAUSE_SPLIT = re.compile(r"\s+and\s+|\s+or\s+|\s+also\s+|,\s+|\?\s+", re.IGNORECASE)
_NON_WORD = re.compile(r"[^\w]+")


class ReformulationOptions(BaseModel):
    enabled: bool = True
    expand_abbreviations: bool = True
    generate_sub_queries: bool = True
    add_synonyms: bool = True
    max_sub_queries: int = 3

    @classmethod
    def from_config(cls, config: SearchConfig) -> "ReformulationOptions":
        return cls(enabled=config.reformulation_enabled, max_sub_queries=config.max_sub_queries)


def _unique(items: Iterable[str]) -> list[str]:
    return list(dict.fromkeys(items))


def extract_keywords(text: str | None) -> list[str]:
    """Distinct lowercase words longer than two characters, minus stop words."""
    if not text:
        return []
    words = _NON_WORD.split(text.lower())
    return _unique(word for word in words if len(word) > 2 and word not in STOP_WORDS)


def is_complex(query: str) -> bool:
    if len(query) < MIN_COMPLEX_LENGTH:
        return False
    if any(marker in query for marker in (" and ", " or ", " also ")):
        return True
    if "?" in query and len(query) > 30:
        return True
    return len(query.split()) > 8


def expand_abbreviations(query: str) -> str:
    return " ".join(ABBREVIATIONS.get(word.lower(), word) for word in query.split())


def sub_queries(query: str, max_sub_queries: int = 3) -> list[str]:
    """The query followed by its clauses, for compound queries only."""
    if not is_complex(query):
        return [query]
    parts = [part.strip() for part in _CLAUSE_SPLIT.split(query)]
    parts = [part for part in parts if len(part) >= MIN_SUB_QUERY_LENGTH][:max_sub_queries]
    return _unique([query, *parts])


def synonym_variants(query: str) -> list[str]:
    variants: list[str] = []
    for keyword in extract_keywords(query):
        for synonym in SYNONYMS.get(keyword, ()):
            variants.append(query.replace(keyword, synonym))
    return _unique([query, *variants[:MAX_SYNONYM_VARIANTS]])


class QueryReformulator:
    """Turns one query into an ordered, deduplicated list of variants."""

    def __init__(self, options: ReformulationOptions | None = None):
        self.options = options or ReformulationOptions()

    def reformulate(self, query: str, options: ReformulationOptions | None = None) -> list[QueryVariant]:
        opts = options or self.options
        if not opts.enabled or len(query) < MIN_QUERY_LENGTH:
            return [QueryVariant(text=query)]

        variants = [query]
        if opts.expand_abbreviations:
            expanded = expand_abbreviations(query)
            if expanded != query:
                variants.append(expanded)
        if opts.generate_sub_queries and is_complex(query):
            variants.extend(sub_queries(query, opts.max_sub_queries))
        if opts.add_synonyms:
            variants.extend(synonym_variants(query))

        texts = _unique(variants)[: opts.max_sub_queries + 1]
        return [QueryVariant(text=text) for text in texts]

    @staticmethod
    def merge_results(result_sets: Iterable[Iterable[ScoredCandidate]]) -> list[ScoredCandidate]:
        """Flatten per-variant results, keeping each entry's best-scoring hit."""
        best: dict[str, ScoredCandidate] = {}
        for results in result_sets:
            for result in results:
                current = best.get(result.source_id)
                if current is None or result.score > current.score:
                    best[result.source_id] = result
        return sorted(best.values(), key=lambda r: (-r.score, r.source_id))
