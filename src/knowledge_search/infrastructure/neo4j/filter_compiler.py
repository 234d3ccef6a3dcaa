"""Safe filter compilation for Cypher queries.

Filters become parameterised predicates; values never reach the query text.
"""

from __future__ import annotations

from typing import Any

from knowledge_search.domain.models import MemoryFilters, SearchFilters

_OPS = {
    "lt": "<",
    "lte": "<=",
    "gt": ">",
    "gte": ">=",
    "ne": "<>",
    "in": "IN",
    "contains": "CONTAINS",
    "startswith": "STARTS WITH",
}


def compile_filters(
    filters: dict[str, Any] | None,
    alias: str = "e",
    prefix: str = "AND",
    param_base: str = "f",
) -> tuple[str, dict[str, Any]]:
    """Compile a filter dictionary into a predicate and its parameters.

    Args:
        filters: Dictionary of filters supporting:
            - Simple equality: {"field": "value"}
            - Operators: {"field__gte": 5, "field__in": [...]}
            - Null checks: {"field": None}
            - Tag membership: {"tags__any": ["a", "b"]}
        alias: Node alias the fields belong to
        prefix: Keyword placed before the predicate ("WHERE" or "AND")
        param_base: Parameter name prefix, distinct per call site

    Returns:
        Tuple of (clause string, parameters dict); an empty filter gives ("", {})

    Examples:
        >>> compile_filters({"entry_type__in": ["note"]}, prefix="WHERE")
        ("WHERE e.entry_type IN $f_0", {"f_0": ["note"]})
    """
    if not filters:
        return "", {}

    clauses: list[str] = []
    params: dict[str, Any] = {}

    for key, value in filters.items():
        name = f"{param_base}_{len(params)}"
        if "__" in key:
            field, op = key.split("__", 1)
            if op == "any" and field == "tags":
                clauses.append(f"EXISTS {{ MATCH ({alias})-[:HAS_TAG]->(t:Tag) WHERE t.name IN ${name} }}")
            elif op in _OPS:
                clauses.append(f"{alias}.{field} {_OPS[op]} ${name}")
            else:
                raise ValueError(f"Unsupported filter operator: {op}")
            params[name] = value
        elif value is None:
            clauses.append(f"{alias}.{key} IS NULL")
        else:
            clauses.append(f"{alias}.{key} = ${name}")
            params[name] = value

    if not clauses:
        return "", {}
    return f"{prefix} " + " AND ".join(clauses), params


def search_filter_spec(filters: SearchFilters | None) -> dict[str, Any]:
    """Translate entry-level search filters into a filter dictionary."""
    if filters is None or filters.is_empty():
        return {}
    spec: dict[str, Any] = {}
    if filters.entry_types:
        spec["entry_type__in"] = list(filters.entry_types)
    if filters.tags:
        spec["tags__any"] = list(filters.tags)
    if filters.date_from:
        spec["inserted_at__gte"] = filters.date_from
    if filters.date_to:
        spec["inserted_at__lte"] = filters.date_to
    return spec


def memory_filter_spec(filters: MemoryFilters | None) -> dict[str, Any]:
    """Translate memory filters into a filter dictionary for the memory alias."""
    if filters is None:
        return {}
    spec: dict[str, Any] = {}
    if filters.current_only:
        spec["valid_until"] = None
    if filters.memory_types:
        spec["memory_type__in"] = [t.value for t in filters.memory_types]
    if filters.min_confidence is not None:
        spec["confidence__gte"] = filters.min_confidence
    if filters.entry_ids:
        spec["entry_id__in"] = list(filters.entry_ids)
    return spec


def merge_params(*param_dicts: dict[str, Any]) -> dict[str, Any]:
    """Merge parameter dictionaries.

    Raises:
        ValueError: If parameter names conflict with different values
    """
    result: dict[str, Any] = {}
    for params in param_dicts:
        for key, value in params.items():
            if key in result and result[key] != value:
                raise ValueError(f"Parameter conflict: {key} has different values")
            result[key] = value
    return result
