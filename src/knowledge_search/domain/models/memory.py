"""Atomic memory domain model."""

from collections.abc import Iterable, Mapping
from datetime import UTC, date, datetime
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator

SOURCE_TEXT_LIMIT = 500


class MemoryType(str, Enum):
    """Kinds of atomic facts the extractor produces."""

    FACT = "fact"
    PREFERENCE = "preference"
    EVENT = "event"
    OBSERVATION = "observation"
    DECISION = "decision"


class Entities(BaseModel):
    """Named entities mentioned by a memory."""

    people: set[str] = Field(default_factory=set)
    places: set[str] = Field(default_factory=set)
    organizations: set[str] = Field(default_factory=set)

    @field_validator("people", "places", "organizations", mode="before")
    @classmethod
    def coerce_to_set(cls, value: Any) -> Any:
        if value is None:
            return set()
        if isinstance(value, str):
            return {value}
        return value

    def merge(self, other: "Entities") -> "Entities":
        return Entities(
            people=self.people | other.people,
            places=self.places | other.places,
            organizations=self.organizations | other.organizations,
        )


class Memory(BaseModel):
    """One self-contained fact extracted from an entry.

    A memory is current while ``valid_until`` is unset. Reprocessing an entry
    replaces its whole memory set rather than editing individual records.
    """

    id: str = Field(default_factory=lambda: str(uuid4()))
    content: str = Field(min_length=1)
    memory_type: MemoryType = MemoryType.FACT
    confidence: float = Field(default=1.0, ge=0.0, le=1.0)
    entities: Entities = Field(default_factory=Entities)
    temporal_expression: str | None = None
    resolved_time: datetime | None = None
    source_text: str | None = None
    chunk_index: int | None = None
    entry_id: str | None = None
    user_id: str | None = None
    valid_from: datetime = Field(default_factory=lambda: datetime.now(UTC))
    valid_until: datetime | None = None
    supersedes_id: str | None = None
    refines_id: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("content")
    @classmethod
    def strip_content(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("memory content must not be blank")
        return value

    @classmethod
    def from_extraction(
        cls,
        raw: Mapping[str, Any],
        *,
        chunk_index: int,
        chunk_text: str,
        entry_id: str | None = None,
        user_id: str | None = None,
    ) -> "Memory":
        """Build a memory from one raw extractor candidate.

        Extractor payloads are loosely shaped; this is the only place that
        tolerates alternative key names or malformed optional fields.
        """
        memory_type = raw.get("memory_type") or raw.get("type") or MemoryType.FACT.value
        try:
            memory_type = MemoryType(str(memory_type).lower())
        except ValueError:
            memory_type = MemoryType.FACT

        resolved_time = raw.get("resolved_time")
        if isinstance(resolved_time, date) and not isinstance(resolved_time, datetime):
            resolved_time = datetime(resolved_time.year, resolved_time.month, resolved_time.day, tzinfo=UTC)

        known = {"content", "memory_type", "type", "confidence", "entities", "temporal_expression", "resolved_time"}
        metadata = {key: value for key, value in raw.items() if key not in known}

        return cls(
            content=str(raw.get("content") or ""),
            memory_type=memory_type,
            confidence=raw.get("confidence", 1.0),
            entities=Entities.model_validate(raw.get("entities") or {}),
            temporal_expression=raw.get("temporal_expression"),
            resolved_time=resolved_time,
            source_text=chunk_text[:SOURCE_TEXT_LIMIT],
            chunk_index=chunk_index,
            entry_id=entry_id,
            user_id=user_id,
            metadata=metadata,
        )


def merge_entities(memories: Iterable[Memory]) -> Entities:
    """Union of the entities mentioned across ``memories``."""
    merged = Entities()
    for memory in memories:
        merged = merged.merge(memory.entities)
    return merged
