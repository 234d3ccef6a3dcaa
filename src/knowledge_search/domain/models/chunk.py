"""Chunk domain model."""

from pydantic import BaseModel, ConfigDict, Field, model_validator


class Chunk(BaseModel):
    """A token-bounded slice of an entry's text.

    Offsets are half-open character positions into the text the chunker was
    given, so ``source[start_offset:end_offset]`` contains ``text``.
    """

    model_config = ConfigDict(frozen=True)

    text: str = Field(min_length=1)
    start_offset: int = Field(ge=0)
    end_offset: int
    estimated_token_count: int = Field(ge=1)

    @model_validator(mode="after")
    def check_offsets(self) -> "Chunk":
        if self.end_offset <= self.start_offset:
            raise ValueError("end_offset must be greater than start_offset")
        return self
