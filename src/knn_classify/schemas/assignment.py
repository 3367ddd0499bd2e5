"""Work assignment and per-partition result schemas."""

from __future__ import annotations

from pydantic import BaseModel, Field


class WorkAssignment(BaseModel, frozen=True):
    """Half-open slice ``[start_index, start_index + count)`` of the testing set."""

    start_index: int = Field(ge=0)
    count: int = Field(ge=0)

    @property
    def stop(self) -> int:
        return self.start_index + self.count


class PartitionResult(BaseModel, frozen=True):
    """Correct-prediction count reported by one worker for its slice."""

    worker_id: int = Field(ge=0)
    start_index: int = Field(ge=0)
    count: int = Field(ge=0)
    correct: int = Field(ge=0)
