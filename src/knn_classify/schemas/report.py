"""Run report schema."""

from __future__ import annotations

from datetime import UTC, datetime

from pydantic import BaseModel, Field, computed_field, model_validator

from knn_classify.schemas.assignment import PartitionResult


class RunReport(BaseModel):
    """Outcome of one classification run.

    ``total_correct`` is always the sum of the per-partition counts.
    """

    training_file: str | None = None
    testing_file: str | None = None
    k: int
    metric: str
    num_workers: int
    num_tests: int
    partitions: list[PartitionResult]
    elapsed_seconds: float = 0.0
    created_at: str = Field(default_factory=lambda: datetime.now(tz=UTC).isoformat())

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total_correct(self) -> int:
        return sum(p.correct for p in self.partitions)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def accuracy(self) -> float:
        return self.total_correct / self.num_tests if self.num_tests > 0 else 0.0

    @model_validator(mode="after")
    def _partitions_cover_tests(self) -> "RunReport":
        covered = sum(p.count for p in self.partitions)
        if covered != self.num_tests:
            raise ValueError(
                f"Partitions cover {covered} test items, expected {self.num_tests}"
            )
        return self
