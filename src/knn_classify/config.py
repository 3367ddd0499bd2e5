"""Pydantic frozen configuration model for a classification run."""

from pathlib import Path

from pydantic import BaseModel, Field, field_validator

from knn_classify.distance import resolve_metric
from knn_classify.errors import UnknownMetricError


class ClassifyConfig(BaseModel, frozen=True):
    """Settings for one classification run.

    All fields are validated at construction time. ``metric`` accepts any
    unique prefix of a supported metric name and is stored in canonical form.
    """

    training_file: Path
    testing_file: Path
    k: int = Field(default=1, ge=1)
    metric: str = "euclidean"
    num_procs: int = Field(default=1, ge=1)
    verbose: bool = False
    timeout: float | None = Field(default=None, gt=0)
    report: Path | None = None

    @field_validator("metric")
    @classmethod
    def _canonical_metric(cls, value: str) -> str:
        """Expand a metric prefix such as "eucl" to its full name."""
        try:
            return resolve_metric(value)
        except UnknownMetricError as e:
            raise ValueError(str(e)) from e
