"""Run report writer using orjson."""

from __future__ import annotations

from pathlib import Path

import orjson

from knn_classify.schemas.report import RunReport


class RunReportWriter:
    """Write a :class:`RunReport` as indented JSON to ``path``."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self.path.parent.mkdir(parents=True, exist_ok=True)

    def write(self, report: RunReport) -> Path:
        """Write the report to disk. Returns the output path."""
        data = orjson.dumps(report.model_dump(mode="json"), option=orjson.OPT_INDENT_2)
        self.path.write_bytes(data)
        return self.path
