"""Warehouse query execution for live-mode template runs."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol

from google.api_core.exceptions import GoogleAPIError
from google.cloud import bigquery

logger = logging.getLogger(__name__)

MAX_ROWS = 1000


@dataclass(slots=True)
class QueryResponse:
    """Rows plus diagnostics from one warehouse call."""

    success: bool
    rows: list[dict[str, Any]] = field(default_factory=list)
    error: str | None = None
    diagnostics: dict[str, Any] = field(default_factory=dict)


class QueryExecutor(Protocol):
    def execute_query(self, template_id: str, params: dict[str, Any]) -> QueryResponse: ...


class BigQueryExecutor:
    """Runs `<sql_dir>/<template_id>.sql` with named scalar parameters.

    Ordinary failures (missing SQL file, API errors) are reported through
    `QueryResponse.success` rather than raised.
    """

    def __init__(
        self,
        *,
        project: str | None = None,
        location: str = "US",
        sql_dir: str | Path = "sql",
        client: Any | None = None,
        max_rows: int = MAX_ROWS,
    ) -> None:
        self.project = project
        self.location = location
        self.sql_dir = Path(sql_dir)
        self.max_rows = max_rows
        self._client = client

    @property
    def client(self) -> Any:
        if self._client is None:
            self._client = bigquery.Client(project=self.project)
        return self._client

    def execute_query(self, template_id: str, params: dict[str, Any]) -> QueryResponse:
        sql_path = self.sql_dir / f"{template_id}.sql"
        if not sql_path.is_file():
            return QueryResponse(
                success=False,
                error=f"SQL template not found: {sql_path}",
                diagnostics={"template": template_id},
            )

        sql = sql_path.read_text(encoding="utf-8")
        job_config = bigquery.QueryJobConfig(query_parameters=build_query_parameters(params))
        try:
            job = self.client.query(sql, job_config=job_config, location=self.location)
            rows = [dict(row) for row in job.result(max_results=self.max_rows)]
        except GoogleAPIError as exc:
            logger.warning("bigquery error template=%s: %s", template_id, exc)
            return QueryResponse(
                success=False,
                error=str(exc),
                diagnostics={"template": template_id, "location": self.location},
            )

        return QueryResponse(
            success=True,
            rows=rows,
            diagnostics={
                "template": template_id,
                "location": self.location,
                "bytes_processed": getattr(job, "total_bytes_processed", None),
                "cache_hit": getattr(job, "cache_hit", None),
            },
        )


def build_query_parameters(params: dict[str, Any]) -> list[bigquery.ScalarQueryParameter]:
    query_params: list[bigquery.ScalarQueryParameter] = []
    for name, value in sorted(params.items()):
        if value is None or isinstance(value, (dict, list)):
            continue
        if isinstance(value, bool):
            type_ = "BOOL"
        elif isinstance(value, int):
            type_ = "INT64"
        elif isinstance(value, float):
            type_ = "FLOAT64"
        else:
            type_, value = "STRING", str(value)
        query_params.append(bigquery.ScalarQueryParameter(name, type_, value))
    return query_params
