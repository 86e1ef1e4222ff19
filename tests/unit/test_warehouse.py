from google.api_core.exceptions import BadRequest
from google.cloud import bigquery

from fin_agent.services.warehouse import BigQueryExecutor, build_query_parameters


class FakeJob:
    total_bytes_processed = 1024
    cache_hit = False

    def __init__(self, rows) -> None:
        self._rows = rows

    def result(self, max_results=None):
        return self._rows[:max_results]


class FakeClient:
    def __init__(self, rows=None, error: Exception | None = None) -> None:
        self.rows = rows or []
        self.error = error
        self.queries = []

    def query(self, sql, job_config=None, location=None):
        self.queries.append((sql, job_config, location))
        if self.error is not None:
            raise self.error
        return FakeJob(self.rows)


def test_missing_sql_file_reports_failure(tmp_path) -> None:
    executor = BigQueryExecutor(sql_dir=tmp_path, client=FakeClient())

    response = executor.execute_query("monthly_gross_trend_v1", {})

    assert not response.success
    assert "SQL template not found" in response.error


def test_query_runs_with_named_parameters(tmp_path) -> None:
    (tmp_path / "metric_snapshot_year_v1.sql").write_text("SELECT @metric AS metric, @year AS year", encoding="utf-8")
    client = FakeClient(rows=[{"metric": "revenue", "year": 2025}])
    executor = BigQueryExecutor(sql_dir=tmp_path, client=client, location="EU")

    response = executor.execute_query("metric_snapshot_year_v1", {"metric": "revenue", "year": 2025})

    assert response.success
    assert response.rows == [{"metric": "revenue", "year": 2025}]
    assert response.diagnostics["bytes_processed"] == 1024
    sql, job_config, location = client.queries[0]
    assert sql.startswith("SELECT @metric")
    assert location == "EU"
    assert [param.name for param in job_config.query_parameters] == ["metric", "year"]


def test_api_errors_are_reported_not_raised(tmp_path) -> None:
    (tmp_path / "top_counterparties_gross_v1.sql").write_text("SELECT 1", encoding="utf-8")
    executor = BigQueryExecutor(sql_dir=tmp_path, client=FakeClient(error=BadRequest("bad query")))

    response = executor.execute_query("top_counterparties_gross_v1", {"top": 5})

    assert not response.success
    assert "bad query" in response.error


def test_build_query_parameters_types() -> None:
    params = build_query_parameters(
        {"flag": True, "top": 5, "ratio": 0.5, "unit": "Z001", "skip": None, "nested": {"a": 1}}
    )

    by_name = {param.name: param for param in params}
    assert set(by_name) == {"flag", "top", "ratio", "unit"}
    assert by_name["flag"].type_ == "BOOL"
    assert by_name["top"].type_ == "INT64"
    assert by_name["ratio"].type_ == "FLOAT64"
    assert by_name["unit"].type_ == "STRING"
    assert isinstance(params[0], bigquery.ScalarQueryParameter)
