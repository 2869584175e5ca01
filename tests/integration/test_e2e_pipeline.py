"""
End-to-end test: remote CSV tables are ingested on startup and queried.
"""

import pytest
from fastapi.testclient import TestClient

from py_covid_odata.api import create_app
from py_covid_odata.config import AppSettings
from py_covid_odata.errors import FetchError
from py_covid_odata.models import MetricKind


def _settings_for(httpserver) -> AppSettings:
    return AppSettings(
        _env_file=None,
        sources={m.value.lower() + "_url": httpserver.url_for(f"/{m.value}.csv") for m in MetricKind},
        fetch={"max_attempts": 1, "backoff_min": 0, "backoff_max": 0},
    )


def test_startup_ingests_and_serves(httpserver, source_tables):
    for metric, text in source_tables.items():
        httpserver.expect_request(f"/{metric.value}.csv").respond_with_data(
            text, content_type="text/csv"
        )

    app = create_app(_settings_for(httpserver))
    with TestClient(app) as client:
        health = client.get("/health").json()
        body = client.get(
            "/odata/CovidConfirmed",
            params={"$filter": "Country eq 'US'", "$orderby": "Date desc", "$count": "true"},
        ).json()

    assert health["status"] == "ok"
    assert [r["rows_loaded"] for r in health["ingestion"]] == [12, 12, 9]
    assert body["@odata.count"] == 3
    assert [r["Count"] for r in body["value"]] == [100, 15, 10]


def test_startup_fails_when_a_source_is_unreachable(httpserver, source_tables):
    for metric, text in source_tables.items():
        if metric is MetricKind.RECOVERED:
            httpserver.expect_request(f"/{metric.value}.csv").respond_with_data(
                "gone", status=500
            )
        else:
            httpserver.expect_request(f"/{metric.value}.csv").respond_with_data(text)

    app = create_app(_settings_for(httpserver))

    with pytest.raises(FetchError, match="Recovered.csv"):
        with TestClient(app):
            pass
