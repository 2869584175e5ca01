"""
Integration tests for the HTTP API with pre-ingested collections.
"""

import pytest
from fastapi.testclient import TestClient

from py_covid_odata.api import create_app
from py_covid_odata.client import CovidODataClient
from py_covid_odata.models import CountryAggregate, IngestionReport, MetricKind


@pytest.fixture
def client(app_settings, registry):
    reports = [
        IngestionReport(metric=m, source_url=app_settings.sources.url_for(m))
        for m in MetricKind
    ]
    app = create_app(app_settings, registry=registry, reports=reports)
    with TestClient(app) as test_client:
        yield test_client


def test_service_document_lists_entity_sets(client):
    response = client.get("/odata")

    assert response.status_code == 200
    names = [entry["name"] for entry in response.json()["value"]]
    assert names == ["CovidConfirmed", "CovidDeaths", "CovidRecovered"]


def test_select_and_top(client):
    response = client.get("/odata/CovidConfirmed?$select=Country,Count&$top=2")

    assert response.status_code == 200
    assert response.json()["value"] == [
        {"Country": "Afghanistan", "Count": 0},
        {"Country": "Afghanistan", "Count": 1},
    ]
    assert "@odata.count" not in response.json()


def test_count_is_reported_when_requested(client):
    response = client.get(
        "/odata/CovidDeaths",
        params={"$filter": "Country eq 'Canada'", "$top": "1", "$count": "true"},
    )

    body = response.json()
    assert body["@odata.count"] == 6
    assert len(body["value"]) == 1
    assert body["value"][0]["Value"] == "Deaths"


def test_latest_date_protocol_over_http(client):
    probe = client.get(
        "/odata/CovidRecovered", params={"$select": "Date", "$orderby": "Date desc", "$top": "1"}
    ).json()["value"]
    latest = probe[0]["Date"]

    snapshot = client.get(
        "/odata/CovidRecovered",
        params={"$filter": f"Date eq datetime'{latest}'", "$select": "Country,Count"},
    ).json()["value"]

    assert latest == "2020-01-24T00:00:00Z"
    assert snapshot == [
        {"Country": "Afghanistan", "Count": 0},
        {"Country": "Canada", "Count": 2},
        {"Country": "US", "Count": 30},
    ]


def test_malformed_query_is_a_client_error(client):
    response = client.get("/odata/CovidConfirmed", params={"$filter": "Count eq 'x'"})

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "BadRequest"

    # The service keeps answering afterwards.
    assert client.get("/odata/CovidConfirmed?$top=1").status_code == 200


def test_top_above_limit_is_rejected(client, app_settings):
    too_many = app_settings.server.max_top + 1
    response = client.get(f"/odata/CovidConfirmed?$top={too_many}")
    assert response.status_code == 400


def test_unknown_entity_set(client):
    assert client.get("/odata/CovidRecords").status_code == 404


def test_health_reports_ingestion(client):
    body = client.get("/health").json()

    assert body["status"] == "ok"
    assert [r["metric"] for r in body["ingestion"]] == ["Confirmed", "Deaths", "Recovered"]


def test_cors_allows_any_origin(client):
    response = client.get("/odata/CovidConfirmed?$top=1", headers={"Origin": "http://dash.example"})
    assert response.headers["access-control-allow-origin"] == "*"


def test_client_library_against_api(client):
    api = CovidODataClient("http://testserver/odata", client=client)

    assert api.get_latest_by_country(MetricKind.DEATHS) == [
        CountryAggregate(country="Afghanistan", count=5),
        CountryAggregate(country="Canada", count=2),
        CountryAggregate(country="US", count=10),
    ]
    assert api.get_active_by_country() == [
        CountryAggregate(country="Afghanistan", count=0),
        CountryAggregate(country="Canada", count=1),
        CountryAggregate(country="US", count=60),
    ]
    top = api.get_top_records(MetricKind.CONFIRMED, top=3)
    assert len(top) == 3
    assert {r["Date"] for r in top} == {"2020-01-24T00:00:00Z"}
