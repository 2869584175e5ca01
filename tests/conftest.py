"""
Pytest configuration and shared fixtures.
"""

import pytest

from py_covid_odata.config import AppSettings
from py_covid_odata.models import DatasetRegistry, MetricKind, ObservationCollection
from py_covid_odata.parser import CsvTableReader
from py_covid_odata.transformer import Transformer

CONFIRMED_CSV = """Province/State,Country/Region,Lat,Long,1/22/20,1/23/20,1/24/20
,Afghanistan,33.93911,67.709953,0,1,2
Alberta,Canada,53.9333,-116.5765,3,4,5
Ontario,Canada,51.2538,-85.3232,6,7,x
,US,40.0,-100.0,10,15,100
"""

DEATHS_CSV = """Province/State,Country/Region,Lat,Long,1/22/20,1/23/20,1/24/20
,Afghanistan,33.93911,67.709953,0,0,5
Alberta,Canada,53.9333,-116.5765,0,1,1
Ontario,Canada,51.2538,-85.3232,0,0,1
,US,40.0,-100.0,1,2,10
"""

RECOVERED_CSV = """Province/State,Country/Region,Lat,Long,1/22/20,1/23/20,1/24/20
,Afghanistan,33.93911,67.709953,0,0,0
,Canada,56.1304,-106.3468,0,1,2
,US,40.0,-100.0,0,5,30
"""

SOURCE_TABLES = {
    MetricKind.CONFIRMED: CONFIRMED_CSV,
    MetricKind.DEATHS: DEATHS_CSV,
    MetricKind.RECOVERED: RECOVERED_CSV,
}


def build_collection(content: str, metric: MetricKind) -> ObservationCollection:
    """Runs the parse and reshape steps over in-memory CSV content."""
    table = CsvTableReader().read(content)
    return ObservationCollection(metric, Transformer(metric).transform(table))


@pytest.fixture
def app_settings() -> AppSettings:
    """AppSettings that never wait between retries."""
    return AppSettings(
        _env_file=None,
        fetch={"max_attempts": 1, "backoff_min": 0, "backoff_max": 0, "timeout": 5},
    )


@pytest.fixture
def confirmed() -> ObservationCollection:
    return build_collection(CONFIRMED_CSV, MetricKind.CONFIRMED)


@pytest.fixture
def registry() -> DatasetRegistry:
    return DatasetRegistry(
        {metric: build_collection(csv, metric) for metric, csv in SOURCE_TABLES.items()}
    )


@pytest.fixture
def source_tables() -> dict:
    """The raw CSV tables, keyed by metric."""
    return dict(SOURCE_TABLES)


@pytest.fixture
def collection_factory():
    """Builds a collection from CSV text without any network access."""
    return build_collection
