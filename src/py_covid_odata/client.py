"""
Client for a running py-covid-odata API.

This module provides a CovidODataClient class that composes the generic
query options into the dashboard's views:
- Raw and most-recent records for a metric.
- Per-country totals on the latest date, using a cheap probe for the most
  recent date followed by a fetch of that date only.
- Active cases per country derived from the three metrics.
"""

import logging
from typing import Any, Dict, List, Optional

import httpx

from .aggregation import active_cases, country_totals
from .errors import FetchError
from .models import CountryAggregate, MetricKind

logger = logging.getLogger(__name__)

SNAPSHOT_TOP = 100_000


class CovidODataClient:
    """
    Queries the OData entity sets exposed by the API.
    """

    def __init__(
        self,
        base_url: str = "http://localhost:8080/odata",
        timeout: float = 30.0,
        client: Optional[httpx.Client] = None,
    ):
        """
        Initializes the client.

        Args:
            base_url: The API root including the OData base path.
            timeout: Timeout in seconds for each request.
            client: Optional preconfigured httpx client to send requests with.
        """
        self.base_url = base_url.rstrip("/")
        self.client = client or httpx.Client(timeout=timeout)

    def get_records(self, metric: MetricKind, **options: Any) -> List[Dict[str, Any]]:
        """
        Runs a query against a metric's entity set.

        Keyword arguments are sent as `$`-prefixed query options, e.g.
        `get_records(metric, select="Country,Count", top=10)`.
        """
        url = f"{self.base_url}/{metric.entity_set}"
        params = {f"${key}": str(value) for key, value in options.items()}
        logger.debug(f"GET {url} {params}")
        try:
            response = self.client.get(url, params=params)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise FetchError(url, f"status {e.response.status_code}: {e.response.text}") from e
        except httpx.HTTPError as e:
            raise FetchError(url, str(e) or type(e).__name__) from e
        return response.json()["value"]

    def get_top_records(self, metric: MetricKind, top: int = 50) -> List[Dict[str, Any]]:
        """Returns the most recent records for a metric."""
        return self.get_records(
            metric,
            select="Country,Province,Date,Value,Count",
            orderby="Date desc",
            top=top,
        )

    def get_latest_date(self, metric: MetricKind) -> Optional[str]:
        probe = self.get_records(metric, select="Date", orderby="Date desc", top=1)
        return probe[0]["Date"] if probe else None

    def get_latest_by_country(self, metric: MetricKind) -> List[CountryAggregate]:
        """Returns per-country totals for the latest date of a metric."""
        latest = self.get_latest_date(metric)
        if latest is None:
            return []
        records = self.get_records(
            metric,
            filter=f"Date eq datetime'{latest}'",
            select="Country,Count",
            top=SNAPSHOT_TOP,
        )
        return country_totals(records)

    def get_active_by_country(self) -> List[CountryAggregate]:
        """Returns max(0, confirmed - deaths - recovered) per country."""
        return active_cases(
            self.get_latest_by_country(MetricKind.CONFIRMED),
            self.get_latest_by_country(MetricKind.DEATHS),
            self.get_latest_by_country(MetricKind.RECOVERED),
        )

    def close(self) -> None:
        self.client.close()

    def __enter__(self) -> "CovidODataClient":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
