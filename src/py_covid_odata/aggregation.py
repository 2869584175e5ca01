"""
Derived views built by composing the generic query options.

These helpers reproduce what the dashboard does with the API: per-country
totals, the latest-date snapshot and the active-case estimate.
"""

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional

from .models import CountryAggregate, ObservationCollection
from .query import QueryOptions, execute

logger = logging.getLogger(__name__)

UNKNOWN_COUNTRY = "Unknown"


def normalize_country(name: Optional[str]) -> str:
    """Returns the key used to join countries across metrics."""
    return (name or "").strip().casefold()


def country_totals(records: Iterable[Mapping[str, Any]]) -> List[CountryAggregate]:
    """
    Sums `Count` per country over projected records.

    Countries keep the order in which they are first seen. Names are
    trimmed; a missing name is grouped under 'Unknown' while an empty
    name is kept as its own key.
    """
    totals: Dict[str, int] = {}
    for record in records:
        name = record.get("Country")
        country = UNKNOWN_COUNTRY if name is None else str(name).strip()
        count = int(record.get("Count") or 0)
        totals[country] = totals.get(country, 0) + count
    return [CountryAggregate(country=c, count=n) for c, n in totals.items()]


def latest_date_probe(collection: ObservationCollection) -> Optional[str]:
    """Runs the cheap probe for the most recent date in a collection."""
    probe = execute(
        collection,
        QueryOptions(select=["Date"], orderby=[("Date", False)], top=1),
    )
    if not probe.records:
        return None
    return str(probe.records[0]["Date"])


def latest_snapshot(collection: ObservationCollection) -> List[CountryAggregate]:
    """
    Returns per-country totals for the most recent date in a collection.

    The most recent date is probed first, then only the rows for that date
    are fetched and summed.
    """
    latest = latest_date_probe(collection)
    if latest is None:
        return []

    snapshot = execute(
        collection,
        QueryOptions(filter=f"Date eq {latest}", select=["Country", "Count"]),
    )
    logger.debug(
        f"Latest {collection.metric.value} snapshot on {latest}: "
        f"{snapshot.count} rows."
    )
    return country_totals(snapshot.records)


def active_cases(
    confirmed: Iterable[CountryAggregate],
    deaths: Iterable[CountryAggregate],
    recovered: Iterable[CountryAggregate],
) -> List[CountryAggregate]:
    """
    Estimates active cases per country as confirmed - deaths - recovered.

    Countries are joined on a trimmed, case-insensitive key and taken from
    the confirmed side; a missing term counts as zero and the result is
    clamped at zero.
    """
    deaths_by_key = _index(deaths)
    recovered_by_key = _index(recovered)

    active: List[CountryAggregate] = []
    for aggregate in confirmed:
        key = normalize_country(aggregate.country)
        value = aggregate.count - deaths_by_key.get(key, 0) - recovered_by_key.get(key, 0)
        active.append(CountryAggregate(country=aggregate.country, count=max(0, value)))
    return active


def _index(aggregates: Iterable[CountryAggregate]) -> Dict[str, int]:
    index: Dict[str, int] = {}
    for aggregate in aggregates:
        key = normalize_country(aggregate.country)
        index[key] = index.get(key, 0) + aggregate.count
    return index
