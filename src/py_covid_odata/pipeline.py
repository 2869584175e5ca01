"""
The main pipeline orchestration module.

This module brings together all the components (fetcher, parser,
transformer) to build the in-memory collections served by the API.
"""

import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from .config import AppSettings
from .fetcher import Fetcher
from .models import (
    DatasetRegistry,
    IngestionReport,
    IngestionStatus,
    MetricKind,
    ObservationCollection,
)
from .parser import CsvTableReader
from .transformer import Transformer

logger = logging.getLogger(__name__)


def ingest(source_url: str, metric: MetricKind, fetcher: Fetcher) -> ObservationCollection:
    """
    Fetches one wide-format table and reshapes it into a collection.

    Args:
        source_url: The URL of the CSV table.
        metric: The metric the table reports.
        fetcher: The Fetcher used to download the table.

    Returns:
        The ingested, immutable ObservationCollection.

    Raises:
        FetchError: If the table cannot be downloaded.
    """
    content = fetcher.fetch_text(source_url)
    table = CsvTableReader().read(content)
    observations = Transformer(metric).transform(table)
    return ObservationCollection(metric, observations)


def run_ingestion(
    metric: MetricKind, settings: AppSettings, fetcher: Fetcher
) -> Tuple[ObservationCollection, IngestionReport]:
    """
    Runs ingestion for a single metric and records the outcome.

    Failures are logged with the source URL and re-raised.
    """
    source_url = settings.sources.url_for(metric)
    report = IngestionReport(
        metric=metric,
        source_url=source_url,
        status=IngestionStatus.RUNNING,
        start_time=datetime.now(timezone.utc),
    )
    logger.info(f"--- Ingesting {metric.value} from {source_url} ---")
    try:
        collection = ingest(source_url, metric, fetcher)
    except Exception as e:
        logger.critical(f"Ingestion failed for {metric.value} ({source_url}): {e}")
        report.status = IngestionStatus.FAILED
        report.end_time = datetime.now(timezone.utc)
        report.error_details = str(e)
        raise

    report.status = IngestionStatus.SUCCESS
    report.end_time = datetime.now(timezone.utc)
    report.rows_loaded = len(collection)
    report.latest_date = collection.latest_date()
    logger.info(
        f"Loaded {report.rows_loaded} {metric.value} observations "
        f"(latest date: {report.latest_date})."
    )
    return collection, report


def load_registry(
    settings: AppSettings, fetcher: Optional[Fetcher] = None
) -> Tuple[DatasetRegistry, List[IngestionReport]]:
    """
    Ingests every metric and builds the registry served by the API.

    The three metrics are independent and run one after another; any
    failure aborts startup so the service never runs with a missing
    collection.

    Args:
        settings: The application settings object.
        fetcher: An optional Fetcher; one is created (and closed) if omitted.

    Returns:
        The DatasetRegistry and one IngestionReport per metric.
    """
    owns_fetcher = fetcher is None
    active_fetcher = fetcher or Fetcher(settings)
    collections: Dict[MetricKind, ObservationCollection] = {}
    reports: List[IngestionReport] = []

    try:
        for metric in MetricKind:
            collection, report = run_ingestion(metric, settings, active_fetcher)
            reports.append(report)
            collections[metric] = collection
    finally:
        if owns_fetcher:
            active_fetcher.close()
        logger.info("Ingestion finished. Resources closed.")

    for metric, collection in collections.items():
        if not len(collection):
            logger.warning(f"Collection for {metric.value} is empty.")

    return DatasetRegistry(collections), reports
