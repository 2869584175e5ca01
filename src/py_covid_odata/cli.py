# Copyright (c) 2025-2026 Gowtham Adamane Rao. All Rights Reserved.
#
# Licensed under the Prosperity Public License 3.0.0 (the "License").
# You may not use this file except in compliance with the License.
# You may obtain a copy of the License in the LICENSE file at the root
# of this repository, or at: https://prosperitylicense.com/versions/3.0.0
#
# Commercial use beyond a 30-day trial requires a separate license.


"""
Command-line interface for the py-covid-odata application.

This module uses Typer to create a CLI for serving the API, running the
ingestion pipeline on its own and reporting from a running API.
"""

import logging
from enum import Enum
from typing import List, Optional

import typer
import uvicorn

from .api import create_app
from .client import CovidODataClient
from .config import AppSettings
from .fetcher import Fetcher
from .models import CountryAggregate, MetricKind
from .pipeline import load_registry, run_ingestion

# Create a Typer application
app = typer.Typer(
    name="py-covid-odata",
    help="Load COVID-19 time series into memory and serve them over OData.",
    add_completion=False,
)


class ReportView(str, Enum):
    CONFIRMED = "confirmed"
    DEATHS = "deaths"
    RECOVERED = "recovered"
    ACTIVE = "active"


def _configure_logging(settings: AppSettings) -> None:
    log_format = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"
    level = getattr(logging, settings.log.level.upper(), logging.INFO)
    logging.basicConfig(level=level, format=log_format)


@app.command()
def serve(
    host: Optional[str] = typer.Option(
        None, "--host", help="Interface to bind. Overrides env var."
    ),
    port: Optional[int] = typer.Option(
        None, "--port", "-p", help="Port to listen on. Overrides env var."
    ),
) -> None:
    """
    Ingest all metrics and serve them over HTTP.
    """
    settings = AppSettings()
    _configure_logging(settings)

    # The CLI options take precedence over the environment variables.
    if host is not None:
        settings.server.host = host
    if port is not None:
        settings.server.port = port

    typer.echo(
        f"Serving on http://{settings.server.host}:{settings.server.port}"
        f"/{settings.server.base_path}"
    )
    try:
        uvicorn.run(
            create_app(settings),
            host=settings.server.host,
            port=settings.server.port,
            log_level=settings.log.level.lower(),
        )
    except Exception as e:
        logging.error(f"A critical error occurred: {e}", exc_info=True)
        typer.secho("Server failed.", fg=typer.colors.RED)
        raise typer.Exit(code=1)


@app.command()
def ingest(
    metric: Optional[MetricKind] = typer.Option(
        None,
        "--metric",
        "-m",
        case_sensitive=False,
        help="Ingest a single metric instead of all three.",
    ),
) -> None:
    """
    Run the ingestion pipeline and print a summary, without serving.
    """
    settings = AppSettings()
    _configure_logging(settings)

    try:
        if metric is None:
            _, reports = load_registry(settings)
        else:
            with Fetcher(settings) as fetcher:
                _, report = run_ingestion(metric, settings, fetcher)
            reports = [report]
    except Exception as e:
        logging.error(f"A critical error occurred: {e}", exc_info=True)
        typer.secho("Ingestion failed.", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    for report in reports:
        latest = report.latest_date.date().isoformat() if report.latest_date else "-"
        typer.echo(
            f"{report.metric.value}: {report.rows_loaded} observations, "
            f"latest date {latest}"
        )
    typer.secho("Ingestion completed successfully.", fg=typer.colors.GREEN)


@app.command()
def report(
    view: ReportView = typer.Option(
        ReportView.CONFIRMED, "--metric", "-m", case_sensitive=False,
        help="The view to report: confirmed, deaths, recovered or active.",
    ),
    top: int = typer.Option(10, "--top", "-n", min=1, help="Countries to list."),
    base_url: str = typer.Option(
        "http://localhost:8080/odata", "--base-url", help="Root of a running API."
    ),
) -> None:
    """
    Print the countries with the highest totals on the latest date.
    """
    typer.echo(f"Querying {base_url} for {view.value} totals...")
    try:
        with CovidODataClient(base_url) as client:
            if view == ReportView.ACTIVE:
                rows = client.get_active_by_country()
            else:
                rows = client.get_latest_by_country(MetricKind(view.value.capitalize()))
    except Exception as e:
        logging.error(f"Report failed: {e}")
        typer.secho(f"Could not query {base_url}: {e}", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    ranked: List[CountryAggregate] = sorted(rows, key=lambda r: r.count, reverse=True)
    for row in ranked[:top]:
        typer.echo(f"{row.country:<40} {row.count:>12,}")


if __name__ == "__main__":
    app()
