# Copyright (c) 2025-2026 Gowtham Adamane Rao. All Rights Reserved.
#
# Licensed under the Prosperity Public License 3.0.0 (the "License").
# You may not use this file except in compliance with the License.
# You may obtain a copy of the License in the LICENSE file at the root
# of this repository, or at: https://prosperitylicense.com/versions/3.0.0
#
# Commercial use beyond a 30-day trial requires a separate license.


"""
Configuration module for the py-covid-odata package.

This module uses pydantic-settings to manage application configuration,
allowing settings to be loaded from environment variables or a .env file.
"""

from typing import List

from pydantic import BaseModel, Field, HttpUrl
from pydantic_settings import BaseSettings, SettingsConfigDict

from .models import MetricKind

JHU_TIME_SERIES_BASE = (
    "https://raw.githubusercontent.com/CSSEGISandData/COVID-19/master/"
    "csse_covid_19_data/csse_covid_19_time_series"
)


class SourceSettings(BaseModel):
    """
    Defines the remote time-series tables ingested for each metric.
    """

    confirmed_url: HttpUrl = Field(
        default=HttpUrl(f"{JHU_TIME_SERIES_BASE}/time_series_covid19_confirmed_global.csv"),
        description="CSV table ingested into the Confirmed collection.",
    )
    deaths_url: HttpUrl = Field(
        default=HttpUrl(f"{JHU_TIME_SERIES_BASE}/time_series_covid19_deaths_global.csv"),
        description="CSV table ingested into the Deaths collection.",
    )
    recovered_url: HttpUrl = Field(
        default=HttpUrl(f"{JHU_TIME_SERIES_BASE}/time_series_covid19_recovered_global.csv"),
        description="CSV table ingested into the Recovered collection.",
    )

    def url_for(self, metric: MetricKind) -> str:
        """Returns the configured source URL for a metric."""
        urls = {
            MetricKind.CONFIRMED: self.confirmed_url,
            MetricKind.DEATHS: self.deaths_url,
            MetricKind.RECOVERED: self.recovered_url,
        }
        return str(urls[metric])


class FetchSettings(BaseModel):
    """Defines timeout and retry behaviour for remote downloads."""

    timeout: float = Field(
        default=60.0, description="Timeout in seconds for a single HTTP request."
    )
    max_attempts: int = Field(
        default=3, ge=1, description="Total attempts before a download is abandoned."
    )
    backoff_min: float = Field(
        default=1.0, ge=0, description="Lower bound in seconds for retry backoff."
    )
    backoff_max: float = Field(
        default=30.0, ge=0, description="Upper bound in seconds for retry backoff."
    )
    user_agent: str = Field(
        default="py-covid-odata/1.0", description="User-Agent header sent upstream."
    )


class ServerSettings(BaseModel):
    """Defines the HTTP query surface."""

    host: str = Field(default="0.0.0.0", description="Interface the API binds to.")
    port: int = Field(default=8080, description="Port the API listens on.")
    base_path: str = Field(
        default="odata", description="Route prefix under which entity sets live."
    )
    max_top: int = Field(
        default=100_000, ge=1, description="Largest $top a client may request."
    )
    cors_origins: List[str] = Field(
        default_factory=lambda: ["*"],
        description="Origins allowed to call the API from a browser.",
    )


class LoggingSettings(BaseModel):
    """Defines the logging configuration."""

    level: str = Field(
        default="INFO",
        description="The logging level, e.g., DEBUG, INFO, WARNING, ERROR.",
    )


class AppSettings(BaseSettings):
    """
    The main application settings model.
    """

    model_config = SettingsConfigDict(
        env_prefix="PY_COVID_ODATA_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
    )
    sources: SourceSettings = Field(default_factory=SourceSettings)
    fetch: FetchSettings = Field(default_factory=FetchSettings)
    server: ServerSettings = Field(default_factory=ServerSettings)
    log: LoggingSettings = Field(default_factory=LoggingSettings)
