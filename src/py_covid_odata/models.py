# Copyright (c) 2025-2026 Gowtham Adamane Rao. All Rights Reserved.
#
# Licensed under the Prosperity Public License 3.0.0 (the "License").
# You may not use this file except in compliance with the License.
# You may obtain a copy of the License in the LICENSE file at the root
# of this repository, or at: https://prosperitylicense.com/versions/3.0.0
#
# Commercial use beyond a 30-day trial requires a separate license.


"""
Core data models for the py-covid-odata package.

This module defines Pydantic models that represent the core domain objects
of the application: the per-date observations produced by ingestion, the
in-memory collections that hold them, and the derived views built from
them. These models are used as Data Transfer Objects (DTOs) between the
different layers of the pipeline and the API.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from functools import cached_property
from typing import Dict, Iterable, Iterator, Mapping, Optional, Tuple

import pandas as pd
from pydantic import BaseModel, ConfigDict, Field, field_validator

# === Observational Data Models ===


class MetricKind(str, Enum):
    """The closed set of metrics published by the time-series source."""

    CONFIRMED = "Confirmed"
    DEATHS = "Deaths"
    RECOVERED = "Recovered"

    @property
    def entity_set(self) -> str:
        """The name under which this metric's collection is served."""
        return f"Covid{self.value}"

    @classmethod
    def from_entity_set(cls, name: str) -> Optional["MetricKind"]:
        return next((m for m in cls if m.entity_set == name), None)


class Observation(BaseModel):
    """
    Represents one metric reading for one region on one date.
    """

    model_config = ConfigDict(frozen=True)

    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        description="Opaque unique identifier assigned at creation.",
    )
    country: str = Field(default="", description="Country or region name.")
    province: str = Field(
        default="", description="Province or state name, empty when not applicable."
    )
    date: datetime = Field(description="The observation date at midnight UTC.")
    metric: MetricKind = Field(description="The metric this reading belongs to.")
    count: int = Field(
        ge=0, le=2**63 - 1, description="The cumulative count for the date."
    )

    @field_validator("date")
    @classmethod
    def _normalize_date(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        value = value.astimezone(timezone.utc)
        return value.replace(hour=0, minute=0, second=0, microsecond=0)


# Columns of the query frame, in their public (OData) names.
FIELDS: Tuple[str, ...] = ("Id", "Country", "Province", "Date", "Value", "Count")


class ObservationCollection:
    """
    An immutable, ordered collection of observations for a single metric.

    The collection is assigned once at ingestion time. A pandas DataFrame
    view is built lazily for querying; callers must treat it as read-only.
    """

    def __init__(self, metric: MetricKind, observations: Iterable[Observation]):
        self.metric = metric
        self._observations: Tuple[Observation, ...] = tuple(observations)
        for obs in self._observations:
            if obs.metric != metric:
                raise ValueError(
                    f"Observation {obs.id} has metric {obs.metric.value}, "
                    f"expected {metric.value}."
                )

    def __len__(self) -> int:
        return len(self._observations)

    def __iter__(self) -> Iterator[Observation]:
        return iter(self._observations)

    def __getitem__(self, index: int) -> Observation:
        return self._observations[index]

    @cached_property
    def frame(self) -> pd.DataFrame:
        """A columnar view of the collection, one row per observation."""
        obs = self._observations
        df = pd.DataFrame(
            {
                "Id": [str(o.id) for o in obs],
                "Country": [o.country for o in obs],
                "Province": [o.province for o in obs],
                "Date": pd.to_datetime([o.date for o in obs], utc=True),
                "Value": [o.metric.value for o in obs],
                "Count": pd.array([o.count for o in obs], dtype="int64"),
            },
            columns=list(FIELDS),
        )
        return df

    def latest_date(self) -> Optional[datetime]:
        """Returns the most recent observation date, or None when empty."""
        if not self._observations:
            return None
        return max(obs.date for obs in self._observations)


class DatasetRegistry:
    """
    Maps every metric to its ingested collection.

    Built once at startup and handed to the query layer explicitly.
    """

    def __init__(self, collections: Mapping[MetricKind, ObservationCollection]):
        missing = [m.value for m in MetricKind if m not in collections]
        if missing:
            raise ValueError(f"No collection registered for: {', '.join(missing)}")
        self._collections: Dict[MetricKind, ObservationCollection] = dict(collections)

    def get(self, metric: MetricKind) -> ObservationCollection:
        return self._collections[metric]

    def by_entity_set(self, name: str) -> Optional[ObservationCollection]:
        metric = MetricKind.from_entity_set(name)
        return self._collections[metric] if metric else None

    def __iter__(self) -> Iterator[MetricKind]:
        return iter(self._collections)


# === Derived Views ===


class CountryAggregate(BaseModel):
    """A per-country total computed on demand from a set of observations."""

    country: str = Field(description="The normalized country name.")
    count: int = Field(description="The summed count for the country.")


# === Ingestion History Models ===


class IngestionStatus(str, Enum):
    """Enum for the status of an ingestion process."""

    PENDING = "PENDING"
    RUNNING = "RUNNING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


class IngestionReport(BaseModel):
    """
    Records the outcome of ingesting one metric's source table.
    """

    metric: MetricKind = Field(description="The metric that was ingested.")
    source_url: str = Field(description="The URL the table was downloaded from.")
    status: IngestionStatus = Field(
        default=IngestionStatus.PENDING,
        description="The current status of the ingestion.",
    )
    start_time: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="The start time of the ingestion process.",
    )
    end_time: Optional[datetime] = Field(
        default=None, description="The end time of the ingestion process."
    )
    rows_loaded: Optional[int] = Field(
        default=None, description="The total number of observations produced."
    )
    latest_date: Optional[datetime] = Field(
        default=None, description="The most recent date present in the collection."
    )
    error_details: Optional[str] = Field(
        default=None, description="Detailed error information if the ingestion failed."
    )
