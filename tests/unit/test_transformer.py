# Copyright (c) 2025-2026 Gowtham Adamane Rao. All Rights Reserved.
#
# Licensed under the Prosperity Public License 3.0.0 (the "License").
# You may not use this file except in compliance with the License.
# You may obtain a copy of the License in the LICENSE file at the root
# of this repository, or at: https://prosperitylicense.com/versions/3.0.0
#
# Commercial use beyond a 30-day trial requires a separate license.


"""
Unit tests for the transformer module.
"""

from datetime import datetime, timezone

import pytest

from py_covid_odata.models import MetricKind
from py_covid_odata.parser import CsvTableReader
from py_covid_odata.transformer import Transformer


@pytest.mark.parametrize(
    "raw_input, expected",
    [
        ("15", 15),
        (" 7 ", 7),
        ("0", 0),
        ("3.0", 3),
        ("+4", 4),
        ("-4", 0),
        ("9223372036854775807", 9223372036854775807),
        ("9223372036854775808", 0),
        ("99999999999999999999", 0),
        ("2.5", 0),
        ("n/a", 0),
        ("", 0),
        (None, 0),
    ],
)
def test_transformer_parse_count(raw_input, expected):
    transformer = Transformer(MetricKind.CONFIRMED)
    assert transformer._parse_count(raw_input) == expected


def test_transform_single_row_scenario():
    """One row and two date columns yield exactly two observations."""
    content = "Country/Region,Province/State,1/22/20,1/23/20\n\"US\",\"\",10,15\n"
    table = CsvTableReader().read(content)

    observations = list(Transformer(MetricKind.CONFIRMED).transform(table))

    assert len(observations) == 2
    first, second = observations
    assert (first.country, first.province, first.metric, first.count) == (
        "US",
        "",
        MetricKind.CONFIRMED,
        10,
    )
    assert first.date == datetime(2020, 1, 22, tzinfo=timezone.utc)
    assert second.date == datetime(2020, 1, 23, tzinfo=timezone.utc)
    assert second.count == 15
    assert first.id != second.id


def test_transform_cardinality_is_rows_times_date_columns(source_tables):
    table = CsvTableReader().read(source_tables[MetricKind.DEATHS])

    observations = list(Transformer(MetricKind.DEATHS).transform(table))

    assert len(observations) == len(table) * len(table.date_columns) == 12
    assert {obs.metric for obs in observations} == {MetricKind.DEATHS}


def test_transform_bad_cell_does_not_stop_row():
    content = "Country/Region,Province/State,1/22/20,1/23/20,1/24/20\nUS,,1,oops,3\n"
    table = CsvTableReader().read(content)

    counts = [obs.count for obs in Transformer(MetricKind.CONFIRMED).transform(table)]

    assert counts == [1, 0, 3]


def test_transform_skips_non_date_columns():
    content = "Country/Region,Lat,Long,1/22/20,notes\nUS,40.0,-100.0,5,hello\n"
    table = CsvTableReader().read(content)

    observations = list(Transformer(MetricKind.RECOVERED).transform(table))

    assert len(observations) == 1
    assert observations[0].count == 5
    assert observations[0].province == ""


def test_transform_order_is_row_then_column(source_tables):
    table = CsvTableReader().read(source_tables[MetricKind.CONFIRMED])

    keys = [
        (obs.country, obs.province, obs.date.day)
        for obs in Transformer(MetricKind.CONFIRMED).transform(table)
    ]

    assert keys[:4] == [
        ("Afghanistan", "", 22),
        ("Afghanistan", "", 23),
        ("Afghanistan", "", 24),
        ("Canada", "Alberta", 22),
    ]


def test_transform_is_idempotent_apart_from_ids(source_tables):
    table_a = CsvTableReader().read(source_tables[MetricKind.CONFIRMED])
    table_b = CsvTableReader().read(source_tables[MetricKind.CONFIRMED])
    transformer = Transformer(MetricKind.CONFIRMED)

    def as_tuples(observations):
        return [(o.country, o.province, o.date, o.metric, o.count) for o in observations]

    run_a = list(transformer.transform(table_a))
    run_b = list(transformer.transform(table_b))

    assert as_tuples(run_a) == as_tuples(run_b)
    assert {o.id for o in run_a}.isdisjoint({o.id for o in run_b})


def test_transform_repeated_date_header_keeps_both_columns():
    content = "Country/Region,Province/State,1/22/20,1/22/20\nUS,,1,2\n"
    table = CsvTableReader().read(content)

    observations = list(Transformer(MetricKind.CONFIRMED).transform(table))

    assert [(o.date.day, o.count) for o in observations] == [(22, 1), (22, 2)]


def test_transform_ragged_row_does_not_stop_other_rows():
    content = "Country/Region,Province/State,1/22/20,1/23/20\nUS,,1,2\nFR,,3,4,5\nIT,,6\n"
    table = CsvTableReader().read(content)

    observations = list(Transformer(MetricKind.DEATHS).transform(table))

    assert [(o.country, o.count) for o in observations] == [
        ("US", 1),
        ("US", 2),
        ("FR", 3),
        ("FR", 4),
        ("IT", 6),
        ("IT", 0),
    ]
