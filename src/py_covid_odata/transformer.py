# Copyright (c) 2025-2026 Gowtham Adamane Rao. All Rights Reserved.
#
# Licensed under the Prosperity Public License 3.0.0 (the "License").
# You may not use this file except in compliance with the License.
# You may obtain a copy of the License in the LICENSE file at the root
# of this repository, or at: https://prosperitylicense.com/versions/3.0.0
#
# Commercial use beyond a 30-day trial requires a separate license.


"""
Transformer module for reshaping parsed time-series tables.

This module takes a WideTable from the `parser` module and unpivots it into
a flat, long-format stream of Observation objects, one per region and date.
"""

import logging
import re
from typing import Generator, Optional

from .models import MetricKind, Observation
from .parser import WideTable

logger = logging.getLogger(__name__)

# Accepts plain integers and integral floats such as '12' or '12.0'.
COUNT_RE = re.compile(r"^\+?(\d+)(?:\.0*)?$")

# Counts are stored in int64 columns for querying.
MAX_COUNT = 2**63 - 1


class Transformer:
    """
    Transforms a wide-format table into a long-format stream of
    Observation objects for a single metric.
    """

    def __init__(self, metric: MetricKind):
        """
        Initializes the Transformer.

        Args:
            metric: The metric every emitted observation is tagged with.
        """
        self.metric = metric

    def _parse_count(self, raw_value: Optional[str]) -> int:
        """
        Parses a raw cell as a non-negative integer count.

        Example: "15" -> 15
                 " 7 " -> 7
                 "3.0" -> 3
                 "n/a" -> 0
                 "-4" -> 0
                 "99999999999999999999" -> 0

        Args:
            raw_value: The cell text from the table.

        Returns:
            The parsed count, or 0 if the cell is not a non-negative integer
            that fits in 64 bits.
        """
        if raw_value is None:
            return 0
        match = COUNT_RE.match(str(raw_value).strip())
        if not match:
            logger.debug(f"Unparseable count '{raw_value}', substituting 0.")
            return 0
        count = int(match.group(1))
        if count > MAX_COUNT:
            logger.debug(f"Count '{raw_value}' is out of range, substituting 0.")
            return 0
        return count

    def transform(self, table: WideTable) -> Generator[Observation, None, None]:
        """
        Unpivots a WideTable into a generator of Observation objects.

        Rows are visited in source order and, within a row, date columns in
        header order. A bad cell only affects its own observation.

        Args:
            table: The parsed wide-format table.

        Yields:
            A stream of Observation Pydantic models.
        """
        logger.info(f"Starting transformation for metric '{self.metric.value}'.")

        for cells in table.rows():
            country = cells[table.country_position]
            province = (
                cells[table.province_position]
                if table.province_position is not None
                else ""
            )

            for column in table.date_columns:
                yield Observation(
                    country=country,
                    province=province,
                    date=column.date,
                    metric=self.metric,
                    count=self._parse_count(cells[column.position]),
                )
        logger.info("Finished transformation.")
