# Copyright (c) 2025-2026 Gowtham Adamane Rao. All Rights Reserved.
#
# Licensed under the Prosperity Public License 3.0.0 (the "License").
# You may not use this file except in compliance with the License.
# You may obtain a copy of the License in the LICENSE file at the root
# of this repository, or at: https://prosperitylicense.com/versions/3.0.0
#
# Commercial use beyond a 30-day trial requires a separate license.


"""
Exceptions raised by the ingestion and query layers.
"""


class CovidODataError(Exception):
    """Base exception for py-covid-odata failures."""


class FetchError(CovidODataError):
    """Raised when a remote table cannot be retrieved."""

    def __init__(self, url: str, message: str):
        self.url = url
        super().__init__(f"Failed to fetch {url}: {message}")


class QueryError(CovidODataError):
    """Raised when a client supplies a malformed query option."""
