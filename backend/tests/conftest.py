"""Pytest configuration and fixtures."""
import sys
from pathlib import Path

import pytest

# Ensure backend root is on path when running pytest from repo root or backend
backend = Path(__file__).resolve().parent.parent
if str(backend) not in sys.path:
    sys.path.insert(0, str(backend))

from sgbus.data.stops import StopRecord  # noqa: E402


class PagedCatalogSource:
    """Serves a fixed stop list in pages, like DataMall's $skip listing. Records skips requested."""

    def __init__(self, stops, page_size=500, error=None):
        self.stops = list(stops)
        self.page_size = page_size
        self.error = error
        self.skips: list[int] = []

    def get_bus_stops_page(self, skip):
        self.skips.append(skip)
        if self.error is not None:
            raise self.error
        return self.stops[skip:skip + self.page_size]


@pytest.fixture
def city_stops():
    """A handful of central Singapore stops around (1.3000, 103.8500)."""
    return [
        StopRecord("A0001", "Origin Stop", "Test Road", 1.3000, 103.8500),
        StopRecord("A0002", "North 1km", "Test Road", 1.3100, 103.8500),
        StopRecord("A0003", "East 300m", "Side Street", 1.3000, 103.8527),
        StopRecord("A0004", "Far West", "Jurong Road", 1.3332, 103.7425),
        StopRecord("A0005", "South 700m", "Side Street", 1.2937, 103.8500),
    ]


@pytest.fixture
def paged_source():
    return PagedCatalogSource
