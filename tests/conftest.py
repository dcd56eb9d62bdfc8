from __future__ import annotations

import geopandas as gpd
import matplotlib
import pytest
from shapely.geometry import LineString, Point

# Render tests must never open a window
matplotlib.use("Agg")

LINE_ROWS = [
    ("Line 1: Yonge-University Subway", "Subway", "Existing"),
    ("Line 1: Yonge-University Subway", "Subway", "Existing"),
    ("Line 2: Bloor-Danforth Subway", "Subway", "Existing"),
    ("UP Express", "GO Rail - All-day", "Existing"),
    ("Lakeshore West", "GO Rail - All-day", "Existing"),
    ("Line 6: Finch West LRT", "LRT / BRT", "In Delivery"),
    ("Mississauga Transitway BRT", "LRT / BRT", "Existing"),
    ("Dundas BRT", "LRT / BRT", "Advancing"),
    ("Ontario Line", "Subway", "In Delivery"),
    ("Waterfront East LRT", "LRT / BRT", "Proposed"),
    ("Relief Line North", "Subway", "Unfunded"),
]

STATION_ROWS = [
    ("Line 1: Yonge-University Subway", 0.0),
    ("Line 2: Bloor-Danforth Subway", 1.0),
    ("Union Pearson Express", 2.0),
    ("Lakeshore West", 3.0),
    ("Ontario Line", 4.0),
    ("Dundas BRT", 5.0),
    ("Some Other Stop", 6.0),
]


@pytest.fixture
def network_lines() -> gpd.GeoDataFrame:
    """Small line layer covering each filter branch."""
    return gpd.GeoDataFrame(
        {
            "NAME": [r[0] for r in LINE_ROWS],
            "TECHNOLOGY": [r[1] for r in LINE_ROWS],
            "STATUS": [r[2] for r in LINE_ROWS],
        },
        geometry=[LineString([(i, 0), (i, 1)]) for i in range(len(LINE_ROWS))],
        crs="EPSG:4326",
    )


@pytest.fixture
def network_stations() -> gpd.GeoDataFrame:
    return gpd.GeoDataFrame(
        {"NAME": [r[0] for r in STATION_ROWS]},
        geometry=[Point(x, 0.5) for _, x in STATION_ROWS],
        crs="EPSG:4326",
    )


@pytest.fixture
def empty_lines() -> gpd.GeoDataFrame:
    return gpd.GeoDataFrame(
        {"NAME": [], "TECHNOLOGY": [], "STATUS": []},
        geometry=[],
        crs="EPSG:4326",
    )
