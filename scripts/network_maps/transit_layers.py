"""Read transit line and station shapefiles into GeoDataFrames.

Only the primary ``.shp`` path is passed in; the sibling index (``.shx``) and
attribute table (``.dbf``) must sit next to it under the same base name. They
are located here so a missing sibling fails with a clear message instead of a
reader-specific error.

Nothing is transformed at load time: attributes, geometries and CRS are
returned exactly as stored.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, Sequence

import geopandas as gpd

LOGGER = logging.getLogger(__name__)

# Sibling files a shapefile cannot be read without (.prj/.cpg are optional)
REQUIRED_SIBLINGS: tuple[str, ...] = (".shx", ".dbf")

LINE_COLUMNS: tuple[str, ...] = ("NAME", "TECHNOLOGY", "STATUS")
STATION_COLUMNS: tuple[str, ...] = ("NAME",)


class LayerReadError(ValueError):
    """Raised when a shapefile exists but cannot be parsed."""


class MissingAttributeError(KeyError):
    """Raised when a layer lacks an attribute column the pipeline relies on."""

    def __str__(self) -> str:
        # KeyError reprs its argument; keep the message readable
        return str(self.args[0]) if self.args else ""


def require_columns(gdf: gpd.GeoDataFrame, columns: Iterable[str], layer: str = "layer") -> None:
    """Raise MissingAttributeError if any of *columns* is absent from *gdf*."""
    missing = [c for c in columns if c not in gdf.columns]
    if missing:
        raise MissingAttributeError(
            f"{layer} is missing required column(s): {', '.join(missing)}"
        )


def find_siblings(shp_path: Path) -> dict[str, Path | None]:
    """Map each required sibling extension to its file (or None if absent).

    Matching is case-insensitive on the extension, since shapefiles exported
    from Windows tools often mix ``.SHX`` / ``.dbf`` casing.
    """
    found: dict[str, Path | None] = {ext: None for ext in REQUIRED_SIBLINGS}
    # Compare stems directly; base names may contain glob metacharacters
    for candidate in sorted(shp_path.parent.iterdir()):
        if candidate.stem != shp_path.stem:
            continue
        ext = candidate.suffix.lower()
        if ext in found and found[ext] is None:
            found[ext] = candidate
    return found


def read_layer(path: str | Path, required_columns: Sequence[str] = ()) -> gpd.GeoDataFrame:
    """Read a single shapefile as a GeoDataFrame.

    Args:
        path: Path to the primary ``.shp`` file.
        required_columns: Attribute columns that must be present.

    Returns:
        GeoDataFrame with all original attributes preserved.

    Raises:
        FileNotFoundError: If the ``.shp`` or one of its siblings is missing.
        LayerReadError: If the files exist but cannot be parsed.
        MissingAttributeError: If a required column is absent.
    """
    shp_path = Path(path)
    if not shp_path.is_file():
        raise FileNotFoundError(f"Shapefile not found: {shp_path}")

    siblings = find_siblings(shp_path)
    missing = [ext for ext, found in siblings.items() if found is None]
    if missing:
        raise FileNotFoundError(
            f"Shapefile {shp_path} is missing sibling file(s): {', '.join(missing)}"
        )

    LOGGER.info("Reading %s", shp_path)
    try:
        gdf = gpd.read_file(shp_path)
    except Exception as exc:
        raise LayerReadError(f"Could not read shapefile {shp_path}: {exc}") from exc

    require_columns(gdf, required_columns, layer=shp_path.name)
    LOGGER.info("Loaded %s (%d features, CRS=%s)", shp_path.name, len(gdf), gdf.crs)
    return gdf


def load_network(
    lines_path: str | Path,
    stations_path: str | Path,
) -> tuple[gpd.GeoDataFrame, gpd.GeoDataFrame]:
    """Load the transit lines and station points layers."""
    lines = read_layer(lines_path, LINE_COLUMNS)
    stations = read_layer(stations_path, STATION_COLUMNS)
    return lines, stations
