"""Render a filtered transit network as a dark, chrome-free static map.

Styling is passed explicitly per call through ``RenderStyle``; nothing here
touches matplotlib's global rcParams or style sheets, so two renders in the
same session never influence each other.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Mapping

import geopandas as gpd
import matplotlib.pyplot as plt
from matplotlib.figure import Figure

LOGGER = logging.getLogger(__name__)

MISSING_COLOR_POLICIES: frozenset[str] = frozenset({"default", "raise"})


class MissingColorMappingError(KeyError):
    """Raised when a rendered line name has no color and the policy is strict."""

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else ""


@dataclass(frozen=True)
class RenderStyle:
    """Per-render styling options."""

    background: str = "#111111"
    station_color: str = "white"
    default_line_color: str = "#808080"
    line_width: float = 2.0
    station_size: float = 6.0
    figsize: tuple[float, float] = (12.0, 12.0)
    dpi: int = 300
    missing_color_policy: str = "default"

    def __post_init__(self) -> None:
        if self.missing_color_policy not in MISSING_COLOR_POLICIES:
            raise ValueError(
                f"missing_color_policy must be one of {sorted(MISSING_COLOR_POLICIES)}, "
                f"got {self.missing_color_policy!r}"
            )


def assign_line_colors(
    names: Iterable[str],
    color_table: Mapping[str, str],
    style: RenderStyle = RenderStyle(),
) -> dict[str, str]:
    """Resolve a color for every distinct line name, in sorted name order.

    Raises:
        MissingColorMappingError: If a name is unmapped and the style's
            policy is ``"raise"``.
    """
    unique = sorted({str(n) for n in names})
    missing = [n for n in unique if n not in color_table]

    if missing:
        if style.missing_color_policy == "raise":
            raise MissingColorMappingError(f"No color configured for line(s): {', '.join(missing)}")
        LOGGER.warning(
            "No color configured for %d line(s), using %s: %s",
            len(missing),
            style.default_line_color,
            ", ".join(missing),
        )

    return {n: color_table.get(n, style.default_line_color) for n in unique}


def _style_axes(fig: Figure, ax: plt.Axes, style: RenderStyle) -> None:
    fig.patch.set_facecolor(style.background)
    ax.set_facecolor(style.background)
    ax.grid(False)
    ax.set_axis_off()
    legend = ax.get_legend()
    if legend is not None:
        legend.remove()


def render_network(
    lines: gpd.GeoDataFrame,
    stations: gpd.GeoDataFrame,
    color_table: Mapping[str, str],
    style: RenderStyle = RenderStyle(),
    name_column: str = "NAME",
) -> Figure:
    """Draw *lines* colored by name with *stations* overlaid.

    Empty inputs are valid and produce a blank canvas.

    Returns:
        The matplotlib Figure; the caller saves or shows it.
    """
    colors = assign_line_colors(lines[name_column].dropna(), color_table, style) if not lines.empty else {}

    fig, ax = plt.subplots(figsize=style.figsize)
    _style_axes(fig, ax, style)

    for line_name, color in colors.items():
        segment = lines[lines[name_column].astype(str) == line_name]
        segment.plot(ax=ax, color=color, linewidth=style.line_width, zorder=2)

    # Nameless segments are still part of the subset
    unnamed = lines[lines[name_column].isna()] if not lines.empty else lines
    if not unnamed.empty:
        unnamed.plot(ax=ax, color=style.default_line_color, linewidth=style.line_width, zorder=2)

    if not stations.empty:
        points = stations
        if lines.crs is not None and stations.crs is not None and stations.crs != lines.crs:
            LOGGER.info("Reprojecting stations from %s to %s", stations.crs, lines.crs)
            points = stations.to_crs(lines.crs)
        points.plot(ax=ax, color=style.station_color, markersize=style.station_size, zorder=3)

    if not lines.empty or not stations.empty:
        ax.set_aspect("equal")
    # GeoPandas may re-enable axes on plot; enforce again
    _style_axes(fig, ax, style)

    LOGGER.info(
        "Rendered %d line features (%d names) and %d stations",
        len(lines),
        len(colors),
        len(stations),
    )
    return fig


def save_figure(fig: Figure, path: str | Path, style: RenderStyle = RenderStyle()) -> Path:
    """Write *fig* to *path* (format from the suffix) and close it."""
    out_path = Path(path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    try:
        fig.savefig(
            out_path,
            dpi=style.dpi,
            facecolor=style.background,
            bbox_inches="tight",
        )
    finally:
        plt.close(fig)
    LOGGER.info("Map written to %s", out_path)
    return out_path
