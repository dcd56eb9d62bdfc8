"""Map the existing and in-delivery rapid transit network from a regional plan.

The input is a regional transit-network shapefile that mixes existing,
in-delivery and long-range proposed lines (subway, LRT/BRT, GO Rail, ...),
plus a station point layer whose ``NAME`` field names the line each station
belongs to.

The script:

1.  Loads both shapefiles (siblings ``.shx``/``.dbf`` must sit next to each
    ``.shp``).
2.  Builds three line subsets with declarative filter rules:
      - ``all_non_go`` – everything that is not GO Rail.
      - ``core``       – subway and LRT/BRT (plus allow-listed rail lines such
                         as UP Express) that exist, are in delivery or are
                         advancing, minus BRT and transitway corridors.
      - ``rapid``      – ``core`` without surface LRT/BRT and excluded names;
                         allow-listed rail such as UP Express stays.
3.  Joins stations to each subset by line name (plus a small allow-list of
    station names that are spelled differently in the station layer).
4.  Renders each subset on a dark canvas, coloring lines by ``LINE_COLORS``,
    and writes one map per subset plus a CSV summary.

Lines missing from ``LINE_COLORS`` are drawn in the style's default color and
logged; pass ``--strict-colors`` to fail instead.
"""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import Final, Sequence

import pandas as pd

from scripts.network_maps.map_renderer import RenderStyle, render_network, save_figure
from scripts.network_maps.network_filters import (
    FilterStep,
    NetworkSubset,
    Predicate,
    build_subsets,
    drop,
    keep,
    load_rules,
)
from scripts.network_maps.transit_layers import load_network
from scripts.utils.logging_helper import setup_logging

# =============================================================================
# CONFIGURATION
# =============================================================================

LINES_SHP: Path | str = r"data/transit_network/transit_lines.shp"
STATIONS_SHP: Path | str = r"data/transit_network/transit_stations.shp"
OUTPUT_DIR: Path | str = r"output/network_maps"
LOG_FILE: Path | str | None = None

OUTPUT_FORMAT: str = "png"  # png, svg or pdf

# -----------------------------------------------------------------------------
# Filter vocabulary
# -----------------------------------------------------------------------------

GO_RAIL_MARKER: Final[str] = "GO Rail"

CORE_TECHNOLOGIES: Final[list[str]] = ["Subway", "LRT / BRT"]

# Rail services kept in the core network even though their TECHNOLOGY is GO Rail
CORE_RAIL_NAMES: Final[list[str]] = ["UP Express"]

ACTIVE_STATUSES: Final[list[str]] = ["Existing", "In Delivery", "Advancing"]

# Substrings marking bus corridors coded as "LRT / BRT"
BUS_CORRIDOR_MARKERS: Final[list[str]] = ["BRT", "Transitway"]

# Surface modes left off the rapid map; allow-listed rail (CORE_RAIL_NAMES) stays
RAPID_EXCLUDED_TECHNOLOGIES: Final[list[str]] = ["LRT / BRT"]

# Lines coded with a rapid technology that are not shown as rapid transit
RAPID_EXCLUDED_NAMES: Final[list[str]] = [
    "Line 3: Scarborough RT",
]

# Station names that do not match their line's NAME in the line layer
STATION_NAME_EXTRAS: Final[list[str]] = [
    "Eglinton Crosstown LRT",
    "Union Pearson Express",
]

# -----------------------------------------------------------------------------
# Rules (pipeline name → steps); "rapid" refines the output of "core"
# -----------------------------------------------------------------------------

DEFAULT_RULES: Final[dict[str, list[FilterStep]]] = {
    "all_non_go": [
        drop(Predicate("TECHNOLOGY", "contains", (GO_RAIL_MARKER,)), label="GO Rail"),
    ],
    "core": [
        keep(
            Predicate("TECHNOLOGY", "in", tuple(CORE_TECHNOLOGIES)),
            Predicate("NAME", "in", tuple(CORE_RAIL_NAMES)),
            label="rapid transit modes",
        ),
        keep(Predicate("STATUS", "in", tuple(ACTIVE_STATUSES)), label="active status"),
        drop(Predicate("NAME", "contains", tuple(BUS_CORRIDOR_MARKERS)), label="bus corridors"),
    ],
    "rapid": [
        drop(
            Predicate("TECHNOLOGY", "in", tuple(RAPID_EXCLUDED_TECHNOLOGIES)),
            Predicate("NAME", "in", tuple(RAPID_EXCLUDED_NAMES)),
            label="non-rapid lines",
        ),
    ],
}

PIPELINE_CHAINS: Final[dict[str, str]] = {"rapid": "core"}

# -----------------------------------------------------------------------------
# Rendering
# -----------------------------------------------------------------------------

LINE_COLORS: Final[dict[str, str]] = {
    "Line 1: Yonge-University Subway": "#FFCC00",
    "Line 2: Bloor-Danforth Subway": "#00A34F",
    "Line 4: Sheppard Subway": "#A8518A",
    "Line 5: Eglinton Crosstown LRT": "#F7941D",
    "Line 6: Finch West LRT": "#959595",
    "Ontario Line": "#1D9AD6",
    "Scarborough Subway Extension": "#00A34F",
    "Yonge North Subway Extension": "#FFCC00",
    "Eglinton Crosstown West Extension": "#F7941D",
    "Sheppard Subway Extension": "#A8518A",
    "Hurontario LRT": "#6CC24A",
    "Hamilton LRT": "#C8102E",
    "UP Express": "#0B3D91",
}

# Only overrides of the RenderStyle defaults
RENDER_STYLE: RenderStyle = RenderStyle(
    line_width=2.5,
    station_size=8.0,
    figsize=(14.0, 14.0),
)

# -----------------------------------------------------------------------------
# LOGGING
# -----------------------------------------------------------------------------

LOGGER = logging.getLogger(__name__)

# =============================================================================
# ARGUMENTS
# =============================================================================


def build_argparser() -> argparse.ArgumentParser:
    """Create and configure the CLI argument parser."""
    p = argparse.ArgumentParser(
        description="Filter a regional transit network and render rapid-transit maps."
    )
    p.add_argument("-l", "--lines", default=LINES_SHP, help="Path to the transit lines .shp.")
    p.add_argument("-s", "--stations", default=STATIONS_SHP, help="Path to the stations .shp.")
    p.add_argument("-d", "--outdir", default=OUTPUT_DIR, help="Folder for maps and summary.")
    p.add_argument(
        "-r",
        "--rules",
        default=None,
        help="Optional JSON rules file; its pipelines replace the built-in ones by name.",
    )
    p.add_argument(
        "--subsets",
        nargs="*",
        default=None,
        metavar="SUBSET",
        help="Subsets to render (default: all).",
    )
    p.add_argument(
        "-f",
        "--format",
        default=OUTPUT_FORMAT,
        choices=["png", "svg", "pdf"],
        help="Output image format.",
    )
    p.add_argument(
        "--strict-colors",
        action="store_true",
        help="Fail if a rendered line has no entry in the color table.",
    )
    p.add_argument("--log-file", default=LOG_FILE, help="Also write the log to this file.")
    return p


# =============================================================================
# FUNCTIONS
# =============================================================================


def resolve_rules(rules_path: str | Path | None) -> dict[str, list[FilterStep]]:
    """Built-in rules, with pipelines from *rules_path* replacing them by name."""
    rules = {name: list(steps) for name, steps in DEFAULT_RULES.items()}
    if rules_path:
        rules.update(load_rules(rules_path))
    return rules


def summarize_subsets(subsets: dict[str, NetworkSubset]) -> pd.DataFrame:
    """One row per subset with feature and name counts."""
    rows = [
        {
            "subset": name,
            "line_features": len(sub.lines),
            "distinct_lines": len(sub.line_names),
            "stations": len(sub.stations),
        }
        for name, sub in subsets.items()
    ]
    return pd.DataFrame(rows, columns=["subset", "line_features", "distinct_lines", "stations"])


def render_subsets(
    subsets: dict[str, NetworkSubset],
    outdir: Path,
    style: RenderStyle,
    fmt: str = OUTPUT_FORMAT,
    only: Sequence[str] | None = None,
) -> list[Path]:
    """Render each selected subset to ``<outdir>/<subset>_map.<fmt>``."""
    selected = list(subsets) if not only else list(only)
    unknown = [s for s in selected if s not in subsets]
    if unknown:
        raise KeyError(f"Unknown subset(s) {unknown}; available: {list(subsets)}")

    written: list[Path] = []
    for name in selected:
        sub = subsets[name]
        fig = render_network(sub.lines, sub.stations, LINE_COLORS, style)
        written.append(save_figure(fig, outdir / f"{name}_map.{fmt}", style))
    return written


# =============================================================================
# MAIN
# =============================================================================


def main(argv: Sequence[str] | None = None) -> None:
    """Top-level workflow controller."""
    args = build_argparser().parse_args(argv)
    setup_logging(log_file=args.log_file)

    try:
        style = RENDER_STYLE
        if args.strict_colors:
            style = replace(RENDER_STYLE, missing_color_policy="raise")

        # 1. Load
        lines, stations = load_network(args.lines, args.stations)

        # 2. Filter + join
        rules = resolve_rules(args.rules)
        subsets = build_subsets(
            lines,
            stations,
            rules,
            extra_station_names=STATION_NAME_EXTRAS,
            chains=PIPELINE_CHAINS,
        )

        # 3. Render
        outdir = Path(args.outdir)
        outdir.mkdir(parents=True, exist_ok=True)
        render_subsets(subsets, outdir, style, fmt=args.format, only=args.subsets)

        summary_path = outdir / "subset_summary.csv"
        summarize_subsets(subsets).to_csv(summary_path, index=False)
        LOGGER.info("Summary written to %s", summary_path)
        LOGGER.info("Finished successfully")

    except Exception:  # noqa: BLE001
        LOGGER.exception("Processing failed")
        sys.exit(1)


if __name__ == "__main__":
    main()
